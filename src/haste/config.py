import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("HASTE_DATA_DIR", Path.home() / ".local" / "share" / "haste"))
DB_PATH = DATA_DIR / "haste.db"
BLOBS_DIR = DATA_DIR / "blobs"
LOG_PATH = DATA_DIR / "haste.log"

FTS_MIN_QUERY_LENGTH = 3  # shorter queries fall back to a LIKE scan
DEFAULT_SEARCH_LIMIT = 50
MAX_ENTRIES = 1000  # default keep count for `haste purge`
PREVIEW_LENGTH = 60  # characters shown by `haste recent`


def _parse_cache_size() -> int:
    raw = os.environ.get("HASTE_CACHE_SIZE_KIB")
    if raw is None:
        return 20_000
    try:
        value = int(raw)
    except ValueError:
        return 20_000
    return max(2_000, min(200_000, value))


CACHE_SIZE_KIB = _parse_cache_size()
