from pathlib import Path

from haste.config import BLOBS_DIR, DATA_DIR


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def truncate_text(text: str, max_len: int) -> str:
    single_line = normalize_whitespace(text)
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def ensure_dirs(*dirs: str | Path) -> None:
    """Create the given directories, or the default data directories if none are given."""
    for directory in dirs or (DATA_DIR, BLOBS_DIR):
        Path(directory).mkdir(parents=True, exist_ok=True)
