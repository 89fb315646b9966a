import argparse
import json
import logging
import sys
import time

from haste.config import BLOBS_DIR, DB_PATH, DEFAULT_SEARCH_LIMIT, LOG_PATH, MAX_ENTRIES, PREVIEW_LENGTH
from haste.errors import HasteError, NotFoundError, ValidationError
from haste.models import Item, ItemKind, NewItem
from haste.store import ClipStore
from haste.utils import ensure_dirs, truncate_text

logger = logging.getLogger("haste")

EXIT_OK = 0
EXIT_USER_ERROR = 1  # unknown id, bad input
EXIT_STORAGE_ERROR = 2


def configure_logging(verbose: bool = False) -> None:
    ensure_dirs(LOG_PATH.parent)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
    )


def now_ms() -> int:
    return int(time.time() * 1000)


def item_json(item: Item) -> dict:
    data = item.to_dict()
    data["preview"] = truncate_text(item.content_ref, PREVIEW_LENGTH)
    return data


def emit(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def run_command(store: ClipStore, args: argparse.Namespace):
    """Execute one parsed command against an open store and return its JSON payload."""
    if args.command == "add":
        item = NewItem(
            kind=ItemKind.parse(args.kind),
            content_ref=args.content,
            source_app=args.source_app,
            created_at=args.created_at if args.created_at is not None else now_ms(),
            tags=args.tag or [],
        )
        if args.dedup:
            result = store.add_with_dedup(item)
            return {"id": result.item_id, "bumped": result.bumped}
        return {"id": store.add(item), "bumped": False}
    if args.command == "get":
        return item_json(store.get(args.id))
    if args.command == "delete":
        store.delete(args.id)
        return {"deleted": args.id}
    if args.command in ("pin", "unpin"):
        pinned = args.command == "pin"
        store.pin(args.id, pinned)
        return {"id": args.id, "pinned": pinned}
    if args.command == "tag":
        store.set_tags(args.id, args.tags)
        return {"id": args.id, "tags": args.tags}
    if args.command == "search":
        return [item_json(i) for i in store.search(args.query, args.limit)]
    if args.command == "recent":
        return [item_json(i) for i in store.recent(args.limit, pinned_only=args.pinned)]
    if args.command == "purge":
        return {"purged": store.purge_old(args.keep)}
    if args.command == "info":
        return {
            "db": store.db_path,
            "blobs": str(store.blobs_dir),
            "schema_version": store.schema_version(),
            "items": store.count(),
        }
    raise ValidationError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="haste",
        description="Haste - clipboard history store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  haste add text "hello world" --dedup   # insert, or bump an existing copy
  haste search rust --limit 10           # full-text search
  haste search se                        # short queries use substring match
  haste pin 42                           # keep item 42 out of purges
""",
    )
    parser.add_argument("--db", default=str(DB_PATH), help="Path to the store database")
    parser.add_argument("--blobs", default=str(BLOBS_DIR), help="Directory for large payloads")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add an item")
    add.add_argument("kind", choices=[k.value for k in ItemKind])
    add.add_argument("content", help="Text, or a path/reference for image and file items")
    add.add_argument("--source-app")
    add.add_argument("--tag", action="append", help="Tag to attach (repeatable)")
    add.add_argument("--created-at", type=int, help="Epoch milliseconds (default: now)")
    add.add_argument("--dedup", action="store_true", help="Bump an existing duplicate instead of inserting")

    for name, text in (("get", "Show an item"), ("delete", "Delete an item"), ("pin", "Pin an item"), ("unpin", "Unpin an item")):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("id", type=int)

    tag = sub.add_parser("tag", help="Replace an item's tags")
    tag.add_argument("id", type=int)
    tag.add_argument("tags", nargs="*")

    search = sub.add_parser("search", help="Search items")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=DEFAULT_SEARCH_LIMIT)

    recent = sub.add_parser("recent", help="List the most recent items")
    recent.add_argument("--limit", type=int, default=DEFAULT_SEARCH_LIMIT)
    recent.add_argument("--pinned", action="store_true", help="Only pinned items")

    purge = sub.add_parser("purge", help="Delete unpinned items beyond the newest N")
    purge.add_argument("--keep", type=int, default=MAX_ENTRIES)

    sub.add_parser("info", help="Show store location and schema version")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        with ClipStore.open(args.db, args.blobs) as store:
            emit(run_command(store, args))
    except (NotFoundError, ValidationError) as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        sys.exit(EXIT_USER_ERROR)
    except HasteError as exc:
        logger.exception("haste %s failed", args.command)
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        sys.exit(EXIT_STORAGE_ERROR)
    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()
