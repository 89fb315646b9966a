import json
from dataclasses import dataclass, field
from enum import Enum

from haste.errors import StorageError, ValidationError
from haste.utils import normalize_whitespace


class ItemKind(str, Enum):
    TEXT = "text"
    RTF = "rtf"
    IMAGE = "image"
    FILE = "file"

    @property
    def code(self) -> int:
        """Integer tag used across the foreign call boundary."""
        return _KIND_CODES[self]

    @property
    def is_text(self) -> bool:
        return self in (ItemKind.TEXT, ItemKind.RTF)

    @classmethod
    def parse(cls, value: "ItemKind | str | int") -> "ItemKind":
        if isinstance(value, cls):
            return value
        # bool is an int subclass; True/False are not kind codes
        if isinstance(value, int) and not isinstance(value, bool):
            for kind, code in _KIND_CODES.items():
                if code == value:
                    return kind
            raise ValidationError(f"Invalid item kind code: {value}")
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        raise ValidationError(f"Invalid item kind: {value!r}")


_KIND_CODES = {
    ItemKind.TEXT: 0,
    ItemKind.RTF: 1,
    ItemKind.IMAGE: 2,
    ItemKind.FILE: 3,
}


@dataclass
class NewItem:
    kind: ItemKind
    content_ref: str
    source_app: str | None = None
    created_at: int = 0  # epoch milliseconds
    tags: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.kind = ItemKind.parse(self.kind)
        if not isinstance(self.content_ref, str):
            raise ValidationError(f"content_ref must be a string, got {type(self.content_ref).__name__}")
        if self.source_app is not None and not isinstance(self.source_app, str):
            raise ValidationError(f"source_app must be a string or None, got {type(self.source_app).__name__}")
        # NUL would truncate the value for C-string readers
        for name, value in (("content_ref", self.content_ref), ("source_app", self.source_app)):
            if value is not None and "\0" in value:
                raise ValidationError(f"{name} must not contain NUL characters")
        if isinstance(self.created_at, bool) or not isinstance(self.created_at, int):
            raise ValidationError(f"created_at must be an integer, got {self.created_at!r}")
        if not isinstance(self.tags, list):
            raise ValidationError(f"tags must be a list, got {type(self.tags).__name__}")

    def normalized_text(self) -> str:
        return normalize_whitespace(self.content_ref)

    def dedup_key(self) -> str:
        return dedup_key(self.kind, self.content_ref)


@dataclass
class Item:
    id: int
    kind: ItemKind
    content_ref: str
    source_app: str | None
    created_at: int
    pinned: bool = False
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "content_ref": self.content_ref,
            "source_app": self.source_app,
            "created_at": self.created_at,
            "pinned": self.pinned,
            "tags": list(self.tags),
        }


def dedup_key(kind: ItemKind, content_ref: str) -> str:
    """Text and rich text compare on collapsed whitespace, references byte-for-byte."""
    if kind.is_text:
        return normalize_whitespace(content_ref)
    return content_ref


# Tags are stored as a JSON array of strings. This encoding was fixed by
# schema migration 1; changing it requires a new migration that rewrites
# the column.
TAGS_FORMAT_VERSION = 1


def encode_tags(tags: list[str]) -> str:
    if isinstance(tags, str) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("Tags must be a list of strings")
    return json.dumps(list(tags), ensure_ascii=False)


def decode_tags(raw: str, item_id: int | None = None) -> list[str]:
    try:
        tags = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise StorageError("decode tags", item_id, str(exc)) from exc
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise StorageError("decode tags", item_id, "not a JSON array of strings")
    return tags
