"""
Events and their canonical serialization.

An event's id is the SHA-256 of the compact JSON array

    [0, "<pubkey hex>", created_at, kind, tags, "<content>"]

encoded as UTF-8 with non-ASCII characters emitted verbatim. JSON string
escaping is limited to quote, backslash, the short control escapes and
``\\u00XX`` for the remaining characters below 0x20.
"""

import hashlib
import json
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Optional, Sequence

from .codec import decode_hex, encode_hex
from .types import (
    EVENT_ID_SIZE,
    MAX_CONTENT_SIZE,
    MAX_KIND,
    PUBLIC_KEY_SIZE,
    SIGNATURE_SIZE,
    FormatError,
    InvalidEventError,
)

Tags = tuple[tuple[str, ...], ...]


class EventKind(IntEnum):
    """Well-known event kinds."""
    METADATA = 0
    TEXT_NOTE = 1
    RECOMMEND_RELAY = 2


def _normalize_tags(tags: Iterable[Sequence[str]]) -> Tags:
    try:
        return tuple(tuple(tag) for tag in tags)
    except TypeError as e:
        raise InvalidEventError(f"Tags must be a list of lists: {e}") from e


def serialize_for_id(
    pubkey: bytes,
    created_at: int,
    kind: int,
    tags: Iterable[Sequence[str]],
    content: str,
) -> bytes:
    """Returns the canonical UTF-8 bytes hashed to form an event id."""
    payload = [0, encode_hex(pubkey), created_at, kind, [list(t) for t in tags], content]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_event_id(
    pubkey: bytes,
    created_at: int,
    kind: int,
    tags: Iterable[Sequence[str]],
    content: str,
) -> bytes:
    """Returns the 32-byte SHA-256 event id."""
    return hashlib.sha256(serialize_for_id(pubkey, created_at, kind, tags, content)).digest()


def _check_bytes(name: str, value: Any, size: int) -> None:
    if not isinstance(value, bytes):
        raise InvalidEventError(f"{name} must be bytes, got {type(value).__name__}")
    if len(value) != size:
        raise InvalidEventError(f"{name} must be {size} bytes, got {len(value)}")


def _check_int(name: str, value: Any) -> None:
    # bool is an int subclass but never a valid timestamp or kind
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidEventError(f"{name} must be an integer, got {type(value).__name__}")


def _utf8_length(name: str, value: str) -> int:
    try:
        return len(value.encode("utf-8"))
    except UnicodeEncodeError as e:
        raise InvalidEventError(f"{name} is not valid UTF-8: {e.reason}") from e


def validate_event(event: "Event") -> None:
    """
    Check an event's structure.

    Raises:
        InvalidEventError: On wrong field sizes or types, a kind outside
            0..65535, a negative timestamp, content over 64 KiB, an empty or
            unnamed tag, or text that cannot be encoded as UTF-8.
    """
    _check_bytes("pubkey", event.pubkey, PUBLIC_KEY_SIZE)
    if event.id is not None:
        _check_bytes("id", event.id, EVENT_ID_SIZE)
    if event.sig is not None:
        _check_bytes("sig", event.sig, SIGNATURE_SIZE)

    _check_int("created_at", event.created_at)
    if event.created_at < 0:
        raise InvalidEventError("created_at must not be negative")
    _check_int("kind", event.kind)
    if not 0 <= event.kind <= MAX_KIND:
        raise InvalidEventError(f"kind must be in 0..{MAX_KIND}, got {event.kind}")

    if not isinstance(event.content, str):
        raise InvalidEventError(f"content must be a string, got {type(event.content).__name__}")
    if _utf8_length("content", event.content) > MAX_CONTENT_SIZE:
        raise InvalidEventError(f"content exceeds {MAX_CONTENT_SIZE} bytes")

    for tag in event.tags:
        if not tag:
            raise InvalidEventError("Tags must not be empty")
        if not all(isinstance(v, str) for v in tag):
            raise InvalidEventError("Tag values must be strings")
        for value in tag:
            _utf8_length("tag value", value)
        if not tag[0]:
            raise InvalidEventError("Tag name must not be empty")


@dataclass(frozen=True)
class Event:
    """
    An immutable protocol event.

    Unsigned events have ``id`` and ``sig`` set to None. Signing produces a
    new instance (see ``Signer.sign``).
    """

    pubkey: bytes
    created_at: int
    kind: int
    content: str
    tags: Tags = ()
    id: Optional[bytes] = None
    sig: Optional[bytes] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", _normalize_tags(self.tags))
        for name in ("pubkey", "id", "sig"):
            value = getattr(self, name)
            if isinstance(value, bytearray):
                object.__setattr__(self, name, bytes(value))
        validate_event(self)

    @classmethod
    def create(
        cls,
        pubkey: bytes,
        content: str,
        kind: int = EventKind.TEXT_NOTE,
        tags: Iterable[Sequence[str]] = (),
        created_at: Optional[int] = None,
    ) -> "Event":
        """Create an unsigned event, timestamped now unless created_at is given."""
        if created_at is None:
            created_at = int(time.time())
        return cls(
            pubkey=pubkey,
            created_at=created_at,
            kind=int(kind),
            content=content,
            tags=_normalize_tags(tags),
        )

    @property
    def is_signed(self) -> bool:
        """Whether the event carries both an id and a signature."""
        return self.id is not None and self.sig is not None

    @property
    def id_hex(self) -> Optional[str]:
        return encode_hex(self.id) if self.id is not None else None

    @property
    def pubkey_hex(self) -> str:
        return encode_hex(self.pubkey)

    def compute_id(self) -> bytes:
        """Recompute the id from the event's current fields."""
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def tag_values(self, name: str) -> list[str]:
        """Returns the first value of every tag with the given name."""
        return [t[1] for t in self.tags if t[0] == name and len(t) > 1]

    def to_dict(self) -> dict[str, Any]:
        """Returns the wire representation; id and sig are omitted when unset."""
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = encode_hex(self.id)
        data["pubkey"] = encode_hex(self.pubkey)
        data["created_at"] = self.created_at
        data["kind"] = self.kind
        data["tags"] = [list(t) for t in self.tags]
        data["content"] = self.content
        if self.sig is not None:
            data["sig"] = encode_hex(self.sig)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Event":
        """
        Parse the wire representation of an event.

        Raises:
            InvalidEventError: If a field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise InvalidEventError(f"Event must be an object, got {type(data).__name__}")
        try:
            pubkey = decode_hex(data["pubkey"], PUBLIC_KEY_SIZE)
            event_id = decode_hex(data["id"], EVENT_ID_SIZE) if "id" in data else None
            sig = decode_hex(data["sig"], SIGNATURE_SIZE) if "sig" in data else None
            tags = data.get("tags", [])
            if not isinstance(tags, list) or not all(isinstance(t, list) for t in tags):
                raise InvalidEventError("tags must be a list of lists")
            return cls(
                pubkey=pubkey,
                created_at=data["created_at"],
                kind=data["kind"],
                content=data["content"],
                tags=tags,
                id=event_id,
                sig=sig,
            )
        except KeyError as e:
            raise InvalidEventError(f"Missing event field: {e.args[0]}") from e
        except FormatError as e:
            raise InvalidEventError(f"Invalid event field: {e}") from e
