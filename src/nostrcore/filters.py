"""Subscription filters and client-side matching."""

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

from .codec import decode_hex, encode_hex
from .event import Event
from .types import EVENT_ID_SIZE, PUBLIC_KEY_SIZE, FormatError

HexOrBytes = Union[str, bytes]


@dataclass(frozen=True)
class Filter:
    """
    A relay query.

    Present fields are AND-combined; values inside one field are OR-combined.
    ``tags`` maps a single-letter tag name (without ``#``) to accepted values,
    e.g. ``{"e": ("<event id hex>",)}``.
    """

    ids: Optional[tuple[str, ...]] = None
    authors: Optional[tuple[str, ...]] = None
    kinds: Optional[tuple[int, ...]] = None
    tags: Optional[Mapping[str, tuple[str, ...]]] = field(default=None, hash=False)
    since: Optional[int] = None
    until: Optional[int] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.ids is not None:
            object.__setattr__(self, "ids", _normalize_hex_list(self.ids, "ids", EVENT_ID_SIZE))
        if self.authors is not None:
            object.__setattr__(
                self, "authors", _normalize_hex_list(self.authors, "authors", PUBLIC_KEY_SIZE)
            )
        if self.kinds is not None:
            object.__setattr__(self, "kinds", tuple(_parse_int(k, "kind") for k in self.kinds))
        if self.tags is not None:
            object.__setattr__(self, "tags", _normalize_tag_queries(self.tags))
        for name in ("since", "until", "limit"):
            value = getattr(self, name)
            if value is not None:
                value = _parse_int(value, name)
                if value < 0:
                    raise ValueError(f"{name} must not be negative")
                object.__setattr__(self, name, value)

    def to_dict(self) -> dict[str, Any]:
        """Returns the wire representation with absent fields omitted."""
        data: dict[str, Any] = {}
        if self.ids is not None:
            data["ids"] = list(self.ids)
        if self.authors is not None:
            data["authors"] = list(self.authors)
        if self.kinds is not None:
            data["kinds"] = list(self.kinds)
        if self.tags is not None:
            for name, values in self.tags.items():
                data["#" + name] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Filter":
        """
        Build a filter from its wire representation.

        Raises:
            ValueError: On malformed fields.
        """
        tags = {key[1:]: values for key, values in raw.items() if key.startswith("#")}
        return cls(
            ids=raw.get("ids"),
            authors=raw.get("authors"),
            kinds=raw.get("kinds"),
            tags=tags or None,
            since=raw.get("since"),
            until=raw.get("until"),
            limit=raw.get("limit"),
        )

    def matches(self, event: Event) -> bool:
        """Whether the event satisfies every present field. ``limit`` is ignored."""
        if self.ids is not None and (event.id is None or encode_hex(event.id) not in self.ids):
            return False
        if self.authors is not None and encode_hex(event.pubkey) not in self.authors:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        if self.tags is not None and not _match_tags(event, self.tags):
            return False
        return True


def matches_any(filters: Iterable[Filter], event: Event) -> bool:
    """Whether the event matches at least one of the filters."""
    return any(f.matches(event) for f in filters)


def _match_tags(event: Event, queries: Mapping[str, tuple[str, ...]]) -> bool:
    available: dict[str, set[str]] = {}
    for tag in event.tags:
        if len(tag) > 1:
            available.setdefault(tag[0], set()).add(tag[1])
    for name, values in queries.items():
        if not available.get(name, set()).intersection(values):
            return False
    return True


def _normalize_hex_list(raw: Iterable[HexOrBytes], name: str, size: int) -> tuple[str, ...]:
    if isinstance(raw, (str, bytes)):
        raise ValueError(f"{name} must be a list")
    result = []
    for value in raw:
        if isinstance(value, (bytes, bytearray)):
            if len(value) != size:
                raise ValueError(f"{name} entries must be {size} bytes")
            result.append(encode_hex(value))
            continue
        try:
            result.append(encode_hex(decode_hex(value, size)))
        except FormatError as e:
            raise ValueError(f"{name} entries must be {size * 2}-char hex: {e}") from e
    return tuple(result)


def _normalize_tag_queries(raw: Mapping[str, Iterable[str]]) -> dict[str, tuple[str, ...]]:
    if not isinstance(raw, Mapping):
        raise ValueError("tags must be a mapping of tag name to values")
    queries = {}
    for key, values in raw.items():
        if not isinstance(key, str) or len(key) != 1:
            raise ValueError(f"tag query name must be a single letter, got {key!r}")
        if isinstance(values, str) or not isinstance(values, Iterable):
            raise ValueError(f"values for #{key} must be a list")
        values = tuple(values)
        if not all(isinstance(v, str) for v in values):
            raise ValueError(f"values for #{key} must be strings")
        queries[key] = values
    return queries


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be int")
    return int(value)
