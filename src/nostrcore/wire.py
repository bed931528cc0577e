"""
Relay protocol frames.

Every frame is a JSON array whose first element is a message tag. Client
frames are encoded here as compact JSON text; relay frames are decoded into
small message dataclasses.
"""

import json
from dataclasses import dataclass
from typing import Any, Iterable, Union

from .codec import decode_hex
from .event import Event
from .filters import Filter
from .types import (
    CLIENT_CLOSE,
    CLIENT_EVENT,
    CLIENT_REQ,
    EVENT_ID_SIZE,
    RELAY_AUTH,
    RELAY_CLOSED,
    RELAY_EOSE,
    RELAY_EVENT,
    RELAY_NOTICE,
    RELAY_OK,
    FormatError,
    InvalidEventError,
    ProtocolError,
)


@dataclass
class RelayEventMessage:
    """An event delivered for a subscription."""
    subscription_id: str
    event: Event


@dataclass
class EndOfStoredEventsMessage:
    """The relay has sent all stored events for a subscription."""
    subscription_id: str


@dataclass
class NoticeMessage:
    """Human-readable message from the relay."""
    message: str


@dataclass
class OkMessage:
    """The relay's verdict on a published event."""
    event_id: bytes
    accepted: bool
    message: str = ""


@dataclass
class ClosedMessage:
    """The relay ended a subscription."""
    subscription_id: str
    message: str = ""


@dataclass
class AuthMessage:
    """Authentication challenge."""
    challenge: str


@dataclass
class UnknownMessage:
    """A well-formed frame with a tag this client does not handle."""
    tag: str
    payload: list[Any]


RelayMessage = Union[
    RelayEventMessage,
    EndOfStoredEventsMessage,
    NoticeMessage,
    OkMessage,
    ClosedMessage,
    AuthMessage,
    UnknownMessage,
]


def _encode(frame: list[Any]) -> str:
    return json.dumps(frame, separators=(",", ":"), ensure_ascii=False)


def encode_event_message(event: Event) -> str:
    """Encode ``["EVENT", event]``. The event must be signed."""
    if not event.is_signed:
        raise InvalidEventError("Cannot send an unsigned event")
    return _encode([CLIENT_EVENT, event.to_dict()])


def encode_req_message(subscription_id: str, filters: Iterable[Filter]) -> str:
    """Encode ``["REQ", sub_id, filter, ...]``."""
    filters = list(filters)
    if not filters:
        raise ValueError("REQ needs at least one filter")
    return _encode([CLIENT_REQ, subscription_id] + [f.to_dict() for f in filters])


def encode_close_message(subscription_id: str) -> str:
    """Encode ``["CLOSE", sub_id]``."""
    return _encode([CLIENT_CLOSE, subscription_id])


def _expect_str(frame: list[Any], index: int, what: str) -> str:
    if len(frame) <= index or not isinstance(frame[index], str):
        raise ProtocolError(f"{frame[0]} frame is missing {what}")
    return frame[index]


def _optional_str(frame: list[Any], index: int) -> str:
    if len(frame) > index and isinstance(frame[index], str):
        return frame[index]
    return ""


def decode_relay_message(raw: Union[str, bytes]) -> RelayMessage:
    """
    Decode a relay-to-client frame.

    Raises:
        ProtocolError: If the frame is not a JSON array with a string tag or
            a known tag's fields are missing or malformed.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Frame is not valid UTF-8: {e}") from e
    try:
        frame = json.loads(raw)
    except ValueError as e:
        raise ProtocolError(f"Frame is not valid JSON: {e}") from e
    except RecursionError as e:
        raise ProtocolError("Frame is nested too deeply") from e
    if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
        raise ProtocolError("Frame must be a JSON array starting with a tag")

    tag = frame[0]
    if tag == RELAY_EVENT:
        subscription_id = _expect_str(frame, 1, "subscription id")
        if len(frame) < 3:
            raise ProtocolError("EVENT frame is missing the event")
        try:
            event = Event.from_dict(frame[2])
        except InvalidEventError as e:
            raise ProtocolError(f"EVENT frame carries an invalid event: {e}") from e
        return RelayEventMessage(subscription_id=subscription_id, event=event)

    if tag == RELAY_EOSE:
        return EndOfStoredEventsMessage(subscription_id=_expect_str(frame, 1, "subscription id"))

    if tag == RELAY_NOTICE:
        return NoticeMessage(message=_expect_str(frame, 1, "message"))

    if tag == RELAY_OK:
        event_id_hex = _expect_str(frame, 1, "event id")
        try:
            event_id = decode_hex(event_id_hex, EVENT_ID_SIZE)
        except FormatError as e:
            raise ProtocolError(f"OK frame has an invalid event id: {e}") from e
        if len(frame) < 3 or not isinstance(frame[2], bool):
            raise ProtocolError("OK frame is missing the accepted flag")
        return OkMessage(event_id=event_id, accepted=frame[2], message=_optional_str(frame, 3))

    if tag == RELAY_CLOSED:
        return ClosedMessage(
            subscription_id=_expect_str(frame, 1, "subscription id"),
            message=_optional_str(frame, 2),
        )

    if tag == RELAY_AUTH:
        return AuthMessage(challenge=_expect_str(frame, 1, "challenge"))

    return UnknownMessage(tag=tag, payload=frame[1:])
