"""Models for relay connections and publish tracking."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .event import Event


class RelayState(Enum):
    """Connection state of a relay session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class PublishStatus(Enum):
    """A relay's verdict on a published event."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class PublishOutcome:
    """Tracks one event published to one relay."""
    event_id: bytes
    created_at: datetime = field(default_factory=datetime.now)
    status: PublishStatus = PublishStatus.PENDING
    message: str = ""
    responded_at: Optional[datetime] = None

    def mark_accepted(self, message: str = "") -> None:
        """Record an OK with accepted=true."""
        self.status = PublishStatus.ACCEPTED
        self.message = message
        self.responded_at = datetime.now()

    def mark_rejected(self, message: str) -> None:
        """Record an OK with accepted=false."""
        self.status = PublishStatus.REJECTED
        self.message = message
        self.responded_at = datetime.now()

    @property
    def is_resolved(self) -> bool:
        """Whether the relay has answered."""
        return self.status != PublishStatus.PENDING


@dataclass
class PublishResult:
    """Result of handing an event to the connected relays."""
    event: Event
    sent_to: list[str]
    skipped: list[str]

    @property
    def queued(self) -> bool:
        """Whether at least one relay took the event."""
        return bool(self.sent_to)


@dataclass
class PublishSummary:
    """Per-relay outcomes for one event id."""
    event_id: bytes
    outcomes: dict[str, PublishOutcome]

    @property
    def accepted(self) -> bool:
        """At least one relay accepted the event."""
        return any(o.status == PublishStatus.ACCEPTED for o in self.outcomes.values())

    @property
    def rejected_by_all(self) -> bool:
        """Every tracking relay rejected the event."""
        return bool(self.outcomes) and all(
            o.status == PublishStatus.REJECTED for o in self.outcomes.values()
        )

    @property
    def awaiting_response(self) -> list[str]:
        """URLs of relays that have not answered yet."""
        return [url for url, o in self.outcomes.items() if o.status == PublishStatus.PENDING]
