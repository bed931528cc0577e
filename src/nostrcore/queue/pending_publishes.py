"""Bookkeeping for published events awaiting a relay's OK."""

import logging
from collections import OrderedDict
from typing import Optional

from ..models import PublishOutcome

logger = logging.getLogger(__name__)


class PendingPublishQueue:
    """
    Tracks publish outcomes for a single relay, oldest first.

    The table is bounded: when full, the oldest answered entry is evicted
    first, then the oldest unanswered one.
    """

    def __init__(self, max_size: int = 1000) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._outcomes: "OrderedDict[bytes, PublishOutcome]" = OrderedDict()
        self._max_size = max_size

    def track(self, event_id: bytes) -> PublishOutcome:
        """Start tracking an event id as PENDING, replacing any earlier entry."""
        self._outcomes.pop(event_id, None)
        if len(self._outcomes) >= self._max_size:
            self._evict()
        outcome = PublishOutcome(event_id=event_id)
        self._outcomes[event_id] = outcome
        return outcome

    def record(self, event_id: bytes, accepted: bool, message: str = "") -> Optional[PublishOutcome]:
        """
        Record a relay's OK for an event id.

        Returns the updated outcome, or None if the id was not published
        through this relay (relays may answer for events sent by others).
        """
        outcome = self._outcomes.get(event_id)
        if outcome is None:
            return None
        if accepted:
            outcome.mark_accepted(message)
        else:
            outcome.mark_rejected(message)
        return outcome

    def get(self, event_id: bytes) -> Optional[PublishOutcome]:
        """Returns the outcome for an event id, if tracked."""
        return self._outcomes.get(event_id)

    def _evict(self) -> None:
        for event_id, outcome in self._outcomes.items():
            if outcome.is_resolved:
                del self._outcomes[event_id]
                return
        event_id, _ = self._outcomes.popitem(last=False)
        logger.debug("Evicted unanswered publish %s", event_id.hex())

    @property
    def length(self) -> int:
        """Returns the number of tracked events."""
        return len(self._outcomes)
