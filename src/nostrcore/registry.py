"""Active subscriptions shared by every relay session of a client."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional

from .event import Event
from .filters import Filter, matches_any

EventCallback = Callable[[Event, str], None]


@dataclass
class Subscription:
    """
    A subscription and its callbacks.

    Callbacks receive the verified event and the URL of the relay that
    delivered it.
    """
    id: str
    filters: tuple[Filter, ...]
    callbacks: list[EventCallback] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    eose_relays: set[str] = field(default_factory=set)

    def matches(self, event: Event) -> bool:
        """Whether the event matches any of the subscription's filters."""
        return matches_any(self.filters, event)

    def has_eose(self, url: str) -> bool:
        """Whether the relay has finished sending stored events."""
        return url in self.eose_relays


class SubscriptionRegistry:
    """Subscription ids mapped to their subscriptions."""

    ID_PREFIX = "sub_"

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def new_subscription_id(self) -> str:
        """Returns a random id not currently in use."""
        while True:
            candidate = self.ID_PREFIX + uuid.uuid4().hex[:16]
            if candidate not in self._subscriptions:
                return candidate

    def add(
        self,
        filters: Iterable[Filter],
        callback: Optional[EventCallback] = None,
        subscription_id: Optional[str] = None,
    ) -> Subscription:
        """
        Register a subscription.

        Raises:
            ValueError: If filters is empty or the id is already registered.
        """
        filters = tuple(filters)
        if not filters:
            raise ValueError("A subscription needs at least one filter")
        if subscription_id is None:
            subscription_id = self.new_subscription_id()
        elif subscription_id in self._subscriptions:
            raise ValueError(f"Subscription id already in use: {subscription_id}")

        subscription = Subscription(id=subscription_id, filters=filters)
        if callback is not None:
            subscription.callbacks.append(callback)
        self._subscriptions[subscription_id] = subscription
        return subscription

    def add_callback(self, subscription_id: str, callback: EventCallback) -> bool:
        """Attach another callback. Returns False for an unknown id."""
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            return False
        subscription.callbacks.append(callback)
        return True

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(subscription_id)

    def remove(self, subscription_id: str) -> Optional[Subscription]:
        return self._subscriptions.pop(subscription_id, None)

    def active(self) -> list[Subscription]:
        """Returns all subscriptions in registration order."""
        return list(self._subscriptions.values())

    def mark_eose(self, subscription_id: str, url: str) -> bool:
        """Record EOSE from a relay. Returns False for an unknown id."""
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            return False
        subscription.eose_relays.add(url)
        return True

    def clear(self) -> None:
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._subscriptions

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))
