"""Event sink interface for application-facing notifications."""

from abc import ABC, abstractmethod

from .event import Event


class EventSink(ABC):
    """
    Receives verified events and connection status from the client.

    Methods are called from the event loop, one relay's calls in order.
    Implementations should return quickly.
    """

    @abstractmethod
    def on_connected(self, url: str) -> None:
        """A relay connection reached OPEN."""
        ...

    @abstractmethod
    def on_disconnected(self, url: str) -> None:
        """A relay connection was lost or closed."""
        ...

    @abstractmethod
    def on_error(self, message: str) -> None:
        """A non-fatal error occurred."""
        ...

    @abstractmethod
    def on_event(self, event: Event, subscription_id: str, url: str) -> None:
        """A verified event matched a subscription."""
        ...

    def on_notice(self, url: str, message: str) -> None:
        """A relay sent a NOTICE."""
        pass


class NullEventSink(EventSink):
    """Sink that ignores everything."""

    def on_connected(self, url: str) -> None:
        pass

    def on_disconnected(self, url: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass

    def on_event(self, event: Event, subscription_id: str, url: str) -> None:
        pass
