"""nostrcore queue module."""

from .pending_publishes import PendingPublishQueue

__all__ = [
    "PendingPublishQueue",
]
