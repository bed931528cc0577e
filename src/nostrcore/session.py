"""
Relay sessions.

A RelaySession owns the connection to one relay: it connects with a bounded
retry policy, multiplexes the client's subscriptions over the connection,
verifies every inbound event before dispatching it and records the relay's
verdicts on published events.

State machine::

    DISCONNECTED -> CONNECTING -> OPEN -> CLOSING -> DISCONNECTED
                         |          |
                         v          v
                    RECONNECTING <--+
                         |
                         v
                       FAILED

Each session runs one supervisor task (connect, receive, reconnect) and, while
OPEN, one writer task draining the outbound queue under a sliding-window rate
limit.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Optional

from .event import Event
from .models import PublishOutcome, PublishStatus, RelayState
from .queue import PendingPublishQueue
from .registry import Subscription, SubscriptionRegistry
from .signature import Signer
from .sink import EventSink, NullEventSink
from .transport import Frame, Transport, WebSocketTransport
from .types import InvalidEventError, ProtocolError, TransportError
from .wire import (
    AuthMessage,
    ClosedMessage,
    EndOfStoredEventsMessage,
    NoticeMessage,
    OkMessage,
    RelayEventMessage,
    decode_relay_message,
    encode_close_message,
    encode_event_message,
    encode_req_message,
)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]


@dataclass
class RelayConfig:
    """Configuration for a relay session."""

    reconnect_delay: timedelta = timedelta(seconds=5)
    """Pause before each reconnect attempt."""

    max_reconnect_attempts: int = 3
    """Retries allowed after the last successful open before giving up."""

    connect_timeout: timedelta = timedelta(seconds=10)
    """Wall-clock limit for one connection attempt."""

    close_timeout: timedelta = timedelta(seconds=2)
    """Grace period for the close handshake and task shutdown."""

    max_messages_per_interval: int = 10
    """Outbound frames allowed per rate limit interval."""

    rate_limit_interval: timedelta = timedelta(seconds=1)
    """Length of the outbound rate limit window."""

    max_pending_publishes: int = 1000
    """Publish outcomes kept per relay."""


class RateLimiter:
    """Sliding-window limiter: at most ``limit`` acquisitions per ``interval`` seconds."""

    def __init__(self, limit: int, interval: float) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._interval = interval
        self._times: deque[float] = deque()

    async def acquire(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            now = loop.time()
            while self._times and now - self._times[0] >= self._interval:
                self._times.popleft()
            if len(self._times) < self._limit:
                self._times.append(now)
                return
            await asyncio.sleep(self._interval - (now - self._times[0]))


class RelaySession:
    """
    Connection to a single relay.

    ``publish``, ``send_subscription`` and ``send_close`` only enqueue frames
    and must be called from the event loop thread.

    Example usage:
        ```python
        session = RelaySession("wss://relay.example", registry, Signer())
        await session.connect()
        if await session.wait_until_open(timeout=5):
            session.publish(signed_event)
        await session.close()
        ```
    """

    def __init__(
        self,
        url: str,
        registry: SubscriptionRegistry,
        signer: Signer,
        sink: Optional[EventSink] = None,
        config: Optional[RelayConfig] = None,
        transport_factory: TransportFactory = WebSocketTransport,
    ) -> None:
        self._url = url
        self._registry = registry
        self._signer = signer
        self._sink = sink or NullEventSink()
        self._config = config or RelayConfig()
        self._transport_factory = transport_factory

        self._state = RelayState.DISCONNECTED
        self._attempts = 0
        self._closing = False
        self._transport: Optional[Transport] = None
        self._supervisor: Optional[asyncio.Task] = None
        self._outbound: Optional[asyncio.Queue] = None
        self._settled = asyncio.Event()
        self._settled.set()
        self._pending = PendingPublishQueue(self._config.max_pending_publishes)

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        """Reconnect attempts made since the last successful open."""
        return self._attempts

    @property
    def config(self) -> RelayConfig:
        return self._config

    def _set_state(self, state: RelayState) -> None:
        if state == self._state:
            return
        logger.info("Relay %s: %s -> %s", self._url, self._state.value, state.value)
        self._state = state
        if state in (RelayState.OPEN, RelayState.FAILED, RelayState.DISCONNECTED):
            self._settled.set()
        else:
            self._settled.clear()

    # MARK: - Lifecycle

    async def connect(self) -> None:
        """
        Start connecting in the background.

        Returns immediately. Only valid from DISCONNECTED or FAILED; other
        states are left alone.
        """
        if self._state not in (RelayState.DISCONNECTED, RelayState.FAILED):
            return
        self._closing = False
        self._attempts = 0
        self._set_state(RelayState.CONNECTING)
        self._supervisor = asyncio.get_running_loop().create_task(self._run())

    async def wait_until_open(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the session is OPEN or has settled in another state.

        Returns whether the session is OPEN.
        """
        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self._state == RelayState.OPEN

    async def close(self) -> None:
        """
        Close the connection and stop all tasks.

        The close handshake and task shutdown are each bounded by
        ``close_timeout``; the transport is released even if they fail.
        """
        if self._state == RelayState.DISCONNECTED and self._supervisor is None:
            return
        was_open = self._state == RelayState.OPEN
        self._closing = True
        self._set_state(RelayState.CLOSING)
        grace = self._config.close_timeout.total_seconds()

        transport = self._transport
        if transport is not None and transport.is_open:
            try:
                await asyncio.wait_for(transport.close(), grace)
            except (TransportError, asyncio.TimeoutError) as e:
                logger.warning("Close handshake with %s failed: %s", self._url, e)

        supervisor, self._supervisor = self._supervisor, None
        if supervisor is not None and not supervisor.done():
            supervisor.cancel()
            await asyncio.wait({supervisor}, timeout=grace)

        await self._release_transport()
        self._outbound = None
        self._set_state(RelayState.DISCONNECTED)
        if was_open:
            self._notify("on_disconnected", self._url)

    async def _run(self) -> None:
        while True:
            opened, error = await self._connect_once()
            if opened:
                error = await self._serve()
            if self._closing:
                return
            if opened:
                self._notify("on_disconnected", self._url)

            if self._attempts >= self._config.max_reconnect_attempts:
                logger.error("Relay %s failed after %d reconnect attempts: %s",
                             self._url, self._attempts, error)
                self._set_state(RelayState.FAILED)
                self._notify("on_error", f"Relay {self._url} failed: {error}")
                return

            self._attempts += 1
            self._set_state(RelayState.RECONNECTING)
            logger.info("Reconnecting to %s in %.1fs (attempt %d of %d)",
                        self._url, self._config.reconnect_delay.total_seconds(),
                        self._attempts, self._config.max_reconnect_attempts)
            await asyncio.sleep(self._config.reconnect_delay.total_seconds())
            if self._closing:
                return

    async def _connect_once(self) -> tuple[bool, str]:
        transport = self._transport_factory()
        self._transport = transport
        try:
            await asyncio.wait_for(
                transport.connect(self._url),
                self._config.connect_timeout.total_seconds(),
            )
        except asyncio.TimeoutError:
            await self._release_transport()
            logger.warning("Connection to %s timed out", self._url)
            return False, "connection timed out"
        except TransportError as e:
            await self._release_transport()
            logger.warning("Connection to %s failed: %s", self._url, e)
            return False, str(e)
        return True, ""

    async def _serve(self) -> str:
        transport = self._transport
        assert transport is not None
        outbound: asyncio.Queue = asyncio.Queue()
        self._outbound = outbound
        self._attempts = 0
        self._set_state(RelayState.OPEN)
        self._notify("on_connected", self._url)
        for subscription in self._registry.active():
            self.send_subscription(subscription)

        loop = asyncio.get_running_loop()
        receiver = loop.create_task(self._receive_loop(transport))
        writer = loop.create_task(self._write_loop(transport, outbound))
        try:
            done, _ = await asyncio.wait({receiver, writer}, return_when=asyncio.FIRST_COMPLETED)
            error = ""
            for task in done:
                exc = task.exception()
                if isinstance(exc, TransportError):
                    error = str(exc)
                elif exc is not None:
                    logger.error("Unexpected error on relay %s", self._url, exc_info=exc)
                    error = str(exc)
            if writer in done and error:
                self._notify("on_error", f"Send to {self._url} failed: {error}")
            return error
        finally:
            for task in (receiver, writer):
                task.cancel()
            await asyncio.gather(receiver, writer, return_exceptions=True)
            if self._outbound is outbound:
                self._outbound = None
            await self._release_transport()

    async def _release_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await asyncio.wait_for(transport.close(), self._config.close_timeout.total_seconds())
        except (TransportError, asyncio.TimeoutError) as e:
            logger.debug("Releasing transport for %s: %s", self._url, e)

    async def _receive_loop(self, transport: Transport) -> None:
        while True:
            frame = await transport.receive()
            self._dispatch(frame)

    async def _write_loop(self, transport: Transport, outbound: asyncio.Queue) -> None:
        limiter = RateLimiter(
            self._config.max_messages_per_interval,
            self._config.rate_limit_interval.total_seconds(),
        )
        while True:
            frame = await outbound.get()
            await limiter.acquire()
            await transport.send(frame)
            logger.debug("Sent to %s: %.120s", self._url, frame)

    # MARK: - Inbound

    def _notify(self, hook: str, *args: Any) -> None:
        try:
            getattr(self._sink, hook)(*args)
        except Exception:
            logger.exception("Event sink %s failed for %s", hook, self._url)

    def _dispatch(self, frame: Frame) -> None:
        try:
            message = decode_relay_message(frame)
        except ProtocolError as e:
            logger.warning("Dropping malformed frame from %s: %s", self._url, e)
            return

        if isinstance(message, RelayEventMessage):
            self._handle_event(message)
        elif isinstance(message, EndOfStoredEventsMessage):
            if not self._registry.mark_eose(message.subscription_id, self._url):
                logger.debug("EOSE for unknown subscription %s from %s",
                             message.subscription_id, self._url)
        elif isinstance(message, NoticeMessage):
            logger.info("Notice from %s: %s", self._url, message.message)
            self._notify("on_notice", self._url, message.message)
        elif isinstance(message, OkMessage):
            self._handle_ok(message)
        elif isinstance(message, ClosedMessage):
            logger.warning("Relay %s closed subscription %s: %s",
                           self._url, message.subscription_id, message.message)
            self._notify(
                "on_error",
                f"Relay {self._url} closed subscription {message.subscription_id}: {message.message}"
            )
        elif isinstance(message, AuthMessage):
            logger.info("Relay %s requested authentication; not supported", self._url)
        else:
            logger.debug("Ignoring %s frame from %s", message.tag, self._url)

    def _handle_event(self, message: RelayEventMessage) -> None:
        subscription = self._registry.get(message.subscription_id)
        if subscription is None:
            logger.debug("Event for unknown subscription %s from %s",
                         message.subscription_id, self._url)
            return
        event = message.event
        if not self._signer.verify(event):
            logger.warning("Dropping event with invalid id or signature from %s", self._url)
            return
        if not subscription.matches(event):
            logger.debug("Dropping event %s not matching subscription %s",
                         event.id_hex, subscription.id)
            return

        for callback in list(subscription.callbacks):
            try:
                callback(event, self._url)
            except Exception as e:
                logger.exception("Subscription callback failed for %s", subscription.id)
                self._notify("on_error", f"Callback for {subscription.id} failed: {e}")
        self._notify("on_event", event, subscription.id, self._url)

    def _handle_ok(self, message: OkMessage) -> None:
        outcome = self._pending.record(message.event_id, message.accepted, message.message)
        if outcome is None:
            logger.debug("OK for untracked event %s from %s", message.event_id.hex(), self._url)
        elif not message.accepted:
            logger.warning("Relay %s rejected event %s: %s",
                           self._url, message.event_id.hex(), message.message)

    # MARK: - Outbound

    def _enqueue(self, frame: str) -> bool:
        if self._state != RelayState.OPEN or self._outbound is None:
            return False
        self._outbound.put_nowait(frame)
        return True

    def publish(self, event: Event) -> bool:
        """
        Queue a signed event for sending.

        Returns False without queuing anything when the session is not OPEN.

        Raises:
            InvalidEventError: If the event is unsigned
        """
        if not event.is_signed:
            raise InvalidEventError("Cannot publish an unsigned event")
        if not self._enqueue(encode_event_message(event)):
            return False
        self._pending.track(event.id)
        logger.debug("Queued event %s for %s (%d tracked)",
                     event.id_hex, self._url, self._pending.length)
        return True

    def send_subscription(self, subscription: Subscription) -> bool:
        """Queue a REQ for the subscription."""
        return self._enqueue(encode_req_message(subscription.id, subscription.filters))

    def send_close(self, subscription_id: str) -> bool:
        """Queue a CLOSE for the subscription id."""
        return self._enqueue(encode_close_message(subscription_id))

    # MARK: - Publish outcomes

    def publish_outcome(self, event_id: bytes) -> Optional[PublishOutcome]:
        """Returns the outcome for an event published through this relay."""
        return self._pending.get(event_id)

    def has_event_errors(self, event_id: bytes) -> bool:
        """Whether this relay rejected the event."""
        outcome = self._pending.get(event_id)
        return outcome is not None and outcome.status == PublishStatus.REJECTED

    def event_error(self, event_id: bytes) -> Optional[str]:
        """The relay's rejection message for the event, if it was rejected."""
        outcome = self._pending.get(event_id)
        if outcome is None or outcome.status != PublishStatus.REJECTED:
            return None
        return outcome.message
