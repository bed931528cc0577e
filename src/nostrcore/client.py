"""
nostrcore client for publishing and subscribing across relays.

The NostrClient owns the relay sessions, the shared subscription registry and
the signing key. It signs outbound events, fans them out to every open relay
and routes verified inbound events to subscription callbacks.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Union
from urllib.parse import urlparse

from .codec import encode_hex, parse_public_key
from .event import Event, EventKind
from .filters import Filter
from .keys import KeyPair
from .models import PublishResult, PublishSummary, RelayState
from .registry import EventCallback, SubscriptionRegistry
from .session import RelayConfig, RelaySession, TransportFactory
from .signature import Signer
from .sink import EventSink, NullEventSink
from .storage import KeyStore
from .transport import WebSocketTransport
from .types import InvalidEventError, RelayNotFoundError, SigningError

logger = logging.getLogger(__name__)

RELAY_SCHEMES = ("ws", "wss")


@dataclass
class ClientConfig:
    """Configuration for the client."""

    relay: RelayConfig = field(default_factory=RelayConfig)
    """Settings applied to every relay session."""

    default_relays: tuple[str, ...] = ()
    """Relays added by ``start()``. See ``DEFAULT_RELAYS`` for well-known ones."""


def validate_relay_url(url: str) -> str:
    """
    Check that a relay URL uses ws:// or wss:// and has a host.

    Raises:
        ValueError: If the URL is not a websocket URL.
    """
    parsed = urlparse(url)
    if parsed.scheme not in RELAY_SCHEMES or not parsed.netloc:
        raise ValueError(f"Relay URL must start with ws:// or wss://: {url!r}")
    return url


class NostrClient:
    """
    High-level client for publishing and subscribing.

    The NostrClient provides methods for:
    - Managing relay connections
    - Signing and publishing events
    - Subscribing to events with verified delivery
    - Querying relay verdicts on published events

    Example usage:
        ```python
        async with NostrClient(keypair=KeyPair.generate()) as client:
            await client.add_relay("wss://relay.damus.io")
            await client.relay("wss://relay.damus.io").wait_until_open(timeout=10)

            sub_id = client.subscribe(
                Filter(kinds=(1,), limit=20),
                lambda event, url: print(url, event.content),
            )
            result = client.publish_text_note("Hello, relays!")
        ```
    """

    def __init__(
        self,
        keypair: Optional[KeyPair] = None,
        sink: Optional[EventSink] = None,
        config: Optional[ClientConfig] = None,
        signer: Optional[Signer] = None,
        transport_factory: TransportFactory = WebSocketTransport,
    ) -> None:
        """
        Initialize the client.

        Args:
            keypair: Key used to sign unsigned events (optional; without it
                only pre-signed events can be published).
            sink: Receives connection status, errors and verified events.
            config: Client and relay settings.
            signer: Signer to use (default: one backed by the shared curve).
            transport_factory: Creates a transport per connection attempt.
        """
        self.keypair = keypair
        self.sink = sink or NullEventSink()
        self.config = config or ClientConfig()
        self.signer = signer or Signer()
        self.registry = SubscriptionRegistry()
        self._transport_factory = transport_factory
        self._sessions: dict[str, RelaySession] = {}

    @classmethod
    async def from_key_store(
        cls,
        key_store: KeyStore,
        generate_if_missing: bool = True,
        **kwargs,
    ) -> "NostrClient":
        """
        Create a client whose key is loaded from a KeyStore.

        When the store is empty a new key is generated and saved, unless
        generate_if_missing is False, in which case the client has no key.

        Raises:
            InvalidKeyError: If the stored key is invalid.
            StorageError: If saving a generated key fails.
        """
        signer = kwargs.get("signer") or Signer()
        kwargs["signer"] = signer

        private_key = await key_store.load()
        keypair: Optional[KeyPair] = None
        if private_key is not None:
            keypair = KeyPair.from_private_key(private_key, signer.curve)
        elif generate_if_missing:
            keypair = KeyPair.generate(signer.curve)
            await key_store.save(keypair.private_key)
            logger.info("Generated and stored a new key for %s", keypair.npub)
        return cls(keypair=keypair, **kwargs)

    @property
    def public_key(self) -> Optional[bytes]:
        """The client's public key, if it has a key pair."""
        return self.keypair.public_key if self.keypair else None

    # MARK: - Lifecycle

    async def start(self) -> None:
        """Add every relay in ``config.default_relays``."""
        for url in self.config.default_relays:
            await self.add_relay(url)

    async def close(self) -> None:
        """Close every relay session and drop all subscriptions."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        await asyncio.gather(*(s.close() for s in sessions))
        self.registry.clear()

    async def __aenter__(self) -> "NostrClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # MARK: - Relays

    async def add_relay(self, url: str) -> RelaySession:
        """
        Add a relay and start connecting to it.

        Active subscriptions are sent once the connection is open. Adding a
        URL that is already present returns the existing session.

        Raises:
            ValueError: If the URL is not a ws:// or wss:// URL.
        """
        validate_relay_url(url)
        session = self._sessions.get(url)
        if session is not None:
            return session

        session = RelaySession(
            url,
            self.registry,
            self.signer,
            sink=self.sink,
            config=self.config.relay,
            transport_factory=self._transport_factory,
        )
        self._sessions[url] = session
        await session.connect()
        return session

    async def remove_relay(self, url: str) -> bool:
        """Close and forget a relay. Returns False if it was not added."""
        session = self._sessions.pop(url, None)
        if session is None:
            return False
        await session.close()
        return True

    def relay(self, url: str) -> RelaySession:
        """
        Get the session for a relay URL.

        Raises:
            RelayNotFoundError: If the relay was not added.
        """
        session = self._sessions.get(url)
        if session is None:
            raise RelayNotFoundError(url)
        return session

    def relay_states(self) -> dict[str, RelayState]:
        """Returns the state of every relay."""
        return {url: s.state for url, s in self._sessions.items()}

    def connected_relays(self) -> list[str]:
        """Returns the URLs of relays that are OPEN."""
        return [url for url, s in self._sessions.items() if s.state == RelayState.OPEN]

    # MARK: - Publishing

    def publish(self, event: Event) -> PublishResult:
        """
        Sign (if needed) and queue an event on every open relay.

        Args:
            event: The event. Unsigned events are signed with the client's key;
                signed events are verified first.

        Returns:
            The signed event plus the relays it was queued to and the ones skipped.

        Raises:
            SigningError: If the event is unsigned and the client has no key.
            InvalidEventError: If a signed event fails verification.
        """
        if not event.is_signed:
            if self.keypair is None:
                raise SigningError("Cannot sign event: the client has no key pair")
            event = self.signer.sign(event, self.keypair)
        elif not self.signer.verify(event):
            raise InvalidEventError("Event id or signature is invalid")

        sent_to: list[str] = []
        skipped: list[str] = []
        for url, session in self._sessions.items():
            if session.publish(event):
                sent_to.append(url)
            else:
                skipped.append(url)

        if not sent_to:
            logger.warning("Event %s was not queued on any relay", event.id_hex)
        return PublishResult(event=event, sent_to=sent_to, skipped=skipped)

    def publish_text_note(self, content: str, tags: Iterable[Sequence[str]] = ()) -> PublishResult:
        """
        Publish a kind 1 text note signed with the client's key.

        Raises:
            SigningError: If the client has no key pair.
        """
        if self.keypair is None:
            raise SigningError("Cannot sign event: the client has no key pair")
        event = Event.create(self.keypair.public_key, content, kind=EventKind.TEXT_NOTE, tags=tags)
        return self.publish(event)

    def publish_status(self, event_id: bytes) -> PublishSummary:
        """Returns the outcome recorded by every relay that tracked the event."""
        outcomes = {}
        for url, session in self._sessions.items():
            outcome = session.publish_outcome(event_id)
            if outcome is not None:
                outcomes[url] = outcome
        return PublishSummary(event_id=event_id, outcomes=outcomes)

    def has_event_errors(self, event_id: bytes) -> bool:
        """Whether any relay rejected the event."""
        return any(s.has_event_errors(event_id) for s in self._sessions.values())

    def event_errors(self, event_id: bytes) -> dict[str, str]:
        """Rejection messages for the event, keyed by relay URL."""
        errors = {}
        for url, session in self._sessions.items():
            message = session.event_error(event_id)
            if message is not None:
                errors[url] = message
        return errors

    # MARK: - Subscriptions

    def subscribe(
        self,
        filters: Union[Filter, Iterable[Filter]],
        callback: Optional[EventCallback] = None,
    ) -> str:
        """
        Subscribe on every relay.

        Relays that are not open yet receive the REQ when they connect.

        Returns:
            The subscription id.

        Raises:
            ValueError: If no filters are given.
        """
        if isinstance(filters, Filter):
            filters = (filters,)
        subscription = self.registry.add(filters, callback)
        for session in self._sessions.values():
            session.send_subscription(subscription)
        logger.debug("Subscribed %s on %d relays", subscription.id, len(self._sessions))
        return subscription.id

    def subscribe_to_author(
        self,
        pubkey: Union[str, bytes],
        callback: Optional[EventCallback] = None,
        kinds: Optional[Iterable[int]] = None,
    ) -> str:
        """
        Subscribe to events by one author.

        Args:
            pubkey: Public key as bytes, 64-char hex or npub.
            callback: Called with each verified event and the relay URL.
            kinds: Restrict to these kinds (default: all).

        Raises:
            FormatError: If the public key cannot be parsed.
        """
        author = encode_hex(parse_public_key(pubkey))
        kinds = tuple(kinds) if kinds is not None else None
        return self.subscribe(Filter(authors=(author,), kinds=kinds), callback)

    def unsubscribe(self, subscription_id: str) -> bool:
        """Drop a subscription and send CLOSE to every relay. Returns False if unknown."""
        if self.registry.remove(subscription_id) is None:
            return False
        for session in self._sessions.values():
            session.send_close(subscription_id)
        return True
