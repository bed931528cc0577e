"""Tests for relay sessions, driven by scripted transports."""

import asyncio
import dataclasses
from datetime import timedelta

import pytest

from nostrcore.event import Event
from nostrcore.filters import Filter
from nostrcore.keys import KeyPair
from nostrcore.models import PublishStatus, RelayState
from nostrcore.registry import SubscriptionRegistry
from nostrcore.session import RateLimiter, RelaySession
from nostrcore.signature import Signer
from nostrcore.types import InvalidEventError
from .fakes import FakeTransport, FakeTransportFactory, RecordingSink, fast_config, wait_until
from .test_vectors import BIP340_SECRET_KEY_HEX

URL = "wss://relay.test"

SIGNER = Signer()
KEYPAIR = KeyPair.from_hex(BIP340_SECRET_KEY_HEX)


def signed(content: str = "hello", kind: int = 1) -> Event:
    return SIGNER.sign(Event.create(KEYPAIR.public_key, content, kind=kind), KEYPAIR)


def make_session(factory, registry=None, sink=None, max_reconnect_attempts=3) -> RelaySession:
    return RelaySession(
        URL,
        registry or SubscriptionRegistry(),
        SIGNER,
        sink=sink,
        config=fast_config(max_reconnect_attempts),
        transport_factory=factory,
    )


class TestConnect:
    """Reaching OPEN."""

    def test_connect_opens(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            sink = RecordingSink()
            session = make_session(factory, sink=sink)
            assert session.state == RelayState.DISCONNECTED

            await session.connect()
            assert session.state == RelayState.CONNECTING
            assert await session.wait_until_open(timeout=2)
            assert session.state == RelayState.OPEN
            assert sink.connected == [URL]
            await session.close()

        asyncio.run(run())

    def test_reissues_subscriptions_on_open(self) -> None:
        """Every registered subscription gets a REQ once the connection opens."""
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            first = registry.add([Filter(kinds=(1,))])
            second = registry.add([Filter(limit=3)])
            session = make_session(factory, registry=registry)

            await session.connect()
            await session.wait_until_open(timeout=2)
            transport = factory.latest()
            await wait_until(lambda: len(transport.sent) == 2)
            assert transport.sent_frames() == [
                ["REQ", first.id, {"kinds": [1]}],
                ["REQ", second.id, {"limit": 3}],
            ]
            await session.close()

        asyncio.run(run())


class TestReconnect:
    """Bounded retries."""

    def test_initial_failures_end_in_failed(self) -> None:
        """The first attempt plus max_reconnect_attempts retries, then FAILED."""
        async def run():
            factory = FakeTransportFactory(fail=lambda index: True)
            sink = RecordingSink()
            session = make_session(factory, sink=sink, max_reconnect_attempts=2)

            await session.connect()
            assert not await session.wait_until_open(timeout=2)
            assert session.state == RelayState.FAILED
            assert len(factory.created) == 3
            assert session.reconnect_attempts == 2
            assert len(sink.errors) == 1
            assert sink.connected == []

        asyncio.run(run())

    def test_connect_timeout_ends_in_failed(self) -> None:
        """A connect() that never returns counts as a failed attempt."""
        class HangingTransport(FakeTransport):
            async def connect(self, url: str) -> None:
                self.url = url
                await asyncio.Event().wait()

        async def run():
            created = []

            def factory():
                transport = HangingTransport()
                created.append(transport)
                return transport

            config = dataclasses.replace(
                fast_config(max_reconnect_attempts=2),
                connect_timeout=timedelta(milliseconds=20),
            )
            session = RelaySession(URL, SubscriptionRegistry(), SIGNER, config=config,
                                   transport_factory=factory)
            await session.connect()
            await wait_until(lambda: session.state == RelayState.FAILED)
            assert len(created) == 3
            assert [t.close_calls for t in created] == [1, 1, 1]

        asyncio.run(run())

    def test_counter_resets_on_open(self) -> None:
        async def run():
            factory = FakeTransportFactory(fail=lambda index: index < 2)
            session = make_session(factory, max_reconnect_attempts=3)

            await session.connect()
            assert await session.wait_until_open(timeout=2)
            assert len(factory.created) == 3
            assert session.reconnect_attempts == 0
            await session.close()

        asyncio.run(run())

    def test_lost_connection_reconnects(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            sink = RecordingSink()
            session = make_session(factory, sink=sink)

            await session.connect()
            await session.wait_until_open(timeout=2)
            first = factory.latest()
            first.drop()

            await wait_until(lambda: len(factory.created) == 2 and session.state == RelayState.OPEN)
            assert sink.disconnected == [URL]
            assert sink.connected == [URL, URL]
            assert first.close_calls >= 1
            await session.close()

        asyncio.run(run())

    def test_lost_connection_bounded_retries(self) -> None:
        """After an open, no more than the configured retries before FAILED."""
        async def run():
            factory = FakeTransportFactory(fail=lambda index: index > 0)
            sink = RecordingSink()
            session = make_session(factory, sink=sink, max_reconnect_attempts=2)

            await session.connect()
            await session.wait_until_open(timeout=2)
            factory.latest().drop()

            await wait_until(lambda: session.state == RelayState.FAILED)
            assert len(factory.created) == 3
            assert session.reconnect_attempts == 2
            assert sink.disconnected == [URL]

        asyncio.run(run())

    def test_connect_again_after_failed(self) -> None:
        async def run():
            fail = {"on": True}
            factory = FakeTransportFactory(fail=lambda index: fail["on"])
            session = make_session(factory, max_reconnect_attempts=0)

            await session.connect()
            await wait_until(lambda: session.state == RelayState.FAILED)
            fail["on"] = False
            await session.connect()
            assert await session.wait_until_open(timeout=2)
            await session.close()

        asyncio.run(run())


class TestClose:
    """Shutting down."""

    def test_close_releases_transport(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            sink = RecordingSink()
            session = make_session(factory, sink=sink)
            await session.connect()
            await session.wait_until_open(timeout=2)
            transport = factory.latest()

            await session.close()
            assert transport.closed
            assert session.state == RelayState.DISCONNECTED
            assert sink.disconnected == [URL]
            assert not session.publish(signed())

        asyncio.run(run())

    def test_close_while_reconnecting(self) -> None:
        async def run():
            factory = FakeTransportFactory(fail=lambda index: True)
            session = make_session(factory, max_reconnect_attempts=1000)
            await session.connect()
            await wait_until(lambda: len(factory.created) >= 3)

            await session.close()
            created = len(factory.created)
            await asyncio.sleep(0.02)
            assert session.state == RelayState.DISCONNECTED
            assert len(factory.created) == created

        asyncio.run(run())

    def test_close_idle_session(self) -> None:
        async def run():
            session = make_session(FakeTransportFactory())
            await session.close()
            assert session.state == RelayState.DISCONNECTED

        asyncio.run(run())


class TestDispatch:
    """Inbound frames reach callbacks only when verified."""

    def _open(self, factory, registry, sink):
        async def open_session():
            session = make_session(factory, registry=registry, sink=sink)
            await session.connect()
            await session.wait_until_open(timeout=2)
            return session
        return open_session()

    def test_verified_event_delivered(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            sink = RecordingSink()
            received = []
            subscription = registry.add([Filter(kinds=(1,))], lambda e, url: received.append((e, url)))
            session = await self._open(factory, registry, sink)

            event = signed("first")
            factory.latest().feed(["EVENT", subscription.id, event.to_dict()])
            factory.latest().feed(["EOSE", subscription.id])
            await wait_until(lambda: subscription.has_eose(URL))

            assert received == [(event, URL)]
            assert sink.events == [(event, subscription.id, URL)]
            await session.close()

        asyncio.run(run())

    def test_invalid_events_dropped(self) -> None:
        """Tampered, unknown-subscription and non-matching events never reach callbacks."""
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            sink = RecordingSink()
            received = []
            subscription = registry.add([Filter(kinds=(1,))], lambda e, url: received.append(e))
            session = await self._open(factory, registry, sink)
            transport = factory.latest()

            tampered = signed("original").to_dict()
            tampered["content"] = "forged"
            transport.feed(["EVENT", subscription.id, tampered])
            transport.feed(["EVENT", "sub_unknown", signed().to_dict()])
            transport.feed(["EVENT", subscription.id, signed(kind=7).to_dict()])
            transport.feed(["EOSE", subscription.id])
            await wait_until(lambda: subscription.has_eose(URL))

            assert received == []
            assert sink.events == []
            assert session.state == RelayState.OPEN
            await session.close()

        asyncio.run(run())

    def test_malformed_frame_not_fatal(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            received = []
            subscription = registry.add([Filter()], lambda e, url: received.append(e))
            session = await self._open(factory, registry, RecordingSink())
            transport = factory.latest()

            transport.feed("not json at all")
            transport.feed(["OK"])
            event = signed()
            transport.feed(["EVENT", subscription.id, event.to_dict()])
            await wait_until(lambda: len(received) == 1)
            assert session.state == RelayState.OPEN
            await session.close()

        asyncio.run(run())

    @pytest.mark.parametrize("field_name", ["content", "tags"])
    def test_unencodable_event_text_not_fatal(self, field_name: str) -> None:
        """An event carrying a lone surrogate is dropped without losing the connection."""
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            subscription = registry.add([Filter()])
            session = await self._open(factory, registry, RecordingSink())
            transport = factory.latest()

            bad = signed().to_dict()
            bad[field_name] = "\ud800" if field_name == "content" else [["t", "\ud800"]]
            transport.feed(["EVENT", subscription.id, bad])
            transport.feed(["EOSE", subscription.id])
            await wait_until(lambda: subscription.has_eose(URL))
            assert session.state == RelayState.OPEN
            assert len(factory.created) == 1
            await session.close()

        asyncio.run(run())

    def test_deeply_nested_frame_not_fatal(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            subscription = registry.add([Filter()])
            session = await self._open(factory, registry, RecordingSink())
            transport = factory.latest()

            transport.feed("[" * 100000 + "]" * 100000)
            transport.feed(["EOSE", subscription.id])
            await wait_until(lambda: subscription.has_eose(URL))
            assert session.state == RelayState.OPEN
            assert len(factory.created) == 1
            await session.close()

        asyncio.run(run())

    def test_sink_errors_not_fatal(self) -> None:
        """Exceptions raised by the sink are logged; the connection stays up."""
        class BrokenSink(RecordingSink):
            def on_connected(self, url: str) -> None:
                raise RuntimeError("connected hook")

            def on_event(self, event: Event, subscription_id: str, url: str) -> None:
                raise RuntimeError("event hook")

        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            received = []
            subscription = registry.add([Filter()], lambda e, url: received.append(e))
            session = await self._open(factory, registry, BrokenSink())
            transport = factory.latest()
            await wait_until(lambda: ["REQ", subscription.id, {}] in transport.sent_frames())

            transport.feed(["EVENT", subscription.id, signed("one").to_dict()])
            transport.feed(["EVENT", subscription.id, signed("two").to_dict()])
            await wait_until(lambda: len(received) == 2)
            assert session.state == RelayState.OPEN
            assert len(factory.created) == 1
            await session.close()
            assert transport.closed

        asyncio.run(run())

    def test_callback_error_reported(self) -> None:
        """A failing callback goes to on_error; later callbacks still run."""
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            sink = RecordingSink()
            received = []

            def broken(event, url):
                raise RuntimeError("boom")

            subscription = registry.add([Filter()], broken)
            registry.add_callback(subscription.id, lambda e, url: received.append(e))
            session = await self._open(factory, registry, sink)

            factory.latest().feed(["EVENT", subscription.id, signed().to_dict()])
            await wait_until(lambda: len(received) == 1)
            assert any("boom" in e for e in sink.errors)
            assert len(sink.events) == 1
            await session.close()

        asyncio.run(run())

    def test_notice_and_closed(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            registry = SubscriptionRegistry()
            sink = RecordingSink()
            subscription = registry.add([Filter()])
            session = await self._open(factory, registry, sink)
            transport = factory.latest()

            transport.feed(["NOTICE", "rate limited"])
            transport.feed(["AUTH", "challenge"])
            transport.feed(["CLOSED", subscription.id, "error: gone"])
            await wait_until(lambda: len(sink.errors) == 1)

            assert sink.notices == [(URL, "rate limited")]
            assert "error: gone" in sink.errors[0]
            assert subscription.id in registry
            await session.close()

        asyncio.run(run())


class TestPublish:
    """Outbound events and OK bookkeeping."""

    def test_publish_and_ok(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            session = make_session(factory)
            await session.connect()
            await session.wait_until_open(timeout=2)
            transport = factory.latest()

            accepted, rejected = signed("a"), signed("b")
            assert session.publish(accepted)
            assert session.publish(rejected)
            await wait_until(lambda: transport.sent_tags().count("EVENT") == 2)
            assert session.publish_outcome(accepted.id).status == PublishStatus.PENDING

            transport.feed(["OK", accepted.id_hex, True, ""])
            transport.feed(["OK", rejected.id_hex, False, "blocked: spam"])
            await wait_until(lambda: session.publish_outcome(rejected.id).is_resolved)

            assert session.publish_outcome(accepted.id).status == PublishStatus.ACCEPTED
            assert not session.has_event_errors(accepted.id)
            assert session.has_event_errors(rejected.id)
            assert session.event_error(rejected.id) == "blocked: spam"
            await session.close()

        asyncio.run(run())

    def test_unanswered_stays_pending(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            session = make_session(factory)
            await session.connect()
            await session.wait_until_open(timeout=2)

            event = signed()
            session.publish(event)
            await wait_until(lambda: "EVENT" in factory.latest().sent_tags())
            assert session.publish_outcome(event.id).status == PublishStatus.PENDING
            assert session.event_error(event.id) is None
            await session.close()

        asyncio.run(run())

    def test_publish_when_not_open(self) -> None:
        async def run():
            session = make_session(FakeTransportFactory())
            assert session.publish(signed()) is False
            assert session.publish_outcome(signed().id) is None

        asyncio.run(run())

    def test_publish_unsigned_raises(self) -> None:
        session = make_session(FakeTransportFactory())
        with pytest.raises(InvalidEventError):
            session.publish(Event.create(KEYPAIR.public_key, "unsigned"))

    def test_send_close(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            session = make_session(factory)
            await session.connect()
            await session.wait_until_open(timeout=2)
            assert session.send_close("sub_x")
            await wait_until(lambda: factory.latest().sent_frames() == [["CLOSE", "sub_x"]])
            await session.close()

        asyncio.run(run())

    def test_send_failure_drives_reconnect(self) -> None:
        async def run():
            factory = FakeTransportFactory()
            sink = RecordingSink()
            session = make_session(factory, sink=sink)
            await session.connect()
            await session.wait_until_open(timeout=2)

            factory.latest().connected = False
            session.publish(signed())
            await wait_until(lambda: len(factory.created) == 2 and session.state == RelayState.OPEN)
            assert any("Send to" in e for e in sink.errors)
            await session.close()

        asyncio.run(run())


class TestRateLimiter:
    """Sliding-window outbound limit."""

    def test_excess_waits_for_window(self) -> None:
        async def run():
            limiter = RateLimiter(limit=2, interval=0.05)
            loop = asyncio.get_running_loop()
            start = loop.time()
            for _ in range(3):
                await limiter.acquire()
            return loop.time() - start

        assert asyncio.run(run()) >= 0.04

    def test_within_limit_no_wait(self) -> None:
        async def run():
            limiter = RateLimiter(limit=5, interval=10)
            loop = asyncio.get_running_loop()
            start = loop.time()
            for _ in range(5):
                await limiter.acquire()
            return loop.time() - start

        assert asyncio.run(run()) < 1

    def test_rejects_zero_limit(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(limit=0, interval=1)
