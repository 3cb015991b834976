"""
Unit tests for utils.transport module.

Tests:
- NostrRelayConnection.connect() success, failure, and invalid URLs
- Publishing through the client: accepted, rejected, timed out, concurrent
- Routing of EVENT, EOSE, and CLOSED relay messages to subscriptions
- Verification of incoming events before delivery
- close() idempotence and subscription release
- TransportConfig validation
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from nostr_sdk import Filter, Keys, Kind

from clawmesh.models.event import Event
from clawmesh.utils.transport import (
    NostrRelayConnection,
    RelayConnection,
    TransportConfig,
    _NotificationDispatcher,
    connect_relay,
)
from tests.conftest import sign_event


URL = "wss://relay.example"
RELAY_URL = object()

_VARIANTS = ("event_msg", "end_of_stored_events", "closed")


def relay_message(variant: str, **fields: Any) -> SimpleNamespace:
    """Stand-in for a ``nostr_sdk.RelayMessageEnum`` variant."""
    checks = {f"is_{name}": (lambda name=name: name == variant) for name in _VARIANTS}
    return SimpleNamespace(**checks, **fields)


def send_output(*, accepted: bool, reason: str = "") -> SimpleNamespace:
    if accepted:
        return SimpleNamespace(success=[RELAY_URL], failed={})
    return SimpleNamespace(success=[], failed={RELAY_URL: reason})


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.handle_notifications = AsyncMock(return_value=None)
    mock.send_event = AsyncMock(return_value=send_output(accepted=True))
    mock.subscribe_with_id = AsyncMock(return_value=None)
    mock.unsubscribe = AsyncMock(return_value=None)
    mock.shutdown = AsyncMock(return_value=None)
    return mock


@pytest.fixture
async def conn(client: MagicMock) -> AsyncIterator[NostrRelayConnection]:
    connection = NostrRelayConnection(URL, client, RELAY_URL, publish_timeout=0.2)  # type: ignore[arg-type]
    yield connection
    await connection.close()


@pytest.fixture
def event() -> Event:
    return sign_event(Keys.generate(), 1, "hello")


class TestProtocolConformance:
    async def test_is_relay_connection(self, conn: NostrRelayConnection, client: MagicMock) -> None:
        assert isinstance(conn, RelayConnection)
        assert conn.url == URL
        await asyncio.sleep(0)
        client.handle_notifications.assert_called_once()
        (handler,) = client.handle_notifications.call_args.args
        assert isinstance(handler, _NotificationDispatcher)


# ============================================================================
# Connect
# ============================================================================


class TestConnect:
    """NostrRelayConnection.connect() and connect_relay()."""

    async def test_connected(self, client: MagicMock) -> None:
        added: list[Any] = []

        async def add_relay(relay_url: Any) -> None:
            added.append(relay_url)

        async def try_connect(timeout: Any) -> SimpleNamespace:
            assert timeout.total_seconds() == 3.0
            return SimpleNamespace(success=list(added), failed={})

        client.add_relay = AsyncMock(side_effect=add_relay)
        client.try_connect = AsyncMock(side_effect=try_connect)

        with patch("clawmesh.utils.transport.create_client", return_value=client):
            connection = await connect_relay(URL, TransportConfig(connect_timeout=3.0))

        assert isinstance(connection, NostrRelayConnection)
        assert connection.url == URL
        assert len(added) == 1
        await connection.close()

    async def test_unreachable(self, client: MagicMock) -> None:
        client.add_relay = AsyncMock(return_value=None)
        client.try_connect = AsyncMock(return_value=SimpleNamespace(success=[], failed={}))

        with (
            patch("clawmesh.utils.transport.create_client", return_value=client),
            pytest.raises(ConnectionError, match="Connection failed"),
        ):
            await NostrRelayConnection.connect(URL)
        client.shutdown.assert_awaited_once()

    async def test_invalid_url(self) -> None:
        with pytest.raises(ConnectionError, match="Invalid relay URL"):
            await NostrRelayConnection.connect("not a relay url")


# ============================================================================
# Publishing
# ============================================================================


class TestSend:
    """send() through the client's send_event."""

    async def test_accepted(
        self, conn: NostrRelayConnection, client: MagicMock, event: Event
    ) -> None:
        await conn.send(event)
        client.send_event.assert_awaited_once_with(event.inner)

    async def test_rejected(
        self, conn: NostrRelayConnection, client: MagicMock, event: Event
    ) -> None:
        client.send_event.return_value = send_output(accepted=False, reason="blocked: spam")
        with pytest.raises(ConnectionError, match="blocked: spam"):
            await conn.send(event)

    async def test_no_ack_times_out(
        self, conn: NostrRelayConnection, client: MagicMock, event: Event
    ) -> None:
        async def hang(_event: Any) -> None:
            await asyncio.sleep(5)

        client.send_event.side_effect = hang
        with pytest.raises(TimeoutError):
            await conn.send(event)

    async def test_client_error(
        self, conn: NostrRelayConnection, client: MagicMock, event: Event
    ) -> None:
        client.send_event.side_effect = RuntimeError("relay not connected")
        with pytest.raises(ConnectionError, match="relay not connected"):
            await conn.send(event)

    async def test_same_event_sent_concurrently(
        self, conn: NostrRelayConnection, client: MagicMock, event: Event
    ) -> None:
        async def ack_later(_event: Any) -> SimpleNamespace:
            await asyncio.sleep(0.01)
            return send_output(accepted=True)

        client.send_event.side_effect = ack_later
        results = await asyncio.wait_for(
            asyncio.gather(conn.send(event), conn.send(event), return_exceptions=True),
            timeout=1,
        )
        assert results == [None, None]
        assert client.send_event.await_count == 2


# ============================================================================
# Subscriptions
# ============================================================================


class TestSubscriptions:
    """open_subscription(), close_subscription(), and message routing."""

    async def test_subscribe_with_own_id(
        self, conn: NostrRelayConnection, client: MagicMock
    ) -> None:
        event_filter = Filter().kind(Kind(1))
        sid = await conn.open_subscription(event_filter, lambda e: None)
        client.subscribe_with_id.assert_awaited_once_with(sid, event_filter, None)

    async def test_event_and_eose(self, conn: NostrRelayConnection, event: Event) -> None:
        received: list[Event] = []
        eose: list[bool] = []
        sid = await conn.open_subscription(Filter(), received.append, lambda: eose.append(True))

        conn.dispatch(relay_message("event_msg", subscription_id=sid, event=event.inner))
        conn.dispatch(relay_message("end_of_stored_events", subscription_id=sid))
        conn.dispatch(relay_message("end_of_stored_events", subscription_id=sid))

        assert received == [event]
        assert eose == [True]

    async def test_eose_without_callback(self, conn: NostrRelayConnection) -> None:
        sid = await conn.open_subscription(Filter(), lambda e: None)
        conn.dispatch(relay_message("end_of_stored_events", subscription_id=sid))

    async def test_invalid_event_dropped(self, conn: NostrRelayConnection) -> None:
        received: list[Event] = []
        sid = await conn.open_subscription(Filter(), received.append)
        conn.dispatch(relay_message("event_msg", subscription_id=sid, event="garbage"))
        assert received == []

    async def test_unknown_subscription_ignored(
        self, conn: NostrRelayConnection, event: Event
    ) -> None:
        received: list[Event] = []
        await conn.open_subscription(Filter(), received.append)
        conn.dispatch(relay_message("event_msg", subscription_id="other", event=event.inner))
        assert received == []

    async def test_close_subscription(
        self, conn: NostrRelayConnection, client: MagicMock, event: Event
    ) -> None:
        received: list[Event] = []
        sid = await conn.open_subscription(Filter(), received.append)
        await conn.close_subscription(sid)
        await conn.close_subscription(sid)
        client.unsubscribe.assert_awaited_once_with(sid)

        conn.dispatch(relay_message("event_msg", subscription_id=sid, event=event.inner))
        assert received == []

    async def test_closed_by_relay_ends_subscription(self, conn: NostrRelayConnection) -> None:
        eose: list[bool] = []
        sid = await conn.open_subscription(Filter(), lambda e: None, lambda: eose.append(True))
        conn.dispatch(
            relay_message("closed", subscription_id=sid, message="error: too many subscriptions")
        )
        assert eose == [True]

    async def test_other_messages_ignored(self, conn: NostrRelayConnection) -> None:
        conn.dispatch(relay_message("notice", message="hi"))
        assert not conn.closed

    async def test_subscribe_failure(self, conn: NostrRelayConnection, client: MagicMock) -> None:
        client.subscribe_with_id.side_effect = RuntimeError("relay not connected")
        with pytest.raises(ConnectionError, match="Subscribe failed"):
            await conn.open_subscription(Filter(), lambda e: None)


class TestNotificationDispatcher:
    async def test_routes_relay_messages(self, conn: NostrRelayConnection, event: Event) -> None:
        received: list[Event] = []
        sid = await conn.open_subscription(Filter(), received.append)
        message = MagicMock()
        message.as_enum.return_value = relay_message(
            "event_msg", subscription_id=sid, event=event.inner
        )

        dispatcher = _NotificationDispatcher(conn)
        await dispatcher.handle_msg(URL, message)
        await dispatcher.handle(URL, sid, event.inner)

        assert received == [event]

    async def test_dispatch_errors_are_contained(self, conn: NostrRelayConnection) -> None:
        message = MagicMock()
        message.as_enum.side_effect = RuntimeError("unknown variant")
        await _NotificationDispatcher(conn).handle_msg(URL, message)


# ============================================================================
# Lifecycle
# ============================================================================


class TestClose:
    async def test_close_releases_subscriptions(
        self, conn: NostrRelayConnection, client: MagicMock
    ) -> None:
        eose: list[bool] = []
        await conn.open_subscription(Filter(), lambda e: None, lambda: eose.append(True))
        await conn.close()
        await conn.close()

        assert conn.closed
        assert eose == [True]
        client.shutdown.assert_awaited_once()

    async def test_operations_after_close(
        self, conn: NostrRelayConnection, client: MagicMock, event: Event
    ) -> None:
        await conn.close()
        with pytest.raises(ConnectionError):
            await conn.send(event)
        with pytest.raises(ConnectionError):
            await conn.open_subscription(Filter(), lambda e: None)
        client.send_event.assert_not_awaited()

    async def test_shutdown_errors_suppressed(
        self, conn: NostrRelayConnection, client: MagicMock
    ) -> None:
        client.shutdown.side_effect = RuntimeError("ffi teardown")
        await conn.close()
        assert conn.closed


class TestTransportConfig:
    def test_defaults(self) -> None:
        config = TransportConfig()
        assert config.connect_timeout == 10.0
        assert config.publish_timeout == 10.0

    def test_positive_timeouts(self) -> None:
        with pytest.raises(ValueError):
            TransportConfig(connect_timeout=0)
