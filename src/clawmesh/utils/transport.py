"""Relay transport over nostr-sdk clients.

Defines the [RelayConnection][clawmesh.utils.transport.RelayConnection]
protocol that the [RelayPool][clawmesh.core.pool.RelayPool] fans out over,
and [NostrRelayConnection][clawmesh.utils.transport.NostrRelayConnection],
the production implementation: one ``nostr_sdk.Client`` holding exactly one
relay. The client owns the WebSocket, the NIP-01 framing, publish
acknowledgments and reconnection; this module only routes the client's
relay messages to per-subscription callbacks.

Every incoming event is wrapped in
[Event][clawmesh.models.event.Event], which verifies the id and signature;
events that fail are dropped at DEBUG level and never reach a subscription
callback.

Errors are raised as builtins, like the rest of the utils layer:
``ConnectionError`` for connect/send failures and rejected events,
``TimeoutError`` when a publish acknowledgment times out.

See Also:
    [clawmesh.core.pool][]: Consumes ``RelayConnection`` objects produced by a
        ``RelayConnector`` (default: [connect_relay][clawmesh.utils.transport.connect_relay]).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Final, Protocol, runtime_checkable

from nostr_sdk import Client, ClientBuilder, HandleNotification, RelayUrl
from pydantic import BaseModel, Field

from clawmesh.models.event import Event


if TYPE_CHECKING:
    from nostr_sdk import Filter, RelayMessage


DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
DEFAULT_PUBLISH_TIMEOUT: Final[float] = 10.0

logger = logging.getLogger(__name__)

# Silence nostr-sdk UniFFI callback stack traces (handled by our code)
logging.getLogger("nostr_sdk").setLevel(logging.CRITICAL)


EventCallback = Callable[[Event], None]
EoseCallback = Callable[[], None]


class TransportConfig(BaseModel):
    """Timeouts applied by [connect_relay][clawmesh.utils.transport.connect_relay].

    Connect and publish have no per-call timeout at the pool level; these
    transport-level bounds are what keep a hung relay from stalling them.
    """

    connect_timeout: float = Field(
        default=DEFAULT_CONNECT_TIMEOUT,
        gt=0.0,
        le=120.0,
        description="Seconds to wait for the relay connection",
    )
    publish_timeout: float = Field(
        default=DEFAULT_PUBLISH_TIMEOUT,
        gt=0.0,
        le=120.0,
        description="Seconds to wait for a relay's OK acknowledgment",
    )


@runtime_checkable
class RelayConnection(Protocol):
    """One live connection to one relay endpoint."""

    url: str

    async def send(self, event: Event) -> None:
        """Publish *event* and wait until the relay accepts it.

        Raises:
            ConnectionError: If the relay rejected the event or the
                connection failed.
            TimeoutError: If no acknowledgment arrived in time.
        """
        ...

    async def open_subscription(
        self,
        event_filter: Filter,
        on_event: EventCallback,
        on_eose: EoseCallback | None = None,
    ) -> str:
        """Open a subscription and return its id.

        ``on_event`` is called once per verified matching event, ``on_eose``
        (if given) once when the relay has sent all stored events or closed
        the subscription.
        """
        ...

    async def close_subscription(self, subscription_id: str) -> None:
        """Stop delivering events for *subscription_id*. Idempotent."""
        ...

    async def close(self) -> None:
        """Release the connection. Idempotent, never raises."""
        ...


RelayConnector = Callable[[str], Awaitable[RelayConnection]]


@dataclass(slots=True)
class _SubscriptionHandlers:
    on_event: EventCallback
    on_eose: EoseCallback | None = None
    eose_sent: bool = False

    def eose(self) -> None:
        if self.eose_sent:
            return
        self.eose_sent = True
        if self.on_eose is not None:
            self.on_eose()


class _NotificationDispatcher(HandleNotification):
    """Forwards a client's relay messages to its connection."""

    def __init__(self, connection: NostrRelayConnection) -> None:
        self._connection = connection

    async def handle(self, relay_url: Any, subscription_id: str, event: Any) -> None:
        # The client reports each event here only the first time it sees
        # it; queries need repeats too, so events are taken from handle_msg.
        return None

    async def handle_msg(self, relay_url: Any, msg: RelayMessage) -> None:
        try:
            self._connection.dispatch(msg.as_enum())
        except Exception as e:  # raising here only reaches UniFFI's stderr
            logger.debug("dispatch_failed relay=%s error=%s", self._connection.url, e)


def create_client() -> Client:
    """Create a read/write ``nostr_sdk.Client`` without a signer.

    Events are signed before they reach the transport, so the client never
    needs keys.
    """
    return ClientBuilder().build()


class NostrRelayConnection:
    """A single-relay ``nostr_sdk.Client`` behind the ``RelayConnection`` seam.

    A background task runs the client's notification loop and routes
    ``EVENT``, ``EOSE`` and ``CLOSED`` messages to the handlers registered
    by [open_subscription()][clawmesh.utils.transport.NostrRelayConnection.open_subscription].
    Subscription ids are chosen here and registered before the request is
    sent, so no stored event can arrive for an unknown id.

    Create instances with
    [connect()][clawmesh.utils.transport.NostrRelayConnection.connect].
    """

    def __init__(
        self,
        url: str,
        client: Client,
        relay_url: RelayUrl,
        *,
        publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT,
    ) -> None:
        self.url = url
        self._client = client
        self._relay_url = relay_url
        self._publish_timeout = publish_timeout
        self._subscriptions: dict[str, _SubscriptionHandlers] = {}
        self._closed = False
        self._notifications = asyncio.create_task(
            client.handle_notifications(_NotificationDispatcher(self)),
            name=f"relay-notifications:{url}",
        )

    @classmethod
    async def connect(
        cls,
        url: str,
        config: TransportConfig | None = None,
    ) -> NostrRelayConnection:
        """Connect a fresh client to *url* and start its notification loop.

        Raises:
            ConnectionError: If the URL is not a relay URL or the relay
                could not be reached within ``config.connect_timeout``.
        """
        config = config or TransportConfig()
        try:
            relay_url = RelayUrl.parse(url)
        except Exception as e:  # nostr-sdk FFI raises its own error types
            raise ConnectionError(f"Invalid relay URL: {url} ({e})") from e

        client = create_client()
        await client.add_relay(relay_url)
        output = await client.try_connect(timedelta(seconds=config.connect_timeout))

        if relay_url not in output.success:
            error_message = output.failed.get(relay_url, "Unknown error")
            # nostr-sdk client.shutdown() can raise arbitrary errors from the
            # Rust FFI layer during cleanup.
            with contextlib.suppress(Exception):
                await client.shutdown()
            logger.debug("connect_failed relay=%s error=%s", url, error_message)
            raise ConnectionError(f"Connection failed: {url} ({error_message})")

        logger.debug("connected relay=%s", url)
        connection = cls(url, client, relay_url, publish_timeout=config.publish_timeout)
        # Let the notification loop attach before any request goes out.
        await asyncio.sleep(0)
        return connection

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectionError(f"Connection closed: {self.url}")

    async def send(self, event: Event) -> None:
        self._ensure_open()
        try:
            async with asyncio.timeout(self._publish_timeout):
                output = await self._client.send_event(event.inner)
        except TimeoutError:
            raise TimeoutError(f"No OK from {self.url} for event {event.id[:16]}...") from None
        except Exception as e:  # nostr-sdk FFI raises its own error types
            raise ConnectionError(f"Send failed: {self.url} ({e})") from e

        if self._relay_url not in output.success:
            reason = output.failed.get(self._relay_url, "unknown")
            raise ConnectionError(f"Event rejected by {self.url}: {reason}")

    async def open_subscription(
        self,
        event_filter: Filter,
        on_event: EventCallback,
        on_eose: EoseCallback | None = None,
    ) -> str:
        self._ensure_open()
        subscription_id = uuid.uuid4().hex[:16]
        self._subscriptions[subscription_id] = _SubscriptionHandlers(on_event, on_eose)
        try:
            await self._client.subscribe_with_id(subscription_id, event_filter, None)
        except Exception as e:  # nostr-sdk FFI raises its own error types
            self._subscriptions.pop(subscription_id, None)
            raise ConnectionError(f"Subscribe failed: {self.url} ({e})") from e
        return subscription_id

    async def close_subscription(self, subscription_id: str) -> None:
        if self._subscriptions.pop(subscription_id, None) is None or self._closed:
            return
        try:
            await self._client.unsubscribe(subscription_id)
        except Exception as e:  # nostr-sdk FFI raises its own error types
            logger.debug("close_subscription_failed relay=%s error=%s", self.url, e)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for handlers in subscriptions:
            handlers.eose()
        with contextlib.suppress(Exception):
            await self._client.shutdown()
        self._notifications.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await self._notifications
        logger.debug("closed relay=%s", self.url)

    def dispatch(self, message: Any) -> None:
        """Route one ``nostr_sdk.RelayMessageEnum`` to its subscription."""
        if message.is_event_msg():
            self._on_event(message.subscription_id, message.event)
        elif message.is_end_of_stored_events():
            handlers = self._subscriptions.get(message.subscription_id)
            if handlers is not None:
                handlers.eose()
        elif message.is_closed():
            handlers = self._subscriptions.pop(message.subscription_id, None)
            logger.debug(
                "subscription_closed_by_relay relay=%s reason=%s", self.url, message.message
            )
            if handlers is not None:
                handlers.eose()

    def _on_event(self, subscription_id: str, nostr_event: Any) -> None:
        handlers = self._subscriptions.get(subscription_id)
        if handlers is None:
            return
        try:
            event = Event(nostr_event)
        except (ValueError, TypeError) as e:
            logger.debug("event_rejected relay=%s error=%s", self.url, e)
            return
        handlers.on_event(event)


async def connect_relay(url: str, config: TransportConfig | None = None) -> RelayConnection:
    """Default [RelayConnector][clawmesh.utils.transport.RelayConnector].

    Opens a [NostrRelayConnection][clawmesh.utils.transport.NostrRelayConnection].
    """
    return await NostrRelayConnection.connect(url, config)
