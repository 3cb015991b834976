"""
Fan-out relay pool over independent, unreliable relay endpoints.

A [RelayPool][clawmesh.core.pool.RelayPool] is a point-in-time set of relay
connections created by
[RelayPool.connect()][clawmesh.core.pool.RelayPool.connect] and released by
[close()][clawmesh.core.pool.RelayPool.close]. Every operation fans out to
all connected relays concurrently on the running event loop:

- [publish()][clawmesh.core.pool.RelayPool.publish] waits for every relay
  to accept or reject the event;
- [query()][clawmesh.core.pool.RelayPool.query] opens one subscription per
  relay and aggregates matching events until each relay sends EOSE or the
  per-relay timeout fires;
- [subscribe()][clawmesh.core.pool.RelayPool.subscribe] opens long-lived
  subscriptions and streams new events through a
  [Subscription][clawmesh.core.pool.Subscription].

Per-relay failures are logged and recorded in the result objects, never
raised. A relay that fails to connect is not retried within the lifetime
of the pool. Events are deduplicated by id, which is content-derived, so
the same event seen from several relays counts once.

Examples:
    ```python
    async with await RelayPool.connect(["wss://nos.lol", "wss://relay.damus.io"]) as pool:
        pool.require_connected()
        result = await pool.query(mapping_filter("alice"), timeout=5.0)
        for event in result.events:
            ...
    ```

See Also:
    [clawmesh.utils.transport][]: The
        [RelayConnection][clawmesh.utils.transport.RelayConnection] protocol
        that this pool fans out over.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Final, Self

from pydantic import BaseModel, Field

from clawmesh.utils.transport import RelayConnection, RelayConnector, TransportConfig, connect_relay

from .exceptions import NoConnectionError, PoolClosedError
from .logger import Logger


if TYPE_CHECKING:
    from nostr_sdk import Filter

    from clawmesh.models.event import Event


DEFAULT_QUERY_TIMEOUT: Final[float] = 5.0

EventHandler = Callable[["Event"], None]


class PoolConfig(BaseModel):
    """Configuration for [RelayPool][clawmesh.core.pool.RelayPool]."""

    transport: TransportConfig = Field(default_factory=TransportConfig)
    query_timeout: float = Field(
        default=DEFAULT_QUERY_TIMEOUT,
        gt=0.0,
        description="Default per-relay query timeout in seconds",
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Per-relay outcome of a publish.

    Attributes:
        success: Relays that accepted the event.
        failed: Relays that rejected it, timed out, or errored.
    """

    success: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        """True if at least one relay accepted the event."""
        return bool(self.success)


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Aggregated outcome of a query.

    Attributes:
        events: Deduplicated matching events, in no particular order.
        completed: Relays that sent EOSE.
        timed_out: Relays that hit the timeout first.
        failed: Relays whose subscription could not be opened.
    """

    events: tuple[Event, ...] = ()
    completed: tuple[str, ...] = ()
    timed_out: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()

    @property
    def partial(self) -> bool:
        """True if any relay timed out or failed."""
        return bool(self.timed_out or self.failed)


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


_END: Final = object()


class Subscription:
    """Cancellable stream of deduplicated events from many relays.

    Events go to the ``on_event`` callback when one is given; otherwise
    they are queued for the async iterator interface::

        sub = await pool.subscribe(gift_wrap_filter(me))
        async for event in sub:
            ...

    A callback subscription queues nothing, so it can stay open indefinitely;
    iterating one raises ``TypeError``.

    [cancel()][clawmesh.core.pool.Subscription.cancel] stops new deliveries
    immediately and schedules ``CLOSE`` on every relay;
    [aclose()][clawmesh.core.pool.Subscription.aclose] also waits for those
    closes. Both are idempotent and safe before any event arrives. Events
    already queued before cancellation are still yielded by the iterator.
    """

    def __init__(self, on_event: EventHandler | None = None, *, logger: Logger) -> None:
        self._on_event = on_event
        self._logger = logger
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._seen: set[str] = set()
        self._handles: list[tuple[RelayConnection, str]] = []
        self._cancelled = False
        self._close_task: asyncio.Task[None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def relays(self) -> list[str]:
        """Relays with an open subscription."""
        return [conn.url for conn, _ in self._handles]

    @property
    def pending(self) -> int:
        """Events queued for the iterator and not yet consumed."""
        # cancel() leaves exactly one end marker in the queue
        return self._queue.qsize() - int(self._cancelled)

    def _deliver(self, event: Event) -> None:
        if self._cancelled or event.id in self._seen:
            return
        self._seen.add(event.id)
        if self._on_event is None:
            self._queue.put_nowait(event)
        else:
            try:
                self._on_event(event)
            except Exception as e:  # one bad handler call must not end the stream
                self._logger.error("subscription_callback_failed", error=str(e), event=event.id)

    def _attach(self, conn: RelayConnection, subscription_id: str) -> None:
        self._handles.append((conn, subscription_id))
        if self._cancelled:
            self._schedule_close()

    def _schedule_close(self) -> None:
        handles, self._handles = self._handles, []
        if not handles:
            return
        previous = self._close_task

        async def close_all() -> None:
            if previous is not None:
                await previous
            results = await asyncio.gather(
                *(conn.close_subscription(sid) for conn, sid in handles),
                return_exceptions=True,
            )
            for (conn, _), result in zip(handles, results, strict=True):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    self._logger.debug("subscription_close_failed", relay=conn.url, error=str(result))

        self._close_task = asyncio.get_running_loop().create_task(close_all())

    def cancel(self) -> None:
        """Stop deliveries and schedule closing every relay subscription."""
        if self._cancelled:
            return
        self._cancelled = True
        self._queue.put_nowait(_END)
        self._schedule_close()

    async def aclose(self) -> None:
        """Cancel and wait until every relay subscription is closed."""
        self.cancel()
        if self._close_task is not None:
            await self._close_task

    def __aiter__(self) -> AsyncIterator[Event]:
        if self._on_event is not None:
            raise TypeError("Subscription delivers to its callback and cannot be iterated")
        return self

    async def __anext__(self) -> Event:
        item = await self._queue.get()
        if item is _END:
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class RelayPool:
    """Connections to a set of relays, partitioned into connected and failed.

    Create with [connect()][clawmesh.core.pool.RelayPool.connect]. The pool
    is owned by its creator and must be closed, preferably with
    ``async with``.

    Note:
        Connect and publish have no per-call timeout here; they are bounded
        by the transport's ``connect_timeout`` and ``publish_timeout``.
    """

    def __init__(
        self,
        connections: dict[str, RelayConnection],
        failed: Iterable[str] = (),
        *,
        config: PoolConfig | None = None,
    ) -> None:
        self._connections = dict(connections)
        self._failed = list(failed)
        self._config = config or PoolConfig()
        self._closed = False
        self._logger = Logger("clawmesh.pool")

    @classmethod
    async def connect(
        cls,
        urls: Iterable[str],
        *,
        config: PoolConfig | None = None,
        connector: RelayConnector | None = None,
    ) -> RelayPool:
        """Connect to every URL concurrently and return the resulting pool.

        Returns once every attempt has resolved. Duplicate URLs are connected
        once. An empty connected set is not an error; see
        [require_connected()][clawmesh.core.pool.RelayPool.require_connected].
        """
        config = config or PoolConfig()
        transport = config.transport

        def default_connector(url: str) -> Awaitable[RelayConnection]:
            return connect_relay(url, transport)

        open_connection = connector or default_connector
        targets = list(dict.fromkeys(urls))
        results = await asyncio.gather(
            *(open_connection(url) for url in targets), return_exceptions=True
        )

        pool = cls({}, config=config)
        cancelled: asyncio.CancelledError | None = None
        for url, result in zip(targets, results, strict=True):
            # gather(return_exceptions=True) captures CancelledError as a result
            if isinstance(result, asyncio.CancelledError):
                cancelled = result
            elif isinstance(result, BaseException):
                pool._failed.append(url)
                pool._logger.warning("relay_connect_failed", relay=url, error=str(result))
            else:
                pool._connections[url] = result

        if cancelled is not None:
            await pool.close()
            raise cancelled

        pool._logger.info(
            "pool_connected", connected=len(pool._connections), failed=len(pool._failed)
        )
        return pool

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def connected(self) -> list[str]:
        """URLs of connected relays, in connection order."""
        return list(self._connections)

    @property
    def failed(self) -> list[str]:
        """URLs whose connection attempt failed."""
        return list(self._failed)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def config(self) -> PoolConfig:
        return self._config

    def require_connected(self) -> None:
        """Raise if the pool has no usable relay.

        Raises:
            PoolClosedError: If the pool was closed.
            NoConnectionError: If no relay is connected.
        """
        self._ensure_open()
        if not self._connections:
            raise NoConnectionError(f"No relay connected ({len(self._failed)} failed)")

    def _ensure_open(self) -> None:
        if self._closed:
            raise PoolClosedError("Relay pool is closed")

    # -------------------------------------------------------------------------
    # Publish
    # -------------------------------------------------------------------------

    async def publish(self, event: Event) -> PublishResult:
        """Send *event* to every connected relay and wait for all to settle."""
        self._ensure_open()
        conns = list(self._connections.values())
        results = await asyncio.gather(*(conn.send(event) for conn in conns), return_exceptions=True)

        success: list[str] = []
        failed: list[str] = []
        for conn, result in zip(conns, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                failed.append(conn.url)
                self._logger.debug("publish_failed", relay=conn.url, event=event.id, error=str(result))
            else:
                success.append(conn.url)

        self._logger.debug("publish_completed", event=event.id, success=len(success), failed=len(failed))
        return PublishResult(success=tuple(success), failed=tuple(failed))

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    async def query(self, event_filter: Filter, timeout: float | None = None) -> QueryResult:  # noqa: ASYNC109
        """Collect stored events matching *event_filter* from every relay.

        Each relay's subscription ends at its EOSE or after *timeout*
        seconds, whichever comes first; the call returns when all have
        ended. A timeout is reported in ``timed_out``, never raised.
        """
        self._ensure_open()
        timeout = self._config.query_timeout if timeout is None else timeout
        events: dict[str, Event] = {}

        def collect(event: Event) -> None:
            events.setdefault(event.id, event)

        conns = list(self._connections.values())
        outcomes = await asyncio.gather(
            *(self._query_one(conn, event_filter, timeout, collect) for conn in conns),
            return_exceptions=True,
        )

        completed: list[str] = []
        timed_out: list[str] = []
        failed: list[str] = []
        for conn, outcome in zip(conns, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                failed.append(conn.url)
                self._logger.debug("query_failed", relay=conn.url, error=str(outcome))
            elif outcome:
                completed.append(conn.url)
            else:
                timed_out.append(conn.url)

        self._logger.debug(
            "query_completed",
            events=len(events),
            completed=len(completed),
            timed_out=len(timed_out),
            failed=len(failed),
        )
        return QueryResult(
            events=tuple(events.values()),
            completed=tuple(completed),
            timed_out=tuple(timed_out),
            failed=tuple(failed),
        )

    @staticmethod
    async def _query_one(
        conn: RelayConnection,
        event_filter: Filter,
        timeout: float,  # noqa: ASYNC109
        collect: EventHandler,
    ) -> bool:
        """Run one relay's part of a query. Returns False on timeout."""
        eose = asyncio.Event()
        subscription_id: str | None = None
        try:
            async with asyncio.timeout(timeout):
                subscription_id = await conn.open_subscription(event_filter, collect, eose.set)
                await eose.wait()
        except TimeoutError:
            return False
        finally:
            if subscription_id is not None:
                await conn.close_subscription(subscription_id)
        return True

    # -------------------------------------------------------------------------
    # Subscribe
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        event_filter: Filter,
        on_event: EventHandler | None = None,
    ) -> Subscription:
        """Open a long-lived subscription on every connected relay.

        Relays that refuse the subscription are logged and skipped.
        """
        self._ensure_open()
        subscription = Subscription(on_event, logger=self._logger)
        conns = list(self._connections.values())

        results = await asyncio.gather(
            *(conn.open_subscription(event_filter, subscription._deliver) for conn in conns),
            return_exceptions=True,
        )
        for conn, result in zip(conns, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                subscription.cancel()
                raise result
            if isinstance(result, BaseException):
                self._logger.warning("subscribe_failed", relay=conn.url, error=str(result))
            else:
                subscription._attach(conn, result)

        self._logger.debug("subscription_opened", relays=len(subscription.relays))
        return subscription

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Release every connection. Idempotent, never raises."""
        if self._closed:
            return
        self._closed = True
        conns = list(self._connections.values())
        # Connections may already be dead; close must still succeed.
        results = await asyncio.gather(*(conn.close() for conn in conns), return_exceptions=True)
        for conn, result in zip(conns, results, strict=True):
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                self._logger.debug("relay_close_failed", relay=conn.url, error=str(result))
        self._logger.info("pool_closed", relays=len(conns))

    async def __aenter__(self) -> Self:
        self._ensure_open()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        with contextlib.suppress(Exception):
            await self.close()
