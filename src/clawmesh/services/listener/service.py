"""Listener service for clawmesh.

Polls the relay pool for gift wraps addressed to the local identity every
``interval`` seconds and stores new messages in the local store. The time
of the last successful fetch is kept in the store under
``ListenerConfig.cursor_key`` so a restarted listener resumes where it
left off; each fetch asks relays for wraps since that time minus the
jitter window (see [inbox_since()][clawmesh.services.messaging.inbox_since]).

A cycle with no usable relay, or where every relay timed out, raises so
that [run_forever()][clawmesh.core.base_service.BaseService.run_forever]
counts it toward ``max_consecutive_failures``.

Examples:
    ```python
    async with await RelayPool.connect(config.relay_urls()) as pool:
        listener = Listener(pool, identity, JsonStore(config.store_path))
        async with listener:
            await listener.run_forever()
    ```
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, ClassVar

from clawmesh.core.base_service import BaseService
from clawmesh.core.exceptions import ConnectivityError, NoConnectionError, RelayTimeoutError
from clawmesh.models.constants import ErrorKind
from clawmesh.services.messaging import inbox_since, receive

from .configs import ListenerConfig


if TYPE_CHECKING:
    from collections.abc import Callable

    from clawmesh.core.pool import RelayPool
    from clawmesh.core.store import Store
    from clawmesh.models.identity import Identity
    from clawmesh.models.message import InboxMessage


class Listener(BaseService[ListenerConfig]):
    """Periodic inbox fetcher.

    Args:
        pool: Connected relay pool, owned by the caller.
        identity: Identity whose inbox is fetched.
        store: Store receiving new messages and the fetch cursor.
        config: Listener settings.
        on_message: Called once per newly stored message, oldest first.
    """

    SERVICE_NAME: ClassVar[str] = "listener"
    CONFIG_CLASS: ClassVar[type[ListenerConfig]] = ListenerConfig

    def __init__(
        self,
        pool: RelayPool,
        identity: Identity,
        store: Store,
        config: ListenerConfig | None = None,
        *,
        on_message: Callable[[InboxMessage], None] | None = None,
    ) -> None:
        super().__init__(config)
        self._logger = self._logger.bind(agent_id=identity.agent_id)
        self._pool = pool
        self._identity = identity
        self._store = store
        self._on_message = on_message

    async def run(self) -> None:
        """Fetch the inbox once and advance the cursor on success."""
        last_fetch = self._store.get_state(self._config.cursor_key)
        since = inbox_since(int(last_fetch)) if last_fetch else None
        started = int(time.time())

        result = await receive(
            self._pool,
            self._identity,
            self._store,
            since=since,
            timeout=self._config.timeout,
        )
        self.set_gauge("connected_relays", len(self._pool.connected))

        if not result.success:
            if result.error == ErrorKind.TIMEOUT:
                raise RelayTimeoutError(result.message)
            if result.error == ErrorKind.NO_CONNECTION:
                raise NoConnectionError(result.message)
            raise ConnectivityError(result.message)

        self._store.set_state(self._config.cursor_key, started)
        self.inc_counter("messages_received", len(result.messages))
        self.set_gauge("unread", self._store.unread_count())
        self._logger.info(
            "inbox_polled",
            new=len(result.messages),
            dropped=result.dropped,
            partial=result.partial,
            since=since,
        )

        if self._on_message is not None:
            for message in result.messages:
                self._on_message(message)
