"""
Private direct messages over NIP-59 gift wraps.

Sending builds a [MeshMessage][clawmesh.models.message.MeshMessage], seals
it to the recipient under the sender's key, wraps the seal under a fresh
throwaway key, and publishes only the wrap (see [clawmesh.nips.nip59][]).
Relays see an event signed by a key used exactly once, addressed to the
recipient, with a ``created_at`` somewhere in the past two days.

Receiving queries gift wraps addressed to the caller, opens each one, and
validates the decrypted message. Any failure along the way (foreign or
corrupted ciphertext, bad seal signature, invalid JSON, missing fields,
unsupported version) drops that one wrap at DEBUG level and processing
continues with the rest. Valid messages are deduplicated by nonce, both
within the batch and against the local store, so the same wrap seen from
several relays, or fetched twice, produces one inbox entry.

Note:
    Gift wrap timestamps are jittered up to
    [JITTER_WINDOW][clawmesh.models.constants.JITTER_WINDOW] seconds into
    the past, so a ``since`` bound must be at least that far behind the
    last fetch to avoid missing messages.
    [inbox_since()][clawmesh.services.messaging.inbox_since] computes it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from nostr_sdk import PublicKey

from clawmesh.core.exceptions import ProtocolError
from clawmesh.core.logger import Logger
from clawmesh.models.constants import JITTER_WINDOW, ErrorKind
from clawmesh.models.message import InboxMessage, MeshMessage
from clawmesh.nips import nip59
from clawmesh.nips.filters import gift_wrap_filter

from .common.types import ReceiveResult, SendResult
from .common.utils import all_timed_out, pool_error
from .discovery import LOOKUP_TIMEOUT, lookup_one


if TYPE_CHECKING:
    from collections.abc import Callable

    from clawmesh.core.pool import RelayPool, Subscription
    from clawmesh.core.store import Store
    from clawmesh.models.event import Event
    from clawmesh.models.identity import Identity


INBOX_TIMEOUT: Final[float] = 10.0

_logger = Logger("clawmesh.messaging")


def inbox_since(last_fetch: int) -> int:
    """Return a safe ``since`` bound for wraps published after *last_fetch*."""
    return max(0, last_fetch - JITTER_WINDOW)


def open_message(wrap: Event, identity: Identity) -> InboxMessage:
    """Decrypt and validate one gift wrap addressed to *identity*.

    Raises:
        ProtocolError: If the wrap cannot be opened or the message is invalid.
    """
    opened = nip59.unwrap(wrap, identity.keys)
    try:
        message = MeshMessage.from_json(opened.content)
        return InboxMessage.from_mesh(message, opened.sender)
    except (ValueError, TypeError) as e:
        raise ProtocolError(f"Invalid message in wrap {wrap.id[:16]}...: {e}") from e


async def send(
    pool: RelayPool,
    identity: Identity,
    recipient_pubkey: str,
    recipient_agent_id: str,
    text: str,
) -> SendResult:
    """Send *text* privately to *recipient_pubkey*.

    Success means at least one relay accepted the gift wrap. The returned
    ``message_id`` is the message nonce.
    """
    try:
        recipient = PublicKey.parse(recipient_pubkey)
    except Exception:  # nostr-sdk FFI raises its own error types
        return SendResult(
            success=False,
            error=ErrorKind.INVALID_PARAMS,
            message=f"Invalid recipient public key: {recipient_pubkey!r}",
        )
    error = pool_error(pool)
    if error is not None:
        return SendResult(success=False, error=error[0], message=error[1])

    message = MeshMessage.direct(identity.agent_id, recipient_agent_id, text)
    wrap = nip59.wrap_message(identity.keys, recipient, message.to_json())
    result = await pool.publish(wrap)

    _logger.info(
        "message_sent" if result.ok else "message_send_failed",
        to_agent=recipient_agent_id,
        nonce=message.nonce,
        accepted=len(result.success),
        failed=len(result.failed),
    )
    if not result.ok:
        return SendResult(
            success=False,
            message_id=message.nonce,
            failed=result.failed,
            error=ErrorKind.PUBLISH_FAILED,
            message="No relay accepted the message",
        )
    return SendResult(
        success=True, message_id=message.nonce, relays=result.success, failed=result.failed
    )


async def send_to_agent(
    pool: RelayPool,
    identity: Identity,
    agent_id: str,
    text: str,
    *,
    timeout: float = LOOKUP_TIMEOUT,  # noqa: ASYNC109
) -> SendResult:
    """Resolve *agent_id* through discovery, then [send()][clawmesh.services.messaging.send]."""
    lookup = await lookup_one(pool, agent_id, timeout=timeout)
    if not lookup.success or lookup.agent is None:
        return SendResult(success=False, error=lookup.error, message=lookup.message)
    return await send(pool, identity, lookup.agent.pubkey, agent_id, text)


async def receive(
    pool: RelayPool,
    identity: Identity,
    store: Store,
    *,
    since: int | None = None,
    timeout: float = INBOX_TIMEOUT,  # noqa: ASYNC109
) -> ReceiveResult:
    """Fetch, open, and store gift wraps addressed to *identity*.

    Returns only messages that were not already in the store, sorted by
    their embedded ``ts`` ascending.
    """
    error = pool_error(pool)
    if error is not None:
        return ReceiveResult(success=False, error=error[0], message=error[1])

    result = await pool.query(gift_wrap_filter(identity.public_key, since), timeout=timeout)

    stored: list[InboxMessage] = []
    seen: set[str] = set()
    dropped = 0
    duplicates = 0
    for wrap in result.events:
        try:
            message = open_message(wrap, identity)
        except ProtocolError as e:
            dropped += 1
            _logger.debug("gift_wrap_dropped", event=wrap.id, error=str(e))
            continue
        if message.id in seen or not store.append_inbox_if_absent(message):
            duplicates += 1
            continue
        seen.add(message.id)
        stored.append(message)

    stored.sort(key=lambda m: m.timestamp)
    _logger.info(
        "inbox_fetched",
        wraps=len(result.events),
        new=len(stored),
        duplicates=duplicates,
        dropped=dropped,
    )

    if not result.events and all_timed_out(result):
        return ReceiveResult(
            success=False,
            partial=True,
            error=ErrorKind.TIMEOUT,
            message=f"No relay answered within {timeout}s",
        )
    return ReceiveResult(
        success=True,
        messages=tuple(stored),
        dropped=dropped,
        duplicates=duplicates,
        partial=result.partial,
    )


async def watch_inbox(
    pool: RelayPool,
    identity: Identity,
    store: Store,
    on_message: Callable[[InboxMessage], None] | None = None,
) -> Subscription:
    """Stream new gift wraps; store each valid new message and pass it to *on_message*.

    Returns the [Subscription][clawmesh.core.pool.Subscription] so the
    caller can cancel it.

    Raises:
        NoConnectionError: If no relay is connected.
    """
    pool.require_connected()

    def handle(wrap: Event) -> None:
        try:
            message = open_message(wrap, identity)
        except ProtocolError as e:
            _logger.debug("gift_wrap_dropped", event=wrap.id, error=str(e))
            return
        if not store.append_inbox_if_absent(message):
            return
        _logger.debug("message_received", nonce=message.id, from_agent=message.from_agent_id)
        if on_message is not None:
            on_message(message)

    return await pool.subscribe(gift_wrap_filter(identity.public_key), handle)
