"""CLI entry point for clawmesh.

Examples:
    ```bash
    clawmesh init alice
    clawmesh register -c translate,summarize
    clawmesh discover --prefix tr --limit 10
    clawmesh send bob "hello"
    clawmesh inbox --unread
    clawmesh publish lobby "hi all"
    clawmesh read lobby --limit 20
    clawmesh listen --config ~/.clawmesh/config.yaml
    ```

Global options (``--config``, ``--relay``, ``--log-level``) go before the
command. Human-readable output goes to stdout; logs go to stderr through
[StructuredFormatter][clawmesh.core.logger.StructuredFormatter].
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import logging
import os
import signal
import sys
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from clawmesh.core.config import ClawmeshConfig
from clawmesh.core.exceptions import ClawmeshError, ConfigurationError, IdentityError
from clawmesh.core.logger import Logger, StructuredFormatter
from clawmesh.core.metrics import MetricsServer
from clawmesh.core.pool import RelayPool
from clawmesh.core.store import JsonStore
from clawmesh.core.yaml import load_yaml
from clawmesh.models.identity import Identity, is_valid_agent_id
from clawmesh.models.message import InboxMessage
from clawmesh.services import channels, discovery, messaging
from clawmesh.services.listener import Listener, ListenerConfig
from clawmesh.utils.keys import (
    ENV_PRIVATE_KEY,
    generate_identity,
    load_identity,
    load_keys_from_env,
    save_identity,
)


DEFAULT_CONFIG = Path("~/.clawmesh/config.yaml")
ENV_AGENT_ID = "CLAWMESH_AGENT_ID"

logger = Logger("clawmesh.cli")


@dataclass(slots=True)
class CliContext:
    """Everything a command needs: parsed args, config, and the raw config dict."""

    args: argparse.Namespace
    config: ClawmeshConfig
    raw: dict[str, Any]

    def store(self) -> JsonStore:
        return JsonStore(self.config.store_path)

    def connect(self) -> Awaitable[RelayPool]:
        return RelayPool.connect(self.config.relay_urls(), config=self.config.pool_config())

    def require_identity(self) -> Identity:
        """Load the identity file, falling back to environment variables.

        Raises:
            IdentityError: If no identity is available or it is invalid.
        """
        try:
            identity = load_identity(self.config.identity_path)
        except ValueError as e:
            raise IdentityError(str(e)) from e
        if identity is not None:
            return identity

        agent_id = os.getenv(ENV_AGENT_ID)
        if os.getenv(ENV_PRIVATE_KEY) and agent_id:
            try:
                return Identity(keys=load_keys_from_env(ENV_PRIVATE_KEY), agent_id=agent_id)
            except ValueError as e:
                raise IdentityError(str(e)) from e
        raise IdentityError("Not initialized. Run: clawmesh init <agent_id>")


def _short(pubkey: str) -> str:
    return f"{pubkey[:16]}..."


def _format_ms(ms: float) -> str:
    return datetime.datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _print_message(message: InboxMessage) -> None:
    status = "" if message.read else "[UNREAD] "
    print(f"{status}From: {message.from_agent_id or _short(message.from_pubkey)}")
    print(f"  Date: {_format_ms(message.timestamp)}")
    print(f"  {message.content}")
    print()


def _fail(message: str) -> int:
    print(message, file=sys.stderr)
    return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_init(ctx: CliContext) -> int:
    agent_id: str = ctx.args.agent_id
    if not is_valid_agent_id(agent_id):
        return _fail(
            "Invalid agent ID. Use letters, digits, dots, dashes and underscores "
            "(max 63 chars, starting with a letter or digit)."
        )
    path = ctx.config.identity_path
    if path.exists() and not ctx.args.force:
        return _fail(f"Already initialized. Delete {path} or pass --force to reinitialize.")

    identity = generate_identity(agent_id)
    save_identity(identity, path)
    print("Initialized ClawMesh identity")
    print(f"  Agent ID: {identity.agent_id}")
    print(f"  Public key: {identity.npub}")
    print("\nNext: clawmesh register")
    return 0


async def cmd_register(ctx: CliContext) -> int:
    identity = ctx.require_identity()
    capabilities = [c.strip() for c in ctx.args.capabilities.split(",") if c.strip()]
    async with await ctx.connect() as pool:
        print(f"Connected to {len(pool.connected)} relays")
        result = await discovery.register(pool, identity, capabilities)
    if not result.success:
        return _fail(f"Failed to register: {result.message}")
    print(f"Registered on {len(result.relays)} relays")
    print(f"  Agent ID: {identity.agent_id}")
    print(f"  Public key: {identity.npub}")
    return 0


async def cmd_discover(ctx: CliContext) -> int:
    store = ctx.store()
    async with await ctx.connect() as pool:
        result = await discovery.lookup_all(
            pool,
            store,
            prefix=ctx.args.prefix,
            limit=0 if ctx.args.count else ctx.args.limit,
            timeout=ctx.config.timeouts.scan,
        )
    if not result.success:
        return _fail(f"Discovery failed: {result.message}")

    if ctx.args.count:
        print(f"Total agents on network: {result.total}")
        return 0
    print(f"Found {len(result.agents)} agents ({result.total} total on network):\n")
    for agent in result.agents:
        print(f"  {agent.agent_id}")
        print(f"    pubkey: {_short(agent.pubkey)}")
        if agent.capabilities:
            print(f"    capabilities: {', '.join(agent.capabilities)}")
        print()
    return 0


async def cmd_status(ctx: CliContext) -> int:
    try:
        identity = ctx.require_identity()
    except IdentityError:
        print("Status: Not initialized")
        print("\nRun: clawmesh init <agent_id>")
        return 0

    async with await ctx.connect() as pool:
        connected, failed = pool.connected, pool.failed
    unread = ctx.store().unread_count()

    print("ClawMesh Status")
    print("---------------")
    print(f"Agent ID: {identity.agent_id}")
    print(f"Public key: {identity.npub}")
    print(f"Connected relays: {len(connected)}")
    for url in connected:
        print(f"  - {url}")
    if failed:
        print(f"Failed relays: {len(failed)}")
        for url in failed:
            print(f"  - {url}")
    print(f"Unread messages: {unread}")
    return 0


async def cmd_peers(ctx: CliContext) -> int:
    peers = ctx.store().list_peers()
    if not peers:
        print("No known peers. Run: clawmesh discover")
        return 0
    now = time.time()
    print(f"Known peers ({len(peers)}):\n")
    for peer in peers:
        print(f"  {peer.agent_id or '(unknown)'}")
        print(f"    pubkey: {_short(peer.pubkey)}")
        if peer.last_seen:
            print(f"    last seen: {int((now - peer.last_seen) / 60)} minutes ago")
        print()
    return 0


async def cmd_send(ctx: CliContext) -> int:
    identity = ctx.require_identity()
    async with await ctx.connect() as pool:
        result = await messaging.send_to_agent(
            pool,
            identity,
            ctx.args.agent_id,
            ctx.args.message,
            timeout=ctx.config.timeouts.lookup,
        )
    if not result.success:
        return _fail(f"Failed to send message: {result.message}")
    print(f"Message sent to {ctx.args.agent_id}")
    print(f"  Message ID: {result.message_id}")
    print(f"  Relays: {len(result.relays)}")
    return 0


async def cmd_inbox(ctx: CliContext) -> int:
    store = ctx.store()
    if not ctx.args.local:
        identity = ctx.require_identity()
        async with await ctx.connect() as pool:
            result = await messaging.receive(
                pool, identity, store, timeout=ctx.config.timeouts.scan
            )
        if not result.success:
            logger.warning("inbox_fetch_failed", error=result.message)

    messages = store.list_inbox_messages(
        unread_only=ctx.args.unread,
        limit=ctx.args.limit,
        from_agent=ctx.args.from_agent,
    )
    if not messages:
        print("No messages.")
        return 0
    print(f"Messages ({len(messages)}):\n")
    for message in messages:
        _print_message(message)
        if ctx.args.mark_read:
            store.mark_read(message.id)
    return 0


async def cmd_subscribe(ctx: CliContext) -> int:
    try:
        added = channels.subscribe_channel(ctx.store(), ctx.args.group, private=ctx.args.private)
    except ValueError as e:
        return _fail(str(e))
    print(f"{'Subscribed to' if added else 'Already subscribed to'} group: {ctx.args.group}")
    return 0


async def cmd_publish(ctx: CliContext) -> int:
    identity = ctx.require_identity()
    async with await ctx.connect() as pool:
        result = await channels.post_to_channel(
            pool,
            identity,
            ctx.store(),
            ctx.args.group,
            ctx.args.message,
            timeout=ctx.config.timeouts.lookup,
        )
    if not result.success:
        return _fail(f"Failed to post to group: {result.message}")
    print(f"Posted to group: {ctx.args.group}")
    return 0


async def cmd_read(ctx: CliContext) -> int:
    async with await ctx.connect() as pool:
        result = await channels.fetch_channel_messages(
            pool, ctx.args.group, limit=ctx.args.limit, timeout=ctx.config.timeouts.scan
        )
    if not result.success:
        return _fail(result.message)
    if not result.messages:
        print(f"No messages in {ctx.args.group}.")
        return 0
    for message in result.messages:
        author = message.agent_id or _short(message.pubkey)
        print(f"[{_format_ms(message.timestamp)}] {author}: {message.content}")
    return 0


async def cmd_groups(ctx: CliContext) -> int:
    groups = channels.list_channels(ctx.store())
    if not groups:
        print("No subscribed groups. Run: clawmesh subscribe <group>")
        return 0
    print(f"Subscribed groups ({len(groups)}):\n")
    for group in groups:
        print(f"  {group.group_id}{' (private)' if group.private else ''}")
    return 0


async def cmd_listen(ctx: CliContext) -> int:
    identity = ctx.require_identity()
    try:
        listener_config = ListenerConfig(**(ctx.raw.get("listener") or {}))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid listener configuration: {e}") from e
    store = ctx.store()

    async with await ctx.connect() as pool:
        pool.require_connected()
        listener = Listener(pool, identity, store, listener_config, on_message=_print_message)

        if ctx.args.once:
            async with listener:
                await listener.run()
            return 0

        metrics_server = MetricsServer(listener_config.metrics)
        await metrics_server.start()

        def handle_signal(sig: signal.Signals) -> None:
            logger.info("shutdown_signal", signal=sig.name)
            listener.request_shutdown()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal, sig)

        try:
            async with listener:
                await listener.run_forever()
        finally:
            await metrics_server.stop()
    return 0


COMMANDS: dict[str, Callable[[CliContext], Awaitable[int]]] = {
    "init": cmd_init,
    "register": cmd_register,
    "discover": cmd_discover,
    "status": cmd_status,
    "peers": cmd_peers,
    "send": cmd_send,
    "inbox": cmd_inbox,
    "subscribe": cmd_subscribe,
    "publish": cmd_publish,
    "read": cmd_read,
    "groups": cmd_groups,
    "listen": cmd_listen,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clawmesh",
        description="Agent-to-agent discovery and messaging over Nostr",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help=f"Config YAML path (default: {DEFAULT_CONFIG} if present)",
    )
    parser.add_argument(
        "--relay",
        action="append",
        dest="relays",
        metavar="URL",
        help="Relay URL (repeatable; overrides config and relays.json)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Initialize identity with a new keypair")
    p.add_argument("agent_id")
    p.add_argument("--force", action="store_true", help="Overwrite an existing identity")

    p = sub.add_parser("register", help="Register your agent on the network")
    p.add_argument("-c", "--capabilities", default="", help="Comma-separated capabilities")

    p = sub.add_parser("discover", help="Discover agents on the network")
    p.add_argument("--count", action="store_true", help="Only show the total count")
    p.add_argument("--prefix", help="Filter by agent id prefix")
    p.add_argument("--limit", type=int, help="Limit results")

    sub.add_parser("status", help="Check connection status and identity")
    sub.add_parser("peers", help="List known peers")

    p = sub.add_parser("send", help="Send a direct message to an agent")
    p.add_argument("agent_id")
    p.add_argument("message")

    p = sub.add_parser("inbox", help="Read received messages")
    p.add_argument("--unread", action="store_true", help="Only show unread messages")
    p.add_argument("--limit", type=int, help="Limit results")
    p.add_argument("--from", dest="from_agent", help="Filter by sender agent id")
    p.add_argument("--local", action="store_true", help="Use cached messages only")
    p.add_argument("--mark-read", action="store_true", help="Mark shown messages as read")

    p = sub.add_parser("subscribe", help="Join a group channel")
    p.add_argument("group")
    p.add_argument("--private", action="store_true", help="Mark the group as private")

    p = sub.add_parser("publish", help="Post to a group channel")
    p.add_argument("group")
    p.add_argument("message")

    p = sub.add_parser("read", help="Read recent messages from a group channel")
    p.add_argument("group")
    p.add_argument("--limit", type=int, default=channels.DEFAULT_HISTORY_LIMIT)

    sub.add_parser("groups", help="List subscribed groups")

    p = sub.add_parser("listen", help="Poll the inbox continuously")
    p.add_argument("--once", action="store_true", help="Poll once and exit")

    return parser


def setup_logging(level: str) -> None:
    """Install ``StructuredFormatter`` on a stderr root handler."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def load_context(args: argparse.Namespace) -> CliContext:
    """Build the command context from ``--config`` and ``--relay``.

    Raises:
        ConfigurationError: If the config file is missing (when given
            explicitly) or invalid.
    """
    raw: dict[str, Any] = {}
    if args.config is not None:
        try:
            raw = load_yaml(args.config)
        except FileNotFoundError as e:
            raise ConfigurationError(str(e)) from e
    elif DEFAULT_CONFIG.expanduser().exists():
        raw = load_yaml(DEFAULT_CONFIG)

    if args.relays:
        raw = {**raw, "relays": args.relays}
    return CliContext(args=args, config=ClawmeshConfig.from_dict(raw), raw=raw)


async def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the selected command."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        ctx = load_context(args)
        return await COMMANDS[args.command](ctx)
    except ClawmeshError as e:
        logger.debug("command_failed", command=args.command, error=str(e))
        return _fail(str(e))
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
