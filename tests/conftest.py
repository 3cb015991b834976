"""
Pytest configuration and shared fixtures for clawmesh tests.

Provides:
- An in-memory relay network (``FakeRelay``/``FakeNetwork``) implementing
  the ``RelayConnection`` protocol, so pools and services run end to end
  without sockets
- Identity fixtures for two agents (alice and bob)
- Event factories for signed test events
"""

from __future__ import annotations

import itertools
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import pytest
from nostr_sdk import EventBuilder, Keys, Kind, Tag, Timestamp

from clawmesh.core.pool import PoolConfig, RelayPool
from clawmesh.core.store import MemoryStore
from clawmesh.models.event import Event
from clawmesh.models.identity import Identity


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Fake Relay Network
# ============================================================================


_subscription_ids = itertools.count(1)


def filter_matches(flt: dict[str, Any], event: Event) -> bool:
    """Evaluate a NIP-01 filter object against an event."""
    if "ids" in flt and event.id not in flt["ids"]:
        return False
    if "kinds" in flt and event.kind not in flt["kinds"]:
        return False
    if "authors" in flt and event.pubkey not in flt["authors"]:
        return False
    if "since" in flt and event.created_at < flt["since"]:
        return False
    if "until" in flt and event.created_at > flt["until"]:
        return False
    for key, values in flt.items():
        if key.startswith("#") and len(key) == 2:
            if not set(values) & set(event.tag_values(key[1])):
                return False
    return True


class FakeRelay:
    """In-memory relay speaking the ``RelayConnection`` protocol.

    Args:
        url: Relay URL.
        accept: Whether ``send`` accepts events.
        responsive: Whether subscriptions receive EOSE; an unresponsive
            relay never finishes a query, so the pool's timeout applies.
    """

    def __init__(self, url: str, *, accept: bool = True, responsive: bool = True) -> None:
        self.url = url
        self.accept = accept
        self.responsive = responsive
        self.events: list[Event] = []
        self.published: list[Event] = []
        self.subscriptions: dict[str, tuple[dict[str, Any], Callable[[Event], None]]] = {}
        self.closed_subscriptions: list[str] = []
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def store(self, *events: Event) -> None:
        """Seed stored events without going through ``send``."""
        self.events.extend(events)

    def select(self, flt: dict[str, Any]) -> list[Event]:
        matched = [e for e in self.events if filter_matches(flt, e)]
        matched.sort(key=lambda e: e.created_at, reverse=True)
        limit = flt.get("limit")
        return matched[:limit] if limit else matched

    async def send(self, event: Event) -> None:
        if not self.accept:
            raise ConnectionError(f"Event rejected by {self.url}: blocked")
        self.published.append(event)
        self.events.append(event)
        for flt, on_event in list(self.subscriptions.values()):
            if filter_matches(flt, event):
                on_event(event)

    async def open_subscription(
        self,
        event_filter: Any,
        on_event: Callable[[Event], None],
        on_eose: Callable[[], None] | None = None,
    ) -> str:
        flt = json.loads(event_filter.as_json())
        self.requests.append(flt)
        subscription_id = f"sub{next(_subscription_ids)}"
        self.subscriptions[subscription_id] = (flt, on_event)
        for event in self.select(flt):
            on_event(event)
        if self.responsive and on_eose is not None:
            on_eose()
        return subscription_id

    async def close_subscription(self, subscription_id: str) -> None:
        if self.subscriptions.pop(subscription_id, None) is not None:
            self.closed_subscriptions.append(subscription_id)

    async def close(self) -> None:
        self.closed = True


class FakeNetwork:
    """A set of fake relays shared by every pool connected through it."""

    def __init__(self) -> None:
        self.relays: dict[str, FakeRelay] = {}

    def add(self, url: str, **kwargs: Any) -> FakeRelay:
        relay = FakeRelay(url, **kwargs)
        self.relays[url] = relay
        return relay

    @property
    def urls(self) -> list[str]:
        return list(self.relays)

    async def connect(self, url: str) -> FakeRelay:
        relay = self.relays.get(url)
        if relay is None:
            raise ConnectionError(f"Connection failed: {url}")
        return relay

    def all_events(self) -> list[Event]:
        return [e for relay in self.relays.values() for e in relay.events]


@pytest.fixture
def network() -> FakeNetwork:
    """Two healthy relays."""
    net = FakeNetwork()
    net.add("wss://relay-a.example")
    net.add("wss://relay-b.example")
    return net


@pytest.fixture
def connect(network: FakeNetwork) -> Callable[..., Awaitable[RelayPool]]:
    """Factory connecting a pool to the fake network (all relays by default)."""

    async def _connect(urls: Iterable[str] | None = None, **kwargs: Any) -> RelayPool:
        return await RelayPool.connect(
            network.urls if urls is None else urls,
            config=PoolConfig(query_timeout=kwargs.pop("query_timeout", 0.2)),
            connector=network.connect,
        )

    return _connect


# ============================================================================
# Identities and Stores
# ============================================================================


@pytest.fixture
def alice() -> Identity:
    return Identity(keys=Keys.generate(), agent_id="alice")


@pytest.fixture
def bob() -> Identity:
    return Identity(keys=Keys.generate(), agent_id="bob")


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


# ============================================================================
# Event Factories
# ============================================================================


def sign_event(
    keys: Keys,
    kind: int,
    content: str = "",
    tags: Iterable[list[str]] = (),
    created_at: int | None = None,
) -> Event:
    """Sign an arbitrary event with *keys*."""
    builder = EventBuilder(Kind(kind), content).tags([Tag.parse(t) for t in tags])
    if created_at is not None:
        builder = builder.custom_created_at(Timestamp.from_secs(created_at))
    return Event(builder.sign_with_keys(keys))


def mapping_event(
    keys: Keys,
    agent_id: str,
    created_at: int,
    *,
    capabilities: list[str] | None = None,
    content: str | None = None,
    d_tag: str | None = None,
) -> Event:
    """Sign a kind 30078 mapping record."""
    if content is None:
        content = json.dumps(
            {"v": 1, "agent_id": agent_id, "capabilities": capabilities or []}
        )
    return sign_event(
        keys, 30078, content, [["d", d_tag or agent_id]], created_at=created_at
    )


@pytest.fixture
def make_event() -> Callable[..., Event]:
    return sign_event


@pytest.fixture
def make_mapping() -> Callable[..., Event]:
    return mapping_event
