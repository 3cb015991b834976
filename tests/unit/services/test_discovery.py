"""
Unit tests for services.discovery module.

Tests:
- register(): publishing the mapping record with relay tags
- lookup_one(): freshness across relays, invalid record handling, error kinds
- lookup_all(): reconciliation, prefix filter, limit, total, peer caching
- merge_records(): ordering rules
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable

from nostr_sdk import Keys

from clawmesh.core.pool import PoolConfig, RelayPool
from clawmesh.core.store import MemoryStore
from clawmesh.models.constants import ErrorKind
from clawmesh.models.identity import Identity
from clawmesh.services.discovery import lookup_all, lookup_one, merge_records, register
from tests.conftest import FakeNetwork, mapping_event, sign_event


Connect = Callable[..., Awaitable[RelayPool]]


# ============================================================================
# register
# ============================================================================


class TestRegister:
    """Tests for register()."""

    async def test_publishes_to_every_relay(
        self, connect: Connect, network: FakeNetwork, alice: Identity
    ) -> None:
        async with await connect() as pool:
            result = await register(pool, alice, ["translate", "  ", " summarize "])

        assert result.success
        assert set(result.relays) == set(network.urls)
        for relay in network.relays.values():
            (event,) = relay.published
            assert event.id == result.event_id
            assert event.kind == 30078
            assert event.pubkey == alice.public_key
            assert event.first_tag("d") == "alice"
            assert event.tag_values("relay") == network.urls
            assert json.loads(event.content)["capabilities"] == ["translate", "summarize"]

    async def test_partial_acceptance(self, alice: Identity) -> None:
        network = FakeNetwork()
        network.add("wss://good.example")
        network.add("wss://bad.example", accept=False)
        pool = await RelayPool.connect(network.urls, connector=network.connect)

        result = await register(pool, alice)

        assert result.success
        assert result.relays == ("wss://good.example",)
        assert result.failed == ("wss://bad.example",)
        await pool.close()

    async def test_no_relay_accepts(self, alice: Identity) -> None:
        network = FakeNetwork()
        network.add("wss://bad.example", accept=False)
        pool = await RelayPool.connect(network.urls, connector=network.connect)

        result = await register(pool, alice)

        assert not result.success
        assert result.error == ErrorKind.PUBLISH_FAILED
        assert result.event_id is not None
        await pool.close()

    async def test_no_connection(self, connect: Connect, alice: Identity) -> None:
        pool = await connect(["wss://missing.example"])
        result = await register(pool, alice)
        assert not result.success
        assert result.error == ErrorKind.NO_CONNECTION

    async def test_closed_pool(self, connect: Connect, alice: Identity) -> None:
        pool = await connect()
        await pool.close()
        result = await register(pool, alice)
        assert result.error == ErrorKind.INVALID_PARAMS


# ============================================================================
# lookup_one
# ============================================================================


class TestLookupOne:
    """Tests for lookup_one()."""

    async def test_round_trip(self, connect: Connect, alice: Identity) -> None:
        async with await connect() as pool:
            await register(pool, alice, ["translate"])
            result = await lookup_one(pool, "alice")

        assert result.success
        assert result.agent is not None
        assert result.agent.pubkey == alice.public_key
        assert result.agent.capabilities == ("translate",)

    async def test_freshest_record_wins_across_relays(
        self, connect: Connect, network: FakeNetwork
    ) -> None:
        old_keys, new_keys = Keys.generate(), Keys.generate()
        network.relays["wss://relay-a.example"].store(
            mapping_event(new_keys, "alice", 2_000, capabilities=["new"])
        )
        network.relays["wss://relay-b.example"].store(
            mapping_event(old_keys, "alice", 1_000, capabilities=["old"])
        )

        async with await connect() as pool:
            result = await lookup_one(pool, "alice")

        assert result.agent is not None
        assert result.agent.pubkey == new_keys.public_key().to_hex()
        assert result.agent.capabilities == ("new",)
        assert result.agent.registered_at == 2_000

    async def test_invalid_records_ignored(self, connect: Connect, network: FakeNetwork) -> None:
        keys = Keys.generate()
        relay = network.relays["wss://relay-a.example"]
        relay.store(
            mapping_event(Keys.generate(), "alice", 3_000, content="not json"),
            mapping_event(Keys.generate(), "mallory", 3_000, d_tag="alice"),
            mapping_event(Keys.generate(), "alice", 3_000, content='{"v": 2, "agent_id": "alice"}'),
            mapping_event(keys, "alice", 1_000),
        )

        async with await connect() as pool:
            result = await lookup_one(pool, "alice")

        assert result.success
        assert result.agent is not None
        assert result.agent.pubkey == keys.public_key().to_hex()

    async def test_only_invalid_records(self, connect: Connect, network: FakeNetwork) -> None:
        network.relays["wss://relay-a.example"].store(
            mapping_event(Keys.generate(), "mallory", 1_000, d_tag="alice")
        )
        async with await connect() as pool:
            result = await lookup_one(pool, "alice")
        assert result.error == ErrorKind.NOT_FOUND

    async def test_not_found(self, connect: Connect) -> None:
        async with await connect() as pool:
            result = await lookup_one(pool, "nobody")
        assert not result.success
        assert result.error == ErrorKind.NOT_FOUND
        assert result.agent is None

    async def test_invalid_agent_id(self, connect: Connect) -> None:
        async with await connect() as pool:
            result = await lookup_one(pool, "not valid!")
        assert result.error == ErrorKind.INVALID_PARAMS

    async def test_every_relay_times_out(self) -> None:
        network = FakeNetwork()
        network.add("wss://slow.example", responsive=False)
        pool = await RelayPool.connect(network.urls, connector=network.connect)

        result = await lookup_one(pool, "alice", timeout=0.05)

        assert not result.success
        assert result.error == ErrorKind.TIMEOUT
        await pool.close()

    async def test_slow_relay_still_returns_records(self) -> None:
        keys = Keys.generate()
        network = FakeNetwork()
        network.add("wss://slow.example", responsive=False).store(
            mapping_event(keys, "alice", 1_000)
        )
        pool = await RelayPool.connect(network.urls, connector=network.connect)

        result = await lookup_one(pool, "alice", timeout=0.05)

        assert result.success
        assert result.agent is not None
        assert result.agent.pubkey == keys.public_key().to_hex()
        await pool.close()

    async def test_no_connection(self, connect: Connect) -> None:
        pool = await connect(["wss://missing.example"])
        result = await lookup_one(pool, "alice")
        assert result.error == ErrorKind.NO_CONNECTION


# ============================================================================
# lookup_all
# ============================================================================


class TestLookupAll:
    """Tests for lookup_all()."""

    async def _seed(self, network: FakeNetwork) -> None:
        a, b = network.relays.values()
        a.store(
            mapping_event(Keys.generate(), "agent-1", 1_000),
            mapping_event(Keys.generate(), "agent-2", 3_000),
            mapping_event(Keys.generate(), "other", 2_000),
            sign_event(Keys.generate(), 30078, "garbage", [["d", "junk"]], created_at=4_000),
        )
        b.store(mapping_event(Keys.generate(), "agent-1", 5_000, capabilities=["fresh"]))

    async def test_directory(
        self, connect: Connect, network: FakeNetwork, store: MemoryStore
    ) -> None:
        await self._seed(network)
        async with await connect() as pool:
            result = await lookup_all(pool, store)

        assert result.success
        assert result.total == 3
        assert [a.agent_id for a in result.agents] == ["agent-1", "agent-2", "other"]
        assert result.agents[0].capabilities == ("fresh",)
        assert not result.partial

        peers = {p.agent_id: p for p in store.list_peers()}
        assert set(peers) == {"agent-1", "agent-2", "other"}
        assert peers["agent-1"].capabilities == ("fresh",)

    async def test_prefix_and_limit(
        self, connect: Connect, network: FakeNetwork, store: MemoryStore
    ) -> None:
        await self._seed(network)
        async with await connect() as pool:
            result = await lookup_all(pool, store, prefix="agent-", limit=1)

        assert result.total == 3
        assert [a.agent_id for a in result.agents] == ["agent-1"]
        assert [p.agent_id for p in store.list_peers()] == ["agent-1"]

    async def test_non_positive_limit_means_unlimited(
        self, connect: Connect, network: FakeNetwork
    ) -> None:
        await self._seed(network)
        async with await connect() as pool:
            result = await lookup_all(pool, limit=0)
        assert len(result.agents) == 3

    async def test_partial_scan(self, network: FakeNetwork) -> None:
        await self._seed(network)
        network.add("wss://slow.example", responsive=False)
        pool = await RelayPool.connect(
            network.urls, config=PoolConfig(query_timeout=0.05), connector=network.connect
        )

        result = await lookup_all(pool, timeout=0.05)

        assert result.success
        assert result.partial
        assert result.total == 3
        await pool.close()

    async def test_empty_network(self, connect: Connect) -> None:
        async with await connect() as pool:
            result = await lookup_all(pool)
        assert result.success
        assert result.agents == ()
        assert result.total == 0

    async def test_no_connection(self, connect: Connect) -> None:
        pool = await connect([])
        result = await lookup_all(pool)
        assert result.error == ErrorKind.NO_CONNECTION


# ============================================================================
# merge_records
# ============================================================================


class TestMergeRecords:
    """Tests for merge_records()."""

    def test_ordering(self) -> None:
        events = [
            mapping_event(Keys.generate(), "b", 1_000),
            mapping_event(Keys.generate(), "a", 1_000),
            mapping_event(Keys.generate(), "c", 2_000),
        ]
        assert [a.agent_id for a in merge_records(events)] == ["c", "a", "b"]

    def test_tie_breaks_on_event_id(self) -> None:
        first = mapping_event(Keys.generate(), "a", 1_000)
        second = mapping_event(Keys.generate(), "a", 1_000)
        winner = min(first, second, key=lambda e: e.id)
        (merged,) = merge_records([first, second])
        assert merged.pubkey == winner.pubkey

    def test_empty(self) -> None:
        assert merge_records([]) == []
