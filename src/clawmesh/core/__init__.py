"""Core layer: relay pool, local store, configuration, and service plumbing.

Sits in the middle of the diamond DAG -- depends on ``clawmesh.models`` and
the transport in ``clawmesh.utils``, and is depended upon by
``clawmesh.services``.

Attributes:
    RelayPool: Fan-out connect/publish/query/subscribe over many relays.
        See [RelayPool][clawmesh.core.pool.RelayPool].
    Subscription: Cancellable, deduplicated event stream returned by
        [RelayPool.subscribe()][clawmesh.core.pool.RelayPool.subscribe].
    Store: Protocol for local persistence, with
        [MemoryStore][clawmesh.core.store.MemoryStore] and
        [JsonStore][clawmesh.core.store.JsonStore] implementations.
    ClawmeshConfig: Pydantic client configuration loaded from YAML.
    BaseService: Abstract base for long-running services with
        [run_forever()][clawmesh.core.base_service.BaseService.run_forever]
        and Prometheus metrics.
    Logger: Structured logger supporting key=value and JSON output modes.

Examples:
    ```python
    from clawmesh.core import ClawmeshConfig, JsonStore, RelayPool

    config = ClawmeshConfig.from_yaml("clawmesh.yaml")
    store = JsonStore(config.store_path)
    async with await RelayPool.connect(config.relay_urls(), config=config.pool_config()) as pool:
        ...
    ```
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .config import DEFAULT_RELAYS, ClawmeshConfig, TimeoutsConfig, load_relay_urls
from .exceptions import (
    ClawmeshError,
    ConfigurationError,
    ConnectivityError,
    DecryptionError,
    IdentityError,
    MalformedRemoteDataError,
    NoConnectionError,
    PoolClosedError,
    ProtocolError,
    RelayTimeoutError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import MetricsConfig, MetricsServer
from .pool import PoolConfig, PublishResult, QueryResult, RelayPool, Subscription
from .store import JsonStore, MemoryStore, Store
from .yaml import load_yaml


__all__ = [
    "DEFAULT_RELAYS",
    "BaseService",
    "BaseServiceConfig",
    "ClawmeshConfig",
    "ClawmeshError",
    "ConfigT",
    "ConfigurationError",
    "ConnectivityError",
    "DecryptionError",
    "IdentityError",
    "JsonStore",
    "Logger",
    "MalformedRemoteDataError",
    "MemoryStore",
    "MetricsConfig",
    "MetricsServer",
    "NoConnectionError",
    "PoolClosedError",
    "PoolConfig",
    "ProtocolError",
    "PublishResult",
    "QueryResult",
    "RelayPool",
    "RelayTimeoutError",
    "Store",
    "StructuredFormatter",
    "Subscription",
    "TimeoutsConfig",
    "format_kv_pairs",
    "load_relay_urls",
    "load_yaml",
]
