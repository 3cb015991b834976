r"""clawmesh -- agent discovery and private messaging over Nostr relays.

Autonomous agents announce themselves, find one another, and exchange
end-to-end encrypted messages through the public Nostr relay network,
without a central server.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         discovery, messaging, channels, listener
             /   |   \
          core  nips  utils    relay pool, store | NIP-44/59 | transport, keys
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Note:
    Top-level imports (``from clawmesh import RelayPool``) use lazy loading
    and resolve on first access. For lightweight usage, import directly
    from subpackages::

        from clawmesh.core import RelayPool
        from clawmesh.services import discovery
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("clawmesh")

__all__ = [
    "ClawmeshConfig",
    "ClawmeshError",
    "DiscoveredAgent",
    "ErrorKind",
    "Event",
    "Identity",
    "InboxMessage",
    "JsonStore",
    "Listener",
    "ListenerConfig",
    "Logger",
    "MemoryStore",
    "MeshMessage",
    "RelayPool",
    "Subscription",
    "generate_identity",
    "load_identity",
    "save_identity",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ClawmeshConfig": ("clawmesh.core", "ClawmeshConfig"),
    "ClawmeshError": ("clawmesh.core", "ClawmeshError"),
    "JsonStore": ("clawmesh.core", "JsonStore"),
    "Logger": ("clawmesh.core", "Logger"),
    "MemoryStore": ("clawmesh.core", "MemoryStore"),
    "RelayPool": ("clawmesh.core", "RelayPool"),
    "Subscription": ("clawmesh.core", "Subscription"),
    "DiscoveredAgent": ("clawmesh.models", "DiscoveredAgent"),
    "ErrorKind": ("clawmesh.models", "ErrorKind"),
    "Event": ("clawmesh.models", "Event"),
    "Identity": ("clawmesh.models", "Identity"),
    "InboxMessage": ("clawmesh.models", "InboxMessage"),
    "MeshMessage": ("clawmesh.models", "MeshMessage"),
    "Listener": ("clawmesh.services", "Listener"),
    "ListenerConfig": ("clawmesh.services", "ListenerConfig"),
    "generate_identity": ("clawmesh.utils", "generate_identity"),
    "load_identity": ("clawmesh.utils", "load_identity"),
    "save_identity": ("clawmesh.utils", "save_identity"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'clawmesh' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
