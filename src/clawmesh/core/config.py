"""
Client configuration for clawmesh.

[ClawmeshConfig][clawmesh.core.config.ClawmeshConfig] is a Pydantic model
that can be built from defaults, from a YAML file via
[from_yaml()][clawmesh.core.config.ClawmeshConfig.from_yaml], or from a
plain dictionary. Example YAML:

```yaml
relays:
  - wss://relay.damus.io
  - wss://nos.lol
transport:
  connect_timeout: 10
  publish_timeout: 10
timeouts:
  lookup: 5
  scan: 10
home: ~/.clawmesh
```

When no ``relays`` are configured,
[load_relay_urls()][clawmesh.core.config.load_relay_urls] honors a
``relays.json`` file (``{"relays": [...]}``) in the working directory and
otherwise falls back to ``DEFAULT_RELAYS``.

The ``listener:`` section of the same file is read by
[ListenerConfig][clawmesh.services.listener.ListenerConfig], not here.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Final

from pydantic import BaseModel, Field, ValidationError, field_validator

from clawmesh.models.relay import normalize_relay_url
from clawmesh.utils.transport import TransportConfig

from .exceptions import ConfigurationError
from .logger import Logger
from .pool import PoolConfig
from .yaml import load_yaml


DEFAULT_RELAYS: Final[tuple[str, ...]] = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.primal.net",
    "wss://relay.nostr.band",
)

DEFAULT_HOME: Final[str] = "~/.clawmesh"
RELAYS_FILE: Final[str] = "relays.json"

_logger = Logger("clawmesh.config")


def load_relay_urls(cwd: str | Path | None = None) -> list[str]:
    """Return relays from ``relays.json`` in *cwd*, or ``DEFAULT_RELAYS``.

    An unreadable or malformed file is logged and ignored.
    """
    path = Path(cwd or Path.cwd()) / RELAYS_FILE
    if not path.exists():
        return list(DEFAULT_RELAYS)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        relays = data.get("relays") if isinstance(data, dict) else None
    except (OSError, ValueError) as e:
        _logger.warning("relays_file_invalid", path=path, error=str(e))
        return list(DEFAULT_RELAYS)
    if not isinstance(relays, list) or not all(isinstance(r, str) for r in relays) or not relays:
        _logger.warning("relays_file_invalid", path=path, error="missing relays list")
        return list(DEFAULT_RELAYS)
    try:
        return list(dict.fromkeys(normalize_relay_url(url) for url in relays))
    except ValueError as e:
        _logger.warning("relays_file_invalid", path=path, error=str(e))
        return list(DEFAULT_RELAYS)


class TimeoutsConfig(BaseModel):
    """Query timeouts in seconds.

    Attributes:
        lookup: Targeted lookups (one agent, one channel root, inbox).
        scan: Full directory scans and channel history.
    """

    lookup: float = Field(default=5.0, gt=0.0, le=120.0)
    scan: float = Field(default=10.0, gt=0.0, le=300.0)


class ClawmeshConfig(BaseModel):
    """Top-level client configuration.

    Attributes:
        relays: Relay URLs. Empty means ``relays.json`` or ``DEFAULT_RELAYS``.
        transport: WebSocket connect and publish timeouts.
        timeouts: Per-operation query timeouts.
        home: State directory, ``~/.clawmesh`` by default.
        store: Store file; defaults to ``<home>/store.json``.
        identity: Identity file; defaults to ``<home>/identity.json``.
    """

    relays: list[str] = Field(default_factory=list)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    home: Path = Field(default=Path(DEFAULT_HOME))
    store: Path | None = None
    identity: Path | None = None

    @field_validator("relays")
    @classmethod
    def _validate_relays(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(normalize_relay_url(url) for url in value))

    @property
    def home_dir(self) -> Path:
        return self.home.expanduser()

    @property
    def store_path(self) -> Path:
        return (self.store or self.home_dir / "store.json").expanduser()

    @property
    def identity_path(self) -> Path:
        return (self.identity or self.home_dir / "identity.json").expanduser()

    def relay_urls(self) -> list[str]:
        """The configured relays, or the ``relays.json``/default fallback."""
        return list(self.relays) if self.relays else load_relay_urls()

    def pool_config(self) -> PoolConfig:
        return PoolConfig(transport=self.transport, query_timeout=self.timeouts.lookup)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClawmeshConfig:
        """Build from a dictionary; unknown top-level sections are ignored.

        Raises:
            ConfigurationError: If a value fails validation.
        """
        fields = {k: v for k, v in data.items() if k in cls.model_fields}
        try:
            return cls(**fields)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> ClawmeshConfig:
        """Load from a YAML file via [load_yaml()][clawmesh.core.yaml.load_yaml]."""
        return cls.from_dict(load_yaml(config_path))
