"""Listener service configuration models.

See Also:
    [Listener][clawmesh.services.listener.Listener]: The service class that
        consumes this configuration.
    [BaseServiceConfig][clawmesh.core.base_service.BaseServiceConfig]: Base
        class providing ``interval``, ``max_consecutive_failures``, and
        ``metrics`` fields.
"""

from __future__ import annotations

from pydantic import Field

from clawmesh.core.base_service import BaseServiceConfig


class ListenerConfig(BaseServiceConfig):
    """Inbox polling settings.

    Attributes:
        timeout: Per-relay query timeout for each inbox fetch, in seconds.
        cursor_key: Store state key holding the time of the last
            successful fetch.
    """

    timeout: float = Field(default=10.0, gt=0.0, le=120.0)
    cursor_key: str = Field(default="listener.last_fetch", min_length=1)
