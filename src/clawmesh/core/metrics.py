"""
Prometheus metrics collection and HTTP exposition.

Defines module-level metric objects shared by every long-running clawmesh
service. [BaseService.run_forever()][clawmesh.core.base_service.BaseService.run_forever]
records cycle counts, durations, and failure streaks; services add their
own values through ``set_gauge()`` and ``inc_counter()``.

[MetricsServer][clawmesh.core.metrics.MetricsServer] serves the registry
over aiohttp for Prometheus scraping and is only started when
``MetricsConfig.enabled`` is true.

Architecture:
    SERVICE_INFO:               Static metadata set once at startup.
    SERVICE_GAUGE:              Point-in-time values (current state).
    SERVICE_COUNTER:            Cumulative totals (monotonically increasing).
    CYCLE_DURATION_SECONDS:     Histogram of cycle latency.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint."""

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=9464, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Metrics
#
# Automatic labels (BaseService.run_forever):
#   gauge:   consecutive_failures, last_cycle_timestamp
#   counter: cycles_success, cycles_failed, errors_{type}
#
# Listener labels:
#   gauge:   connected_relays, unread
#   counter: messages_received
# ---------------------------------------------------------------------------

SERVICE_INFO = Info(
    "clawmesh_service",
    "Service information and metadata",
)

CYCLE_DURATION_SECONDS = Histogram(
    "clawmesh_cycle_duration_seconds",
    "Duration of service cycle in seconds",
    ["service"],
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 60, 120),
)

SERVICE_GAUGE = Gauge(
    "clawmesh_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "clawmesh_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint."""

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint. No-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Stop the server. Idempotent."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
