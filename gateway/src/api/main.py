"""
FastAPI application factory for the Axpert gateway.

The collaborators built at startup (settings, inverters, metrics, command
dispatcher) are stored on ``app.state`` for the route handlers.  When a
poller is passed in, the application lifespan starts it on startup and
stops it on shutdown.  The metrics route is registered under the
configured metrics path.

CHANGELOG:
- 2026-03-12: Serve the control panel page (STORY-016)
- 2026-03-08: Start and stop the poller from the lifespan (STORY-009)
- 2026-03-07: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, Response

from gateway.src.api.control import router as control_router
from gateway.src.api.health import router as health_router
from gateway.src.api.inverters import router as inverters_router
from gateway.src.api.panel import router as panel_router
from gateway.src.commands import CommandDispatcher

if TYPE_CHECKING:
    from gateway.src.config import GatewaySettings
    from gateway.src.metrics import GatewayMetrics
    from gateway.src.models import Inverter
    from gateway.src.poller import Poller

logger = logging.getLogger(__name__)


async def metrics_endpoint(request: Request) -> Response:
    """Render the metrics registry in the Prometheus text format."""
    payload, content_type = request.app.state.metrics.render()
    return Response(content=payload, media_type=content_type)


def create_app(
    settings: GatewaySettings,
    inverters: Sequence[Inverter],
    metrics: GatewayMetrics,
    *,
    poller: Poller | None = None,
) -> FastAPI:
    """Build the gateway HTTP application.

    Args:
        settings: Gateway configuration.
        inverters: Known inverters in discovery order.
        metrics: Metrics registry shared with the poller.
        poller: Poller to run for the lifetime of the app, or None when
            metrics collection is disabled.

    Returns:
        FastAPI: The configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan: start and stop the poller."""
        if poller is not None:
            poller.start()
            logger.info("Metrics collection started (interval=%ss)", poller.interval_s)
        else:
            logger.info("Metrics collection disabled")
        logger.info("Axpert gateway ready with %d inverter(s)", len(app.state.inverters))
        yield
        if poller is not None:
            poller.stop()
        logger.info("Axpert gateway shutting down")

    app = FastAPI(
        title="axpert-gateway",
        description="Telemetry and control gateway for Axpert solar inverters.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.inverters = tuple(inverters)
    app.state.metrics = metrics
    app.state.dispatcher = CommandDispatcher(app.state.inverters)

    app.add_api_route(
        settings.metrics_path,
        metrics_endpoint,
        methods=["GET"],
        include_in_schema=False,
    )
    app.include_router(health_router)
    app.include_router(inverters_router)
    app.include_router(control_router)
    app.include_router(panel_router)

    return app
