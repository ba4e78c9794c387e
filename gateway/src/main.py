"""
Axpert gateway entry point.

Startup sequence:

1. Load :class:`~gateway.src.config.GatewaySettings` and configure
   structured JSON logging.
2. Build the metrics registry.
3. Open the connectors through the configured factory and discover the
   inverters.  Finding no inverter is fatal.
4. Build the HTTP application.  Its lifespan runs the poller when metrics
   collection is enabled.
5. Serve with uvicorn until SIGINT/SIGTERM.

On shutdown the poller is stopped and every connector is closed.

CHANGELOG:
- 2026-03-08: Close connectors on shutdown (STORY-008)
- 2026-03-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

import uvicorn

from gateway.src.api import create_app
from gateway.src.config import GatewaySettings
from gateway.src.connector import close_inverters, discover_inverters, load_connector_factory
from gateway.src.exceptions import DeviceIOError, DiscoveryError
from gateway.src.metrics import GatewayMetrics
from gateway.src.poller import Poller

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "info") -> None:
    """Configure structured JSON logging for the gateway.

    Sets up the root logger with a JSON-formatted handler writing to stderr.

    Args:
        level: Log level name, case-insensitive.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: GatewaySettings) -> None:
    """Log a config summary at startup."""
    logger.info(
        "Axpert gateway starting with config: "
        "listen=%s:%s, metrics_path=%s, poll_interval_s=%s, "
        "metrics_enabled=%s, control_enabled=%s, connector_factory=%s, "
        "log_level=%s",
        settings.listen_host,
        settings.listen_port,
        settings.metrics_path,
        settings.poll_interval_s,
        settings.metrics_enabled,
        settings.control_enabled,
        settings.connector_factory,
        settings.log_level,
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entrypoint for the gateway."""
    settings = GatewaySettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    metrics = GatewayMetrics()

    logger.info("Initialising inverters")
    try:
        factory = load_connector_factory(settings.connector_factory)
        inverters = discover_inverters(factory(settings))
    except (DiscoveryError, DeviceIOError) as exc:
        logger.critical("Failed to initialise inverters: %s", exc)
        sys.exit(1)

    poller = None
    if settings.metrics_enabled:
        poller = Poller(inverters, metrics, interval_s=settings.poll_interval_s)

    app = create_app(settings, inverters, metrics, poller=poller)

    logger.info("Starting axpert-gateway at: %s:%s", settings.listen_host, settings.listen_port)
    try:
        uvicorn.run(
            app,
            host=settings.listen_host,
            port=settings.listen_port,
            log_config=None,
        )
    finally:
        close_inverters(inverters)
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
