"""
Gateway configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Every variable is prefixed with ``AXPERT_`` (e.g. ``AXPERT_POLL_INTERVAL_S``)
and may also come from a ``.env`` file in the working directory.

CHANGELOG:
- 2026-03-12: Reserve the control panel path (STORY-016)
- 2026-03-08: Add simulated inverter count (STORY-008)
- 2026-03-04: Add connector factory import path (STORY-008)
- 2026-03-02: Initial creation (STORY-001)

TODO:
- None
"""

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
_RESERVED_PATHS = ("/", "/healthz", "/control")


class GatewaySettings(BaseSettings):
    """Axpert gateway configuration.

    Attributes:
        log_level: Root log level (debug, info, warning, error, critical).
        listen_host: Address the HTTP server binds to.
        listen_port: Port the HTTP server listens on.
        metrics_path: Path under which metrics are exposed.
        poll_interval_s: Seconds between the starts of two poll cycles.
        metrics_enabled: Start the poller.  When disabled the metrics
            endpoint still answers, and the settings cache stays empty.
        control_enabled: Accept control commands.  Disabled by default.
        connector_factory: ``module:attribute`` path of the callable that
            opens the inverter connectors.
        simulated_inverters: Number of inverters the simulator factory
            creates.
    """

    model_config = SettingsConfigDict(
        env_prefix="AXPERT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "info"
    listen_host: str = "0.0.0.0"
    listen_port: int = 8080
    metrics_path: str = "/metrics"
    poll_interval_s: int = 30
    metrics_enabled: bool = True
    control_enabled: bool = False
    connector_factory: str = "gateway.src.simulator:open_simulated_connectors"
    simulated_inverters: int = 1

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Normalise the log level and reject unknown names."""
        level = v.strip().lower()
        if level not in _LOG_LEVELS:
            raise ValueError(
                f"AXPERT_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)} (got: {v!r})"
            )
        return level

    @field_validator("listen_port")
    @classmethod
    def listen_port_must_be_valid(cls, v: int) -> int:
        """Validate the HTTP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("AXPERT_LISTEN_PORT must be between 1 and 65535")
        return v

    @field_validator("metrics_path")
    @classmethod
    def metrics_path_must_be_free(cls, v: str) -> str:
        """Require an absolute path that does not shadow another route."""
        if not v.startswith("/"):
            raise ValueError("AXPERT_METRICS_PATH must start with '/'")
        if v in _RESERVED_PATHS or v == "/api" or v.startswith("/api/"):
            raise ValueError(f"AXPERT_METRICS_PATH {v!r} collides with a built-in route")
        return v

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_positive(cls, v: int) -> int:
        """Validate the poll interval is at least one second."""
        if v < 1:
            raise ValueError("AXPERT_POLL_INTERVAL_S must be >= 1")
        return v

    @field_validator("simulated_inverters")
    @classmethod
    def simulated_inverters_must_be_valid(cls, v: int) -> int:
        """Validate the simulator count is between 1 and 16."""
        if v < 1 or v > 16:
            raise ValueError("AXPERT_SIMULATED_INVERTERS must be between 1 and 16")
        return v

    @model_validator(mode="after")
    def _connector_factory_must_be_import_path(self) -> "GatewaySettings":
        """Require the ``module:attribute`` form for the connector factory."""
        module_name, sep, attr = self.connector_factory.partition(":")
        if not (module_name and sep and attr):
            raise ValueError(
                "AXPERT_CONNECTOR_FACTORY must look like 'module:attribute'"
            )
        return self
