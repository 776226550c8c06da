from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env file.

    Covers three areas:

    1. **Hosting** — MCP transport, bind address and optional bearer token.
    2. **Tracking** — geofence radius, re-evaluation tick and the throttling
       thresholds that decide when a GPS ping is worth persisting.
    3. **Storage & logging** — data directory (SQLite DB + rotating logs).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote hosting
    mcp_transport: str = "stdio"
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8000
    mcp_auth_token: str | None = None

    # Geofence and re-evaluation
    geofence_radius_meters: float = 150.0
    tick_interval_seconds: float = 30.0

    # Location persistence throttle
    location_min_distance_meters: float = 50.0
    location_min_interval_seconds: float = 60.0

    # UI hints
    completion_flash_seconds: float = 5.0
    positions_history_limit: int = 500

    # Watch options handed to the location provider
    watch_timeout_ms: int = 10_000
    watch_high_accuracy: bool = True

    # Permission state reported by the in-process push provider
    location_permission: str = "granted"

    # Paths & logging; default is <project_root>/data so it works
    # regardless of the process working directory.
    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    log_level: str = "INFO"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def db_path(self) -> Path:
        return self.data_dir / "tracking.db"

    @property
    def watch_options(self) -> dict:
        """Options passed to ``watch_position`` (maximum_age 0 = no cached fixes)."""
        return {
            "enable_high_accuracy": self.watch_high_accuracy,
            "timeout": self.watch_timeout_ms,
            "maximum_age": 0,
        }


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
