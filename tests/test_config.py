from pathlib import Path

import pytest

from src.config import Settings, get_settings, reset_settings


class TestSettings:
    """Test Settings class field defaults and computed properties."""

    def test_tracking_defaults(self):
        s = Settings(_env_file=None)
        assert s.geofence_radius_meters == 150.0
        assert s.tick_interval_seconds == 30.0
        assert s.location_min_distance_meters == 50.0
        assert s.location_min_interval_seconds == 60.0
        assert s.completion_flash_seconds == 5.0
        assert s.positions_history_limit == 500

    def test_tracking_overrides_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GEOFENCE_RADIUS_METERS", "80")
        monkeypatch.setenv("TICK_INTERVAL_SECONDS", "5")
        s = Settings(_env_file=None)
        assert s.geofence_radius_meters == 80.0
        assert s.tick_interval_seconds == 5.0

    def test_hosting_defaults(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("MCP_AUTH_TOKEN", raising=False)
        s = Settings(_env_file=None)
        assert s.mcp_transport == "stdio"
        assert s.mcp_port == 8000
        assert s.mcp_auth_token is None

    def test_auth_token_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MCP_AUTH_TOKEN", "t" * 40)
        s = Settings(_env_file=None)
        assert s.mcp_auth_token == "t" * 40

    def test_watch_options(self):
        s = Settings(_env_file=None, watch_timeout_ms=5000, watch_high_accuracy=False)
        assert s.watch_options == {
            "enable_high_accuracy": False,
            "timeout": 5000,
            "maximum_age": 0,
        }

    def test_location_permission_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("LOCATION_PERMISSION", raising=False)
        assert Settings(_env_file=None).location_permission == "granted"

    def test_default_data_dir(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("DATA_DIR", raising=False)
        s = Settings(_env_file=None)
        # Project-relative, not CWD-relative
        expected = Path(__file__).resolve().parent.parent / "data"
        assert s.data_dir == expected

    def test_custom_data_dir(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DATA_DIR", "/tmp/custom")
        s = Settings(_env_file=None)
        assert s.data_dir == Path("/tmp/custom")

    def test_custom_log_level(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        s = Settings(_env_file=None)
        assert s.log_level == "DEBUG"

    def test_db_path_computed(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DATA_DIR", "/srv/data")
        s = Settings(_env_file=None)
        assert s.db_path == Path("/srv/data/tracking.db")

    def test_unknown_env_ignored(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SOMETHING_ELSE", "x")
        Settings(_env_file=None)


class TestGetSettings:
    """Test the lazy singleton get_settings / reset_settings."""

    def test_get_settings_returns_settings(self):
        assert isinstance(get_settings(), Settings)

    def test_get_settings_is_singleton(self):
        s1 = get_settings()
        s2 = get_settings()
        assert s1 is s2

    def test_reset_settings_clears_cache(self):
        s1 = get_settings()
        reset_settings()
        s2 = get_settings()
        assert s1 is not s2
