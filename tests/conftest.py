import pytest

from src.config import Settings, reset_settings
from src.storage.database import DatabaseManager


@pytest.fixture(autouse=True)
def _reset_cached_settings():
    """Keep the Settings singleton from leaking between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Provide a temporary data directory for tests that touch the filesystem."""
    return tmp_path / "data"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, data_dir=tmp_path / "data")


@pytest.fixture
async def db():
    """In-memory SQLite database with schema applied."""
    manager = DatabaseManager(":memory:")
    await manager.initialize()
    yield manager
    await manager.close()
