import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from src.clients.location import PushLocationProvider
from src.engine.manager import TrackingManager
from src.storage.database import DatabaseManager
from src.storage.sink import DatabaseSink

logger = logging.getLogger(__name__)

_db: DatabaseManager | None = None
_provider: PushLocationProvider | None = None
_manager: TrackingManager | None = None


def get_db() -> DatabaseManager:
    """Get the current DatabaseManager instance. Raises if not initialized."""
    if _db is None:
        raise RuntimeError("Database not initialized. Server lifespan has not started.")
    return _db


def get_provider() -> PushLocationProvider:
    """Get the in-process location provider fed by ``report_position``."""
    if _provider is None:
        raise RuntimeError("Location provider not initialized. Server lifespan has not started.")
    return _provider


def get_manager() -> TrackingManager:
    """Get the TrackingManager owning the active session."""
    if _manager is None:
        raise RuntimeError("Tracking manager not initialized. Server lifespan has not started.")
    return _manager


def _reset_db() -> None:
    """Clear the module-level DB reference. Used in tests."""
    global _db  # noqa: PLW0603
    _db = None


def _reset_tracking() -> None:
    """Clear the module-level provider and manager. Used in tests."""
    global _provider, _manager  # noqa: PLW0603
    _provider = None
    _manager = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Manage async resources (database, provider, tracking) for the server lifecycle."""
    global _db, _provider, _manager  # noqa: PLW0603
    from src.config import get_settings

    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    _db = DatabaseManager(settings.db_path)
    await _db.initialize()
    logger.info("Database initialized")

    sink = DatabaseSink(_db)
    _provider = PushLocationProvider(permission=settings.location_permission)
    _manager = TrackingManager(_provider, sink=sink, notifier=sink, settings=settings)

    try:
        yield {"db": _db, "manager": _manager}
    finally:
        # Release the watch before the database goes away
        await _manager.close()
        _manager = None
        _provider = None
        await _db.close()
        _db = None
        logger.info("Database closed")


mcp = FastMCP("trip-tracker", lifespan=app_lifespan)


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:
    """Liveness check for remote hosting."""
    return JSONResponse({"status": "ok"})


def setup_logging(log_level: str, data_dir: Path) -> None:
    """Configure logging with file rotation and console output.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        data_dir: Base data directory — logs go to data_dir/logs/server.log.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler; exact type check skips StreamHandler subclasses
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_dir = data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "server.log"

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def initialize() -> FastMCP:
    """Set up directories, logging, auth, and register tools. Returns the MCP server."""
    from src.config import get_settings

    settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / "logs").mkdir(exist_ok=True)

    setup_logging(settings.log_level, settings.data_dir)

    from src.auth import BearerTokenVerifier

    mcp.auth = BearerTokenVerifier.from_settings(settings)

    from src.tools.tracking import register_tracking_tools

    register_tracking_tools(mcp)

    logger.info("Trip tracker MCP server initialized")
    return mcp
