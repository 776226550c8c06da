"""Run the trip tracker: ``python -m src``."""

import logging

from src.config import Settings, get_settings
from src.server import initialize

logger = logging.getLogger("src")

HTTP_TRANSPORTS = ("streamable-http", "http", "sse")


def run_kwargs(settings: Settings) -> dict:
    """Arguments for ``FastMCP.run`` from the configured transport."""
    transport = settings.mcp_transport
    if transport == "stdio":
        return {}
    if transport in HTTP_TRANSPORTS:
        return {"transport": transport, "host": settings.mcp_host, "port": settings.mcp_port}
    raise ValueError(f"Unsupported MCP transport: {transport!r}")


def main() -> None:
    settings = get_settings()
    kwargs = run_kwargs(settings)
    app = initialize()
    if kwargs:
        logger.info(
            "Serving trip tracker over %s on %s:%d",
            settings.mcp_transport,
            settings.mcp_host,
            settings.mcp_port,
        )
    else:
        logger.info("Serving trip tracker over stdio")
    app.run(**kwargs)


if __name__ == "__main__":  # pragma: no cover
    main()
