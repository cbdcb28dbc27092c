"""
Entry point for ytdlp-mcp.

Run this file directly to start a server:
    python main.py                      # HTTP API (uvicorn)
    TRANSPORT=stdio python main.py      # MCP over stdio

Or use uvicorn directly:
    uvicorn ytdlp_mcp.main:app --host 127.0.0.1 --port 8000
"""

import uvicorn

from ytdlp_mcp.config import get_settings
from ytdlp_mcp.logging_config import configure_logging
from ytdlp_mcp.mcp_server import run_stdio


def main() -> None:
    """
    Start the configured transport.

    Server configuration can be overridden via environment variables:
    - TRANSPORT: "http" (default) or "stdio"
    - HOST: Server host (default: 127.0.0.1)
    - PORT: Server port (default: 8000)
    - LOG_LEVEL: Logging level (default: info)
    """
    settings = get_settings()

    if settings.transport.lower() == "stdio":
        run_stdio()
        return

    configure_logging(settings.log_level)
    uvicorn.run(
        "ytdlp_mcp.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
