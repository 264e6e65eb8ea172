"""Main entry point for the sync service.

Starts the FastAPI + Socket.IO server with uvicorn.
"""

import logging

import uvicorn

from sync_service.config import get_config
from sync_service.observability.logger import setup_logging
from sync_service.server import create_app

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point for the sync service."""
    config = get_config()
    setup_logging(
        level=config.observability.log_level,
        json_output=config.observability.log_json,
    )

    host = config.server.host
    port = config.server.port
    logger.info(f"Starting sync service on {host}:{port}")

    app = create_app(config)

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=config.observability.log_level.lower(),
        access_log=True,
    )

    server = uvicorn.Server(server_config)
    server.run()


if __name__ == "__main__":
    main()
