"""Main entry point - deploys a local protocol and serves the API."""

import logging

import uvicorn

from aggzap.api.app import create_app
from aggzap.config import get_settings

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info("Starting AggZap...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(
        f"Route: {settings.source_network_name} ({settings.source_network_id}) -> "
        f"{settings.destination_network_name} ({settings.destination_network_id})"
    )

    app = create_app()
    logger.info(f"Starting API server on {settings.api_host}:{settings.api_port}")
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
