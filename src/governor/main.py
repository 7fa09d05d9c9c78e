"""Main entry point: serves the operations API around one executor."""

import asyncio
import logging

import uvicorn
from dotenv import load_dotenv

from governor.api.app import create_app
from governor.config import get_settings
from governor.executor import RateLimitedExecutor

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def serve() -> None:
    """Build the executor, hand it to the app and run until shutdown."""
    settings = get_settings()
    executor = RateLimitedExecutor.from_settings(settings)
    app = create_app(settings=settings, executor=executor)

    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    logger.info(f"Outbound governor listening on {settings.api_host}:{settings.api_port}")
    await server.serve()


def main() -> None:
    """Main entry point."""
    load_dotenv()
    configure_logging(get_settings().log_level)
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Outbound governor stopped")


if __name__ == "__main__":
    main()
