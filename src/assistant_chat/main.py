"""Console entry point: serve the app with uvicorn."""

import sys

import uvicorn
from structlog import get_logger

from .config import Settings
from .domain.errors import ConfigurationError
from .logging_config import configure_logging

logger = get_logger()


def run() -> None:
    """Fails fast when required configuration is missing."""
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        configure_logging()
        logger.error("startup_configuration_error", error=str(e))
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_json)
    uvicorn.run(
        "assistant_chat.api.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
