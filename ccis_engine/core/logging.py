"""
Logging configuration

Engine modules log through ``logging.getLogger(__name__)``. The host
application calls ``setup_logging()`` once at startup to route those records
into loguru. Domain events published by the progression service go to the
``ccis_engine.events`` logger and, when EVENT_LOG_PATH is set, are also
written as JSON lines to a separate event log.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from ccis_engine.core.config import Settings, settings as default_settings

EVENT_LOGGER = "ccis_engine.events"


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging and redirect to loguru
    """

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        # loguru names records after the calling module; keep the stdlib logger name too
        logger.bind(source=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def is_event_record(record) -> bool:
    return record["extra"].get("source") == EVENT_LOGGER


def setup_logging(config: Optional[Settings] = None):
    """Configure loguru sinks and intercept standard logging"""
    config = config or default_settings

    logger.remove()

    logger.add(
        sys.stdout,
        enqueue=True,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=config.LOG_LEVEL,
    )

    if config.ENVIRONMENT == "production":
        log_path = Path(config.LOG_DIR)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "ccis_engine_{time:YYYY-MM-DD}.log",
            rotation="500 MB",
            retention="30 days",
            enqueue=True,
            serialize=False,
            level=config.LOG_LEVEL,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )

    if config.EVENT_LOG_PATH:
        Path(config.EVENT_LOG_PATH).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.EVENT_LOG_PATH,
            enqueue=True,
            serialize=True,
            level="INFO",
            filter=is_event_record,
        )

    # Intercept everything at the root logger
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(config.LOG_LEVEL)

    # Remove every other logger's handlers and propagate to root logger
    for name in logging.root.manager.loggerDict.keys():
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    logger.info(
        f"Logging configured - Level: {config.LOG_LEVEL}, Environment: {config.ENVIRONMENT}, "
        f"event log: {config.EVENT_LOG_PATH or 'disabled'}"
    )
