"""
Logging configuration for the Fashion Fusion API.

Standard library loggers and structlog loggers share one pipeline: every
record is rendered by structlog's ProcessorFormatter, and the context bound
by RequestLoggingMiddleware (request_id, fusion_session) is merged into each
line logged while that request is handled.

Usage:
    # Structured events
    import structlog
    log = structlog.get_logger(__name__)
    log.info("grid_sliced", cells=9)

    # Standard logging (still gets request_id / fusion_session)
    import logging
    logger = logging.getLogger(__name__)
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from core.config import settings

# Run for structlog events and for foreign (stdlib) records alike
SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]

NOISY_LOGGERS = ("uvicorn.access", "uvicorn.error", "httpx", "httpcore", "google_genai", "PIL")


def build_formatter(json_output: bool) -> structlog.stdlib.ProcessorFormatter:
    """stdlib Formatter that renders records through the structlog chain."""
    if json_output:
        processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback),
        ]
    return structlog.stdlib.ProcessorFormatter(foreign_pre_chain=SHARED_PROCESSORS, processors=processors)


def get_log_level_for_env(environment: str, configured: str) -> int:
    """Explicit LOG_LEVEL wins; development defaults to DEBUG when left at INFO."""
    level = getattr(logging, configured.upper(), logging.INFO)
    if environment == "development" and level == logging.INFO:
        return logging.DEBUG
    return level


def setup_logging():
    """Configure logging for the application."""

    log_level = get_log_level_for_env(settings.environment, settings.log_level)
    json_output = settings.log_format == "json"

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(build_formatter(json_output))
    root_logger.addHandler(console_handler)

    # Rotating JSON files only in production
    if settings.environment == "production":
        log_dir = Path("logs")
        log_dir.mkdir(exist_ok=True)

        file_handler = RotatingFileHandler(log_dir / "fusion.log", maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(build_formatter(json_output=True))
        root_logger.addHandler(file_handler)

        error_handler = RotatingFileHandler(log_dir / "fusion_errors.log", maxBytes=10 * 1024 * 1024, backupCount=5)
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(build_formatter(json_output=True))
        root_logger.addHandler(error_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        level=logging.getLevelName(log_level),
        format=settings.log_format,
        env=settings.environment,
    )
