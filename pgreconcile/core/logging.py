import logging

import structlog

from pgreconcile.core.config import settings


def configure_logging(log_level=None, use_json=None):
    """
    Configure structlog based on settings from config.py which loads from .env files.

    Configuration:
        LOG_LEVEL: Sets the logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Default is INFO.
        LOG_JSON_FORMAT: When set to True, logs will be output in JSON format. Default is False (console format).

    Explicit arguments override the settings, which is how the CLI applies ``--log-level`` and ``--json``.

    Returns:
        A configured structlog logger
    """
    log_level = (log_level or settings.LOG_LEVEL).upper()
    use_json = settings.LOG_JSON_FORMAT if use_json is None else use_json

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False, exception_formatter=structlog.dev.plain_traceback),
        ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(message)s",
        force=True,
    )
    # pyinfra is chatty at INFO when driven from the deploy entry point
    logging.getLogger("pyinfra").setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name=None, **context) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger with optional context.

    Args:
        name: Optional name for the logger
        **context: Additional context to bind to the logger

    Returns:
        A configured structlog logger with bound context
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger
