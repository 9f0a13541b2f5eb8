"""Structured logging configuration using structlog.

Engine, executor and integration modules log through structlog with
key-value fields; API, service and trigger modules use stdlib
``logging``. Both end up on one stdout handler, rendered as colored
console lines in development (or ``LOG_FORMAT=text``) and JSON lines
everywhere else. Fields bound with ``structlog.contextvars`` (the
request id, a run's ``execution_id``/``workflow_id``) appear on every
line emitted while they are bound, including stdlib records.
"""

import logging
import sys
from typing import Optional

import structlog
from app.config import Settings, get_settings

# Loggers that are chatty at INFO and add nothing to a run's trail
_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiosqlite", "redis")


def _service_context(settings: Settings):
    service = settings.APP_NAME
    environment = settings.ENVIRONMENT

    def add_service_context(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service_context


def _renderer(settings: Settings, log_format: str):
    if settings.is_development or log_format == "text":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    # Step outputs may carry datetimes or other non-JSON values
    return structlog.processors.JSONRenderer(default=str)


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structured logging for the entire application.

    Args:
        level: Overrides ``LOG_LEVEL``
        log_format: Overrides ``LOG_FORMAT`` (``json`` or ``text``)
    """
    settings = get_settings()
    log_format = (log_format or settings.LOG_FORMAT).lower()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_context(settings),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format != "text" and not settings.is_development:
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(settings, log_format),
        ],
        foreign_pre_chain=shared_processors,
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if settings.SQLALCHEMY_ECHO else logging.WARNING
    )
