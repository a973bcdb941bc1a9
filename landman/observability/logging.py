"""
Structured logging configuration using structlog.
JSON output for production, coloured console for dev. Used by the API,
the RQ worker and the task scheduler process alike.
"""

import logging
import sys

import structlog

# Event keys whose values must never reach a log line
SECRET_KEYS = frozenset({"password", "encrypted_password", "api_key", "token", "credentials"})


def redact_secrets(logger, method_name, event_dict):
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def _add_service(service: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        return event_dict
    return processor


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    db_echo: bool = False,
    service: str = "landman",
) -> None:
    """Configure structlog for the process. Call once at startup."""

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        _add_service(service),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Quieten noisy libraries; httpx would log portal URLs with tokens
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("rq.worker").setLevel(logging.WARNING if not debug else logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if db_echo else logging.WARNING
    )


def setup_logging_from_settings(settings, service: str = "landman-api") -> None:
    setup_logging(
        level=settings.LOG_LEVEL,
        debug=settings.DEBUG,
        db_echo=settings.DB_ECHO,
        service=service,
    )
