"""structlog JSON logging setup and log-safe helpers."""

import logging
import re
import sys

import structlog

from lottery_api.utils.sanitize import loggable

# Event keys whose values never reach a log line
SENSITIVE_KEYS = frozenset({"password", "password_hash", "authorization", "credentials"})

_DSN_PASSWORD = re.compile(r"(postgres(?:ql)?://[^:/@]*:)[^@]+(@)")


def redact_dsn(url: str) -> str:
    """Mask the password in a PostgreSQL URL."""
    return _DSN_PASSWORD.sub(r"\1***\2", url)


def _rename_logger_to_module(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    """Rename 'logger' key to 'module' for structured log field consistency."""
    if "logger" in event_dict:
        event_dict["module"] = event_dict.pop("logger")
    return event_dict


def _redact_sensitive(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(log_level: str = "info", json_format: bool = True) -> None:
    """Configure structlog for JSON or human-readable output."""
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _rename_logger_to_module,
        _redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

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
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Quiet noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def log_validation_error(field: str, value: object, message: str) -> None:
    """Emit a ``validation_failed`` event with a log-safe rendering of *value*."""
    structlog.get_logger().warning(
        "validation_failed",
        field=field,
        value=loggable(value),
        reason=message,
    )
