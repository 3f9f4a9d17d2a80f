"""Structlog setup for the progress service.

Every record goes through one processor chain (structlog and foreign stdlib
records alike) and is rendered to:
- stdout, as colored console output or JSON
- ``<app_name>.log`` and ``<app_name>.error.log``, always JSON, rotated

Events inside a ``ProgressContext`` carry its operation_id, student_id and
course_instance_id.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor

from coursetrack.core.context import get_context


if TYPE_CHECKING:
    from coursetrack.config.settings import Settings


# Driver loggers kept at WARNING
_QUIET_LOGGERS = ("cassandra", "redis")

_SENSITIVE_KEYS = frozenset({"password", "secret", "token", "credentials"})

# Values up to this length are fully masked
_MIN_MASK_LENGTH = 4


def add_context_processor(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add the current progress operation context to the event."""
    event_dict.update(get_context())
    return event_dict


def filter_sensitive_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask secrets such as the Cassandra password."""

    def mask(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: mask(k, v) for k, v in value.items()}
        if not isinstance(value, str) or not any(
            sensitive in key.lower() for sensitive in _SENSITIVE_KEYS
        ):
            return value
        if len(value) <= _MIN_MASK_LENGTH:
            return "***"
        return f"{value[:2]}{'*' * (len(value) - _MIN_MASK_LENGTH)}{value[-2:]}"

    return {key: mask(key, value) for key, value in event_dict.items()}


def build_shared_processors(settings: "Settings") -> list[Processor]:
    """Processor chain shared by structlog loggers and foreign records."""
    app_info = {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }

    def add_app_info(
        logger: logging.Logger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.update(app_info)
        return event_dict

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_processor,
        add_app_info,
        filter_sensitive_data,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.log_include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            )
        )
    return processors


def _attach(
    root: logging.Logger,
    handler: logging.Handler,
    level: str,
    renderer: Processor,
    shared: list[Processor],
) -> None:
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared)
    )
    root.addHandler(handler)


def configure_structlog(
    settings: "Settings",
    log_dir: Path | str | None = None,
) -> None:
    """Configure structlog and the root logger handlers.

    Args:
        settings: Application settings.
        log_dir: Directory for log files. Defaults to ``settings.log_dir``.
    """
    log_dir = Path(log_dir if log_dir is not None else settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    shared = build_shared_processors(settings)
    json_renderer = structlog.processors.JSONRenderer()
    console_renderer: Processor = (
        json_renderer
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, settings.log_level.upper()))

    _attach(
        root, logging.StreamHandler(sys.stdout), settings.log_level, console_renderer, shared
    )
    for suffix, level in (("log", settings.log_level), ("error.log", "ERROR")):
        handler = RotatingFileHandler(
            filename=str(log_dir / f"{settings.app_name}.{suffix}"),
            maxBytes=settings.log_file_max_bytes,
            backupCount=settings.log_file_backup_count,
            encoding="utf-8",
        )
        _attach(root, handler, level, json_renderer, shared)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)
