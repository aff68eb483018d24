"""Logging for the provisioning run and the monitor process.

Both entry points normally run unattended from the task scheduler, where
stdout is discarded, so structlog events go through stdlib logging to a
rotating JSON file as well as the console.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import structlog

from nodewarden.config import get_settings

_HANDLER_NAME = "nodewarden"

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def setup_logging(log_file: Optional[str | Path] = None) -> None:
    """Configure structlog and attach console and file handlers to the root logger.

    ``log_file`` overrides ``nodewarden_log_file``; an empty value disables
    the file handler. Calling this again replaces the previous handlers.
    """
    settings = get_settings()
    level = getattr(logging, settings.nodewarden_log_level.upper(), logging.INFO)
    target = settings.nodewarden_log_file if log_file is None else log_file

    if settings.nodewarden_env == "production":
        console_renderer = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(console_renderer))
    handlers: list[logging.Handler] = [console]

    if target:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=settings.nodewarden_log_max_bytes,
            backupCount=settings.nodewarden_log_backups,
            encoding="utf-8",
        )
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    root = logging.getLogger()
    for handler in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.set_name(_HANDLER_NAME)
        root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)
