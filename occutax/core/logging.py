import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

# Third-party loggers that are only interesting when debugging
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncpg", "uvicorn.access")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog and route stdlib logging through it.

    ``level`` and ``json_logs`` override ``LOG_LEVEL`` and ``JSON_LOGS``.
    ``LOG_FILE`` adds a file handler next to stdout. Handlers are
    attached only while the root logger has none; the level is always applied.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_logs is None:
        json_logs = _env_flag("JSON_LOGS")

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        renderer: Any = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    if not root.handlers:
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        log_file = os.getenv("LOG_FILE")
        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(path, encoding="utf-8"))
        logging.basicConfig(format="%(message)s", handlers=handlers)
    root.setLevel(level)

    quiet_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
