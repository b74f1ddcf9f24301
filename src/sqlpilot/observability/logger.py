"""
observability/logger.py — SQLPilot Structured Logger

Sets up structlog with:
  - JSON output to rotating log files
  - Human-readable output to console (dev mode) or JSON (prod mode)
  - Consistent fields on every log line: timestamp, level, event, run_id

Usage:
    from sqlpilot.observability.logger import get_logger, setup_logging

    setup_logging(level="INFO", log_dir="./data/logs")   # call once at startup
    log = get_logger(__name__)
    log.info("decider.step_proposed", action="execute_sql", step=2)
    log.warning("policy.decision", category="denied", reason="requires admin")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: bool = True,
    console_output: bool = True,
    max_bytes: int = 100 * 1024 * 1024,   # 100 MB
    backup_count: int = 5,
) -> None:
    """
    Configure structlog and stdlib logging. Call once at application startup.

    Args:
        level:          Log level string — DEBUG | INFO | WARNING | ERROR | CRITICAL
        log_dir:        Directory for rotating log files.
        json_format:    If True, console also emits JSON (production mode).
                        If False, console uses coloured human-readable format.
        console_output: Whether to emit logs to stderr at all.
        max_bytes:      Max size of each log file before rotation.
        backup_count:   Number of rotated log files to keep.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    handlers: list[logging.Handler] = []

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_dir / "sqlpilot.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)
    handlers.append(file_handler)

    # stdout belongs to the CLI's rendered output
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        handlers.append(console_handler)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=handlers,
        force=True,
    )

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors
        + [
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
        foreign_pre_chain=shared_processors,
    )

    for handler in handlers:
        handler.setFormatter(formatter)


def get_logger(name: str = "sqlpilot", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a bound logger with optional initial context values.

    Example:
        log = get_logger(__name__, component="policy_gate")
        log.info("policy.decision", action="execute_sql")
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_run(run_id: str, user_id: str) -> None:
    """
    Bind run context to all subsequent log calls in this async context.

    structlog's contextvars integration attaches the values to every log
    line emitted by this coroutine and its children. Concurrent runs each
    live in their own task and therefore their own context.
    """
    structlog.contextvars.bind_contextvars(run_id=run_id, user_id=user_id)


def clear_run() -> None:
    """Clear run context vars at the end of a request."""
    structlog.contextvars.clear_contextvars()
