from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED: tuple[str, bool] | None = None


def setup_logging(filename: str | Path | None = None, *, verbose: bool = False) -> structlog.BoundLogger:
    """Set up structured logging for the combine_dir module.

    Diagnostics about skipped directories, skipped files and degraded renders are
    emitted at INFO level, so they only show up in verbose mode. They never end up
    in the combined document.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        verbose: Lower the threshold from WARNING to INFO.

    Returns:
        A structlog logger instance configured for the combine_dir module.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    wanted = (str(filename or ""), verbose)
    if _LOGGING_CONFIGURED != wanted:
        level = logging.INFO if verbose else logging.WARNING
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=level,
            handlers=handlers,
            format="%(message)s",
            force=True,
        )
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )
        _LOGGING_CONFIGURED = wanted

    return structlog.get_logger("combine_dir")


logger = setup_logging()
