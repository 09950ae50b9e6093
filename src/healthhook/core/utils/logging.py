"""
Logging setup for healthhook.

Everything in healthhook logs through loguru.  APScheduler logs through the
standard library, so its records are forwarded into loguru with a separate
threshold: at INFO it announces every job run, which drowns out sync output.
"""

import logging
import sys

from loguru import logger

SCHEDULER_LOGGER = "apscheduler"


class _LoguruForwarder(logging.Handler):
    """Standard-library handler that re-emits records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.bind(source=record.name).opt(exception=record.exc_info).log(level, record.getMessage())


def forward_scheduler_logs(level: str = "WARNING") -> logging.Handler:
    """Route APScheduler's records at ``level`` and above into loguru.

    Calling it again replaces the previous forwarder instead of stacking another.
    """
    std_logger = logging.getLogger(SCHEDULER_LOGGER)
    for handler in list(std_logger.handlers):
        if isinstance(handler, _LoguruForwarder):
            std_logger.removeHandler(handler)
    handler = _LoguruForwarder()
    std_logger.addHandler(handler)
    std_logger.setLevel(level.upper())
    std_logger.propagate = False
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    scheduler_level: str = "WARNING",
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Configure loguru sinks for the sync engine.

    Args:
        level: Minimum level for healthhook's own messages.
        log_file: Path to a log file. If None, only logs to stderr.
        scheduler_level: Minimum level for forwarded APScheduler records.
        rotation: Log file rotation size.
        retention: How long to keep rotated logs.
    """
    logger.remove()
    logger.configure(extra={"source": "healthhook"})
    logger.add(sys.stderr, level=level, format="<level>[{level.name}]</level> <cyan>{extra[source]}</cyan> {message}")

    if log_file:
        logger.add(
            log_file,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[source]} | {name}:{line} | {message}",
            rotation=rotation,
            retention=retention,
            enqueue=True,
        )

    forward_scheduler_logs(scheduler_level)
