"""Structured logging for the scheduler.

Events are snake_case names with key/value context, e.g.
``logger.info("lesson_scheduled", activity_id=..., room_id=...)``. Every
module gets its logger from get_logger(__name__), which tags events with the
module name. Output format and level come from SchedulerConfig
(SCHEDULER_LOG_JSON, SCHEDULER_LOG_LEVEL); call setup_logging() once at
startup.
"""

import logging

import structlog

from scheduler.config import SchedulerConfig, get_config


def _processors(json_output: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        # One line per event: tracebacks go into the "exception" field.
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.set_exc_info)
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def setup_logging(config: SchedulerConfig | None = None) -> None:
    """Configure structlog from the scheduler configuration.

    Args:
        config: Settings to use. Defaults to get_config().
    """
    config = config or get_config()
    level = logging.getLevelNamesMapping()[config.log_level]

    structlog.configure(
        processors=_processors(config.log_json),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger whose events carry ``logger=<name>``.

    Args:
        name: Logger name (typically __name__ from calling module).
    """
    return structlog.get_logger().bind(logger=name)
