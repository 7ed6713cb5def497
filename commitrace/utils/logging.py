"""Structured logging setup for CommitRace.

Uses structlog with log level and timestamps in every entry. Trial
index and store label are bound by the callers.
"""

import logging

import structlog


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog for the harness.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, render logs as JSON. Otherwise use
                     console-friendly output.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    level_num = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, trial_index: int | None = None) -> structlog.BoundLogger:
    """Get a logger bound with a component name and optional trial index.

    Args:
        component: Name of the component requesting the logger.
        trial_index: Optional index of the trial being run.

    Returns:
        A structlog BoundLogger with component and trial_index bound.
    """
    logger = structlog.get_logger()
    logger = logger.bind(component=component)
    if trial_index is not None:
        logger = logger.bind(trial_index=trial_index)
    return logger
