"""structlog setup for worker processes."""

import logging

import structlog


def configure_logging(json_logs: bool = True, level: str = "INFO") -> None:
    """Configure structlog for the hosting worker process.

    Args:
        json_logs: Render JSON lines (production) instead of console output
        level: Minimum log level name
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )
