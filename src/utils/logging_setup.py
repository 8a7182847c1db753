"""
Structured logging for the consensus engine.

All modules obtain their logger through ``get_trading_logger(name)`` (or the
``TradingLoggerMixin`` for classes) and log with keyword context::

    logger = get_trading_logger("fusion")
    logger.info("Fusion complete", probability=0.61, confidence=0.74)

``setup_logging`` configures structlog once per process; it is called lazily
the first time a logger is requested so library users get sensible output
without any explicit setup.
"""

import logging
import sys
from typing import Any, Optional

import structlog

_configured = False


def setup_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Level name (DEBUG, INFO, ...). Defaults to
                   ``settings.logging.log_level``.
        json_logs: Render JSON lines instead of the console renderer.
                   Defaults to ``settings.logging.json_logs``.
    """
    global _configured

    # Imported here to avoid a settings <-> logging import cycle
    from src.config.settings import settings

    level_name = (log_level or settings.logging.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    use_json = settings.logging.json_logs if json_logs is None else json_logs

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_trading_logger(name: str) -> Any:
    """Return a structlog logger bound to *name*."""
    if not _configured:
        setup_logging()
    return structlog.get_logger(name).bind(component=name)


def log_error_with_context(logger: Any, message: str, error: Exception, **context: Any) -> None:
    """Log *error* with its type and any extra keyword context."""
    logger.error(
        message,
        error=str(error),
        error_type=type(error).__name__,
        **context,
    )


class TradingLoggerMixin:
    """Gives a class a lazily created ``self.logger`` named after the class."""

    @property
    def logger(self) -> Any:
        existing = self.__dict__.get("_logger")
        if existing is None:
            existing = get_trading_logger(type(self).__name__)
            self.__dict__["_logger"] = existing
        return existing
