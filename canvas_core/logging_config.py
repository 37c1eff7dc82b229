"""
Structured logging setup.

Modules log through ``structlog.get_logger(__name__)``; this module wires
structlog onto the standard library logging tree once per process.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog with flat console output (or JSON lines).

    Args:
        settings: Settings to read level/format from (defaults to get_settings())

    Returns:
        A logger bound to the ``canvas`` namespace
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level, logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # uvicorn keeps its own handlers; only align the level
    logging.getLogger("uvicorn").setLevel(level)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return structlog.get_logger("canvas")
