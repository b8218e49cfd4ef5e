"""structlog configuration for processes that own a cache engine.

kache only emits events through structlog.get_logger(); it never
configures logging on import. Call configure_logging() once at startup.
"""

import logging
import sys

import structlog


def configure_logging(level: int | str = logging.INFO, *, json: bool = False) -> None:
    """Route structlog through the stdlib logging module.

    Args:
        level: Minimum level for emitted events
        json: Render JSON lines instead of the console format
    """
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger("kache").setLevel(level)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
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
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
