from __future__ import annotations
import logging
import sys
from typing import Callable
import structlog

def configure_logging(debug: bool = True, json: bool = True) -> None:
    timestamper = structlog.processors.TimeStamper(fmt="iso")

    renderer = (
        # JSON renderer for machine-readable logs
        structlog.processors.JSONRenderer()
        if json else
        structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        cache_logger_on_first_use=True,
    )

    # logs go to stderr; stdout carries scan output
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.INFO,
    )

def structlog_diagnostics(event: str = "scanner.debug") -> Callable[[str], None]:
    """on_debug sink forwarding each diagnostic message to structlog."""
    log = structlog.get_logger()

    def sink(message: str) -> None:
        log.debug(event, msg=message)

    return sink
