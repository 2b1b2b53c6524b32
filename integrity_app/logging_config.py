from __future__ import annotations
import logging
import sys
import structlog

def configure_logging(debug: bool = False, stream=None) -> None:
    """Route structlog and stdlib logging as JSON lines; stderr by default so CLI stdout stays clean."""
    out = stream or sys.stderr
    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=out, level=level)
