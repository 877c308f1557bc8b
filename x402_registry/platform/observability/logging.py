"""Structured logging on top of the stdlib ``logging`` module.

Modules keep using ``logging.getLogger(__name__)``; structlog's
``ProcessorFormatter`` renders every record, as JSON outside local
development and as coloured console lines locally. Each entry carries the
service name and, inside a request, its correlation id.
"""

import logging
import sys
from contextvars import ContextVar

import structlog

from x402_registry.platform.constants import SERVICE_NAME

# Set per request by the correlation middleware, read by log processors and outbound hooks
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "uvicorn.access",
    "sqlalchemy.engine.Engine",
)


def add_correlation_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_service_name(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_service_name,
        add_correlation_id,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(log_level: str, json_output: bool = True) -> None:
    """Route all stdlib logging through structlog.

    Args:
        log_level: Root level name (INFO, DEBUG, ...)
        json_output: JSON lines when True, console rendering when False
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
