"""Structured logging with per-query context using structlog and contextvars."""

import logging
from contextvars import ContextVar

import structlog

# Context variable for the query currently being streamed
current_query_id: ContextVar[str | None] = ContextVar("current_query_id", default=None)

_configured = False


def setup_structured_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog on top of stdlib logging with per-query context.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Emit JSON lines instead of the console key=value renderer
    """
    global _configured
    if _configured:
        return

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # Inject query context
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    _configured = True


def bind_query_context(query_id: str) -> None:
    """Bind the query id for all subsequent logs in this async context.

    Args:
        query_id: Identifier of the query being streamed
    """
    current_query_id.set(query_id)
    structlog.contextvars.bind_contextvars(query_id=query_id)


def clear_query_context() -> None:
    """Clear query context after a session ends."""
    current_query_id.set(None)
    structlog.contextvars.unbind_contextvars("query_id")


def get_query_logger(name: str = "ask_stream") -> structlog.stdlib.BoundLogger:
    """Get a structlog logger carrying the query context.

    Before setup_structured_logging() runs (e.g. when used as a library), the
    logger renders key=value lines into the plain stdlib logger so the host
    application's logging configuration decides what is shown.

    Args:
        name: Logger name

    Returns:
        Bound logger with query context
    """
    if _configured:
        return structlog.get_logger(name)
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def get_current_query_id() -> str | None:
    """Get the current query ID from context."""
    return current_query_id.get()
