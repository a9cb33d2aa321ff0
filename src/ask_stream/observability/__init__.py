"""Observability module for per-query structured logging."""

from .logging import bind_query_context, clear_query_context, get_current_query_id, get_query_logger, setup_structured_logging

__all__ = [
    "bind_query_context",
    "clear_query_context",
    "get_current_query_id",
    "get_query_logger",
    "setup_structured_logging",
]
