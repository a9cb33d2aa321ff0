"""Streaming query session engine for SSE-based ask endpoints."""

from .accumulator import ResultAccumulator, RoundState
from .client import ChatClient
from .config import get_settings
from .connection import BackoffPolicy, ConnectionManager, backoff_delay
from .correlator import SessionCorrelator
from .dispatcher import MessageDispatcher
from .exceptions import AskStreamError, RetriesExhaustedError, SessionStateError, TransportError
from .models import Annotation, AnnotationKind, GenerateMode, MessageType, QueryRequest, ResultItem
from .renderer import BaseRenderer, Renderer
from .session import QuerySession, SessionState
from .transport import HttpxTransport, StreamTransport

__all__ = [
    "ChatClient",
    "QuerySession",
    "SessionState",
    "ConnectionManager",
    "BackoffPolicy",
    "backoff_delay",
    "SessionCorrelator",
    "MessageDispatcher",
    "ResultAccumulator",
    "RoundState",
    "Renderer",
    "BaseRenderer",
    "HttpxTransport",
    "StreamTransport",
    "QueryRequest",
    "ResultItem",
    "Annotation",
    "AnnotationKind",
    "GenerateMode",
    "MessageType",
    "get_settings",
    "AskStreamError",
    "TransportError",
    "RetriesExhaustedError",
    "SessionStateError",
]
