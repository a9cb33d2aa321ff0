"""Data models for query requests, stream events, result items and annotations.

The server speaks a closed vocabulary of message kinds. Each kind is its own
model and the union of all of them is discriminated on ``message_type``, so a
payload either decodes to exactly one known event or fails validation.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Annotated, Any, Literal, TypeAlias, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)


class GenerateMode(str, Enum):
    """How the server should shape its answer."""

    LIST = "list"
    SUMMARIZE = "summarize"
    GENERATE = "generate"


class MessageType(str, Enum):
    """Kinds of event the server streams for a query."""

    QUERY_ANALYSIS = "query_analysis"
    REMEMBER = "remember"
    ASKING_SITES = "asking_sites"
    SITE_IS_IRRELEVANT_TO_QUERY = "site_is_irrelevant_to_query"
    ASK_USER = "ask_user"
    ITEM_DETAILS = "item_details"
    RESULT_BATCH = "result_batch"
    INTERMEDIATE_MESSAGE = "intermediate_message"
    SUMMARY = "summary"
    NLWS = "nlws"
    COMPLETE = "complete"


class AnnotationKind(str, Enum):
    """Non-result content published alongside the results of a round."""

    REMEMBER = "remember"
    SOURCES = "sources"
    SITE_IRRELEVANT = "site_irrelevant"
    ASK_USER = "ask_user"
    ITEM_DETAILS = "item_details"
    INTERMEDIATE = "intermediate"
    SUMMARY = "summary"


def _as_text(value: Any) -> Any:
    """Render structured message payloads as JSON text; leave strings alone."""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


# --- Requests ---


class QueryRequest(BaseModel):
    """One query as sent to the server. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    query_id: str = Field(min_length=1)
    query: str
    site: str | None = None
    generate_mode: GenerateMode = GenerateMode.LIST
    prev: tuple[str, ...] = ()
    item_to_remember: str | None = None
    context_url: str | None = None


# --- Results ---


class ResultItem(BaseModel):
    """A single ranked result. Unknown server fields are kept as extras."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    url: str = ""
    name: str | None = None
    description: str | None = None
    score: float = 0.0
    explanation: str | None = None
    time: float | str | None = None
    schema_object: dict[str, Any] | list[Any] | None = None
    site: str | None = None
    site_url: str | None = Field(default=None, alias="siteUrl")

    @field_validator("url", mode="before")
    @classmethod
    def _url_or_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("score", mode="before")
    @classmethod
    def _score_or_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @property
    def schema_objects(self) -> list[dict[str, Any]]:
        """schema_object normalised to a list of mappings."""
        if isinstance(self.schema_object, dict):
            return [self.schema_object]
        if isinstance(self.schema_object, list):
            return [obj for obj in self.schema_object if isinstance(obj, dict)]
        return []

    @property
    def display_name(self) -> str:
        """Name to show: explicit name, then schema keywords, then the url."""
        if self.name:
            return self.name
        for obj in self.schema_objects:
            keywords = obj.get("keywords")
            if isinstance(keywords, list):
                keywords = ", ".join(str(k) for k in keywords)
            if keywords:
                return str(keywords)
        return self.url


def _readable_items(value: Any) -> Any:
    """Validate result entries one at a time, skipping (and logging) unreadable ones.

    A non-list value is returned as is so the field still fails validation.
    """
    if not isinstance(value, list):
        return value
    items = []
    for index, entry in enumerate(value):
        try:
            items.append(ResultItem.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping unreadable result item at index {index}: {e.error_count()} validation errors")
    return items


class Annotation(BaseModel):
    """Informational, non-result content for a round."""

    model_config = ConfigDict(frozen=True)

    kind: AnnotationKind
    text: str


# --- Stream events ---


class _StreamEventBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    query_id: str | None = None

    @field_validator("query_id", mode="before")
    @classmethod
    def _query_id_as_str(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def kind(self) -> MessageType:
        return MessageType(self.message_type)  # type: ignore[attr-defined]


class _TextEvent(_StreamEventBase):
    message: str = ""

    @field_validator("message", mode="before")
    @classmethod
    def _message_as_text(cls, value: Any) -> Any:
        return "" if value is None else _as_text(value)


class QueryAnalysisEvent(_StreamEventBase):
    message_type: Literal["query_analysis"]
    item_to_remember: str | None = None
    decontextualized_query: str | None = None

    @field_validator("item_to_remember", "decontextualized_query", mode="before")
    @classmethod
    def _fields_as_text(cls, value: Any) -> Any:
        return _as_text(value)


class RememberEvent(_TextEvent):
    message_type: Literal["remember"]


class AskingSitesEvent(_TextEvent):
    message_type: Literal["asking_sites"]


class SiteIrrelevantEvent(_TextEvent):
    message_type: Literal["site_is_irrelevant_to_query"]


class AskUserEvent(_TextEvent):
    message_type: Literal["ask_user"]


class ItemDetailsEvent(_TextEvent):
    message_type: Literal["item_details"]


class ResultBatchEvent(_StreamEventBase):
    message_type: Literal["result_batch"]
    results: list[ResultItem] = Field(default_factory=list)

    @field_validator("results", mode="before")
    @classmethod
    def _skip_unreadable_results(cls, value: Any) -> Any:
        return _readable_items(value)


class IntermediateMessageEvent(_TextEvent):
    message_type: Literal["intermediate_message"]


class SummaryEvent(_TextEvent):
    message_type: Literal["summary"]


class NlwsEvent(_StreamEventBase):
    """Authoritative final answer that replaces the round's content."""

    message_type: Literal["nlws"]
    answer: str = ""
    items: list[ResultItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _skip_unreadable_items(cls, value: Any) -> Any:
        return _readable_items(value)

    @field_validator("answer", mode="before")
    @classmethod
    def _answer_as_text(cls, value: Any) -> Any:
        return "" if value is None else _as_text(value)


class CompleteEvent(_StreamEventBase):
    message_type: Literal["complete"]


StreamEvent: TypeAlias = Annotated[
    Union[
        QueryAnalysisEvent,
        RememberEvent,
        AskingSitesEvent,
        SiteIrrelevantEvent,
        AskUserEvent,
        ItemDetailsEvent,
        ResultBatchEvent,
        IntermediateMessageEvent,
        SummaryEvent,
        NlwsEvent,
        CompleteEvent,
    ],
    Field(discriminator="message_type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


# --- Conversation history ---


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ResultListContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["results"] = "results"
    items: tuple[ResultItem, ...] = ()


MessageContent: TypeAlias = Annotated[Union[TextContent, ResultListContent], Field(discriminator="type")]


class ConversationMessage(BaseModel):
    """One turn of the chat as kept by the client."""

    model_config = ConfigDict(frozen=True)

    sender: Literal["user", "assistant"]
    content: MessageContent
