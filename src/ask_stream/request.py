"""Building the outbound streaming request for a query."""

import json
import time
from uuid import uuid4

import httpx

from .models import GenerateMode, QueryRequest


def new_query_id() -> str:
    """Generate a client-side query id, unique per request."""
    return f"query_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


def build_query_request(
    query: str,
    *,
    site: str | None = None,
    generate_mode: GenerateMode | str = GenerateMode.LIST,
    prev: list[str] | tuple[str, ...] = (),
    items_to_remember: list[str] | tuple[str, ...] = (),
    context_url: str | None = None,
    query_id: str | None = None,
) -> QueryRequest:
    """Assemble an immutable QueryRequest.

    Remembered items are sent as one comma-joined string; empty entries are skipped.
    """
    remembered = ",".join(item for item in items_to_remember if item)
    return QueryRequest(
        query_id=query_id or new_query_id(),
        query=query,
        site=site or None,
        generate_mode=GenerateMode(generate_mode),
        prev=tuple(prev),
        item_to_remember=remembered or None,
        context_url=context_url or None,
    )


def query_params(request: QueryRequest) -> list[tuple[str, str]]:
    """Query parameters in the order the server expects them."""
    params = [("query_id", request.query_id), ("query", request.query)]
    if request.site:
        params.append(("site", request.site))
    params.extend(
        [
            ("generate_mode", request.generate_mode.value),
            ("prev", json.dumps(list(request.prev), separators=(",", ":"), ensure_ascii=False)),
            ("item_to_remember", request.item_to_remember or ""),
            ("context_url", request.context_url or ""),
        ]
    )
    return params


def build_request_url(api_endpoint: str, request: QueryRequest) -> str:
    """Full streaming URL for a request. Parameters already on the endpoint are kept."""
    return str(httpx.URL(api_endpoint).copy_merge_params(query_params(request)))
