"""FastAPI router for post, profile and hashtag resolution.

Mount in the main app::

    from fediverse_reader.federation.router import router as federation_router
    app.include_router(federation_router)

Endpoints:

- ``GET /api/post?url=...``           - one post with its author.
- ``GET /api/post/{post_url:path}``   - same, URL in the path.
- ``GET /api/profile/{handle}``       - one profile (handle or profile URL).
- ``GET /api/posts/{handle}``         - an account's recent posts.
- ``GET /api/hashtag/{tag}``          - hashtag search, resolved in chunks.
- ``GET /api/hashtag/{tag}/stream``   - same, streamed as Server-Sent Events.
- ``GET /api/health``                 - liveness.

Resolution failures map to HTTP by kind: ``not_found`` 404,
``access_denied`` 403, ``timeout`` 504, ``network_unreachable`` and
``federation_blocked`` 502, ``unknown`` 500.  The response ``detail`` is the
classified error plus its user-facing ``message``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from fediverse_reader.api.dependencies import (
    get_batch_resolver,
    get_collection_traverser,
    get_object_resolver,
    get_search_client,
)
from fediverse_reader.core.exceptions import (
    InvalidHandleError,
    ResolutionError,
    SearchConfigurationError,
    SearchError,
    SearchRateLimitError,
)
from fediverse_reader.core.schemas.resolution import (
    BatchItemResult,
    BatchOutcome,
    ErrorKind,
    HashtagSearchResult,
    ResolvedActor,
    ResolvedPair,
)
from fediverse_reader.federation.batch import BatchResolver
from fediverse_reader.federation.identifiers import profile_handle_from_url
from fediverse_reader.federation.resolver import ObjectResolver
from fediverse_reader.federation.search import HashtagSearchClient
from fediverse_reader.federation.traverser import CollectionTraverser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["federation"])

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.NETWORK_UNREACHABLE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.FEDERATION_BLOCKED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HashtagResponse(BaseModel):
    """Response body for ``GET /api/hashtag/{tag}``.

    Attributes:
        search: What the search provider returned.
        results: One settled result per candidate URL, in search order.
    """

    search: HashtagSearchResult
    results: list[BatchItemResult]


class BatchSummary(BaseModel):
    """Payload of the final ``done`` event of a hashtag stream."""

    total: int
    resolved: int
    unavailable: int
    failed: int


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def resolution_http_error(exc: ResolutionError) -> HTTPException:
    """Translate a :class:`ResolutionError` into an ``HTTPException``."""
    classified = exc.classified
    detail: dict[str, Any] = classified.model_dump(mode="json")
    detail["message"] = classified.message
    return HTTPException(status_code=_STATUS_BY_KIND[classified.kind], detail=detail)


def search_http_error(exc: SearchError) -> HTTPException:
    """Translate a :class:`SearchError` into an ``HTTPException``."""
    if isinstance(exc, SearchConfigurationError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )
    if isinstance(exc, SearchRateLimitError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Search rate limited. Retry after {exc.retry_after:.0f} seconds.",
            headers={"Retry-After": str(int(exc.retry_after))},
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Hashtag search failed: {exc}",
    )


def _invalid_handle(exc: InvalidHandleError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


@router.get(
    "/post",
    response_model=ResolvedPair,
    summary="Resolve one post",
    description=(
        "Resolve a post URL (or a mirror / feed-reader variant of it) into "
        "the post and its author."
    ),
)
async def get_post(
    resolver: Annotated[ObjectResolver, Depends(get_object_resolver)],
    url: str = Query(..., min_length=1, description="Post URL."),
) -> ResolvedPair:
    """Resolve a post given as a query parameter.

    Raises:
        HTTPException: Mapped from the classified resolution error.
    """
    try:
        return await resolver.resolve_post(url)
    except ResolutionError as exc:
        raise resolution_http_error(exc) from exc


@router.get("/post/{post_url:path}", response_model=ResolvedPair, summary="Resolve one post")
async def get_post_by_path(
    post_url: str,
    resolver: Annotated[ObjectResolver, Depends(get_object_resolver)],
) -> ResolvedPair:
    """Resolve a post whose URL is given as the remainder of the path.

    Path joining collapses ``https://`` into ``https:/``; the normalizer
    repairs it.
    """
    try:
        return await resolver.resolve_post(post_url)
    except ResolutionError as exc:
        raise resolution_http_error(exc) from exc


@router.get(
    "/profile/{handle:path}",
    response_model=ResolvedActor,
    summary="Resolve one profile",
    description=(
        "Resolve ``@user@domain`` (or a profile URL such as "
        "``https://host/@user``) into the account with its counts."
    ),
)
async def get_profile(
    handle: str,
    resolver: Annotated[ObjectResolver, Depends(get_object_resolver)],
) -> ResolvedActor:
    """Resolve a profile.

    Raises:
        HTTPException 400: If ``handle`` is neither a handle nor a profile URL.
        HTTPException: Mapped from the classified resolution error.
    """
    try:
        return await resolver.resolve_actor(profile_handle_from_url(handle) or handle)
    except InvalidHandleError as exc:
        raise _invalid_handle(exc) from exc
    except ResolutionError as exc:
        raise resolution_http_error(exc) from exc


@router.get(
    "/posts/{handle}",
    response_model=list[ResolvedPair],
    summary="Recent posts of an account",
)
async def get_recent_posts(
    handle: str,
    traverser: Annotated[CollectionTraverser, Depends(get_collection_traverser)],
    limit: int | None = Query(
        default=None,
        ge=0,
        le=40,
        description="Maximum number of posts (server default when omitted).",
    ),
) -> list[ResolvedPair]:
    """Return the newest posts authored by ``handle``.

    Raises:
        HTTPException 400: If ``handle`` is not a handle.
        HTTPException: Mapped from the classified error if the account
            itself cannot be resolved.
    """
    try:
        return await traverser.resolve_recent(handle, limit)
    except InvalidHandleError as exc:
        raise _invalid_handle(exc) from exc
    except ResolutionError as exc:
        raise resolution_http_error(exc) from exc


@router.get(
    "/hashtag/{tag}",
    response_model=HashtagResponse,
    summary="Hashtag search, resolved",
)
async def get_hashtag(
    tag: str,
    search: Annotated[HashtagSearchClient, Depends(get_search_client)],
    batch: Annotated[BatchResolver, Depends(get_batch_resolver)],
    limit: int | None = Query(default=None, ge=1, le=40),
) -> HashtagResponse:
    """Search for ``#tag`` and resolve every hit in chunks.

    Raises:
        HTTPException 503: If search is not configured.
        HTTPException 429: If the search provider rate-limits us.
        HTTPException 502: On other search provider failures.
    """
    try:
        found = await search.search_hashtag(tag, limit=limit)
    except SearchError as exc:
        raise search_http_error(exc) from exc

    results = await batch.resolve_batch(found.post_urls)
    logger.info(
        "router: #%s resolved %d/%d posts",
        found.hashtag,
        sum(1 for r in results if r.outcome is BatchOutcome.RESOLVED),
        len(results),
    )
    return HashtagResponse(search=found, results=results)


@router.get("/hashtag/{tag}/stream", summary="Hashtag search, streamed")
async def stream_hashtag(
    tag: str,
    request: Request,
    search: Annotated[HashtagSearchClient, Depends(get_search_client)],
    batch: Annotated[BatchResolver, Depends(get_batch_resolver)],
    limit: int | None = Query(default=None, ge=1, le=40),
) -> StreamingResponse:
    """Stream hashtag results via Server-Sent Events as they resolve.

    **Event types**:

    ``search``::

        event: search
        data: {"hashtag":"python","post_urls":[...],"total_found":12,...}

    ``item`` (one per candidate, in completion order)::

        event: item
        data: {"identifier":"https://...","outcome":"resolved","result":{...}}

    ``done``::

        event: done
        data: {"total":12,"resolved":9,"unavailable":1,"failed":2}

    The search itself runs before the stream opens, so search failures are
    ordinary HTTP errors.

    Raises:
        HTTPException 503 / 429 / 502: As for ``GET /api/hashtag/{tag}``.
    """
    try:
        found = await search.search_hashtag(tag, limit=limit)
    except SearchError as exc:
        raise search_http_error(exc) from exc

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE frames for the hashtag results."""
        yield _sse("search", found.model_dump_json())

        counts = {outcome: 0 for outcome in BatchOutcome}
        async with aclosing(batch.iter_completed(found.post_urls)) as results:
            async for item in results:
                if await request.is_disconnected():
                    logger.debug("sse: client disconnected from #%s", found.hashtag)
                    return
                counts[item.outcome] += 1
                yield _sse("item", item.model_dump_json())

        summary = {"total": len(found.post_urls)}
        summary.update({outcome.value: n for outcome, n in counts.items()})
        yield _sse("done", BatchSummary(**summary).model_dump_json())

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )


@router.get("/health", tags=["system"])
async def health(
    search: Annotated[HashtagSearchClient, Depends(get_search_client)],
) -> dict[str, Any]:
    """Liveness check; also reports whether hashtag search is configured."""
    return {"status": "ok", "search_configured": search.configured}


def _sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"
