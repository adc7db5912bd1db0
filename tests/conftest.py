"""Shared pytest fixtures for Fediverse Reader tests.

Fixture summary
---------------
fake_fetcher    - In-memory ``ObjectFetcher`` serving ActivityStreams dicts.
http_client     - Bare ``httpx.AsyncClient`` (wrap calls in ``respx.mock``).
classifier      - ``FailureClassifier`` over ``http_client``.
resolver        - ``ObjectResolver`` over ``fake_fetcher`` and ``classifier``.
components      - ``FederationComponents`` made of class-bound mocks.
api_client      - ``httpx.AsyncClient`` bound to the app via ``ASGITransport``.

No test touches the network: remote servers are either the fake fetcher or
``respx`` routes.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Settings must never pick up a developer's real search token.

os.environ["MASTODON_ACCESS_TOKEN"] = ""
os.environ.setdefault("LOG_LEVEL", "INFO")

from fediverse_reader.api.dependencies import FederationComponents  # noqa: E402
from fediverse_reader.config.settings import get_settings  # noqa: E402
from fediverse_reader.core.exceptions import FetchError  # noqa: E402
from fediverse_reader.federation.batch import BatchResolver  # noqa: E402
from fediverse_reader.federation.classifier import FailureClassifier  # noqa: E402
from fediverse_reader.federation.resolver import ObjectResolver  # noqa: E402
from fediverse_reader.federation.search import HashtagSearchClient  # noqa: E402
from fediverse_reader.federation.traverser import CollectionTraverser  # noqa: E402
from fediverse_reader.federation.vocab import (  # noqa: E402
    Activity,
    Actor,
    CollectionRef,
    Document,
    EmojiTag,
    FederationObject,
    Image,
    Post,
    Ref,
    Tag,
    parse_document,
    parse_image,
    parse_object,
    parse_tag,
)

# Clear the lru_cache so Settings() re-reads from the patched environment.
get_settings.cache_clear()


# ---------------------------------------------------------------------------
# In-memory fetcher
# ---------------------------------------------------------------------------


class FakeFetcher:
    """``ObjectFetcher`` backed by a ``{url: document}`` map.

    Attributes:
        documents: Served documents.  Handles (``@user@host``) may be keys.
        errors: URLs whose fetch raises the mapped exception.
        delays: URLs whose fetch sleeps for the mapped number of seconds.
        requested: Every URL fetched, in order.
    """

    def __init__(self) -> None:
        self.documents: dict[str, Mapping[str, Any]] = {}
        self.errors: dict[str, BaseException] = {}
        self.delays: dict[str, float] = {}
        self.requested: list[str] = []

    def add(self, *documents: Mapping[str, Any]) -> None:
        """Serve each document under its ``id``."""
        for doc in documents:
            self.documents[doc["id"]] = doc

    async def _get(self, url: str) -> Mapping[str, Any] | None:
        self.requested.append(url)
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        if url in self.errors:
            raise self.errors[url]
        return self.documents.get(url)

    async def _deref(self, ref: Ref) -> Mapping[str, Any] | None:
        if isinstance(ref, str):
            return await self._get(ref)
        return ref

    async def lookup_object(self, identifier: str) -> FederationObject | None:
        doc = await self._get(identifier)
        return parse_object(doc) if doc is not None else None

    async def iter_tags(self, obj: Post | Actor) -> AsyncIterator[EmojiTag | Tag]:
        for ref in obj.tags:
            doc = await self._deref(ref)
            if doc is not None:
                yield parse_tag(doc)

    async def iter_attachments(self, post: Post) -> AsyncIterator[Document]:
        for ref in post.attachments:
            doc = await self._deref(ref)
            if doc is not None:
                yield parse_document(doc)

    async def get_icon(self, actor: Actor) -> Image | None:
        if actor.id is not None and f"{actor.id}#icon" in self.errors:
            raise self.errors[f"{actor.id}#icon"]
        return parse_image(actor.icon)

    async def get_outbox(self, actor: Actor) -> CollectionRef | None:
        return await self._collection(actor.outbox)

    async def traverse_collection(
        self, collection: CollectionRef
    ) -> AsyncIterator[FederationObject]:
        page: CollectionRef | None = collection
        next_ref: Ref | None = collection.first
        while page is not None:
            for ref in page.items:
                try:
                    doc = await self._deref(ref)
                except FetchError:
                    continue
                if doc is not None:
                    yield parse_object(doc)
            page = await self._collection(next_ref)
            next_ref = page.next if page is not None else None

    async def get_activity_object(self, activity: Activity) -> FederationObject | None:
        if activity.object is None:
            return None
        doc = await self._deref(activity.object)
        return parse_object(doc) if doc is not None else None

    async def get_collection_size(self, ref: Ref | None) -> int | None:
        collection = await self._collection(ref)
        return collection.total_items if collection is not None else None

    async def _collection(self, ref: Ref | None) -> CollectionRef | None:
        if ref is None:
            return None
        doc = await self._deref(ref)
        if doc is None:
            return None
        obj = parse_object(doc)
        return obj if isinstance(obj, CollectionRef) else None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    """Return an empty in-memory fetcher."""
    return FakeFetcher()


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield an ``httpx.AsyncClient``; tests mock its traffic with respx."""
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def classifier(http_client: httpx.AsyncClient) -> FailureClassifier:
    """Return a classifier with short probe timeouts."""
    return FailureClassifier(http_client, probe_timeout=1.0)


@pytest.fixture
def resolver(fake_fetcher: FakeFetcher, classifier: FailureClassifier) -> ObjectResolver:
    """Return a resolver over the fake fetcher."""
    return ObjectResolver(fake_fetcher, classifier)


@pytest.fixture
def components() -> FederationComponents:
    """Return mocked federation components for route tests.

    Async methods of the mocked classes are ``AsyncMock`` instances; set
    ``return_value`` / ``side_effect`` on them per test.
    """
    search = MagicMock(spec=HashtagSearchClient)
    search.configured = True
    return FederationComponents(
        resolver=MagicMock(spec=ObjectResolver),
        traverser=MagicMock(spec=CollectionTraverser),
        batch=MagicMock(spec=BatchResolver),
        search=search,
    )


@pytest_asyncio.fixture
async def api_client(
    components: FederationComponents,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` against a fresh app using ``components``.

    ``ASGITransport`` does not run the lifespan, so the components are
    installed on ``app.state`` directly.
    """
    from fediverse_reader.api.main import create_app  # noqa: PLC0415

    app = create_app()
    app.state.federation = components

    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
