"""FastAPI dependency injection providers.

The federation components are built once per application by
:func:`build_components` (called from the lifespan in ``api/main.py``) and
stored on ``app.state.federation``.  Route handlers receive them through the
providers below, which tests replace with ``app.dependency_overrides``.

Dependency graph::

    httpx.AsyncClient
    ├── HttpObjectFetcher ─┐
    ├── FailureClassifier ─┴── ObjectResolver
    │                           ├── CollectionTraverser
    │                           └── BatchResolver
    └── HashtagSearchClient
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from fastapi import Request

from fediverse_reader.config.settings import Settings
from fediverse_reader.federation.batch import BatchResolver
from fediverse_reader.federation.classifier import DefederationPolicy, FailureClassifier
from fediverse_reader.federation.fetcher import HttpObjectFetcher
from fediverse_reader.federation.resolver import ObjectResolver
from fediverse_reader.federation.search import HashtagSearchClient
from fediverse_reader.federation.traverser import CollectionTraverser


@dataclass
class FederationComponents:
    """Everything the routes need, sharing one HTTP client."""

    resolver: ObjectResolver
    traverser: CollectionTraverser
    batch: BatchResolver
    search: HashtagSearchClient


def outgoing_user_agent(settings: Settings) -> str:
    """Return the User-Agent sent to remote servers, naming this deployment."""
    return f"{settings.user_agent} (+https://{settings.server_domain}/)"


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared HTTP client used by every outbound request.

    Args:
        settings: Application settings.

    Returns:
        An ``httpx.AsyncClient``.  The caller is responsible for closing it.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.fetch_timeout_seconds),
        headers={"User-Agent": outgoing_user_agent(settings)},
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
    )


def build_components(client: httpx.AsyncClient, settings: Settings) -> FederationComponents:
    """Wire the federation components around ``client``.

    Args:
        client: Shared HTTP client.
        settings: Application settings.

    Returns:
        The wired components.
    """
    user_agent = outgoing_user_agent(settings)
    fetcher = HttpObjectFetcher(
        client,
        timeout=settings.fetch_timeout_seconds,
        user_agent=user_agent,
    )
    classifier = FailureClassifier(
        client,
        policy=DefederationPolicy.from_settings(settings),
        probe_timeout=settings.probe_timeout_seconds,
        user_agent=user_agent,
    )
    resolver = ObjectResolver(fetcher, classifier)
    return FederationComponents(
        resolver=resolver,
        traverser=CollectionTraverser(resolver, default_limit=settings.recent_posts_limit),
        batch=BatchResolver(
            resolver,
            chunk_size=settings.batch_chunk_size,
            chunk_delay=settings.batch_chunk_delay_seconds,
            item_timeout=settings.item_timeout_seconds,
        ),
        search=HashtagSearchClient.from_settings(client, settings, user_agent=user_agent),
    )


def _components(request: Request) -> FederationComponents:
    return request.app.state.federation


def get_object_resolver(request: Request) -> ObjectResolver:
    """Return the application's :class:`ObjectResolver`."""
    return _components(request).resolver


def get_collection_traverser(request: Request) -> CollectionTraverser:
    """Return the application's :class:`CollectionTraverser`."""
    return _components(request).traverser


def get_batch_resolver(request: Request) -> BatchResolver:
    """Return the application's :class:`BatchResolver`."""
    return _components(request).batch


def get_search_client(request: Request) -> HashtagSearchClient:
    """Return the application's :class:`HashtagSearchClient`."""
    return _components(request).search
