"""Harvest an account's recent posts from its outbox.

The outbox is a paged ``OrderedCollection`` of activities, newest first.  Only
``Create`` activities whose object is a post count towards the limit; boosts,
likes and the like are skipped.  Paging stops as soon as the limit is reached.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from fediverse_reader.core.exceptions import FetchError, ResolutionError
from fediverse_reader.core.schemas.resolution import ResolvedPair
from fediverse_reader.federation.config import CREATE_ACTIVITY
from fediverse_reader.federation.identifiers import ensure_handle, hostname_of
from fediverse_reader.federation.resolver import ObjectResolver
from fediverse_reader.federation.vocab import Activity, Post

logger = logging.getLogger(__name__)


class CollectionTraverser:
    """Walk an actor's outbox through the resolver's fetcher.

    Args:
        resolver: Provides the fetcher, the classifier and the record builders.
        default_limit: Number of posts returned when the caller gives no limit.
    """

    def __init__(self, resolver: ObjectResolver, default_limit: int = 6) -> None:
        self._resolver = resolver
        self._fetcher = resolver.fetcher
        self._default_limit = default_limit

    async def traverse(
        self, handle: str, limit: int | None = None
    ) -> AsyncIterator[ResolvedPair]:
        """Yield up to ``limit`` recent posts by ``handle``, newest first.

        The iterator is lazy: each page of the outbox is fetched only when the
        previous one is exhausted and fewer than ``limit`` posts were found.

        Args:
            handle: ``@user@domain`` (leading ``@`` optional).
            limit: Maximum number of posts.  ``<= 0`` yields nothing and
                performs no fetch.

        Raises:
            InvalidHandleError: If ``handle`` is not a handle.
            ResolutionError: If the account itself cannot be resolved.
        """
        limit = self._default_limit if limit is None else limit
        if limit <= 0:
            return

        value = ensure_handle(handle)
        hostname = hostname_of(value)

        try:
            actor = await self._resolver.lookup_actor(value, hostname)
            author = await self._resolver.build_actor(actor)
            outbox = await self._fetcher.get_outbox(actor)
        except ResolutionError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise await self._resolver.classify_failure(exc, hostname, value) from exc

        if outbox is None:
            logger.warning("traverser: %s has no readable outbox", value)
            return

        found = 0
        async with aclosing(self._fetcher.traverse_collection(outbox)) as items:
            while found < limit:
                # Only page fetches are guarded; errors thrown in at the
                # yield below belong to the consumer.
                try:
                    item = await anext(items)
                except StopAsyncIteration:
                    return
                except FetchError as exc:
                    logger.warning(
                        "traverser: outbox of %s stopped after %d posts: %s", value, found, exc
                    )
                    return

                if not isinstance(item, Activity) or item.type != CREATE_ACTIVITY:
                    continue
                try:
                    obj = await self._fetcher.get_activity_object(item)
                    if not isinstance(obj, Post):
                        continue
                    post = await self._resolver.build_post(obj)
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "traverser: skipping activity %s of %s: %s", item.id, value, exc
                    )
                    continue

                yield ResolvedPair(post=post, author=author)
                found += 1

    async def resolve_recent(
        self, handle: str, limit: int | None = None
    ) -> list[ResolvedPair]:
        """Collect :meth:`traverse` into a list."""
        async with aclosing(self.traverse(handle, limit)) as pairs:
            return [pair async for pair in pairs]
