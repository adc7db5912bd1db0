"""Single-object resolution: one post with its author, or one profile.

:class:`ObjectResolver` is the only place where fetcher output becomes the
public :mod:`~fediverse_reader.core.schemas.resolution` records.  The
collection traverser reuses its :meth:`~ObjectResolver.build_post` and
:meth:`~ObjectResolver.build_actor` helpers so that a post looks the same
whichever way it was reached.

Every failure leaves this module as a
:class:`~fediverse_reader.core.exceptions.ResolutionError` carrying a
:class:`~fediverse_reader.core.schemas.resolution.ClassifiedError`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from typing import TypeVar
from urllib.parse import urlparse

from fediverse_reader.core.exceptions import (
    ObjectUnavailableError,
    ResolutionError,
)
from fediverse_reader.core.schemas.resolution import (
    Attachment,
    NormalizedIdentifier,
    ResolvedActor,
    ResolvedPair,
    ResolvedPost,
)
from fediverse_reader.federation.classifier import FailureClassifier
from fediverse_reader.federation.config import ACTOR_PATH_SEGMENT
from fediverse_reader.federation.emoji import extract_custom_emojis, substitute_emojis
from fediverse_reader.federation.fetcher import ObjectFetcher
from fediverse_reader.federation.identifiers import (
    ensure_handle,
    hostname_of,
    normalize_identifier,
)
from fediverse_reader.federation.vocab import Actor, Document, Post, Ref

logger = logging.getLogger(__name__)

T = TypeVar("T")

_AUTHOR_SEGMENT_PATTERN = re.compile(re.escape(ACTOR_PATH_SEGMENT) + r"(?P<name>[^/?#]+)")

_KIND_BY_AS_TYPE: dict[str, str] = {
    "Image": "image",
    "Video": "video",
    "Audio": "audio",
}


class ObjectResolver:
    """Resolve posts and profiles through an :class:`ObjectFetcher`.

    Args:
        fetcher: Source of federation objects.
        classifier: Classifier applied to every unexpected failure.
        render_emojis: Substitute custom emoji shortcodes in post content and
            profile summaries with inline images.
    """

    def __init__(
        self,
        fetcher: ObjectFetcher,
        classifier: FailureClassifier,
        render_emojis: bool = True,
    ) -> None:
        self._fetcher = fetcher
        self._classifier = classifier
        self._render_emojis = render_emojis

    @property
    def fetcher(self) -> ObjectFetcher:
        return self._fetcher

    @property
    def classifier(self) -> FailureClassifier:
        return self._classifier

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve_post(
        self, identifier: str | NormalizedIdentifier
    ) -> ResolvedPair:
        """Resolve a post URL into the post and its author.

        Args:
            identifier: Raw user input or an already normalized identifier.

        Returns:
            The post paired with its author.

        Raises:
            ResolutionError: With the classified cause.  A missing post, a
                non-post object and an underivable or missing author all raise
                :class:`ObjectUnavailableError` (``not_found``).
        """
        if not isinstance(identifier, NormalizedIdentifier):
            identifier = normalize_identifier(identifier)
        hostname = hostname_of(identifier)

        try:
            return await self._resolve_post(identifier, hostname)
        except ResolutionError as exc:
            logger.info("resolver: %s unavailable: %s", identifier.value, exc)
            raise
        except Exception as exc:  # noqa: BLE001
            raise await self.classify_failure(exc, hostname, identifier.value) from exc

    async def resolve_actor(self, handle: str) -> ResolvedActor:
        """Resolve a ``@user@domain`` handle into a full profile.

        Follower, following and post counts are fetched concurrently and on a
        best-effort basis: a count that cannot be read is ``None``.

        Args:
            handle: Handle, with or without the leading ``@``.

        Returns:
            The resolved actor, counts included.

        Raises:
            InvalidHandleError: If ``handle`` is not a handle.
            ResolutionError: With the classified cause.
        """
        value = ensure_handle(handle)
        hostname = hostname_of(value)

        try:
            actor = await self.lookup_actor(value, hostname)
            return await self.build_actor(actor, with_counts=True)
        except ResolutionError as exc:
            logger.info("resolver: profile %s unavailable: %s", value, exc)
            raise
        except Exception as exc:  # noqa: BLE001
            raise await self.classify_failure(exc, hostname, value) from exc

    async def lookup_actor(self, identifier: str, hostname: str) -> Actor:
        """Fetch ``identifier`` and require an :class:`Actor`.

        Raises:
            ObjectUnavailableError: If nothing, or something else, is there.
            FetchError: Passed through unclassified.
        """
        obj = await self._fetcher.lookup_object(identifier)
        if not isinstance(obj, Actor):
            raise ObjectUnavailableError(hostname, f"no account found for {identifier}")
        return obj

    async def build_post(self, post: Post, fallback_id: str = "") -> ResolvedPost:
        """Collect a post's tags and attachments and assemble the record."""
        tags, documents = await asyncio.gather(
            _collect(self._fetcher.iter_tags(post)),
            _collect(self._fetcher.iter_attachments(post)),
        )
        emojis = extract_custom_emojis(tags)
        content = post.content or ""
        if self._render_emojis:
            content = substitute_emojis(content, emojis)

        return ResolvedPost(
            id=post.id or fallback_id,
            content_html=content,
            published_at=post.published,
            canonical_url=post.url or post.id,
            attachments=[a for a in (to_attachment(d) for d in documents) if a is not None],
            emojis=emojis,
        )

    async def build_actor(self, actor: Actor, with_counts: bool = False) -> ResolvedActor:
        """Collect an actor's icon and tags (and counts) and assemble the record.

        Args:
            actor: Parsed actor.
            with_counts: Also read follower, following and outbox sizes.

        Returns:
            The resolved actor.
        """
        label = actor.id or actor.preferred_username or "actor"
        if with_counts:
            icon_url, tags, followers, following, outbox = await asyncio.gather(
                self._icon_url(actor),
                _collect(self._fetcher.iter_tags(actor)),
                self._count(actor.followers, "followers", label),
                self._count(actor.following, "following", label),
                self._count(actor.outbox, "outbox", label),
            )
        else:
            icon_url, tags = await asyncio.gather(
                self._icon_url(actor),
                _collect(self._fetcher.iter_tags(actor)),
            )
            followers = following = outbox = None

        emojis = extract_custom_emojis(tags)
        summary = actor.summary
        if summary and self._render_emojis:
            summary = substitute_emojis(summary, emojis)

        return ResolvedActor(
            id=actor.id or actor.url or "",
            display_name=actor.name or actor.preferred_username or "",
            preferred_username=actor.preferred_username or "",
            profile_url=actor.url or actor.id,
            avatar_url=icon_url,
            summary_html=summary,
            emojis=emojis,
            followers_count=followers,
            following_count=following,
            outbox_count=outbox,
            joined_at=actor.published if with_counts else None,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_post(
        self, identifier: NormalizedIdentifier, hostname: str
    ) -> ResolvedPair:
        obj = await self._fetcher.lookup_object(identifier.value)
        if not isinstance(obj, Post):
            raise ObjectUnavailableError(hostname, f"no post found at {identifier.value}")

        post = await self.build_post(obj, fallback_id=identifier.value)

        author_url = derive_author_url(obj.id or identifier.value)
        if author_url is None:
            raise ObjectUnavailableError(
                hostname, f"cannot determine the author of {post.id}"
            )
        # A post always has an author; one that cannot be fetched means the
        # post is unavailable, whatever the author's server answered.
        try:
            author = await self.build_actor(await self.lookup_actor(author_url, hostname))
        except ObjectUnavailableError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ObjectUnavailableError(
                hostname, f"author {author_url} could not be fetched: {exc}"
            ) from exc

        logger.debug("resolver: resolved %s by %s", post.id, author.id)
        return ResolvedPair(post=post, author=author)

    async def classify_failure(
        self, exc: Exception, hostname: str, value: str
    ) -> ResolutionError:
        classified = await self._classifier.classify(exc, hostname)
        logger.warning(
            "resolver: failed to resolve %s: %s (%s)",
            value,
            classified.kind.value,
            classified.detail,
        )
        return ResolutionError(classified)

    async def _icon_url(self, actor: Actor) -> str | None:
        try:
            icon = await self._fetcher.get_icon(actor)
        except Exception as exc:  # noqa: BLE001
            logger.debug("resolver: icon fetch failed for %s: %s", actor.id, exc)
            return None
        return icon.url if icon is not None else None

    async def _count(self, ref: Ref | None, what: str, label: str) -> int | None:
        if ref is None:
            return None
        try:
            return await self._fetcher.get_collection_size(ref)
        except Exception as exc:  # noqa: BLE001
            logger.warning("resolver: could not fetch %s count for %s: %s", what, label, exc)
            return None


def derive_author_url(post_id: str) -> str | None:
    """Derive the author's actor URL from a post id.

    Only the ``/users/{name}`` path segment on the post's own host is
    recognised: ``https://host/users/alice/statuses/1`` gives
    ``https://host/users/alice``.  The post's ``attributedTo`` is not
    consulted.

    Args:
        post_id: The post's ActivityPub id (or the URL it was fetched from).

    Returns:
        The author URL, or ``None`` if it cannot be derived.
    """
    try:
        parsed = urlparse(post_id)
    except ValueError:
        return None
    if not parsed.hostname:
        return None
    match = _AUTHOR_SEGMENT_PATTERN.search(parsed.path)
    if match is None:
        return None
    host = parsed.netloc.rsplit("@", 1)[-1]
    return f"https://{host}{ACTOR_PATH_SEGMENT}{match.group('name')}"


def media_kind(document: Document) -> str:
    """Return ``image`` / ``video`` / ``audio`` / ``document`` for an attachment.

    The MIME type wins; the ActivityStreams type is the fallback.
    """
    if document.media_type:
        major = document.media_type.split("/", 1)[0].strip().lower()
        if major in ("image", "video", "audio"):
            return major
    return _KIND_BY_AS_TYPE.get(document.type, "document")


def to_attachment(document: Document) -> Attachment | None:
    """Convert a parsed attachment; ``None`` if it has no URL."""
    if not document.url:
        return None
    return Attachment(
        url=document.url,
        alt_text=document.name,
        width=document.width,
        height=document.height,
        media_kind=media_kind(document),
        media_type=document.media_type,
    )


async def _collect(iterator: AsyncIterator[T]) -> list[T]:
    return [item async for item in iterator]
