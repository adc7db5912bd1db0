"""Remote object fetcher: the boundary between resolvers and the network.

Resolvers depend only on the :class:`ObjectFetcher` protocol.  The default
implementation, :class:`HttpObjectFetcher`, is an unsigned ActivityPub reader
built on ``httpx``:

1. **Handles** (``@user@domain``) are resolved through WebFinger to the
   account's ActivityPub id.
2. **URLs** are fetched with ActivityPub content negotiation.  When a server
   answers with HTML anyway, the page's
   ``<link rel="alternate" type="application/activity+json">`` is followed
   once.
3. Responses are parsed into the tagged union in
   :mod:`fediverse_reader.federation.vocab`.

Contract shared by all fetchers: transport failures raise
:class:`~fediverse_reader.core.exceptions.FetchError` (or
:class:`~fediverse_reader.core.exceptions.FetchTimeoutError`); a semantic
not-found (HTTP 404/410, unknown WebFinger account) returns ``None``.

Servers that require signed requests ("authorized fetch") answer an unsigned
reader with 401/403; a signing fetcher can be substituted without touching the
resolvers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup, Tag as HtmlTag

from fediverse_reader.core.exceptions import FetchError, FetchTimeoutError
from fediverse_reader.federation.config import (
    ACCEPT_HEADER,
    ACTIVITY_JSON,
    MAX_COLLECTION_PAGES,
    WEBFINGER_PATH,
)
from fediverse_reader.federation.vocab import (
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

logger = logging.getLogger(__name__)

_WEBFINGER_ACCEPT: str = "application/jrd+json, application/json"
_WEBFINGER_SELF_TYPES: tuple[str, ...] = (ACTIVITY_JSON, "application/ld+json")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ObjectFetcher(Protocol):
    """Read-only access to federation objects.

    All methods may raise :class:`FetchError` on transport failure.
    """

    async def lookup_object(self, identifier: str) -> FederationObject | None:
        """Fetch a handle or URL; ``None`` on semantic not-found."""
        ...

    def iter_tags(self, obj: Post | Actor) -> AsyncIterator[EmojiTag | Tag]:
        """Yield the object's tags, dereferencing linked ones."""
        ...

    def iter_attachments(self, post: Post) -> AsyncIterator[Document]:
        """Yield the post's attachments, dereferencing linked ones."""
        ...

    async def get_icon(self, actor: Actor) -> Image | None:
        """Return the actor's avatar, if any."""
        ...

    async def get_outbox(self, actor: Actor) -> CollectionRef | None:
        """Return the actor's outbox collection, if any."""
        ...

    def traverse_collection(
        self, collection: CollectionRef
    ) -> AsyncIterator[FederationObject]:
        """Yield every item of a (possibly paged) collection in order."""
        ...

    async def get_activity_object(self, activity: Activity) -> FederationObject | None:
        """Return the object wrapped by an activity."""
        ...

    async def get_collection_size(self, ref: Ref | None) -> int | None:
        """Return a collection's ``totalItems``, if declared."""
        ...


# ---------------------------------------------------------------------------
# httpx implementation
# ---------------------------------------------------------------------------


class HttpObjectFetcher:
    """Unsigned ActivityPub fetcher over a shared ``httpx.AsyncClient``.

    The client is owned by the caller (the API lifespan in production, the
    test in tests); this class never closes it.

    Args:
        client: Shared HTTP client.
        timeout: Upper bound in seconds for each individual request.
        user_agent: ``User-Agent`` header sent with every request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 10.0,
        user_agent: str = "FediverseReader/0.1",
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._user_agent = user_agent

    # ------------------------------------------------------------------
    # ObjectFetcher implementation
    # ------------------------------------------------------------------

    async def lookup_object(self, identifier: str) -> FederationObject | None:
        """Fetch and parse the object behind a handle or URL.

        Args:
            identifier: ``@user@domain`` handle or absolute URL.

        Returns:
            Parsed object, or ``None`` when the server reports it missing.

        Raises:
            FetchError: On transport failure or an unusable response.
        """
        url: str | None = identifier
        if identifier.startswith("@"):
            url = await self._webfinger(identifier)
            if url is None:
                logger.info("fetcher: no ActivityPub actor for handle %s", identifier)
                return None

        doc = await self._fetch_document(url)
        if doc is None:
            return None
        return parse_object(doc)

    async def iter_tags(self, obj: Post | Actor) -> AsyncIterator[EmojiTag | Tag]:
        for ref in obj.tags:
            doc = await self._deref(ref)
            if doc is not None:
                yield parse_tag(doc)

    async def iter_attachments(self, post: Post) -> AsyncIterator[Document]:
        for ref in post.attachments:
            if isinstance(ref, str):
                # A bare string attachment is the media URL itself.
                yield Document(type="Document", url=ref)
                continue
            yield parse_document(ref)

    async def get_icon(self, actor: Actor) -> Image | None:
        image = parse_image(actor.icon)
        if image is None or not image.url:
            return None
        return image

    async def get_outbox(self, actor: Actor) -> CollectionRef | None:
        return await self._load_collection(actor.outbox)

    async def traverse_collection(
        self, collection: CollectionRef
    ) -> AsyncIterator[FederationObject]:
        """Yield items of ``collection``, following ``first`` / ``next`` pages.

        Paging stops when the consumer stops iterating, when a page has no
        ``next``, when a page id repeats, or after
        :data:`~fediverse_reader.federation.config.MAX_COLLECTION_PAGES`
        pages.  An item that is a link and fails to dereference is logged and
        skipped; a page that fails to load raises.
        """
        async for obj in self._iter_items(collection):
            yield obj

        seen_pages: set[str] = set()
        page_ref = collection.first
        pages = 0
        while page_ref is not None and pages < MAX_COLLECTION_PAGES:
            page = await self._load_collection(page_ref)
            if page is None:
                break
            if page.id:
                if page.id in seen_pages:
                    logger.warning("fetcher: collection page cycle at %s", page.id)
                    break
                seen_pages.add(page.id)
            pages += 1
            async for obj in self._iter_items(page):
                yield obj
            page_ref = page.next

    async def get_activity_object(self, activity: Activity) -> FederationObject | None:
        if activity.object is None:
            return None
        doc = await self._deref(activity.object)
        if doc is None:
            return None
        return parse_object(doc)

    async def get_collection_size(self, ref: Ref | None) -> int | None:
        collection = await self._load_collection(ref)
        return collection.total_items if collection is not None else None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _iter_items(self, page: CollectionRef) -> AsyncIterator[FederationObject]:
        for ref in page.items:
            try:
                doc = await self._deref(ref)
            except FetchError as exc:
                logger.warning("fetcher: skipping collection item %s: %s", ref, exc)
                continue
            if doc is not None:
                yield parse_object(doc)

    async def _load_collection(self, ref: Ref | None) -> CollectionRef | None:
        if ref is None:
            return None
        doc = await self._deref(ref)
        if doc is None:
            return None
        obj = parse_object(doc)
        return obj if isinstance(obj, CollectionRef) else None

    async def _deref(self, ref: Ref) -> Mapping[str, Any] | None:
        if isinstance(ref, str):
            return await self._fetch_document(ref)
        return ref

    async def _webfinger(self, handle: str) -> str | None:
        """Resolve ``@user@domain`` to the account's ActivityPub id.

        Args:
            handle: Handle with a leading ``@``.

        Returns:
            Actor URL, or ``None`` if the account is unknown or advertises no
            ActivityPub representation.
        """
        user, _, domain = handle.lstrip("@").partition("@")
        doc = await self._fetch_document(
            f"https://{domain}{WEBFINGER_PATH}",
            params={"resource": f"acct:{user}@{domain}"},
            accept=_WEBFINGER_ACCEPT,
        )
        if doc is None:
            return None
        for link in doc.get("links") or []:
            if not isinstance(link, Mapping) or link.get("rel") != "self":
                continue
            link_type = str(link.get("type") or "")
            href = link.get("href")
            if href and any(t in link_type for t in _WEBFINGER_SELF_TYPES):
                return str(href)
        return None

    async def _fetch_document(
        self,
        url: str,
        params: dict[str, str] | None = None,
        accept: str = ACCEPT_HEADER,
        follow_alternate: bool = True,
    ) -> Mapping[str, Any] | None:
        """GET ``url`` and decode the JSON document.

        Args:
            url: Absolute URL.
            params: Optional query parameters.
            accept: ``Accept`` header.
            follow_alternate: Follow an HTML page's ActivityPub alternate link
                (only once per lookup).

        Returns:
            Decoded JSON object, or ``None`` on HTTP 404/410 or an HTML page
            without an ActivityPub alternate.

        Raises:
            FetchTimeoutError: When the request exceeds the timeout.
            FetchError: On connection errors, other 4xx/5xx responses or a
                body that is not a JSON object.
        """
        if urlparse(url).scheme not in ("http", "https"):
            raise FetchError(f"unsupported URL scheme: {url}", url=url)

        try:
            response = await asyncio.wait_for(
                self._client.get(
                    url,
                    params=params,
                    headers={"Accept": accept, "User-Agent": self._user_agent},
                    follow_redirects=True,
                ),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise FetchTimeoutError(
                f"request timed out after {self._timeout:g}s: {url}", url=url
            ) from exc
        except httpx.RequestError as exc:
            raise FetchError(f"fetch failed: {exc}", url=url) from exc

        if response.status_code in (404, 410):
            logger.debug("fetcher: HTTP %d for %s", response.status_code, url)
            return None
        if response.status_code >= 400:
            raise FetchError(
                f"HTTP {response.status_code} {response.reason_phrase} from {url}",
                url=url,
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "").lower()
        if "html" in content_type:
            alternate = _find_activity_alternate(response.text, str(response.url))
            if follow_alternate and alternate and alternate != url:
                logger.debug("fetcher: following ActivityPub alternate %s", alternate)
                return await self._fetch_document(
                    alternate, accept=accept, follow_alternate=False
                )
            logger.info("fetcher: %s returned HTML without an ActivityPub alternate", url)
            return None

        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError(
                f"invalid JSON from {url}: {exc}",
                url=url,
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, Mapping):
            raise FetchError(
                f"expected a JSON object from {url}, got {type(data).__name__}",
                url=url,
                status_code=response.status_code,
            )
        return data


def _find_activity_alternate(html: str, base_url: str) -> str | None:
    """Return the ActivityPub ``<link rel="alternate">`` of an HTML page."""
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as exc:  # noqa: BLE001
        logger.warning("fetcher: failed to parse HTML from %s: %s", base_url, exc)
        return None
    for tag in soup.find_all("link", rel="alternate"):
        if not isinstance(tag, HtmlTag):
            continue
        content_type = tag.get("type")
        href = tag.get("href")
        if not isinstance(content_type, str) or not isinstance(href, str):
            continue
        if ACTIVITY_JSON in content_type or "application/ld+json" in content_type:
            return urljoin(base_url, href)
    return None
