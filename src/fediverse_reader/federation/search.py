"""Hashtag search against a Mastodon-compatible server.

ActivityPub has no global search, so candidate posts for a hashtag come from
one well-connected server's ``GET /api/v2/search?type=statuses`` endpoint,
authenticated with an OAuth 2.0 bearer token.  The search only supplies URLs;
the posts themselves are resolved from their home servers by the batch
resolver.

Servers without full-text search answer HTTP 422; that is reported as a
``not-supported`` result rather than an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from fediverse_reader.config.settings import Settings
from fediverse_reader.core.exceptions import (
    SearchAuthError,
    SearchConfigurationError,
    SearchProviderError,
    SearchRateLimitError,
)
from fediverse_reader.core.schemas.resolution import HashtagSearchResult
from fediverse_reader.federation.config import DEFAULT_SEARCH_LIMIT, SEARCH_ENDPOINT_PATH

logger = logging.getLogger(__name__)


class HashtagSearchClient:
    """Look up candidate post URLs for a hashtag.

    Args:
        client: Shared HTTP client.
        api_base: Base URL of the search server, e.g. ``https://floss.social``.
        access_token: Bearer token for the search server.  ``None`` makes
            every search raise :class:`SearchConfigurationError`.
        timeout: Upper bound in seconds for the search request.
        default_limit: Number of statuses requested when the caller gives no
            limit.
        user_agent: ``User-Agent`` header.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_base: str = "https://floss.social",
        access_token: str | None = None,
        timeout: float = 10.0,
        default_limit: int = DEFAULT_SEARCH_LIMIT,
        user_agent: str = "FediverseReader/0.1",
    ) -> None:
        self._client = client
        self._api_base = api_base.rstrip("/")
        self._access_token = access_token
        self._timeout = timeout
        self._default_limit = default_limit
        self._user_agent = user_agent

    @classmethod
    def from_settings(
        cls,
        client: httpx.AsyncClient,
        settings: Settings,
        user_agent: str | None = None,
    ) -> "HashtagSearchClient":
        return cls(
            client,
            api_base=settings.search_api_base,
            access_token=settings.mastodon_access_token,
            timeout=settings.search_timeout_seconds,
            default_limit=settings.search_limit,
            user_agent=user_agent or settings.user_agent,
        )

    @property
    def configured(self) -> bool:
        return bool(self._access_token)

    async def search_hashtag(
        self, tag: str, limit: int | None = None
    ) -> HashtagSearchResult:
        """Search for statuses carrying ``#tag``.

        Args:
            tag: Hashtag, with or without the leading ``#``.
            limit: Maximum number of statuses requested.  Defaults to the
                client's ``default_limit``.

        Returns:
            Candidate post URLs, ActivityPub ``uri`` preferred over the web
            ``url``.

        Raises:
            SearchConfigurationError: If no access token is configured.
            SearchRateLimitError: On HTTP 429.
            SearchAuthError: On HTTP 401.
            SearchProviderError: On other non-2xx responses, connection
                errors and timeouts.
        """
        hashtag = tag.strip().lstrip("#")
        if not self._access_token:
            raise SearchConfigurationError(
                "hashtag search is not configured: set MASTODON_ACCESS_TOKEN"
            )
        if not hashtag:
            return HashtagSearchResult(hashtag="", search_method="mastodon-search")

        params: dict[str, Any] = {
            "q": f"#{hashtag}",
            "type": "statuses",
            "limit": limit or self._default_limit,
        }
        try:
            data = await self._make_get_request(
                f"{self._api_base}{SEARCH_ENDPOINT_PATH}", params
            )
        except SearchProviderError as exc:
            if exc.status_code == 422:
                logger.warning(
                    "search: %s rejected the query for #%s; full-text search may be disabled",
                    self._api_base,
                    hashtag,
                )
                return HashtagSearchResult(
                    hashtag=hashtag,
                    search_method="not-supported",
                    error=str(exc),
                )
            raise

        statuses: list[dict[str, Any]] = []
        if isinstance(data, dict):
            statuses = [s for s in data.get("statuses") or [] if isinstance(s, dict)]

        post_urls = [url for url in (s.get("uri") or s.get("url") for s in statuses) if url]
        logger.info("search: #%s returned %d statuses", hashtag, len(statuses))
        return HashtagSearchResult(
            hashtag=hashtag,
            post_urls=post_urls,
            total_found=len(statuses),
            search_method="mastodon-search",
        )

    async def _make_get_request(self, url: str, params: dict[str, Any]) -> Any:
        """Make an authenticated GET request to the search server.

        Args:
            url: Endpoint URL.
            params: Query parameters.

        Returns:
            Parsed JSON response.

        Raises:
            SearchRateLimitError: On HTTP 429.
            SearchAuthError: On HTTP 401.
            SearchProviderError: On other non-2xx responses or transport errors.
        """
        try:
            response = await asyncio.wait_for(
                self._client.get(
                    url,
                    params=params,
                    headers={
                        "Authorization": f"Bearer {self._access_token}",
                        "Accept": "application/json",
                        "User-Agent": self._user_agent,
                    },
                ),
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429:
                retry_after = _retry_after(exc.response.headers.get("Retry-After"))
                raise SearchRateLimitError(
                    "search: 429 rate limit", retry_after=retry_after
                ) from exc
            if status == 401:
                raise SearchAuthError(
                    "search: 401 unauthorized, check MASTODON_ACCESS_TOKEN",
                    status_code=status,
                ) from exc
            raise SearchProviderError(
                f"search: HTTP {status} from {url}", status_code=status
            ) from exc
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise SearchProviderError(
                f"search: no answer from {url} within {self._timeout:g}s"
            ) from exc
        except httpx.RequestError as exc:
            raise SearchProviderError(f"search: connection error: {exc}") from exc
        except ValueError as exc:
            raise SearchProviderError(f"search: invalid JSON from {url}: {exc}") from exc


def _retry_after(value: str | None) -> float:
    try:
        return float(value) if value is not None else 60.0
    except ValueError:
        return 60.0
