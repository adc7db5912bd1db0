"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
All credentials and tunables are accessed exclusively through this module;
never call ``os.getenv`` directly elsewhere in the codebase.

Usage::

    from fediverse_reader.config.settings import get_settings

    settings = get_settings()
    timeout = settings.fetch_timeout_seconds
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide configuration backed by environment variables and an optional .env file.

    Every field has a default so the service starts without any configuration;
    hashtag search is the only feature that needs a secret
    (``MASTODON_ACCESS_TOKEN``) and it reports a configuration error when the
    token is absent.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "Fediverse Reader"
    """Human-readable application name shown in the OpenAPI docs."""

    debug: bool = False
    """Enable FastAPI debug mode and verbose error responses.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    allowed_origins: list[str] = ["http://localhost:8000"]
    """Origins permitted by the CORS middleware."""

    # ------------------------------------------------------------------
    # Federation fetching
    # ------------------------------------------------------------------

    server_domain: str = "localhost"
    """Public domain this reader runs under.  Used in the outgoing User-Agent
    so remote administrators can identify the requester."""

    user_agent: str = "FediverseReader/0.1"
    """Base User-Agent sent with every federation fetch and probe."""

    fetch_timeout_seconds: float = 10.0
    """Upper bound for a single federation fetch (object, tag, icon, page)."""

    probe_timeout_seconds: float = 5.0
    """Upper bound for each failure-classification probe (nodeinfo, reachability)."""

    federation_blocked_hosts: list[str] = ["threads.net"]
    """Hosts known to refuse federation requests from readers like this one.

    Network-level failures against these hosts (or their subdomains) are always
    classified as ``federation_blocked`` without probing.
    """

    # ------------------------------------------------------------------
    # Batch resolution
    # ------------------------------------------------------------------

    batch_chunk_size: int = 5
    """Number of identifiers resolved together in batched-chunk mode."""

    batch_chunk_delay_seconds: float = 0.5
    """Pause between consecutive chunks so remote servers are not hammered."""

    item_timeout_seconds: float = 10.0
    """Upper bound for resolving one batch item end to end."""

    recent_posts_limit: int = 6
    """Default number of posts returned by the recent-posts endpoint."""

    # ------------------------------------------------------------------
    # Keyword search provider (Mastodon-compatible)
    # ------------------------------------------------------------------

    search_api_base: str = "https://floss.social"
    """Base URL of the Mastodon-compatible server used for hashtag search."""

    mastodon_access_token: Optional[str] = None
    """Bearer token for the search server.  When ``None``, hashtag search
    raises :class:`~fediverse_reader.core.exceptions.SearchConfigurationError`."""

    search_limit: int = 20
    """Number of candidate statuses requested from the search API."""

    search_timeout_seconds: float = 10.0
    """Timeout for a single search API request."""


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Uses ``functools.lru_cache`` so that Pydantic Settings reads the environment
    and .env file exactly once per process lifetime.  In tests, call
    ``get_settings.cache_clear()`` after patching environment variables.

    Returns:
        Settings: The validated settings object.
    """
    return Settings()
