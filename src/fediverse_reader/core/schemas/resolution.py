"""Pydantic schemas for resolved federation content.

These are the records handed to callers once a remote object has been
resolved.  They are plain data: no record holds a reference back to the
fetcher or to the raw ActivityStreams document it was built from, so they
serialise directly into API responses.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class NormalizedIdentifier(BaseModel):
    """A user-supplied reference after canonicalisation.

    Attributes:
        kind: ``"handle"`` for ``@user@domain`` references, ``"post-url"``
            for everything else.
        value: The fetchable form.  Handles always carry exactly one leading
            ``@``; URLs always carry a scheme.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["post-url", "handle"]
    value: str

    @property
    def is_handle(self) -> bool:
        return self.kind == "handle"


# ---------------------------------------------------------------------------
# Content records
# ---------------------------------------------------------------------------


class CustomEmoji(BaseModel):
    """A server-defined image substituted for a textual shortcode.

    Attributes:
        shortcode: Literal token as it appears in content, colons included
            (e.g. ``":archlinux:"``).
        image_url: URL of the emoji image.
        id: ActivityPub id of the emoji object, when the server provides one.
    """

    shortcode: str
    image_url: str
    id: Optional[str] = None


class Attachment(BaseModel):
    """A media attachment on a post.

    Attributes:
        url: URL of the media file.
        alt_text: Author-provided description (ActivityStreams ``name``).
        width: Pixel width, when declared.
        height: Pixel height, when declared.
        media_kind: ``"image"``, ``"video"``, ``"audio"`` or ``"document"``.
        media_type: Declared MIME type, when present.
    """

    url: str
    alt_text: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    media_kind: Literal["image", "video", "audio", "document"] = "document"
    media_type: Optional[str] = None


class ResolvedPost(BaseModel):
    """A single post (Note, Article, ...) resolved from a remote server."""

    id: str
    content_html: str = ""
    published_at: Optional[datetime] = None
    canonical_url: Optional[str] = None
    attachments: list[Attachment] = Field(default_factory=list)
    emojis: list[CustomEmoji] = Field(default_factory=list)

    @property
    def images(self) -> list[Attachment]:
        """Image-kind attachments, in document order."""
        return [a for a in self.attachments if a.media_kind == "image"]


class ResolvedActor(BaseModel):
    """An account (Person, Service, Group, ...) resolved from a remote server.

    The collection counts and ``joined_at`` are only filled in by a full
    profile resolution; post resolution leaves them ``None``.
    """

    id: str
    display_name: str = ""
    preferred_username: str = ""
    profile_url: Optional[str] = None
    avatar_url: Optional[str] = None
    summary_html: Optional[str] = None
    emojis: list[CustomEmoji] = Field(default_factory=list)
    followers_count: Optional[int] = None
    following_count: Optional[int] = None
    outbox_count: Optional[int] = None
    joined_at: Optional[datetime] = None


class ResolvedPair(BaseModel):
    """A post together with its (mandatory) author."""

    post: ResolvedPost
    author: ResolvedActor


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    """Semantic cause of a failed resolution.

    Attributes:
        NOT_FOUND: The object does not exist or is not public.
        ACCESS_DENIED: The server refused the request (HTTP 401/403).
        NETWORK_UNREACHABLE: The server or the network path to it is down.
        TIMEOUT: The server did not answer in time.
        FEDERATION_BLOCKED: The server appears to refuse federation requests
            from this reader (best-effort heuristic).
        UNKNOWN: None of the above could be established.
    """

    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    NETWORK_UNREACHABLE = "network_unreachable"
    TIMEOUT = "timeout"
    FEDERATION_BLOCKED = "federation_blocked"
    UNKNOWN = "unknown"


class NetworkSubKind(str, Enum):
    """Refinement of :attr:`ErrorKind.NETWORK_UNREACHABLE`."""

    DNS_FAILURE = "dns_failure"
    CONNECTION_REFUSED = "connection_refused"
    GENERIC = "generic"


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: (
        "Post not found: it may have been deleted or is not publicly accessible."
    ),
    ErrorKind.ACCESS_DENIED: (
        "Access denied: {hostname} refused to share this content with us."
    ),
    ErrorKind.NETWORK_UNREACHABLE: (
        "Network error: unable to connect to {hostname}. "
        "The server or the network may be down."
    ),
    ErrorKind.TIMEOUT: "{hostname} took too long to respond. Try again later.",
    ErrorKind.FEDERATION_BLOCKED: (
        "Unable to fetch content from {hostname}. "
        "This server appears to be blocking federation requests."
    ),
    ErrorKind.UNKNOWN: "Failed to fetch content from {hostname}: {detail}",
}


class ClassifiedError(BaseModel):
    """Outcome of failure classification for one resolution attempt.

    Attributes:
        kind: Semantic cause.
        hostname: Host the resolution was aimed at (may be empty when it
            could not be determined).
        detail: Technical detail, usually the original error text.
        sub_kind: DNS / refused / generic refinement, only set for
            ``network_unreachable``.
    """

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    hostname: str = ""
    detail: str = ""
    sub_kind: Optional[NetworkSubKind] = None

    @property
    def message(self) -> str:
        """User-facing explanation for this failure."""
        return _USER_MESSAGES[self.kind].format(
            hostname=self.hostname or "the server",
            detail=self.detail,
        )


# ---------------------------------------------------------------------------
# Batch resolution
# ---------------------------------------------------------------------------


class BatchOutcome(str, Enum):
    RESOLVED = "resolved"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class BatchItemResult(BaseModel):
    """Settled outcome for one identifier of a batch.

    Exactly one of ``result`` (for ``resolved``) or ``error`` (for
    ``unavailable`` and ``failed``) is populated.
    """

    identifier: str
    outcome: BatchOutcome
    result: Optional[ResolvedPair] = None
    error: Optional[ClassifiedError] = None


class BatchChunk(BaseModel):
    """Outcomes of one chunk in batched-chunk mode."""

    index: int
    results: list[BatchItemResult]


# ---------------------------------------------------------------------------
# Hashtag search
# ---------------------------------------------------------------------------


class HashtagSearchResult(BaseModel):
    """Candidate post URLs returned by the keyword search provider.

    Attributes:
        hashtag: Hashtag searched for, without ``#``.
        post_urls: ActivityPub URIs (or web URLs) of matching statuses, in
            the provider's order.  May contain duplicates and dead links.
        total_found: Number of statuses the provider returned.
        search_method: ``"mastodon-search"`` when the provider answered.
    """

    hashtag: str
    post_urls: list[str] = Field(default_factory=list)
    total_found: int = 0
    search_method: Literal["mastodon-search", "not-supported"] = "mastodon-search"
    error: Optional[str] = None
