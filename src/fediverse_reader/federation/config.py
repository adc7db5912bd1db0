"""Federation constants: media types, well-known paths and vocabulary sets.

Tunables that operators may want to change (timeouts, chunk sizes, the search
server) live in :mod:`fediverse_reader.config.settings`; the values here are
protocol facts and defaults that code and tests import directly.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Content negotiation
# ---------------------------------------------------------------------------

ACTIVITY_JSON: str = "application/activity+json"
"""Primary ActivityPub media type."""

LD_JSON_AS: str = 'application/ld+json; profile="https://www.w3.org/ns/activitystreams"'
"""JSON-LD media type with the ActivityStreams profile."""

ACCEPT_HEADER: str = f"{ACTIVITY_JSON}, {LD_JSON_AS}"
"""``Accept`` header sent with every object fetch."""

# ---------------------------------------------------------------------------
# Well-known endpoints
# ---------------------------------------------------------------------------

WEBFINGER_PATH: str = "/.well-known/webfinger"
"""WebFinger endpoint used to turn ``@user@domain`` into an actor URL."""

NODEINFO_PATH: str = "/.well-known/nodeinfo"
"""Server-info discovery document used by the failure classifier."""

# ---------------------------------------------------------------------------
# Mirror-site and feed-reader artefacts stripped from user input
# ---------------------------------------------------------------------------

MIRROR_PREFIXES: tuple[str, ...] = ("elk.zone/",)
"""Path prefixes of third-party reading apps that wrap a real post URL."""

SYNTHETIC_TRAILING_SEGMENTS: tuple[str, ...] = ("/0",)
"""Trailing segments appended by feed readers (Flipboard adds ``/0``)."""

# ---------------------------------------------------------------------------
# ActivityStreams vocabulary
# ---------------------------------------------------------------------------

POST_TYPES: frozenset[str] = frozenset({"Note", "Article", "Page", "Question"})
"""Object types treated as post-shaped content."""

ACTOR_TYPES: frozenset[str] = frozenset({
    "Person",
    "Service",
    "Application",
    "Group",
    "Organization",
})
"""Object types treated as accounts."""

ACTIVITY_TYPES: frozenset[str] = frozenset({
    "Create",
    "Announce",
    "Like",
    "Update",
    "Delete",
    "Follow",
    "Undo",
    "Accept",
    "Reject",
    "Add",
    "Remove",
    "Block",
    "Flag",
    "Move",
})
"""Activity wrapper types recognised in outboxes."""

COLLECTION_TYPES: frozenset[str] = frozenset({
    "Collection",
    "OrderedCollection",
    "CollectionPage",
    "OrderedCollectionPage",
})

CREATE_ACTIVITY: str = "Create"
"""The activity type that announces a newly authored post."""

EMOJI_TAG_TYPE: str = "Emoji"
"""Tag type used by Mastodon-compatible servers for custom emoji."""

ACTOR_PATH_SEGMENT: str = "/users/"
"""Path segment that precedes the account name in actor and post ids."""

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

MAX_COLLECTION_PAGES: int = 50
"""Hard stop for collection paging, guarding against cyclic ``next`` links."""

DEFAULT_SEARCH_LIMIT: int = 20
"""Default number of statuses requested from the search API."""

SEARCH_ENDPOINT_PATH: str = "/api/v2/search"
"""Mastodon-compatible full-text search endpoint."""
