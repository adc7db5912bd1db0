"""Tagged union of federation objects produced at the fetcher boundary.

ActivityStreams documents are loosely typed: a property may hold a string,
a nested object, a ``Link`` or a list of any of these.  This module parses
compacted JSON documents into a small closed set of frozen dataclasses so
that resolver code dispatches on the variant class rather than poking at
dictionaries::

    FederationObject = Post | Actor | Activity | CollectionRef | Other

References that may need dereferencing (tags, attachments, icons, outboxes,
an activity's object) are kept as *refs*: either a URL string or the inline
``dict``.  Dereferencing is the fetcher's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from fediverse_reader.federation.config import (
    ACTIVITY_TYPES,
    ACTOR_TYPES,
    COLLECTION_TYPES,
    EMOJI_TAG_TYPE,
    POST_TYPES,
)

Ref = Union[str, Mapping[str, Any]]
"""A URL to dereference, or the inline ActivityStreams object."""


# ---------------------------------------------------------------------------
# Leaf objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Image:
    """An ``Image`` object or a bare image URL (icons, emoji images)."""

    url: str | None
    media_type: str | None = None


@dataclass(frozen=True)
class EmojiTag:
    """A Mastodon-style custom emoji tag.

    Attributes:
        name: Shortcode including colons, e.g. ``":blobcat:"``.
        icon: The emoji image.
        id: ActivityPub id of the emoji, if any.
    """

    name: str | None
    icon: Image | None
    id: str | None = None


@dataclass(frozen=True)
class Tag:
    """Any other tag (``Hashtag``, ``Mention``, ...)."""

    type: str
    name: str | None = None
    href: str | None = None


@dataclass(frozen=True)
class Document:
    """A media attachment (``Document``, ``Image``, ``Video``, ``Audio``)."""

    type: str
    url: str | None
    media_type: str | None = None
    name: str | None = None
    width: int | None = None
    height: int | None = None


# ---------------------------------------------------------------------------
# Top-level variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Post:
    """A post-shaped object (``Note``, ``Article``, ``Page``, ``Question``)."""

    id: str | None
    type: str
    content: str | None = None
    published: datetime | None = None
    url: str | None = None
    attributed_to: str | None = None
    tags: tuple[Ref, ...] = ()
    attachments: tuple[Ref, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class Actor:
    """An account (``Person``, ``Service``, ``Application``, ``Group``, ...)."""

    id: str | None
    type: str
    name: str | None = None
    preferred_username: str | None = None
    url: str | None = None
    summary: str | None = None
    published: datetime | None = None
    icon: Ref | None = None
    outbox: Ref | None = None
    followers: Ref | None = None
    following: Ref | None = None
    tags: tuple[Ref, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class Activity:
    """An activity wrapper (``Create``, ``Announce``, ``Like``, ...)."""

    id: str | None
    type: str
    actor: str | None = None
    object: Ref | None = None
    published: datetime | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class CollectionRef:
    """A collection or collection page.

    Attributes:
        id: Collection URL.
        total_items: Declared ``totalItems``, if any.
        first: Ref to the first page, if the collection is paged.
        next: Ref to the following page (pages only).
        items: Inline ``orderedItems`` / ``items``.
    """

    id: str | None
    type: str = "OrderedCollection"
    total_items: int | None = None
    first: Ref | None = None
    next: Ref | None = None
    items: tuple[Ref, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class Other:
    """Anything that is none of the above (``Tombstone``, ``Link``, ...)."""

    id: str | None
    type: str
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


FederationObject = Union[Post, Actor, Activity, CollectionRef, Other]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_object(doc: Mapping[str, Any]) -> FederationObject:
    """Parse a compacted ActivityStreams document into its variant.

    Args:
        doc: Decoded JSON object.

    Returns:
        The matching :data:`FederationObject` variant.  Unknown types yield
        :class:`Other`; this function never raises on odd input.
    """
    obj_type = _type_of(doc)
    obj_id = _id_of(doc)

    if obj_type in POST_TYPES:
        return Post(
            id=obj_id,
            type=obj_type,
            content=_localized(doc, "content"),
            published=parse_datetime(doc.get("published")),
            url=url_of(doc.get("url")),
            attributed_to=_id_of(doc.get("attributedTo")),
            tags=_refs(doc.get("tag")),
            attachments=_refs(doc.get("attachment")),
            raw=doc,
        )
    if obj_type in ACTOR_TYPES:
        return Actor(
            id=obj_id,
            type=obj_type,
            name=_localized(doc, "name"),
            preferred_username=_str_or_none(doc.get("preferredUsername")),
            url=url_of(doc.get("url")),
            summary=_localized(doc, "summary"),
            published=parse_datetime(doc.get("published")),
            icon=_single_ref(doc.get("icon")),
            outbox=_single_ref(doc.get("outbox")),
            followers=_single_ref(doc.get("followers")),
            following=_single_ref(doc.get("following")),
            tags=_refs(doc.get("tag")),
            raw=doc,
        )
    if obj_type in ACTIVITY_TYPES:
        return Activity(
            id=obj_id,
            type=obj_type,
            actor=_id_of(doc.get("actor")),
            object=_single_ref(doc.get("object")),
            published=parse_datetime(doc.get("published")),
            raw=doc,
        )
    if obj_type in COLLECTION_TYPES:
        items = doc.get("orderedItems")
        if items is None:
            items = doc.get("items")
        return CollectionRef(
            id=obj_id,
            type=obj_type,
            total_items=_int_or_none(doc.get("totalItems")),
            first=_single_ref(doc.get("first")),
            next=_single_ref(doc.get("next")),
            items=_refs(items),
            raw=doc,
        )
    return Other(id=obj_id, type=obj_type, raw=doc)


def parse_tag(doc: Mapping[str, Any]) -> EmojiTag | Tag:
    """Parse one entry of a ``tag`` array."""
    tag_type = _type_of(doc)
    if tag_type == EMOJI_TAG_TYPE:
        return EmojiTag(
            name=_str_or_none(doc.get("name")),
            icon=parse_image(doc.get("icon")),
            id=_id_of(doc),
        )
    return Tag(
        type=tag_type,
        name=_str_or_none(doc.get("name")),
        href=_str_or_none(doc.get("href")),
    )


def parse_document(doc: Mapping[str, Any]) -> Document:
    """Parse one entry of an ``attachment`` array."""
    return Document(
        type=_type_of(doc),
        url=url_of(doc.get("url")) or _str_or_none(doc.get("href")),
        media_type=_str_or_none(doc.get("mediaType")),
        name=_localized(doc, "name"),
        width=_int_or_none(doc.get("width")),
        height=_int_or_none(doc.get("height")),
    )


def parse_image(value: Any) -> Image | None:
    """Parse an ``icon`` / ``image`` value, which may be a URL, object or list."""
    if isinstance(value, list):
        for entry in value:
            image = parse_image(entry)
            if image is not None and image.url:
                return image
        return None
    if isinstance(value, str):
        return Image(url=value)
    if isinstance(value, Mapping):
        return Image(
            url=url_of(value.get("url")) or _str_or_none(value.get("href")),
            media_type=_str_or_none(value.get("mediaType")),
        )
    return None


def url_of(value: Any) -> str | None:
    """Return the first usable URL from a ``url`` property.

    ``url`` may be a string, a ``Link`` (``href``), an object with its own
    ``url`` or a list of any of these.  For lists, ``text/html`` links are
    preferred since they point at the human-readable page.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        html_links = [
            v for v in value
            if isinstance(v, Mapping) and v.get("mediaType") == "text/html"
        ]
        for entry in html_links + value:
            url = url_of(entry)
            if url:
                return url
        return None
    if isinstance(value, Mapping):
        return (
            _str_or_none(value.get("href"))
            or url_of(value.get("url"))
            or _str_or_none(value.get("id"))
        )
    return None


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an xsd:dateTime string or datetime to a UTC-aware datetime.

    Args:
        value: ISO 8601 string, datetime object, or None.

    Returns:
        Timezone-aware datetime, or ``None`` if ``value`` is missing or
        unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, str):
        for fmt in (
            "%Y-%m-%dT%H:%M:%S%z",
            "%Y-%m-%dT%H:%M:%SZ",
            "%Y-%m-%dT%H:%M:%S.%f%z",
            "%Y-%m-%dT%H:%M:%S.%fZ",
        ):
            try:
                dt = datetime.strptime(value, fmt)
                if dt.tzinfo is None:
                    dt = dt.replace(tzinfo=timezone.utc)
                return dt
            except ValueError:
                continue
    return None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _type_of(doc: Any) -> str:
    if not isinstance(doc, Mapping):
        return ""
    value = doc.get("type")
    if isinstance(value, list):
        # Prefer a type we understand; extension types come after it.
        known = POST_TYPES | ACTOR_TYPES | ACTIVITY_TYPES | COLLECTION_TYPES
        for entry in value:
            if entry in known:
                return entry
        return str(value[0]) if value else ""
    return str(value) if value else ""


def _id_of(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        for entry in value:
            found = _id_of(entry)
            if found:
                return found
        return None
    if isinstance(value, Mapping):
        return _str_or_none(value.get("id"))
    return None


def _localized(doc: Mapping[str, Any], key: str) -> str | None:
    value = doc.get(key)
    if isinstance(value, str):
        return value
    mapped = doc.get(f"{key}Map")
    if isinstance(mapped, Mapping) and mapped:
        for entry in mapped.values():
            if isinstance(entry, str):
                return entry
    return None


def _refs(value: Any) -> tuple[Ref, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        value = [value]
    return tuple(v for v in value if isinstance(v, (str, Mapping)))


def _single_ref(value: Any) -> Ref | None:
    if isinstance(value, (str, Mapping)):
        return value
    if isinstance(value, list) and value:
        return _single_ref(value[0])
    return None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None
