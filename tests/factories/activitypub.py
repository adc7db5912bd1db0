"""Factory Boy factories for ActivityStreams documents.

Each factory builds the compacted JSON a Mastodon-compatible server would
serve.  Hosts and usernames are factory parameters so related documents line
up::

    from tests.factories.activitypub import NoteFactory, PersonFactory

    author = PersonFactory.build(host="example.social", username="alice")
    note = NoteFactory.build(host="example.social", username="alice")
    assert note["attributedTo"] == author["id"]
"""

from __future__ import annotations

from typing import Any

import factory

AS_CONTEXT = "https://www.w3.org/ns/activitystreams"


class EmojiTagFactory(factory.Factory):
    """Custom emoji tag (``{"type": "Emoji", ...}``)."""

    class Meta:
        model = dict

    class Params:
        host = "example.social"

    type = "Emoji"
    id = factory.LazyAttribute(lambda o: f"https://{o.host}/emojis/{o.name.strip(':')}")
    name = factory.Sequence(lambda n: f":emoji{n}:")
    icon = factory.LazyAttribute(
        lambda o: {
            "type": "Image",
            "mediaType": "image/png",
            "url": f"https://{o.host}/system/emojis/{o.name.strip(':')}.png",
        }
    )


class HashtagFactory(factory.Factory):
    """``Hashtag`` tag."""

    class Meta:
        model = dict

    class Params:
        host = "example.social"

    type = "Hashtag"
    name = factory.Sequence(lambda n: f"#tag{n}")
    href = factory.LazyAttribute(lambda o: f"https://{o.host}/tags/{o.name.lstrip('#')}")


class ImageAttachmentFactory(factory.Factory):
    """Image ``Document`` attachment."""

    class Meta:
        model = dict

    class Params:
        host = "example.social"

    type = "Document"
    mediaType = "image/jpeg"
    url = factory.LazyAttributeSequence(
        lambda o, n: f"https://{o.host}/system/media_attachments/{n}.jpg"
    )
    name = "Kystlinje ved Skagen i solnedgang"
    width = 1200
    height = 800


class NoteFactory(factory.Factory):
    """A ``Note`` authored by ``https://{host}/users/{username}``."""

    class Meta:
        model = dict
        rename = {"context": "@context"}

    class Params:
        host = "example.social"
        username = "alice"

    context = AS_CONTEXT
    id = factory.LazyAttributeSequence(
        lambda o, n: f"https://{o.host}/users/{o.username}/statuses/{1000 + n}"
    )
    type = "Note"
    content = factory.Sequence(lambda n: f"<p>Hello fediverse, post {n}</p>")
    published = "2024-06-15T10:00:00Z"
    url = factory.LazyAttribute(
        lambda o: f"https://{o.host}/@{o.username}/{o.id.rsplit('/', 1)[-1]}"
    )
    attributedTo = factory.LazyAttribute(lambda o: f"https://{o.host}/users/{o.username}")
    tag = factory.LazyFunction(list)
    attachment = factory.LazyFunction(list)


class PersonFactory(factory.Factory):
    """A ``Person`` at ``https://{host}/users/{username}``."""

    class Meta:
        model = dict
        rename = {"context": "@context"}

    class Params:
        host = "example.social"
        username = "alice"

    context = AS_CONTEXT
    id = factory.LazyAttribute(lambda o: f"https://{o.host}/users/{o.username}")
    type = "Person"
    preferredUsername = factory.SelfAttribute("username")
    name = factory.LazyAttribute(lambda o: o.username.capitalize())
    url = factory.LazyAttribute(lambda o: f"https://{o.host}/@{o.username}")
    summary = "<p>Writes about the open web.</p>"
    published = "2022-11-01T00:00:00Z"
    icon = factory.LazyAttribute(
        lambda o: {
            "type": "Image",
            "mediaType": "image/png",
            "url": f"https://{o.host}/avatars/{o.username}.png",
        }
    )
    outbox = factory.LazyAttribute(lambda o: f"{o.id}/outbox")
    followers = factory.LazyAttribute(lambda o: f"{o.id}/followers")
    following = factory.LazyAttribute(lambda o: f"{o.id}/following")
    tag = factory.LazyFunction(list)


class CreateActivityFactory(factory.Factory):
    """``Create`` wrapping an inline ``Note``."""

    class Meta:
        model = dict

    object = factory.SubFactory(NoteFactory)
    id = factory.LazyAttribute(lambda o: f"{o.object['id']}/activity")
    type = "Create"
    actor = factory.LazyAttribute(lambda o: o.object["attributedTo"])
    published = factory.LazyAttribute(lambda o: o.object["published"])


class AnnounceActivityFactory(factory.Factory):
    """``Announce`` (boost) of somebody else's post, by reference."""

    class Meta:
        model = dict

    id = factory.Sequence(lambda n: f"https://example.social/users/alice/statuses/{5000 + n}/activity")
    type = "Announce"
    actor = "https://example.social/users/alice"
    object = factory.Sequence(lambda n: f"https://elsewhere.example/users/bob/statuses/{n}")
    published = "2024-06-14T09:00:00Z"


def outbox_documents(
    actor_id: str,
    activities: list[dict[str, Any]],
    page_size: int = 20,
) -> dict[str, dict[str, Any]]:
    """Build a paged outbox for ``actor_id`` as a ``{url: document}`` map.

    Args:
        actor_id: Actor URL; the outbox lives at ``{actor_id}/outbox``.
        activities: Activities, newest first.
        page_size: Activities per page.

    Returns:
        The outbox collection and every page, keyed by URL.
    """
    outbox_url = f"{actor_id}/outbox"
    pages = [activities[i:i + page_size] for i in range(0, len(activities), page_size)]
    documents: dict[str, dict[str, Any]] = {
        outbox_url: {
            "@context": AS_CONTEXT,
            "id": outbox_url,
            "type": "OrderedCollection",
            "totalItems": len(activities),
            "first": f"{outbox_url}?page=1" if pages else None,
        }
    }
    for number, items in enumerate(pages, start=1):
        page: dict[str, Any] = {
            "@context": AS_CONTEXT,
            "id": f"{outbox_url}?page={number}",
            "type": "OrderedCollectionPage",
            "partOf": outbox_url,
            "orderedItems": items,
        }
        if number < len(pages):
            page["next"] = f"{outbox_url}?page={number + 1}"
        documents[page["id"]] = page
    return documents
