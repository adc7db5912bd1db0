"""Unit tests for fediverse_reader.federation.vocab.

Parses recorded Mastodon documents and a handful of hand-built edge cases
into the tagged union, checking that odd input never raises.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from fediverse_reader.federation.vocab import (
    Activity,
    Actor,
    CollectionRef,
    EmojiTag,
    Image,
    Other,
    Post,
    Tag,
    parse_datetime,
    parse_document,
    parse_image,
    parse_object,
    parse_tag,
    url_of,
)
from tests.factories.activitypub import (
    AnnounceActivityFactory,
    CreateActivityFactory,
    PersonFactory,
)

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures" / "api_responses" / "activitypub"


def _load(name: str) -> dict[str, Any]:
    return json.loads((FIXTURES_DIR / name).read_text(encoding="utf-8"))


class TestParseObjectVariants:
    def test_recorded_note_is_a_post(self) -> None:
        """A Mastodon Note parses into Post with refs kept for the fetcher."""
        post = parse_object(_load("note.json"))

        assert isinstance(post, Post)
        assert post.id == "https://mastodon.example/users/mette/statuses/112233445566778899"
        assert post.attributed_to == "https://mastodon.example/users/mette"
        assert post.url == "https://mastodon.example/@mette/112233445566778899"
        assert post.published == datetime(2024, 5, 21, 8, 15, 30, tzinfo=timezone.utc)
        assert len(post.tags) == 2
        assert len(post.attachments) == 2

    def test_recorded_person_is_an_actor(self) -> None:
        actor = parse_object(_load("person.json"))

        assert isinstance(actor, Actor)
        assert actor.preferred_username == "mette"
        assert actor.name == "Mette Sørensen :flag_dk:"
        assert actor.outbox == "https://mastodon.example/users/mette/outbox"
        assert isinstance(actor.icon, dict)

    def test_create_activity_keeps_inline_object(self) -> None:
        activity = parse_object(CreateActivityFactory.build())

        assert isinstance(activity, Activity)
        assert activity.type == "Create"
        assert isinstance(activity.object, dict)
        assert activity.object["type"] == "Note"

    def test_announce_keeps_object_reference(self) -> None:
        activity = parse_object(AnnounceActivityFactory.build())

        assert isinstance(activity, Activity)
        assert isinstance(activity.object, str)

    def test_collection_page_reads_ordered_items(self) -> None:
        page = parse_object(
            {
                "id": "https://mastodon.example/users/mette/outbox?page=1",
                "type": "OrderedCollectionPage",
                "next": "https://mastodon.example/users/mette/outbox?page=2",
                "orderedItems": ["https://a.example/1", {"type": "Create", "id": "x"}],
            }
        )

        assert isinstance(page, CollectionRef)
        assert page.next == "https://mastodon.example/users/mette/outbox?page=2"
        assert len(page.items) == 2

    def test_collection_total_items(self) -> None:
        collection = parse_object(
            {"id": "https://a.example/followers", "type": "OrderedCollection", "totalItems": 42}
        )

        assert isinstance(collection, CollectionRef)
        assert collection.total_items == 42
        assert collection.first is None

    def test_tombstone_is_other(self) -> None:
        obj = parse_object({"id": "https://a.example/1", "type": "Tombstone"})

        assert isinstance(obj, Other)
        assert obj.type == "Tombstone"

    def test_type_list_prefers_known_type(self) -> None:
        """Extension types listed first do not hide the ActivityStreams type."""
        actor = parse_object(PersonFactory.build(type=["schema:Person", "Person"]))

        assert isinstance(actor, Actor)

    @pytest.mark.parametrize("doc", [{}, {"type": None}, {"type": 7, "id": 3}])
    def test_odd_documents_never_raise(self, doc: dict[str, Any]) -> None:
        assert isinstance(parse_object(doc), Other)

    def test_content_map_fallback(self) -> None:
        """Without 'content', the first 'contentMap' entry is used."""
        post = parse_object(
            {"id": "https://a.example/1", "type": "Note", "contentMap": {"da": "<p>Hej</p>"}}
        )

        assert isinstance(post, Post)
        assert post.content == "<p>Hej</p>"


class TestLeafParsers:
    def test_emoji_tag(self) -> None:
        tag = parse_tag(_load("note.json")["tag"][1])

        assert isinstance(tag, EmojiTag)
        assert tag.name == ":flag_dk:"
        assert tag.icon is not None
        assert tag.icon.url.endswith("flag_dk.png")

    def test_hashtag_tag(self) -> None:
        tag = parse_tag(_load("note.json")["tag"][0])

        assert isinstance(tag, Tag)
        assert tag.type == "Hashtag"
        assert tag.name == "#folkemødet"

    def test_document_attachment(self) -> None:
        document = parse_document(_load("note.json")["attachment"][0])

        assert document.media_type == "image/jpeg"
        assert document.name == "Scenen i Allinge med publikum foran"
        assert (document.width, document.height) == (1600, 1067)

    def test_image_from_list_picks_first_with_url(self) -> None:
        image = parse_image([{"type": "Image"}, "https://a.example/avatar.png"])

        assert image == Image(url="https://a.example/avatar.png")

    def test_image_from_unsupported_value(self) -> None:
        assert parse_image(42) is None

    def test_url_of_prefers_html_link(self) -> None:
        value = [
            {"type": "Link", "mediaType": "application/activity+json", "href": "https://a.example/ap"},
            {"type": "Link", "mediaType": "text/html", "href": "https://a.example/web"},
        ]

        assert url_of(value) == "https://a.example/web"


class TestParseDatetime:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2024-05-21T08:15:30Z", datetime(2024, 5, 21, 8, 15, 30, tzinfo=timezone.utc)),
            (
                "2024-05-21T08:15:30.500Z",
                datetime(2024, 5, 21, 8, 15, 30, 500000, tzinfo=timezone.utc),
            ),
            ("2024-05-21T10:15:30+02:00", datetime(2024, 5, 21, 8, 15, 30, tzinfo=timezone.utc)),
        ],
    )
    def test_formats(self, value: str, expected: datetime) -> None:
        assert parse_datetime(value) == expected

    def test_unparseable_is_none(self) -> None:
        assert parse_datetime("yesterday") is None

    def test_naive_datetime_becomes_utc(self) -> None:
        parsed = parse_datetime(datetime(2024, 1, 1, 12, 0))

        assert parsed is not None
        assert parsed.tzinfo is timezone.utc
