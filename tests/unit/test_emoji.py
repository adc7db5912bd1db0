"""Unit tests for custom emoji extraction and substitution."""

from __future__ import annotations

from bs4 import BeautifulSoup

from fediverse_reader.core.schemas.resolution import CustomEmoji
from fediverse_reader.federation.emoji import extract_custom_emojis, substitute_emojis
from fediverse_reader.federation.vocab import EmojiTag, Image, Tag, parse_tag
from tests.factories.activitypub import EmojiTagFactory, HashtagFactory

BLOBCAT = CustomEmoji(shortcode=":blobcat:", image_url="https://a.example/e/blobcat.png")
BLOBCAT_HEART = CustomEmoji(
    shortcode=":blobcat_heart:", image_url="https://a.example/e/blobcat_heart.png"
)


class TestExtractCustomEmojis:
    def test_only_emoji_tags_are_kept(self) -> None:
        tags = [
            parse_tag(HashtagFactory.build(name="#python")),
            parse_tag(EmojiTagFactory.build(name=":blobcat:")),
        ]

        emojis = extract_custom_emojis(tags)

        assert [e.shortcode for e in emojis] == [":blobcat:"]
        assert emojis[0].image_url == "https://example.social/system/emojis/blobcat.png"
        assert emojis[0].id == "https://example.social/emojis/blobcat"

    def test_first_occurrence_wins(self) -> None:
        """A repeated shortcode keeps the first image URL."""
        tags = [
            EmojiTag(name=":blobcat:", icon=Image(url="https://a.example/first.png")),
            EmojiTag(name=":blobcat:", icon=Image(url="https://a.example/second.png")),
        ]

        emojis = extract_custom_emojis(tags)

        assert len(emojis) == 1
        assert emojis[0].image_url == "https://a.example/first.png"

    def test_incomplete_tags_are_skipped(self) -> None:
        tags = [
            EmojiTag(name=None, icon=Image(url="https://a.example/x.png")),
            EmojiTag(name=":noicon:", icon=None),
            EmojiTag(name=":nourl:", icon=Image(url=None)),
            Tag(type="Mention", name="@bob@b.example"),
        ]

        assert extract_custom_emojis(tags) == []

    def test_name_without_colons_is_wrapped(self) -> None:
        emojis = extract_custom_emojis(
            [EmojiTag(name="blobcat", icon=Image(url="https://a.example/e/blobcat.png"))]
        )

        assert emojis[0].shortcode == ":blobcat:"


class TestSubstituteEmojis:
    def test_shortcode_in_text_becomes_img(self) -> None:
        html = substitute_emojis("<p>Hej :blobcat:!</p>", [BLOBCAT])

        img = BeautifulSoup(html, "html.parser").find("img")
        assert img is not None
        assert img["src"] == BLOBCAT.image_url
        assert img["alt"] == ":blobcat:"
        assert img["title"] == ":blobcat:"
        assert img["class"] == ["inline-emoji"]
        assert img["loading"] == "lazy"
        assert html.startswith("<p>Hej <img")
        assert html.endswith("/>!</p>")

    def test_substitution_is_idempotent(self) -> None:
        """Running on its own output changes nothing (alt text is an attribute)."""
        once = substitute_emojis("<p>:blobcat: og :blobcat:</p>", [BLOBCAT])
        twice = substitute_emojis(once, [BLOBCAT])

        assert twice == once
        assert once.count("<img") == 2

    def test_attribute_values_are_untouched(self) -> None:
        html = '<p><a href="https://a.example/:blobcat:" title=":blobcat:">link</a></p>'

        assert substitute_emojis(html, [BLOBCAT]) == html

    def test_longest_shortcode_wins(self) -> None:
        """':blobcat_heart:' is not split into ':blobcat' + '_heart:'."""
        html = substitute_emojis("<p>:blobcat_heart:</p>", [BLOBCAT, BLOBCAT_HEART])

        img = BeautifulSoup(html, "html.parser").find("img")
        assert img is not None
        assert img["src"] == BLOBCAT_HEART.image_url

    def test_code_blocks_are_skipped(self) -> None:
        html = "<p>Use <code>:blobcat:</code> to insert it</p>"

        assert substitute_emojis(html, [BLOBCAT]) == html

    def test_unknown_shortcode_is_left_as_text(self) -> None:
        html = "<p>:partyparrot:</p>"

        assert substitute_emojis(html, [BLOBCAT]) == html

    def test_empty_inputs(self) -> None:
        assert substitute_emojis("", [BLOBCAT]) == ""
        assert substitute_emojis("<p>:blobcat:</p>", []) == "<p>:blobcat:</p>"
