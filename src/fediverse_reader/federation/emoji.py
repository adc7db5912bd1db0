"""Custom emoji extraction and substitution.

Mastodon-compatible servers attach custom emoji to posts and profiles as
``Emoji`` tags::

    {"type": "Emoji", "name": ":blobcat:",
     "icon": {"type": "Image", "url": "https://example.social/emoji/blobcat.png"}}

:func:`extract_custom_emojis` turns a tag list into a table of
:class:`~fediverse_reader.core.schemas.resolution.CustomEmoji`, and
:func:`substitute_emojis` swaps shortcodes in HTML text for inline images.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from bs4 import BeautifulSoup, NavigableString

from fediverse_reader.core.schemas.resolution import CustomEmoji
from fediverse_reader.federation.vocab import EmojiTag, Tag

logger = logging.getLogger(__name__)

_SKIPPED_PARENTS: frozenset[str] = frozenset({"script", "style", "code", "pre"})


def extract_custom_emojis(tags: Iterable[EmojiTag | Tag]) -> list[CustomEmoji]:
    """Build the custom emoji table of one object.

    Non-emoji tags are ignored, as are emoji tags without a name or without an
    image URL.  When a shortcode occurs twice, the first occurrence wins.

    Args:
        tags: Parsed tags of a post or actor.

    Returns:
        Emoji in first-occurrence order.
    """
    emojis: list[CustomEmoji] = []
    seen: set[str] = set()
    for tag in tags:
        if not isinstance(tag, EmojiTag):
            continue
        if not tag.name or tag.icon is None or not tag.icon.url:
            logger.debug("emoji: skipping incomplete emoji tag %r", tag.name)
            continue
        shortcode = _as_shortcode(tag.name)
        if shortcode in seen:
            continue
        seen.add(shortcode)
        emojis.append(CustomEmoji(shortcode=shortcode, image_url=tag.icon.url, id=tag.id))
    return emojis


def substitute_emojis(
    html: str,
    emojis: Sequence[CustomEmoji],
    css_class: str = "inline-emoji",
) -> str:
    """Replace emoji shortcodes in the text of ``html`` with ``<img>`` tags.

    Only text nodes are searched, so a shortcode inside an attribute value
    (including the ``alt`` of an already substituted image) is never touched.
    Running the function on its own output is therefore a no-op.

    Args:
        html: Post content or profile summary.
        emojis: Emoji table of the same object.
        css_class: Class given to the generated images.

    Returns:
        The rewritten HTML, or ``html`` unchanged if no shortcode occurred in
        its text.
    """
    if not html or not emojis:
        return html

    by_shortcode = {e.shortcode: e for e in emojis}
    pattern = re.compile(
        "|".join(re.escape(code) for code in sorted(by_shortcode, key=len, reverse=True))
    )

    soup = BeautifulSoup(html, "html.parser")
    replaced = False
    for node in list(soup.find_all(string=True)):
        # Comments, CDATA and doctypes are NavigableString subclasses.
        if type(node) is not NavigableString:
            continue
        if node.parent is not None and node.parent.name in _SKIPPED_PARENTS:
            continue
        text = str(node)
        if not pattern.search(text):
            continue

        pieces: list[NavigableString | object] = []
        cursor = 0
        for match in pattern.finditer(text):
            if match.start() > cursor:
                pieces.append(NavigableString(text[cursor:match.start()]))
            emoji = by_shortcode[match.group(0)]
            pieces.append(
                soup.new_tag(
                    "img",
                    attrs={
                        "src": emoji.image_url,
                        "alt": emoji.shortcode,
                        "title": emoji.shortcode,
                        "class": css_class,
                        "loading": "lazy",
                    },
                )
            )
            cursor = match.end()
        if cursor < len(text):
            pieces.append(NavigableString(text[cursor:]))

        node.replace_with(*pieces)
        replaced = True

    return str(soup) if replaced else html


def _as_shortcode(name: str) -> str:
    name = name.strip()
    if not name.startswith(":"):
        name = f":{name}"
    if not name.endswith(":"):
        name = f"{name}:"
    return name
