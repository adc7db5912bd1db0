"""Factory Boy factories for test data generation.

Available factories
-------------------
NoteFactory                 ``Note`` dict authored by ``/users/{username}``
PersonFactory               ``Person`` actor dict with outbox/followers refs
EmojiTagFactory             custom emoji tag dict
HashtagFactory              ``Hashtag`` tag dict
ImageAttachmentFactory      image ``Document`` attachment (Danish alt text)
CreateActivityFactory       ``Create`` wrapping an inline ``Note``
AnnounceActivityFactory     ``Announce`` of a remote post by reference
outbox_documents            paged outbox as a ``{url: document}`` map
"""

from __future__ import annotations

from tests.factories.activitypub import (
    AnnounceActivityFactory,
    CreateActivityFactory,
    EmojiTagFactory,
    HashtagFactory,
    ImageAttachmentFactory,
    NoteFactory,
    PersonFactory,
    outbox_documents,
)

__all__ = [
    "AnnounceActivityFactory",
    "CreateActivityFactory",
    "EmojiTagFactory",
    "HashtagFactory",
    "ImageAttachmentFactory",
    "NoteFactory",
    "PersonFactory",
    "outbox_documents",
]
