"""Federation package.

Resolves posts, profiles and outboxes from ActivityPub servers and classifies
the ways in which that can fail.

Components (leaves first):

- ``identifiers``: canonicalise user input into a fetchable identifier.
- ``vocab``: tagged union of federation objects produced by fetchers.
- ``fetcher``: ``ObjectFetcher`` protocol and the httpx implementation.
- ``emoji``: custom-emoji extraction and substitution.
- ``classifier``: map transport failures onto a stable error taxonomy.
- ``resolver``: resolve one post (with author) or one profile.
- ``traverser``: harvest recent posts from an actor's outbox.
- ``batch``: resolve many identifiers with failure isolation.
- ``search``: hashtag search against a Mastodon-compatible server.
- ``router``: FastAPI endpoints over all of the above.
"""
