"""Canonicalisation of user-supplied fediverse references.

Users paste all sorts of things into a reader: bare handles, handles without
the leading ``@``, post URLs without a scheme, URLs wrapped by third-party
apps (``elk.zone/...``) or decorated by feed readers (Flipboard's trailing
``/0``).  :func:`normalize_identifier` turns any of these into a
:class:`~fediverse_reader.core.schemas.resolution.NormalizedIdentifier`.

Normalization never fails.  Input that cannot be confidently classified falls
through to ``post-url`` with best-effort cleanup; the remote fetch is the
actual validator.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from fediverse_reader.core.exceptions import InvalidHandleError
from fediverse_reader.core.schemas.resolution import NormalizedIdentifier
from fediverse_reader.federation.config import (
    MIRROR_PREFIXES,
    SYNTHETIC_TRAILING_SEGMENTS,
)

# ``@user@domain`` with the leading ``@`` optional.  The domain must contain a
# dot; neither part may contain whitespace, ``/`` or another ``@``.
_HANDLE_PATTERN: re.Pattern[str] = re.compile(
    r"^@?(?P<user>[^@\s/]+)@(?P<domain>[^@\s/]+\.[^@\s/]+)$"
)

_SCHEME_PATTERN: re.Pattern[str] = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")

# Route parameters joined with "/" collapse "https://" into "https:/".
_COLLAPSED_SCHEME_PATTERN: re.Pattern[str] = re.compile(r"^(https?):/(?!/)", re.IGNORECASE)

_PROFILE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(?P<server>[^/]+)/@(?P<user>[^/@]+)$"),
    re.compile(r"^(?P<server>[^/]+)/users/(?P<user>[^/]+)$"),
    re.compile(r"^(?P<server>[^/]+)/profile/(?P<user>[^/]+)$"),
)


def normalize_identifier(raw: str) -> NormalizedIdentifier:
    """Canonicalise a raw user string into a fetchable identifier.

    Rules, applied in order:

    1. ``@user@domain`` (leading ``@`` optional) → ``handle`` with exactly one
       leading ``@``.
    2. Otherwise repair a collapsed ``https:/`` scheme, strip a known mirror
       prefix and a known trailing synthetic segment.
    3. Prepend ``https://`` when no scheme is present.
    4. Classify as ``post-url``.

    Args:
        raw: Whatever the user typed or pasted.

    Returns:
        The normalized identifier.  Never raises.
    """
    value = (raw or "").strip()

    match = _HANDLE_PATTERN.match(value)
    if match:
        return NormalizedIdentifier(
            kind="handle",
            value=f"@{match.group('user')}@{match.group('domain')}",
        )

    value = _COLLAPSED_SCHEME_PATTERN.sub(r"\1://", value)
    scheme, rest = _split_scheme(value)
    rest = _strip_mirror_prefix(rest)
    rest = _strip_trailing_segment(rest)

    return NormalizedIdentifier(kind="post-url", value=f"{scheme or 'https://'}{rest}")


def ensure_handle(raw: str) -> str:
    """Return ``raw`` as an ``@user@domain`` handle.

    Accepts the handle with or without the leading ``@``.

    Args:
        raw: Candidate handle.

    Returns:
        The handle with exactly one leading ``@``.

    Raises:
        InvalidHandleError: If ``raw`` is not a handle.
    """
    identifier = normalize_identifier(raw)
    if not identifier.is_handle:
        raise InvalidHandleError(raw)
    return identifier.value


def profile_handle_from_url(raw: str) -> str | None:
    """Return the handle for a profile URL, or ``None`` if ``raw`` is not one.

    Recognises ``server/@user``, ``server/users/user`` and
    ``server/profile/user`` (scheme and mirror prefix optional).  Handles are
    returned unchanged apart from the leading ``@``.

    Args:
        raw: Handle or URL.

    Returns:
        ``"@user@server"`` or ``None``.
    """
    value = (raw or "").strip()
    if _HANDLE_PATTERN.match(value):
        return normalize_identifier(value).value

    value = _COLLAPSED_SCHEME_PATTERN.sub(r"\1://", value)
    _, rest = _split_scheme(value)
    rest = _strip_trailing_segment(_strip_mirror_prefix(rest)).rstrip("/")

    for pattern in _PROFILE_PATTERNS:
        match = pattern.match(rest)
        if match:
            return f"@{match.group('user')}@{match.group('server')}"
    return None


def hostname_of(identifier: NormalizedIdentifier | str) -> str:
    """Return the host an identifier points at (``""`` if undeterminable)."""
    if isinstance(identifier, str):
        identifier = normalize_identifier(identifier)
    if identifier.is_handle:
        return identifier.value.rsplit("@", 1)[-1].lower()
    try:
        return (urlparse(identifier.value).hostname or "").lower()
    except ValueError:
        return ""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _split_scheme(value: str) -> tuple[str, str]:
    match = _SCHEME_PATTERN.match(value)
    if match is None:
        return "", value
    return match.group(0), value[match.end():]


def _strip_mirror_prefix(rest: str) -> str:
    for prefix in MIRROR_PREFIXES:
        if rest.startswith(prefix):
            return rest[len(prefix):]
    return rest


def _strip_trailing_segment(rest: str) -> str:
    for segment in SYNTHETIC_TRAILING_SEGMENTS:
        if rest.endswith(segment):
            return rest[: -len(segment)]
    return rest
