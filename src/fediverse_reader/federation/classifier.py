"""Failure classification for remote resolution.

Transport errors from federated servers are ambiguous.  A refused connection
may mean the server is down, or that it is up and deliberately dropping our
requests.  :class:`FailureClassifier` maps a raw exception onto
:class:`~fediverse_reader.core.schemas.resolution.ErrorKind` so the UI can say
something accurate:

1. HTTP 404 / 410 / "not found"               -> ``not_found``
2. HTTP 401 / 403 / "forbidden" / "unauthorized" -> ``access_denied``
3. timeouts                                     -> ``timeout``
4. network failures -> ``federation_blocked`` if the host is known to block,
   or if its nodeinfo discovery document is unreachable; otherwise
   ``network_unreachable`` with a DNS / refused / generic sub-kind.
5. anything else                                -> ``unknown``

Rules 1 to 3 never touch the network.  Rule 4 issues at most two probes, each
bounded by its own timeout.

The defederation inference in rule 4 is a heuristic; it lives in
:class:`DefederationPolicy` so deployments can tune or subclass it.
"""

from __future__ import annotations

import asyncio
import logging
import re
import socket
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from fediverse_reader.config.settings import Settings
from fediverse_reader.core.exceptions import (
    FetchError,
    FetchTimeoutError,
    ResolutionError,
)
from fediverse_reader.core.schemas.resolution import (
    ClassifiedError,
    ErrorKind,
    NetworkSubKind,
)
from fediverse_reader.federation.config import NODEINFO_PATH

logger = logging.getLogger(__name__)

_NOT_FOUND_PATTERN = re.compile(r"\b(404|410)\b|not found", re.IGNORECASE)
_ACCESS_DENIED_PATTERN = re.compile(
    r"\b(401|403)\b|forbidden|unauthori[sz]ed", re.IGNORECASE
)
_TIMEOUT_PATTERN = re.compile(r"timed out|timeout", re.IGNORECASE)
_NETWORK_PATTERN = re.compile(
    r"fetch failed|network|econnrefused|enotfound|econnreset|connection",
    re.IGNORECASE,
)
_DNS_PATTERN = re.compile(
    r"enotfound|getaddrinfo|name or service not known|nodename nor servname"
    r"|temporary failure in name resolution|no address associated",
    re.IGNORECASE,
)
_REFUSED_PATTERN = re.compile(r"econnrefused|connection refused", re.IGNORECASE)


@dataclass
class DefederationPolicy:
    """Heuristic deciding when a network failure means "blocked".

    Attributes:
        blocked_hosts: Hosts (and their subdomains) known not to serve
            federation requests from this reader.
        discovery_unreachable_means_blocked: Treat a host whose nodeinfo
            document cannot be fetched as blocking federation.  When
            ``False`` such hosts are reported as ``network_unreachable``.
    """

    blocked_hosts: frozenset[str] = field(default_factory=lambda: frozenset({"threads.net"}))
    discovery_unreachable_means_blocked: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "DefederationPolicy":
        return cls(
            blocked_hosts=frozenset(h.lower() for h in settings.federation_blocked_hosts),
        )

    def is_known_blocked(self, hostname: str) -> bool:
        host = hostname.lower().rstrip(".")
        return any(host == b or host.endswith(f".{b}") for b in self.blocked_hosts)


class FailureClassifier:
    """Turn a resolution exception into a :class:`ClassifiedError`.

    Args:
        client: Shared HTTP client used for the probes.
        policy: Defederation heuristic.  Defaults to :class:`DefederationPolicy`.
        probe_timeout: Upper bound in seconds for each probe request.
        user_agent: ``User-Agent`` header sent with probes.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: DefederationPolicy | None = None,
        probe_timeout: float = 5.0,
        user_agent: str = "FediverseReader/0.1",
    ) -> None:
        self._client = client
        self.policy = policy or DefederationPolicy()
        self._probe_timeout = probe_timeout
        self._user_agent = user_agent

    async def classify(self, error: BaseException, hostname: str) -> ClassifiedError:
        """Classify ``error`` raised while resolving something on ``hostname``.

        Args:
            error: The exception caught by the resolver.
            hostname: Host the identifier points at (may be ``""``).

        Returns:
            The classified failure.  Never raises.
        """
        if isinstance(error, ResolutionError):
            return error.classified

        hostname = (hostname or "").lower()
        text = _error_text(error)
        status = _status_of(error)

        # A typed timeout wins over the text rules; its message carries a URL
        # that may contain "/403" or "/404".
        if status is None and _is_timeout(error):
            return ClassifiedError(kind=ErrorKind.TIMEOUT, hostname=hostname, detail=text)

        if status in (404, 410) or (status is None and _NOT_FOUND_PATTERN.search(text)):
            return ClassifiedError(kind=ErrorKind.NOT_FOUND, hostname=hostname, detail=text)

        if status in (401, 403) or (
            status is None and _ACCESS_DENIED_PATTERN.search(text)
        ):
            return ClassifiedError(
                kind=ErrorKind.ACCESS_DENIED, hostname=hostname, detail=text
            )

        if _is_timeout(error) or _TIMEOUT_PATTERN.search(text):
            return ClassifiedError(kind=ErrorKind.TIMEOUT, hostname=hostname, detail=text)

        if status is None and _is_network_failure(error, text):
            return await self._classify_network_failure(error, hostname, text)

        if hostname and self.policy.is_known_blocked(hostname):
            return ClassifiedError(
                kind=ErrorKind.FEDERATION_BLOCKED, hostname=hostname, detail=text
            )
        logger.warning(
            "classifier: unclassified %s for %s: %s",
            type(error).__name__,
            hostname or "<unknown host>",
            text,
        )
        return ClassifiedError(kind=ErrorKind.UNKNOWN, hostname=hostname, detail=text)

    async def probe_discovery(self, hostname: str) -> bool:
        """Return ``True`` if ``hostname`` serves a nodeinfo discovery document."""
        try:
            response = await asyncio.wait_for(
                self._client.get(
                    f"https://{hostname}{NODEINFO_PATH}",
                    headers={"Accept": "application/json", "User-Agent": self._user_agent},
                    follow_redirects=True,
                ),
                timeout=self._probe_timeout,
            )
        except (asyncio.TimeoutError, httpx.HTTPError, OSError) as exc:
            logger.debug("classifier: nodeinfo probe of %s failed: %s", hostname, exc)
            return False

        if response.status_code != 200:
            logger.debug(
                "classifier: nodeinfo probe of %s returned HTTP %d",
                hostname,
                response.status_code,
            )
            return False
        try:
            doc = response.json()
        except ValueError:
            return False
        return isinstance(doc, dict) and isinstance(doc.get("links"), list)

    async def probe_reachability(self, hostname: str) -> NetworkSubKind | None:
        """Plain ``GET https://{hostname}/``.

        Returns:
            ``None`` if the server answered at all (any status), otherwise the
            sub-kind of the probe's own failure.
        """
        try:
            await asyncio.wait_for(
                self._client.get(
                    f"https://{hostname}/",
                    headers={"User-Agent": self._user_agent},
                ),
                timeout=self._probe_timeout,
            )
        except (asyncio.TimeoutError, httpx.HTTPError, OSError) as exc:
            logger.debug("classifier: reachability probe of %s failed: %s", hostname, exc)
            return network_sub_kind(exc)
        return None

    async def _classify_network_failure(
        self, error: BaseException, hostname: str, text: str
    ) -> ClassifiedError:
        if not hostname:
            return ClassifiedError(
                kind=ErrorKind.NETWORK_UNREACHABLE,
                detail=text,
                sub_kind=network_sub_kind(error),
            )

        if self.policy.is_known_blocked(hostname):
            return ClassifiedError(
                kind=ErrorKind.FEDERATION_BLOCKED, hostname=hostname, detail=text
            )

        if not await self.probe_discovery(hostname):
            if self.policy.discovery_unreachable_means_blocked:
                logger.info(
                    "classifier: %s has no reachable nodeinfo; treating as blocked",
                    hostname,
                )
                return ClassifiedError(
                    kind=ErrorKind.FEDERATION_BLOCKED, hostname=hostname, detail=text
                )
            return ClassifiedError(
                kind=ErrorKind.NETWORK_UNREACHABLE,
                hostname=hostname,
                detail=text,
                sub_kind=network_sub_kind(error),
            )

        sub_kind = await self.probe_reachability(hostname)
        if sub_kind is None:
            sub_kind = network_sub_kind(error)
        return ClassifiedError(
            kind=ErrorKind.NETWORK_UNREACHABLE,
            hostname=hostname,
            detail=text,
            sub_kind=sub_kind,
        )


def network_sub_kind(error: BaseException) -> NetworkSubKind:
    """Refine a network failure into DNS / refused / generic.

    Inspects the exception chain for ``socket.gaierror`` and
    ``ConnectionRefusedError`` and falls back to the error text.
    """
    for exc in _exception_chain(error):
        if isinstance(exc, socket.gaierror):
            return NetworkSubKind.DNS_FAILURE
        if isinstance(exc, ConnectionRefusedError):
            return NetworkSubKind.CONNECTION_REFUSED

    text = " ".join(str(exc) for exc in _exception_chain(error))
    if _DNS_PATTERN.search(text):
        return NetworkSubKind.DNS_FAILURE
    if _REFUSED_PATTERN.search(text):
        return NetworkSubKind.CONNECTION_REFUSED
    return NetworkSubKind.GENERIC


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _error_text(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _status_of(error: BaseException) -> int | None:
    if isinstance(error, FetchError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status: Any = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def _is_timeout(error: BaseException) -> bool:
    return isinstance(
        error, (FetchTimeoutError, httpx.TimeoutException, asyncio.TimeoutError)
    )


def _is_network_failure(error: BaseException, text: str) -> bool:
    if isinstance(error, (httpx.TransportError, OSError)):
        return True
    if isinstance(error, FetchError) and isinstance(
        error.__cause__, (httpx.TransportError, OSError)
    ):
        return True
    return bool(_NETWORK_PATTERN.search(text))


def _exception_chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__
