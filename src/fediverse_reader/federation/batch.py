"""Resolve many identifiers at once with per-item failure isolation.

Hashtag search returns a list of post URLs spread over many servers, some of
which will be slow, gone or blocking.  :class:`BatchResolver` offers two
delivery modes over the same per-item resolution:

**Streaming** - :meth:`BatchResolver.stream` starts one task per identifier
and returns them immediately; :meth:`BatchResolver.iter_completed` yields
results in completion order.  A hung item never delays its siblings.

**Batched chunks** - :meth:`BatchResolver.iter_chunks` resolves fixed-size
chunks one after another (items within a chunk run concurrently) with a short
pause between chunks to stay polite to remote servers.
:meth:`BatchResolver.resolve_batch` flattens the chunks in input order.

Every item ends up ``resolved``, ``unavailable`` or ``failed``; nothing an
individual item does can make the batch raise.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator, Sequence
from typing import TypeVar

from fediverse_reader.core.exceptions import ObjectUnavailableError, ResolutionError
from fediverse_reader.core.schemas.resolution import (
    BatchChunk,
    BatchItemResult,
    BatchOutcome,
    ClassifiedError,
    ErrorKind,
)
from fediverse_reader.federation.identifiers import hostname_of
from fediverse_reader.federation.resolver import ObjectResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError(f"chunk size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class BatchResolver:
    """Resolve lists of post identifiers through an :class:`ObjectResolver`.

    Args:
        resolver: Single-object resolver used for every item.
        chunk_size: Items per chunk in batched mode.
        chunk_delay: Seconds to wait between chunks.
        item_timeout: Upper bound in seconds for one item, after which it is
            reported as ``failed`` with kind ``timeout``.

    Raises:
        ValueError: If ``chunk_size`` is smaller than 1 or a delay or timeout
            is negative.
    """

    def __init__(
        self,
        resolver: ObjectResolver,
        chunk_size: int = 5,
        chunk_delay: float = 0.5,
        item_timeout: float = 10.0,
    ) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        if chunk_delay < 0:
            raise ValueError(f"chunk_delay must not be negative, got {chunk_delay}")
        if item_timeout <= 0:
            raise ValueError(f"item_timeout must be positive, got {item_timeout}")
        self._resolver = resolver
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay
        self.item_timeout = item_timeout

    # ------------------------------------------------------------------
    # Per item
    # ------------------------------------------------------------------

    async def resolve_item(self, identifier: str) -> BatchItemResult:
        """Resolve one identifier into a settled :class:`BatchItemResult`."""
        try:
            pair = await asyncio.wait_for(
                self._resolver.resolve_post(identifier), timeout=self.item_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "batch: %s did not resolve within %gs", identifier, self.item_timeout
            )
            return BatchItemResult(
                identifier=identifier,
                outcome=BatchOutcome.FAILED,
                error=ClassifiedError(
                    kind=ErrorKind.TIMEOUT,
                    hostname=hostname_of(identifier),
                    detail=f"no result within {self.item_timeout:g}s",
                ),
            )
        except ObjectUnavailableError as exc:
            return BatchItemResult(
                identifier=identifier,
                outcome=BatchOutcome.UNAVAILABLE,
                error=exc.classified,
            )
        except ResolutionError as exc:
            return BatchItemResult(
                identifier=identifier,
                outcome=BatchOutcome.FAILED,
                error=exc.classified,
            )
        return BatchItemResult(
            identifier=identifier, outcome=BatchOutcome.RESOLVED, result=pair
        )

    # ------------------------------------------------------------------
    # Streaming mode
    # ------------------------------------------------------------------

    def stream(self, identifiers: Sequence[str]) -> list[asyncio.Task[BatchItemResult]]:
        """Start resolving every identifier and return the tasks at once.

        Must be called from a running event loop.  The caller owns the tasks
        and should cancel the unfinished ones if it stops waiting.

        Raises:
            TypeError: If ``identifiers`` is not a list of strings.
        """
        items = _validated(identifiers)
        return [asyncio.create_task(self.resolve_item(i)) for i in items]

    async def iter_completed(
        self, identifiers: Sequence[str]
    ) -> AsyncIterator[BatchItemResult]:
        """Yield item results in the order they complete.

        Tasks still running when the consumer stops iterating are cancelled.
        """
        tasks = self.stream(identifiers)
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    # ------------------------------------------------------------------
    # Batched-chunk mode
    # ------------------------------------------------------------------

    async def iter_chunks(self, identifiers: Sequence[str]) -> AsyncIterator[BatchChunk]:
        """Resolve ``identifiers`` chunk by chunk, yielding each chunk.

        A chunk that raises as a whole is reported as ``failed`` for each of
        its items; later chunks still run.

        Raises:
            TypeError: If ``identifiers`` is not a list of strings.
        """
        items = _validated(identifiers)
        chunks = list(chunked(items, self.chunk_size))
        for index, chunk in enumerate(chunks):
            if index > 0 and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)

            try:
                results = await self._resolve_chunk(chunk)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "batch: chunk %d/%d failed entirely: %s", index + 1, len(chunks), exc
                )
                results = [
                    BatchItemResult(
                        identifier=identifier,
                        outcome=BatchOutcome.FAILED,
                        error=ClassifiedError(
                            kind=ErrorKind.UNKNOWN,
                            hostname=hostname_of(identifier),
                            detail=str(exc) or type(exc).__name__,
                        ),
                    )
                    for identifier in chunk
                ]

            resolved = sum(1 for r in results if r.outcome is BatchOutcome.RESOLVED)
            logger.info(
                "batch: chunk %d/%d done, %d/%d resolved",
                index + 1,
                len(chunks),
                resolved,
                len(results),
            )
            yield BatchChunk(index=index, results=results)

    async def resolve_batch(self, identifiers: Sequence[str]) -> list[BatchItemResult]:
        """Resolve all ``identifiers`` in chunks; results keep input order."""
        results: list[BatchItemResult] = []
        async for chunk in self.iter_chunks(identifiers):
            results.extend(chunk.results)
        return results

    async def _resolve_chunk(self, chunk: list[str]) -> list[BatchItemResult]:
        return list(await asyncio.gather(*(self.resolve_item(i) for i in chunk)))


def _validated(identifiers: Sequence[str]) -> list[str]:
    if isinstance(identifiers, (str, bytes)) or not isinstance(identifiers, Sequence):
        raise TypeError(
            f"identifiers must be a list of strings, got {type(identifiers).__name__}"
        )
    for identifier in identifiers:
        if not isinstance(identifier, str):
            raise TypeError(
                f"identifiers must be strings, got {type(identifier).__name__}"
            )
    return list(identifiers)
