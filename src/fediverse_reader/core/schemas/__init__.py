"""Pydantic schemas for resolved content and API responses.

Sub-modules:
    resolution: NormalizedIdentifier, ResolvedPost/Actor/Pair, ClassifiedError,
                 BatchItemResult, BatchChunk, HashtagSearchResult
"""

from __future__ import annotations
