"""Concurrent object metadata lookup.

Each object is resolved by its own task.  A failing object lands in
``ListObjectMetadataResult.errors`` and never fails the batch, so callers
always get the partial result.

Usage::

    fetcher = MetadataFetcher(fetch_one, max_concurrency=8)
    result = await fetcher.list_object_metadata(["contacts", "deals"])
    result.result["contacts"].display_name
    result.errors  # {"deals": ForbiddenError(...)}
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Awaitable, Callable

from connectors_sdk import simultaneously
from connectors_sdk.errors import MissingObjectsError
from connectors_sdk.models import ListObjectMetadataResult, ObjectMetadata

logger = logging.getLogger(__name__)

FetchObjectMetadata = Callable[[str], Awaitable[ObjectMetadata]]


class MetadataFetcher:
    """Fan out *fetch* over object names.

    Parameters
    ----------
    fetch:
        ``async fetch(object_name) -> ObjectMetadata``.
    max_concurrency:
        Upper bound on in-flight fetches.  ``0`` means unlimited.
    """

    def __init__(self, fetch: FetchObjectMetadata, max_concurrency: int = 0) -> None:
        self.fetch = fetch
        self.max_concurrency = max_concurrency

    async def list_object_metadata(self, object_names: list[str]) -> ListObjectMetadataResult:
        if not object_names:
            raise MissingObjectsError()

        result = ListObjectMetadataResult()
        lock = asyncio.Lock()

        async def resolve(name: str) -> None:
            try:
                metadata = await self.fetch(name)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Metadata for object %s failed: %s", name, exc)
                async with lock:
                    result.errors[name] = exc
                return
            async with lock:
                result.result[name] = metadata

        jobs = [functools.partial(resolve, name) for name in dict.fromkeys(object_names)]
        await simultaneously.do(self.max_concurrency, *jobs)
        return result


async def list_object_metadata(
    object_names: list[str],
    fetch: FetchObjectMetadata,
    max_concurrency: int = 0,
) -> ListObjectMetadataResult:
    return await MetadataFetcher(fetch, max_concurrency).list_object_metadata(object_names)
