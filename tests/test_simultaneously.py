"""Tests for bounded concurrent jobs and metadata fan-out."""

import asyncio
import functools

import pytest

from connectors_sdk import simultaneously
from connectors_sdk.errors import BadRequestError, ForbiddenError, MissingObjectsError, PanicRecoveredError
from connectors_sdk.metadata import MetadataFetcher, list_object_metadata
from connectors_sdk.models import ObjectMetadata


def test_bounded_concurrency():
    state = {"running": 0, "peak": 0, "done": 0}

    async def job():
        state["running"] += 1
        state["peak"] = max(state["peak"], state["running"])
        await asyncio.sleep(0.01)
        state["running"] -= 1
        state["done"] += 1

    asyncio.run(simultaneously.do(2, *[job for _ in range(6)]))
    assert state["peak"] == 2
    assert state["done"] == 6


def test_no_jobs():
    asyncio.run(simultaneously.do(3))


def test_first_failure_is_raised():
    async def ok():
        await asyncio.sleep(0)

    async def bad():
        raise BadRequestError("bad input")

    with pytest.raises(BadRequestError, match="bad input"):
        asyncio.run(simultaneously.do(0, ok, bad, ok))


def test_unexpected_exception_wrapped():
    async def boom():
        raise ValueError("boom")

    with pytest.raises(PanicRecoveredError) as exc_info:
        asyncio.run(simultaneously.do(1, boom))
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_failure_cancels_slow_jobs():
    finished = []

    async def slow():
        await asyncio.sleep(5)
        finished.append("slow")

    async def bad():
        raise BadRequestError()

    with pytest.raises(BadRequestError):
        asyncio.run(simultaneously.do(0, slow, bad))
    assert finished == []


def test_failure_with_queued_jobs_surfaces_real_error():
    started = []

    async def ok():
        started.append("ok")
        await asyncio.sleep(0)

    async def bad():
        raise BadRequestError("real failure")

    with pytest.raises(BadRequestError, match="real failure"):
        asyncio.run(simultaneously.do(1, bad, ok, ok))
    assert started == []


def test_caller_cancellation_propagates():
    async def slow():
        await asyncio.sleep(5)

    async def scenario():
        task = asyncio.ensure_future(simultaneously.do(2, slow, slow))
        await asyncio.sleep(0.01)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())


class TestMetadataFetcher:
    async def fetch(self, name):
        if name == "deals":
            raise ForbiddenError("no scope")
        return ObjectMetadata(display_name=name.title())

    def test_partial_result(self):
        result = asyncio.run(MetadataFetcher(self.fetch, 2).list_object_metadata(["contacts", "deals", "notes"]))
        assert set(result.result) == {"contacts", "notes"}
        assert result.result["notes"].display_name == "Notes"
        assert isinstance(result.errors["deals"], ForbiddenError)

    def test_duplicates_fetched_once(self):
        calls = []

        async def fetch(name):
            calls.append(name)
            return ObjectMetadata(display_name=name)

        asyncio.run(list_object_metadata(["a", "a", "b"], fetch))
        assert sorted(calls) == ["a", "b"]

    def test_requires_objects(self):
        with pytest.raises(MissingObjectsError):
            asyncio.run(MetadataFetcher(functools.partial(self.fetch)).list_object_metadata([]))
