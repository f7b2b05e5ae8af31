"""Tests for the Redis event cache."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.asyncio import Redis

from vinefeed.config import Settings
from vinefeed.nostr import RawEvent
from vinefeed.storage import RedisVideoLocalStorage


def make_event(event_id: str) -> RawEvent:
    """Helper to create a RawEvent for testing."""
    return RawEvent(
        id=event_id,
        pubkey="p1",
        created_at=100,
        kind=34236,
        tags=[["d", event_id], ["url", f"https://x/{event_id}.mp4"]],
    )


@pytest.fixture
def settings():
    return Settings(cache_ttl_seconds=100, cache_ttl_splay_max=0)


@pytest.fixture
def mock_redis():
    """Create a mock Redis client with a pipeline context manager."""
    redis = AsyncMock(spec=Redis)
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    pipeline_cm = MagicMock()
    pipeline_cm.__aenter__ = AsyncMock(return_value=pipe)
    pipeline_cm.__aexit__ = AsyncMock(return_value=None)
    redis.pipeline = MagicMock(return_value=pipeline_cm)
    redis.test_pipe = pipe
    return redis


@pytest.mark.asyncio
async def test_get_events_partial_hits(mock_redis, settings):
    """Misses and unreadable entries are skipped."""
    mock_redis.mget = AsyncMock(
        return_value=[make_event("a").model_dump_json().encode(), None, b"{not json"]
    )
    storage = RedisVideoLocalStorage(mock_redis, settings)

    events = await storage.get_events_by_ids(["a", "b", "c"])

    assert [e.id for e in events] == ["a"]
    assert events[0] == make_event("a")
    mock_redis.mget.assert_awaited_once_with(
        ["vine:event:a", "vine:event:b", "vine:event:c"]
    )


@pytest.mark.asyncio
async def test_get_events_empty_input(mock_redis, settings):
    storage = RedisVideoLocalStorage(mock_redis, settings)
    assert await storage.get_events_by_ids([]) == []
    mock_redis.mget.assert_not_called()


@pytest.mark.asyncio
async def test_save_events_batch(mock_redis, settings):
    storage = RedisVideoLocalStorage(mock_redis, settings)
    events = [make_event("a"), make_event("b")]

    await storage.save_events_batch(events)

    mock_redis.pipeline.assert_called_once_with(transaction=False)
    pipe = mock_redis.test_pipe
    assert pipe.setex.call_count == 2
    key, ttl, payload = pipe.setex.call_args_list[0][0]
    assert key == "vine:event:a"
    assert ttl == 100
    assert RawEvent.model_validate_json(payload) == events[0]
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_empty_batch_is_noop(mock_redis, settings):
    storage = RedisVideoLocalStorage(mock_redis, settings)
    await storage.save_events_batch([])
    mock_redis.pipeline.assert_not_called()


def test_ttl_includes_splay(mock_redis):
    storage = RedisVideoLocalStorage(
        mock_redis, Settings(cache_ttl_seconds=100, cache_ttl_splay_max=10)
    )
    for _ in range(20):
        assert 100 <= storage._ttl() <= 110
