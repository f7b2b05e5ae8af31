"""Local event cache consulted by the id-based video lookups."""

import json
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import ValidationError
from redis.asyncio import Redis

from vinefeed.config import Settings, get_settings
from vinefeed.nostr.models import RawEvent

logger = logging.getLogger(__name__)


class VideoLocalStorage(ABC):
    """Abstract cache of raw video events keyed by event id."""

    @abstractmethod
    async def get_events_by_ids(self, ids: Sequence[str]) -> list[RawEvent]:
        """
        Look up cached events.

        Args:
            ids: Event ids to look up

        Returns:
            The cached events that were found (partial hits allowed, any order)
        """
        pass

    @abstractmethod
    async def save_events_batch(self, events: Sequence[RawEvent]) -> None:
        """
        Store events, replacing existing entries with the same id.

        Args:
            events: Events to persist
        """
        pass


def _key(event_id: str) -> str:
    """Generate Redis key for a cached event."""
    return f"vine:event:{event_id}"


class RedisVideoLocalStorage(VideoLocalStorage):
    """Redis-backed event cache with a randomized TTL per entry."""

    def __init__(self, redis: Redis, settings: Settings | None = None):
        self.redis = redis
        self.settings = settings or get_settings()

    @classmethod
    def from_url(cls, url: str | None = None, settings: Settings | None = None) -> "RedisVideoLocalStorage":
        settings = settings or get_settings()
        redis = Redis.from_url(url or settings.redis_url, encoding="utf-8", decode_responses=False)
        return cls(redis, settings)

    def _ttl(self) -> int:
        return self.settings.cache_ttl_seconds + random.randint(
            0, self.settings.cache_ttl_splay_max
        )

    async def get_events_by_ids(self, ids: Sequence[str]) -> list[RawEvent]:
        """Fetch cached events with a single MGET; corrupt entries count as misses."""
        if not ids:
            return []

        values = await self.redis.mget([_key(event_id) for event_id in ids])

        events: list[RawEvent] = []
        for event_id, raw in zip(ids, values):
            if raw is None:
                continue
            try:
                events.append(RawEvent.model_validate(json.loads(raw)))
            except (ValueError, ValidationError):
                logger.warning(f"Dropping unreadable cache entry for event {event_id}")
                continue

        return events

    async def save_events_batch(self, events: Sequence[RawEvent]) -> None:
        if not events:
            return

        async with self.redis.pipeline(transaction=False) as pipe:
            for event in events:
                pipe.setex(_key(event.id), self._ttl(), event.model_dump_json())
            await pipe.execute()

        logger.debug(f"Cached {len(events)} video events")
