"""Policy wrappers around the relay and REST query capabilities.

The relay adapter adds nothing: relay failures propagate. The REST adapter
turns each call into a SourceResult and decides, per repository method,
whether a FunnelcakeException falls through to the next source or reaches
the caller (see REST_FAILURE_POLICY).
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from vinefeed.funnelcake.client import FunnelcakeApiClient
from vinefeed.funnelcake.exceptions import FunnelcakeException
from vinefeed.nostr.client import NostrClient
from vinefeed.nostr.models import Filter, RawEvent

T = TypeVar("T")


class SourceOutcome(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class FailurePolicy(str, Enum):
    FALL_THROUGH = "fall_through"
    PROPAGATE = "propagate"


REST_FAILURE_POLICY: dict[str, FailurePolicy] = {
    # Feed modes with a relay fallback
    "get_new_videos": FailurePolicy.FALL_THROUGH,
    "get_home_feed_videos": FailurePolicy.FALL_THROUGH,
    "get_popular_videos": FailurePolicy.FALL_THROUGH,
    "get_collab_videos": FailurePolicy.FALL_THROUGH,
    "get_videos_by_addressable_ids": FailurePolicy.FALL_THROUGH,
    # REST-only read-through methods
    "get_videos_by_loops": FailurePolicy.PROPAGATE,
    "get_videos_by_hashtag": FailurePolicy.PROPAGATE,
    "get_classic_videos_by_hashtag": FailurePolicy.PROPAGATE,
    "search_videos": FailurePolicy.PROPAGATE,
    "get_classic_vines": FailurePolicy.PROPAGATE,
    "get_videos_by_author": FailurePolicy.PROPAGATE,
    "get_video_stats": FailurePolicy.PROPAGATE,
    "get_video_views": FailurePolicy.PROPAGATE,
    "get_bulk_video_stats": FailurePolicy.PROPAGATE,
    "get_recommendations": FailurePolicy.PROPAGATE,
}


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    """Outcome of one call to an optional source."""

    outcome: SourceOutcome
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is SourceOutcome.SUCCESS


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, Sequence) and not isinstance(value, str):
        return len(value) == 0
    videos = getattr(value, "videos", None)
    return isinstance(videos, list) and not videos


class RelaySource:
    """Relay adapter. No retries and no exception handling."""

    def __init__(self, client: NostrClient):
        self._client = client

    async def query(self, filters: list[Filter], use_cache: bool = True) -> list[RawEvent]:
        """Run filters against the relays.

        `use_cache` is only passed when False so clients without cache
        support keep their default signature.
        """
        if use_cache:
            return await self._client.query_events(filters)
        return await self._client.query_events(filters, use_cache=False)


class RestSource:
    """Optional REST adapter with an availability check before every call."""

    def __init__(self, client: FunnelcakeApiClient | None):
        self._client = client

    @property
    def client(self) -> FunnelcakeApiClient | None:
        return self._client

    @property
    def available(self) -> bool:
        return self._client is not None and self._client.is_available

    async def call(
        self,
        method: str,
        operation: Callable[[FunnelcakeApiClient], Awaitable[T]],
    ) -> SourceResult[T]:
        """Invoke `operation` on the client under the policy of `method`.

        Args:
            method: Repository method name, looked up in REST_FAILURE_POLICY
            operation: Coroutine factory receiving the REST client

        Returns:
            UNAVAILABLE without calling when no client is usable, EMPTY for
            empty/None results, SUCCESS otherwise, FAILED for a swallowed
            FunnelcakeException

        Raises:
            FunnelcakeException: When the method's policy is PROPAGATE
        """
        if not self.available:
            return SourceResult(SourceOutcome.UNAVAILABLE)

        policy = REST_FAILURE_POLICY[method]
        try:
            value = await operation(self._client)
        except FunnelcakeException as e:
            if policy is FailurePolicy.PROPAGATE:
                raise
            return SourceResult(SourceOutcome.FAILED, error=e)

        if _is_empty(value):
            return SourceResult(SourceOutcome.EMPTY, value=value)
        return SourceResult(SourceOutcome.SUCCESS, value=value)
