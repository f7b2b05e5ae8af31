"""Feed assembly engine: merges relay and REST sources into ordered video feeds."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Iterable, Mapping, Sequence
from typing import TypeVar

from vinefeed.config import Settings, get_settings
from vinefeed.funnelcake.client import FunnelcakeApiClient
from vinefeed.funnelcake.models import (
    BulkVideoStatsResponse,
    RecommendationsResponse,
    VideoStats,
)
from vinefeed.nostr.client import NostrClient
from vinefeed.nostr.coordinates import (
    AddressableCoordinate,
    looks_like_coordinate,
    parse_addressable_coordinate,
)
from vinefeed.nostr.kinds import ALL_VIDEO_KINDS, VIDEO_KIND, is_video_kind
from vinefeed.nostr.models import Filter, RawEvent
from vinefeed.storage import VideoLocalStorage
from vinefeed.videos.models import HomeFeedResult, VideoEvent

from .filters import BlockedVideoFilter, EventParser, FilterPipeline, VideoContentFilter
from .sources import RelaySource, RestSource, SourceOutcome

logger = logging.getLogger(__name__)

HOT_SORT_DIRECTIVE = "sort:hot"

T = TypeVar("T")


def sort_newest_first(videos: Iterable[VideoEvent]) -> list[VideoEvent]:
    """Sort by created_at descending; equal timestamps keep their input order."""
    return sorted(videos, key=lambda v: v.created_at, reverse=True)


def sort_by_engagement(videos: Iterable[VideoEvent]) -> list[VideoEvent]:
    return sorted(videos, key=lambda v: v.engagement_score, reverse=True)


def next_cursor(videos: Sequence[VideoEvent]) -> int | None:
    """Return the `until` value for the page after `videos`.

    Args:
        videos: The page just returned

    Returns:
        The oldest created_at in the page, or None for an empty page
    """
    if not videos:
        return None
    return min(v.created_at for v in videos)


def _coordinate_key(kind: int, pubkey: str, d_tag: str) -> str:
    return f"{kind}:{pubkey.lower()}:{d_tag}"


def _batched(items: Sequence[Filter], size: int) -> list[list[Filter]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def _run_concurrently(*aws: Coroutine[object, object, T]) -> list[T]:
    """Await `aws` concurrently, returning results in argument order.

    The first failure cancels the remaining tasks and is re-raised as is,
    not wrapped in an ExceptionGroup.
    """
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(aw) for aw in aws]
    except ExceptionGroup as group:
        raise group.exceptions[0]
    return [task.result() for task in tasks]


class VideosRepository:
    """Builds video feeds from Nostr relays and the optional Funnelcake API.

    Every public method is a single self-contained call: no state is kept
    between calls. The relay is the source of truth; Funnelcake is tried
    first where it offers a faster equivalent and is skipped silently when
    it is absent, unavailable, failing or returns nothing playable.
    """

    def __init__(
        self,
        nostr_client: NostrClient,
        local_storage: VideoLocalStorage | None = None,
        block_filter: BlockedVideoFilter | None = None,
        content_filter: VideoContentFilter | None = None,
        funnelcake_client: FunnelcakeApiClient | None = None,
        settings: Settings | None = None,
        event_parser: EventParser = VideoEvent.from_nostr_event,
        clock: Callable[[], float] | None = None,
    ):
        """Initialize the repository.

        Args:
            nostr_client: Relay query capability
            local_storage: Optional event cache for the id-based lookups
            block_filter: Stage-one filter on raw author pubkeys
            content_filter: Stage-two filter on parsed videos
            funnelcake_client: Optional REST accelerator
            settings: Page size and batching defaults
            event_parser: Converts raw events into videos
            clock: Wall-clock source for expiry checks
        """
        self.settings = settings or get_settings()
        self._relay = RelaySource(nostr_client)
        self._rest = RestSource(funnelcake_client)
        self._local_storage = local_storage
        self._pipeline = FilterPipeline(block_filter, content_filter, clock)
        self._parse = event_parser

    def _limit(self, limit: int | None) -> int:
        return limit if limit is not None else self.settings.default_page_size

    def _from_events(self, events: Iterable[RawEvent]) -> list[VideoEvent]:
        return self._pipeline.filter_events(events, self._parse)

    def _from_stats(self, stats: Iterable[VideoStats]) -> list[VideoEvent]:
        return self._pipeline.filter_videos(s.to_video_event() for s in stats)

    async def _rest_videos(
        self,
        method: str,
        operation: Callable[[FunnelcakeApiClient], Awaitable[list[VideoStats]]],
    ) -> list[VideoEvent]:
        """Run a REST feed call that has a relay fallback.

        Returns:
            The playable videos in REST order, or an empty list when the
            caller should fall through to the relay
        """
        result = await self._rest.call(method, operation)
        if not result.ok:
            if result.outcome is not SourceOutcome.UNAVAILABLE:
                logger.debug(f"{method}: REST {result.outcome.value}, falling back to relay")
            return []

        videos = self._from_stats(result.value)
        if not videos:
            logger.debug(f"{method}: REST results all filtered out, falling back to relay")
        return videos

    async def _relay_videos(self, flt: Filter, use_cache: bool = True) -> list[VideoEvent]:
        events = await self._relay.query([flt], use_cache=use_cache)
        return self._from_events(events)

    # ----- Feed modes -----

    async def get_new_videos(
        self, limit: int | None = None, until: int | None = None
    ) -> list[VideoEvent]:
        """Global newest-first feed of the video kind."""
        limit = self._limit(limit)

        videos = await self._rest_videos(
            "get_new_videos",
            lambda client: client.get_recent_videos(limit=limit, before=until),
        )
        if videos:
            return sort_newest_first(videos)

        videos = await self._relay_videos(Filter(kinds=[VIDEO_KIND], limit=limit, until=until))
        return sort_newest_first(videos)

    async def get_home_feed_videos(
        self,
        authors: Sequence[str],
        video_refs: Mapping[str, Sequence[str]] | None = None,
        user_pubkey: str | None = None,
        limit: int | None = None,
        until: int | None = None,
    ) -> HomeFeedResult:
        """Videos from followed authors merged with curated-list videos.

        Args:
            authors: Followed pubkeys; empty returns an empty result without
                querying
            video_refs: Curated list id -> event ids or coordinates
            user_pubkey: Enables the Funnelcake home feed endpoint
            limit: Page size for the following query
            until: Pagination cursor for the following query

        Returns:
            HomeFeedResult with list attribution metadata
        """
        if not authors:
            return HomeFeedResult()

        following = await self._fetch_following_videos(authors, user_pubkey, limit, until)
        if not video_refs:
            return HomeFeedResult(videos=following)

        return await self._merge_list_videos(following, video_refs)

    async def _fetch_following_videos(
        self,
        authors: Sequence[str],
        user_pubkey: str | None,
        limit: int | None,
        until: int | None,
    ) -> list[VideoEvent]:
        limit = self._limit(limit)

        if user_pubkey:

            async def fetch(client: FunnelcakeApiClient) -> list[VideoStats]:
                response = await client.get_home_feed(user_pubkey, limit=limit, before=until)
                return response.videos

            videos = await self._rest_videos("get_home_feed_videos", fetch)
            if videos:
                return sort_newest_first(videos)

        videos = await self._relay_videos(
            Filter(kinds=[VIDEO_KIND], authors=list(authors), limit=limit, until=until)
        )
        return sort_newest_first(videos)

    async def _merge_list_videos(
        self,
        following: list[VideoEvent],
        video_refs: Mapping[str, Sequence[str]],
    ) -> HomeFeedResult:
        following_ids = {v.id.lower() for v in following}

        unique_refs = list(dict.fromkeys(ref for refs in video_refs.values() for ref in refs))
        resolved = await self._resolve_refs(unique_refs)

        video_list_sources: dict[str, set[str]] = {}
        list_only_ids: set[str] = set()
        list_only_videos: list[VideoEvent] = []
        seen = set(following_ids)

        for list_id, refs in video_refs.items():
            for ref in refs:
                video = resolved.get(ref)
                if video is None:
                    continue
                video_list_sources.setdefault(video.id, set()).add(list_id)

                key = video.id.lower()
                if key in following_ids:
                    continue
                list_only_ids.add(video.id)
                if key not in seen:
                    seen.add(key)
                    list_only_videos.append(video)

        return HomeFeedResult(
            videos=sort_newest_first([*following, *list_only_videos]),
            video_list_sources={k: frozenset(v) for k, v in video_list_sources.items()},
            list_only_video_ids=frozenset(list_only_ids),
        )

    async def get_popular_videos(
        self,
        limit: int | None = None,
        until: int | None = None,
        fetch_multiplier: int | None = None,
    ) -> list[VideoEvent]:
        """Engagement-ranked feed.

        Tiers, each tried only when the previous one produced nothing:
        Funnelcake trending (REST order), relay NIP-50 ``sort:hot`` (relay
        order, response cache bypassed), then an oversized plain relay query
        ranked locally by engagement score.
        """
        limit = self._limit(limit)
        multiplier = fetch_multiplier or self.settings.popular_fetch_multiplier

        videos = await self._rest_videos(
            "get_popular_videos",
            lambda client: client.get_trending_videos(limit=limit, before=until),
        )
        if videos:
            return videos

        videos = await self._relay_videos(
            Filter(kinds=[VIDEO_KIND], search=HOT_SORT_DIRECTIVE, limit=limit, until=until),
            use_cache=False,
        )
        if videos:
            return videos

        logger.debug("get_popular_videos: sort:hot query empty, ranking locally")
        videos = await self._relay_videos(
            Filter(kinds=[VIDEO_KIND], limit=limit * multiplier, until=until)
        )
        return sort_by_engagement(videos)[:limit]

    async def get_profile_videos(
        self, author_pubkey: str, limit: int | None = None, until: int | None = None
    ) -> list[VideoEvent]:
        """Videos published by one author, newest first.

        Args:
            author_pubkey: Author to list
            limit: Page size (defaults to the configured page size)
            until: Only videos created at or before this timestamp

        Returns:
            Playable videos sorted by created_at descending
        """
        videos = await self._relay_videos(
            Filter(
                kinds=[VIDEO_KIND],
                authors=[author_pubkey],
                limit=self._limit(limit),
                until=until,
            )
        )
        return sort_newest_first(videos)

    async def get_collab_videos(
        self, tagged_pubkey: str, limit: int | None = None, until: int | None = None
    ) -> list[VideoEvent]:
        """Videos that tag `tagged_pubkey` as a collaborator, newest first."""
        limit = self._limit(limit)

        videos = await self._rest_videos(
            "get_collab_videos",
            lambda client: client.get_collab_videos(tagged_pubkey, limit=limit, before=until),
        )
        if videos:
            return sort_newest_first(videos)

        videos = await self._relay_videos(
            Filter(kinds=[VIDEO_KIND], p=[tagged_pubkey], limit=limit, until=until)
        )
        return sort_newest_first(videos)

    # ----- Lookups by reference -----

    async def get_videos_by_ids(
        self, event_ids: Sequence[str], cache_results: bool = False
    ) -> list[VideoEvent]:
        """Resolve event ids, in input order; unresolved ids are omitted.

        Args:
            event_ids: Event ids to look up
            cache_results: Persist relay-fetched events to local storage

        Returns:
            Playable videos ordered like `event_ids`
        """
        resolved = await self._resolve_event_ids(event_ids, cache_results)
        return [resolved[ref] for ref in event_ids if ref in resolved]

    async def _resolve_event_ids(
        self, event_ids: Sequence[str], cache_results: bool = False
    ) -> dict[str, VideoEvent]:
        if not event_ids:
            return {}

        events: dict[str, RawEvent] = {}
        if self._local_storage is not None:
            for event in await self._local_storage.get_events_by_ids(list(event_ids)):
                events[event.id.lower()] = event

        missing = list(dict.fromkeys(i for i in event_ids if i.lower() not in events))
        if missing:
            relay_events = await self._relay.query(
                [Filter(kinds=list(ALL_VIDEO_KINDS), ids=missing)]
            )
            for event in relay_events:
                events[event.id.lower()] = event

            if cache_results and self._local_storage is not None and relay_events:
                await self._local_storage.save_events_batch(relay_events)

        resolved: dict[str, VideoEvent] = {}
        for ref in event_ids:
            event = events.get(ref.lower())
            if event is None or ref in resolved:
                continue
            video = self._pipeline.accept_event(event, self._parse)
            if video is not None:
                resolved[ref] = video
        return resolved

    async def get_videos_by_addressable_ids(
        self, addressable_ids: Sequence[str], cache_results: bool = False
    ) -> list[VideoEvent]:
        """Resolve `kind:pubkey:d-tag` coordinates, in input order.

        Unparsable and non-video coordinates are dropped. Relay queries go
        out in concurrent batches; coordinates the relays do not know are
        looked up per author through Funnelcake when it is available.

        Args:
            addressable_ids: Coordinate strings
            cache_results: Persist relay-fetched events to local storage

        Returns:
            Playable videos ordered like `addressable_ids`
        """
        resolved = await self._resolve_coordinates(addressable_ids, cache_results)
        return [resolved[ref] for ref in addressable_ids if ref in resolved]

    async def _resolve_coordinates(
        self, addressable_ids: Sequence[str], cache_results: bool = False
    ) -> dict[str, VideoEvent]:
        coordinates: dict[str, AddressableCoordinate] = {}
        for ref in addressable_ids:
            coordinate = parse_addressable_coordinate(ref)
            if coordinate is not None and is_video_kind(coordinate.kind):
                coordinates[ref] = coordinate
        if not coordinates:
            return {}

        unique = {
            _coordinate_key(c.kind, c.pubkey, c.d_tag): c for c in coordinates.values()
        }
        filters = [
            Filter(kinds=[c.kind], authors=[c.pubkey], d=[c.d_tag]) for c in unique.values()
        ]
        batches = _batched(filters, self.settings.addressable_batch_size)
        results = await _run_concurrently(*(self._relay.query(batch) for batch in batches))
        events = [event for batch_events in results for event in batch_events]

        if cache_results and self._local_storage is not None and events:
            await self._local_storage.save_events_batch(events)

        # Latest version per coordinate
        latest: dict[str, RawEvent] = {}
        for event in events:
            d_tag = event.d_tag_value
            if not d_tag:
                continue
            key = _coordinate_key(event.kind, event.pubkey, d_tag)
            if key not in unique:
                continue
            current = latest.get(key)
            if current is None or event.created_at > current.created_at:
                latest[key] = event

        found: dict[str, VideoEvent] = {}
        for key, event in latest.items():
            video = self._pipeline.accept_event(event, self._parse)
            if video is not None:
                found[key] = video

        missing = [c for key, c in unique.items() if key not in found]
        if missing and self._rest.available:
            found.update(await self._fetch_missing_from_rest(missing))

        resolved: dict[str, VideoEvent] = {}
        for ref, c in coordinates.items():
            video = found.get(_coordinate_key(c.kind, c.pubkey, c.d_tag))
            if video is not None:
                resolved[ref] = video
        return resolved

    async def _fetch_missing_from_rest(
        self, missing: Sequence[AddressableCoordinate]
    ) -> dict[str, VideoEvent]:
        """Look up coordinates by author; one author failing leaves only its own unresolved."""
        by_author: dict[str, list[AddressableCoordinate]] = {}
        for c in missing:
            by_author.setdefault(c.pubkey, []).append(c)

        lookup_limit = self.settings.rest_author_lookup_limit
        authors = list(by_author)
        results = await _run_concurrently(
            *(
                self._rest.call(
                    "get_videos_by_addressable_ids",
                    lambda client, pk=pubkey: client.get_videos_by_author(pk, limit=lookup_limit),
                )
                for pubkey in authors
            )
        )

        found: dict[str, VideoEvent] = {}
        for pubkey, result in zip(authors, results):
            if not result.ok:
                continue
            wanted: dict[str, list[AddressableCoordinate]] = {}
            for c in by_author[pubkey]:
                wanted.setdefault(c.d_tag, []).append(c)

            for video in self._from_stats(result.value):
                for c in wanted.get(video.vine_id or "", []):
                    found.setdefault(_coordinate_key(c.kind, c.pubkey, c.d_tag), video)

        logger.debug(f"Resolved {len(found)} of {len(missing)} coordinates via REST")
        return found

    async def _resolve_refs(self, refs: Sequence[str]) -> dict[str, VideoEvent]:
        """Resolve mixed event-id and coordinate refs, keyed by the ref string."""
        event_ids = [ref for ref in refs if not looks_like_coordinate(ref)]
        coordinates = [ref for ref in refs if looks_like_coordinate(ref)]

        by_id, by_coordinate = await _run_concurrently(
            self._resolve_event_ids(event_ids),
            self._resolve_coordinates(coordinates),
        )
        return {**by_id, **by_coordinate}

    async def get_videos_for_list(self, video_refs: Sequence[str]) -> list[VideoEvent]:
        """Resolve a curated list's refs, preserving the list order exactly.

        Repeated refs are emitted once per occurrence.
        """
        if not video_refs:
            return []
        resolved = await self._resolve_refs(list(dict.fromkeys(video_refs)))
        return [resolved[ref] for ref in video_refs if ref in resolved]

    # ----- Funnelcake read-through -----

    async def _rest_only(self, method: str, operation: Callable) -> object | None:
        """Delegate to Funnelcake, or return None when it is absent or unavailable."""
        if not self._rest.available:
            return None
        result = await self._rest.call(method, operation)
        return result.value

    async def get_videos_by_loops(
        self, limit: int = 20, before: int | None = None
    ) -> list[VideoEvent]:
        """Videos ranked by loop count, in Funnelcake order.

        Args:
            limit: Maximum number of records to request
            before: Pagination cursor (created_at timestamp)

        Returns:
            Playable videos, or an empty list when Funnelcake is unavailable

        Raises:
            FunnelcakeException: If the request fails
        """
        stats = await self._rest_only(
            "get_videos_by_loops",
            lambda client: client.get_videos_by_loops(limit=limit, before=before),
        )
        return self._from_stats(stats or [])

    async def get_videos_by_hashtag(
        self, hashtag: str, limit: int = 20, before: int | None = None
    ) -> list[VideoEvent]:
        """Trending videos tagged `hashtag` (leading `#` optional).

        Raises:
            FunnelcakeException: If the request fails
        """
        stats = await self._rest_only(
            "get_videos_by_hashtag",
            lambda client: client.get_videos_by_hashtag(hashtag, limit=limit, before=before),
        )
        return self._from_stats(stats or [])

    async def get_classic_videos_by_hashtag(
        self, hashtag: str, limit: int = 20
    ) -> list[VideoEvent]:
        """Archived Vine videos tagged `hashtag`, most looped first.

        Raises:
            FunnelcakeException: If the request fails
        """
        stats = await self._rest_only(
            "get_classic_videos_by_hashtag",
            lambda client: client.get_classic_videos_by_hashtag(hashtag, limit=limit),
        )
        return self._from_stats(stats or [])

    async def search_videos(self, query: str, limit: int = 20) -> list[VideoEvent]:
        """Full-text video search.

        Raises:
            FunnelcakeException: If the request fails
        """
        stats = await self._rest_only(
            "search_videos", lambda client: client.search_videos(query, limit=limit)
        )
        return self._from_stats(stats or [])

    async def get_classic_vines(
        self,
        sort: str = "popular",
        limit: int = 20,
        offset: int = 0,
        before: int | None = None,
    ) -> list[VideoEvent]:
        """Archived Vine videos in Funnelcake's order for `sort`.

        Args:
            sort: popular, recent, trending or loops
            limit: Maximum number of records to request
            offset: Records to skip
            before: Cursor, only honoured by the recent sort

        Returns:
            Playable videos, or an empty list when Funnelcake is unavailable

        Raises:
            FunnelcakeException: If the request fails
        """
        stats = await self._rest_only(
            "get_classic_vines",
            lambda client: client.get_classic_vines(
                sort=sort, limit=limit, offset=offset, before=before
            ),
        )
        return self._from_stats(stats or [])

    async def get_videos_by_author(
        self, pubkey: str, limit: int = 20, before: int | None = None
    ) -> list[VideoEvent]:
        """Videos by `pubkey` from Funnelcake, newest first.

        Raises:
            FunnelcakeException: If the request fails
        """
        stats = await self._rest_only(
            "get_videos_by_author",
            lambda client: client.get_videos_by_author(pubkey, limit=limit, before=before),
        )
        return sort_newest_first(self._from_stats(stats or []))

    async def get_video_stats(self, event_id: str) -> VideoStats | None:
        """Engagement stats for one video, or None when Funnelcake is unavailable.

        Raises:
            FunnelcakeNotFoundException: If the video is unknown
            FunnelcakeException: If the request fails
        """
        return await self._rest_only(
            "get_video_stats", lambda client: client.get_video_stats(event_id)
        )

    async def get_video_views(self, event_id: str) -> int | None:
        """View count for one video, or None when Funnelcake is unavailable.

        Raises:
            FunnelcakeException: If the request fails
        """
        return await self._rest_only(
            "get_video_views", lambda client: client.get_video_views(event_id)
        )

    async def get_bulk_video_stats(self, event_ids: list[str]) -> BulkVideoStatsResponse | None:
        """Engagement counters for many videos in one request.

        Raises:
            FunnelcakeException: If the request fails
        """
        return await self._rest_only(
            "get_bulk_video_stats", lambda client: client.get_bulk_video_stats(event_ids)
        )

    async def get_recommendations(
        self,
        pubkey: str,
        limit: int = 20,
        fallback: str = "popular",
        category: str | None = None,
    ) -> RecommendationsResponse | None:
        """Personalized recommendations, returned as Funnelcake sends them.

        Args:
            pubkey: User to recommend for
            limit: Maximum number of videos
            fallback: Feed used when no personal signal exists
            category: Optional category filter

        Returns:
            The response, or None when Funnelcake is unavailable

        Raises:
            FunnelcakeException: If the request fails
        """
        return await self._rest_only(
            "get_recommendations",
            lambda client: client.get_recommendations(
                pubkey, limit=limit, fallback=fallback, category=category
            ),
        )
