"""Async client for the Funnelcake REST API (ClickHouse-backed video index)."""

import logging
from typing import Any

import httpx

from vinefeed.config import Settings, get_settings

from .exceptions import (
    FunnelcakeApiException,
    FunnelcakeException,
    FunnelcakeNotConfiguredException,
    FunnelcakeNotFoundException,
    FunnelcakeTimeoutException,
)
from .models import (
    BulkVideoStatsResponse,
    HomeFeedResponse,
    RecommendationsResponse,
    VideoStats,
)

logger = logging.getLogger(__name__)


def _parse_videos(items: Any) -> list[VideoStats]:
    """Parse a list of video records, dropping ones without id or URL."""
    if not isinstance(items, list):
        return []
    videos: list[VideoStats] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            stats = VideoStats.from_json(item)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed Funnelcake video record: {e}")
            continue
        if stats.id and stats.video_url:
            videos.append(stats)
    return videos


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class FunnelcakeApiClient:
    """Client for the Funnelcake REST API.

    Every request opens a short-lived ``httpx.AsyncClient`` unless one is
    injected. HTTP and transport errors are mapped onto the
    FunnelcakeException hierarchy so callers only ever catch that.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        user_agent: str = "vine-feed/1.0",
    ):
        """Initialize the client.

        Args:
            base_url: API root, e.g. ``https://api.example.com``; empty disables
                the client
            http_client: Optional shared client (not closed by this class)
            timeout: Per-request timeout in seconds
            user_agent: Value of the User-Agent header
        """
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout
        self._headers = {"Accept": "application/json", "User-Agent": user_agent}

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FunnelcakeApiClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.funnelcake_base_url,
            timeout=settings.funnelcake_timeout_seconds,
            user_agent=settings.funnelcake_user_agent,
        )

    @property
    def is_available(self) -> bool:
        """True when a base URL is configured."""
        return bool(self.base_url)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        resource: str = "Resource",
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises:
            FunnelcakeNotConfiguredException: If no base URL is configured
            FunnelcakeNotFoundException: On 404
            FunnelcakeApiException: On any other non-2xx status
            FunnelcakeTimeoutException: If the request times out
            FunnelcakeException: On transport or decoding errors
        """
        if not self.is_available:
            raise FunnelcakeNotConfiguredException()

        url = f"{self.base_url}{path}"
        params = {k: v for k, v in (params or {}).items() if v is not None}
        logger.debug(f"Funnelcake {method} {url} params={params}")

        try:
            if self._http_client is not None:
                response = await self._http_client.request(
                    method, url, params=params, json=json, headers=self._headers,
                    timeout=self._timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(
                        method, url, params=params, json=json, headers=self._headers
                    )
        except httpx.TimeoutException as e:
            logger.warning(f"Funnelcake request timed out: {url}")
            raise FunnelcakeTimeoutException(url) from e
        except httpx.HTTPError as e:
            logger.warning(f"Funnelcake request failed: {url}: {e}")
            raise FunnelcakeException(f"Request failed: {e}") from e

        if response.status_code == 404:
            raise FunnelcakeNotFoundException(resource=resource, url=url)
        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"Funnelcake {url} returned status {response.status_code}")
            raise FunnelcakeApiException(
                message=f"Request failed for {path}",
                status_code=response.status_code,
                url=url,
            )

        try:
            return response.json()
        except ValueError as e:
            raise FunnelcakeException(f"Invalid JSON from {path}") from e

    @staticmethod
    def _require(value: str, name: str) -> str:
        value = value.strip()
        if not value:
            raise FunnelcakeException(f"{name} cannot be empty")
        return value

    async def _get_videos(
        self, path: str, params: dict[str, Any], resource: str = "Videos"
    ) -> list[VideoStats]:
        data = await self._request("GET", path, params=params, resource=resource)
        if isinstance(data, dict):
            data = data.get("videos") or data.get("data") or data.get("results") or []
        return _parse_videos(data)

    async def get_recent_videos(self, limit: int = 50, before: int | None = None) -> list[VideoStats]:
        return await self._get_videos(
            "/api/videos", {"sort": "recent", "limit": limit, "before": before}
        )

    async def get_trending_videos(
        self, limit: int = 50, before: int | None = None
    ) -> list[VideoStats]:
        """Videos ordered by Funnelcake's trending score (order is meaningful)."""
        return await self._get_videos(
            "/api/videos", {"sort": "trending", "limit": limit, "before": before}
        )

    async def get_videos_by_loops(
        self, limit: int = 20, before: int | None = None
    ) -> list[VideoStats]:
        return await self._get_videos(
            "/api/videos", {"sort": "loops", "limit": limit, "before": before}
        )

    async def get_home_feed(
        self,
        pubkey: str,
        limit: int = 50,
        sort: str = "recent",
        before: int | None = None,
    ) -> HomeFeedResponse:
        """Fetch the following feed for `pubkey` (videos from accounts it follows)."""
        pubkey = self._require(pubkey, "Pubkey")
        data = await self._request(
            "GET",
            f"/api/users/{pubkey}/feed",
            params={"limit": limit, "sort": sort, "before": before},
            resource="Home feed",
        )
        data = data if isinstance(data, dict) else {}
        return HomeFeedResponse(
            videos=_parse_videos(data.get("videos")),
            next_cursor=_optional_int(data.get("next_cursor")),
            has_more=bool(data.get("has_more", False)),
        )

    async def get_collab_videos(
        self, pubkey: str, limit: int = 50, before: int | None = None
    ) -> list[VideoStats]:
        """Videos in which `pubkey` is tagged as a collaborator."""
        pubkey = self._require(pubkey, "Pubkey")
        return await self._get_videos(
            f"/api/users/{pubkey}/collabs", {"limit": limit, "before": before}
        )

    async def get_videos_by_author(
        self, pubkey: str, limit: int = 50, before: int | None = None
    ) -> list[VideoStats]:
        pubkey = self._require(pubkey, "Pubkey")
        return await self._get_videos(
            f"/api/users/{pubkey}/videos",
            {"limit": limit, "before": before},
            resource="User videos",
        )

    async def get_videos_by_hashtag(
        self, hashtag: str, limit: int = 20, before: int | None = None
    ) -> list[VideoStats]:
        tag = self._require(hashtag, "Hashtag").lstrip("#").lower()
        return await self._get_videos(
            "/api/search", {"tag": tag, "sort": "trending", "limit": limit, "before": before}
        )

    async def get_classic_videos_by_hashtag(
        self, hashtag: str, limit: int = 20
    ) -> list[VideoStats]:
        tag = self._require(hashtag, "Hashtag").lstrip("#").lower()
        return await self._get_videos(
            "/api/search",
            {"tag": tag, "classic": "true", "platform": "vine", "sort": "loops", "limit": limit},
        )

    async def search_videos(self, query: str, limit: int = 20) -> list[VideoStats]:
        query = self._require(query, "Query")
        return await self._get_videos("/api/search", {"q": query, "limit": limit})

    async def get_classic_vines(
        self,
        sort: str = "popular",
        limit: int = 20,
        offset: int = 0,
        before: int | None = None,
    ) -> list[VideoStats]:
        """Archived Vine videos. `before` only applies to the recent sort."""
        params: dict[str, Any] = {
            "classic": "true",
            "platform": "vine",
            "sort": sort,
            "limit": limit,
            "offset": offset or None,
        }
        if sort == "recent":
            params["before"] = before
        return await self._get_videos("/api/videos", params)

    async def get_video_stats(self, event_id: str) -> VideoStats:
        event_id = self._require(event_id, "Event id")
        data = await self._request(
            "GET", f"/api/videos/{event_id}/stats", resource="Video stats"
        )
        if not isinstance(data, dict):
            raise FunnelcakeException("Unexpected video stats payload")
        try:
            return VideoStats.from_json(data)
        except (TypeError, ValueError) as e:
            raise FunnelcakeException(f"Malformed video stats payload: {e}") from e

    async def get_video_views(self, event_id: str) -> int:
        event_id = self._require(event_id, "Event id")
        data = await self._request(
            "GET", f"/api/videos/{event_id}/views", resource="Video views"
        )
        if isinstance(data, dict):
            data = data.get("views", data.get("view_count"))
        views = _optional_int(data)
        if views is None:
            raise FunnelcakeException("Unexpected video views payload")
        return views

    async def get_bulk_video_stats(self, event_ids: list[str]) -> BulkVideoStatsResponse:
        if not event_ids:
            return BulkVideoStatsResponse()
        data = await self._request(
            "POST", "/api/videos/stats/bulk", json={"event_ids": event_ids}
        )
        return BulkVideoStatsResponse.from_json(data if isinstance(data, dict) else {})

    async def get_recommendations(
        self,
        pubkey: str,
        limit: int = 20,
        fallback: str = "popular",
        category: str | None = None,
    ) -> RecommendationsResponse:
        pubkey = self._require(pubkey, "Pubkey")
        data = await self._request(
            "GET",
            f"/api/users/{pubkey}/recommendations",
            params={"limit": limit, "fallback": fallback, "category": category or None},
            resource="Recommendations",
        )
        data = data if isinstance(data, dict) else {}
        return RecommendationsResponse(
            videos=_parse_videos(data.get("videos")),
            source=str(data.get("source") or "unknown"),
        )
