"""Pydantic models for Funnelcake REST API responses."""

import time
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vinefeed.nostr.kinds import VIDEO_KIND
from vinefeed.videos.models import VideoEvent


def _as_text(value: Any) -> str:
    """Decode a Funnelcake identifier, which may arrive as ASCII byte codes."""
    if isinstance(value, list):
        return "".join(chr(int(c)) for c in value)
    return "" if value is None else str(value)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (OverflowError, ValueError):
            return None
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _parse_created_at(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
        except ValueError:
            pass
    return int(time.time())


def _none_if_empty(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


class VideoStats(BaseModel):
    """A video with engagement metrics, as served by Funnelcake."""

    model_config = ConfigDict(frozen=True)

    id: str
    pubkey: str
    created_at: int
    kind: int = VIDEO_KIND
    d_tag: str = ""
    title: str = ""
    description: str | None = None
    thumbnail: str = ""
    video_url: str = ""
    sha256: str | None = None
    author_name: str | None = None
    author_avatar: str | None = None
    blurhash: str | None = None
    reactions: int = 0
    comments: int = 0
    reposts: int = 0
    engagement_score: int = 0
    trending_score: float | None = None
    loops: int | None = None
    views: int | None = None
    published_at: int | None = None
    hashtags: frozenset[str] = Field(default_factory=frozenset)
    raw_tags: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "VideoStats":
        """Parse one video record.

        Accepts both the flat shape and the nested ``{"event": ..., "stats":
        ...}`` shape. Ids and pubkeys may be byte arrays and are lowercased;
        counters may be ints, floats or strings; title, thumbnail, URL, d-tag,
        loops and views fall back to event tags.
        """
        event = data.get("event") if isinstance(data.get("event"), dict) else data
        stats = data.get("stats") if isinstance(data.get("stats"), dict) else data

        title = _as_text(event.get("title"))
        thumbnail = _as_text(event.get("thumbnail"))
        video_url = _as_text(event.get("video_url"))
        d_tag = _as_text(event.get("d_tag"))
        sha256 = _none_if_empty(_first_present(event.get("sha256"), data.get("sha256")))
        loops = _as_int(
            _first_present(stats.get("loops"), data.get("loops"), data.get("original_loops"))
        )
        views = _as_int(
            _first_present(stats.get("views"), data.get("views"), data.get("view_count"))
        )

        description = _none_if_empty(event.get("content"))
        summary: str | None = None
        blurhash_tag: str | None = None
        published_at: int | None = None
        raw_tags: dict[str, str] = {}
        hashtags: set[str] = set()

        for tag in event.get("tags") or []:
            if not isinstance(tag, list) or not tag:
                continue
            name = str(tag[0])
            raw_tags.setdefault(name, str(tag[1]) if len(tag) > 1 else "")
            if len(tag) < 2:
                continue
            value = str(tag[1])
            if name == "t":
                hashtags.add(value)

            if name == "title" and not title:
                title = value
            elif name in ("thumb", "thumbnail") and not thumbnail:
                thumbnail = value
            elif name == "url" and not video_url:
                video_url = value
            elif name == "d" and not d_tag:
                d_tag = value
            elif name == "x" and not sha256:
                sha256 = value or None
            elif name == "blurhash" and blurhash_tag is None:
                blurhash_tag = value
            elif name == "summary" and summary is None:
                summary = value
            elif name == "published_at" and published_at is None:
                published_at = _as_int(value)
            elif name == "loops" and loops is None:
                loops = _as_int(value)
            elif name == "views" and views is None:
                views = _as_int(value)

        return cls(
            id=_as_text(event.get("id")).lower(),
            pubkey=_as_text(event.get("pubkey")).lower(),
            created_at=_parse_created_at(event.get("created_at")),
            kind=_as_int(event.get("kind")) or VIDEO_KIND,
            d_tag=d_tag,
            title=title,
            description=description or summary,
            thumbnail=thumbnail,
            video_url=video_url,
            sha256=sha256,
            author_name=_none_if_empty(
                _first_present(event.get("author_name"), data.get("author_name"))
            ),
            author_avatar=_none_if_empty(
                _first_present(event.get("author_avatar"), data.get("author_avatar"))
            ),
            blurhash=_none_if_empty(
                _first_present(event.get("blurhash"), data.get("blurhash"), blurhash_tag)
            ),
            reactions=_as_int(
                _first_present(
                    stats.get("reactions"),
                    data.get("reactions"),
                    data.get("embedded_likes"),
                    data.get("likes"),
                )
            )
            or 0,
            comments=_as_int(
                _first_present(
                    stats.get("comments"), data.get("comments"), data.get("embedded_comments")
                )
            )
            or 0,
            reposts=_as_int(
                _first_present(
                    stats.get("reposts"), data.get("reposts"), data.get("embedded_reposts")
                )
            )
            or 0,
            engagement_score=_as_int(
                _first_present(stats.get("engagement_score"), data.get("engagement_score"))
            )
            or 0,
            trending_score=_as_float(
                _first_present(stats.get("trending_score"), data.get("trending_score"))
            ),
            loops=loops,
            views=views,
            published_at=published_at,
            hashtags=frozenset(hashtags),
            raw_tags=raw_tags,
        )

    def to_video_event(self) -> VideoEvent:
        """Map this record onto a VideoEvent.

        The effective timestamp is `published_at` when present, otherwise
        `created_at`. `vine_id` is the d-tag, falling back to the event id.
        """
        raw_tags = dict(self.raw_tags)
        if self.loops is not None:
            raw_tags["loops"] = str(self.loops)
        if self.views is not None:
            raw_tags["views"] = str(self.views)

        vine_id = self.d_tag or self.id

        return VideoEvent(
            id=self.id,
            pubkey=self.pubkey,
            created_at=self.published_at if self.published_at is not None else self.created_at,
            kind=self.kind,
            content=self.description or "",
            title=self.title or None,
            video_url=self.video_url or None,
            thumbnail_url=self.thumbnail or None,
            vine_id=vine_id or None,
            blurhash=self.blurhash,
            sha256=self.sha256,
            published_at=str(self.published_at) if self.published_at is not None else None,
            author_name=self.author_name,
            author_avatar=self.author_avatar,
            hashtags=self.hashtags,
            raw_tags=raw_tags,
            original_loops=self.loops,
            original_likes=self.reactions,
            original_comments=self.comments,
            original_reposts=self.reposts,
        )


class BulkVideoStatsEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    reactions: int = 0
    comments: int = 0
    reposts: int = 0
    loops: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "BulkVideoStatsEntry":
        return cls(
            event_id=_as_text(data.get("event_id")).lower(),
            reactions=_as_int(data.get("reactions")) or 0,
            comments=_as_int(data.get("comments")) or 0,
            reposts=_as_int(data.get("reposts")) or 0,
            loops=_as_int(data.get("loops")),
        )


class BulkVideoStatsResponse(BaseModel):
    """Engagement counters keyed by event id."""

    model_config = ConfigDict(frozen=True)

    stats: dict[str, BulkVideoStatsEntry] = Field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "BulkVideoStatsResponse":
        entries: dict[str, BulkVideoStatsEntry] = {}
        for item in data.get("stats") or []:
            if isinstance(item, dict):
                entry = BulkVideoStatsEntry.from_json(item)
                if entry.event_id:
                    entries[entry.event_id] = entry
        return cls(stats=entries)


class HomeFeedResponse(BaseModel):
    """One page of the personalized following feed."""

    model_config = ConfigDict(frozen=True)

    videos: list[VideoStats] = Field(default_factory=list)
    next_cursor: int | None = None
    has_more: bool = False


class RecommendationsResponse(BaseModel):
    """Personalized recommendations; `source` is personalized, popular or recent."""

    model_config = ConfigDict(frozen=True)

    videos: list[VideoStats] = Field(default_factory=list)
    source: str = "unknown"
