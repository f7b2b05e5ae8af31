"""Pydantic models for playable videos and composite feed results."""

import time

from pydantic import BaseModel, ConfigDict, Field, model_validator

from vinefeed.nostr.kinds import VIDEO_KIND
from vinefeed.nostr.models import RawEvent


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_imeta(tag: list[str]) -> dict[str, str]:
    """Parse an `imeta` tag in either of its two encodings.

    Older events use space-separated entries (``"url https://..."``), newer
    ones alternate keys and values as separate elements.
    """
    entries = tag[1:]
    fields: dict[str, str] = {}
    if entries and all(" " in entry for entry in entries):
        for entry in entries:
            key, _, value = entry.partition(" ")
            fields.setdefault(key, value)
        return fields
    for key, value in zip(entries[::2], entries[1::2]):
        fields.setdefault(key, value)
    return fields


class VideoEvent(BaseModel):
    """One playable short video, built from a relay event or a REST record."""

    model_config = ConfigDict(frozen=True)

    id: str
    pubkey: str
    created_at: int
    kind: int = VIDEO_KIND
    content: str = ""
    title: str | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    vine_id: str | None = None
    blurhash: str | None = None
    sha256: str | None = None
    published_at: str | None = None
    author_name: str | None = None
    author_avatar: str | None = None
    hashtags: frozenset[str] = Field(default_factory=frozenset)
    raw_tags: dict[str, str] = Field(default_factory=dict)
    original_loops: int | None = None
    original_likes: int | None = None
    original_comments: int | None = None
    original_reposts: int | None = None

    @classmethod
    def from_nostr_event(cls, event: RawEvent) -> "VideoEvent":
        """Parse a NIP-71 video event.

        Video URL precedence is `url` tag, then the `imeta` url, then a
        `streaming` tag. The animated `preview` tag is never used as the
        thumbnail.
        """
        raw_tags: dict[str, str] = {}
        imeta: dict[str, str] = {}
        for tag in event.tags:
            if not tag:
                continue
            if tag[0] == "imeta" and not imeta:
                imeta = _parse_imeta(tag)
            # Valueless tags such as a bare content-warning still count
            raw_tags.setdefault(tag[0], tag[1] if len(tag) > 1 else "")

        video_url = (
            event.first_tag_value("url")
            or imeta.get("url")
            or event.first_tag_value("streaming")
        )
        thumbnail = (
            event.first_tag_value("thumb")
            or imeta.get("image")
            or event.first_tag_value("image")
        )
        vine_id = event.first_tag_value("d") or event.first_tag_value("vine_id")

        return cls(
            id=event.id,
            pubkey=event.pubkey,
            created_at=event.created_at,
            kind=event.kind,
            content=event.content,
            title=event.first_tag_value("title"),
            video_url=video_url or None,
            thumbnail_url=thumbnail or None,
            vine_id=vine_id or None,
            blurhash=event.first_tag_value("blurhash") or imeta.get("blurhash"),
            sha256=event.first_tag_value("x") or imeta.get("x"),
            published_at=event.first_tag_value("published_at"),
            hashtags=frozenset(event.tag_values("t")),
            raw_tags=raw_tags,
            original_loops=_parse_int(event.first_tag_value("loops")),
            original_likes=_parse_int(event.first_tag_value("likes")),
            original_comments=_parse_int(event.first_tag_value("comments")),
            original_reposts=_parse_int(event.first_tag_value("reposts")),
        )

    @property
    def has_video(self) -> bool:
        return has_playable_url(self)

    @property
    def expiration(self) -> int | None:
        """NIP-40 expiration timestamp, if the event carries a valid one."""
        return _parse_int(self.raw_tags.get("expiration"))

    @property
    def is_expired(self) -> bool:
        return is_expired(self)

    @property
    def engagement_score(self) -> int:
        """Local ranking value used when no server-side ranking is available.

        Loops count once, likes twice, comments three times and reposts four
        times; missing counters count as zero.
        """
        return (
            (self.original_loops or 0)
            + 2 * (self.original_likes or 0)
            + 3 * (self.original_comments or 0)
            + 4 * (self.original_reposts or 0)
        )


def has_playable_url(video: VideoEvent) -> bool:
    """True iff the video has a non-empty URL."""
    return bool(video.video_url and video.video_url.strip())


def is_expired(video: VideoEvent, now: float | None = None) -> bool:
    """Check the NIP-40 expiration marker against wall-clock time.

    Args:
        video: The video to check
        now: Unix timestamp to evaluate against (defaults to current time)

    Returns:
        True if an expiration timestamp is present and has passed
    """
    expiration = video.expiration
    if expiration is None:
        return False
    if now is None:
        now = time.time()
    return expiration <= now


class HomeFeedResult(BaseModel):
    """Home feed page: followed-author videos merged with curated-list videos.

    `video_list_sources` maps every resolved list video id to the list ids
    that reference it. `list_only_video_ids` holds the ids present only
    because a list referenced them (author not followed).
    """

    model_config = ConfigDict(frozen=True)

    videos: list[VideoEvent] = Field(default_factory=list)
    video_list_sources: dict[str, frozenset[str]] = Field(default_factory=dict)
    list_only_video_ids: frozenset[str] = Field(default_factory=frozenset)

    @model_validator(mode="after")
    def _list_only_ids_are_attributed(self) -> "HomeFeedResult":
        unattributed = self.list_only_video_ids - self.video_list_sources.keys()
        if unattributed:
            raise ValueError(
                f"list-only video ids without list sources: {sorted(unattributed)}"
            )
        return self

    def is_list_only(self, video_id: str) -> bool:
        return video_id in self.list_only_video_ids
