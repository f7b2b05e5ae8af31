"""Two-stage content filtering for video feeds.

Stage one sees only the raw author pubkey and runs before an event is parsed,
so blocked authors never pay the parse cost. Stage two sees the parsed
VideoEvent (hashtags, raw tags) and runs last. The order is fixed:

    video kind -> block filter -> parse -> playable URL -> expiry -> content filter
"""

from collections.abc import Callable, Iterable
from typing import Protocol

from vinefeed.nostr.kinds import is_video_kind
from vinefeed.nostr.models import RawEvent
from vinefeed.videos.models import VideoEvent, has_playable_url, is_expired


class BlockedVideoFilter(Protocol):
    """Returns True when videos by `pubkey` must be excluded."""

    def __call__(self, pubkey: str) -> bool: ...


class VideoContentFilter(Protocol):
    """Returns True when a parsed video must be excluded."""

    def __call__(self, video: VideoEvent) -> bool: ...


EventParser = Callable[[RawEvent], VideoEvent]


class PubkeyBlocklist:
    """Stage-one filter over a set of blocked or muted pubkeys."""

    def __init__(self, pubkeys: Iterable[str] = ()):
        self._blocked = {pk.lower() for pk in pubkeys}

    def __call__(self, pubkey: str) -> bool:
        return pubkey.lower() in self._blocked

    def __len__(self) -> int:
        return len(self._blocked)


DEFAULT_NSFW_HASHTAGS = frozenset({"nsfw", "adult"})


class NsfwContentFilter:
    """Stage-two filter for adult content.

    Excludes a video if any hashtag matches `hashtags` (case-insensitive) or
    if it carries a `content-warning` tag.
    """

    def __init__(self, hashtags: Iterable[str] = DEFAULT_NSFW_HASHTAGS, enabled: bool = True):
        self.hashtags = frozenset(tag.lower() for tag in hashtags)
        self.enabled = enabled

    def __call__(self, video: VideoEvent) -> bool:
        if not self.enabled:
            return False
        if any(tag.lower() in self.hashtags for tag in video.hashtags):
            return True
        return "content-warning" in video.raw_tags


class FilterPipeline:
    """Applies the block filter, validity checks and content filter in order."""

    def __init__(
        self,
        block_filter: BlockedVideoFilter | None = None,
        content_filter: VideoContentFilter | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self._block_filter = block_filter
        self._content_filter = content_filter
        self._clock = clock

    def _is_blocked(self, pubkey: str) -> bool:
        return self._block_filter is not None and self._block_filter(pubkey)

    def _passes_post_parse(self, video: VideoEvent) -> bool:
        if not has_playable_url(video):
            return False
        now = self._clock() if self._clock is not None else None
        if is_expired(video, now):
            return False
        if self._content_filter is not None and self._content_filter(video):
            return False
        return True

    def accept_event(self, event: RawEvent, parse: EventParser) -> VideoEvent | None:
        """Run a raw relay event through the full pipeline.

        Returns:
            The parsed video, or None if any stage excluded it
        """
        if not is_video_kind(event.kind):
            return None
        if self._is_blocked(event.pubkey):
            return None
        video = parse(event)
        return video if self._passes_post_parse(video) else None

    def accept_video(self, video: VideoEvent) -> VideoEvent | None:
        """Run an already-built video (REST path) through the pipeline."""
        if self._is_blocked(video.pubkey):
            return None
        return video if self._passes_post_parse(video) else None

    def filter_events(
        self, events: Iterable[RawEvent], parse: EventParser = VideoEvent.from_nostr_event
    ) -> list[VideoEvent]:
        videos = []
        for event in events:
            video = self.accept_event(event, parse)
            if video is not None:
                videos.append(video)
        return videos

    def filter_videos(self, videos: Iterable[VideoEvent]) -> list[VideoEvent]:
        return [v for v in videos if self.accept_video(v) is not None]
