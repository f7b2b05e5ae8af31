"""Tests for the two-stage filter pipeline."""

from unittest.mock import MagicMock

from vinefeed.feed import FilterPipeline, NsfwContentFilter, PubkeyBlocklist
from vinefeed.nostr import RawEvent
from vinefeed.videos import VideoEvent


def make_event(
    event_id: str,
    pubkey: str = "good",
    kind: int = 34236,
    url: str | None = "https://x/v.mp4",
    extra_tags: list[list[str]] | None = None,
) -> RawEvent:
    """Helper to create a video RawEvent for testing."""
    tags = [["d", event_id]]
    if url is not None:
        tags.append(["url", url])
    tags.extend(extra_tags or [])
    return RawEvent(id=event_id, pubkey=pubkey, created_at=100, kind=kind, tags=tags)


class TestPubkeyBlocklist:
    """Tests for PubkeyBlocklist."""

    def test_case_insensitive(self):
        blocklist = PubkeyBlocklist(["ABC"])
        assert blocklist("abc") is True
        assert blocklist("AbC") is True
        assert blocklist("other") is False
        assert len(blocklist) == 1


class TestNsfwContentFilter:
    """Tests for NsfwContentFilter."""

    def test_hashtag_match(self):
        video = VideoEvent(id="v", pubkey="p", created_at=1, hashtags=frozenset({"NSFW"}))
        assert NsfwContentFilter()(video) is True

    def test_content_warning_tag(self):
        video = VideoEvent(id="v", pubkey="p", created_at=1, raw_tags={"content-warning": ""})
        assert NsfwContentFilter()(video) is True

    def test_clean_video(self):
        video = VideoEvent(id="v", pubkey="p", created_at=1, hashtags=frozenset({"cats"}))
        assert NsfwContentFilter()(video) is False

    def test_bare_content_warning_tag(self):
        """A content-warning tag without a reason still excludes the video."""
        event = make_event("e1", extra_tags=[["content-warning"]])
        video = VideoEvent.from_nostr_event(event)

        assert video.raw_tags["content-warning"] == ""
        assert NsfwContentFilter()(video) is True

    def test_bare_content_warning_excluded_by_pipeline(self):
        pipeline = FilterPipeline(content_filter=NsfwContentFilter())
        videos = pipeline.filter_events(
            [make_event("e1", extra_tags=[["content-warning"]]), make_event("e2")]
        )
        assert [v.id for v in videos] == ["e2"]

    def test_disabled(self):
        video = VideoEvent(id="v", pubkey="p", created_at=1, hashtags=frozenset({"nsfw"}))
        assert NsfwContentFilter(enabled=False)(video) is False


class TestFilterPipeline:
    """Tests for FilterPipeline ordering and exclusions."""

    def test_blocked_pubkey_never_parsed(self):
        """The parser must not run for events from blocked authors."""
        parse = MagicMock(side_effect=VideoEvent.from_nostr_event)
        pipeline = FilterPipeline(block_filter=PubkeyBlocklist(["bad"]))

        videos = pipeline.filter_events(
            [make_event("e1", pubkey="bad"), make_event("e2"), make_event("e3", pubkey="BAD")],
            parse,
        )

        assert [v.id for v in videos] == ["e2"]
        assert parse.call_count == 1
        assert parse.call_args[0][0].id == "e2"

    def test_non_video_kind_never_parsed(self):
        parse = MagicMock(side_effect=VideoEvent.from_nostr_event)
        pipeline = FilterPipeline()

        assert pipeline.accept_event(make_event("e1", kind=1), parse) is None
        parse.assert_not_called()

    def test_missing_url_excluded(self):
        pipeline = FilterPipeline()
        videos = pipeline.filter_events([make_event("e1", url=None), make_event("e2")])
        assert [v.id for v in videos] == ["e2"]

    def test_expired_excluded(self):
        pipeline = FilterPipeline(clock=lambda: 1000.0)
        videos = pipeline.filter_events(
            [
                make_event("e1", extra_tags=[["expiration", "999"]]),
                make_event("e2", extra_tags=[["expiration", "1001"]]),
            ]
        )
        assert [v.id for v in videos] == ["e2"]

    def test_content_filter_runs_after_url_check(self):
        """The content filter only sees playable videos."""
        content_filter = MagicMock(return_value=False)
        pipeline = FilterPipeline(content_filter=content_filter)

        pipeline.filter_events([make_event("e1", url=None), make_event("e2")])

        content_filter.assert_called_once()
        assert content_filter.call_args[0][0].id == "e2"

    def test_content_filter_excludes(self):
        pipeline = FilterPipeline(content_filter=NsfwContentFilter())
        videos = pipeline.filter_events(
            [make_event("e1", extra_tags=[["t", "nsfw"]]), make_event("e2")]
        )
        assert [v.id for v in videos] == ["e2"]

    def test_filter_videos_applies_block_filter(self):
        pipeline = FilterPipeline(block_filter=PubkeyBlocklist(["bad"]))
        videos = pipeline.filter_videos(
            [
                VideoEvent(id="a", pubkey="bad", created_at=1, video_url="https://x/a.mp4"),
                VideoEvent(id="b", pubkey="ok", created_at=1, video_url="https://x/b.mp4"),
                VideoEvent(id="c", pubkey="ok", created_at=1, video_url=""),
            ]
        )
        assert [v.id for v in videos] == ["b"]

    def test_preserves_input_order(self):
        pipeline = FilterPipeline()
        videos = pipeline.filter_events([make_event("z"), make_event("a"), make_event("m")])
        assert [v.id for v in videos] == ["z", "a", "m"]
