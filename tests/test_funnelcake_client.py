"""Tests for the Funnelcake REST client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from vinefeed.funnelcake import (
    FunnelcakeApiClient,
    FunnelcakeApiException,
    FunnelcakeException,
    FunnelcakeNotConfiguredException,
    FunnelcakeNotFoundException,
    FunnelcakeTimeoutException,
)

BASE_URL = "https://api.example.com"


@pytest.fixture
def client():
    """Create a client with a trailing slash on its base URL."""
    return FunnelcakeApiClient(base_url=f"{BASE_URL}/")


def create_mock_response(status_code: int, json_data=None):
    """Helper to create a mock httpx Response."""
    mock_resp = MagicMock()
    mock_resp.status_code = status_code
    mock_resp.json = MagicMock(return_value=json_data)
    return mock_resp


def patch_http(response=None, side_effect=None):
    """Patch httpx.AsyncClient so that request() returns `response`."""
    patcher = patch("httpx.AsyncClient")
    mock_client_class = patcher.start()
    mock_client = AsyncMock()
    mock_client.request = AsyncMock(return_value=response, side_effect=side_effect)
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    mock_client_class.return_value = mock_client
    return patcher, mock_client


VIDEO_RECORD = {
    "id": "v1",
    "pubkey": "p1",
    "created_at": 1700000000,
    "d_tag": "d1",
    "video_url": "https://x/v.mp4",
}


def test_base_url_trailing_slash_stripped(client):
    assert client.base_url == BASE_URL
    assert client.is_available is True


def test_empty_base_url_unavailable():
    assert FunnelcakeApiClient(base_url="").is_available is False


@pytest.mark.asyncio
async def test_not_configured_raises():
    with pytest.raises(FunnelcakeNotConfiguredException):
        await FunnelcakeApiClient(base_url="").get_recent_videos()


@pytest.mark.asyncio
async def test_get_recent_videos(client):
    """Recent videos hit /api/videos with sort and cursor; bad records are dropped."""
    patcher, mock_client = patch_http(
        create_mock_response(200, [VIDEO_RECORD, {"id": "v2", "pubkey": "p1"}])
    )
    try:
        videos = await client.get_recent_videos(limit=10, before=123)
    finally:
        patcher.stop()

    assert [v.id for v in videos] == ["v1"]
    args, kwargs = mock_client.request.call_args
    assert args == ("GET", f"{BASE_URL}/api/videos")
    assert kwargs["params"] == {"sort": "recent", "limit": 10, "before": 123}
    assert kwargs["headers"]["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_cursor_omitted_when_unset(client):
    patcher, mock_client = patch_http(create_mock_response(200, {"videos": [VIDEO_RECORD]}))
    try:
        videos = await client.get_trending_videos(limit=5)
    finally:
        patcher.stop()

    assert len(videos) == 1
    assert mock_client.request.call_args[1]["params"] == {"sort": "trending", "limit": 5}


@pytest.mark.asyncio
async def test_malformed_record_skipped(client):
    """A record that fails to parse is dropped without losing the rest of the page."""
    malformed = {"id": "a", "pubkey": "b", "video_url": "https://x/a.mp4", "tags": 7}
    bad_id = {"id": [97, "x"], "pubkey": "b", "video_url": "https://x/c.mp4"}
    patcher, _ = patch_http(
        create_mock_response(200, {"videos": [malformed, bad_id, VIDEO_RECORD, "junk"]})
    )
    try:
        videos = await client.get_recent_videos()
    finally:
        patcher.stop()

    assert [v.id for v in videos] == ["v1"]


@pytest.mark.asyncio
async def test_non_list_videos_payload_is_empty(client):
    patcher, _ = patch_http(create_mock_response(200, {"videos": "nope"}))
    try:
        videos = await client.get_trending_videos()
    finally:
        patcher.stop()

    assert videos == []


@pytest.mark.asyncio
async def test_malformed_video_stats_maps_to_base_exception(client):
    patcher, _ = patch_http(create_mock_response(200, {**VIDEO_RECORD, "tags": 7}))
    try:
        with pytest.raises(FunnelcakeException, match="Malformed"):
            await client.get_video_stats("v1")
    finally:
        patcher.stop()


@pytest.mark.asyncio
async def test_home_feed_response(client):
    patcher, mock_client = patch_http(
        create_mock_response(
            200, {"videos": [VIDEO_RECORD], "next_cursor": "1699999999", "has_more": True}
        )
    )
    try:
        response = await client.get_home_feed("p1", limit=5)
    finally:
        patcher.stop()

    assert [v.id for v in response.videos] == ["v1"]
    assert response.next_cursor == 1699999999
    assert response.has_more is True
    assert mock_client.request.call_args[0][1] == f"{BASE_URL}/api/users/p1/feed"


@pytest.mark.asyncio
async def test_classic_vines_before_only_for_recent(client):
    patcher, mock_client = patch_http(create_mock_response(200, []))
    try:
        await client.get_classic_vines(sort="popular", before=100)
        popular_params = mock_client.request.call_args[1]["params"]
        await client.get_classic_vines(sort="recent", before=100)
        recent_params = mock_client.request.call_args[1]["params"]
    finally:
        patcher.stop()

    assert "before" not in popular_params
    assert popular_params["classic"] == "true"
    assert popular_params["platform"] == "vine"
    assert recent_params["before"] == 100


@pytest.mark.asyncio
async def test_bulk_stats_posts_ids(client):
    patcher, mock_client = patch_http(
        create_mock_response(200, {"stats": [{"event_id": "v1", "reactions": 2}]})
    )
    try:
        response = await client.get_bulk_video_stats(["v1"])
    finally:
        patcher.stop()

    assert response.stats["v1"].reactions == 2
    args, kwargs = mock_client.request.call_args
    assert args == ("POST", f"{BASE_URL}/api/videos/stats/bulk")
    assert kwargs["json"] == {"event_ids": ["v1"]}


@pytest.mark.asyncio
async def test_bulk_stats_empty_input_skips_request(client):
    with patch("httpx.AsyncClient") as mock_client_class:
        response = await client.get_bulk_video_stats([])
    assert response.stats == {}
    mock_client_class.assert_not_called()


@pytest.mark.asyncio
async def test_video_views(client):
    patcher, _ = patch_http(create_mock_response(200, {"views": 42}))
    try:
        assert await client.get_video_views("v1") == 42
    finally:
        patcher.stop()


@pytest.mark.asyncio
async def test_404_maps_to_not_found(client):
    patcher, _ = patch_http(create_mock_response(404))
    try:
        with pytest.raises(FunnelcakeNotFoundException) as exc_info:
            await client.get_video_stats("missing")
    finally:
        patcher.stop()

    assert exc_info.value.status_code == 404
    assert str(exc_info.value) == (
        "FunnelcakeNotFoundException: Video stats not found (status: 404)"
    )


@pytest.mark.asyncio
async def test_500_maps_to_api_exception(client):
    patcher, _ = patch_http(create_mock_response(500))
    try:
        with pytest.raises(FunnelcakeApiException) as exc_info:
            await client.get_videos_by_loops()
    finally:
        patcher.stop()

    assert exc_info.value.status_code == 500
    assert not isinstance(exc_info.value, FunnelcakeNotFoundException)


@pytest.mark.asyncio
async def test_timeout_maps_to_timeout_exception(client):
    patcher, _ = patch_http(side_effect=httpx.ReadTimeout("slow"))
    try:
        with pytest.raises(FunnelcakeTimeoutException) as exc_info:
            await client.search_videos("cats")
    finally:
        patcher.stop()

    assert str(exc_info.value) == (
        f"FunnelcakeTimeoutException: Request timed out for {BASE_URL}/api/search"
    )


@pytest.mark.asyncio
async def test_transport_error_maps_to_base_exception(client):
    patcher, _ = patch_http(side_effect=httpx.ConnectError("refused"))
    try:
        with pytest.raises(FunnelcakeException):
            await client.get_videos_by_hashtag("cats")
    finally:
        patcher.stop()


@pytest.mark.asyncio
async def test_empty_pubkey_rejected(client):
    with pytest.raises(FunnelcakeException):
        await client.get_videos_by_author("  ")


@pytest.mark.asyncio
async def test_injected_http_client_is_used():
    http_client = AsyncMock(spec=httpx.AsyncClient)
    http_client.request = AsyncMock(return_value=create_mock_response(200, [VIDEO_RECORD]))
    client = FunnelcakeApiClient(base_url=BASE_URL, http_client=http_client, timeout=3.0)

    with patch("httpx.AsyncClient") as mock_client_class:
        videos = await client.get_collab_videos("p1")

    assert len(videos) == 1
    mock_client_class.assert_not_called()
    args, kwargs = http_client.request.call_args
    assert args == ("GET", f"{BASE_URL}/api/users/p1/collabs")
    assert kwargs["timeout"] == 3.0


def test_exception_strings():
    assert str(FunnelcakeException("boom")) == "FunnelcakeException: boom"
    assert str(FunnelcakeNotConfiguredException()) == (
        "FunnelcakeNotConfiguredException: Funnelcake API not configured"
    )
    assert str(FunnelcakeTimeoutException()) == "FunnelcakeTimeoutException: Request timed out"
    assert str(FunnelcakeApiException("bad", status_code=502)) == (
        "FunnelcakeApiException: bad (status: 502)"
    )
