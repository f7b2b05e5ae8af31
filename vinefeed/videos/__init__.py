"""Video value models shared by every feed mode."""

from .models import HomeFeedResult, VideoEvent, has_playable_url, is_expired

__all__ = ["HomeFeedResult", "VideoEvent", "has_playable_url", "is_expired"]
