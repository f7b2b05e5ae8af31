"""Funnelcake REST accelerator: client, response models and errors."""

from .client import FunnelcakeApiClient
from .exceptions import (
    FunnelcakeApiException,
    FunnelcakeException,
    FunnelcakeNotConfiguredException,
    FunnelcakeNotFoundException,
    FunnelcakeTimeoutException,
)
from .models import (
    BulkVideoStatsEntry,
    BulkVideoStatsResponse,
    HomeFeedResponse,
    RecommendationsResponse,
    VideoStats,
)

__all__ = [
    "BulkVideoStatsEntry",
    "BulkVideoStatsResponse",
    "FunnelcakeApiClient",
    "FunnelcakeApiException",
    "FunnelcakeException",
    "FunnelcakeNotConfiguredException",
    "FunnelcakeNotFoundException",
    "FunnelcakeTimeoutException",
    "HomeFeedResponse",
    "RecommendationsResponse",
    "VideoStats",
]
