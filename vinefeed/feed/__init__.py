"""Feed assembly: filter pipeline, source adapters and the videos repository."""

from .filters import (
    DEFAULT_NSFW_HASHTAGS,
    BlockedVideoFilter,
    FilterPipeline,
    NsfwContentFilter,
    PubkeyBlocklist,
    VideoContentFilter,
)
from .repository import VideosRepository, next_cursor, sort_by_engagement, sort_newest_first
from .sources import (
    REST_FAILURE_POLICY,
    FailurePolicy,
    RelaySource,
    RestSource,
    SourceOutcome,
    SourceResult,
)

__all__ = [
    "BlockedVideoFilter",
    "DEFAULT_NSFW_HASHTAGS",
    "FailurePolicy",
    "FilterPipeline",
    "NsfwContentFilter",
    "PubkeyBlocklist",
    "REST_FAILURE_POLICY",
    "RelaySource",
    "RestSource",
    "SourceOutcome",
    "SourceResult",
    "VideoContentFilter",
    "VideosRepository",
    "next_cursor",
    "sort_by_engagement",
    "sort_newest_first",
]
