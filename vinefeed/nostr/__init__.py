"""Nostr identity primitives: events, filters, kinds and coordinates."""

from .client import NostrClient
from .coordinates import (
    AddressableCoordinate,
    AId,
    looks_like_coordinate,
    parse_addressable_coordinate,
)
from .kinds import ALL_VIDEO_KINDS, VIDEO_KIND, is_video_kind
from .models import Filter, RawEvent

__all__ = [
    "ALL_VIDEO_KINDS",
    "AId",
    "AddressableCoordinate",
    "Filter",
    "NostrClient",
    "RawEvent",
    "VIDEO_KIND",
    "is_video_kind",
    "looks_like_coordinate",
    "parse_addressable_coordinate",
]
