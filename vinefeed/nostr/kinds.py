"""NIP-71 video event kinds."""

# Addressable short vertical video; the kind every feed query asks for
VIDEO_KIND = 34236

ALL_VIDEO_KINDS: tuple[int, ...] = (22, 21, 34236, 34235)

_VIDEO_KINDS = frozenset(ALL_VIDEO_KINDS)


def is_video_kind(kind: int) -> bool:
    """Check whether `kind` is one of the recognized short-video kinds."""
    return kind in _VIDEO_KINDS
