"""Relay query capability consumed by the feed layer."""

from typing import Protocol

from .models import Filter, RawEvent


class NostrClient(Protocol):
    """Anything that can run REQ filters against relays and collect events.

    Connection management, relay selection and response caching belong to
    the implementation. `use_cache=False` asks it to bypass any response
    cache, used when the relay's own ordering must be preserved.
    """

    async def query_events(
        self, filters: list[Filter], use_cache: bool = True
    ) -> list[RawEvent]: ...
