"""Pydantic models for raw Nostr events and relay query filters."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawEvent(BaseModel):
    """A signed Nostr event as returned by a relay (NIP-01 shape)."""

    model_config = ConfigDict(frozen=True)

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""
    sig: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "RawEvent":
        """Build an event from NIP-01 JSON, coercing tag values to strings."""
        tags = [[str(v) for v in tag] for tag in data.get("tags") or [] if tag]
        return cls(
            id=str(data.get("id", "")),
            pubkey=str(data.get("pubkey", "")),
            created_at=int(data.get("created_at", 0)),
            kind=int(data.get("kind", 0)),
            tags=tags,
            content=str(data.get("content") or ""),
            sig=str(data.get("sig") or ""),
        )

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called `name`, in tag order."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]

    def first_tag_value(self, name: str) -> str | None:
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] == name:
                return tag[1]
        return None

    @property
    def d_tag_value(self) -> str:
        """The addressable `d` tag value, or an empty string."""
        return self.first_tag_value("d") or ""


class Filter(BaseModel):
    """A relay REQ filter.

    `d` and `p` are the `#d` (addressable identifier) and `#p` (mentioned
    pubkey) tag queries; `search` is a NIP-50 search directive such as
    ``"sort:hot"``.
    """

    model_config = ConfigDict(frozen=True)

    kinds: list[int]
    authors: list[str] | None = None
    ids: list[str] | None = None
    d: list[str] | None = None
    p: list[str] | None = None
    search: str | None = None
    limit: int | None = None
    until: int | None = None

    def to_json(self) -> dict[str, Any]:
        """Render the NIP-01 wire form, omitting unset fields."""
        data: dict[str, Any] = {"kinds": list(self.kinds)}
        if self.authors is not None:
            data["authors"] = list(self.authors)
        if self.ids is not None:
            data["ids"] = list(self.ids)
        if self.d is not None:
            data["#d"] = list(self.d)
        if self.p is not None:
            data["#p"] = list(self.p)
        if self.search is not None:
            data["search"] = self.search
        if self.limit is not None:
            data["limit"] = self.limit
        if self.until is not None:
            data["until"] = self.until
        return data
