"""Addressable event coordinates (`kind:pubkey:d-tag`)."""

from pydantic import BaseModel, ConfigDict


class AddressableCoordinate(BaseModel):
    """Reference to the latest version of an addressable event."""

    model_config = ConfigDict(frozen=True)

    kind: int
    pubkey: str
    d_tag: str

    def to_string(self) -> str:
        return f"{self.kind}:{self.pubkey}:{self.d_tag}"

    def __str__(self) -> str:
        return self.to_string()


AId = AddressableCoordinate


def parse_addressable_coordinate(value: str) -> AddressableCoordinate | None:
    """Parse a `kind:pubkey:d-tag` string.

    Only the first two colons separate components; anything after the
    second colon is the literal d-tag, so ``"34236:abc:a:b"`` has d-tag
    ``"a:b"``.

    Args:
        value: Candidate coordinate string

    Returns:
        The parsed coordinate, or None if a component is missing or the
        kind is not an integer
    """
    if not isinstance(value, str):
        return None

    parts = value.split(":", 2)
    if len(parts) != 3:
        return None

    kind_str, pubkey, d_tag = parts
    if not pubkey or not d_tag:
        return None

    try:
        kind = int(kind_str)
    except ValueError:
        return None

    return AddressableCoordinate(kind=kind, pubkey=pubkey, d_tag=d_tag)


def looks_like_coordinate(ref: str) -> bool:
    """Whether a list ref is a coordinate rather than a bare event id."""
    return ":" in ref
