from dataclasses import dataclass, field
from typing import Any

from nftsnapshot.parsers.address import normalize_substrate
from nftsnapshot.parsers.chain_values import utf16_units_to_text


@dataclass(frozen=True, slots=True)
class CollectionData:
    """
    A collection's metadata as of one block.

    Top-level fields other than id, tokens_count and admins are projections
    of raw, so from_raw(raw) always reproduces them.

    Attributes:
        id: Collection identifier
        name: Decoded collection name
        description: Decoded collection description
        normalized_owner: Owner in the generic SS58 format
        tokens_count: Highest token id minted as of the block
        admins: Admin accounts in chain order, normalized ({"substrate": ...})
        raw: The chain record in display form, including fields we do not interpret
    """

    id: int
    name: str
    description: str
    normalized_owner: str
    tokens_count: int
    admins: list[dict[str, str]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(
        cls,
        collection_id: int,
        raw: dict[str, Any],
        tokens_count: int,
        admins: list[dict[str, str]] | None = None,
    ) -> "CollectionData":
        """Derive the top-level fields from a display-form chain record."""
        return cls(
            id=collection_id,
            name=utf16_units_to_text(raw.get("name") or []),
            description=utf16_units_to_text(raw.get("description") or []),
            normalized_owner=normalize_substrate(raw["owner"]),
            tokens_count=tokens_count,
            admins=list(admins or []),
            raw=raw,
        )

    @property
    def schema_version(self) -> str | None:
        return self.raw.get("schemaVersion")

    @property
    def const_on_chain_schema(self) -> str | None:
        return self.raw.get("constOnChainSchema")

    def to_dict(self) -> dict[str, Any]:
        """Export shape (camelCase keys)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "normalizedOwner": self.normalized_owner,
            "tokensCount": self.tokens_count,
            "admins": [dict(admin) for admin in self.admins],
            "raw": self.raw,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CollectionData":
        """Inverse of to_dict()."""
        return cls(
            id=data["id"],
            name=data["name"],
            description=data["description"],
            normalized_owner=data["normalizedOwner"],
            tokens_count=data["tokensCount"],
            admins=list(data.get("admins", [])),
            raw=data.get("raw", {}),
        )
