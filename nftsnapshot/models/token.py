from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class TokenData:
    """
    One token as of one block.

    Attributes:
        token_id: 1-based token id
        owner: Generic-format owner, e.g. {"substrate": "5G..."}
        chain_owner: Chain-format owner, e.g. {"Substrate": "yGH..."}
        const_data: Immutable payload as 0x-hex ("" when empty), wire-exact
        variable_data: Mutable payload as text
        decoded_const_data: const_data decoded with the collection schema, or None
    """

    token_id: int
    owner: dict[str, str]
    chain_owner: dict[str, str]
    const_data: str
    variable_data: str
    decoded_const_data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Export shape (camelCase keys)."""
        return {
            "tokenId": self.token_id,
            "owner": dict(self.owner),
            "chainOwner": dict(self.chain_owner),
            "constData": self.const_data,
            "variableData": self.variable_data,
            "decodedConstData": self.decoded_const_data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenData":
        """Inverse of to_dict()."""
        return cls(
            token_id=data["tokenId"],
            owner=data["owner"],
            chain_owner=data["chainOwner"],
            const_data=data["constData"],
            variable_data=data["variableData"],
            decoded_const_data=data.get("decodedConstData"),
        )
