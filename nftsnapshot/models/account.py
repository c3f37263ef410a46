from dataclasses import dataclass
from enum import Enum
from typing import Any

from nftsnapshot.models.failure import InvalidAddressError
from nftsnapshot.parsers.address import AddressNormalizer, normalize_ethereum, normalize_substrate


class AccountKind(str, Enum):
    """Address families a token or collection can be owned by."""

    SUBSTRATE = "substrate"
    ETHEREUM = "ethereum"

    @property
    def chain_key(self) -> str:
        """Key used by the chain's native shape ({"Substrate": ...})."""
        return self.value.capitalize()


@dataclass(frozen=True, slots=True)
class CrossAccountId:
    """
    An account on either side of the chain's address space.

    The node and users write owners as {"substrate": addr} or
    {"Substrate": addr} interchangeably; parse() is the single place
    that accepts both.

    Attributes:
        kind: Address family
        address: Address as received (not yet normalized)
    """

    kind: AccountKind
    address: str

    @classmethod
    def parse(cls, value: Any) -> "CrossAccountId":
        """
        Build from a single-key mapping such as {"Substrate": "5G..."}.

        Raises:
            InvalidAddressError: If the shape or key is not recognized
        """
        if not isinstance(value, dict) or len(value) != 1:
            raise InvalidAddressError(value, "expected a single-key account mapping")

        key, address = next(iter(value.items()))
        try:
            kind = AccountKind(str(key).lower())
        except ValueError as e:
            raise InvalidAddressError(value, f"unknown account kind {key!r}") from e

        if not isinstance(address, str):
            raise InvalidAddressError(value, "address must be a string")
        return cls(kind=kind, address=address)

    def to_normalized(self) -> dict[str, str]:
        """Lowercase-keyed shape with the generic address, e.g. {"substrate": "5G..."}."""
        if self.kind is AccountKind.ETHEREUM:
            return {self.kind.value: normalize_ethereum(self.address)}
        return {self.kind.value: normalize_substrate(self.address)}

    def to_chain(self, normalizer: AddressNormalizer) -> dict[str, str]:
        """Chain-native shape with the chain-format address, e.g. {"Substrate": "yGH..."}."""
        if self.kind is AccountKind.ETHEREUM:
            return {self.kind.chain_key: normalize_ethereum(self.address)}
        return {self.kind.chain_key: normalizer.normalize_substrate(self.address)}
