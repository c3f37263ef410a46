"""
Collection snapshot service.

Fetches a collection record at a block and reshapes it into CollectionData.
Byte-vector fields of the node record are read as bytes once, on arrival
(read_node_record). The record is then kept in display form under `raw`:

    owner                   chain-format SS58 address
    name, description       UTF-16 code units as decimal strings
    tokenPrefix, *Schema    byte vectors decoded as UTF-8 text
    mode, access, ...       enum variants by display name ("NFT", "Normal")
    anything else           copied verbatim

Shaping is idempotent: a str in a byte-vector field is already text and
passes through unchanged, so a raw record in display form shapes to itself.
"""

import logging
from typing import Any

from nftsnapshot.clients.unique_rpc import UniqueRpcClient
from nftsnapshot.models.account import CrossAccountId
from nftsnapshot.models.collection import CollectionData
from nftsnapshot.models.failure import CollectionNotFoundError
from nftsnapshot.parsers.address import AddressNormalizer
from nftsnapshot.parsers.chain_values import (
    as_bytes,
    bytes_to_text,
    humanize_enum,
    text_to_utf16_units,
)

UTF16_FIELDS = ("name", "description")
BYTE_TEXT_FIELDS = ("tokenPrefix", "offchainSchema", "variableOnChainSchema", "constOnChainSchema")
ENUM_FIELDS = ("mode", "access", "schemaVersion", "sponsorship", "metaUpdatePermission")


def _units_as_strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [str(unit) for unit in text_to_utf16_units(value)]
    return [str(int(unit)) for unit in value or []]


def _byte_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes | list):
        return bytes_to_text(as_bytes(value))
    return str(value)


def read_node_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Read the byte-vector fields of a node collection record as bytes.

    The node sends byte vectors as 0x-hex strings (or int arrays); once
    they are bytes, shaping can tell them apart from text.

    Raises:
        SchemaCodecError: If a byte-vector field is malformed
    """
    decoded = dict(record)
    for key in BYTE_TEXT_FIELDS:
        if key in decoded:
            decoded[key] = as_bytes(decoded[key])
    return decoded


def shape_raw_collection(record: dict[str, Any], normalizer: AddressNormalizer) -> dict[str, Any]:
    """
    Convert a collection record to display form.

    Byte-vector fields are expected as bytes (see read_node_record) or
    int arrays; str values are taken as already-shaped text.

    Raises:
        InvalidAddressError: If the owner address is malformed
    """
    raw = dict(record)
    raw["owner"] = normalizer.normalize_substrate(record["owner"])

    for key in UTF16_FIELDS:
        if key in raw:
            raw[key] = _units_as_strings(raw[key])
    for key in BYTE_TEXT_FIELDS:
        if key in raw:
            raw[key] = _byte_text(raw[key])
    for key in ENUM_FIELDS:
        if key in raw:
            raw[key] = humanize_enum(raw[key])

    return raw


class CollectionSnapshotter:
    """Builds CollectionData from the chain at a given block."""

    def __init__(self, chain: UniqueRpcClient, logger: logging.Logger | None = None) -> None:
        self.chain = chain
        self.logger = logger or logging.getLogger(__name__)

    async def fetch(self, collection_id: int, block_hash: str | None = None) -> CollectionData:
        """
        Snapshot a collection.

        Args:
            collection_id: Positive collection id
            block_hash: Block to read at; None reads the node's current state

        Returns:
            CollectionData for the collection at the block

        Raises:
            ValueError: If collection_id is not positive
            CollectionNotFoundError: If the chain has no such collection at the block
        """
        if collection_id < 1:
            raise ValueError(f"Invalid collection id: {collection_id}. Must be positive")

        record = await self.chain.get_collection_by_id(collection_id, block_hash)
        if record is None:
            raise CollectionNotFoundError(collection_id, block_hash)

        normalizer = await self.chain.address_normalizer()
        raw = shape_raw_collection(read_node_record(record), normalizer)

        tokens_count = await self.chain.get_last_token_id(collection_id, block_hash)
        admins = [
            CrossAccountId.parse(admin).to_normalized()
            for admin in await self.chain.get_collection_admins(collection_id, block_hash)
        ]

        collection = CollectionData.from_raw(collection_id, raw, tokens_count, admins)
        self.logger.info(
            "Snapshot of collection %d: %d tokens, %d admins",
            collection_id,
            tokens_count,
            len(admins),
        )
        return collection
