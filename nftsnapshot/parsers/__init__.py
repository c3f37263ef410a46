from nftsnapshot.parsers.address import (
    AddressNormalizer,
    decode_ss58,
    encode_ss58,
    is_ethereum_address,
    normalize_ethereum,
    normalize_substrate,
    to_ss58,
)
from nftsnapshot.parsers.schema import SchemaDocument, decode, encode, parse_schema

__all__ = [
    "AddressNormalizer",
    "SchemaDocument",
    "decode",
    "decode_ss58",
    "encode",
    "encode_ss58",
    "is_ethereum_address",
    "normalize_ethereum",
    "normalize_substrate",
    "parse_schema",
    "to_ss58",
]
