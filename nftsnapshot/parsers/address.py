"""
Address normalization for Substrate (SS58) and Ethereum accounts.

An SS58 address is base58(prefix || public_key || checksum) where the
checksum is the first two bytes of blake2b-512(b"SS58PRE" || prefix ||
public_key). The prefix identifies the network; the public key is what
identifies the account. Normalizing means re-encoding the same key under a
chosen prefix.

Reference: https://docs.substrate.io/reference/address-formats/
"""

import hashlib
import re

import base58

from nftsnapshot.config import GENERIC_SS58_FORMAT
from nftsnapshot.models.failure import InvalidAddressError

SS58_CHECKSUM_PREFIX = b"SS58PRE"
PUBLIC_KEY_LENGTH = 32
CHECKSUM_LENGTH = 2

# Highest format representable by the two-byte prefix
MAX_SS58_FORMAT = 16383

# Formats reserved by the SS58 registry, never valid on the wire
RESERVED_SS58_FORMATS = frozenset({46, 47})

ETHEREUM_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
PUBLIC_KEY_HEX_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


def _checksum(data: bytes) -> bytes:
    return hashlib.blake2b(SS58_CHECKSUM_PREFIX + data, digest_size=64).digest()[:CHECKSUM_LENGTH]


def _encode_prefix(ss58_format: int) -> bytes:
    if ss58_format < 64:
        return bytes([ss58_format])
    first = ((ss58_format & 0b1111_1100) >> 2) | 0b0100_0000
    second = (ss58_format >> 8) | ((ss58_format & 0b0000_0011) << 6)
    return bytes([first, second])


def _validate_format(address: object, ss58_format: int) -> None:
    if not 0 <= ss58_format <= MAX_SS58_FORMAT:
        raise InvalidAddressError(address, f"ss58 format {ss58_format} out of range")
    if ss58_format in RESERVED_SS58_FORMATS:
        raise InvalidAddressError(address, f"ss58 format {ss58_format} is reserved")


def is_ethereum_address(address: object) -> bool:
    """True for a 0x-prefixed 20-byte hex string."""
    return isinstance(address, str) and bool(ETHEREUM_ADDRESS_PATTERN.match(address))


def decode_ss58(address: str) -> tuple[int, bytes]:
    """
    Decode an SS58 address.

    Args:
        address: SS58-encoded account address

    Returns:
        Tuple of (ss58 format, 32-byte public key)

    Raises:
        InvalidAddressError: If the address is not valid base58, has a
            reserved prefix, an unsupported length, or a bad checksum
    """
    if not isinstance(address, str) or not address:
        raise InvalidAddressError(address, "expected a non-empty string")

    try:
        raw = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(address, f"not base58: {e}") from e

    if not raw:
        raise InvalidAddressError(address, "empty payload")

    first = raw[0]
    if first < 64:
        ss58_format, prefix_length = first, 1
    elif first < 128:
        if len(raw) < 2:
            raise InvalidAddressError(address, "truncated prefix")
        second = raw[1]
        ss58_format = ((first & 0b0011_1111) << 2) | (second >> 6) | ((second & 0b0011_1111) << 8)
        prefix_length = 2
    else:
        raise InvalidAddressError(address, "reserved prefix byte")

    _validate_format(address, ss58_format)

    if len(raw) != prefix_length + PUBLIC_KEY_LENGTH + CHECKSUM_LENGTH:
        raise InvalidAddressError(address, f"unsupported payload length {len(raw) - prefix_length}")

    body, checksum = raw[:-CHECKSUM_LENGTH], raw[-CHECKSUM_LENGTH:]
    if _checksum(body) != checksum:
        raise InvalidAddressError(address, "checksum mismatch")

    return ss58_format, body[prefix_length:]


def encode_ss58(public_key: bytes, ss58_format: int) -> str:
    """
    Encode a 32-byte public key as an SS58 address.

    Raises:
        InvalidAddressError: If the key length or format is invalid
    """
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise InvalidAddressError(public_key.hex(), f"public key must be {PUBLIC_KEY_LENGTH} bytes")
    _validate_format(public_key.hex(), ss58_format)

    body = _encode_prefix(ss58_format) + public_key
    return base58.b58encode(body + _checksum(body)).decode("ascii")


def substrate_public_key(address: str) -> bytes:
    """
    Extract the public key from an SS58 address or a 0x-hex public key.

    Raises:
        InvalidAddressError: If neither form matches
    """
    if isinstance(address, str) and PUBLIC_KEY_HEX_PATTERN.match(address):
        return bytes.fromhex(address[2:])
    _, public_key = decode_ss58(address)
    return public_key


def to_ss58(address: str, ss58_format: int) -> str:
    """Re-encode a Substrate address (any format) under ss58_format."""
    return encode_ss58(substrate_public_key(address), ss58_format)


def normalize_substrate(address: str) -> str:
    """Re-encode a Substrate address under the generic prefix (42)."""
    return to_ss58(address, GENERIC_SS58_FORMAT)


def normalize_ethereum(address: str) -> str:
    """Lowercase a 0x-prefixed Ethereum address."""
    if not is_ethereum_address(address):
        raise InvalidAddressError(address, "expected 0x followed by 40 hex digits")
    return address.lower()


class AddressNormalizer:
    """
    Converts addresses to the chain's canonical representation.

    Deterministic and idempotent: normalize(normalize(x)) == normalize(x).
    """

    def __init__(self, ss58_format: int):
        _validate_format(ss58_format, ss58_format)
        self.ss58_format = ss58_format

    def normalize(self, address: str) -> str:
        """
        Convert an address to chain format.

        Ethereum addresses are lowercased; anything else must be an SS58
        address or a 0x-hex public key.

        Raises:
            InvalidAddressError: If the address is malformed
        """
        if is_ethereum_address(address):
            return normalize_ethereum(address)
        return self.normalize_substrate(address)

    def normalize_substrate(self, address: str) -> str:
        """Convert a Substrate address to chain format, rejecting Ethereum addresses."""
        return to_ss58(address, self.ss58_format)
