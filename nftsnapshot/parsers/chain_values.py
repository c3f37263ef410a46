"""
Conversions between node JSON values and exported values.

The node renders byte vectors either as 0x-hex strings or as JSON arrays
of integers, and collection names as UTF-16 code-unit vectors.
"""

from typing import Any

from nftsnapshot.models.failure import SchemaCodecError

# Enum variants whose display name is not a plain capitalization
ENUM_DISPLAY_NAMES = {
    "nft": "NFT",
    "refungible": "ReFungible",
}


def as_bytes(value: Any) -> bytes:
    """
    Interpret a node byte vector.

    Accepts "0x..." hex, a list of ints, raw bytes, or None (empty).

    Raises:
        SchemaCodecError: If the value is not a byte vector
    """
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        if not value.startswith("0x"):
            raise SchemaCodecError(f"Expected 0x-prefixed hex, got {value[:16]!r}")
        try:
            return bytes.fromhex(value[2:])
        except ValueError as e:
            raise SchemaCodecError("Malformed hex byte vector", detail=str(e)) from e
    if isinstance(value, list):
        try:
            return bytes(int(b) for b in value)
        except (TypeError, ValueError) as e:
            raise SchemaCodecError("Malformed byte array", detail=str(e)) from e
    raise SchemaCodecError(f"Unsupported byte vector type: {type(value).__name__}")


def bytes_to_hex(data: bytes) -> str:
    """0x-hex for non-empty data, "" for empty data."""
    return "0x" + data.hex() if data else ""


def bytes_to_text(data: bytes) -> str:
    """UTF-8 text, with replacement characters for invalid sequences."""
    return data.decode("utf-8", errors="replace")


def utf16_units_to_text(units: list[Any]) -> str:
    """Join UTF-16 code units (ints or decimal strings) into text."""
    raw = b"".join(int(unit).to_bytes(2, "little") for unit in units)
    return raw.decode("utf-16-le", errors="replace")


def text_to_utf16_units(text: str) -> list[int]:
    """Split text into UTF-16 code units."""
    raw = text.encode("utf-16-le")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def humanize_enum(value: Any) -> Any:
    """
    Render a serde-style enum in display form.

    "Normal" -> "Normal"; {"nft": None} -> "NFT";
    {"fungible": 18} -> {"Fungible": "18"}. Anything else is returned as is.
    """
    if isinstance(value, dict) and len(value) == 1:
        key, inner = next(iter(value.items()))
        name = ENUM_DISPLAY_NAMES.get(key.lower(), key[:1].upper() + key[1:])
        if inner is None:
            return name
        if isinstance(inner, int | float) and not isinstance(inner, bool):
            return {name: str(inner)}
        return {name: inner}
    return value
