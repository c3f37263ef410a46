"""
On-chain schema codec.

Collections that declare the "Unique" schema version store a protobuf
schema document (protobufjs JSON root form) and encode each token's
constant data as a protobuf message of that schema:

    {"nested": {"onChainMetaData": {"nested": {
        "NFTMeta": {"fields": {
            "ipfsJson": {"id": 1, "rule": "required", "type": "string"},
            "gender":   {"id": 2, "rule": "required", "type": "Gender"},
            "traits":   {"id": 3, "rule": "repeated", "type": "PunkTrait"}}},
        "Gender": {"values": {"Female": 0, "Male": 1}},
        ...}}}}

The codec interprets that document at runtime. Supported field kinds:
scalars, enumerations, repeated enumerations (trait/flag sets) and
references to other messages. Maps, groups and oneofs are rejected.

Decoded values are plain dicts keyed by declared field names. Enums decode
to their integer values, bytes to 0x-hex, and repeated fields are always
present as lists.
"""

import json
import struct
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nftsnapshot.models.failure import SchemaCodecError

# Wire types
WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

SCALAR_WIRE_TYPES: dict[str, int] = {
    "double": WIRE_FIXED64,
    "float": WIRE_FIXED32,
    "int32": WIRE_VARINT,
    "int64": WIRE_VARINT,
    "uint32": WIRE_VARINT,
    "uint64": WIRE_VARINT,
    "sint32": WIRE_VARINT,
    "sint64": WIRE_VARINT,
    "fixed32": WIRE_FIXED32,
    "fixed64": WIRE_FIXED64,
    "sfixed32": WIRE_FIXED32,
    "sfixed64": WIRE_FIXED64,
    "bool": WIRE_VARINT,
    "string": WIRE_LENGTH_DELIMITED,
    "bytes": WIRE_LENGTH_DELIMITED,
}

FIXED_FORMATS: dict[str, str] = {
    "double": "<d",
    "float": "<f",
    "fixed32": "<I",
    "fixed64": "<Q",
    "sfixed32": "<i",
    "sfixed64": "<q",
}

INTEGER_RANGES: dict[str, tuple[int, int]] = {
    "int32": (-(2**31), 2**31 - 1),
    "sint32": (-(2**31), 2**31 - 1),
    "sfixed32": (-(2**31), 2**31 - 1),
    "int64": (-(2**63), 2**63 - 1),
    "sint64": (-(2**63), 2**63 - 1),
    "sfixed64": (-(2**63), 2**63 - 1),
    "uint32": (0, 2**32 - 1),
    "fixed32": (0, 2**32 - 1),
    "uint64": (0, 2**64 - 1),
    "fixed64": (0, 2**64 - 1),
}

MASK_32 = 2**32 - 1
MASK_64 = 2**64 - 1
MAX_FIELD_NUMBER = 2**29 - 1


# =============================================================================
# SCHEMA DOCUMENT MODEL
# =============================================================================


class FieldSpec(BaseModel):
    """A message field as written in the schema document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int = Field(..., ge=1, le=MAX_FIELD_NUMBER)
    type: str
    rule: Literal["required", "optional", "repeated"] | None = None
    key_type: str | None = Field(default=None, alias="keyType")


class SchemaNode(BaseModel):
    """A namespace, message or enum node of the schema document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    nested: dict[str, "SchemaNode"] | None = None
    message_fields: dict[str, FieldSpec] | None = Field(default=None, alias="fields")
    enum_values: dict[str, int] | None = Field(default=None, alias="values")


SchemaNode.model_rebuild()


@dataclass(frozen=True, slots=True)
class EnumType:
    name: str
    values: dict[str, int]

    def number_of(self, value: Any) -> int:
        """Resolve an enum member given by number or by name."""
        if isinstance(value, str):
            if value not in self.values:
                raise SchemaCodecError(f"{value!r} is not a member of enum {self.name}")
            return self.values[value]
        if isinstance(value, bool) or not isinstance(value, int):
            raise SchemaCodecError(f"Enum {self.name} expects an int or member name, got {value!r}")
        if value not in self.values.values():
            raise SchemaCodecError(f"{value} is not a value of enum {self.name}")
        return value


@dataclass(frozen=True, slots=True)
class ResolvedField:
    """A field with its type resolved against the document."""

    name: str
    number: int
    rule: str | None
    scalar: str | None = None
    enum: EnumType | None = None
    message: str | None = None

    @property
    def repeated(self) -> bool:
        return self.rule == "repeated"

    @property
    def required(self) -> bool:
        return self.rule == "required"

    @property
    def wire_type(self) -> int:
        if self.scalar is not None:
            return SCALAR_WIRE_TYPES[self.scalar]
        if self.enum is not None:
            return WIRE_VARINT
        return WIRE_LENGTH_DELIMITED

    @property
    def packable(self) -> bool:
        return self.repeated and self.wire_type != WIRE_LENGTH_DELIMITED


@dataclass(frozen=True, slots=True)
class MessageType:
    name: str
    fields: tuple[ResolvedField, ...]

    def by_number(self) -> dict[int, ResolvedField]:
        return {f.number: f for f in self.fields}


# =============================================================================
# WIRE PRIMITIVES
# =============================================================================


class _Reader:
    """Cursor over a protobuf-encoded buffer."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    @property
    def done(self) -> bool:
        return self.pos >= len(self.data)

    def take(self, length: int) -> bytes:
        end = self.pos + length
        if length < 0 or end > len(self.data):
            raise SchemaCodecError("Truncated payload", detail=f"need {length} bytes at {self.pos}")
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def varint(self) -> int:
        result = 0
        for shift in range(0, 70, 7):
            if self.done:
                raise SchemaCodecError("Truncated varint", detail=f"at offset {self.pos}")
            byte = self.data[self.pos]
            self.pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result & MASK_64
        raise SchemaCodecError("Varint longer than 10 bytes", detail=f"at offset {self.pos}")

    def length_delimited(self) -> bytes:
        return self.take(self.varint())

    def skip(self, wire_type: int) -> None:
        if wire_type == WIRE_VARINT:
            self.varint()
        elif wire_type == WIRE_FIXED64:
            self.take(8)
        elif wire_type == WIRE_LENGTH_DELIMITED:
            self.length_delimited()
        elif wire_type == WIRE_FIXED32:
            self.take(4)
        else:
            raise SchemaCodecError(f"Unsupported wire type {wire_type}")


def _encode_varint(value: int) -> bytes:
    value &= MASK_64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _encode_key(number: int, wire_type: int) -> bytes:
    return _encode_varint((number << 3) | wire_type)


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    return value - (1 << bits) if value >= 1 << (bits - 1) else value


def _zigzag_encode(value: int) -> int:
    return value * 2 if value >= 0 else -value * 2 - 1


def _zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


# =============================================================================
# SCHEMA DOCUMENT
# =============================================================================


class SchemaDocument:
    """
    A parsed schema document with every field type resolved.

    Resolution follows protobuf scoping: a type name is looked up in the
    referencing message, then in each enclosing namespace outward; names
    starting with "." are absolute.
    """

    def __init__(self, enums: dict[str, EnumType], messages: dict[str, MessageType]):
        self.enums = enums
        self.messages = messages

    @classmethod
    def parse(cls, descriptor: str | dict[str, Any]) -> "SchemaDocument":
        """
        Parse and resolve a schema document.

        Args:
            descriptor: JSON text or already-loaded mapping

        Raises:
            SchemaCodecError: If the document is not valid JSON, does not match
                the document shape, or references unknown types
        """
        if isinstance(descriptor, str):
            try:
                descriptor = json.loads(descriptor)
            except json.JSONDecodeError as e:
                raise SchemaCodecError("Schema document is not valid JSON", detail=str(e)) from e

        try:
            root = SchemaNode.model_validate(descriptor)
        except ValidationError as e:
            raise SchemaCodecError("Schema document has an invalid shape", detail=str(e)) from e

        raw_messages: dict[str, dict[str, FieldSpec]] = {}
        enums: dict[str, EnumType] = {}
        _collect_types(root, "", raw_messages, enums)

        messages: dict[str, MessageType] = {}
        for full_name, specs in raw_messages.items():
            fields = tuple(
                _resolve_field(full_name, name, spec, raw_messages, enums)
                for name, spec in specs.items()
            )
            numbers = [f.number for f in fields]
            if len(numbers) != len(set(numbers)):
                raise SchemaCodecError(f"Duplicate field numbers in message {full_name}")
            messages[full_name] = MessageType(name=full_name, fields=fields)

        return cls(enums=enums, messages=messages)

    def has_message(self, message_type: str) -> bool:
        return message_type.lstrip(".") in self.messages

    def _message(self, message_type: str) -> MessageType:
        try:
            return self.messages[message_type.lstrip(".")]
        except KeyError:
            raise SchemaCodecError(f"Schema has no message type {message_type!r}") from None

    # -------------------------------------------------------------------------
    # decoding
    # -------------------------------------------------------------------------

    def decode(self, message_type: str, data: bytes) -> dict[str, Any]:
        """
        Decode protobuf bytes as message_type.

        Raises:
            SchemaCodecError: If the bytes are not a valid encoding of the message
        """
        return self._decode_message(self._message(message_type), data)

    def _decode_message(self, message: MessageType, data: bytes) -> dict[str, Any]:
        values: dict[str, Any] = {f.name: [] for f in message.fields if f.repeated}
        by_number = message.by_number()
        reader = _Reader(data)

        while not reader.done:
            key = reader.varint()
            number, wire_type = key >> 3, key & 0x07
            if number == 0:
                raise SchemaCodecError("Invalid field number 0", detail=f"in {message.name}")

            field = by_number.get(number)
            if field is None:
                reader.skip(wire_type)
                continue

            if field.packable and wire_type == WIRE_LENGTH_DELIMITED:
                packed = _Reader(reader.length_delimited())
                while not packed.done:
                    values[field.name].append(self._read_value(packed, field))
                continue

            if wire_type != field.wire_type:
                raise SchemaCodecError(
                    f"Wire type {wire_type} does not match field {message.name}.{field.name}"
                )
            value = self._read_value(reader, field)
            if field.repeated:
                values[field.name].append(value)
            else:
                values[field.name] = value

        for field in message.fields:
            if field.required and field.name not in values:
                raise SchemaCodecError(f"Missing required field {message.name}.{field.name}")

        # Declared order, independent of wire order
        return {f.name: values[f.name] for f in message.fields if f.name in values}

    def _read_value(self, reader: _Reader, field: ResolvedField) -> Any:
        if field.message is not None:
            return self._decode_message(self._message(field.message), reader.length_delimited())

        if field.enum is not None:
            number = _signed(reader.varint(), 32)
            return field.enum.number_of(number)

        scalar = field.scalar
        if scalar == "string":
            try:
                return reader.length_delimited().decode("utf-8")
            except UnicodeDecodeError as e:
                raise SchemaCodecError(f"Field {field.name} is not valid UTF-8") from e
        if scalar == "bytes":
            return "0x" + reader.length_delimited().hex()
        if scalar in FIXED_FORMATS:
            fmt = FIXED_FORMATS[scalar]
            (value,) = struct.unpack(fmt, reader.take(struct.calcsize(fmt)))
            return value

        raw = reader.varint()
        if scalar == "bool":
            return raw != 0
        if scalar in ("sint32", "sint64"):
            return _zigzag_decode(raw)
        if scalar == "int32":
            return _signed(raw, 32)
        if scalar == "int64":
            return _signed(raw, 64)
        if scalar == "uint32":
            return raw & MASK_32
        return raw

    # -------------------------------------------------------------------------
    # encoding
    # -------------------------------------------------------------------------

    def encode(self, message_type: str, value: dict[str, Any]) -> bytes:
        """
        Encode a value as message_type.

        Raises:
            SchemaCodecError: If the value has unknown keys, misses required
                fields, or holds values that do not fit their field types
        """
        return self._encode_message(self._message(message_type), value)

    def _encode_message(self, message: MessageType, value: Any) -> bytes:
        if not isinstance(value, dict):
            raise SchemaCodecError(f"Message {message.name} expects a mapping, got {value!r}")

        declared = {f.name for f in message.fields}
        unknown = sorted(set(value) - declared)
        if unknown:
            raise SchemaCodecError(f"Unknown fields for {message.name}: {', '.join(unknown)}")

        out = bytearray()
        for field in sorted(message.fields, key=lambda f: f.number):
            item = value.get(field.name)
            if item is None:
                if field.required:
                    raise SchemaCodecError(f"Missing required field {message.name}.{field.name}")
                continue

            if not field.repeated:
                out += _encode_key(field.number, field.wire_type) + self._write_value(field, item)
                continue

            if not isinstance(item, list):
                raise SchemaCodecError(f"Repeated field {field.name} expects a list")
            if not item:
                continue
            if field.packable:
                payload = b"".join(self._write_value(field, element) for element in item)
                out += _encode_key(field.number, WIRE_LENGTH_DELIMITED)
                out += _encode_varint(len(payload)) + payload
            else:
                for element in item:
                    out += _encode_key(field.number, field.wire_type)
                    out += self._write_value(field, element)

        return bytes(out)

    def _write_value(self, field: ResolvedField, value: Any) -> bytes:
        if field.message is not None:
            payload = self._encode_message(self._message(field.message), value)
            return _encode_varint(len(payload)) + payload

        if field.enum is not None:
            return _encode_varint(field.enum.number_of(value))

        scalar = field.scalar
        if scalar == "string":
            if not isinstance(value, str):
                raise SchemaCodecError(f"Field {field.name} expects a string")
            payload = value.encode("utf-8")
            return _encode_varint(len(payload)) + payload
        if scalar == "bytes":
            payload = _bytes_value(field.name, value)
            return _encode_varint(len(payload)) + payload
        if scalar == "bool":
            if not isinstance(value, bool):
                raise SchemaCodecError(f"Field {field.name} expects a bool")
            return _encode_varint(int(value))
        if scalar in ("float", "double"):
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise SchemaCodecError(f"Field {field.name} expects a number")
            return struct.pack(FIXED_FORMATS[scalar], value)

        number = _integer_value(field.name, scalar, value)
        if scalar in FIXED_FORMATS:
            return struct.pack(FIXED_FORMATS[scalar], number)
        if scalar in ("sint32", "sint64"):
            return _encode_varint(_zigzag_encode(number))
        return _encode_varint(number)


def _bytes_value(name: str, value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str) and value.startswith("0x"):
        try:
            return bytes.fromhex(value[2:])
        except ValueError as e:
            raise SchemaCodecError(f"Field {name} holds malformed hex") from e
    raise SchemaCodecError(f"Field {name} expects bytes or 0x-hex")


def _integer_value(name: str, scalar: str | None, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SchemaCodecError(f"Field {name} expects an integer, got {value!r}")
    low, high = INTEGER_RANGES[scalar or ""]
    if not low <= value <= high:
        raise SchemaCodecError(f"Field {name} value {value} out of range for {scalar}")
    return value


def _collect_types(
    node: SchemaNode,
    prefix: str,
    messages: dict[str, dict[str, FieldSpec]],
    enums: dict[str, EnumType],
) -> None:
    if node.message_fields is not None:
        messages[prefix] = node.message_fields
    elif node.enum_values is not None:
        enums[prefix] = EnumType(name=prefix, values=dict(node.enum_values))

    for name, child in (node.nested or {}).items():
        _collect_types(child, f"{prefix}.{name}" if prefix else name, messages, enums)


def _resolve_field(
    scope: str,
    name: str,
    spec: FieldSpec,
    messages: dict[str, dict[str, FieldSpec]],
    enums: dict[str, EnumType],
) -> ResolvedField:
    if spec.key_type is not None:
        raise SchemaCodecError(f"Map field {scope}.{name} is not supported")

    if spec.type in SCALAR_WIRE_TYPES:
        return ResolvedField(name=name, number=spec.id, rule=spec.rule, scalar=spec.type)

    if spec.type.startswith("."):
        candidates = [spec.type[1:]]
    else:
        parts = scope.split(".")
        candidates = [".".join(parts[:i] + [spec.type]) for i in range(len(parts), -1, -1)]

    for candidate in candidates:
        if candidate in enums:
            return ResolvedField(name=name, number=spec.id, rule=spec.rule, enum=enums[candidate])
        if candidate in messages:
            return ResolvedField(name=name, number=spec.id, rule=spec.rule, message=candidate)

    raise SchemaCodecError(f"Unknown type {spec.type!r} for field {scope}.{name}")


def parse_schema(descriptor: str | dict[str, Any]) -> SchemaDocument:
    """Parse a schema document. See SchemaDocument.parse."""
    return SchemaDocument.parse(descriptor)


def decode(descriptor: str | dict[str, Any], message_type: str, data: bytes) -> dict[str, Any]:
    """Decode data as message_type of the given schema document."""
    return parse_schema(descriptor).decode(message_type, data)


def encode(descriptor: str | dict[str, Any], message_type: str, value: dict[str, Any]) -> bytes:
    """Encode value as message_type of the given schema document."""
    return parse_schema(descriptor).encode(message_type, value)
