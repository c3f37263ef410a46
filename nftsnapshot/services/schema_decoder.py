"""
Schema decoder service.

Decides, from a collection's declared schema version and schema document,
whether and how token constant data is decoded:

- "ImageURL", or an empty document: the collection has no on-chain
  schema. Decoding yields None. This is a normal state, not an error.
- "Unique": the document is a protobuf schema; payloads are decoded with
  it. A document that cannot be parsed yields None with a warning.
- anything else: UnsupportedSchemaError. We never guess a layout.
"""

import logging
from functools import lru_cache
from typing import Any

from nftsnapshot.config import SCHEMA_VERSION_IMAGE_URL, SCHEMA_VERSION_UNIQUE, settings
from nftsnapshot.models.failure import SchemaCodecError, UnsupportedSchemaError
from nftsnapshot.parsers.schema import SchemaDocument

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSIONS = frozenset({SCHEMA_VERSION_IMAGE_URL, SCHEMA_VERSION_UNIQUE})


@lru_cache(maxsize=64)
def _parse_document(descriptor: str) -> SchemaDocument:
    return SchemaDocument.parse(descriptor)


class SchemaDecoder:
    """
    Decodes token constant data against a collection's schema.

    decode() is a pure function of (schema_version, descriptor, data).
    """

    def __init__(self, message_type: str | None = None) -> None:
        self.message_type = message_type or settings.schema_message_type

    def check(self, schema_version: str | None) -> None:
        """
        Reject schema versions we cannot interpret.

        Raises:
            UnsupportedSchemaError: If the version is set and not supported
        """
        if schema_version and schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise UnsupportedSchemaError(schema_version)

    def document(
        self, schema_version: str | None, descriptor: str | None
    ) -> SchemaDocument | None:
        """
        The parsed schema document, or None when there is no usable schema.

        Raises:
            UnsupportedSchemaError: If the version is not supported
        """
        self.check(schema_version)
        if schema_version != SCHEMA_VERSION_UNIQUE or not descriptor:
            return None

        try:
            document = _parse_document(descriptor)
        except SchemaCodecError as e:
            logger.warning("Ignoring unparseable schema document: %s", e.message)
            return None

        if not document.has_message(self.message_type):
            logger.warning("Schema document has no message type %s", self.message_type)
            return None
        return document

    def decode(
        self, schema_version: str | None, descriptor: str | None, data: bytes
    ) -> dict[str, Any] | None:
        """
        Decode constant data.

        Args:
            schema_version: The collection's declared schema version
            descriptor: The collection's constOnChainSchema document
            data: The token's constant data bytes

        Returns:
            Decoded fields, or None when the collection has no schema or the
            token has no constant data

        Raises:
            UnsupportedSchemaError: If the schema version is not supported
            SchemaCodecError: If data is not a valid encoding under the schema
        """
        return self.decode_payload(self.document(schema_version, descriptor), data)

    def decode_payload(
        self, document: SchemaDocument | None, data: bytes
    ) -> dict[str, Any] | None:
        """
        Decode constant data with an already resolved document (see document()).

        Raises:
            SchemaCodecError: If data is not a valid encoding under the schema
        """
        if document is None or not data:
            return None
        return document.decode(self.message_type, data)

    def encode(self, descriptor: str, value: dict[str, Any]) -> bytes:
        """
        Encode a value with a schema document; the inverse of decode().

        Raises:
            SchemaCodecError: If the document or value is invalid
        """
        return _parse_document(descriptor).encode(self.message_type, value)
