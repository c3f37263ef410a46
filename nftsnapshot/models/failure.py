"""
Failure classification for snapshot exports.

Every error the export engine raises on purpose is a KnownError subclass
carrying a FailureKind. Transport and node failures are wrapped at the
chain client boundary; nothing below the CLI catches and continues.

Taxonomy:
- CollectionNotFound: no collection at the given id/block
- InvalidAddress: malformed address during normalization
- UnsupportedSchema: collection declares a schema version we cannot read
- SchemaCodec: payload bytes or values do not fit the declared schema
- ChainUnavailable / RpcError: node unreachable or answered with an error
- ExportWriteFailed: persisting an export file failed
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Lookup failures
    COLLECTION_NOT_FOUND = "collection_not_found"

    # Input failures
    INVALID_ADDRESS = "invalid_address"

    # Schema failures
    UNSUPPORTED_SCHEMA = "unsupported_schema"
    SCHEMA_CODEC = "schema_codec"

    # Node failures
    CHAIN_UNAVAILABLE = "chain_unavailable"
    RPC_ERROR = "rpc_error"

    # Persistence failures
    EXPORT_WRITE_FAILED = "export_write_failed"


class FailureDetail(BaseModel):
    """Serializable description of a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="What went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the operator",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class CollectionNotFoundError(KnownError):
    """Raised when the node reports no collection for an id at a block."""

    def __init__(self, collection_id: int, block_hash: str | None = None):
        self.collection_id = collection_id
        self.block_hash = block_hash
        at = f" at block {block_hash}" if block_hash else ""
        super().__init__(
            kind=FailureKind.COLLECTION_NOT_FOUND,
            message=f"Collection {collection_id} not found{at}",
            suggestion="Check the collection id and the pinned block.",
        )


class InvalidAddressError(KnownError, ValueError):
    """Raised when an address cannot be decoded. Never guessed or truncated."""

    def __init__(self, address: object, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(
            kind=FailureKind.INVALID_ADDRESS,
            message=f"Invalid address {address!r}: {reason}",
            detail=reason,
        )


class UnsupportedSchemaError(KnownError):
    """
    Raised when a collection declares a schema version the decoder cannot read.

    Distinct from "no schema", which is a legitimate state and decodes to None.
    """

    def __init__(self, schema_version: object):
        self.schema_version = schema_version
        super().__init__(
            kind=FailureKind.UNSUPPORTED_SCHEMA,
            message=f"Unsupported schema version: {schema_version!r}",
            suggestion="Upgrade the exporter or export without decoding.",
        )


class SchemaCodecError(KnownError, ValueError):
    """Raised when bytes or values do not match a schema document."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.SCHEMA_CODEC,
            message=message,
            detail=detail,
        )


class ChainUnavailableError(KnownError):
    """Raised when the node cannot be reached or answers with a bad HTTP status."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.CHAIN_UNAVAILABLE,
            message=message,
            detail=detail,
            suggestion="Check the RPC endpoint and retry.",
        )


class ChainRpcError(KnownError):
    """Raised when the node returns a JSON-RPC error object."""

    def __init__(self, method: str, code: int | None, message: str):
        self.method = method
        self.code = code
        super().__init__(
            kind=FailureKind.RPC_ERROR,
            message=f"RPC {method} failed: {message}",
            detail=f"code={code}" if code is not None else None,
        )


class ExportWriteError(KnownError):
    """Raised when an export file cannot be written. The target is left untouched."""

    def __init__(self, path: object, reason: str):
        self.path = path
        super().__init__(
            kind=FailureKind.EXPORT_WRITE_FAILED,
            message=f"Failed to write {path}",
            detail=reason,
        )
