# account and collection import parsers, which import failure; keep them out
# of the package namespace to avoid an import cycle.
from nftsnapshot.models.failure import (
    ChainRpcError,
    ChainUnavailableError,
    CollectionNotFoundError,
    ExportWriteError,
    FailureDetail,
    FailureKind,
    InvalidAddressError,
    KnownError,
    SchemaCodecError,
    UnsupportedSchemaError,
)
from nftsnapshot.models.token import TokenData

__all__ = [
    "ChainRpcError",
    "ChainUnavailableError",
    "CollectionNotFoundError",
    "ExportWriteError",
    "FailureDetail",
    "FailureKind",
    "InvalidAddressError",
    "KnownError",
    "SchemaCodecError",
    "TokenData",
    "UnsupportedSchemaError",
]
