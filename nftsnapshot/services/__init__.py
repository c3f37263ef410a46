"""
nftsnapshot services.

Snapshot, enumeration and export of NFT collections at a pinned block.
"""

from nftsnapshot.services.collection_snapshot import (
    CollectionSnapshotter,
    read_node_record,
    shape_raw_collection,
)
from nftsnapshot.services.exporter import (
    Exporter,
    ExportResult,
    load_collection_file,
    load_tokens_file,
    write_json_files,
)
from nftsnapshot.services.schema_decoder import SchemaDecoder
from nftsnapshot.services.token_enumerator import TokenEnumerator

__all__ = [
    "CollectionSnapshotter",
    "read_node_record",
    "shape_raw_collection",
    "ExportResult",
    "Exporter",
    "load_collection_file",
    "load_tokens_file",
    "write_json_files",
    "SchemaDecoder",
    "TokenEnumerator",
]
