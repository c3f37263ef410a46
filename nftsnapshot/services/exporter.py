"""
Collection exporter.

Composes the snapshot and enumeration services under one pinned block and
optionally persists the result as two JSON documents per collection:

    <output_dir>/export_collection_<id>.json   CollectionData
    <output_dir>/export_tokens_<id>.json       [TokenData, ...] in token id order

Both files are staged as temp files in the output directory and only
renamed into place once both are fully written, so a failed or cancelled
export never leaves a readable partial file behind.
"""

import contextlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nftsnapshot.clients.unique_rpc import UniqueRpcClient
from nftsnapshot.config import settings
from nftsnapshot.models.collection import CollectionData
from nftsnapshot.models.failure import ExportWriteError
from nftsnapshot.models.token import TokenData
from nftsnapshot.services.collection_snapshot import CollectionSnapshotter
from nftsnapshot.services.schema_decoder import SchemaDecoder
from nftsnapshot.services.token_enumerator import TokenEnumerator

COLLECTION_FILENAME = "export_collection_{collection_id}.json"
TOKENS_FILENAME = "export_tokens_{collection_id}.json"


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Outcome of one export call."""

    collection_data: CollectionData
    tokens: list[TokenData]
    collection_path: Path | None = None
    tokens_path: Path | None = None

    @property
    def written(self) -> bool:
        return self.collection_path is not None


def _dump(payload: Any, pretty: bool) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2 if pretty else None)


def _current_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return umask


def _rollback(replaced: list[tuple[Path, str | None]]) -> None:
    """Put back whatever the targets held before this write."""
    for target, backup in reversed(replaced):
        if backup is None:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(target)
        else:
            os.replace(backup, target)


def write_json_files(documents: dict[Path, Any], *, pretty: bool = True) -> None:
    """
    Write several JSON documents, all or nothing.

    Every document is written to a temp file next to its target first.
    Targets are then swapped in one by one, each previous file moved
    aside as a backup; if any swap fails, the targets already swapped are
    restored from their backups (or removed, when they did not exist).

    Files get the usual 0o666 & ~umask mode rather than the private mode
    of temp files.

    Raises:
        ExportWriteError: If any document cannot be written. Every target is
            left as it was and temp files are removed.
    """
    mode = 0o666 & ~_current_umask()
    staged: list[tuple[str, Path]] = []
    replaced: list[tuple[Path, str | None]] = []
    current: Path | None = None
    try:
        for current, payload in documents.items():
            current.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=current.parent, prefix=f".{current.name}.", suffix=".tmp"
            )
            staged.append((tmp_name, current))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                os.fchmod(f.fileno(), mode)
                f.write(_dump(payload, pretty))
                f.flush()
                os.fsync(f.fileno())

        for tmp_name, current in staged:
            backup = None
            if current.exists():
                backup = f"{tmp_name}.bak"
                os.replace(current, backup)
            replaced.append((current, backup))
            os.replace(tmp_name, current)
    except OSError as e:
        _rollback(replaced)
        raise ExportWriteError(current, str(e)) from e
    finally:
        for tmp_name, _ in staged:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)

    for _, backup in replaced:
        if backup is not None:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(backup)


def load_collection_file(path: Path) -> CollectionData:
    """Read a collection export back into CollectionData."""
    with open(path, encoding="utf-8") as f:
        return CollectionData.from_dict(json.load(f))


def load_tokens_file(path: Path) -> list[TokenData]:
    """Read a tokens export back into TokenData, preserving order."""
    with open(path, encoding="utf-8") as f:
        return [TokenData.from_dict(item) for item in json.load(f)]


class Exporter:
    """
    Read-only, point-in-time view of collections on one chain.

    The block hash is bound at construction and never changes; None means
    every call reads the node's current state. Two exporters with different
    hashes are independent views of the same chain.
    """

    def __init__(
        self,
        chain: UniqueRpcClient,
        decoder: SchemaDecoder,
        output_dir: Path | str,
        logger: logging.Logger | None = None,
        block_hash: str | None = None,
        *,
        max_concurrency: int | None = None,
        pretty: bool | None = None,
    ) -> None:
        self.chain = chain
        self.decoder = decoder
        self.output_dir = Path(output_dir)
        self.logger = logger or logging.getLogger(__name__)
        self._block_hash = block_hash
        self.pretty = settings.pretty_json if pretty is None else pretty
        self._max_concurrency = max_concurrency

        self.snapshotter = CollectionSnapshotter(chain, self.logger)
        self.enumerator = TokenEnumerator(
            chain, decoder, max_concurrency=max_concurrency, logger=self.logger
        )

    @property
    def block_hash(self) -> str | None:
        return self._block_hash

    async def at_block(self, block_number: int) -> "Exporter":
        """A new exporter pinned to the given block number."""
        block_hash = await self.chain.block_number_to_hash(block_number)
        self.logger.info("Pinned block %d -> %s", block_number, block_hash)
        return Exporter(
            self.chain,
            self.decoder,
            self.output_dir,
            self.logger,
            block_hash,
            max_concurrency=self._max_concurrency,
            pretty=self.pretty,
        )

    def get_collection_filename(self, collection_id: int) -> Path:
        return self.output_dir / COLLECTION_FILENAME.format(collection_id=collection_id)

    def get_tokens_filename(self, collection_id: int) -> Path:
        return self.output_dir / TOKENS_FILENAME.format(collection_id=collection_id)

    async def gen_collection_data(self, collection_id: int) -> CollectionData:
        """Snapshot a collection at the pinned block."""
        self.logger.info(
            "Reading collection %d at %s", collection_id, self._block_hash or "latest block"
        )
        return await self.snapshotter.fetch(collection_id, self._block_hash)

    async def get_all_tokens(self, collection_data: CollectionData) -> list[TokenData]:
        """All existing tokens of a collection snapshot, at the pinned block."""
        return await self.enumerator.enumerate(collection_data, self._block_hash)

    async def export(self, collection_id: int, write_files: bool = False) -> ExportResult:
        """
        Snapshot a collection and all its tokens.

        Args:
            collection_id: Collection to export
            write_files: Persist both documents under output_dir

        Returns:
            ExportResult with the in-memory entities and, if written, the paths

        Raises:
            CollectionNotFoundError: If the collection does not exist at the block
            UnsupportedSchemaError: If the collection schema cannot be decoded
            ExportWriteError: If persisting fails (no file is replaced)
        """
        collection_data = await self.gen_collection_data(collection_id)
        tokens = await self.get_all_tokens(collection_data)

        if not write_files:
            return ExportResult(collection_data=collection_data, tokens=tokens)

        collection_path = self.get_collection_filename(collection_id)
        tokens_path = self.get_tokens_filename(collection_id)
        write_json_files(
            {
                collection_path: collection_data.to_dict(),
                tokens_path: [token.to_dict() for token in tokens],
            },
            pretty=self.pretty,
        )
        self.logger.info("Wrote %s and %s", collection_path, tokens_path)

        return ExportResult(
            collection_data=collection_data,
            tokens=tokens,
            collection_path=collection_path,
            tokens_path=tokens_path,
        )
