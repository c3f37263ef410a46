"""
Export NFT collections to JSON snapshots.

Usage:
    python -m nftsnapshot.jobs.export_collection --collection-id 12 \\
        --rpc-url http://127.0.0.1:9933 --block-number 123456
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from nftsnapshot.clients.unique_rpc import UniqueRpcClient
from nftsnapshot.config import settings
from nftsnapshot.models.failure import KnownError
from nftsnapshot.services.exporter import Exporter
from nftsnapshot.services.schema_decoder import SchemaDecoder

logger = logging.getLogger(__name__)


async def run_export(
    collection_ids: list[int],
    *,
    rpc_url: str,
    output_dir: Path,
    block_number: int | None = None,
    block_hash: str | None = None,
    write_files: bool = True,
) -> list[dict[str, Any]]:
    """
    Export collections at one block.

    When neither block_number nor block_hash is given, the latest block is
    resolved once up front so every collection in the run is read at the
    same state.

    Returns:
        One summary dict per collection, in the order given
    """
    summaries: list[dict[str, Any]] = []

    async with UniqueRpcClient(
        rpc_url, timeout=settings.request_timeout, ss58_format=settings.ss58_format
    ) as chain:
        if block_hash is None:
            if block_number is None:
                block_number = await chain.latest_block_number()
            block_hash = await chain.block_number_to_hash(block_number)

        exporter = Exporter(chain, SchemaDecoder(), output_dir, logger, block_hash)

        for collection_id in collection_ids:
            result = await exporter.export(collection_id, write_files)
            summaries.append(
                {
                    "collectionId": collection_id,
                    "blockHash": block_hash,
                    "tokens": len(result.tokens),
                    "collectionFile": str(result.collection_path) if result.written else None,
                    "tokensFile": str(result.tokens_path) if result.written else None,
                }
            )

    return summaries


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Export NFT collections to JSON snapshots")
    parser.add_argument(
        "--collection-id",
        type=int,
        nargs="+",
        required=True,
        help="Collection ids to export",
    )
    parser.add_argument(
        "--rpc-url",
        default=settings.rpc_url,
        help=f"Node JSON-RPC endpoint (default: {settings.rpc_url})",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=settings.output_dir,
        help=f"Directory for export files (default: {settings.output_dir})",
    )
    pin = parser.add_mutually_exclusive_group()
    pin.add_argument("--block-number", type=int, help="Read state at this block number")
    pin.add_argument("--block-hash", help="Read state at this block hash")
    parser.add_argument(
        "--no-write",
        action="store_true",
        help="Read and decode only, do not write files",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and errors",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        summaries = asyncio.run(
            run_export(
                args.collection_id,
                rpc_url=args.rpc_url,
                output_dir=args.output_dir,
                block_number=args.block_number,
                block_hash=args.block_hash,
                write_files=not args.no_write,
            )
        )
    except KnownError as e:
        logger.error("Export failed: %s", e.message)
        print(e.to_detail().model_dump_json(), file=sys.stderr)
        return 1

    for summary in summaries:
        print(json.dumps(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
