"""Tests for the export job."""

import json
from pathlib import Path

import pytest

from fake_node import ALICE, BOB, RPC_URL, FakeNode
from nftsnapshot.jobs.export_collection import main, run_export
from nftsnapshot.services.exporter import load_tokens_file


def seed(node: FakeNode) -> int:
    cid = node.create_collection(ALICE, name="jobs", description="", token_prefix="job")
    node.mint(cid, {"Substrate": ALICE}, b"", "first")
    node.mint(cid, {"Substrate": BOB}, b"", "second")
    return cid


class TestRunExport:
    @pytest.mark.asyncio
    async def test_defaults_to_latest_block(self, mocked_node: FakeNode, tmp_path: Path) -> None:
        """Without a block the latest one is resolved once and used for all reads."""
        cid = seed(mocked_node)

        summaries = await run_export([cid], rpc_url=RPC_URL, output_dir=tmp_path)

        assert summaries == [
            {
                "collectionId": cid,
                "blockHash": mocked_node.latest_hash,
                "tokens": 2,
                "collectionFile": str(tmp_path / f"export_collection_{cid}.json"),
                "tokensFile": str(tmp_path / f"export_tokens_{cid}.json"),
            }
        ]
        methods = [method for method, _ in mocked_node.calls]
        assert methods.count("chain_getHeader") == 1

    @pytest.mark.asyncio
    async def test_block_number(self, mocked_node: FakeNode, tmp_path: Path) -> None:
        cid = seed(mocked_node)
        mocked_node.burn(cid, 2)

        summaries = await run_export(
            [cid], rpc_url=RPC_URL, output_dir=tmp_path, block_number=mocked_node.latest_number - 1
        )

        assert summaries[0]["tokens"] == 2
        assert len(load_tokens_file(tmp_path / f"export_tokens_{cid}.json")) == 2

    @pytest.mark.asyncio
    async def test_several_collections_share_a_block(
        self, mocked_node: FakeNode, tmp_path: Path
    ) -> None:
        first = seed(mocked_node)
        second = seed(mocked_node)

        summaries = await run_export(
            [second, first], rpc_url=RPC_URL, output_dir=tmp_path, write_files=False
        )

        assert [s["collectionId"] for s in summaries] == [second, first]
        assert {s["blockHash"] for s in summaries} == {mocked_node.latest_hash}
        assert all(s["collectionFile"] is None for s in summaries)


class TestMain:
    def test_writes_files_and_prints_summary(
        self, mocked_node: FakeNode, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        cid = seed(mocked_node)

        code = main(
            ["--collection-id", str(cid), "--rpc-url", RPC_URL, "--output-dir", str(tmp_path)]
        )

        assert code == 0
        summary = json.loads(capsys.readouterr().out.strip())
        assert summary["tokens"] == 2
        assert Path(summary["tokensFile"]).exists()

    def test_no_write(
        self, mocked_node: FakeNode, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        cid = seed(mocked_node)

        code = main(
            [
                "--collection-id",
                str(cid),
                "--rpc-url",
                RPC_URL,
                "--output-dir",
                str(tmp_path),
                "--no-write",
                "--quiet",
            ]
        )

        assert code == 0
        assert list(tmp_path.iterdir()) == []

    def test_missing_collection_reports_failure(
        self, mocked_node: FakeNode, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Known failures exit 1 with a machine-readable detail on stderr."""
        code = main(
            ["--collection-id", "9", "--rpc-url", RPC_URL, "--output-dir", str(tmp_path)]
        )

        assert code == 1
        detail = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert detail["kind"] == "collection_not_found"
        assert "9" in detail["message"]

    def test_block_options_are_exclusive(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            main(["--collection-id", "1", "--block-number", "3", "--block-hash", "0x00"])
