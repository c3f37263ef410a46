import json
from pathlib import Path
from typing import Any

import pytest
import respx

from fake_node import IPFS_JSON, RPC_URL, FakeNode


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def mocked_node(node: FakeNode):
    """The fake node answering every POST to RPC_URL."""
    with respx.mock(assert_all_called=False) as mock:
        mock.post(RPC_URL).mock(side_effect=node.handle)
        yield node


@pytest.fixture
def schema_json() -> str:
    """The NFTMeta schema document as stored on chain (compact JSON)."""
    path = Path(__file__).parent / "fixtures" / "nft_meta_schema.json"
    return json.dumps(json.loads(path.read_text()), separators=(",", ":"))


@pytest.fixture
def example_data() -> dict[str, Any]:
    return {"ipfsJson": IPFS_JSON, "gender": 0, "traits": []}
