import asyncio
import logging

import pytest

from fake_node import ALICE, BOB, CHAIN_SS58_FORMAT, IPFS_JSON, RPC_URL, FakeNode
from nftsnapshot.clients.unique_rpc import TokenPayload, UniqueRpcClient
from nftsnapshot.models.collection import CollectionData
from nftsnapshot.models.failure import ChainUnavailableError, UnsupportedSchemaError
from nftsnapshot.parsers.address import AddressNormalizer, to_ss58
from nftsnapshot.services.collection_snapshot import CollectionSnapshotter
from nftsnapshot.services.schema_decoder import SchemaDecoder
from nftsnapshot.services.token_enumerator import TokenEnumerator


class ScriptedChain:
    """Chain stand-in with per-token delays and failures."""

    def __init__(
        self,
        owners: dict[int, dict[str, str] | None],
        delays: dict[int, float] | None = None,
        fail_on: int | None = None,
    ) -> None:
        self.owners = owners
        self.delays = delays or {}
        self.fail_on = fail_on
        self.started: list[int] = []
        self.cancelled: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.max_tasks = 0

    async def address_normalizer(self) -> AddressNormalizer:
        return AddressNormalizer(CHAIN_SS58_FORMAT)

    async def get_token_owner(
        self, collection_id: int, token_id: int, block_hash: str | None = None
    ) -> dict[str, str] | None:
        self.started.append(token_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.max_tasks = max(self.max_tasks, len(asyncio.all_tasks()))
        try:
            await asyncio.sleep(self.delays.get(token_id, 0))
            if token_id == self.fail_on:
                raise ChainUnavailableError(f"token {token_id} read failed")
        except asyncio.CancelledError:
            self.cancelled.append(token_id)
            raise
        finally:
            self.in_flight -= 1
        return self.owners.get(token_id)

    async def get_token_data(
        self, collection_id: int, token_id: int, block_hash: str | None = None
    ) -> TokenPayload:
        return TokenPayload(const_data=b"", variable_data=f"token {token_id}".encode())


def make_collection(
    tokens_count: int, schema_version: str = "ImageURL", descriptor: str = ""
) -> CollectionData:
    raw = {
        "owner": to_ss58(ALICE, CHAIN_SS58_FORMAT),
        "name": [],
        "description": [],
        "schemaVersion": schema_version,
        "constOnChainSchema": descriptor,
    }
    return CollectionData.from_raw(3, raw, tokens_count)


class TestOrdering:
    @pytest.mark.asyncio
    async def test_sorted_by_token_id_regardless_of_completion(self) -> None:
        """Later ids finishing first does not change output order."""
        owners = {i: {"Substrate": ALICE} for i in range(1, 6)}
        delays = {1: 0.05, 2: 0.04, 3: 0.03, 4: 0.02, 5: 0.01}
        chain = ScriptedChain(owners, delays)

        tokens = await TokenEnumerator(chain, SchemaDecoder(), max_concurrency=5).enumerate(
            make_collection(5)
        )

        assert [t.token_id for t in tokens] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_output_independent_of_concurrency(self) -> None:
        owners = {i: {"Substrate": BOB if i % 2 else ALICE} for i in range(1, 9)}
        collection = make_collection(8)

        serial = TokenEnumerator(ScriptedChain(owners), SchemaDecoder(), max_concurrency=1)
        parallel = TokenEnumerator(ScriptedChain(owners), SchemaDecoder(), max_concurrency=8)

        assert await serial.enumerate(collection) == await parallel.enumerate(collection)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        owners = {i: {"Substrate": ALICE} for i in range(1, 21)}
        chain = ScriptedChain(owners, {i: 0.01 for i in range(1, 21)})

        enumerator = TokenEnumerator(chain, SchemaDecoder(), max_concurrency=3)
        await enumerator.enumerate(make_collection(20))

        assert chain.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_task_count_does_not_grow_with_collection(self) -> None:
        """Large collections are walked by a fixed pool of workers."""
        owners = {i: {"Substrate": ALICE} for i in range(1, 201)}
        chain = ScriptedChain(owners)

        enumerator = TokenEnumerator(chain, SchemaDecoder(), max_concurrency=4)
        tokens = await enumerator.enumerate(make_collection(200))

        assert len(tokens) == 200
        # the workers plus the test's own task
        assert chain.max_tasks <= 4 + 1

    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            TokenEnumerator(ScriptedChain({}), SchemaDecoder(), max_concurrency=0)


class TestBurnedTokens:
    @pytest.mark.asyncio
    async def test_gaps_are_skipped(self) -> None:
        """Tokens without an owner are burned and left out."""
        owners = {1: {"Substrate": ALICE}, 2: None, 3: {"Ethereum": "0x" + "CD" * 20}}

        tokens = await TokenEnumerator(ScriptedChain(owners), SchemaDecoder()).enumerate(
            make_collection(3)
        )

        assert [t.token_id for t in tokens] == [1, 3]
        assert tokens[1].owner == {"ethereum": "0x" + "cd" * 20}

    @pytest.mark.asyncio
    async def test_empty_collection(self) -> None:
        chain = ScriptedChain({})

        assert await TokenEnumerator(chain, SchemaDecoder()).enumerate(make_collection(0)) == []
        assert chain.started == []


class TestFailures:
    @pytest.mark.asyncio
    async def test_one_failure_aborts_enumeration(self) -> None:
        """A failing token read cancels the rest and propagates unchanged."""
        owners = {i: {"Substrate": ALICE} for i in range(1, 6)}
        delays = {i: 1.0 for i in range(1, 6)}
        delays[2] = 0
        chain = ScriptedChain(owners, delays, fail_on=2)

        with pytest.raises(ChainUnavailableError, match="token 2"):
            await TokenEnumerator(chain, SchemaDecoder(), max_concurrency=5).enumerate(
                make_collection(5)
            )

        assert sorted(chain.cancelled) == [1, 3, 4, 5]
        assert chain.in_flight == 0

    @pytest.mark.asyncio
    async def test_unsupported_schema_fails_before_reads(self) -> None:
        chain = ScriptedChain({1: {"Substrate": ALICE}})

        with pytest.raises(UnsupportedSchemaError):
            await TokenEnumerator(chain, SchemaDecoder()).enumerate(make_collection(1, "Custom"))

        assert chain.started == []


class TestTokenShape:
    @pytest.mark.asyncio
    async def test_fields_from_node(self, mocked_node: FakeNode, schema_json: str) -> None:
        cid = mocked_node.create_collection(
            ALICE,
            name="punks",
            description="",
            token_prefix="PNK",
            schema_version="Unique",
            const_schema=schema_json,
        )
        const_data = bytes.fromhex("0a48" + IPFS_JSON.encode().hex() + "10011a020001")
        mocked_node.mint(cid, {"Substrate": BOB}, const_data, "bob token")
        mocked_node.mint(cid, {"Substrate": BOB}, b"", "")

        async with UniqueRpcClient(RPC_URL) as chain:
            collection = await CollectionSnapshotter(chain).fetch(cid)
            tokens = await TokenEnumerator(chain, SchemaDecoder()).enumerate(collection)

        first, second = tokens
        assert first.owner == {"substrate": BOB}
        assert first.chain_owner == {"Substrate": to_ss58(BOB, CHAIN_SS58_FORMAT)}
        assert first.const_data == "0x" + const_data.hex()
        assert first.variable_data == "bob token"
        assert first.decoded_const_data == {"ipfsJson": IPFS_JSON, "gender": 1, "traits": [0, 1]}
        assert second.const_data == ""
        assert second.variable_data == ""
        assert second.decoded_const_data is None

    @pytest.mark.asyncio
    async def test_image_url_collection_has_no_decoded_data(self) -> None:
        chain = ScriptedChain({1: {"Substrate": ALICE}})

        (token,) = await TokenEnumerator(chain, SchemaDecoder()).enumerate(make_collection(1))

        assert token.decoded_const_data is None
        assert token.variable_data == "token 1"


class TestSchemaResolution:
    @pytest.mark.asyncio
    async def test_unparseable_schema_warns_once(self, caplog: pytest.LogCaptureFixture) -> None:
        """The schema document is resolved once per enumeration, not per token."""
        owners = {i: {"Substrate": ALICE} for i in range(1, 11)}
        collection = make_collection(10, "Unique", "{broken")

        with caplog.at_level(logging.WARNING):
            tokens = await TokenEnumerator(ScriptedChain(owners), SchemaDecoder()).enumerate(
                collection
            )

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert all(t.decoded_const_data is None for t in tokens)


class TestLogging:
    @pytest.mark.asyncio
    async def test_uses_injected_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        chain = ScriptedChain({1: {"Substrate": ALICE}})
        enumerator = TokenEnumerator(
            chain, SchemaDecoder(), logger=logging.getLogger("nftsnapshot.tests.enumerate")
        )

        with caplog.at_level(logging.INFO):
            await enumerator.enumerate(make_collection(1))

        names = {r.name for r in caplog.records}
        assert names == {"nftsnapshot.tests.enumerate"}
