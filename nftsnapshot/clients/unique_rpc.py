"""
Unique Network node client.

Thin JSON-RPC 2.0 client over HTTP for the reads the exporter needs.
Every state read takes an optional block hash; when given, the node
answers from the state at that block, which is immutable, so repeated
reads are safe.

RPC methods used:
    unique_collectionById, unique_lastTokenId, unique_adminlist,
    unique_tokenOwner, unique_constMetadata, unique_variableMetadata,
    chain_getBlockHash, chain_getHeader, system_properties

Transport retries are not handled here; callers see failures as
ChainUnavailableError / ChainRpcError.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from nftsnapshot.config import GENERIC_SS58_FORMAT
from nftsnapshot.models.failure import ChainRpcError, ChainUnavailableError
from nftsnapshot.parsers.address import AddressNormalizer
from nftsnapshot.parsers.chain_values import as_bytes

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "nftsnapshot/1.0"


@dataclass(frozen=True, slots=True)
class TokenPayload:
    """Raw token payloads as stored on chain."""

    const_data: bytes
    variable_data: bytes


class UniqueRpcClient:
    """
    JSON-RPC client for a Unique Network node.

    Usage:
        async with UniqueRpcClient("http://127.0.0.1:9933") as chain:
            record = await chain.get_collection_by_id(1)
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        ss58_format: int | None = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )
        self._owns_client = client is None
        self._ids = itertools.count(1)
        self._ss58_format = ss58_format
        self._normalizer: AddressNormalizer | None = None

    async def __aenter__(self) -> "UniqueRpcClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """
        Perform one JSON-RPC call and return its result.

        Raises:
            ChainUnavailableError: If the node is unreachable or answers with
                a non-2xx status or a non-JSON body
            ChainRpcError: If the node returns a JSON-RPC error object
        """
        request_id = next(self._ids)
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or []}
        logger.debug("RPC %s %s", method, payload["params"])

        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise ChainUnavailableError(
                f"RPC {method} failed: HTTP {e.response.status_code}", detail=self.url
            ) from e
        except httpx.RequestError as e:
            raise ChainUnavailableError(f"RPC {method} failed: {e}", detail=self.url) from e
        except ValueError as e:
            raise ChainUnavailableError(f"RPC {method} returned invalid JSON", detail=str(e)) from e

        if not isinstance(body, dict):
            raise ChainUnavailableError(f"RPC {method} returned an unexpected body")

        error = body.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise ChainRpcError(method, error.get("code"), str(error.get("message", error)))
            raise ChainRpcError(method, None, str(error))

        return body.get("result")

    @staticmethod
    def _at(params: list[Any], block_hash: str | None) -> list[Any]:
        return [*params, block_hash] if block_hash else params

    # -------------------------------------------------------------------------
    # collection reads
    # -------------------------------------------------------------------------

    async def get_collection_by_id(
        self, collection_id: int, block_hash: str | None = None
    ) -> dict[str, Any] | None:
        """Raw collection record, or None when no such collection exists."""
        result = await self.call("unique_collectionById", self._at([collection_id], block_hash))
        return result or None

    async def get_last_token_id(self, collection_id: int, block_hash: str | None = None) -> int:
        """Highest token id minted in the collection."""
        result = await self.call("unique_lastTokenId", self._at([collection_id], block_hash))
        return int(result or 0)

    async def get_collection_admins(
        self, collection_id: int, block_hash: str | None = None
    ) -> list[dict[str, str]]:
        """Collection admins as cross-account mappings, in chain order."""
        result = await self.call("unique_adminlist", self._at([collection_id], block_hash))
        return list(result or [])

    # -------------------------------------------------------------------------
    # token reads
    # -------------------------------------------------------------------------

    async def get_token_owner(
        self, collection_id: int, token_id: int, block_hash: str | None = None
    ) -> dict[str, str] | None:
        """Token owner as a cross-account mapping, or None for a burned token."""
        result = await self.call(
            "unique_tokenOwner", self._at([collection_id, token_id], block_hash)
        )
        return result or None

    async def get_token_data(
        self, collection_id: int, token_id: int, block_hash: str | None = None
    ) -> TokenPayload:
        """Constant and variable payloads of a token."""
        params = self._at([collection_id, token_id], block_hash)
        const_data = await self.call("unique_constMetadata", params)
        variable_data = await self.call("unique_variableMetadata", params)
        return TokenPayload(const_data=as_bytes(const_data), variable_data=as_bytes(variable_data))

    # -------------------------------------------------------------------------
    # chain reads
    # -------------------------------------------------------------------------

    async def block_number_to_hash(self, block_number: int) -> str:
        """
        Hash of a block by number.

        Raises:
            ChainRpcError: If the node does not know the block
        """
        result = await self.call("chain_getBlockHash", [block_number])
        if not result:
            raise ChainRpcError("chain_getBlockHash", None, f"unknown block {block_number}")
        return str(result)

    async def latest_block_number(self) -> int:
        """Number of the node's current best block."""
        header = await self.call("chain_getHeader", [])
        number = (header or {}).get("number")
        if number is None:
            raise ChainRpcError("chain_getHeader", None, "header has no number")
        return int(number, 16) if isinstance(number, str) else int(number)

    async def get_ss58_format(self) -> int:
        """Chain address prefix; configured value wins, else asked once from the node."""
        if self._ss58_format is None:
            properties = await self.call("system_properties", [])
            self._ss58_format = int((properties or {}).get("ss58Format", GENERIC_SS58_FORMAT))
            logger.info("Node reports ss58 format %d", self._ss58_format)
        return self._ss58_format

    async def address_normalizer(self) -> AddressNormalizer:
        if self._normalizer is None:
            self._normalizer = AddressNormalizer(await self.get_ss58_format())
        return self._normalizer

    async def normalize_address(self, address: str) -> str:
        """Convert an address to the chain's own format."""
        return (await self.address_normalizer()).normalize(address)
