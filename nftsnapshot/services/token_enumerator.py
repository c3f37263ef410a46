"""
Token enumeration service.

Walks token ids 1..tokensCount of a collection snapshot and reads each
token's owner and payloads at the same block as the snapshot. Tokens whose
owner lookup is empty (burned) are left out.

A fixed pool of max_concurrency workers pulls token ids from one shared
iterator, so memory does not grow with the collection size. The result is
always sorted by token id. Any failure aborts the whole enumeration: the
other workers are cancelled and the first exception propagates unchanged.
"""

import asyncio
import logging
from collections.abc import Iterator

from nftsnapshot.clients.unique_rpc import UniqueRpcClient
from nftsnapshot.config import settings
from nftsnapshot.models.account import CrossAccountId
from nftsnapshot.models.collection import CollectionData
from nftsnapshot.models.token import TokenData
from nftsnapshot.parsers.address import AddressNormalizer
from nftsnapshot.parsers.chain_values import bytes_to_hex, bytes_to_text
from nftsnapshot.parsers.schema import SchemaDocument
from nftsnapshot.services.schema_decoder import SchemaDecoder


class TokenEnumerator:
    """Produces the ordered TokenData sequence of a collection snapshot."""

    def __init__(
        self,
        chain: UniqueRpcClient,
        decoder: SchemaDecoder,
        *,
        max_concurrency: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_concurrency is None:
            max_concurrency = settings.max_concurrency
        if max_concurrency < 1:
            raise ValueError(f"Invalid max_concurrency: {max_concurrency}. Must be at least 1")
        self.chain = chain
        self.decoder = decoder
        self.max_concurrency = max_concurrency
        self.logger = logger or logging.getLogger(__name__)

    async def enumerate(
        self, collection: CollectionData, block_hash: str | None = None
    ) -> list[TokenData]:
        """
        Read every existing token of a collection.

        Args:
            collection: Snapshot whose tokens_count bounds the walk and whose
                raw schema fields drive decoding
            block_hash: Block to read at; must be the snapshot's block

        Returns:
            Tokens in ascending token id order, burned tokens omitted

        Raises:
            UnsupportedSchemaError: If the collection's schema version is
                unsupported (raised before any token is read)
        """
        document = self.decoder.document(
            collection.schema_version, collection.const_on_chain_schema
        )
        normalizer = await self.chain.address_normalizer()

        self.logger.info(
            "Enumerating %d token ids of collection %d", collection.tokens_count, collection.id
        )

        token_ids = iter(range(1, collection.tokens_count + 1))
        tokens: list[TokenData] = []

        async def worker(ids: Iterator[int]) -> None:
            for token_id in ids:
                token = await self._fetch_token(
                    collection, token_id, block_hash, normalizer, document
                )
                if token is not None:
                    tokens.append(token)

        workers = [
            asyncio.create_task(worker(token_ids))
            for _ in range(min(self.max_concurrency, collection.tokens_count))
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        tokens.sort(key=lambda t: t.token_id)
        self.logger.info(
            "Collection %d: %d tokens, %d burned",
            collection.id,
            len(tokens),
            collection.tokens_count - len(tokens),
        )
        return tokens

    async def _fetch_token(
        self,
        collection: CollectionData,
        token_id: int,
        block_hash: str | None,
        normalizer: AddressNormalizer,
        document: SchemaDocument | None,
    ) -> TokenData | None:
        owner = await self.chain.get_token_owner(collection.id, token_id, block_hash)
        if owner is None:
            self.logger.debug("Token %d/%d has no owner, skipping", collection.id, token_id)
            return None

        account = CrossAccountId.parse(owner)
        payload = await self.chain.get_token_data(collection.id, token_id, block_hash)

        return TokenData(
            token_id=token_id,
            owner=account.to_normalized(),
            chain_owner=account.to_chain(normalizer),
            const_data=bytes_to_hex(payload.const_data),
            variable_data=bytes_to_text(payload.variable_data),
            decoded_const_data=self.decoder.decode_payload(document, payload.const_data),
        )
