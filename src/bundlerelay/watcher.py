import asyncio
import logging
from typing import Dict, Sequence

from web3 import Web3

from .errors import BlockStreamClosed, InclusionTimeout
from .models import BundleResolution, InclusionResult, TransactionAccountNonce, TransactionResolution

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5 * 60


def _normalize_hash(tx_hash) -> str:
    if isinstance(tx_hash, str):
        return tx_hash.lower()
    return Web3.to_hex(tx_hash).lower()


class InclusionWatcher:
    """Resolves bundle and private transaction outcomes from the new-block stream.

    Blocks are handled one at a time. The stream is closed as soon as an
    outcome is known or the timeout fires.
    """

    def __init__(self, chain, timeout=DEFAULT_TIMEOUT):
        self.chain = chain
        self.timeout = timeout

    async def wait_for_bundle(self, bundle_transactions: Sequence[TransactionAccountNonce], target_block: int) -> InclusionResult:
        minimum_nonces: Dict[str, int] = {}
        for tx in bundle_transactions:
            if tx.account not in minimum_nonces or tx.nonce < minimum_nonces[tx.account]:
                minimum_nonces[tx.account] = tx.nonce
        bundle_hashes = [_normalize_hash(tx.hash) for tx in bundle_transactions]

        async def on_block(block_number):
            if block_number < target_block:
                accounts = list(minimum_nonces)
                counts = await asyncio.gather(
                    *(self.chain.get_transaction_count(account, "latest") for account in accounts)
                )
                for account, count in zip(accounts, counts):
                    if minimum_nonces[account] < count:
                        logger.info(f"Nonce of {account} moved to {count} before block {target_block}")
                        return InclusionResult(BundleResolution.ACCOUNT_NONCE_INVALIDATED, block_number)
                return None

            block = await self.chain.get_block(target_block)
            if block is None:
                logger.debug(f"Block {target_block} not served yet")
                return None
            block_hashes = {_normalize_hash(tx_hash) for tx_hash in block["transactions"]}
            if all(tx_hash in block_hashes for tx_hash in bundle_hashes):
                return InclusionResult(BundleResolution.INCLUDED, target_block)
            return InclusionResult(BundleResolution.NOT_INCLUDED_BY_DEADLINE, target_block)

        return await self._watch(on_block, f"bundle targeting block {target_block}")

    async def wait_for_transaction(self, tx_hash: str, max_block_number: int) -> InclusionResult:
        async def on_block(block_number):
            if block_number > max_block_number:
                return InclusionResult(TransactionResolution.DROPPED, block_number)
            transaction = await self.chain.get_transaction(tx_hash)
            if transaction is not None and transaction.get("blockNumber") is not None:
                return InclusionResult(TransactionResolution.INCLUDED, transaction["blockNumber"])
            return None

        return await self._watch(on_block, f"transaction {tx_hash}")

    async def _watch(self, on_block, description):
        blocks = self.chain.subscribe_blocks()
        timeout = self.timeout if self.timeout and self.timeout > 0 else None
        try:
            return await asyncio.wait_for(self._consume(blocks, on_block), timeout)
        except asyncio.TimeoutError:
            raise InclusionTimeout(f"Timed out after {self.timeout}s waiting for {description}")
        finally:
            await blocks.aclose()

    async def _consume(self, blocks, on_block):
        async for block_number in blocks:
            logger.debug(f"New block {block_number}")
            result = await on_block(block_number)
            if result is not None:
                return result
        raise BlockStreamClosed("Block stream ended before an outcome was known")
