"""Explain why a bundle missed its block by replaying the bundles that landed in it."""

import asyncio
import dataclasses
import logging
from typing import List, Optional, Sequence

from .errors import ConflictAnalysisError, CouldNotDecodeSignedTransaction
from .models import ConflictReport, ConflictType, RelayError, SimulatedTransaction
from .pricing import calculate_bundle_pricing
from .transactions import serialize_signed_transaction

logger = logging.getLogger(__name__)

NONCE_TOO_LOW = "nonce too low"


def _first_divergence(baseline: Sequence[SimulatedTransaction], replayed: Sequence[SimulatedTransaction]) -> Optional[ConflictType]:
    for initial_tx, replayed_tx in zip(baseline, replayed):
        initial_failed = initial_tx.error is not None
        replayed_failed = replayed_tx.error is not None
        if initial_failed or replayed_failed:
            if initial_failed != replayed_failed:
                return ConflictType.ERROR
            continue
        if replayed_tx.eth_sent_to_coinbase != initial_tx.eth_sent_to_coinbase:
            return ConflictType.COINBASE_PAYMENT
        if replayed_tx.gas_used != initial_tx.gas_used:
            return ConflictType.GAS_USED
    return None


class ConflictAnalyzer:
    def __init__(self, relay, chain, blocks_api):
        self.relay = relay
        self.chain = chain
        self.blocks_api = blocks_api

    async def get_conflicting_bundle(self, target_signed: Sequence[str], target_block: int) -> ConflictReport:
        base_fee = await self.chain.base_fee(target_block)
        report = await self.get_conflicting_bundle_without_gas_pricing(target_signed, target_block)
        conflicting_pricing = None
        if report.conflicting_bundle:
            conflicting_pricing = calculate_bundle_pricing(report.conflicting_bundle, base_fee)
        return dataclasses.replace(
            report,
            target_bundle_gas_pricing=calculate_bundle_pricing(report.initial_simulation.results, base_fee),
            conflicting_bundle_gas_pricing=conflicting_pricing,
        )

    async def get_conflicting_bundle_without_gas_pricing(self, target_signed: Sequence[str], target_block: int) -> ConflictReport:
        target_signed = list(target_signed)
        if not target_signed:
            raise ConflictAnalysisError("Target bundle is empty")

        simulating = asyncio.ensure_future(self.relay.simulate(target_signed, target_block, target_block - 1))
        try:
            competing = await self.blocks_api.fetch_block(target_block)
            initial_simulation = await simulating
        finally:
            if not simulating.done():
                simulating.cancel()
        if competing.latest_block_number <= target_block:
            raise ConflictAnalysisError(
                f"Blocks index is at block {competing.latest_block_number}, has not processed target block {target_block}"
            )
        if isinstance(initial_simulation, RelayError):
            raise ConflictAnalysisError(f"Target bundle simulation failed: {initial_simulation.message}")
        if initial_simulation.first_revert is not None:
            raise ConflictAnalysisError("Target bundle errors at top of block")

        if not competing.blocks or not competing.blocks[0].transactions:
            return ConflictReport(ConflictType.NO_BUNDLES_IN_BLOCK, initial_simulation)

        block_transactions = competing.blocks[0].transactions
        bundle_count = block_transactions[-1].bundle_index + 1
        prior_transactions: List[str] = []

        for bundle_index in range(bundle_count):
            bundle = tuple(tx for tx in block_transactions if tx.bundle_index == bundle_index)
            prior_transactions.extend(
                await asyncio.gather(*(self._raw_transaction(tx.transaction_hash) for tx in bundle))
            )
            simulation = await self.relay.simulate(prior_transactions + target_signed, target_block, target_block - 1)

            if isinstance(simulation, RelayError):
                if NONCE_TOO_LOW in simulation.message:
                    logger.info(f"Bundle {bundle_index} of block {target_block} uses the same nonce")
                    return ConflictReport(ConflictType.NONCE_COLLISION, initial_simulation, bundle)
                raise ConflictAnalysisError(f"Simulation error: {simulation.message}")

            target_results = simulation.results[-len(target_signed):]
            conflict_type = _first_divergence(initial_simulation.results, target_results)
            if conflict_type is not None:
                logger.info(f"Bundle {bundle_index} of block {target_block} conflicts: {conflict_type.name}")
                return ConflictReport(conflict_type, initial_simulation, bundle)

        return ConflictReport(ConflictType.NO_CONFLICT, initial_simulation)

    async def _raw_transaction(self, tx_hash: str) -> str:
        transaction = await self.chain.get_transaction(tx_hash)
        if transaction is None:
            raise ConflictAnalysisError(f"Could not get raw tx {tx_hash}")
        try:
            return serialize_signed_transaction(transaction)
        except CouldNotDecodeSignedTransaction as e:
            raise ConflictAnalysisError(f"Could not get raw tx {tx_hash}: {e}")
