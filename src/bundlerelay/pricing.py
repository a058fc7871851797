"""Effective gas pricing of a bundle and base fee projections."""

from typing import Iterable, Tuple

from .models import BlocksApiTransaction, GasPricing, SimulatedTransaction
from .transactions import to_int

BASE_FEE_MAX_CHANGE_DENOMINATOR = 8


def _pricing_fields(tx) -> Tuple[int, int, int]:
    """(gas used, eth sent to coinbase, total miner reward) of one transaction."""
    if isinstance(tx, BlocksApiTransaction):
        return tx.gas_used, tx.coinbase_transfer, tx.total_miner_reward
    if isinstance(tx, SimulatedTransaction):
        return tx.gas_used, tx.eth_sent_to_coinbase, tx.coinbase_diff

    # raw blocks-index rows use snake_case, eth_callBundle results camelCase
    gas_used = tx["gas_used"] if "gas_used" in tx else tx.get("gasUsed", 0)
    if "coinbase_transfer" in tx:
        eth_sent_to_coinbase = tx["coinbase_transfer"]
    else:
        eth_sent_to_coinbase = tx.get("ethSentToCoinbase", 0)
    if "total_miner_reward" in tx:
        total_miner_reward = tx["total_miner_reward"]
    else:
        total_miner_reward = tx.get("coinbaseDiff", 0)
    return to_int(gas_used), to_int(eth_sent_to_coinbase), to_int(total_miner_reward)


def calculate_bundle_pricing(transactions: Iterable, base_fee: int) -> GasPricing:
    base_fee = to_int(base_fee)
    tx_count = 0
    gas_used = 0
    gas_fees_paid_by_searcher = 0
    priority_fees_received_by_miner = 0
    eth_sent_to_coinbase = 0

    for tx in transactions:
        tx_gas_used, tx_eth_sent_to_coinbase, tx_total_miner_reward = _pricing_fields(tx)
        priority_fee = tx_total_miner_reward - tx_eth_sent_to_coinbase
        tx_count += 1
        gas_used += tx_gas_used
        gas_fees_paid_by_searcher += base_fee * tx_gas_used + priority_fee
        priority_fees_received_by_miner += priority_fee
        eth_sent_to_coinbase += tx_eth_sent_to_coinbase

    if gas_used > 0:
        effective_gas_price_to_searcher = (eth_sent_to_coinbase + gas_fees_paid_by_searcher) // gas_used
        effective_priority_fee_to_miner = (eth_sent_to_coinbase + priority_fees_received_by_miner) // gas_used
    else:
        effective_gas_price_to_searcher = 0
        effective_priority_fee_to_miner = 0

    return GasPricing(
        tx_count=tx_count,
        gas_used=gas_used,
        gas_fees_paid_by_searcher=gas_fees_paid_by_searcher,
        priority_fees_received_by_miner=priority_fees_received_by_miner,
        eth_sent_to_coinbase=eth_sent_to_coinbase,
        effective_gas_price_to_searcher=effective_gas_price_to_searcher,
        effective_priority_fee_to_miner=effective_priority_fee_to_miner,
    )


def get_max_base_fee_in_future_block(base_fee: int, blocks_in_future: int) -> int:
    """Upper bound of the base fee ``blocks_in_future`` blocks ahead (12.5% growth per full block)."""
    max_base_fee = to_int(base_fee)
    for _ in range(blocks_in_future):
        max_base_fee = max_base_fee * 1125 // 1000 + 1
    return max_base_fee


def get_base_fee_in_next_block(base_fee: int, gas_used: int, gas_limit: int) -> int:
    base_fee = to_int(base_fee)
    gas_used = to_int(gas_used)
    gas_target = to_int(gas_limit) // 2
    if gas_used == gas_target or gas_target == 0:
        return base_fee
    if gas_used > gas_target:
        delta = base_fee * (gas_used - gas_target) // gas_target // BASE_FEE_MAX_CHANGE_DENOMINATOR
        return base_fee + delta
    delta = base_fee * (gas_target - gas_used) // gas_target // BASE_FEE_MAX_CHANGE_DENOMINATOR
    return base_fee - delta
