"""Data model shared by the signer, relay client, watcher and conflict analyzer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .transactions import to_int


class BundleResolution(Enum):
    INCLUDED = "included"
    NOT_INCLUDED_BY_DEADLINE = "not_included_by_deadline"
    ACCOUNT_NONCE_INVALIDATED = "account_nonce_invalidated"


class TransactionResolution(Enum):
    INCLUDED = "included"
    DROPPED = "dropped"


class ConflictType(Enum):
    NO_CONFLICT = "no_conflict"
    NONCE_COLLISION = "nonce_collision"
    ERROR = "error"
    COINBASE_PAYMENT = "coinbase_payment"
    GAS_USED = "gas_used"
    NO_BUNDLES_IN_BLOCK = "no_bundles_in_block"


@dataclass(frozen=True)
class RawLeg:
    signed_transaction: str


@dataclass
class UnsignedLeg:
    transaction: Dict[str, Any]
    signer: Any


@dataclass(frozen=True)
class RelayOptions:
    min_timestamp: Optional[int] = None
    max_timestamp: Optional[int] = None
    reverting_tx_hashes: Optional[List[str]] = None
    replacement_uuid: Optional[str] = None


@dataclass(frozen=True)
class RelayError:
    """Error envelope returned by a relay. Returned to callers, never raised."""

    message: str
    code: Optional[int] = None

    @staticmethod
    def from_envelope(error) -> "RelayError":
        if isinstance(error, dict):
            return RelayError(message=str(error.get("message", "")), code=error.get("code"))
        return RelayError(message=str(error))


@dataclass(frozen=True)
class TransactionAccountNonce:
    signed_transaction: str
    hash: str
    account: str
    nonce: int


@dataclass(frozen=True)
class InclusionResult:
    resolution: Any
    block_number: Optional[int] = None


@dataclass(frozen=True)
class SimulatedTransaction:
    tx_hash: str
    gas_used: int
    gas_price: int = 0
    gas_fees: int = 0
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    coinbase_diff: int = 0
    eth_sent_to_coinbase: int = 0
    value: Optional[str] = None
    error: Optional[str] = None
    revert: Optional[str] = None

    @property
    def reverted(self) -> bool:
        return self.error is not None or self.revert is not None

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SimulatedTransaction":
        return SimulatedTransaction(
            tx_hash=data.get("txHash", ""),
            gas_used=to_int(data.get("gasUsed", 0)),
            gas_price=to_int(data.get("gasPrice", 0)),
            gas_fees=to_int(data.get("gasFees", 0)),
            from_address=data.get("fromAddress"),
            to_address=data.get("toAddress"),
            coinbase_diff=to_int(data.get("coinbaseDiff", 0)),
            eth_sent_to_coinbase=to_int(data.get("ethSentToCoinbase", 0)),
            value=data.get("value"),
            error=data.get("error"),
            revert=data.get("revert"),
        )


@dataclass(frozen=True)
class BundleSimulation:
    bundle_hash: str
    bundle_gas_price: int
    coinbase_diff: int
    eth_sent_to_coinbase: int
    gas_fees: int
    results: Tuple[SimulatedTransaction, ...]
    total_gas_used: int
    state_block_number: Optional[int] = None
    first_revert: Optional[SimulatedTransaction] = None

    @staticmethod
    def from_result(result: Dict[str, Any]) -> "BundleSimulation":
        results = tuple(SimulatedTransaction.from_dict(item) for item in result.get("results", []))
        first_revert = next((item for item in results if item.reverted), None)
        state_block = result.get("stateBlockNumber")
        return BundleSimulation(
            bundle_hash=result.get("bundleHash", ""),
            bundle_gas_price=to_int(result.get("bundleGasPrice", 0)),
            coinbase_diff=to_int(result.get("coinbaseDiff", 0)),
            eth_sent_to_coinbase=to_int(result.get("ethSentToCoinbase", 0)),
            gas_fees=to_int(result.get("gasFees", 0)),
            results=results,
            total_gas_used=sum(item.gas_used for item in results),
            state_block_number=to_int(state_block) if state_block is not None else None,
            first_revert=first_revert,
        )


@dataclass(frozen=True)
class BlocksApiTransaction:
    transaction_hash: str
    bundle_index: int
    gas_used: int
    coinbase_transfer: int
    total_miner_reward: int
    tx_index: Optional[int] = None
    bundle_type: Optional[str] = None
    block_number: Optional[int] = None
    eoa_address: Optional[str] = None
    to_address: Optional[str] = None
    gas_price: int = 0

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BlocksApiTransaction":
        return BlocksApiTransaction(
            transaction_hash=data["transaction_hash"],
            bundle_index=int(data["bundle_index"]),
            gas_used=to_int(data.get("gas_used", 0)),
            coinbase_transfer=to_int(data.get("coinbase_transfer", 0)),
            total_miner_reward=to_int(data.get("total_miner_reward", 0)),
            tx_index=data.get("tx_index"),
            bundle_type=data.get("bundle_type"),
            block_number=data.get("block_number"),
            eoa_address=data.get("eoa_address"),
            to_address=data.get("to_address"),
            gas_price=to_int(data.get("gas_price", 0)),
        )


@dataclass(frozen=True)
class BlocksApiBlock:
    block_number: int
    transactions: Tuple[BlocksApiTransaction, ...]
    miner: Optional[str] = None
    miner_reward: int = 0
    gas_used: int = 0

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BlocksApiBlock":
        return BlocksApiBlock(
            block_number=int(data["block_number"]),
            transactions=tuple(BlocksApiTransaction.from_dict(tx) for tx in data.get("transactions", [])),
            miner=data.get("miner"),
            miner_reward=to_int(data.get("miner_reward", 0)),
            gas_used=to_int(data.get("gas_used", 0)),
        )


@dataclass(frozen=True)
class BlocksApiResponse:
    latest_block_number: int
    blocks: Tuple[BlocksApiBlock, ...]

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BlocksApiResponse":
        return BlocksApiResponse(
            latest_block_number=int(data["latest_block_number"]),
            blocks=tuple(BlocksApiBlock.from_dict(block) for block in data.get("blocks", [])),
        )


@dataclass(frozen=True)
class GasPricing:
    tx_count: int
    gas_used: int
    gas_fees_paid_by_searcher: int
    priority_fees_received_by_miner: int
    eth_sent_to_coinbase: int
    effective_gas_price_to_searcher: int
    effective_priority_fee_to_miner: int


@dataclass(frozen=True)
class ConflictReport:
    conflict_type: ConflictType
    initial_simulation: BundleSimulation
    conflicting_bundle: Tuple[BlocksApiTransaction, ...] = ()
    target_bundle_gas_pricing: Optional[GasPricing] = None
    conflicting_bundle_gas_pricing: Optional[GasPricing] = None


@dataclass(frozen=True)
class CapturedTransaction:
    kind: str
    shared_address: Optional[str]
    transaction: str
    hash: str = field(default="")
