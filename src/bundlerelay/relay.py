"""Client for one bundle relay endpoint."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

import ujson

from .errors import BundleSimulationFailed, TransportError
from .models import BundleSimulation, RelayError, RelayOptions, TransactionAccountNonce, RawLeg
from .signer import BundleSigner
from .transactions import decode_signed_transaction, generate_bundle_hash
from .watcher import InclusionWatcher

logger = logging.getLogger(__name__)

PRIVATE_TRANSACTION_BLOCK_WINDOW = 25


def _block_hex(block_number: int) -> str:
    return hex(block_number)


def _account_nonces(signed_transactions: Sequence[str]) -> Tuple[TransactionAccountNonce, ...]:
    bundle_transactions = []
    for raw in signed_transactions:
        decoded = decode_signed_transaction(raw)
        bundle_transactions.append(TransactionAccountNonce(
            signed_transaction=raw,
            hash=decoded.hash,
            account=decoded.sender,
            nonce=decoded.nonce,
        ))
    return tuple(bundle_transactions)


@dataclass
class BundleSubmission:
    relay: "RelayClient" = field(repr=False)
    bundle_hash: str
    bundle_transactions: Tuple[TransactionAccountNonce, ...]
    target_block: int
    opts: Optional[RelayOptions] = None

    @property
    def signed_transactions(self) -> List[str]:
        return [tx.signed_transaction for tx in self.bundle_transactions]

    async def wait(self):
        return await self.relay.watcher.wait_for_bundle(self.bundle_transactions, self.target_block)

    async def simulate(self):
        timestamp = self.opts.min_timestamp if self.opts else None
        return await self.relay.simulate(self.signed_transactions, self.target_block, timestamp=timestamp)

    async def receipts(self):
        return await self.relay.fetch_receipts(self.bundle_transactions)


@dataclass
class PrivateTransactionSubmission:
    relay: "RelayClient" = field(repr=False)
    transaction: TransactionAccountNonce
    start_block: int
    max_block_number: int
    simulation_timestamp: Optional[int] = None

    async def wait(self):
        return await self.relay.watcher.wait_for_transaction(self.transaction.hash, self.max_block_number)

    async def simulate(self):
        return await self.relay.simulate(
            [self.transaction.signed_transaction], self.start_block, timestamp=self.simulation_timestamp
        )

    async def receipts(self):
        return await self.relay.fetch_receipts([self.transaction])


class RelayClient:
    """Authenticated JSON-RPC client for a single relay.

    Relay error envelopes come back as ``RelayError`` values. Only transport
    failures raise.
    """

    def __init__(self, transport, chain, watcher: InclusionWatcher = None, signer: BundleSigner = None):
        self.transport = transport
        self.chain = chain
        self.watcher = watcher or InclusionWatcher(chain)
        self.signer = signer or BundleSigner(chain)
        self._next_id = 1

    @property
    def url(self):
        return self.transport.url

    def _prepare(self, method: str, params: list) -> str:
        request = {
            "method": method,
            "params": params,
            "id": self._next_id,
            "jsonrpc": "2.0",
        }
        self._next_id += 1
        return ujson.dumps(request)

    async def _call(self, method: str, params: list):
        body = self._prepare(method, params)
        logger.debug(f"{self.url} <- {method}")
        response = await self.transport.request(body)
        if response.get("error") is not None:
            error = RelayError.from_envelope(response["error"])
            logger.debug(f"{self.url} -> {method} error: {error.message}")
            return error
        return response.get("result")

    async def simulate(self, signed_txs: Sequence[str], block_tag, state_block_tag=None, timestamp=None, coinbase=None) -> Union[BundleSimulation, RelayError]:
        if isinstance(block_tag, int):
            evm_block = _block_hex(block_tag)
        else:
            block = await self.chain.get_block(block_tag)
            if block is None:
                block = await self.chain.get_block("latest")
            evm_block = _block_hex(block["number"])

        if isinstance(state_block_tag, int):
            evm_state_block = _block_hex(state_block_tag)
        elif not state_block_tag:
            evm_state_block = "latest"
        else:
            evm_state_block = state_block_tag

        params = {
            "txs": list(signed_txs),
            "blockNumber": evm_block,
            "stateBlockNumber": evm_state_block,
        }
        if timestamp is not None:
            params["timestamp"] = timestamp
        if coinbase is not None:
            params["coinbase"] = coinbase

        result = await self._call("eth_callBundle", [params])
        if isinstance(result, RelayError):
            return result
        if not isinstance(result, dict):
            raise TransportError(self.url, f"eth_callBundle returned no simulation: {result!r}")
        return BundleSimulation.from_result(result)

    async def send_raw_bundle(self, signed_txs: Sequence[str], target_block: int, opts: RelayOptions = None) -> Union[BundleSubmission, RelayError]:
        bundle_transactions = _account_nonces(signed_txs)
        params = {
            "txs": list(signed_txs),
            "blockNumber": _block_hex(target_block),
        }
        if opts is not None:
            if opts.min_timestamp is not None:
                params["minTimestamp"] = opts.min_timestamp
            if opts.max_timestamp is not None:
                params["maxTimestamp"] = opts.max_timestamp
            if opts.reverting_tx_hashes is not None:
                params["revertingTxHashes"] = list(opts.reverting_tx_hashes)
            if opts.replacement_uuid is not None:
                params["replacementUuid"] = opts.replacement_uuid

        result = await self._call("eth_sendBundle", [params])
        if isinstance(result, RelayError):
            return result

        bundle_hash = None
        if isinstance(result, dict):
            bundle_hash = result.get("bundleHash")
        if not bundle_hash:
            bundle_hash = generate_bundle_hash(tx.hash for tx in bundle_transactions)
        logger.info(f"{self.url} accepted bundle {bundle_hash} for block {target_block}")
        return BundleSubmission(self, bundle_hash, bundle_transactions, target_block, opts)

    async def send_bundle(self, legs, target_block: int, opts: RelayOptions = None) -> Union[BundleSubmission, RelayError]:
        """Sign, simulate against the target block and only then submit."""
        signed_txs = await self.signer.sign_bundle(legs)
        simulation = await self.simulate(signed_txs, target_block)
        if isinstance(simulation, RelayError):
            raise BundleSimulationFailed(simulation.message)
        if simulation.first_revert is not None:
            revert = simulation.first_revert
            raise BundleSimulationFailed(f"{revert.tx_hash} reverted: {revert.error or revert.revert}")
        return await self.send_raw_bundle(signed_txs, target_block, opts)

    async def cancel_bundle(self, replacement_uuid: str) -> Union[List[str], RelayError]:
        result = await self._call("eth_cancelBundle", [{"replacementUuid": replacement_uuid}])
        if isinstance(result, RelayError):
            return result
        return list(result or [])

    async def send_private_transaction(self, leg, max_block_number: int = None, simulation_timestamp: int = None) -> Union[PrivateTransactionSubmission, RelayError]:
        if isinstance(leg, (str, RawLeg)):
            signed_transaction = leg if isinstance(leg, str) else leg.signed_transaction
        else:
            signed_transaction = (await self.signer.sign_bundle([leg]))[0]
        transaction = _account_nonces([signed_transaction])[0]
        start_block = await self.chain.block_number()

        params = {"tx": signed_transaction}
        if max_block_number is not None:
            params["maxBlockNumber"] = max_block_number
        result = await self._call("eth_sendPrivateTransaction", [params])
        if isinstance(result, RelayError):
            return result

        return PrivateTransactionSubmission(
            self,
            transaction,
            start_block,
            max_block_number or start_block + PRIVATE_TRANSACTION_BLOCK_WINDOW,
            simulation_timestamp,
        )

    async def cancel_private_transaction(self, tx_hash: str) -> Union[bool, RelayError]:
        result = await self._call("eth_cancelPrivateTransaction", [{"txHash": tx_hash}])
        if isinstance(result, RelayError):
            return result
        return True

    async def get_user_stats(self) -> Any:
        block_number = await self.chain.block_number()
        return await self._call("flashbots_getUserStats", [_block_hex(block_number)])

    async def get_user_stats_v2(self) -> Any:
        block_number = await self.chain.block_number()
        return await self._call("flashbots_getUserStatsV2", [{"blockNumber": _block_hex(block_number)}])

    async def get_bundle_stats(self, bundle_hash: str, block_number: int) -> Any:
        params = [{"bundleHash": bundle_hash, "blockNumber": _block_hex(block_number)}]
        return await self._call("flashbots_getBundleStats", params)

    async def get_bundle_stats_v2(self, bundle_hash: str, block_number: int) -> Any:
        params = [{"bundleHash": bundle_hash, "blockNumber": _block_hex(block_number)}]
        return await self._call("flashbots_getBundleStatsV2", params)

    async def fetch_receipts(self, bundle_transactions: Sequence[TransactionAccountNonce]) -> list:
        return list(await asyncio.gather(
            *(self.chain.get_transaction_receipt(tx.hash) for tx in bundle_transactions)
        ))
