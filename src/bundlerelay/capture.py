"""Transaction sinks: where an external signer sends its transactions.

``NetworkTransactionSink`` broadcasts them to the chain right away.
``CapturingTransactionSink`` keeps them, in order, so they can be bundled
instead. ``SinkSigner`` is what trade code signs and sends through.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from web3 import Web3

from .models import CapturedTransaction
from .transactions import decode_signed_transaction

logger = logging.getLogger(__name__)

TRADE = "trade"
GAS = "gas"
DEPOSIT = "deposit"


class PendingHandle:
    def __init__(self, tx_hash: str, waiter: Callable[[], Awaitable[Any]] = None):
        self.hash = tx_hash
        self._waiter = waiter

    async def wait(self):
        if self._waiter is None:
            return {}
        return await self._waiter()


class TransactionSink(Protocol):
    async def broadcast(self, raw_transaction: str) -> PendingHandle:
        ...

    async def next_nonce(self, address: str) -> int:
        ...

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        ...


class NetworkTransactionSink:
    def __init__(self, chain):
        self.chain = chain

    async def broadcast(self, raw_transaction: str) -> PendingHandle:
        tx_hash = await self.chain.send_raw_transaction(raw_transaction)
        logger.info(f"Broadcast {tx_hash}")

        async def wait_for_receipt():
            while True:
                receipt = await self.chain.get_transaction_receipt(tx_hash)
                if receipt is not None:
                    return receipt
                await asyncio.sleep(self.chain.poll_interval)

        return PendingHandle(tx_hash, wait_for_receipt)

    async def next_nonce(self, address: str) -> int:
        return await self.chain.get_transaction_count(address, "latest")

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        return await self.chain.estimate_gas(transaction)


class CapturingTransactionSink:
    """Records every broadcast instead of sending it.

    The owner's nonce is read from the chain once and then handed out
    sequentially. Contract creations are estimated with
    ``creation_gas_estimator`` when one is given.
    """

    def __init__(self, chain, owner: str, creation_gas_estimator: Optional[Callable[[Dict[str, Any]], Awaitable[int]]] = None):
        self.chain = chain
        self.owner = owner
        self.creation_gas_estimator = creation_gas_estimator
        self.captured: List[CapturedTransaction] = []
        self._nonce = None

    async def broadcast(self, raw_transaction: str) -> PendingHandle:
        tx = decode_signed_transaction(raw_transaction)
        if tx.to is None:
            kind, shared_address = TRADE, tx.sender
        elif tx.data == "0x":
            kind, shared_address = GAS, tx.to
        else:
            kind, shared_address = DEPOSIT, tx.to

        captured = CapturedTransaction(kind=kind, shared_address=shared_address, transaction=raw_transaction, hash=tx.hash)
        self.captured.append(captured)
        logger.info(f"Captured {kind} transaction {tx.hash} (nonce {tx.nonce}, shared address {shared_address})")
        return PendingHandle(tx.hash)

    async def next_nonce(self, address: str) -> int:
        if address.lower() != self.owner.lower():
            return await self.chain.get_transaction_count(address, "latest")
        if self._nonce is None:
            self._nonce = await self.chain.get_transaction_count(address, "latest")
        else:
            self._nonce += 1
        return self._nonce

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        if not transaction.get("to") and self.creation_gas_estimator is not None:
            return await self.creation_gas_estimator(transaction)
        return await self.chain.estimate_gas(transaction)

    def raw_transactions(self) -> List[str]:
        return [captured.transaction for captured in self.captured]


class SinkSigner:
    """Signs with a local account and hands the result to a sink.

    Missing nonce, gas and chain id are filled in through the sink. Fee
    fields are the caller's responsibility.
    """

    def __init__(self, account, sink: TransactionSink, chain_id: int = None):
        self.account = account
        self.sink = sink
        self.chain_id = chain_id

    @property
    def address(self):
        return self.account.address

    async def send_transaction(self, transaction: Dict[str, Any]) -> PendingHandle:
        tx = dict(transaction)
        tx.pop("from", None)
        if "nonce" not in tx:
            tx["nonce"] = await self.sink.next_nonce(self.address)
        if "chainId" not in tx and self.chain_id is not None:
            tx["chainId"] = self.chain_id
        if "gas" not in tx:
            tx["gas"] = await self.sink.estimate_gas({**tx, "from": self.address})

        signed = self.account.sign_transaction(tx)
        return await self.sink.broadcast(Web3.to_hex(signed.raw_transaction))
