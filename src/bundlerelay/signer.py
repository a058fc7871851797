"""Bundle assembly: sign legs in order with contiguous per-account nonces."""

import logging
from typing import Dict, List, Sequence, Union

from web3 import Web3

from .errors import InvalidNonceFormat
from .models import RawLeg, UnsignedLeg
from .transactions import decode_signed_transaction, to_int

logger = logging.getLogger(__name__)

Leg = Union[str, RawLeg, UnsignedLeg]

FEE_MARKET_FIELDS = ("maxFeePerGas", "maxPriorityFeePerGas")


def _is_legacy(transaction) -> bool:
    if any(field in transaction for field in FEE_MARKET_FIELDS):
        return False
    return to_int(transaction.get("type", 0)) == 0


class BundleSigner:
    """Turns a mix of signed and unsigned legs into an ordered list of raw transactions.

    Pre-signed legs are never re-nonced, but they advance the nonce of their
    sender so that unsigned legs from the same account that follow them line
    up behind them.
    """

    def __init__(self, chain):
        self.chain = chain

    async def sign_bundle(self, legs: Sequence[Leg]) -> List[str]:
        nonces: Dict[str, int] = {}
        signed_transactions = []

        for leg in legs:
            if isinstance(leg, (str, RawLeg)):
                raw = leg if isinstance(leg, str) else leg.signed_transaction
                decoded = decode_signed_transaction(raw)
                nonces[decoded.sender] = decoded.nonce + 1
                signed_transactions.append(raw)
                continue
            if not isinstance(leg, UnsignedLeg):
                raise TypeError(f"Unsupported bundle leg {leg!r}")
            signed_transactions.append(await self._sign_leg(leg, nonces))

        return signed_transactions

    async def _sign_leg(self, leg: UnsignedLeg, nonces: Dict[str, int]) -> str:
        transaction = dict(leg.transaction)
        address = leg.signer.address

        if "nonce" in transaction:
            nonce = transaction["nonce"]
            if isinstance(nonce, bool) or not isinstance(nonce, int):
                raise InvalidNonceFormat(f"Nonce must be an integer, got {nonce!r}")
        elif address in nonces:
            nonce = nonces[address]
        else:
            nonce = await self.chain.get_transaction_count(address, "latest")
        nonces[address] = nonce + 1
        transaction["nonce"] = nonce

        if _is_legacy(transaction) and "gasPrice" not in transaction:
            transaction["gasPrice"] = 0
        if "chainId" not in transaction:
            transaction["chainId"] = await self.chain.chain_id()
        if "gas" not in transaction:
            transaction["gas"] = await self.chain.estimate_gas({**transaction, "from": address})

        signed = leg.signer.sign_transaction(transaction)
        raw = Web3.to_hex(signed.raw_transaction)
        logger.debug(f"Signed leg from {address} with nonce {nonce}: {raw}")
        return raw


async def repack(account, chain, raw_transactions: Sequence[str]) -> List[str]:
    """Re-sign every transaction sent from ``account`` with fresh contiguous nonces.

    Nonces start at the account's on-chain transaction count and every re-signed
    transaction carries the chain's id. Transactions from other senders pass
    through untouched.
    """
    nonce = await chain.get_transaction_count(account.address, "latest")
    chain_id = await chain.chain_id()
    packed = []
    for raw in raw_transactions:
        decoded = decode_signed_transaction(raw)
        if decoded.sender.lower() != account.address.lower():
            packed.append(raw)
            continue
        transaction = decoded.as_transaction_dict()
        transaction["nonce"] = nonce
        transaction["chainId"] = chain_id
        nonce += 1
        packed.append(Web3.to_hex(account.sign_transaction(transaction).raw_transaction))
        logger.info(f"Repacked {decoded.hash} with nonce {transaction['nonce']}")
    return packed
