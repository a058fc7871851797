"""Raw transaction helpers: decode signed envelopes, rebuild mined ones, hash bundles."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import rlp
from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3

from .errors import CouldNotDecodeSignedTransaction

LEGACY_TYPE = 0
ACCESS_LIST_TYPE = 1
DYNAMIC_FEE_TYPE = 2
BLOB_TYPE = 3


def to_int(value) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    value = str(value).strip()
    if value.startswith(("0x", "0X")):
        return int(value, 16) if len(value) > 2 else 0
    return int(value)


@dataclass(frozen=True)
class DecodedTransaction:
    raw: str
    hash: str
    sender: str
    nonce: int
    to: Optional[str]
    data: str
    value: int
    type: int
    gas: int
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    chain_id: Optional[int] = None
    access_list: Tuple[Dict[str, Any], ...] = ()

    def as_transaction_dict(self) -> Dict[str, Any]:
        """Unsigned transaction fields, in the shape eth_account signs."""
        tx = {
            "nonce": self.nonce,
            "gas": self.gas,
            "value": self.value,
            "data": self.data,
        }
        if self.to is not None:
            tx["to"] = self.to
        if self.chain_id is not None:
            tx["chainId"] = self.chain_id
        if self.type == DYNAMIC_FEE_TYPE:
            tx["maxFeePerGas"] = self.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas
        else:
            tx["gasPrice"] = self.gas_price
        if self.type in (ACCESS_LIST_TYPE, DYNAMIC_FEE_TYPE):
            tx["accessList"] = [dict(entry) for entry in self.access_list]
            tx["type"] = self.type
        return tx


def transaction_hash(raw) -> str:
    return Web3.to_hex(Web3.keccak(bytes(HexBytes(raw))))


def generate_bundle_hash(tx_hashes: Iterable[str]) -> str:
    concatenated = "".join(h[2:] if h.startswith("0x") else h for h in tx_hashes)
    return Web3.to_hex(Web3.keccak(hexstr="0x" + concatenated))


def _as_int(item: bytes) -> int:
    return int.from_bytes(item, "big")


def _as_address(item: bytes) -> Optional[str]:
    if not item:
        return None
    return Web3.to_checksum_address(item)


def _decode_access_list(items):
    return tuple(
        {
            "address": Web3.to_checksum_address(address),
            "storageKeys": [Web3.to_hex(key) for key in storage_keys],
        }
        for address, storage_keys in items
    )


def decode_signed_transaction(raw) -> DecodedTransaction:
    try:
        raw_bytes = bytes(HexBytes(raw))
    except (TypeError, ValueError) as e:
        raise CouldNotDecodeSignedTransaction(f"Not a hex encoded transaction: {e}")
    if not raw_bytes:
        raise CouldNotDecodeSignedTransaction("Empty transaction")

    tx_hash_bytes = raw_bytes
    try:
        if raw_bytes[0] >= 0xC0:
            tx_type = LEGACY_TYPE
            fields = rlp.decode(raw_bytes)
        else:
            tx_type = raw_bytes[0]
            fields = rlp.decode(raw_bytes[1:])
            if tx_type == BLOB_TYPE and fields and isinstance(fields[0], list):
                # network form: [tx_payload_body, blobs, commitments, proofs]
                fields = fields[0]
                tx_hash_bytes = bytes([BLOB_TYPE]) + rlp.encode(fields)
    except rlp.exceptions.DecodingError as e:
        raise CouldNotDecodeSignedTransaction(f"Invalid RLP: {e}")

    try:
        if tx_type == LEGACY_TYPE:
            nonce, gas_price, gas, to, value, data, v = fields[:7]
            v = _as_int(v)
            chain_id = (v - 35) // 2 if v >= 35 else None
            decoded = dict(nonce=nonce, gas=gas, to=to, value=value, data=data, gas_price=_as_int(gas_price))
        elif tx_type == ACCESS_LIST_TYPE:
            chain_id, nonce, gas_price, gas, to, value, data, access_list = fields[:8]
            chain_id = _as_int(chain_id)
            decoded = dict(nonce=nonce, gas=gas, to=to, value=value, data=data, gas_price=_as_int(gas_price))
            decoded["access_list"] = _decode_access_list(access_list)
        elif tx_type in (DYNAMIC_FEE_TYPE, BLOB_TYPE):
            chain_id, nonce, max_priority, max_fee, gas, to, value, data, access_list = fields[:9]
            chain_id = _as_int(chain_id)
            decoded = dict(
                nonce=nonce,
                gas=gas,
                to=to,
                value=value,
                data=data,
                max_fee_per_gas=_as_int(max_fee),
                max_priority_fee_per_gas=_as_int(max_priority),
            )
            decoded["access_list"] = _decode_access_list(access_list)
        else:
            raise CouldNotDecodeSignedTransaction(f"Unsupported transaction type {tx_type}")
    except ValueError as e:
        raise CouldNotDecodeSignedTransaction(f"Malformed transaction fields: {e}")

    try:
        sender = Account.recover_transaction(tx_hash_bytes)
    except Exception as e:
        raise CouldNotDecodeSignedTransaction(f"Could not recover sender: {e}")

    return DecodedTransaction(
        raw=Web3.to_hex(raw_bytes),
        hash=transaction_hash(tx_hash_bytes),
        sender=sender,
        nonce=_as_int(decoded["nonce"]),
        to=_as_address(decoded["to"]),
        data=Web3.to_hex(decoded["data"]),
        value=_as_int(decoded["value"]),
        type=tx_type,
        gas=_as_int(decoded["gas"]),
        gas_price=decoded.get("gas_price"),
        max_fee_per_gas=decoded.get("max_fee_per_gas"),
        max_priority_fee_per_gas=decoded.get("max_priority_fee_per_gas"),
        chain_id=chain_id,
        access_list=decoded.get("access_list", ()),
    )


def _field_bytes(value) -> bytes:
    if not value:
        return b""
    return bytes(HexBytes(value))


def _access_list(entries):
    encoded = []
    for entry in entries or []:
        storage_keys = [_field_bytes(key) for key in entry.get("storageKeys", [])]
        encoded.append([_field_bytes(entry["address"]), storage_keys])
    return encoded


def serialize_signed_transaction(tx: Mapping[str, Any]) -> str:
    """Rebuild the raw signed bytes of a transaction returned by eth_getTransactionByHash."""
    if tx.get("r") is None or tx.get("s") is None:
        raise CouldNotDecodeSignedTransaction(f"Transaction {tx.get('hash')} has no signature")

    tx_type = to_int(tx.get("type", 0))
    r = to_int(tx["r"])
    s = to_int(tx["s"])
    y_parity = to_int(tx["yParity"]) if tx.get("yParity") is not None else to_int(tx.get("v"))
    to = _field_bytes(tx.get("to"))
    data = _field_bytes(tx.get("input", tx.get("data")))
    common = [to, to_int(tx.get("value")), data]

    if tx_type == LEGACY_TYPE:
        fields = [to_int(tx["nonce"]), to_int(tx["gasPrice"]), to_int(tx["gas"])] + common + [to_int(tx["v"]), r, s]
        return Web3.to_hex(rlp.encode(fields))

    chain_id = to_int(tx["chainId"])
    access_list = _access_list(tx.get("accessList"))
    if tx_type == ACCESS_LIST_TYPE:
        fields = [chain_id, to_int(tx["nonce"]), to_int(tx["gasPrice"]), to_int(tx["gas"])] + common
        fields += [access_list, y_parity, r, s]
    elif tx_type in (DYNAMIC_FEE_TYPE, BLOB_TYPE):
        fields = [
            chain_id,
            to_int(tx["nonce"]),
            to_int(tx["maxPriorityFeePerGas"]),
            to_int(tx["maxFeePerGas"]),
            to_int(tx["gas"]),
        ] + common + [access_list]
        if tx_type == BLOB_TYPE:
            fields += [
                to_int(tx["maxFeePerBlobGas"]),
                [_field_bytes(h) for h in tx.get("blobVersionedHashes", [])],
            ]
        fields += [y_parity, r, s]
    else:
        raise CouldNotDecodeSignedTransaction(f"Unsupported transaction type {tx_type}")
    return Web3.to_hex(bytes([tx_type]) + rlp.encode(fields))
