"""Chain data access over web3 plus a new-block stream."""

import asyncio
import logging

import aiohttp
import ujson
from web3 import AsyncWeb3
from web3.exceptions import BlockNotFound, TransactionNotFound
from websockets import connect

from .transactions import to_int

logger = logging.getLogger(__name__)


class ChainClient:
    def __init__(self, w3: AsyncWeb3, ws_url=None, poll_interval=1.0):
        self.w3 = w3
        self.ws_url = ws_url
        self.poll_interval = poll_interval
        self._chain_id = None

    @classmethod
    def from_url(cls, rpc_url, ws_url=None, poll_interval=1.0, request_timeout=30):
        provider = AsyncWeb3.AsyncHTTPProvider(
            rpc_url, request_kwargs={'timeout': aiohttp.ClientTimeout(total=request_timeout)}
        )
        return cls(AsyncWeb3(provider), ws_url=ws_url, poll_interval=poll_interval)

    async def block_number(self) -> int:
        return await self.w3.eth.block_number

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.w3.eth.chain_id
        return self._chain_id

    async def get_block(self, block_identifier="latest", full_transactions=False):
        try:
            return await self.w3.eth.get_block(block_identifier, full_transactions)
        except BlockNotFound:
            return None

    async def base_fee(self, block_identifier="latest") -> int:
        block = await self.get_block(block_identifier)
        if block is None:
            return 0
        return to_int(block.get("baseFeePerGas", 0))

    async def get_transaction_count(self, address, block_identifier="latest") -> int:
        return await self.w3.eth.get_transaction_count(address, block_identifier)

    async def get_transaction(self, tx_hash):
        try:
            return await self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None

    async def get_transaction_receipt(self, tx_hash):
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    async def estimate_gas(self, transaction) -> int:
        return await self.w3.eth.estimate_gas(transaction)

    async def send_raw_transaction(self, raw_transaction) -> str:
        tx_hash = await self.w3.eth.send_raw_transaction(raw_transaction)
        return AsyncWeb3.to_hex(tx_hash)

    def subscribe_blocks(self):
        """Async iterator of new block numbers.

        Uses an ``eth_subscribe newHeads`` websocket when a websocket url is
        configured, otherwise polls ``eth_blockNumber``. The caller closes it
        with ``aclose()``.
        """
        if self.ws_url:
            return self._subscribe_new_heads()
        return self._poll_blocks()

    async def _subscribe_new_heads(self):
        async with connect(self.ws_url) as ws:
            await ws.send(ujson.dumps({
                "jsonrpc": "2.0",
                "id": 1,
                "method": "eth_subscribe",
                "params": ["newHeads"]
            }))
            logger.debug(f"Subscribed to newHeads on {self.ws_url}")

            while True:
                message = await ws.recv()
                data = ujson.loads(message)
                if 'params' in data and 'result' in data['params']:
                    yield to_int(data['params']['result']['number'])

    async def _poll_blocks(self):
        last_block = await self.block_number()
        while True:
            await asyncio.sleep(self.poll_interval)
            current_block = await self.block_number()
            for block_number in range(last_block + 1, current_block + 1):
                yield block_number
            last_block = max(last_block, current_block)
