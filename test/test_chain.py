import asyncio
import unittest

import ujson
import websockets
from hexbytes import HexBytes
from web3.exceptions import BlockNotFound, TransactionNotFound

from bundlerelay.chain import ChainClient


class FakeEth:
    def __init__(self, heights):
        self.heights = list(heights)

    @property
    def block_number(self):
        async def next_height():
            return self.heights.pop(0) if len(self.heights) > 1 else self.heights[0]
        return next_height()

    async def get_transaction(self, tx_hash):
        raise TransactionNotFound(f"Transaction with hash: {tx_hash} not found.")

    async def get_transaction_receipt(self, tx_hash):
        raise TransactionNotFound(f"Transaction with hash: {tx_hash} not found.")

    async def get_block(self, block_identifier, full_transactions=False):
        if block_identifier == "latest":
            return {"number": 7, "baseFeePerGas": 25, "transactions": []}
        raise BlockNotFound(f"Block with id: {block_identifier} not found.")

    async def send_raw_transaction(self, raw_transaction):
        return HexBytes("0x" + "ab" * 32)


class FakeWeb3:
    def __init__(self, heights):
        self.eth = FakeEth(heights)


class ChainClientTests(unittest.IsolatedAsyncioTestCase):

    async def test_polling_yields_every_block_once(self):
        chain = ChainClient(FakeWeb3([100, 100, 103, 104]), poll_interval=0)
        blocks = chain.subscribe_blocks()
        try:
            seen = [await blocks.__anext__() for _ in range(4)]
        finally:
            await blocks.aclose()
        self.assertEqual(seen, [101, 102, 103, 104])

    async def test_missing_transaction_and_receipt_are_none(self):
        chain = ChainClient(FakeWeb3([1]))
        self.assertIsNone(await chain.get_transaction("0x01"))
        self.assertIsNone(await chain.get_transaction_receipt("0x01"))

    async def test_missing_block(self):
        chain = ChainClient(FakeWeb3([1]))
        self.assertIsNone(await chain.get_block(10**9))
        self.assertEqual(await chain.base_fee(10**9), 0)
        self.assertEqual(await chain.base_fee(), 25)

    async def test_send_raw_transaction_returns_prefixed_hash(self):
        chain = ChainClient(FakeWeb3([1]))
        self.assertEqual(await chain.send_raw_transaction("0x00"), "0x" + "ab" * 32)


class NewHeadsSubscriptionTests(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.requests = []
        self.disconnected = asyncio.Event()

        async def node(websocket):
            self.requests.append(ujson.loads(await websocket.recv()))
            await websocket.send(ujson.dumps({"jsonrpc": "2.0", "id": 1, "result": "0x9cef"}))
            for number in ("0x65", "0x66"):
                await websocket.send(ujson.dumps({
                    "jsonrpc": "2.0",
                    "method": "eth_subscription",
                    "params": {"subscription": "0x9cef", "result": {"number": number}},
                }))
            await websocket.wait_closed()
            self.disconnected.set()

        self.server = await websockets.serve(node, "127.0.0.1", 0)
        port = next(iter(self.server.sockets)).getsockname()[1]
        self.chain = ChainClient(FakeWeb3([1]), ws_url=f"ws://127.0.0.1:{port}")

    async def asyncTearDown(self):
        self.server.close()
        await self.server.wait_closed()

    async def test_yields_head_numbers_and_skips_the_ack(self):
        blocks = self.chain.subscribe_blocks()
        try:
            seen = [await blocks.__anext__() for _ in range(2)]
        finally:
            await blocks.aclose()

        self.assertEqual(seen, [101, 102])
        self.assertEqual(self.requests[0]["method"], "eth_subscribe")
        self.assertEqual(self.requests[0]["params"], ["newHeads"])
        await asyncio.wait_for(self.disconnected.wait(), 2)


if __name__ == '__main__':
    unittest.main()
