import unittest

from web3 import Web3

from bundlerelay.broadcaster import MultiRelayBroadcaster
from bundlerelay.capture import CapturingTransactionSink, SinkSigner
from bundlerelay.models import BundleResolution, UnsignedLeg
from bundlerelay.relay import RelayClient
from bundlerelay.transactions import decode_signed_transaction, transaction_hash
from bundlerelay.watcher import InclusionWatcher
from fakes import ALICE, BOB, OPERATOR, RECIPIENT, FakeChain, FakeTransport, sign_transfer

VAULT = Web3.to_checksum_address("0x00000000000000000000000000000000000000bb")


class CaptureSignBroadcastTests(unittest.IsolatedAsyncioTestCase):
    """Trade transactions captured from a signer, topped up with a gas leg, sent to two relays."""

    async def test_captured_trade_lands_with_receipts(self):
        chain = FakeChain(block_number=100, nonces={ALICE.address: 12, BOB.address: 3})
        sink = CapturingTransactionSink(chain, ALICE.address)
        trader = SinkSigner(ALICE, sink, chain_id=1)
        await trader.send_transaction({"to": VAULT, "value": 0, "data": "0xd0e30db0", "gasPrice": 0})
        await trader.send_transaction({"data": "0x6000", "value": 0, "gasPrice": 0})

        watcher = InclusionWatcher(chain, timeout=2)
        down = FakeTransport("https://down.test", fail="503")
        relay = FakeTransport("https://relay.test", handler=lambda method, params: {"bundleHash": "0xb0"})
        broadcaster = MultiRelayBroadcaster(
            [RelayClient(down, chain, watcher=watcher), RelayClient(relay, chain, watcher=watcher)],
            chain,
        )

        legs = [UnsignedLeg({"to": RECIPIENT, "value": 10**15, "data": "0x"}, BOB)] + sink.raw_transactions()

        def mine(block_number):
            if block_number == 101:
                chain.include(101, [transaction_hash(raw) for raw in relay.requests[-1]["params"][0]["txs"]])

        chain.on_new_block = mine
        chain.upcoming_blocks = [101]
        result = await broadcaster.broadcast(legs, 101)

        self.assertEqual(result.resolution, BundleResolution.INCLUDED)
        self.assertEqual(result.attempts, 1)
        self.assertEqual(len(result.receipts), 3)
        self.assertTrue(all(receipt["status"] == 1 for receipt in result.receipts))

        sent = [decode_signed_transaction(raw) for raw in relay.requests[0]["params"][0]["txs"]]
        self.assertEqual([(tx.sender, tx.nonce) for tx in sent], [
            (BOB.address, 3),
            (ALICE.address, 12),
            (ALICE.address, 13),
        ])
        self.assertEqual([c.kind for c in sink.captured], ["deposit", "trade"])
        self.assertEqual(chain.sent, [])


class MixedLegBroadcastTests(unittest.IsolatedAsyncioTestCase):

    async def test_two_unsigned_legs_and_a_presigned_leg_land(self):
        chain = FakeChain(block_number=100, nonces={ALICE.address: 4, BOB.address: 9, OPERATOR.address: 2})
        watcher = InclusionWatcher(chain, timeout=2)
        erroring = FakeTransport("https://erroring.test", handler=lambda method, params: FakeTransport.error("internal error"))
        relay = FakeTransport("https://relay.test", handler=lambda method, params: {"bundleHash": "0xb1"})
        broadcaster = MultiRelayBroadcaster(
            [RelayClient(erroring, chain, watcher=watcher), RelayClient(relay, chain, watcher=watcher)],
            chain,
        )
        legs = [
            UnsignedLeg({"to": RECIPIENT, "value": 1, "data": "0x"}, ALICE),
            UnsignedLeg({"to": RECIPIENT, "value": 2, "data": "0x"}, BOB),
            sign_transfer(OPERATOR, 2),
        ]

        def mine(block_number):
            if block_number == 101:
                chain.include(101, [transaction_hash(raw) for raw in relay.requests[-1]["params"][0]["txs"]])

        chain.on_new_block = mine
        chain.upcoming_blocks = [101]
        result = await broadcaster.broadcast(legs, 101)

        self.assertEqual(result.resolution, BundleResolution.INCLUDED)
        self.assertEqual(len(result.receipts), 3)
        self.assertTrue(all(receipt is not None for receipt in result.receipts))
        self.assertEqual(len(erroring.requests), 1)

        sent = [decode_signed_transaction(raw) for raw in relay.requests[0]["params"][0]["txs"]]
        self.assertEqual([(tx.sender, tx.nonce) for tx in sent], [
            (ALICE.address, 4),
            (BOB.address, 9),
            (OPERATOR.address, 2),
        ])


if __name__ == '__main__':
    unittest.main()
