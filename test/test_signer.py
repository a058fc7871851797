import unittest

from bundlerelay.errors import CouldNotDecodeSignedTransaction, InvalidNonceFormat
from bundlerelay.models import RawLeg, UnsignedLeg
from bundlerelay.signer import BundleSigner, repack
from bundlerelay.transactions import decode_signed_transaction
from fakes import ALICE, BOB, RECIPIENT, FakeChain, sign_transfer


def transfer(value=0, **fields):
    tx = {"to": RECIPIENT, "value": value, "data": "0x"}
    tx.update(fields)
    return tx


class BundleSignerTests(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.chain = FakeChain(nonces={ALICE.address: 3, BOB.address: 8})
        self.signer = BundleSigner(self.chain)

    async def test_unsigned_legs_get_contiguous_nonces_from_chain(self):
        signed = await self.signer.sign_bundle([
            UnsignedLeg(transfer(), ALICE),
            UnsignedLeg(transfer(), ALICE),
            UnsignedLeg(transfer(), ALICE),
        ])
        self.assertEqual([decode_signed_transaction(raw).nonce for raw in signed], [3, 4, 5])
        self.assertEqual(self.chain.nonce_lookups, 1)

    async def test_presigned_leg_advances_nonce_for_following_legs(self):
        presigned = sign_transfer(ALICE, 5)
        signed = await self.signer.sign_bundle([
            RawLeg(presigned),
            UnsignedLeg(transfer(), ALICE),
            UnsignedLeg(transfer(), ALICE),
        ])
        self.assertEqual(signed[0], presigned)
        self.assertEqual([decode_signed_transaction(raw).nonce for raw in signed], [5, 6, 7])
        self.assertEqual(self.chain.nonce_lookups, 0)

    async def test_accounts_are_tracked_separately(self):
        signed = await self.signer.sign_bundle([
            UnsignedLeg(transfer(), ALICE),
            UnsignedLeg(transfer(), BOB),
            sign_transfer(BOB, 20),
            UnsignedLeg(transfer(), BOB),
            UnsignedLeg(transfer(), ALICE),
        ])
        decoded = [decode_signed_transaction(raw) for raw in signed]
        self.assertEqual([(tx.sender, tx.nonce) for tx in decoded], [
            (ALICE.address, 3),
            (BOB.address, 8),
            (BOB.address, 20),
            (BOB.address, 21),
            (ALICE.address, 4),
        ])

    async def test_explicit_nonce_is_kept_and_continued(self):
        signed = await self.signer.sign_bundle([
            UnsignedLeg(transfer(nonce=42), ALICE),
            UnsignedLeg(transfer(), ALICE),
        ])
        self.assertEqual([decode_signed_transaction(raw).nonce for raw in signed], [42, 43])
        self.assertEqual(self.chain.nonce_lookups, 0)

    async def test_string_nonce_is_rejected_before_any_lookup(self):
        with self.assertRaises(InvalidNonceFormat):
            await self.signer.sign_bundle([UnsignedLeg(transfer(nonce="7"), ALICE)])
        self.assertEqual(self.chain.nonce_lookups, 0)
        self.assertEqual(self.chain.gas_estimates, 0)

    async def test_legacy_leg_defaults_to_zero_gas_price_and_estimated_gas(self):
        signed = await self.signer.sign_bundle([UnsignedLeg(transfer(), ALICE)])
        tx = decode_signed_transaction(signed[0])
        self.assertEqual(tx.gas_price, 0)
        self.assertEqual(tx.gas, 21000)
        self.assertEqual(tx.chain_id, 1)
        self.assertEqual(self.chain.gas_estimates, 1)

    async def test_explicit_gas_is_not_estimated(self):
        signed = await self.signer.sign_bundle([UnsignedLeg(transfer(gas=60000, gasPrice=7), ALICE)])
        tx = decode_signed_transaction(signed[0])
        self.assertEqual(tx.gas, 60000)
        self.assertEqual(tx.gas_price, 7)
        self.assertEqual(self.chain.gas_estimates, 0)

    async def test_dynamic_fee_leg_keeps_fee_fields(self):
        signed = await self.signer.sign_bundle([
            UnsignedLeg(transfer(type=2, maxFeePerGas=100, maxPriorityFeePerGas=2, gas=21000), ALICE),
        ])
        tx = decode_signed_transaction(signed[0])
        self.assertEqual(tx.type, 2)
        self.assertIsNone(tx.gas_price)
        self.assertEqual(tx.max_fee_per_gas, 100)

    async def test_undecodable_presigned_leg(self):
        with self.assertRaises(CouldNotDecodeSignedTransaction):
            await self.signer.sign_bundle(["0x1234"])

    async def test_leg_order_is_preserved(self):
        first = sign_transfer(BOB, 1)
        last = sign_transfer(BOB, 2)
        signed = await self.signer.sign_bundle([first, UnsignedLeg(transfer(), ALICE), last])
        self.assertEqual(signed[0], first)
        self.assertEqual(signed[2], last)


class RepackTests(unittest.IsolatedAsyncioTestCase):

    async def test_renonces_own_transactions_and_keeps_foreign_ones(self):
        chain = FakeChain(nonces={ALICE.address: 11})
        foreign = sign_transfer(BOB, 4)
        packed = await repack(ALICE, chain, [
            sign_transfer(ALICE, 0, value=1),
            foreign,
            sign_transfer(ALICE, 0, value=2),
        ])
        decoded = [decode_signed_transaction(raw) for raw in packed]
        self.assertEqual([(tx.sender, tx.nonce) for tx in decoded], [
            (ALICE.address, 11),
            (BOB.address, 4),
            (ALICE.address, 12),
        ])
        self.assertEqual(packed[1], foreign)
        self.assertEqual([decoded[0].value, decoded[2].value], [1, 2])


if __name__ == '__main__':
    unittest.main()
