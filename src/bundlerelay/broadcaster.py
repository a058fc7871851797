"""Fan a bundle out to every configured relay and retry against later blocks until it lands."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from .errors import MaxRetriesExceeded, NoRelayAccepted
from .models import BundleResolution, RelayError, RelayOptions
from .signer import BundleSigner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BroadcastResult:
    resolution: Any
    target_block: int
    attempts: int
    bundle_hash: str
    receipts: List[Any] = field(default_factory=list)

    @property
    def receipt(self):
        return self.receipts[-1] if self.receipts else None


class MultiRelayBroadcaster:
    def __init__(self, relays: Sequence, chain, signer: BundleSigner = None, max_attempts=5, block_step=5):
        self.relays = list(relays)
        self.chain = chain
        self.signer = signer or BundleSigner(chain)
        self.max_attempts = max_attempts
        self.block_step = block_step
        # submissions still in flight after another relay already accepted
        self._pending = set()

    async def broadcast(self, legs, target_block: int, opts: RelayOptions = None) -> BroadcastResult:
        last_target_block = target_block
        for attempt in range(1, self.max_attempts + 1):
            signed_txs = await self.signer.sign_bundle(legs)
            submission = await self._first_accepted(signed_txs, target_block, opts)

            logger.info(f"Waiting for block {target_block} (attempt {attempt}/{self.max_attempts})")
            inclusion = await submission.wait()
            receipts = await submission.receipts()
            landed = receipts and receipts[-1] is not None
            if landed or inclusion.resolution == BundleResolution.INCLUDED:
                logger.info(f"Bundle {submission.bundle_hash} landed, resolution {inclusion.resolution.name}")
                return BroadcastResult(
                    resolution=inclusion.resolution,
                    target_block=target_block,
                    attempts=attempt,
                    bundle_hash=submission.bundle_hash,
                    receipts=receipts,
                )

            last_target_block = target_block
            target_block += self.block_step
            logger.info(f"No receipt for bundle {submission.bundle_hash} ({inclusion.resolution.name}), retrying at block {target_block}")

        raise MaxRetriesExceeded(self.max_attempts, last_target_block)

    async def _first_accepted(self, signed_txs, target_block, opts):
        tasks = []
        for relay in self.relays:
            task = asyncio.ensure_future(self._submit(relay, signed_txs, target_block, opts))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)

        for next_done in asyncio.as_completed(tasks):
            submission = await next_done
            if submission is not None:
                return submission
        raise NoRelayAccepted(f"None of {len(self.relays)} relays accepted the bundle for block {target_block}")

    async def _submit(self, relay, signed_txs, target_block, opts) -> Optional[Any]:
        try:
            result = await relay.send_raw_bundle(signed_txs, target_block, opts)
        except Exception as e:
            logger.warning(f"Error sending bundle to {relay.url}: {str(e)}")
            return None
        if isinstance(result, RelayError):
            logger.warning(f"{relay.url} rejected bundle: {result.message} (code {result.code})")
            return None
        return result

    async def drain(self):
        """Wait for submissions that were still running when another relay won."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
