import asyncio
import logging

import aiohttp
import ujson

from .errors import TransportError
from .models import BlocksApiResponse

logger = logging.getLogger(__name__)

DEFAULT_BLOCKS_API_URL = "https://blocks.flashbots.net/v1/blocks"


class BlocksApiClient:
    """Read-only client for the historical bundles-per-block index."""

    def __init__(self, url=DEFAULT_BLOCKS_API_URL, session: aiohttp.ClientSession = None, timeout=30):
        self.url = url
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch_block(self, block_number: int) -> BlocksApiResponse:
        if self.session is not None:
            return await self._get(self.session, block_number)
        async with aiohttp.ClientSession() as session:
            return await self._get(session, block_number)

    async def _get(self, session, block_number):
        try:
            async with session.get(self.url, params={"block_number": str(block_number)}, timeout=self.timeout) as response:
                text = await response.text()
                status = response.status
        except aiohttp.ClientError as e:
            raise TransportError(self.url, str(e))
        except asyncio.TimeoutError:
            raise TransportError(self.url, "request timed out")

        if status != 200:
            raise TransportError(self.url, f"HTTP {status}: {text[:200]}")
        try:
            data = ujson.loads(text)
        except ValueError:
            raise TransportError(self.url, f"response is not JSON: {text[:200]}")
        logger.debug(f"Blocks index at {data.get('latest_block_number')}, {len(data.get('blocks', []))} block(s) for {block_number}")
        return BlocksApiResponse.from_dict(data)
