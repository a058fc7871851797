import asyncio
import logging

import aiohttp
import ujson
from eth_account.messages import encode_defunct
from web3 import Web3

from .errors import TransportError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Flashbots-Signature"


class AuthenticatedTransport:
    """JSON-RPC over HTTP to one relay, every body signed with the operator's auth key."""

    def __init__(self, url, auth_account, session: aiohttp.ClientSession = None, timeout=30):
        self.url = url
        self.auth_account = auth_account
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def signature(self, body: str) -> str:
        body_hash = Web3.to_hex(Web3.keccak(text=body))
        signed = self.auth_account.sign_message(encode_defunct(text=body_hash))
        return f"{self.auth_account.address}:{Web3.to_hex(signed.signature)}"

    async def request(self, body: str) -> dict:
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: self.signature(body),
        }
        if self.session is not None:
            return await self._post(self.session, body, headers)
        async with aiohttp.ClientSession() as session:
            return await self._post(session, body, headers)

    async def _post(self, session, body, headers) -> dict:
        try:
            async with session.post(self.url, data=body, headers=headers, timeout=self.timeout) as response:
                text = await response.text()
                status = response.status
        except asyncio.TimeoutError:
            raise TransportError(self.url, "request timed out")
        except aiohttp.ClientError as e:
            raise TransportError(self.url, str(e))

        try:
            payload = ujson.loads(text)
        except ValueError:
            raise TransportError(self.url, f"HTTP {status}: response is not JSON: {text[:200]}")
        if not isinstance(payload, dict):
            raise TransportError(self.url, f"HTTP {status}: unexpected response {text[:200]}")
        if status != 200 and payload.get("error") is None:
            raise TransportError(self.url, f"HTTP {status}: {text[:200]}")
        return payload
