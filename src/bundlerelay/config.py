import logging
import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv
from eth_account import Account

from .blocks_api import DEFAULT_BLOCKS_API_URL
from .broadcaster import MultiRelayBroadcaster
from .chain import ChainClient
from .relay import RelayClient
from .transport import AuthenticatedTransport
from .watcher import InclusionWatcher

logger = logging.getLogger(__name__)

BUILDER_URLS = (
    "https://relay.flashbots.net",
    "https://builder0x69.io",
    "https://rpc.beaverbuild.org",
    "https://rsync-builder.xyz",
    "https://rpc.titanbuilder.xyz",
    "https://api.edennetwork.io/v1/bundle",
)


@dataclass(frozen=True)
class Settings:
    rpc_url: str = "http://localhost:8545"
    ws_url: str = None
    signature_key: str = None
    builder_urls: Tuple[str, ...] = BUILDER_URLS
    blocks_api_url: str = DEFAULT_BLOCKS_API_URL
    inclusion_timeout: float = 300
    max_bundle_attempts: int = 5
    retry_block_step: int = 5
    relay_request_timeout: float = 30
    block_poll_interval: float = 1.0

    def auth_account(self):
        if self.signature_key:
            return Account.from_key(self.signature_key)
        account = Account.create()
        logger.warning(f"ETH_SIGNATURE_KEY not set, using a random relay identity {account.address}")
        return account


def load_settings() -> Settings:
    load_dotenv()

    builder_urls = BUILDER_URLS
    if os.getenv('BUILDER_URLS'):
        builder_urls = tuple(url.strip() for url in os.getenv('BUILDER_URLS').split(',') if url.strip())

    return Settings(
        rpc_url=os.getenv('ETH_RPC_URL', 'http://localhost:8545'),
        ws_url=os.getenv('ETH_WS_URL') or None,
        signature_key=os.getenv('ETH_SIGNATURE_KEY') or None,
        builder_urls=builder_urls,
        blocks_api_url=os.getenv('BLOCKS_API_URL', DEFAULT_BLOCKS_API_URL),
        inclusion_timeout=float(os.getenv('INCLUSION_TIMEOUT', 300)),
        max_bundle_attempts=int(os.getenv('MAX_BUNDLE_ATTEMPTS', 5)),
        retry_block_step=int(os.getenv('RETRY_BLOCK_STEP', 5)),
        relay_request_timeout=float(os.getenv('RELAY_REQUEST_TIMEOUT', 30)),
        block_poll_interval=float(os.getenv('BLOCK_POLL_INTERVAL', 1.0)),
    )


def build_relays(settings: Settings, chain, session=None, auth_account=None):
    """One RelayClient per builder url, all sharing the auth identity and watcher."""
    auth_account = auth_account or settings.auth_account()
    watcher = InclusionWatcher(chain, timeout=settings.inclusion_timeout)
    return [
        RelayClient(
            AuthenticatedTransport(url, auth_account, session=session, timeout=settings.relay_request_timeout),
            chain,
            watcher=watcher,
        )
        for url in settings.builder_urls
    ]


def build_chain(settings: Settings) -> ChainClient:
    return ChainClient.from_url(
        settings.rpc_url,
        ws_url=settings.ws_url,
        poll_interval=settings.block_poll_interval,
        request_timeout=settings.relay_request_timeout,
    )


def build_broadcaster(settings: Settings, chain, session=None, auth_account=None) -> MultiRelayBroadcaster:
    relays = build_relays(settings, chain, session=session, auth_account=auth_account)
    return MultiRelayBroadcaster(
        relays,
        chain,
        max_attempts=settings.max_bundle_attempts,
        block_step=settings.retry_block_step,
    )
