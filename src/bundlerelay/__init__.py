from .blocks_api import BlocksApiClient
from .broadcaster import BroadcastResult, MultiRelayBroadcaster
from .capture import CapturingTransactionSink, NetworkTransactionSink, PendingHandle, SinkSigner, TransactionSink
from .chain import ChainClient
from .config import Settings, build_broadcaster, build_chain, build_relays, load_settings
from .conflicts import ConflictAnalyzer
from .errors import (
    BlockStreamClosed,
    BundleRelayError,
    BundleSimulationFailed,
    ConflictAnalysisError,
    CouldNotDecodeSignedTransaction,
    InclusionTimeout,
    InvalidNonceFormat,
    MaxRetriesExceeded,
    NoRelayAccepted,
    TransportError,
)
from .log import configure_logging
from .models import (
    BundleResolution,
    BundleSimulation,
    ConflictReport,
    ConflictType,
    GasPricing,
    InclusionResult,
    RawLeg,
    RelayError,
    RelayOptions,
    SimulatedTransaction,
    TransactionAccountNonce,
    TransactionResolution,
    UnsignedLeg,
)
from .pricing import calculate_bundle_pricing, get_base_fee_in_next_block, get_max_base_fee_in_future_block
from .relay import BundleSubmission, PrivateTransactionSubmission, RelayClient
from .signer import BundleSigner, repack
from .transactions import decode_signed_transaction, generate_bundle_hash, serialize_signed_transaction
from .transport import AuthenticatedTransport
from .watcher import InclusionWatcher
