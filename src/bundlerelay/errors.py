class BundleRelayError(Exception):
    """Base class for every exception raised by bundlerelay."""


class TransportError(BundleRelayError):
    """Network failure, timeout or malformed response from a relay endpoint."""

    def __init__(self, url, message):
        super().__init__(f"{url}: {message}")
        self.url = url


class InvalidNonceFormat(BundleRelayError):
    pass


class CouldNotDecodeSignedTransaction(BundleRelayError):
    pass


class InclusionTimeout(BundleRelayError):
    pass


class BlockStreamClosed(BundleRelayError):
    """The new-block stream ended, e.g. the node closed the websocket."""


class NoRelayAccepted(BundleRelayError):
    pass


class MaxRetriesExceeded(BundleRelayError):
    def __init__(self, attempts, last_target_block):
        super().__init__(
            f"Bundle not included after {attempts} attempts (last target block {last_target_block})"
        )
        self.attempts = attempts
        self.last_target_block = last_target_block


class BundleSimulationFailed(BundleRelayError):
    """Raised by send_bundle when the pre-flight simulation errors or reverts."""

    def __init__(self, detail):
        super().__init__(f"Bundle simulation failed: {detail}")
        self.detail = detail


class ConflictAnalysisError(BundleRelayError):
    pass
