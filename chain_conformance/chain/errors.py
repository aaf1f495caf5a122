from typing import Iterable, Optional, Sequence


class ChainConformanceError(Exception):
    """Base class of every error raised by the harness."""


class InvalidConfigurationError(ChainConformanceError):
    """Raised when a chain, node or wallet configuration cannot be used."""

    def __init__(self, message: Optional[str] = None, missing_fields: Iterable[str] = ()):
        self.missing_fields = list(missing_fields)
        if message is None:
            message = "Invalid blockchain configuration. Missing required fields: %s" % ", ".join(self.missing_fields)
        super().__init__(message)


class NodeNotFoundError(ChainConformanceError, LookupError):
    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Node with index {index} not found")


class NoActiveNodesError(ChainConformanceError):
    def __init__(self, chain_name: str):
        self.chain_name = chain_name
        super().__init__(f"No active nodes available for blockchain: {chain_name}")


class NoClientConfiguredError(ChainConformanceError):
    """Raised when a node has no client for the requested layer.

    Monitoring code uses it to tell "not applicable" apart from "down".
    """


class RpcUnavailableError(ChainConformanceError):
    """Transport or RPC level failure talking to a node or public endpoint."""


class UnsupportedForLayerError(ChainConformanceError):
    pass


class PortNotConfiguredError(ChainConformanceError):
    pass


class UnsupportedChainTypeError(ChainConformanceError, ValueError):
    pass


class TransactionBatchError(ChainConformanceError):
    """A multi-transaction send aborted.

    `submitted` holds the results that reached the node before the failure and
    `failed_index` the 0-based position of the transaction that failed.
    """

    def __init__(self, message: str, submitted: Sequence = (), failed_index: Optional[int] = None):
        super().__init__(message)
        self.submitted = list(submitted)
        self.failed_index = failed_index


class WaitTimeoutError(ChainConformanceError, AssertionError):
    pass
