from abc import ABC, abstractmethod
from typing import Any, Optional

from ..types import ClientConfig, NetworkInfo


class LayerClient(ABC):
    config: ClientConfig

    @abstractmethod
    def is_connected(self, timeout: Optional[float] = None) -> bool:
        """Lightweight liveness check. Never raises."""

    def connect(self) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Release network resources. Safe to call more than once."""

    @abstractmethod
    def get_block_height(self) -> int:
        ...

    @abstractmethod
    def get_network_info(self) -> NetworkInfo:
        ...

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()


class ExecuteLayerClient(LayerClient):
    """Execution layer capabilities: accounts, transactions and raw JSON-RPC."""

    @abstractmethod
    def get_provider(self) -> Any:
        ...

    @abstractmethod
    def send_transaction(self, request, private_key: str):
        ...

    @abstractmethod
    def make_rpc_call(self, request: dict, request_schema: Optional[dict] = None,
                      response_schema: Optional[dict] = None) -> dict:
        ...

    @abstractmethod
    def is_valid_address(self, address: str) -> bool:
        ...


class ConsensusLayerClient(LayerClient):
    """Consensus layer capabilities: path + query requests against RPC or REST."""

    @abstractmethod
    def make_rpc_request(self, path: str, params: Optional[dict] = None,
                         params_schema: Optional[dict] = None,
                         response_schema: Optional[dict] = None) -> Any:
        ...
