#!/usr/bin/env python3
"""A node of a chain under test and the layer clients talking to it"""

import logging
import re
from typing import Any, Mapping, Optional, Tuple

from chain_conformance.chain.clients.base import ConsensusLayerClient, ExecuteLayerClient
from chain_conformance.chain.config import DEFAULT_CONNECTION_TIMEOUT, DEFAULT_PORTS, NODE_PORT_FIELDS
from chain_conformance.chain.errors import (
    ChainConformanceError,
    InvalidConfigurationError,
    NoClientConfiguredError,
    PortNotConfiguredError,
    RpcUnavailableError,
    UnsupportedForLayerError,
)
from chain_conformance.chain.factory import BlockchainFactory
from chain_conformance.chain.types import (
    BlockchainType,
    ClientConfig,
    ConnectivityStatus,
    NodeType,
    TransactionRequest,
    TransactionResult,
)

_BASE_URL_PATTERN = re.compile(r"^(https?://[^:/]+)(:\d+)?(.*)$")
_RPC_PREFIXES = ("eth_", "net_", "web3_", "txpool_", "debug_")


class BlockchainNode:
    """One node of a `Blockchain`.

    Layer clients exist only while the node is active and the ports they need
    are exposed. A port missing from the node config falls back to
    DEFAULT_PORTS, an explicit None marks it as not exposed.
    """

    def __init__(self, node_config: Mapping, blockchain, log: Optional[logging.Logger] = None):
        if node_config.get("index") is None:
            raise InvalidConfigurationError(f"Node entry without index: {dict(node_config)}")
        self.index: int = node_config["index"]
        try:
            self.type = NodeType(node_config.get("type"))
        except ValueError:
            raise InvalidConfigurationError(
                self._node_msg(f"Invalid node type: {node_config.get('type')}")) from None
        self.name = f"{self.type.value}-{self.index}"
        url = node_config.get("rpcUrl") or node_config.get("url")
        if not url:
            raise InvalidConfigurationError(self._node_msg("Node entry needs a url or rpcUrl"))
        self.url: str = url
        self.voting_power: int = node_config.get("votingPower") or 0
        self.blockchain = blockchain
        self.log = log or logging.getLogger("ChainConformance.node%d" % self.index)

        for field, default_key in NODE_PORT_FIELDS.items():
            port = node_config[field] if field in node_config else DEFAULT_PORTS[default_key]
            setattr(self, _snake(field), port)

        self._active = node_config.get("active", True)
        self._execute_layer_client: Optional[ExecuteLayerClient] = None
        self._consensus_layer_client: Optional[ConsensusLayerClient] = None
        if self._active:
            self._initialize_clients()

    def __repr__(self):
        return f"BlockchainNode({self.name}, {self.url}, active={self._active})"

    def __getattr__(self, name):
        """Dispatches eth_* style calls to the execute layer RPC proxy."""
        if not name.startswith(_RPC_PREFIXES):
            raise AttributeError(name)
        client = self.__dict__.get("_execute_layer_client")
        assert client is not None, self._node_msg("Error: no execute layer RPC connection")
        return getattr(client.rpc, name)

    def _node_msg(self, msg: str) -> str:
        """Return a modified msg that identifies this node by its index as a debugging aid."""
        return "[node %d] %s" % (self.index, msg)

    @property
    def active(self) -> bool:
        return self._active

    @active.setter
    def active(self, value: bool):
        if self._active == value:
            return
        self._active = value
        if value:
            self._initialize_clients()
        else:
            self.cleanup()

    def _initialize_clients(self):
        if self.execute_layer_http_rpc_port is not None and self._execute_layer_client is None:
            self._execute_layer_client = BlockchainFactory.create_execute_layer_client_from_node(self)
        if (self.consensus_layer_rpc_port is not None
                and self.consensus_layer_http_rest_api_port is not None
                and self._consensus_layer_client is None):
            self._consensus_layer_client = BlockchainFactory.create_consensus_layer_client_from_node(self)

    def cleanup(self):
        if self._execute_layer_client is not None:
            try:
                self._execute_layer_client.disconnect()
            except Exception as e:
                self.log.warning(self._node_msg(f"Error disconnecting execute layer client: {e}"))
            self._execute_layer_client = None

        if self._consensus_layer_client is not None:
            try:
                self._consensus_layer_client.disconnect()
            except Exception as e:
                self.log.warning(self._node_msg(f"Error disconnecting consensus layer client: {e}"))
            self._consensus_layer_client = None

        self.log.debug(self._node_msg("cleanup completed"))

    def test_connection(self, timeout: Optional[float] = None) -> bool:
        """Check the node with the first available client.

        Tries the execute layer, then the consensus layer, then the REST
        node_info endpoint (bootnodes often expose only REST). Raises
        NoClientConfiguredError when none of them is available.
        """
        if timeout is None:
            timeout = self.blockchain.timeout or DEFAULT_CONNECTION_TIMEOUT

        if self._execute_layer_client is not None:
            return self._is_reachable(self._execute_layer_client, timeout)
        if self._consensus_layer_client is not None:
            return self._is_reachable(self._consensus_layer_client, timeout)
        if self.consensus_layer_http_rest_api_port is not None:
            with BlockchainFactory.create_rest_client_from_node(self) as rest:
                return self._is_reachable(rest, timeout)

        raise NoClientConfiguredError(
            self._node_msg("No RPC client initialized (neither execute layer, consensus layer, nor REST API)"))

    def _is_reachable(self, client, timeout: float) -> bool:
        try:
            return client.is_connected(timeout=timeout)
        except Exception as e:
            self.log.debug(self._node_msg(f"connection test failed: {e}"))
            return False

    def send_transaction(self, request: TransactionRequest, private_key: str) -> TransactionResult:
        if self._execute_layer_client is None:
            raise UnsupportedForLayerError(self._node_msg("Execute layer client not initialized"))
        return self._execute_layer_client.send_transaction(request, private_key)

    def get_block_height(self) -> int:
        errors = []
        for client in (self._execute_layer_client, self._consensus_layer_client):
            if client is None:
                continue
            try:
                return client.get_block_height()
            except ChainConformanceError as e:
                errors.append(str(e))
        if not errors:
            raise RpcUnavailableError(self._node_msg("No layer client initialized"))
        raise RpcUnavailableError(self._node_msg("Failed to get block height: " + "; ".join(errors)))

    def check_connectivity(self) -> ConnectivityStatus:
        status: ConnectivityStatus = {"execute_layer_connected": False, "consensus_layer_connected": False}
        if self._execute_layer_client is not None:
            status["execute_layer_connected"] = self._is_reachable(self._execute_layer_client, self.blockchain.timeout)
        if self._consensus_layer_client is not None:
            status["consensus_layer_connected"] = self._is_reachable(self._consensus_layer_client, self.blockchain.timeout)
        return status

    def _base_url(self) -> str:
        match = _BASE_URL_PATTERN.match(self.url)
        return match.group(1) if match else self.url

    def _port_url(self, port: Optional[int], description: str) -> str:
        if port is None:
            raise PortNotConfiguredError(f"{description} port is not exposed on node {self.name}")
        return f"{self._base_url()}:{port}"

    def get_execute_layer_rpc_url(self) -> str:
        return self._port_url(self.execute_layer_http_rpc_port, "Execute layer RPC")

    def get_consensus_layer_rpc_url(self) -> str:
        return self._port_url(self.consensus_layer_rpc_port, "Consensus layer RPC")

    def get_consensus_layer_rest_url(self) -> str:
        return self._port_url(self.consensus_layer_http_rest_api_port, "Consensus layer REST API")

    def get_network_config(self) -> dict:
        return {
            "url": self.url,
            "consensus_layer_rpc_port": self.consensus_layer_rpc_port,
            "execute_layer_http_rpc_port": self.execute_layer_http_rpc_port,
            "consensus_layer_http_rest_api_port": self.consensus_layer_http_rest_api_port,
        }

    def get_client_config(self) -> ClientConfig:
        return ClientConfig(
            name=self.blockchain.name,
            timeout=self.blockchain.timeout,
            native_token=self.blockchain.native_token,
            address_prefix=self.blockchain.address_prefix,
        )

    def get_execute_layer_client(self) -> Optional[ExecuteLayerClient]:
        return self._execute_layer_client

    def get_consensus_layer_client(self) -> Optional[ConsensusLayerClient]:
        return self._consensus_layer_client

    def get_client(self, layer_type: BlockchainType):
        if layer_type == self.blockchain.execute_layer:
            if self._execute_layer_client is None:
                raise NoClientConfiguredError(self._node_msg("Execute layer client not initialized"))
            return self._execute_layer_client
        if layer_type == self.blockchain.consensus_layer:
            if self._consensus_layer_client is None:
                raise NoClientConfiguredError(self._node_msg("Consensus layer client not initialized"))
            return self._consensus_layer_client
        raise NoClientConfiguredError(self._node_msg(f"Client for type {layer_type} not available"))

    def make_rpc_request(self, request: dict) -> Tuple[Any, Optional[Exception]]:
        """Send a raw JSON-RPC envelope, returning (response, None) or (None, error)."""
        try:
            if self._execute_layer_client is None:
                raise UnsupportedForLayerError(self._node_msg("Execute layer client not initialized"))
            return self._execute_layer_client.make_rpc_call(request), None
        except Exception as e:
            return None, e


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
