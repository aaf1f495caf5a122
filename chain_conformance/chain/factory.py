from typing import List, Mapping

from .clients.base import ConsensusLayerClient, ExecuteLayerClient
from .clients.cosmos_consensus_client import CometBftConsensusClient, CosmosRestClient
from .clients.evm_execute_client import EvmExecuteClient
from .config import REQUIRED_CHAIN_FIELDS
from .errors import UnsupportedChainTypeError
from .types import BlockchainType


class BlockchainFactory:
    """Creates layer clients for a node, dispatching on the chain's layer types.

    `node` is anything shaped like a BlockchainNode: it exposes `blockchain`,
    `get_client_config()` and the `get_*_url()` helpers.
    """

    @staticmethod
    def create_execute_layer_client_from_node(node) -> ExecuteLayerClient:
        layer = node.blockchain.execute_layer
        if layer in (BlockchainType.EVM, BlockchainType.COSMOS):
            # Cosmos chains run an EVM execution layer too
            return EvmExecuteClient(node.get_client_config(), node.get_execute_layer_rpc_url())
        raise UnsupportedChainTypeError(f"Unsupported execute layer type: {layer}")

    @staticmethod
    def create_rest_client_from_node(node) -> CosmosRestClient:
        return CosmosRestClient(
            node.get_client_config(),
            node.get_consensus_layer_rest_url(),
            path_prefix=node.blockchain.consensus_rest_api_path_prefix,
            api_version=node.blockchain.consensus_rest_api_version,
        )

    @staticmethod
    def create_consensus_layer_client_from_node(node) -> ConsensusLayerClient:
        layer = node.blockchain.consensus_layer
        if layer in (BlockchainType.COSMOS, BlockchainType.EVM):
            return CometBftConsensusClient(
                node.get_client_config(),
                node.get_consensus_layer_rpc_url(),
                BlockchainFactory.create_rest_client_from_node(node),
            )
        raise UnsupportedChainTypeError(f"Unsupported consensus layer type: {layer}")

    @staticmethod
    def validate_config(config: Mapping) -> List[str]:
        """Return the required chain fields missing from `config`, empty when valid."""
        return [f for f in REQUIRED_CHAIN_FIELDS if config.get(f) in (None, "")]

    @staticmethod
    def get_supported_types() -> List[BlockchainType]:
        return [BlockchainType.EVM, BlockchainType.COSMOS]
