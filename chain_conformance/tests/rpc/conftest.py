import pytest

from chain_conformance.chain.clients.base import ExecuteLayerClient
from chain_conformance.test_framework.blockchain import Blockchain


@pytest.fixture(scope="module")
def client(network: Blockchain) -> ExecuteLayerClient:
    return network.get_default_execute_layer_client()
