import os
from typing import Optional
from unittest import mock

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import keccak
from hexbytes import HexBytes

from chain_conformance.chain.address import is_valid_evm_address
from chain_conformance.chain.clients.base import ConsensusLayerClient, ExecuteLayerClient
from chain_conformance.chain.config import CONFIG_FILE_ENV, LOG_DIR_ENV, NETWORK_ENV
from chain_conformance.chain.factory import BlockchainFactory
from chain_conformance.chain.types import TransactionResult, TransactionStatus
from chain_conformance.test_framework.blockchain import Blockchain
from chain_conformance.test_framework.runtime_manager import FrameworkOptions, RuntimeManager, start_logging

FOUNDER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


# pytest hook to add options
def pytest_addoption(parser):
    parser.addoption(
        "--chain-config",
        dest="chain_config_file",
        default=os.environ.get(CONFIG_FILE_ENV),
        help="Network configuration document (.json/.yaml) of the chains under test")
    parser.addoption(
        "--chain-network",
        dest="chain_network",
        default=os.environ.get(NETWORK_ENV),
        help="Network of the configuration document to connect (default: all of them)")
    parser.addoption(
        "--chain-loglevel",
        dest="chain_loglevel",
        default="INFO",
        help=
        "log events at this level and higher to the console. Can be set to DEBUG, INFO, WARNING, ERROR or CRITICAL. Note that logs at all levels are always written to the test_framework.log file in the log directory."
    )
    parser.addoption(
        "--chain-tmpdir",
        dest="chain_tmpdir",
        default=os.environ.get(LOG_DIR_ENV),
        help="Directory for test_framework.log")
    parser.addoption(
        "--chain-tracerpc",
        dest="chain_trace_rpc",
        default=False,
        action="store_true",
        help="Print out all RPC calls as they are made")
    parser.addoption(
        "--chain-timeout",
        dest="chain_timeout",
        default=None,
        type=int,
        help="Override the connection timeout of the configured chains, in milliseconds")


def get_args_from_request(request: pytest.FixtureRequest, tmpdir: str) -> FrameworkOptions:
    return FrameworkOptions(
        config_file=request.config.getoption("chain_config_file"),  # type: ignore
        network=request.config.getoption("chain_network"),  # type: ignore
        loglevel=request.config.getoption("chain_loglevel"),  # type: ignore
        tmpdir=request.config.getoption("chain_tmpdir") or tmpdir,  # type: ignore
        trace_rpc=request.config.getoption("chain_trace_rpc"),  # type: ignore
        timeout_ms=request.config.getoption("chain_timeout"),  # type: ignore
    )


@pytest.fixture(scope="session")
def framework_options(request: pytest.FixtureRequest, tmp_path_factory: pytest.TempPathFactory) -> FrameworkOptions:
    return get_args_from_request(request, str(tmp_path_factory.mktemp("chain_conformance")))


@pytest.fixture(scope="module")
def network(framework_options: FrameworkOptions):
    if not framework_options.config_file:
        pytest.skip("no network configuration given (--chain-config)")
    log = start_logging(framework_options)
    runtime = RuntimeManager(timeout_ms=framework_options.timeout_ms)
    try:
        runtime.connect_to_chain_from_config_file(framework_options.config_file, framework_options.network)
    except Exception as e:
        pytest.fail(f"Failed to connect to network: {e}")
    chain = runtime.get_default_chain()
    chain.log_environment_summary(framework_options.network)
    yield chain
    runtime.cleanup()
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()


# Offline fixtures
##################


class FakeExecuteLayerClient(ExecuteLayerClient):
    def __init__(self, node, w3):
        self.config = node.get_client_config()
        self.node_index = node.index
        self.w3 = w3
        self.connected = True
        self.height = 100
        self.rpc_error: Optional[Exception] = None
        self.timeouts = []
        self.requests = []
        self.sent = []
        self.disconnects = 0

    def is_connected(self, timeout=None):
        self.timeouts.append(timeout)
        if isinstance(self.connected, Exception):
            raise self.connected
        return self.connected

    def disconnect(self):
        self.disconnects += 1

    def get_block_height(self):
        if isinstance(self.height, Exception):
            raise self.height
        return self.height

    def get_network_info(self):
        return {"chain_id": "1337", "block_height": self.height, "network_name": self.config.name}

    def get_provider(self):
        return self.w3

    def send_transaction(self, request, private_key):
        self.sent.append((request, private_key))
        return TransactionResult(hash="0x" + "ab" * 32, status=TransactionStatus.PENDING)

    def make_rpc_call(self, request, request_schema=None, response_schema=None):
        self.requests.append((request, request_schema, response_schema))
        if self.rpc_error is not None:
            raise self.rpc_error
        return {"jsonrpc": "2.0", "id": request.get("id"), "result": hex(self.height + self.node_index)}

    def is_valid_address(self, address):
        return is_valid_evm_address(address)


class FakeConsensusLayerClient(ConsensusLayerClient):
    def __init__(self, node):
        self.config = node.get_client_config()
        self.node_index = node.index
        self.connected = True
        self.height = 100
        self.network_info = {"chain_id": "localnet-1", "block_height": 100, "network_name": "node"}
        self.requests = []
        self.disconnects = 0

    def is_connected(self, timeout=None):
        return self.connected

    def disconnect(self):
        self.disconnects += 1

    def get_block_height(self):
        if isinstance(self.height, Exception):
            raise self.height
        return self.height

    def get_network_info(self):
        if isinstance(self.network_info, Exception):
            raise self.network_info
        return self.network_info

    def make_rpc_request(self, path, params=None, params_schema=None, response_schema=None):
        self.requests.append((path, params, params_schema, response_schema))
        return {"result": {"path": path}}


@pytest.fixture
def founder_account() -> LocalAccount:
    return Account.from_key(FOUNDER_KEY)


@pytest.fixture
def chain_config():
    def make(**overrides) -> dict:
        config = {
            "chainId": "1337",
            "executeLayer": "evm",
            "consensusLayer": "cosmos",
            "executeLayerHttpRpcUrl": "http://rpc.localnet:8545",
            "consensusLayerRpcUrl": "http://rpc.localnet:26657",
            "consensusLayerHttpRestApiUrl": "http://rpc.localnet:1317",
            "timeout": 5000,
            "founderWallet": {"name": "Founder", "privateKey": FOUNDER_KEY},
            "nodes": [
                {"index": 0, "type": "bootnode", "url": "http://10.0.0.10"},
                {"index": 1, "type": "validator", "url": "http://10.0.0.11", "votingPower": 10},
                {"index": 2, "type": "validator", "url": "http://10.0.0.12", "votingPower": 20},
                {"index": 3, "type": "validator", "url": "http://10.0.0.13", "votingPower": 30},
                {"index": 4, "type": "non-validator", "url": "http://10.0.0.14", "active": False},
            ],
        }
        config.update(overrides)
        return config
    return make


@pytest.fixture
def mock_w3():
    w3 = mock.MagicMock(name="w3")
    w3.eth.chain_id = 1337
    w3.eth.gas_price = 10 ** 9
    w3.eth.max_priority_fee = 2 * 10 ** 9
    w3.eth.get_block.return_value = {"baseFeePerGas": 7 * 10 ** 8}
    w3.eth.get_transaction_count.return_value = 5
    w3.eth.send_raw_transaction.side_effect = lambda raw: HexBytes(keccak(bytes(raw)))
    w3.eth.send_transaction.side_effect = lambda tx: HexBytes(keccak(text=repr(sorted(tx.items()))))
    return w3


@pytest.fixture
def fake_clients(monkeypatch: pytest.MonkeyPatch, mock_w3):
    monkeypatch.setattr(BlockchainFactory, "create_execute_layer_client_from_node",
                        staticmethod(lambda node: FakeExecuteLayerClient(node, mock_w3)))
    monkeypatch.setattr(BlockchainFactory, "create_consensus_layer_client_from_node",
                        staticmethod(lambda node: FakeConsensusLayerClient(node)))


@pytest.fixture
def blockchain(fake_clients, chain_config) -> Blockchain:
    chain = Blockchain.connect_network_from_config_file("localnet", chain_config())
    yield chain
    chain.cleanup()
