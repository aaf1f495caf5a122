#!/usr/bin/env python3
"""Multi-node chain under test: node selection, RPC routing and transaction helpers"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from functools import cached_property
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import requests
from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3

from chain_conformance.chain.clients.base import ConsensusLayerClient, ExecuteLayerClient
from chain_conformance.chain.clients.evm_execute_client import EvmExecuteClient
from chain_conformance.chain.config import (
    DEFAULT_BLOCK_NUMBER_POLL_INTERVAL,
    DEFAULT_BLOCK_WAIT_TIMEOUT,
    DEFAULT_BLOCKS_POLL_INTERVAL,
    DEFAULT_RPC_TIMEOUT,
    DEFAULT_TRANSACTION_TIMEOUT,
    DEFAULT_TX_GAS,
)
from chain_conformance.chain.errors import (
    ChainConformanceError,
    InvalidConfigurationError,
    NoActiveNodesError,
    NoClientConfiguredError,
    NodeNotFoundError,
    RpcUnavailableError,
    TransactionBatchError,
    UnsupportedChainTypeError,
    UnsupportedForLayerError,
    WaitTimeoutError,
)
from chain_conformance.chain.factory import BlockchainFactory
from chain_conformance.chain.types import (
    BlockchainType,
    ClientConfig,
    ConfirmationResult,
    ConnectivityStatus,
    FailedFunding,
    FundedWallet,
    FundingResult,
    NetworkInfo,
    NodeHealth,
    NodeResponse,
    NodeType,
    ReceiptSummary,
    SendAndConfirmResult,
    TransactionRequest,
    TransactionResult,
    TransactionStatus,
    ValidatorSelection,
    VotingPowerScenario,
)
from chain_conformance.chain.wallet import ConnectedWallet, Wallet, WalletFactory
from chain_conformance.test_framework.blockchain_node import BlockchainNode
from chain_conformance.test_framework.util import apply_fee_data, ether_to_wei, get_fee_data, wait_until, wei_to_ether

_SCHEME = re.compile(r"^https?://")
COSMOS_EXAMPLE_RECIPIENT = "cosmos1example123456789abcdefghijk"


class Blockchain:
    """A chain under test and the nodes it is reachable through.

    Operations without an explicit `node_index` go to the first active node
    that is not a bootnode. The `*_via_public_endpoint` helpers bypass the
    node list and talk to the chain's top level URLs instead.
    """

    def __init__(self, name: str, config: Mapping, *, founder_wallet: Optional[Wallet] = None,
                 log: Optional[logging.Logger] = None):
        self.name = name
        self.chain_id = str(config["chainId"])
        self.execute_layer = BlockchainType(config["executeLayer"])
        self.consensus_layer = BlockchainType(config["consensusLayer"])
        self.chain_type = BlockchainType(config.get("chainType") or config["executeLayer"])
        self.native_token: Optional[str] = config.get("nativeToken")
        self.address_prefix: Optional[str] = config.get("addressPrefix")

        self.execute_layer_http_rpc_url: str = config["executeLayerHttpRpcUrl"]
        self.consensus_layer_rpc_url: Optional[str] = config.get("consensusLayerRpcUrl")
        self.consensus_layer_http_rest_api_url: Optional[str] = config.get("consensusLayerHttpRestApiUrl")
        self.consensus_rest_api_path_prefix: str = config.get("consensusRestApiPathPrefix") or ""
        self.consensus_rest_api_version: str = config.get("consensusRestApiVersion") or ""

        # milliseconds in the config document, seconds from here on
        timeout_ms = config.get("timeout")
        self.timeout: Optional[float] = timeout_ms / 1000 if timeout_ms is not None else None

        self.nodes: List[BlockchainNode] = []
        self._founder_wallet = founder_wallet
        self.log = log or logging.getLogger("ChainConformance")

    def __repr__(self):
        return f"Blockchain({self.name}, chain_id={self.chain_id}, nodes={len(self.nodes)})"

    @classmethod
    def connect_network_from_config_file(cls, name: str, config: Mapping, *,
                                         founder_wallet: Optional[Wallet] = None,
                                         log: Optional[logging.Logger] = None) -> "Blockchain":
        missing = BlockchainFactory.validate_config(config or {})
        if missing:
            raise InvalidConfigurationError(missing_fields=missing)

        if founder_wallet is None and config.get("founderWallet"):
            founder_wallet = WalletFactory.create_wallet_from_config(
                BlockchainType(config["executeLayer"]), config["founderWallet"])

        instance = cls(name, config, founder_wallet=founder_wallet, log=log)
        try:
            for node_config in config.get("nodes") or []:
                instance._add_node(BlockchainNode(node_config, instance))
        except ChainConformanceError:
            instance.cleanup()
            raise
        return instance

    @property
    def founder_wallet(self) -> Optional[Wallet]:
        return self._founder_wallet

    def replace_founder_wallet(self, wallet: Wallet):
        self.log.info("Founder wallet of %s replaced: %s", self.name, wallet.address)
        self._founder_wallet = wallet

    def _founder_private_key(self) -> str:
        if self._founder_wallet is None or not self._founder_wallet.private_key:
            raise InvalidConfigurationError("Founder wallet private key is required")
        return self._founder_wallet.private_key

    def _require_evm(self, operation: str):
        if self.execute_layer != BlockchainType.EVM:
            raise UnsupportedForLayerError(
                f"{operation} requires EVM-compatible blockchain, got: {self.execute_layer.value}")

    # Node management
    #################

    def _add_node(self, node: BlockchainNode):
        if any(existing.index == node.index for existing in self.nodes):
            node.cleanup()
            raise InvalidConfigurationError(f"Duplicate node index {node.index} in network {self.name}")
        self.nodes.append(node)

    def remove_node(self, index: int) -> bool:
        for position, node in enumerate(self.nodes):
            if node.index == index:
                del self.nodes[position]
                self.log.info("Node-%d has been removed from the blockchain", index)
                return True
        return False

    def get_node(self, index: int) -> BlockchainNode:
        for node in self.nodes:
            if node.index == index:
                return node
        raise NodeNotFoundError(index)

    def get_active_nodes(self) -> List[BlockchainNode]:
        return [node for node in self.nodes if node.active]

    def get_active_not_boot_nodes(self) -> List[BlockchainNode]:
        return [node for node in self.nodes if node.active and node.type != NodeType.BOOTNODE]

    def get_nodes_by_type(self, node_type: NodeType) -> List[BlockchainNode]:
        return [node for node in self.nodes if node.type == node_type]

    def has_active_bootnodes(self) -> bool:
        return any(node.type == NodeType.BOOTNODE and node.active for node in self.nodes)

    def _select_node(self, node_index: Optional[int] = None) -> BlockchainNode:
        if node_index is not None:
            return self.get_node(node_index)
        nodes = self.get_active_not_boot_nodes()
        if not nodes:
            raise NoActiveNodesError(self.name)
        return nodes[0]

    def set_node_active(self, index: int, active: bool):
        self.get_node(index).active = active
        self.log.info("Node-%d is now %s", index, "active" if active else "inactive")

    def deactivate_node(self, index: int):
        self.set_node_active(index, False)

    def activate_node(self, index: int):
        self.set_node_active(index, True)

    # Connectivity
    ##############

    def test_connectivity(self, timeout: Optional[float] = None) -> Dict[int, bool]:
        """Check connectivity of every active node.

        Inactive nodes and nodes without any testable endpoint are left out of
        the result, other failures map the node to False.
        """
        results = {}
        if timeout is None:
            timeout = self.timeout

        for node in self.nodes:
            label = "bootnode" if node.type == NodeType.BOOTNODE else self.chain_type.value
            if not node.active:
                self.log.info("Node-%d (%s): skipped (inactive)", node.index, label)
                continue
            try:
                connected = node.test_connection(timeout)
            except NoClientConfiguredError:
                self.log.info("Node-%d (%s): skipped (no testable endpoints)", node.index, label)
                continue
            except Exception as e:
                self.log.warning("Node-%d (%s): error - %s", node.index, label, e)
                connected = False
            results[node.index] = connected
            self.log.info("Node-%d (%s): %s", node.index, label, "connected" if connected else "not connected")
        return results

    def health_check(self) -> Dict[int, NodeHealth]:
        health = {}
        for node in self.nodes:
            status: NodeHealth = {
                "index": node.index,
                "type": node.type,
                "active": node.active,
                "connected": False,
                "error": None,
            }
            if node.active:
                try:
                    status["connected"] = node.test_connection()
                except Exception as e:
                    status["error"] = str(e)
            health[node.index] = status
        return health

    def check_nodes_connectivity(self, node_ips: Iterable[str]) -> Dict[str, ConnectivityStatus]:
        results = {}
        for ip in node_ips:
            wanted = _SCHEME.sub("", ip)
            node = next((n for n in self.nodes if _SCHEME.sub("", n.url) == wanted), None)
            if node is None:
                self.log.warning("Node %s not found in blockchain nodes list", ip)
                results[ip] = {"execute_layer_connected": False, "consensus_layer_connected": False}
            else:
                results[ip] = node.check_connectivity()
        return results

    # Transactions
    ##############

    def send_transaction(self, request: TransactionRequest, private_key: str,
                         node_index: Optional[int] = None) -> TransactionResult:
        return self._select_node(node_index).send_transaction(request, private_key)

    def send_simple_transaction(self, to: str, value: str, private_key: str, *,
                                max_priority_fee_per_gas: Optional[int] = None,
                                gas_limit: Optional[int] = None,
                                gas_price: Optional[int] = None,
                                node_index: Optional[int] = None) -> TransactionResult:
        """Send `value` ether to `to`."""
        request = TransactionRequest(
            to=to,
            amount=str(ether_to_wei(value)),
            gas_limit=gas_limit,
            gas_price=gas_price,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
        )
        return self.send_transaction(request, private_key, node_index)

    def sign_transaction(self, tx: Mapping, private_key: str) -> HexBytes:
        tx = dict(tx)
        tx.setdefault("chainId", int(self.chain_id))
        return Account.from_key(private_key).sign_transaction(tx).raw_transaction

    def send_unprotected_transaction(self, to: str, value: str = "0.01", private_key: Optional[str] = None,
                                     node_index: Optional[int] = None) -> TransactionResult:
        """Send a legacy transaction signed without chain id (pre EIP-155)."""
        self._require_evm("send_unprotected_transaction")
        account = Account.from_key(private_key or self._founder_private_key())
        if node_index is not None:
            client = self.get_node(node_index).get_execute_layer_client()
            if client is None:
                raise UnsupportedForLayerError(f"Node {node_index} has no execute layer client")
            w3 = client.get_provider()
        else:
            w3 = self._public_client.get_provider()

        nonce = w3.eth.get_transaction_count(account.address, "pending")
        tx = {
            "to": Web3.to_checksum_address(to),
            "value": ether_to_wei(value),
            "nonce": nonce,
            "gas": DEFAULT_TX_GAS,
            "gasPrice": w3.eth.gas_price,
        }
        tx_hash = w3.eth.send_raw_transaction(account.sign_transaction(tx).raw_transaction)
        return TransactionResult(hash=HexBytes(tx_hash).to_0x_hex(), status=TransactionStatus.PENDING, nonce=nonce)

    def _build_batch(self, transactions: Sequence[Mapping], wallet: ConnectedWallet,
                     priority_fee_per_gas: Optional[int]) -> List[dict]:
        w3 = wallet.w3
        base_nonce = w3.eth.get_transaction_count(wallet.address, "pending")
        fee_data = get_fee_data(w3)
        chain_id = w3.eth.chain_id

        batch = []
        for i, transaction in enumerate(transactions):
            tx = {
                "to": Web3.to_checksum_address(transaction["to"]),
                "value": ether_to_wei(transaction["value"]),
                "nonce": base_nonce + i,
                "gas": DEFAULT_TX_GAS,
                "chainId": chain_id,
            }
            apply_fee_data(tx, fee_data, priority_fee_per_gas)
            batch.append(tx)
        return batch

    def _batch_wallet(self, from_wallet: Optional[ConnectedWallet]) -> ConnectedWallet:
        return from_wallet if from_wallet is not None else self.create_founder_wallet()

    def send_multiple_transactions(self, transactions: Sequence[Mapping],
                                   from_wallet: Optional[ConnectedWallet] = None,
                                   priority_fee_per_gas: Optional[int] = None) -> List[TransactionResult]:
        """Send `{"to", "value"}` transfers one after another with consecutive nonces.

        The pending nonce and the fee data are read once. On failure a
        TransactionBatchError carries the results submitted so far.
        """
        self._require_evm("send_multiple_transactions")
        try:
            wallet = self._batch_wallet(from_wallet)
            batch = self._build_batch(transactions, wallet, priority_fee_per_gas)
        except Exception as e:
            raise TransactionBatchError(f"Failed to send multiple transactions: {e}") from e

        results = []
        for i, tx in enumerate(batch):
            try:
                tx_hash = wallet.send_transaction(tx)
            except Exception as e:
                raise TransactionBatchError(f"Failed to send multiple transactions: {e}",
                                            submitted=results, failed_index=i) from e
            results.append(TransactionResult(hash=HexBytes(tx_hash).to_0x_hex(),
                                             status=TransactionStatus.PENDING, nonce=tx["nonce"]))
        return results

    def send_multiple_transactions_concurrent(self, transactions: Sequence[Mapping],
                                              from_wallet: Optional[ConnectedWallet] = None,
                                              priority_fee_per_gas: Optional[int] = None) -> List[TransactionResult]:
        """Like send_multiple_transactions, but submits all transactions at once.

        Nonces are assigned before submission. Results keep the input order.
        """
        self._require_evm("send_multiple_transactions_concurrent")
        try:
            wallet = self._batch_wallet(from_wallet)
            batch = self._build_batch(transactions, wallet, priority_fee_per_gas)
        except Exception as e:
            raise TransactionBatchError(f"Failed to send multiple transactions concurrently: {e}") from e
        if not batch:
            return []

        with ThreadPoolExecutor() as executor:
            futures = [executor.submit(wallet.send_transaction, tx) for tx in batch]

        results = []
        failure = None
        for i, (tx, future) in enumerate(zip(batch, futures)):
            try:
                tx_hash = future.result()
            except Exception as e:
                if failure is None:
                    failure = (i, e)
                continue
            results.append(TransactionResult(hash=HexBytes(tx_hash).to_0x_hex(),
                                             status=TransactionStatus.PENDING, nonce=tx["nonce"]))
        if failure is not None:
            failed_index, error = failure
            raise TransactionBatchError(f"Failed to send multiple transactions concurrently: {error}",
                                        submitted=results, failed_index=failed_index) from error
        return results

    def create_and_fund_wallets(self, count: int, funding_amount: str = "0.1",
                                from_wallet: Optional[ConnectedWallet] = None) -> FundingResult:
        """Create `count` wallets and fund each with `funding_amount` ether.

        Never raises for funding failures: every wallet gets either a
        FundedWallet or a FailedFunding entry.
        """
        self.log.info("Generating %d new wallets...", count)
        wallets = [self.create_wallet() for _ in range(count)]
        for i, wallet in enumerate(wallets):
            self.log.debug("Generated wallet %d: %s", i + 1, wallet.address)

        self.log.info("Funding wallets with %s %s...", funding_amount, self.native_token or "ETH")
        submitted: List[TransactionResult] = []
        error = "not submitted"
        try:
            submitted = self.send_multiple_transactions(
                [{"to": wallet.address, "value": funding_amount} for wallet in wallets], from_wallet)
        except ChainConformanceError as e:
            self.log.error("Failed to fund wallets in batch: %s", e)
            submitted = getattr(e, "submitted", [])
            error = str(e)

        funding = []
        for i, wallet in enumerate(wallets):
            if i < len(submitted):
                self.log.info("Funded wallet %d: %s -> Hash: %s", i + 1, wallet.address, submitted[i].hash)
                funding.append(FundedWallet(wallet=wallet, tx=submitted[i], index=i + 1))
            else:
                funding.append(FailedFunding(wallet=wallet, index=i + 1, error=error))
        return FundingResult(wallets=wallets, funding=funding)

    def wait_for_transaction_confirmations(self, fundings: Sequence[Union[FundedWallet, FailedFunding]],
                                           timeout: float = DEFAULT_TRANSACTION_TIMEOUT) -> List[ConfirmationResult]:
        if not fundings:
            return []
        self.log.info("Waiting for %d transactions to be confirmed...", len(fundings))
        w3 = self.get_default_execute_layer_client().get_provider()

        def confirm(funding) -> ConfirmationResult:
            if not funding.success:
                return ConfirmationResult(success=False, index=funding.index, error=funding.error)
            try:
                receipt = w3.eth.wait_for_transaction_receipt(funding.tx.hash, timeout=timeout)
            except Exception as e:
                self.log.error("Transaction %d failed: %s", funding.index, e)
                return ConfirmationResult(success=False, index=funding.index, error=str(e))
            self.log.info("Transaction %d confirmed in block: %s", funding.index, receipt["blockNumber"])
            return ConfirmationResult(success=True, index=funding.index, block_number=receipt["blockNumber"])

        with ThreadPoolExecutor() as executor:
            results = list(executor.map(confirm, fundings))
        self.log.info("%d/%d transactions confirmed", sum(r.success for r in results), len(results))
        return results

    def wait_for_transaction(self, tx_hash: str,
                             timeout: float = DEFAULT_TRANSACTION_TIMEOUT) -> Optional[ReceiptSummary]:
        if self.execute_layer != BlockchainType.EVM:
            self.log.warning("wait_for_transaction only supports EVM chains")
            return None
        try:
            w3 = self.get_default_execute_layer_client().get_provider()
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except Exception as e:
            self.log.warning("Failed to wait for transaction %s: %s", tx_hash, e)
            return None
        return {
            "block_hash": HexBytes(receipt["blockHash"]).to_0x_hex(),
            "block_number": receipt["blockNumber"],
            "status": receipt.get("status", 0),
        }

    def send_and_confirm(self, to: str, value: str = "0.01",
                         private_key: Optional[str] = None) -> Optional[SendAndConfirmResult]:
        try:
            tx = self.send_simple_transaction(to, value, private_key or self._founder_private_key())
            self.log.info("Transaction sent: %s", tx.hash)
            receipt = self.wait_for_transaction(tx.hash)
        except Exception as e:
            self.log.warning("send_and_confirm failed: %s", e)
            return None
        if receipt is None:
            return None
        self.log.info("Transaction confirmed in block %d", receipt["block_number"])
        return {
            "tx_hash": tx.hash,
            "block_hash": receipt["block_hash"],
            "block_number": receipt["block_number"],
        }

    # Blocks
    ########

    def get_block_height(self, node_index: Optional[int] = None) -> int:
        return self._select_node(node_index).get_block_height()

    def wait_for_block_number(self, target_block: int, node_index: Optional[int] = None, *,
                              poll_interval: float = DEFAULT_BLOCK_NUMBER_POLL_INTERVAL,
                              timeout: float = DEFAULT_BLOCK_WAIT_TIMEOUT):
        try:
            wait_until(lambda: self.get_block_height(node_index) >= target_block,
                       timeout=timeout, poll_interval=poll_interval)
        except WaitTimeoutError as e:
            raise WaitTimeoutError(f"Block {target_block} not reached after {timeout} seconds") from e

    def wait_for_blocks(self, block_count: int, poll_interval: float = DEFAULT_BLOCKS_POLL_INTERVAL,
                        node_index: Optional[int] = None, *, timeout: float = DEFAULT_BLOCK_WAIT_TIMEOUT):
        start_block = self.get_block_height(node_index)
        target_block = start_block + block_count
        self.log.info("Waiting for %d blocks (current: %d, target: %d)...", block_count, start_block, target_block)
        self.wait_for_block_number(target_block, node_index, poll_interval=poll_interval, timeout=timeout)
        self.log.info("Reached block %d", target_block)

    # Validators
    ############

    def select_validators_by_voting_power(
            self, scenario: Union[VotingPowerScenario, str]) -> ValidatorSelection:
        """Pick active validators whose combined voting power matches a 1/3 scenario.

        The target is floor(total / 3) minus one, plus zero or plus one. "less"
        takes the largest single validator at or below the target, "exactly" a
        single exact match, "more" accumulates from the smallest upwards until
        the target is reached.
        """
        scenario = VotingPowerScenario(scenario)
        validators = [node for node in self.get_nodes_by_type(NodeType.VALIDATOR) if node.active]
        total = sum(node.voting_power for node in validators)
        third = total // 3

        if scenario == VotingPowerScenario.LESS_THAN_ONE_THIRD:
            target = third - 1
            description = f"less than 1/3 ({target}/{total})"
        elif scenario == VotingPowerScenario.EXACTLY_ONE_THIRD:
            target = third
            description = f"exactly 1/3 ({target}/{total})"
        else:
            target = third + 1
            description = f"more than 1/3 ({target}/{total})"

        ordered = sorted(validators, key=lambda node: node.voting_power)
        selected = []
        achieved = 0

        if scenario == VotingPowerScenario.EXACTLY_ONE_THIRD:
            match = next((node for node in ordered if node.voting_power == target), None)
            if match is not None:
                selected.append(match.index)
                achieved = match.voting_power
        elif scenario == VotingPowerScenario.LESS_THAN_ONE_THIRD:
            fitting = [node for node in ordered if node.voting_power <= target]
            if fitting:
                selected.append(fitting[-1].index)
                achieved = fitting[-1].voting_power
        else:
            for node in ordered:
                if achieved >= target:
                    break
                selected.append(node.index)
                achieved += node.voting_power

        return ValidatorSelection(
            validators=selected,
            total_voting_power=total,
            target_voting_power=target,
            achieved_voting_power=achieved,
            scenario_description=description,
        )

    # Wallets
    #########

    def create_test_account(self, private_key: Optional[str] = None) -> dict:
        wallet = WalletFactory.create_wallet(self.execute_layer, private_key)
        self.log.info("Created test account for %s (%s): %s", self.name, self.execute_layer.value, wallet.address)
        return {"address": wallet.address, "private_key": wallet.private_key}

    def create_wallet(self, private_key: Optional[str] = None) -> ConnectedWallet:
        """Wallet bound to the default node's provider, random when no key is given."""
        self._require_evm("create_wallet")
        w3 = self.get_default_execute_layer_client().get_provider()
        account = Account.from_key(private_key) if private_key else Account.create()
        return ConnectedWallet(account, w3)

    def create_founder_wallet(self) -> ConnectedWallet:
        self._require_evm("create_founder_wallet")
        return self.create_wallet(self._founder_private_key())

    def get_wallet_balance(self, wallet_address: Optional[str] = None,
                           block_number: Optional[int] = None) -> str:
        self._require_evm("get_wallet_balance")
        address = wallet_address or (self._founder_wallet.address if self._founder_wallet else None)
        if not address:
            raise InvalidConfigurationError("Wallet address is required")
        w3 = self.get_default_execute_layer_client().get_provider()
        block = block_number if block_number is not None else "latest"
        return wei_to_ether(w3.eth.get_balance(Web3.to_checksum_address(address), block))

    # Clients
    #########

    def get_execute_layer_client(self, node_index: Optional[int] = None) -> ExecuteLayerClient:
        if node_index is None:
            return self.get_default_execute_layer_client()
        node = self.get_node(node_index)
        if not node.active:
            raise NoClientConfiguredError(f"Node {node_index} is not active")
        client = node.get_execute_layer_client()
        if client is None:
            raise NoClientConfiguredError(f"No client available for node index: {node_index}")
        return client

    def get_default_execute_layer_client(self) -> ExecuteLayerClient:
        client = self._select_node().get_execute_layer_client()
        if client is None:
            raise NoClientConfiguredError(
                f"No execute layer client available for the first active node of blockchain: {self.name}")
        return client

    def get_default_consensus_layer_client(self) -> ConsensusLayerClient:
        client = self._select_node().get_consensus_layer_client()
        if client is None:
            raise NoClientConfiguredError(
                f"No consensus layer client available for the first active node of blockchain: {self.name}")
        return client

    def get_network_info(self) -> Union[NetworkInfo, Dict[str, str]]:
        try:
            return self.get_default_consensus_layer_client().get_network_info()
        except Exception as e:
            self.log.warning("Failed to get network info for %s: %s", self.name, e)
            return {"error": str(e)}

    def validate_address(self, address: str) -> bool:
        try:
            return self.get_default_execute_layer_client().is_valid_address(address)
        except Exception as e:
            self.log.warning("Address validation failed: %s", e)
            return False

    def create_transaction_request(self, account: str) -> TransactionRequest:
        memo = f"Test transaction from {self.name}"
        if self.execute_layer == BlockchainType.EVM:
            return TransactionRequest(to=account, amount=str(ether_to_wei("0.01")), memo=memo)
        if self.execute_layer == BlockchainType.COSMOS:
            return TransactionRequest(to=COSMOS_EXAMPLE_RECIPIENT, amount="0.1", memo=memo)
        raise UnsupportedChainTypeError(f"Unsupported blockchain type: {self.execute_layer.value}")

    # RPC dispatch
    ##############

    def make_rpc_call(self, request: dict, request_schema: Optional[dict] = None,
                      response_schema: Optional[dict] = None, node_index: Optional[int] = None) -> dict:
        client = self.get_execute_layer_client(node_index)
        return client.make_rpc_call(request, request_schema, response_schema)

    def make_consensus_rpc_call(self, path: str, params: Optional[dict] = None,
                                params_schema: Optional[dict] = None, response_schema: Optional[dict] = None,
                                node_index: Optional[int] = None):
        client = self._select_node(node_index).get_consensus_layer_client()
        if client is None:
            raise NoClientConfiguredError("Consensus layer client not initialized")
        return client.make_rpc_request(path, params, params_schema, response_schema)

    def get_multiple_node_responses(self, request: dict,
                                    node_indices: Optional[Sequence[int]] = None) -> List[NodeResponse]:
        if node_indices is not None:
            targets = [self.get_node(i) for i in node_indices]
        else:
            targets = self.get_active_not_boot_nodes()
        if not targets:
            return []

        def query(node: BlockchainNode) -> NodeResponse:
            response, error = node.make_rpc_request(request)
            return NodeResponse(node_index=node.index, response=response, error=error)

        with ThreadPoolExecutor() as executor:
            futures = [executor.submit(query, node) for node in targets]

        results = []
        for future in futures:
            try:
                results.append(future.result())
            except Exception as e:
                results.append(NodeResponse(node_index=-1, response=None, error=e))
        return results

    # Public endpoint
    #################

    @cached_property
    def _public_client(self) -> EvmExecuteClient:
        config = ClientConfig(name=self.name, timeout=self.timeout, native_token=self.native_token,
                              address_prefix=self.address_prefix)
        return EvmExecuteClient(config, self.execute_layer_http_rpc_url)

    @cached_property
    def _public_session(self) -> requests.Session:
        return requests.Session()

    def get_execute_layer_rpc_url(self) -> str:
        return self.execute_layer_http_rpc_url

    def get_consensus_layer_rpc_url(self) -> str:
        if not self.consensus_layer_rpc_url:
            raise InvalidConfigurationError("Consensus layer RPC URL is not configured")
        return self.consensus_layer_rpc_url

    def get_consensus_layer_rest_url(self) -> str:
        if not self.consensus_layer_http_rest_api_url:
            raise InvalidConfigurationError("Consensus layer REST API URL is not configured")
        return self.consensus_layer_http_rest_api_url

    def send_simple_transaction_via_public_endpoint(self, to: str, value: str,
                                                    private_key: Optional[str] = None) -> TransactionResult:
        request = TransactionRequest(to=to, amount=str(ether_to_wei(value)))
        return self._public_client.send_transaction(request, private_key or self._founder_private_key())

    def send_transaction_via_public_endpoint(self, request: TransactionRequest,
                                             private_key: str) -> TransactionResult:
        return self._public_client.send_transaction(request, private_key)

    def make_rpc_call_via_public_endpoint(self, request: dict, request_schema: Optional[dict] = None,
                                          response_schema: Optional[dict] = None) -> dict:
        return self._public_client.make_rpc_call(request, request_schema, response_schema)

    def make_consensus_rpc_call_via_public_endpoint(self, path: str, params: Optional[Mapping] = None):
        url = f"{self.get_consensus_layer_rpc_url()}{path}"
        query = {
            key: str(value).lower() if isinstance(value, bool) else value
            for key, value in (params or {}).items() if value is not None
        }
        try:
            response = self._public_session.get(url, params=query or None, timeout=DEFAULT_RPC_TIMEOUT)
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise RpcUnavailableError(f"Consensus RPC request to {url} failed: {e}") from e

    def create_wallet_via_public_endpoint(self, private_key: Optional[str] = None) -> ConnectedWallet:
        self._require_evm("create_wallet_via_public_endpoint")
        account = Account.from_key(private_key) if private_key else Account.create()
        return ConnectedWallet(account, self._public_client.get_provider())

    # Lifecycle
    ###########

    def log_environment_summary(self, env_name: Optional[str] = None):
        self.log.info("=" * 60)
        self.log.info("TEST ENVIRONMENT SUMMARY")
        self.log.info("   Chain Name: %s", self.name)
        self.log.info("   Chain ID: %s", self.chain_id)
        if env_name:
            self.log.info("   Environment: %s", env_name)
        self.log.info("   Consensus Layer: %s", self.consensus_layer.value)
        self.log.info("   EVM RPC URL: %s", self.execute_layer_http_rpc_url)
        self.log.info("   Total Nodes: %d, Active Nodes: %d", len(self.nodes), len(self.get_active_nodes()))
        for node in self.nodes:
            port_info = f", CometBFT port: {node.consensus_layer_rpc_port}" if node.consensus_layer_rpc_port else ""
            self.log.info("   %s Node %d: %s (%s%s)", "+" if node.active else "-", node.index, node.url,
                          node.type.value, port_info)
        founder = self._founder_wallet.address if self._founder_wallet else "N/A"
        self.log.info("   Founder Wallet: %s", founder)
        self.log.info("=" * 60)

    def cleanup(self):
        for node in self.nodes:
            try:
                node.cleanup()
            except Exception as e:
                self.log.warning("Error during cleanup for node %d: %s", node.index, e)
        self.nodes.clear()

        public_client = self.__dict__.pop("_public_client", None)
        if public_client is not None:
            public_client.disconnect()
        public_session = self.__dict__.pop("_public_session", None)
        if public_session is not None:
            public_session.close()
        self.log.info("Cleanup completed for blockchain: %s", self.name)
