import logging
from functools import cached_property
from typing import Optional

import jsonschema
import requests
from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import Web3Exception

from ..address import is_valid_evm_address
from ..config import (
    DEFAULT_RPC_TIMEOUT,
    DEFAULT_TRANSACTION_TIMEOUT,
    DEFAULT_TX_GAS,
    DEFAULT_TX_POLL_INTERVAL,
    WEI_PER_ETHER,
)
from ..errors import ChainConformanceError, RpcUnavailableError, WaitTimeoutError
from ..types import (
    AccountInfo,
    BlockInfo,
    ClientConfig,
    NetworkInfo,
    TransactionRequest,
    TransactionResult,
    TransactionStatus,
)
from ..utils import apply_fee_data, get_fee_data, hex_to_int, supports_eip1559, wait_until
from ..wallet import ConnectedWallet
from .base import ExecuteLayerClient
from .simple_rpc_proxy import SimpleRpcProxy


class EvmExecuteClient(ExecuteLayerClient):
    """Execution layer client for EVM JSON-RPC endpoints.

    Raw envelopes go through `make_rpc_call`, typed calls through `self.rpc`
    and signing/fee logic through the Web3 instance from `get_provider()`.
    All three share one HTTP session.
    """

    def __init__(self, config: ClientConfig, rpc_endpoint: str, timeout: Optional[float] = None):
        self.config = config
        self.rpc_endpoint = rpc_endpoint
        self.timeout = timeout or config.timeout or DEFAULT_RPC_TIMEOUT
        self.rpc = SimpleRpcProxy(rpc_endpoint, self.timeout)
        self.log = logging.getLogger("ChainConformance.evm")

    def __repr__(self):
        return f"EvmExecuteClient({self.rpc_endpoint})"

    @cached_property
    def provider(self) -> Web3:
        return Web3(HTTPProvider(self.rpc_endpoint,
                                 request_kwargs={"timeout": self.timeout},
                                 session=self.rpc.session))

    def get_provider(self) -> Web3:
        return self.provider

    def _request(self, request: dict, timeout: Optional[float] = None) -> dict:
        try:
            return self.rpc.post(request, timeout=timeout)
        except (requests.RequestException, ValueError) as e:
            self.log.debug("EVM RPC error for %s: %s", self.rpc_endpoint, e)
            if isinstance(e, requests.ConnectionError):
                raise RpcUnavailableError(f"Connection refused to {self.rpc_endpoint}") from e
            raise RpcUnavailableError(f"EVM RPC request failed: {e}") from e

    def _call(self, method: str, *params):
        try:
            return getattr(self.rpc, method)(*params)
        except requests.RequestException as e:
            raise RpcUnavailableError(f"EVM RPC request {method} to {self.rpc_endpoint} failed: {e}") from e

    def is_connected(self, timeout: Optional[float] = None) -> bool:
        try:
            self._request({"jsonrpc": "2.0", "method": "net_version", "params": [], "id": 1}, timeout)
            return True
        except ChainConformanceError:
            return False

    def disconnect(self) -> None:
        self.rpc.close()

    def get_account(self, address: str) -> AccountInfo:
        balance = self._call("eth_getBalance", address, "latest")
        nonce = self._call("eth_getTransactionCount", address, "latest")
        return {
            "address": address,
            "balance": str(hex_to_int(balance)),
            "nonce": hex_to_int(nonce),
        }

    def send_transaction(self, request: TransactionRequest, private_key: str) -> TransactionResult:
        w3 = self.get_provider()
        wallet = ConnectedWallet(Account.from_key(private_key), w3)

        nonce = w3.eth.get_transaction_count(wallet.address, "pending")
        tx = {
            "to": Web3.to_checksum_address(request.to),
            "value": int(request.amount) if request.amount else 0,
            "data": request.data or "0x",
            "nonce": nonce,
            "gas": int(request.gas_limit) if request.gas_limit else DEFAULT_TX_GAS,
        }
        if not supports_eip1559(w3):
            tx["gasPrice"] = int(request.gas_price) if request.gas_price else w3.eth.gas_price
        elif request.max_priority_fee_per_gas:
            apply_fee_data(tx, get_fee_data(w3), int(request.max_priority_fee_per_gas))
        # remaining EIP-1559 fee fields and the chain id are filled by web3

        tx_hash = wallet.send_transaction(tx)
        return TransactionResult(
            hash=tx_hash.to_0x_hex(),
            status=TransactionStatus.PENDING,
            block_number=0,
            gas_used="0",
            nonce=nonce,
        )

    def get_transaction(self, tx_hash: str) -> Optional[TransactionResult]:
        tx = self._call("eth_getTransactionByHash", tx_hash)
        if not tx:
            return None
        block_number = tx.get("blockNumber")
        return TransactionResult(
            hash=tx["hash"],
            status=TransactionStatus.CONFIRMED if block_number else TransactionStatus.PENDING,
            block_number=hex_to_int(block_number) if block_number else 0,
            gas_used=str(hex_to_int(tx.get("gas") or "0x0")),
            nonce=hex_to_int(tx["nonce"]) if tx.get("nonce") else None,
        )

    def wait_for_transaction(self, tx_hash: str, confirmations: int = 1,
                             timeout: float = DEFAULT_TRANSACTION_TIMEOUT,
                             poll_interval: float = DEFAULT_TX_POLL_INTERVAL) -> TransactionResult:
        confirmed = []

        def has_confirmations():
            tx = self.get_transaction(tx_hash)
            if tx is None or tx.status != TransactionStatus.CONFIRMED or tx.block_number <= 0:
                return False
            if self.get_block_height() - tx.block_number + 1 >= confirmations:
                confirmed.append(tx)
                return True
            return False

        try:
            wait_until(has_confirmations, timeout=timeout, poll_interval=poll_interval)
        except WaitTimeoutError as e:
            raise WaitTimeoutError(f"Transaction {tx_hash} not confirmed after {timeout} seconds") from e
        return confirmed[0]

    def estimate_gas(self, request: TransactionRequest) -> str:
        params = {"to": request.to}
        if request.amount:
            params["value"] = hex(int(request.amount))
        if request.data:
            params["data"] = request.data
        return str(hex_to_int(self._call("eth_estimateGas", params)))

    def get_block_height(self) -> int:
        return hex_to_int(self._call("eth_blockNumber"))

    def get_block(self, height: Optional[int] = None) -> BlockInfo:
        block_param = hex(height) if height is not None else "latest"
        block = self._call("eth_getBlockByNumber", block_param, True)
        if not block:
            raise ChainConformanceError(f"Block not found: {height}")
        return {
            "number": hex_to_int(block["number"]),
            "hash": block.get("hash") or "",
            "parent_hash": block.get("parentHash") or "",
            "timestamp": hex_to_int(block["timestamp"]),
            "transactions": [tx["hash"] if isinstance(tx, dict) else tx for tx in block.get("transactions", [])],
            "gas_limit": str(hex_to_int(block["gasLimit"])),
            "gas_used": str(hex_to_int(block["gasUsed"])) if block.get("gasUsed") else None,
        }

    def is_valid_address(self, address: str) -> bool:
        return is_valid_evm_address(address)

    def format_amount(self, amount: str) -> str:
        return str(int(amount) // WEI_PER_ETHER)

    def parse_amount(self, amount: str) -> str:
        return str(int(amount) * WEI_PER_ETHER)

    def get_network_info(self) -> NetworkInfo:
        w3 = self.get_provider()
        try:
            return {
                "chain_id": str(w3.eth.chain_id),
                "block_height": w3.eth.block_number,
                "network_name": self.config.name,
            }
        except (requests.RequestException, Web3Exception) as e:
            raise RpcUnavailableError(f"Failed to get network info from {self.rpc_endpoint}") from e

    def make_rpc_call(self, request: dict, request_schema: Optional[dict] = None,
                      response_schema: Optional[dict] = None) -> dict:
        if request_schema is not None:
            jsonschema.validate(request, request_schema)
        response = self._request(request)
        if response_schema is not None:
            jsonschema.validate(response, response_schema)
        return response
