import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

import jsonschema
import requests

from ..config import COSMOS_API_PATHS, DEFAULT_RPC_TIMEOUT, REST_LATEST_BLOCK_PATH, REST_NODE_INFO_PATH
from ..errors import ChainConformanceError, RpcUnavailableError
from ..types import BlockInfo, ClientConfig, NetworkInfo, TransactionResult, TransactionStatus, ValidatorInfo
from .base import ConsensusLayerClient

_FRACTION = re.compile(r"\.(\d{6})\d*")


def _parse_timestamp(value: str) -> int:
    # CometBFT reports nanosecond precision, e.g. 2024-01-01T00:00:00.123456789Z
    value = _FRACTION.sub(r".\1", value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def _error_data(response: Optional[requests.Response]) -> str:
    if response is None:
        return ""
    try:
        body = response.json()
    except ValueError:
        return ""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("data"):
        return str(error["data"])
    return ""


class _HttpGetMixin:
    session: requests.Session
    timeout: float
    log: logging.Logger

    def _get(self, base: str, path: str, params: Optional[dict], kind: str) -> Any:
        url = f"{base}{path}"
        try:
            response = self.session.get(url, params=params or None, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.ConnectionError as e:
            self.log.debug("%s error for %s: %s", kind, url, e)
            raise RpcUnavailableError(f"Connection refused to {base}") from e
        except (requests.RequestException, ValueError) as e:
            self.log.debug("%s error for %s: %s", kind, url, e)
            data = _error_data(getattr(e, "response", None))
            message = f"Consensus {kind} request failed: {e}"
            if data:
                message = f"{message} - {data}"
            raise RpcUnavailableError(message) from e

    def disconnect(self) -> None:
        self.session.close()


class CosmosRestClient(_HttpGetMixin, ConsensusLayerClient):
    """Cosmos SDK REST API client (LCD, port 1317 by default).

    Chains mount module routes differently. `path_prefix` and `api_version`
    describe the layout, e.g. ('/cosmos', 'v1beta1') for evmos-like chains and
    ('', '') for chains serving `/staking/validators` directly.
    """

    def __init__(self, config: ClientConfig, rest_endpoint: str, path_prefix: str = "",
                 api_version: str = "", timeout: Optional[float] = None):
        self.config = config
        self.rest_endpoint = rest_endpoint
        self.path_prefix = path_prefix or ""
        self.api_version = api_version or ""
        self.timeout = timeout or config.timeout or DEFAULT_RPC_TIMEOUT
        self.session = requests.Session()
        self.log = logging.getLogger("ChainConformance.rest")

    def __repr__(self):
        return f"CosmosRestClient({self.rest_endpoint})"

    def build_rest_path(self, base_path: str) -> str:
        if not self.api_version:
            return f"{self.path_prefix}{base_path}"
        parts = [p for p in base_path.split("/") if p]
        if len(parts) >= 2:
            parts.insert(1, self.api_version)
        return f"{self.path_prefix}/{'/'.join(parts)}"

    def make_rpc_request(self, path: str, params: Optional[dict] = None,
                         params_schema: Optional[dict] = None,
                         response_schema: Optional[dict] = None) -> Any:
        if params_schema is not None:
            jsonschema.validate(params or {}, params_schema)
        response = self._get(self.rest_endpoint, path, params, "REST")
        if response_schema is not None:
            jsonschema.validate(response, response_schema)
        return response

    def is_connected(self, timeout: Optional[float] = None) -> bool:
        try:
            response = self.session.get(f"{self.rest_endpoint}{REST_NODE_INFO_PATH}",
                                        timeout=timeout or self.timeout)
            return response.ok
        except requests.RequestException:
            return False

    def get_block_height(self) -> int:
        response = self.make_rpc_request(REST_LATEST_BLOCK_PATH)
        block = response.get("sdk_block") or response["block"]
        return int(block["header"]["height"])

    def get_network_info(self) -> NetworkInfo:
        info = self.make_rpc_request(REST_NODE_INFO_PATH)["default_node_info"]
        return {
            "chain_id": info["network"],
            "block_height": self.get_block_height(),
            "network_name": info.get("moniker", ""),
            "consensus_version": info.get("version", ""),
            "validators": [],
        }

    def _module_request(self, name: str, custom_path: Optional[str]) -> Any:
        path = custom_path if custom_path is not None else self.build_rest_path(COSMOS_API_PATHS[name])
        return self.make_rpc_request(path)

    def get_staking_validators(self, custom_path: Optional[str] = None) -> Any:
        return self._module_request("STAKING_VALIDATORS", custom_path)

    def get_staking_params(self, custom_path: Optional[str] = None) -> Any:
        return self._module_request("STAKING_PARAMS", custom_path)

    def get_staking_pool(self, custom_path: Optional[str] = None) -> Any:
        return self._module_request("STAKING_POOL", custom_path)

    def get_slashing_params(self, custom_path: Optional[str] = None) -> Any:
        return self._module_request("SLASHING_PARAMS", custom_path)

    def get_slashing_signing_infos(self, custom_path: Optional[str] = None) -> Any:
        return self._module_request("SLASHING_SIGNING_INFOS", custom_path)

    def get_mint_params(self, custom_path: Optional[str] = None) -> Any:
        return self._module_request("MINT_PARAMS", custom_path)

    def get_node_info(self, custom_path: Optional[str] = None) -> Any:
        return self._module_request("NODE_INFO", custom_path)


class CometBftConsensusClient(_HttpGetMixin, ConsensusLayerClient):
    """CometBFT RPC client (port 26657 by default).

    Path requests are plain GETs (`/status`, `/block?height=..`), the
    `get_tendermint_*` helpers use the JSON-RPC POST form. Cosmos module
    queries are forwarded to the composed REST client.
    """

    def __init__(self, config: ClientConfig, rpc_endpoint: str, rest: CosmosRestClient,
                 timeout: Optional[float] = None):
        self.config = config
        self.rpc_endpoint = rpc_endpoint
        self.rest = rest
        self.timeout = timeout or config.timeout or DEFAULT_RPC_TIMEOUT
        self.session = requests.Session()
        self.log = logging.getLogger("ChainConformance.cometbft")

    def __repr__(self):
        return f"CometBftConsensusClient({self.rpc_endpoint}, rest={self.rest.rest_endpoint})"

    def make_rpc_request(self, path: str, params: Optional[dict] = None,
                         params_schema: Optional[dict] = None,
                         response_schema: Optional[dict] = None) -> Any:
        if params_schema is not None:
            jsonschema.validate(params or {}, params_schema)
        response = self._get(self.rpc_endpoint, path, params, "RPC")
        if response_schema is not None:
            jsonschema.validate(response, response_schema)
        return response

    def is_connected(self, timeout: Optional[float] = None) -> bool:
        try:
            response = self.session.get(f"{self.rpc_endpoint}/health", timeout=timeout or self.timeout)
            return response.ok
        except requests.RequestException:
            return False

    def disconnect(self) -> None:
        super().disconnect()
        self.rest.disconnect()

    def get_network_info(self) -> NetworkInfo:
        result = self.make_rpc_request(COSMOS_API_PATHS["TENDERMINT_STATUS"])["result"]
        return {
            "chain_id": result["node_info"]["network"],
            "block_height": int(result["sync_info"]["latest_block_height"]),
            "network_name": result["node_info"]["moniker"],
            "consensus_version": result["node_info"]["version"],
            "validators": [],
        }

    def get_block_height(self) -> int:
        result = self.make_rpc_request(COSMOS_API_PATHS["TENDERMINT_STATUS"])["result"]
        return int(result["sync_info"]["latest_block_height"])

    def get_block(self, height: Optional[int] = None) -> BlockInfo:
        params = {"height": str(height)} if height else None
        block = self.make_rpc_request(COSMOS_API_PATHS["TENDERMINT_BLOCK"], params)["result"]["block"]
        header = block["header"]
        return {
            "number": int(header["height"]),
            "hash": header["last_block_id"]["hash"],
            "parent_hash": header["last_block_id"]["hash"],
            "timestamp": _parse_timestamp(header["time"]),
            "proposer": header["proposer_address"],
            "transactions": block["data"].get("txs") or [],
        }

    def get_validators(self) -> List[ValidatorInfo]:
        validators = self.make_rpc_request(COSMOS_API_PATHS["TENDERMINT_VALIDATORS"])["result"]["validators"]
        return [{
            "address": v["address"],
            "moniker": (v.get("description") or {}).get("moniker", "Unknown"),
            "voting_power": v["voting_power"],
            "status": "jailed" if v.get("jailed") else "active",
            "commission": (v.get("commission") or {}).get("rate", "0"),
        } for v in validators]

    def get_transaction(self, tx_hash: str) -> Optional[TransactionResult]:
        try:
            result = self.make_rpc_request(f"/tx?hash=0x{tx_hash}").get("result")
        except ChainConformanceError as e:
            self.log.warning("Failed to get transaction %s: %s", tx_hash, e)
            return None
        if not result:
            return None
        tx_result = result.get("tx_result") or {}
        return TransactionResult(
            hash=result["hash"],
            status=TransactionStatus.CONFIRMED if tx_result.get("code") == 0 else TransactionStatus.FAILED,
            block_number=int(result["height"]),
            gas_used=str(tx_result.get("gas_used", "0")),
        )

    def get_chain_status(self) -> Any:
        return self.make_rpc_request(COSMOS_API_PATHS["TENDERMINT_STATUS"])

    def _post(self, method: str, params: dict, request_id: int) -> Any:
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": request_id}
        try:
            response = self.session.post(self.rpc_endpoint, json=payload, timeout=self.timeout)
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise RpcUnavailableError(f"Consensus RPC request {method} failed: {e}") from e

    def get_tendermint_status(self) -> Any:
        return self._post("status", {}, 1)

    def get_tendermint_block(self, height: Optional[str] = None) -> Any:
        return self._post("block", {"height": height or "0"}, 2)

    def get_tendermint_validators(self, height: Optional[str] = None) -> Any:
        return self._post("validators", {"height": height or "0"}, 3)

    def get_staking_validators(self, custom_path: Optional[str] = None) -> Any:
        return self.rest.get_staking_validators(custom_path)

    def get_staking_params(self, custom_path: Optional[str] = None) -> Any:
        return self.rest.get_staking_params(custom_path)

    def get_staking_pool(self, custom_path: Optional[str] = None) -> Any:
        return self.rest.get_staking_pool(custom_path)

    def get_slashing_params(self, custom_path: Optional[str] = None) -> Any:
        return self.rest.get_slashing_params(custom_path)

    def get_slashing_signing_infos(self, custom_path: Optional[str] = None) -> Any:
        return self.rest.get_slashing_signing_infos(custom_path)

    def get_mint_params(self, custom_path: Optional[str] = None) -> Any:
        return self.rest.get_mint_params(custom_path)

    def get_node_info(self, custom_path: Optional[str] = None) -> Any:
        return self.rest.get_node_info(custom_path)
