DEFAULT_PORTS = {
    "EXECUTE_LAYER_HTTP_RPC": 8545,
    "CONSENSUS_LAYER_HTTP_REST_API": 1317,
    "CONSENSUS_LAYER_RPC": 26657,
    "CONSENSUS_LAYER_P2P_COMM": 26656,
}

# node config key -> DEFAULT_PORTS key
NODE_PORT_FIELDS = {
    "executeLayerHttpRpcPort": "EXECUTE_LAYER_HTTP_RPC",
    "consensusLayerHttpRestApiPort": "CONSENSUS_LAYER_HTTP_REST_API",
    "consensusLayerRpcPort": "CONSENSUS_LAYER_RPC",
    "consensusLayerP2pCommPort": "CONSENSUS_LAYER_P2P_COMM",
}

REQUIRED_CHAIN_FIELDS = ["chainId", "executeLayer", "consensusLayer", "executeLayerHttpRpcUrl"]

# Base paths of the Cosmos SDK REST API, without prefix and version.
# evmos-like chains: prefix='/cosmos', version='v1beta1' -> /cosmos/staking/v1beta1/validators
# story-like chains: prefix='', version='' -> /staking/validators
COSMOS_API_PATHS = {
    "STAKING_VALIDATORS": "/staking/validators",
    "STAKING_PARAMS": "/staking/params",
    "STAKING_POOL": "/staking/pool",
    "SLASHING_SIGNING_INFOS": "/slashing/signing_infos",
    "SLASHING_PARAMS": "/slashing/params",
    "MINT_PARAMS": "/mint/params",
    "TENDERMINT_STATUS": "/status",
    "TENDERMINT_BLOCK": "/block",
    "TENDERMINT_VALIDATORS": "/validators",
    "NODE_INFO": "/base/tendermint/node_info",
}

REST_NODE_INFO_PATH = "/cosmos/base/tendermint/v1beta1/node_info"
REST_LATEST_BLOCK_PATH = "/cosmos/base/tendermint/v1beta1/blocks/latest"

# all durations are in seconds
DEFAULT_CONNECTION_TIMEOUT = 30
DEFAULT_RPC_TIMEOUT = 60
DEFAULT_TRANSACTION_TIMEOUT = 60
DEFAULT_BLOCK_WAIT_TIMEOUT = 600
DEFAULT_BLOCK_NUMBER_POLL_INTERVAL = 1
DEFAULT_BLOCKS_POLL_INTERVAL = 3
DEFAULT_TX_POLL_INTERVAL = 1

# performance runs: seconds a run may take, share of runs that must make it
DEFAULT_PERFORMANCE_THRESHOLD = 10
DEFAULT_PERFORMANCE_SUCCESS_PERCENTAGE = 90

DEFAULT_TX_GAS = 21000
DEFAULT_PRIORITY_FEE = 10 ** 9
WEI_PER_ETHER = 10 ** 18

DEFAULT_COSMOS_ADDRESS_PREFIX = "cosmos"
COSMOS_HD_PATH = "m/44'/118'/0'/0/0"

FOUNDER_WALLET_PK_ENV = "FOUNDER_WALLET_PK"
COSMOS_FOUNDER_WALLET_PK_ENV = "COSMOS_FOUNDER_WALLET_PK"
CONFIG_FILE_ENV = "CHAIN_CONFORMANCE_CONFIG"
NETWORK_ENV = "CHAIN_CONFORMANCE_NETWORK"
LOG_DIR_ENV = "CHAIN_CONFORMANCE_LOG_DIR"
