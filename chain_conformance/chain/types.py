from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, TypedDict, Union


class BlockchainType(Enum):
    EVM = "evm"
    COSMOS = "cosmos"
    SOLANA = "solana"
    POLKADOT = "polkadot"


class NodeType(Enum):
    VALIDATOR = "validator"
    NON_VALIDATOR = "non-validator"
    BOOTNODE = "bootnode"

    @classmethod
    def _missing_(cls, value):
        # full nodes are the non-validator participants
        if isinstance(value, str) and value.lower() in ("full-node", "full_node", "fullnode"):
            return cls.NON_VALIDATOR
        return None


class PrivateKeySource(Enum):
    LOCAL = "local"
    ENV = "env"


class TransactionStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class VotingPowerScenario(Enum):
    LESS_THAN_ONE_THIRD = "less-than-one-third"
    EXACTLY_ONE_THIRD = "exactly-one-third"
    MORE_THAN_ONE_THIRD = "more-than-one-third"


@dataclass
class TransactionRequest:
    to: str
    # decimal string in base units: wei for EVM, base denomination for Cosmos
    amount: Optional[str] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    memo: Optional[str] = None
    data: Optional[str] = None


@dataclass(frozen=True)
class TransactionResult:
    hash: str
    status: TransactionStatus
    block_number: int = 0
    gas_used: str = "0"
    nonce: Optional[int] = None


@dataclass
class ClientConfig:
    name: str
    timeout: Optional[float] = None
    native_token: Optional[str] = None
    address_prefix: Optional[str] = None


@dataclass
class FeeData:
    gas_price: Optional[int]
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    @property
    def supports_eip1559(self) -> bool:
        return bool(self.max_fee_per_gas) and bool(self.max_priority_fee_per_gas)


class AccountInfo(TypedDict):
    address: str
    balance: str
    nonce: int


class BlockInfo(TypedDict, total=False):
    number: int
    hash: str
    parent_hash: str
    timestamp: int
    transactions: List[str]
    gas_limit: str
    gas_used: Optional[str]
    proposer: str


class NetworkInfo(TypedDict, total=False):
    chain_id: str
    block_height: int
    network_name: str
    consensus_version: str
    validators: list


class ValidatorInfo(TypedDict):
    address: str
    moniker: str
    voting_power: str
    status: str
    commission: str


class ReceiptSummary(TypedDict):
    block_hash: str
    block_number: int
    status: int


class SendAndConfirmResult(TypedDict):
    tx_hash: str
    block_hash: str
    block_number: int


class ConnectivityStatus(TypedDict):
    execute_layer_connected: bool
    consensus_layer_connected: bool


class NodeHealth(TypedDict):
    index: int
    type: NodeType
    active: bool
    connected: bool
    error: Optional[str]


@dataclass
class ValidatorSelection:
    validators: List[int]
    total_voting_power: int
    target_voting_power: int
    achieved_voting_power: int
    scenario_description: str


@dataclass
class FundedWallet:
    wallet: Any
    tx: TransactionResult
    # 1-based display index
    index: int
    success: bool = field(default=True, init=False)


@dataclass
class FailedFunding:
    wallet: Any
    index: int
    error: str
    success: bool = field(default=False, init=False)


FundingOutcome = Union[FundedWallet, FailedFunding]


@dataclass
class FundingResult:
    wallets: list
    funding: List[FundingOutcome]

    @property
    def funded(self) -> List[FundedWallet]:
        return [f for f in self.funding if isinstance(f, FundedWallet)]

    @property
    def failed(self) -> List[FailedFunding]:
        return [f for f in self.funding if isinstance(f, FailedFunding)]


@dataclass
class ConfirmationResult:
    success: bool
    index: int
    block_number: Optional[int] = None
    error: Optional[str] = None


@dataclass
class NodeResponse:
    node_index: int
    response: Any
    error: Optional[BaseException] = None


@dataclass
class PerformanceAnalysis:
    """Timings of repeated runs measured against a threshold.

    `runs` holds one duration in seconds per run, None for a run that failed.
    """

    runs: List[Optional[float]]
    threshold: float
    expected_percentage: float

    @property
    def successful_runs(self) -> List[float]:
        return [r for r in self.runs if r is not None and 0 < r <= self.threshold]

    @property
    def failed_runs(self) -> List[Optional[float]]:
        return [r for r in self.runs if r is None or r > self.threshold]

    @property
    def valid_runs(self) -> List[float]:
        return [r for r in self.runs if r is not None and r > 0]

    @property
    def avg_time(self) -> float:
        valid = self.valid_runs
        return sum(valid) / len(valid) if valid else 0

    @property
    def min_time(self) -> float:
        return min(self.valid_runs, default=0)

    @property
    def max_time(self) -> float:
        return max(self.valid_runs, default=0)

    @property
    def success_rate(self) -> float:
        if not self.runs:
            return 0
        return len(self.successful_runs) * 100 / len(self.runs)
