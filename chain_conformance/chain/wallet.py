import os
from dataclasses import dataclass
from functools import cached_property
from typing import ClassVar, List, Mapping, Optional

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import TxParams

from .address import private_key_to_cosmos_address
from .config import (
    COSMOS_FOUNDER_WALLET_PK_ENV,
    COSMOS_HD_PATH,
    DEFAULT_COSMOS_ADDRESS_PREFIX,
    FOUNDER_WALLET_PK_ENV,
)
from .errors import InvalidConfigurationError, UnsupportedChainTypeError
from .types import BlockchainType, PrivateKeySource

Account.enable_unaudited_hdwallet_features()


def _private_key_source(cfg: Mapping) -> PrivateKeySource:
    source = cfg.get("privateKeySource")
    if source is None:
        return PrivateKeySource.LOCAL
    try:
        return PrivateKeySource(source)
    except ValueError:
        raise InvalidConfigurationError(f"Invalid privateKeySource: {source}") from None


def _configured_private_key(cfg: Mapping, env_name: str) -> str:
    if _private_key_source(cfg) == PrivateKeySource.ENV:
        env_key = os.environ.get(env_name)
        if not env_key:
            raise InvalidConfigurationError(f"Environment variable {env_name} is not set")
        return env_key
    if cfg.get("privateKey"):
        return cfg["privateKey"]
    raise InvalidConfigurationError("No private key provided in wallet config")


@dataclass
class Wallet:
    """Chain-bound key material. Wallets are values and hold no network state."""

    name: str
    address: str
    private_key: Optional[str] = None
    private_key_source: PrivateKeySource = PrivateKeySource.LOCAL
    mnemonic: Optional[str] = None
    balance: Optional[str] = None

    chain_type: ClassVar[BlockchainType]


@dataclass
class EvmWallet(Wallet):
    chain_type: ClassVar[BlockchainType] = BlockchainType.EVM

    @cached_property
    def account(self) -> LocalAccount:
        if self.private_key is None:
            raise InvalidConfigurationError(f"Wallet {self.name} has no private key")
        return Account.from_key(self.private_key)

    @classmethod
    def from_config(cls, cfg: Mapping) -> "EvmWallet":
        private_key = _configured_private_key(cfg, FOUNDER_WALLET_PK_ENV)
        account = Account.from_key(private_key)
        return cls(
            name=cfg.get("name", "Founder Wallet"),
            address=account.address,
            private_key=account.key.to_0x_hex(),
            private_key_source=_private_key_source(cfg),
            mnemonic=cfg.get("mnemonic"),
            balance=cfg.get("balance"),
        )

    @classmethod
    def create_random(cls, private_key: Optional[str] = None, mnemonic: Optional[str] = None) -> "EvmWallet":
        if private_key:
            account = Account.from_key(private_key)
        elif mnemonic:
            account = Account.from_mnemonic(mnemonic)
        else:
            account, mnemonic = Account.create_with_mnemonic()
        return cls(
            name="Random Wallet",
            address=account.address,
            private_key=account.key.to_0x_hex(),
            mnemonic=mnemonic,
        )

    @classmethod
    def create_randoms(cls, count: int) -> List["EvmWallet"]:
        wallets = []
        for i in range(count):
            wallet = cls.create_random()
            wallet.name = f"Random Wallet {i + 1}"
            wallets.append(wallet)
        return wallets


@dataclass
class CosmosWallet(Wallet):
    chain_type: ClassVar[BlockchainType] = BlockchainType.COSMOS

    @classmethod
    def from_config(cls, cfg: Mapping, prefix: str = DEFAULT_COSMOS_ADDRESS_PREFIX) -> "CosmosWallet":
        private_key = _configured_private_key(cfg, COSMOS_FOUNDER_WALLET_PK_ENV)
        return cls(
            name=cfg.get("name", "Founder Wallet"),
            address=private_key_to_cosmos_address(private_key, prefix),
            private_key=private_key,
            private_key_source=_private_key_source(cfg),
            mnemonic=cfg.get("mnemonic"),
            balance=cfg.get("balance"),
        )

    @classmethod
    def create_random(cls, private_key: Optional[str] = None, mnemonic: Optional[str] = None,
                      prefix: str = DEFAULT_COSMOS_ADDRESS_PREFIX) -> "CosmosWallet":
        if private_key:
            key = private_key
        elif mnemonic:
            key = Account.from_mnemonic(mnemonic, account_path=COSMOS_HD_PATH).key.to_0x_hex()
        else:
            account, mnemonic = Account.create_with_mnemonic(num_words=24, account_path=COSMOS_HD_PATH)
            key = account.key.to_0x_hex()
        return cls(
            name="Random Cosmos Wallet",
            address=private_key_to_cosmos_address(key, prefix),
            private_key=key,
            mnemonic=mnemonic,
        )

    @classmethod
    def create_randoms(cls, count: int, prefix: str = DEFAULT_COSMOS_ADDRESS_PREFIX) -> List["CosmosWallet"]:
        wallets = []
        for i in range(count):
            wallet = cls.create_random(prefix=prefix)
            wallet.name = f"Random Cosmos Wallet {i + 1}"
            wallets.append(wallet)
        return wallets


class WalletFactory:
    """Builds chain specific wallets. Holds no state."""

    @staticmethod
    def create_wallet(chain_type: BlockchainType, private_key: Optional[str] = None) -> Wallet:
        if chain_type == BlockchainType.EVM:
            return EvmWallet.create_random(private_key)
        elif chain_type == BlockchainType.COSMOS:
            return CosmosWallet.create_random(private_key)
        raise UnsupportedChainTypeError(f"Unsupported blockchain type for wallet: {chain_type}")

    @staticmethod
    def create_wallet_from_config(chain_type: BlockchainType, wallet_config: Mapping) -> Wallet:
        if chain_type == BlockchainType.EVM:
            return EvmWallet.from_config(wallet_config)
        elif chain_type == BlockchainType.COSMOS:
            return CosmosWallet.from_config(wallet_config)
        raise UnsupportedChainTypeError(f"Unsupported blockchain type for wallet config: {chain_type}")

    @staticmethod
    def create_random_wallets(chain_type: BlockchainType, count: int) -> List[Wallet]:
        if chain_type == BlockchainType.EVM:
            return EvmWallet.create_randoms(count)
        elif chain_type == BlockchainType.COSMOS:
            return CosmosWallet.create_randoms(count)
        raise UnsupportedChainTypeError(f"Unsupported blockchain type for multiple wallets: {chain_type}")


class ConnectedWallet:
    """A local EVM account bound to a Web3 provider.

    The account is added to the provider's SignAndSendRawMiddleware, so
    `w3.eth.send_transaction` from this address fills the missing chain id,
    nonce, gas and fee fields, signs locally and submits the raw transaction.
    """

    def __init__(self, account: LocalAccount, w3: Web3):
        self.account = account
        self.w3 = w3
        middleware_name = f"sign_and_send_raw_{account.address}"
        if middleware_name not in w3.middleware_onion:
            w3.middleware_onion.inject(SignAndSendRawMiddlewareBuilder.build(account),
                                       name=middleware_name, layer=0)

    def __repr__(self):
        return f"ConnectedWallet({self.address})"

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def key(self) -> HexBytes:
        return self.account.key

    @property
    def private_key(self) -> str:
        return self.account.key.to_0x_hex()

    def get_balance(self, block_identifier="latest") -> int:
        return self.w3.eth.get_balance(self.address, block_identifier)

    def sign_transaction(self, tx: TxParams) -> SignedTransaction:
        return self.account.sign_transaction(tx)

    def send_transaction(self, tx: TxParams) -> HexBytes:
        return self.w3.eth.send_transaction({**tx, "from": self.address})
