import pytest
import rlp
from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3
from web3.providers import BaseProvider

from chain_conformance.chain.address import is_valid_cosmos_address, private_key_to_cosmos_address
from chain_conformance.chain.config import COSMOS_FOUNDER_WALLET_PK_ENV, COSMOS_HD_PATH, FOUNDER_WALLET_PK_ENV
from chain_conformance.chain.errors import InvalidConfigurationError, UnsupportedChainTypeError
from chain_conformance.chain.types import BlockchainType, PrivateKeySource
from chain_conformance.chain.wallet import ConnectedWallet, CosmosWallet, EvmWallet, WalletFactory
from chain_conformance.test_framework.util import *

KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


def test_evm_wallet_from_private_key():
    wallet = WalletFactory.create_wallet(BlockchainType.EVM, KEY)
    assert isinstance(wallet, EvmWallet)
    assert_equal(wallet.address, ADDRESS)
    assert_equal(wallet.private_key, KEY)
    assert_equal(wallet.account.address, ADDRESS)


def test_random_evm_wallet_has_mnemonic():
    wallet = WalletFactory.create_wallet(BlockchainType.EVM)
    assert wallet.mnemonic is not None
    assert_equal(len(wallet.mnemonic.split()), 12)
    assert_equal(Account.from_mnemonic(wallet.mnemonic).address, wallet.address)


def test_cosmos_wallet_from_private_key():
    wallet = WalletFactory.create_wallet(BlockchainType.COSMOS, KEY)
    assert isinstance(wallet, CosmosWallet)
    assert_equal(wallet.address, private_key_to_cosmos_address(KEY))
    assert is_valid_cosmos_address(wallet.address, "cosmos")


def test_random_cosmos_wallet_uses_cosmos_hd_path():
    wallet = CosmosWallet.create_random(prefix="evmos")
    assert_equal(len(wallet.mnemonic.split()), 24)
    assert wallet.address.startswith("evmos1")
    derived = Account.from_mnemonic(wallet.mnemonic, account_path=COSMOS_HD_PATH)
    assert_equal(derived.key.to_0x_hex(), wallet.private_key)


def test_create_random_wallets_names():
    wallets = WalletFactory.create_random_wallets(BlockchainType.EVM, 3)
    assert_equal([w.name for w in wallets], ["Random Wallet 1", "Random Wallet 2", "Random Wallet 3"])
    assert_equal(len({w.address for w in wallets}), 3)

    wallets = WalletFactory.create_random_wallets(BlockchainType.COSMOS, 2)
    assert_equal([w.name for w in wallets], ["Random Cosmos Wallet 1", "Random Cosmos Wallet 2"])


@pytest.mark.parametrize("chain_type", [BlockchainType.SOLANA, BlockchainType.POLKADOT])
def test_unsupported_chain_types(chain_type):
    assert_raises(UnsupportedChainTypeError, WalletFactory.create_wallet, chain_type)
    assert_raises(UnsupportedChainTypeError, WalletFactory.create_wallet_from_config, chain_type, {"privateKey": KEY})
    assert_raises(UnsupportedChainTypeError, WalletFactory.create_random_wallets, chain_type, 1)


def test_wallet_from_config():
    wallet = WalletFactory.create_wallet_from_config(BlockchainType.EVM, {"name": "Founder", "privateKey": KEY})
    assert_equal(wallet.name, "Founder")
    assert_equal(wallet.address, ADDRESS)
    assert_equal(wallet.private_key_source, PrivateKeySource.LOCAL)


def test_wallet_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(FOUNDER_WALLET_PK_ENV, KEY)
    wallet = WalletFactory.create_wallet_from_config(BlockchainType.EVM, {"privateKeySource": "env"})
    assert_equal(wallet.address, ADDRESS)
    assert_equal(wallet.private_key_source, PrivateKeySource.ENV)

    monkeypatch.setenv(COSMOS_FOUNDER_WALLET_PK_ENV, KEY)
    wallet = WalletFactory.create_wallet_from_config(BlockchainType.COSMOS, {"privateKeySource": "env"})
    assert_equal(wallet.address, private_key_to_cosmos_address(KEY))


def test_wallet_config_errors(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(FOUNDER_WALLET_PK_ENV, raising=False)
    assert_raises_message(InvalidConfigurationError, FOUNDER_WALLET_PK_ENV,
                          WalletFactory.create_wallet_from_config, BlockchainType.EVM, {"privateKeySource": "env"})
    assert_raises_message(InvalidConfigurationError, "Invalid privateKeySource",
                          WalletFactory.create_wallet_from_config, BlockchainType.EVM, {"privateKeySource": "vault"})
    assert_raises_message(InvalidConfigurationError, "No private key",
                          WalletFactory.create_wallet_from_config, BlockchainType.EVM, {"name": "empty"})


def test_connected_wallet_registers_signing_middleware(mock_w3):
    account = Account.from_key(KEY)
    ConnectedWallet(account, mock_w3)
    name = mock_w3.middleware_onion.inject.call_args.kwargs["name"]
    assert_equal(name, f"sign_and_send_raw_{ADDRESS}")
    assert_equal(mock_w3.middleware_onion.inject.call_args.kwargs["layer"], 0)

    mock_w3.middleware_onion.__contains__.return_value = True
    ConnectedWallet(account, mock_w3)
    mock_w3.middleware_onion.inject.assert_called_once()


def test_connected_wallet_sends_from_its_address(mock_w3):
    wallet = ConnectedWallet(Account.from_key(KEY), mock_w3)
    tx_hash = wallet.send_transaction({"from": "0x" + "11" * 20, "to": ADDRESS, "value": 1, "nonce": 9})

    sent = mock_w3.eth.send_transaction.call_args.args[0]
    assert_equal(sent, {"from": ADDRESS, "to": ADDRESS, "value": 1, "nonce": 9})
    assert_is_hash_string(tx_hash.to_0x_hex())
    assert_equal(wallet.private_key, KEY)


class RecordingProvider(BaseProvider):
    def __init__(self, results: dict):
        super().__init__()
        self.results = results
        self.calls = []

    def make_request(self, method, params):
        self.calls.append((method, params))
        return {"jsonrpc": "2.0", "id": 1, "result": self.results[method]}


def test_connected_wallet_signs_locally():
    provider = RecordingProvider({
        "eth_chainId": "0x539",
        "eth_getBlockByNumber": {
            "number": "0x1", "hash": "0x" + "01" * 32, "parentHash": "0x" + "00" * 32, "timestamp": "0x1",
            "gasLimit": "0x1c9c380", "gasUsed": "0x0", "transactions": [],
        },
        "eth_sendRawTransaction": "0x" + "ab" * 32,
    })
    wallet = ConnectedWallet(Account.from_key(KEY), Web3(provider))
    tx_hash = wallet.send_transaction({
        "to": ADDRESS, "value": 1, "nonce": 9, "gas": 21000, "gasPrice": 5, "chainId": 1337,
    })

    assert_equal(tx_hash.to_0x_hex(), "0x" + "ab" * 32)
    raw = next(params[0] for method, params in provider.calls if method == "eth_sendRawTransaction")
    assert "eth_sendTransaction" not in [method for method, _ in provider.calls]
    assert_equal(Account.recover_transaction(raw), ADDRESS)
    nonce, gas_price, gas = rlp.decode(HexBytes(raw))[:3]
    assert_equal(int.from_bytes(nonce, "big"), 9)
    assert_equal(int.from_bytes(gas_price, "big"), 5)
    assert_equal(int.from_bytes(gas, "big"), 21000)
