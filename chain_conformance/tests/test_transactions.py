from unittest import mock

import pytest
import rlp
from eth_account import Account
from eth_utils import keccak
from hexbytes import HexBytes
from web3.exceptions import TimeExhausted, Web3RPCError

from chain_conformance.chain.errors import TransactionBatchError, UnsupportedForLayerError, WaitTimeoutError
from chain_conformance.chain.types import FailedFunding, FundedWallet, TransactionResult, TransactionStatus
from chain_conformance.test_framework.blockchain import Blockchain
from chain_conformance.test_framework.util import *

RECIPIENTS = [Account.create().address for _ in range(3)]


def tx_hash_of(tx) -> HexBytes:
    return HexBytes(keccak(text=f"{tx['from']}:{tx['nonce']}"))


@pytest.fixture(autouse=True)
def hash_by_sender_and_nonce(mock_w3):
    mock_w3.eth.send_transaction.side_effect = tx_hash_of


def sent_txs(w3) -> list:
    return [call.args[0] for call in w3.eth.send_transaction.call_args_list]


def fail_on_nonce(w3, nonce: int):
    def send(tx):
        if tx["nonce"] == nonce:
            raise Web3RPCError("nonce too low")
        return tx_hash_of(tx)
    w3.eth.send_transaction.side_effect = send


def sent_raw(w3):
    return w3.eth.send_raw_transaction.call_args.args[0]


def transfers(value="0.1"):
    return [{"to": to, "value": value} for to in RECIPIENTS]


def test_sequential_batch_uses_consecutive_nonces(blockchain, mock_w3, founder_account):
    results = blockchain.send_multiple_transactions(transfers())

    assert_equal([r.nonce for r in results], [5, 6, 7])
    assert_equal([tx["nonce"] for tx in sent_txs(mock_w3)], [5, 6, 7])
    assert_equal([r.hash for r in results], [tx_hash_of(tx).to_0x_hex() for tx in sent_txs(mock_w3)])
    assert all(r.status == TransactionStatus.PENDING for r in results)
    mock_w3.eth.get_transaction_count.assert_called_once()

    tx = sent_txs(mock_w3)[0]
    assert_equal(tx["from"], founder_account.address)
    assert_equal(tx["to"], RECIPIENTS[0])
    assert_equal(tx["value"], 10 ** 17)
    assert_equal(tx["chainId"], 1337)
    # fee data is read once and applied to every transaction
    assert_equal(tx["maxPriorityFeePerGas"], 2 * 10 ** 9)
    assert_equal(tx["maxFeePerGas"], 2 * 7 * 10 ** 8 + 2 * 10 ** 9)
    mock_w3.eth.get_block.assert_called_once_with("latest")


def test_concurrent_batch_keeps_input_order(blockchain, mock_w3):
    results = blockchain.send_multiple_transactions_concurrent(transfers())

    assert_equal([r.nonce for r in results], [5, 6, 7])
    assert_equal(sorted(tx["nonce"] for tx in sent_txs(mock_w3)), [5, 6, 7])
    mock_w3.eth.get_transaction_count.assert_called_once()
    assert_equal(blockchain.send_multiple_transactions_concurrent([]), [])


def test_priority_fee_override(blockchain, mock_w3):
    blockchain.send_multiple_transactions(transfers()[:1], priority_fee_per_gas=3 * 10 ** 9)
    tx = sent_txs(mock_w3)[0]
    assert_equal(tx["maxPriorityFeePerGas"], 3 * 10 ** 9)
    # 2 * base fee stays, only the tip changes
    assert_equal(tx["maxFeePerGas"], 2 * 7 * 10 ** 8 + 3 * 10 ** 9)


def test_sequential_batch_failure(blockchain, mock_w3):
    fail_on_nonce(mock_w3, 6)
    with pytest.raises(TransactionBatchError) as excinfo:
        blockchain.send_multiple_transactions(transfers())
    assert_equal(excinfo.value.failed_index, 1)
    assert_equal([r.nonce for r in excinfo.value.submitted], [5])
    assert_equal(len(sent_txs(mock_w3)), 2)
    assert "nonce too low" in str(excinfo.value)


def test_concurrent_batch_failure(blockchain, mock_w3):
    fail_on_nonce(mock_w3, 6)
    with pytest.raises(TransactionBatchError) as excinfo:
        blockchain.send_multiple_transactions_concurrent(transfers())
    assert_equal(excinfo.value.failed_index, 1)
    assert_equal([r.nonce for r in excinfo.value.submitted], [5, 7])


def test_batch_setup_failure(blockchain, mock_w3):
    mock_w3.eth.get_transaction_count.side_effect = Web3RPCError("unavailable")
    with pytest.raises(TransactionBatchError) as excinfo:
        blockchain.send_multiple_transactions(transfers())
    assert_equal(excinfo.value.submitted, [])
    assert excinfo.value.failed_index is None
    mock_w3.eth.send_transaction.assert_not_called()


def test_batch_from_explicit_wallet(blockchain, mock_w3):
    wallet = blockchain.create_wallet()
    blockchain.send_multiple_transactions(transfers()[:1], from_wallet=wallet)
    mock_w3.eth.get_transaction_count.assert_called_once_with(wallet.address, "pending")
    assert_equal(sent_txs(mock_w3)[0]["from"], wallet.address)


def test_create_and_fund_wallets(blockchain, mock_w3):
    result = blockchain.create_and_fund_wallets(3, "0.25")
    assert_equal(len(result.wallets), 3)
    assert_equal([f.index for f in result.funded], [1, 2, 3])
    assert_equal(result.failed, [])
    assert_equal([f.wallet for f in result.funding], result.wallets)
    assert_equal([tx["value"] for tx in sent_txs(mock_w3)], [25 * 10 ** 16] * 3)
    assert_equal([tx["to"] for tx in sent_txs(mock_w3)], [w.address for w in result.wallets])


def test_partial_funding_failure(blockchain, mock_w3):
    fail_on_nonce(mock_w3, 7)
    result = blockchain.create_and_fund_wallets(3)

    assert_equal([f.success for f in result.funding], [True, True, False])
    assert_equal([f.tx.nonce for f in result.funded], [5, 6])
    failed = result.failed[0]
    assert isinstance(failed, FailedFunding)
    assert_equal(failed.index, 3)
    assert "nonce too low" in failed.error


def test_funding_without_founder(chain_config, fake_clients):
    chain = Blockchain.connect_network_from_config_file("localnet", chain_config(founderWallet=None))
    result = chain.create_and_fund_wallets(2)
    assert_equal(result.funded, [])
    assert_equal([f.index for f in result.failed], [1, 2])
    assert "Founder wallet private key is required" in result.failed[0].error
    chain.cleanup()


def test_confirmations_are_isolated(blockchain, mock_w3):
    wallets = [blockchain.create_wallet() for _ in range(3)]
    ok = TransactionResult(hash="0x" + "01" * 32, status=TransactionStatus.PENDING)
    slow = TransactionResult(hash="0x" + "02" * 32, status=TransactionStatus.PENDING)
    fundings = [
        FundedWallet(wallet=wallets[0], tx=ok, index=1),
        FundedWallet(wallet=wallets[1], tx=slow, index=2),
        FailedFunding(wallet=wallets[2], index=3, error="not submitted"),
    ]

    def wait(tx_hash, timeout):
        if tx_hash == slow.hash:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return {"blockNumber": 12}
    mock_w3.eth.wait_for_transaction_receipt.side_effect = wait

    results = blockchain.wait_for_transaction_confirmations(fundings, timeout=3)
    assert_equal([r.success for r in results], [True, False, False])
    assert_equal([r.index for r in results], [1, 2, 3])
    assert_equal(results[0].block_number, 12)
    assert "is not in the chain" in results[1].error
    assert_equal(results[2].error, "not submitted")
    assert_equal(mock_w3.eth.wait_for_transaction_receipt.call_count, 2)

    assert_equal(blockchain.wait_for_transaction_confirmations([]), [])


def test_wait_for_transaction(blockchain, mock_w3):
    mock_w3.eth.wait_for_transaction_receipt.return_value = {
        "blockHash": HexBytes("0x" + "cd" * 32), "blockNumber": 12, "status": 1,
    }
    assert_equal(blockchain.wait_for_transaction("0x" + "ab" * 32), {
        "block_hash": "0x" + "cd" * 32,
        "block_number": 12,
        "status": 1,
    })

    mock_w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
    assert blockchain.wait_for_transaction("0x" + "ab" * 32, timeout=1) is None


def test_send_and_confirm(blockchain, mock_w3):
    mock_w3.eth.wait_for_transaction_receipt.return_value = {
        "blockHash": HexBytes("0x" + "cd" * 32), "blockNumber": 12, "status": 1,
    }
    assert_equal(blockchain.send_and_confirm(RECIPIENTS[0]), {
        "tx_hash": "0x" + "ab" * 32,
        "block_hash": "0x" + "cd" * 32,
        "block_number": 12,
    })
    request, key = blockchain.get_node(1).get_execute_layer_client().sent[0]
    assert_equal(request.amount, str(10 ** 16))
    assert_equal(key, blockchain.founder_wallet.private_key)

    mock_w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
    assert blockchain.send_and_confirm(RECIPIENTS[0]) is None


def test_send_simple_transaction_options(blockchain):
    blockchain.send_simple_transaction(RECIPIENTS[0], "1.5", "0xkey", max_priority_fee_per_gas=7,
                                       gas_limit=30000, node_index=2)
    request, key = blockchain.get_node(2).get_execute_layer_client().sent[0]
    assert_equal(request.amount, str(15 * 10 ** 17))
    assert_equal(request.max_priority_fee_per_gas, 7)
    assert_equal(request.gas_limit, 30000)
    assert_equal(key, "0xkey")


def test_send_unprotected_transaction(blockchain, mock_w3):
    result = blockchain.send_unprotected_transaction(RECIPIENTS[0], node_index=1)
    assert_equal(result.nonce, 5)

    raw = bytes(sent_raw(mock_w3))
    # legacy envelope, no EIP-155 chain id in v
    assert raw[0] > 0x7f
    nonce, gas_price, gas, to, value, data, v = rlp.decode(raw)[:7]
    assert_equal(int.from_bytes(gas_price, "big"), 10 ** 9)
    assert_equal(int.from_bytes(value, "big"), 10 ** 16)
    assert int.from_bytes(v, "big") in (27, 28)

    blockchain.get_node(2).execute_layer_http_rpc_port = None
    blockchain.get_node(2).cleanup()
    assert_raises(UnsupportedForLayerError, blockchain.send_unprotected_transaction, RECIPIENTS[0], node_index=2)


def test_unprotected_transaction_via_public_endpoint(blockchain, mock_w3):
    blockchain._public_client = mock.Mock()
    blockchain._public_client.get_provider.return_value = mock_w3
    blockchain.send_unprotected_transaction(RECIPIENTS[0], "0.5")
    assert_equal(int.from_bytes(rlp.decode(bytes(sent_raw(mock_w3)))[4], "big"), 5 * 10 ** 17)


def test_non_evm_chain(chain_config):
    chain = Blockchain("cosmoshub", chain_config(executeLayer="cosmos"))
    assert_raises_message(UnsupportedForLayerError, "requires EVM-compatible blockchain, got: cosmos",
                          chain.send_multiple_transactions, transfers())
    assert_raises(UnsupportedForLayerError, chain.send_multiple_transactions_concurrent, transfers())
    assert_raises(UnsupportedForLayerError, chain.send_unprotected_transaction, RECIPIENTS[0])
    assert_raises(UnsupportedForLayerError, chain.create_wallet)
    assert_raises(UnsupportedForLayerError, chain.get_wallet_balance, RECIPIENTS[0])
    assert chain.wait_for_transaction("0x" + "ab" * 32) is None


def test_wait_for_block_number(blockchain):
    blockchain.wait_for_block_number(100, poll_interval=0.01, timeout=1)
    assert_raises_message(WaitTimeoutError, "Block 200 not reached after 0.05 seconds",
                          blockchain.wait_for_block_number, 200, poll_interval=0.01, timeout=0.05)


def test_wait_for_blocks(blockchain):
    client = blockchain.get_node(2).get_execute_layer_client()
    client.get_block_height = mock.Mock(side_effect=[100, 100, 101, 102])
    blockchain.wait_for_blocks(2, poll_interval=0.01, node_index=2, timeout=5)
    assert_equal(client.get_block_height.call_count, 4)

    client.get_block_height = mock.Mock(return_value=100)
    assert_raises(WaitTimeoutError, blockchain.wait_for_blocks, 1, 0.01, 2, timeout=0.05)
