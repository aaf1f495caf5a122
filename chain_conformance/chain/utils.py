import inspect
import logging
import time
from typing import Optional

from web3 import Web3
from web3.exceptions import Web3RPCError

from .config import DEFAULT_PRIORITY_FEE
from .errors import WaitTimeoutError
from .types import FeeData

logger = logging.getLogger("ChainConformance.utils")


def hex_to_int(value) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


def supports_eip1559(w3: Web3) -> bool:
    return w3.eth.get_block("latest").get("baseFeePerGas") is not None


def get_fee_data(w3: Web3) -> FeeData:
    """Current fee data of the node behind `w3`, read once for a whole batch.

    Nodes with a base fee get EIP-1559 values with the same max fee web3
    fills in for a single transaction (2 * base fee + tip), others only a
    legacy gas price.
    """
    gas_price = w3.eth.gas_price
    base_fee = w3.eth.get_block("latest").get("baseFeePerGas")
    if base_fee is None:
        return FeeData(gas_price=gas_price)
    try:
        priority_fee = w3.eth.max_priority_fee
    except Web3RPCError:
        priority_fee = DEFAULT_PRIORITY_FEE
    return FeeData(gas_price=gas_price,
                   max_fee_per_gas=base_fee * 2 + priority_fee,
                   max_priority_fee_per_gas=priority_fee)


def apply_fee_data(tx: dict, fee_data: FeeData, priority_fee_per_gas: Optional[int] = None) -> dict:
    if priority_fee_per_gas:
        # only the tip is overridden, the base fee part stays as suggested
        if fee_data.supports_eip1559:
            base_part = fee_data.max_fee_per_gas - fee_data.max_priority_fee_per_gas
        else:
            base_part = fee_data.gas_price or 0
        tx["maxPriorityFeePerGas"] = priority_fee_per_gas
        tx["maxFeePerGas"] = base_part + priority_fee_per_gas
    elif fee_data.supports_eip1559:
        tx["maxFeePerGas"] = fee_data.max_fee_per_gas
        tx["maxPriorityFeePerGas"] = fee_data.max_priority_fee_per_gas
    else:
        tx["gasPrice"] = fee_data.gas_price
    return tx


def _describe_predicate(predicate):
    try:
        return inspect.getsourcelines(predicate)
    except (OSError, TypeError):
        return repr(predicate)


def wait_until(predicate,
               *,
               attempts=float('inf'),
               timeout=float('inf'),
               poll_interval=0.5,
               lock=None):
    if attempts == float('inf') and timeout == float('inf'):
        timeout = 60
    attempt = 0
    time_end = time.time() + timeout

    while attempt < attempts and time.time() < time_end:
        if lock:
            with lock:
                if predicate():
                    return
        else:
            if predicate():
                return
        attempt += 1
        time.sleep(poll_interval)

    predicate_source = _describe_predicate(predicate)
    logger.error("wait_until() failed. Predicate: {}".format(predicate_source))
    if attempt >= attempts:
        raise WaitTimeoutError("Predicate {} not true after {} attempts".format(
            predicate_source, attempts))
    elif time.time() >= time_end:
        raise WaitTimeoutError("Predicate {} not true after {} seconds".format(
            predicate_source, timeout))
    raise RuntimeError('Unreachable')
