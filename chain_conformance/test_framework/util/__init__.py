import json
import logging
import re
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence, Union

from web3 import Web3

from chain_conformance.chain.clients.simple_rpc_proxy import ReceivedErrorResponseError
from chain_conformance.chain.config import DEFAULT_PERFORMANCE_SUCCESS_PERCENTAGE, DEFAULT_PERFORMANCE_THRESHOLD
from chain_conformance.chain.types import PerformanceAnalysis
from chain_conformance.chain.utils import apply_fee_data, get_fee_data, hex_to_int, supports_eip1559, wait_until

logger = logging.getLogger("ChainConformance.utils")

# Assert functions
##################


def assert_equal(thing1, thing2, *args):
    if thing1 != thing2 or any(thing1 != arg for arg in args):
        raise AssertionError("not(%s)" % " == ".join(
            str(arg) for arg in (thing1, thing2) + args))


def assert_ne(thing1, thing2):
    if thing1 == thing2:
        raise AssertionError("not(%s != %s)" % (thing1, thing2))


def assert_greater_than(thing1, thing2):
    if thing1 <= thing2:
        raise AssertionError("%s <= %s" % (str(thing1), str(thing2)))


def assert_greater_than_or_equal(thing1, thing2):
    if thing1 < thing2:
        raise AssertionError("%s < %s" % (str(thing1), str(thing2)))


def assert_raises(exc, fun, *args, **kwds):
    assert_raises_message(exc, None, fun, *args, **kwds)


def assert_raises_message(exc, message, fun, *args, **kwds):
    try:
        fun(*args, **kwds)
    except exc as e:
        if message is not None and message not in str(e):
            raise AssertionError("Expected substring not found: " + str(e))
    except Exception as e:
        raise AssertionError("Unexpected exception raised: " +
                             type(e).__name__)
    else:
        raise AssertionError("No exception raised")


def assert_raises_rpc_error(code: Optional[int], message: Optional[str], fun: Callable, *args, **kwds):
    """Run an RPC through a proxy and verify the JSON-RPC error it answers with.

    Args:
        code (int), optional: the expected error code, None to skip the check.
        message (string), optional: [a substring of] the expected error message.
        fun (function): the RPC to call.
    """
    try:
        fun(*args, **kwds)
    except ReceivedErrorResponseError as e:
        if (code is not None) and (code != e.code):
            raise AssertionError("Unexpected JSONRPC error code %i" % e.code)
        if (message is not None) and (message not in str(e.message)):
            raise AssertionError(f"Expected substring not found: {e.message}")
    except Exception as e:
        raise AssertionError("Unexpected exception raised: " + type(e).__name__)
    else:
        raise AssertionError("No exception raised")


def assert_is_hex_string(string):
    try:
        if string != "0x":
            int(string, 16)
    except Exception as e:
        raise AssertionError(
            "Couldn't interpret %r as hexadecimal; raised: %s" % (string, e))


def assert_is_hash_string(string, length=64):
    if not isinstance(string, str):
        raise AssertionError("Expected a string, got type %r" % type(string))

    if string.startswith("0x"):
        string = string[2:]

    if length and len(string) != length:
        raise AssertionError(
            "String of length %d expected; got %d" % (length, len(string)))

    if not re.match('[abcdef0-9]+$', string):
        raise AssertionError(
            "String %r contains invalid characters for a hash." % string)


def assert_nodes_disconnected(chain, node_ips: Iterable[str]):
    for ip, status in chain.check_nodes_connectivity(node_ips).items():
        if status["execute_layer_connected"] or status["consensus_layer_connected"]:
            raise AssertionError("Node %s is still reachable: %s" % (ip, status))


def _is_hex_result(result) -> bool:
    return isinstance(result, str) and result.startswith("0x")


def assert_consistent_node_responses(chain, request: dict, fault_tolerance: int = 0,
                                     node_indices: Optional[Sequence[int]] = None) -> List[dict]:
    """Send `request` to several nodes and compare what they answer.

    Without tolerance the response envelopes must be identical. With a
    positive `fault_tolerance`, hex results may differ by less than that
    amount (block heights of nodes a block apart), other results must match.
    Returns the successful responses.
    """
    responses = chain.get_multiple_node_responses(request, node_indices)
    successful = [r for r in responses if r.error is None]
    if len(successful) < 2:
        raise AssertionError("Not enough successful responses to verify consistency")

    first = successful[0]
    for other in successful[1:]:
        label = "Node %d vs Node %d" % (other.node_index, first.node_index)
        if fault_tolerance <= 0:
            if other.response != first.response:
                raise AssertionError("%s: %s != %s" % (label, other.response, first.response))
            continue
        result, expected = other.response.get("result"), first.response.get("result")
        if _is_hex_result(result) and _is_hex_result(expected):
            difference = abs(hex_to_int(result) - hex_to_int(expected))
            if difference >= fault_tolerance:
                raise AssertionError("%s: %s and %s differ by %d (tolerance %d)" % (
                    label, result, expected, difference, fault_tolerance))
        elif result != expected:
            raise AssertionError("%s: %s != %s" % (label, result, expected))
    return [r.response for r in successful]


def analyze_performance_results(runs: Iterable[Optional[float]],
                                threshold: float = DEFAULT_PERFORMANCE_THRESHOLD,
                                expected_percentage: float = DEFAULT_PERFORMANCE_SUCCESS_PERCENTAGE
                                ) -> PerformanceAnalysis:
    return PerformanceAnalysis(runs=list(runs), threshold=threshold, expected_percentage=expected_percentage)


def assert_performance_results(runs: Iterable[Optional[float]],
                               threshold: float = DEFAULT_PERFORMANCE_THRESHOLD,
                               expected_percentage: float = DEFAULT_PERFORMANCE_SUCCESS_PERCENTAGE
                               ) -> PerformanceAnalysis:
    """Assert that at least `expected_percentage` of the runs finished within `threshold` seconds.

    A run is a duration in seconds, or None when the run failed.
    """
    analysis = analyze_performance_results(runs, threshold, expected_percentage)
    total = len(analysis.runs)
    logger.info("Performance results (%d runs): %d within %ss, %d failed or slower",
                total, len(analysis.successful_runs), threshold, len(analysis.failed_runs))
    logger.info("Time avg %.2fs, min %ss, max %ss", analysis.avg_time, analysis.min_time, analysis.max_time)
    if analysis.success_rate < expected_percentage:
        raise AssertionError("Success rate %.1f%% is below configured threshold %s%%" % (
            analysis.success_rate, expected_percentage))
    return analysis


def record_performance_results(analysis: PerformanceAnalysis, output_path: str) -> dict:
    result = {
        "summary": {
            "totalRuns": len(analysis.runs),
            "successfulRuns": len(analysis.successful_runs),
            "failedRuns": len(analysis.failed_runs),
            "averageTime": analysis.avg_time,
            "minTime": analysis.min_time,
            "maxTime": analysis.max_time,
            "threshold": analysis.threshold,
        },
        "individualRuns": [
            {
                "run": i + 1,
                "time": "FAILED" if run is None else run,
                "status": "FAILED" if run is None else "SUCCESS" if run <= analysis.threshold else "TIMEOUT",
            }
            for i, run in enumerate(analysis.runs)
        ],
    }
    with open(output_path, "w") as f:
        json.dump(result, f, indent=2)
    logger.info("Performance results written to %s", output_path)
    return result


# Utility functions
###################


def ether_to_wei(value: Union[str, int, Decimal]) -> int:
    return Web3.to_wei(Decimal(str(value)), "ether")


def wei_to_ether(value: int) -> str:
    return str(Web3.from_wei(value, "ether"))
