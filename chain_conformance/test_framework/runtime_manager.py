#!/usr/bin/env python3
"""Loading chain configuration documents and keeping track of connected chains"""

import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import yaml

from chain_conformance.chain.errors import InvalidConfigurationError
from chain_conformance.test_framework.blockchain import Blockchain


@dataclass
class FrameworkOptions:
    config_file: Optional[str]  # network configuration document (.json, .yaml or .yml)
    network: Optional[str]  # network to connect, all networks of the document when unset
    loglevel: str  # log events at this level and higher to the console
    tmpdir: str  # directory of test_framework.log
    trace_rpc: bool  # print out all RPC calls as they are made
    timeout_ms: Optional[int] = None  # overrides the chain's connection timeout


def start_logging(options: FrameworkOptions) -> logging.Logger:
    log = logging.getLogger("ChainConformance")
    log.setLevel(logging.DEBUG)
    os.makedirs(options.tmpdir, exist_ok=True)
    # Create file handler to log all messages
    fh = logging.FileHandler(os.path.join(options.tmpdir, "test_framework.log"), encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    # Console handler, level given as a number or a name (eg DEBUG)
    ch = logging.StreamHandler(sys.stdout)
    ll = int(options.loglevel) if options.loglevel.isdigit() else options.loglevel.upper()
    ch.setLevel(ll)
    formatter = logging.Formatter(
        fmt='%(asctime)s.%(msecs)03d000Z %(name)s (%(levelname)s): %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S')
    formatter.converter = time.gmtime
    fh.setFormatter(formatter)
    ch.setFormatter(formatter)
    log.addHandler(fh)
    log.addHandler(ch)

    if options.trace_rpc:
        rpc_logger = logging.getLogger("ChainRPC")
        rpc_logger.setLevel(logging.DEBUG)
        rpc_handler = logging.StreamHandler(sys.stdout)
        rpc_handler.setLevel(logging.DEBUG)
        rpc_logger.addHandler(rpc_handler)
    return log


def load_config_file(path: str) -> Dict[str, Mapping]:
    if not os.path.exists(path):
        raise InvalidConfigurationError(f"Configuration file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            if path.endswith((".yaml", ".yml")):
                content = yaml.safe_load(f)
            else:
                content = json.load(f)
    except (ValueError, yaml.YAMLError) as e:
        raise InvalidConfigurationError(f"Failed to parse configuration file: {e}") from e
    if not isinstance(content, dict):
        raise InvalidConfigurationError(f"Failed to parse configuration file: {path} is not a mapping")
    return content


class RuntimeManager:
    """Connects chains from configuration documents. The first connected chain is the default one."""

    def __init__(self, log: Optional[logging.Logger] = None, timeout_ms: Optional[int] = None):
        self.chains: List[Blockchain] = []
        self._default_chain: Optional[Blockchain] = None
        self.timeout_ms = timeout_ms
        self.log = log or logging.getLogger("ChainConformance.runtime")

    def connect_to_chain_from_config_file(self, config_file_path: str, network_name: Optional[str] = None, *,
                                          throw_on_validation_error: bool = True):
        try:
            config = load_config_file(config_file_path)
            if network_name:
                self._connect(network_name, self._extract_blockchain_config(network_name, config))
            else:
                for name, blockchain_config in config.items():
                    self._connect(name, blockchain_config)
        except InvalidConfigurationError as e:
            target = f'network "{network_name}"' if network_name else "networks"
            self.log.error("Failed to connect to %s from config: %s", target, e)
            if throw_on_validation_error:
                raise

    def _connect(self, name: str, blockchain_config: Mapping) -> Blockchain:
        if self.timeout_ms is not None:
            blockchain_config = {**blockchain_config, "timeout": self.timeout_ms}
        chain = Blockchain.connect_network_from_config_file(name, blockchain_config)
        if self._default_chain is None:
            self._default_chain = chain
        self.chains.append(chain)
        self.log.info("Connected to %s (chain id %s, %d nodes)", name, chain.chain_id, len(chain.nodes))
        return chain

    @staticmethod
    def _extract_blockchain_config(network_name: str, config: Mapping) -> Mapping:
        if network_name not in config:
            raise InvalidConfigurationError(f'Required network "{network_name}" not found in configuration')
        blockchain_config = config[network_name]
        if not blockchain_config:
            raise InvalidConfigurationError(f'Blockchain configuration for "{network_name}" is empty or invalid')
        return blockchain_config

    def get_chain(self, name: str) -> Optional[Blockchain]:
        return next((chain for chain in self.chains if chain.name == name), None)

    def get_default_chain(self) -> Blockchain:
        if self._default_chain is None:
            raise InvalidConfigurationError("No default chain is set. Please connect to a chain first.")
        return self._default_chain

    def cleanup(self):
        for chain in self.chains:
            chain.cleanup()
