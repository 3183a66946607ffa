"""
Pytest configuration for paymaster-deploy tests.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

from paymaster_deploy.artifacts import ContractArtifact
from paymaster_deploy.config import AddressDerivation, DeployConfig, LoggingConfig, NetworkConfig, set_config
from paymaster_deploy.logging_utils import DeployLogger
from paymaster_deploy.paymaster import GeneralPaymasterMode, build_paymaster_params
from paymaster_deploy.signer import LocalAccountSigner

# Well-known throwaway key, never funded
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_SENDER = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"

PAYMASTER_ADDRESS = "0x98546B226dbbA8230cf620635a1e4ab01F6A99B2"

# One 32-byte word: the smallest bytecode with a valid versioned hash
SAMPLE_BYTECODE = bytes(range(32))

SPHNX_ABI = [
    {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "initialSupply", "type": "uint256", "internalType": "uint256"}],
    },
    {
        "type": "function",
        "name": "totalSupply",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256", "internalType": "uint256"}],
    },
]


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep tests independent of the process environment."""
    set_config(
        DeployConfig(
            network=NetworkConfig(name="testnet", chain_id=300, rpc_url="http://rpc.test"),
            logging=LoggingConfig(),
        )
    )
    yield
    set_config(None)


@pytest.fixture
def sample_eth_address():
    """Valid Ethereum address for testing."""
    return "0x1234567890123456789012345678901234567890"


@pytest.fixture
def sample_tx_hash():
    """Valid transaction hash for testing."""
    return "0x" + "a" * 64


@pytest.fixture
def paymaster_address():
    return PAYMASTER_ADDRESS


@pytest.fixture
def network_config():
    """Fast-polling test network using standard CREATE addresses."""
    return NetworkConfig(
        name="testnet",
        chain_id=300,
        rpc_url="http://rpc.test",
        address_derivation=AddressDerivation.CREATE,
        confirmation_timeout_seconds=1.0,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def sphnx_artifact():
    """Artifact shaped like the SPHNX token: one uint256 constructor argument."""
    return ContractArtifact(
        contract_name="SPHNX",
        abi=tuple(SPHNX_ABI),
        bytecode=SAMPLE_BYTECODE,
        source_name="contracts/SPHNX.sol",
    )


@pytest.fixture
def general_params():
    return build_paymaster_params(PAYMASTER_ADDRESS, GeneralPaymasterMode())


@pytest.fixture
def signer():
    return LocalAccountSigner(TEST_PRIVATE_KEY, chain_id=300)


@pytest.fixture
def deploy_logger():
    return DeployLogger("paymaster_deploy.test", LoggingConfig())


@pytest.fixture
def mock_rpc_client(network_config, sample_tx_hash):
    """RPC client double that accepts and confirms a deployment."""
    client = AsyncMock()
    client.network = network_config
    client.connect = AsyncMock(return_value=None)
    client.get_nonce = AsyncMock(return_value=0)
    client.get_deployment_nonce = AsyncMock(return_value=0)
    client.estimate_gas = AsyncMock(return_value=1_000_000)
    client.get_gas_price = AsyncMock(return_value=25_000_000)
    client.send_raw_transaction = AsyncMock(return_value=sample_tx_hash)
    client.get_transaction_receipt = AsyncMock(return_value={
        "transactionHash": sample_tx_hash,
        "blockNumber": "0x10",
        "blockHash": "0x" + "b" * 64,
        "status": "0x1",
        "gasUsed": "0x5208",
        "contractAddress": None,
    })
    client.get_block_number = AsyncMock(return_value=16)
    client.get_block = AsyncMock(return_value={"number": "0x10"})
    client.close = AsyncMock(return_value=None)
    return client


@pytest.fixture
def artifacts_dir(tmp_path):
    """Hardhat-style artifacts directory holding SPHNX and a factory dependency."""
    root = tmp_path / "artifacts-zk"
    contracts = root / "contracts"

    (contracts / "SPHNX.sol").mkdir(parents=True)
    (contracts / "SPHNX.sol" / "SPHNX.json").write_text(json.dumps({
        "contractName": "SPHNX",
        "sourceName": "contracts/SPHNX.sol",
        "abi": SPHNX_ABI,
        "bytecode": "0x" + SAMPLE_BYTECODE.hex(),
        "factoryDeps": {},
    }))
    (contracts / "SPHNX.sol" / "SPHNX.dbg.json").write_text(json.dumps({"buildInfo": "x"}))

    (contracts / "Factory.sol").mkdir(parents=True)
    (contracts / "Factory.sol" / "Factory.json").write_text(json.dumps({
        "contractName": "Factory",
        "sourceName": "contracts/Factory.sol",
        "abi": [],
        "bytecode": "0x" + ("ab" * 96),
        "factoryDeps": {"0x" + "cd" * 32: "contracts/SPHNX.sol:SPHNX"},
    }))

    (contracts / "IToken.sol").mkdir(parents=True)
    (contracts / "IToken.sol" / "IToken.json").write_text(json.dumps({
        "contractName": "IToken",
        "sourceName": "contracts/IToken.sol",
        "abi": [],
        "bytecode": "0x",
    }))
    return root
