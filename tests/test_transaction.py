"""
Tests for paymaster_deploy.transaction module.
"""
from __future__ import annotations

import hashlib

import pytest
import rlp
from eth_abi import decode
from eth_utils import keccak, to_checksum_address

from paymaster_deploy.exceptions import InvalidBytecodeError
from paymaster_deploy.paymaster import GeneralPaymasterMode, build_paymaster_params
from paymaster_deploy.transaction import (
    CONTRACT_DEPLOYER_ADDRESS,
    CREATE_SELECTOR,
    EIP712_TX_TYPE,
    ZERO_HASH,
    build_deployment_transaction,
    compute_create_address,
    compute_zksync_create_address,
    encode_create_calldata,
    encode_get_deployment_nonce,
    hash_bytecode,
)

from conftest import PAYMASTER_ADDRESS, SAMPLE_BYTECODE, TEST_SENDER


class TestHashBytecode:
    """Versioned bytecode hash."""

    def test_layout(self):
        bytecode_hash = hash_bytecode(SAMPLE_BYTECODE)

        assert len(bytecode_hash) == 32
        assert bytecode_hash[:2] == b"\x01\x00"
        assert int.from_bytes(bytecode_hash[2:4], "big") == 1
        assert bytecode_hash[4:] == hashlib.sha256(SAMPLE_BYTECODE).digest()[4:]

    def test_word_count(self):
        assert int.from_bytes(hash_bytecode(b"\x00" * 96)[2:4], "big") == 3

    def test_not_word_aligned(self):
        with pytest.raises(InvalidBytecodeError, match="multiple of 32"):
            hash_bytecode(b"\x00" * 33)

    def test_even_word_count(self):
        with pytest.raises(InvalidBytecodeError, match="odd"):
            hash_bytecode(b"\x00" * 64)

    def test_too_long(self):
        with pytest.raises(InvalidBytecodeError, match="too long"):
            hash_bytecode(b"\x00" * 32 * (2**16 + 1))


class TestAddressDerivation:
    """Contract address derivation."""

    def test_create_address_known_vectors(self):
        sender = "0x6ac7ea33f8831ea9dcc53393aaa88b25a785dbf0"

        assert compute_create_address(sender, 0) == to_checksum_address(
            "0xcd234a471b72ba2f1ccf0a70fcaba648a5eecd8d"
        )
        assert compute_create_address(sender, 1) == to_checksum_address(
            "0x343c43a37d37dff08ae8c4a11544c718abb4fcf8"
        )

    def test_create_address_depends_on_nonce(self):
        assert compute_create_address(TEST_SENDER, 0) != compute_create_address(TEST_SENDER, 1)

    def test_zksync_create_address(self):
        preimage = (
            keccak(text="zksyncCreate")
            + bytes.fromhex(TEST_SENDER[2:]).rjust(32, b"\x00")
            + (7).to_bytes(32, "big")
        )

        assert compute_zksync_create_address(TEST_SENDER, 7) == to_checksum_address(keccak(preimage)[12:])

    def test_schemes_differ(self):
        assert compute_zksync_create_address(TEST_SENDER, 0) != compute_create_address(TEST_SENDER, 0)


class TestCalldata:
    """ContractDeployer and NonceHolder call encoding."""

    def test_create_calldata(self):
        bytecode_hash = hash_bytecode(SAMPLE_BYTECODE)

        calldata = encode_create_calldata(bytecode_hash, b"\x01\x02")

        assert calldata[:4] == CREATE_SELECTOR
        salt, decoded_hash, constructor_input = decode(["bytes32", "bytes32", "bytes"], calldata[4:])
        assert salt == ZERO_HASH
        assert decoded_hash == bytecode_hash
        assert constructor_input == b"\x01\x02"

    def test_get_deployment_nonce(self):
        calldata = encode_get_deployment_nonce(TEST_SENDER)

        (address,) = decode(["address"], calldata[4:])
        assert address == TEST_SENDER


class TestDeploymentTransaction:
    """Tests for build_deployment_transaction and Eip712Transaction."""

    @pytest.fixture
    def tx(self):
        tx = build_deployment_transaction(
            chain_id=300,
            sender=TEST_SENDER.lower(),
            bytecode=SAMPLE_BYTECODE,
            constructor_input=b"",
            gas_per_pubdata=50_000,
            paymaster_params=build_paymaster_params(PAYMASTER_ADDRESS, GeneralPaymasterMode()),
            factory_deps=(b"\xaa" * 96, SAMPLE_BYTECODE),
        )
        tx.nonce = 3
        tx.gas_limit = 1_200_000
        tx.max_fee_per_gas = 25_000_000
        return tx

    def test_targets_contract_deployer(self, tx):
        assert tx.to_address == CONTRACT_DEPLOYER_ADDRESS
        assert tx.from_address == TEST_SENDER
        assert tx.data[:4] == CREATE_SELECTOR

    def test_bytecode_first_in_factory_deps(self, tx):
        """Own bytecode leads; duplicates of it are dropped."""
        assert tx.meta.factory_deps == (SAMPLE_BYTECODE, b"\xaa" * 96)

    def test_rpc_request(self, tx):
        request = tx.to_rpc_request()

        assert request["type"] == "0x71"
        assert request["to"] == CONTRACT_DEPLOYER_ADDRESS
        assert request["maxFeePerGas"] == hex(25_000_000)
        meta = request["eip712Meta"]
        assert meta["gasPerPubdata"] == hex(50_000)
        assert meta["factoryDeps"][0] == list(SAMPLE_BYTECODE)
        assert meta["paymasterParams"]["paymaster"] == PAYMASTER_ADDRESS

    def test_rpc_request_without_fees(self, tx):
        tx.max_fee_per_gas = 0

        assert "maxFeePerGas" not in tx.to_rpc_request()

    def test_typed_data(self, tx):
        typed = tx.to_typed_data()

        assert typed["domain"] == {"name": "zkSync", "version": "2", "chainId": 300}
        message = typed["message"]
        assert message["txType"] == EIP712_TX_TYPE
        assert message["from"] == int(TEST_SENDER, 16)
        assert message["paymaster"] == int(PAYMASTER_ADDRESS, 16)
        assert message["factoryDeps"] == [hash_bytecode(SAMPLE_BYTECODE), hash_bytecode(b"\xaa" * 96)]
        assert message["nonce"] == 3

    def test_serialize(self, tx):
        signature = b"\x01" * 65

        raw = tx.serialize(signature)

        assert raw[0] == EIP712_TX_TYPE
        fields = rlp.decode(raw[1:])
        assert len(fields) == 16
        assert int.from_bytes(fields[0], "big") == 3  # nonce
        assert fields[4] == bytes.fromhex(CONTRACT_DEPLOYER_ADDRESS[2:])
        assert int.from_bytes(fields[10], "big") == 300  # chain id
        assert fields[11] == bytes.fromhex(TEST_SENDER[2:])
        assert int.from_bytes(fields[12], "big") == 50_000
        assert fields[13] == [SAMPLE_BYTECODE, b"\xaa" * 96]
        assert fields[14] == signature
        assert fields[15][0] == bytes.fromhex(PAYMASTER_ADDRESS[2:])

    def test_serialize_without_paymaster(self):
        tx = build_deployment_transaction(
            chain_id=300,
            sender=TEST_SENDER,
            bytecode=SAMPLE_BYTECODE,
            constructor_input=b"",
            gas_per_pubdata=50_000,
            paymaster_params=None,
        )

        fields = rlp.decode(tx.serialize(b"\x01" * 65)[1:])

        assert fields[15] == []

    def test_empty_signature_rejected(self, tx):
        with pytest.raises(ValueError):
            tx.serialize(b"")
