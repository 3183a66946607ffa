"""EIP-712 (type 0x71) transactions with custom fee metadata.

Contract creation on zkSync-style networks is a call to the ContractDeployer
system contract. The bytecode itself travels in the transaction's
``factoryDeps``; the call data only references it by its versioned hash.
Fee sponsorship travels in the same custom metadata as ``paymasterParams``,
next to ``gasPerPubdata``.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import rlp
from eth_abi import encode
from eth_utils import keccak, to_bytes, to_checksum_address
from web3 import Web3

from .exceptions import InvalidBytecodeError
from .paymaster import PaymasterParams, normalize_address

EIP712_TX_TYPE = 0x71

CONTRACT_DEPLOYER_ADDRESS = "0x0000000000000000000000000000000000008006"
NONCE_HOLDER_ADDRESS = "0x0000000000000000000000000000000000008003"

ZERO_HASH = b"\x00" * 32

CREATE_SELECTOR = bytes(Web3.keccak(text="create(bytes32,bytes32,bytes)")[:4])
GET_DEPLOYMENT_NONCE_SELECTOR = bytes(Web3.keccak(text="getDeploymentNonce(address)")[:4])

ZKSYNC_CREATE_PREFIX = keccak(text="zksyncCreate")

EIP712_DOMAIN_NAME = "zkSync"
EIP712_DOMAIN_VERSION = "2"

EIP712_TRANSACTION_TYPES = {
    "Transaction": [
        {"name": "txType", "type": "uint256"},
        {"name": "from", "type": "uint256"},
        {"name": "to", "type": "uint256"},
        {"name": "gasLimit", "type": "uint256"},
        {"name": "gasPerPubdataByteLimit", "type": "uint256"},
        {"name": "maxFeePerGas", "type": "uint256"},
        {"name": "maxPriorityFeePerGas", "type": "uint256"},
        {"name": "paymaster", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "factoryDeps", "type": "bytes32[]"},
        {"name": "paymasterInput", "type": "bytes"},
    ]
}


def hash_bytecode(bytecode: bytes) -> bytes:
    """Versioned bytecode hash as computed by the ContractDeployer.

    Layout: version byte (1), zero byte, big-endian length in 32-byte words
    (2 bytes), then the last 28 bytes of sha256(bytecode).
    """
    if len(bytecode) % 32 != 0:
        raise InvalidBytecodeError(
            f"Bytecode length {len(bytecode)} is not a multiple of 32 bytes"
        )
    words = len(bytecode) // 32
    if words >= 2**16:
        raise InvalidBytecodeError(f"Bytecode is too long ({words} words)")
    if words % 2 == 0:
        raise InvalidBytecodeError(f"Bytecode length in words must be odd, got {words}")

    digest = hashlib.sha256(bytecode).digest()
    return b"\x01\x00" + words.to_bytes(2, "big") + digest[4:]


def encode_create_calldata(bytecode_hash: bytes, constructor_input: bytes, salt: bytes = ZERO_HASH) -> bytes:
    """Encode ContractDeployer.create(salt, bytecodeHash, input)."""
    return CREATE_SELECTOR + encode(
        ["bytes32", "bytes32", "bytes"],
        [salt, bytecode_hash, constructor_input],
    )


def encode_get_deployment_nonce(address: str) -> bytes:
    """Encode NonceHolder.getDeploymentNonce(address)."""
    return GET_DEPLOYMENT_NONCE_SELECTOR + encode(["address"], [normalize_address(address)])


def compute_create_address(sender: str, nonce: int) -> str:
    """Standard CREATE address: last 20 bytes of keccak(rlp([sender, nonce]))."""
    sender_bytes = to_bytes(hexstr=normalize_address(sender, "sender"))
    return to_checksum_address(keccak(rlp.encode([sender_bytes, nonce]))[12:])


def compute_zksync_create_address(sender: str, deployment_nonce: int) -> str:
    """zkSync CREATE address from the sender's deployment nonce."""
    sender_bytes = to_bytes(hexstr=normalize_address(sender, "sender"))
    preimage = (
        ZKSYNC_CREATE_PREFIX
        + sender_bytes.rjust(32, b"\x00")
        + deployment_nonce.to_bytes(32, "big")
    )
    return to_checksum_address(keccak(preimage)[12:])


def _int_to_rlp(value: int) -> bytes:
    """Minimal big-endian encoding, empty for zero."""
    if value == 0:
        return b""
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def _address_bytes(address: str) -> bytes:
    return to_bytes(hexstr=address)


def _address_int(address: Optional[str]) -> int:
    return int(address, 16) if address else 0


@dataclass(frozen=True)
class Eip712Meta:
    """Custom transaction metadata carried out-of-band from gas fields."""
    gas_per_pubdata: int
    factory_deps: Tuple[bytes, ...] = field(default_factory=tuple)
    paymaster_params: Optional[PaymasterParams] = None
    custom_signature: Optional[bytes] = None

    def to_rpc(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {
            "gasPerPubdata": hex(self.gas_per_pubdata),
            "factoryDeps": [list(dep) for dep in self.factory_deps],
        }
        if self.paymaster_params is not None:
            meta["paymasterParams"] = self.paymaster_params.to_rpc()
        return meta


@dataclass
class Eip712Transaction:
    """An unsigned type 0x71 transaction."""
    chain_id: int
    from_address: str
    to_address: str
    data: bytes
    meta: Eip712Meta
    nonce: int = 0
    value: int = 0
    gas_limit: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0

    def to_rpc_request(self) -> Dict[str, Any]:
        """Request object for eth_estimateGas / eth_call."""
        request: Dict[str, Any] = {
            "type": hex(EIP712_TX_TYPE),
            "from": self.from_address,
            "to": self.to_address,
            "data": "0x" + self.data.hex(),
            "value": hex(self.value),
            "eip712Meta": self.meta.to_rpc(),
        }
        if self.max_fee_per_gas:
            request["maxFeePerGas"] = hex(self.max_fee_per_gas)
            request["maxPriorityFeePerGas"] = hex(self.max_priority_fee_per_gas)
        return request

    def to_typed_data(self) -> Dict[str, Any]:
        """Full EIP-712 structured data for signing."""
        paymaster_params = self.meta.paymaster_params
        message = {
            "txType": EIP712_TX_TYPE,
            "from": _address_int(self.from_address),
            "to": _address_int(self.to_address),
            "gasLimit": self.gas_limit,
            "gasPerPubdataByteLimit": self.meta.gas_per_pubdata,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "paymaster": _address_int(paymaster_params.paymaster if paymaster_params else None),
            "nonce": self.nonce,
            "value": self.value,
            "data": self.data,
            "factoryDeps": [hash_bytecode(dep) for dep in self.meta.factory_deps],
            "paymasterInput": paymaster_params.paymaster_input if paymaster_params else b"",
        }
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                ],
                **EIP712_TRANSACTION_TYPES,
            },
            "primaryType": "Transaction",
            "domain": {
                "name": EIP712_DOMAIN_NAME,
                "version": EIP712_DOMAIN_VERSION,
                "chainId": self.chain_id,
            },
            "message": message,
        }

    def serialize(self, signature: Optional[bytes] = None) -> bytes:
        """RLP-serialize as ``0x71 || rlp(fields)``.

        The EIP-712 signature goes into the custom signature slot; the
        legacy v/r/s slots carry the chain ID and two empty strings.
        """
        custom_signature = signature if signature is not None else self.meta.custom_signature
        if custom_signature is not None and len(custom_signature) == 0:
            raise ValueError("Empty signatures are not supported")

        paymaster_params = self.meta.paymaster_params
        fields = [
            _int_to_rlp(self.nonce),
            _int_to_rlp(self.max_priority_fee_per_gas),
            _int_to_rlp(self.max_fee_per_gas),
            _int_to_rlp(self.gas_limit),
            _address_bytes(self.to_address),
            _int_to_rlp(self.value),
            self.data,
            _int_to_rlp(self.chain_id),
            b"",
            b"",
            _int_to_rlp(self.chain_id),
            _address_bytes(self.from_address),
            _int_to_rlp(self.meta.gas_per_pubdata),
            list(self.meta.factory_deps),
            custom_signature or b"",
            (
                [_address_bytes(paymaster_params.paymaster), paymaster_params.paymaster_input]
                if paymaster_params
                else []
            ),
        ]
        return bytes([EIP712_TX_TYPE]) + rlp.encode(fields)


def build_deployment_transaction(
    *,
    chain_id: int,
    sender: str,
    bytecode: bytes,
    constructor_input: bytes,
    gas_per_pubdata: int,
    paymaster_params: Optional[PaymasterParams],
    factory_deps: Tuple[bytes, ...] = (),
    salt: bytes = ZERO_HASH,
) -> Eip712Transaction:
    """Assemble an unsigned contract-creation transaction."""
    deps = (bytecode, *(d for d in factory_deps if d != bytecode))
    calldata = encode_create_calldata(hash_bytecode(bytecode), constructor_input, salt)
    return Eip712Transaction(
        chain_id=chain_id,
        from_address=normalize_address(sender, "sender"),
        to_address=CONTRACT_DEPLOYER_ADDRESS,
        data=calldata,
        meta=Eip712Meta(
            gas_per_pubdata=gas_per_pubdata,
            factory_deps=deps,
            paymaster_params=paymaster_params,
        ),
    )
