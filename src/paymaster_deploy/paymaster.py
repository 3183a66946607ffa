"""Paymaster sponsorship parameters.

A paymaster contract pays the fee of a transaction on behalf of its sender.
The sender opts in by attaching ``paymasterParams`` to the transaction's
custom data: the paymaster's address plus an input blob that starts with
an ``IPaymasterFlow`` selector:

- ``general(bytes)``: unconditional sponsorship
- ``approvalBased(address,uint256,bytes)``: the paymaster expects an ERC-20
  allowance of at least ``minAllowance`` of ``token``

Building parameters is a pure function; nothing here touches the network.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Union

from eth_abi import decode, encode
from eth_utils import is_checksum_address, is_hex, is_hex_address, to_bytes, to_checksum_address
from web3 import Web3

from .exceptions import InvalidAddressError, InvalidAllowanceError

GENERAL_SELECTOR = bytes(Web3.keccak(text="general(bytes)")[:4])
APPROVAL_BASED_SELECTOR = bytes(Web3.keccak(text="approvalBased(address,uint256,bytes)")[:4])

MAX_UINT256 = 2**256 - 1


def normalize_address(value: Any, field_name: str = "address") -> str:
    """Return the checksummed form of a 20-byte address.

    Accepts a 0x-prefixed 40 hex digit string (mixed case must be a valid
    EIP-55 checksum) or 20 raw bytes. Anything else is rejected rather than
    truncated or padded.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise InvalidAddressError(value, field_name)
        return to_checksum_address(bytes(value))

    if not isinstance(value, str) or not value.startswith(("0x", "0X")):
        raise InvalidAddressError(value, field_name)
    if not is_hex_address(value):
        raise InvalidAddressError(value, field_name)

    body = value[2:]
    if body != body.lower() and body != body.upper() and not is_checksum_address(value):
        raise InvalidAddressError(value, field_name)
    return to_checksum_address(value)


def _coerce_bytes(value: Union[bytes, bytearray, str, None]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str) and (value == "" or is_hex(value)):
        return to_bytes(hexstr=value) if value not in ("", "0x") else b""
    raise TypeError(f"Expected bytes or a hex string, got {value!r}")


@dataclass(frozen=True)
class GeneralPaymasterMode:
    """Unconditional sponsorship."""
    inner_input: bytes = b""

    type = "General"

    def __post_init__(self):
        object.__setattr__(self, "inner_input", _coerce_bytes(self.inner_input))


@dataclass(frozen=True)
class ApprovalBasedPaymasterMode:
    """Sponsorship in exchange for an ERC-20 allowance to the paymaster."""
    token: str
    min_allowance: int
    inner_input: bytes = b""

    type = "ApprovalBased"

    def __post_init__(self):
        object.__setattr__(self, "inner_input", _coerce_bytes(self.inner_input))


PaymasterMode = Union[GeneralPaymasterMode, ApprovalBasedPaymasterMode]


@dataclass(frozen=True)
class PaymasterParams:
    """Encoded sponsorship, ready for a transaction's custom data."""
    paymaster: str
    paymaster_input: bytes

    def to_rpc(self) -> Dict[str, Any]:
        """Shape used inside ``eip712Meta`` for eth_estimateGas / eth_call."""
        return {
            "paymaster": self.paymaster,
            "paymasterInput": list(self.paymaster_input),
        }

    def to_dict(self) -> Dict[str, str]:
        return {
            "paymaster": self.paymaster,
            "paymasterInput": "0x" + self.paymaster_input.hex(),
        }


def encode_paymaster_input(mode: PaymasterMode) -> bytes:
    """Encode the IPaymasterFlow call for a sponsorship mode."""
    if isinstance(mode, GeneralPaymasterMode):
        return GENERAL_SELECTOR + encode(["bytes"], [mode.inner_input])

    if isinstance(mode, ApprovalBasedPaymasterMode):
        token = normalize_address(mode.token, "token")
        allowance = mode.min_allowance
        if isinstance(allowance, bool) or not isinstance(allowance, int):
            raise InvalidAllowanceError(allowance)
        if allowance < 0 or allowance > MAX_UINT256:
            raise InvalidAllowanceError(allowance)
        return APPROVAL_BASED_SELECTOR + encode(
            ["address", "uint256", "bytes"],
            [token, allowance, mode.inner_input],
        )

    raise TypeError(f"Unsupported paymaster mode: {type(mode).__name__}")


def build_paymaster_params(paymaster_address: Any, mode: PaymasterMode) -> PaymasterParams:
    """Build paymaster params for a paymaster address and sponsorship mode.

    Raises:
        InvalidAddressError: paymaster address (or approval token) malformed
        InvalidAllowanceError: negative or oversized minimal allowance
    """
    paymaster = normalize_address(paymaster_address, "paymaster address")
    return PaymasterParams(
        paymaster=paymaster,
        paymaster_input=encode_paymaster_input(mode),
    )


def decode_paymaster_input(paymaster_input: bytes) -> PaymasterMode:
    """Recover the sponsorship mode from an encoded paymaster input."""
    data = _coerce_bytes(paymaster_input)
    selector, body = data[:4], data[4:]

    if selector == GENERAL_SELECTOR:
        (inner_input,) = decode(["bytes"], body)
        return GeneralPaymasterMode(inner_input=inner_input)

    if selector == APPROVAL_BASED_SELECTOR:
        token, min_allowance, inner_input = decode(["address", "uint256", "bytes"], body)
        return ApprovalBasedPaymasterMode(
            token=to_checksum_address(token),
            min_allowance=min_allowance,
            inner_input=inner_input,
        )

    raise ValueError(f"Unknown paymaster flow selector: 0x{selector.hex()}")
