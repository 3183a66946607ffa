"""
Tests for paymaster_deploy.paymaster module.

Tests cover:
- Address normalization (checksums, raw bytes, malformed input)
- General and approval-based paymaster input encoding
- Allowance bounds
- Decoding of encoded paymaster input
"""
from __future__ import annotations

import pytest
from eth_abi import encode
from eth_utils import to_checksum_address

from paymaster_deploy.exceptions import InvalidAddressError, InvalidAllowanceError
from paymaster_deploy.paymaster import (
    APPROVAL_BASED_SELECTOR,
    GENERAL_SELECTOR,
    MAX_UINT256,
    ApprovalBasedPaymasterMode,
    GeneralPaymasterMode,
    PaymasterParams,
    build_paymaster_params,
    decode_paymaster_input,
    encode_paymaster_input,
    normalize_address,
)

PAYMASTER = "0x98546B226dbbA8230cf620635a1e4ab01F6A99B2"
TOKEN = "0x1234567890123456789012345678901234567890"


class TestSelectors:
    """IPaymasterFlow selectors."""

    def test_general_selector(self):
        assert GENERAL_SELECTOR.hex() == "8c5a3445"

    def test_approval_based_selector(self):
        assert APPROVAL_BASED_SELECTOR.hex() == "949431dc"


class TestNormalizeAddress:
    """Tests for normalize_address."""

    def test_checksummed_address(self):
        assert normalize_address(PAYMASTER) == PAYMASTER

    def test_lowercase_address_is_checksummed(self):
        assert normalize_address(PAYMASTER.lower()) == PAYMASTER

    def test_uppercase_body_is_accepted(self):
        assert normalize_address("0x" + PAYMASTER[2:].upper()) == PAYMASTER

    def test_raw_bytes(self):
        raw = bytes.fromhex(PAYMASTER[2:])
        assert normalize_address(raw) == PAYMASTER

    @pytest.mark.parametrize("value", [
        "0x1234",  # too short
        "0x" + "12" * 21,  # too long
        "1234567890123456789012345678901234567890",  # no prefix
        "0xZZ34567890123456789012345678901234567890",  # not hex
        "0x98546b226dbbA8230cf620635a1e4ab01F6A99B2",  # bad checksum
        b"\x12" * 19,
        b"\x12" * 32,
        None,
        12345,
    ])
    def test_malformed_addresses_rejected(self, value):
        with pytest.raises(InvalidAddressError) as exc_info:
            normalize_address(value, "paymaster address")

        assert exc_info.value.field_name == "paymaster address"
        assert isinstance(exc_info.value, ValueError)


class TestGeneralMode:
    """General (unconditional) sponsorship."""

    def test_empty_inner_input(self):
        params = build_paymaster_params(PAYMASTER, GeneralPaymasterMode())

        assert params.paymaster == PAYMASTER
        assert params.paymaster_input == GENERAL_SELECTOR + encode(["bytes"], [b""])
        assert len(params.paymaster_input) == 4 + 64

    def test_inner_input_hex_string(self):
        mode = GeneralPaymasterMode(inner_input="0xdeadbeef")

        assert mode.inner_input == bytes.fromhex("deadbeef")
        assert encode_paymaster_input(mode) == GENERAL_SELECTOR + encode(["bytes"], [b"\xde\xad\xbe\xef"])

    def test_inner_input_rejects_non_hex(self):
        with pytest.raises(TypeError):
            GeneralPaymasterMode(inner_input="not hex")

    def test_type_tag(self):
        assert GeneralPaymasterMode().type == "General"
        assert ApprovalBasedPaymasterMode(TOKEN, 1).type == "ApprovalBased"

    def test_deterministic(self):
        """Same inputs, byte-identical output."""
        first = build_paymaster_params(PAYMASTER, GeneralPaymasterMode(b"\x01"))
        second = build_paymaster_params(PAYMASTER.lower(), GeneralPaymasterMode(b"\x01"))

        assert first == second


class TestApprovalBasedMode:
    """Approval-based (ERC-20) sponsorship."""

    def test_encoding(self):
        mode = ApprovalBasedPaymasterMode(token=TOKEN, min_allowance=1, inner_input=b"")

        params = build_paymaster_params(PAYMASTER, mode)

        expected = APPROVAL_BASED_SELECTOR + encode(
            ["address", "uint256", "bytes"],
            [TOKEN, 1, b""],
        )
        assert params.paymaster_input == expected

    def test_zero_and_max_allowance(self):
        for allowance in (0, MAX_UINT256):
            mode = ApprovalBasedPaymasterMode(token=TOKEN, min_allowance=allowance)
            assert encode_paymaster_input(mode).startswith(APPROVAL_BASED_SELECTOR)

    @pytest.mark.parametrize("allowance", [-1, MAX_UINT256 + 1, "100", 1.5, True])
    def test_invalid_allowance(self, allowance):
        mode = ApprovalBasedPaymasterMode(token=TOKEN, min_allowance=allowance)

        with pytest.raises(InvalidAllowanceError) as exc_info:
            build_paymaster_params(PAYMASTER, mode)

        assert exc_info.value.min_allowance == allowance

    def test_invalid_token(self):
        mode = ApprovalBasedPaymasterMode(token="0x1234", min_allowance=1)

        with pytest.raises(InvalidAddressError) as exc_info:
            build_paymaster_params(PAYMASTER, mode)

        assert exc_info.value.field_name == "token"


class TestBuildPaymasterParams:
    """Tests for build_paymaster_params."""

    def test_invalid_paymaster_address(self):
        with pytest.raises(InvalidAddressError):
            build_paymaster_params("0x" + "00" * 19, GeneralPaymasterMode())

    def test_unsupported_mode(self):
        with pytest.raises(TypeError):
            build_paymaster_params(PAYMASTER, object())

    def test_to_rpc(self):
        params = build_paymaster_params(PAYMASTER, GeneralPaymasterMode())

        rpc = params.to_rpc()

        assert rpc["paymaster"] == PAYMASTER
        assert rpc["paymasterInput"] == list(params.paymaster_input)

    def test_to_dict(self):
        params = PaymasterParams(paymaster=PAYMASTER, paymaster_input=b"\x01\x02")

        assert params.to_dict() == {"paymaster": PAYMASTER, "paymasterInput": "0x0102"}


class TestDecodePaymasterInput:
    """Encoded input decodes back to the same mode."""

    def test_general(self):
        mode = GeneralPaymasterMode(inner_input=b"\x01\x02\x03")

        assert decode_paymaster_input(encode_paymaster_input(mode)) == mode

    def test_approval_based(self):
        mode = ApprovalBasedPaymasterMode(
            token=to_checksum_address(TOKEN),
            min_allowance=10**18,
            inner_input=b"\xff",
        )

        assert decode_paymaster_input(encode_paymaster_input(mode)) == mode

    def test_unknown_selector(self):
        with pytest.raises(ValueError, match="Unknown paymaster flow selector"):
            decode_paymaster_input(b"\x00\x00\x00\x00" + b"\x00" * 32)
