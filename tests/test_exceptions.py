"""
Tests for paymaster_deploy.exceptions module.
"""
from __future__ import annotations

import pytest

from paymaster_deploy.exceptions import (
    ArgumentMismatchError,
    BroadcastFailedError,
    ConfirmationTimeoutError,
    DeploymentError,
    DeploymentStatus,
    EstimationFailedError,
    IndeterminateError,
    InvalidAddressError,
    InvalidAllowanceError,
    SigningFailedError,
    TransactionRevertedError,
)


class TestDeploymentStatus:

    def test_terminal_states(self):
        assert not DeploymentStatus.UNSUBMITTED.is_terminal
        assert not DeploymentStatus.SUBMITTED.is_terminal
        for status in (
            DeploymentStatus.CONFIRMED,
            DeploymentStatus.REVERTED,
            DeploymentStatus.TIMED_OUT,
            DeploymentStatus.REJECTED_PRE_SUBMIT,
            DeploymentStatus.INDETERMINATE,
        ):
            assert status.is_terminal


class TestErrorTaxonomy:
    """Each error records the state it leaves a deployment in."""

    @pytest.mark.parametrize("error, status, retriable", [
        (InvalidAddressError("0x12"), DeploymentStatus.REJECTED_PRE_SUBMIT, False),
        (InvalidAllowanceError(-1), DeploymentStatus.REJECTED_PRE_SUBMIT, False),
        (ArgumentMismatchError("SPHNX", ["uint256"], []), DeploymentStatus.REJECTED_PRE_SUBMIT, False),
        (EstimationFailedError("paymaster rejected"), DeploymentStatus.REJECTED_PRE_SUBMIT, True),
        (SigningFailedError("refused"), DeploymentStatus.REJECTED_PRE_SUBMIT, True),
        (BroadcastFailedError("nonce too low"), DeploymentStatus.REJECTED_PRE_SUBMIT, True),
        (ConfirmationTimeoutError("0xabc", 120), DeploymentStatus.TIMED_OUT, False),
        (IndeterminateError("0xabc", 0, "0x12"), DeploymentStatus.INDETERMINATE, False),
        (TransactionRevertedError("0xabc", 16), DeploymentStatus.REVERTED, False),
    ])
    def test_status(self, error, status, retriable):
        assert isinstance(error, DeploymentError)
        assert error.status == status
        assert error.retriable is retriable

    def test_reason_verbatim(self):
        error = EstimationFailedError("Paymaster balance too low", code=3, data="0x")

        assert error.reason == "Paymaster balance too low"
        assert "Paymaster balance too low" in str(error)

    def test_argument_mismatch_message(self):
        error = ArgumentMismatchError("SPHNX", ["uint256"], ["a", "b"], "expected 1 argument(s)")

        assert "SPHNX" in str(error)
        assert "(uint256)" in str(error)
        assert "got 2 argument(s)" in str(error)

    def test_indeterminate_without_hash(self):
        error = IndeterminateError(None, 3, "0x12", "cancelled during broadcast")

        assert error.tx_hash is None
        assert "nonce 3" in str(error)
        assert str(error).endswith("cancelled during broadcast")

    def test_revert_reason(self):
        error = TransactionRevertedError("0xabc", 16, "Ownable: caller is not the owner")

        assert str(error) == "Transaction 0xabc reverted in block 16: Ownable: caller is not the owner"

    def test_builtin_bases(self):
        assert isinstance(InvalidAddressError("x"), ValueError)
        assert isinstance(ConfirmationTimeoutError("0xabc", 1), TimeoutError)
