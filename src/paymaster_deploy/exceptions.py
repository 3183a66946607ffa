"""
Error taxonomy for paymaster-sponsored deployments.

Errors fall into three groups:
- Local pre-flight errors that never reach the network
- Network rejections before the transaction was accepted (safe to retry
  with a fresh nonce)
- Post-broadcast outcomes (timeout, revert, indeterminate)

Every error carries the deployment status it leaves the request in, and
the network's rejection reason verbatim where there is one.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional


class DeploymentStatus(str, Enum):
    """Lifecycle state of a single deployment request."""
    UNSUBMITTED = "unsubmitted"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    REJECTED_PRE_SUBMIT = "rejected_pre_submit"
    INDETERMINATE = "indeterminate"  # Broadcast succeeded, outcome unknown

    @property
    def is_terminal(self) -> bool:
        return self not in (DeploymentStatus.UNSUBMITTED, DeploymentStatus.SUBMITTED)


class DeploymentError(Exception):
    """Base exception for deployment errors."""

    status: DeploymentStatus = DeploymentStatus.REJECTED_PRE_SUBMIT
    retriable: bool = False

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        code: Optional[int] = None,
        data: Any = None,
    ):
        self.reason = reason
        self.code = code
        self.data = data
        super().__init__(message)


# ---------------------------------------------------------------------------
# Local, pre-flight
# ---------------------------------------------------------------------------


class InvalidAddressError(DeploymentError, ValueError):
    """Raised when an address is not a well-formed 20-byte address."""

    def __init__(self, value: Any, field_name: str = "address"):
        self.value = value
        self.field_name = field_name
        super().__init__(f"Invalid {field_name}: {value!r} is not a 20-byte address")


class InvalidAllowanceError(DeploymentError, ValueError):
    """Raised when an approval-based minimal allowance is out of range."""

    def __init__(self, min_allowance: Any):
        self.min_allowance = min_allowance
        super().__init__(
            f"Invalid minimal allowance {min_allowance!r}: must be an integer in [0, 2**256)"
        )


class ArgumentMismatchError(DeploymentError, ValueError):
    """Raised when constructor arguments disagree with the artifact's constructor."""

    def __init__(
        self,
        contract_name: str,
        expected_types: List[str],
        received: List[Any],
        detail: Optional[str] = None,
    ):
        self.contract_name = contract_name
        self.expected_types = expected_types
        self.received = received
        message = (
            f"Constructor arguments for {contract_name} do not match "
            f"({', '.join(expected_types)}): got {len(received)} argument(s)"
        )
        if detail:
            message += f": {detail}"
        super().__init__(message, reason=detail)


class InvalidBytecodeError(DeploymentError, ValueError):
    """Raised when bytecode cannot be hashed into a versioned bytecode hash."""


class ArtifactNotFoundError(DeploymentError, FileNotFoundError):
    """Raised when a contract artifact cannot be resolved."""


class DuplicateSubmissionError(DeploymentError):
    """Raised when a deployment request is submitted a second time."""

    def __init__(self, request_id: str, status: DeploymentStatus):
        self.request_id = request_id
        self.previous_status = status
        super().__init__(
            f"Deployment request {request_id} was already submitted "
            f"(status: {status.value})"
        )


# ---------------------------------------------------------------------------
# Network-rejected, before the transaction was accepted
# ---------------------------------------------------------------------------


class EstimationFailedError(DeploymentError):
    """Raised when the network rejects simulation of the deployment."""

    retriable = True

    def __init__(self, reason: str, code: Optional[int] = None, data: Any = None):
        super().__init__(f"Gas estimation failed: {reason}", reason=reason, code=code, data=data)


class SigningFailedError(DeploymentError):
    """Raised when the signer is unavailable or refuses to sign."""

    retriable = True

    def __init__(self, reason: str):
        super().__init__(f"Signing failed: {reason}", reason=reason)


class BroadcastFailedError(DeploymentError):
    """Raised when the network rejects the signed transaction."""

    retriable = True

    def __init__(self, reason: str, code: Optional[int] = None, data: Any = None):
        super().__init__(f"Broadcast failed: {reason}", reason=reason, code=code, data=data)


# ---------------------------------------------------------------------------
# Post-broadcast
# ---------------------------------------------------------------------------


class ConfirmationTimeoutError(DeploymentError, TimeoutError):
    """Raised when a transaction is not confirmed within the wait bound."""

    status = DeploymentStatus.TIMED_OUT

    def __init__(self, tx_hash: str, timeout_seconds: float, last_status: str = "pending"):
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds
        self.last_status = last_status
        super().__init__(
            f"Transaction {tx_hash} not confirmed after {timeout_seconds}s "
            f"(last status: {last_status})"
        )


class IndeterminateError(DeploymentError):
    """Raised when the wait is cancelled after a successful broadcast.

    The transaction may still be included; query chain state before
    retrying.
    """

    status = DeploymentStatus.INDETERMINATE

    def __init__(
        self,
        tx_hash: Optional[str],
        nonce: int,
        sender: str,
        reason: Optional[str] = None,
    ):
        self.tx_hash = tx_hash
        self.nonce = nonce
        self.sender = sender
        subject = f"Deployment {tx_hash}" if tx_hash else "Deployment transaction"
        message = (
            f"{subject} (nonce {nonce} from {sender}) may have been broadcast "
            f"but its outcome is unknown"
        )
        if reason:
            message += f": {reason}"
        super().__init__(message, reason=reason)


class TransactionRevertedError(DeploymentError):
    """Raised when the deployment was included but reverted."""

    status = DeploymentStatus.REVERTED

    def __init__(
        self,
        tx_hash: str,
        block_number: Optional[int] = None,
        revert_reason: Optional[str] = None,
    ):
        self.tx_hash = tx_hash
        self.block_number = block_number
        message = f"Transaction {tx_hash} reverted"
        if block_number is not None:
            message += f" in block {block_number}"
        if revert_reason:
            message += f": {revert_reason}"
        super().__init__(message, reason=revert_reason)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class RPCError(Exception):
    """JSON-RPC error returned by the node, kept verbatim."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.message = message
        self.code = code
        self.data = data
        super().__init__(message)


class ChainIDMismatchError(Exception):
    """Raised when the node reports a different chain ID than configured."""

    def __init__(self, network: str, expected: int, received: int):
        self.network = network
        self.expected = expected
        self.received = received
        super().__init__(
            f"Chain ID mismatch for {network}: expected {expected}, got {received}"
        )


class NonceConflictError(Exception):
    """Raised when a nonce is already held by a live pending transaction."""

    def __init__(self, address: str, nonce: int, existing_tx: str):
        self.address = address
        self.nonce = nonce
        self.existing_tx = existing_tx
        super().__init__(
            f"Nonce {nonce} already used by transaction {existing_tx} for {address}"
        )
