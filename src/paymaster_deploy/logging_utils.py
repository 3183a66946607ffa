"""
Logging utilities for deployment operations.

Features:
- Per-phase operation timing (estimate, sign, broadcast, confirm)
- Deployment transaction lifecycle logging
- RPC call metrics
- Sensitive data masking
"""
from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import LoggingConfig, get_config

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Phases of a deployment."""
    RPC_CALL = "rpc_call"
    NONCE_MANAGEMENT = "nonce_management"
    GAS_ESTIMATION = "gas_estimation"
    SIGNING = "signing"
    TRANSACTION_SUBMIT = "transaction_submit"
    TRANSACTION_CONFIRM = "transaction_confirm"


@dataclass
class OperationContext:
    """Context for a deployment phase."""
    operation_id: str
    operation_type: OperationType
    network: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        """Mark operation as complete."""
        self.completed_at = datetime.now(timezone.utc)
        self.duration_ms = (
            (self.completed_at - self.started_at).total_seconds() * 1000
        )
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type.value,
            "network": self.network,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


@dataclass
class RPCCallLog:
    """Log entry for an RPC call."""
    method: str
    endpoint_url: str
    request_id: int
    duration_ms: float
    success: bool
    error_code: Optional[int] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "endpoint_url": mask_url(self.endpoint_url),
            "request_id": self.request_id,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass
class TransactionLog:
    """Log entry for a deployment transaction."""
    tx_hash: str
    network: str
    sender: str
    contract_name: str
    nonce: int
    gas_limit: int
    paymaster: Optional[str]
    submitted_at: datetime
    status: str = "submitted"
    contract_address: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self, mask_addresses: bool = False) -> Dict[str, Any]:
        sender = mask_address(self.sender) if mask_addresses else self.sender
        return {
            "tx_hash": self.tx_hash,
            "network": self.network,
            "sender": sender,
            "contract_name": self.contract_name,
            "nonce": self.nonce,
            "gas_limit": self.gas_limit,
            "paymaster": self.paymaster,
            "submitted_at": self.submitted_at.isoformat(),
            "status": self.status,
            "contract_address": self.contract_address,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "error": self.error,
        }


def mask_url(url: str) -> str:
    """Mask query parameters of an RPC URL (they often carry API keys)."""
    if "?" in url:
        return f"{url.split('?')[0]}?<params_masked>"
    return url


def mask_address(address: str) -> str:
    """Mask middle portion of address for privacy."""
    if len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


class DeployLogger:
    """
    Structured logger for deployment operations.

    Tracks operation timing, RPC calls and the lifecycle of each submitted
    deployment transaction.
    """

    def __init__(
        self,
        name: str = "paymaster_deploy",
        config: Optional[LoggingConfig] = None,
    ):
        self._logger = logging.getLogger(name)
        self._config = config or get_config().logging
        self._operation_counter = 0

        self._rpc_calls: List[RPCCallLog] = []
        self._transactions: Dict[str, TransactionLog] = {}
        self._max_history = 1000

    def _generate_operation_id(self) -> str:
        self._operation_counter += 1
        timestamp = int(time.time() * 1000)
        return f"op_{timestamp}_{self._operation_counter}"

    @staticmethod
    def _get_level(level_str: str) -> int:
        return getattr(logging, level_str.upper(), logging.INFO)

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        network: str,
        **metadata,
    ):
        """
        Context manager for timing a deployment phase.

        Usage:
            async with deploy_logger.operation_context(OperationType.SIGNING, "zksync_era") as ctx:
                signed = await signer.sign_transaction(tx)
                ctx.metadata["nonce"] = tx.nonce
        """
        ctx = OperationContext(
            operation_id=self._generate_operation_id(),
            operation_type=operation_type,
            network=network,
            metadata=metadata,
        )

        self._logger.debug(
            f"Starting {operation_type.value} on {network}",
            extra={"operation": ctx.to_dict()},
        )

        try:
            yield ctx
            ctx.complete(success=True)
        except BaseException as e:
            ctx.complete(success=False, error=str(e) or type(e).__name__)
            raise
        finally:
            level = (
                self._get_level(self._config.transaction_level)
                if ctx.success
                else self._get_level(self._config.error_level)
            )
            self._logger.log(
                level,
                f"Completed {operation_type.value} on {network} in {ctx.duration_ms:.0f}ms "
                f"(success={ctx.success})",
                extra={"operation": ctx.to_dict()},
            )

    def log_rpc_call(
        self,
        method: str,
        endpoint_url: str,
        request_id: int,
        duration_ms: float,
        success: bool,
        error_code: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Record an RPC call."""
        entry = RPCCallLog(
            method=method,
            endpoint_url=endpoint_url,
            request_id=request_id,
            duration_ms=duration_ms,
            success=success,
            error_code=error_code,
            error_message=error_message,
        )

        self._rpc_calls.append(entry)
        if len(self._rpc_calls) > self._max_history:
            self._rpc_calls = self._rpc_calls[-self._max_history:]

        level = (
            self._get_level(self._config.rpc_call_level)
            if success
            else self._get_level(self._config.error_level)
        )
        self._logger.log(
            level,
            f"RPC {method} in {duration_ms:.0f}ms (success={success})",
            extra={"rpc_call": entry.to_dict()},
        )

    def log_transaction_submitted(
        self,
        tx_hash: str,
        network: str,
        sender: str,
        contract_name: str,
        nonce: int,
        gas_limit: int,
        paymaster: Optional[str],
    ) -> None:
        entry = TransactionLog(
            tx_hash=tx_hash,
            network=network,
            sender=sender,
            contract_name=contract_name,
            nonce=nonce,
            gas_limit=gas_limit,
            paymaster=paymaster,
            submitted_at=datetime.now(timezone.utc),
        )
        self._transactions[tx_hash] = entry
        # Insertion order is submission order; evict the oldest
        while len(self._transactions) > self._max_history:
            del self._transactions[next(iter(self._transactions))]

        self._logger.log(
            self._get_level(self._config.transaction_level),
            f"Deployment of {contract_name} submitted: {tx_hash} on {network}",
            extra={"transaction": entry.to_dict(self._config.mask_addresses)},
        )

    def log_transaction_confirmed(
        self,
        tx_hash: str,
        contract_address: str,
        block_number: Optional[int],
        gas_used: Optional[int],
    ) -> None:
        entry = self._transactions.get(tx_hash)
        if entry:
            entry.status = "confirmed"
            entry.contract_address = contract_address
            entry.block_number = block_number
            entry.gas_used = gas_used

        self._logger.log(
            self._get_level(self._config.transaction_level),
            f"Deployment {tx_hash} confirmed in block {block_number}: {contract_address}",
            extra={"transaction": entry.to_dict(self._config.mask_addresses) if entry else {}},
        )

    def log_transaction_failed(self, tx_hash: str, status: str, error: str) -> None:
        entry = self._transactions.get(tx_hash)
        if entry:
            entry.status = status
            entry.error = error

        self._logger.log(
            self._get_level(self._config.error_level),
            f"Deployment {tx_hash} {status}: {error}",
            extra={"transaction": entry.to_dict(self._config.mask_addresses) if entry else {}},
        )

    def get_transaction(self, tx_hash: str) -> Optional[TransactionLog]:
        return self._transactions.get(tx_hash)

    def get_rpc_metrics(self) -> Dict[str, Any]:
        """Aggregate RPC call metrics."""
        if not self._rpc_calls:
            return {"total_calls": 0}

        latencies = [c.duration_ms for c in self._rpc_calls]
        failures = sum(1 for c in self._rpc_calls if not c.success)

        by_method: Dict[str, int] = {}
        for call in self._rpc_calls:
            by_method[call.method] = by_method.get(call.method, 0) + 1

        return {
            "total_calls": len(self._rpc_calls),
            "failed_calls": failures,
            "calls_by_method": by_method,
            "avg_latency_ms": sum(latencies) / len(latencies),
            "max_latency_ms": max(latencies),
        }


# Global logger instance
_deploy_logger: Optional[DeployLogger] = None


def get_deploy_logger(
    name: str = "paymaster_deploy",
    config: Optional[LoggingConfig] = None,
) -> DeployLogger:
    """Get the global deploy logger instance."""
    global _deploy_logger
    if _deploy_logger is None:
        _deploy_logger = DeployLogger(name, config)
    return _deploy_logger


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key in ("operation", "rpc_call", "transaction"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        return json.dumps(payload, default=str)


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    Set up logging configuration.

    Args:
        level: Log level
        json_format: Emit one JSON object per record
    """
    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level.upper()))

    logging.getLogger("paymaster_deploy").setLevel(getattr(logging, level.upper()))
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
