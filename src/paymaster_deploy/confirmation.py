"""
Confirmation tracking for submitted deployments.

The wait is a cooperative polling loop, so any number of deployments can be
awaited concurrently on one event loop. It is bounded by a timeout and can
be cancelled at any point.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .config import Finality, NetworkConfig
from .exceptions import ConfirmationTimeoutError, TransactionRevertedError

logger = logging.getLogger(__name__)


class ConfirmationStatus(str, Enum):
    """Status of transaction confirmation."""
    PENDING = "pending"  # Not yet in a block
    CONFIRMING = "confirming"  # In a block, awaiting confirmations or finality
    CONFIRMED = "confirmed"  # Required confirmations reached
    FINALIZED = "finalized"  # At or below the network's finalized block
    REVERTED = "reverted"  # Included with status 0


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16)
    return int(value)


@dataclass
class TrackedTransaction:
    """A transaction being tracked for confirmation."""
    tx_hash: str
    required_confirmations: int = 1
    finality: Finality = Finality.CONFIRMED
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    block_number: Optional[int] = None
    block_hash: Optional[str] = None
    confirmations: int = 0
    receipt: Optional[Dict[str, Any]] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def gas_used(self) -> Optional[int]:
        return _to_int(self.receipt.get("gasUsed")) if self.receipt else None

    @property
    def contract_address(self) -> Optional[str]:
        return self.receipt.get("contractAddress") if self.receipt else None

    @property
    def is_done(self) -> bool:
        return self.status in (
            ConfirmationStatus.CONFIRMED,
            ConfirmationStatus.FINALIZED,
            ConfirmationStatus.REVERTED,
        )

    def apply_receipt(self, receipt: Dict[str, Any]) -> None:
        """Record an inclusion receipt."""
        block_hash = receipt.get("blockHash")
        if self.block_hash and block_hash != self.block_hash:
            logger.warning(
                f"Transaction {self.tx_hash} block hash changed: "
                f"{self.block_hash} -> {block_hash}"
            )
        self.receipt = receipt
        self.block_number = _to_int(receipt.get("blockNumber"))
        self.block_hash = block_hash
        self.last_updated = datetime.now(timezone.utc)

        if _to_int(receipt.get("status", "0x1")) == 0:
            self.status = ConfirmationStatus.REVERTED
        elif self.status == ConfirmationStatus.PENDING:
            self.status = ConfirmationStatus.CONFIRMING

    def update_confirmations(self, current_block: int) -> None:
        """Update confirmation count based on current block."""
        if self.block_number is None or self.status == ConfirmationStatus.REVERTED:
            return
        self.confirmations = max(0, current_block - self.block_number + 1)
        if (
            self.finality == Finality.CONFIRMED
            and self.confirmations >= self.required_confirmations
        ):
            self.status = ConfirmationStatus.CONFIRMED

    def update_finalized(self, finalized_block: Optional[int]) -> None:
        """Mark finalized once the finalized head passes the receipt's block."""
        if self.block_number is None or finalized_block is None:
            return
        if self.status != ConfirmationStatus.REVERTED and finalized_block >= self.block_number:
            self.status = ConfirmationStatus.FINALIZED


class ConfirmationWaiter:
    """Waits for a submitted transaction to reach the configured finality."""

    def __init__(self, network: NetworkConfig):
        self._network = network

    async def wait(
        self,
        tx_hash: str,
        rpc_client: Any,
        timeout_seconds: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> TrackedTransaction:
        """
        Wait until the transaction is confirmed (or finalized).

        Args:
            tx_hash: Transaction hash
            rpc_client: RPC client
            timeout_seconds: Maximum wait time
            poll_interval: Polling interval

        Returns:
            Confirmed TrackedTransaction

        Raises:
            ConfirmationTimeoutError: not confirmed within the timeout
            TransactionRevertedError: included with status 0
        """
        if timeout_seconds is None:
            timeout_seconds = self._network.confirmation_timeout_seconds
        if poll_interval is None:
            poll_interval = self._network.poll_interval_seconds

        tracked = TrackedTransaction(
            tx_hash=tx_hash,
            required_confirmations=self._network.confirmations_required,
            finality=self._network.finality,
        )

        try:
            await asyncio.wait_for(
                self._poll(tracked, rpc_client, poll_interval),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeoutError(tx_hash, timeout_seconds, tracked.status.value) from e

        if tracked.status == ConfirmationStatus.REVERTED:
            raise TransactionRevertedError(tx_hash, tracked.block_number)

        logger.info(
            f"Transaction {tx_hash} {tracked.status.value} in block {tracked.block_number} "
            f"with {tracked.confirmations} confirmations"
        )
        return tracked

    async def _poll(self, tracked: TrackedTransaction, rpc_client: Any, poll_interval: float) -> None:
        while True:
            await self._update(tracked, rpc_client)
            if tracked.is_done:
                return
            await asyncio.sleep(poll_interval)

    async def _update(self, tracked: TrackedTransaction, rpc_client: Any) -> None:
        receipt = await rpc_client.get_transaction_receipt(tracked.tx_hash)
        if not receipt or receipt.get("blockNumber") is None:
            tracked.status = ConfirmationStatus.PENDING
            return

        tracked.apply_receipt(receipt)
        if tracked.status == ConfirmationStatus.REVERTED:
            return

        if tracked.finality == Finality.FINALIZED:
            block = await rpc_client.get_block("finalized")
            tracked.update_finalized(_to_int(block.get("number")) if block else None)
        else:
            tracked.update_confirmations(await rpc_client.get_block_number())
