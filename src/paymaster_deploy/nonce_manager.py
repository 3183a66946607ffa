"""
Nonce coordination for concurrent deployments from one signer.

Features:
- Per-address asyncio locks
- Fresh on-chain nonce on every reservation, combined with locally reserved
  nonces so concurrent deployments never collide
- Release of nonces reserved by deployments that never reached the network
- Conflict detection for nonces held by live pending transactions
- zkSync deployment nonces reserved alongside transaction nonces
- Reconciliation with the chain after pending transactions are dropped
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from .exceptions import NonceConflictError

logger = logging.getLogger(__name__)


@dataclass
class PendingTransaction:
    """A broadcast transaction holding a nonce."""
    tx_hash: str
    nonce: int
    address: str
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    final: bool = False
    deployment_nonce: Optional[int] = None

    def age_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.submitted_at).total_seconds()


class NonceManager:
    """
    Nonce manager shared by deployments that use the same signer.

    Tracks two counters per address: the transaction nonce and, on zkSync,
    the NonceHolder deployment nonce that determines the contract address.
    Both are reserved under the same per-address lock so they stay in step.

    SECURITY: A nonce is handed out at most once while its transaction is
    in flight, so two deployments can never race for the same slot.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}  # Per-address locks
        self._next_nonce: Dict[str, int] = {}  # Next locally reservable nonce
        self._reserved: Dict[str, Set[int]] = {}  # Reserved but not yet broadcast
        self._pending_txs: Dict[str, PendingTransaction] = {}  # tx_hash -> pending
        self._nonce_to_tx: Dict[str, str] = {}  # "address:nonce" -> tx_hash
        self._next_deployment_nonce: Dict[str, int] = {}
        self._reserved_deployment: Dict[str, Set[int]] = {}
        self._used_deployment: Dict[str, Set[int]] = {}  # Broadcast or executed

    def _get_lock(self, address_lower: str) -> asyncio.Lock:
        lock = self._locks.get(address_lower)
        if lock is None:
            lock = self._locks[address_lower] = asyncio.Lock()
        return lock

    @staticmethod
    def _nonce_key(address_lower: str, nonce: int) -> str:
        return f"{address_lower}:{nonce}"

    async def reserve_nonce(self, address: str, rpc_client: Any) -> int:
        """
        Reserve the next nonce for an address.

        The on-chain pending nonce is fetched fresh each time; locally
        reserved nonces above it are skipped.

        Raises:
            NonceConflictError: the nonce is held by a live pending transaction
        """
        address_lower = address.lower()
        async with self._get_lock(address_lower):
            return await self._reserve_tx_nonce(address, address_lower, rpc_client)

    async def reserve_deployment_nonces(self, address: str, rpc_client: Any) -> Tuple[int, int]:
        """
        Reserve a transaction nonce and a deployment nonce together.

        The deployment nonce is read fresh from NonceHolder and combined with
        deployment nonces reserved or in flight locally, the same way as the
        transaction nonce.

        Returns:
            Tuple of (transaction nonce, deployment nonce)
        """
        address_lower = address.lower()
        async with self._get_lock(address_lower):
            nonce = await self._reserve_tx_nonce(address, address_lower, rpc_client)
            try:
                on_chain = await rpc_client.get_deployment_nonce(address)
            except BaseException:
                self._release_tx_nonce(address_lower, nonce)
                raise

            used = self._used_deployment.get(address_lower)
            if used:
                # NonceHolder has moved past these
                used.difference_update([n for n in used if n < on_chain])

            deployment_nonce = self._first_free(
                on_chain,
                self._next_deployment_nonce.get(address_lower, 0),
                self._reserved_deployment.setdefault(address_lower, set())
                | self._used_deployment.get(address_lower, set()),
            )
            self._reserved_deployment[address_lower].add(deployment_nonce)
            self._next_deployment_nonce[address_lower] = max(
                deployment_nonce + 1, self._next_deployment_nonce.get(address_lower, 0),
            )

            logger.debug(
                f"Reserved deployment nonce {deployment_nonce} for {address_lower} "
                f"(NonceHolder: {on_chain})"
            )
            return nonce, deployment_nonce

    @staticmethod
    def _first_free(on_chain: int, next_local: int, taken: Set[int]) -> int:
        nonce = max(on_chain, next_local)
        # Fill gaps left by released reservations first
        for candidate in range(on_chain, nonce):
            if candidate not in taken:
                return candidate
        return nonce

    async def _reserve_tx_nonce(self, address: str, address_lower: str, rpc_client: Any) -> int:
        on_chain = await rpc_client.get_nonce(address, "pending")
        nonce = max(on_chain, self._next_nonce.get(address_lower, 0))

        reserved = self._reserved.setdefault(address_lower, set())
        for candidate in range(on_chain, nonce):
            key = self._nonce_key(address_lower, candidate)
            if candidate not in reserved and key not in self._nonce_to_tx:
                nonce = candidate
                break

        existing_tx = self._nonce_to_tx.get(self._nonce_key(address_lower, nonce))
        if existing_tx:
            pending = self._pending_txs.get(existing_tx)
            if pending and not pending.final:
                raise NonceConflictError(address_lower, nonce, existing_tx)

        reserved.add(nonce)
        self._next_nonce[address_lower] = max(nonce + 1, self._next_nonce.get(address_lower, 0))

        logger.debug(f"Reserved nonce {nonce} for {address_lower} (on-chain pending: {on_chain})")
        return nonce

    def _release_tx_nonce(self, address_lower: str, nonce: int) -> None:
        reserved = self._reserved.get(address_lower, set())
        if nonce not in reserved:
            return
        reserved.discard(nonce)
        if self._next_nonce.get(address_lower) == nonce + 1:
            self._next_nonce[address_lower] = nonce
        logger.debug(f"Released nonce {nonce} for {address_lower}")

    def release_nonce(self, address: str, nonce: int, deployment_nonce: Optional[int] = None) -> None:
        """Return reserved nonces whose transaction was never broadcast."""
        address_lower = address.lower()
        self._release_tx_nonce(address_lower, nonce)

        if deployment_nonce is None:
            return
        reserved = self._reserved_deployment.get(address_lower, set())
        if deployment_nonce not in reserved:
            return
        reserved.discard(deployment_nonce)
        if self._next_deployment_nonce.get(address_lower) == deployment_nonce + 1:
            self._next_deployment_nonce[address_lower] = deployment_nonce
        logger.debug(f"Released deployment nonce {deployment_nonce} for {address_lower}")

    def register_pending_transaction(
        self,
        tx_hash: str,
        address: str,
        nonce: int,
        deployment_nonce: Optional[int] = None,
    ) -> None:
        """Record that ``nonce`` is now held by a broadcast transaction."""
        address_lower = address.lower()
        self._reserved.get(address_lower, set()).discard(nonce)
        if deployment_nonce is not None:
            self._reserved_deployment.get(address_lower, set()).discard(deployment_nonce)
            self._used_deployment.setdefault(address_lower, set()).add(deployment_nonce)
        self._pending_txs[tx_hash] = PendingTransaction(
            tx_hash=tx_hash, nonce=nonce, address=address_lower, deployment_nonce=deployment_nonce,
        )
        self._nonce_to_tx[self._nonce_key(address_lower, nonce)] = tx_hash

        logger.info(f"Registered pending transaction {tx_hash} for {address_lower} with nonce {nonce}")

    def mark_final(self, tx_hash: str, reverted: bool = False) -> None:
        """
        Mark a pending transaction as included (or known to be dropped).

        A reverted deployment leaves NonceHolder unchanged, so its deployment
        nonce becomes reservable again.
        """
        pending = self._pending_txs.get(tx_hash)
        if pending is None:
            return
        pending.final = True
        if reverted and pending.deployment_nonce is not None:
            self._used_deployment.get(pending.address, set()).discard(pending.deployment_nonce)

    def _drop(self, pending: PendingTransaction) -> None:
        self._pending_txs.pop(pending.tx_hash, None)
        key = self._nonce_key(pending.address, pending.nonce)
        if self._nonce_to_tx.get(key) == pending.tx_hash:
            del self._nonce_to_tx[key]
        if pending.deployment_nonce is not None:
            self._used_deployment.get(pending.address, set()).discard(pending.deployment_nonce)

    async def sync_with_chain(self, address: str, rpc_client: Any) -> int:
        """
        Reconcile local state with the chain after transactions were dropped.

        Non-final pending transactions at or above the on-chain pending nonce
        are forgotten, and the local counters fall back to the chain plus any
        reservations still outstanding.

        Returns:
            The on-chain pending nonce
        """
        address_lower = address.lower()
        async with self._get_lock(address_lower):
            on_chain = await rpc_client.get_nonce(address, "pending")

            dropped = [
                p for p in self._pending_txs.values()
                if p.address == address_lower and not p.final and p.nonce >= on_chain
            ]
            for pending in dropped:
                self._drop(pending)
                logger.warning(
                    f"Dropped pending transaction {pending.tx_hash} (nonce {pending.nonce}) "
                    f"for {address_lower}: chain pending nonce is {on_chain}"
                )

            reserved = self._reserved.get(address_lower, set())
            self._next_nonce[address_lower] = max([on_chain] + [n + 1 for n in reserved])

            taken = (
                self._reserved_deployment.get(address_lower, set())
                | self._used_deployment.get(address_lower, set())
            )
            if taken:
                self._next_deployment_nonce[address_lower] = max(taken) + 1
            else:
                self._next_deployment_nonce.pop(address_lower, None)

            logger.info(f"Synced nonces for {address_lower} with chain (pending: {on_chain})")
            return on_chain

    def get_stuck_transactions(
        self,
        older_than_seconds: float,
        address: Optional[str] = None,
    ) -> List[PendingTransaction]:
        """Non-final transactions broadcast more than ``older_than_seconds`` ago."""
        address_lower = address.lower() if address else None
        return [
            p for p in self._pending_txs.values()
            if not p.final
            and (address_lower is None or p.address == address_lower)
            and p.age_seconds() > older_than_seconds
        ]

    def get_pending_transaction(self, tx_hash: str) -> Optional[PendingTransaction]:
        return self._pending_txs.get(tx_hash)

    def get_reserved_nonces(self, address: str) -> Set[int]:
        return set(self._reserved.get(address.lower(), set()))

    def get_reserved_deployment_nonces(self, address: str) -> Set[int]:
        return set(self._reserved_deployment.get(address.lower(), set()))
