"""Paymaster-sponsored contract deployment."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from .artifacts import ContractArtifact, encode_constructor_args
from .config import DEFAULT_GAS_PER_PUBDATA_LIMIT, AddressDerivation, DeployConfig, NetworkConfig
from .confirmation import ConfirmationWaiter
from .exceptions import (
    BroadcastFailedError,
    ConfirmationTimeoutError,
    DeploymentStatus,
    DuplicateSubmissionError,
    EstimationFailedError,
    IndeterminateError,
    RPCError,
    SigningFailedError,
    TransactionRevertedError,
)
from .logging_utils import DeployLogger, OperationType, get_deploy_logger
from .nonce_manager import NonceManager
from .paymaster import PaymasterParams
from .rpc_client import ZkSyncRPCClient
from .signer import SignerPort
from .transaction import (
    ZERO_HASH,
    Eip712Transaction,
    build_deployment_transaction,
    compute_create_address,
    compute_zksync_create_address,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeploymentRequest:
    """One contract deployment. Never submitted twice."""
    artifact: ContractArtifact
    constructor_args: tuple
    paymaster_params: PaymasterParams
    gas_per_pubdata: int = DEFAULT_GAS_PER_PUBDATA_LIMIT
    salt: bytes = ZERO_HASH
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        object.__setattr__(self, "constructor_args", tuple(self.constructor_args))
        if isinstance(self.gas_per_pubdata, bool) or not isinstance(self.gas_per_pubdata, int) \
                or self.gas_per_pubdata <= 0:
            raise ValueError(f"gas_per_pubdata must be a positive integer, got {self.gas_per_pubdata!r}")
        if len(self.salt) != 32:
            raise ValueError(f"salt must be 32 bytes, got {len(self.salt)}")


@dataclass(frozen=True)
class DeploymentResult:
    """A confirmed deployment."""
    contract_address: str
    transaction_hash: str
    sender: str
    nonce: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


class ContractDeployer:
    """
    Drives paymaster-sponsored deployments to on-chain confirmation.

    Steps per deployment:
    - encode constructor arguments against the artifact's ABI
    - assemble the EIP-712 creation transaction with paymaster metadata
    - estimate gas (the network simulates the paymaster's validation here)
    - sign, broadcast, and wait for the receipt
    - derive the contract address from sender and nonce

    No step is retried automatically. The transaction nonce (and on zkSync the
    deployment nonce) is reserved per call through a NonceManager, so
    concurrent deployments from one signer can share it.
    """

    def __init__(
        self,
        rpc_client: ZkSyncRPCClient,
        signer: SignerPort,
        nonce_manager: Optional[NonceManager] = None,
        network: Optional[NetworkConfig] = None,
        gas_limit_buffer_percent: int = 20,
        deploy_logger: Optional[DeployLogger] = None,
    ):
        self._rpc = rpc_client
        self._signer = signer
        self._nonce_manager = nonce_manager or NonceManager()
        self._network = network or rpc_client.network
        self._gas_limit_buffer_percent = gas_limit_buffer_percent
        self._deploy_logger = deploy_logger or get_deploy_logger()
        self._waiter = ConfirmationWaiter(self._network)
        self._statuses: Dict[str, DeploymentStatus] = {}

    @classmethod
    def from_config(cls, config: DeployConfig, signer: SignerPort) -> "ContractDeployer":
        return cls(
            rpc_client=ZkSyncRPCClient(config.network),
            signer=signer,
            network=config.network,
            gas_limit_buffer_percent=config.gas_limit_buffer_percent,
        )

    @property
    def rpc_client(self) -> ZkSyncRPCClient:
        return self._rpc

    def get_status(self, request_id: str) -> DeploymentStatus:
        """Current lifecycle state of a request (unsubmitted if never seen)."""
        return self._statuses.get(request_id, DeploymentStatus.UNSUBMITTED)

    def _set_status(self, request: DeploymentRequest, status: DeploymentStatus) -> None:
        previous = self._statuses.get(request.request_id, DeploymentStatus.UNSUBMITTED)
        self._statuses[request.request_id] = status
        logger.debug(
            f"Deployment {request.request_id} ({request.artifact.contract_name}): "
            f"{previous.value} -> {status.value}"
        )

    async def deploy(
        self,
        artifact: ContractArtifact,
        constructor_args: Sequence[Any],
        paymaster_params: PaymasterParams,
        gas_per_pubdata: int = DEFAULT_GAS_PER_PUBDATA_LIMIT,
        timeout_seconds: Optional[float] = None,
    ) -> DeploymentResult:
        """Deploy ``artifact`` with its fee sponsored by ``paymaster_params``."""
        request = DeploymentRequest(
            artifact=artifact,
            constructor_args=tuple(constructor_args),
            paymaster_params=paymaster_params,
            gas_per_pubdata=gas_per_pubdata,
        )
        return await self.deploy_request(request, timeout_seconds=timeout_seconds)

    async def deploy_request(
        self,
        request: DeploymentRequest,
        timeout_seconds: Optional[float] = None,
    ) -> DeploymentResult:
        """
        Submit a deployment request and wait for it to be confirmed.

        Raises:
            DuplicateSubmissionError: the request was already submitted
            ArgumentMismatchError: constructor arguments disagree with the ABI
            EstimationFailedError: the network rejected simulation
            SigningFailedError: the signer refused or failed
            BroadcastFailedError: the network rejected the signed transaction
            ConfirmationTimeoutError: not confirmed within the wait bound
            TransactionRevertedError: included but reverted
            IndeterminateError: broadcast, but the wait was cancelled or failed
        """
        if request.request_id in self._statuses:
            raise DuplicateSubmissionError(request.request_id, self._statuses[request.request_id])
        self._set_status(request, DeploymentStatus.UNSUBMITTED)

        sender = self._signer.address
        network = self._network.name
        nonce: Optional[int] = None
        deployment_nonce: Optional[int] = None
        broadcasting = False

        try:
            constructor_input = encode_constructor_args(request.artifact, request.constructor_args)
            tx = build_deployment_transaction(
                chain_id=self._network.chain_id,
                sender=sender,
                bytecode=request.artifact.bytecode,
                constructor_input=constructor_input,
                gas_per_pubdata=request.gas_per_pubdata,
                paymaster_params=request.paymaster_params,
                factory_deps=request.artifact.factory_deps,
                salt=request.salt,
            )

            await self._rpc.connect()

            async with self._deploy_logger.operation_context(OperationType.NONCE_MANAGEMENT, network):
                if self._network.address_derivation == AddressDerivation.ZKSYNC:
                    nonce, deployment_nonce = await self._nonce_manager.reserve_deployment_nonces(
                        sender, self._rpc,
                    )
                else:
                    nonce = await self._nonce_manager.reserve_nonce(sender, self._rpc)
                tx.nonce = nonce

            await self._estimate(tx, network)
            signed = await self._sign(tx, network)

            broadcasting = True
            tx_hash = await self._broadcast(signed, network)
        except asyncio.CancelledError:
            if broadcasting:
                self._set_status(request, DeploymentStatus.INDETERMINATE)
                raise IndeterminateError(None, nonce, sender, "cancelled during broadcast") from None
            self._abort_pre_submit(request, sender, nonce, deployment_nonce)
            raise
        except BaseException:
            self._abort_pre_submit(request, sender, nonce, deployment_nonce)
            raise

        self._set_status(request, DeploymentStatus.SUBMITTED)
        self._nonce_manager.register_pending_transaction(tx_hash, sender, nonce, deployment_nonce)
        self._deploy_logger.log_transaction_submitted(
            tx_hash=tx_hash,
            network=network,
            sender=sender,
            contract_name=request.artifact.contract_name,
            nonce=nonce,
            gas_limit=tx.gas_limit,
            paymaster=request.paymaster_params.paymaster,
        )

        tracked = await self._await_confirmation(request, tx_hash, nonce, sender, timeout_seconds)

        if self._network.address_derivation == AddressDerivation.ZKSYNC:
            contract_address = compute_zksync_create_address(sender, deployment_nonce)
        else:
            contract_address = compute_create_address(sender, nonce)

        receipt_address = tracked.contract_address
        if receipt_address and receipt_address.lower() != contract_address.lower():
            logger.warning(
                f"Receipt for {tx_hash} reports contract address {receipt_address}, "
                f"derived {contract_address}"
            )

        self._set_status(request, DeploymentStatus.CONFIRMED)
        self._deploy_logger.log_transaction_confirmed(
            tx_hash, contract_address, tracked.block_number, tracked.gas_used,
        )
        return DeploymentResult(
            contract_address=contract_address,
            transaction_hash=tx_hash,
            sender=sender,
            nonce=nonce,
            block_number=tracked.block_number,
            gas_used=tracked.gas_used,
        )

    def _abort_pre_submit(
        self,
        request: DeploymentRequest,
        sender: str,
        nonce: Optional[int],
        deployment_nonce: Optional[int] = None,
    ) -> None:
        self._set_status(request, DeploymentStatus.REJECTED_PRE_SUBMIT)
        if nonce is not None:
            self._nonce_manager.release_nonce(sender, nonce, deployment_nonce)

    async def _estimate(self, tx: Eip712Transaction, network: str) -> None:
        async with self._deploy_logger.operation_context(OperationType.GAS_ESTIMATION, network) as ctx:
            try:
                gas_estimate = await self._rpc.estimate_gas(tx.to_rpc_request())
                gas_price = await self._rpc.get_gas_price()
            except RPCError as e:
                raise EstimationFailedError(e.message, code=e.code, data=e.data) from e

            tx.gas_limit = gas_estimate * (100 + self._gas_limit_buffer_percent) // 100
            tx.max_fee_per_gas = gas_price
            tx.max_priority_fee_per_gas = 0
            ctx.metadata.update(gas_estimate=gas_estimate, gas_limit=tx.gas_limit, gas_price=gas_price)

    async def _sign(self, tx: Eip712Transaction, network: str) -> bytes:
        async with self._deploy_logger.operation_context(OperationType.SIGNING, network):
            try:
                return await self._signer.sign_transaction(tx)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                raise SigningFailedError(str(e) or type(e).__name__) from e

    async def _broadcast(self, signed: bytes, network: str) -> str:
        async with self._deploy_logger.operation_context(OperationType.TRANSACTION_SUBMIT, network) as ctx:
            try:
                tx_hash = await self._rpc.send_raw_transaction(signed)
            except RPCError as e:
                raise BroadcastFailedError(e.message, code=e.code, data=e.data) from e
            ctx.metadata["tx_hash"] = tx_hash
            return tx_hash

    async def _await_confirmation(
        self,
        request: DeploymentRequest,
        tx_hash: str,
        nonce: int,
        sender: str,
        timeout_seconds: Optional[float],
    ):
        async with self._deploy_logger.operation_context(
            OperationType.TRANSACTION_CONFIRM, self._network.name, tx_hash=tx_hash,
        ):
            try:
                tracked = await self._waiter.wait(tx_hash, self._rpc, timeout_seconds=timeout_seconds)
            except asyncio.CancelledError:
                self._set_status(request, DeploymentStatus.INDETERMINATE)
                self._deploy_logger.log_transaction_failed(tx_hash, "indeterminate", "wait cancelled")
                raise IndeterminateError(tx_hash, nonce, sender, "wait cancelled") from None
            except ConfirmationTimeoutError as e:
                self._set_status(request, DeploymentStatus.TIMED_OUT)
                self._deploy_logger.log_transaction_failed(tx_hash, "timed_out", str(e))
                raise
            except TransactionRevertedError as e:
                self._set_status(request, DeploymentStatus.REVERTED)
                self._nonce_manager.mark_final(tx_hash, reverted=True)
                self._deploy_logger.log_transaction_failed(tx_hash, "reverted", str(e))
                raise
            except RPCError as e:
                self._set_status(request, DeploymentStatus.INDETERMINATE)
                self._deploy_logger.log_transaction_failed(tx_hash, "indeterminate", e.message)
                raise IndeterminateError(tx_hash, nonce, sender, e.message) from e

        self._nonce_manager.mark_final(tx_hash)
        return tracked
