"""
JSON-RPC client for zkSync-style networks.

Features:
- Chain ID validation on first use (security)
- EIP-712 transaction estimation with custom metadata
- Receipt polling with a bounded, cancellable wait
- Verbatim propagation of node error messages
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Union

import httpx

from .config import NetworkConfig
from .exceptions import ChainIDMismatchError, ConfirmationTimeoutError, RPCError
from .logging_utils import DeployLogger, get_deploy_logger
from .transaction import NONCE_HOLDER_ADDRESS, encode_get_deployment_nonce

logger = logging.getLogger(__name__)

BlockIdentifier = Union[int, str]


def _block_param(block: BlockIdentifier) -> str:
    return hex(block) if isinstance(block, int) else block


class ZkSyncRPCClient:
    """JSON-RPC client for blockchain interaction."""

    def __init__(
        self,
        network: NetworkConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        deploy_logger: Optional[DeployLogger] = None,
    ):
        self._network = network
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self._request_id = 0
        self._verified_chain_id: Optional[int] = None
        self._deploy_logger = deploy_logger or get_deploy_logger()

    @property
    def network(self) -> NetworkConfig:
        return self._network

    @property
    def chain_id(self) -> int:
        return self._network.chain_id

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._network.request_timeout_seconds, connect=10.0),
                transport=self._transport,
            )
        return self._http_client

    async def connect(self) -> None:
        """
        Validate the node's chain ID against configuration.

        SECURITY: Prevents signing for one network and broadcasting to another.
        """
        if self._verified_chain_id is not None or not self._network.validate_chain_id:
            return

        chain_id = await self.get_chain_id()
        if chain_id != self._network.chain_id:
            raise ChainIDMismatchError(
                network=self._network.name,
                expected=self._network.chain_id,
                received=chain_id,
            )
        self._verified_chain_id = chain_id
        logger.info(f"Chain ID validated for {self._network.name}: {chain_id}")

    async def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Make JSON-RPC call."""
        self._request_id += 1
        request_id = self._request_id
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params or [],
        }

        client = await self._get_client()
        start_time = time.time()
        try:
            response = await client.post(
                self._network.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._deploy_logger.log_rpc_call(
                method, self._network.rpc_url, request_id,
                (time.time() - start_time) * 1000, success=False, error_message=str(e),
            )
            raise RPCError(f"RPC transport error calling {method}: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        error = result.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            self._deploy_logger.log_rpc_call(
                method, self._network.rpc_url, request_id, duration_ms,
                success=False, error_code=error.get("code"), error_message=error.get("message"),
            )
            raise RPCError(
                error.get("message", str(error)),
                code=error.get("code"),
                data=error.get("data"),
            )

        self._deploy_logger.log_rpc_call(
            method, self._network.rpc_url, request_id, duration_ms, success=True,
        )
        return result.get("result")

    async def get_chain_id(self) -> int:
        result = await self._call("eth_chainId")
        return int(result, 16)

    async def get_gas_price(self) -> int:
        """Get current gas price in wei."""
        result = await self._call("eth_gasPrice")
        return int(result, 16)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        """Estimate gas for a transaction request (may include eip712Meta)."""
        result = await self._call("eth_estimateGas", [tx])
        return int(result, 16)

    async def get_nonce(self, address: str, block: BlockIdentifier = "pending") -> int:
        """Get transaction count (nonce) for address."""
        result = await self._call("eth_getTransactionCount", [address, _block_param(block)])
        return int(result, 16)

    async def call(self, tx: Dict[str, Any], block: BlockIdentifier = "latest") -> str:
        return await self._call("eth_call", [tx, _block_param(block)])

    async def get_deployment_nonce(self, address: str) -> int:
        """Deployment nonce held by the NonceHolder system contract."""
        result = await self.call({
            "to": NONCE_HOLDER_ADDRESS,
            "data": "0x" + encode_get_deployment_nonce(address).hex(),
        })
        return int(result, 16) if result and result != "0x" else 0

    async def send_raw_transaction(self, signed_tx: Union[bytes, str]) -> str:
        """Broadcast signed transaction."""
        if isinstance(signed_tx, (bytes, bytearray)):
            signed_tx = "0x" + bytes(signed_tx).hex()
        return await self._call("eth_sendRawTransaction", [signed_tx])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self._call("eth_getTransactionReceipt", [tx_hash])

    async def get_block_number(self) -> int:
        result = await self._call("eth_blockNumber")
        return int(result, 16)

    async def get_block(self, block: BlockIdentifier, full_transactions: bool = False) -> Optional[Dict[str, Any]]:
        return await self._call("eth_getBlockByNumber", [_block_param(block), full_transactions])

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout_seconds: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Poll until the transaction has a receipt.

        Cancelling the awaiting task stops the wait immediately.

        Raises:
            ConfirmationTimeoutError: no receipt within the timeout
        """
        if timeout_seconds is None:
            timeout_seconds = self._network.confirmation_timeout_seconds
        if poll_interval is None:
            poll_interval = self._network.poll_interval_seconds

        try:
            return await asyncio.wait_for(
                self._poll_for_receipt(tx_hash, poll_interval),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeoutError(tx_hash, timeout_seconds) from e

    async def _poll_for_receipt(self, tx_hash: str, poll_interval: float) -> Dict[str, Any]:
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                return receipt
            await asyncio.sleep(poll_interval)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "ZkSyncRPCClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
