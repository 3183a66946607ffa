"""Transaction signers."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .transaction import Eip712Transaction

logger = logging.getLogger(__name__)


class SignerRejectedError(Exception):
    """Raised when a signer refuses to sign a transaction."""


class SignerPort(ABC):
    """Abstract interface for transaction signers."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing account."""

    @abstractmethod
    async def sign_transaction(self, tx: Eip712Transaction) -> bytes:
        """Sign a transaction and return the serialized signed payload."""


class LocalAccountSigner(SignerPort):
    """Signs EIP-712 transactions with an in-process private key.

    The key is passed in explicitly; this class never reads environment
    variables or other process-wide state.
    """

    def __init__(self, private_key: Union[str, bytes], chain_id: Optional[int] = None):
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            # Do not echo the key back in the error
            raise ValueError("Invalid private key") from e
        self._chain_id = chain_id

    @classmethod
    def create(cls, chain_id: Optional[int] = None) -> "LocalAccountSigner":
        """Signer for a freshly generated throwaway account."""
        return cls(Account.create().key, chain_id=chain_id)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id

    async def sign_transaction(self, tx: Eip712Transaction) -> bytes:
        if self._chain_id is not None and tx.chain_id != self._chain_id:
            raise SignerRejectedError(
                f"Signer is bound to chain {self._chain_id}, transaction targets chain {tx.chain_id}"
            )
        if tx.from_address.lower() != self.address.lower():
            raise SignerRejectedError(
                f"Transaction sender {tx.from_address} does not match signer {self.address}"
            )

        signed = self._account.sign_typed_data(full_message=tx.to_typed_data())
        signature = bytes(signed.signature)

        logger.debug(f"Signed transaction with nonce {tx.nonce} for {self.address}")
        return tx.serialize(signature)

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address}, chain_id={self._chain_id})"
