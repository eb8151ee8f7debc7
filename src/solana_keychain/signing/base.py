"""Base interfaces for remote transaction signing.

Signing flow:
1. Compute the message bytes of the transaction
2. Submit them to the remote custodian (KMS, Fireblocks)
3. Custodian returns a 64-byte Ed25519 signature (private key never leaves it)
4. Attach the signature to the transaction for the signer's own pubkey
5. Re-serialize the signed transaction for the caller to broadcast
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Coroutine, Iterable, Optional, Sequence, Union

from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

logger = logging.getLogger(__name__)

AnyTransaction = Union[Transaction, VersionedTransaction]

# (base64 serialized transaction, signature)
SignedTransaction = tuple[str, Signature]

# Larger delays risk the blockhash expiring before the last request lands
MAX_RECOMMENDED_REQUEST_DELAY_MS = 3000


class SignerType(str, Enum):
    """Type of signing backend."""
    KMS = "kms"                 # AWS KMS (synchronous)
    FIREBLOCKS = "fireblocks"   # Fireblocks custody (job + polling)


class SignerError(Exception):
    """Base exception for all signer failures."""
    pass


class ConfigError(SignerError):
    """Exception raised when a signer is misconfigured."""
    pass


class InvalidPublicKeyError(SignerError):
    """Exception raised for malformed or missing public keys."""
    pass


class InvalidPrivateKeyError(SignerError):
    """Exception raised when signing-key material cannot be parsed."""
    pass


class SerializationError(SignerError):
    """Exception raised when a request or response cannot be encoded/decoded."""
    pass


class SignatureEncodingError(SerializationError):
    """Exception raised when signature text is not valid hex/base58."""
    pass


class RemoteApiError(SignerError):
    """Exception raised for non-success responses or transport failures.

    Attributes:
        status: HTTP status code, if one was received
        code: Provider-specific error code (e.g. AWS error code)
    """

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class SigningFailedError(SignerError):
    """Exception raised when the custodian could not produce a usable signature.

    Attributes:
        job_id: Custodian job identifier, when the failure is tied to one
        status: Terminal job status reported by the custodian
    """

    def __init__(self, message: str, job_id: Optional[str] = None, status: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id
        self.status = status


class SignatureLengthError(SigningFailedError):
    """Exception raised when signature bytes are not exactly the expected size."""

    def __init__(self, actual: int, expected: int = 64, label: str = "signature"):
        super().__init__(f"Invalid {label} length: expected {expected} bytes, got {actual}")
        self.actual = actual
        self.expected = expected


class PollingTimeoutError(SignerError):
    """Exception raised when a signing job is still pending after the poll budget.

    This is NOT a signing failure: the job may still complete out-of-band.
    """

    def __init__(self, job_id: str, attempts: int):
        super().__init__(
            f"Transaction {job_id} did not reach a terminal status after {attempts} "
            f"polling attempts - signing request may still complete"
        )
        self.job_id = job_id
        self.attempts = attempts


class SignerNotInitializedError(SignerError):
    """Exception raised when a signer is used before its public key is known."""
    pass


def validate_request_delay_ms(request_delay_ms: int) -> int:
    """Validate the stagger delay used by the batch helpers."""
    if request_delay_ms < 0:
        raise ConfigError("request_delay_ms must not be negative")
    if request_delay_ms > MAX_RECOMMENDED_REQUEST_DELAY_MS:
        logger.warning(
            f"request_delay_ms is greater than {MAX_RECOMMENDED_REQUEST_DELAY_MS}ms, "
            "this may result in blockhash expiration errors for signing messages/transactions"
        )
    return request_delay_ms


async def gather_or_cancel(coros: Iterable[Coroutine[Any, Any, Any]]) -> list:
    """Run coroutines concurrently, preserving order.

    On the first failure the remaining requests are cancelled (no more polling
    of pending custodian jobs) before the error is re-raised.
    """
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Batch signing failed, cancelled {len(pending)} pending request(s)")
            await asyncio.gather(*pending, return_exceptions=True)
        raise


class SignerBackend(ABC):
    """Abstract base class for remote signing backends.

    Implementations should NEVER hold raw private keys.
    Subclasses provide the raw-signing path and the health check; the
    transaction glue (message bytes, attach, serialize) lives here so that
    every backend behaves identically.
    """

    def __init__(self, signer_type: SignerType, request_delay_ms: int = 0):
        self.signer_type = signer_type
        self.request_delay_ms = validate_request_delay_ms(request_delay_ms)

    @abstractmethod
    def pubkey(self) -> Pubkey:
        """Public key of the remote signing key. Never performs I/O."""
        pass

    @abstractmethod
    async def sign_message(self, message: bytes) -> Signature:
        """Sign raw message bytes.

        Args:
            message: Bytes to sign

        Returns:
            64-byte Ed25519 signature
        """
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if the signing backend is reachable and usable.

        Must never raise; any failure degrades to False.
        """
        pass

    async def _sign_transaction_message(self, tx: AnyTransaction) -> Signature:
        """Obtain the signature for a transaction.

        Backends that sign whole transactions (rather than message bytes)
        override this.
        """
        from solana_keychain.signing.transaction import message_bytes

        return await self.sign_message(message_bytes(tx))

    async def _sign_and_serialize(self, tx: AnyTransaction) -> SignedTransaction:
        from solana_keychain.signing.transaction import attach_signature, serialize

        signature = await self._sign_transaction_message(tx)
        signed = attach_signature(tx, self.pubkey(), signature)
        return serialize(signed), signature

    async def sign_transaction(self, tx: AnyTransaction) -> SignedTransaction:
        """Sign a transaction and return (base64 serialized tx, signature)."""
        return await self._sign_and_serialize(tx)

    async def sign_partial_transaction(self, tx: AnyTransaction) -> SignedTransaction:
        """Add this signer's signature to a transaction that others also sign.

        Identical to sign_transaction here; which signers remain is a property
        of the transaction itself.
        """
        return await self._sign_and_serialize(tx)

    async def _staggered(self, index: int) -> None:
        if self.request_delay_ms > 0 and index > 0:
            await asyncio.sleep(index * self.request_delay_ms / 1000)

    async def sign_messages(self, messages: Sequence[bytes]) -> list[Signature]:
        """Sign several messages concurrently, preserving input order."""

        async def _one(index: int, message: bytes) -> Signature:
            await self._staggered(index)
            return await self.sign_message(message)

        return await gather_or_cancel(_one(i, m) for i, m in enumerate(messages))

    async def sign_transactions(self, transactions: Sequence[AnyTransaction]) -> list[SignedTransaction]:
        """Sign several transactions concurrently, preserving input order."""

        async def _one(index: int, tx: AnyTransaction) -> SignedTransaction:
            await self._staggered(index)
            return await self.sign_transaction(tx)

        return await gather_or_cancel(_one(i, t) for i, t in enumerate(transactions))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"
