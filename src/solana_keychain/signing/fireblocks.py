"""Fireblocks signing backend.

Fireblocks signs asynchronously: every signature is a Fireblocks
"transaction" (job) that is created, then polled until it reaches a
terminal status. Jobs may wait on approval policies, so completion can take
anywhere from seconds to minutes.

Operation modes:
- RAW (default): sign the message bytes; caller broadcasts the transaction
- PROGRAM_CALL: Fireblocks signs AND broadcasts; the returned txHash is the
  transaction signature

Setup:
1. Create an API user with an RSA key pair (CSR signed by Fireblocks)
2. Create a vault account holding the SOL (or SOL_TEST) asset
3. Call ``await signer.init()`` to resolve the vault's Solana address

Reference:
- https://developers.fireblocks.com/reference/create-transaction
- https://developers.fireblocks.com/docs/raw-message-signing
"""

import asyncio
import base64
import logging
from typing import Any, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError
from solders.pubkey import Pubkey
from solders.signature import Signature

from solana_keychain.signing.base import (
    AnyTransaction,
    ConfigError,
    InvalidPublicKeyError,
    PollingTimeoutError,
    RemoteApiError,
    SerializationError,
    SignerBackend,
    SignerNotInitializedError,
    SignerType,
    SigningFailedError,
)
from solana_keychain.signing.codec import decode_base58, decode_hex, parse_pubkey
from solana_keychain.signing.fireblocks_auth import create_jwt, load_private_key
from solana_keychain.signing.fireblocks_types import (
    FAILED_STATUSES,
    CreateTransactionRequest,
    CreateTransactionResponse,
    FireblocksTransactionStatus,
    Operation,
    ProgramCallExtraParameters,
    RawExtraParameters,
    RawMessage,
    RawMessageData,
    SignatureEncoding,
    TransactionResponse,
    TransactionSource,
    VaultAddressesResponse,
)
from solana_keychain.signing.transaction import serialize_bytes

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.fireblocks.io"
DEFAULT_ASSET_ID = "SOL"
DEVNET_ASSET_ID = "SOL_TEST"
DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_MAX_POLL_ATTEMPTS = 300
DEFAULT_HTTP_TIMEOUT = 30.0

ModelT = TypeVar("ModelT", bound=BaseModel)


class FireblocksSigner(SignerBackend):
    """Fireblocks signing backend.

    The public key is not known until ``init()`` has queried the vault's
    address list, unless it is passed in explicitly. Signing before that
    raises SignerNotInitializedError.
    """

    def __init__(
        self,
        api_key: str,
        private_key_pem: Union[str, bytes],
        vault_account_id: str,
        asset_id: Optional[str] = None,
        api_base_url: Optional[str] = None,
        poll_interval_ms: Optional[int] = None,
        max_poll_attempts: Optional[int] = None,
        use_program_call: bool = False,
        public_key: Optional[Union[str, bytes, Pubkey]] = None,
        request_delay_ms: int = 0,
        client: Optional[httpx.AsyncClient] = None,
        unsafe_debug: bool = False,
    ):
        """Initialize Fireblocks signer.

        Args:
            api_key: Fireblocks API key (X-API-Key header, JWT subject)
            private_key_pem: RSA private key of the API user, PEM encoded
            vault_account_id: Vault account holding the signing key
            asset_id: Fireblocks asset id (default SOL, SOL_TEST for devnet)
            api_base_url: API base URL (default https://api.fireblocks.io)
            poll_interval_ms: Delay between status polls (default 1000)
            max_poll_attempts: Status polls before giving up (default 300)
            use_program_call: Sign transactions with PROGRAM_CALL (auto-broadcast)
            public_key: Known vault address; skips the init() lookup
            request_delay_ms: Stagger between requests in batch signing
            client: Shared httpx client (created and owned here if omitted)
            unsafe_debug: Log response bodies at DEBUG level

        Raises:
            ConfigError: If a required field is missing or a tuning value is invalid
            InvalidPrivateKeyError: If the PEM key cannot be parsed
            InvalidPublicKeyError: If public_key is given but malformed
        """
        if not api_key:
            raise ConfigError("Missing required api_key field")
        if not private_key_pem:
            raise ConfigError("Missing required private_key_pem field")
        if not vault_account_id:
            raise ConfigError("Missing required vault_account_id field")

        super().__init__(SignerType.FIREBLOCKS, request_delay_ms)

        self.api_key = api_key
        self._private_key = load_private_key(private_key_pem)
        self.vault_account_id = vault_account_id
        self.asset_id = asset_id or DEFAULT_ASSET_ID
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.poll_interval_ms = (
            DEFAULT_POLL_INTERVAL_MS if poll_interval_ms is None else poll_interval_ms
        )
        self.max_poll_attempts = (
            DEFAULT_MAX_POLL_ATTEMPTS if max_poll_attempts is None else max_poll_attempts
        )
        self.use_program_call = use_program_call
        self.unsafe_debug = unsafe_debug

        if self.poll_interval_ms < 0:
            raise ConfigError("poll_interval_ms must not be negative")
        if self.max_poll_attempts < 1:
            raise ConfigError("max_poll_attempts must be at least 1")

        self._public_key: Optional[Pubkey] = (
            parse_pubkey(public_key) if public_key is not None else None
        )

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)

    @property
    def initialized(self) -> bool:
        return self._public_key is not None

    @property
    def operation(self) -> Operation:
        return Operation.PROGRAM_CALL if self.use_program_call else Operation.RAW

    def pubkey(self) -> Pubkey:
        if self._public_key is None:
            raise SignerNotInitializedError("Signer not initialized. Call init() first.")
        return self._public_key

    def _ensure_initialized(self) -> None:
        if self._public_key is None:
            raise SignerNotInitializedError("Signer not initialized. Call init() first.")

    async def init(self) -> Pubkey:
        """Resolve the vault's Solana address. Safe to call more than once."""
        if self._public_key is None:
            self._public_key = await self.fetch_public_key()
            logger.info(
                f"Fireblocks signer initialized for vault {self.vault_account_id} "
                f"({self.asset_id}): {self._public_key}"
            )
        return self._public_key

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _send(self, method: str, uri: str, body: str = "") -> httpx.Response:
        """Send one authenticated request. The JWT hashes exactly ``body``."""
        token = create_jwt(self.api_key, self._private_key, uri, body)
        headers = {
            "X-API-Key": self.api_key,
            "Authorization": f"Bearer {token}",
        }
        if body:
            headers["Content-Type"] = "application/json"

        return await self._client.request(
            method,
            f"{self.api_base_url}{uri}",
            headers=headers,
            content=body.encode() if body else None,
        )

    async def _request(self, method: str, uri: str, operation: str, body: str = "") -> Any:
        try:
            response = await self._send(method, uri, body)
        except httpx.HTTPError as e:
            logger.error(f"Fireblocks API {operation} transport error: {type(e).__name__}")
            raise RemoteApiError(
                f"Fireblocks API {operation} request failed: {type(e).__name__}"
            ) from e

        if not response.is_success:
            status = response.status_code
            if self.unsafe_debug:
                logger.debug(
                    f"Fireblocks API {operation} error - status: {status}, response: {response.text}"
                )
            logger.error(f"Fireblocks API {operation} error - status: {status}")
            raise RemoteApiError(f"Fireblocks API error {status}", status=status)

        try:
            return response.json()
        except ValueError:
            if self.unsafe_debug:
                logger.debug(f"Unparseable {operation} response body: {response.text}")
            logger.error(f"Failed to parse Fireblocks {operation} response")
            raise SerializationError("Failed to parse Fireblocks response") from None

    def _parse(self, model: Type[ModelT], data: Any, operation: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            if self.unsafe_debug:
                logger.debug(f"Invalid {operation} response: {e}")
            logger.error(f"Unexpected Fireblocks {operation} response shape")
            raise SerializationError(f"Failed to parse {operation} response") from None

    # ------------------------------------------------------------------
    # Public key
    # ------------------------------------------------------------------

    async def fetch_public_key(self) -> Pubkey:
        """Fetch the first address of the vault account for the asset."""
        uri = (
            f"/v1/vault/accounts/{self.vault_account_id}/{self.asset_id}"
            "/addresses_paginated"
        )
        data = await self._request("GET", uri, "fetch_public_key")
        addresses = self._parse(VaultAddressesResponse, data, "fetch_public_key")

        if not addresses.addresses:
            raise InvalidPublicKeyError("No addresses found in Fireblocks vault")

        try:
            return parse_pubkey(addresses.addresses[0].address)
        except InvalidPublicKeyError:
            raise InvalidPublicKeyError("Invalid public key from Fireblocks") from None

    # ------------------------------------------------------------------
    # Signing job
    # ------------------------------------------------------------------

    def _source(self) -> TransactionSource:
        return TransactionSource(type="VAULT_ACCOUNT", id=self.vault_account_id)

    async def _sign_raw_bytes(self, message: bytes) -> Signature:
        request = CreateTransactionRequest(
            asset_id=self.asset_id,
            operation=Operation.RAW,
            source=self._source(),
            extra_parameters=RawExtraParameters(
                raw_message_data=RawMessageData(messages=[RawMessage(content=message.hex())]),
            ),
        )
        return await self._request_and_poll_signature(request)

    async def _sign_with_program_call(self, tx: AnyTransaction) -> Signature:
        request = CreateTransactionRequest(
            asset_id=self.asset_id,
            operation=Operation.PROGRAM_CALL,
            source=self._source(),
            extra_parameters=ProgramCallExtraParameters(
                program_call_data=base64.b64encode(serialize_bytes(tx)).decode(),
            ),
        )
        return await self._request_and_poll_signature(request)

    async def _request_and_poll_signature(self, request: CreateTransactionRequest) -> Signature:
        created = await self.create_transaction(request)
        completed = await self.poll_for_signature(created.id)
        return self.extract_signature(completed)

    async def create_transaction(self, request: CreateTransactionRequest) -> CreateTransactionResponse:
        """Create a signing job. Never retried."""
        data = await self._request("POST", "/v1/transactions", "create_transaction", request.to_json())
        created = self._parse(CreateTransactionResponse, data, "create_transaction")
        logger.info(
            f"Fireblocks {request.operation.value} transaction {created.id} created "
            f"(status {created.status})"
        )
        return created

    async def get_transaction(self, job_id: str) -> TransactionResponse:
        data = await self._request("GET", f"/v1/transactions/{job_id}", "get_transaction")
        return self._parse(TransactionResponse, data, "get_transaction")

    async def poll_for_signature(self, job_id: str) -> TransactionResponse:
        """Poll a job at a fixed interval until it reaches a terminal status.

        Raises:
            SigningFailedError: Job FAILED / CANCELLED / REJECTED / BLOCKED
            PollingTimeoutError: Still pending after max_poll_attempts polls
            RemoteApiError: A status request failed (not retried)
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            response = await self.get_transaction(job_id)
            status = response.status

            if status == FireblocksTransactionStatus.COMPLETED.value:
                return response

            if status in FAILED_STATUSES:
                if self.unsafe_debug:
                    logger.debug(f"Transaction failed: {response.model_dump()}")
                logger.error(f"Fireblocks transaction {job_id} ended with status {status}")
                raise SigningFailedError(
                    f"Transaction {status}: {job_id}", job_id=job_id, status=status
                )

            logger.debug(
                f"Fireblocks transaction {job_id} status {status} "
                f"(attempt {attempt}/{self.max_poll_attempts})"
            )
            if attempt < self.max_poll_attempts:
                await asyncio.sleep(self.poll_interval_ms / 1000)

        logger.warning(
            f"Fireblocks transaction {job_id} still pending after "
            f"{self.max_poll_attempts} attempts"
        )
        raise PollingTimeoutError(job_id, self.max_poll_attempts)

    def extract_signature(self, response: TransactionResponse) -> Signature:
        """Decode the signature of a COMPLETED job.

        - RAW: signedMessages[0].signature.fullSig (hex)
        - PROGRAM_CALL: txHash (base58, already broadcast)
        """
        candidate = response.signature_candidate()
        if candidate is None:
            raise SigningFailedError(
                "No signature found in response (no signedMessages or txHash)",
                job_id=response.id,
                status=response.status,
            )

        if candidate.encoding is SignatureEncoding.HEX:
            return decode_hex(candidate.value, label=candidate.field)
        return decode_base58(candidate.value, label=candidate.field)

    # ------------------------------------------------------------------
    # SignerBackend
    # ------------------------------------------------------------------

    async def sign_message(self, message: bytes) -> Signature:
        self._ensure_initialized()
        return await self._sign_raw_bytes(message)

    async def _sign_transaction_message(self, tx: AnyTransaction) -> Signature:
        self._ensure_initialized()
        if self.use_program_call:
            return await self._sign_with_program_call(tx)
        return await super()._sign_transaction_message(tx)

    async def check_availability(self) -> bool:
        """Check that the vault account is reachable with these credentials."""
        try:
            response = await self._send("GET", f"/v1/vault/accounts/{self.vault_account_id}")
        except Exception as e:
            logger.warning(f"Fireblocks health check failed: {type(e).__name__}")
            return False

        if not response.is_success:
            logger.warning(f"Fireblocks health check failed - status: {response.status_code}")
            return False
        return True

    async def is_available(self) -> bool:
        return await self.check_availability()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "FireblocksSigner":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"FireblocksSigner(vault_account_id={self.vault_account_id!r}, "
            f"asset_id={self.asset_id!r}, public_key={self._public_key}, "
            f"use_program_call={self.use_program_call})"
        )
