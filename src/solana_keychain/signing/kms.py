"""AWS KMS signing backend.

Uses AWS Key Management Service for secure key storage and signing.
KMS keys never leave AWS - signing happens in the cloud.

Setup:
1. Create an asymmetric key in AWS KMS:
   aws kms create-key --key-spec ECC_NIST_EDWARDS25519 --key-usage SIGN_VERIFY
2. Derive the Solana address from the key's public key (base58 of the raw
   32-byte Ed25519 key)
3. Configure AWS credentials (IAM role, access keys, etc.)

Keys are identified by:
- AWS KMS Key ID (e.g., "1234abcd-12ab-34cd-56ef-1234567890ab")
- AWS KMS Key ARN
- AWS KMS Key Alias (e.g., "alias/my-signing-key")

Reference:
- https://docs.aws.amazon.com/kms/latest/developerguide/asymmetric-key-specs.html
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_der_public_key,
)
from solders.pubkey import Pubkey
from solders.signature import Signature

from solana_keychain.signing.base import (
    ConfigError,
    RemoteApiError,
    SignerBackend,
    SignerType,
    SigningFailedError,
)
from solana_keychain.signing.codec import decode_fixed, parse_pubkey

logger = logging.getLogger(__name__)

KEY_SPEC = "ECC_NIST_EDWARDS25519"
KEY_USAGE = "SIGN_VERIFY"
KEY_STATE_ENABLED = "Enabled"
SIGNING_ALGORITHM = "ED25519_SHA_512"
MESSAGE_TYPE = "RAW"


class KmsSigner(SignerBackend):
    """AWS KMS signing backend using EdDSA (Ed25519).

    The Solana public key is supplied by the caller and only validated for
    encoding; see verify_public_key() to cross-check it against KMS.
    """

    def __init__(
        self,
        key_id: str,
        public_key: Union[str, bytes, Pubkey],
        region: Optional[str] = None,
        client: Any = None,
        request_delay_ms: int = 0,
    ):
        """Initialize KMS signer.

        Args:
            key_id: KMS key id, ARN or alias (must be an ECC_NIST_EDWARDS25519 key)
            public_key: Solana public key (base58) of the KMS key
            region: AWS region (defaults to the boto3 default region)
            client: Pre-configured boto3 KMS client
            request_delay_ms: Stagger between requests in batch signing

        Raises:
            ConfigError: If key_id is empty
            InvalidPublicKeyError: If public_key is malformed (checked before
                any AWS client is created)
        """
        if not key_id:
            raise ConfigError("Missing required key_id field")

        self._public_key = parse_pubkey(public_key)

        super().__init__(SignerType.KMS, request_delay_ms)
        self.key_id = key_id
        self.region = region

        if client is None:
            try:
                client = boto3.client("kms", region_name=region) if region else boto3.client("kms")
            except BotoCoreError as e:
                raise ConfigError(f"Failed to create AWS KMS client: {e}") from e
        self._client = client

    def pubkey(self) -> Pubkey:
        return self._public_key

    async def _call(self, fn: Callable[[], Any]) -> Any:
        """Run a blocking boto3 call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def sign_bytes(self, message: bytes) -> Signature:
        """Sign message bytes with one KMS Sign call. Not retried."""
        try:
            response = await self._call(
                lambda: self._client.sign(
                    KeyId=self.key_id,
                    Message=message,
                    MessageType=MESSAGE_TYPE,
                    SigningAlgorithm=SIGNING_ALGORITHM,
                )
            )
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if code == "AccessDeniedException":
                message_text = "Access denied to KMS key. Check IAM permissions."
            elif code == "NotFoundException":
                message_text = "KMS key not found. Check key ID/ARN."
            else:
                message_text = f"AWS KMS Sign operation failed: {code}"
            logger.error(f"KMS signing error: {code}")
            raise RemoteApiError(message_text, status=status, code=code) from e
        except BotoCoreError as e:
            logger.error(f"KMS signing transport error: {type(e).__name__}")
            raise RemoteApiError(f"AWS KMS Sign operation failed: {type(e).__name__}") from e

        signature = response.get("Signature")
        if not signature:
            raise SigningFailedError("No signature in AWS KMS response")

        return decode_fixed(bytes(signature))

    async def sign_message(self, message: bytes) -> Signature:
        return await self.sign_bytes(message)

    async def check_availability(self) -> bool:
        """Check the key exists and is an enabled Ed25519 signing key."""
        try:
            response = await self._call(lambda: self._client.describe_key(KeyId=self.key_id))
        except Exception as e:
            logger.warning(f"KMS health check failed: {type(e).__name__}")
            return False

        metadata = response.get("KeyMetadata") if isinstance(response, dict) else None
        if not metadata:
            logger.warning("KMS health check failed: no key metadata")
            return False

        key_spec = metadata.get("KeySpec")
        if key_spec != KEY_SPEC:
            logger.warning(f"KMS key {self.key_id} has key spec {key_spec}, expected {KEY_SPEC}")
            return False

        key_usage = metadata.get("KeyUsage")
        if key_usage != KEY_USAGE:
            logger.warning(f"KMS key {self.key_id} has key usage {key_usage}, expected {KEY_USAGE}")
            return False

        key_state = metadata.get("KeyState")
        if key_state != KEY_STATE_ENABLED:
            logger.warning(f"KMS key {self.key_id} is in state {key_state}, expected {KEY_STATE_ENABLED}")
            return False

        return True

    async def is_available(self) -> bool:
        return await self.check_availability()

    def _parse_der_public_key(self, der_key: bytes) -> bytes:
        """Parse a DER SubjectPublicKeyInfo into the raw 32-byte Ed25519 key."""
        public_key = load_der_public_key(der_key)
        if not isinstance(public_key, Ed25519PublicKey):
            raise ValueError("KMS key is not an Ed25519 key")
        return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)

    async def get_remote_public_key(self) -> Pubkey:
        """Fetch the key's public key from KMS."""
        try:
            response = await self._call(lambda: self._client.get_public_key(KeyId=self.key_id))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to get KMS public key: {type(e).__name__}")
            raise RemoteApiError("AWS KMS GetPublicKey operation failed") from e

        try:
            raw = self._parse_der_public_key(bytes(response["PublicKey"]))
        except (KeyError, ValueError, TypeError):
            raise SigningFailedError("Invalid public key in AWS KMS response") from None
        return Pubkey.from_bytes(raw)

    async def verify_public_key(self) -> bool:
        """Check that the configured public key matches the KMS key."""
        remote = await self.get_remote_public_key()
        if remote != self._public_key:
            logger.warning(
                f"KMS key {self.key_id} public key {remote} does not match "
                f"configured {self._public_key}"
            )
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"KmsSigner(key_id={self.key_id!r}, public_key={self._public_key}, "
            f"region={self.region!r})"
        )
