"""Fireblocks API authentication.

Every Fireblocks request carries two credentials:
- X-API-Key: the static API key
- Authorization: Bearer <JWT>, signed per request with the API user's RSA key

JWT claims:
- uri: request path (e.g. "/v1/transactions")
- nonce: random UUID, unique per request
- iat / exp: issue time and issue time + 30 seconds
- sub: the API key
- bodyHash: hex SHA-256 of the exact request body ("" for GET)

Reference:
- https://developers.fireblocks.com/reference/signing-a-request-jwt-structure
"""

import hashlib
import logging
import time
import uuid
from typing import Union

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from solana_keychain.signing.base import InvalidPrivateKeyError, SigningFailedError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "RS256"
TOKEN_TTL_SECONDS = 30

PrivateKeyInput = Union[str, bytes, RSAPrivateKey]


def load_private_key(private_key_pem: Union[str, bytes]) -> RSAPrivateKey:
    """Parse an unencrypted RSA private key from PEM (PKCS#8 or PKCS#1).

    Raises:
        InvalidPrivateKeyError: If the PEM cannot be parsed or is not RSA
    """
    data = private_key_pem.encode() if isinstance(private_key_pem, str) else private_key_pem
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        logger.error("Failed to parse Fireblocks API private key")
        # never include the key material in the message
        raise InvalidPrivateKeyError("Failed to parse RSA key") from None

    if not isinstance(key, RSAPrivateKey):
        raise InvalidPrivateKeyError("Fireblocks API keys must be RSA keys")
    return key


def body_hash(body: Union[str, bytes]) -> str:
    data = body.encode() if isinstance(body, str) else body
    return hashlib.sha256(data).hexdigest()


def create_jwt(
    api_key: str,
    private_key: PrivateKeyInput,
    uri: str,
    body: Union[str, bytes] = "",
) -> str:
    """Create a JWT for one Fireblocks API request.

    Args:
        api_key: Fireblocks API key (JWT subject)
        private_key: RSA private key, as PEM or an already loaded key
        uri: API endpoint path including query string
        body: Request body exactly as sent ("" for GET requests)

    Returns:
        Encoded JWT string

    Raises:
        InvalidPrivateKeyError: If the private key cannot be parsed
        SigningFailedError: If the token cannot be signed
    """
    if not isinstance(private_key, RSAPrivateKey):
        private_key = load_private_key(private_key)

    now = int(time.time())
    claims = {
        "uri": uri,
        "nonce": str(uuid.uuid4()),
        "iat": now,
        "exp": now + TOKEN_TTL_SECONDS,
        "sub": api_key,
        "bodyHash": body_hash(body),
    }

    try:
        return jwt.encode(claims, private_key, algorithm=JWT_ALGORITHM)
    except (jwt.PyJWTError, ValueError, TypeError):
        raise SigningFailedError("Failed to create JWT") from None
