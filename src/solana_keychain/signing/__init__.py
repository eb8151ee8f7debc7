"""Remote signing services.

Provides custodian-backed signer implementations:
- KmsSigner: AWS KMS Ed25519 keys (one synchronous call per signature)
- FireblocksSigner: Fireblocks vault accounts (signing job + polling)
"""

from solana_keychain.signing.base import (
    ConfigError,
    InvalidPrivateKeyError,
    InvalidPublicKeyError,
    PollingTimeoutError,
    RemoteApiError,
    SerializationError,
    SignatureEncodingError,
    SignatureLengthError,
    SignedTransaction,
    SignerBackend,
    SignerError,
    SignerNotInitializedError,
    SignerType,
    SigningFailedError,
)
from solana_keychain.signing.factory import create_signer, get_signer
from solana_keychain.signing.fireblocks import FireblocksSigner
from solana_keychain.signing.kms import KmsSigner

__all__ = [
    "ConfigError",
    "InvalidPrivateKeyError",
    "InvalidPublicKeyError",
    "PollingTimeoutError",
    "RemoteApiError",
    "SerializationError",
    "SignatureEncodingError",
    "SignatureLengthError",
    "SignedTransaction",
    "SignerBackend",
    "SignerError",
    "SignerNotInitializedError",
    "SignerType",
    "SigningFailedError",
    "FireblocksSigner",
    "KmsSigner",
    "create_signer",
    "get_signer",
]
