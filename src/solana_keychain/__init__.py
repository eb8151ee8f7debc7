"""Remote Solana transaction signing backed by AWS KMS or Fireblocks."""

from solana_keychain.signing import (
    FireblocksSigner,
    KmsSigner,
    SignedTransaction,
    SignerBackend,
    SignerError,
)

__version__ = "0.1.0"

__all__ = [
    "FireblocksSigner",
    "KmsSigner",
    "SignedTransaction",
    "SignerBackend",
    "SignerError",
]
