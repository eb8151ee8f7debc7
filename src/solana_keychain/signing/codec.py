"""Signature and public key encodings.

Solana signatures are 64 raw bytes; custodians return them as hex
(Fireblocks signedMessages), base58 (Fireblocks txHash) or a binary blob
(KMS). Anything that is not exactly 64 bytes is rejected, never padded.
"""

from typing import Union

import base58
from solders.pubkey import Pubkey
from solders.signature import Signature

from solana_keychain.signing.base import (
    InvalidPublicKeyError,
    SignatureEncodingError,
    SignatureLengthError,
)

SIGNATURE_LENGTH = 64
PUBKEY_LENGTH = 32


def decode_fixed(data: bytes, label: str = "signature") -> Signature:
    """Convert raw bytes to a Signature.

    Raises:
        SignatureLengthError: If data is not exactly 64 bytes
    """
    if len(data) != SIGNATURE_LENGTH:
        raise SignatureLengthError(actual=len(data), expected=SIGNATURE_LENGTH, label=label)
    return Signature.from_bytes(bytes(data))


def decode_hex(text: str, label: str = "signature") -> Signature:
    """Decode a hex signature (optional 0x prefix)."""
    clean = text[2:] if text.startswith(("0x", "0X")) else text
    try:
        data = bytes.fromhex(clean)
    except ValueError:
        raise SignatureEncodingError(f"Failed to decode hex {label}") from None
    return decode_fixed(data, label=label)


def decode_base58(text: str, label: str = "signature") -> Signature:
    """Decode a base58 signature."""
    try:
        data = base58.b58decode(text)
    except ValueError:
        raise SignatureEncodingError(f"Failed to decode base58 {label}") from None
    return decode_fixed(data, label=label)


def encode_hex(signature: Signature) -> str:
    return bytes(signature).hex()


def encode_base58(signature: Signature) -> str:
    return base58.b58encode(bytes(signature)).decode()


def parse_pubkey(value: Union[str, bytes, Pubkey]) -> Pubkey:
    """Parse a base58 string or 32 raw bytes into a Pubkey.

    Raises:
        InvalidPublicKeyError: If the value is empty or not a valid 32-byte key
    """
    if isinstance(value, Pubkey):
        return value

    if isinstance(value, (bytes, bytearray)):
        if len(value) != PUBKEY_LENGTH:
            raise InvalidPublicKeyError(
                f"Invalid public key: expected {PUBKEY_LENGTH} bytes, got {len(value)}"
            )
        return Pubkey.from_bytes(bytes(value))

    if not value:
        raise InvalidPublicKeyError("Invalid public key: empty value")

    try:
        raw = base58.b58decode(value)
    except ValueError:
        raise InvalidPublicKeyError("Invalid public key: not base58") from None

    if len(raw) != PUBKEY_LENGTH:
        raise InvalidPublicKeyError(
            f"Invalid public key: expected {PUBKEY_LENGTH} bytes, got {len(raw)}"
        )
    return Pubkey.from_bytes(raw)
