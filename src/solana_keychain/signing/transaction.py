"""Transaction helpers shared by all signers.

Works on both legacy ``Transaction`` and ``VersionedTransaction`` values
from solders. solders objects are immutable from Python's point of view,
so attaching a signature returns the updated transaction.
"""

import base64
import logging

from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from solana_keychain.signing.base import AnyTransaction, SerializationError, SigningFailedError

logger = logging.getLogger(__name__)


def message_bytes(tx: AnyTransaction) -> bytes:
    """Bytes that signers sign (the serialized message, not the whole tx)."""
    if isinstance(tx, VersionedTransaction):
        return bytes(to_bytes_versioned(tx.message))
    return bytes(tx.message_data())


def _signer_index(tx: AnyTransaction, pubkey: Pubkey) -> int:
    message = tx.message
    required = message.header.num_required_signatures
    signers = list(message.account_keys)[:required]
    try:
        return signers.index(pubkey)
    except ValueError:
        raise SigningFailedError(
            f"Signer {pubkey} is not a required signer of this transaction"
        ) from None


def attach_signature(tx: AnyTransaction, pubkey: Pubkey, signature: Signature) -> AnyTransaction:
    """Place the signature in the pubkey's slot, replacing any previous one."""
    index = _signer_index(tx, pubkey)
    required = tx.message.header.num_required_signatures

    signatures = list(tx.signatures)
    if len(signatures) < required:
        signatures.extend([Signature.default()] * (required - len(signatures)))
    signatures[index] = signature

    if isinstance(tx, VersionedTransaction):
        return VersionedTransaction.populate(tx.message, signatures)
    return Transaction.populate(tx.message, signatures)


def serialize_bytes(tx: AnyTransaction) -> bytes:
    try:
        return bytes(tx)
    except Exception as e:
        raise SerializationError(f"Failed to serialize transaction: {e}") from e


def serialize(tx: AnyTransaction) -> str:
    """Wire format of the transaction, base64 encoded."""
    return base64.b64encode(serialize_bytes(tx)).decode()
