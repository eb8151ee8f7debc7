"""Tests for transaction message, signature attachment and serialization."""

import base64

import pytest
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from solana_keychain.signing.base import SerializationError, SigningFailedError
from solana_keychain.signing.transaction import (
    attach_signature,
    message_bytes,
    serialize,
    serialize_bytes,
)

from tests.conftest import make_transfer, make_versioned_transfer


class TestMessageBytes:
    def test_legacy(self, keypair):
        tx = make_transfer(keypair.pubkey())
        assert message_bytes(tx) == bytes(tx.message)

    def test_versioned(self, keypair):
        tx = make_versioned_transfer(keypair.pubkey())
        data = message_bytes(tx)

        assert data == bytes(to_bytes_versioned(tx.message))
        # v0 messages carry the version prefix byte
        assert data[0] == 0x80


class TestAttachSignature:
    """Tests for placing a signature in the signer's slot."""

    def test_fills_signer_slot(self, keypair):
        tx = make_transfer(keypair.pubkey())
        signature = keypair.sign_message(message_bytes(tx))

        signed = attach_signature(tx, keypair.pubkey(), signature)

        assert isinstance(signed, Transaction)
        assert signed.signatures == [signature]
        signed.verify()

    def test_replaces_existing_signature(self, keypair):
        tx = make_transfer(keypair.pubkey())
        stale = attach_signature(tx, keypair.pubkey(), Signature.new_unique())
        signature = keypair.sign_message(message_bytes(tx))

        signed = attach_signature(stale, keypair.pubkey(), signature)

        assert len(signed.signatures) == 1
        assert signed.signatures[0] == signature

    def test_second_signer_slot(self, keypair):
        other = Keypair()
        tx = make_transfer(keypair.pubkey(), extra_signer=other.pubkey())
        signature = other.sign_message(message_bytes(tx))

        signed = attach_signature(tx, other.pubkey(), signature)

        assert signed.signatures[0] == Signature.default()
        assert signed.signatures[1] == signature

    def test_partial_then_complete(self, keypair):
        other = Keypair()
        tx = make_transfer(keypair.pubkey(), extra_signer=other.pubkey())
        data = message_bytes(tx)

        partial = attach_signature(tx, other.pubkey(), other.sign_message(data))
        complete = attach_signature(partial, keypair.pubkey(), keypair.sign_message(data))

        complete.verify()

    def test_not_a_signer(self, keypair):
        tx = make_transfer(keypair.pubkey())

        with pytest.raises(SigningFailedError):
            attach_signature(tx, Keypair().pubkey(), Signature.new_unique())

    def test_versioned(self, keypair):
        tx = make_versioned_transfer(keypair.pubkey())
        signature = keypair.sign_message(message_bytes(tx))

        signed = attach_signature(tx, keypair.pubkey(), signature)

        assert isinstance(signed, VersionedTransaction)
        assert signed.signatures == [signature]
        assert signature.verify(keypair.pubkey(), message_bytes(signed))


class TestSerialize:
    def test_base64_wire_format(self, keypair):
        tx = make_transfer(keypair.pubkey())
        signed = attach_signature(tx, keypair.pubkey(), keypair.sign_message(message_bytes(tx)))

        encoded = serialize(signed)

        assert base64.b64decode(encoded) == bytes(signed)
        assert Transaction.from_bytes(base64.b64decode(encoded)) == signed

    def test_versioned_round_trip(self, keypair):
        tx = make_versioned_transfer(keypair.pubkey())

        assert VersionedTransaction.from_bytes(serialize_bytes(tx)) == tx

    def test_failure_wrapped(self):
        with pytest.raises(SerializationError):
            serialize_bytes(object())
