"""Pytest configuration and fixtures."""

import json
from typing import Any, Callable, Optional, Union

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction, VersionedTransaction

TEST_API_KEY = "test-api-key"
TEST_VAULT_ID = "test-vault-id"
TEST_BASE_URL = "https://fireblocks.test"

# (status code, json body), an exception to raise, or a callable(request) -> either
Reply = Union[tuple[int, Any], Exception, Callable[[httpx.Request], Any]]


class FakeFireblocks:
    """In-memory Fireblocks API for httpx.MockTransport.

    Replies are queued per (method, path); the last reply of a queue repeats.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Reply]] = {}

    def add(self, method: str, path: str, *replies: Reply) -> None:
        self._routes.setdefault((method, path), []).extend(replies)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": "not found"})

        reply = queue[0] if len(queue) == 1 else queue.pop(0)
        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(request)
        if isinstance(reply, Exception):
            raise reply

        status, body = reply
        if body is None:
            return httpx.Response(status)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content.decode())


def make_transfer(payer: Pubkey, extra_signer: Optional[Pubkey] = None) -> Transaction:
    """Unsigned transfer transaction paid (and signed) by ``payer``."""
    instructions = [transfer(TransferParams(from_pubkey=payer, to_pubkey=Pubkey.new_unique(), lamports=1_000))]
    if extra_signer is not None:
        instructions.append(
            transfer(TransferParams(from_pubkey=extra_signer, to_pubkey=Pubkey.new_unique(), lamports=1))
        )
    message = Message.new_with_blockhash(instructions, payer, Hash.new_unique())
    return Transaction.new_unsigned(message)


def make_versioned_transfer(payer: Pubkey) -> VersionedTransaction:
    ix = transfer(TransferParams(from_pubkey=payer, to_pubkey=Pubkey.new_unique(), lamports=1_000))
    message = MessageV0.try_compile(payer, [ix], [], Hash.new_unique())
    return VersionedTransaction.populate(message, [Signature.default()])


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """RSA key standing in for a Fireblocks API user key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def keypair() -> Keypair:
    """Local keypair standing in for the remote custodian's key."""
    return Keypair()


@pytest.fixture
def fireblocks_api() -> FakeFireblocks:
    return FakeFireblocks()


@pytest_asyncio.fixture
async def http_client(fireblocks_api):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fireblocks_api.handler)) as client:
        yield client


@pytest.fixture
def make_fireblocks_signer(http_client, rsa_pem):
    """Build a FireblocksSigner wired to the fake API with fast polling."""
    from solana_keychain.signing.fireblocks import FireblocksSigner

    def _make(**overrides) -> FireblocksSigner:
        options = {
            "api_key": TEST_API_KEY,
            "private_key_pem": rsa_pem,
            "vault_account_id": TEST_VAULT_ID,
            "api_base_url": TEST_BASE_URL,
            "poll_interval_ms": 0,
            "max_poll_attempts": 3,
            "client": http_client,
        }
        options.update(overrides)
        return FireblocksSigner(**options)

    return _make
