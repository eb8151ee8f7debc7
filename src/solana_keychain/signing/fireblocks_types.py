"""Fireblocks API wire models.

Only the fields the signer reads or writes are modelled; unknown response
fields are ignored.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FireblocksTransactionStatus(str, Enum):
    """Fireblocks transaction (signing job) status values."""
    SUBMITTED = "SUBMITTED"
    QUEUED = "QUEUED"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    PENDING_AUTHORIZATION = "PENDING_AUTHORIZATION"
    PENDING_3RD_PARTY_MANUAL_APPROVAL = "PENDING_3RD_PARTY_MANUAL_APPROVAL"
    PENDING_3RD_PARTY = "PENDING_3RD_PARTY"
    BROADCASTING = "BROADCASTING"
    CONFIRMING = "CONFIRMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    BLOCKED = "BLOCKED"
    FAILED = "FAILED"


# Terminal statuses that carry no usable signature
FAILED_STATUSES = frozenset({
    FireblocksTransactionStatus.FAILED.value,
    FireblocksTransactionStatus.CANCELLED.value,
    FireblocksTransactionStatus.REJECTED.value,
    FireblocksTransactionStatus.BLOCKED.value,
})


class Operation(str, Enum):
    RAW = "RAW"                     # sign message bytes, caller broadcasts
    PROGRAM_CALL = "PROGRAM_CALL"   # Fireblocks signs and broadcasts


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TransactionSource(_WireModel):
    type: str = "VAULT_ACCOUNT"
    id: str


class RawMessage(_WireModel):
    content: str = Field(..., description="Hex encoded message bytes")


class RawMessageData(_WireModel):
    messages: list[RawMessage]


class RawExtraParameters(_WireModel):
    raw_message_data: RawMessageData = Field(..., alias="rawMessageData")


class ProgramCallExtraParameters(_WireModel):
    program_call_data: str = Field(
        ..., alias="programCallData", description="Base64 serialized transaction"
    )


class CreateTransactionRequest(_WireModel):
    asset_id: str = Field(..., alias="assetId")
    operation: Operation
    source: TransactionSource
    extra_parameters: Union[RawExtraParameters, ProgramCallExtraParameters] = Field(
        ..., alias="extraParameters"
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class CreateTransactionResponse(_WireModel):
    id: str
    status: str


class SignatureData(_WireModel):
    full_sig: str = Field(..., alias="fullSig")


class SignedMessage(_WireModel):
    signature: SignatureData


class SignatureEncoding(str, Enum):
    HEX = "hex"
    BASE58 = "base58"


@dataclass(frozen=True)
class SignatureCandidate:
    """Where a completed job's signature was found.

    RAW jobs report it in signedMessages[0].signature.fullSig (hex);
    PROGRAM_CALL jobs report the broadcast transaction id in txHash (base58),
    which for Solana is the transaction's first signature.
    """
    encoding: SignatureEncoding
    value: str
    field: str


class TransactionResponse(_WireModel):
    id: str
    status: str
    signed_messages: Optional[list[SignedMessage]] = Field(None, alias="signedMessages")
    tx_hash: Optional[str] = Field(None, alias="txHash")

    def signature_candidate(self) -> Optional[SignatureCandidate]:
        """Resolve the response shape: signedMessages first, then txHash."""
        if self.signed_messages:
            return SignatureCandidate(
                encoding=SignatureEncoding.HEX,
                value=self.signed_messages[0].signature.full_sig,
                field="signature",
            )
        if self.tx_hash:
            return SignatureCandidate(
                encoding=SignatureEncoding.BASE58,
                value=self.tx_hash,
                field="tx_hash",
            )
        return None


class VaultAddress(_WireModel):
    address: str


class VaultAddressesResponse(_WireModel):
    addresses: list[VaultAddress] = Field(default_factory=list)
