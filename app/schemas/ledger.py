"""Typed payloads for events emitted by the escrow contract.

The event watcher that produces these lives outside this service; it posts
each decoded log to the operator ingestion route.
"""
import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.models.escrow_transaction import EscrowTransactionStatus
from app.schemas.escrow import ADDRESS_PATTERN, LEDGER_ID_PATTERN, TX_HASH_PATTERN


class LedgerStatus(enum.IntEnum):
    """Status enum as encoded by the escrow contract."""

    CREATED = 0
    PAID = 1
    DISPUTE_CREATED = 2
    RESOLVED = 3

    def to_mirror(self) -> EscrowTransactionStatus:
        return EscrowTransactionStatus[self.name]


class _LedgerEventBase(BaseModel):
    escrow_id: str = Field(pattern=LEDGER_ID_PATTERN)
    transaction_hash: str | None = Field(default=None, pattern=TX_HASH_PATTERN)
    block_number: int | None = Field(default=None, ge=0)


class EscrowCreatedEvent(_LedgerEventBase):
    event: Literal["EscrowCreated"] = "EscrowCreated"
    buyer: str = Field(pattern=ADDRESS_PATTERN)
    receiver: str = Field(pattern=ADDRESS_PATTERN)
    amount: str
    property_id: str | None = None


class PaymentEvent(_LedgerEventBase):
    event: Literal["Payment"] = "Payment"
    payer: str = Field(pattern=ADDRESS_PATTERN)
    amount: str


class DisputeCreatedEvent(_LedgerEventBase):
    event: Literal["DisputeCreated"] = "DisputeCreated"
    dispute_id: str = Field(pattern=LEDGER_ID_PATTERN)


class EscrowResolvedEvent(_LedgerEventBase):
    event: Literal["EscrowResolved"] = "EscrowResolved"
    winner: str = Field(pattern=ADDRESS_PATTERN)
    amount: str


class RulingEvent(_LedgerEventBase):
    event: Literal["Ruling"] = "Ruling"
    dispute_id: str = Field(pattern=LEDGER_ID_PATTERN)
    ruling: int = Field(ge=0)


LedgerEvent = Annotated[
    Union[EscrowCreatedEvent, PaymentEvent, DisputeCreatedEvent, EscrowResolvedEvent, RulingEvent],
    Field(discriminator="event"),
]


LEDGER_EVENT_ADAPTER: TypeAdapter = TypeAdapter(LedgerEvent)


class LedgerEscrowSnapshot(BaseModel):
    """A ``getEscrow`` read posted by the monitor when it resyncs one escrow.

    The contract does not store the winner, so a resolved snapshot must carry
    it from the matching ``EscrowResolved`` log.
    """

    escrow_id: int = Field(ge=0)
    status: LedgerStatus
    dispute_id: int = Field(default=0, ge=0)
    winner: str | None = Field(default=None, pattern=ADDRESS_PATTERN)
    transaction_hash: str | None = Field(default=None, pattern=TX_HASH_PATTERN)

    model_config = ConfigDict(extra="ignore")


__all__ = [
    "LedgerStatus",
    "LedgerEscrowSnapshot",
    "EscrowCreatedEvent",
    "PaymentEvent",
    "DisputeCreatedEvent",
    "EscrowResolvedEvent",
    "RulingEvent",
    "LedgerEvent",
    "LEDGER_EVENT_ADAPTER",
]
