"""Contract of the escrow ledger binding and translation of its facts.

This service never talks to the chain. Callers (the buyer's wallet flow or
the external event watcher) hold a ``LedgerClient`` and report what it
returned; this module only types those facts and maps them onto mirror
status updates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from app.models.escrow_transaction import EscrowTransactionStatus
from app.schemas.ledger import (
    DisputeCreatedEvent,
    EscrowCreatedEvent,
    EscrowResolvedEvent,
    LedgerEscrowSnapshot,
    LedgerEvent,
    LedgerStatus,
    PaymentEvent,
    RulingEvent,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEscrow:
    """Decoded result of ``getEscrow``."""

    escrow_id: int
    buyer: str
    receiver: str
    amount: Decimal
    timeout: int
    status: LedgerStatus
    dispute_id: int
    meta_evidence: str
    property_id: str
    property_title: str
    buyer_fee_required: bool
    created_at: int


@dataclass(frozen=True)
class TransactionReceipt:
    transaction_hash: str
    block_number: int
    escrow_id: int | None = None


class LedgerClient(Protocol):
    """Typed binding to the deployed escrow contract (consumed, not built here)."""

    def create_escrow(
        self,
        *,
        receiver: str,
        timeout: int,
        meta_evidence: str,
        property_id: str,
        property_title: str,
        value: Decimal,
    ) -> TransactionReceipt: ...

    def release_funds(self, escrow_id: int) -> TransactionReceipt: ...

    def reclaim_funds(self, escrow_id: int) -> TransactionReceipt: ...

    def create_dispute(self, escrow_id: int, *, arbitration_fee: Decimal) -> TransactionReceipt: ...

    def rule(self, dispute_id: int, ruling: int) -> TransactionReceipt: ...

    def get_escrow(self, escrow_id: int) -> LedgerEscrow: ...


@dataclass(frozen=True)
class StatusUpdate:
    """Arguments for ``UpdateEscrowStatus`` derived from a ledger fact."""

    contract_escrow_id: str
    status: EscrowTransactionStatus
    transaction_hash: str | None = None
    dispute_id: str | None = None
    winner_address: str | None = None


def status_update_from_event(event: LedgerEvent) -> StatusUpdate | None:
    """Map a contract event onto a mirror update; ``None`` when it carries no transition."""

    if isinstance(event, EscrowCreatedEvent):
        return StatusUpdate(event.escrow_id, EscrowTransactionStatus.CREATED, event.transaction_hash)
    if isinstance(event, PaymentEvent):
        return StatusUpdate(event.escrow_id, EscrowTransactionStatus.PAID, event.transaction_hash)
    if isinstance(event, DisputeCreatedEvent):
        return StatusUpdate(
            event.escrow_id,
            EscrowTransactionStatus.DISPUTE_CREATED,
            event.transaction_hash,
            dispute_id=event.dispute_id,
        )
    if isinstance(event, EscrowResolvedEvent):
        return StatusUpdate(
            event.escrow_id,
            EscrowTransactionStatus.RESOLVED,
            event.transaction_hash,
            winner_address=event.winner,
        )
    if isinstance(event, RulingEvent):
        # The arbitrator's ruling is followed by EscrowResolved naming the winner.
        logger.info(
            "Arbitrator ruling received",
            extra={"escrow_id": event.escrow_id, "dispute_id": event.dispute_id, "ruling": event.ruling},
        )
        return None
    raise TypeError(f"Unsupported ledger event: {type(event).__name__}")


def status_update_from_snapshot(
    snapshot: LedgerEscrow | LedgerEscrowSnapshot, *, winner_address: str | None = None
) -> StatusUpdate:
    """Map a ``getEscrow`` read onto a mirror update.

    The contract does not store a winner; a resolved snapshot needs the winner
    taken from the ``EscrowResolved`` event, either passed here or carried by
    the posted snapshot.
    """

    if winner_address is None and isinstance(snapshot, LedgerEscrowSnapshot):
        winner_address = snapshot.winner
    transaction_hash = snapshot.transaction_hash if isinstance(snapshot, LedgerEscrowSnapshot) else None

    status = snapshot.status.to_mirror()
    dispute_id = str(snapshot.dispute_id) if status == EscrowTransactionStatus.DISPUTE_CREATED else None
    return StatusUpdate(
        str(snapshot.escrow_id),
        status,
        transaction_hash,
        dispute_id=dispute_id,
        winner_address=winner_address if status == EscrowTransactionStatus.RESOLVED else None,
    )


__all__ = [
    "LedgerClient",
    "LedgerEscrow",
    "LedgerStatus",
    "StatusUpdate",
    "TransactionReceipt",
    "status_update_from_event",
    "status_update_from_snapshot",
]
