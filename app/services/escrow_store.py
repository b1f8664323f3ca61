"""Persistence for the off-chain escrow mirror."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.models.escrow_transaction import (
    ACTIVE_ESCROW_STATUSES,
    EscrowTransaction,
    EscrowTransactionStatus,
)
from app.models.reservation_payment import ReservationPayment
from app.services.idempotency import exists_by_key
from app.utils.errors import DuplicateEscrow, EscrowNotFound, InvalidInput
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"status", "dispute_id", "winner_address", "resolved_at", "transaction_hash"})


@dataclass(frozen=True)
class NewEscrowTransaction:
    reservation_payment_id: int
    contract_escrow_id: str
    transaction_hash: str
    buyer_address: str
    receiver_address: str
    amount: str
    timeout_at: datetime
    meta_evidence: str
    blockchain: str
    status: EscrowTransactionStatus = EscrowTransactionStatus.CREATED


def _with_owner(stmt: Select) -> Select:
    """Eager-load the reservation payment and its owning user."""

    return stmt.options(
        joinedload(EscrowTransaction.reservation_payment, innerjoin=True).joinedload(
            ReservationPayment.user, innerjoin=True
        )
    )


class EscrowTransactionStore:
    """Mirror rows queryable by contract escrow id or reservation payment id.

    Methods flush but never commit; the calling use case owns the transaction.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, data: NewEscrowTransaction) -> EscrowTransaction:
        if exists_by_key(
            self.db, EscrowTransaction, data.reservation_payment_id, key_field="reservation_payment_id"
        ) or exists_by_key(self.db, EscrowTransaction, data.contract_escrow_id, key_field="contract_escrow_id"):
            raise DuplicateEscrow(
                details={
                    "contract_escrow_id": data.contract_escrow_id,
                    "reservation_payment_id": data.reservation_payment_id,
                }
            )

        record = EscrowTransaction(
            reservation_payment_id=data.reservation_payment_id,
            contract_escrow_id=data.contract_escrow_id,
            transaction_hash=data.transaction_hash,
            buyer_address=data.buyer_address,
            receiver_address=data.receiver_address,
            amount=data.amount,
            timeout_at=data.timeout_at,
            meta_evidence=data.meta_evidence,
            blockchain=data.blockchain,
            status=data.status,
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Lost a race against a concurrent insert of the same keys.
            self.db.rollback()
            raise DuplicateEscrow(
                details={
                    "contract_escrow_id": data.contract_escrow_id,
                    "reservation_payment_id": data.reservation_payment_id,
                }
            ) from exc
        return record

    def get_by_contract_id(self, contract_escrow_id: str, *, for_update: bool = False) -> EscrowTransaction:
        stmt = _with_owner(select(EscrowTransaction)).where(
            EscrowTransaction.contract_escrow_id == contract_escrow_id
        )
        if for_update:
            stmt = stmt.with_for_update(of=EscrowTransaction)
        record = self.db.scalars(stmt).first()
        if record is None:
            raise EscrowNotFound(details={"contract_escrow_id": contract_escrow_id})
        return record

    def get_by_reservation_id(self, reservation_payment_id: int) -> EscrowTransaction:
        stmt = _with_owner(select(EscrowTransaction)).where(
            EscrowTransaction.reservation_payment_id == reservation_payment_id
        )
        record = self.db.scalars(stmt).first()
        if record is None:
            raise EscrowNotFound(details={"reservation_payment_id": reservation_payment_id})
        return record

    def update_by_contract_id(self, contract_escrow_id: str, patch: Mapping[str, Any]) -> EscrowTransaction:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInput(
                "Unsupported escrow transaction fields.", details={"fields": sorted(unknown)}
            )

        record = self.get_by_contract_id(contract_escrow_id)
        for field, value in patch.items():
            setattr(record, field, value)
        record.updated_at = utcnow()
        self.db.flush()
        return record

    def list_active(self) -> Sequence[EscrowTransaction]:
        stmt = (
            _with_owner(select(EscrowTransaction))
            .where(EscrowTransaction.status.in_(ACTIVE_ESCROW_STATUSES))
            .order_by(EscrowTransaction.created_at.desc(), EscrowTransaction.id.desc())
        )
        return self.db.scalars(stmt).all()

    def list_by_status(self, status: EscrowTransactionStatus) -> Sequence[EscrowTransaction]:
        stmt = (
            _with_owner(select(EscrowTransaction))
            .where(EscrowTransaction.status == status)
            .order_by(EscrowTransaction.created_at.desc(), EscrowTransaction.id.desc())
        )
        return self.db.scalars(stmt).all()

    def list_by_user(self, user_id: int) -> Sequence[EscrowTransaction]:
        stmt = (
            _with_owner(select(EscrowTransaction))
            .join(EscrowTransaction.reservation_payment)
            .where(ReservationPayment.user_id == user_id)
            .order_by(EscrowTransaction.created_at.desc(), EscrowTransaction.id.desc())
        )
        return self.db.scalars(stmt).all()
