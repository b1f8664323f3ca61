"""Background cron jobs for maintenance tasks."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.core.runtime_state import record_reconciliation
from app.db import session_scope
from app.models.escrow_transaction import EscrowTransaction
from app.models.reservation_payment import PaymentMethod, ReservationPayment
from app.services.escrow_states import payment_status_for
from app.utils.audit import log_audit

logger = logging.getLogger(__name__)

RECONCILER_ACTOR = "system:reconciler"


def reconcile_payment_projections(db: Session, *, actor: str = RECONCILER_ACTOR) -> int:
    """Re-project escrow statuses onto reservation payments that fell behind.

    Returns the number of payments corrected. Payments without a mirror are
    left alone and reported.
    """

    stmt = (
        select(ReservationPayment)
        .options(joinedload(ReservationPayment.escrow_transaction))
        .where(ReservationPayment.payment_method == PaymentMethod.ESCROW)
        .order_by(ReservationPayment.id)
    )
    corrected = 0
    for payment in db.scalars(stmt).unique():
        escrow: EscrowTransaction | None = payment.escrow_transaction
        if escrow is None:
            logger.warning(
                "Escrow reservation payment has no mirror record",
                extra={"reservation_payment_id": payment.id},
            )
            continue

        expected = payment_status_for(
            escrow.status, winner_address=escrow.winner_address, receiver_address=escrow.receiver_address
        )
        if payment.status == expected:
            continue

        previous = payment.status
        payment.status = expected
        log_audit(
            db,
            actor=actor,
            action="RESERVATION_PAYMENT_RECONCILED",
            entity="ReservationPayment",
            entity_id=payment.id,
            data={
                "from": previous.value,
                "to": expected.value,
                "contract_escrow_id": escrow.contract_escrow_id,
            },
        )
        corrected += 1

    db.commit()
    if corrected:
        logger.info("Reservation payment projections reconciled", extra={"corrected": corrected})
    return corrected


def reconcile_payment_projections_once() -> int:
    """Scheduler entry point running one reconciliation pass in its own session."""

    with session_scope() as db:
        corrected = reconcile_payment_projections(db)
    record_reconciliation(corrected)
    return corrected


__all__ = ["reconcile_payment_projections", "reconcile_payment_projections_once", "RECONCILER_ACTOR"]
