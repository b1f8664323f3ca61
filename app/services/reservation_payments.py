"""Reservation payment data access."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.reservation_payment import (
    PaymentMethod,
    ReservationPayment,
    ReservationPaymentStatus,
)
from app.models.user import User
from app.utils.audit import log_audit
from app.utils.errors import NotFound, PaymentCreationFailed

logger = logging.getLogger(__name__)


class ReservationPaymentStore:
    """Buyer-facing payment records. Flushes; the caller commits."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        *,
        user_id: int,
        payment_method: PaymentMethod,
        amount: Decimal,
        currency: str,
        property_data: dict[str, Any],
        form_data: dict[str, Any],
        actor: str = "system",
    ) -> ReservationPayment:
        user = self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise PaymentCreationFailed("Buyer account not found.", details={"user_id": user_id})

        payment = ReservationPayment(
            user_id=user_id,
            payment_method=payment_method,
            amount=amount,
            currency=currency,
            property_data=property_data,
            form_data=form_data,
            status=ReservationPaymentStatus.INITIATED,
        )
        self.db.add(payment)
        self.db.flush()
        log_audit(
            self.db,
            actor=actor,
            action="RESERVATION_PAYMENT_CREATED",
            entity="ReservationPayment",
            entity_id=payment.id,
            data={
                "payment_method": payment_method.value,
                "amount": str(amount),
                "currency": currency,
                "property_id": property_data.get("id"),
            },
        )
        return payment

    def get_by_id(self, payment_id: int) -> ReservationPayment:
        payment = self.db.get(ReservationPayment, payment_id)
        if payment is None:
            raise NotFound("Reservation payment not found.", details={"reservation_payment_id": payment_id})
        return payment

    def update_status(
        self, payment_id: int, status: ReservationPaymentStatus, *, actor: str = "system"
    ) -> ReservationPayment:
        payment = self.get_by_id(payment_id)
        previous = payment.status
        if previous == status:
            return payment
        payment.status = status
        self.db.flush()
        log_audit(
            self.db,
            actor=actor,
            action="RESERVATION_PAYMENT_STATUS_UPDATED",
            entity="ReservationPayment",
            entity_id=payment.id,
            data={"from": previous.value, "to": status.value},
        )
        return payment

    def list_by_user(self, user_id: int) -> Sequence[ReservationPayment]:
        stmt = (
            select(ReservationPayment)
            .where(ReservationPayment.user_id == user_id)
            .order_by(ReservationPayment.created_at.desc(), ReservationPayment.id.desc())
        )
        return self.db.scalars(stmt).all()
