"""Ownership checks for escrow records."""
from __future__ import annotations

from app.models.escrow_transaction import EscrowTransaction
from app.models.reservation_payment import ReservationPayment
from app.utils.errors import Unauthorized


def owns(user_id: int | None, record: EscrowTransaction | ReservationPayment | None) -> bool:
    """True when ``user_id`` is the buyer owning ``record``."""

    if user_id is None or record is None:
        return False
    if isinstance(record, EscrowTransaction):
        return record.owner_id is not None and record.owner_id == user_id
    return record.user_id == user_id


def ensure_owner(user_id: int | None, record: EscrowTransaction | ReservationPayment) -> None:
    if not owns(user_id, record):
        raise Unauthorized()


__all__ = ["owns", "ensure_owner"]
