"""Escrow status transition rules and the payment-status projection."""
from __future__ import annotations

from app.models.escrow_transaction import EscrowTransactionStatus
from app.models.reservation_payment import ReservationPaymentStatus
from app.utils.errors import InvalidTransition

_S = EscrowTransactionStatus

# Forward edges only; ``resolved`` is terminal.
ALLOWED_TRANSITIONS: dict[EscrowTransactionStatus, frozenset[EscrowTransactionStatus]] = {
    _S.CREATED: frozenset({_S.PAID, _S.RESOLVED}),
    _S.PAID: frozenset({_S.DISPUTE_CREATED, _S.RESOLVED}),
    _S.DISPUTE_CREATED: frozenset({_S.RESOLVED}),
    _S.RESOLVED: frozenset(),
}

STATUS_ORDER: dict[EscrowTransactionStatus, int] = {
    _S.CREATED: 0,
    _S.PAID: 1,
    _S.DISPUTE_CREATED: 2,
    _S.RESOLVED: 3,
}

_PAYMENT_STATUS_BY_ESCROW_STATUS = {
    _S.CREATED: ReservationPaymentStatus.INITIATED,
    _S.PAID: ReservationPaymentStatus.PAYMENT_CONFIRMED,
    _S.DISPUTE_CREATED: ReservationPaymentStatus.UNDER_VALIDATION,
}


def is_transition_allowed(current: EscrowTransactionStatus, target: EscrowTransactionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: EscrowTransactionStatus, target: EscrowTransactionStatus) -> None:
    """Raise ``InvalidTransition`` unless ``current -> target`` is a permitted edge."""

    if not is_transition_allowed(current, target):
        raise InvalidTransition(
            f"Cannot move escrow from {current.value} to {target.value}.",
            details={"current_status": current.value, "requested_status": target.value},
        )


def same_address(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


def payment_status_for(
    status: EscrowTransactionStatus,
    *,
    winner_address: str | None = None,
    receiver_address: str | None = None,
) -> ReservationPaymentStatus:
    """Project a ledger status onto the buyer-facing payment status.

    A resolved escrow is ``completed`` when the receiver won and ``cancelled``
    otherwise (buyer reclaimed or won the dispute).
    """

    if status == _S.RESOLVED:
        if same_address(winner_address, receiver_address):
            return ReservationPaymentStatus.COMPLETED
        return ReservationPaymentStatus.CANCELLED
    return _PAYMENT_STATUS_BY_ESCROW_STATUS[status]


__all__ = [
    "ALLOWED_TRANSITIONS",
    "STATUS_ORDER",
    "is_transition_allowed",
    "ensure_transition",
    "payment_status_for",
    "same_address",
]
