import pytest

from app.models.escrow_transaction import EscrowTransactionStatus as S
from app.models.reservation_payment import ReservationPaymentStatus as P
from app.services.escrow_states import (
    ALLOWED_TRANSITIONS,
    STATUS_ORDER,
    ensure_transition,
    is_transition_allowed,
    payment_status_for,
)
from app.utils.errors import InvalidTransition

RECEIVER = "0x" + "2b" * 20
BUYER = "0x" + "9f" * 20


@pytest.mark.parametrize(
    "current,target",
    [
        (S.CREATED, S.PAID),
        (S.CREATED, S.RESOLVED),
        (S.PAID, S.DISPUTE_CREATED),
        (S.PAID, S.RESOLVED),
        (S.DISPUTE_CREATED, S.RESOLVED),
    ],
)
def test_forward_edges_are_allowed(current, target):
    assert is_transition_allowed(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.PAID, S.CREATED),
        (S.RESOLVED, S.PAID),
        (S.RESOLVED, S.CREATED),
        (S.DISPUTE_CREATED, S.PAID),
        (S.CREATED, S.DISPUTE_CREATED),
    ],
)
def test_backward_and_skipping_edges_are_rejected(current, target):
    with pytest.raises(InvalidTransition) as excinfo:
        ensure_transition(current, target)
    assert excinfo.value.details == {"current_status": current.value, "requested_status": target.value}


def test_every_allowed_edge_moves_forward():
    for current, targets in ALLOWED_TRANSITIONS.items():
        for target in targets:
            assert STATUS_ORDER[target] > STATUS_ORDER[current]
    assert ALLOWED_TRANSITIONS[S.RESOLVED] == frozenset()


def test_payment_projection_for_open_statuses():
    assert payment_status_for(S.CREATED) == P.INITIATED
    assert payment_status_for(S.PAID) == P.PAYMENT_CONFIRMED
    assert payment_status_for(S.DISPUTE_CREATED) == P.UNDER_VALIDATION


def test_resolved_projection_depends_on_winner():
    assert payment_status_for(S.RESOLVED, winner_address=RECEIVER, receiver_address=RECEIVER) == P.COMPLETED
    assert payment_status_for(S.RESOLVED, winner_address=BUYER, receiver_address=RECEIVER) == P.CANCELLED


def test_winner_comparison_ignores_checksum_case():
    mixed = "0x" + "2B" * 20
    assert payment_status_for(S.RESOLVED, winner_address=mixed, receiver_address=RECEIVER) == P.COMPLETED
