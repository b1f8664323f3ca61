"""Buyer-facing escrow reservation endpoints."""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.user import User
from app.schemas.escrow import BuyerStatusReport, EscrowReservationCreate, UseCaseResult
from app.security import require_buyer
from app.services.escrow_coordinator import EscrowCoordinator
from app.utils.errors import http_status_for

router = APIRouter(
    prefix="/escrow",
    tags=["escrow"],
)


def unwrap(result: UseCaseResult) -> dict[str, Any]:
    """Return the envelope, raising with the mapped status when it carries an error."""

    payload = result.model_dump(mode="json")
    if not result.success:
        raise HTTPException(status_code=http_status_for(result.error_code), detail=payload)
    return payload


@router.post("/reservations", status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: EscrowReservationCreate,
    db: Session = Depends(get_db),
    buyer: User = Depends(require_buyer),
) -> dict[str, Any]:
    result = EscrowCoordinator(db).create_escrow_reservation(
        buyer.id,
        payload.property_id,
        payload.property_data,
        payload.form_data,
        payload.escrow_data,
    )
    return unwrap(result)


@router.post("/transactions/{contract_escrow_id}/status")
def update_status(
    contract_escrow_id: str,
    payload: BuyerStatusReport,
    db: Session = Depends(get_db),
    buyer: User = Depends(require_buyer),
) -> dict[str, Any]:
    result = EscrowCoordinator(db).update_escrow_status(
        contract_escrow_id,
        payload.status,
        transaction_hash=payload.transaction_hash,
        dispute_id=payload.dispute_id,
        winner_address=payload.winner_address,
        requesting_user_id=buyer.id,
    )
    return unwrap(result)


@router.get("/transactions/mine")
def list_my_transactions(
    db: Session = Depends(get_db),
    buyer: User = Depends(require_buyer),
) -> dict[str, Any]:
    return unwrap(EscrowCoordinator(db).list_user_escrow_transactions(buyer.id))


@router.get("/transactions")
def get_transaction(
    contract_escrow_id: str | None = Query(default=None),
    reservation_payment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    buyer: User = Depends(require_buyer),
) -> dict[str, Any]:
    result = EscrowCoordinator(db).get_escrow_transaction(
        buyer.id,
        contract_escrow_id=contract_escrow_id,
        reservation_payment_id=reservation_payment_id,
    )
    return unwrap(result)
