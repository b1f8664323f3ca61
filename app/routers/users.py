"""Buyer account administration."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey, ApiScope
from app.models.user import User
from app.schemas.escrow import ReservationPaymentRead
from app.schemas.user import UserCreate, UserRead
from app.security import require_scope
from app.services.reservation_payments import ReservationPaymentStore
from app.utils.audit import actor_from_api_key, log_audit
from app.utils.errors import error_response

router = APIRouter(prefix="/users", tags=["users"])


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("USER_NOT_FOUND", "User not found."),
        )
    return user


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> User:
    """Register a buyer account. Buyer API keys are issued separately via /apikeys."""

    user = User(**payload.model_dump())
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("USER_CREATE_FAILED", "Username or email already registered."),
        ) from exc

    log_audit(
        db,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
        action="CREATE_USER",
        entity="User",
        entity_id=user.id,
        data={"username": user.username, "email": user.email},
    )
    db.commit()
    db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> User:
    user = _get_user_or_404(db, user_id)
    log_audit(
        db,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
        action="READ_USER",
        entity="User",
        entity_id=user.id,
        data={"reason": "api_read"},
    )
    db.commit()
    return user


@router.post("/{user_id}/deactivate", response_model=UserRead)
def deactivate_user(
    user_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> User:
    """Block a buyer and revoke every key linked to them.

    Existing reservations and escrow mirrors are untouched; ledger events for
    them keep being applied.
    """

    user = _get_user_or_404(db, user_id)
    user.is_active = False
    revoked = db.execute(
        update(ApiKey)
        .where(ApiKey.user_id == user.id, ApiKey.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    ).rowcount
    log_audit(
        db,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
        action="DEACTIVATE_USER",
        entity="User",
        entity_id=user.id,
        data={"revoked_keys": revoked},
    )
    db.commit()
    db.refresh(user)
    return user


@router.get("/{user_id}/reservation-payments", response_model=list[ReservationPaymentRead])
def list_user_reservation_payments(
    user_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin, ApiScope.operator})),
):
    _get_user_or_404(db, user_id)
    return ReservationPaymentStore(db).list_by_user(user_id)
