"""Operator endpoints: ledger event and snapshot ingestion, monitoring and reconciliation."""
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey, ApiScope
from app.routers.escrow import unwrap
from app.schemas.escrow import EscrowStatusUpdate
from app.security import require_scope
from app.services.cron import reconcile_payment_projections
from app.services.escrow_coordinator import EscrowCoordinator
from app.utils.audit import actor_from_api_key

router = APIRouter(
    prefix="/ops/escrow",
    tags=["ops"],
)


@router.post("/ledger-events")
def ingest_ledger_event(
    event: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.operator})),
) -> dict[str, Any]:
    """Apply one decoded contract event posted by the event watcher."""

    return unwrap(EscrowCoordinator(db).apply_ledger_event(event))


@router.post("/ledger-snapshots")
def ingest_ledger_snapshot(
    snapshot: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.operator})),
) -> dict[str, Any]:
    """Resync one mirror from a ``getEscrow`` read."""

    return unwrap(EscrowCoordinator(db).apply_ledger_snapshot(snapshot))


@router.post("/transactions/{contract_escrow_id}/status")
def force_status(
    contract_escrow_id: str,
    payload: EscrowStatusUpdate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.operator})),
) -> dict[str, Any]:
    result = EscrowCoordinator(db).update_escrow_status(
        contract_escrow_id,
        payload.status,
        transaction_hash=payload.transaction_hash,
        dispute_id=payload.dispute_id,
        winner_address=payload.winner_address,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
    )
    return unwrap(result)


@router.get("/transactions/active")
def list_active(
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.operator})),
) -> dict[str, Any]:
    return unwrap(EscrowCoordinator(db).list_active())


@router.get("/transactions")
def list_by_status(
    status: str = Query(...),
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.operator})),
) -> dict[str, Any]:
    return unwrap(EscrowCoordinator(db).list_by_status(status))


@router.post("/reconcile")
def reconcile(
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.operator})),
) -> dict[str, Any]:
    corrected = reconcile_payment_projections(db, actor=actor_from_api_key(api_key, fallback="apikey:unknown"))
    return {"success": True, "data": {"corrected": corrected}, "error": None}
