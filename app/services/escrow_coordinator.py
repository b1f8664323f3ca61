"""Escrow reservation use cases.

Each public method is one unit of work over the injected session and returns
a ``UseCaseResult`` instead of raising domain errors.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import Settings, get_settings
from app.models.escrow_transaction import EscrowTransaction, EscrowTransactionStatus
from app.models.reservation_payment import PaymentMethod
from app.schemas.escrow import (
    EscrowReservationCreate,
    EscrowStatusUpdate,
    EscrowTransactionRead,
    UseCaseResult,
)
from app.schemas.ledger import LEDGER_EVENT_ADAPTER, LedgerEscrowSnapshot
from app.services.authorization import ensure_owner
from app.services.escrow_states import ensure_transition, payment_status_for
from app.services.escrow_store import EscrowTransactionStore, NewEscrowTransaction
from app.services.idempotency import exists_by_key
from app.services.ledger import LedgerEscrow, status_update_from_event, status_update_from_snapshot
from app.services.reservation_payments import ReservationPaymentStore
from app.utils.audit import log_audit
from app.utils.errors import (
    DuplicateEscrow,
    EscrowError,
    InvalidInput,
    InvalidTransition,
    MirrorCreationFailed,
    PaymentCreationFailed,
    PaymentSyncFailed,
)
from app.utils.time import from_unix, utcnow

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
# reservation_payment.amount is Numeric(18, 2).
MAX_DISPLAY_AMOUNT = Decimal("9999999999999999.99")
# Re-read and revalidate this many times when another writer bumped the row version.
MAX_UPDATE_ATTEMPTS = 3


def _validation_details(exc: ValidationError) -> dict[str, Any]:
    return {"errors": exc.errors(include_url=False, include_context=False, include_input=False)}


def _as_dict(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


class EscrowCoordinator:
    """Orchestrates the escrow mirror and its reservation-payment projection."""

    def __init__(
        self,
        db: Session,
        *,
        escrows: EscrowTransactionStore | None = None,
        payments: ReservationPaymentStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.escrows = escrows or EscrowTransactionStore(db)
        self.payments = payments or ReservationPaymentStore(db)
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def to_display_amount(self, ledger_amount: Decimal) -> Decimal:
        """Fixed-rate conversion of the ledger amount into the display currency."""

        rate = Decimal(self.settings.ESCROW_NATIVE_TO_DISPLAY_RATE)
        return (ledger_amount * rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    def _fail(self, exc: EscrowError) -> UseCaseResult:
        return UseCaseResult.fail(exc.to_error())

    @staticmethod
    def _serialize(escrow: EscrowTransaction) -> dict[str, Any]:
        return EscrowTransactionRead.model_validate(escrow).model_dump(mode="json")

    @staticmethod
    def _status_payload(
        escrow: EscrowTransaction, *, changed: bool, payment_sync_failed: bool = False
    ) -> dict[str, Any]:
        payment_status = payment_status_for(
            escrow.status,
            winner_address=escrow.winner_address,
            receiver_address=escrow.receiver_address,
        )
        payload: dict[str, Any] = {
            "escrow_transaction_id": escrow.id,
            "contract_escrow_id": escrow.contract_escrow_id,
            "status": escrow.status.value,
            "payment_status": payment_status.value,
            "changed": changed,
            "payment_sync_failed": payment_sync_failed,
        }
        if payment_sync_failed:
            payload["warnings"] = [PaymentSyncFailed().to_error()]
        return payload

    # ------------------------------------------------------------------
    # CreateEscrowReservation
    # ------------------------------------------------------------------
    def create_escrow_reservation(
        self,
        buyer_id: int,
        property_id: str,
        property_data: Mapping[str, Any] | BaseModel,
        form_data: Mapping[str, Any] | BaseModel,
        escrow_data: Mapping[str, Any] | BaseModel,
        *,
        actor: str | None = None,
    ) -> UseCaseResult:
        """Record a reservation whose escrow the buyer already created on the ledger."""

        actor = actor or f"user:{buyer_id}"
        try:
            payload = EscrowReservationCreate.model_validate(
                {
                    "property_id": property_id,
                    "property_data": _as_dict(property_data),
                    "form_data": _as_dict(form_data),
                    "escrow_data": _as_dict(escrow_data),
                }
            )
        except ValidationError as exc:
            return self._fail(InvalidInput(details=_validation_details(exc)))

        if payload.property_data.id != payload.property_id:
            return self._fail(
                InvalidInput("property_data.id must match property_id.", details={"property_id": payload.property_id})
            )

        ledger = payload.escrow_data
        if exists_by_key(self.db, EscrowTransaction, ledger.contract_escrow_id, key_field="contract_escrow_id"):
            logger.warning(
                "Escrow reservation rejected: contract escrow already mirrored",
                extra={"contract_escrow_id": ledger.contract_escrow_id, "buyer_id": buyer_id},
            )
            return self._fail(DuplicateEscrow(details={"contract_escrow_id": ledger.contract_escrow_id}))

        ledger_amount = Decimal(ledger.amount)
        # Checked before quantizing; quantize raises once the result exceeds the context precision.
        too_large = ledger_amount * Decimal(self.settings.ESCROW_NATIVE_TO_DISPLAY_RATE) > MAX_DISPLAY_AMOUNT
        display_amount = None if too_large else self.to_display_amount(ledger_amount)
        if display_amount is None or display_amount < CENTS:
            return self._fail(
                InvalidInput(
                    "Escrow amount is outside the range of a reservation payment.",
                    details={"amount": ledger.amount},
                )
            )

        # The payment row must exist before the mirror, which references it.
        try:
            payment = self.payments.create(
                user_id=buyer_id,
                payment_method=PaymentMethod.ESCROW,
                amount=display_amount,
                currency=self.settings.ESCROW_DISPLAY_CURRENCY,
                property_data=payload.property_data.model_dump(mode="json"),
                form_data=payload.form_data.model_dump(mode="json"),
                actor=actor,
            )
            self.db.commit()
        except PaymentCreationFailed as exc:
            self.db.rollback()
            logger.warning("Reservation payment creation refused", extra={"buyer_id": buyer_id, "reason": exc.message})
            return self._fail(exc)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Reservation payment creation failed", extra={"buyer_id": buyer_id})
            return self._fail(PaymentCreationFailed())

        payment_id = payment.id
        try:
            escrow = self.escrows.create(
                NewEscrowTransaction(
                    reservation_payment_id=payment_id,
                    contract_escrow_id=ledger.contract_escrow_id,
                    transaction_hash=ledger.transaction_hash,
                    buyer_address=ledger.buyer_address,
                    receiver_address=ledger.receiver_address,
                    amount=ledger.amount,
                    timeout_at=from_unix(ledger.timeout_timestamp),
                    meta_evidence=ledger.meta_evidence,
                    blockchain=self.settings.ESCROW_BLOCKCHAIN,
                )
            )
            log_audit(
                self.db,
                actor=actor,
                action="ESCROW_TRANSACTION_CREATED",
                entity="EscrowTransaction",
                entity_id=escrow.id,
                data={
                    "contract_escrow_id": escrow.contract_escrow_id,
                    "reservation_payment_id": payment_id,
                    "amount": escrow.amount,
                    "status": escrow.status.value,
                },
            )
            self.db.commit()
        except DuplicateEscrow as exc:
            self.db.rollback()
            exc.details["reservation_payment_id"] = payment_id
            logger.error(
                "Escrow mirror duplicate after payment creation; payment left initiated",
                extra={"contract_escrow_id": ledger.contract_escrow_id, "reservation_payment_id": payment_id},
            )
            return self._fail(exc)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Escrow mirror creation failed; payment left initiated for reconciliation",
                extra={"contract_escrow_id": ledger.contract_escrow_id, "reservation_payment_id": payment_id},
            )
            return self._fail(
                MirrorCreationFailed(
                    details={
                        "contract_escrow_id": ledger.contract_escrow_id,
                        "reservation_payment_id": payment_id,
                    }
                )
            )

        logger.info(
            "Escrow reservation recorded",
            extra={
                "contract_escrow_id": escrow.contract_escrow_id,
                "reservation_payment_id": payment_id,
                "escrow_transaction_id": escrow.id,
            },
        )
        return UseCaseResult.ok(
            {
                "reservation_payment_id": payment_id,
                "escrow_transaction_id": escrow.id,
                "contract_escrow_id": escrow.contract_escrow_id,
            }
        )

    # ------------------------------------------------------------------
    # UpdateEscrowStatus
    # ------------------------------------------------------------------
    def update_escrow_status(
        self,
        contract_escrow_id: str,
        new_status: EscrowTransactionStatus | str,
        transaction_hash: str | None = None,
        dispute_id: str | None = None,
        winner_address: str | None = None,
        *,
        requesting_user_id: int | None = None,
        actor: str | None = None,
    ) -> UseCaseResult:
        """Advance the mirror along a permitted edge and re-project the payment status.

        ``requesting_user_id`` is the buyer on buyer-facing paths; ``None`` is
        the operational identity used for ledger event ingestion.
        """

        try:
            update = EscrowStatusUpdate.model_validate(
                {
                    "status": new_status,
                    "transaction_hash": transaction_hash,
                    "dispute_id": dispute_id,
                    "winner_address": winner_address,
                }
            )
        except ValidationError as exc:
            return self._fail(InvalidInput(details=_validation_details(exc)))

        actor = actor or (f"user:{requesting_user_id}" if requesting_user_id is not None else "system:ledger")
        for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
            try:
                return self._apply_status_update(contract_escrow_id, update, requesting_user_id, actor)
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    "Concurrent escrow update detected; revalidating",
                    extra={"contract_escrow_id": contract_escrow_id, "attempt": attempt},
                )
            except EscrowError as exc:
                self.db.rollback()
                return self._fail(exc)

        logger.error(
            "Escrow update kept losing concurrent races",
            extra={"contract_escrow_id": contract_escrow_id, "requested_status": update.status.value},
        )
        return self._fail(
            InvalidTransition(
                "Escrow is being updated concurrently.",
                details={"contract_escrow_id": contract_escrow_id, "requested_status": update.status.value},
            )
        )

    def _apply_status_update(
        self,
        contract_escrow_id: str,
        update: EscrowStatusUpdate,
        requesting_user_id: int | None,
        actor: str,
    ) -> UseCaseResult:
        escrow = self.escrows.get_by_contract_id(contract_escrow_id, for_update=True)
        if requesting_user_id is not None:
            ensure_owner(requesting_user_id, escrow)

        current, target = escrow.status, update.status
        if current == target:
            # Redelivered ledger event: nothing to write, nothing to project.
            payload = self._status_payload(escrow, changed=False)
            self.db.rollback()
            logger.info(
                "Escrow status already applied",
                extra={"contract_escrow_id": contract_escrow_id, "status": target.value},
            )
            return UseCaseResult.ok(payload)

        try:
            ensure_transition(current, target)
        except InvalidTransition:
            log_audit(
                self.db,
                actor=actor,
                action="ESCROW_TRANSITION_REJECTED",
                entity="EscrowTransaction",
                entity_id=escrow.id,
                data={"from": current.value, "to": target.value, "contract_escrow_id": contract_escrow_id},
            )
            self.db.commit()
            logger.error(
                "Rejected escrow status transition",
                extra={
                    "contract_escrow_id": contract_escrow_id,
                    "current_status": current.value,
                    "requested_status": target.value,
                    "actor": actor,
                },
            )
            raise

        patch: dict[str, Any] = {"status": target}
        if update.transaction_hash:
            patch["transaction_hash"] = update.transaction_hash
        if target == EscrowTransactionStatus.DISPUTE_CREATED:
            patch["dispute_id"] = update.dispute_id
        if target == EscrowTransactionStatus.RESOLVED:
            patch["winner_address"] = update.winner_address
            patch["resolved_at"] = utcnow()

        escrow = self.escrows.update_by_contract_id(contract_escrow_id, patch)
        log_audit(
            self.db,
            actor=actor,
            action="ESCROW_STATUS_UPDATED",
            entity="EscrowTransaction",
            entity_id=escrow.id,
            data={
                "contract_escrow_id": contract_escrow_id,
                "from": current.value,
                "to": target.value,
                "dispute_id": update.dispute_id,
                "winner_address": update.winner_address,
                "transaction_hash": update.transaction_hash,
            },
        )
        self.db.commit()
        logger.info(
            "Escrow status updated",
            extra={"contract_escrow_id": contract_escrow_id, "from": current.value, "to": target.value},
        )

        # The mirror is committed; the payment projection below is best effort.
        payment_status = payment_status_for(
            target, winner_address=escrow.winner_address, receiver_address=escrow.receiver_address
        )
        payment_sync_failed = False
        try:
            self.payments.update_status(escrow.reservation_payment_id, payment_status, actor=actor)
            self.db.commit()
        except (EscrowError, SQLAlchemyError):
            self.db.rollback()
            payment_sync_failed = True
            logger.error(
                "Reservation payment status sync failed; mirror is ahead of projection",
                exc_info=True,
                extra={
                    "contract_escrow_id": contract_escrow_id,
                    "reservation_payment_id": escrow.reservation_payment_id,
                    "payment_status": payment_status.value,
                },
            )

        return UseCaseResult.ok(self._status_payload(escrow, changed=True, payment_sync_failed=payment_sync_failed))

    # ------------------------------------------------------------------
    # GetEscrowTransaction / listings
    # ------------------------------------------------------------------
    def get_escrow_transaction(
        self,
        requesting_user_id: int,
        *,
        contract_escrow_id: str | None = None,
        reservation_payment_id: int | None = None,
    ) -> UseCaseResult:
        if (contract_escrow_id is None) == (reservation_payment_id is None):
            return self._fail(
                InvalidInput("Provide exactly one of contract_escrow_id or reservation_payment_id.")
            )

        try:
            if contract_escrow_id is not None:
                escrow = self.escrows.get_by_contract_id(contract_escrow_id)
            else:
                escrow = self.escrows.get_by_reservation_id(reservation_payment_id)
            ensure_owner(requesting_user_id, escrow)
        except EscrowError as exc:
            if exc.code == "UNAUTHORIZED":
                logger.warning(
                    "Escrow read denied to non-owner",
                    extra={"requesting_user_id": requesting_user_id, "contract_escrow_id": contract_escrow_id},
                )
            return self._fail(exc)

        data = self._serialize(escrow)
        log_audit(
            self.db,
            actor=f"user:{requesting_user_id}",
            action="ESCROW_READ",
            entity="EscrowTransaction",
            entity_id=escrow.id,
            data={"contract_escrow_id": escrow.contract_escrow_id},
        )
        self.db.commit()
        return UseCaseResult.ok(data)

    def list_user_escrow_transactions(self, requesting_user_id: int) -> UseCaseResult:
        records = self.escrows.list_by_user(requesting_user_id)
        return UseCaseResult.ok([self._serialize(record) for record in records])

    def list_active(self) -> UseCaseResult:
        return UseCaseResult.ok([self._serialize(record) for record in self.escrows.list_active()])

    def list_by_status(self, status: EscrowTransactionStatus | str) -> UseCaseResult:
        try:
            status = EscrowTransactionStatus(status)
        except ValueError:
            return self._fail(InvalidInput(f"Unknown escrow status: {status!r}."))
        return UseCaseResult.ok([self._serialize(record) for record in self.escrows.list_by_status(status)])

    # ------------------------------------------------------------------
    # Ledger events
    # ------------------------------------------------------------------
    def apply_ledger_event(self, event: Mapping[str, Any] | BaseModel) -> UseCaseResult:
        """Apply one decoded contract event under the operational identity."""

        try:
            parsed = LEDGER_EVENT_ADAPTER.validate_python(_as_dict(event))
        except ValidationError as exc:
            return self._fail(InvalidInput(details=_validation_details(exc)))

        update = status_update_from_event(parsed)
        if update is None:
            return UseCaseResult.ok({"event": parsed.event, "contract_escrow_id": parsed.escrow_id, "changed": False})

        return self.update_escrow_status(
            update.contract_escrow_id,
            update.status,
            transaction_hash=update.transaction_hash,
            dispute_id=update.dispute_id,
            winner_address=update.winner_address,
            actor=f"ledger:{parsed.event}",
        )

    def apply_ledger_snapshot(self, snapshot: Mapping[str, Any] | BaseModel | LedgerEscrow) -> UseCaseResult:
        """Resync one mirror from a ``getEscrow`` read, e.g. after the watcher missed logs."""

        if not isinstance(snapshot, LedgerEscrow):
            try:
                snapshot = LedgerEscrowSnapshot.model_validate(_as_dict(snapshot))
            except ValidationError as exc:
                return self._fail(InvalidInput(details=_validation_details(exc)))

        update = status_update_from_snapshot(snapshot)
        return self.update_escrow_status(
            update.contract_escrow_id,
            update.status,
            transaction_hash=update.transaction_hash,
            dispute_id=update.dispute_id,
            winner_address=update.winner_address,
            actor="ledger:snapshot",
        )


__all__ = ["EscrowCoordinator", "MAX_UPDATE_ATTEMPTS"]
