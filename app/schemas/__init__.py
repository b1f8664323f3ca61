"""Schema package exports."""
from .escrow import (
    BuyerStatusReport,
    EscrowLedgerData,
    EscrowReservationCreate,
    EscrowStatusUpdate,
    EscrowTransactionRead,
    PersonalInfo,
    PropertySnapshot,
    ReservationFormData,
    ReservationPaymentRead,
    UseCaseResult,
)
from .ledger import (
    DisputeCreatedEvent,
    EscrowCreatedEvent,
    EscrowResolvedEvent,
    LedgerEscrowSnapshot,
    LedgerEvent,
    LEDGER_EVENT_ADAPTER,
    LedgerStatus,
    PaymentEvent,
    RulingEvent,
)
from .user import UserCreate, UserRead

__all__ = [
    "BuyerStatusReport",
    "EscrowLedgerData",
    "EscrowReservationCreate",
    "EscrowStatusUpdate",
    "EscrowTransactionRead",
    "PersonalInfo",
    "PropertySnapshot",
    "ReservationFormData",
    "ReservationPaymentRead",
    "UseCaseResult",
    "DisputeCreatedEvent",
    "EscrowCreatedEvent",
    "EscrowResolvedEvent",
    "LedgerEvent",
    "LedgerEscrowSnapshot",
    "LEDGER_EVENT_ADAPTER",
    "LedgerStatus",
    "PaymentEvent",
    "RulingEvent",
    "UserCreate",
    "UserRead",
]
