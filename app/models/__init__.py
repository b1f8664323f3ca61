"""ORM models package."""
from .api_key import ApiKey, ApiScope
from .audit import AuditLog
from .base import Base
from .escrow_transaction import ACTIVE_ESCROW_STATUSES, EscrowTransaction, EscrowTransactionStatus
from .reservation_payment import PaymentMethod, ReservationPayment, ReservationPaymentStatus
from .scheduler_lock import SchedulerLock
from .user import User

__all__ = [
    "ACTIVE_ESCROW_STATUSES",
    "ApiKey",
    "ApiScope",
    "AuditLog",
    "Base",
    "EscrowTransaction",
    "EscrowTransactionStatus",
    "PaymentMethod",
    "ReservationPayment",
    "ReservationPaymentStatus",
    "SchedulerLock",
    "User",
]
