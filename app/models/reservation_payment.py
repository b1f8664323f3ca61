"""Reservation payment model definitions."""
import enum
from decimal import Decimal

from sqlalchemy import CheckConstraint, Enum as SqlEnum, ForeignKey, Index, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class PaymentMethod(str, enum.Enum):
    """How the buyer pays the reservation."""

    ESCROW = "escrow"
    OTHER = "other"


class ReservationPaymentStatus(str, enum.Enum):
    """Buyer-facing status of a reservation payment."""

    INITIATED = "initiated"
    PAYMENT_CONFIRMED = "payment_confirmed"
    UNDER_VALIDATION = "under_validation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReservationPayment(Base):
    """One buyer reservation attempt. Financial record, never deleted."""

    __tablename__ = "reservation_payment"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_reservation_payment_amount_non_negative"),
        Index("ix_reservation_payment_user_status", "user_id", "status"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    payment_method: Mapped[PaymentMethod] = mapped_column(SqlEnum(PaymentMethod), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    property_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    form_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[ReservationPaymentStatus] = mapped_column(
        SqlEnum(ReservationPaymentStatus),
        default=ReservationPaymentStatus.INITIATED,
        nullable=False,
    )

    user = relationship("User", back_populates="reservation_payments")
    escrow_transaction = relationship(
        "EscrowTransaction", back_populates="reservation_payment", uselist=False
    )
