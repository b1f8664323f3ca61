"""Off-chain mirror of a ledger escrow."""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class EscrowTransactionStatus(str, PyEnum):
    """Ledger-reported status of an escrow, in forward order."""

    CREATED = "created"
    PAID = "paid"
    DISPUTE_CREATED = "dispute_created"
    RESOLVED = "resolved"


ACTIVE_ESCROW_STATUSES = (
    EscrowTransactionStatus.CREATED,
    EscrowTransactionStatus.PAID,
    EscrowTransactionStatus.DISPUTE_CREATED,
)


class EscrowTransaction(Base):
    """Mirror row for one on-chain escrow, 1:1 with a reservation payment."""

    __tablename__ = "escrow_transaction"
    __table_args__ = (
        Index("ix_escrow_transaction_status", "status"),
    )

    contract_escrow_id: Mapped[str] = mapped_column(String(78), unique=True, nullable=False)
    reservation_payment_id: Mapped[int] = mapped_column(
        ForeignKey("reservation_payment.id"), unique=True, nullable=False
    )
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    buyer_address: Mapped[str] = mapped_column(String(42), nullable=False)
    receiver_address: Mapped[str] = mapped_column(String(42), nullable=False)
    # Ledger-native amount kept as text so no precision is lost.
    amount: Mapped[str] = mapped_column(String(78), nullable=False)
    timeout_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    meta_evidence: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[EscrowTransactionStatus] = mapped_column(
        SqlEnum(EscrowTransactionStatus), default=EscrowTransactionStatus.CREATED, nullable=False
    )
    dispute_id: Mapped[str | None] = mapped_column(String(78), nullable=True)
    winner_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    blockchain: Mapped[str] = mapped_column(String(64), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    reservation_payment = relationship("ReservationPayment", back_populates="escrow_transaction")

    __mapper_args__ = {"version_id_col": version}

    @property
    def amount_decimal(self) -> Decimal:
        return Decimal(self.amount)

    @property
    def owner_id(self) -> int | None:
        payment = self.reservation_payment
        return payment.user_id if payment is not None else None
