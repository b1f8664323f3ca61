"""Escrow reservation schemas."""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.models.escrow_transaction import EscrowTransactionStatus
from app.models.reservation_payment import PaymentMethod, ReservationPaymentStatus
from app.utils.time import from_unix, utcnow

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
TX_HASH_PATTERN = r"^0x[0-9a-fA-F]{64}$"
LEDGER_ID_PATTERN = r"^[0-9]{1,78}$"
# Native unit precision (wei) and the widest uint256 rendering.
LEDGER_AMOUNT_MAX_DECIMALS = 18
LEDGER_AMOUNT_MAX_LENGTH = 78
TX_HASH_REQUIRED_STATUSES = frozenset({EscrowTransactionStatus.PAID, EscrowTransactionStatus.RESOLVED})


def parse_ledger_amount(value: Any) -> Decimal:
    """Parse a string-encoded ledger amount; floats are refused."""

    if isinstance(value, float) or isinstance(value, bool):
        raise ValueError("ledger amounts must be string-encoded")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"invalid ledger amount: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError("ledger amount must be a positive number")
    amount = amount.normalize()
    if -amount.as_tuple().exponent > LEDGER_AMOUNT_MAX_DECIMALS:
        raise ValueError(f"ledger amount has more than {LEDGER_AMOUNT_MAX_DECIMALS} decimals")
    if len(format(amount, "f")) > LEDGER_AMOUNT_MAX_LENGTH:
        raise ValueError("ledger amount is too large")
    return amount


class PropertySnapshot(BaseModel):
    """Unit being reserved, frozen at reservation time."""

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    price: str
    location: str
    project_id: str | None = None

    model_config = ConfigDict(extra="allow")


class PersonalInfo(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)


class ReservationFormData(BaseModel):
    personal_info: PersonalInfo
    payment_method: Literal["escrow"] = "escrow"

    model_config = ConfigDict(extra="allow")


class EscrowLedgerData(BaseModel):
    """Facts reported by the ledger receipt of ``createEscrow``."""

    contract_escrow_id: str = Field(pattern=LEDGER_ID_PATTERN)
    transaction_hash: str = Field(pattern=TX_HASH_PATTERN)
    amount: str
    receiver_address: str = Field(pattern=ADDRESS_PATTERN)
    buyer_address: str = Field(pattern=ADDRESS_PATTERN)
    timeout_timestamp: int = Field(gt=0)
    meta_evidence: str

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_is_decimal(cls, value: Any) -> str:
        amount = parse_ledger_amount(value)
        return format(amount, "f")

    @field_validator("timeout_timestamp")
    @classmethod
    def _timeout_in_future(cls, value: int) -> int:
        if value <= int(utcnow().timestamp()):
            raise ValueError("timeout must be in the future")
        try:
            from_unix(value)
        except (OverflowError, OSError, ValueError) as exc:
            raise ValueError("timeout is out of range") from exc
        return value


class EscrowReservationCreate(BaseModel):
    property_id: str = Field(min_length=1)
    property_data: PropertySnapshot
    form_data: ReservationFormData
    escrow_data: EscrowLedgerData


class EscrowStatusUpdate(BaseModel):
    status: EscrowTransactionStatus
    transaction_hash: str | None = Field(default=None, pattern=TX_HASH_PATTERN)
    dispute_id: str | None = Field(default=None, pattern=LEDGER_ID_PATTERN)
    winner_address: str | None = Field(default=None, pattern=ADDRESS_PATTERN)

    @model_validator(mode="after")
    def _status_requirements(self) -> "EscrowStatusUpdate":
        if self.status == EscrowTransactionStatus.DISPUTE_CREATED and not self.dispute_id:
            raise ValueError("dispute_id is required when opening a dispute")
        if self.status == EscrowTransactionStatus.RESOLVED and not self.winner_address:
            raise ValueError("winner_address is required when resolving")
        return self


class BuyerStatusReport(EscrowStatusUpdate):
    """Status change reported by the buyer's wallet flow.

    Payment and release are buyer-signed transactions, so the report must name
    the transaction for the audit trail.
    """

    @model_validator(mode="after")
    def _transaction_hash_required(self) -> "BuyerStatusReport":
        if self.status in TX_HASH_REQUIRED_STATUSES and not self.transaction_hash:
            raise ValueError(f"transaction_hash is required when reporting {self.status.value}")
        return self


class ReservationPaymentRead(BaseModel):
    id: int
    user_id: int
    payment_method: PaymentMethod
    amount: Decimal
    currency: str
    property_data: dict
    form_data: dict
    status: ReservationPaymentStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EscrowTransactionRead(BaseModel):
    id: int
    contract_escrow_id: str
    reservation_payment_id: int
    transaction_hash: str
    buyer_address: str
    receiver_address: str
    amount: str
    timeout_at: datetime
    meta_evidence: str
    status: EscrowTransactionStatus
    dispute_id: str | None
    winner_address: str | None
    blockchain: str
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None
    reservation_payment: ReservationPaymentRead | None = None

    model_config = ConfigDict(from_attributes=True)


class UseCaseResult(BaseModel):
    """Uniform ``{success, data?, error?}`` envelope returned by every use case."""

    success: bool
    data: Any | None = None
    error: dict[str, Any] | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "UseCaseResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: dict[str, Any]) -> "UseCaseResult":
        return cls(success=False, error=error)

    @property
    def error_code(self) -> str | None:
        return self.error["code"] if self.error else None
