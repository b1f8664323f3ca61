"""escrow reservation schema

Revision ID: 20261017_escrow_schema
Revises:
Create Date: 2026-10-17 09:12:40.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_escrow_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=128), nullable=False, unique=True),
        sa.Column(
            "scope",
            sa.Enum("buyer", "operator", "admin", name="apiscope"),
            nullable=False,
            server_default="buyer",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_api_keys_prefix", "api_keys", ["prefix"])
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])

    op.create_table(
        "reservation_payment",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("payment_method", sa.Enum("ESCROW", "OTHER", name="paymentmethod"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("property_data", sa.JSON(), nullable=False),
        sa.Column("form_data", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "INITIATED",
                "PAYMENT_CONFIRMED",
                "UNDER_VALIDATION",
                "COMPLETED",
                "CANCELLED",
                name="reservationpaymentstatus",
            ),
            nullable=False,
            server_default="INITIATED",
        ),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_reservation_payment_amount_non_negative"),
    )
    op.create_index("ix_reservation_payment_user_id", "reservation_payment", ["user_id"])
    op.create_index("ix_reservation_payment_user_status", "reservation_payment", ["user_id", "status"])

    op.create_table(
        "escrow_transaction",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contract_escrow_id", sa.String(length=78), nullable=False, unique=True),
        sa.Column(
            "reservation_payment_id",
            sa.Integer(),
            sa.ForeignKey("reservation_payment.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("transaction_hash", sa.String(length=66), nullable=False),
        sa.Column("buyer_address", sa.String(length=42), nullable=False),
        sa.Column("receiver_address", sa.String(length=42), nullable=False),
        sa.Column("amount", sa.String(length=78), nullable=False),
        sa.Column("timeout_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta_evidence", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("CREATED", "PAID", "DISPUTE_CREATED", "RESOLVED", name="escrowtransactionstatus"),
            nullable=False,
            server_default="CREATED",
        ),
        sa.Column("dispute_id", sa.String(length=78), nullable=True),
        sa.Column("winner_address", sa.String(length=42), nullable=True),
        sa.Column("blockchain", sa.String(length=64), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_escrow_transaction_status", "escrow_transaction", ["status"])

    op.create_table(
        "scheduler_locks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=64), nullable=False, unique=True),
        sa.Column("owner", sa.String(length=128), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("scheduler_locks")
    op.drop_index("ix_escrow_transaction_status", table_name="escrow_transaction")
    op.drop_table("escrow_transaction")
    op.drop_index("ix_reservation_payment_user_status", table_name="reservation_payment")
    op.drop_index("ix_reservation_payment_user_id", table_name="reservation_payment")
    op.drop_table("reservation_payment")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_index("ix_api_keys_prefix", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("users")
    sa.Enum(name="escrowtransactionstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="reservationpaymentstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="paymentmethod").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="apiscope").drop(op.get_bind(), checkfirst=True)
