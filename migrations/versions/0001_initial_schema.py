"""initial ledger schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


account_status = sa.Enum(
    "Active", "Locked", "Archived",
    name="account_status_enum", create_constraint=True,
)
transaction_type = sa.Enum(
    "deposit", "withdraw", "transfer", "fee",
    name="transaction_type_enum", create_constraint=True,
)
transaction_status = sa.Enum(
    "Pending", "Completed", "Voided",
    name="transaction_status_enum", create_constraint=True,
)
audit_action = sa.Enum(
    "create", "complete", "void", "rollback",
    name="audit_action_enum", create_constraint=True,
)


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("account_number", sa.String(32), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("balance", sa.Numeric(19, 4), nullable=False),
        sa.Column("status", account_status, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("account_number"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("status", transaction_status, nullable=False),
        sa.Column("account_number", sa.String(32), nullable=False),
        sa.Column("target_account", sa.String(32), nullable=True),
        sa.Column("amount", sa.Numeric(19, 4), nullable=False),
        sa.Column("fee", sa.Numeric(19, 4), nullable=False, server_default="0"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("voided_at", sa.DateTime(), nullable=True),
        sa.Column("source_balance_before", sa.Numeric(19, 4), nullable=True),
        sa.Column("source_balance_after", sa.Numeric(19, 4), nullable=True),
        sa.Column("target_balance_before", sa.Numeric(19, 4), nullable=True),
        sa.Column("target_balance_after", sa.Numeric(19, 4), nullable=True),
        sa.Column("reference_transaction_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["account_number"], ["accounts.account_number"]),
        sa.ForeignKeyConstraint(["target_account"], ["accounts.account_number"]),
        sa.ForeignKeyConstraint(["reference_transaction_id"], ["transactions.id"]),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_account_number", "transactions", ["account_number"])
    op.create_index("ix_transactions_target_account", "transactions", ["target_account"])
    op.create_index("ix_transactions_type", "transactions", ["type"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])
    op.create_index(
        "ix_transactions_reference_transaction_id",
        "transactions", ["reference_transaction_id"],
    )

    op.create_table(
        "transaction_audit",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=False),
        sa.Column("action", audit_action, nullable=False),
        sa.Column("performed_by", sa.String(64), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_transaction_audit_transaction_id",
        "transaction_audit", ["transaction_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_transaction_audit_transaction_id", table_name="transaction_audit")
    op.drop_table("transaction_audit")
    for index in (
        "ix_transactions_reference_transaction_id",
        "ix_transactions_created_at",
        "ix_transactions_status",
        "ix_transactions_type",
        "ix_transactions_target_account",
        "ix_transactions_account_number",
    ):
        op.drop_index(index, table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("accounts")

    bind = op.get_bind()
    for enum in (audit_action, transaction_status, transaction_type, account_status):
        enum.drop(bind, checkfirst=True)
