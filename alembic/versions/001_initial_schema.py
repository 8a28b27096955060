"""Initial schema: recipients, prompts, delivery ledger, linking, credits, job runs

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "recipients",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("gateway_identity", sa.String(64), nullable=True),
        sa.Column("timezone", sa.String(50), nullable=False),
        sa.Column("morning_time", sa.String(5), nullable=False),
        sa.Column("evening_time", sa.String(5), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("content_source", sa.String(20), nullable=False),
        sa.Column("notion_token", sa.Text(), nullable=True),
        sa.Column("notion_database_id", sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_recipients_account_id", "recipients", ["account_id"], unique=True)
    op.create_index(
        "ix_recipients_gateway_identity", "recipients", ["gateway_identity"], unique=True
    )
    op.create_index("ix_recipients_is_active", "recipients", ["is_active"])

    op.create_table(
        "prompt_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("slot", sa.String(16), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("theme", sa.String(255), nullable=True),
        sa.Column("prompts", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("response", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("account_id", "date", "slot", name="uq_prompt_account_date_slot"),
    )
    op.create_index("ix_prompt_items_account_id", "prompt_items", ["account_id"])
    op.create_index("ix_prompt_items_date", "prompt_items", ["date"])

    op.create_table(
        "delivery_ledger",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("last_slot", sa.String(16), nullable=True),
        sa.Column("last_local_date", sa.Date(), nullable=True),
        sa.Column("last_delivered_at", sa.DateTime(), nullable=True),
        sa.Column("correlation_id", sa.String(255), nullable=True),
        sa.Column("content_source", sa.String(20), nullable=True),
        sa.Column("reply_buffer", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_delivery_ledger_account_id", "delivery_ledger", ["account_id"], unique=True)

    op.create_table(
        "delivery_claims",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("slot", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("claimed_at", sa.DateTime(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.UniqueConstraint(
            "account_id", "slot_date", "slot", name="uq_claim_account_date_slot"
        ),
    )
    op.create_index("ix_delivery_claims_account_id", "delivery_claims", ["account_id"])
    op.create_index("ix_delivery_claims_slot_date", "delivery_claims", ["slot_date"])

    op.create_table(
        "verification_codes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(12), nullable=False),
        sa.Column("timezone", sa.String(50), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("consumed_at", sa.DateTime(), nullable=True),
        sa.Column("gateway_identity", sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_verification_codes_account_id", "verification_codes", ["account_id"])
    op.create_index("ix_verification_codes_code", "verification_codes", ["code"])
    op.create_index("ix_verification_codes_expires_at", "verification_codes", ["expires_at"])
    op.create_index(
        "uq_verification_codes_unconsumed_code",
        "verification_codes",
        ["code"],
        unique=True,
        postgresql_where=sa.text("consumed_at IS NULL"),
        sqlite_where=sa.text("consumed_at IS NULL"),
    )

    op.create_table(
        "link_attempts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("gateway_identity", sa.String(64), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("window_started_at", sa.DateTime(), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=False),
        sa.Column("locked_until", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_link_attempts_gateway_identity", "link_attempts", ["gateway_identity"], unique=True
    )

    op.create_table(
        "credit_balances",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("balance >= 0", name="ck_credit_balance_non_negative"),
    )
    op.create_index("ix_credit_balances_account_id", "credit_balances", ["account_id"], unique=True)

    op.create_table(
        "job_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("job_id", sa.String(100), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_runs_job_id", "job_runs", ["job_id"])


def downgrade() -> None:
    op.drop_table("job_runs")
    op.drop_table("credit_balances")
    op.drop_table("link_attempts")
    op.drop_table("verification_codes")
    op.drop_table("delivery_claims")
    op.drop_table("delivery_ledger")
    op.drop_table("prompt_items")
    op.drop_table("recipients")
