"""create_entitlement_ledger

Revision ID: 3f9c1e7a2b4d
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c1e7a2b4d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Step 1: Subscriptions
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("badge_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("is_trial_user", sa.Boolean(), nullable=False),
        sa.Column("redemption_method", sa.String(length=20), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=True),
        sa.Column("transaction_id", sa.String(length=36), nullable=True),
        sa.Column("xp_spent", sa.Integer(), nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('trial', 'active', 'expired', 'cancelled')",
            name="ck_subscriptions_status",
        ),
        sa.CheckConstraint(
            "redemption_method IN ('payment', 'xp_redemption')",
            name="ck_subscriptions_redemption_method",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_id"),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_index("ix_subscriptions_created_at", "subscriptions", ["created_at"])
    op.create_index("ix_subscriptions_user_created", "subscriptions", ["user_id", "created_at"])

    # Step 2: Payment transactions
    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("subscription_id", sa.String(length=36), nullable=True),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("gateway", sa.String(length=20), nullable=False),
        sa.Column("gateway_transaction_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payer_reference", sa.String(length=64), nullable=False),
        sa.Column("card_type", sa.String(length=10), nullable=True),
        sa.Column("card_last_four", sa.String(length=4), nullable=True),
        sa.Column("badge_type", sa.String(length=20), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'cancelled', 'refunded')",
            name="ck_payment_transactions_status",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subscription_id"),
    )
    op.create_index("ix_payment_transactions_user_id", "payment_transactions", ["user_id"])
    op.create_index("ix_payment_transactions_gateway", "payment_transactions", ["gateway"])
    op.create_index("ix_payment_transactions_status", "payment_transactions", ["status"])
    op.create_index("ix_payment_transactions_created_at", "payment_transactions", ["created_at"])
    op.create_index(
        "ix_payment_transactions_user_created", "payment_transactions", ["user_id", "created_at"]
    )

    # Step 3: XP redemptions
    op.create_table(
        "xp_redemptions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("subscription_id", sa.String(length=36), nullable=False),
        sa.Column("badge_type", sa.String(length=20), nullable=False),
        sa.Column("xp_spent", sa.Integer(), nullable=False),
        sa.Column("xp_balance_before", sa.Integer(), nullable=False),
        sa.Column("xp_balance_after", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "xp_balance_after = xp_balance_before - xp_spent AND xp_balance_after >= 0",
            name="ck_xp_redemptions_balance",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subscription_id"),
    )
    op.create_index("ix_xp_redemptions_user_id", "xp_redemptions", ["user_id"])
    op.create_index("ix_xp_redemptions_created_at", "xp_redemptions", ["created_at"])
    op.create_index("ix_xp_redemptions_user_created", "xp_redemptions", ["user_id", "created_at"])

    # Step 4: Trial registry (primary key on user_id = one trial per user)
    op.create_table(
        "trial_registry",
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    op.drop_table("trial_registry")
    op.drop_index("ix_xp_redemptions_user_created", table_name="xp_redemptions")
    op.drop_index("ix_xp_redemptions_created_at", table_name="xp_redemptions")
    op.drop_index("ix_xp_redemptions_user_id", table_name="xp_redemptions")
    op.drop_table("xp_redemptions")
    op.drop_index("ix_payment_transactions_user_created", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_created_at", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_status", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_gateway", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_user_id", table_name="payment_transactions")
    op.drop_table("payment_transactions")
    op.drop_index("ix_subscriptions_user_created", table_name="subscriptions")
    op.drop_index("ix_subscriptions_created_at", table_name="subscriptions")
    op.drop_index("ix_subscriptions_user_id", table_name="subscriptions")
    op.drop_table("subscriptions")
