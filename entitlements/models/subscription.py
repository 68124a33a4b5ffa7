"""Subscription model — one row per granted badge entitlement."""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from entitlements.database import Base, OpaqueIdMixin, TimestampMixin, sql_in_list

SUBSCRIPTION_STATUSES = ("trial", "active", "expired", "cancelled")
LIVE_STATUSES = ("trial", "active")
REDEMPTION_METHODS = ("payment", "xp_redemption")


class UserSubscription(OpaqueIdMixin, TimestampMixin, Base):
    """A time-limited badge entitlement.

    The table is an append-only audit ledger: rows are never deleted, and the
    only mutation is the ``trial|active -> expired`` status flip.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint(
            f"status IN ({sql_in_list(SUBSCRIPTION_STATUSES)})", name="ck_subscriptions_status"
        ),
        CheckConstraint(
            f"redemption_method IN ({sql_in_list(REDEMPTION_METHODS)})",
            name="ck_subscriptions_redemption_method",
        ),
        Index("ix_subscriptions_user_created", "user_id", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    badge_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)

    is_trial_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    redemption_method: Mapped[str] = mapped_column(String(20), nullable=False)

    # Payment path
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(36), nullable=True, unique=True)

    # XP path
    xp_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)

    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def __repr__(self) -> str:
        return (
            f"<UserSubscription(id={self.id}, user_id={self.user_id}, "
            f"badge={self.badge_type}, status={self.status})>"
        )
