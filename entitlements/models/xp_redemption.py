"""XP redemption model — immutable record of XP converted into a badge."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from entitlements.database import Base, OpaqueIdMixin, utcnow


class XPRedemption(OpaqueIdMixin, Base):
    """One successful XP redemption. Never updated after insert."""

    __tablename__ = "xp_redemptions"
    __table_args__ = (
        CheckConstraint(
            "xp_balance_after = xp_balance_before - xp_spent AND xp_balance_after >= 0",
            name="ck_xp_redemptions_balance",
        ),
        Index("ix_xp_redemptions_user_created", "user_id", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subscription_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    badge_type: Mapped[str] = mapped_column(String(20), nullable=False)

    xp_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<XPRedemption(id={self.id}, user_id={self.user_id}, "
            f"badge={self.badge_type}, xp_spent={self.xp_spent})>"
        )
