"""Trial registry — marks users who have consumed their one-time trial."""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from entitlements.database import Base, utcnow


class TrialRegistration(Base):
    """Presence of a row means the user's trial is used up. Never removed."""

    __tablename__ = "trial_registry"

    # Primary key makes a second registration for the same user impossible
    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    def __repr__(self) -> str:
        return f"<TrialRegistration(user_id={self.user_id})>"
