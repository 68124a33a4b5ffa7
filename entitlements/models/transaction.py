"""Payment transaction model — gateway payment intents and their outcome."""

from decimal import Decimal

from sqlalchemy import JSON, CheckConstraint, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from entitlements.database import Base, OpaqueIdMixin, TimestampMixin, sql_in_list

PAYMENT_STATUSES = ("pending", "completed", "failed", "cancelled", "refunded")
# States a pending transaction can be closed into without a subscription
CLOSED_STATUSES = ("failed", "cancelled")


class PaymentTransaction(OpaqueIdMixin, TimestampMixin, Base):
    """A payment intent created before redirecting the user to a gateway.

    ``status`` leaves ``pending`` exactly once. A ``completed`` transaction
    always points at the subscription it paid for.
    """

    __tablename__ = "payment_transactions"
    __table_args__ = (
        CheckConstraint(
            f"status IN ({sql_in_list(PAYMENT_STATUSES)})", name="ck_payment_transactions_status"
        ),
        Index("ix_payment_transactions_user_created", "user_id", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subscription_id: Mapped[str | None] = mapped_column(String(36), nullable=True, unique=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="BDT")

    gateway: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)

    # Payer: mobile number for MFS gateways, card descriptor for card networks
    payer_reference: Mapped[str] = mapped_column(String(64), nullable=False)
    card_type: Mapped[str | None] = mapped_column(String(10), nullable=True)  # debit, credit
    card_last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)

    badge_type: Mapped[str] = mapped_column(String(20), nullable=False)
    extra: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def __repr__(self) -> str:
        return (
            f"<PaymentTransaction(id={self.id}, user_id={self.user_id}, "
            f"gateway={self.gateway}, amount={self.amount}, status={self.status})>"
        )
