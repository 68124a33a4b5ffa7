"""Entitlement store — unit-of-work access to the four ledger tables.

Every multi-record write goes through :meth:`EntitlementStore.unit_of_work`,
which commits everything or nothing. Status changes are conditional UPDATEs
keyed on the row's current status, so a write meant to happen once cannot
happen twice even when two processes race past the per-user lock.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlements.database import utcnow
from entitlements.errors import EntitlementError, PersistenceError, TrialAlreadyUsedError
from entitlements.models.subscription import LIVE_STATUSES, UserSubscription
from entitlements.models.transaction import CLOSED_STATUSES, PaymentTransaction
from entitlements.models.trial import TrialRegistration
from entitlements.models.xp_redemption import XPRedemption
from entitlements.services.locks import UserLockRegistry

logger = logging.getLogger(__name__)


class EntitlementStore:
    """Persistence for subscriptions, transactions, XP redemptions and trials."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: UserLockRegistry | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.locks = locks or UserLockRegistry()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[AsyncSession]:
        """Yield a session whose writes commit together or not at all.

        Business errors raised inside the block roll back and propagate
        unchanged. Database failures roll back and surface as
        :class:`PersistenceError`.
        """
        async with self._session_factory() as db:
            try:
                yield db
                await db.commit()
            except EntitlementError:
                await db.rollback()
                raise
            except SQLAlchemyError as e:
                await db.rollback()
                logger.exception("Ledger write failed, rolled back")
                raise PersistenceError(str(e)) from e

    # --- Trial registry ---

    async def has_trial(self, db: AsyncSession, user_id: str) -> bool:
        result = await db.execute(
            select(TrialRegistration.user_id).where(TrialRegistration.user_id == user_id)
        )
        return result.scalar_one_or_none() is not None

    async def register_trial(self, db: AsyncSession, user_id: str) -> None:
        """Insert the registry marker. Raises TrialAlreadyUsedError on a duplicate."""
        db.add(TrialRegistration(user_id=user_id))
        try:
            await db.flush()
        except IntegrityError:
            raise TrialAlreadyUsedError(user_id) from None

    # --- Subscriptions ---

    async def add_subscription(self, db: AsyncSession, subscription: UserSubscription) -> UserSubscription:
        db.add(subscription)
        await db.flush()
        return subscription

    async def latest_subscription(self, db: AsyncSession, user_id: str) -> UserSubscription | None:
        """The user's current subscription: the most recently created one."""
        result = await db.execute(
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_subscription(self, db: AsyncSession, subscription_id: str) -> UserSubscription | None:
        return await db.get(UserSubscription, subscription_id)

    async def expire_subscription(
        self, db: AsyncSession, subscription: UserSubscription, now: datetime
    ) -> bool:
        """Flip a live subscription to expired. False if someone else already did."""
        result = await db.execute(
            update(UserSubscription)
            .where(
                UserSubscription.id == subscription.id,
                UserSubscription.status.in_(LIVE_STATUSES),
                UserSubscription.end_date < now,
            )
            .values(status="expired", updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.refresh(subscription)
        return result.rowcount == 1

    async def stale_subscriptions(self, db: AsyncSession, now: datetime) -> Sequence[UserSubscription]:
        """Live subscriptions whose end date has passed."""
        result = await db.execute(
            select(UserSubscription).where(
                UserSubscription.status.in_(LIVE_STATUSES),
                UserSubscription.end_date < now,
            )
        )
        return result.scalars().all()

    async def trials_ending(
        self, db: AsyncSession, now: datetime, until: datetime
    ) -> Sequence[UserSubscription]:
        result = await db.execute(
            select(UserSubscription).where(
                UserSubscription.status == "trial",
                UserSubscription.end_date > now,
                UserSubscription.end_date <= until,
            )
        )
        return result.scalars().all()

    # --- Transactions ---

    async def add_transaction(self, db: AsyncSession, transaction: PaymentTransaction) -> PaymentTransaction:
        db.add(transaction)
        await db.flush()
        return transaction

    async def get_transaction(
        self, db: AsyncSession, transaction_id: str, *, for_update: bool = False
    ) -> PaymentTransaction | None:
        stmt = select(PaymentTransaction).where(PaymentTransaction.id == transaction_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def complete_transaction(
        self,
        db: AsyncSession,
        transaction: PaymentTransaction,
        subscription_id: str,
        gateway_transaction_id: str | None,
    ) -> bool:
        """pending -> completed. False if the transaction already left pending."""
        result = await db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == transaction.id,
                PaymentTransaction.status == "pending",
            )
            .values(
                status="completed",
                subscription_id=subscription_id,
                gateway_transaction_id=gateway_transaction_id,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(transaction)
        return result.rowcount == 1

    async def close_transaction(
        self,
        db: AsyncSession,
        transaction: PaymentTransaction,
        status: str,
        reason: str | None = None,
    ) -> bool:
        """pending -> failed/cancelled. False if the transaction already left pending."""
        if status not in CLOSED_STATUSES:
            raise ValueError(f"Cannot close a transaction as {status!r}")
        result = await db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == transaction.id,
                PaymentTransaction.status == "pending",
            )
            .values(status=status, failure_reason=reason, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.refresh(transaction)
        return result.rowcount == 1

    async def list_transactions(
        self, db: AsyncSession, user_id: str, limit: int = 10
    ) -> Sequence[PaymentTransaction]:
        result = await db.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.user_id == user_id)
            .order_by(PaymentTransaction.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()

    # --- XP redemptions ---

    async def add_redemption(self, db: AsyncSession, redemption: XPRedemption) -> XPRedemption:
        db.add(redemption)
        await db.flush()
        return redemption

    async def list_redemptions(self, db: AsyncSession, user_id: str) -> Sequence[XPRedemption]:
        result = await db.execute(
            select(XPRedemption)
            .where(XPRedemption.user_id == user_id)
            .order_by(XPRedemption.created_at.desc())
        )
        return result.scalars().all()
