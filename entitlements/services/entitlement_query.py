"""Entitlement queries — what a user holds right now.

Expiry is evaluated lazily: reading a user's current subscription flips it to
``expired`` when its end date has passed. :meth:`EntitlementQueryService.sweep`
does the same for every user and can run periodically, but reads never depend
on it having run.
"""

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta

from entitlements.config import settings
from entitlements.database import utcnow
from entitlements.models.subscription import UserSubscription
from entitlements.models.transaction import PaymentTransaction
from entitlements.models.xp_redemption import XPRedemption
from entitlements.notifications import (
    EntitlementEvent,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    emit,
)
from entitlements.services.store import EntitlementStore

logger = logging.getLogger(__name__)

FREE_BADGE = "free"


class EntitlementQueryService:
    def __init__(
        self,
        store: EntitlementStore,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.clock = clock

    async def get_current_subscription(self, user_id: str) -> UserSubscription | None:
        """Return the user's most recent subscription, expiring it if stale."""
        expired = False
        async with self.store.locks.hold(user_id):
            async with self.store.unit_of_work() as db:
                subscription = await self.store.latest_subscription(db, user_id)
                if subscription is None:
                    return None
                now = self.clock()
                if subscription.is_live and now > subscription.end_date:
                    expired = await self.store.expire_subscription(db, subscription, now)

        if expired:
            logger.info(
                "Subscription %s (%s) for user %s expired at %s",
                subscription.id,
                subscription.badge_type,
                user_id,
                subscription.end_date,
            )
            await emit(
                self.dispatcher,
                EntitlementEvent(
                    type="subscription_expired",
                    user_id=user_id,
                    variables={"badge_type": subscription.badge_type},
                ),
            )
        return subscription

    async def get_current_badge(self, user_id: str) -> str:
        subscription = await self.get_current_subscription(user_id)
        if subscription is None or not subscription.is_live:
            return FREE_BADGE
        return subscription.badge_type

    async def get_user_transactions(self, user_id: str, limit: int = 10) -> list[PaymentTransaction]:
        async with self.store.unit_of_work() as db:
            return list(await self.store.list_transactions(db, user_id, limit))

    async def get_user_redemptions(self, user_id: str) -> list[XPRedemption]:
        async with self.store.unit_of_work() as db:
            return list(await self.store.list_redemptions(db, user_id))

    async def sweep(self, now: datetime | None = None) -> dict[str, int]:
        """Expire stale subscriptions and warn trials that end soon.

        Returns counts of ``expired`` subscriptions and ``trial_ending``
        notices sent.
        """
        now = now or self.clock()

        async with self.store.unit_of_work() as db:
            stale = list(await self.store.stale_subscriptions(db, now))
            ending = list(
                await self.store.trials_ending(
                    db, now, now + timedelta(hours=settings.trial_ending_notice_hours)
                )
            )

        expired = 0
        for subscription in stale:
            async with self.store.locks.hold(subscription.user_id):
                async with self.store.unit_of_work() as db:
                    row = await self.store.get_subscription(db, subscription.id)
                    flipped = row is not None and await self.store.expire_subscription(db, row, now)
            if flipped:
                expired += 1
                await emit(
                    self.dispatcher,
                    EntitlementEvent(
                        type="subscription_expired",
                        user_id=subscription.user_id,
                        variables={"badge_type": subscription.badge_type},
                    ),
                )

        for subscription in ending:
            days_left = math.ceil((subscription.end_date - now) / timedelta(days=1))
            await emit(
                self.dispatcher,
                EntitlementEvent(
                    type="trial_ending",
                    user_id=subscription.user_id,
                    variables={"days": days_left},
                ),
            )

        logger.info("Sweep at %s: %d expired, %d trial notices", now, expired, len(ending))
        return {"expired": expired, "trial_ending": len(ending)}
