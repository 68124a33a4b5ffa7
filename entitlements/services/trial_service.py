"""Trial activation — one free trial subscription per user, ever."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from entitlements.billing.plans import get_plan
from entitlements.database import utcnow
from entitlements.errors import TrialAlreadyUsedError
from entitlements.models.subscription import UserSubscription
from entitlements.notifications import (
    EntitlementEvent,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    emit,
)
from entitlements.services.store import EntitlementStore

logger = logging.getLogger(__name__)


class TrialActivator:
    def __init__(
        self,
        store: EntitlementStore,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.clock = clock

    async def activate_trial(self, user_id: str) -> bool:
        """Grant the user's trial. Returns False if it was already consumed.

        The registry marker and the trial subscription are written in one
        unit of work. A concurrent activation that loses the race on the
        registry's primary key observes ``False`` rather than an error.
        """
        plan = get_plan("trial")

        async with self.store.locks.hold(user_id):
            try:
                async with self.store.unit_of_work() as db:
                    if await self.store.has_trial(db, user_id):
                        logger.info("Trial already used by user %s", user_id)
                        return False

                    await self.store.register_trial(db, user_id)

                    now = self.clock()
                    subscription = await self.store.add_subscription(
                        db,
                        UserSubscription(
                            user_id=user_id,
                            badge_type=plan.id,
                            status="trial",
                            start_date=now,
                            end_date=now + timedelta(days=plan.duration_days),
                            is_trial_user=True,
                            redemption_method="payment",
                            auto_renew=False,
                        ),
                    )
            except TrialAlreadyUsedError:
                logger.info("Concurrent trial activation for user %s lost the race", user_id)
                return False

        logger.info("Activated trial subscription %s for user %s", subscription.id, user_id)
        await emit(
            self.dispatcher,
            EntitlementEvent(type="trial_started", user_id=user_id, variables={"days": plan.duration_days}),
        )
        return True
