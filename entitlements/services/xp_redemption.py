"""XP redemption — convert a user's XP into a badge subscription."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from entitlements.billing.plans import BadgePlan, get_plan
from entitlements.database import utcnow
from entitlements.errors import (
    EntitlementError,
    InsufficientXPError,
    NotRedeemableError,
    OperationResult,
    PersistenceError,
)
from entitlements.models.subscription import UserSubscription
from entitlements.models.xp_redemption import XPRedemption
from entitlements.notifications import (
    EntitlementEvent,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    emit,
)
from entitlements.services.store import EntitlementStore
from entitlements.services.xp_ledger import XPLedger

logger = logging.getLogger(__name__)


def _check_threshold(plan: BadgePlan, xp_balance: int) -> int:
    """Return the XP cost of ``plan`` or raise if it cannot be redeemed."""
    if plan.xp_threshold is None:
        raise NotRedeemableError(plan.id)
    if xp_balance < plan.xp_threshold:
        raise InsufficientXPError(required=plan.xp_threshold, available=xp_balance)
    return plan.xp_threshold


class XPRedemptionEngine:
    """Validates XP thresholds and records redemptions.

    Without an :class:`XPLedger` the caller-supplied balance is trusted. With
    one, the authoritative balance is re-read and debited while the user's
    lock is held and before the ledger rows commit, so two concurrent
    redemptions cannot both spend the same XP. If those rows then fail to
    commit, the debit is reversed with a credit under the same reference.
    """

    def __init__(
        self,
        store: EntitlementStore,
        dispatcher: NotificationDispatcher | None = None,
        xp_ledger: XPLedger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.xp_ledger = xp_ledger
        self.clock = clock

    def can_redeem(self, user_id: str, badge_type: str, xp_balance: int) -> bool:
        plan = get_plan(badge_type)
        return plan.xp_threshold is not None and xp_balance >= plan.xp_threshold

    async def redeem(self, user_id: str, badge_type: str, xp_balance: int) -> OperationResult:
        try:
            plan = get_plan(badge_type)
            # Cheap pre-check against the caller's view of the balance
            _check_threshold(plan, xp_balance)

            async with self.store.locks.hold(user_id):
                debited: tuple[int, str] | None = None
                try:
                    async with self.store.unit_of_work() as db:
                        balance = xp_balance
                        if self.xp_ledger is not None:
                            balance = await self.xp_ledger.get_balance(user_id)
                        cost = _check_threshold(plan, balance)

                        now = self.clock()
                        subscription = await self.store.add_subscription(
                            db,
                            UserSubscription(
                                user_id=user_id,
                                badge_type=plan.id,
                                status="active",
                                start_date=now,
                                end_date=now + timedelta(days=plan.duration_days),
                                is_trial_user=False,
                                redemption_method="xp_redemption",
                                xp_spent=cost,
                                auto_renew=False,
                            ),
                        )
                        redemption = await self.store.add_redemption(
                            db,
                            XPRedemption(
                                user_id=user_id,
                                subscription_id=subscription.id,
                                badge_type=plan.id,
                                xp_spent=cost,
                                xp_balance_before=balance,
                                xp_balance_after=balance - cost,
                            ),
                        )

                        if self.xp_ledger is not None:
                            await self.xp_ledger.debit(user_id, cost, reference=redemption.id)
                            debited = (cost, redemption.id)
                except PersistenceError:
                    if debited is not None:
                        await self._reverse_debit(user_id, *debited)
                    raise
        except EntitlementError as e:
            logger.warning("XP redemption of %s for user %s rejected: %s", badge_type, user_id, e.detail)
            return OperationResult.fail(e)

        logger.info(
            "User %s redeemed %s XP for %s (subscription %s)",
            user_id,
            cost,
            plan.id,
            subscription.id,
        )
        await emit(
            self.dispatcher,
            EntitlementEvent(
                type="subscription_activated",
                user_id=user_id,
                variables={"badge_type": plan.id},
            ),
        )
        return OperationResult.ok(subscription_id=subscription.id)

    async def _reverse_debit(self, user_id: str, amount: int, reference: str) -> None:
        """Credit back XP debited for records that never committed."""
        try:
            await self.xp_ledger.credit(user_id, amount, reference=reference)
        except Exception:
            # The commit failure is still raised; this needs manual reconciliation
            logger.exception(
                "Could not return %s XP to user %s for redemption %s", amount, user_id, reference
            )
            return
        logger.warning(
            "Returned %s XP to user %s after redemption %s failed to commit", amount, user_id, reference
        )
