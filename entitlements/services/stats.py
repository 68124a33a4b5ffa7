"""Subscription statistics computed on demand from the ledger."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select

from entitlements.models.subscription import UserSubscription
from entitlements.models.transaction import PaymentTransaction
from entitlements.models.xp_redemption import XPRedemption
from entitlements.services.store import EntitlementStore


@dataclass(frozen=True)
class SubscriptionStats:
    total_subscriptions: int
    active_subscriptions: int
    total_revenue: Decimal
    revenue_by_gateway: dict[str, Decimal] = field(default_factory=dict)
    subscriptions_by_badge: dict[str, int] = field(default_factory=dict)
    trial_conversions: int = 0  # percentage
    xp_redemptions: int = 0
    churn_rate: int = 0  # percentage
    average_revenue_per_user: int = 0


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _percentage(part: int, whole: int) -> int:
    if whole == 0:
        return 0
    return _round_half_up(Decimal(part * 100) / Decimal(whole))


class StatsAggregator:
    def __init__(self, store: EntitlementStore) -> None:
        self.store = store

    async def compute_stats(self) -> SubscriptionStats:
        async with self.store.unit_of_work() as db:
            total_subscriptions = (
                await db.execute(select(func.count()).select_from(UserSubscription))
            ).scalar_one()

            active_by_badge = {
                badge: count
                for badge, count in (
                    await db.execute(
                        select(UserSubscription.badge_type, func.count())
                        .where(UserSubscription.status == "active")
                        .group_by(UserSubscription.badge_type)
                    )
                ).all()
            }

            # Total revenue is the sum of the per-gateway sums, so the two always agree
            revenue_by_gateway = {
                gateway: Decimal(amount or 0)
                for gateway, amount in (
                    await db.execute(
                        select(PaymentTransaction.gateway, func.sum(PaymentTransaction.amount))
                        .where(PaymentTransaction.status == "completed")
                        .group_by(PaymentTransaction.gateway)
                    )
                ).all()
            }
            total_revenue = sum(revenue_by_gateway.values(), Decimal("0"))

            paying_users = (
                await db.execute(
                    select(func.count(func.distinct(PaymentTransaction.user_id))).where(
                        PaymentTransaction.status == "completed"
                    )
                )
            ).scalar_one()

            xp_redemptions = (
                await db.execute(select(func.count()).select_from(XPRedemption))
            ).scalar_one()

            # Users whose first trial was followed by a paid, non-trial subscription
            first_trial = (
                select(
                    UserSubscription.user_id.label("user_id"),
                    func.min(UserSubscription.created_at).label("trial_at"),
                )
                .where(UserSubscription.is_trial_user.is_(True))
                .group_by(UserSubscription.user_id)
                .subquery()
            )
            trial_users = (
                await db.execute(select(func.count()).select_from(first_trial))
            ).scalar_one()
            converted_users = (
                await db.execute(
                    select(func.count(func.distinct(UserSubscription.user_id)))
                    .join(first_trial, first_trial.c.user_id == UserSubscription.user_id)
                    .where(
                        UserSubscription.is_trial_user.is_(False),
                        UserSubscription.redemption_method == "payment",
                        UserSubscription.created_at > first_trial.c.trial_at,
                    )
                )
            ).scalar_one()

            paid_subscriptions = (
                await db.execute(
                    select(func.count())
                    .select_from(UserSubscription)
                    .where(UserSubscription.is_trial_user.is_(False))
                )
            ).scalar_one()
            churned_subscriptions = (
                await db.execute(
                    select(func.count())
                    .select_from(UserSubscription)
                    .where(
                        UserSubscription.is_trial_user.is_(False),
                        UserSubscription.status.in_(("expired", "cancelled")),
                    )
                )
            ).scalar_one()

        average = Decimal("0")
        if paying_users:
            average = total_revenue / Decimal(paying_users)

        return SubscriptionStats(
            total_subscriptions=total_subscriptions,
            active_subscriptions=sum(active_by_badge.values()),
            total_revenue=total_revenue,
            revenue_by_gateway=revenue_by_gateway,
            subscriptions_by_badge=active_by_badge,
            trial_conversions=_percentage(converted_users, trial_users),
            xp_redemptions=xp_redemptions,
            churn_rate=_percentage(churned_subscriptions, paid_subscriptions),
            average_revenue_per_user=_round_half_up(average),
        )
