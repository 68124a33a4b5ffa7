"""Pydantic v2 schemas for admin statistics."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class SubscriptionStatsResponse(BaseModel):
    """Ledger-wide revenue and usage statistics."""

    model_config = ConfigDict(from_attributes=True)

    total_subscriptions: int
    active_subscriptions: int
    total_revenue: Decimal
    revenue_by_gateway: dict[str, Decimal]
    subscriptions_by_badge: dict[str, int]
    trial_conversions: int  # percentage
    xp_redemptions: int
    churn_rate: int  # percentage
    average_revenue_per_user: int


class SweepResponse(BaseModel):
    expired: int
    trial_ending: int
