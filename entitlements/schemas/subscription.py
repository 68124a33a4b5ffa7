"""Pydantic v2 request/response schemas for badge and subscription endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# --- Request schemas ---


class RedeemRequest(BaseModel):
    """Request to redeem a badge with XP."""

    badge_type: str = Field(..., min_length=1, max_length=20)
    xp_balance: int = Field(..., ge=0)


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Badge plan details for display."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    duration_days: int
    price: Decimal
    xp_threshold: int | None
    features: list[str]
    popular: bool


class PlansListResponse(BaseModel):
    """All badge plans."""

    plans: list[PlanResponse]


class SubscriptionResponse(BaseModel):
    """A stored subscription record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    badge_type: str
    status: str
    start_date: datetime
    end_date: datetime
    is_trial_user: bool
    redemption_method: str
    payment_method: str | None
    transaction_id: str | None
    xp_spent: int | None
    auto_renew: bool
    created_at: datetime
    updated_at: datetime


class CurrentSubscriptionResponse(BaseModel):
    """The caller's effective badge and the subscription behind it."""

    badge_type: str
    subscription: SubscriptionResponse | None


class BadgeResponse(BaseModel):
    badge_type: str


class TrialResponse(BaseModel):
    """Result of a trial activation attempt."""

    activated: bool
    badge_type: str


class RedemptionResponse(BaseModel):
    """A stored XP redemption record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    subscription_id: str
    badge_type: str
    xp_spent: int
    xp_balance_before: int
    xp_balance_after: int
    created_at: datetime


class OperationResponse(BaseModel):
    """Outcome of a ledger operation."""

    success: bool
    error: str | None = None
    error_code: str | None = None
    subscription_id: str | None = None
    transaction_id: str | None = None
