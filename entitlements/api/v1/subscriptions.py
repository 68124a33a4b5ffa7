"""Subscription endpoints — current badge, trials and XP redemption."""

import logging

from fastapi import APIRouter, Depends, status

from entitlements.api.deps import CurrentUser, get_current_user, get_subscription_service
from entitlements.api.errors import raise_for_result
from entitlements.schemas.subscription import (
    BadgeResponse,
    CurrentSubscriptionResponse,
    OperationResponse,
    RedeemRequest,
    RedemptionResponse,
    SubscriptionResponse,
    TrialResponse,
)
from entitlements.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


@router.get("/me", response_model=CurrentSubscriptionResponse)
async def get_my_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> CurrentSubscriptionResponse:
    """Return the caller's most recent subscription and effective badge."""
    subscription = await service.get_user_subscription(current_user.id)
    if subscription is None or not subscription.is_live:
        badge_type = "free"
    else:
        badge_type = subscription.badge_type
    return CurrentSubscriptionResponse(
        badge_type=badge_type,
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
    )


@router.get("/me/badge", response_model=BadgeResponse)
async def get_my_badge(
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> BadgeResponse:
    return BadgeResponse(badge_type=await service.get_current_badge(current_user.id))


@router.post("/trial", response_model=TrialResponse)
async def activate_trial(
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> TrialResponse:
    """Start the one-time 7-day trial. ``activated`` is false if it was already used."""
    activated = await service.check_and_activate_trial(current_user.id)
    badge_type = await service.get_current_badge(current_user.id)
    return TrialResponse(activated=activated, badge_type=badge_type)


@router.get("/me/redemptions", response_model=list[RedemptionResponse])
async def list_my_redemptions(
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> list[RedemptionResponse]:
    redemptions = await service.get_user_redemptions(current_user.id)
    return [RedemptionResponse.model_validate(r) for r in redemptions]


@router.post("/redeem", response_model=OperationResponse, status_code=status.HTTP_201_CREATED)
async def redeem_with_xp(
    body: RedeemRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> OperationResponse:
    """Exchange XP for a badge."""
    result = await service.redeem_badge_with_xp(current_user.id, body.badge_type, body.xp_balance)
    raise_for_result(result)
    return OperationResponse(success=True, subscription_id=result.subscription_id)
