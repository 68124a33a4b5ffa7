"""Admin endpoints — ledger statistics and the expiry sweep."""

from fastapi import APIRouter, Depends

from entitlements.api.deps import CurrentUser, get_admin_user, get_subscription_service
from entitlements.schemas.stats import SubscriptionStatsResponse, SweepResponse
from entitlements.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/stats", response_model=SubscriptionStatsResponse)
async def get_stats(
    _admin: CurrentUser = Depends(get_admin_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionStatsResponse:
    stats = await service.get_subscription_stats()
    return SubscriptionStatsResponse.model_validate(stats)


@router.post("/sweep", response_model=SweepResponse)
async def sweep_subscriptions(
    _admin: CurrentUser = Depends(get_admin_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SweepResponse:
    """Expire lapsed subscriptions and send trial-ending notices."""
    return SweepResponse(**await service.sweep_subscriptions())
