"""Badge catalog endpoints (public)."""

from fastapi import APIRouter, Query

from entitlements.billing.plans import list_plans, redeemable_plans
from entitlements.schemas.subscription import PlanResponse, PlansListResponse

router = APIRouter(prefix="/api/v1/badges", tags=["badges"])


@router.get("/plans", response_model=PlansListResponse)
async def get_plans() -> PlansListResponse:
    """List every badge plan in catalog order."""
    return PlansListResponse(plans=[PlanResponse.model_validate(p) for p in list_plans()])


@router.get("/redeemable", response_model=PlansListResponse)
async def get_redeemable_plans(xp: int = Query(..., ge=0)) -> PlansListResponse:
    """List the badges a balance of ``xp`` is enough to redeem."""
    return PlansListResponse(
        plans=[PlanResponse.model_validate(p) for p in redeemable_plans(xp)]
    )
