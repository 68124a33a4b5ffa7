"""Payment endpoints — initiate, list, cancel and (admin) confirm."""

import logging

from fastapi import APIRouter, Depends, Query, status

from entitlements.api.deps import (
    CurrentUser,
    get_admin_user,
    get_current_user,
    get_subscription_service,
)
from entitlements.api.errors import from_error, raise_for_result
from entitlements.errors import EntitlementError
from entitlements.schemas.payment import (
    ConfirmPaymentRequest,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    RedirectResponse,
    TransactionResponse,
    TransactionsListResponse,
)
from entitlements.schemas.subscription import OperationResponse
from entitlements.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post("", response_model=InitiatePaymentResponse, status_code=status.HTTP_201_CREATED)
async def initiate_payment(
    body: InitiatePaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> InitiatePaymentResponse:
    """Record a pending payment and return the gateway redirect."""
    try:
        transaction = await service.initiate_payment(
            current_user.id,
            body.badge_type,
            body.gateway,
            body.payer_reference,
            card_type=body.card_type,
            card_last_four=body.card_last_four,
        )
        redirect = await service.build_payment_redirect(transaction)
    except EntitlementError as e:
        raise from_error(e) from e

    return InitiatePaymentResponse(
        transaction=TransactionResponse.model_validate(transaction),
        redirect=RedirectResponse(**redirect.model_dump()),
    )


@router.get("", response_model=TransactionsListResponse)
async def list_payments(
    limit: int = Query(10, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> TransactionsListResponse:
    """The caller's transactions, newest first."""
    transactions = await service.get_user_transactions(current_user.id, limit)
    return TransactionsListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions]
    )


@router.post("/{transaction_id}/cancel", response_model=OperationResponse)
async def cancel_payment(
    transaction_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> OperationResponse:
    result = await service.cancel_payment(transaction_id, user_id=current_user.id)
    raise_for_result(result)
    return OperationResponse(success=True, transaction_id=result.transaction_id)


@router.post("/{transaction_id}/confirm", response_model=OperationResponse)
async def confirm_payment(
    transaction_id: str,
    body: ConfirmPaymentRequest,
    admin: CurrentUser = Depends(get_admin_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> OperationResponse:
    """Settle a pending payment by hand (admin only)."""
    logger.info("Admin %s confirming transaction %s", admin.id, transaction_id)
    result = await service.confirm_payment(transaction_id, body.gateway_transaction_id)
    raise_for_result(result)
    return OperationResponse(
        success=True,
        subscription_id=result.subscription_id,
        transaction_id=result.transaction_id,
    )
