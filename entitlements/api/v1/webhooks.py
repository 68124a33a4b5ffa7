"""Gateway webhook endpoint — receives payment outcomes from providers."""

import json
import logging

from fastapi import APIRouter, Depends, Request

from entitlements.api.deps import get_subscription_service
from entitlements.api.errors import from_error, http_exception
from entitlements.errors import EntitlementError, MalformedWebhookError
from entitlements.schemas.payment import WebhookResponse
from entitlements.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

# Outcomes the provider should not redeliver
_SETTLED_CODES = {
    "already_processed": "already_processed",
    "gateway_rejected": "failed",
}


@router.post("/{gateway}", response_model=WebhookResponse)
async def gateway_webhook(
    gateway: str,
    request: Request,
    service: SubscriptionService = Depends(get_subscription_service),
) -> WebhookResponse:
    """Receive a payment callback from ``gateway``."""
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    signature = request.headers.get("x-signature")

    # 2. Verify signature and decode
    try:
        adapter = service.gateways.get(gateway)
        adapter.verify_signature(payload, signature)
        try:
            raw = json.loads(payload)
        except ValueError as e:
            raise MalformedWebhookError("Webhook body is not valid JSON") from e
        if not isinstance(raw, dict):
            raise MalformedWebhookError("Webhook body must be a JSON object")
    except EntitlementError as e:
        logger.warning("Rejected %s webhook: %s", gateway, e.detail)
        raise from_error(e) from e

    # 3. Apply to the ledger
    result = await service.process_webhook(gateway, raw)
    if result.success:
        return WebhookResponse(status="processed", transaction_id=result.transaction_id)

    settled = _SETTLED_CODES.get(result.error_code or "")
    if settled is not None:
        logger.info("Webhook from %s settled as %s: %s", gateway, settled, result.error)
        return WebhookResponse(status=settled, transaction_id=result.transaction_id)

    # Anything else (timeouts included) is answered with an error so the provider retries
    raise http_exception(result.error_code, result.error)
