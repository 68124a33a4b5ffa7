"""Card network adapter — Visa, Mastercard and Amex through a hosted charge API."""

from typing import Any

from pydantic import BaseModel, Field

from entitlements.billing.gateways.base import (
    GatewayAdapter,
    GatewayCredentials,
    RedirectPayload,
    WebhookResult,
    format_amount,
)
from entitlements.models.transaction import PaymentTransaction

CARD_NETWORKS = {
    "visa": "Visa",
    "mastercard": "Mastercard",
    "amex": "American Express",
}

STATEMENT_DESCRIPTOR = "ANIME_VERSE"


class ChargeReference(BaseModel):
    transaction: str = Field(min_length=1)
    order: str | None = None


class CardChargeWebhook(BaseModel):
    id: str = Field(min_length=1)
    status: str
    reference: ChargeReference


class CardAdapter(GatewayAdapter):
    """One instance per card network; all share the charge API credentials."""

    webhook_model = CardChargeWebhook

    def __init__(self, network: str, credentials: GatewayCredentials, *args, **kwargs) -> None:
        if network not in CARD_NETWORKS:
            raise ValueError(f"Unknown card network: {network}")
        super().__init__(credentials, *args, **kwargs)
        self.key = network
        self.display_name = CARD_NETWORKS[network]

    async def build_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        params: dict[str, Any] = {
            "amount": format_amount(transaction.amount),
            "currency": transaction.currency,
            "threeDSecure": True,
            "save_card": False,
            "description": f"{transaction.badge_type} Badge - Anime Verse",
            "statement_descriptor": STATEMENT_DESCRIPTOR,
            "reference": {"transaction": transaction.id, "order": transaction.id},
            "metadata": {
                "network": self.key,
                "card_type": transaction.card_type,
                "card_last_four": transaction.card_last_four,
            },
            "redirect": {"url": self.credentials.success_url},
        }
        return RedirectPayload(
            url=f"{self.credentials.base_url}/charges",
            method="POST",
            params=params,
        )

    def _to_result(self, payload: CardChargeWebhook) -> WebhookResult:
        return WebhookResult(
            gateway=self.key,
            success=payload.status == "CAPTURED",
            transaction_id=payload.reference.transaction,
            gateway_transaction_id=payload.id,
            provider_status=payload.status,
        )

    def _verify_request(self, transaction_id, gateway_transaction_id):
        if not gateway_transaction_id:
            return None
        return (
            "GET",
            f"{self.credentials.base_url}/charges/{gateway_transaction_id}",
            {"headers": self._auth_headers()},
        )

    def _is_verified(self, body: dict[str, Any], transaction_id: str) -> bool:
        reference = body.get("reference") or {}
        return body.get("status") == "CAPTURED" and reference.get("transaction") == transaction_id
