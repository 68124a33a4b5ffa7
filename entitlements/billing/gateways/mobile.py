"""Mobile financial service adapters — bKash, Nagad, Upay, Rocket."""

import json
import secrets
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, Field

from entitlements.billing.gateways.base import (
    GatewayAdapter,
    RedirectPayload,
    WebhookResult,
    format_amount,
)
from entitlements.database import utcnow
from entitlements.models.transaction import PaymentTransaction

NAGAD_BDT_CURRENCY_CODE = "050"

# --- Webhook bodies ---


class BkashWebhook(BaseModel):
    transactionStatus: str
    merchantInvoiceNumber: str = Field(min_length=1)
    paymentID: str | None = None


class NagadWebhook(BaseModel):
    status: str
    orderId: str = Field(min_length=1)
    payment_ref_id: str | None = None


class UpayWebhook(BaseModel):
    status: str
    invoice_no: str = Field(min_length=1)
    transaction_id: str | None = None


class RocketWebhook(BaseModel):
    status: str
    transaction_id: str = Field(min_length=1)
    rocket_transaction_id: str | None = None


# --- Adapters ---


class BkashAdapter(GatewayAdapter):
    key = "bkash"
    display_name = "bKash"
    webhook_model = BkashWebhook

    async def build_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        amount = format_amount(transaction.amount)
        params = {
            "merchantId": self.credentials.merchant_id,
            "amount": amount,
            "currency": transaction.currency,
            "intent": "sale",
            "merchantInvoiceNumber": transaction.id,
            "merchantAssociationInfo": json.dumps(
                {"badgeType": transaction.badge_type, "userId": transaction.user_id}
            ),
            "callbackURL": self.credentials.success_url,
        }
        params["signature"] = self.sign(transaction.id, amount, transaction.currency)
        return RedirectPayload(
            url=f"{self.credentials.base_url}/checkout/create?{urlencode(params)}",
            method="GET",
            params=params,
        )

    def _to_result(self, payload: BkashWebhook) -> WebhookResult:
        return WebhookResult(
            gateway=self.key,
            success=payload.transactionStatus == "Completed",
            transaction_id=payload.merchantInvoiceNumber,
            gateway_transaction_id=payload.paymentID,
            provider_status=payload.transactionStatus,
        )

    def _verify_request(self, transaction_id, gateway_transaction_id):
        if not gateway_transaction_id:
            return None
        return (
            "POST",
            f"{self.credentials.base_url}/checkout/payment/status",
            {
                "json": {"paymentID": gateway_transaction_id},
                "headers": {
                    "X-APP-Key": self.credentials.merchant_id,
                    **self._auth_headers(),
                },
            },
        )

    def _is_verified(self, body: dict[str, Any], transaction_id: str) -> bool:
        return (
            body.get("transactionStatus") == "Completed"
            and body.get("merchantInvoiceNumber") == transaction_id
        )


class NagadAdapter(GatewayAdapter):
    key = "nagad"
    display_name = "Nagad"
    webhook_model = NagadWebhook

    async def build_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        amount = format_amount(transaction.amount)
        timestamp = utcnow().strftime("%Y%m%d%H%M%S")
        params = {
            "merchantId": self.credentials.merchant_id,
            "orderId": transaction.id,
            "amount": amount,
            "currencyCode": NAGAD_BDT_CURRENCY_CODE,
            "challenge": secrets.token_hex(20),
            "timestamp": timestamp,
            "signature": self.sign(transaction.id, amount, timestamp),
        }
        return RedirectPayload(
            url=(
                f"{self.credentials.base_url}/check-out/initialize/"
                f"{self.credentials.merchant_id}/{transaction.id}"
            ),
            method="POST",
            params=params,
        )

    def _to_result(self, payload: NagadWebhook) -> WebhookResult:
        return WebhookResult(
            gateway=self.key,
            success=payload.status == "Success",
            transaction_id=payload.orderId,
            gateway_transaction_id=payload.payment_ref_id,
            provider_status=payload.status,
        )

    def _verify_request(self, transaction_id, gateway_transaction_id):
        if not gateway_transaction_id:
            return None
        return (
            "GET",
            f"{self.credentials.base_url}/verify/payment/{gateway_transaction_id}",
            {"headers": self._auth_headers()},
        )

    def _is_verified(self, body: dict[str, Any], transaction_id: str) -> bool:
        return body.get("status") == "Success" and body.get("orderId") == transaction_id


class UpayAdapter(GatewayAdapter):
    key = "upay"
    display_name = "Upay"
    webhook_model = UpayWebhook

    async def build_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        amount = format_amount(transaction.amount)
        params = {
            "merchant_id": self.credentials.merchant_id,
            "invoice_no": transaction.id,
            "amount": amount,
            "currency": transaction.currency,
            "success_url": self.credentials.success_url,
            "fail_url": self.credentials.failure_url,
            "cancel_url": self.credentials.cancel_url,
            "desc": f"Badge: {transaction.badge_type}",
            "cus_phone": transaction.payer_reference,
            "signature": self.sign(transaction.id, amount),
        }
        return RedirectPayload(
            url=f"{self.credentials.base_url}/payment/request",
            method="POST",
            params=params,
        )

    def _to_result(self, payload: UpayWebhook) -> WebhookResult:
        return WebhookResult(
            gateway=self.key,
            success=payload.status == "SUCCESSFUL",
            transaction_id=payload.invoice_no,
            gateway_transaction_id=payload.transaction_id,
            provider_status=payload.status,
        )

    def _verify_request(self, transaction_id, gateway_transaction_id):
        # Upay looks payments up by our invoice number
        return (
            "GET",
            f"{self.credentials.base_url}/payment/status/{transaction_id}",
            {"headers": self._auth_headers()},
        )

    def _is_verified(self, body: dict[str, Any], transaction_id: str) -> bool:
        return body.get("status") == "SUCCESSFUL" and body.get("invoice_no") == transaction_id


class RocketAdapter(GatewayAdapter):
    key = "rocket"
    display_name = "Rocket"
    webhook_model = RocketWebhook

    def __init__(self, *args, store_id: str = "anime_store", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.store_id = store_id

    async def build_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        amount = format_amount(transaction.amount)
        params = {
            "merchant_number": self.credentials.merchant_id,
            "transaction_id": transaction.id,
            "amount": amount,
            "callback_url": self.credentials.success_url,
            "mobile_number": transaction.payer_reference,
            "store_id": self.store_id,
            "description": f"{transaction.badge_type} Badge Subscription",
            "signature": self.sign(transaction.id, amount, self.store_id),
        }
        return RedirectPayload(
            url=f"{self.credentials.base_url}/payment/request",
            method="POST",
            params=params,
        )

    def _to_result(self, payload: RocketWebhook) -> WebhookResult:
        return WebhookResult(
            gateway=self.key,
            success=payload.status == "SUCCESS",
            transaction_id=payload.transaction_id,
            gateway_transaction_id=payload.rocket_transaction_id,
            provider_status=payload.status,
        )

    def _verify_request(self, transaction_id, gateway_transaction_id):
        if not gateway_transaction_id:
            return None
        return (
            "POST",
            f"{self.credentials.base_url}/payment/verify",
            {
                "json": {
                    "merchant_number": self.credentials.merchant_id,
                    "transaction_id": transaction_id,
                    "rocket_transaction_id": gateway_transaction_id,
                },
                "headers": self._auth_headers(),
            },
        )

    def _is_verified(self, body: dict[str, Any], transaction_id: str) -> bool:
        return body.get("status") == "SUCCESS" and body.get("transaction_id") == transaction_id
