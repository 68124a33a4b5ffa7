"""Tests for the gateway webhook endpoint."""

import hashlib
import hmac
import json

import httpx
import pytest
from httpx import AsyncClient

from entitlements.billing.gateways import BkashAdapter, GatewayCredentials


async def _pending_transaction(service, gateway: str = "bkash") -> str:
    tx = await service.initiate_payment("user-1", "silver", gateway, "01700000000")
    return tx.id


def _bkash_body(transaction_id: str, status: str = "Completed") -> dict:
    return {"transactionStatus": status, "merchantInvoiceNumber": transaction_id, "paymentID": "BK-9"}


def _credentials(**overrides) -> GatewayCredentials:
    values = {
        "base_url": "https://bkash.test",
        "merchant_id": "M-1",
        "secret_key": "",
        "webhook_secret": "",
        "success_url": "https://app.test/ok",
        "failure_url": "https://app.test/fail",
        "cancel_url": "https://app.test/cancel",
    }
    values.update(overrides)
    return GatewayCredentials(**values)


class TestWebhook:
    """Test POST /api/v1/webhooks/{gateway}."""

    @pytest.mark.asyncio
    async def test_completed_payment_processed(self, client: AsyncClient, service, auth_headers):
        transaction_id = await _pending_transaction(service)

        response = await client.post("/api/v1/webhooks/bkash", json=_bkash_body(transaction_id))
        assert response.status_code == 200
        assert response.json() == {"status": "processed", "transaction_id": transaction_id}

        response = await client.get("/api/v1/subscriptions/me/badge", headers=auth_headers)
        assert response.json() == {"badge_type": "silver"}

    @pytest.mark.asyncio
    async def test_replay_acknowledged_without_effect(self, client: AsyncClient, service):
        transaction_id = await _pending_transaction(service)
        await client.post("/api/v1/webhooks/bkash", json=_bkash_body(transaction_id))

        response = await client.post("/api/v1/webhooks/bkash", json=_bkash_body(transaction_id))
        assert response.status_code == 200
        assert response.json()["status"] == "already_processed"

        stats = await service.get_subscription_stats()
        assert stats.total_subscriptions == 1

    @pytest.mark.asyncio
    async def test_declined_payment(self, client: AsyncClient, service):
        transaction_id = await _pending_transaction(service)

        response = await client.post(
            "/api/v1/webhooks/bkash", json=_bkash_body(transaction_id, status="Cancelled")
        )
        assert response.status_code == 200
        assert response.json() == {"status": "failed", "transaction_id": transaction_id}

    @pytest.mark.asyncio
    async def test_other_gateways(self, client: AsyncClient, service):
        nagad_tx = await _pending_transaction(service, "nagad")
        rocket_tx = await _pending_transaction(service, "rocket")

        response = await client.post(
            "/api/v1/webhooks/nagad",
            json={"status": "Success", "orderId": nagad_tx, "payment_ref_id": "NG-1"},
        )
        assert response.json()["status"] == "processed"

        response = await client.post(
            "/api/v1/webhooks/rocket",
            json={"status": "SUCCESS", "transaction_id": rocket_tx, "rocket_transaction_id": "RK-1"},
        )
        assert response.json()["status"] == "processed"

    @pytest.mark.asyncio
    async def test_unknown_gateway(self, client: AsyncClient):
        response = await client.post("/api/v1/webhooks/paypal", json={"id": "x"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_payload(self, client: AsyncClient):
        response = await client.post("/api/v1/webhooks/bkash", json={"transactionStatus": "Completed"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "malformed_webhook"

    @pytest.mark.asyncio
    async def test_body_not_json(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/webhooks/bkash", content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_json_array_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/webhooks/bkash", json=[1, 2])
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, client: AsyncClient):
        response = await client.post("/api/v1/webhooks/bkash", json=_bkash_body("missing"))
        assert response.status_code == 404


class TestWebhookSignature:
    @pytest.mark.asyncio
    async def test_signed_webhook(self, client: AsyncClient, service):
        service.gateways.register(BkashAdapter(_credentials(webhook_secret="whsec")))
        transaction_id = await _pending_transaction(service)
        body = json.dumps(_bkash_body(transaction_id)).encode()
        signature = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()

        response = await client.post(
            "/api/v1/webhooks/bkash",
            content=body,
            headers={"Content-Type": "application/json", "X-Signature": signature},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "processed"

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, client: AsyncClient, service):
        service.gateways.register(BkashAdapter(_credentials(webhook_secret="whsec")))
        transaction_id = await _pending_transaction(service)

        response = await client.post(
            "/api/v1/webhooks/bkash",
            json=_bkash_body(transaction_id),
            headers={"X-Signature": "forged"},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_signature"

        stored = await service.payments.get_transaction(transaction_id)
        assert stored.status == "pending"


class TestProviderOutage:
    @pytest.mark.asyncio
    async def test_verification_timeout_returns_503(self, client: AsyncClient, service):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service.gateways.register(
            BkashAdapter(_credentials(secret_key="live-key"), http_client, max_retries=1, backoff_seconds=0)
        )
        transaction_id = await _pending_transaction(service)

        response = await client.post("/api/v1/webhooks/bkash", json=_bkash_body(transaction_id))
        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "gateway_timeout"

        stored = await service.payments.get_transaction(transaction_id)
        assert stored.status == "pending"
        await http_client.aclose()
