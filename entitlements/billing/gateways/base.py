"""Gateway adapter contract shared by every payment provider.

An adapter translates a canonical :class:`PaymentTransaction` into the
provider's redirect payload, parses the provider's webhook body back into a
canonical :class:`WebhookResult`, and confirms a payment out of band with
:meth:`GatewayAdapter.verify`. Credentials come from settings; nothing
provider-secret lives in code.
"""

import asyncio
import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from entitlements.config import Settings
from entitlements.errors import (
    GatewayError,
    GatewayRejectedError,
    GatewayTimeoutError,
    InvalidSignatureError,
    MalformedWebhookError,
)
from entitlements.models.transaction import PaymentTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayCredentials:
    """Per-provider endpoint and secrets, injected from configuration."""

    base_url: str
    merchant_id: str
    secret_key: str
    webhook_secret: str
    success_url: str
    failure_url: str
    cancel_url: str

    @property
    def live(self) -> bool:
        """Without a secret key the adapter runs in sandbox mode."""
        return bool(self.secret_key)

    @classmethod
    def from_settings(cls, settings: Settings, prefix: str) -> "GatewayCredentials":
        return cls(
            base_url=getattr(settings, f"{prefix}_base_url").rstrip("/"),
            merchant_id=getattr(settings, f"{prefix}_merchant_id"),
            secret_key=getattr(settings, f"{prefix}_secret_key"),
            webhook_secret=getattr(settings, f"{prefix}_webhook_secret"),
            success_url=settings.payment_success_url,
            failure_url=settings.payment_failure_url,
            cancel_url=settings.payment_cancel_url,
        )


class RedirectPayload(BaseModel):
    """Where and how to send the user to complete payment."""

    url: str
    method: Literal["GET", "POST"]
    params: dict[str, Any]


class WebhookResult(BaseModel):
    """Canonical outcome of a provider callback."""

    gateway: str
    success: bool
    transaction_id: str
    gateway_transaction_id: str | None = None
    provider_status: str


def format_amount(amount: Decimal) -> str:
    return f"{Decimal(amount):.2f}"


class GatewayAdapter(ABC):
    """Base class for provider adapters."""

    key: str
    display_name: str
    webhook_model: type[BaseModel]

    def __init__(
        self,
        credentials: GatewayCredentials,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.credentials = credentials
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # --- Redirect ---

    @abstractmethod
    async def build_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        """Build the provider redirect for a pending transaction."""

    # --- Webhooks ---

    def parse_webhook(self, raw: Mapping[str, Any]) -> WebhookResult:
        """Validate a webhook body against this provider's shape."""
        try:
            payload = self.webhook_model.model_validate(raw)
        except PydanticValidationError as e:
            raise MalformedWebhookError(
                f"Malformed {self.display_name} webhook: {e.error_count()} invalid field(s)"
            ) from e
        return self._to_result(payload)

    @abstractmethod
    def _to_result(self, payload: Any) -> WebhookResult: ...

    def verify_signature(self, body: bytes, signature: str | None) -> None:
        """Check the webhook HMAC when a webhook secret is configured."""
        secret = self.credentials.webhook_secret
        if not secret:
            return
        expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        if not signature or not hmac.compare_digest(expected, signature.strip().lower()):
            raise InvalidSignatureError(f"Invalid {self.display_name} webhook signature")

    # --- Verification ---

    async def verify(self, transaction_id: str, gateway_transaction_id: str | None) -> bool:
        """Ask the provider whether the payment really went through.

        Raises GatewayTimeoutError when the provider stays unreachable after
        every retry, GatewayRejectedError when it refuses the query.
        """
        if not self.credentials.live:
            logger.debug(
                "%s has no credentials, treating %s as verified (sandbox)",
                self.display_name,
                transaction_id,
            )
            return True

        request = self._verify_request(transaction_id, gateway_transaction_id)
        if request is None:
            logger.warning(
                "%s verification of %s needs a provider transaction id", self.display_name, transaction_id
            )
            return False

        method, url, kwargs = request
        response = await self._request_with_retry(method, url, **kwargs)
        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(f"{self.display_name} returned an unreadable verification response") from e

        verified = self._is_verified(body, transaction_id)
        logger.info("%s verification of %s: %s", self.display_name, transaction_id, verified)
        return verified

    @abstractmethod
    def _verify_request(
        self, transaction_id: str, gateway_transaction_id: str | None
    ) -> tuple[str, str, dict[str, Any]] | None:
        """Return ``(method, url, request kwargs)`` for the status query."""

    @abstractmethod
    def _is_verified(self, body: dict[str, Any], transaction_id: str) -> bool: ...

    async def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transport errors and 5xx with exponential backoff."""
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                response = await self.http_client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                logger.warning(
                    "%s request failed (attempt %d/%d): %s", self.display_name, attempt + 1, attempts, e
                )
            else:
                if response.status_code >= 500:
                    logger.warning(
                        "%s returned %d (attempt %d/%d)",
                        self.display_name,
                        response.status_code,
                        attempt + 1,
                        attempts,
                    )
                elif response.status_code >= 400:
                    raise GatewayRejectedError(
                        f"{self.display_name} rejected the request ({response.status_code})"
                    )
                else:
                    return response

            if attempt < attempts - 1:
                await asyncio.sleep(self.backoff_seconds * (2**attempt))

        raise GatewayTimeoutError(f"{self.display_name} did not respond after {attempts} attempts")

    # --- Helpers ---

    def sign(self, *parts: str) -> str:
        """HMAC-SHA256 over ``|``-joined parts, keyed by the merchant secret."""
        message = "|".join(parts).encode()
        return hmac.new(self.credentials.secret_key.encode(), message, hashlib.sha256).hexdigest()

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credentials.secret_key}"}
