"""Pydantic v2 request/response schemas for payment endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Request schemas ---


class InitiatePaymentRequest(BaseModel):
    """Request to start paying for a badge."""

    badge_type: str = Field(..., min_length=1, max_length=20)
    gateway: str = Field(..., min_length=1, max_length=20)
    payer_reference: str = Field(..., min_length=1, max_length=64)  # mobile number or card descriptor
    card_type: str | None = Field(None, pattern="^(debit|credit)$")
    card_last_four: str | None = Field(None, pattern=r"^\d{4}$")


class ConfirmPaymentRequest(BaseModel):
    """Manual confirmation of a pending payment."""

    gateway_transaction_id: str | None = Field(None, max_length=255)


# --- Response schemas ---


class TransactionResponse(BaseModel):
    """A stored payment transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    subscription_id: str | None
    amount: Decimal
    currency: str
    gateway: str
    gateway_transaction_id: str | None
    status: str
    payer_reference: str
    card_type: str | None
    card_last_four: str | None
    badge_type: str
    failure_reason: str | None
    created_at: datetime
    updated_at: datetime


class RedirectResponse(BaseModel):
    url: str
    method: str
    params: dict[str, Any]


class InitiatePaymentResponse(BaseModel):
    """The pending transaction plus where to send the user."""

    transaction: TransactionResponse
    redirect: RedirectResponse


class TransactionsListResponse(BaseModel):
    transactions: list[TransactionResponse]


class WebhookResponse(BaseModel):
    status: str  # processed, already_processed, failed
    transaction_id: str | None = None
