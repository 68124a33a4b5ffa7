"""Error taxonomy for the entitlement ledger.

Business errors (validation, not found, conflict, unsupported gateway, gateway
outcome) are returned to callers as :class:`OperationResult` values or mapped
to HTTP responses by the routers. :class:`PersistenceError` is the only
infrastructure failure and is never converted into a business result.
"""

from dataclasses import dataclass


class EntitlementError(Exception):
    """Base class for all ledger errors."""

    code = "entitlement_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


# --- Validation ---


class ValidationError(EntitlementError):
    code = "validation_error"


class UnknownBadgeTypeError(ValidationError):
    code = "unknown_badge_type"

    def __init__(self, badge_type: str):
        super().__init__(f"Unknown badge type: {badge_type}")
        self.badge_type = badge_type


class NotRedeemableError(ValidationError):
    code = "not_redeemable"

    def __init__(self, badge_type: str):
        super().__init__("This badge cannot be redeemed with XP")
        self.badge_type = badge_type


class InsufficientXPError(ValidationError):
    code = "insufficient_xp"

    def __init__(self, required: int, available: int):
        super().__init__(f"Insufficient XP. Required: {required}, Available: {available}")
        self.required = required
        self.available = available


class MalformedWebhookError(ValidationError):
    code = "malformed_webhook"


class InvalidSignatureError(ValidationError):
    code = "invalid_signature"


# --- Not found ---


class NotFoundError(EntitlementError):
    code = "not_found"


class TransactionNotFoundError(NotFoundError):
    code = "transaction_not_found"

    def __init__(self, transaction_id: str):
        super().__init__("Transaction not found")
        self.transaction_id = transaction_id


# --- Conflict ---


class ConflictError(EntitlementError):
    code = "conflict"


class TrialAlreadyUsedError(ConflictError):
    code = "trial_already_used"

    def __init__(self, user_id: str):
        super().__init__("Trial already used")
        self.user_id = user_id


class AlreadyProcessedError(ConflictError):
    code = "already_processed"

    def __init__(self, transaction_id: str, status: str):
        super().__init__(f"Transaction already processed (status: {status})")
        self.transaction_id = transaction_id
        self.status = status


# --- Gateways ---


class UnsupportedGatewayError(EntitlementError):
    code = "unsupported_gateway"

    def __init__(self, gateway: str):
        super().__init__(f"Unsupported payment gateway: {gateway}")
        self.gateway = gateway


class GatewayError(EntitlementError):
    code = "gateway_error"


class GatewayTimeoutError(GatewayError):
    """Transient failure that survived every retry."""

    code = "gateway_timeout"


class GatewayRejectedError(GatewayError):
    """The provider declined the payment. Terminal, never retried."""

    code = "gateway_rejected"


# --- Infrastructure ---


class PersistenceError(Exception):
    """A multi-record write could not be committed; nothing was persisted."""


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a ledger operation that can fail for business reasons."""

    success: bool
    error: str | None = None
    error_code: str | None = None
    subscription_id: str | None = None
    transaction_id: str | None = None

    @classmethod
    def ok(
        cls, *, subscription_id: str | None = None, transaction_id: str | None = None
    ) -> "OperationResult":
        return cls(success=True, subscription_id=subscription_id, transaction_id=transaction_id)

    @classmethod
    def fail(cls, exc: EntitlementError, *, transaction_id: str | None = None) -> "OperationResult":
        return cls(success=False, error=exc.detail, error_code=exc.code, transaction_id=transaction_id)
