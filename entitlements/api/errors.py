"""Translate ledger errors into HTTP responses."""

from fastapi import HTTPException, status

from entitlements.errors import EntitlementError, OperationResult

STATUS_BY_CODE: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "unknown_badge_type": status.HTTP_400_BAD_REQUEST,
    "not_redeemable": status.HTTP_400_BAD_REQUEST,
    "insufficient_xp": status.HTTP_400_BAD_REQUEST,
    "malformed_webhook": status.HTTP_400_BAD_REQUEST,
    "invalid_signature": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "transaction_not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "trial_already_used": status.HTTP_409_CONFLICT,
    "already_processed": status.HTTP_409_CONFLICT,
    "unsupported_gateway": status.HTTP_404_NOT_FOUND,
    "gateway_error": status.HTTP_502_BAD_GATEWAY,
    "gateway_timeout": status.HTTP_503_SERVICE_UNAVAILABLE,
    "gateway_rejected": status.HTTP_402_PAYMENT_REQUIRED,
}


def http_exception(code: str | None, detail: str | None) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_CODE.get(code or "", status.HTTP_400_BAD_REQUEST),
        detail={"message": detail, "code": code},
    )


def from_error(exc: EntitlementError) -> HTTPException:
    return http_exception(exc.code, exc.detail)


def raise_for_result(result: OperationResult) -> None:
    """Raise the matching HTTPException if ``result`` is a failure."""
    if not result.success:
        raise http_exception(result.error_code, result.error)
