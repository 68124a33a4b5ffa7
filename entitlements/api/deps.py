"""Shared API dependencies — single import point for all routers.

Re-exports authentication dependencies and provides the ledger service so
that router modules can import everything they need from one place::

    from entitlements.api.deps import get_current_user, get_subscription_service
"""

from fastapi import Request

from entitlements.auth.dependencies import CurrentUser, get_admin_user, get_current_user
from entitlements.services.subscription_service import SubscriptionService


def get_subscription_service(request: Request) -> SubscriptionService:
    """Return the service built during application startup."""
    return request.app.state.subscription_service


__all__ = [
    "CurrentUser",
    "get_admin_user",
    "get_current_user",
    "get_subscription_service",
]
