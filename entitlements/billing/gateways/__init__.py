"""Payment gateway adapters.

Import adapters and the registry from here::

    from entitlements.billing.gateways import build_default_registry
"""

from entitlements.billing.gateways.base import (
    GatewayAdapter,
    GatewayCredentials,
    RedirectPayload,
    WebhookResult,
)
from entitlements.billing.gateways.card import CardAdapter
from entitlements.billing.gateways.mobile import BkashAdapter, NagadAdapter, RocketAdapter, UpayAdapter
from entitlements.billing.gateways.registry import GatewayAdapterRegistry, build_default_registry

__all__ = [
    "BkashAdapter",
    "CardAdapter",
    "GatewayAdapter",
    "GatewayAdapterRegistry",
    "GatewayCredentials",
    "NagadAdapter",
    "RedirectPayload",
    "RocketAdapter",
    "UpayAdapter",
    "WebhookResult",
    "build_default_registry",
]
