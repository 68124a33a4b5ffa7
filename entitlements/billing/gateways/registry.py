"""Gateway adapter registry — maps gateway keys to adapters."""

import logging

import httpx

from entitlements.billing.gateways.base import GatewayAdapter, GatewayCredentials
from entitlements.billing.gateways.card import CARD_NETWORKS, CardAdapter
from entitlements.billing.gateways.mobile import BkashAdapter, NagadAdapter, RocketAdapter, UpayAdapter
from entitlements.config import Settings
from entitlements.errors import UnsupportedGatewayError

logger = logging.getLogger(__name__)


class GatewayAdapterRegistry:
    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._adapters: dict[str, GatewayAdapter] = {}
        self._http_client = http_client

    def register(self, adapter: GatewayAdapter) -> None:
        self._adapters[adapter.key] = adapter

    def get(self, gateway: str) -> GatewayAdapter:
        """Return the adapter for ``gateway`` or raise UnsupportedGatewayError."""
        adapter = self._adapters.get(gateway)
        if adapter is None:
            raise UnsupportedGatewayError(gateway)
        return adapter

    def __contains__(self, gateway: str) -> bool:
        return gateway in self._adapters

    @property
    def gateways(self) -> list[str]:
        return list(self._adapters)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()


def build_default_registry(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> GatewayAdapterRegistry:
    """Register every supported provider with credentials from settings."""
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.gateway_timeout_seconds)
    registry = GatewayAdapterRegistry(http_client)

    options = {
        "timeout_seconds": settings.gateway_timeout_seconds,
        "max_retries": settings.gateway_max_retries,
        "backoff_seconds": settings.gateway_backoff_seconds,
    }

    registry.register(BkashAdapter(GatewayCredentials.from_settings(settings, "bkash"), http_client, **options))
    registry.register(NagadAdapter(GatewayCredentials.from_settings(settings, "nagad"), http_client, **options))
    registry.register(UpayAdapter(GatewayCredentials.from_settings(settings, "upay"), http_client, **options))
    registry.register(
        RocketAdapter(
            GatewayCredentials.from_settings(settings, "rocket"),
            http_client,
            store_id=settings.rocket_store_id,
            **options,
        )
    )

    card_credentials = GatewayCredentials.from_settings(settings, "card")
    for network in CARD_NETWORKS:
        registry.register(CardAdapter(network, card_credentials, http_client, **options))

    live = [key for key, adapter in registry._adapters.items() if adapter.credentials.live]
    logger.info("Registered payment gateways %s (live: %s)", registry.gateways, live or "none")
    return registry
