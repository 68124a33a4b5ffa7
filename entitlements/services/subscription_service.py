"""Subscription service — the ledger's operation surface.

Wires the store, the gateway registry and the component services together
and exposes one method per operation used by the HTTP layer and by other
in-process callers.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from entitlements.billing.gateways.base import RedirectPayload
from entitlements.billing.gateways.registry import GatewayAdapterRegistry
from entitlements.billing.plans import BadgePlan, list_plans
from entitlements.database import utcnow
from entitlements.errors import OperationResult
from entitlements.models.subscription import UserSubscription
from entitlements.models.transaction import PaymentTransaction
from entitlements.models.xp_redemption import XPRedemption
from entitlements.notifications import LoggingNotificationDispatcher, NotificationDispatcher
from entitlements.services.entitlement_query import EntitlementQueryService
from entitlements.services.payment_orchestrator import PaymentOrchestrator
from entitlements.services.stats import StatsAggregator, SubscriptionStats
from entitlements.services.store import EntitlementStore
from entitlements.services.trial_service import TrialActivator
from entitlements.services.xp_ledger import XPLedger
from entitlements.services.xp_redemption import XPRedemptionEngine

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(
        self,
        store: EntitlementStore,
        gateways: GatewayAdapterRegistry,
        dispatcher: NotificationDispatcher | None = None,
        xp_ledger: XPLedger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.store = store
        self.gateways = gateways
        self.trials = TrialActivator(store, dispatcher, clock=clock)
        self.redemptions = XPRedemptionEngine(store, dispatcher, xp_ledger=xp_ledger, clock=clock)
        self.payments = PaymentOrchestrator(store, gateways, dispatcher, clock=clock)
        self.entitlements = EntitlementQueryService(store, dispatcher, clock=clock)
        self.stats = StatsAggregator(store)

    # --- Catalog ---

    def list_plans(self) -> list[BadgePlan]:
        return list_plans()

    # --- Payments ---

    async def initiate_payment(
        self,
        user_id: str,
        badge_type: str,
        gateway: str,
        payer_ref: str,
        **kwargs: Any,
    ) -> PaymentTransaction:
        return await self.payments.initiate(user_id, badge_type, gateway, payer_ref, **kwargs)

    async def build_payment_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        return await self.payments.build_redirect(transaction)

    async def confirm_payment(
        self, transaction_id: str, gateway_transaction_id: str | None = None
    ) -> OperationResult:
        return await self.payments.confirm(transaction_id, gateway_transaction_id)

    async def cancel_payment(self, transaction_id: str, user_id: str | None = None) -> OperationResult:
        return await self.payments.cancel(transaction_id, user_id=user_id)

    async def process_webhook(self, gateway: str, raw_payload: Mapping[str, Any]) -> OperationResult:
        return await self.payments.process_webhook(gateway, raw_payload)

    # --- Trials & XP ---

    async def check_and_activate_trial(self, user_id: str) -> bool:
        return await self.trials.activate_trial(user_id)

    def can_redeem_badge(self, user_id: str, badge_type: str, xp_balance: int) -> bool:
        return self.redemptions.can_redeem(user_id, badge_type, xp_balance)

    async def redeem_badge_with_xp(self, user_id: str, badge_type: str, xp_balance: int) -> OperationResult:
        return await self.redemptions.redeem(user_id, badge_type, xp_balance)

    # --- Queries ---

    async def get_user_subscription(self, user_id: str) -> UserSubscription | None:
        return await self.entitlements.get_current_subscription(user_id)

    async def get_current_badge(self, user_id: str) -> str:
        return await self.entitlements.get_current_badge(user_id)

    async def get_user_transactions(self, user_id: str, limit: int = 10) -> list[PaymentTransaction]:
        return await self.entitlements.get_user_transactions(user_id, limit)

    async def get_user_redemptions(self, user_id: str) -> list[XPRedemption]:
        return await self.entitlements.get_user_redemptions(user_id)

    async def get_subscription_stats(self) -> SubscriptionStats:
        return await self.stats.compute_stats()

    async def sweep_subscriptions(self, now: datetime | None = None) -> dict[str, int]:
        return await self.entitlements.sweep(now)
