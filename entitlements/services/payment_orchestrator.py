"""Payment orchestration — the pending -> terminal transaction state machine.

A payment is recorded as ``pending`` before the user is sent to the gateway.
It leaves ``pending`` exactly once: ``completed`` together with its
subscription when the gateway confirms, or ``failed``/``cancelled`` otherwise.
Webhooks are delivered at least once, so a replay of an already-settled
transaction is answered with :class:`AlreadyProcessedError` and changes
nothing.
"""

import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from entitlements.billing.gateways.base import RedirectPayload
from entitlements.billing.gateways.registry import GatewayAdapterRegistry
from entitlements.billing.plans import get_gateway_info, get_plan
from entitlements.config import settings
from entitlements.database import utcnow
from entitlements.errors import (
    AlreadyProcessedError,
    EntitlementError,
    GatewayError,
    GatewayRejectedError,
    GatewayTimeoutError,
    OperationResult,
    TransactionNotFoundError,
    ValidationError,
)
from entitlements.models.subscription import UserSubscription
from entitlements.models.transaction import PaymentTransaction
from entitlements.notifications import (
    EntitlementEvent,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    emit,
)
from entitlements.services.store import EntitlementStore

logger = logging.getLogger(__name__)

BD_MOBILE_NUMBER = re.compile(r"^01[3-9]\d{8}$")
CARD_TYPES = ("debit", "credit")


def _validate_payer(
    kind: str, payer_ref: str, card_type: str | None, card_last_four: str | None
) -> str:
    payer_ref = (payer_ref or "").strip()
    if kind == "mfs":
        if not BD_MOBILE_NUMBER.match(payer_ref):
            raise ValidationError(f"Invalid mobile number: {payer_ref!r}")
        return payer_ref

    if not payer_ref:
        raise ValidationError("A card descriptor is required for card payments")
    if card_type is not None and card_type not in CARD_TYPES:
        raise ValidationError(f"Invalid card type: {card_type!r}")
    if card_last_four is not None and not re.fullmatch(r"\d{4}", card_last_four):
        raise ValidationError("card_last_four must be exactly 4 digits")
    return payer_ref


class PaymentOrchestrator:
    def __init__(
        self,
        store: EntitlementStore,
        gateways: GatewayAdapterRegistry,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
        currency: str = settings.currency,
    ) -> None:
        self.store = store
        self.gateways = gateways
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.clock = clock
        self.currency = currency

    async def initiate(
        self,
        user_id: str,
        badge_type: str,
        gateway: str,
        payer_ref: str,
        *,
        card_type: str | None = None,
        card_last_four: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentTransaction:
        """Record the intent to pay for a badge. No money moves here.

        Raises UnsupportedGatewayError, UnknownBadgeTypeError or
        ValidationError for bad input.
        """
        self.gateways.get(gateway)
        gateway_info = get_gateway_info(gateway)
        plan = get_plan(badge_type)
        if not plan.is_purchasable:
            raise ValidationError(f"Badge '{plan.id}' cannot be purchased")
        payer_ref = _validate_payer(gateway_info.kind, payer_ref, card_type, card_last_four)

        async with self.store.unit_of_work() as db:
            transaction = await self.store.add_transaction(
                db,
                PaymentTransaction(
                    user_id=user_id,
                    amount=plan.price,
                    currency=self.currency,
                    gateway=gateway,
                    status="pending",
                    payer_reference=payer_ref,
                    card_type=card_type if gateway_info.kind == "card" else None,
                    card_last_four=card_last_four if gateway_info.kind == "card" else None,
                    badge_type=plan.id,
                    extra=dict(metadata or {}),
                ),
            )

        logger.info(
            "Initiated payment %s: user %s, %s via %s, amount %s %s",
            transaction.id,
            user_id,
            plan.id,
            gateway,
            transaction.amount,
            transaction.currency,
        )
        return transaction

    async def build_redirect(self, transaction: PaymentTransaction) -> RedirectPayload:
        """Build the gateway redirect for a pending transaction."""
        if not transaction.is_pending:
            raise AlreadyProcessedError(transaction.id, transaction.status)
        adapter = self.gateways.get(transaction.gateway)
        return await adapter.build_redirect(transaction)

    async def get_transaction(self, transaction_id: str) -> PaymentTransaction:
        async with self.store.unit_of_work() as db:
            transaction = await self.store.get_transaction(db, transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    async def confirm(
        self,
        transaction_id: str,
        gateway_transaction_id: str | None = None,
        *,
        expected_gateway: str | None = None,
    ) -> OperationResult:
        """Settle a pending transaction and grant its subscription.

        The subscription insert and the ``pending -> completed`` flip commit
        together. Calling this again for the same transaction returns an
        ``already_processed`` failure and writes nothing.
        """
        try:
            transaction = await self.get_transaction(transaction_id)
            user_id = transaction.user_id

            async with self.store.locks.hold(user_id):
                async with self.store.unit_of_work() as db:
                    transaction = await self.store.get_transaction(db, transaction_id, for_update=True)
                    if transaction is None:
                        raise TransactionNotFoundError(transaction_id)
                    if not transaction.is_pending:
                        raise AlreadyProcessedError(transaction_id, transaction.status)
                    if expected_gateway is not None and transaction.gateway != expected_gateway:
                        raise ValidationError(
                            f"Transaction {transaction_id} was not made through {expected_gateway}"
                        )

                    plan = get_plan(transaction.badge_type)
                    now = self.clock()
                    subscription = await self.store.add_subscription(
                        db,
                        UserSubscription(
                            user_id=user_id,
                            badge_type=plan.id,
                            status="active",
                            start_date=now,
                            end_date=now + timedelta(days=plan.duration_days),
                            is_trial_user=False,
                            redemption_method="payment",
                            payment_method=transaction.gateway,
                            transaction_id=transaction.id,
                            auto_renew=False,
                        ),
                    )
                    completed = await self.store.complete_transaction(
                        db, transaction, subscription.id, gateway_transaction_id
                    )
                    if not completed:
                        # Settled by another process after our read
                        raise AlreadyProcessedError(transaction_id, transaction.status)
        except EntitlementError as e:
            logger.warning("Confirmation of transaction %s rejected: %s", transaction_id, e.detail)
            return OperationResult.fail(e, transaction_id=transaction_id)

        logger.info(
            "Confirmed payment %s (gateway ref %s): subscription %s for user %s",
            transaction_id,
            gateway_transaction_id,
            subscription.id,
            user_id,
        )
        await emit(
            self.dispatcher,
            EntitlementEvent(
                type="subscription_activated",
                user_id=user_id,
                variables={"badge_type": plan.id},
            ),
        )
        await emit(
            self.dispatcher,
            EntitlementEvent(
                type="payment_received",
                user_id=user_id,
                variables={
                    "amount": transaction.amount,
                    "gateway": get_gateway_info(transaction.gateway).name,
                },
            ),
        )
        return OperationResult.ok(subscription_id=subscription.id, transaction_id=transaction_id)

    async def fail(self, transaction_id: str, reason: str) -> OperationResult:
        """Mark a pending transaction as failed (gateway declined)."""
        return await self._close(transaction_id, "failed", reason)

    async def cancel(self, transaction_id: str, *, user_id: str | None = None) -> OperationResult:
        """Mark a pending transaction as cancelled (user abandoned checkout)."""
        return await self._close(transaction_id, "cancelled", "Cancelled by user", user_id=user_id)

    async def _close(
        self, transaction_id: str, status: str, reason: str, *, user_id: str | None = None
    ) -> OperationResult:
        try:
            transaction = await self.get_transaction(transaction_id)
            if user_id is not None and transaction.user_id != user_id:
                # Do not reveal other users' transactions
                raise TransactionNotFoundError(transaction_id)

            async with self.store.locks.hold(transaction.user_id):
                async with self.store.unit_of_work() as db:
                    transaction = await self.store.get_transaction(db, transaction_id, for_update=True)
                    if transaction is None:
                        raise TransactionNotFoundError(transaction_id)
                    closed = await self.store.close_transaction(db, transaction, status, reason)
                    if not closed:
                        raise AlreadyProcessedError(transaction_id, transaction.status)
        except EntitlementError as e:
            logger.warning("Could not mark transaction %s %s: %s", transaction_id, status, e.detail)
            return OperationResult.fail(e, transaction_id=transaction_id)

        logger.info("Transaction %s marked %s: %s", transaction_id, status, reason)
        return OperationResult.ok(transaction_id=transaction_id)

    async def process_webhook(self, gateway: str, raw_payload: Mapping[str, Any]) -> OperationResult:
        """Apply a gateway callback to the ledger.

        A declined payment fails the transaction. An approved one is checked
        with the provider first; if the provider cannot be reached the
        transaction stays pending so that the next delivery can settle it.
        """
        try:
            adapter = self.gateways.get(gateway)
            result = adapter.parse_webhook(raw_payload)
            transaction = await self.get_transaction(result.transaction_id)
            if transaction.gateway != gateway:
                raise ValidationError(
                    f"Transaction {transaction.id} was not made through {gateway}"
                )
            if not transaction.is_pending:
                raise AlreadyProcessedError(transaction.id, transaction.status)
        except EntitlementError as e:
            logger.warning("Webhook from %s rejected: %s", gateway, e.detail)
            return OperationResult.fail(e)

        logger.info(
            "Webhook from %s for transaction %s: provider status %s",
            gateway,
            result.transaction_id,
            result.provider_status,
        )

        if not result.success:
            rejection = GatewayRejectedError(
                f"{adapter.display_name} reported status {result.provider_status}"
            )
            failed = await self.fail(result.transaction_id, rejection.detail)
            if not failed.success:
                return failed
            return OperationResult.fail(rejection, transaction_id=result.transaction_id)

        try:
            verified = await adapter.verify(result.transaction_id, result.gateway_transaction_id)
        except GatewayRejectedError as e:
            await self.fail(result.transaction_id, e.detail)
            return OperationResult.fail(e, transaction_id=result.transaction_id)
        except GatewayTimeoutError as e:
            logger.warning("Leaving transaction %s pending: %s", result.transaction_id, e.detail)
            return OperationResult.fail(e, transaction_id=result.transaction_id)
        except GatewayError as e:
            logger.error("Verification of transaction %s failed: %s", result.transaction_id, e.detail)
            return OperationResult.fail(e, transaction_id=result.transaction_id)

        if not verified:
            rejection = GatewayRejectedError(
                f"{adapter.display_name} could not confirm payment {result.gateway_transaction_id}"
            )
            await self.fail(result.transaction_id, rejection.detail)
            return OperationResult.fail(rejection, transaction_id=result.transaction_id)

        return await self.confirm(
            result.transaction_id,
            result.gateway_transaction_id,
            expected_gateway=gateway,
        )
