"""Tests for ledger statistics."""

from decimal import Decimal

import pytest

from entitlements.services.stats import _percentage, _round_half_up


async def _paid(service, user_id: str, badge_type: str, gateway: str, payer: str = "01700000000", **kwargs):
    tx = await service.initiate_payment(user_id, badge_type, gateway, payer, **kwargs)
    result = await service.confirm_payment(tx.id, f"gw-{tx.id[:8]}")
    assert result.success
    return tx


class TestComputeStats:
    @pytest.mark.asyncio
    async def test_empty_ledger(self, service):
        stats = await service.get_subscription_stats()

        assert stats.total_subscriptions == 0
        assert stats.active_subscriptions == 0
        assert stats.total_revenue == Decimal("0")
        assert stats.revenue_by_gateway == {}
        assert stats.trial_conversions == 0
        assert stats.xp_redemptions == 0
        assert stats.churn_rate == 0
        assert stats.average_revenue_per_user == 0

    @pytest.mark.asyncio
    async def test_revenue_by_gateway_sums_to_total(self, service):
        await _paid(service, "a", "gold", "bkash")
        await _paid(service, "b", "bronze", "bkash")
        await _paid(service, "c", "silver", "nagad")
        await _paid(service, "d", "diamond", "visa", payer="VISA ****4242", card_last_four="4242")

        # Pending and cancelled payments are not revenue
        await service.initiate_payment("e", "gold", "upay", "01700000000")
        cancelled = await service.initiate_payment("f", "gold", "rocket", "01700000000")
        await service.cancel_payment(cancelled.id)

        stats = await service.get_subscription_stats()

        assert stats.total_revenue == Decimal("3200")
        assert stats.revenue_by_gateway == {
            "bkash": Decimal("1200"),
            "nagad": Decimal("500"),
            "visa": Decimal("1500"),
        }
        assert sum(stats.revenue_by_gateway.values()) == stats.total_revenue
        assert stats.average_revenue_per_user == 800

    @pytest.mark.asyncio
    async def test_counts_by_badge(self, service):
        await _paid(service, "a", "gold", "bkash")
        await _paid(service, "b", "gold", "nagad")
        await service.redeem_badge_with_xp("c", "bronze", 7000)
        await service.check_and_activate_trial("d")

        stats = await service.get_subscription_stats()

        assert stats.total_subscriptions == 4
        assert stats.active_subscriptions == 3
        assert stats.subscriptions_by_badge == {"gold": 2, "bronze": 1}
        assert stats.xp_redemptions == 1

    @pytest.mark.asyncio
    async def test_trial_conversions(self, service):
        for user in ("t1", "t2", "t3"):
            await service.check_and_activate_trial(user)
        await _paid(service, "t1", "silver", "bkash")
        # XP redemption after a trial is not a paid conversion
        await service.redeem_badge_with_xp("t2", "bronze", 7000)

        stats = await service.get_subscription_stats()
        assert stats.trial_conversions == 33

    @pytest.mark.asyncio
    async def test_payment_before_trial_is_not_a_conversion(self, service):
        await _paid(service, "u", "bronze", "bkash")
        await service.check_and_activate_trial("u")

        stats = await service.get_subscription_stats()
        assert stats.trial_conversions == 0

    @pytest.mark.asyncio
    async def test_average_revenue_per_distinct_payer(self, service):
        await _paid(service, "a", "bronze", "bkash")
        await _paid(service, "a", "silver", "bkash")
        await _paid(service, "b", "silver", "nagad")
        await _paid(service, "c", "diamond", "nagad")

        stats = await service.get_subscription_stats()
        assert stats.total_revenue == Decimal("2700")
        assert stats.average_revenue_per_user == 900

    @pytest.mark.asyncio
    async def test_double_confirm_does_not_double_count(self, service):
        tx = await service.initiate_payment("a", "gold", "bkash", "01700000000")
        await service.confirm_payment(tx.id, "gw-1")
        await service.confirm_payment(tx.id, "gw-1")
        await service.process_webhook(
            "bkash",
            {"transactionStatus": "Completed", "merchantInvoiceNumber": tx.id, "paymentID": "gw-1"},
        )

        stats = await service.get_subscription_stats()
        assert stats.total_revenue == Decimal("1000")
        assert stats.total_subscriptions == 1

    @pytest.mark.asyncio
    async def test_churn_rate(self, service, clock):
        await _paid(service, "a", "bronze", "bkash")
        await _paid(service, "b", "diamond", "bkash")
        clock.advance(days=31)
        # Reading a's badge expires the bronze subscription
        assert await service.get_current_badge("a") == "free"

        stats = await service.get_subscription_stats()
        assert stats.churn_rate == 50


class TestRounding:
    def test_round_half_up(self):
        assert _round_half_up(Decimal("237.5")) == 238
        assert _round_half_up(Decimal("237.49")) == 237

    def test_percentage(self):
        assert _percentage(1, 3) == 33
        assert _percentage(2, 3) == 67
        assert _percentage(1, 8) == 13
        assert _percentage(5, 0) == 0
