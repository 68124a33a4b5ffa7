"""Tests for XP redemption."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.errors import PersistenceError
from entitlements.services.subscription_service import SubscriptionService
from entitlements.services.xp_redemption import XPRedemptionEngine


class InMemoryXPLedger:
    """Authoritative XP balances with debit and credit journals."""

    def __init__(self, balances: dict[str, int]) -> None:
        self.balances = dict(balances)
        self.debits: list[tuple[str, int, str]] = []
        self.credits: list[tuple[str, int, str]] = []

    async def get_balance(self, user_id: str) -> int:
        # Yield so concurrent redemptions interleave here
        await asyncio.sleep(0)
        return self.balances.get(user_id, 0)

    async def debit(self, user_id: str, amount: int, reference: str) -> int:
        await asyncio.sleep(0)
        self.balances[user_id] -= amount
        self.debits.append((user_id, amount, reference))
        return self.balances[user_id]

    async def credit(self, user_id: str, amount: int, reference: str) -> int:
        self.balances[user_id] += amount
        self.credits.append((user_id, amount, reference))
        return self.balances[user_id]


class TestCanRedeem:
    def test_threshold(self, service):
        assert service.can_redeem_badge("u2", "bronze", 5000) is False
        assert service.can_redeem_badge("u2", "bronze", 8000) is True

    def test_exact_threshold(self, service):
        assert service.can_redeem_badge("u2", "silver", 12500) is True
        assert service.can_redeem_badge("u2", "silver", 12499) is False

    def test_badges_without_threshold(self, service):
        assert service.can_redeem_badge("u2", "diamond", 10**9) is False
        assert service.can_redeem_badge("u2", "trial", 10**9) is False


class TestRedeem:
    @pytest.mark.asyncio
    async def test_redeem_bronze(self, service, clock):
        result = await service.redeem_badge_with_xp("u3", "bronze", 10000)
        assert result.success is True
        assert result.subscription_id

        subscription = await service.get_user_subscription("u3")
        assert subscription.id == result.subscription_id
        assert subscription.badge_type == "bronze"
        assert subscription.status == "active"
        assert subscription.redemption_method == "xp_redemption"
        assert subscription.xp_spent == 7000
        assert subscription.end_date - subscription.start_date == timedelta(days=30)

        redemptions = await service.get_user_redemptions("u3")
        assert redemptions[0].xp_balance_before == 10000
        assert redemptions[0].xp_spent == 7000
        assert redemptions[0].xp_balance_after == 3000
        assert redemptions[0].subscription_id == subscription.id
        assert await service.get_current_badge("u3") == "bronze"

    @pytest.mark.asyncio
    async def test_insufficient_xp(self, service):
        result = await service.redeem_badge_with_xp("u3", "gold", 20000)
        assert result.success is False
        assert result.error_code == "insufficient_xp"
        assert result.error == "Insufficient XP. Required: 25000, Available: 20000"
        assert await service.get_user_redemptions("u3") == []
        assert await service.get_user_subscription("u3") is None

    @pytest.mark.asyncio
    async def test_not_redeemable(self, service):
        result = await service.redeem_badge_with_xp("u3", "diamond", 100000)
        assert result.success is False
        assert result.error_code == "not_redeemable"

    @pytest.mark.asyncio
    async def test_unknown_badge(self, service):
        result = await service.redeem_badge_with_xp("u3", "platinum", 100000)
        assert result.success is False
        assert result.error_code == "unknown_badge_type"

    @pytest.mark.asyncio
    async def test_emits_subscription_activated(self, service, dispatcher):
        await service.redeem_badge_with_xp("u3", "silver", 12500)
        assert dispatcher.types() == ["subscription_activated"]
        assert dispatcher.events[0].variables == {"badge_type": "silver"}

    @pytest.mark.asyncio
    async def test_redemptions_newest_first(self, service):
        await service.redeem_badge_with_xp("u3", "bronze", 7000)
        await service.redeem_badge_with_xp("u3", "silver", 20000)

        redemptions = await service.get_user_redemptions("u3")
        assert [r.badge_type for r in redemptions] == ["silver", "bronze"]
        for r in redemptions:
            assert r.xp_balance_after == r.xp_balance_before - r.xp_spent >= 0


class TestAuthoritativeLedger:
    @pytest.mark.asyncio
    async def test_balance_is_reread_and_debited(self, store, gateways, dispatcher, clock):
        ledger = InMemoryXPLedger({"u3": 9000})
        service = SubscriptionService(store, gateways, dispatcher, xp_ledger=ledger, clock=clock)

        # The caller claims more XP than the user really has
        result = await service.redeem_badge_with_xp("u3", "bronze", 50000)
        assert result.success is True

        redemptions = await service.get_user_redemptions("u3")
        assert redemptions[0].xp_balance_before == 9000
        assert redemptions[0].xp_balance_after == 2000
        assert ledger.balances["u3"] == 2000
        assert ledger.debits == [("u3", 7000, redemptions[0].id)]

    @pytest.mark.asyncio
    async def test_stale_balance_rejected(self, store, dispatcher, clock):
        ledger = InMemoryXPLedger({"u3": 3000})
        engine = XPRedemptionEngine(store, dispatcher, xp_ledger=ledger, clock=clock)

        result = await engine.redeem("u3", "bronze", 10000)
        assert result.success is False
        assert result.error == "Insufficient XP. Required: 7000, Available: 3000"
        assert ledger.debits == []

    @pytest.mark.asyncio
    async def test_concurrent_redemptions_cannot_double_spend(self, store, dispatcher, clock):
        ledger = InMemoryXPLedger({"u3": 10000})
        engine = XPRedemptionEngine(store, dispatcher, xp_ledger=ledger, clock=clock)

        results = await asyncio.gather(
            engine.redeem("u3", "bronze", 10000),
            engine.redeem("u3", "bronze", 10000),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert ledger.balances["u3"] == 3000
        assert len(ledger.debits) == 1

    @pytest.mark.asyncio
    async def test_failed_debit_rolls_back_records(self, store, dispatcher, clock):
        class BrokenLedger(InMemoryXPLedger):
            async def debit(self, user_id, amount, reference):
                raise RuntimeError("ledger unavailable")

        engine = XPRedemptionEngine(store, dispatcher, xp_ledger=BrokenLedger({"u3": 10000}), clock=clock)

        with pytest.raises(RuntimeError):
            await engine.redeem("u3", "bronze", 10000)

        async with store.unit_of_work() as db:
            assert list(await store.list_redemptions(db, "u3")) == []
            assert await store.latest_subscription(db, "u3") is None

    @pytest.mark.asyncio
    async def test_failed_commit_returns_debited_xp(self, store, dispatcher, clock, monkeypatch):
        ledger = InMemoryXPLedger({"u3": 10000})
        engine = XPRedemptionEngine(store, dispatcher, xp_ledger=ledger, clock=clock)

        async def broken_commit(self):
            raise OperationalError("COMMIT", {}, Exception("connection reset"))

        monkeypatch.setattr(AsyncSession, "commit", broken_commit)
        with pytest.raises(PersistenceError):
            await engine.redeem("u3", "bronze", 10000)
        monkeypatch.undo()

        assert ledger.balances["u3"] == 10000
        assert len(ledger.debits) == 1
        assert ledger.credits == [("u3", 7000, ledger.debits[0][2])]
        assert dispatcher.events == []

        async with store.unit_of_work() as db:
            assert list(await store.list_redemptions(db, "u3")) == []
            assert await store.latest_subscription(db, "u3") is None

    @pytest.mark.asyncio
    async def test_failed_credit_still_raises_commit_failure(self, store, dispatcher, clock, monkeypatch, caplog):
        class NoCreditLedger(InMemoryXPLedger):
            async def credit(self, user_id, amount, reference):
                raise RuntimeError("ledger unavailable")

        ledger = NoCreditLedger({"u3": 10000})
        engine = XPRedemptionEngine(store, dispatcher, xp_ledger=ledger, clock=clock)

        async def broken_commit(self):
            raise OperationalError("COMMIT", {}, Exception("connection reset"))

        monkeypatch.setattr(AsyncSession, "commit", broken_commit)
        with pytest.raises(PersistenceError):
            await engine.redeem("u3", "bronze", 10000)

        assert ledger.balances["u3"] == 3000
        assert "Could not return 7000 XP to user u3" in caplog.text
