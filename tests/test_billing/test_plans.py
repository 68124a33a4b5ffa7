"""Tests for the badge catalog."""

from decimal import Decimal

import pytest

from entitlements.billing.plans import (
    BADGE_PLANS,
    PAYMENT_GATEWAYS,
    VALID_BADGE_TYPES,
    get_gateway_info,
    get_plan,
    list_plans,
    redeemable_plans,
)
from entitlements.errors import UnknownBadgeTypeError, UnsupportedGatewayError


class TestGetPlan:
    def test_every_badge_type_has_a_plan(self):
        assert set(VALID_BADGE_TYPES) == {"free", "trial", "bronze", "silver", "gold", "diamond"}
        for badge_type in VALID_BADGE_TYPES:
            assert get_plan(badge_type).id == badge_type

    def test_free_plan(self):
        plan = get_plan("free")
        assert plan.duration_days == 0
        assert plan.price == Decimal("0")
        assert plan.xp_threshold is None

    def test_trial_plan_is_seven_days(self):
        plan = get_plan("trial")
        assert plan.duration_days == 7
        assert plan.price == Decimal("0")

    @pytest.mark.parametrize(
        "badge_type,days,price,threshold",
        [
            ("bronze", 30, "200", 7000),
            ("silver", 90, "500", 12500),
            ("gold", 180, "1000", 25000),
            ("diamond", 365, "1500", None),
        ],
    )
    def test_paid_plans(self, badge_type, days, price, threshold):
        plan = get_plan(badge_type)
        assert plan.duration_days == days
        assert plan.price == Decimal(price)
        assert plan.xp_threshold == threshold
        assert plan.is_purchasable

    def test_unknown_badge_type(self):
        with pytest.raises(UnknownBadgeTypeError) as exc_info:
            get_plan("platinum")
        assert exc_info.value.detail == "Unknown badge type: platinum"

    def test_free_and_trial_not_purchasable(self):
        assert not get_plan("free").is_purchasable
        assert not get_plan("trial").is_purchasable

    def test_plans_are_immutable(self):
        with pytest.raises(AttributeError):
            BADGE_PLANS["bronze"].price = Decimal("1")


class TestListings:
    def test_list_plans_in_catalog_order(self):
        assert [p.id for p in list_plans()] == ["free", "trial", "bronze", "silver", "gold", "diamond"]

    def test_redeemable_plans_by_balance(self):
        assert redeemable_plans(5000) == []
        assert [p.id for p in redeemable_plans(7000)] == ["bronze"]
        assert [p.id for p in redeemable_plans(13000)] == ["bronze", "silver"]
        assert [p.id for p in redeemable_plans(100000)] == ["bronze", "silver", "gold"]


class TestGateways:
    def test_supported_gateways(self):
        assert set(PAYMENT_GATEWAYS) == {
            "bkash", "nagad", "upay", "rocket", "visa", "mastercard", "amex",
        }

    def test_gateway_kinds(self):
        assert get_gateway_info("bkash").kind == "mfs"
        assert get_gateway_info("amex").kind == "card"
        assert get_gateway_info("amex").name == "American Express"

    def test_unknown_gateway(self):
        with pytest.raises(UnsupportedGatewayError):
            get_gateway_info("paypal")
