"""Badge catalog — pricing tiers, durations, and XP thresholds."""

from dataclasses import dataclass
from decimal import Decimal

from entitlements.errors import UnknownBadgeTypeError, UnsupportedGatewayError


@dataclass(frozen=True)
class BadgePlan:
    """Static configuration for one badge tier."""

    id: str
    name: str
    duration_days: int
    price: Decimal  # in BDT
    xp_threshold: int | None  # None = cannot be redeemed with XP
    features: tuple[str, ...]
    popular: bool = False

    @property
    def is_purchasable(self) -> bool:
        return self.price > 0


@dataclass(frozen=True)
class GatewayInfo:
    """Display metadata for a payment gateway."""

    key: str
    name: str
    fee_percent: Decimal
    kind: str  # "mfs" or "card"


BADGE_PLANS: dict[str, BadgePlan] = {
    "free": BadgePlan(
        id="free",
        name="Free User",
        duration_days=0,
        price=Decimal("0"),
        xp_threshold=None,
        features=("Basic anime streaming", "Limited manga access", "Quiz participation"),
    ),
    "trial": BadgePlan(
        id="trial",
        name="New User Trial",
        duration_days=7,
        price=Decimal("0"),
        xp_threshold=None,
        features=("Full access for 7 days", "All premium features", "Trial badge"),
    ),
    "bronze": BadgePlan(
        id="bronze",
        name="Bronze",
        duration_days=30,
        price=Decimal("200"),
        xp_threshold=7000,
        features=("Ad-free streaming", "Full manga access", "Resume features", "Bronze badge"),
    ),
    "silver": BadgePlan(
        id="silver",
        name="Silver",
        duration_days=90,
        price=Decimal("500"),
        xp_threshold=12500,
        features=("All Bronze features", "Priority support", "Exclusive content", "Silver badge"),
        popular=True,
    ),
    "gold": BadgePlan(
        id="gold",
        name="Gold",
        duration_days=180,
        price=Decimal("1000"),
        xp_threshold=25000,
        features=("All Silver features", "Early access", "Custom themes", "Gold badge"),
    ),
    "diamond": BadgePlan(
        id="diamond",
        name="Diamond",
        duration_days=365,
        price=Decimal("1500"),
        xp_threshold=None,
        features=("All Gold features", "VIP support", "Exclusive events", "Diamond badge"),
    ),
}

VALID_BADGE_TYPES: set[str] = set(BADGE_PLANS.keys())

PAYMENT_GATEWAYS: dict[str, GatewayInfo] = {
    # Mobile financial services
    "bkash": GatewayInfo(key="bkash", name="bKash", fee_percent=Decimal("1.85"), kind="mfs"),
    "nagad": GatewayInfo(key="nagad", name="Nagad", fee_percent=Decimal("1.99"), kind="mfs"),
    "upay": GatewayInfo(key="upay", name="Upay", fee_percent=Decimal("1.5"), kind="mfs"),
    "rocket": GatewayInfo(key="rocket", name="Rocket", fee_percent=Decimal("1.75"), kind="mfs"),
    # Card networks
    "visa": GatewayInfo(key="visa", name="Visa", fee_percent=Decimal("2.5"), kind="card"),
    "mastercard": GatewayInfo(key="mastercard", name="Mastercard", fee_percent=Decimal("2.5"), kind="card"),
    "amex": GatewayInfo(key="amex", name="American Express", fee_percent=Decimal("3.0"), kind="card"),
}


def get_plan(badge_type: str) -> BadgePlan:
    """Get a badge plan by type. Raises UnknownBadgeTypeError if not in the catalog."""
    try:
        return BADGE_PLANS[badge_type]
    except KeyError:
        raise UnknownBadgeTypeError(badge_type) from None


def list_plans() -> list[BadgePlan]:
    """All plans in tier order."""
    return list(BADGE_PLANS.values())


def redeemable_plans(xp_balance: int) -> list[BadgePlan]:
    """Plans whose XP threshold is met by ``xp_balance``."""
    return [
        plan
        for plan in BADGE_PLANS.values()
        if plan.xp_threshold is not None and xp_balance >= plan.xp_threshold
    ]


def get_gateway_info(gateway: str) -> GatewayInfo:
    """Get display metadata for a gateway key."""
    try:
        return PAYMENT_GATEWAYS[gateway]
    except KeyError:
        raise UnsupportedGatewayError(gateway) from None
