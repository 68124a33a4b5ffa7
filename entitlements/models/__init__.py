"""SQLAlchemy models for the entitlement ledger.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from entitlements.models.subscription import UserSubscription
from entitlements.models.transaction import PaymentTransaction
from entitlements.models.trial import TrialRegistration
from entitlements.models.xp_redemption import XPRedemption

__all__ = [
    "PaymentTransaction",
    "TrialRegistration",
    "UserSubscription",
    "XPRedemption",
]
