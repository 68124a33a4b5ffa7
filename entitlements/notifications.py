"""Entitlement events and the dispatcher contract.

The ledger only emits events; delivering them (in-app inbox, push, email) is
the job of an external notification service that implements
:class:`NotificationDispatcher`. Events are emitted after the unit of work
that produced them has committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from entitlements.database import utcnow

logger = logging.getLogger(__name__)

TEMPLATES = {
    "subscription_activated": {
        "title": "Subscription Activated!",
        "message": "Your {badge_type} subscription is now active. Enjoy all premium features!",
    },
    "subscription_expired": {
        "title": "Subscription Expired",
        "message": (
            "Your {badge_type} subscription has expired. "
            "Renew to continue enjoying premium features."
        ),
    },
    "trial_started": {
        "title": "Welcome! Trial Started",
        "message": "Your {days}-day trial is now active. Explore all features!",
    },
    "trial_ending": {
        "title": "Trial Ending Soon",
        "message": "Your trial expires in {days} days. Upgrade to continue enjoying premium features!",
    },
    "payment_received": {
        "title": "Payment Received",
        "message": "Payment of ৳{amount} received via {gateway}. Your subscription is being activated.",
    },
}

EVENT_TYPES = set(TEMPLATES.keys())


@dataclass(frozen=True)
class EntitlementEvent:
    """Something a user should be told about."""

    type: str
    user_id: str
    variables: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type}")

    def render(self) -> tuple[str, str]:
        """Return ``(title, message)`` with template variables filled in."""
        template = TEMPLATES[self.type]
        return template["title"], template["message"].format(**self.variables)


class NotificationDispatcher(Protocol):
    async def dispatch(self, event: EntitlementEvent) -> None: ...


class LoggingNotificationDispatcher:
    """Default dispatcher: renders the event and writes it to the log."""

    async def dispatch(self, event: EntitlementEvent) -> None:
        title, message = event.render()
        logger.info("Notification for user %s [%s] %s: %s", event.user_id, event.type, title, message)


async def emit(dispatcher: NotificationDispatcher, event: EntitlementEvent) -> None:
    """Hand an event to the dispatcher.

    The ledger write has already committed, so a dispatcher failure is logged
    and does not fail the operation.
    """
    try:
        await dispatcher.dispatch(event)
    except Exception:
        logger.exception("Failed to dispatch %s event for user %s", event.type, event.user_id)
