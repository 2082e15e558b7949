"""
Subscription Manager - one active plan per user.

Subscribing replaces any current plan (last write wins, no refund, no
proration) and credits the plan's allotment once. Admin assignment never
credits.
"""

import calendar
from datetime import UTC, datetime

from structlog import get_logger

from ledger.models.api import TransactionType
from ledger.models.domain import SubscriptionPlan, UserSubscription
from ledger.services.ledger import LedgerState

logger = get_logger(__name__)

CARD_PAYMENT_METHOD = "Credit Card ending **** 4242"
ADMIN_PAYMENT_METHOD = "Admin Assigned"


def add_one_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the last day of a shorter month."""
    year = moment.year + moment.month // 12
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class SubscriptionManager:
    """Tracks each user's active subscription."""

    def __init__(self, ledger: LedgerState) -> None:
        self.ledger = ledger
        self._subscriptions: dict[str, UserSubscription] = {}

    def get(self, user_id: str) -> UserSubscription | None:
        return self._subscriptions.get(user_id)

    def all(self) -> dict[str, UserSubscription]:
        return dict(self._subscriptions)

    def _assign(
        self, user_id: str, plan: SubscriptionPlan, payment_method: str, now: datetime
    ) -> UserSubscription:
        previous = self._subscriptions.get(user_id)
        subscription = UserSubscription(
            user_id=user_id,
            plan=plan,
            subscribed_at=now,
            renews_on=add_one_month(now),
            payment_method=payment_method,
        )
        self._subscriptions[user_id] = subscription
        logger.info(
            "subscription_assigned",
            user_id=user_id,
            plan_id=plan.plan_id,
            replaced_plan_id=previous.plan.plan_id if previous else None,
            payment_method=payment_method,
        )
        return subscription

    def subscribe(
        self, user_id: str, plan: SubscriptionPlan, now: datetime | None = None
    ) -> UserSubscription:
        """
        Subscribe a user to a plan and credit plan.credits.

        An existing subscription is replaced without refund.
        """
        now = now or datetime.now(UTC)
        subscription = self._assign(user_id, plan, CARD_PAYMENT_METHOD, now)
        self.ledger.add_credits(
            user_id,
            plan.credits,
            f"Subscription credits for {plan.name} plan",
            TransactionType.SUBSCRIPTION,
            now=now,
        )
        return subscription

    def cancel(self, user_id: str, now: datetime | None = None) -> bool:
        """Cancel the user's plan. Returns False when there is nothing to cancel."""
        subscription = self._subscriptions.pop(user_id, None)
        if subscription is None:
            return False
        self.ledger.record_entry(
            user_id,
            f"Canceled {subscription.name} plan",
            TransactionType.SUBSCRIPTION,
            now=now,
        )
        logger.info("subscription_canceled", user_id=user_id, plan_id=subscription.plan.plan_id)
        return True

    def subscribe_user_for(
        self, user_id: str, plan: SubscriptionPlan, now: datetime | None = None
    ) -> UserSubscription:
        """Admin assignment: sets the plan without crediting anything."""
        return self._assign(user_id, plan, ADMIN_PAYMENT_METHOD, now or datetime.now(UTC))

    def cancel_user_for(self, admin_id: str, user_id: str, now: datetime | None = None) -> bool:
        """Admin cancellation, logged in the acting admin's transaction log."""
        subscription = self._subscriptions.pop(user_id, None)
        if subscription is None:
            return False
        self.ledger.record_entry(
            admin_id,
            f"Admin Canceled {subscription.name} for {user_id}",
            TransactionType.SUBSCRIPTION,
            now=now,
        )
        logger.info(
            "subscription_canceled_by_admin",
            admin_id=admin_id,
            user_id=user_id,
            plan_id=subscription.plan.plan_id,
        )
        return True
