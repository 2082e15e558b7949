"""
Tests for SubscriptionManager and session subscriptions.
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from conftest import NOW
from ledger.exceptions import AuthorizationError, CatalogEntryNotFoundError, NotAuthenticatedError
from ledger.models.api import TransactionType
from ledger.services.marketplace import Marketplace
from ledger.services.subscriptions import (
    ADMIN_PAYMENT_METHOD,
    CARD_PAYMENT_METHOD,
    add_one_month,
)


class TestAddOneMonth:
    """Tests for renewal date arithmetic."""

    @pytest.mark.parametrize(
        ("moment", "expected"),
        [
            (datetime(2026, 10, 19, 12, tzinfo=UTC), datetime(2026, 11, 19, 12, tzinfo=UTC)),
            (datetime(2026, 12, 15, tzinfo=UTC), datetime(2027, 1, 15, tzinfo=UTC)),
            (datetime(2026, 1, 31, tzinfo=UTC), datetime(2026, 2, 28, tzinfo=UTC)),
            (datetime(2028, 1, 31, tzinfo=UTC), datetime(2028, 2, 29, tzinfo=UTC)),
            (datetime(2026, 3, 31, tzinfo=UTC), datetime(2026, 4, 30, tzinfo=UTC)),
        ],
    )
    def test_add_one_month(self, moment: datetime, expected: datetime) -> None:
        assert add_one_month(moment) == expected


class TestSubscribe:
    """Tests for user subscriptions."""

    async def test_subscribe_credits_plan(self, login) -> None:
        buyer = await login("buyer")

        subscription = buyer.subscribe("basic", now=NOW)

        assert buyer.balance == Decimal("300")
        assert subscription.name == "Basic"
        assert subscription.renews_on == datetime(2026, 11, 19, 12, tzinfo=UTC)
        assert subscription.payment_method == CARD_PAYMENT_METHOD
        assert buyer.subscription == subscription

        entry = buyer.transactions[0]
        assert entry.transaction_type == TransactionType.SUBSCRIPTION
        assert entry.amount == Decimal("200")
        assert entry.description == "Subscription credits for Basic plan"

    async def test_subscribe_replaces_current_plan(self, login) -> None:
        """Switching plans keeps credits already granted, no refund."""
        buyer = await login("buyer")
        buyer.subscribe("basic", now=NOW)

        buyer.subscribe("pro", now=NOW)

        assert buyer.subscription.plan.plan_id == "pro"
        assert buyer.balance == Decimal("800")

    async def test_subscribe_unknown_plan(self, login) -> None:
        buyer = await login("buyer")

        with pytest.raises(CatalogEntryNotFoundError):
            buyer.subscribe("platinum", now=NOW)
        assert buyer.balance == Decimal("100")

    async def test_cancel(self, login) -> None:
        buyer = await login("buyer")
        buyer.subscribe("pro", now=NOW)

        assert buyer.cancel_subscription(now=NOW) is True

        assert buyer.subscription is None
        assert buyer.transactions[0].description == "Canceled Pro plan"
        assert buyer.transactions[0].amount == Decimal("0")
        assert buyer.balance == Decimal("600")

    async def test_cancel_without_subscription(self, login) -> None:
        buyer = await login("buyer")

        assert buyer.cancel_subscription(now=NOW) is False
        assert buyer.transactions == []

    def test_subscribe_requires_login(self, marketplace: Marketplace) -> None:
        with pytest.raises(NotAuthenticatedError):
            marketplace.session().subscribe("basic")


class TestAdminSubscriptions:
    """Tests for admin plan assignment."""

    async def test_assign_does_not_credit(self, marketplace: Marketplace, login) -> None:
        admin = await login("admin")

        subscription = admin.subscribe_user_for("buyer", "premium", now=NOW)

        assert subscription.payment_method == ADMIN_PAYMENT_METHOD
        assert marketplace.subscriptions.get("buyer") == subscription
        assert marketplace.ledger.transactions("buyer") == []

    async def test_admin_cancel_logged_for_admin(self, marketplace: Marketplace, login) -> None:
        admin = await login("admin")
        admin.subscribe_user_for("buyer", "premium", now=NOW)

        assert admin.cancel_user_for("buyer", now=NOW) is True

        assert marketplace.subscriptions.get("buyer") is None
        assert admin.transactions[0].description == "Admin Canceled Premium for buyer"
        assert marketplace.ledger.transactions("buyer") == []

    async def test_admin_cancel_nothing(self, login) -> None:
        admin = await login("admin")

        assert admin.cancel_user_for("buyer") is False

    async def test_member_cannot_assign(self, login) -> None:
        buyer = await login("buyer")

        with pytest.raises(AuthorizationError):
            buyer.subscribe_user_for("creator", "basic")
