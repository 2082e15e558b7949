"""
Tests for domain model validation and behavior.
"""

from dataclasses import FrozenInstanceError
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, make_item
from ledger.config import Settings
from ledger.models.api import TransactionType
from ledger.models.domain import (
    CreditPackage,
    MarketplaceSettings,
    ProfileUpdate,
    SubscriptionPlan,
    Transaction,
    UserTimeout,
)


class TestCatalogModels:
    """Tests for plan and package validation."""

    def test_plan_negative_price(self) -> None:
        with pytest.raises(ValueError, match="price"):
            SubscriptionPlan("basic", "Basic", Decimal("-1"), Decimal("200"))

    def test_plan_requires_id(self) -> None:
        with pytest.raises(ValueError, match="Plan ID"):
            SubscriptionPlan("", "Basic", Decimal("1"), Decimal("200"))

    def test_package_requires_positive_credits(self) -> None:
        with pytest.raises(ValueError, match="Credits"):
            CreditPackage("p", "Nothing", Decimal("0"), Decimal("1"))


class TestTransaction:
    """Tests for ledger records."""

    def test_transaction_is_immutable(self) -> None:
        entry = Transaction("t1", NOW, TransactionType.REWARD, Decimal("10"), "Reward")

        with pytest.raises(FrozenInstanceError):
            entry.amount = Decimal("20")  # type: ignore[misc]


class TestContentItem:
    """Tests for content item toggles."""

    def test_negative_price_rejected(self) -> None:
        with pytest.raises(ValueError):
            make_item("bad", price="-1")

    def test_age(self) -> None:
        assert make_item("i", age=timedelta(hours=5)).age(NOW) == timedelta(hours=5)

    def test_like_toggle_is_involutive(self) -> None:
        item = make_item("i")
        item.liked_by.add("other")

        item.toggle_like("u1")
        item.toggle_like("u1")

        assert item.liked_by == {"other"}

    def test_single_reaction_per_user(self) -> None:
        item = make_item("i")

        item.toggle_reaction("u1", "🔥")
        item.toggle_reaction("u1", "👍")

        assert item.reactions == {"u1": "👍"}


class TestUserTimeout:
    """Tests for timeout windows."""

    def test_active_strictly_before_end(self) -> None:
        timeout = UserTimeout("u1", NOW, "Spam")

        assert timeout.is_active(NOW - timedelta(seconds=1))
        assert not timeout.is_active(NOW)


class TestProfileUpdate:
    """Tests for partial profile updates."""

    def test_changed_fields(self) -> None:
        update = ProfileUpdate(username="Al", bio="")

        assert update.changed_fields() == {"username": "Al", "bio": ""}

    def test_no_changes(self) -> None:
        assert ProfileUpdate().changed_fields() == {}


class TestMarketplaceSettings:
    """Tests for runtime economics."""

    def test_from_settings(self) -> None:
        config = Settings(database_url="postgresql+asyncpg://localhost/x")

        economics = MarketplaceSettings.from_settings(config)

        assert economics.platform_commission == config.platform_commission
        assert economics.withdrawal_cooldown == timedelta(hours=config.withdrawal_cooldown_hours)

    def test_updated_keeps_omitted_fields(
        self, marketplace_settings: MarketplaceSettings
    ) -> None:
        updated = marketplace_settings.updated(platform_commission=Decimal("0.3"), reward_amount=None)

        assert updated.platform_commission == Decimal("0.3")
        assert updated.reward_amount == marketplace_settings.reward_amount
        assert marketplace_settings.platform_commission == Decimal("0.50")

    @pytest.mark.parametrize("rate", ["-0.1", "1.01"])
    def test_commission_bounds(
        self, marketplace_settings: MarketplaceSettings, rate: str
    ) -> None:
        with pytest.raises(ValueError, match="Commission"):
            marketplace_settings.updated(platform_commission=Decimal(rate))

    def test_negative_cooldown(self, marketplace_settings: MarketplaceSettings) -> None:
        with pytest.raises(ValueError, match="cooldown"):
            marketplace_settings.updated(withdrawal_cooldown_hours=-1.0)
