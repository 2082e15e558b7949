"""
Tests for Marketplace and MarketplaceSession lifecycle and admin operations.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, make_item, make_profile
from ledger.config import Settings
from ledger.exceptions import (
    AuthorizationError,
    CatalogEntryNotFoundError,
    GatewayError,
    NotAuthenticatedError,
)
from ledger.models.api import TransactionType, UserRole
from ledger.models.domain import ContentItem, ProfileRecord, ProfileUpdate
from ledger.services.marketplace import Marketplace
from ledger.services.media import DEFAULT_PROFILE_PICTURE


class TestMarketplaceConstruction:
    """Tests for building a marketplace from configuration."""

    def test_from_config(self, gateway: AsyncMock) -> None:
        config = Settings(
            database_url="postgresql+asyncpg://localhost/x",
            platform_commission=Decimal("0.25"),
            outbox_auto_flush=False,
        )

        market = Marketplace.from_config(gateway, config)

        assert market.settings.platform_commission == Decimal("0.25")
        assert market.outbox.pending_count == 0
        assert [p.plan_id for p in market.catalog.plans] == ["basic", "pro", "premium"]

    def test_update_settings(self, marketplace: Marketplace) -> None:
        updated = marketplace.update_settings(reward_amount=Decimal("5"), platform_commission=None)

        assert updated.reward_amount == Decimal("5")
        assert updated.platform_commission == Decimal("0.50")
        assert marketplace.settings is updated


class TestLogin:
    """Tests for starting sessions."""

    async def test_login_loads_snapshot(
        self, marketplace: Marketplace, unlocks: dict[str, list[str]], login
    ) -> None:
        unlocks["buyer"] = ["item-2"]

        buyer = await login("buyer")

        assert buyer.is_logged_in
        assert buyer.user_id == "buyer"
        assert buyer.balance == Decimal("100")
        assert buyer.unlocked_content_ids == frozenset({"item-2"})
        assert buyer.withdrawal_time_end == NOW
        assert len(marketplace.content.items) == 3

    async def test_login_unknown_user(self, marketplace: Marketplace) -> None:
        session = marketplace.session()

        assert await session.login("ghost", now=NOW) is False
        assert not session.is_logged_in

    async def test_login_user_found_only_by_profile_lookup(
        self, marketplace: Marketplace, gateway: AsyncMock, profiles: dict[str, ProfileRecord]
    ) -> None:
        gateway.list_profiles.side_effect = GatewayError("list_profiles", "timeout")

        session = marketplace.session()

        assert await session.login("buyer", now=NOW) is True
        assert marketplace.directory.get("buyer").username == "Buyer"

    async def test_content_loaded_once(
        self, marketplace: Marketplace, gateway: AsyncMock, login
    ) -> None:
        buyer = await login("buyer")
        buyer.publish_content("Fresh", Decimal("5"), now=NOW)

        await login("creator")

        gateway.list_visible_content.assert_awaited_once()
        assert marketplace.content.items[0].title == "Fresh"

    async def test_pending_writes_applied_before_reload(
        self, marketplace: Marketplace, gateway: AsyncMock, login
    ) -> None:
        buyer = await login("buyer")
        buyer.add_reward(now=NOW)

        await login("buyer")

        gateway.set_credits_balance.assert_awaited_once_with("buyer", Decimal("110"))
        assert marketplace.outbox.pending_count == 0

    async def test_transaction_log_survives_relogin(self, login) -> None:
        buyer = await login("buyer")
        buyer.add_reward(now=NOW)

        again = await login("buyer")

        assert [t.transaction_type for t in again.transactions] == [TransactionType.REWARD]

    async def test_logout(self, login) -> None:
        buyer = await login("buyer")

        buyer.logout()

        assert not buyer.is_logged_in
        with pytest.raises(NotAuthenticatedError):
            _ = buyer.balance


class TestRegistration:
    """Tests for first-time login."""

    async def test_register_new_user(self, marketplace: Marketplace, gateway: AsyncMock) -> None:
        session = marketplace.session()

        user = await session.register_or_login("u-new", "carol@example.com", now=NOW)

        assert user.username == "carol"
        assert user.vitrine_slug == "u-new"
        assert user.profile_picture_url == DEFAULT_PROFILE_PICTURE
        assert session.balance == Decimal("0")
        created = gateway.create_profile.await_args.args[0]
        assert created.user_id == "u-new"
        assert created.credits_balance == Decimal("0")
        assert created.role == UserRole.USER

    async def test_register_existing_user_skips_create(
        self, marketplace: Marketplace, gateway: AsyncMock
    ) -> None:
        session = marketplace.session()

        user = await session.register_or_login("buyer", "buyer@example.com", now=NOW)

        assert user.user_id == "buyer"
        assert session.balance == Decimal("100")
        gateway.create_profile.assert_not_awaited()

    async def test_register_survives_gateway_failure(
        self, marketplace: Marketplace, gateway: AsyncMock
    ) -> None:
        gateway.create_profile.side_effect = GatewayError("create_profile", "down")
        session = marketplace.session()

        await session.register_or_login("u-new", "carol@example.com", now=NOW)

        assert session.is_logged_in


class TestSessionGuards:
    """Tests for operations without a session user."""

    @pytest.mark.parametrize(
        "operation",
        [
            lambda s: s.add_reward(),
            lambda s: s.subscribe("basic"),
            lambda s: s.toggle_like("item-1"),
            lambda s: s.update_profile(ProfileUpdate(bio="x")),
            lambda s: s.follow("creator"),
            lambda s: s.vitrine_url(),
            lambda s: s.transactions,
        ],
    )
    def test_requires_login(self, marketplace: Marketplace, operation) -> None:
        with pytest.raises(NotAuthenticatedError):
            operation(marketplace.session())

    def test_anonymous_reads(self, marketplace: Marketplace, content_items: list[ContentItem]) -> None:
        session = marketplace.session()
        marketplace.content.load(content_items)

        assert not session.is_unlocked("item-1")
        assert len(session.visible_content()) == 3


class TestSessionSocial:
    """Tests for profile and follow operations through a session."""

    async def test_update_profile_and_vitrine(self, login) -> None:
        creator = await login("creator")

        user = creator.update_profile(ProfileUpdate(vitrine_slug="new-slug", bio="Art"))

        assert user.bio == "Art"
        assert creator.vitrine_url() == "https://funfans.com/vitrine/new-slug"

    async def test_follow_and_find_by_slug(self, marketplace: Marketplace, login) -> None:
        buyer = await login("buyer")

        assert buyer.follow("creator") is True
        assert buyer.follow("buyer") is False

        creator = await buyer.find_creator_by_slug("creator-slug")
        assert creator.followers == {"buyer"}

    async def test_share_like_react(self, marketplace: Marketplace, login) -> None:
        buyer = await login("buyer")

        assert buyer.toggle_like("item-1") is True
        assert buyer.toggle_reaction("item-1", "🔥") == (True, "🔥")
        assert buyer.record_share("item-1") is True
        assert buyer.record_share("item-1") is False

        item = marketplace.content.get("item-1")
        assert item.liked_by == {"buyer"}
        assert item.shared_by == {"buyer"}


class TestAdminGrant:
    """Tests for admin credit grants."""

    async def test_grant_updates_target_account(
        self, marketplace: Marketplace, gateway: AsyncMock, login
    ) -> None:
        admin = await login("admin")
        buyer = await login("buyer")
        gateway.increment_credits_balance.return_value = Decimal("150")

        assert await admin.add_credits_to_user("buyer", Decimal("50"), now=NOW) is True

        gateway.increment_credits_balance.assert_awaited_once_with("buyer", Decimal("50"))
        assert buyer.balance == Decimal("150")
        assert buyer.transactions[0].description == "Admin grant for user buyer"
        assert buyer.transactions[0].transaction_type == TransactionType.ADMIN_GRANT
        assert marketplace.outbox.pending_count == 0

    async def test_grant_survives_later_balance_write(
        self, marketplace: Marketplace, gateway: AsyncMock, login
    ) -> None:
        """The target's next absolute write includes the granted credits."""
        admin = await login("admin")
        buyer = await login("buyer")
        gateway.increment_credits_balance.return_value = Decimal("150")
        await admin.add_credits_to_user("buyer", Decimal("50"), now=NOW)

        buyer.add_reward(now=NOW)
        await marketplace.flush()

        gateway.set_credits_balance.assert_awaited_once_with("buyer", Decimal("160"))

    async def test_grant_while_balance_write_pending(
        self, marketplace: Marketplace, gateway: AsyncMock, login
    ) -> None:
        """A queued absolute write must not erase the grant when it lands."""
        admin = await login("admin")
        buyer = await login("buyer")
        buyer.subscribe("basic", now=NOW)
        gateway.increment_credits_balance.return_value = Decimal("150")

        assert await admin.add_credits_to_user("buyer", Decimal("50"), now=NOW) is True

        assert buyer.balance == Decimal("350")
        assert buyer.transactions[0].amount == Decimal("50")
        await marketplace.flush()
        gateway.set_credits_balance.assert_awaited_once_with("buyer", Decimal("350"))

    async def test_negative_grant_logs_applied_delta(
        self, marketplace: Marketplace, gateway: AsyncMock, profiles: dict[str, ProfileRecord], login
    ) -> None:
        profiles["buyer"] = make_profile("buyer", balance="10")
        admin = await login("admin")
        buyer = await login("buyer")
        gateway.increment_credits_balance.return_value = Decimal("0")

        assert await admin.add_credits_to_user("buyer", Decimal("-50"), now=NOW) is True

        assert buyer.balance == Decimal("0")
        assert buyer.transactions[0].amount == Decimal("-10")

    async def test_grant_runs_with_outbox_held(
        self, marketplace: Marketplace, gateway: AsyncMock, login
    ) -> None:
        admin = await login("admin")
        held: list[bool] = []

        async def increment(user_id, amount):
            held.append(marketplace.outbox._lock.locked())
            return Decimal("150")

        gateway.increment_credits_balance.side_effect = increment

        await admin.add_credits_to_user("buyer", Decimal("50"), now=NOW)

        assert held == [True]

    async def test_grant_unknown_user(self, gateway: AsyncMock, login) -> None:
        admin = await login("admin")

        assert await admin.add_credits_to_user("ghost", Decimal("50")) is False

    async def test_grant_gateway_failure(self, marketplace: Marketplace, gateway: AsyncMock, login) -> None:
        admin = await login("admin")
        gateway.increment_credits_balance.side_effect = GatewayError("increment_credits_balance", "down")

        assert await admin.add_credits_to_user("buyer", Decimal("50")) is False
        assert marketplace.ledger.transactions("buyer") == []

    async def test_member_cannot_grant(self, gateway: AsyncMock, login) -> None:
        buyer = await login("buyer")

        with pytest.raises(AuthorizationError):
            await buyer.add_credits_to_user("buyer", Decimal("1000"))
        gateway.increment_credits_balance.assert_not_awaited()


class TestAdminSettings:
    """Tests for runtime economics changes."""

    async def test_admin_updates_settings(self, marketplace: Marketplace, login) -> None:
        admin = await login("admin")

        admin.update_settings(content_delete_grace_hours=100.0)

        assert marketplace.settings.content_delete_grace_hours == 100.0

    async def test_longer_grace_blocks_deletion(self, marketplace: Marketplace, login) -> None:
        admin = await login("admin")
        buyer = await login("buyer")
        admin.update_settings(content_delete_grace_hours=100.0)

        assert buyer.delete_content("item-own", now=NOW) is False

    async def test_invalid_settings_rejected(self, marketplace: Marketplace, login) -> None:
        admin = await login("admin")

        with pytest.raises(ValueError):
            admin.update_settings(platform_commission=Decimal("2"))
        assert marketplace.settings.platform_commission == Decimal("0.50")

    async def test_member_cannot_update_settings(self, login) -> None:
        buyer = await login("buyer")

        with pytest.raises(AuthorizationError):
            buyer.update_settings(platform_commission=Decimal("0"))

    async def test_bulk_moderation(self, marketplace: Marketplace, login) -> None:
        admin = await login("admin")
        marketplace.content.load([*marketplace.content.items, make_item("item-3")])

        assert admin.hide_all_content_from_creator("creator") == 3
        assert admin.delete_all_content_from_creator("creator") == 3
        assert [i.item_id for i in marketplace.content.items] == ["item-own"]


class TestCreditPackages:
    """Tests for buying catalog credit packages."""

    async def test_package_credits_include_bonus(
        self, marketplace: Marketplace, gateway: AsyncMock, login
    ) -> None:
        buyer = await login("buyer")

        entry = buyer.buy_credit_package("credits_500", now=NOW)

        assert entry.amount == Decimal("525")
        assert entry.transaction_type == TransactionType.CREDIT_PURCHASE
        assert entry.description == "Purchase of 500 Credits"
        assert buyer.balance == Decimal("625")
        await marketplace.flush()
        gateway.set_credits_balance.assert_awaited_once_with("buyer", Decimal("625"))

    async def test_unknown_package(self, login) -> None:
        buyer = await login("buyer")

        with pytest.raises(CatalogEntryNotFoundError):
            buyer.buy_credit_package("credits_7")
        assert buyer.transactions == []

    async def test_requires_login(self, marketplace: Marketplace) -> None:
        with pytest.raises(NotAuthenticatedError):
            marketplace.session().buy_credit_package("credits_100")
