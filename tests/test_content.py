"""
Tests for ContentCatalog: publishing, deletion, moderation and social toggles.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, make_item
from ledger.exceptions import AuthorizationError, ContentLimitError
from ledger.models.api import MediaType
from ledger.models.domain import MarketplaceSettings, MediaItem
from ledger.services.content import ContentCatalog
from ledger.services.marketplace import Marketplace
from ledger.services.media import PLACEHOLDER_IMAGE
from ledger.services.outbox import Outbox


@pytest.fixture
def catalog(gateway: AsyncMock, outbox: Outbox) -> ContentCatalog:
    catalog = ContentCatalog(gateway, outbox)
    catalog.load(
        [
            make_item("old", age=timedelta(hours=30)),
            make_item("young", age=timedelta(hours=1)),
            make_item("other", creator_id="someone", age=timedelta(hours=10)),
        ]
    )
    return catalog


def images(count: int) -> list[MediaItem]:
    return [
        MediaItem(MediaType.IMAGE, f"https://cdn.example.com/{i}.jpg", display_order=i)
        for i in range(count)
    ]


class TestPublishing:
    """Tests for adding content."""

    def test_load_orders_newest_first(self, catalog: ContentCatalog) -> None:
        assert [item.item_id for item in catalog.items] == ["young", "other", "old"]

    def test_add_item_goes_to_top(
        self, catalog: ContentCatalog, marketplace_settings: MarketplaceSettings, outbox: Outbox
    ) -> None:
        item = catalog.add_item(
            "creator", "New set", Decimal("25"), images(2), marketplace_settings, now=NOW
        )

        assert catalog.items[0] is item
        assert item.media_count.images == 2
        assert item.image_url == "https://cdn.example.com/0.jpg"
        assert item.thumbnail_url == item.image_url
        assert outbox.pending_operations() == ["insert_content"]

    def test_item_without_images_uses_placeholder(
        self, catalog: ContentCatalog, marketplace_settings: MarketplaceSettings
    ) -> None:
        video = [MediaItem(MediaType.VIDEO, "clips/a.mp4")]

        item = catalog.add_item("creator", "Clip", Decimal("5"), video, marketplace_settings)

        assert item.image_url == PLACEHOLDER_IMAGE
        assert item.media_count.videos == 1

    def test_too_many_images(
        self, catalog: ContentCatalog, marketplace_settings: MarketplaceSettings, outbox: Outbox
    ) -> None:
        with pytest.raises(ContentLimitError) as exc_info:
            catalog.add_item("creator", "Big", Decimal("5"), images(6), marketplace_settings)

        assert exc_info.value.limit == 5
        assert len(catalog.items) == 3
        assert outbox.pending_count == 0

    def test_too_many_videos(
        self, catalog: ContentCatalog, marketplace_settings: MarketplaceSettings
    ) -> None:
        videos = [MediaItem(MediaType.VIDEO, f"v{i}.mp4") for i in range(3)]

        with pytest.raises(ContentLimitError, match="video"):
            catalog.add_item("creator", "Clips", Decimal("5"), videos, marketplace_settings)

    async def test_session_publish_orders_media(self, marketplace: Marketplace, login) -> None:
        creator = await login("creator")

        item = creator.publish_content(
            "Beach",
            Decimal("12"),
            image_paths=["content-media/a.jpg", "content-media/b.jpg"],
            video_paths=["content-media/c.mp4"],
            tags=["travel"],
            now=NOW,
        )

        assert item.creator_id == "creator"
        assert item.media_count.images == 2
        assert item.media_count.videos == 1
        assert item.image_url.endswith("/content-media/a.jpg")
        assert marketplace.content.with_tag("travel")[0] is item


class TestDeletion:
    """Tests for creator deletion and forced removal."""

    def test_delete_after_grace_period(self, catalog: ContentCatalog) -> None:
        assert catalog.delete_content("old", grace_hours=24, now=NOW) is True
        assert catalog.get("old") is None

    def test_delete_within_grace_period(self, catalog: ContentCatalog) -> None:
        assert catalog.delete_content("young", grace_hours=24, now=NOW) is False
        assert catalog.get("young") is not None

    def test_delete_exactly_at_grace_boundary(self, catalog: ContentCatalog) -> None:
        assert catalog.delete_content("old", grace_hours=30, now=NOW) is False

    def test_delete_unknown(self, catalog: ContentCatalog) -> None:
        assert catalog.delete_content("missing", now=NOW) is False

    async def test_session_delete_own_content_only(self, marketplace: Marketplace, login) -> None:
        buyer = await login("buyer")

        assert buyer.delete_content("item-1", now=NOW) is False
        assert buyer.delete_content("item-own", now=NOW) is True
        assert marketplace.content.get("item-own") is None

    def test_delete_without_login(self, marketplace: Marketplace) -> None:
        assert marketplace.session().delete_content("item-1", now=NOW) is False

    def test_insert_and_delete_share_a_key(
        self,
        catalog: ContentCatalog,
        marketplace_settings: MarketplaceSettings,
        outbox: Outbox,
    ) -> None:
        item = catalog.add_item("creator", "Temp", Decimal("1"), [], marketplace_settings)

        catalog.remove_content(item.item_id)

        assert outbox.pending_operations() == ["delete_content"]

    def test_remove_ignores_age(self, catalog: ContentCatalog) -> None:
        assert catalog.remove_content("young") is True
        assert catalog.remove_content("young") is False


class TestModeration:
    """Tests for visibility moderation."""

    def test_toggle_visibility(self, catalog: ContentCatalog) -> None:
        assert catalog.toggle_visibility("old") is True
        assert [i.item_id for i in catalog.visible_items()] == ["young", "other"]
        assert len(catalog.visible_items(can_see_hidden=True)) == 3

        assert catalog.toggle_visibility("old") is False
        assert catalog.toggle_visibility("missing") is None

    def test_hide_all_from_creator(self, catalog: ContentCatalog) -> None:
        catalog.toggle_visibility("old")

        assert catalog.hide_all_from_creator("creator") == 1
        assert catalog.visible_items() == [catalog.get("other")]

    def test_delete_all_from_creator(self, catalog: ContentCatalog) -> None:
        assert catalog.delete_all_from_creator("creator") == 2
        assert [i.item_id for i in catalog.items] == ["other"]

    async def test_admin_sees_hidden_content(self, marketplace: Marketplace, login) -> None:
        admin = await login("admin")
        buyer = await login("buyer")

        assert admin.toggle_content_visibility("item-1") is True

        assert "item-1" in {i.item_id for i in admin.visible_content()}
        assert "item-1" not in {i.item_id for i in buyer.visible_content()}

    async def test_member_cannot_moderate(self, login) -> None:
        buyer = await login("buyer")

        with pytest.raises(AuthorizationError):
            buyer.remove_content("item-1")


class TestSocial:
    """Tests for likes, reactions and shares."""

    async def test_like_twice_restores(self, catalog: ContentCatalog, outbox: Outbox) -> None:
        assert catalog.toggle_like("old", "u1") is True
        assert catalog.toggle_like("old", "u1") is False

        assert catalog.get("old").liked_by == set()
        assert outbox.pending_operations() == ["set_like"]

    async def test_like_write_carries_final_state(
        self, catalog: ContentCatalog, gateway: AsyncMock, outbox: Outbox
    ) -> None:
        catalog.toggle_like("old", "u1")
        catalog.toggle_like("old", "u1")

        await outbox.drain()

        gateway.set_like.assert_awaited_once_with("old", "u1", False)

    def test_like_unknown_item(self, catalog: ContentCatalog) -> None:
        assert catalog.toggle_like("missing", "u1") is None

    def test_reaction_toggle(self, catalog: ContentCatalog) -> None:
        assert catalog.toggle_reaction("old", "u1", "🔥") == (True, "🔥")
        assert catalog.toggle_reaction("old", "u1", "😍") == (True, "😍")
        assert catalog.get("old").reactions == {"u1": "😍"}
        assert catalog.toggle_reaction("old", "u1", "😍") == (True, None)
        assert catalog.get("old").reactions == {}

    def test_reaction_unknown_item(self, catalog: ContentCatalog) -> None:
        assert catalog.toggle_reaction("missing", "u1", "🔥") == (False, None)

    def test_share_once_per_user(self, catalog: ContentCatalog, outbox: Outbox) -> None:
        assert catalog.record_share("old", "u1") is True
        assert catalog.record_share("old", "u1") is False
        assert catalog.record_share("old", "u2") is True

        assert catalog.get("old").shared_by == {"u1", "u2"}
        assert outbox.pending_operations() == ["insert_share", "insert_share"]
