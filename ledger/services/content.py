"""
Content Catalog - content cards, moderation and social toggles.

Items are kept newest first. Every change is applied locally and mirrored to
the gateway through the outbox; social writes carry the resulting state so a
retried write cannot flip it back.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import Decimal
from functools import partial
from uuid import uuid4

from structlog import get_logger

from ledger.exceptions import ContentLimitError
from ledger.models.api import MediaType
from ledger.models.domain import ContentItem, MarketplaceSettings, MediaItem
from ledger.services.gateway import PersistenceGateway
from ledger.services.media import count_media, cover_image_url
from ledger.services.outbox import Outbox

logger = get_logger(__name__)


class ContentCatalog:
    """Process-wide list of content items."""

    def __init__(self, gateway: PersistenceGateway, outbox: Outbox) -> None:
        self.gateway = gateway
        self.outbox = outbox
        self._items: list[ContentItem] = []

    def load(self, items: Sequence[ContentItem]) -> None:
        """Replace the catalog with a gateway snapshot, newest first."""
        self._items = sorted(items, key=lambda item: item.created_at, reverse=True)
        logger.debug("content_catalog_loaded", count=len(self._items))

    @property
    def items(self) -> list[ContentItem]:
        return list(self._items)

    def get(self, item_id: str) -> ContentItem | None:
        return next((item for item in self._items if item.item_id == item_id), None)

    def visible_items(self, can_see_hidden: bool = False) -> list[ContentItem]:
        if can_see_hidden:
            return list(self._items)
        return [item for item in self._items if not item.is_hidden]

    def by_creator(self, creator_id: str, can_see_hidden: bool = False) -> list[ContentItem]:
        return [
            item for item in self.visible_items(can_see_hidden) if item.creator_id == creator_id
        ]

    def with_tag(self, tag: str, can_see_hidden: bool = False) -> list[ContentItem]:
        return [item for item in self.visible_items(can_see_hidden) if tag in item.tags]

    # ========================================================================
    # Publishing
    # ========================================================================

    def add_item(
        self,
        creator_id: str,
        title: str,
        price: Decimal,
        media: Sequence[MediaItem],
        settings: MarketplaceSettings,
        blur_level: int = 0,
        tags: Sequence[str] = (),
        now: datetime | None = None,
    ) -> ContentItem:
        """
        Publish a new content card at the top of the catalog.

        Raises:
            ContentLimitError: If media counts exceed the per-card limits
        """
        media_count = count_media(media)
        if media_count.images > settings.max_images_per_card:
            raise ContentLimitError(
                MediaType.IMAGE.value, media_count.images, settings.max_images_per_card
            )
        if media_count.videos > settings.max_videos_per_card:
            raise ContentLimitError(
                MediaType.VIDEO.value, media_count.videos, settings.max_videos_per_card
            )

        image_url = cover_image_url(media)
        item = ContentItem(
            item_id=str(uuid4()),
            creator_id=creator_id,
            title=title,
            price=price,
            created_at=now or datetime.now(UTC),
            blur_level=blur_level,
            tags=tuple(tags),
            image_url=image_url,
            thumbnail_url=image_url,
            media_count=media_count,
        )
        self._items.insert(0, item)
        self.outbox.enqueue(
            "insert_content",
            partial(self.gateway.insert_content, item, tuple(media)),
            key=("content", item.item_id),
        )
        logger.info(
            "content_published",
            item_id=item.item_id,
            creator_id=creator_id,
            price=str(price),
            images=media_count.images,
            videos=media_count.videos,
        )
        return item

    def delete_content(
        self, item_id: str, grace_hours: float = 24.0, now: datetime | None = None
    ) -> bool:
        """
        Creator deletion, allowed only once the item is older than the grace period.

        Returns:
            True if deleted; False for unknown items or items still in grace
        """
        item = self.get(item_id)
        if item is None:
            return False
        now = now or datetime.now(UTC)
        if item.age(now).total_seconds() <= grace_hours * 3600:
            logger.info("content_delete_rejected", item_id=item_id, reason="grace_period")
            return False
        self._remove(item_id)
        return True

    # ========================================================================
    # Moderation
    # ========================================================================

    def toggle_visibility(self, item_id: str) -> bool | None:
        """Flip is_hidden. Returns the new value, None for unknown items."""
        item = self.get(item_id)
        if item is None:
            return None
        item.is_hidden = not item.is_hidden
        self._mirror_hidden(item)
        logger.info("content_visibility_toggled", item_id=item_id, is_hidden=item.is_hidden)
        return item.is_hidden

    def remove_content(self, item_id: str) -> bool:
        """Forced removal, no age check."""
        if self.get(item_id) is None:
            return False
        self._remove(item_id)
        return True

    def hide_all_from_creator(self, creator_id: str) -> int:
        hidden = 0
        for item in self._items:
            if item.creator_id == creator_id and not item.is_hidden:
                item.is_hidden = True
                self._mirror_hidden(item)
                hidden += 1
        logger.info("creator_content_hidden", creator_id=creator_id, count=hidden)
        return hidden

    def delete_all_from_creator(self, creator_id: str) -> int:
        doomed = [item.item_id for item in self._items if item.creator_id == creator_id]
        for item_id in doomed:
            self._remove(item_id)
        logger.info("creator_content_deleted", creator_id=creator_id, count=len(doomed))
        return len(doomed)

    def _remove(self, item_id: str) -> None:
        self._items = [item for item in self._items if item.item_id != item_id]
        self.outbox.enqueue(
            "delete_content",
            partial(self.gateway.delete_content, item_id),
            key=("content", item_id),
        )
        logger.info("content_deleted", item_id=item_id)

    def _mirror_hidden(self, item: ContentItem) -> None:
        self.outbox.enqueue(
            "set_content_hidden",
            partial(self.gateway.set_content_hidden, item.item_id, item.is_hidden),
            key=("content_hidden", item.item_id),
        )

    # ========================================================================
    # Social
    # ========================================================================

    def toggle_like(self, item_id: str, user_id: str) -> bool | None:
        """Flip the user's like. Returns whether the item is now liked, None if unknown."""
        item = self.get(item_id)
        if item is None:
            return None
        liked = item.toggle_like(user_id)
        self.outbox.enqueue(
            "set_like",
            partial(self.gateway.set_like, item_id, user_id, liked),
            key=("like", item_id, user_id),
        )
        return liked

    def toggle_reaction(self, item_id: str, user_id: str, emoji: str) -> tuple[bool, str | None]:
        """
        Same emoji removes the reaction, a different one replaces it.

        Returns:
            (found, reaction after the toggle)
        """
        item = self.get(item_id)
        if item is None:
            return False, None
        reaction = item.toggle_reaction(user_id, emoji)
        self.outbox.enqueue(
            "set_reaction",
            partial(self.gateway.set_reaction, item_id, user_id, reaction),
            key=("reaction", item_id, user_id),
        )
        return True, reaction

    def record_share(self, item_id: str, user_id: str) -> bool:
        """Add the user to the item's sharers. Returns False if unknown or already shared."""
        item = self.get(item_id)
        if item is None or not item.add_share(user_id):
            return False
        self.outbox.enqueue("insert_share", partial(self.gateway.insert_share, item_id, user_id))
        return True
