"""
Persistence Gateway - the remote row store the ledger mirrors its state to.

The core only talks to the PersistenceGateway protocol. SqlPersistenceGateway
implements it over async SQLAlchemy. Every driver failure surfaces as
GatewayError; not-found lookups return None or empty lists.

Social writes set a target state (liked / not liked, emoji / no emoji) instead
of toggling remotely, so a retried write is idempotent.
"""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from structlog import get_logger

from ledger.db.models import (
    ContentItemRow,
    Follower,
    LikeRow,
    MediaRow,
    Profile,
    ReactionRow,
    ShareRow,
    UnlockedContent,
)
from ledger.exceptions import GatewayError
from ledger.models.api import MediaType, UserRole
from ledger.models.domain import (
    ContentItem,
    MediaItem,
    ProfileRecord,
    ProfileUpdate,
    PurchaseRecord,
)
from ledger.services.media import count_media, cover_image_url

logger = get_logger(__name__)


class PersistenceGateway(Protocol):
    """Row-oriented contract the ledger needs from the remote store."""

    async def get_profile(self, user_id: str) -> ProfileRecord | None: ...

    async def list_profiles(self) -> list[ProfileRecord]: ...

    async def find_profile_by_slug(self, slug: str) -> ProfileRecord | None: ...

    async def create_profile(self, record: ProfileRecord) -> None: ...

    async def update_profile(self, user_id: str, changes: ProfileUpdate) -> None: ...

    async def set_credits_balance(self, user_id: str, amount: Decimal) -> None: ...

    async def increment_credits_balance(self, user_id: str, delta: Decimal) -> Decimal | None: ...

    async def increment_earned_balance(self, user_id: str, delta: Decimal) -> None: ...

    async def set_last_withdrawal(self, user_id: str, at: datetime) -> None: ...

    async def record_purchase(self, record: PurchaseRecord) -> None: ...

    async def insert_unlock(self, user_id: str, item_id: str) -> None: ...

    async def list_unlocked(self, user_id: str) -> list[str]: ...

    async def list_visible_content(self) -> list[ContentItem]: ...

    async def insert_content(self, item: ContentItem, media: Sequence[MediaItem]) -> None: ...

    async def delete_content(self, item_id: str) -> None: ...

    async def set_content_hidden(self, item_id: str, hidden: bool) -> None: ...

    async def insert_follow(self, follower_id: str, following_id: str) -> None: ...

    async def delete_follow(self, follower_id: str, following_id: str) -> None: ...

    async def set_like(self, item_id: str, user_id: str, liked: bool) -> None: ...

    async def set_reaction(self, item_id: str, user_id: str, emoji: str | None) -> None: ...

    async def insert_share(self, item_id: str, user_id: str) -> None: ...


class SqlPersistenceGateway:
    """PersistenceGateway backed by PostgreSQL through async SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize gateway with a session factory; one session per call."""
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.error("gateway_operation_failed", operation=operation, error=str(exc))
            raise GatewayError(operation, str(exc)) from exc

    # ========================================================================
    # Profiles
    # ========================================================================

    async def get_profile(self, user_id: str) -> ProfileRecord | None:
        async with self._session("get_profile") as session:
            result = await session.execute(select(Profile).where(Profile.id == user_id))
            profile = result.scalar_one_or_none()
        return _profile_to_domain(profile) if profile else None

    async def list_profiles(self) -> list[ProfileRecord]:
        async with self._session("list_profiles") as session:
            result = await session.execute(select(Profile))
            profiles = result.scalars().all()
        return [_profile_to_domain(p) for p in profiles]

    async def find_profile_by_slug(self, slug: str) -> ProfileRecord | None:
        async with self._session("find_profile_by_slug") as session:
            result = await session.execute(select(Profile).where(Profile.vitrine_slug == slug))
            profile = result.scalar_one_or_none()
        return _profile_to_domain(profile) if profile else None

    async def create_profile(self, record: ProfileRecord) -> None:
        """Insert a profile row; an existing row with the same id is left as is."""
        async with self._session("create_profile") as session:
            await session.execute(
                pg_insert(Profile)
                .values(
                    id=record.user_id,
                    username=record.username,
                    role=record.role.value,
                    credits_balance=record.credits_balance,
                    earned_balance=record.earned_balance,
                    profile_picture_url=record.profile_picture_url,
                    vitrine_slug=record.vitrine_slug,
                    bio=record.bio,
                )
                .on_conflict_do_nothing(index_elements=[Profile.id])
            )
            await session.commit()

    async def update_profile(self, user_id: str, changes: ProfileUpdate) -> None:
        fields = changes.changed_fields()
        if not fields:
            return
        async with self._session("update_profile") as session:
            await session.execute(update(Profile).where(Profile.id == user_id).values(**fields))
            await session.commit()

    # ========================================================================
    # Balances
    # ========================================================================

    async def set_credits_balance(self, user_id: str, amount: Decimal) -> None:
        async with self._session("set_credits_balance") as session:
            await session.execute(
                update(Profile).where(Profile.id == user_id).values(credits_balance=amount)
            )
            await session.commit()

    async def increment_credits_balance(self, user_id: str, delta: Decimal) -> Decimal | None:
        """Atomically add delta (clamped at zero). Returns the new balance, None if no profile."""
        async with self._session("increment_credits_balance") as session:
            result = await session.execute(
                update(Profile)
                .where(Profile.id == user_id)
                .values(credits_balance=func.greatest(Profile.credits_balance + delta, 0))
                .returning(Profile.credits_balance)
            )
            new_balance = result.scalar_one_or_none()
            await session.commit()
        return new_balance

    async def increment_earned_balance(self, user_id: str, delta: Decimal) -> None:
        async with self._session("increment_earned_balance") as session:
            await session.execute(
                update(Profile)
                .where(Profile.id == user_id)
                .values(earned_balance=Profile.earned_balance + delta)
            )
            await session.commit()

    async def set_last_withdrawal(self, user_id: str, at: datetime) -> None:
        async with self._session("set_last_withdrawal") as session:
            await session.execute(
                update(Profile).where(Profile.id == user_id).values(last_withdrawal_at=at)
            )
            await session.commit()

    async def record_purchase(self, record: PurchaseRecord) -> None:
        """
        Persist a purchase in ONE transaction.

        1. Atomic buyer debit, guarded by credits_balance >= price
        2. Atomic creator earnings increment (no read-modify-write)
        3. Entitlement insert, ignored if the pair already exists
        """
        async with self._session("record_purchase") as session:
            debit = await session.execute(
                update(Profile)
                .where(Profile.id == record.buyer_id, Profile.credits_balance >= record.price)
                .values(credits_balance=Profile.credits_balance - record.price)
                .returning(Profile.credits_balance)
            )
            if debit.scalar_one_or_none() is None:
                await session.rollback()
                raise GatewayError("record_purchase", "buyer debit rejected by store")

            await session.execute(
                update(Profile)
                .where(Profile.id == record.creator_id)
                .values(earned_balance=Profile.earned_balance + record.earnings)
            )
            await session.execute(
                pg_insert(UnlockedContent)
                .values(user_id=record.buyer_id, content_item_id=record.content_item_id)
                .on_conflict_do_nothing(constraint="uq_unlocked_user_item")
            )
            await session.commit()

    async def insert_unlock(self, user_id: str, item_id: str) -> None:
        async with self._session("insert_unlock") as session:
            await session.execute(
                pg_insert(UnlockedContent)
                .values(user_id=user_id, content_item_id=item_id)
                .on_conflict_do_nothing(constraint="uq_unlocked_user_item")
            )
            await session.commit()

    async def list_unlocked(self, user_id: str) -> list[str]:
        async with self._session("list_unlocked") as session:
            result = await session.execute(
                select(UnlockedContent.content_item_id).where(UnlockedContent.user_id == user_id)
            )
            return list(result.scalars().all())

    # ========================================================================
    # Content
    # ========================================================================

    async def list_visible_content(self) -> list[ContentItem]:
        stmt = (
            select(ContentItemRow)
            .where(ContentItemRow.is_hidden.is_(False))
            .order_by(ContentItemRow.created_at.desc())
            .options(
                selectinload(ContentItemRow.media),
                selectinload(ContentItemRow.likes),
                selectinload(ContentItemRow.shares),
                selectinload(ContentItemRow.reactions),
            )
        )
        async with self._session("list_visible_content") as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
            return [_content_to_domain(row) for row in rows]

    async def insert_content(self, item: ContentItem, media: Sequence[MediaItem]) -> None:
        async with self._session("insert_content") as session:
            session.add(
                ContentItemRow(
                    id=item.item_id,
                    creator_id=item.creator_id,
                    title=item.title,
                    price=item.price,
                    blur_level=item.blur_level,
                    tags=list(item.tags),
                    is_hidden=item.is_hidden,
                    created_at=item.created_at,
                    media=[
                        MediaRow(
                            media_type=m.media_type.value,
                            storage_path=m.storage_path,
                            display_order=m.display_order,
                        )
                        for m in media
                    ],
                )
            )
            await session.commit()

    async def delete_content(self, item_id: str) -> None:
        async with self._session("delete_content") as session:
            await session.execute(delete(ContentItemRow).where(ContentItemRow.id == item_id))
            await session.commit()

    async def set_content_hidden(self, item_id: str, hidden: bool) -> None:
        async with self._session("set_content_hidden") as session:
            await session.execute(
                update(ContentItemRow).where(ContentItemRow.id == item_id).values(is_hidden=hidden)
            )
            await session.commit()

    # ========================================================================
    # Social
    # ========================================================================

    async def insert_follow(self, follower_id: str, following_id: str) -> None:
        async with self._session("insert_follow") as session:
            await session.execute(
                pg_insert(Follower)
                .values(follower_id=follower_id, following_id=following_id)
                .on_conflict_do_nothing(constraint="uq_follower_pair")
            )
            await session.commit()

    async def delete_follow(self, follower_id: str, following_id: str) -> None:
        async with self._session("delete_follow") as session:
            await session.execute(
                delete(Follower).where(
                    Follower.follower_id == follower_id,
                    Follower.following_id == following_id,
                )
            )
            await session.commit()

    async def set_like(self, item_id: str, user_id: str, liked: bool) -> None:
        async with self._session("set_like") as session:
            if liked:
                stmt = (
                    pg_insert(LikeRow)
                    .values(content_item_id=item_id, user_id=user_id)
                    .on_conflict_do_nothing(constraint="uq_like_item_user")
                )
            else:
                stmt = delete(LikeRow).where(
                    LikeRow.content_item_id == item_id, LikeRow.user_id == user_id
                )
            await session.execute(stmt)
            await session.commit()

    async def set_reaction(self, item_id: str, user_id: str, emoji: str | None) -> None:
        async with self._session("set_reaction") as session:
            if emoji is None:
                stmt = delete(ReactionRow).where(
                    ReactionRow.content_item_id == item_id, ReactionRow.user_id == user_id
                )
            else:
                stmt = (
                    pg_insert(ReactionRow)
                    .values(content_item_id=item_id, user_id=user_id, emoji=emoji)
                    .on_conflict_do_update(
                        constraint="uq_reaction_item_user", set_={"emoji": emoji}
                    )
                )
            await session.execute(stmt)
            await session.commit()

    async def insert_share(self, item_id: str, user_id: str) -> None:
        async with self._session("insert_share") as session:
            await session.execute(
                pg_insert(ShareRow)
                .values(content_item_id=item_id, user_id=user_id)
                .on_conflict_do_nothing(constraint="uq_share_item_user")
            )
            await session.commit()


# ============================================================================
# Row -> domain conversion
# ============================================================================


def _profile_to_domain(profile: Profile) -> ProfileRecord:
    """Convert ORM profile to domain record."""
    return ProfileRecord(
        user_id=profile.id,
        username=profile.username,
        credits_balance=Decimal(profile.credits_balance),
        earned_balance=Decimal(profile.earned_balance),
        last_withdrawal_at=profile.last_withdrawal_at,
        role=UserRole(profile.role),
        profile_picture_url=profile.profile_picture_url,
        vitrine_slug=profile.vitrine_slug,
        bio=profile.bio,
    )


def _content_to_domain(row: ContentItemRow) -> ContentItem:
    """Convert ORM content row (with joined media and social rows) to a ContentItem."""
    media = [
        MediaItem(
            media_type=MediaType(m.media_type),
            storage_path=m.storage_path,
            display_order=m.display_order,
        )
        for m in row.media
    ]
    image_url = cover_image_url(media)
    return ContentItem(
        item_id=row.id,
        creator_id=row.creator_id,
        title=row.title,
        price=Decimal(row.price),
        blur_level=row.blur_level,
        tags=tuple(row.tags or ()),
        created_at=row.created_at,
        image_url=image_url,
        thumbnail_url=image_url,
        media_count=count_media(media),
        liked_by={like.user_id for like in row.likes},
        shared_by={share.user_id for share in row.shares},
        reactions={r.user_id: r.emoji for r in row.reactions},
        is_hidden=row.is_hidden,
    )
