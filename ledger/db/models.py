"""
Database Models - SQLAlchemy ORM models for the persistence gateway schema.

All columns use Mapped[] type annotations. Every (item, user), (user, item)
and (follower, following) association is unique at the storage layer.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

CREDIT_AMOUNT = Numeric(14, 2)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Profile(Base):
    """
    ORM model for profiles table.

    One row per user: spendable balance, creator earnings, payout cooldown
    anchor and public profile fields.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    # Public profile
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    profile_picture_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    vitrine_slug: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    # Balances
    credits_balance: Mapped[Decimal] = mapped_column(CREDIT_AMOUNT, nullable=False, default=0)
    earned_balance: Mapped[Decimal] = mapped_column(CREDIT_AMOUNT, nullable=False, default=0)

    # Withdrawal cooldown anchor
    last_withdrawal_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_balance >= 0", name="ck_credits_balance_non_negative"),
        CheckConstraint("earned_balance >= 0", name="ck_earned_balance_non_negative"),
        CheckConstraint(
            "role IN ('user', 'creator', 'developer')", name="ck_profile_role"
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Profile(id={self.id}, credits={self.credits_balance}, "
            f"earned={self.earned_balance})>"
        )


class ContentItemRow(Base):
    """ORM model for content_items table."""

    __tablename__ = "content_items"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    creator_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(CREDIT_AMOUNT, nullable=False, default=0)
    blur_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tags: Mapped[list[str]] = mapped_column(ARRAY(String(50)), nullable=False, default=list)
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    media: Mapped[list["MediaRow"]] = relationship(
        order_by="MediaRow.display_order", cascade="all, delete-orphan"
    )
    likes: Mapped[list["LikeRow"]] = relationship(cascade="all, delete-orphan")
    shares: Mapped[list["ShareRow"]] = relationship(cascade="all, delete-orphan")
    reactions: Mapped[list["ReactionRow"]] = relationship(cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_content_price_non_negative"),
        Index("idx_content_items_visible_created", "is_hidden", "created_at"),
        Index("idx_content_items_creator_id", "creator_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<ContentItemRow(id={self.id}, creator_id={self.creator_id}, price={self.price})>"


class MediaRow(Base):
    """ORM model for media table - ordered files per content item."""

    __tablename__ = "media"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    content_item_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False
    )
    media_type: Mapped[str] = mapped_column(String(10), nullable=False)
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("media_type IN ('image', 'video')", name="ck_media_type"),
        Index("idx_media_content_item_id", "content_item_id"),
    )


class LikeRow(Base):
    """ORM model for likes table - at most one like per (item, user)."""

    __tablename__ = "likes"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    content_item_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (UniqueConstraint("content_item_id", "user_id", name="uq_like_item_user"),)


class ShareRow(Base):
    """ORM model for shares table - at most one share per (item, user)."""

    __tablename__ = "shares"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    content_item_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (UniqueConstraint("content_item_id", "user_id", name="uq_share_item_user"),)


class ReactionRow(Base):
    """ORM model for reactions table - at most one emoji per (item, user)."""

    __tablename__ = "reactions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    content_item_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    emoji: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("content_item_id", "user_id", name="uq_reaction_item_user"),
    )


class UnlockedContent(Base):
    """
    ORM model for unlocked_content table.

    Insert-only entitlement rows; the unique pair makes a grant idempotent.
    """

    __tablename__ = "unlocked_content"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content_item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("user_id", "content_item_id", name="uq_unlocked_user_item"),
        Index("idx_unlocked_content_user_id", "user_id"),
    )


class Follower(Base):
    """ORM model for followers table."""

    __tablename__ = "followers"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    follower_id: Mapped[str] = mapped_column(String(255), nullable=False)
    following_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follower_pair"),
        CheckConstraint("follower_id <> following_id", name="ck_no_self_follow"),
    )
