"""
Domain Models - Internal business logic models using dataclasses.

Ledger records (transactions, sales, subscriptions, timeouts) are immutable
dataclasses. Users and content items carry membership sets that change through
explicit set/map operations with documented idempotence.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from ledger.models.api import MediaType, TransactionType, UserRole

if TYPE_CHECKING:
    from ledger.config import Settings


@dataclass(frozen=True)
class MediaCount:
    """Number of images and videos attached to a content item."""

    images: int = 0
    videos: int = 0


@dataclass(frozen=True)
class MediaItem:
    """One stored media file of a content item."""

    media_type: MediaType
    storage_path: str
    display_order: int = 0


@dataclass(frozen=True)
class Transaction:
    """Immutable entry in a user's credit transaction log."""

    transaction_id: str
    timestamp: datetime
    transaction_type: TransactionType
    amount: Decimal
    description: str


@dataclass(frozen=True)
class CreatorTransaction:
    """Immutable record of a sale, kept in the creator's sales stream."""

    transaction_id: str
    content_item_id: str
    title: str
    buyer_id: str
    amount_received: Decimal
    original_price: Decimal
    timestamp: datetime
    media_count: MediaCount


@dataclass(frozen=True)
class SubscriptionPlan:
    """Catalog subscription plan - mutable only through admin replacement."""

    plan_id: str
    name: str
    price: Decimal
    credits: Decimal
    features: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate plan configuration."""
        if not self.plan_id:
            raise ValueError("Plan ID required")
        if self.price < 0:
            raise ValueError(f"Plan price cannot be negative: {self.price}")
        if self.credits < 0:
            raise ValueError(f"Plan credits cannot be negative: {self.credits}")


@dataclass(frozen=True)
class CreditPackage:
    """Catalog credit package - mutable only through admin replacement."""

    package_id: str
    name: str
    credits: Decimal
    price_usd: Decimal
    bonus_credits: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        """Validate package configuration."""
        if not self.package_id:
            raise ValueError("Package ID required")
        if self.credits <= 0:
            raise ValueError(f"Credits must be positive: {self.credits}")
        if self.price_usd < 0:
            raise ValueError(f"Package price cannot be negative: {self.price_usd}")


@dataclass(frozen=True)
class UserSubscription:
    """A user's single active subscription."""

    user_id: str
    plan: SubscriptionPlan
    subscribed_at: datetime
    renews_on: datetime
    payment_method: str

    @property
    def name(self) -> str:
        return self.plan.name


@dataclass(frozen=True)
class UserTimeout:
    """Temporary moderation suspension window."""

    user_id: str
    end_time: datetime
    message: str

    def is_active(self, now: datetime) -> bool:
        """A timeout is active strictly before its end time."""
        return now < self.end_time


@dataclass
class User:
    """Directory entry for a marketplace user."""

    user_id: str
    username: str
    email: str = ""
    role: UserRole = UserRole.USER
    profile_picture_url: str = ""
    vitrine_slug: str = ""
    bio: str | None = None
    followers: set[str] = field(default_factory=set)
    following: set[str] = field(default_factory=set)


@dataclass
class ContentItem:
    """
    A purchasable content card.

    liked_by and shared_by are sets, reactions maps user id to a single emoji,
    so every social toggle keeps at most one entry per user.
    """

    item_id: str
    creator_id: str
    title: str
    price: Decimal
    created_at: datetime
    blur_level: int = 0
    tags: tuple[str, ...] = ()
    image_url: str = ""
    thumbnail_url: str = ""
    media_count: MediaCount = field(default_factory=MediaCount)
    liked_by: set[str] = field(default_factory=set)
    shared_by: set[str] = field(default_factory=set)
    reactions: dict[str, str] = field(default_factory=dict)
    is_hidden: bool = False

    def __post_init__(self) -> None:
        """Validate item constraints."""
        if self.price < 0:
            raise ValueError(f"Content price cannot be negative: {self.price}")

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def toggle_like(self, user_id: str) -> bool:
        """
        Flip the user's like. Returns True when the item is now liked.

        Two calls in a row restore the original membership.
        """
        if user_id in self.liked_by:
            self.liked_by.discard(user_id)
            return False
        self.liked_by.add(user_id)
        return True

    def toggle_reaction(self, user_id: str, emoji: str) -> str | None:
        """
        Apply a reaction toggle. Returns the user's reaction afterwards.

        Same emoji as the current one removes it, any other emoji replaces it.
        """
        if self.reactions.get(user_id) == emoji:
            del self.reactions[user_id]
            return None
        self.reactions[user_id] = emoji
        return emoji

    def add_share(self, user_id: str) -> bool:
        """Record a share. Returns False when the user had already shared."""
        if user_id in self.shared_by:
            return False
        self.shared_by.add(user_id)
        return True


@dataclass(frozen=True)
class ProfileRecord:
    """Row of the gateway's profiles table."""

    user_id: str
    username: str | None
    credits_balance: Decimal
    earned_balance: Decimal
    last_withdrawal_at: datetime | None = None
    role: UserRole = UserRole.USER
    profile_picture_url: str | None = None
    vitrine_slug: str | None = None
    bio: str | None = None


@dataclass(frozen=True)
class ProfileUpdate:
    """Partial profile update - None fields are left untouched."""

    username: str | None = None
    profile_picture_url: str | None = None
    vitrine_slug: str | None = None
    bio: str | None = None

    def changed_fields(self) -> dict[str, str]:
        return {
            name: value
            for name, value in (
                ("username", self.username),
                ("profile_picture_url", self.profile_picture_url),
                ("vitrine_slug", self.vitrine_slug),
                ("bio", self.bio),
            )
            if value is not None
        }


@dataclass(frozen=True)
class PurchaseRecord:
    """Everything the gateway needs to persist one purchase atomically."""

    buyer_id: str
    creator_id: str
    content_item_id: str
    price: Decimal
    earnings: Decimal


@dataclass(frozen=True)
class MarketplaceSettings:
    """
    Runtime-tunable marketplace economics.

    Seeded from Settings at startup, replaced as a whole by admin updates so
    that a purchase always reads one consistent commission rate.
    """

    platform_commission: Decimal
    credit_value_usd: Decimal
    withdrawal_cooldown_hours: float
    content_delete_grace_hours: float
    reward_amount: Decimal
    max_images_per_card: int
    max_videos_per_card: int
    comments_enabled: bool

    def __post_init__(self) -> None:
        """Validate economics constraints."""
        if not Decimal("0") <= self.platform_commission <= Decimal("1"):
            raise ValueError(
                f"Commission must be between 0 and 1: {self.platform_commission}"
            )
        if self.withdrawal_cooldown_hours < 0:
            raise ValueError("Withdrawal cooldown cannot be negative")
        if self.content_delete_grace_hours < 0:
            raise ValueError("Delete grace period cannot be negative")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MarketplaceSettings":
        return cls(
            platform_commission=settings.platform_commission,
            credit_value_usd=settings.credit_value_usd,
            withdrawal_cooldown_hours=settings.withdrawal_cooldown_hours,
            content_delete_grace_hours=settings.content_delete_grace_hours,
            reward_amount=settings.reward_amount,
            max_images_per_card=settings.max_images_per_card,
            max_videos_per_card=settings.max_videos_per_card,
            comments_enabled=settings.comments_enabled,
        )

    def updated(self, **changes: object) -> "MarketplaceSettings":
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @property
    def withdrawal_cooldown(self) -> timedelta:
        return timedelta(hours=self.withdrawal_cooldown_hours)

    @property
    def content_delete_grace(self) -> timedelta:
        return timedelta(hours=self.content_delete_grace_hours)
