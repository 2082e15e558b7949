"""
API Models - Pydantic models for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TransactionType(str, Enum):
    """Credit transaction type enumeration."""

    PURCHASE = "purchase"
    REWARD = "reward"
    SUBSCRIPTION = "subscription"
    CREDIT_PURCHASE = "credit_purchase"
    ADMIN_GRANT = "admin_grant"


class UserRole(str, Enum):
    """User role enumeration - mapped to capabilities in services.permissions."""

    USER = "user"
    CREATOR = "creator"
    DEVELOPER = "developer"


class MediaType(str, Enum):
    """Stored media type enumeration."""

    IMAGE = "image"
    VIDEO = "video"


# ============================================================================
# Session Models
# ============================================================================


class LoginRequest(BaseModel):
    """POST /v1/session/login request body."""

    email: str | None = Field(None, max_length=255)
    username: str | None = Field(None, min_length=1, max_length=100)


class OperationResult(BaseModel):
    """Outcome of a ledger operation whose only failure channel is a boolean."""

    success: bool
    message: str | None = None


class AccountResponse(BaseModel):
    """GET /v1/account response."""

    user_id: str
    username: str
    role: UserRole
    balance: Decimal
    earned_balance: Decimal
    unlocked_content_ids: list[str]
    withdrawal_time_end: datetime
    subscription: "SubscriptionResponse | None" = None
    timed_out: bool = False


# ============================================================================
# Transaction Models
# ============================================================================


class TransactionItem(BaseModel):
    """Single transaction in list response."""

    transaction_id: str
    timestamp: datetime
    transaction_type: TransactionType
    amount: Decimal
    description: str


class TransactionListResponse(BaseModel):
    """GET /v1/account/transactions response."""

    transactions: list[TransactionItem]
    total_count: int


class CreatorTransactionItem(BaseModel):
    """Single sale in creator sales list."""

    transaction_id: str
    content_item_id: str
    title: str
    buyer_id: str
    amount_received: Decimal
    original_price: Decimal
    timestamp: datetime
    images: int
    videos: int


class CreatorTransactionListResponse(BaseModel):
    """GET /v1/account/sales response."""

    sales: list[CreatorTransactionItem]
    total_count: int


# ============================================================================
# Purchase / Subscription Models
# ============================================================================


class PurchaseRequest(BaseModel):
    """POST /v1/purchases request body."""

    content_item_id: str = Field(..., min_length=1, max_length=255)


class SubscribeRequest(BaseModel):
    """POST /v1/subscription request body."""

    plan_id: str = Field(..., min_length=1, max_length=100)


class SubscriptionResponse(BaseModel):
    """Active subscription details."""

    plan_id: str
    name: str
    credits: Decimal
    renews_on: datetime
    payment_method: str


class PlanResponse(BaseModel):
    """Catalog subscription plan."""

    plan_id: str
    name: str
    price: Decimal
    credits: Decimal
    features: list[str]


class CreditPackageResponse(BaseModel):
    """Catalog credit package."""

    package_id: str
    name: str
    credits: Decimal
    price_usd: Decimal
    bonus_credits: Decimal


class CatalogResponse(BaseModel):
    """GET /v1/catalog response."""

    plans: list[PlanResponse]
    credit_packages: list[CreditPackageResponse]


# ============================================================================
# Content Models
# ============================================================================


class CreateContentRequest(BaseModel):
    """POST /v1/content request body."""

    title: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0)
    blur_level: int = Field(0, ge=0, le=100)
    tags: list[str] = Field(default_factory=list)
    image_paths: list[str] = Field(default_factory=list)
    video_paths: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        """Strip tags and drop empty ones."""
        return [tag.strip() for tag in v if tag.strip()]


class ReactionRequest(BaseModel):
    """POST /v1/content/{item_id}/reactions request body."""

    emoji: str = Field(..., min_length=1, max_length=16)


class ContentItemResponse(BaseModel):
    """Content card as seen by the viewer."""

    item_id: str
    creator_id: str
    title: str
    price: Decimal
    blur_level: int
    tags: list[str]
    created_at: datetime
    image_url: str
    thumbnail_url: str
    images: int
    videos: int
    like_count: int
    share_count: int
    reactions: dict[str, str]
    is_hidden: bool
    unlocked: bool


class ContentListResponse(BaseModel):
    """GET /v1/content response."""

    items: list[ContentItemResponse]
    total_count: int


# ============================================================================
# Social Models
# ============================================================================


class ProfileUpdateRequest(BaseModel):
    """PATCH /v1/profile request body."""

    username: str | None = Field(None, min_length=1, max_length=100)
    profile_picture_url: str | None = Field(None, max_length=2048)
    vitrine_slug: str | None = Field(None, min_length=1, max_length=100)
    bio: str | None = Field(None, max_length=2000)


class UserResponse(BaseModel):
    """Public directory entry."""

    user_id: str
    username: str
    role: UserRole
    profile_picture_url: str
    vitrine_slug: str
    bio: str | None
    follower_count: int
    following_count: int
    vitrine_url: str


# ============================================================================
# Admin Models
# ============================================================================


class GrantCreditsRequest(BaseModel):
    """POST /v1/admin/users/{user_id}/credits request body."""

    amount: Decimal


class PlanUpdateRequest(BaseModel):
    """PUT /v1/admin/plans/{plan_id} request body."""

    name: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., ge=0)
    credits: Decimal = Field(..., ge=0)
    features: list[str] = Field(default_factory=list)


class CreditPackageUpdateRequest(BaseModel):
    """PUT /v1/admin/credit-packages/{package_id} request body."""

    name: str = Field(..., min_length=1, max_length=100)
    credits: Decimal = Field(..., gt=0)
    price_usd: Decimal = Field(..., ge=0)
    bonus_credits: Decimal = Field(Decimal("0"), ge=0)


class TimeoutRequest(BaseModel):
    """POST /v1/admin/users/{user_id}/timeout request body."""

    duration_hours: float = Field(..., gt=0)
    message: str = Field(..., min_length=1, max_length=500)


class TimeoutResponse(BaseModel):
    """Moderation timeout details."""

    user_id: str
    end_time: datetime
    message: str
    active: bool


class SettingsUpdateRequest(BaseModel):
    """PATCH /v1/admin/settings request body - omitted fields are unchanged."""

    platform_commission: Decimal | None = Field(None, ge=0, le=1)
    credit_value_usd: Decimal | None = Field(None, gt=0)
    withdrawal_cooldown_hours: float | None = Field(None, ge=0)
    content_delete_grace_hours: float | None = Field(None, ge=0)
    reward_amount: Decimal | None = Field(None, ge=0)
    max_images_per_card: int | None = Field(None, ge=0)
    max_videos_per_card: int | None = Field(None, ge=0)
    comments_enabled: bool | None = None


class SettingsResponse(BaseModel):
    """Current marketplace economics."""

    platform_commission: Decimal
    credit_value_usd: Decimal
    withdrawal_cooldown_hours: float
    content_delete_grace_hours: float
    reward_amount: Decimal
    max_images_per_card: int
    max_videos_per_card: int
    comments_enabled: bool


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    service: str
    version: str
    pending_writes: int


AccountResponse.model_rebuild()
