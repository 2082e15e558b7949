"""
API Routes - FastAPI endpoints for the session user's ledger operations.

Precondition failures come back as OperationResult(success=False); they are
not HTTP errors.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from structlog import get_logger

from ledger.api.dependencies import (
    SessionRegistry,
    get_current_session,
    get_marketplace,
    get_session_registry,
    get_user_id,
    require_capability,
)
from ledger.exceptions import CatalogEntryNotFoundError, ContentLimitError
from ledger.models.api import (
    AccountResponse,
    CatalogResponse,
    ContentItemResponse,
    ContentListResponse,
    CreateContentRequest,
    CreatorTransactionItem,
    CreatorTransactionListResponse,
    CreditPackageResponse,
    LoginRequest,
    OperationResult,
    PlanResponse,
    ProfileUpdateRequest,
    PurchaseRequest,
    ReactionRequest,
    SubscribeRequest,
    SubscriptionResponse,
    TransactionItem,
    TransactionListResponse,
    UserResponse,
)
from ledger.models.domain import (
    ContentItem,
    CreditPackage,
    ProfileUpdate,
    SubscriptionPlan,
    Transaction,
    User,
    UserSubscription,
)
from ledger.services.directory import vitrine_url
from ledger.services.marketplace import Marketplace, MarketplaceSession
from ledger.services.permissions import Capability

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Response builders
# ============================================================================


def transaction_item(transaction: Transaction) -> TransactionItem:
    return TransactionItem(
        transaction_id=transaction.transaction_id,
        timestamp=transaction.timestamp,
        transaction_type=transaction.transaction_type,
        amount=transaction.amount,
        description=transaction.description,
    )


def subscription_response(subscription: UserSubscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        plan_id=subscription.plan.plan_id,
        name=subscription.name,
        credits=subscription.plan.credits,
        renews_on=subscription.renews_on,
        payment_method=subscription.payment_method,
    )


def plan_response(plan: SubscriptionPlan) -> PlanResponse:
    return PlanResponse(
        plan_id=plan.plan_id,
        name=plan.name,
        price=plan.price,
        credits=plan.credits,
        features=list(plan.features),
    )


def credit_package_response(package: CreditPackage) -> CreditPackageResponse:
    return CreditPackageResponse(
        package_id=package.package_id,
        name=package.name,
        credits=package.credits,
        price_usd=package.price_usd,
        bonus_credits=package.bonus_credits,
    )


def content_item_response(item: ContentItem, unlocked: bool) -> ContentItemResponse:
    return ContentItemResponse(
        item_id=item.item_id,
        creator_id=item.creator_id,
        title=item.title,
        price=item.price,
        blur_level=item.blur_level,
        tags=list(item.tags),
        created_at=item.created_at,
        image_url=item.image_url,
        thumbnail_url=item.thumbnail_url,
        images=item.media_count.images,
        videos=item.media_count.videos,
        like_count=len(item.liked_by),
        share_count=len(item.shared_by),
        reactions=dict(item.reactions),
        is_hidden=item.is_hidden,
        unlocked=unlocked,
    )


def user_response(user: User) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        username=user.username,
        role=user.role,
        profile_picture_url=user.profile_picture_url,
        vitrine_slug=user.vitrine_slug,
        bio=user.bio,
        follower_count=len(user.followers),
        following_count=len(user.following),
        vitrine_url=vitrine_url(user) or "",
    )


def account_response(session: MarketplaceSession) -> AccountResponse:
    user = session.user
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged in")
    subscription = session.subscription
    return AccountResponse(
        user_id=user.user_id,
        username=user.username,
        role=user.role,
        balance=session.balance,
        earned_balance=session.earned_balance,
        unlocked_content_ids=sorted(session.unlocked_content_ids),
        withdrawal_time_end=session.withdrawal_time_end,
        subscription=subscription_response(subscription) if subscription else None,
        timed_out=session.is_timed_out(),
    )


# ============================================================================
# Session
# ============================================================================


@router.post("/v1/session/login", response_model=AccountResponse)
async def login(
    request: LoginRequest,
    user_id: str = Depends(get_user_id),
    marketplace: Marketplace = Depends(get_marketplace),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AccountResponse:
    """
    Start a session for the caller.

    With an email the user is registered on first sight; without one the user
    must already exist.
    """
    session = registry.get(user_id) or marketplace.session()

    if request.email:
        await session.register_or_login(user_id, request.email, request.username)
    elif not await session.login(user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User not found: {user_id}",
        )

    registry.put(user_id, session)
    return account_response(session)


@router.post("/v1/session/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> Response:
    session = registry.remove(user_id)
    if session is not None:
        session.logout()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Account
# ============================================================================


@router.get("/v1/account", response_model=AccountResponse)
async def get_account(
    session: MarketplaceSession = Depends(get_current_session),
) -> AccountResponse:
    return account_response(session)


@router.get("/v1/account/transactions", response_model=TransactionListResponse)
async def list_transactions(
    session: MarketplaceSession = Depends(get_current_session),
) -> TransactionListResponse:
    """Credit transactions of the session user, newest first."""
    transactions = session.transactions
    return TransactionListResponse(
        transactions=[transaction_item(t) for t in transactions],
        total_count=len(transactions),
    )


@router.get("/v1/account/sales", response_model=CreatorTransactionListResponse)
async def list_sales(
    session: MarketplaceSession = Depends(get_current_session),
) -> CreatorTransactionListResponse:
    """Sales of the session user's content, newest first."""
    sales = session.creator_transactions
    return CreatorTransactionListResponse(
        sales=[
            CreatorTransactionItem(
                transaction_id=sale.transaction_id,
                content_item_id=sale.content_item_id,
                title=sale.title,
                buyer_id=sale.buyer_id,
                amount_received=sale.amount_received,
                original_price=sale.original_price,
                timestamp=sale.timestamp,
                images=sale.media_count.images,
                videos=sale.media_count.videos,
            )
            for sale in sales
        ],
        total_count=len(sales),
    )


@router.post(
    "/v1/account/rewards",
    response_model=TransactionItem,
    status_code=status.HTTP_201_CREATED,
)
async def claim_reward(
    session: MarketplaceSession = Depends(get_current_session),
) -> TransactionItem:
    """Credit the configured reward for watching an ad."""
    return transaction_item(session.add_reward())


# ============================================================================
# Purchases and subscriptions
# ============================================================================


@router.post("/v1/purchases", response_model=OperationResult)
async def purchase_content(
    request: PurchaseRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.PURCHASE)),
) -> OperationResult:
    success = await session.purchase(request.content_item_id)
    return OperationResult(success=success)


@router.get("/v1/catalog", response_model=CatalogResponse)
async def get_catalog(marketplace: Marketplace = Depends(get_marketplace)) -> CatalogResponse:
    return CatalogResponse(
        plans=[plan_response(p) for p in marketplace.catalog.plans],
        credit_packages=[credit_package_response(p) for p in marketplace.catalog.credit_packages],
    )


@router.post(
    "/v1/credit-packages/{package_id}/purchase",
    response_model=TransactionItem,
    status_code=status.HTTP_201_CREATED,
)
async def buy_credit_package(
    package_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.PURCHASE)),
) -> TransactionItem:
    """Credit a package whose payment has already been settled."""
    try:
        transaction = session.buy_credit_package(package_id)
    except CatalogEntryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return transaction_item(transaction)


@router.post("/v1/subscription", response_model=SubscriptionResponse)
async def subscribe(
    request: SubscribeRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.SUBSCRIBE)),
) -> SubscriptionResponse:
    try:
        subscription = session.subscribe(request.plan_id)
    except CatalogEntryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return subscription_response(subscription)


@router.delete("/v1/subscription", response_model=OperationResult)
async def cancel_subscription(
    session: MarketplaceSession = Depends(require_capability(Capability.SUBSCRIBE)),
) -> OperationResult:
    return OperationResult(success=session.cancel_subscription())


@router.post("/v1/withdrawals", response_model=OperationResult)
async def request_withdrawal(
    session: MarketplaceSession = Depends(require_capability(Capability.WITHDRAW_EARNINGS)),
) -> OperationResult:
    """Record a withdrawal; rejected while the cooldown is running."""
    success = await session.process_withdrawal()
    if success:
        return OperationResult(success=True)
    remaining = session.remaining_cooldown()
    return OperationResult(
        success=False,
        message=f"Next withdrawal in {int(remaining.total_seconds())} seconds",
    )


# ============================================================================
# Content
# ============================================================================


@router.get("/v1/content", response_model=ContentListResponse)
async def list_content(
    tag: str | None = None,
    creator_id: str | None = None,
    session: MarketplaceSession = Depends(get_current_session),
) -> ContentListResponse:
    """Content visible to the caller, newest first; admins also see hidden items."""
    items = session.visible_content()
    if tag:
        items = [item for item in items if tag in item.tags]
    if creator_id:
        items = [item for item in items if item.creator_id == creator_id]
    return ContentListResponse(
        items=[content_item_response(item, session.is_unlocked(item.item_id)) for item in items],
        total_count=len(items),
    )


@router.post(
    "/v1/content",
    response_model=ContentItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def publish_content(
    request: CreateContentRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.PUBLISH_CONTENT)),
) -> ContentItemResponse:
    try:
        item = session.publish_content(
            title=request.title,
            price=request.price,
            image_paths=request.image_paths,
            video_paths=request.video_paths,
            blur_level=request.blur_level,
            tags=request.tags,
        )
    except ContentLimitError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return content_item_response(item, unlocked=False)


@router.delete("/v1/content/{item_id}", response_model=OperationResult)
async def delete_content(
    item_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.PUBLISH_CONTENT)),
) -> OperationResult:
    """Delete own content; only allowed after the grace period."""
    return OperationResult(success=session.delete_content(item_id))


@router.post("/v1/content/{item_id}/like", response_model=OperationResult)
async def toggle_like(
    item_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.INTERACT)),
) -> OperationResult:
    liked = session.toggle_like(item_id)
    if liked is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    return OperationResult(success=True, message="liked" if liked else "unliked")


@router.post("/v1/content/{item_id}/reactions", response_model=OperationResult)
async def toggle_reaction(
    item_id: str,
    request: ReactionRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.INTERACT)),
) -> OperationResult:
    found, reaction = session.toggle_reaction(item_id, request.emoji)
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    return OperationResult(success=True, message=reaction)


@router.post("/v1/content/{item_id}/share", response_model=OperationResult)
async def share_content(
    item_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.INTERACT)),
) -> OperationResult:
    return OperationResult(success=session.record_share(item_id))


# ============================================================================
# Profile and social
# ============================================================================


@router.patch("/v1/profile", response_model=UserResponse)
async def update_profile(
    request: ProfileUpdateRequest,
    session: MarketplaceSession = Depends(get_current_session),
) -> UserResponse:
    user = session.update_profile(
        ProfileUpdate(
            username=request.username,
            profile_picture_url=request.profile_picture_url,
            vitrine_slug=request.vitrine_slug,
            bio=request.bio,
        )
    )
    return user_response(user)


@router.post("/v1/users/{target_id}/follow", response_model=OperationResult)
async def follow_user(
    target_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.INTERACT)),
) -> OperationResult:
    return OperationResult(success=session.follow(target_id))


@router.delete("/v1/users/{target_id}/follow", response_model=OperationResult)
async def unfollow_user(
    target_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.INTERACT)),
) -> OperationResult:
    return OperationResult(success=session.unfollow(target_id))


@router.get("/v1/vitrine/{slug}", response_model=UserResponse)
async def get_vitrine(
    slug: str,
    session: MarketplaceSession = Depends(get_current_session),
) -> UserResponse:
    creator = await session.find_creator_by_slug(slug)
    if creator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown slug: {slug}")
    return user_response(creator)
