"""
Admin API routes - user management, moderation, catalog and economics.

Every route is gated by a capability of the session user.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from structlog import get_logger

from ledger.api.dependencies import require_capability
from ledger.api.routes import credit_package_response, plan_response, subscription_response
from ledger.exceptions import CatalogEntryNotFoundError
from ledger.models.api import (
    CreditPackageResponse,
    CreditPackageUpdateRequest,
    GrantCreditsRequest,
    OperationResult,
    PlanResponse,
    PlanUpdateRequest,
    SettingsResponse,
    SettingsUpdateRequest,
    SubscribeRequest,
    SubscriptionResponse,
    TimeoutRequest,
    TimeoutResponse,
)
from ledger.models.domain import CreditPackage, MarketplaceSettings, SubscriptionPlan, UserTimeout
from ledger.services.marketplace import MarketplaceSession
from ledger.services.permissions import Capability

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/admin", tags=["admin"])


def timeout_response(timeout: UserTimeout, active: bool) -> TimeoutResponse:
    return TimeoutResponse(
        user_id=timeout.user_id,
        end_time=timeout.end_time,
        message=timeout.message,
        active=active,
    )


def settings_response(settings: MarketplaceSettings) -> SettingsResponse:
    return SettingsResponse(
        platform_commission=settings.platform_commission,
        credit_value_usd=settings.credit_value_usd,
        withdrawal_cooldown_hours=settings.withdrawal_cooldown_hours,
        content_delete_grace_hours=settings.content_delete_grace_hours,
        reward_amount=settings.reward_amount,
        max_images_per_card=settings.max_images_per_card,
        max_videos_per_card=settings.max_videos_per_card,
        comments_enabled=settings.comments_enabled,
    )


# ============================================================================
# Users
# ============================================================================


@router.post("/users/{user_id}/credits", response_model=OperationResult)
async def grant_credits(
    user_id: str,
    request: GrantCreditsRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_USERS)),
) -> OperationResult:
    """Atomically add credits to any user's balance."""
    success = await session.add_credits_to_user(user_id, request.amount)
    return OperationResult(success=success)


@router.put("/users/{user_id}/subscription", response_model=SubscriptionResponse)
async def assign_subscription(
    user_id: str,
    request: SubscribeRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_USERS)),
) -> SubscriptionResponse:
    """Assign a plan without crediting the plan's credits."""
    try:
        subscription = session.subscribe_user_for(user_id, request.plan_id)
    except CatalogEntryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return subscription_response(subscription)


@router.delete("/users/{user_id}/subscription", response_model=OperationResult)
async def cancel_subscription(
    user_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_USERS)),
) -> OperationResult:
    return OperationResult(success=session.cancel_user_for(user_id))


@router.post(
    "/users/{user_id}/timeout",
    response_model=TimeoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def set_timeout(
    user_id: str,
    request: TimeoutRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_USERS)),
) -> TimeoutResponse:
    timeout = session.set_timeout(user_id, request.duration_hours, request.message)
    return timeout_response(timeout, session.is_timed_out(user_id))


@router.get("/users/{user_id}/timeout", response_model=TimeoutResponse)
async def get_timeout(
    user_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_USERS)),
) -> TimeoutResponse:
    timeout = session.timeout_info(user_id)
    if timeout is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No timeout recorded")
    return timeout_response(timeout, session.is_timed_out(user_id))


# ============================================================================
# Moderation
# ============================================================================


@router.post("/content/{item_id}/visibility", response_model=OperationResult)
async def toggle_visibility(
    item_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.MODERATE_CONTENT)),
) -> OperationResult:
    hidden = session.toggle_content_visibility(item_id)
    if hidden is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    return OperationResult(success=True, message="hidden" if hidden else "visible")


@router.delete("/content/{item_id}", response_model=OperationResult)
async def remove_content(
    item_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.MODERATE_CONTENT)),
) -> OperationResult:
    """Forced removal, no grace period."""
    return OperationResult(success=session.remove_content(item_id))


@router.post("/creators/{creator_id}/hide-content", response_model=OperationResult)
async def hide_creator_content(
    creator_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.MODERATE_CONTENT)),
) -> OperationResult:
    count = session.hide_all_content_from_creator(creator_id)
    return OperationResult(success=True, message=f"{count} items hidden")


@router.delete("/creators/{creator_id}/content", response_model=OperationResult)
async def delete_creator_content(
    creator_id: str,
    session: MarketplaceSession = Depends(require_capability(Capability.MODERATE_CONTENT)),
) -> OperationResult:
    count = session.delete_all_content_from_creator(creator_id)
    return OperationResult(success=True, message=f"{count} items deleted")


# ============================================================================
# Catalog
# ============================================================================


@router.put("/plans/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: str,
    request: PlanUpdateRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_CATALOG)),
) -> PlanResponse:
    plan = SubscriptionPlan(
        plan_id=plan_id,
        name=request.name,
        price=request.price,
        credits=request.credits,
        features=tuple(request.features),
    )
    try:
        return plan_response(session.update_plan(plan))
    except CatalogEntryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.put("/credit-packages/{package_id}", response_model=CreditPackageResponse)
async def update_credit_package(
    package_id: str,
    request: CreditPackageUpdateRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_CATALOG)),
) -> CreditPackageResponse:
    package = CreditPackage(
        package_id=package_id,
        name=request.name,
        credits=request.credits,
        price_usd=request.price_usd,
        bonus_credits=request.bonus_credits,
    )
    try:
        return credit_package_response(session.update_credit_package(package))
    except CatalogEntryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


# ============================================================================
# Economics
# ============================================================================


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_SETTINGS)),
) -> SettingsResponse:
    return settings_response(session.marketplace.settings)


@router.patch("/settings", response_model=SettingsResponse)
async def update_settings(
    request: SettingsUpdateRequest,
    session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_SETTINGS)),
) -> SettingsResponse:
    """Change runtime economics; new purchases read the new commission."""
    try:
        updated = session.update_settings(**request.model_dump(exclude_none=True))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return settings_response(updated)
