"""
Marketplace - shared ledger state and per-user sessions.

Marketplace owns everything shared by the process (ledger, content, users,
subscriptions, timeouts, runtime economics, the outbox and the gateway). It is
constructed explicitly and handed to callers; there is no module-level
instance.

MarketplaceSession is the handle for one logged-in user. Operations whose
preconditions can fail return booleans; operations that need a session user
raise NotAuthenticatedError when there is none, and operations gated by a
capability raise AuthorizationError.
"""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from structlog import get_logger

from ledger.config import Settings, get_settings
from ledger.exceptions import GatewayError, NotAuthenticatedError
from ledger.models.api import MediaType, TransactionType
from ledger.models.domain import (
    ContentItem,
    CreatorTransaction,
    CreditPackage,
    MarketplaceSettings,
    MediaItem,
    ProfileRecord,
    ProfileUpdate,
    SubscriptionPlan,
    Transaction,
    User,
    UserSubscription,
    UserTimeout,
)
from ledger.services.catalog import PlanCatalog
from ledger.services.content import ContentCatalog
from ledger.services.directory import UserDirectory, user_from_profile, vitrine_url
from ledger.services.gateway import PersistenceGateway
from ledger.services.ledger import LedgerState
from ledger.services.moderation import TimeoutRegistry
from ledger.services.outbox import Outbox
from ledger.services.permissions import Capability, has_capability, require_capability
from ledger.services.purchase import PurchaseEngine
from ledger.services.subscriptions import SubscriptionManager
from ledger.services.withdrawal import WithdrawalGate

logger = get_logger(__name__)

ZERO = Decimal("0")


class Marketplace:
    """Process-wide marketplace state shared by all sessions."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        settings: MarketplaceSettings,
        outbox: Outbox,
        catalog: PlanCatalog | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.outbox = outbox
        self.catalog = catalog or PlanCatalog()
        self.ledger = LedgerState(gateway, outbox)
        self.content = ContentCatalog(gateway, outbox)
        self.directory = UserDirectory(gateway, outbox)
        self.subscriptions = SubscriptionManager(self.ledger)
        self.timeouts = TimeoutRegistry()
        self.purchases = PurchaseEngine(self.ledger, gateway, outbox)
        self._content_loaded = False

    @classmethod
    def from_config(
        cls, gateway: PersistenceGateway, config: Settings | None = None
    ) -> "Marketplace":
        """Build a marketplace seeded from application settings."""
        config = config or get_settings()
        return cls(
            gateway=gateway,
            settings=MarketplaceSettings.from_settings(config),
            outbox=Outbox(
                max_attempts=config.outbox_max_attempts,
                auto_flush=config.outbox_auto_flush,
            ),
        )

    def session(self) -> "MarketplaceSession":
        return MarketplaceSession(self)

    def update_settings(self, **changes: object) -> MarketplaceSettings:
        """Replace runtime economics as a whole; omitted (None) fields are kept."""
        self.settings = self.settings.updated(**changes)
        logger.info(
            "marketplace_settings_updated",
            fields=sorted(k for k, v in changes.items() if v is not None),
            platform_commission=str(self.settings.platform_commission),
        )
        return self.settings

    async def refresh_directory(self) -> None:
        try:
            profiles = await self.gateway.list_profiles()
        except GatewayError as exc:
            logger.warning("directory_refresh_failed", error=exc.message)
            return
        self.directory.load(profiles)

    async def refresh_content(self) -> None:
        """
        Reload visible content from the gateway.

        Hidden items only exist locally until the next reload, matching the
        gateway's is_hidden = false read.
        """
        try:
            items = await self.gateway.list_visible_content()
        except GatewayError as exc:
            logger.warning("content_refresh_failed", error=exc.message)
            return
        self.content.load(items)
        self._content_loaded = True

    async def ensure_content_loaded(self) -> None:
        if not self._content_loaded:
            await self.refresh_content()

    async def flush(self) -> int:
        """Apply pending gateway writes once."""
        return await self.outbox.drain()


class MarketplaceSession:
    """Ledger operations on behalf of one session user."""

    def __init__(self, marketplace: Marketplace) -> None:
        self.marketplace = marketplace
        self.user: User | None = None
        self.withdrawal_gate: WithdrawalGate | None = None

    # ========================================================================
    # Session lifecycle
    # ========================================================================

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> str | None:
        return self.user.user_id if self.user else None

    def _require_user(self) -> User:
        if self.user is None:
            raise NotAuthenticatedError()
        return self.user

    def _require(self, capability: Capability) -> User:
        user = self._require_user()
        require_capability(user.role, capability)
        return user

    def can(self, capability: Capability) -> bool:
        return self.user is not None and has_capability(self.user.role, capability)

    async def login(self, user_id: str, now: datetime | None = None) -> bool:
        """
        Start a session for an existing user.

        Returns:
            False when the user is unknown locally and to the gateway
        """
        market = self.marketplace
        await market.refresh_directory()

        user = market.directory.get(user_id)
        if user is None:
            try:
                record = await market.gateway.get_profile(user_id)
            except GatewayError as exc:
                logger.warning("login_profile_lookup_failed", user_id=user_id, error=exc.message)
                record = None
            if record is None:
                logger.info("login_rejected", user_id=user_id, reason="unknown_user")
                return False
            user = market.directory.add(user_from_profile(record))

        await self._start(user, now)
        return True

    async def register_or_login(
        self,
        user_id: str,
        email: str,
        username: str | None = None,
        now: datetime | None = None,
    ) -> User:
        """Log in, registering the user (and its gateway profile) on first sight."""
        market = self.marketplace
        await market.refresh_directory()

        user, created = market.directory.register_or_get(user_id, email, username)
        if created:
            try:
                await market.gateway.create_profile(
                    ProfileRecord(
                        user_id=user.user_id,
                        username=user.username,
                        credits_balance=ZERO,
                        earned_balance=ZERO,
                        role=user.role,
                        profile_picture_url=user.profile_picture_url,
                        vitrine_slug=user.vitrine_slug,
                    )
                )
            except GatewayError as exc:
                logger.error("profile_create_failed", user_id=user_id, error=exc.message)

        await self._start(user, now)
        return user

    async def _start(self, user: User, now: datetime | None) -> None:
        market = self.marketplace
        now = now or datetime.now(UTC)
        self.user = user

        # Pending writes land before the snapshot is read back
        await market.outbox.drain()

        profile: ProfileRecord | None = None
        try:
            profile = await market.gateway.get_profile(user.user_id)
        except GatewayError as exc:
            logger.warning("session_profile_load_failed", user_id=user.user_id, error=exc.message)

        unlocked: list[str] | None = None
        try:
            unlocked = await market.gateway.list_unlocked(user.user_id)
        except GatewayError as exc:
            logger.warning("session_unlocks_load_failed", user_id=user.user_id, error=exc.message)

        account = market.ledger.account(user.user_id)
        if profile is not None:
            market.ledger.load_account(
                user.user_id,
                profile.credits_balance,
                profile.earned_balance,
                unlocked if unlocked is not None else list(account.unlocked),
            )
        elif unlocked is not None:
            account.unlocked = set(unlocked)

        if profile is not None:
            self.withdrawal_gate = WithdrawalGate.from_profile(
                market.gateway,
                user.user_id,
                profile.last_withdrawal_at,
                market.settings.withdrawal_cooldown,
                now,
            )
        else:
            self.withdrawal_gate = WithdrawalGate.unverified(
                market.gateway, user.user_id, market.settings.withdrawal_cooldown, now
            )

        await market.ensure_content_loaded()
        logger.info(
            "session_started",
            user_id=user.user_id,
            role=user.role.value,
            balance=str(account.balance),
        )

    def logout(self) -> None:
        if self.user is not None:
            logger.info("session_ended", user_id=self.user.user_id)
        self.user = None
        self.withdrawal_gate = None

    # ========================================================================
    # Ledger reads
    # ========================================================================

    @property
    def balance(self) -> Decimal:
        return self.marketplace.ledger.balance(self._require_user().user_id)

    @property
    def earned_balance(self) -> Decimal:
        return self.marketplace.ledger.earned_balance(self._require_user().user_id)

    @property
    def transactions(self) -> list[Transaction]:
        return self.marketplace.ledger.transactions(self._require_user().user_id)

    @property
    def creator_transactions(self) -> list[CreatorTransaction]:
        return self.marketplace.ledger.creator_transactions(self._require_user().user_id)

    @property
    def unlocked_content_ids(self) -> frozenset[str]:
        return self.marketplace.ledger.unlocked(self._require_user().user_id)

    @property
    def subscription(self) -> UserSubscription | None:
        return self.marketplace.subscriptions.get(self._require_user().user_id)

    @property
    def withdrawal_time_end(self) -> datetime:
        self._require_user()
        if self.withdrawal_gate is None:
            raise NotAuthenticatedError()
        return self.withdrawal_gate.withdrawal_time_end

    def visible_content(self) -> list[ContentItem]:
        """Content the viewer may see; admins also see hidden items."""
        return self.marketplace.content.visible_items(self.can(Capability.VIEW_HIDDEN_CONTENT))

    def is_unlocked(self, item_id: str) -> bool:
        if self.user is None:
            return False
        return self.marketplace.ledger.is_unlocked(self.user.user_id, item_id)

    # ========================================================================
    # Credits and purchases
    # ========================================================================

    def add_credits(
        self,
        amount: Decimal,
        description: str,
        transaction_type: TransactionType,
        now: datetime | None = None,
    ) -> Transaction:
        user = self._require_user()
        return self.marketplace.ledger.add_credits(
            user.user_id, amount, description, transaction_type, now=now
        )

    def buy_credit_package(self, package_id: str, now: datetime | None = None) -> Transaction:
        """
        Credit a catalog package, bonus included, to the session user.

        Payment is settled outside the ledger before this is called.

        Raises:
            CatalogEntryNotFoundError: If the package id is unknown
        """
        user = self._require(Capability.PURCHASE)
        package = self.marketplace.catalog.get_credit_package(package_id)
        transaction = self.marketplace.ledger.add_credits(
            user.user_id,
            package.credits + package.bonus_credits,
            f"Purchase of {package.name}",
            TransactionType.CREDIT_PURCHASE,
            now=now,
        )
        logger.info(
            "credit_package_purchased",
            user_id=user.user_id,
            package_id=package_id,
            credits=str(transaction.amount),
        )
        return transaction

    def add_reward(self, now: datetime | None = None) -> Transaction:
        user = self._require_user()
        return self.marketplace.ledger.add_reward(
            user.user_id, self.marketplace.settings.reward_amount, now=now
        )

    async def purchase(self, item_id: str, now: datetime | None = None) -> bool:
        """Buy a content item. False when nobody is logged in or a precondition fails."""
        if self.user is None:
            logger.info("purchase_rejected", content_item_id=item_id, reason="not_logged_in")
            return False
        self._require(Capability.PURCHASE)

        market = self.marketplace
        item = market.content.get(item_id)
        if item is None:
            logger.info("purchase_rejected", content_item_id=item_id, reason="unknown_item")
            return False
        return await market.purchases.purchase(
            self.user.user_id,
            item,
            market.settings,
            can_buy_hidden=self.can(Capability.VIEW_HIDDEN_CONTENT),
            now=now,
        )

    # ========================================================================
    # Subscriptions
    # ========================================================================

    def subscribe(self, plan_id: str, now: datetime | None = None) -> UserSubscription:
        user = self._require(Capability.SUBSCRIBE)
        plan = self.marketplace.catalog.get_plan(plan_id)
        return self.marketplace.subscriptions.subscribe(user.user_id, plan, now=now)

    def cancel_subscription(self, now: datetime | None = None) -> bool:
        user = self._require(Capability.SUBSCRIBE)
        return self.marketplace.subscriptions.cancel(user.user_id, now=now)

    # ========================================================================
    # Withdrawals
    # ========================================================================

    async def process_withdrawal(self, now: datetime | None = None) -> bool:
        if self.user is None or self.withdrawal_gate is None:
            return False
        self._require(Capability.WITHDRAW_EARNINGS)
        if not self.withdrawal_gate.verified:
            await self._verify_withdrawal_gate(now)
        return await self.withdrawal_gate.process_withdrawal(
            self.marketplace.settings.withdrawal_cooldown, now=now
        )

    async def _verify_withdrawal_gate(self, now: datetime | None) -> None:
        """Rebuild an unverified gate once the profile can be read."""
        market = self.marketplace
        user_id = self._require_user().user_id
        try:
            profile = await market.gateway.get_profile(user_id)
        except GatewayError as exc:
            logger.warning("withdrawal_gate_unverified", user_id=user_id, error=exc.message)
            return
        if profile is None:
            return
        self.withdrawal_gate = WithdrawalGate.from_profile(
            market.gateway,
            user_id,
            profile.last_withdrawal_at,
            market.settings.withdrawal_cooldown,
            now,
        )

    def remaining_cooldown(self, now: datetime | None = None) -> timedelta:
        self._require_user()
        if self.withdrawal_gate is None:
            return timedelta(0)
        return self.withdrawal_gate.remaining_cooldown(now)

    # ========================================================================
    # Content
    # ========================================================================

    def publish_content(
        self,
        title: str,
        price: Decimal,
        image_paths: Sequence[str] = (),
        video_paths: Sequence[str] = (),
        blur_level: int = 0,
        tags: Sequence[str] = (),
        now: datetime | None = None,
    ) -> ContentItem:
        user = self._require(Capability.PUBLISH_CONTENT)
        media = [
            MediaItem(media_type=MediaType.IMAGE, storage_path=path, display_order=index)
            for index, path in enumerate(image_paths)
        ] + [
            MediaItem(
                media_type=MediaType.VIDEO,
                storage_path=path,
                display_order=len(image_paths) + index,
            )
            for index, path in enumerate(video_paths)
        ]
        return self.marketplace.content.add_item(
            creator_id=user.user_id,
            title=title,
            price=price,
            media=media,
            settings=self.marketplace.settings,
            blur_level=blur_level,
            tags=tags,
            now=now,
        )

    def delete_content(self, item_id: str, now: datetime | None = None) -> bool:
        """Delete one of the user's own items once its grace period has passed."""
        if self.user is None:
            return False
        user = self._require(Capability.PUBLISH_CONTENT)
        content = self.marketplace.content
        item = content.get(item_id)
        if item is None or item.creator_id != user.user_id:
            return False
        return content.delete_content(
            item_id, self.marketplace.settings.content_delete_grace_hours, now=now
        )

    def toggle_like(self, item_id: str) -> bool | None:
        user = self._require(Capability.INTERACT)
        return self.marketplace.content.toggle_like(item_id, user.user_id)

    def toggle_reaction(self, item_id: str, emoji: str) -> tuple[bool, str | None]:
        user = self._require(Capability.INTERACT)
        return self.marketplace.content.toggle_reaction(item_id, user.user_id, emoji)

    def record_share(self, item_id: str) -> bool:
        user = self._require(Capability.INTERACT)
        return self.marketplace.content.record_share(item_id, user.user_id)

    # ========================================================================
    # Profile and social
    # ========================================================================

    def update_profile(self, changes: ProfileUpdate) -> User:
        user = self._require_user()
        updated = self.marketplace.directory.update_profile(user.user_id, changes)
        return updated or user

    def follow(self, target_id: str) -> bool:
        user = self._require(Capability.INTERACT)
        return self.marketplace.directory.follow(user.user_id, target_id)

    def unfollow(self, target_id: str) -> bool:
        user = self._require(Capability.INTERACT)
        return self.marketplace.directory.unfollow(user.user_id, target_id)

    async def find_creator_by_slug(self, slug: str) -> User | None:
        return await self.marketplace.directory.find_by_slug(slug)

    def vitrine_url(self) -> str | None:
        return vitrine_url(self._require_user())

    def is_timed_out(self, user_id: str | None = None, now: datetime | None = None) -> bool:
        target = user_id or self._require_user().user_id
        return self.marketplace.timeouts.is_timed_out(target, now)

    def timeout_info(self, user_id: str | None = None) -> UserTimeout | None:
        target = user_id or self._require_user().user_id
        return self.marketplace.timeouts.timeout_info(target)

    # ========================================================================
    # Administration
    # ========================================================================

    async def add_credits_to_user(
        self, user_id: str, amount: Decimal, now: datetime | None = None
    ) -> bool:
        """
        Grant credits to any user with an atomic gateway increment.

        The outbox is held while the increment runs so no queued absolute
        balance write for the target lands in between. The local account then
        takes the grant as described on LedgerState.apply_remote_grant.

        Returns:
            False when the gateway fails or has no profile for the user
        """
        self._require(Capability.MANAGE_USERS)
        market = self.marketplace
        async with market.outbox.exclusive():
            try:
                new_balance = await market.gateway.increment_credits_balance(user_id, amount)
            except GatewayError as exc:
                logger.error("admin_grant_failed", user_id=user_id, error=exc.message)
                return False
            if new_balance is None:
                logger.info("admin_grant_rejected", user_id=user_id, reason="unknown_user")
                return False

            transaction = market.ledger.apply_remote_grant(
                user_id,
                amount,
                new_balance,
                f"Admin grant for user {user_id}",
                now=now,
            )
        logger.info(
            "admin_grant_applied",
            admin_id=self.user_id,
            user_id=user_id,
            amount=str(transaction.amount),
            balance=str(market.ledger.balance(user_id)),
        )
        return True

    def subscribe_user_for(
        self, user_id: str, plan_id: str, now: datetime | None = None
    ) -> UserSubscription:
        self._require(Capability.MANAGE_USERS)
        plan = self.marketplace.catalog.get_plan(plan_id)
        return self.marketplace.subscriptions.subscribe_user_for(user_id, plan, now=now)

    def cancel_user_for(self, user_id: str, now: datetime | None = None) -> bool:
        admin = self._require(Capability.MANAGE_USERS)
        return self.marketplace.subscriptions.cancel_user_for(admin.user_id, user_id, now=now)

    def set_timeout(
        self, user_id: str, duration_hours: float, message: str, now: datetime | None = None
    ) -> UserTimeout:
        self._require(Capability.MANAGE_USERS)
        return self.marketplace.timeouts.set_timeout(user_id, duration_hours, message, now=now)

    def toggle_content_visibility(self, item_id: str) -> bool | None:
        self._require(Capability.MODERATE_CONTENT)
        return self.marketplace.content.toggle_visibility(item_id)

    def remove_content(self, item_id: str) -> bool:
        self._require(Capability.MODERATE_CONTENT)
        return self.marketplace.content.remove_content(item_id)

    def hide_all_content_from_creator(self, creator_id: str) -> int:
        self._require(Capability.MODERATE_CONTENT)
        return self.marketplace.content.hide_all_from_creator(creator_id)

    def delete_all_content_from_creator(self, creator_id: str) -> int:
        self._require(Capability.MODERATE_CONTENT)
        return self.marketplace.content.delete_all_from_creator(creator_id)

    def update_plan(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        self._require(Capability.MANAGE_CATALOG)
        return self.marketplace.catalog.update_plan(plan)

    def update_credit_package(self, package: CreditPackage) -> CreditPackage:
        self._require(Capability.MANAGE_CATALOG)
        return self.marketplace.catalog.update_credit_package(package)

    def update_settings(self, **changes: object) -> MarketplaceSettings:
        self._require(Capability.MANAGE_SETTINGS)
        return self.marketplace.update_settings(**changes)
