"""
User Directory - marketplace users, profiles and follow relations.
"""

from functools import partial

from structlog import get_logger

from ledger.exceptions import GatewayError
from ledger.models.api import UserRole
from ledger.models.domain import ProfileRecord, ProfileUpdate, User
from ledger.services.gateway import PersistenceGateway
from ledger.services.media import DEFAULT_PROFILE_PICTURE
from ledger.services.outbox import Outbox

logger = get_logger(__name__)

VITRINE_BASE_URL = "https://funfans.com/vitrine"


def vitrine_url(user: User) -> str | None:
    """Public showcase link, None when the user has no slug."""
    if not user.vitrine_slug:
        return None
    return f"{VITRINE_BASE_URL}/{user.vitrine_slug}"


def user_from_profile(record: ProfileRecord) -> User:
    return User(
        user_id=record.user_id,
        username=record.username or record.user_id,
        role=record.role,
        profile_picture_url=record.profile_picture_url or DEFAULT_PROFILE_PICTURE,
        vitrine_slug=record.vitrine_slug or "",
        bio=record.bio,
    )


class UserDirectory:
    """All users known to this process, keyed by id."""

    def __init__(self, gateway: PersistenceGateway, outbox: Outbox) -> None:
        self.gateway = gateway
        self.outbox = outbox
        self._users: dict[str, User] = {}

    @property
    def users(self) -> list[User]:
        return list(self._users.values())

    def get(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def load(self, records: list[ProfileRecord]) -> None:
        """Merge gateway profiles into the directory; local follow sets are kept."""
        for record in records:
            fresh = user_from_profile(record)
            existing = self._users.get(record.user_id)
            if existing is not None:
                fresh.email = existing.email
                fresh.followers = existing.followers
                fresh.following = existing.following
            self._users[record.user_id] = fresh
        logger.debug("directory_loaded", count=len(records))

    def add(self, user: User) -> User:
        self._users[user.user_id] = user
        return user

    def register_or_get(
        self, user_id: str, email: str, username: str | None = None
    ) -> tuple[User, bool]:
        """
        Return the known user, or register a new one.

        New users get username from the email local part when none is given,
        the default profile picture and their id as showcase slug.

        Returns:
            (user, created)
        """
        existing = self._users.get(user_id)
        if existing is not None:
            return existing, False

        user = User(
            user_id=user_id,
            username=username or email.split("@")[0],
            email=email,
            role=UserRole.USER,
            profile_picture_url=DEFAULT_PROFILE_PICTURE,
            vitrine_slug=user_id,
        )
        self._users[user_id] = user
        logger.info("user_registered", user_id=user_id, username=user.username)
        return user, True

    def update_profile(self, user_id: str, changes: ProfileUpdate) -> User | None:
        """Apply a partial profile update. Returns None for unknown users."""
        user = self._users.get(user_id)
        if user is None:
            return None
        fields = changes.changed_fields()
        if not fields:
            return user
        for name, value in fields.items():
            setattr(user, name, value)
        self.outbox.enqueue(
            "update_profile", partial(self.gateway.update_profile, user_id, changes)
        )
        logger.info("profile_updated", user_id=user_id, fields=sorted(fields))
        return user

    def set_role(self, user_id: str, role: UserRole) -> None:
        user = self._users.get(user_id)
        if user is not None:
            user.role = role

    # ========================================================================
    # Follow relations
    # ========================================================================

    def follow(self, follower_id: str, target_id: str) -> bool:
        """
        Follow a user. Following twice leaves one relation.

        Returns:
            False for a self-follow, True otherwise
        """
        if follower_id == target_id:
            return False

        follower = self._users.get(follower_id)
        target = self._users.get(target_id)
        already = follower is not None and target_id in follower.following
        if follower is not None:
            follower.following.add(target_id)
        if target is not None:
            target.followers.add(follower_id)

        if not already:
            self.outbox.enqueue(
                "insert_follow",
                partial(self.gateway.insert_follow, follower_id, target_id),
                key=("follow", follower_id, target_id),
            )
            logger.info("user_followed", follower_id=follower_id, following_id=target_id)
        return True

    def unfollow(self, follower_id: str, target_id: str) -> bool:
        """Remove a follow relation. Returns False when there was none."""
        follower = self._users.get(follower_id)
        target = self._users.get(target_id)
        was_following = follower is not None and target_id in follower.following
        if follower is not None:
            follower.following.discard(target_id)
        if target is not None:
            target.followers.discard(follower_id)

        if not was_following:
            return False
        self.outbox.enqueue(
            "delete_follow",
            partial(self.gateway.delete_follow, follower_id, target_id),
            key=("follow", follower_id, target_id),
        )
        logger.info("user_unfollowed", follower_id=follower_id, following_id=target_id)
        return True

    async def find_by_slug(self, slug: str) -> User | None:
        """Resolve a showcase slug, locally first and then through the gateway."""
        local = next((u for u in self._users.values() if u.vitrine_slug == slug), None)
        if local is not None:
            return local

        try:
            record = await self.gateway.find_profile_by_slug(slug)
        except GatewayError as exc:
            logger.warning("slug_lookup_failed", slug=slug, error=exc.message)
            return None
        if record is None:
            return None

        user = user_from_profile(record)
        self._users.setdefault(user.user_id, user)
        return self._users[user.user_id]
