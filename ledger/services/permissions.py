"""
Capability model - maps user roles to the operations they may perform.

Administrative operations are gated by capabilities, never by comparing role
names at the call site.
"""

from enum import Enum

from ledger.exceptions import AuthorizationError
from ledger.models.api import UserRole


class Capability(str, Enum):
    """Named permission checked before an operation runs."""

    PURCHASE = "purchase"
    SUBSCRIBE = "subscribe"
    INTERACT = "interact"
    PUBLISH_CONTENT = "publish_content"
    WITHDRAW_EARNINGS = "withdraw_earnings"
    VIEW_HIDDEN_CONTENT = "view_hidden_content"
    MODERATE_CONTENT = "moderate_content"
    MANAGE_USERS = "manage_users"
    MANAGE_CATALOG = "manage_catalog"
    MANAGE_SETTINGS = "manage_settings"


MEMBER_CAPABILITIES: frozenset[Capability] = frozenset(
    {
        Capability.PURCHASE,
        Capability.SUBSCRIBE,
        Capability.INTERACT,
        Capability.PUBLISH_CONTENT,
        Capability.WITHDRAW_EARNINGS,
    }
)

ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.USER: MEMBER_CAPABILITIES,
    UserRole.CREATOR: MEMBER_CAPABILITIES,
    UserRole.DEVELOPER: frozenset(Capability),
}


def capabilities_for(role: UserRole) -> frozenset[Capability]:
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(role: UserRole, capability: Capability) -> bool:
    return capability in capabilities_for(role)


def require_capability(role: UserRole, capability: Capability) -> None:
    """
    Check that a role grants a capability.

    Raises:
        AuthorizationError: If the role lacks the capability
    """
    if not has_capability(role, capability):
        raise AuthorizationError(role.value, capability.value)
