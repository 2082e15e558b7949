"""
FastAPI Dependencies - session lookup and capability checks.

Authentication happens upstream; the auth layer forwards the user id in the
X-User-ID header. Each user id maps to one MarketplaceSession started by
POST /v1/session/login.
"""

from collections.abc import Awaitable, Callable

from fastapi import Depends, Header, HTTPException, Request, status
from structlog import get_logger

from ledger.services.marketplace import Marketplace, MarketplaceSession
from ledger.services.permissions import Capability

logger = get_logger(__name__)


class SessionRegistry:
    """Active sessions keyed by user id."""

    def __init__(self) -> None:
        self._sessions: dict[str, MarketplaceSession] = {}

    def get(self, user_id: str) -> MarketplaceSession | None:
        return self._sessions.get(user_id)

    def put(self, user_id: str, session: MarketplaceSession) -> None:
        self._sessions[user_id] = session

    def remove(self, user_id: str) -> MarketplaceSession | None:
        return self._sessions.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


def get_marketplace(request: Request) -> Marketplace:
    """Marketplace built at startup and stored on app.state."""
    marketplace: Marketplace | None = getattr(request.app.state, "marketplace", None)
    if marketplace is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Marketplace not initialized",
        )
    return marketplace


def get_session_registry(request: Request) -> SessionRegistry:
    registry: SessionRegistry | None = getattr(request.app.state, "sessions", None)
    if registry is None:
        registry = SessionRegistry()
        request.app.state.sessions = registry
    return registry


async def get_user_id(x_user_id: str | None = Header(None, alias="X-User-ID")) -> str:
    """
    Extract the authenticated user id.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    return x_user_id.strip()


async def get_current_session(
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> MarketplaceSession:
    """
    Get the logged-in session for the caller.

    Raises:
        HTTPException: 401 if no session was started for this user
    """
    session = registry.get(user_id)
    if session is None or not session.is_logged_in:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No active session, log in first",
        )
    return session


def require_capability(capability: Capability) -> Callable[..., Awaitable[MarketplaceSession]]:
    """
    FastAPI dependency factory to check a capability of the session user.

    Usage:
        @router.post("/v1/admin/users/{user_id}/credits")
        async def grant_credits(
            session: MarketplaceSession = Depends(require_capability(Capability.MANAGE_USERS))
        ):
            pass
    """

    async def capability_checker(
        session: MarketplaceSession = Depends(get_current_session),
    ) -> MarketplaceSession:
        """Check that the session user's role grants the capability."""
        if not session.can(capability):
            logger.warning(
                "capability_denied",
                user_id=session.user_id,
                capability=capability.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required capability: {capability.value}",
            )
        return session

    return capability_checker
