"""
Timeout Registry - temporary moderation suspensions.

Setting a timeout overwrites any previous one. Expiry is lazy: a timeout is
active while now < end_time and nothing is cleaned up when it passes.
"""

from datetime import UTC, datetime, timedelta

from structlog import get_logger

from ledger.models.domain import UserTimeout

logger = get_logger(__name__)


class TimeoutRegistry:
    """Per-user moderation timeouts."""

    def __init__(self) -> None:
        self._timeouts: dict[str, UserTimeout] = {}

    def set_timeout(
        self,
        user_id: str,
        duration_hours: float,
        message: str,
        now: datetime | None = None,
    ) -> UserTimeout:
        if duration_hours <= 0:
            raise ValueError(f"Timeout duration must be positive: {duration_hours}")
        now = now or datetime.now(UTC)
        timeout = UserTimeout(
            user_id=user_id,
            end_time=now + timedelta(hours=duration_hours),
            message=message,
        )
        self._timeouts[user_id] = timeout
        logger.info(
            "user_timed_out",
            user_id=user_id,
            end_time=timeout.end_time.isoformat(),
            duration_hours=duration_hours,
        )
        return timeout

    def is_timed_out(self, user_id: str, now: datetime | None = None) -> bool:
        timeout = self._timeouts.get(user_id)
        if timeout is None:
            return False
        return timeout.is_active(now or datetime.now(UTC))

    def timeout_info(self, user_id: str) -> UserTimeout | None:
        """Last timeout set for the user, active or expired."""
        return self._timeouts.get(user_id)
