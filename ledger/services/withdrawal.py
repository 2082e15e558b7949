"""
Withdrawal Gate - payout cooldown per session user.
"""

from datetime import UTC, datetime, timedelta

from structlog import get_logger

from ledger.exceptions import GatewayError
from ledger.observability.metrics import metrics
from ledger.services.gateway import PersistenceGateway

logger = get_logger(__name__)


def compute_withdrawal_time_end(
    last_withdrawal_at: datetime | None, cooldown: timedelta, now: datetime
) -> datetime:
    """Earliest next payout: max(last + cooldown, now), or now if never withdrawn."""
    if last_withdrawal_at is None:
        return now
    return max(last_withdrawal_at + cooldown, now)


class WithdrawalGate:
    """
    Tracks when the session user may next withdraw earnings.

    The gate is recomputed from the gateway's last_withdrawal_at on session
    start and advanced by one cooldown after each successful withdrawal.
    A gate built without a profile is unverified: it refuses every withdrawal
    until it is rebuilt from a profile.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        user_id: str,
        time_end: datetime,
        verified: bool = True,
    ) -> None:
        self.gateway = gateway
        self.user_id = user_id
        self.withdrawal_time_end = time_end
        self.verified = verified

    @classmethod
    def from_profile(
        cls,
        gateway: PersistenceGateway,
        user_id: str,
        last_withdrawal_at: datetime | None,
        cooldown: timedelta,
        now: datetime | None = None,
    ) -> "WithdrawalGate":
        now = now or datetime.now(UTC)
        return cls(gateway, user_id, compute_withdrawal_time_end(last_withdrawal_at, cooldown, now))

    @classmethod
    def unverified(
        cls,
        gateway: PersistenceGateway,
        user_id: str,
        cooldown: timedelta,
        now: datetime | None = None,
    ) -> "WithdrawalGate":
        """Gate for a session whose last withdrawal time could not be read."""
        now = now or datetime.now(UTC)
        return cls(gateway, user_id, now + cooldown, verified=False)

    def can_withdraw(self, now: datetime | None = None) -> bool:
        return self.verified and (now or datetime.now(UTC)) >= self.withdrawal_time_end

    def remaining_cooldown(self, now: datetime | None = None) -> timedelta:
        remaining = self.withdrawal_time_end - (now or datetime.now(UTC))
        return max(remaining, timedelta(0))

    async def process_withdrawal(self, cooldown: timedelta, now: datetime | None = None) -> bool:
        """
        Record a withdrawal and restart the cooldown.

        Returns:
            True on success; False while the cooldown is running, while the
            gate is unverified, or when the gateway write fails (gate left
            unchanged)
        """
        now = now or datetime.now(UTC)
        if not self.can_withdraw(now):
            reason = "cooldown" if self.verified else "unverified"
            logger.info(
                "withdrawal_rejected",
                user_id=self.user_id,
                reason=reason,
                withdrawal_time_end=self.withdrawal_time_end.isoformat(),
            )
            metrics.record_withdrawal(reason)
            return False

        try:
            await self.gateway.set_last_withdrawal(self.user_id, now)
        except GatewayError as exc:
            logger.error("withdrawal_failed", user_id=self.user_id, error=exc.message)
            metrics.record_withdrawal("failed")
            return False

        self.withdrawal_time_end = now + cooldown
        logger.info(
            "withdrawal_processed",
            user_id=self.user_id,
            withdrawal_time_end=self.withdrawal_time_end.isoformat(),
        )
        metrics.record_withdrawal("processed")
        return True
