"""
Purchase Engine - validates and applies content purchases.

A purchase moves price credits from the buyer, credits the creator's earned
balance with the post-commission share and grants the buyer a permanent
entitlement. Failed preconditions return False and change nothing.
"""

from datetime import UTC, datetime
from decimal import ROUND_DOWN, Decimal
from functools import partial

from structlog import get_logger

from ledger.exceptions import GatewayError
from ledger.models.domain import ContentItem, MarketplaceSettings, PurchaseRecord
from ledger.observability.metrics import metrics
from ledger.observability.tracing import add_span_attributes, get_tracer, set_span_error
from ledger.services.gateway import PersistenceGateway
from ledger.services.ledger import LedgerState
from ledger.services.outbox import Outbox

logger = get_logger(__name__)
tracer = get_tracer(__name__)

CENT = Decimal("0.01")


def compute_earnings(price: Decimal, commission_rate: Decimal) -> Decimal:
    """
    Creator share of a sale: price * (1 - rate), rounded down to 0.01.

    The platform keeps the rounding remainder, so earnings never exceed
    the price paid.
    """
    return (price * (Decimal("1") - commission_rate)).quantize(CENT, rounding=ROUND_DOWN)


class PurchaseEngine:
    """Applies purchases to ledger state and persists them as one gateway transaction."""

    def __init__(self, ledger: LedgerState, gateway: PersistenceGateway, outbox: Outbox) -> None:
        self.ledger = ledger
        self.gateway = gateway
        self.outbox = outbox

    def rejection_reason(
        self, buyer_id: str | None, item: ContentItem, can_buy_hidden: bool = False
    ) -> str | None:
        """Return why a purchase would be rejected, or None if it may proceed."""
        if buyer_id is None:
            return "not_logged_in"
        if item.creator_id == buyer_id:
            return "own_content"
        if item.is_hidden and not can_buy_hidden:
            return "hidden"
        if self.ledger.is_unlocked(buyer_id, item.item_id):
            return "already_unlocked"
        if self.ledger.balance(buyer_id) < item.price:
            return "insufficient_balance"
        return None

    async def purchase(
        self,
        buyer_id: str | None,
        item: ContentItem,
        settings: MarketplaceSettings,
        can_buy_hidden: bool = False,
        now: datetime | None = None,
    ) -> bool:
        """
        Buy a content item.

        Local state changes first, then one awaited record_purchase call. A
        gateway failure is logged and the purchase is queued for retry in the
        outbox; local state stays as is and the purchase still succeeds.

        Args:
            buyer_id: Session user, None when nobody is logged in
            item: Content item being bought
            settings: Current economics; commission is read here, at purchase time
            can_buy_hidden: Whether the buyer may see hidden items
            now: Purchase time (defaults to current UTC time)

        Returns:
            True if the purchase was applied, False if a precondition failed
        """
        reason = self.rejection_reason(buyer_id, item, can_buy_hidden)
        if reason is not None:
            logger.info(
                "purchase_rejected",
                buyer_id=buyer_id,
                content_item_id=item.item_id,
                reason=reason,
            )
            metrics.record_purchase(reason)
            return False

        earnings = compute_earnings(item.price, settings.platform_commission)
        self.ledger.apply_purchase(buyer_id, item, earnings, now or datetime.now(UTC))

        record = PurchaseRecord(
            buyer_id=buyer_id,
            creator_id=item.creator_id,
            content_item_id=item.item_id,
            price=item.price,
            earnings=earnings,
        )

        with tracer.start_as_current_span("ledger.record_purchase") as span:
            add_span_attributes(
                span,
                buyer_id=buyer_id,
                creator_id=item.creator_id,
                content_item_id=item.item_id,
                price=item.price,
            )
            failure: GatewayError | None = None
            async with self.outbox.exclusive():
                try:
                    await self.gateway.record_purchase(record)
                except GatewayError as exc:
                    failure = exc
                else:
                    # An older absolute balance write still queued would undo the debit
                    if self.ledger.has_pending_balance_write(buyer_id):
                        self.ledger.mirror_balance(buyer_id)

            if failure is not None:
                set_span_error(span, failure)
                logger.error(
                    "purchase_persist_failed",
                    buyer_id=buyer_id,
                    content_item_id=item.item_id,
                    error=failure.message,
                )
                metrics.record_error("GatewayError", "record_purchase")
                self._queue_retry(record)
                metrics.record_purchase("deferred", float(item.price))
                return True

        logger.info(
            "purchase_completed",
            buyer_id=buyer_id,
            creator_id=item.creator_id,
            content_item_id=item.item_id,
            price=str(item.price),
            earnings=str(earnings),
        )
        metrics.record_purchase("completed", float(item.price))
        return True

    def _queue_retry(self, record: PurchaseRecord) -> None:
        """
        Queue the failed purchase as independently retryable writes.

        The debit is folded into the buyer's absolute balance write so a
        retry can never charge twice.
        """
        self.ledger.mirror_balance(record.buyer_id)
        self.outbox.enqueue(
            "increment_earned_balance",
            partial(self.gateway.increment_earned_balance, record.creator_id, record.earnings),
        )
        self.outbox.enqueue(
            "insert_unlock",
            partial(self.gateway.insert_unlock, record.buyer_id, record.content_item_id),
            key=("unlock", record.buyer_id, record.content_item_id),
        )
