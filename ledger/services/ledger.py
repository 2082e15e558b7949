"""
Ledger State - in-memory balances, transaction logs and entitlements.

One AccountState per user id. Transaction logs are append-only and kept
newest first. Spendable balance changes are mirrored to the gateway through
the outbox as absolute writes; the session owning a user is the single writer
of that user's spendable balance.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from functools import partial
from uuid import uuid4

from structlog import get_logger

from ledger.models.api import TransactionType
from ledger.models.domain import ContentItem, CreatorTransaction, Transaction
from ledger.observability.metrics import metrics
from ledger.services.gateway import PersistenceGateway
from ledger.services.outbox import Outbox

logger = get_logger(__name__)

REWARD_DESCRIPTION = "Credits from watching ad"
ZERO = Decimal("0")


def balance_key(user_id: str) -> tuple[str, str]:
    return ("credits_balance", user_id)


@dataclass
class AccountState:
    """Local snapshot of one user's money and entitlements."""

    user_id: str
    balance: Decimal = ZERO
    earned_balance: Decimal = ZERO
    transactions: list[Transaction] = field(default_factory=list)
    sales: list[CreatorTransaction] = field(default_factory=list)
    unlocked: set[str] = field(default_factory=set)


class LedgerState:
    """Process-wide ledger keyed by user id."""

    def __init__(self, gateway: PersistenceGateway, outbox: Outbox) -> None:
        self._gateway = gateway
        self._outbox = outbox
        self._accounts: dict[str, AccountState] = {}

    def account(self, user_id: str) -> AccountState:
        """Get the user's account, creating an empty one on first use."""
        if user_id not in self._accounts:
            self._accounts[user_id] = AccountState(user_id=user_id)
        return self._accounts[user_id]

    def balance(self, user_id: str) -> Decimal:
        return self.account(user_id).balance

    def earned_balance(self, user_id: str) -> Decimal:
        return self.account(user_id).earned_balance

    def transactions(self, user_id: str) -> list[Transaction]:
        return list(self.account(user_id).transactions)

    def creator_transactions(self, user_id: str) -> list[CreatorTransaction]:
        return list(self.account(user_id).sales)

    def unlocked(self, user_id: str) -> frozenset[str]:
        return frozenset(self.account(user_id).unlocked)

    def is_unlocked(self, user_id: str, item_id: str) -> bool:
        return item_id in self.account(user_id).unlocked

    def load_account(
        self,
        user_id: str,
        balance: Decimal,
        earned_balance: Decimal,
        unlocked_ids: list[str],
    ) -> AccountState:
        """
        Replace the user's balances and entitlements with a gateway snapshot.

        Transaction logs are local history and survive a reload.
        """
        account = self.account(user_id)
        account.balance = balance
        account.earned_balance = earned_balance
        account.unlocked = set(unlocked_ids)
        logger.debug(
            "account_loaded",
            user_id=user_id,
            balance=str(balance),
            unlocked=len(account.unlocked),
        )
        return account

    def add_credits(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        transaction_type: TransactionType,
        now: datetime | None = None,
    ) -> Transaction:
        """
        Apply a signed balance adjustment and log it.

        The resulting balance is clamped at zero; the logged amount is the
        delta actually applied, so the log always sums to the balance change.
        """
        account = self.account(user_id)
        new_balance = max(account.balance + amount, ZERO)
        applied = new_balance - account.balance

        transaction = Transaction(
            transaction_id=str(uuid4()),
            timestamp=now or datetime.now(UTC),
            transaction_type=transaction_type,
            amount=applied,
            description=description,
        )
        account.balance = new_balance
        account.transactions.insert(0, transaction)
        metrics.record_credit_addition(transaction_type.value)

        if applied != amount:
            logger.warning(
                "credit_adjustment_clamped",
                user_id=user_id,
                requested=str(amount),
                applied=str(applied),
            )

        if applied != ZERO:
            self.mirror_balance(user_id)

        logger.info(
            "credits_added",
            user_id=user_id,
            amount=str(applied),
            transaction_type=transaction_type.value,
            balance=str(new_balance),
        )
        return transaction

    def mirror_balance(self, user_id: str) -> None:
        """Queue an absolute write of the local spendable balance, replacing any older one."""
        self._outbox.enqueue(
            "set_credits_balance",
            partial(self._gateway.set_credits_balance, user_id, self.balance(user_id)),
            key=balance_key(user_id),
        )

    def has_pending_balance_write(self, user_id: str) -> bool:
        return self._outbox.has_pending(balance_key(user_id))

    def add_reward(self, user_id: str, amount: Decimal, now: datetime | None = None) -> Transaction:
        return self.add_credits(
            user_id, amount, REWARD_DESCRIPTION, TransactionType.REWARD, now=now
        )

    def apply_purchase(
        self,
        buyer_id: str,
        item: ContentItem,
        earnings: Decimal,
        now: datetime,
    ) -> tuple[Transaction, CreatorTransaction]:
        """
        Apply a validated purchase to local state.

        Debits the buyer, unlocks the item, credits the creator's earned
        balance and appends a sale to the creator's stream. Persistence is the
        caller's job, as one gateway transaction.
        """
        buyer = self.account(buyer_id)
        creator = self.account(item.creator_id)

        purchase = Transaction(
            transaction_id=str(uuid4()),
            timestamp=now,
            transaction_type=TransactionType.PURCHASE,
            amount=-item.price,
            description=f"Purchase of {item.title}",
        )
        sale = CreatorTransaction(
            transaction_id=str(uuid4()),
            content_item_id=item.item_id,
            title=item.title,
            buyer_id=buyer_id,
            amount_received=earnings,
            original_price=item.price,
            timestamp=now,
            media_count=item.media_count,
        )

        buyer.balance -= item.price
        buyer.transactions.insert(0, purchase)
        buyer.unlocked.add(item.item_id)
        creator.earned_balance += earnings
        creator.sales.insert(0, sale)
        return purchase, sale

    def record_entry(
        self,
        user_id: str,
        description: str,
        transaction_type: TransactionType,
        now: datetime | None = None,
    ) -> Transaction:
        """Log a zero-amount entry (cancellations, admin bookkeeping)."""
        return self.add_credits(user_id, ZERO, description, transaction_type, now=now)

    def apply_remote_grant(
        self,
        user_id: str,
        amount: Decimal,
        new_balance: Decimal,
        description: str,
        now: datetime | None = None,
    ) -> Transaction:
        """
        Mirror a grant the gateway already applied atomically.

        With no balance write pending the gateway balance is adopted as is. A
        pending write means the local balance is ahead of the gateway, so the
        grant lands on it as a clamped delta and the write is re-queued with the
        result. The logged amount is the change actually applied locally.

        Call with the outbox held exclusively around the gateway increment.
        """
        account = self.account(user_id)
        previous = account.balance
        pending = self.has_pending_balance_write(user_id)
        if pending:
            account.balance = max(previous + amount, ZERO)
        else:
            account.balance = new_balance

        transaction = Transaction(
            transaction_id=str(uuid4()),
            timestamp=now or datetime.now(UTC),
            transaction_type=TransactionType.ADMIN_GRANT,
            amount=account.balance - previous,
            description=description,
        )
        account.transactions.insert(0, transaction)
        metrics.record_credit_addition(TransactionType.ADMIN_GRANT.value)
        if pending:
            self.mirror_balance(user_id)
        return transaction
