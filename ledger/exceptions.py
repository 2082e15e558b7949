"""
Exception Classes - Strongly typed exception hierarchy.

Precondition failures (insufficient balance, self-purchase, content too young
to delete) are NOT exceptions: ledger operations report them as ``False``.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    pass


class ConfigurationError(LedgerError):
    """Raised when critical configuration is missing or invalid."""

    pass


class GatewayError(LedgerError):
    """Raised when a persistence gateway call fails (unreachable, rejected write)."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Gateway operation {operation} failed: {message}")


class NotAuthenticatedError(LedgerError):
    """Raised when an operation needs a logged-in session user."""

    def __init__(self) -> None:
        super().__init__("No user is logged in to this session")


class AuthorizationError(LedgerError):
    """Raised when the session user's role lacks a required capability."""

    def __init__(self, role: str, capability: str) -> None:
        self.role = role
        self.capability = capability
        super().__init__(f"Authorization failed: role {role} lacks capability {capability}")


class CatalogEntryNotFoundError(LedgerError):
    """Raised when a subscription plan or credit package id is unknown."""

    def __init__(self, kind: str, entry_id: str) -> None:
        self.kind = kind
        self.entry_id = entry_id
        super().__init__(f"{kind} not found: {entry_id}")


class ContentLimitError(LedgerError):
    """Raised when a new content item exceeds the per-card media limits."""

    def __init__(self, media_type: str, count: int, limit: int) -> None:
        self.media_type = media_type
        self.count = count
        self.limit = limit
        super().__init__(f"Too many {media_type} items: {count} (limit {limit})")
