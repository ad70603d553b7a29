"""
Domain error taxonomy.

Every failure the services report to their callers is a MarketplaceError
subclass tagged with a member of the closed ErrorKind enum. The request layer
maps kinds to responses structurally; nothing matches on message text.
"""
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ecomarket.models.purchase import Purchase


class ErrorKind(str, Enum):
    """Closed set of failure categories."""
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    ALREADY_PURCHASED = "already_purchased"
    INVALID_STATE = "invalid_state"
    INVALID_INPUT = "invalid_input"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_DATA = "insufficient_data"
    TIMEOUT = "timeout"


class MarketplaceError(Exception):
    """Base class for errors returned synchronously to callers."""

    kind: ErrorKind = ErrorKind.INVALID_STATE
    default_code: str = "error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value} code={self.code}>"


class NotFoundError(MarketplaceError):
    kind = ErrorKind.NOT_FOUND
    default_code = "not_found"


class ForbiddenError(MarketplaceError):
    kind = ErrorKind.FORBIDDEN
    default_code = "forbidden"


class AlreadyPurchasedError(MarketplaceError):
    """
    Raised when an item already has an active purchase.

    Carries the conflicting purchase so the caller can reconcile.
    """

    kind = ErrorKind.ALREADY_PURCHASED
    default_code = "already_purchased"

    def __init__(
        self,
        purchase: "Purchase",
        message: str = "item already purchased",
        code: Optional[str] = None,
    ):
        super().__init__(message, code)
        self.purchase = purchase


class InvalidStateError(MarketplaceError):
    kind = ErrorKind.INVALID_STATE
    default_code = "invalid_state"


class InvalidInputError(MarketplaceError):
    kind = ErrorKind.INVALID_INPUT
    default_code = "invalid_input"


class InsufficientBalanceError(MarketplaceError):
    kind = ErrorKind.INSUFFICIENT_BALANCE
    default_code = "insufficient_balance"


class InsufficientDataError(MarketplaceError):
    kind = ErrorKind.INSUFFICIENT_DATA
    default_code = "insufficient_data"


class EstimationTimeoutError(MarketplaceError):
    kind = ErrorKind.TIMEOUT
    default_code = "timeout"
