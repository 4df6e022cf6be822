"""Error taxonomy for listing and bid operations."""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base class; ``status_code`` and ``code`` drive the HTTP mapping."""

    status_code = 500
    code = "ledger_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.retryable:
            detail["retryable"] = True
        return detail


class ValidationError(LedgerError):
    status_code = 422
    code = "validation_error"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class InvalidListing(ValidationError):
    code = "invalid_listing"


class ConflictError(LedgerError):
    status_code = 409
    code = "conflict"
    retryable = True


class BidTooLow(ConflictError):
    code = "bid_too_low"

    def __init__(self, amount: Decimal, current_highest: Decimal) -> None:
        super().__init__(f"bid must be higher than {current_highest}")
        self.amount = amount
        self.current_highest = current_highest

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["current_highest"] = str(self.current_highest)
        return detail


class LedgerBusy(ConflictError):
    code = "ledger_busy"

    def __init__(self, listing_id: str, attempts: int) -> None:
        super().__init__(f"listing {listing_id} changed {attempts} times during submission")
        self.listing_id = listing_id


class StateError(LedgerError):
    status_code = 409
    code = "invalid_state"


class ListingNotFound(StateError):
    status_code = 404
    code = "listing_not_found"

    def __init__(self, listing_id: str) -> None:
        super().__init__(f"listing {listing_id} not found")
        self.listing_id = listing_id


class ListingClosed(StateError):
    code = "listing_closed"

    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(f"listing {listing_id} is {status}")
        self.listing_id = listing_id
        self.status = status

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["status"] = self.status
        return detail


class AuthError(LedgerError):
    status_code = 403
    code = "forbidden"


class Unauthenticated(AuthError):
    status_code = 401
    code = "unauthenticated"


class Forbidden(AuthError):
    pass


class OwnListingBid(AuthError):
    code = "own_listing_bid"

    def __init__(self, listing_id: str) -> None:
        super().__init__(f"owner cannot bid on listing {listing_id}")


class NotListingOwner(AuthError):
    code = "not_listing_owner"

    def __init__(self, listing_id: str) -> None:
        super().__init__(f"only the owner may close listing {listing_id}")


class StorageUnavailable(LedgerError):
    status_code = 503
    code = "storage_unavailable"
    retryable = True
