"""
Error taxonomy for the listing lifecycle.

Business outcomes (validation, quota, conflict, not-found, permission, state)
travel inside ``LifecycleResult.error`` and are never raised across component
boundaries. ``TransientStoreError`` and ``FatalError`` are raised and end up as
generic server errors.
"""


class ListingError(Exception):
    """Base class for all lifecycle outcomes that are not a success."""

    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(ListingError):
    """Malformed or missing input."""


class QuotaExceededError(ListingError):
    def __init__(self, current_count: int, limit: int) -> None:
        self.current_count = current_count
        self.limit = limit
        super().__init__(
            f"Active listing limit reached ({current_count}/{limit}). "
            "Remove or close one of your active listings before publishing another."
        )


class ConflictError(ListingError):
    """Optimistic-concurrency collision: the listing changed under the caller."""

    retryable = True

    def __init__(self, message: str = "Listing was modified concurrently, please retry.") -> None:
        super().__init__(message)


class NotFoundError(ListingError):
    """Unknown id, or a record the caller is not allowed to see."""

    def __init__(self, message: str = "Listing not found.") -> None:
        super().__init__(message)


class PermissionDeniedError(ListingError):
    pass


class InvalidStateError(ListingError):
    """The listing's current status does not allow the requested operation."""


class TransientStoreError(Exception):
    """Persistence timeout or unavailability. No partial state may be assumed."""


class FatalError(Exception):
    """Programming error or broken invariant."""
