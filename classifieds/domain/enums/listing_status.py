from enum import Enum


class ListingStatus(str, Enum):
    """All possible states of a live listing."""

    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    SOLD = "sold"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        """Terminal states have no outgoing status transitions; only archival remains."""
        return self in (
            ListingStatus.REJECTED,
            ListingStatus.SOLD,
            ListingStatus.CANCELLED,
            ListingStatus.EXPIRED,
        )

    @property
    def is_editable(self) -> bool:
        return self in (ListingStatus.PENDING, ListingStatus.ACTIVE)
