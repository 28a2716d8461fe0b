from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.errors import InvalidStateError


# Mapping of valid transitions: from_status -> set of allowed to_statuses
VALID_TRANSITIONS: dict[ListingStatus, frozenset[ListingStatus]] = {
    ListingStatus.PENDING: frozenset({ListingStatus.ACTIVE, ListingStatus.REJECTED}),
    ListingStatus.ACTIVE: frozenset(
        {ListingStatus.SOLD, ListingStatus.CANCELLED, ListingStatus.EXPIRED}
    ),
    # Terminal states: only archival remains
    ListingStatus.REJECTED: frozenset(),
    ListingStatus.SOLD: frozenset(),
    ListingStatus.CANCELLED: frozenset(),
    ListingStatus.EXPIRED: frozenset(),
}

# Every live status may be archived by an owner or moderator delete.
ARCHIVABLE_STATUSES: frozenset[ListingStatus] = frozenset(ListingStatus)


class InvalidStateTransitionError(InvalidStateError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, from_status: ListingStatus, to_status: ListingStatus) -> None:
        self.from_status = from_status
        self.to_status = to_status
        allowed = sorted(s.value for s in VALID_TRANSITIONS.get(from_status, frozenset()))
        super().__init__(
            f"Invalid transition from {from_status.value} to {to_status.value}. "
            f"Allowed transitions: {allowed}"
        )


class LifecycleStateMachine:
    """
    Validates status transitions for the listing lifecycle.

    Stateless; call validate_transition() with explicit statuses.
    """

    def can_transition(self, from_status: ListingStatus, to_status: ListingStatus) -> bool:
        """Return True if transitioning from_status → to_status is permitted."""
        if from_status.is_terminal:
            return False
        return to_status in VALID_TRANSITIONS.get(from_status, frozenset())

    def validate_transition(self, from_status: ListingStatus, to_status: ListingStatus) -> None:
        """Raise InvalidStateTransitionError if the transition is not permitted."""
        if not self.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(from_status, to_status)

    def get_allowed_transitions(self, from_status: ListingStatus) -> frozenset[ListingStatus]:
        """Return the set of statuses reachable from from_status."""
        return VALID_TRANSITIONS.get(from_status, frozenset())

    def can_archive(self, status: ListingStatus) -> bool:
        return status in ARCHIVABLE_STATUSES
