"""Per-resource booking calendars.

A ResourceCalendar holds the booked intervals of one teacher or one room,
keyed by booking reference (the activity ID). Stored intervals never overlap.

Calendars are not synchronized themselves: they are owned by the
SchedulingService and only touched while its lock is held.
"""

from datetime import datetime

from scheduler.errors import DuplicateBookingError
from scheduler.interval import TimeInterval
from scheduler.logging import get_logger

logger = get_logger(__name__)


class ResourceCalendar:
    """Booked intervals of a single resource."""

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id
        self._bookings: dict[str, TimeInterval] = {}

    def __len__(self) -> int:
        return len(self._bookings)

    def __contains__(self, reference: object) -> bool:
        return reference in self._bookings

    def is_available(self, candidate: TimeInterval, *, ignore: str | None = None) -> bool:
        """Check that no stored interval overlaps the candidate.

        Args:
            candidate: Interval to test.
            ignore: Booking reference to leave out of the check (the activity's
                own slot when testing where it could move to).
        """
        return not any(
            interval.overlaps(candidate)
            for reference, interval in self._bookings.items()
            if reference != ignore
        )

    def is_available_at(self, start: datetime, duration_minutes: int) -> bool:
        return self.is_available(TimeInterval.of(start, duration_minutes))

    def add_booking(self, reference: str, interval: TimeInterval) -> bool:
        """Book an interval under a reference.

        Returns:
            False without mutating if the interval overlaps an existing booking.

        Raises:
            DuplicateBookingError: If the reference already holds an interval.
        """
        if reference in self._bookings:
            logger.error(
                "duplicate_booking_reference",
                resource_id=self.resource_id,
                reference=reference,
                held=str(self._bookings[reference]),
                requested=str(interval),
            )
            raise DuplicateBookingError(reference)

        if not self.is_available(interval):
            logger.debug(
                "calendar_slot_taken",
                resource_id=self.resource_id,
                reference=reference,
                requested=str(interval),
            )
            return False

        self._bookings[reference] = interval
        return True

    def remove_booking(self, reference: str) -> bool:
        """Release a booking. Returns False if the reference is not held."""
        return self._bookings.pop(reference, None) is not None

    def interval_for(self, reference: str) -> TimeInterval | None:
        return self._bookings.get(reference)

    def bookings(self) -> list[tuple[str, TimeInterval]]:
        """Snapshot of (reference, interval) pairs ordered by start time."""
        return sorted(self._bookings.items(), key=lambda item: item[1].start)
