"""Half-open time interval value object.

An interval covers [start, end): touching intervals do not overlap, so a
lesson ending at 11:00 and one starting at 11:00 can share a room.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Self

from scheduler.errors import InvalidIntervalError


@dataclass(frozen=True)
class TimeInterval:
    """Immutable [start, end) range with overlap and containment algebra."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidIntervalError(
                f"End time must be after start time ({self.start} - {self.end})"
            )

    @classmethod
    def of(cls, start: datetime, duration_minutes: int) -> Self:
        """Build an interval from a start instant and a duration in minutes."""
        if duration_minutes <= 0:
            raise InvalidIntervalError(
                f"Duration must be positive, got {duration_minutes} minutes"
            )
        return cls(start=start, end=start + timedelta(minutes=duration_minutes))

    def overlaps(self, other: "TimeInterval") -> bool:
        return self.start < other.end and self.end > other.start

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def __str__(self) -> str:
        return f"{self.start.isoformat()} - {self.end.isoformat()}"
