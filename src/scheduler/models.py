"""Pydantic models for scheduled activities.

Activity is a closed tagged union: Lesson | RoomBooking, discriminated by the
``kind`` field. Shared lifecycle (the status state machine, the 24-hour
penalty rule) lives on the base class; variant-specific data and behaviour
live only on the concrete types, so callers dispatch through methods such as
``occupied_resources()`` instead of inspecting types.

Timestamps are compared as given: the service's clock and the activity times
must use the same convention (all naive local time, or all timezone-aware).
"""

import math
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from scheduler.errors import InvalidStateTransitionError
from scheduler.interval import TimeInterval

DEFAULT_CANCELLATION_NOTICE = timedelta(hours=24)
DEFAULT_BILLING_BLOCK_MINUTES = 60


class ActivityStatus(str, Enum):
    """Lifecycle status of a scheduled activity."""

    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

    @property
    def display_name(self) -> str:
        return _STATUS_TEXT[self][0]

    @property
    def description(self) -> str:
        return _STATUS_TEXT[self][1]

    @property
    def is_finalized(self) -> bool:
        return self in (
            ActivityStatus.COMPLETED,
            ActivityStatus.CANCELLED,
            ActivityStatus.NO_SHOW,
        )

    @property
    def consumes_hours(self) -> bool:
        return self in (ActivityStatus.COMPLETED, ActivityStatus.NO_SHOW)

    def __str__(self) -> str:
        return self.display_name


_STATUS_TEXT: dict[ActivityStatus, tuple[str, str]] = {
    ActivityStatus.SCHEDULED: ("Scheduled", "Activity is scheduled and pending"),
    ActivityStatus.IN_PROGRESS: ("In Progress", "Activity is currently ongoing"),
    ActivityStatus.COMPLETED: ("Completed", "Activity has been completed successfully"),
    ActivityStatus.CANCELLED: ("Cancelled", "Activity has been cancelled"),
    ActivityStatus.NO_SHOW: ("No Show", "Participant did not attend"),
}

# Terminal statuses have no entry.
_TRANSITIONS: dict[ActivityStatus, frozenset[ActivityStatus]] = {
    ActivityStatus.SCHEDULED: frozenset(
        {
            ActivityStatus.IN_PROGRESS,
            ActivityStatus.COMPLETED,
            ActivityStatus.CANCELLED,
            ActivityStatus.NO_SHOW,
        }
    ),
    ActivityStatus.IN_PROGRESS: frozenset(
        {
            ActivityStatus.COMPLETED,
            ActivityStatus.CANCELLED,
            ActivityStatus.NO_SHOW,
        }
    ),
}


class ResourceKind(str, Enum):
    """Resources that keep a booking calendar."""

    TEACHER = "teacher"
    ROOM = "room"


def new_activity_id(prefix: str) -> str:
    """Generate an activity ID such as ``LES-3F9A01BC``."""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


class Activity(BaseModel, ABC):
    """Fields and lifecycle shared by every scheduled activity."""

    id: str
    scheduled_at: datetime
    duration_minutes: int = Field(gt=0)
    status: ActivityStatus = ActivityStatus.SCHEDULED
    room_id: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    # -- timing -------------------------------------------------------------

    @property
    def end_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval.of(self.scheduled_at, self.duration_minutes)

    def conflicts_with(self, other: "Activity") -> bool:
        return self.interval.overlaps(other.interval)

    def can_cancel_without_penalty(
        self, now: datetime, notice: timedelta = DEFAULT_CANCELLATION_NOTICE
    ) -> bool:
        """True when ``now + notice`` is strictly before the start.

        The boundary instant itself (exactly ``notice`` before start) is on the
        penalty side.
        """
        return now + notice < self.scheduled_at

    def is_past(self, now: datetime) -> bool:
        return now > self.end_at

    def is_ongoing(self, now: datetime) -> bool:
        return self.scheduled_at < now < self.end_at

    def schedule_description(self) -> str:
        return (
            f"{self.scheduled_at.isoformat()} - {self.end_at.isoformat()} "
            f"({self.duration_minutes} min)"
        )

    # -- state machine ------------------------------------------------------

    def _transition(self, target: ActivityStatus, now: datetime) -> None:
        if target not in _TRANSITIONS.get(self.status, frozenset()):
            raise InvalidStateTransitionError(
                self.id,
                f"Cannot move {self.id} from {self.status.display_name} "
                f"to {target.display_name}",
            )
        self.status = target
        self.updated_at = now

    def start(self, now: datetime) -> None:
        """Mark the activity as in progress."""
        self._transition(ActivityStatus.IN_PROGRESS, now)

    def complete(self, now: datetime) -> None:
        self._transition(ActivityStatus.COMPLETED, now)

    def cancel(
        self, now: datetime, notice: timedelta = DEFAULT_CANCELLATION_NOTICE
    ) -> bool:
        """Cancel the activity, applying the late-cancellation penalty rule.

        A cancellation with enough notice becomes CANCELLED. A late one becomes
        NO_SHOW and is billed like a missed lesson.

        Returns:
            True if cancelled without penalty.

        Raises:
            InvalidStateTransitionError: If the activity is already finalized.
        """
        without_penalty = self.can_cancel_without_penalty(now, notice)
        target = ActivityStatus.CANCELLED if without_penalty else ActivityStatus.NO_SHOW
        self._transition(target, now)
        return without_penalty

    def can_reschedule(
        self, now: datetime, notice: timedelta = DEFAULT_CANCELLATION_NOTICE
    ) -> bool:
        return self.status is ActivityStatus.SCHEDULED and self.can_cancel_without_penalty(
            now, notice
        )

    def reschedule(
        self,
        new_time: datetime,
        now: datetime,
        notice: timedelta = DEFAULT_CANCELLATION_NOTICE,
    ) -> None:
        """Move the activity to ``new_time``.

        Only the lifecycle gate is checked here; resource availability at the
        new time is the service's job.

        Raises:
            InvalidStateTransitionError: If not SCHEDULED or inside the notice window.
        """
        if self.status is not ActivityStatus.SCHEDULED:
            raise InvalidStateTransitionError(
                self.id,
                f"Cannot reschedule {self.id}: status is {self.status.display_name}",
            )
        if not self.can_cancel_without_penalty(now, notice):
            raise InvalidStateTransitionError(
                self.id,
                f"Cannot reschedule {self.id}: less than "
                f"{int(notice.total_seconds() // 3600)}h before start",
            )
        self.scheduled_at = new_time
        self.updated_at = now

    # -- variant hooks ------------------------------------------------------

    @property
    @abstractmethod
    def activity_type(self) -> str: ...

    @abstractmethod
    def occupied_resources(self) -> list[tuple[ResourceKind, str]]:
        """Calendars this activity books, teacher before room."""

    @abstractmethod
    def billable_student_ids(self) -> list[str]:
        """Students whose hour balance this activity draws on."""

    @abstractmethod
    def participant_ids(self) -> list[str]:
        """Students taking part in the activity."""

    @abstractmethod
    def hours_to_charge(self, block_minutes: int = DEFAULT_BILLING_BLOCK_MINUTES) -> int:
        """Hours drawn from each billable student's balance."""

    @abstractmethod
    def taught_by(self, teacher_id: str) -> bool: ...

    @abstractmethod
    def attends_lesson(self, student_id: str) -> bool:
        """True if the student takes part in this activity as a lesson pupil."""

    @property
    @abstractmethod
    def consumes_lesson_hours(self) -> bool: ...

    @abstractmethod
    def describe(self) -> str: ...

    def __str__(self) -> str:
        return f"[{self.id}] {self.activity_type} - {self.scheduled_at.isoformat()} ({self.status})"


class Lesson(Activity):
    """An individual or group lesson given by one teacher."""

    kind: Literal["lesson"] = "lesson"
    id: str = Field(default_factory=lambda: new_activity_id("LES"))
    teacher_id: str
    student_ids: list[str] = Field(min_length=1)
    instrument: str
    instrument_id: str | None = None  # school-owned instrument, if any
    package_id: str | None = None
    service_id: str | None = None

    @field_validator("student_ids")
    @classmethod
    def _unique_students(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def is_group(self) -> bool:
        return len(self.student_ids) > 1

    @property
    def activity_type(self) -> str:
        return "Group Lesson" if self.is_group else "Individual Lesson"

    @property
    def consumes_lesson_hours(self) -> bool:
        return self.status.consumes_hours

    def hours_per_student(
        self, block_minutes: int = DEFAULT_BILLING_BLOCK_MINUTES
    ) -> int:
        """Hours charged to each student: every started block counts in full."""
        return math.ceil(self.duration_minutes / block_minutes)

    def has_student(self, student_id: str) -> bool:
        return student_id in self.student_ids

    def add_student(self, student_id: str) -> None:
        if student_id not in self.student_ids:
            self.student_ids.append(student_id)

    def remove_student(self, student_id: str) -> bool:
        if student_id not in self.student_ids or len(self.student_ids) == 1:
            return False
        self.student_ids.remove(student_id)
        return True

    def occupied_resources(self) -> list[tuple[ResourceKind, str]]:
        resources = [(ResourceKind.TEACHER, self.teacher_id)]
        if self.room_id is not None:
            resources.append((ResourceKind.ROOM, self.room_id))
        return resources

    def billable_student_ids(self) -> list[str]:
        return list(self.student_ids)

    def participant_ids(self) -> list[str]:
        return list(self.student_ids)

    def hours_to_charge(self, block_minutes: int = DEFAULT_BILLING_BLOCK_MINUTES) -> int:
        return self.hours_per_student(block_minutes)

    def taught_by(self, teacher_id: str) -> bool:
        return self.teacher_id == teacher_id

    def attends_lesson(self, student_id: str) -> bool:
        return self.has_student(student_id)

    def describe(self) -> str:
        lines = [
            f"ID:          {self.id}",
            f"Type:        {self.activity_type}",
            f"Instrument:  {self.instrument}",
            f"Date/Time:   {self.scheduled_at.isoformat()}",
            f"Duration:    {self.duration_minutes} minutes",
            f"Teacher ID:  {self.teacher_id}",
            f"Students:    {', '.join(self.student_ids)}",
            f"Room ID:     {self.room_id or 'Not assigned'}",
            f"Status:      {self.status}",
        ]
        if self.instrument_id:
            lines.append(f"School inst: {self.instrument_id}")
        if self.package_id:
            lines.append(f"Package:     {self.package_id}")
        if self.notes:
            lines.append(f"Notes:       {self.notes}")
        return "\n".join(lines)


class RoomBooking(Activity):
    """A student renting a room (practice, rehearsal, recording...)."""

    kind: Literal["room_booking"] = "room_booking"
    id: str = Field(default_factory=lambda: new_activity_id("BKG"))
    room_id: str
    student_id: str
    hourly_rate: Decimal | None = None
    purpose: str = "Practice"
    paid: bool = False

    @property
    def activity_type(self) -> str:
        return "Room Booking"

    @property
    def consumes_lesson_hours(self) -> bool:
        return False

    def calculate_cost(self) -> Decimal:
        if self.hourly_rate is None:
            return Decimal("0")
        return self.hourly_rate * Decimal(self.duration_minutes) / Decimal(60)

    def mark_as_paid(self) -> None:
        self.paid = True

    def occupied_resources(self) -> list[tuple[ResourceKind, str]]:
        return [(ResourceKind.ROOM, self.room_id)]

    def billable_student_ids(self) -> list[str]:
        return []

    def participant_ids(self) -> list[str]:
        return [self.student_id]

    def hours_to_charge(self, block_minutes: int = DEFAULT_BILLING_BLOCK_MINUTES) -> int:
        return 0

    def taught_by(self, teacher_id: str) -> bool:
        return False

    def attends_lesson(self, student_id: str) -> bool:
        return False

    def describe(self) -> str:
        lines = [
            f"ID:          {self.id}",
            f"Room ID:     {self.room_id}",
            f"Student ID:  {self.student_id}",
            f"Purpose:     {self.purpose}",
            f"Date/Time:   {self.scheduled_at.isoformat()}",
            f"Duration:    {self.duration_minutes} minutes",
            f"Total Cost:  {self.calculate_cost():.2f}",
            f"Status:      {self.status}",
            f"Paid:        {'Yes' if self.paid else 'No'}",
        ]
        if self.notes:
            lines.append(f"Notes:       {self.notes}")
        return "\n".join(lines)


AnyActivity = Annotated[Lesson | RoomBooking, Field(discriminator="kind")]

activity_adapter: TypeAdapter[Lesson | RoomBooking] = TypeAdapter(AnyActivity)
