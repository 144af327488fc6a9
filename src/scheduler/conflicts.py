"""Conflict detection between a proposed slot and existing activities.

Checks three independent dimensions and reports them in a fixed order:
the teacher, then each student (in request order), then the room. Only
activities whose status is exactly SCHEDULED count; an IN_PROGRESS activity
does not block a new booking.

Detection is read-only and safe to call speculatively.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Sequence

from scheduler.interval import TimeInterval
from scheduler.models import Activity, ActivityStatus


class ConflictDimension(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"
    ROOM = "room"


@dataclass(frozen=True)
class Conflict:
    """One overlapping activity, identified for display."""

    dimension: ConflictDimension
    subject_id: str  # teacher, student or room the overlap was found on
    activity_id: str
    scheduled_at: datetime

    @property
    def message(self) -> str:
        at = self.scheduled_at.isoformat()
        if self.dimension is ConflictDimension.TEACHER:
            return f"Teacher has another lesson: {self.activity_id} at {at}"
        if self.dimension is ConflictDimension.STUDENT:
            return f"Student {self.subject_id} has another lesson: {self.activity_id} at {at}"
        return f"Room has another booking: {self.activity_id} at {at}"

    def __str__(self) -> str:
        return self.message


def _blocking(
    activities: Iterable[Activity], candidate: TimeInterval, exclude_id: str | None
) -> list[Activity]:
    return [
        activity
        for activity in activities
        if activity.id != exclude_id
        and activity.status is ActivityStatus.SCHEDULED
        and activity.interval.overlaps(candidate)
    ]


def teacher_conflicts(
    candidate: TimeInterval,
    teacher_id: str,
    activities: Iterable[Activity],
    exclude_id: str | None = None,
) -> list[Conflict]:
    lessons = (a for a in activities if a.taught_by(teacher_id))
    return [
        Conflict(ConflictDimension.TEACHER, teacher_id, a.id, a.scheduled_at)
        for a in _blocking(lessons, candidate, exclude_id)
    ]


def student_conflicts(
    candidate: TimeInterval,
    student_id: str,
    activities: Iterable[Activity],
    exclude_id: str | None = None,
) -> list[Conflict]:
    """Lessons the student attends; room bookings are not considered."""
    lessons = (a for a in activities if a.attends_lesson(student_id))
    return [
        Conflict(ConflictDimension.STUDENT, student_id, a.id, a.scheduled_at)
        for a in _blocking(lessons, candidate, exclude_id)
    ]


def room_conflicts(
    candidate: TimeInterval,
    room_id: str,
    activities: Iterable[Activity],
    exclude_id: str | None = None,
) -> list[Conflict]:
    in_room = (a for a in activities if a.room_id == room_id)
    return [
        Conflict(ConflictDimension.ROOM, room_id, a.id, a.scheduled_at)
        for a in _blocking(in_room, candidate, exclude_id)
    ]


def detect_conflicts(
    candidate: TimeInterval,
    activities: Sequence[Activity],
    *,
    teacher_id: str | None = None,
    student_ids: Sequence[str] = (),
    room_id: str | None = None,
    exclude_id: str | None = None,
) -> list[Conflict]:
    """Collect every conflict for a proposed slot.

    Args:
        candidate: The proposed interval.
        activities: Existing activities to check against.
        teacher_id: Teacher dimension to check, if any.
        student_ids: Students to check, reported in this order.
        room_id: Room dimension to check, if any.
        exclude_id: Activity to ignore (the one being moved).

    Returns:
        Ordered conflicts; empty means the slot is free of other activities.
    """
    conflicts: list[Conflict] = []
    if teacher_id is not None:
        conflicts.extend(teacher_conflicts(candidate, teacher_id, activities, exclude_id))
    for student_id in student_ids:
        conflicts.extend(student_conflicts(candidate, student_id, activities, exclude_id))
    if room_id is not None:
        conflicts.extend(room_conflicts(candidate, room_id, activities, exclude_id))
    return conflicts
