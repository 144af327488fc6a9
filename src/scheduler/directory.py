"""Collaborator contracts for teachers, students, rooms and course packages.

Profile management lives outside the scheduling core. The service only needs
the small surface described by the protocols below, resolved through a
Directory. InMemoryDirectory and the pydantic records in this module are the
reference implementation used by tests and single-process deployments.

A Directory backed by a remote system should raise TransientError for
temporary failures; the service retries those lookups.
"""

from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta
from enum import IntEnum
from typing import Protocol

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------
class TeacherLike(Protocol):
    id: str

    def is_active(self) -> bool: ...

    def can_teach(self, instrument: str) -> bool: ...

    def is_available_at(self, start: datetime, duration_minutes: int) -> bool: ...


class StudentLike(Protocol):
    id: str

    def is_active(self) -> bool: ...

    def consume_hours(self, hours: int) -> bool: ...


class RoomLike(Protocol):
    id: str

    def is_available(self) -> bool: ...

    def is_available_at(self, start: datetime, duration_minutes: int) -> bool: ...


class Directory(ABC):
    """Lookup interface for the entities a scheduling request references."""

    @abstractmethod
    def get_teacher(self, teacher_id: str) -> TeacherLike | None:
        """Return the teacher, or None if not found."""
        ...

    @abstractmethod
    def get_student(self, student_id: str) -> StudentLike | None:
        """Return the student, or None if not found."""
        ...

    @abstractmethod
    def get_room(self, room_id: str) -> RoomLike | None:
        """Return the room, or None if not found."""
        ...

    @abstractmethod
    def package_exists(self, package_id: str) -> bool:
        """Check if a course package exists."""
        ...


# ---------------------------------------------------------------------------
# Reference records
# ---------------------------------------------------------------------------
class Weekday(IntEnum):
    """Day of week, numbered like datetime.weekday()."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class TimeRange(BaseModel):
    """A daily window such as 09:00-17:00."""

    start: time
    end: time

    @model_validator(mode="after")
    def _end_after_start(self) -> "TimeRange":
        if self.end <= self.start:
            raise ValueError("End time must be after start time")
        return self

    def covers(self, start: time, end: time) -> bool:
        return self.start <= start and end <= self.end


class Teacher(BaseModel):
    """Teacher with instrument specializations and weekly availability windows."""

    id: str
    name: str
    specializations: list[str] = Field(default_factory=list)
    availability: dict[Weekday, list[TimeRange]] = Field(default_factory=dict)
    active: bool = True

    def is_active(self) -> bool:
        return self.active

    def can_teach(self, instrument: str) -> bool:
        wanted = instrument.casefold()
        return any(s.casefold() == wanted for s in self.specializations)

    def set_availability(self, day: Weekday, start: time, end: time) -> None:
        self.availability.setdefault(day, []).append(TimeRange(start=start, end=end))

    def clear_availability(self, day: Weekday) -> None:
        self.availability.pop(day, None)

    def is_available_at(self, start: datetime, duration_minutes: int) -> bool:
        """Check that one weekly window fully covers the slot.

        A slot crossing midnight is never covered.
        """
        end = start + timedelta(minutes=duration_minutes)
        if end.date() != start.date():
            return False
        windows = self.availability.get(Weekday(start.weekday()), [])
        return any(w.covers(start.time(), end.time()) for w in windows)


class Student(BaseModel):
    """Student with lesson-hour balances from purchased course packages."""

    id: str
    name: str
    active: bool = True
    package_hours: dict[str, int] = Field(default_factory=dict)
    total_purchased_hours: int = 0
    total_consumed_hours: int = 0

    def is_active(self) -> bool:
        return self.active

    @property
    def remaining_hours(self) -> int:
        return self.total_purchased_hours - self.total_consumed_hours

    def add_package_hours(self, package_id: str, hours: int) -> None:
        self.package_hours[package_id] = self.package_hours.get(package_id, 0) + hours
        self.total_purchased_hours += hours

    def has_hours(self, hours: int) -> bool:
        return self.remaining_hours >= hours

    def consume_hours(self, hours: int) -> bool:
        """Draw hours from packages, oldest first.

        Returns:
            False without changing balances if fewer hours remain than requested.
        """
        if not self.has_hours(hours):
            return False
        self.total_consumed_hours += hours

        remaining = hours
        for package_id, available in self.package_hours.items():
            if remaining <= 0:
                break
            taken = min(available, remaining)
            self.package_hours[package_id] = available - taken
            remaining -= taken
        return True


class Room(BaseModel):
    """Lesson / practice room."""

    id: str
    name: str
    capacity: int = 1
    suitable_instruments: list[str] = Field(default_factory=list)
    available: bool = True
    under_maintenance: bool = False

    def is_available(self) -> bool:
        return self.available

    def is_available_at(self, start: datetime, duration_minutes: int) -> bool:
        """Entity-level gate; booked slots are tracked by the room's calendar."""
        return self.available and not self.under_maintenance

    def is_suitable_for(self, instrument: str) -> bool:
        wanted = instrument.casefold()
        return any(i.casefold() == wanted for i in self.suitable_instruments)


class InMemoryDirectory(Directory):
    """Dictionary-backed directory."""

    def __init__(self) -> None:
        self.teachers: dict[str, Teacher] = {}
        self.students: dict[str, Student] = {}
        self.rooms: dict[str, Room] = {}
        self.packages: set[str] = set()

    def add_teacher(self, teacher: Teacher) -> Teacher:
        self.teachers[teacher.id] = teacher
        return teacher

    def add_student(self, student: Student) -> Student:
        self.students[student.id] = student
        return student

    def add_room(self, room: Room) -> Room:
        self.rooms[room.id] = room
        return room

    def add_package(self, package_id: str) -> None:
        self.packages.add(package_id)

    def get_teacher(self, teacher_id: str) -> Teacher | None:
        return self.teachers.get(teacher_id)

    def get_student(self, student_id: str) -> Student | None:
        return self.students.get(student_id)

    def get_room(self, room_id: str) -> Room | None:
        return self.rooms.get(room_id)

    def package_exists(self, package_id: str) -> bool:
        return package_id in self.packages
