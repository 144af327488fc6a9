"""Scheduling and resource-booking core for a music school.

Schedules lessons and room bookings against shared teachers, students and
rooms, prevents double-booking, and applies the 24-hour cancellation rule.
"""

from scheduler.conflicts import Conflict, detect_conflicts
from scheduler.directory import Directory, InMemoryDirectory, Room, Student, Teacher, Weekday
from scheduler.interval import TimeInterval
from scheduler.models import ActivityStatus, Lesson, RoomBooking
from scheduler.resource_calendar import ResourceCalendar
from scheduler.service import HoursConsumed, SchedulingService
from scheduler.store import ActivityStore, InMemoryActivityStore

__all__ = [
    "SchedulingService",
    "HoursConsumed",
    "TimeInterval",
    "ResourceCalendar",
    "ActivityStatus",
    "Lesson",
    "RoomBooking",
    "Conflict",
    "detect_conflicts",
    "ActivityStore",
    "InMemoryActivityStore",
    "Directory",
    "InMemoryDirectory",
    "Teacher",
    "Student",
    "Room",
    "Weekday",
]
