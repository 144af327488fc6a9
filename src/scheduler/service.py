"""Scheduling service - orchestrates booking of lessons and rooms.

Every operation follows the same shape: resolve collaborators (outside the
lock, retrying transient lookup failures), then under the service lock run
conflict detection and availability gating, book the resource calendars,
persist, and finally charge lesson hours (students resolved outside the lock,
balances drawn down under it so concurrent completions cannot overdraw).

The lock is a single re-entrant lock: all calendar mutations, conflict checks
and status transitions are serialized, so two requests can never both see a
slot as free and book it. Calendars hold exactly the activities that are not
finalized.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Sequence, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from scheduler.config import SchedulerConfig, get_config
from scheduler.conflicts import Conflict, detect_conflicts
from scheduler.directory import Directory, RoomLike, StudentLike, TeacherLike
from scheduler.errors import (
    InactiveError,
    InvalidRequestError,
    InvalidStateTransitionError,
    NotFoundError,
    ResourceNotAvailableError,
    SchedulingConflictError,
    SchedulingError,
    TeacherCannotTeachInstrumentError,
    TransientError,
)
from scheduler.interval import TimeInterval
from scheduler.logging import get_logger
from scheduler.models import Activity, ActivityStatus, Lesson, ResourceKind, RoomBooking
from scheduler.resource_calendar import ResourceCalendar
from scheduler.store import ActivityStore

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class HoursConsumed:
    """Outcome of charging one student for one activity."""

    activity_id: str
    student_id: str
    hours: int
    consumed: bool
    reason: str  # "completed" or "late_cancellation"


def _log_lookup_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "directory_lookup_retry",
        attempt=retry_state.attempt_number,
        error=str(outcome.exception()) if outcome else None,
    )


class SchedulingService:
    """Schedules lessons and room bookings against shared teachers, students and rooms."""

    def __init__(
        self,
        directory: Directory,
        store: ActivityStore,
        *,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize SchedulingService.

        Args:
            directory: Resolves teachers, students, rooms and packages.
            store: Holds activities; owned by this service from now on.
            config: Business-rule settings. Defaults to get_config().
            clock: Returns the current time. Defaults to datetime.now.
        """
        self._directory = directory
        self._store = store
        self._config = config or get_config()
        self._clock = clock or datetime.now
        self._lock = threading.RLock()
        self._calendars: dict[tuple[ResourceKind, str], ResourceCalendar] = {}

    @property
    def notice(self) -> timedelta:
        return timedelta(hours=self._config.cancellation_notice_hours)

    # -----------------------------------------------------------------------
    # Collaborator lookups
    # -----------------------------------------------------------------------
    def _lookup(self, fn: Callable[[str], T], entity_id: str) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self._config.lookup_retry_attempts),
            wait=wait_fixed(self._config.lookup_retry_wait_seconds),
            retry=retry_if_exception_type(TransientError),
            before_sleep=_log_lookup_retry,
            reraise=True,
        )
        return retrying(fn, entity_id)

    def _require_teacher(self, teacher_id: str) -> TeacherLike:
        teacher = self._lookup(self._directory.get_teacher, teacher_id)
        if teacher is None:
            raise NotFoundError("Teacher", teacher_id)
        if not teacher.is_active():
            raise InactiveError("Teacher", teacher_id)
        return teacher

    def _require_student(self, student_id: str) -> StudentLike:
        student = self._lookup(self._directory.get_student, student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        if not student.is_active():
            raise InactiveError("Student", student_id)
        return student

    def _require_room(self, room_id: str) -> RoomLike:
        room = self._lookup(self._directory.get_room, room_id)
        if room is None:
            raise NotFoundError("Room", room_id)
        if not room.is_available():
            raise ResourceNotAvailableError("Room", room_id, "room is marked unavailable")
        return room

    def _require_activity(self, activity_id: str) -> Activity:
        activity = self._store.get_activity(activity_id)
        if activity is None:
            raise NotFoundError("Activity", activity_id)
        return activity

    # -----------------------------------------------------------------------
    # Calendars (lock must be held)
    # -----------------------------------------------------------------------
    def _calendar(self, kind: ResourceKind, resource_id: str) -> ResourceCalendar:
        key = (kind, resource_id)
        calendar = self._calendars.get(key)
        if calendar is None:
            calendar = self._calendars[key] = ResourceCalendar(resource_id)
        return calendar

    def _book(self, activity: Activity, interval: TimeInterval) -> None:
        """Book every calendar the activity occupies, or none of them."""
        booked: list[ResourceCalendar] = []
        try:
            for kind, resource_id in activity.occupied_resources():
                calendar = self._calendar(kind, resource_id)
                if not calendar.add_booking(activity.id, interval):
                    raise ResourceNotAvailableError(
                        kind.value.title(), resource_id, "already booked at that time"
                    )
                booked.append(calendar)
        except SchedulingError:
            for calendar in booked:
                calendar.remove_booking(activity.id)
            logger.warning("booking_rolled_back", activity_id=activity.id, released=len(booked))
            raise

    def _release(self, activity: Activity) -> int:
        released = 0
        for kind, resource_id in activity.occupied_resources():
            if self._calendar(kind, resource_id).remove_booking(activity.id):
                released += 1
        return released

    def _gate_availability(
        self,
        interval: TimeInterval,
        duration_minutes: int,
        *,
        teacher: TeacherLike | None,
        room: RoomLike | None,
        ignore: str | None = None,
    ) -> None:
        """Entity-level availability: weekly windows, room flags, calendars.

        Either dimension may be absent (a room booking has no teacher, a
        restored lesson may have no room); the other is still checked.
        """
        start = interval.start
        if teacher is not None:
            if not teacher.is_available_at(start, duration_minutes):
                raise ResourceNotAvailableError(
                    "Teacher", teacher.id, "outside weekly availability"
                )
            if not self._calendar(ResourceKind.TEACHER, teacher.id).is_available(
                interval, ignore=ignore
            ):
                raise ResourceNotAvailableError(
                    "Teacher", teacher.id, "already booked at that time"
                )
        if room is None:
            return
        if not room.is_available_at(start, duration_minutes):
            raise ResourceNotAvailableError("Room", room.id, "closed or under maintenance")
        if not self._calendar(ResourceKind.ROOM, room.id).is_available(interval, ignore=ignore):
            raise ResourceNotAvailableError("Room", room.id, "already booked at that time")

    def _relevant_activities(
        self, teacher_id: str | None, student_ids: Sequence[str], room_id: str | None
    ) -> list[Activity]:
        found: dict[str, Activity] = {}
        if teacher_id is not None:
            found.update((a.id, a) for a in self._store.list_activities_for_teacher(teacher_id))
        for student_id in student_ids:
            found.update((a.id, a) for a in self._store.list_activities_for_student(student_id))
        if room_id is not None:
            found.update((a.id, a) for a in self._store.list_activities_for_room(room_id))
        return list(found.values())

    def _detect(
        self,
        interval: TimeInterval,
        teacher_id: str | None,
        student_ids: Sequence[str],
        room_id: str | None,
        exclude_id: str | None = None,
    ) -> list[Conflict]:
        return detect_conflicts(
            interval,
            self._relevant_activities(teacher_id, student_ids, room_id),
            teacher_id=teacher_id,
            student_ids=student_ids,
            room_id=room_id,
            exclude_id=exclude_id,
        )

    # -----------------------------------------------------------------------
    # Scheduling
    # -----------------------------------------------------------------------
    def schedule_lesson(
        self,
        teacher_id: str,
        student_ids: Sequence[str],
        room_id: str,
        instrument: str,
        start: datetime,
        duration_minutes: int,
        *,
        notes: str | None = None,
    ) -> Lesson:
        """Schedule a lesson after validation, conflict detection and availability checks.

        Preconditions are checked in order and the first failure is raised.

        Returns:
            A copy of the scheduled lesson.

        Raises:
            InvalidIntervalError: If the duration is not positive.
            InvalidRequestError: If no students are given.
            NotFoundError / InactiveError: For unknown or deactivated teacher or students.
            TeacherCannotTeachInstrumentError: If the teacher lacks the specialization.
            ResourceNotAvailableError: If the room is unavailable, or the slot fails
                the teacher/room availability gates.
            SchedulingConflictError: If other scheduled activities overlap.
        """
        interval = TimeInterval.of(start, duration_minutes)
        students = list(dict.fromkeys(student_ids))
        if not students:
            raise InvalidRequestError("A lesson needs at least one student")

        teacher = self._require_teacher(teacher_id)
        if not teacher.can_teach(instrument):
            raise TeacherCannotTeachInstrumentError(teacher_id, instrument)
        for student_id in students:
            self._require_student(student_id)
        room = self._require_room(room_id)

        with self._lock:
            conflicts = self._detect(interval, teacher_id, students, room_id)
            if conflicts:
                logger.info(
                    "scheduling_conflict",
                    teacher_id=teacher_id,
                    room_id=room_id,
                    start=start.isoformat(),
                    conflicts=len(conflicts),
                )
                raise SchedulingConflictError(conflicts)
            self._gate_availability(interval, duration_minutes, teacher=teacher, room=room)

            now = self._clock()
            lesson = Lesson(
                scheduled_at=start,
                duration_minutes=duration_minutes,
                room_id=room_id,
                teacher_id=teacher_id,
                student_ids=students,
                instrument=instrument,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            self._book(lesson, interval)
            self._store.save_activity(lesson)

            logger.info(
                "lesson_scheduled",
                activity_id=lesson.id,
                teacher_id=teacher_id,
                students=students,
                room_id=room_id,
                start=start.isoformat(),
                duration_minutes=duration_minutes,
            )
            return lesson.model_copy(deep=True)

    def schedule_individual_lesson(
        self,
        teacher_id: str,
        student_id: str,
        room_id: str,
        instrument: str,
        start: datetime,
        duration_minutes: int,
        *,
        notes: str | None = None,
    ) -> Lesson:
        return self.schedule_lesson(
            teacher_id, [student_id], room_id, instrument, start, duration_minutes, notes=notes
        )

    def book_room(
        self,
        student_id: str,
        room_id: str,
        start: datetime,
        duration_minutes: int,
        hourly_rate: Decimal | None = None,
        purpose: str = "Practice",
        *,
        notes: str | None = None,
    ) -> RoomBooking:
        """Book a room for a student.

        Only the student and the room are checked: there is no teacher
        dimension and the student's other lessons are not cross-checked.

        Raises:
            InvalidIntervalError: If the duration is not positive.
            NotFoundError / InactiveError: For an unknown or deactivated student.
            ResourceNotAvailableError: If the room is unavailable or already booked.
        """
        interval = TimeInterval.of(start, duration_minutes)
        self._require_student(student_id)
        room = self._require_room(room_id)

        with self._lock:
            self._gate_availability(interval, duration_minutes, teacher=None, room=room)

            now = self._clock()
            booking = RoomBooking(
                scheduled_at=start,
                duration_minutes=duration_minutes,
                room_id=room_id,
                student_id=student_id,
                hourly_rate=hourly_rate,
                purpose=purpose,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            self._book(booking, interval)
            self._store.save_activity(booking)

            logger.info(
                "room_booked",
                activity_id=booking.id,
                student_id=student_id,
                room_id=room_id,
                start=start.isoformat(),
                duration_minutes=duration_minutes,
            )
            return booking.model_copy(deep=True)

    def check_conflicts(
        self,
        teacher_id: str | None,
        student_ids: Sequence[str],
        room_id: str | None,
        start: datetime,
        duration_minutes: int,
        *,
        exclude_id: str | None = None,
    ) -> list[Conflict]:
        """Preview the conflicts a booking would hit, without booking anything."""
        interval = TimeInterval.of(start, duration_minutes)
        with self._lock:
            return self._detect(interval, teacher_id, list(student_ids), room_id, exclude_id)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    def start_activity(self, activity_id: str) -> Activity:
        """Mark a scheduled activity as in progress. Its bookings stay in place."""
        with self._lock:
            activity = self._require_activity(activity_id)
            activity.start(self._clock())
            self._store.save_activity(activity)
            logger.info("activity_started", activity_id=activity_id)
            return activity.model_copy(deep=True)

    def cancel_activity(self, activity_id: str) -> bool:
        """Cancel an activity and release its resources.

        With less notice than ``cancellation_notice_hours`` the activity
        becomes NO_SHOW and, when ``charge_late_cancellations`` is set, its
        students are charged as for a completed lesson.

        Returns:
            True if cancelled without penalty.

        Raises:
            NotFoundError: If the activity does not exist.
            InvalidStateTransitionError: If the activity is already finalized.
        """
        with self._lock:
            activity = self._require_activity(activity_id)
            without_penalty = activity.cancel(self._clock(), self.notice)
            released = self._release(activity)
            self._store.save_activity(activity)
            charge = (
                not without_penalty
                and self._config.charge_late_cancellations
                and activity.consumes_lesson_hours
            )
            students = activity.billable_student_ids() if charge else []
            hours = activity.hours_to_charge(self._config.billing_block_minutes)
            status = activity.status

        logger.info(
            "activity_cancelled",
            activity_id=activity_id,
            status=status.value,
            without_penalty=without_penalty,
            released=released,
        )
        if students:
            self._consume_hours(activity_id, students, hours, "late_cancellation")
        return without_penalty

    def complete_activity(self, activity_id: str) -> list[HoursConsumed]:
        """Complete an activity and charge lesson hours to its students.

        Hour consumption is best-effort: a student with too few hours left is
        logged and reported in the result, the completion itself stands.

        Returns:
            One entry per charged student (empty for room bookings).

        Raises:
            NotFoundError: If the activity does not exist.
            InvalidStateTransitionError: If the activity is already finalized.
        """
        with self._lock:
            activity = self._require_activity(activity_id)
            activity.complete(self._clock())
            self._release(activity)
            self._store.save_activity(activity)
            students = activity.billable_student_ids()
            hours = activity.hours_to_charge(self._config.billing_block_minutes)

        logger.info("activity_completed", activity_id=activity_id, students=len(students))
        return self._consume_hours(activity_id, students, hours, "completed")

    def _consume_hours(
        self, activity_id: str, student_ids: Iterable[str], hours: int, reason: str
    ) -> list[HoursConsumed]:
        resolved: list[tuple[str, StudentLike | None]] = []
        for student_id in student_ids:
            try:
                student = self._lookup(self._directory.get_student, student_id)
            except TransientError as e:
                logger.error(
                    "hour_consumption_lookup_failed",
                    activity_id=activity_id,
                    student_id=student_id,
                    error=str(e),
                )
                student = None
            resolved.append((student_id, student))

        # Balance check and deduction must not interleave across completions.
        with self._lock:
            charged = [
                (student_id, student, student is not None and student.consume_hours(hours))
                for student_id, student in resolved
            ]

        results = []
        for student_id, student, consumed in charged:
            if not consumed:
                logger.warning(
                    "hour_consumption_failed",
                    activity_id=activity_id,
                    student_id=student_id,
                    hours=hours,
                    reason=reason,
                    student_found=student is not None,
                )
            results.append(HoursConsumed(activity_id, student_id, hours, consumed, reason))
        return results

    def _check_reschedule_gate(self, activity: Activity, now: datetime) -> None:
        if activity.status is not ActivityStatus.SCHEDULED:
            raise InvalidStateTransitionError(
                activity.id,
                f"Cannot reschedule {activity.id}: status is {activity.status.display_name}",
            )
        if not activity.can_reschedule(now, self.notice):
            raise InvalidStateTransitionError(
                activity.id,
                f"Cannot reschedule {activity.id}: less than "
                f"{self._config.cancellation_notice_hours}h before start",
            )

    def reschedule_activity(self, activity_id: str, new_time: datetime) -> bool:
        """Move a scheduled activity to a new start time, all or nothing.

        Allowed only while the activity could still be cancelled without
        penalty. Conflict detection and availability gating are re-run at the
        new time; if anything fails, the activity and every calendar are left
        exactly as they were.

        Raises:
            NotFoundError: If the activity does not exist.
            InvalidStateTransitionError: If not SCHEDULED or inside the notice window.
            SchedulingConflictError / ResourceNotAvailableError: If the new slot is taken.
        """
        with self._lock:
            snapshot = self._require_activity(activity_id).model_copy(deep=True)
            self._check_reschedule_gate(snapshot, self._clock())

        teacher_id = next(
            (rid for kind, rid in snapshot.occupied_resources() if kind is ResourceKind.TEACHER),
            None,
        )
        teacher = self._require_teacher(teacher_id) if teacher_id is not None else None
        room = self._require_room(snapshot.room_id) if snapshot.room_id is not None else None

        with self._lock:
            activity = self._require_activity(activity_id)
            now = self._clock()
            self._check_reschedule_gate(activity, now)

            interval = TimeInterval.of(new_time, activity.duration_minutes)
            lesson_students = [
                s for s in activity.participant_ids() if activity.attends_lesson(s)
            ]
            conflicts = self._detect(
                interval, teacher_id, lesson_students, activity.room_id, exclude_id=activity_id
            )
            if conflicts:
                logger.info(
                    "reschedule_conflict", activity_id=activity_id, conflicts=len(conflicts)
                )
                raise SchedulingConflictError(conflicts)
            self._gate_availability(
                interval,
                activity.duration_minutes,
                teacher=teacher,
                room=room,
                ignore=activity_id,
            )

            # Every check passed: swap the intervals.
            old_time = activity.scheduled_at
            self._release(activity)
            try:
                self._book(activity, interval)
            except SchedulingError:
                self._book(activity, activity.interval)
                raise
            activity.reschedule(new_time, now, self.notice)
            self._store.save_activity(activity)

            logger.info(
                "activity_rescheduled",
                activity_id=activity_id,
                old_start=old_time.isoformat(),
                new_start=new_time.isoformat(),
            )
            return True

    def link_lesson_to_package(self, lesson_id: str, package_id: str) -> Lesson:
        """Attach a course package to a lesson.

        Raises:
            NotFoundError: If the lesson or the package does not exist.
            InvalidRequestError: If the activity is not a lesson.
        """
        if not self._lookup(self._directory.package_exists, package_id):
            raise NotFoundError("Package", package_id)
        with self._lock:
            activity = self._require_activity(lesson_id)
            if not isinstance(activity, Lesson):
                raise InvalidRequestError(f"Activity is not a lesson: {lesson_id}")
            activity.package_id = package_id
            activity.updated_at = self._clock()
            self._store.save_activity(activity)
            return activity.model_copy(deep=True)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------
    def get_activity(self, activity_id: str) -> Activity:
        with self._lock:
            return self._require_activity(activity_id).model_copy(deep=True)

    def get_today_activities(self) -> list[Activity]:
        """All of today's activities, any status, ordered by start."""
        now = self._clock()
        start_of_day = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        end_of_day = start_of_day + timedelta(days=1)
        with self._lock:
            today = [
                a.model_copy(deep=True)
                for a in self._store.list_activities()
                if start_of_day <= a.scheduled_at < end_of_day
            ]
        return sorted(today, key=lambda a: a.scheduled_at)

    def get_upcoming_activities(self) -> list[Activity]:
        """Scheduled activities starting after now, ordered by start."""
        now = self._clock()
        with self._lock:
            upcoming = [
                a.model_copy(deep=True)
                for a in self._store.list_activities()
                if a.scheduled_at > now and a.status is ActivityStatus.SCHEDULED
            ]
        return sorted(upcoming, key=lambda a: a.scheduled_at)

    def booked_intervals(
        self, kind: ResourceKind, resource_id: str
    ) -> list[tuple[str, TimeInterval]]:
        """Snapshot of a resource calendar, ordered by start."""
        with self._lock:
            calendar = self._calendars.get((kind, resource_id))
            return calendar.bookings() if calendar is not None else []

    def restore_calendars(self) -> int:
        """Rebuild every calendar from the store's unfinalized activities.

        Used after loading persisted state. Returns the number of activities booked.
        """
        with self._lock:
            self._calendars.clear()
            restored = 0
            for activity in sorted(self._store.list_activities(), key=lambda a: a.scheduled_at):
                if activity.status.is_finalized:
                    continue
                try:
                    self._book(activity, activity.interval)
                except SchedulingError:
                    logger.error(
                        "calendar_restore_overlap",
                        activity_id=activity.id,
                        start=activity.scheduled_at.isoformat(),
                    )
                    raise
                restored += 1
            logger.info("calendars_restored", activities=restored, calendars=len(self._calendars))
            return restored
