"""Unit tests for conflict detection.

Run with: pytest tests/test_conflicts.py -v
"""

from scheduler.conflicts import ConflictDimension, detect_conflicts
from scheduler.interval import TimeInterval
from scheduler.models import ActivityStatus, Lesson, RoomBooking

from helpers import at


def lesson(start, minutes=60, teacher="T1", students=("S1",), room="R1", **kw) -> Lesson:
    return Lesson(
        scheduled_at=start,
        duration_minutes=minutes,
        teacher_id=teacher,
        student_ids=list(students),
        room_id=room,
        instrument="Piano",
        **kw,
    )


def booking(start, minutes=60, student="S1", room="R1") -> RoomBooking:
    return RoomBooking(
        scheduled_at=start, duration_minutes=minutes, student_id=student, room_id=room
    )


class TestDetectConflicts:
    def test_no_activities_no_conflicts(self):
        assert detect_conflicts(TimeInterval.of(at(10), 60), [], teacher_id="T1") == []

    def test_reports_teacher_then_students_then_room(self):
        existing = lesson(at(10), students=("S2", "S1"))
        conflicts = detect_conflicts(
            TimeInterval.of(at(10, 30), 60),
            [existing],
            teacher_id="T1",
            student_ids=["S1", "S2"],
            room_id="R1",
        )

        assert [c.dimension for c in conflicts] == [
            ConflictDimension.TEACHER,
            ConflictDimension.STUDENT,
            ConflictDimension.STUDENT,
            ConflictDimension.ROOM,
        ]
        assert [c.subject_id for c in conflicts] == ["T1", "S1", "S2", "R1"]

    def test_messages_identify_activity_and_time(self):
        existing = lesson(at(10))
        conflicts = detect_conflicts(
            TimeInterval.of(at(10), 30),
            [existing],
            teacher_id="T1",
            student_ids=["S1"],
            room_id="R1",
        )
        when = at(10).isoformat()
        assert [c.message for c in conflicts] == [
            f"Teacher has another lesson: {existing.id} at {when}",
            f"Student S1 has another lesson: {existing.id} at {when}",
            f"Room has another booking: {existing.id} at {when}",
        ]

    def test_touching_slot_is_free(self):
        existing = lesson(at(10))
        assert (
            detect_conflicts(
                TimeInterval.of(at(11), 60),
                [existing],
                teacher_id="T1",
                student_ids=["S1"],
                room_id="R1",
            )
            == []
        )

    def test_only_scheduled_activities_block(self):
        in_progress = lesson(at(10))
        in_progress.start(at(10))
        cancelled = lesson(at(10), room="R2")
        cancelled.cancel(at(8))
        candidate = TimeInterval.of(at(10), 60)

        assert in_progress.status is ActivityStatus.IN_PROGRESS
        assert (
            detect_conflicts(
                candidate,
                [in_progress, cancelled],
                teacher_id="T1",
                student_ids=["S1"],
                room_id="R1",
            )
            == []
        )

    def test_excluded_activity_is_ignored(self):
        existing = lesson(at(10))
        conflicts = detect_conflicts(
            TimeInterval.of(at(10, 30), 60),
            [existing],
            teacher_id="T1",
            room_id="R1",
            exclude_id=existing.id,
        )
        assert conflicts == []

    def test_room_booking_blocks_room_but_not_student(self):
        practice = booking(at(10), student="S1", room="R1")
        conflicts = detect_conflicts(
            TimeInterval.of(at(10), 60),
            [practice],
            teacher_id="T1",
            student_ids=["S1"],
            room_id="R1",
        )
        assert [c.dimension for c in conflicts] == [ConflictDimension.ROOM]

    def test_other_teacher_and_room_do_not_conflict(self):
        existing = lesson(at(10), teacher="T2", students=("S3",), room="R2")
        assert (
            detect_conflicts(
                TimeInterval.of(at(10), 60),
                [existing],
                teacher_id="T1",
                student_ids=["S1"],
                room_id="R1",
            )
            == []
        )
