"""Unit tests for activity models and the status state machine.

Run with: pytest tests/test_models.py -v
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from scheduler.errors import InvalidStateTransitionError
from scheduler.models import (
    Activity,
    ActivityStatus,
    Lesson,
    ResourceKind,
    RoomBooking,
    activity_adapter,
)

from helpers import at

START = at(10)


def make_lesson(**overrides) -> Lesson:
    fields = dict(
        scheduled_at=START,
        duration_minutes=60,
        room_id="R1",
        teacher_id="T1",
        student_ids=["S1"],
        instrument="Piano",
    )
    fields.update(overrides)
    return Lesson(**fields)


def make_booking(**overrides) -> RoomBooking:
    fields = dict(
        scheduled_at=START,
        duration_minutes=90,
        room_id="R1",
        student_id="S1",
        hourly_rate=Decimal("20.00"),
    )
    fields.update(overrides)
    return RoomBooking(**fields)


class TestActivityStatus:
    def test_finalized_statuses(self):
        finalized = {s for s in ActivityStatus if s.is_finalized}
        assert finalized == {
            ActivityStatus.COMPLETED,
            ActivityStatus.CANCELLED,
            ActivityStatus.NO_SHOW,
        }

    def test_hour_consuming_statuses(self):
        consuming = {s for s in ActivityStatus if s.consumes_hours}
        assert consuming == {ActivityStatus.COMPLETED, ActivityStatus.NO_SHOW}

    def test_display_name(self):
        assert str(ActivityStatus.NO_SHOW) == "No Show"
        assert ActivityStatus.IN_PROGRESS.display_name == "In Progress"


class TestLesson:
    def test_id_prefix(self):
        assert make_lesson().id.startswith("LES-")
        assert make_booking().id.startswith("BKG-")

    def test_ids_are_unique(self):
        assert make_lesson().id != make_lesson().id

    def test_students_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            make_lesson(student_ids=[])

    def test_duplicate_students_collapsed_in_order(self):
        lesson = make_lesson(student_ids=["S2", "S1", "S2"])
        assert lesson.student_ids == ["S2", "S1"]

    def test_group_flag_follows_students(self):
        lesson = make_lesson()
        assert not lesson.is_group
        assert lesson.activity_type == "Individual Lesson"
        lesson.add_student("S2")
        lesson.add_student("S2")
        assert lesson.is_group
        assert lesson.student_ids == ["S1", "S2"]
        assert lesson.activity_type == "Group Lesson"

    def test_last_student_cannot_be_removed(self):
        lesson = make_lesson(student_ids=["S1", "S2"])
        assert lesson.remove_student("S2")
        assert not lesson.remove_student("S1")
        assert lesson.student_ids == ["S1"]

    @pytest.mark.parametrize(
        ("minutes", "hours"), [(30, 1), (60, 1), (61, 2), (90, 2), (120, 2), (121, 3)]
    )
    def test_hours_per_student_rounds_up(self, minutes, hours):
        assert make_lesson(duration_minutes=minutes).hours_per_student() == hours

    def test_occupies_teacher_then_room(self):
        assert make_lesson().occupied_resources() == [
            (ResourceKind.TEACHER, "T1"),
            (ResourceKind.ROOM, "R1"),
        ]

    def test_lesson_without_room_occupies_teacher_only(self):
        assert make_lesson(room_id=None).occupied_resources() == [
            (ResourceKind.TEACHER, "T1")
        ]

    def test_describe_lists_students(self):
        text = make_lesson(student_ids=["S1", "S2"]).describe()
        assert "Students:    S1, S2" in text
        assert "Group Lesson" in text


class TestRoomBooking:
    def test_cost_is_prorated(self):
        assert make_booking().calculate_cost() == Decimal("30.00")

    def test_cost_without_rate_is_zero(self):
        assert make_booking(hourly_rate=None).calculate_cost() == Decimal("0")

    def test_never_consumes_lesson_hours(self):
        booking = make_booking()
        booking.complete(START)
        assert not booking.consumes_lesson_hours
        assert booking.billable_student_ids() == []
        assert booking.hours_to_charge() == 0

    def test_mark_as_paid(self):
        booking = make_booking()
        booking.mark_as_paid()
        assert booking.paid

    def test_occupies_room_only(self):
        assert make_booking().occupied_resources() == [(ResourceKind.ROOM, "R1")]


class TestStateMachine:
    def test_complete_from_scheduled(self):
        lesson = make_lesson()
        now = START - timedelta(days=1)
        lesson.complete(now)
        assert lesson.status is ActivityStatus.COMPLETED
        assert lesson.updated_at == now
        assert lesson.consumes_lesson_hours

    def test_complete_from_in_progress(self):
        lesson = make_lesson()
        lesson.start(START)
        lesson.complete(START)
        assert lesson.status is ActivityStatus.COMPLETED

    @pytest.mark.parametrize(
        "finalize",
        [
            lambda a: a.complete(START),
            lambda a: a.cancel(START - timedelta(days=3)),
            lambda a: a.cancel(START),
        ],
    )
    def test_no_transition_out_of_terminal_state(self, finalize):
        lesson = make_lesson()
        finalize(lesson)
        status = lesson.status
        with pytest.raises(InvalidStateTransitionError):
            lesson.complete(START)
        with pytest.raises(InvalidStateTransitionError):
            lesson.cancel(START - timedelta(days=3))
        with pytest.raises(InvalidStateTransitionError):
            lesson.start(START)
        assert lesson.status is status

    def test_cancel_one_second_before_boundary_is_free(self):
        lesson = make_lesson()
        now = START - timedelta(hours=24, seconds=1)
        assert lesson.cancel(now) is True
        assert lesson.status is ActivityStatus.CANCELLED

    def test_cancel_one_second_after_boundary_is_penalized(self):
        lesson = make_lesson()
        now = START - timedelta(hours=24) + timedelta(seconds=1)
        assert lesson.cancel(now) is False
        assert lesson.status is ActivityStatus.NO_SHOW

    def test_cancel_exactly_at_boundary_is_penalized(self):
        lesson = make_lesson()
        assert lesson.cancel(START - timedelta(hours=24)) is False
        assert lesson.status is ActivityStatus.NO_SHOW

    def test_custom_notice_window(self):
        lesson = make_lesson()
        assert lesson.cancel(START - timedelta(hours=3), notice=timedelta(hours=2))

    def test_reschedule_moves_start(self):
        lesson = make_lesson()
        now = START - timedelta(days=2)
        lesson.reschedule(at(14), now)
        assert lesson.scheduled_at == at(14)
        assert lesson.updated_at == now

    def test_reschedule_inside_notice_window_rejected(self):
        lesson = make_lesson()
        with pytest.raises(InvalidStateTransitionError):
            lesson.reschedule(at(14), START - timedelta(hours=2))
        assert lesson.scheduled_at == START

    def test_reschedule_requires_scheduled(self):
        lesson = make_lesson()
        lesson.start(START - timedelta(days=2))
        assert not lesson.can_reschedule(START - timedelta(days=2))
        with pytest.raises(InvalidStateTransitionError):
            lesson.reschedule(at(14), START - timedelta(days=2))

    def test_timing_helpers(self):
        lesson = make_lesson()
        assert lesson.end_at == at(11)
        assert lesson.is_ongoing(at(10, 30))
        assert not lesson.is_ongoing(at(11))
        assert lesson.is_past(at(11, 1))
        assert not lesson.is_past(at(10, 30))


class TestSerialization:
    def test_tagged_union_restores_variant(self):
        lesson = make_lesson(student_ids=["S1", "S2"], notes="bring scores")
        booking = make_booking()

        restored_lesson = activity_adapter.validate_python(
            activity_adapter.dump_python(lesson, mode="json")
        )
        restored_booking = activity_adapter.validate_python(
            activity_adapter.dump_python(booking, mode="json")
        )

        assert isinstance(restored_lesson, Lesson)
        assert restored_lesson == lesson
        assert isinstance(restored_booking, RoomBooking)
        assert restored_booking.hourly_rate == Decimal("20.00")


class TestActivityBase:
    def test_base_class_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            Activity(id="ACT-1", scheduled_at=START, duration_minutes=60)

    def test_variants_are_activities(self):
        assert isinstance(make_lesson(), Activity)
        assert isinstance(make_booking(), Activity)
