"""Error hierarchy for scheduling operations.

Every failure carries an ErrorCode and a user-safe message. The intermediate
classes group errors by how a caller should react:

- InvalidInputError: the request references bad data (fix the input).
- SlotUnavailableError: the slot is taken or blocked (try another time/room).
- StateError: the activity cannot make the requested transition (logic error).
- TransientError: a collaborator lookup failed temporarily (retried internally).

Example usage:
    try:
        service.schedule_lesson(...)
    except SlotUnavailableError as e:
        show_alternatives(e)
    except InvalidInputError as e:
        highlight_form_field(e)
"""

from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from scheduler.conflicts import Conflict


class ErrorCode(Enum):
    """Error codes surfaced to callers."""

    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    TEACHER_CANNOT_TEACH_INSTRUMENT = "TEACHER_CANNOT_TEACH_INSTRUMENT"
    INVALID_INTERVAL = "INVALID_INTERVAL"
    INVALID_REQUEST = "INVALID_REQUEST"
    SCHEDULING_CONFLICT = "SCHEDULING_CONFLICT"
    RESOURCE_NOT_AVAILABLE = "RESOURCE_NOT_AVAILABLE"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    DUPLICATE_BOOKING = "DUPLICATE_BOOKING"
    TRANSIENT = "TRANSIENT"


class SchedulingError(Exception):
    """Base exception for all scheduling errors."""

    code: ErrorCode = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidInputError(SchedulingError):
    """The request references missing, inactive or malformed data.

    Data-entry problem: retrying the same request cannot succeed.
    """

    pass


class SlotUnavailableError(SchedulingError):
    """The requested slot cannot be booked.

    Retrying with a different time or room is meaningful; retrying the
    same inputs deterministically fails again.
    """

    pass


class StateError(SchedulingError):
    """The operation is not legal for the activity's current state."""

    pass


class TransientError(SchedulingError):
    """Temporary collaborator failure that may succeed on retry.

    Raised by directory implementations backed by a remote system. The
    service retries lookups that raise it before giving up.
    """

    code = ErrorCode.TRANSIENT


class NotFoundError(InvalidInputError):
    """A referenced teacher, student, room, package or activity does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InactiveError(InvalidInputError):
    """The entity exists but has been deactivated."""

    code = ErrorCode.INACTIVE

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} is inactive: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class TeacherCannotTeachInstrumentError(InvalidInputError):
    """The teacher's specializations do not include the instrument."""

    code = ErrorCode.TEACHER_CANNOT_TEACH_INSTRUMENT

    def __init__(self, teacher_id: str, instrument: str) -> None:
        super().__init__(f"Teacher {teacher_id} cannot teach {instrument}")
        self.teacher_id = teacher_id
        self.instrument = instrument


class InvalidIntervalError(InvalidInputError):
    """Malformed time range: end not after start, or non-positive duration."""

    code = ErrorCode.INVALID_INTERVAL


class InvalidRequestError(InvalidInputError):
    """The request is structurally invalid (e.g. a lesson without students)."""

    code = ErrorCode.INVALID_REQUEST


class SchedulingConflictError(SlotUnavailableError):
    """The slot overlaps other scheduled activities.

    Carries the complete, ordered conflict list; each entry is directly
    displayable to a human.
    """

    code = ErrorCode.SCHEDULING_CONFLICT

    def __init__(self, conflicts: Sequence["Conflict"]) -> None:
        self.conflicts = list(conflicts)
        super().__init__(
            "Scheduling conflicts detected:\n" + "\n".join(self.messages)
        )

    @property
    def messages(self) -> list[str]:
        return [conflict.message for conflict in self.conflicts]


class ResourceNotAvailableError(SlotUnavailableError):
    """No conflicting activities, but availability or maintenance gating failed."""

    code = ErrorCode.RESOURCE_NOT_AVAILABLE

    def __init__(self, resource: str, resource_id: str, reason: str) -> None:
        super().__init__(f"{resource} {resource_id} is not available: {reason}")
        self.resource = resource
        self.resource_id = resource_id
        self.reason = reason


class InvalidStateTransitionError(StateError):
    """Attempted transition out of a terminal state, or a failed 24h reschedule gate."""

    code = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(self, activity_id: str, message: str) -> None:
        super().__init__(message)
        self.activity_id = activity_id


class DuplicateBookingError(StateError):
    """A calendar already holds an interval under this booking reference.

    Indicates stale data upstream; never silently overwritten.
    """

    code = ErrorCode.DUPLICATE_BOOKING

    def __init__(self, reference: str) -> None:
        super().__init__(f"Booking reference already held: {reference}")
        self.reference = reference
