"""Activity store interface (repository pattern) and in-memory implementation.

The scheduling core keeps its authoritative state in memory. Durable storage
is an external key-value concern: ``dump()`` turns the store into plain
JSON-compatible records keyed by activity ID and ``load()`` rebuilds it, so
any key-value backend can persist them without the core defining a schema.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Iterable, Mapping

from scheduler.logging import get_logger
from scheduler.models import Activity, ResourceKind, activity_adapter

logger = get_logger(__name__)


class ActivityStore(ABC):
    """Interface for activity persistence operations.

    Stores return the live objects they hold; the SchedulingService decides
    what leaves its lock as a copy.
    """

    @abstractmethod
    def save_activity(self, activity: Activity) -> None:
        """Insert or replace an activity, keeping the indices consistent."""
        ...

    @abstractmethod
    def get_activity(self, activity_id: str) -> Activity | None:
        """Return an activity by ID, or None if not found."""
        ...

    @abstractmethod
    def list_activities(self) -> list[Activity]:
        """Return all activities, in no particular order."""
        ...

    @abstractmethod
    def list_activities_for_teacher(self, teacher_id: str) -> list[Activity]:
        """Return the lessons taught by a teacher."""
        ...

    @abstractmethod
    def list_activities_for_student(self, student_id: str) -> list[Activity]:
        """Return lessons and room bookings involving a student."""
        ...

    @abstractmethod
    def list_activities_for_room(self, room_id: str) -> list[Activity]:
        """Return every activity held in a room."""
        ...


class InMemoryActivityStore(ActivityStore):
    """Dictionary-backed store with per-teacher, per-student and per-room indices."""

    def __init__(self, activities: Iterable[Activity] = ()) -> None:
        self._activities: dict[str, Activity] = {}
        self._by_teacher: dict[str, set[str]] = defaultdict(set)
        self._by_student: dict[str, set[str]] = defaultdict(set)
        self._by_room: dict[str, set[str]] = defaultdict(set)
        self._indexed_under: dict[str, list[tuple[dict[str, set[str]], str]]] = {}
        for activity in activities:
            self.save_activity(activity)

    def __len__(self) -> int:
        return len(self._activities)

    def _index_keys(self, activity: Activity) -> list[tuple[dict[str, set[str]], str]]:
        keys = [
            (self._by_teacher, resource_id)
            for kind, resource_id in activity.occupied_resources()
            if kind is ResourceKind.TEACHER
        ]
        keys.extend((self._by_student, sid) for sid in activity.participant_ids())
        if activity.room_id is not None:
            keys.append((self._by_room, activity.room_id))
        return keys

    def save_activity(self, activity: Activity) -> None:
        # The saved object may be the same instance, already mutated, so the
        # keys it was indexed under are remembered rather than re-derived.
        for index, key in self._indexed_under.pop(activity.id, []):
            ids = index[key]
            ids.discard(activity.id)
            if not ids:
                del index[key]
        self._activities[activity.id] = activity
        keys = self._index_keys(activity)
        for index, key in keys:
            index[key].add(activity.id)
        self._indexed_under[activity.id] = keys

    def get_activity(self, activity_id: str) -> Activity | None:
        return self._activities.get(activity_id)

    def list_activities(self) -> list[Activity]:
        return list(self._activities.values())

    def _resolve(self, ids: set[str]) -> list[Activity]:
        return [self._activities[activity_id] for activity_id in sorted(ids)]

    def list_activities_for_teacher(self, teacher_id: str) -> list[Activity]:
        return self._resolve(self._by_teacher.get(teacher_id, set()))

    def list_activities_for_student(self, student_id: str) -> list[Activity]:
        return self._resolve(self._by_student.get(student_id, set()))

    def list_activities_for_room(self, room_id: str) -> list[Activity]:
        return self._resolve(self._by_room.get(room_id, set()))

    # -- key-value boundary -------------------------------------------------

    def dump(self) -> dict[str, dict[str, Any]]:
        """Serialize every activity to a JSON-compatible record keyed by ID."""
        return {
            activity_id: activity_adapter.dump_python(activity, mode="json")
            for activity_id, activity in self._activities.items()
        }

    @classmethod
    def load(cls, records: Mapping[str, Mapping[str, Any]]) -> "InMemoryActivityStore":
        """Rebuild a store from records produced by ``dump()``."""
        activities = [activity_adapter.validate_python(dict(r)) for r in records.values()]
        logger.info("activity_store_loaded", count=len(activities))
        return cls(activities)
