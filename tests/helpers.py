"""Shared test helpers: fixed dates, a settable clock and the standard directory."""

from datetime import datetime, time, timedelta

from scheduler.directory import InMemoryDirectory, Room, Student, Teacher, Weekday

# Monday one week after the fake "now" used by the clock fixture
MONDAY = datetime(2026, 10, 19)


def at(hour: int, minute: int = 0, day: datetime = MONDAY) -> datetime:
    return day.replace(hour=hour, minute=minute)


class FakeClock:
    """Settable clock handed to the service instead of datetime.now."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def build_directory() -> InMemoryDirectory:
    """Two teachers, three students with 10 hours each, two rooms, one package.

    T1 teaches Piano/Organ Mon-Wed 09:00-17:00; T2 teaches Violin Mon 09:00-17:00.
    """
    directory = InMemoryDirectory()

    teacher = Teacher(id="T1", name="Clara Wieck", specializations=["Piano", "Organ"])
    for day in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY):
        teacher.set_availability(day, time(9, 0), time(17, 0))
    directory.add_teacher(teacher)

    violin = Teacher(id="T2", name="Joseph Joachim", specializations=["Violin"])
    violin.set_availability(Weekday.MONDAY, time(9, 0), time(17, 0))
    directory.add_teacher(violin)

    for student_id, name in (("S1", "Ada"), ("S2", "Ben"), ("S3", "Cleo")):
        student = Student(id=student_id, name=name)
        student.add_package_hours("PKG-1", 10)
        directory.add_student(student)

    directory.add_room(Room(id="R1", name="Studio 1", capacity=4))
    directory.add_room(Room(id="R2", name="Studio 2", capacity=2))
    directory.add_package("PKG-1")
    return directory
