"""Reminder and user value types.

A reminder fires once a day at a quarter-hour slot. Its course is either
unbounded (course_days == 0) or finite, in which case the reminder is
retired as soon as doses_taken reaches course_days.
"""

from dataclasses import dataclass

QUARTERS = (0, 15, 30, 45)
MAX_COURSE_DAYS = 365
MAX_MEDICINE_LEN = 100


def progress_label(count: int, total: int) -> str:
    """``3/7`` for a finite course, ``3/∞`` for an unbounded one."""
    if total == 0:
        return f"{count}/∞"
    return f"{count}/{total}"


def course_label(course_days: int) -> str:
    if course_days == 0:
        return "♾ unbounded"
    return f"{course_days} day" if course_days == 1 else f"{course_days} days"


@dataclass(frozen=True, slots=True)
class Reminder:
    id: int
    medicine: str
    hour: int
    minute: int
    course_days: int = 0  # 0 = unbounded
    doses_taken: int = 0

    @property
    def time_label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def progress(self) -> str:
        return progress_label(self.doses_taken, self.course_days)

    @property
    def is_completed(self) -> bool:
        return self.course_days > 0 and self.doses_taken >= self.course_days


@dataclass(frozen=True, slots=True)
class User:
    user_id: int
    active: bool = True
    created_at: str = ""  # ISO datetime


@dataclass(frozen=True, slots=True)
class DoseResult:
    """Outcome of one dose increment. ``medicine == ""`` means the reminder is gone."""

    medicine: str
    count: int = 0
    total: int = 0
    completed: bool = False

    @property
    def found(self) -> bool:
        return bool(self.medicine)

    @property
    def progress(self) -> str:
        return progress_label(self.count, self.total)


NOT_FOUND = DoseResult(medicine="")


@dataclass(frozen=True, slots=True)
class Stats:
    total_users: int = 0
    active_users: int = 0
    total_reminders: int = 0
    finite_courses: int = 0
    unbounded_courses: int = 0
    doses_taken: int = 0
    doses_planned: int = 0


def validate_reminder(medicine: str, hour: int, minute: int, course_days: int) -> None:
    """Raise ValueError for a reminder that could never be scheduled."""
    if not medicine.strip():
        raise ValueError("medicine name must not be empty")
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be in 0..23, got {hour}")
    if minute not in QUARTERS:
        raise ValueError(f"minute must be one of {QUARTERS}, got {minute}")
    if not 0 <= course_days <= MAX_COURSE_DAYS:
        raise ValueError(f"course_days must be in 0..{MAX_COURSE_DAYS}, got {course_days}")
