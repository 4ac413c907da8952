# academic/grading.py
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from .constants import FAILING_GRADES, GradeLetter
from .models import RegistrationRecord


def is_passing_grade(grade: Optional[GradeLetter]) -> bool:
    """A grade passes when one is recorded and it is not F or Incomplete."""
    return grade is not None and grade not in FAILING_GRADES


def is_failing_grade(grade: Optional[GradeLetter]) -> bool:
    return grade is not None and grade in FAILING_GRADES


def passed_course_ids(registrations: Iterable[RegistrationRecord]) -> Set[int]:
    """Course ids with at least one passing attempt. Attempt order does not matter."""
    return {reg.course.id for reg in registrations if is_passing_grade(reg.grade)}


def attempt_sort_key(reg: RegistrationRecord):
    """Chronological key: season start, then semester number, then registration time."""
    return (
        reg.season.start_date or datetime.min,
        reg.semester.semester_number,
        reg.registered_at or datetime.min,
    )


def latest_attempts(registrations: Iterable[RegistrationRecord]) -> Dict[int, RegistrationRecord]:
    """Latest registration per course id. Used to report grades, not to decide passes."""
    latest: Dict[int, RegistrationRecord] = {}
    for reg in registrations:
        current = latest.get(reg.course.id)
        if current is None or attempt_sort_key(reg) > attempt_sort_key(current):
            latest[reg.course.id] = reg
    return latest


def is_in_period(reg: RegistrationRecord, season_id: int, semester_id: int) -> bool:
    return reg.season.id == season_id and reg.semester.id == semester_id
