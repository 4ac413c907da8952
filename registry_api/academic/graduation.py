# academic/graduation.py
import logging
from datetime import datetime
from typing import List, Optional

from .constants import BASE_LEVEL_VALUE, DegreeType
from .grading import latest_attempts, passed_course_ids
from .models import GraduationVerdict
from .ports import CurriculumCatalog, StudentRecordStore

logger = logging.getLogger(__name__)


class GraduationEvaluator:
    """
    Decides whether a student has completed their program's curriculum.

    Every active curriculum course between level 100 and ``duration * 100``
    must have at least one passing attempt registered on or after the
    student's admission season. Electives listed in the curriculum are
    treated as mandatory. A "not eligible" outcome is returned, never raised.
    """

    def __init__(self, catalog: CurriculumCatalog, students: StudentRecordStore):
        self.catalog = catalog
        self.students = students

    async def evaluate(
        self,
        student_id: int,
        program_id: int,
        admission_season_start: Optional[datetime],
        degree_type: DegreeType,
        program_duration: int,
    ) -> GraduationVerdict:
        if program_duration == 0:
            logger.warning(
                f"Program {program_id} has duration 0; graduation check not applicable for student {student_id}."
            )
            return GraduationVerdict(
                eligible=True,
                reason="Program has duration 0 (no formal progression/graduation check needed).",
            )

        final_level_value = program_duration * 100

        if admission_season_start is None:
            logger.warning(f"Admission season start date missing for student {student_id}.")
            return GraduationVerdict(
                eligible=False,
                reason="Admission season start date missing; cannot filter registrations.",
            )

        levels = await self.catalog.get_levels_by_degree_type(degree_type)
        level_ids = [
            level.id for level in levels if BASE_LEVEL_VALUE <= level.value <= final_level_value
        ]
        if not level_ids:
            logger.warning(
                f"No levels defined for {degree_type.value} within [{BASE_LEVEL_VALUE}, {final_level_value}] "
                f"(program {program_id})."
            )
            return GraduationVerdict(
                eligible=False,
                reason="No relevant levels defined for the program's duration.",
            )

        curriculum = await self.catalog.get_program_courses_for_program_level(program_id, level_ids)
        if not curriculum:
            # An undefined curriculum cannot fail anyone
            logger.warning(
                f"No curriculum defined for program {program_id}; assuming student {student_id} can graduate."
            )
            return GraduationVerdict(
                eligible=True,
                reason="No curriculum defined for the program, assuming graduation.",
            )

        course_ids = sorted({pc.course.id for pc in curriculum})
        registrations = await self.students.get_registrations_for_student(
            student_id,
            since_season_start=admission_season_start,
            course_ids=course_ids,
        )
        passed = passed_course_ids(registrations)
        latest = latest_attempts(registrations)

        missing_core = _unique_codes(pc for pc in curriculum if not pc.is_elective and pc.course.id not in passed)
        missing_electives = _unique_codes(pc for pc in curriculum if pc.is_elective and pc.course.id not in passed)
        outstanding = missing_core + [code for code in missing_electives if code not in missing_core]

        if missing_core:
            logger.info(f"Student {student_id} has not passed core course(s): {', '.join(missing_core)}.")
            return GraduationVerdict(
                eligible=False,
                reason=f"Failed to pass required core course: {missing_core[0]}.",
                outstanding_courses=outstanding,
            )

        if missing_electives:
            code = missing_electives[0]
            course_id = next(pc.course.id for pc in curriculum if pc.course.code == code)
            latest_attempt = latest.get(course_id)
            latest_grade = latest_attempt.grade.value if latest_attempt and latest_attempt.grade else "N/A"
            logger.info(f"Student {student_id} has not passed curriculum course {code} (latest grade: {latest_grade}).")
            return GraduationVerdict(
                eligible=False,
                reason=f"Failed to pass curriculum course: {code} (latest grade: {latest_grade}).",
                outstanding_courses=outstanding,
            )

        return GraduationVerdict(eligible=True, reason="All academic requirements met.")


def _unique_codes(program_courses) -> List[str]:
    codes: List[str] = []
    for pc in program_courses:
        if pc.course.code not in codes:
            codes.append(pc.course.code)
    return codes
