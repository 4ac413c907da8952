# academic/eligibility.py
import logging
from typing import Dict, List, Optional, Set, Tuple

from .constants import COURSE_REGISTRATION_REVIEWER_ROLES, OfferingReason
from .errors import AuthorizationError, NotFoundError, PreconditionError
from .grading import is_failing_grade, is_in_period, latest_attempts, passed_course_ids
from .models import (
    AvailableCourse,
    CourseEligibilityResult,
    CourseOut,
    CourseRecord,
    CurriculumCourseOut,
    CurriculumForPeriodResult,
    PeriodRef,
    PrerequisiteOut,
    RegistrationRecord,
    RequestingAccount,
    SeasonRecord,
    SemesterRecord,
    StudentRecord,
    StudentSummary,
    UnitRequirementOut,
)
from .ports import CurriculumCatalog, StudentRecordStore

logger = logging.getLogger(__name__)


def course_out(course: CourseRecord) -> CourseOut:
    return CourseOut(
        id=course.id,
        code=course.code,
        title=course.title,
        credit_unit=course.credit_unit,
        preferred_semester_type=course.preferred_semester_type,
    )


def offered_in(course: CourseRecord, semester: SemesterRecord) -> bool:
    """Courses without a preferred semester type run every semester."""
    return course.preferred_semester_type is None or course.preferred_semester_type == semester.type


def can_review_registrations(account: RequestingAccount) -> bool:
    if account.account_type == "admin":
        return True
    if account.account_type == "ictstaff":
        return account.can_manage_course_registration
    if account.account_type == "lecturer":
        return account.role in COURSE_REGISTRATION_REVIEWER_ROLES
    return False


class CourseEligibilityResolver:
    """
    Works out which courses a student may register for in a target period.

    Candidates are the current-level curriculum offerings for the target
    semester type plus carryovers (previously failed courses). Passed courses
    are never offered. Courses with unmet prerequisites are still listed,
    flagged ``prerequisites_met=False``. Read-only.
    """

    def __init__(self, catalog: CurriculumCatalog, students: StudentRecordStore):
        self.catalog = catalog
        self.students = students

    # --- self-service ---

    async def resolve_for_student(
        self, student_id: int, target_season_id: int, target_semester_id: int
    ) -> CourseEligibilityResult:
        student = await self.students.get_student_with_academic_context(student_id)
        if student is None:
            raise NotFoundError("Student not found.")
        _require_complete_profile(student)

        season, semester = await self._target_period(target_season_id, target_semester_id)
        if not semester.is_active:
            raise PreconditionError("Course registration is not open for the target semester (semester inactive).")

        courses = await self._resolve(student, season, semester, flag_registered=False)
        return _result(student, season, semester, courses)

    # --- staff view ---

    async def resolve_for_staff(
        self,
        student_identifier: str,
        target_season_id: int,
        target_semester_id: int,
        account: RequestingAccount,
    ) -> CourseEligibilityResult:
        """Same candidate set as the self-service view, but already-registered courses
        stay in the list with ``is_registered=True``."""
        if not can_review_registrations(account):
            raise AuthorizationError("You are not authorized to view registrable courses for other students.")
        if not student_identifier or not str(student_identifier).strip():
            raise PreconditionError("Student identifier is required.")

        student = await self.students.find_student_by_identifier(str(student_identifier).strip())
        if student is None:
            raise NotFoundError(f"Student with identifier '{student_identifier}' not found.")
        if not student.is_active:
            raise PreconditionError(f"Student '{student.name}' is not active.")
        _require_complete_profile(student)

        if account.account_type == "lecturer" and account.department_id != student.department_id:
            raise AuthorizationError("You are not authorized to view students outside your department.")

        season, semester = await self._target_period(target_season_id, target_semester_id)
        courses = await self._resolve(student, season, semester, flag_registered=True)
        return _result(student, season, semester, courses)

    # --- curriculum listing ---

    async def curriculum_for_period(
        self,
        student_id: int,
        target_season_id: int,
        target_semester_id: int,
        level_id: Optional[int] = None,
    ) -> CurriculumForPeriodResult:
        """Curriculum courses for a level and semester type, minus courses already
        registered in the period, with the period's credit-unit limits."""
        student = await self.students.get_student_with_academic_context(student_id)
        if student is None:
            raise NotFoundError("Student not found.")
        if student.program is None:
            raise PreconditionError("Student academic profile (program) is incomplete.")

        semester = await self.catalog.get_semester(target_semester_id)
        if semester is None or semester.season_id != target_season_id:
            raise NotFoundError("Target semester not found for the given season.")
        season = await self.catalog.get_season(target_season_id)
        if season is None:
            raise NotFoundError(f"Target season {target_season_id} not found.")

        target_level_id = level_id if level_id is not None else (
            student.current_level.id if student.current_level else None
        )
        if target_level_id is None:
            raise PreconditionError("Invalid or undeterminable target level ID.")
        level = await self.catalog.get_level(target_level_id)
        if level is None:
            raise NotFoundError(f"Level ID {target_level_id} not found.")

        program_courses = await self.catalog.get_program_courses_for_program_level(
            student.program.id, [level.id], semester.type
        )
        registrations = await self.students.get_registrations_for_student(student.id)
        registered = {reg.course.id for reg in registrations if is_in_period(reg, season.id, semester.id)}

        courses: List[CurriculumCourseOut] = []
        seen: Set[int] = set()
        for pc in program_courses:
            if pc.course.id in registered or pc.course.id in seen:
                continue
            seen.add(pc.course.id)
            courses.append(
                CurriculumCourseOut(**course_out(pc.course).model_dump(), is_elective=pc.is_elective)
            )

        requirement = await self.catalog.get_unit_requirement(student.program.id, level.id, semester.type)
        return CurriculumForPeriodResult(
            student_id=student.id,
            program_id=student.program.id,
            level=PeriodRef(id=level.id, name=level.name),
            season=PeriodRef(id=season.id, name=season.name),
            semester=PeriodRef(id=semester.id, name=semester.name, type=semester.type),
            courses=courses,
            unit_requirements=(
                UnitRequirementOut(
                    minimum_credit_units=requirement.minimum_credit_units,
                    maximum_credit_units=requirement.maximum_credit_units,
                )
                if requirement
                else None
            ),
        )

    # --- internals ---

    async def _target_period(self, season_id: int, semester_id: int) -> Tuple[SeasonRecord, SemesterRecord]:
        semester = await self.catalog.get_semester(semester_id)
        if semester is None:
            raise NotFoundError("Target semester not found.")
        if semester.season_id != season_id:
            raise PreconditionError("Target semester does not belong to the target season.")
        season = await self.catalog.get_season(season_id)
        if season is None:
            raise NotFoundError(f"Target season {season_id} not found.")
        return season, semester

    async def _resolve(
        self,
        student: StudentRecord,
        season: SeasonRecord,
        semester: SemesterRecord,
        flag_registered: bool,
    ) -> List[AvailableCourse]:
        history = await self.students.get_registrations_for_student(student.id)
        passed = passed_course_ids(history)

        # A: current offerings
        candidates: Dict[int, AvailableCourse] = {}
        offerings = await self.catalog.get_program_courses_for_program_level(
            student.program.id, [student.current_level.id], semester.type
        )
        for pc in offerings:
            if pc.course.id in passed or pc.course.id in candidates:
                continue
            candidates[pc.course.id] = AvailableCourse(
                course=course_out(pc.course),
                is_elective=pc.is_elective,
                offering_reason=OfferingReason.CURRENT_OFFERING,
                offering_note=f"Current Program Offering for {student.current_level.name}",
                program_course_id=pc.id,
            )

        # B: carryovers; an offering entry for the same course wins
        for course_id, reg in _carryover_attempts(history, season, semester).items():
            if course_id in passed or course_id in candidates:
                continue
            candidates[course_id] = AvailableCourse(
                course=course_out(reg.course),
                is_elective=False,
                offering_reason=OfferingReason.CARRYOVER,
                offering_note=f"Carryover from {reg.semester.name} ({reg.season.name})",
            )

        registered = {reg.course.id for reg in history if is_in_period(reg, season.id, semester.id)}
        if flag_registered:
            courses = [
                entry.model_copy(update={"is_registered": course_id in registered})
                for course_id, entry in candidates.items()
            ]
        else:
            courses = [entry for course_id, entry in candidates.items() if course_id not in registered]

        annotated = [await self._with_prerequisites(entry, passed) for entry in courses]
        logger.info(
            f"Resolved {len(annotated)} registrable course(s) for student {student.reg_no or student.id} "
            f"in {season.name} / {semester.name}."
        )
        return annotated

    async def _with_prerequisites(self, entry: AvailableCourse, passed: Set[int]) -> AvailableCourse:
        links = await self.catalog.get_prerequisites_for_course(entry.course.id)
        unmet = [link.prerequisite.code for link in links if link.prerequisite.id not in passed]
        return entry.model_copy(
            update={
                "prerequisites_met": not unmet,
                "unmet_prerequisites": unmet,
                "prerequisite_list": [
                    PrerequisiteOut(id=link.prerequisite.id, code=link.prerequisite.code, title=link.prerequisite.title)
                    for link in links
                ],
            }
        )


def _carryover_attempts(
    history: List[RegistrationRecord], season: SeasonRecord, semester: SemesterRecord
) -> Dict[int, RegistrationRecord]:
    """Latest failed attempt per active course offered in the target semester type,
    ignoring attempts inside the target period itself."""
    failed = [
        reg
        for reg in history
        if is_failing_grade(reg.grade)
        and not is_in_period(reg, season.id, semester.id)
        and reg.course.is_active
        and offered_in(reg.course, semester)
    ]
    return latest_attempts(failed)


def _require_complete_profile(student: StudentRecord) -> None:
    if student.current_level is None or student.program is None or student.department_id is None:
        raise PreconditionError("Student academic profile (level, program, or department) is incomplete.")


def _result(
    student: StudentRecord,
    season: SeasonRecord,
    semester: SemesterRecord,
    courses: List[AvailableCourse],
) -> CourseEligibilityResult:
    return CourseEligibilityResult(
        student=StudentSummary(
            id=student.id,
            name=student.name,
            reg_no=student.reg_no,
            level=student.current_level.name,
            level_id=student.current_level.id,
            program=student.program.name,
            program_id=student.program.id,
            department_id=student.department_id,
        ),
        target_season=PeriodRef(id=season.id, name=season.name),
        target_semester=PeriodRef(id=semester.id, name=semester.name, type=semester.type),
        available_courses=courses,
    )
