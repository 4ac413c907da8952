import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from registry_api.academic.constants import DegreeType, Scope, SemesterType
from registry_api.academic.errors import StaleStudentStateError
from registry_api.academic.models import (
    LevelRecord,
    PrerequisiteRecord,
    ProgramCourseRecord,
    RegistrationRecord,
    SeasonRecord,
    SemesterRecord,
    StagedStudentUpdate,
    StudentFilter,
    StudentRecord,
    UnitRequirementRecord,
)

from .models import (
    Course,
    CoursePrerequisite,
    Department,
    Level,
    Program,
    ProgramCourse,
    ProgramCourseUnitRequirement,
    Season,
    Semester,
    Student,
    StudentCourseRegistration,
)

logger = logging.getLogger(__name__)


# Relationships StudentRecord reads; must be eager-loaded under asyncio
STUDENT_CONTEXT_OPTIONS = (
    selectinload(Student.program),
    selectinload(Student.current_level),
    selectinload(Student.admission_season),
)


class SqlCurriculumCatalog:
    """Curriculum catalog and academic calendar backed by SQLAlchemy."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_levels_by_degree_type(self, degree_type: DegreeType) -> List[LevelRecord]:
        result = await self.db.execute(
            select(Level).where(Level.degree_type == degree_type).order_by(Level.value)
        )
        return [LevelRecord.model_validate(level) for level in result.scalars().all()]

    async def get_level(self, level_id: int) -> Optional[LevelRecord]:
        level = await self.db.get(Level, level_id)
        return LevelRecord.model_validate(level) if level else None

    async def get_program_courses_for_program_level(
        self,
        program_id: int,
        level_ids: Sequence[int],
        semester_type: Optional[SemesterType] = None,
    ) -> List[ProgramCourseRecord]:
        if not level_ids:
            return []
        stmt = (
            select(ProgramCourse)
            .join(ProgramCourse.course)
            .options(selectinload(ProgramCourse.course))
            .where(
                ProgramCourse.program_id == program_id,
                ProgramCourse.level_id.in_(list(level_ids)),
                ProgramCourse.is_active.is_(True),
            )
            .order_by(ProgramCourse.level_id, Course.code)
        )
        if semester_type is not None:
            stmt = stmt.where(
                Course.is_active.is_(True),
                or_(
                    Course.preferred_semester_type == semester_type,
                    Course.preferred_semester_type.is_(None),
                ),
            )
        result = await self.db.execute(stmt)
        return [ProgramCourseRecord.model_validate(pc) for pc in result.scalars().all()]

    async def get_prerequisites_for_course(self, course_id: int) -> List[PrerequisiteRecord]:
        stmt = (
            select(CoursePrerequisite)
            .join(CoursePrerequisite.prerequisite)
            .options(selectinload(CoursePrerequisite.prerequisite))
            .where(CoursePrerequisite.course_id == course_id, Course.is_active.is_(True))
            .order_by(Course.code)
        )
        result = await self.db.execute(stmt)
        return [PrerequisiteRecord.model_validate(link) for link in result.scalars().all()]

    async def get_unit_requirement(
        self, program_id: int, level_id: int, semester_type: SemesterType
    ) -> Optional[UnitRequirementRecord]:
        result = await self.db.execute(
            select(ProgramCourseUnitRequirement).where(
                ProgramCourseUnitRequirement.program_id == program_id,
                ProgramCourseUnitRequirement.level_id == level_id,
                ProgramCourseUnitRequirement.semester_type == semester_type,
                ProgramCourseUnitRequirement.is_active.is_(True),
            )
        )
        requirement = result.scalar_one_or_none()
        return UnitRequirementRecord.model_validate(requirement) if requirement else None

    async def get_season(self, season_id: int) -> Optional[SeasonRecord]:
        season = await self.db.get(Season, season_id)
        return SeasonRecord.model_validate(season) if season else None

    async def get_semester(self, semester_id: int) -> Optional[SemesterRecord]:
        semester = await self.db.get(Semester, semester_id)
        return SemesterRecord.model_validate(semester) if semester else None

    async def get_first_semester(self, season_id: int) -> Optional[SemesterRecord]:
        result = await self.db.execute(
            select(Semester)
            .where(Semester.season_id == season_id, Semester.type == SemesterType.FIRST)
            .order_by(Semester.semester_number)
            .limit(1)
        )
        semester = result.scalar_one_or_none()
        return SemesterRecord.model_validate(semester) if semester else None


class SqlStudentRecordStore:
    """Student records and registrations backed by SQLAlchemy."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_student_with_academic_context(self, student_id: int) -> Optional[StudentRecord]:
        result = await self.db.execute(
            select(Student).where(Student.id == student_id).options(*STUDENT_CONTEXT_OPTIONS)
        )
        student = result.scalar_one_or_none()
        return StudentRecord.model_validate(student) if student else None

    async def find_student_by_identifier(self, identifier: str) -> Optional[StudentRecord]:
        if identifier.isdigit():
            condition = Student.id == int(identifier)
        else:
            condition = or_(
                Student.reg_no == identifier,
                Student.jamb_reg_no == identifier,
                Student.email == identifier,
            )
        result = await self.db.execute(
            select(Student).where(condition).options(*STUDENT_CONTEXT_OPTIONS).limit(1)
        )
        student = result.scalar_one_or_none()
        return StudentRecord.model_validate(student) if student else None

    async def find_students(self, student_filter: StudentFilter) -> List[StudentRecord]:
        conditions = [Student.is_active.is_(True), Student.is_graduated.is_(False)]

        program_conditions = []
        if student_filter.require_program_duration:
            program_conditions.append(Program.duration > 0)
        if student_filter.degree_type is not None:
            program_conditions.append(Program.degree_type == student_filter.degree_type)
        if program_conditions:
            conditions.append(Student.program.has(and_(*program_conditions)))

        if student_filter.scope == Scope.FACULTY:
            conditions.append(Student.department.has(Department.faculty_id == student_filter.scope_id))
        elif student_filter.scope == Scope.DEPARTMENT:
            conditions.append(Student.department_id == student_filter.scope_id)
        elif student_filter.scope == Scope.PROGRAM:
            conditions.append(Student.program_id == student_filter.scope_id)

        # one bulk read; relationships come in via selectinload, not per student
        result = await self.db.execute(
            select(Student).where(*conditions).options(*STUDENT_CONTEXT_OPTIONS).order_by(Student.id)
        )
        return [StudentRecord.model_validate(s) for s in result.scalars().all()]

    async def get_registrations_for_student(
        self,
        student_id: int,
        since_season_start: Optional[datetime] = None,
        course_ids: Optional[Sequence[int]] = None,
    ) -> List[RegistrationRecord]:
        stmt = (
            select(StudentCourseRegistration)
            .join(StudentCourseRegistration.season)
            .join(StudentCourseRegistration.semester)
            .where(StudentCourseRegistration.student_id == student_id)
            .options(
                selectinload(StudentCourseRegistration.course),
                selectinload(StudentCourseRegistration.season),
                selectinload(StudentCourseRegistration.semester),
                selectinload(StudentCourseRegistration.score),
            )
            .order_by(
                Season.start_date.desc(),
                Semester.semester_number.desc(),
                StudentCourseRegistration.registered_at.desc(),
            )
        )
        if since_season_start is not None:
            stmt = stmt.where(Season.start_date >= since_season_start)
        if course_ids is not None:
            stmt = stmt.where(StudentCourseRegistration.course_id.in_(list(course_ids)))
        result = await self.db.execute(stmt)
        return [RegistrationRecord.model_validate(reg) for reg in result.scalars().all()]

    async def update_student_academic_state(self, updates: Sequence[StagedStudentUpdate]) -> int:
        """
        Apply every update in one transaction.

        Each UPDATE is conditioned on the state read before the batch
        (level, season, semester, graduated flag). If any row no longer
        matches, everything is rolled back and ``StaleStudentStateError`` raised.
        """
        try:
            for staged in updates:
                expected = staged.expected
                stmt = (
                    update(Student)
                    .where(
                        Student.id == staged.student_id,
                        Student.current_level_id.is_not_distinct_from(expected.current_level_id),
                        Student.current_season_id.is_not_distinct_from(expected.current_season_id),
                        Student.current_semester_id.is_not_distinct_from(expected.current_semester_id),
                        Student.is_graduated.is_(expected.is_graduated),
                    )
                    .values(**staged.patch.changes())
                    .execution_options(synchronize_session=False)
                )
                result = await self.db.execute(stmt)
                if result.rowcount != 1:
                    raise StaleStudentStateError(staged.student_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Committed academic state updates for {len(updates)} student(s).")
        return len(updates)
