# academic/ports.py
"""
Store interfaces the rules engine depends on.

The SQLAlchemy implementations live in ``user_db.services``; tests use
in-memory fakes. All methods return ``academic.models`` records, never ORM rows.
"""
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from .constants import DegreeType, SemesterType
from .models import (
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


class CurriculumCatalog(Protocol):
    async def get_levels_by_degree_type(self, degree_type: DegreeType) -> List[LevelRecord]:
        """All levels of a degree type, ascending by value."""
        ...

    async def get_level(self, level_id: int) -> Optional[LevelRecord]: ...

    async def get_program_courses_for_program_level(
        self,
        program_id: int,
        level_ids: Sequence[int],
        semester_type: Optional[SemesterType] = None,
    ) -> List[ProgramCourseRecord]:
        """Active curriculum links for the program at the given levels.

        With ``semester_type`` set, only active courses offered in that
        semester type (or in every semester type) are returned.
        """
        ...

    async def get_prerequisites_for_course(self, course_id: int) -> List[PrerequisiteRecord]:
        """Prerequisite links whose prerequisite course is active."""
        ...

    async def get_unit_requirement(
        self, program_id: int, level_id: int, semester_type: SemesterType
    ) -> Optional[UnitRequirementRecord]: ...

    async def get_season(self, season_id: int) -> Optional[SeasonRecord]: ...

    async def get_semester(self, semester_id: int) -> Optional[SemesterRecord]: ...

    async def get_first_semester(self, season_id: int) -> Optional[SemesterRecord]:
        """Lowest-numbered FIRST-type semester of the season."""
        ...


class StudentRecordStore(Protocol):
    async def get_student_with_academic_context(self, student_id: int) -> Optional[StudentRecord]: ...

    async def find_student_by_identifier(self, identifier: str) -> Optional[StudentRecord]:
        """Numeric id, registration number, JAMB number or email."""
        ...

    async def find_students(self, student_filter: StudentFilter) -> List[StudentRecord]:
        """Active, non-graduated students in scope, loaded with level, program and admission season."""
        ...

    async def get_registrations_for_student(
        self,
        student_id: int,
        since_season_start: Optional[datetime] = None,
        course_ids: Optional[Sequence[int]] = None,
    ) -> List[RegistrationRecord]:
        """Registrations newest first (season start, then semester number)."""
        ...

    async def update_student_academic_state(self, updates: Sequence[StagedStudentUpdate]) -> int:
        """Apply all updates in one transaction; raise ``StaleStudentStateError`` on a lost update."""
        ...
