from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

import pytest

from registry_api.academic.constants import DegreeType, GradeLetter, Scope, SemesterType
from registry_api.academic.errors import StaleStudentStateError
from registry_api.academic.models import (
    CourseRecord,
    LevelRecord,
    PrerequisiteRecord,
    ProgramCourseRecord,
    ProgramRecord,
    RegistrationRecord,
    SeasonRecord,
    SemesterRecord,
    StagedStudentUpdate,
    StudentFilter,
    StudentRecord,
    StudentStateSnapshot,
    UnitRequirementRecord,
)


class InMemoryCurriculumCatalog:
    def __init__(self):
        self.levels: Dict[int, LevelRecord] = {}
        self.seasons: Dict[int, SeasonRecord] = {}
        self.semesters: Dict[int, SemesterRecord] = {}
        self.program_courses: List[ProgramCourseRecord] = []
        self.prerequisites: List[PrerequisiteRecord] = []
        self.unit_requirements: List[UnitRequirementRecord] = []
        self.level_queries = 0

    async def get_levels_by_degree_type(self, degree_type):
        self.level_queries += 1
        return sorted(
            (lvl for lvl in self.levels.values() if lvl.degree_type == degree_type),
            key=lambda lvl: lvl.value,
        )

    async def get_level(self, level_id):
        return self.levels.get(level_id)

    async def get_program_courses_for_program_level(self, program_id, level_ids, semester_type=None):
        rows = [
            pc
            for pc in self.program_courses
            if pc.program_id == program_id and pc.level_id in level_ids and pc.is_active
        ]
        if semester_type is not None:
            rows = [
                pc
                for pc in rows
                if pc.course.is_active
                and pc.course.preferred_semester_type in (None, semester_type)
            ]
        return rows

    async def get_prerequisites_for_course(self, course_id):
        return [
            link
            for link in self.prerequisites
            if link.course_id == course_id and link.prerequisite.is_active
        ]

    async def get_unit_requirement(self, program_id, level_id, semester_type):
        return next(
            (
                req
                for req in self.unit_requirements
                if (req.program_id, req.level_id, req.semester_type) == (program_id, level_id, semester_type)
            ),
            None,
        )

    async def get_season(self, season_id):
        return self.seasons.get(season_id)

    async def get_semester(self, semester_id):
        return self.semesters.get(semester_id)

    async def get_first_semester(self, season_id):
        firsts = [
            sem
            for sem in self.semesters.values()
            if sem.season_id == season_id and sem.type == SemesterType.FIRST
        ]
        return min(firsts, key=lambda sem: sem.semester_number, default=None)


class InMemoryStudentStore:
    def __init__(self, catalog: InMemoryCurriculumCatalog):
        self.catalog = catalog
        self.students: Dict[int, StudentRecord] = {}
        self.registrations: List[RegistrationRecord] = []
        self.faculty_of_department: Dict[int, int] = {}
        self.commits: List[List[StagedStudentUpdate]] = []
        self.fail_next_commit: Optional[Exception] = None

    async def get_student_with_academic_context(self, student_id):
        return self.students.get(student_id)

    async def find_student_by_identifier(self, identifier):
        for student in self.students.values():
            if identifier.isdigit() and student.id == int(identifier):
                return student
            if identifier in (student.reg_no, student.jamb_reg_no, student.email):
                return student
        return None

    async def find_students(self, student_filter: StudentFilter):
        found = []
        for student in sorted(self.students.values(), key=lambda s: s.id):
            if not student.is_active or student.is_graduated:
                continue
            program = student.program
            if student_filter.require_program_duration and (program is None or program.duration <= 0):
                continue
            if student_filter.degree_type is not None and (
                program is None or program.degree_type != student_filter.degree_type
            ):
                continue
            if student_filter.scope == Scope.FACULTY:
                if self.faculty_of_department.get(student.department_id) != student_filter.scope_id:
                    continue
            elif student_filter.scope == Scope.DEPARTMENT:
                if student.department_id != student_filter.scope_id:
                    continue
            elif student_filter.scope == Scope.PROGRAM:
                if program is None or program.id != student_filter.scope_id:
                    continue
            found.append(student)
        return found

    async def get_registrations_for_student(self, student_id, since_season_start=None, course_ids=None):
        rows = [reg for reg in self.registrations if reg.student_id == student_id]
        if since_season_start is not None:
            rows = [
                reg
                for reg in rows
                if reg.season.start_date is not None and reg.season.start_date >= since_season_start
            ]
        if course_ids is not None:
            rows = [reg for reg in rows if reg.course.id in course_ids]
        return sorted(
            rows,
            key=lambda reg: (
                reg.season.start_date or datetime.min,
                reg.semester.semester_number,
                reg.registered_at or datetime.min,
            ),
            reverse=True,
        )

    async def update_student_academic_state(self, updates: Sequence[StagedStudentUpdate]):
        if self.fail_next_commit is not None:
            error, self.fail_next_commit = self.fail_next_commit, None
            raise error
        for staged in updates:
            current = self.students.get(staged.student_id)
            if current is None or StudentStateSnapshot.of(current) != staged.expected:
                raise StaleStudentStateError(staged.student_id)
        for staged in updates:
            changes = staged.patch.changes()
            if "current_level_id" in changes:
                changes["current_level"] = self.catalog.levels[changes.pop("current_level_id")]
            self.students[staged.student_id] = self.students[staged.student_id].model_copy(update=changes)
        self.commits.append(list(updates))
        return len(updates)


class Campus:
    """Builds a small university: one faculty, UG and MASTERS level ladders, seasons 2020-2025."""

    FACULTY_ID = 1
    DEPARTMENT_ID = 10

    def __init__(self):
        self.catalog = InMemoryCurriculumCatalog()
        self.store = InMemoryStudentStore(self.catalog)
        self.store.faculty_of_department[self.DEPARTMENT_ID] = self.FACULTY_ID
        self.programs: Dict[str, ProgramRecord] = {}
        self.courses: Dict[str, CourseRecord] = {}
        self._next_id = 1000

        for value in (100, 200, 300, 400):
            self.add_level(value, DegreeType.UNDERGRADUATE, level_id=value // 100)
        for order in (1, 2, 3):
            self.add_level(order * 100, DegreeType.MASTERS, order=order, level_id=10 + order, name=f"MSc Year {order}")
        for year in range(2020, 2026):
            self.add_season(year)

        self.add_program("CSC", DegreeType.UNDERGRADUATE, duration=4, program_id=1)
        self.add_program("MSC", DegreeType.MASTERS, duration=3, program_id=2)

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    # --- catalog ---

    def add_level(self, value, degree_type, order=None, level_id=None, name=None) -> LevelRecord:
        level = LevelRecord(
            id=level_id or self._id(),
            name=name or f"{value} Level",
            value=value,
            degree_type=degree_type,
            order=order,
        )
        self.catalog.levels[level.id] = level
        return level

    def level(self, value, degree_type=DegreeType.UNDERGRADUATE) -> LevelRecord:
        return next(
            lvl for lvl in self.catalog.levels.values() if lvl.value == value and lvl.degree_type == degree_type
        )

    def remove_level(self, value, degree_type=DegreeType.UNDERGRADUATE) -> None:
        del self.catalog.levels[self.level(value, degree_type).id]

    def add_season(self, year, is_active=True) -> SeasonRecord:
        season = SeasonRecord(
            id=year, name=f"{year}/{year + 1}", start_date=datetime(year, 9, 1), is_active=is_active
        )
        self.catalog.seasons[season.id] = season
        for number, sem_type in ((1, SemesterType.FIRST), (2, SemesterType.SECOND)):
            semester = SemesterRecord(
                id=self.semester_id(year, sem_type),
                name=f"{sem_type.value.title()} Semester {year}",
                season_id=year,
                type=sem_type,
                semester_number=number,
                is_active=True,
            )
            self.catalog.semesters[semester.id] = semester
        return season

    @staticmethod
    def semester_id(year, sem_type=SemesterType.FIRST) -> int:
        return year * 10 + (1 if sem_type == SemesterType.FIRST else 2)

    def season(self, year) -> SeasonRecord:
        return self.catalog.seasons[year]

    def semester(self, year, sem_type=SemesterType.FIRST) -> SemesterRecord:
        return self.catalog.semesters[self.semester_id(year, sem_type)]

    def add_program(self, code, degree_type, duration, program_id=None) -> ProgramRecord:
        program = ProgramRecord(
            id=program_id or self._id(),
            name=f"{code} Program",
            program_code=code,
            degree_type=degree_type,
            duration=duration,
            department_id=self.DEPARTMENT_ID,
        )
        self.programs[code] = program
        return program

    def add_course(self, code, semester_type=SemesterType.FIRST, credit_unit=3, is_active=True) -> CourseRecord:
        course = CourseRecord(
            id=self._id(),
            code=code,
            title=f"{code} Title",
            credit_unit=credit_unit,
            preferred_semester_type=semester_type,
            is_active=is_active,
        )
        self.courses[code] = course
        return course

    def offer(self, program_code, course_code, level_value, is_elective=False, degree_type=DegreeType.UNDERGRADUATE):
        course = self.courses.get(course_code) or self.add_course(course_code)
        pc = ProgramCourseRecord(
            id=self._id(),
            program_id=self.programs[program_code].id,
            level_id=self.level(level_value, degree_type).id,
            course=course,
            is_elective=is_elective,
        )
        self.catalog.program_courses.append(pc)
        return pc

    def require(self, course_code, prerequisite_code) -> None:
        self.catalog.prerequisites.append(
            PrerequisiteRecord(
                course_id=self.courses[course_code].id,
                prerequisite=self.courses[prerequisite_code],
            )
        )

    # --- students ---

    def add_student(
        self,
        student_id,
        level_value=100,
        program_code="CSC",
        admitted=2020,
        current_year=None,
        current_semester=SemesterType.FIRST,
        department_id=DEPARTMENT_ID,
        **extra,
    ) -> StudentRecord:
        program = self.programs[program_code]
        current_year = current_year if current_year is not None else admitted
        student = StudentRecord(
            id=student_id,
            reg_no=f"REG/{student_id:04d}",
            jamb_reg_no=f"JAMB{student_id}",
            name=f"Student {student_id}",
            email=f"student{student_id}@uni.example",
            department_id=department_id,
            program=program,
            current_level=self.level(level_value, program.degree_type),
            admission_season=self.season(admitted),
            current_season_id=current_year,
            current_semester_id=self.semester_id(current_year, current_semester),
            **extra,
        )
        self.store.students[student_id] = student
        return student

    def register(self, student_id, course_code, year, sem_type=SemesterType.FIRST, grade: Optional[GradeLetter] = None):
        course = self.courses.get(course_code) or self.add_course(course_code, sem_type)
        reg = RegistrationRecord(
            id=self._id(),
            student_id=student_id,
            course=course,
            season=self.season(year),
            semester=self.semester(year, sem_type),
            grade=grade,
            registered_at=datetime(year, 9, 15) + timedelta(days=len(self.store.registrations)),
        )
        self.store.registrations.append(reg)
        return reg


@pytest.fixture
def campus():
    return Campus()


@pytest.fixture
def catalog(campus):
    return campus.catalog


@pytest.fixture
def store(campus):
    return campus.store
