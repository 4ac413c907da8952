# academic/models.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import (
    DegreeType,
    GradeLetter,
    LecturerRole,
    OfferingReason,
    OutcomeStatus,
    Scope,
    SemesterType,
)

# -------------------------------------
# Records read through the catalog / student store
# -------------------------------------


class Record(BaseModel):
    """Read-only snapshot of a store row. Built from ORM objects or by hand in tests."""

    model_config = ConfigDict(from_attributes=True, frozen=True)


class LevelRecord(Record):
    id: int
    name: str
    value: int
    degree_type: DegreeType
    order: Optional[int] = None


class ProgramRecord(Record):
    id: int
    name: str
    program_code: Optional[str] = None
    degree_type: DegreeType
    duration: int
    department_id: Optional[int] = None

    @property
    def final_level_value(self) -> int:
        return self.duration * 100


class SeasonRecord(Record):
    id: int
    name: str
    start_date: Optional[datetime] = None
    is_active: bool = False


class SemesterRecord(Record):
    id: int
    name: str
    season_id: int
    type: SemesterType
    semester_number: int = 1
    is_active: bool = False


class CourseRecord(Record):
    id: int
    code: str
    title: str = ""
    credit_unit: int = 0
    preferred_semester_type: Optional[SemesterType] = None
    is_active: bool = True


class ProgramCourseRecord(Record):
    id: int
    program_id: int
    level_id: int
    course: CourseRecord
    is_elective: bool = False
    is_active: bool = True


class PrerequisiteRecord(Record):
    course_id: int
    prerequisite: CourseRecord


class UnitRequirementRecord(Record):
    program_id: int
    level_id: int
    semester_type: SemesterType
    minimum_credit_units: int
    maximum_credit_units: int


class RegistrationRecord(Record):
    id: int
    student_id: int
    course: CourseRecord
    season: SeasonRecord
    semester: SemesterRecord
    grade: Optional[GradeLetter] = None
    registered_at: Optional[datetime] = None


class StudentRecord(Record):
    id: int
    reg_no: Optional[str] = None
    jamb_reg_no: Optional[str] = None
    name: str = ""
    email: Optional[str] = None
    department_id: Optional[int] = None
    program: Optional[ProgramRecord] = None
    current_level: Optional[LevelRecord] = None
    admission_season: Optional[SeasonRecord] = None
    current_season_id: Optional[int] = None
    current_semester_id: Optional[int] = None
    graduation_season_id: Optional[int] = None
    graduation_semester_id: Optional[int] = None
    is_active: bool = True
    is_graduated: bool = False


class StudentFilter(BaseModel):
    """Organizational scope resolved to a student query."""

    scope: Scope = Scope.ALL
    scope_id: Optional[int] = None
    degree_type: Optional[DegreeType] = None
    require_program_duration: bool = True


class StudentStateSnapshot(BaseModel):
    """Academic pointer of a student as read before a batch; used for the optimistic check."""

    current_level_id: Optional[int] = None
    current_season_id: Optional[int] = None
    current_semester_id: Optional[int] = None
    is_graduated: bool = False

    @classmethod
    def of(cls, student: StudentRecord) -> "StudentStateSnapshot":
        return cls(
            current_level_id=student.current_level.id if student.current_level else None,
            current_season_id=student.current_season_id,
            current_semester_id=student.current_semester_id,
            is_graduated=student.is_graduated,
        )


class StudentStatePatch(BaseModel):
    """Fields to write on a student row. Unset fields are left untouched."""

    current_level_id: Optional[int] = None
    current_season_id: Optional[int] = None
    current_semester_id: Optional[int] = None
    is_graduated: Optional[bool] = None
    is_active: Optional[bool] = None
    graduation_season_id: Optional[int] = None
    graduation_semester_id: Optional[int] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class StagedStudentUpdate(BaseModel):
    student_id: int
    expected: StudentStateSnapshot
    patch: StudentStatePatch


class GraduationVerdict(BaseModel):
    eligible: bool
    reason: str
    outstanding_courses: List[str] = Field(default_factory=list)


# -------------------------------------
# API models (camelCase on the wire)
# -------------------------------------


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestingAccount(ApiModel):
    """Who is calling; produced by the auth layer."""

    account_type: str  # "admin" | "lecturer" | "ictstaff" | "student"
    id: int
    department_id: Optional[int] = None
    role: Optional[LecturerRole] = None
    can_manage_course_registration: bool = False


class ProgressionRequest(ApiModel):
    target_season_id: int
    target_semester_id: Optional[int] = None
    scope: Scope
    scope_id: Optional[int] = None
    specific_degree_type: Optional[DegreeType] = None


class GraduationRequest(ProgressionRequest):
    pass


class DegreeTypeContextUpdate(ApiModel):
    degree_type: DegreeType
    new_level_id: Optional[int] = None
    new_semester_id: Optional[int] = None


class ContextUpdateRequest(ApiModel):
    target_season_id: int
    scope: Scope = Scope.ALL
    scope_id: Optional[int] = None
    degree_type_updates: List[DegreeTypeContextUpdate] = Field(..., min_length=1)


class FailedStudent(ApiModel):
    student_id: int
    reg_no: Optional[str] = None
    reason: str


class ProgressionOutcome(ApiModel):
    student_id: int
    reg_no: Optional[str] = None
    status: OutcomeStatus
    reason: str
    from_level: Optional[str] = None
    to_level: Optional[str] = None


class ProgressionResult(ApiModel):
    message: str
    progressed_count: int = 0
    unchanged_count: int = 0
    students_considered: int = 0
    failed_to_progress: List[FailedStudent] = Field(default_factory=list)
    outcomes: List[ProgressionOutcome] = Field(default_factory=list)


class GraduationResult(ApiModel):
    message: str
    graduated_count: int = 0
    students_considered: int = 0
    failed_to_graduate: List[FailedStudent] = Field(default_factory=list)


class ContextUpdateLog(ApiModel):
    degree_type: DegreeType
    new_level_id: Optional[int] = None
    new_semester_id: Optional[int] = None
    count: int = 0
    status: str


class ContextUpdateResult(ApiModel):
    message: str
    updated_count: int = 0
    unchanged_count: int = 0
    students_considered: int = 0
    failed_to_update: List[FailedStudent] = Field(default_factory=list)
    updates_applied: List[ContextUpdateLog] = Field(default_factory=list)


class GraduationEligibilityOut(ApiModel):
    student_id: int
    reg_no: Optional[str] = None
    eligible: bool
    reason: str
    outstanding_courses: List[str] = Field(default_factory=list)


class CourseOut(ApiModel):
    id: int
    code: str
    title: str
    credit_unit: int
    preferred_semester_type: Optional[SemesterType] = None


class PrerequisiteOut(ApiModel):
    id: int
    code: str
    title: str


class AvailableCourse(ApiModel):
    course: CourseOut
    is_elective: bool
    offering_reason: OfferingReason
    offering_note: str
    program_course_id: Optional[int] = None
    prerequisites_met: bool = True
    unmet_prerequisites: List[str] = Field(default_factory=list)
    prerequisite_list: List[PrerequisiteOut] = Field(default_factory=list)
    is_registered: Optional[bool] = None


class StudentSummary(ApiModel):
    id: int
    name: str
    reg_no: Optional[str] = None
    level: str
    level_id: int
    program: str
    program_id: int
    department_id: Optional[int] = None


class PeriodRef(ApiModel):
    id: int
    name: str
    type: Optional[SemesterType] = None


class CourseEligibilityResult(ApiModel):
    student: StudentSummary
    target_season: PeriodRef
    target_semester: PeriodRef
    available_courses: List[AvailableCourse] = Field(default_factory=list)


class UnitRequirementOut(ApiModel):
    minimum_credit_units: int
    maximum_credit_units: int


class CurriculumCourseOut(CourseOut):
    is_elective: bool


class CurriculumForPeriodResult(ApiModel):
    student_id: int
    program_id: int
    level: PeriodRef
    season: PeriodRef
    semester: PeriodRef
    courses: List[CurriculumCourseOut] = Field(default_factory=list)
    unit_requirements: Optional[UnitRequirementOut] = None
