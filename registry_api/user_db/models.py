from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    ForeignKey,
    DateTime,
    Float,
    UniqueConstraint,
)
from sqlalchemy import Enum
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.sql import func

from registry_api.academic.constants import (
    DegreeType,
    GradeLetter,
    LecturerRole,
    SemesterType,
)


class Base(AsyncAttrs, DeclarativeBase):
    pass


# ───────── organization ─────────


class Faculty(Base):
    __tablename__ = "faculties"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    faculty_code = Column(String, unique=True, nullable=False)

    departments = relationship("Department", back_populates="faculty")


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    faculty_id = Column(Integer, ForeignKey("faculties.id"), nullable=False, index=True)

    faculty = relationship("Faculty", back_populates="departments")
    programs = relationship("Program", back_populates="department")


class Program(Base):
    __tablename__ = "programs"

    id = Column(Integer, primary_key=True)
    program_code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False, index=True)
    degree = Column(String, nullable=True)  # e.g. "B.Sc."
    degree_type = Column(Enum(DegreeType, name="degree_type"), nullable=False)
    duration = Column(Integer, nullable=False)  # number of levels; 0 disables progression
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)

    department = relationship("Department", back_populates="programs")
    program_courses = relationship("ProgramCourse", back_populates="program")


# ───────── curriculum catalog ─────────


class Level(Base):
    __tablename__ = "levels"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)  # e.g. "200 Level", "MSc Year 1"
    value = Column(Integer, nullable=False)
    degree_type = Column(Enum(DegreeType, name="degree_type"), nullable=False, index=True)
    order = Column(Integer, nullable=True)  # explicit sequence for non-numeric families
    description = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("value", "degree_type", name="uq_level_value_degree_type"),
    )


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True)
    code = Column(String, unique=True, nullable=False, index=True)  # e.g. "CSC401"
    title = Column(String, nullable=False)
    credit_unit = Column(Integer, nullable=False, default=0)
    preferred_semester_type = Column(Enum(SemesterType, name="semester_type"), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    prerequisites = relationship(
        "CoursePrerequisite",
        foreign_keys="CoursePrerequisite.course_id",
        back_populates="course",
        cascade="all, delete-orphan",
    )


class CoursePrerequisite(Base):
    __tablename__ = "course_prerequisites"

    id = Column(Integer, primary_key=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    prerequisite_id = Column(Integer, ForeignKey("courses.id"), nullable=False)

    course = relationship("Course", foreign_keys=[course_id], back_populates="prerequisites")
    prerequisite = relationship("Course", foreign_keys=[prerequisite_id])

    __table_args__ = (
        UniqueConstraint("course_id", "prerequisite_id", name="uq_course_prerequisite"),
    )

    def __repr__(self):
        return f"<Prereq course={self.course_id} requires={self.prerequisite_id}>"


class ProgramCourse(Base):
    __tablename__ = "program_courses"

    id = Column(Integer, primary_key=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    level_id = Column(Integer, ForeignKey("levels.id"), nullable=False)
    is_elective = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    program = relationship("Program", back_populates="program_courses")
    course = relationship("Course")
    level = relationship("Level")

    __table_args__ = (
        UniqueConstraint("program_id", "course_id", "level_id", name="uq_program_course_level"),
    )


class ProgramCourseUnitRequirement(Base):
    __tablename__ = "program_course_unit_requirements"

    id = Column(Integer, primary_key=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)
    level_id = Column(Integer, ForeignKey("levels.id"), nullable=False, index=True)
    semester_type = Column(Enum(SemesterType, name="semester_type"), nullable=False)
    minimum_credit_units = Column(Integer, nullable=False)
    maximum_credit_units = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("program_id", "level_id", "semester_type", name="uq_unit_requirement_period"),
    )


# ───────── academic calendar ─────────


class Season(Base):
    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)  # e.g. "2024/2025"
    is_active = Column(Boolean, nullable=False, default=False)
    is_complete = Column(Boolean, nullable=False, default=False)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    semesters = relationship("Semester", back_populates="season")


class Semester(Base):
    __tablename__ = "semesters"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False, index=True)
    type = Column(Enum(SemesterType, name="semester_type"), nullable=False)
    semester_number = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)

    season = relationship("Season", back_populates="semesters")

    __table_args__ = (
        UniqueConstraint("type", "season_id", name="uq_semester_type_season"),
        UniqueConstraint("semester_number", "season_id", name="uq_semester_number_season"),
    )


# ───────── student records ─────────


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True)
    reg_no = Column(String, unique=True, nullable=True, index=True)
    jamb_reg_no = Column(String, unique=True, nullable=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)

    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)
    admission_season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    current_level_id = Column(Integer, ForeignKey("levels.id"), nullable=False)
    current_season_id = Column(Integer, ForeignKey("seasons.id"), nullable=True)
    current_semester_id = Column(Integer, ForeignKey("semesters.id"), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_graduated = Column(Boolean, nullable=False, default=False)
    graduation_season_id = Column(Integer, ForeignKey("seasons.id"), nullable=True)
    graduation_semester_id = Column(Integer, ForeignKey("semesters.id"), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    department = relationship("Department")
    program = relationship("Program")
    current_level = relationship("Level")
    admission_season = relationship("Season", foreign_keys=[admission_season_id])
    registrations = relationship("StudentCourseRegistration", back_populates="student")


class StudentCourseRegistration(Base):
    __tablename__ = "student_course_registrations"

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    semester_id = Column(Integer, ForeignKey("semesters.id"), nullable=False)
    level_id = Column(Integer, ForeignKey("levels.id"), nullable=True)
    is_score_recorded = Column(Boolean, nullable=False, default=False)
    registered_at = Column(DateTime, default=func.now())

    student = relationship("Student", back_populates="registrations")
    course = relationship("Course")
    season = relationship("Season")
    semester = relationship("Semester")
    score = relationship("Score", uselist=False, back_populates="registration")

    __table_args__ = (
        UniqueConstraint(
            "student_id", "course_id", "semester_id", "season_id", name="uq_registration_period"
        ),
    )

    @property
    def grade(self):
        # requires `score` to be loaded
        return self.score.grade if self.score is not None else None


class Score(Base):
    __tablename__ = "scores"

    id = Column(Integer, primary_key=True)
    registration_id = Column(
        Integer, ForeignKey("student_course_registrations.id"), unique=True, nullable=False
    )
    total_score = Column(Float, nullable=True)
    grade = Column(Enum(GradeLetter, name="grade_letter"), nullable=True)
    point = Column(Float, nullable=True)

    registration = relationship("StudentCourseRegistration", back_populates="score")


# ───────── staff accounts ─────────


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)
    is_superadmin = Column(Boolean, default=False)


class Lecturer(Base):
    __tablename__ = "lecturers"

    id = Column(Integer, primary_key=True)
    staff_id = Column(String, unique=True, nullable=True)
    name = Column(String, nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False)
    role = Column(Enum(LecturerRole, name="lecturer_role"), nullable=False, default=LecturerRole.LECTURER)
    is_active = Column(Boolean, nullable=False, default=True)


class ICTStaff(Base):
    __tablename__ = "ict_staff"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    can_manage_course_registration = Column(Boolean, nullable=False, default=False)
