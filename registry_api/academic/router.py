# academic/router.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.auth.utils import get_current_account, require_admin, require_student
from registry_api.user_db.database import get_db
from registry_api.user_db.services import SqlCurriculumCatalog, SqlStudentRecordStore

from .batch import BatchOrchestrator
from .eligibility import CourseEligibilityResolver
from .errors import AcademicRuleError, NotFoundError, PreconditionError
from .graduation import GraduationEvaluator
from .models import (
    ContextUpdateRequest,
    ContextUpdateResult,
    CourseEligibilityResult,
    CurriculumForPeriodResult,
    GraduationEligibilityOut,
    GraduationRequest,
    GraduationResult,
    ProgressionRequest,
    ProgressionResult,
    RequestingAccount,
)
from .ports import CurriculumCatalog, StudentRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/academic", tags=["Academic"])


# --- store dependencies (overridable in tests) ---


async def get_catalog(db: AsyncSession = Depends(get_db)) -> CurriculumCatalog:
    return SqlCurriculumCatalog(db)


async def get_student_store(db: AsyncSession = Depends(get_db)) -> StudentRecordStore:
    return SqlStudentRecordStore(db)


def as_http_error(e: AcademicRuleError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.detail)


# --- batch operations (admin) ---


@router.post(
    "/progression/progress-students",
    response_model=ProgressionResult,
    response_model_by_alias=True,
    summary="Advance students in scope to the next level for a target season",
)
async def progress_students(
    payload: ProgressionRequest,
    admin: RequestingAccount = Depends(require_admin),
    catalog: CurriculumCatalog = Depends(get_catalog),
    students: StudentRecordStore = Depends(get_student_store),
):
    logger.info(f"Admin {admin.id} requested batch progression to season {payload.target_season_id}.")
    try:
        return await BatchOrchestrator(catalog, students).progress_students(payload)
    except AcademicRuleError as e:
        raise as_http_error(e) from e


@router.post(
    "/progression/graduate-students",
    response_model=GraduationResult,
    response_model_by_alias=True,
    summary="Graduate eligible final-level students in scope",
)
async def graduate_students(
    payload: GraduationRequest,
    admin: RequestingAccount = Depends(require_admin),
    catalog: CurriculumCatalog = Depends(get_catalog),
    students: StudentRecordStore = Depends(get_student_store),
):
    logger.info(f"Admin {admin.id} requested batch graduation for season {payload.target_season_id}.")
    try:
        return await BatchOrchestrator(catalog, students).graduate_students(payload)
    except AcademicRuleError as e:
        raise as_http_error(e) from e


@router.post(
    "/progression/batch-update-context",
    response_model=ContextUpdateResult,
    response_model_by_alias=True,
    summary="Directly set level/semester per degree type for students in scope",
)
async def batch_update_context(
    payload: ContextUpdateRequest,
    admin: RequestingAccount = Depends(require_admin),
    catalog: CurriculumCatalog = Depends(get_catalog),
    students: StudentRecordStore = Depends(get_student_store),
):
    logger.info(f"Admin {admin.id} requested academic context update for season {payload.target_season_id}.")
    try:
        return await BatchOrchestrator(catalog, students).update_academic_context(payload)
    except AcademicRuleError as e:
        raise as_http_error(e) from e


@router.get(
    "/students/{student_id}/graduation-eligibility",
    response_model=GraduationEligibilityOut,
    response_model_by_alias=True,
)
async def graduation_eligibility(
    student_id: int,
    admin: RequestingAccount = Depends(require_admin),
    catalog: CurriculumCatalog = Depends(get_catalog),
    students: StudentRecordStore = Depends(get_student_store),
):
    try:
        student = await students.get_student_with_academic_context(student_id)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found.")
        if student.program is None or student.admission_season is None:
            raise PreconditionError("Student program or admission season is missing.")
        verdict = await GraduationEvaluator(catalog, students).evaluate(
            student.id,
            student.program.id,
            student.admission_season.start_date,
            student.program.degree_type,
            student.program.duration,
        )
    except AcademicRuleError as e:
        raise as_http_error(e) from e

    return GraduationEligibilityOut(
        student_id=student.id,
        reg_no=student.reg_no,
        eligible=verdict.eligible,
        reason=verdict.reason,
        outstanding_courses=verdict.outstanding_courses,
    )


# --- course registration views ---


@router.get(
    "/me/registrable-courses",
    response_model=CourseEligibilityResult,
    response_model_by_alias=True,
    summary="Courses the logged-in student may register for in a period",
)
async def my_registrable_courses(
    target_season_id: int = Query(..., alias="targetSeasonId"),
    target_semester_id: int = Query(..., alias="targetSemesterId"),
    student: RequestingAccount = Depends(require_student),
    catalog: CurriculumCatalog = Depends(get_catalog),
    students: StudentRecordStore = Depends(get_student_store),
):
    try:
        return await CourseEligibilityResolver(catalog, students).resolve_for_student(
            student.id, target_season_id, target_semester_id
        )
    except AcademicRuleError as e:
        raise as_http_error(e) from e


@router.get(
    "/students/{identifier}/registrable-courses",
    response_model=CourseEligibilityResult,
    response_model_by_alias=True,
    summary="Staff view of a student's registrable courses, with registered ones flagged",
)
async def student_registrable_courses(
    identifier: str,
    target_season_id: int = Query(..., alias="targetSeasonId"),
    target_semester_id: int = Query(..., alias="targetSemesterId"),
    account: RequestingAccount = Depends(get_current_account),
    catalog: CurriculumCatalog = Depends(get_catalog),
    students: StudentRecordStore = Depends(get_student_store),
):
    try:
        return await CourseEligibilityResolver(catalog, students).resolve_for_staff(
            identifier, target_season_id, target_semester_id, account
        )
    except AcademicRuleError as e:
        raise as_http_error(e) from e


@router.get(
    "/me/curriculum-courses",
    response_model=CurriculumForPeriodResult,
    response_model_by_alias=True,
    summary="Curriculum courses for a level and period, with credit-unit limits",
)
async def my_curriculum_courses(
    target_season_id: int = Query(..., alias="targetSeasonId"),
    target_semester_id: int = Query(..., alias="targetSemesterId"),
    level_id: Optional[int] = Query(None, alias="levelId"),
    student: RequestingAccount = Depends(require_student),
    catalog: CurriculumCatalog = Depends(get_catalog),
    students: StudentRecordStore = Depends(get_student_store),
):
    try:
        return await CourseEligibilityResolver(catalog, students).curriculum_for_period(
            student.id, target_season_id, target_semester_id, level_id
        )
    except AcademicRuleError as e:
        raise as_http_error(e) from e
