# academic/batch.py
import logging
from typing import List, Optional, Tuple, Union

from .constants import DegreeType, OutcomeStatus, Scope
from .errors import (
    AcademicRuleError,
    BatchCommitError,
    NotFoundError,
    PreconditionError,
)
from .graduation import GraduationEvaluator
from .models import (
    ContextUpdateLog,
    ContextUpdateRequest,
    ContextUpdateResult,
    FailedStudent,
    GraduationRequest,
    GraduationResult,
    ProgressionOutcome,
    ProgressionRequest,
    ProgressionResult,
    SeasonRecord,
    SemesterRecord,
    StagedStudentUpdate,
    StudentFilter,
    StudentRecord,
    StudentStatePatch,
    StudentStateSnapshot,
)
from .ports import CurriculumCatalog, StudentRecordStore
from .progression import ProgressionEngine

logger = logging.getLogger(__name__)


class StudentUpdateBatch:
    """Unit of work: collects intended student updates and commits them exactly once."""

    def __init__(self):
        self._updates: List[StagedStudentUpdate] = []
        self._staged_ids = set()
        self.committed = False

    def __len__(self) -> int:
        return len(self._updates)

    @property
    def updates(self) -> Tuple[StagedStudentUpdate, ...]:
        return tuple(self._updates)

    def stage(self, update: StagedStudentUpdate) -> None:
        if self.committed:
            raise RuntimeError("Cannot stage updates on a committed batch.")
        if update.student_id in self._staged_ids:
            raise ValueError(f"Student {update.student_id} already has a staged update in this batch.")
        self._staged_ids.add(update.student_id)
        self._updates.append(update)

    async def commit(self, store: StudentRecordStore) -> int:
        if self.committed:
            raise RuntimeError("Batch already committed.")
        self.committed = True
        if not self._updates:
            return 0
        try:
            return await store.update_student_academic_state(self._updates)
        except AcademicRuleError:
            raise
        except Exception as e:
            logger.error(f"Batch commit of {len(self._updates)} student update(s) failed: {e}", exc_info=True)
            raise BatchCommitError("Batch update failed; no student records were changed.") from e


class BatchOrchestrator:
    """
    Applies academic-state changes across an organizational scope.

    Preconditions (target period, scope, filters, catalog references) are
    checked before any student is read. Per-student problems land in the
    returned ledger. All updates of one call commit in a single transaction,
    and the ledger is only returned once that commit has succeeded.
    """

    def __init__(self, catalog: CurriculumCatalog, students: StudentRecordStore):
        self.catalog = catalog
        self.students = students

    # --- level progression ---

    async def progress_students(self, request: ProgressionRequest) -> ProgressionResult:
        season, semester = await self._resolve_target_period(request.target_season_id, request.target_semester_id)
        student_filter = _scope_filter(request.scope, request.scope_id, request.specific_degree_type)

        logger.info(
            f"Progressing students to {season.name} / {semester.name} "
            f"(scope={student_filter.scope.value}, scopeId={student_filter.scope_id}, "
            f"degreeType={student_filter.degree_type.value if student_filter.degree_type else 'ALL'})"
        )
        candidates = await self.students.find_students(student_filter)
        if not candidates:
            return ProgressionResult(message="No students found for progression.")
        logger.info(f"Found {len(candidates)} student(s) to consider for progression.")

        engine = ProgressionEngine(self.catalog, GraduationEvaluator(self.catalog, self.students))
        batch = StudentUpdateBatch()
        outcomes: List[ProgressionOutcome] = []
        for student in candidates:
            decision = await engine.decide(student, season, semester)
            outcomes.append(decision.outcome)
            if decision.outcome.status == OutcomeStatus.FAILED:
                logger.info(f"Student {student.reg_no or student.id} not progressed: {decision.outcome.reason}")
            if decision.update is not None:
                batch.stage(decision.update)

        await batch.commit(self.students)

        progressed = sum(1 for o in outcomes if o.status in (OutcomeStatus.PROGRESSED, OutcomeStatus.GRADUATED))
        unchanged = sum(1 for o in outcomes if o.status == OutcomeStatus.NO_OP)
        failed = [
            FailedStudent(student_id=o.student_id, reg_no=o.reg_no, reason=o.reason)
            for o in outcomes
            if o.status in (OutcomeStatus.FAILED, OutcomeStatus.RETAINED)
        ]
        logger.info(
            f"Progression committed: {progressed} progressed, {unchanged} unchanged, {len(failed)} not progressed."
        )
        return ProgressionResult(
            message=f"Student progression to season '{season.name}' processed.",
            progressed_count=progressed,
            unchanged_count=unchanged,
            students_considered=len(candidates),
            failed_to_progress=failed,
            outcomes=outcomes,
        )

    # --- graduation only ---

    async def graduate_students(self, request: GraduationRequest) -> GraduationResult:
        season, semester = await self._resolve_target_period(request.target_season_id, request.target_semester_id)
        student_filter = _scope_filter(request.scope, request.scope_id, request.specific_degree_type)

        candidates = await self.students.find_students(student_filter)
        if not candidates:
            return GraduationResult(
                message=(
                    f"No eligible students found for batch graduation matching the criteria "
                    f"(scope: {student_filter.scope.value})."
                )
            )

        evaluator = GraduationEvaluator(self.catalog, self.students)
        batch = StudentUpdateBatch()
        failed: List[FailedStudent] = []
        for student in candidates:
            program, level = student.program, student.current_level
            if program is None or level is None or student.admission_season is None:
                failed.append(_failed(student, "Missing program, current level, or admission season data. Data integrity issue."))
                continue
            if level.value < program.final_level_value:
                failed.append(
                    _failed(
                        student,
                        f"Student is not yet at the final academic level for their program "
                        f"(Current: {level.value}, Expected Final: {program.final_level_value}).",
                    )
                )
                continue

            verdict = await evaluator.evaluate(
                student.id,
                program.id,
                student.admission_season.start_date,
                program.degree_type,
                program.duration,
            )
            if not verdict.eligible:
                failed.append(_failed(student, verdict.reason))
                continue

            batch.stage(
                StagedStudentUpdate(
                    student_id=student.id,
                    expected=StudentStateSnapshot.of(student),
                    patch=StudentStatePatch(
                        is_graduated=True,
                        is_active=False,
                        current_season_id=season.id,
                        current_semester_id=semester.id,
                        graduation_season_id=season.id,
                        graduation_semester_id=semester.id,
                    ),
                )
            )

        await batch.commit(self.students)
        logger.info(f"Batch graduation committed: {len(batch)} graduated, {len(failed)} not graduated.")
        return GraduationResult(
            message=f"Batch graduation process completed for season '{season.name}'.",
            graduated_count=len(batch),
            students_considered=len(candidates),
            failed_to_graduate=failed,
        )

    # --- direct context override ---

    async def update_academic_context(self, request: ContextUpdateRequest) -> ContextUpdateResult:
        """Bulk override of level/semester per degree-type group. Validated against the
        catalog, not gated by progression policy."""
        season = await self.catalog.get_season(request.target_season_id)
        if season is None:
            raise NotFoundError(f"Target Season with ID {request.target_season_id} not found.")

        seen_types = set()
        for group in request.degree_type_updates:
            if group.degree_type in seen_types:
                raise PreconditionError(f"Duplicate update entry for DegreeType {group.degree_type.value}.")
            seen_types.add(group.degree_type)
            if group.new_level_id is not None:
                level = await self.catalog.get_level(group.new_level_id)
                if level is None or level.degree_type != group.degree_type:
                    raise NotFoundError(
                        f"Level ID {group.new_level_id} not found or does not match DegreeType {group.degree_type.value}."
                    )
            if group.new_semester_id is not None:
                semester = await self.catalog.get_semester(group.new_semester_id)
                if semester is None or semester.season_id != season.id:
                    raise NotFoundError(
                        f"Semester ID {group.new_semester_id} not found or does not belong to Season ID {season.id}."
                    )

        default_semester = await self.catalog.get_first_semester(season.id)
        if default_semester is None and any(g.new_semester_id is None for g in request.degree_type_updates):
            raise PreconditionError(
                f"First semester for target season {season.name} not found. Supply a semester for every degree type."
            )

        student_filter = _scope_filter(request.scope, request.scope_id, None, require_program_duration=False)
        candidates = await self.students.find_students(student_filter)
        if not candidates:
            return ContextUpdateResult(
                message=(
                    f"No students found for batch update matching the criteria "
                    f"(scope: {student_filter.scope.value}, scopeId: {student_filter.scope_id or 'N/A'})."
                )
            )

        batch = StudentUpdateBatch()
        logs: List[ContextUpdateLog] = []
        failed: List[FailedStudent] = []
        unchanged = 0
        for group in request.degree_type_updates:
            members = [s for s in candidates if s.program is not None and s.program.degree_type == group.degree_type]
            if not members:
                logs.append(
                    ContextUpdateLog(
                        degree_type=group.degree_type,
                        new_level_id=group.new_level_id,
                        new_semester_id=group.new_semester_id,
                        status="No students found for this degree type in the selected scope.",
                    )
                )
                continue

            semester_id = group.new_semester_id if group.new_semester_id is not None else default_semester.id
            staged = 0
            for student in members:
                if group.new_level_id is None and student.current_level is None:
                    failed.append(_failed(student, "Student has no current level and no new level was supplied."))
                    continue
                # The semester pointer must stay inside the new season.
                changes = {"current_season_id": season.id, "current_semester_id": semester_id}
                if group.new_level_id is not None:
                    changes["current_level_id"] = group.new_level_id
                patch = StudentStatePatch(**changes)
                if _already_applied(student, patch):
                    unchanged += 1
                    continue
                batch.stage(
                    StagedStudentUpdate(
                        student_id=student.id,
                        expected=StudentStateSnapshot.of(student),
                        patch=patch,
                    )
                )
                staged += 1

            logs.append(
                ContextUpdateLog(
                    degree_type=group.degree_type,
                    new_level_id=group.new_level_id,
                    new_semester_id=semester_id,
                    count=staged,
                    status="Updated" if staged else "Already up to date.",
                )
            )

        await batch.commit(self.students)
        return ContextUpdateResult(
            message="Batch update for students' academic context processed.",
            updated_count=len(batch),
            unchanged_count=unchanged,
            students_considered=len(candidates),
            failed_to_update=failed,
            updates_applied=logs,
        )

    # --- preconditions ---

    async def _resolve_target_period(
        self, season_id: int, semester_id: Optional[int]
    ) -> Tuple[SeasonRecord, SemesterRecord]:
        season = await self.catalog.get_season(season_id)
        if season is None:
            raise NotFoundError(f"Target Season {season_id} not found.")
        if not season.is_active:
            logger.warning(f"Progressing to non-active target season {season.name}.")

        if semester_id is not None:
            semester = await self.catalog.get_semester(semester_id)
            if semester is None or semester.season_id != season.id:
                raise NotFoundError(
                    f"Target Semester ID {semester_id} not found or does not belong to Season ID {season.id}."
                )
            return season, semester

        semester = await self.catalog.get_first_semester(season.id)
        if semester is None:
            raise PreconditionError(
                f"First semester for target season {season.name} not found. Cannot proceed."
            )
        return season, semester


def _scope_filter(
    scope: Union[Scope, str],
    scope_id: Optional[int],
    degree_type: Union[DegreeType, str, None],
    require_program_duration: bool = True,
) -> StudentFilter:
    try:
        scope = Scope(scope)
    except ValueError:
        raise PreconditionError("Invalid scope. Must be ALL, FACULTY, DEPARTMENT, or PROGRAM.")
    if scope != Scope.ALL and scope_id is None:
        raise PreconditionError(f"Scope ID required for {scope.value}.")
    if degree_type is not None:
        try:
            degree_type = DegreeType(degree_type)
        except ValueError:
            raise PreconditionError(f"Invalid specificDegreeType provided: {degree_type}.")
    return StudentFilter(
        scope=scope,
        scope_id=scope_id if scope != Scope.ALL else None,
        degree_type=degree_type,
        require_program_duration=require_program_duration,
    )


def _already_applied(student: StudentRecord, patch: StudentStatePatch) -> bool:
    current = StudentStateSnapshot.of(student)
    return all(getattr(current, field) == value for field, value in patch.changes().items())


def _failed(student: StudentRecord, reason: str) -> FailedStudent:
    return FailedStudent(student_id=student.id, reg_no=student.reg_no, reason=reason)
