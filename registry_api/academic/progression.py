# academic/progression.py
import logging
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from pydantic import BaseModel

from .constants import (
    FIXED_INCREMENT_DEGREE_TYPES,
    LEVEL_STEP,
    ORDERED_SEQUENCE_DEGREE_TYPES,
    DegreeType,
    OutcomeStatus,
)
from .graduation import GraduationEvaluator
from .models import (
    LevelRecord,
    ProgramRecord,
    ProgressionOutcome,
    SeasonRecord,
    SemesterRecord,
    StagedStudentUpdate,
    StudentRecord,
    StudentStatePatch,
    StudentStateSnapshot,
)
from .ports import CurriculumCatalog

logger = logging.getLogger(__name__)

NextLevel = Tuple[Optional[LevelRecord], Optional[str]]


# -------------------------------------
# Level-advance strategies
# -------------------------------------


class LevelAdvanceStrategy(Protocol):
    def compute_next_level(
        self, current: LevelRecord, program: ProgramRecord, levels: List[LevelRecord]
    ) -> NextLevel:
        """Return ``(next_level, None)`` or ``(None, reason)``.

        ``levels`` are all catalog levels of the program's degree type.
        """
        ...


class FixedIncrementStrategy:
    """UNDERGRADUATE / ND / HND / NCE: level values advance in steps of 100."""

    def compute_next_level(
        self, current: LevelRecord, program: ProgramRecord, levels: List[LevelRecord]
    ) -> NextLevel:
        next_value = current.value + LEVEL_STEP
        final_value = program.final_level_value
        if next_value > final_value:
            return None, (
                f"Program duration limit reached (Current: {current.value}, Max Program Level: {final_value}). "
                f"Should be handled by graduation check."
            )

        next_level = next((level for level in levels if level.value == next_value), None)
        if next_level is None:
            return None, (
                f"Expected next level ({next_value}) not found for DegreeType {program.degree_type.value}. "
                f"Please ensure all levels for this degree type are created."
            )
        return next_level, None


class OrderedSequenceStrategy:
    """Postgraduate, certificate and diploma families: move to the next higher level.

    Levels carrying an explicit ``order`` are sequenced by it; otherwise by ``value``.
    When nothing with a higher order exists, the next higher ``value`` is used,
    so a catalog that mixes ordered and unordered levels still progresses.
    """

    def compute_next_level(
        self, current: LevelRecord, program: ProgramRecord, levels: List[LevelRecord]
    ) -> NextLevel:
        next_level = None
        if current.order is not None:
            candidates = [lvl for lvl in levels if lvl.order is not None and lvl.order > current.order]
            next_level = min(candidates, key=lambda lvl: lvl.order, default=None)
        if next_level is None:
            candidates = [lvl for lvl in levels if lvl.value > current.value]
            next_level = min(candidates, key=lambda lvl: lvl.value, default=None)

        if next_level is None:
            return None, (
                f"No further academic levels defined for {program.degree_type.value} beyond "
                f"{current.name} ({current.value}). Manual review or graduation check needed."
            )
        return next_level, None


_FIXED_INCREMENT = FixedIncrementStrategy()
_ORDERED_SEQUENCE = OrderedSequenceStrategy()

LEVEL_STRATEGIES: Dict[DegreeType, LevelAdvanceStrategy] = {
    **{degree_type: _FIXED_INCREMENT for degree_type in FIXED_INCREMENT_DEGREE_TYPES},
    **{degree_type: _ORDERED_SEQUENCE for degree_type in ORDERED_SEQUENCE_DEGREE_TYPES},
}


# -------------------------------------
# Progression engine
# -------------------------------------


class ProgressionDecision(BaseModel):
    outcome: ProgressionOutcome
    update: Optional[StagedStudentUpdate] = None


class ProgressionEngine:
    """
    Computes one student's next academic state for a target period.

    Nothing is written here: a decision carries the outcome for the ledger
    and, when the student's row must change, the staged update.
    Catalog levels are cached per degree type for the lifetime of the engine,
    so one engine should serve one batch.
    """

    def __init__(
        self,
        catalog: CurriculumCatalog,
        evaluator: GraduationEvaluator,
        strategies: Optional[Mapping[DegreeType, LevelAdvanceStrategy]] = None,
    ):
        self.catalog = catalog
        self.evaluator = evaluator
        self.strategies = LEVEL_STRATEGIES if strategies is None else strategies
        self._levels_cache: Dict[DegreeType, List[LevelRecord]] = {}
        self._season_cache: Dict[int, Optional[SeasonRecord]] = {}

    async def levels_for(self, degree_type: DegreeType) -> List[LevelRecord]:
        if degree_type not in self._levels_cache:
            self._levels_cache[degree_type] = await self.catalog.get_levels_by_degree_type(degree_type)
        return self._levels_cache[degree_type]

    async def season(self, season_id: Optional[int]) -> Optional[SeasonRecord]:
        if season_id is None:
            return None
        if season_id not in self._season_cache:
            self._season_cache[season_id] = await self.catalog.get_season(season_id)
        return self._season_cache[season_id]

    async def decide(
        self, student: StudentRecord, target_season: SeasonRecord, target_semester: SemesterRecord
    ) -> ProgressionDecision:
        program = student.program
        current = student.current_level

        if program is None or current is None or student.admission_season is None:
            return _failed(student, "Missing program, current level, or admission season data. Data integrity issue.")

        if program.duration == 0:
            return _failed(student, "Program has duration 0; progression does not apply.")

        # Levels advance once per season; a later semester of the same season is not a new year.
        if student.current_season_id == target_season.id:
            return ProgressionDecision(
                outcome=_outcome(
                    student,
                    OutcomeStatus.NO_OP,
                    f"Already in target season {target_season.name}; no change.",
                )
            )

        current_season = await self.season(student.current_season_id)
        if (
            current_season is not None
            and current_season.start_date is not None
            and target_season.start_date is not None
            and target_season.start_date <= current_season.start_date
        ):
            return _failed(
                student,
                f"Target season {target_season.name} does not start after current season "
                f"{current_season.name}; not progressed.",
            )

        expected = StudentStateSnapshot.of(student)

        if current.value >= program.final_level_value:
            verdict = await self.evaluator.evaluate(
                student.id,
                program.id,
                student.admission_season.start_date,
                program.degree_type,
                program.duration,
            )
            if verdict.eligible:
                patch = StudentStatePatch(
                    is_graduated=True,
                    is_active=False,
                    current_season_id=target_season.id,
                    current_semester_id=target_semester.id,
                    graduation_season_id=target_season.id,
                    graduation_semester_id=target_semester.id,
                )
                return _staged(student, expected, patch, OutcomeStatus.GRADUATED, verdict.reason)

            patch = StudentStatePatch(
                current_season_id=target_season.id,
                current_semester_id=target_semester.id,
                is_active=True,
                is_graduated=False,
                graduation_season_id=None,
                graduation_semester_id=None,
            )
            reason = (
                f"Final year, but not eligible for graduation. Remains {current.name} ({current.value}). "
                f"{verdict.reason}"
            )
            logger.info(f"Student {student.reg_no or student.id} retained at {current.name}: {verdict.reason}")
            return _staged(student, expected, patch, OutcomeStatus.RETAINED, reason)

        strategy = self.strategies.get(program.degree_type)
        if strategy is None:
            return _failed(student, f"Unsupported DegreeType for progression: {program.degree_type.value}.")

        levels = await self.levels_for(program.degree_type)
        next_level, error = strategy.compute_next_level(current, program, levels)
        if next_level is None:
            logger.warning(f"Student {student.reg_no or student.id} cannot progress: {error}")
            return _failed(student, error or "Next level could not be determined.")

        patch = StudentStatePatch(
            current_level_id=next_level.id,
            current_season_id=target_season.id,
            current_semester_id=target_semester.id,
            is_graduated=False,
            is_active=True,
            graduation_season_id=None,
            graduation_semester_id=None,
        )
        decision = _staged(
            student,
            expected,
            patch,
            OutcomeStatus.PROGRESSED,
            f"Progressed from {current.name} to {next_level.name}.",
        )
        decision.outcome.to_level = next_level.name
        return decision


def _outcome(student: StudentRecord, status: OutcomeStatus, reason: str) -> ProgressionOutcome:
    return ProgressionOutcome(
        student_id=student.id,
        reg_no=student.reg_no,
        status=status,
        reason=reason,
        from_level=student.current_level.name if student.current_level else None,
    )


def _failed(student: StudentRecord, reason: str) -> ProgressionDecision:
    return ProgressionDecision(outcome=_outcome(student, OutcomeStatus.FAILED, reason))


def _staged(
    student: StudentRecord,
    expected: StudentStateSnapshot,
    patch: StudentStatePatch,
    status: OutcomeStatus,
    reason: str,
) -> ProgressionDecision:
    return ProgressionDecision(
        outcome=_outcome(student, status, reason),
        update=StagedStudentUpdate(student_id=student.id, expected=expected, patch=patch),
    )
