import pytest

from registry_api.academic.batch import BatchOrchestrator, StudentUpdateBatch
from registry_api.academic.constants import DegreeType, GradeLetter, OutcomeStatus, Scope, SemesterType
from registry_api.academic.errors import (
    BatchCommitError,
    NotFoundError,
    PreconditionError,
    StaleStudentStateError,
)
from registry_api.academic.models import (
    ContextUpdateRequest,
    DegreeTypeContextUpdate,
    GraduationRequest,
    ProgressionRequest,
    StagedStudentUpdate,
    StudentStatePatch,
    StudentStateSnapshot,
)


@pytest.fixture
def orchestrator(catalog, store):
    return BatchOrchestrator(catalog, store)


def progression(year=2021, scope=Scope.ALL, **kwargs):
    return ProgressionRequest(target_season_id=year, scope=scope, **kwargs)


class TestStudentUpdateBatch:
    def staged(self, student_id):
        return StagedStudentUpdate(
            student_id=student_id,
            expected=StudentStateSnapshot(),
            patch=StudentStatePatch(current_season_id=2021),
        )

    def test_rejects_second_update_for_same_student(self):
        batch = StudentUpdateBatch()
        batch.stage(self.staged(1))

        with pytest.raises(ValueError):
            batch.stage(self.staged(1))

    async def test_commits_exactly_once(self, store):
        batch = StudentUpdateBatch()
        await batch.commit(store)

        with pytest.raises(RuntimeError):
            await batch.commit(store)
        with pytest.raises(RuntimeError):
            batch.stage(self.staged(1))

    async def test_empty_batch_does_not_touch_the_store(self, store):
        assert await StudentUpdateBatch().commit(store) == 0
        assert store.commits == []

    async def test_store_failure_becomes_batch_commit_error(self, store):
        store.fail_next_commit = ConnectionError("database went away")
        batch = StudentUpdateBatch()
        batch.stage(self.staged(1))

        with pytest.raises(BatchCommitError):
            await batch.commit(store)


class TestProgressStudents:
    async def test_progresses_cohort_in_one_commit(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)
        campus.add_student(2, level_value=200)
        campus.add_student(3, level_value=300)

        result = await orchestrator.progress_students(progression())

        assert result.progressed_count == 3
        assert result.students_considered == 3
        assert result.failed_to_progress == []
        assert len(store.commits) == 1
        assert [store.students[i].current_level.value for i in (1, 2, 3)] == [200, 300, 400]
        assert store.students[1].current_semester_id == campus.semester_id(2021)

    async def test_catalog_gap_does_not_block_other_students(self, campus, store, orchestrator):
        campus.remove_level(300)
        campus.add_student(1, level_value=100)
        campus.add_student(2, level_value=200)

        result = await orchestrator.progress_students(progression())

        assert result.progressed_count == 1
        assert [f.student_id for f in result.failed_to_progress] == [2]
        assert "not found" in result.failed_to_progress[0].reason
        assert store.students[1].current_level.value == 200
        assert store.students[2].current_level.value == 200

    async def test_rerun_is_idempotent(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)
        campus.add_student(2, level_value=200)

        await orchestrator.progress_students(progression())
        second = await orchestrator.progress_students(progression())

        assert second.progressed_count == 0
        assert second.unchanged_count == 2
        assert {o.status for o in second.outcomes} == {OutcomeStatus.NO_OP}
        assert [store.students[i].current_level.value for i in (1, 2)] == [200, 300]
        assert len(store.commits) == 1

    async def test_second_semester_run_does_not_advance_level_again(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)

        await orchestrator.progress_students(progression())
        second = await orchestrator.progress_students(
            progression(target_semester_id=campus.semester_id(2021, SemesterType.SECOND))
        )

        assert second.progressed_count == 0
        assert second.unchanged_count == 1
        assert store.students[1].current_level.value == 200
        assert len(store.commits) == 1

    async def test_earlier_season_is_not_progressed(self, campus, store, orchestrator):
        campus.add_student(1, level_value=300, current_year=2023)

        result = await orchestrator.progress_students(progression(year=2021))

        assert result.progressed_count == 0
        assert [f.student_id for f in result.failed_to_progress] == [1]
        assert store.students[1].current_level.value == 300
        assert store.students[1].current_season_id == 2023

    async def test_final_year_retention_is_reported(self, campus, store, orchestrator):
        campus.offer("CSC", "CSC401", 400)
        campus.offer("CSC", "CSC402", 400)
        campus.register(1, "CSC401", 2023, grade=GradeLetter.A)
        campus.register(1, "CSC402", 2023, grade=GradeLetter.F)
        campus.add_student(1, level_value=400, current_year=2023)
        campus.add_student(2, level_value=400, current_year=2023)
        campus.register(2, "CSC401", 2023, grade=GradeLetter.A)
        campus.register(2, "CSC402", 2023, grade=GradeLetter.B)

        result = await orchestrator.progress_students(progression(year=2024))

        assert result.progressed_count == 1
        assert [f.student_id for f in result.failed_to_progress] == [1]
        assert "CSC402" in result.failed_to_progress[0].reason
        assert store.students[1].current_season_id == 2024
        assert store.students[1].is_graduated is False
        assert store.students[2].is_graduated is True
        assert store.students[2].graduation_season_id == 2024

    async def test_scope_and_degree_type_filters(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)
        campus.add_student(2, level_value=100, program_code="MSC")
        campus.add_student(3, level_value=100, department_id=20)

        result = await orchestrator.progress_students(
            progression(scope=Scope.DEPARTMENT, scope_id=10, specific_degree_type=DegreeType.MASTERS)
        )

        assert result.students_considered == 1
        assert store.students[2].current_level.id == 12
        assert store.students[1].current_level.value == 100

    async def test_no_candidates(self, orchestrator):
        result = await orchestrator.progress_students(progression())

        assert result.message == "No students found for progression."
        assert result.students_considered == 0

    async def test_explicit_target_semester(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)

        await orchestrator.progress_students(
            progression(target_semester_id=campus.semester_id(2021, SemesterType.SECOND))
        )

        assert store.students[1].current_semester_id == campus.semester_id(2021, SemesterType.SECOND)

    async def test_lost_update_rolls_back_everything(self, campus, store, orchestrator, monkeypatch):
        campus.add_student(1, level_value=100)
        campus.add_student(2, level_value=200)
        real_update = store.update_student_academic_state

        async def concurrent_writer(updates):
            store.students[2] = store.students[2].model_copy(update={"current_season_id": 2022})
            return await real_update(updates)

        monkeypatch.setattr(store, "update_student_academic_state", concurrent_writer)

        with pytest.raises(StaleStudentStateError):
            await orchestrator.progress_students(progression())
        assert store.students[1].current_level.value == 100
        assert store.commits == []


class TestPreconditions:
    async def test_scope_id_required(self, orchestrator):
        with pytest.raises(PreconditionError, match="Scope ID required"):
            await orchestrator.progress_students(progression(scope=Scope.FACULTY))

    async def test_unknown_season(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.progress_students(progression(year=1999))

    async def test_semester_from_other_season(self, campus, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.progress_students(
                progression(target_semester_id=campus.semester_id(2022))
            )

    async def test_season_without_first_semester(self, campus, orchestrator):
        campus.catalog.semesters.pop(campus.semester_id(2021))

        with pytest.raises(PreconditionError, match="First semester"):
            await orchestrator.progress_students(progression())

    async def test_preconditions_run_before_students_are_read(self, campus, store, orchestrator):
        campus.add_student(1)

        with pytest.raises(PreconditionError):
            await orchestrator.progress_students(progression(scope=Scope.PROGRAM))
        assert store.students[1].current_season_id == 2020


class TestGraduateStudents:
    async def test_graduates_only_eligible_final_level_students(self, campus, store, orchestrator):
        campus.offer("CSC", "CSC401", 400)
        campus.add_student(1, level_value=400, current_year=2023)
        campus.register(1, "CSC401", 2023, grade=GradeLetter.A)
        campus.add_student(2, level_value=400, current_year=2023)
        campus.add_student(3, level_value=300, current_year=2023)

        result = await orchestrator.graduate_students(
            GraduationRequest(target_season_id=2024, scope=Scope.FACULTY, scope_id=1)
        )

        assert result.graduated_count == 1
        assert result.students_considered == 3
        reasons = {f.student_id: f.reason for f in result.failed_to_graduate}
        assert "CSC401" in reasons[2]
        assert "not yet at the final academic level" in reasons[3]
        graduate = store.students[1]
        assert graduate.is_graduated is True
        assert graduate.is_active is False
        assert graduate.graduation_semester_id == campus.semester_id(2024)

    async def test_no_candidates(self, orchestrator):
        result = await orchestrator.graduate_students(GraduationRequest(target_season_id=2024, scope=Scope.ALL))

        assert result.graduated_count == 0
        assert "No eligible students" in result.message


class TestUpdateAcademicContext:
    def request(self, *groups, year=2022, **kwargs):
        return ContextUpdateRequest(target_season_id=year, degree_type_updates=list(groups), **kwargs)

    async def test_sets_level_and_semester_per_degree_type(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)
        campus.add_student(2, level_value=100, program_code="MSC")

        result = await orchestrator.update_academic_context(
            self.request(
                DegreeTypeContextUpdate(
                    degree_type=DegreeType.UNDERGRADUATE,
                    new_level_id=campus.level(300).id,
                    new_semester_id=campus.semester_id(2022, SemesterType.SECOND),
                )
            )
        )

        assert result.updated_count == 1
        assert result.updates_applied[0].count == 1
        assert store.students[1].current_level.value == 300
        assert store.students[1].current_semester_id == campus.semester_id(2022, SemesterType.SECOND)
        assert store.students[2].current_season_id == 2020

    async def test_second_run_reports_unchanged(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)
        group = DegreeTypeContextUpdate(degree_type=DegreeType.UNDERGRADUATE, new_level_id=campus.level(200).id)

        await orchestrator.update_academic_context(self.request(group))
        result = await orchestrator.update_academic_context(self.request(group))

        assert result.updated_count == 0
        assert result.unchanged_count == 1
        assert result.updates_applied[0].status == "Already up to date."

    async def test_level_only_update_moves_semester_into_target_season(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100, current_semester=SemesterType.SECOND)

        result = await orchestrator.update_academic_context(
            self.request(DegreeTypeContextUpdate(degree_type=DegreeType.UNDERGRADUATE, new_level_id=campus.level(300).id))
        )

        student = store.students[1]
        assert student.current_season_id == 2022
        assert student.current_semester_id == campus.semester_id(2022)
        assert campus.catalog.semesters[student.current_semester_id].season_id == student.current_season_id
        assert result.updates_applied[0].new_semester_id == campus.semester_id(2022)

    async def test_season_without_first_semester_needs_explicit_semester(self, campus, store, orchestrator):
        campus.add_student(1, level_value=100)
        campus.catalog.semesters.pop(campus.semester_id(2022))

        with pytest.raises(PreconditionError, match="First semester"):
            await orchestrator.update_academic_context(
                self.request(DegreeTypeContextUpdate(degree_type=DegreeType.UNDERGRADUATE, new_level_id=campus.level(200).id))
            )
        assert store.students[1].current_season_id == 2020

    async def test_group_without_students(self, campus, orchestrator):
        campus.add_student(1)

        result = await orchestrator.update_academic_context(
            self.request(DegreeTypeContextUpdate(degree_type=DegreeType.PHD))
        )

        assert result.updates_applied[0].count == 0
        assert "No students found" in result.updates_applied[0].status

    async def test_level_must_match_degree_type(self, campus, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.update_academic_context(
                self.request(DegreeTypeContextUpdate(degree_type=DegreeType.MASTERS, new_level_id=campus.level(200).id))
            )

    async def test_semester_must_belong_to_season(self, campus, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.update_academic_context(
                self.request(
                    DegreeTypeContextUpdate(
                        degree_type=DegreeType.UNDERGRADUATE, new_semester_id=campus.semester_id(2021)
                    )
                )
            )

    async def test_duplicate_degree_type_groups(self, orchestrator):
        group = DegreeTypeContextUpdate(degree_type=DegreeType.UNDERGRADUATE)

        with pytest.raises(PreconditionError, match="Duplicate"):
            await orchestrator.update_academic_context(self.request(group, group))
