"""Tests for progress initialization."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from coursetrack.curriculum import (
    CourseProgressData,
    build_adjacency,
    normalize_curriculum,
)
from coursetrack.progress.exceptions import InitializationFailedError
from coursetrack.progress.initializer import (
    ProgressInitializer,
    plan_initialization,
    plan_student_rows,
)
from coursetrack.progress.models import Level, ProgressStatus
from coursetrack.progress.repository import (
    InsertProgress,
    ResetTotalProgress,
    UpsertAdjacency,
)


IP = ProgressStatus.IN_PROGRESS
INC = ProgressStatus.INCOMPLETE
DONE = ProgressStatus.COMPLETE


@pytest.fixture
def initializer(repository) -> ProgressInitializer:
    """Initializer over the in-memory repository."""
    return ProgressInitializer(repository)


def _statuses(rows) -> dict[str, ProgressStatus]:
    return {r.entity_id: r.status for r in rows}


# ==============================================================================
# Planning
# ==============================================================================


class TestPlanStudentRows:
    """Tests for the per-student row plan."""

    def test_fresh_student(self, course_data):
        """Only the first chain starts IN_PROGRESS."""
        rows = plan_student_rows(normalize_curriculum(course_data), "u1", {})

        assert rows.course.entity_id == "CI1"
        assert rows.course.status is IP
        assert _statuses(rows.modules) == {"M1": IP, "M2": INC}
        assert _statuses(rows.sections) == {"S1": IP, "S2": INC, "S3": INC, "S4": INC}
        assert _statuses(rows.section_items)["I1"] is IP
        assert [r.entity_id for r in rows.section_items if r.status is IP] == ["I1"]
        assert len(rows) == 15

    def test_previous_module_completed_in_storage(self, course_data):
        """A module opens when the stored status of the one before is COMPLETE."""
        rows = plan_student_rows(
            normalize_curriculum(course_data), "u1", {"M1": DONE}
        )

        assert _statuses(rows.modules) == {"M1": IP, "M2": IP}
        assert _statuses(rows.sections)["S3"] is IP
        assert _statuses(rows.sections)["S4"] is INC
        assert _statuses(rows.section_items)["I5"] is IP

    def test_stored_status_of_other_modules_ignored(self, course_data):
        """Only COMPLETE of the immediately preceding module counts."""
        rows = plan_student_rows(
            normalize_curriculum(course_data), "u1", {"M1": IP, "M2": DONE}
        )

        assert _statuses(rows.modules) == {"M1": IP, "M2": INC}


class TestPlanInitialization:
    """Tests for the full write plan."""

    def test_operations_per_student_then_adjacency(self, course_data):
        """Total reset plus four inserts per student; adjacency once."""
        curriculum = normalize_curriculum(course_data)
        plan = plan_initialization(
            curriculum, build_adjacency(curriculum), ["u1", "u2"], {}
        )

        kinds = [type(op) for op in plan.operations]
        assert kinds == (
            [ResetTotalProgress, InsertProgress, InsertProgress, InsertProgress, InsertProgress]
            * 2
            + [UpsertAdjacency] * 3
        )
        assert plan.student_count == 2
        assert plan.total_records == 30
        assert all(
            op.skip_existing for op in plan.operations if isinstance(op, InsertProgress)
        )

    def test_no_students(self, course_data):
        """Adjacency is still written without students."""
        curriculum = normalize_curriculum(course_data)
        plan = plan_initialization(curriculum, build_adjacency(curriculum), [], {})

        assert plan.student_count == 0
        assert plan.total_records == 0
        assert [op.level for op in plan.operations] == [
            Level.MODULE,
            Level.SECTION,
            Level.SECTION_ITEM,
        ]


# ==============================================================================
# Initialization
# ==============================================================================


class TestProgressInitializer:
    """Tests for ProgressInitializer.initialize."""

    @pytest.mark.asyncio
    async def test_initialize_single_student(self, initializer, repository, course_data):
        """Rows, adjacency and total progress for one student."""
        result = await initializer.initialize(course_data)

        assert result.student_count == 1
        assert result.total_records == 15
        assert await repository.get_total_progress("u1", "CI1") == Decimal(0)
        assert await repository.get_progress(Level.COURSE, "CI1", "u1", "CI1") is IP
        assert await repository.get_progress_map(Level.MODULE, "u1", "CI1") == {
            "M1": IP,
            "M2": INC,
        }
        items = await repository.get_progress_map(Level.SECTION_ITEM, "u1", "CI1")
        assert len(items) == 8
        assert items["I1"] is IP
        assert items["I2"] is INC
        assert await repository.find_previous(Level.SECTION_ITEM, "I2") == "I1"
        assert (await repository.get_adjacency(Level.MODULE, "M1")).next_id == "M2"

    @pytest.mark.asyncio
    async def test_duplicate_students_counted_once(self, initializer, course_payload):
        """Repeated student IDs are initialized once."""
        course_payload["studentIds"] = ["u1", "u2", "u1"]

        result = await initializer.initialize(
            CourseProgressData.model_validate(course_payload)
        )

        assert result.student_count == 2
        assert result.total_records == 30

    @pytest.mark.asyncio
    async def test_empty_curriculum(self, initializer, repository):
        """Without modules only the course row and total progress exist."""
        result = await initializer.initialize(
            CourseProgressData(course_instance_id="CI1", student_ids=["u1"])
        )

        assert result.total_records == 1
        assert await repository.get_progress(Level.COURSE, "CI1", "u1", "CI1") is IP
        assert await repository.get_total_progress("u1", "CI1") == Decimal(0)

    @pytest.mark.asyncio
    async def test_rerun_keeps_existing_progress(
        self, initializer, repository, course_data
    ):
        """Re-initializing never overwrites progress already made."""
        await initializer.initialize(course_data)
        await repository.mark_progress(Level.SECTION_ITEM, "I1", "u1", "CI1", DONE)
        await repository.mark_progress(Level.SECTION_ITEM, "I2", "u1", "CI1", IP)

        result = await initializer.initialize(course_data)

        assert result.total_records == 15
        items = await repository.get_progress_map(Level.SECTION_ITEM, "u1", "CI1")
        assert items["I1"] is DONE
        assert items["I2"] is IP

    @pytest.mark.asyncio
    async def test_rerun_does_not_open_modules_over_existing_rows(
        self, initializer, repository, course_data
    ):
        """A stored COMPLETE module does not reopen rows that already exist."""
        await initializer.initialize(course_data)
        await repository.mark_progress(Level.MODULE, "M1", "u1", "CI1", DONE)

        await initializer.initialize(course_data)

        assert await repository.get_progress(Level.MODULE, "M2", "u1", "CI1") is INC

    @pytest.mark.asyncio
    async def test_rerun_with_added_item_refreshes_adjacency(
        self, initializer, repository, course_payload
    ):
        """New items are linked in and get their own rows."""
        await initializer.initialize(CourseProgressData.model_validate(course_payload))
        course_payload["modules"][0]["sections"][0]["sectionItems"].append(
            {"sectionItemId": "I9", "sequence": 3}
        )

        await initializer.initialize(CourseProgressData.model_validate(course_payload))

        assert (await repository.get_adjacency(Level.SECTION_ITEM, "I2")).next_id == "I9"
        assert await repository.find_previous(Level.SECTION_ITEM, "I9") == "I2"
        assert (
            await repository.get_progress(Level.SECTION_ITEM, "I9", "u1", "CI1") is INC
        )

    @pytest.mark.asyncio
    async def test_rerun_with_new_first_section_keeps_stored_links(
        self, initializer, repository, course_payload
    ):
        """Existing adjacency rows only get next_id refreshed on a re-run."""
        await initializer.initialize(CourseProgressData.model_validate(course_payload))
        sections = course_payload["modules"][1]["sections"]
        sections[0]["sequence"] = 2
        sections[1]["sequence"] = 3
        sections.insert(
            0,
            {
                "sectionId": "S0",
                "sequence": 1,
                "sectionItems": [{"sectionItemId": "I0", "sequence": 1}],
            },
        )

        await initializer.initialize(CourseProgressData.model_validate(course_payload))

        new_section = await repository.get_adjacency(Level.SECTION, "S0")
        assert new_section.next_id == "S3"
        assert new_section.parent_id == "M2"
        # M2 still enters through S3
        module = await repository.get_adjacency(Level.MODULE, "M2")
        assert module.first_child_id == "S3"
        assert await repository.get_progress(Level.SECTION, "S0", "u1", "CI1") is INC

    @pytest.mark.asyncio
    async def test_rerun_resets_total_progress(
        self, initializer, repository, course_data
    ):
        """Total progress goes back to zero on every run."""
        await initializer.initialize(course_data)
        repository._state.total_progress[("u1", "CI1")] = Decimal("37.5")

        await initializer.initialize(course_data)

        assert await repository.get_total_progress("u1", "CI1") == Decimal(0)

    @pytest.mark.asyncio
    async def test_failed_batch_writes_nothing(self, repository, course_data, monkeypatch):
        """A storage failure midway leaves no partial state."""
        original_apply = repository._apply
        applied = []

        def failing_apply(state, operation):
            applied.append(operation)
            if isinstance(operation, UpsertAdjacency):
                raise RuntimeError("write timeout")
            original_apply(state, operation)

        monkeypatch.setattr(repository, "_apply", failing_apply)

        with pytest.raises(InitializationFailedError) as exc_info:
            await ProgressInitializer(repository).initialize(course_data)

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "initialization_failed"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert len(applied) == 6
        assert await repository.get_total_progress("u1", "CI1") is None
        assert await repository.get_progress_map(Level.MODULE, "u1", "CI1") == {}

    @pytest.mark.asyncio
    async def test_failed_batch_is_wrapped(self, course_data):
        """Any repository error surfaces as InitializationFailedError."""
        repository = AsyncMock()
        repository.get_progress_map = AsyncMock(return_value={})
        repository.run_atomic = AsyncMock(side_effect=ConnectionError("unavailable"))

        with pytest.raises(InitializationFailedError):
            await ProgressInitializer(repository).initialize(course_data)

        repository.run_atomic.assert_awaited_once()
