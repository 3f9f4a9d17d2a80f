"""Tests for the progress initialization script."""

import json
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest

from coursetrack.progress.models import Level, ProgressStatus
from coursetrack.progress.service import ProgressService
from scripts.initialize_progress import load_course_data, run_initialization


@pytest.fixture
def course_file(tmp_path, course_payload):
    """Curriculum document on disk."""
    path = tmp_path / "course.json"
    path.write_text(json.dumps(course_payload), encoding="utf-8")
    return path


class TestInitializeProgressScript:
    """Tests for scripts.initialize_progress."""

    def test_load_course_data(self, course_file):
        """JSON documents are validated into CourseProgressData."""
        course_data = load_course_data(course_file)

        assert course_data.course_instance_id == "CI1"
        assert len(course_data.modules) == 2

    @pytest.mark.asyncio
    async def test_invalid_document(self, tmp_path):
        """Invalid input exits with 2 before connecting anywhere."""
        path = tmp_path / "course.json"
        path.write_text('{"studentIds": []}', encoding="utf-8")

        with patch("scripts.initialize_progress.lifespan") as lifespan:
            assert await run_initialization(path) == 2

        lifespan.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        """Unreadable files exit with 2."""
        assert await run_initialization(tmp_path / "missing.json") == 2

    @pytest.mark.asyncio
    async def test_initializes_students(self, course_file, repository):
        """A valid document initializes every student."""
        service = ProgressService(repository)

        @asynccontextmanager
        async def fake_lifespan():
            yield service

        with patch("scripts.initialize_progress.lifespan", fake_lifespan):
            assert await run_initialization(course_file) == 0

        assert (
            await repository.get_progress(Level.SECTION_ITEM, "I1", "u1", "CI1")
            is ProgressStatus.IN_PROGRESS
        )
