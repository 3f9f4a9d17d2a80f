"""Initialize student progress for a course instance from a JSON file.

The file holds a ``CourseProgressData`` document (snake_case or camelCase):

    {
      "courseInstanceId": "ci-1",
      "studentIds": ["s-1", "s-2"],
      "modules": [{"moduleId": "m-1", "sequence": 1, "sections": [...]}]
    }

Safe to re-run: existing progress rows are kept.

Usage:
    python -m scripts.initialize_progress path/to/course.json
"""

import asyncio
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError

from coursetrack.curriculum import CourseProgressData
from coursetrack.main import lifespan
from coursetrack.progress.exceptions import InitializationFailedError


logger = structlog.get_logger(__name__)


def load_course_data(path: Path) -> CourseProgressData:
    """Parse and validate the curriculum document."""
    return CourseProgressData.model_validate_json(path.read_text(encoding="utf-8"))


async def run_initialization(path: Path) -> int:
    """Run the initialization; returns the process exit code."""
    try:
        course_data = load_course_data(path)
    except (OSError, ValidationError) as e:
        logger.error("course_data_invalid", path=str(path), error=str(e))
        return 2

    async with lifespan() as progress_service:
        try:
            result = await progress_service.initialize_student_progress(course_data)
        except InitializationFailedError as e:
            logger.error("initialization_aborted", error=e.message)
            return 1

    logger.info(
        "initialization_completed",
        course_instance_id=course_data.course_instance_id,
        student_count=result.student_count,
        total_records=result.total_records,
    )
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:  # noqa: PLR2004
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(run_initialization(Path(sys.argv[1]))))
