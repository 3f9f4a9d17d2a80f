"""Shared fixtures: a two-module curriculum and an in-memory repository.

Curriculum layout (sequence order):

    CI1
    ├── M1: S1 (I1, I2), S2 (I3, I4)
    └── M2: S3 (I5, I6), S4 (I7, I8)
"""

import pytest

from coursetrack.curriculum import CourseProgressData
from coursetrack.progress.repository import InMemoryProgressRepository


COURSE_INSTANCE_ID = "CI1"


def build_course_payload(student_ids: list[str] | None = None) -> dict:
    """CamelCase payload as sent by course authoring."""
    return {
        "courseInstanceId": COURSE_INSTANCE_ID,
        "studentIds": student_ids if student_ids is not None else ["u1"],
        "modules": [
            {
                "moduleId": "M1",
                "sequence": 1,
                "sections": [
                    {
                        "sectionId": "S1",
                        "sequence": 1,
                        "sectionItems": [
                            {"sectionItemId": "I1", "sequence": 1},
                            {"sectionItemId": "I2", "sequence": 2},
                        ],
                    },
                    {
                        "sectionId": "S2",
                        "sequence": 2,
                        "sectionItems": [
                            {"sectionItemId": "I3", "sequence": 1},
                            {"sectionItemId": "I4", "sequence": 2},
                        ],
                    },
                ],
            },
            {
                "moduleId": "M2",
                "sequence": 2,
                "sections": [
                    {
                        "sectionId": "S3",
                        "sequence": 1,
                        "sectionItems": [
                            {"sectionItemId": "I5", "sequence": 1},
                            {"sectionItemId": "I6", "sequence": 2},
                        ],
                    },
                    {
                        "sectionId": "S4",
                        "sequence": 2,
                        "sectionItems": [
                            {"sectionItemId": "I7", "sequence": 1},
                            {"sectionItemId": "I8", "sequence": 2},
                        ],
                    },
                ],
            },
        ],
    }


@pytest.fixture
def course_data() -> CourseProgressData:
    """Two modules, two sections each, two items per section; one student."""
    return CourseProgressData.model_validate(build_course_payload())


@pytest.fixture
def repository() -> InMemoryProgressRepository:
    """Empty in-memory progress repository."""
    return InMemoryProgressRepository()


@pytest.fixture
def course_payload() -> dict:
    """Raw camelCase payload of the shared curriculum."""
    return build_course_payload()
