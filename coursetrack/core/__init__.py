# Core infrastructure
from coursetrack.core.context import (
    ProgressContext,
    clear_context,
    get_context,
    get_course_instance_id,
    get_operation_id,
    get_student_id,
)
from coursetrack.core.logging import configure_structlog, get_logger


__all__ = [
    "ProgressContext",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_course_instance_id",
    "get_logger",
    "get_operation_id",
    "get_student_id",
]
