"""Operation context management using contextvars.

Each progress operation (initialization, item completion, progress read) gets
a unique operation ID plus the student and course instance it acts on. The
values are injected into every log entry emitted while the operation runs,
without passing them through every call.
"""

from contextvars import ContextVar
from typing import Any
from uuid import uuid4


# Context variables for operation tracking
operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
student_id_var: ContextVar[str | None] = ContextVar("student_id", default=None)
course_instance_id_var: ContextVar[str | None] = ContextVar(
    "course_instance_id", default=None
)


def generate_operation_id() -> str:
    """Generate a new unique operation ID."""
    return str(uuid4())


def get_operation_id() -> str:
    """Get the current operation ID."""
    return operation_id_var.get()


def get_student_id() -> str | None:
    """Get the student the current operation acts on."""
    return student_id_var.get()


def get_course_instance_id() -> str | None:
    """Get the course instance the current operation acts on."""
    return course_instance_id_var.get()


def get_context() -> dict[str, Any]:
    """Get all context variables as a dictionary.

    Returns:
        Dictionary with operation_id, student_id and course_instance_id
        (only the ones that are set).
    """
    context: dict[str, Any] = {}

    operation_id = get_operation_id()
    if operation_id:
        context["operation_id"] = operation_id

    student_id = get_student_id()
    if student_id:
        context["student_id"] = student_id

    course_instance_id = get_course_instance_id()
    if course_instance_id:
        context["course_instance_id"] = course_instance_id

    return context


def clear_context() -> None:
    """Clear all context variables."""
    operation_id_var.set("")
    student_id_var.set(None)
    course_instance_id_var.set(None)


class ProgressContext:
    """Context manager for one progress operation.

    Usage:
        with ProgressContext(student_id="s-1", course_instance_id="ci-1"):
            logger.info("section_item_completed")  # carries both IDs
    """

    def __init__(
        self,
        student_id: str | None = None,
        course_instance_id: str | None = None,
        operation_id: str | None = None,
    ) -> None:
        self.student_id = student_id
        self.course_instance_id = course_instance_id
        self.operation_id = operation_id
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "ProgressContext":
        """Enter context and set variables."""
        # Nested operations keep the outer operation ID
        self._tokens["operation_id"] = operation_id_var.set(
            self.operation_id or get_operation_id() or generate_operation_id()
        )

        if self.student_id is not None:
            self._tokens["student_id"] = student_id_var.set(self.student_id)

        if self.course_instance_id is not None:
            self._tokens["course_instance_id"] = course_instance_id_var.set(
                self.course_instance_id
            )

        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var_name, token in self._tokens.items():
            if var_name == "operation_id":
                operation_id_var.reset(token)
            elif var_name == "student_id":
                student_id_var.reset(token)
            elif var_name == "course_instance_id":
                course_instance_id_var.reset(token)
