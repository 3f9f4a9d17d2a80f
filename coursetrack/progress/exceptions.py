"""Progress tracking errors.

Rule violations (gating) and data-integrity failures (missing records) are
not retryable; storage and lock failures are, and callers retry the whole
operation.
"""

from .models import Level


class ProgressError(Exception):
    """Base progress error."""

    retryable: bool = False

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class GatingViolationError(ProgressError):
    """Item completed before its predecessor."""

    def __init__(self, section_item_id: str, previous_item_id: str):
        self.section_item_id = section_item_id
        self.previous_item_id = previous_item_id
        super().__init__(
            f"Item {section_item_id} nao pode ser concluido: "
            f"o item anterior {previous_item_id} ainda nao foi concluido",
            "gating_violation",
        )


class ProgressNotFoundError(ProgressError):
    """Progress row missing for a student (initialization never ran?)."""

    def __init__(self, level: Level, entity_id: str, student_id: str):
        self.level = level
        self.entity_id = entity_id
        self.student_id = student_id
        super().__init__(
            f"Progresso nao encontrado: {level.value} {entity_id} "
            f"(aluno {student_id})",
            "progress_not_found",
        )


class AdjacencyNotFoundError(ProgressError):
    """Adjacency row or first-child pointer missing for an entity."""

    def __init__(self, level: Level, entity_id: str, detail: str = "adjacency"):
        self.level = level
        self.entity_id = entity_id
        super().__init__(
            f"Estrutura do curso nao encontrada ({detail}): {level.value} {entity_id}",
            "adjacency_not_found",
        )


class InitializationFailedError(ProgressError):
    """Atomic initialization batch failed; nothing was written."""

    retryable = True

    def __init__(self, message: str = "Falha ao inicializar o progresso dos alunos"):
        super().__init__(message, "initialization_failed")


class CascadeLockError(ProgressError):
    """Per-student cascade lock could not be acquired in time."""

    retryable = True

    def __init__(self, student_id: str, course_instance_id: str):
        self.student_id = student_id
        self.course_instance_id = course_instance_id
        super().__init__(
            f"Progresso do aluno {student_id} em {course_instance_id} "
            "esta sendo atualizado; tente novamente",
            "cascade_lock_unavailable",
        )
