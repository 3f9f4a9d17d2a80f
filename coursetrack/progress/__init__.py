"""Student progress tracking module.

Provides:
- Progress initialization for every student of a course instance
- Section item completion with sequential gating and cascade
- Progress lookups per curriculum level
"""

from .models import (
    PROGRESS_TABLES_CQL,
    AdjacencyRecord,
    Level,
    ProgressRecord,
    ProgressStatus,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "AdjacencyRecord",
    "Level",
    "ProgressRecord",
    "ProgressStatus",
]
