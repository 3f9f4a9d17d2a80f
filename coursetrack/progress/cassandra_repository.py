"""Cassandra-backed progress repository.

Prepared CQL per level table, executed through ``session.aexecute``.
``run_atomic`` compiles its operations into a single LOGGED batch, so a
multi-student initialization either lands completely or not at all.

Cassandra INSERTs are upserts, so the "skip existing" and "update if exists"
decisions are taken from a read of the existing keys right before the batch
is built.
"""

from collections.abc import Sequence
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from cassandra.query import BatchStatement, BatchType

from .models import (
    ADJACENCY_LEVELS,
    AdjacencyRecord,
    Level,
    ProgressRecord,
    ProgressStatus,
    utc_now,
)
from .repository import (
    InsertProgress,
    ResetTotalProgress,
    UpsertAdjacency,
    WriteOperation,
    check_operation,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

# Max keys per "entity_id IN ?" lookup
EXISTING_KEYS_CHUNK_SIZE = 100

# Hard limit of the native protocol (statement count is a uint16)
MAX_BATCH_STATEMENTS = 65535


class CassandraProgressRepository:
    """Progress repository over the tables in ``PROGRESS_TABLES_CQL``."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_batch_statements: int = MAX_BATCH_STATEMENTS,
    ):
        """Initialize with Cassandra session.

        Args:
            session: Session with aexecute() support
            keyspace: Keyspace holding the progress tables
            max_batch_statements: Largest atomic batch accepted by ``run_atomic``
        """
        self.session = session
        self.keyspace = keyspace
        self.max_batch_statements = max_batch_statements
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_progress: dict[Level, Any] = {}
        self._get_progress_partition: dict[Level, Any] = {}
        self._upsert_progress: dict[Level, Any] = {}

        for level in Level:
            table = f"{self.keyspace}.{level.progress_table}"
            self._get_progress[level] = self.session.prepare(f"""
                SELECT status FROM {table}
                WHERE student_id = ? AND course_instance_id = ? AND entity_id = ?
            """)
            self._get_progress_partition[level] = self.session.prepare(f"""
                SELECT entity_id, status FROM {table}
                WHERE student_id = ? AND course_instance_id = ?
            """)
            self._upsert_progress[level] = self.session.prepare(f"""
                INSERT INTO {table}
                (student_id, course_instance_id, entity_id, status, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """)

        self._get_adjacency: dict[Level, Any] = {}
        self._get_previous: dict[Level, Any] = {}
        self._get_existing_adjacency: dict[Level, Any] = {}
        self._insert_adjacency: dict[Level, Any] = {}
        self._update_next: dict[Level, Any] = {}

        for level in ADJACENCY_LEVELS:
            table = f"{self.keyspace}.{level.next_table}"
            self._get_adjacency[level] = self.session.prepare(f"""
                SELECT * FROM {table} WHERE entity_id = ?
            """)
            # Uses the secondary index on next_id
            self._get_previous[level] = self.session.prepare(f"""
                SELECT entity_id FROM {table} WHERE next_id = ?
            """)
            self._get_existing_adjacency[level] = self.session.prepare(f"""
                SELECT entity_id FROM {table} WHERE entity_id IN ?
            """)
            self._insert_adjacency[level] = self.session.prepare(f"""
                INSERT INTO {table} (entity_id, next_id, first_child_id, parent_id)
                VALUES (?, ?, ?, ?)
            """)
            self._update_next[level] = self.session.prepare(f"""
                UPDATE {table} SET next_id = ? WHERE entity_id = ?
            """)

        self._get_total_progress = self.session.prepare(f"""
            SELECT progress FROM {self.keyspace}.total_progress
            WHERE student_id = ? AND course_instance_id = ?
        """)
        self._upsert_total_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.total_progress
            (student_id, course_instance_id, progress, updated_at)
            VALUES (?, ?, ?, ?)
        """)

    # ==========================================================================
    # Progress
    # ==========================================================================

    async def mark_progress(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
        status: ProgressStatus,
    ) -> None:
        """Write the status of one entity for one student."""
        await self.session.aexecute(
            self._upsert_progress[level],
            [student_id, course_instance_id, entity_id, status.value, utc_now()],
        )

    async def get_progress(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
    ) -> ProgressStatus | None:
        """Stored status of one entity, or None if there is no row."""
        result = await self.session.aexecute(
            self._get_progress[level], [student_id, course_instance_id, entity_id]
        )
        row = result.one()
        return ProgressStatus(row.status) if row else None

    async def get_progress_map(
        self,
        level: Level,
        student_id: str,
        course_instance_id: str,
    ) -> dict[str, ProgressStatus]:
        """All stored statuses of one level for a student (one partition)."""
        rows = await self.session.aexecute(
            self._get_progress_partition[level], [student_id, course_instance_id]
        )
        return {row.entity_id: ProgressStatus(row.status) for row in rows}

    async def bulk_insert_progress(
        self,
        level: Level,
        records: Sequence[ProgressRecord],
        skip_existing: bool = True,
    ) -> None:
        """Insert progress rows as one batch."""
        await self.run_atomic([InsertProgress(level, tuple(records), skip_existing)])

    # ==========================================================================
    # Adjacency
    # ==========================================================================

    async def get_adjacency(self, level: Level, entity_id: str) -> AdjacencyRecord | None:
        """Adjacency of one entity, or None if there is no row."""
        if not level.has_adjacency:
            return None
        result = await self.session.aexecute(self._get_adjacency[level], [entity_id])
        row = result.one()
        return AdjacencyRecord.from_row(level, row) if row else None

    async def find_previous(self, level: Level, entity_id: str) -> str | None:
        """Entity whose next pointer is ``entity_id``."""
        if not level.has_adjacency:
            return None
        result = await self.session.aexecute(self._get_previous[level], [entity_id])
        row = result.one()
        return row.entity_id if row else None

    async def upsert_adjacency(
        self, level: Level, records: Sequence[AdjacencyRecord]
    ) -> None:
        """Create adjacency rows or refresh their next pointer, as one batch."""
        await self.run_atomic([UpsertAdjacency(level, tuple(records))])

    # ==========================================================================
    # Total Progress
    # ==========================================================================

    async def get_total_progress(
        self, student_id: str, course_instance_id: str
    ) -> Decimal | None:
        """Aggregate progress of a student."""
        result = await self.session.aexecute(
            self._get_total_progress, [student_id, course_instance_id]
        )
        row = result.one()
        return row.progress if row else None

    async def reset_total_progress(self, student_id: str, course_instance_id: str) -> None:
        """Overwrite total progress with 0."""
        await self.run_atomic([ResetTotalProgress(student_id, course_instance_id)])

    # ==========================================================================
    # Atomic Batches
    # ==========================================================================

    async def run_atomic(self, operations: Sequence[WriteOperation]) -> None:
        """Execute every operation in one LOGGED batch."""
        for operation in operations:
            check_operation(operation)

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        statements = 0
        for operation in operations:
            statements += await self._add_to_batch(batch, operation)

        if statements == 0:
            logger.debug("cassandra_batch_skipped_empty", operations=len(operations))
            return

        if statements > self.max_batch_statements:
            logger.error(
                "cassandra_batch_too_large",
                statements=statements,
                max_batch_statements=self.max_batch_statements,
            )
            raise ValueError(
                f"Atomic batch of {statements} statements exceeds the limit of "
                f"{self.max_batch_statements}; initialize fewer students per call"
            )

        await self.session.aexecute(batch)
        logger.info(
            "cassandra_batch_executed",
            operations=len(operations),
            statements=statements,
        )

    async def _add_to_batch(self, batch: BatchStatement, operation: WriteOperation) -> int:
        """Add the statements of one operation; returns how many were added."""
        now = utc_now()

        if isinstance(operation, ResetTotalProgress):
            batch.add(
                self._upsert_total_progress,
                [operation.student_id, operation.course_instance_id, Decimal(0), now],
            )
            return 1

        if isinstance(operation, InsertProgress):
            existing = (
                await self._existing_progress_keys(operation)
                if operation.skip_existing
                else set()
            )
            added = 0
            for record in operation.records:
                if record.key in existing:
                    continue
                batch.add(
                    self._upsert_progress[operation.level],
                    [
                        record.student_id,
                        record.course_instance_id,
                        record.entity_id,
                        record.status.value,
                        now,
                    ],
                )
                added += 1
            return added

        existing_ids = await self._existing_adjacency_ids(
            operation.level, [r.entity_id for r in operation.records]
        )
        for record in operation.records:
            if record.entity_id in existing_ids:
                batch.add(
                    self._update_next[operation.level],
                    [record.next_id, record.entity_id],
                )
            else:
                batch.add(
                    self._insert_adjacency[operation.level],
                    [
                        record.entity_id,
                        record.next_id,
                        record.first_child_id,
                        record.parent_id,
                    ],
                )
        return len(operation.records)

    async def _existing_progress_keys(
        self, operation: InsertProgress
    ) -> set[tuple[str, str, str]]:
        """Keys of rows already stored, one partition read per student."""
        partitions = dict.fromkeys(
            (record.student_id, record.course_instance_id)
            for record in operation.records
        )

        existing: set[tuple[str, str, str]] = set()
        for student_id, course_instance_id in partitions:
            stored = await self.get_progress_map(
                operation.level, student_id, course_instance_id
            )
            existing.update(
                (student_id, entity_id, course_instance_id) for entity_id in stored
            )
        return existing

    async def _existing_adjacency_ids(
        self, level: Level, entity_ids: Sequence[str]
    ) -> set[str]:
        existing: set[str] = set()
        for start in range(0, len(entity_ids), EXISTING_KEYS_CHUNK_SIZE):
            chunk = list(entity_ids[start : start + EXISTING_KEYS_CHUNK_SIZE])
            rows = await self.session.aexecute(
                self._get_existing_adjacency[level], [chunk]
            )
            existing.update(row.entity_id for row in rows)
        return existing
