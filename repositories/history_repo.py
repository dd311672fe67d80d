# ============================================================================
# HISTORY REPOSITORIES
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Append-only execution log and communication audit
# PURPOSE: Database access for workflow_execution_logs and communication_logs
# CREATED: 14 SEP 2026
# ============================================================================
"""
History Repositories

Both tables are insert-only. Reads return entries oldest first so a timeline
can be rendered without re-sorting.
"""

import logging
from typing import List

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from core.models import CommunicationRecord, ExecutionLogEntry
from repositories.base import CommunicationStore, ExecutionLogStore
from .database import TABLE_COMMUNICATIONS, TABLE_EXECUTION_LOGS

logger = logging.getLogger(__name__)


class ExecutionLogRepository(ExecutionLogStore):
    """Repository for ExecutionLogEntry records."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (log_id, instance_id, node_id, status, message, created_at)
                VALUES (%(log_id)s, %(instance_id)s, %(node_id)s, %(status)s,
                        %(message)s, %(created_at)s)
                """).format(TABLE_EXECUTION_LOGS),
                {
                    "log_id": entry.log_id,
                    "instance_id": entry.instance_id,
                    "node_id": entry.node_id,
                    "status": entry.status.value,
                    "message": entry.message,
                    "created_at": entry.created_at,
                },
            )
        return entry

    async def list_for_instance(self, instance_id: str) -> List[ExecutionLogEntry]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {} WHERE instance_id = %s ORDER BY created_at
                """).format(TABLE_EXECUTION_LOGS),
                (instance_id,),
            )
            rows = await result.fetchall()
            return [ExecutionLogEntry.model_validate(dict(row)) for row in rows]


class CommunicationRepository(CommunicationStore):
    """Repository for CommunicationRecord audit rows."""

    COLUMNS = (
        "record_id", "channel", "direction", "status", "content", "recipient",
        "patient_id", "tenant_id", "workflow_id", "instance_id", "appointment_id",
        "tier_used", "from_identity", "error_message", "created_at",
    )

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def record(self, record: CommunicationRecord) -> CommunicationRecord:
        params = record.model_dump(mode="python")
        for key in ("channel", "direction", "status"):
            params[key] = params[key].value

        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
                    TABLE_COMMUNICATIONS,
                    sql.SQL(", ").join(sql.Identifier(c) for c in self.COLUMNS),
                    sql.SQL(", ").join(sql.Placeholder(c) for c in self.COLUMNS),
                ),
                params,
            )
        logger.debug(
            f"Recorded {record.channel.value} {record.status.value} for patient {record.patient_id}"
        )
        return record

    async def list_for_instance(self, instance_id: str) -> List[CommunicationRecord]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {} WHERE instance_id = %s ORDER BY created_at
                """).format(TABLE_COMMUNICATIONS),
                (instance_id,),
            )
            rows = await result.fetchall()
            return [CommunicationRecord.model_validate(dict(row)) for row in rows]


__all__ = ["ExecutionLogRepository", "CommunicationRepository"]
