# ============================================================================
# INSTANCE REPOSITORY
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - WorkflowInstance persistence
# PURPOSE: Database access for workflow_instances with optimistic locking
# CREATED: 14 SEP 2026
# ============================================================================
"""
Instance Repository

CRUD operations for workflow instances. Every update is a compare-and-set on
the `version` column; a zero rowcount means a concurrent writer won.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import InstanceStatus
from core.models import WorkflowInstance
from repositories.base import InstanceStore
from .database import TABLE_INSTANCES

logger = logging.getLogger(__name__)


class InstanceRepository(InstanceStore):
    """Repository for WorkflowInstance entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    instance_id, workflow_id, tenant_id, patient_id, appointment_id,
                    status, current_node_id, context_data, next_run_at,
                    error_message, created_at, updated_at, completed_at, version
                ) VALUES (
                    %(instance_id)s, %(workflow_id)s, %(tenant_id)s, %(patient_id)s,
                    %(appointment_id)s, %(status)s, %(current_node_id)s,
                    %(context_data)s, %(next_run_at)s, %(error_message)s,
                    %(created_at)s, %(updated_at)s, %(completed_at)s, %(version)s
                )
                """).format(TABLE_INSTANCES),
                self._params(instance),
            )
            logger.info(
                f"Created instance {instance.instance_id} for workflow {instance.workflow_id}"
            )
            return instance

    async def get(self, instance_id: str) -> Optional[WorkflowInstance]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE instance_id = %s").format(TABLE_INSTANCES),
                (instance_id,),
            )
            row = await result.fetchone()
            return self._row_to_instance(row) if row else None

    async def update(self, instance: WorkflowInstance) -> bool:
        """
        Update an instance with optimistic locking.

        Returns:
            True if update succeeded, False if version conflict
        """
        instance.updated_at = datetime.now(timezone.utc)

        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET
                    status = %(status)s,
                    current_node_id = %(current_node_id)s,
                    context_data = %(context_data)s,
                    next_run_at = %(next_run_at)s,
                    error_message = %(error_message)s,
                    completed_at = %(completed_at)s,
                    updated_at = %(updated_at)s,
                    version = version + 1
                WHERE instance_id = %(instance_id)s
                  AND version = %(version)s
                """).format(TABLE_INSTANCES),
                self._params(instance),
            )

            if result.rowcount == 0:
                logger.warning(
                    f"Version conflict updating instance {instance.instance_id} "
                    f"(expected version {instance.version})"
                )
                return False

            instance.version += 1
            logger.debug(
                f"Updated instance {instance.instance_id} status={instance.status.value} "
                f"node={instance.current_node_id} version={instance.version}"
            )
            return True

    async def list_due(self, now: datetime, limit: int = 500) -> List[WorkflowInstance]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE status = %s AND next_run_at <= %s
                ORDER BY next_run_at
                LIMIT %s
                """).format(TABLE_INSTANCES),
                (InstanceStatus.WAITING.value, now, limit),
            )
            rows = await result.fetchall()
            return [self._row_to_instance(row) for row in rows]

    async def list_waiting_for_input(self, patient_id: str) -> List[WorkflowInstance]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE status = %s AND patient_id = %s
                ORDER BY created_at
                """).format(TABLE_INSTANCES),
                (InstanceStatus.WAITING_FOR_INPUT.value, patient_id),
            )
            rows = await result.fetchall()
            return [self._row_to_instance(row) for row in rows]

    async def exists_for(self, workflow_id: str, appointment_id: str) -> bool:
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT 1 FROM {}
                WHERE workflow_id = %s AND appointment_id = %s
                LIMIT 1
                """).format(TABLE_INSTANCES),
                (workflow_id, appointment_id),
            )
            return await result.fetchone() is not None

    async def count_by_status(self) -> Dict[str, int]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT status, COUNT(*) AS n FROM {} GROUP BY status").format(
                    TABLE_INSTANCES
                )
            )
            rows = await result.fetchall()
            return {row["status"]: row["n"] for row in rows}

    # =========================================================================
    # ROW MAPPING
    # =========================================================================

    @staticmethod
    def _params(instance: WorkflowInstance) -> Dict[str, Any]:
        return {
            "instance_id": instance.instance_id,
            "workflow_id": instance.workflow_id,
            "tenant_id": instance.tenant_id,
            "patient_id": instance.patient_id,
            "appointment_id": instance.appointment_id,
            "status": instance.status.value,
            "current_node_id": instance.current_node_id,
            "context_data": Json(instance.context_data),
            "next_run_at": instance.next_run_at,
            "error_message": instance.error_message,
            "created_at": instance.created_at,
            "updated_at": instance.updated_at,
            "completed_at": instance.completed_at,
            "version": instance.version,
        }

    @staticmethod
    def _row_to_instance(row: Dict[str, Any]) -> WorkflowInstance:
        return WorkflowInstance(
            instance_id=row["instance_id"],
            workflow_id=row["workflow_id"],
            tenant_id=row["tenant_id"],
            patient_id=row["patient_id"],
            appointment_id=row.get("appointment_id"),
            status=InstanceStatus(row["status"]),
            current_node_id=row.get("current_node_id"),
            context_data=row.get("context_data") or {},
            next_run_at=row.get("next_run_at"),
            error_message=row.get("error_message"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row.get("completed_at"),
            version=row["version"],
        )


__all__ = ["InstanceRepository"]
