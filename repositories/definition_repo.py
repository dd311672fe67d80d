# ============================================================================
# DEFINITION REPOSITORY
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - WorkflowDefinition persistence
# PURPOSE: Database access for workflow_definitions
# CREATED: 14 SEP 2026
# ============================================================================
"""
Definition Repository

Definitions are authored by the clinic's graph editor; the engine reads them
and the YAML loader upserts seed definitions for local environments.
"""

import logging
from typing import Any, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.models import WorkflowDefinition
from repositories.base import DefinitionStore
from .database import TABLE_DEFINITIONS

logger = logging.getLogger(__name__)


class DefinitionRepository(DefinitionStore):
    """Repository for WorkflowDefinition entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE workflow_id = %s").format(TABLE_DEFINITIONS),
                (workflow_id,),
            )
            row = await result.fetchone()
            return self._row_to_definition(row) if row else None

    async def list_active(
        self,
        trigger_type: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[WorkflowDefinition]:
        clauses = [sql.SQL("is_active = true")]
        params: List[Any] = []
        if trigger_type is not None:
            clauses.append(sql.SQL("trigger_type = %s"))
            params.append(trigger_type)
        if tenant_id is not None:
            clauses.append(sql.SQL("tenant_id = %s"))
            params.append(tenant_id)

        query = sql.SQL("SELECT * FROM {} WHERE {} ORDER BY workflow_id").format(
            TABLE_DEFINITIONS,
            sql.SQL(" AND ").join(clauses),
        )

        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(query, params)
            rows = await result.fetchall()

        definitions = []
        for row in rows:
            try:
                definitions.append(self._row_to_definition(row))
            except ValueError as e:
                # One malformed graph must not hide every other definition
                logger.error(f"Skipping unparseable definition {row.get('workflow_id')}: {e}")
        return definitions

    async def save(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        dumped = definition.model_dump(mode="json")
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    workflow_id, name, tenant_id, trigger_type, patient_segment,
                    form_id, trigger_value, nodes, edges, is_active, description
                ) VALUES (
                    %(workflow_id)s, %(name)s, %(tenant_id)s, %(trigger_type)s,
                    %(patient_segment)s, %(form_id)s, %(trigger_value)s,
                    %(nodes)s, %(edges)s, %(is_active)s, %(description)s
                )
                ON CONFLICT (workflow_id) DO UPDATE SET
                    name = EXCLUDED.name,
                    tenant_id = EXCLUDED.tenant_id,
                    trigger_type = EXCLUDED.trigger_type,
                    patient_segment = EXCLUDED.patient_segment,
                    form_id = EXCLUDED.form_id,
                    trigger_value = EXCLUDED.trigger_value,
                    nodes = EXCLUDED.nodes,
                    edges = EXCLUDED.edges,
                    is_active = EXCLUDED.is_active,
                    description = EXCLUDED.description
                """).format(TABLE_DEFINITIONS),
                {
                    **dumped,
                    "nodes": Json(dumped["nodes"]),
                    "edges": Json(dumped["edges"]),
                },
            )
        logger.info(f"Saved definition {definition.workflow_id} ({definition.name})")
        return definition

    @staticmethod
    def _row_to_definition(row: Dict[str, Any]) -> WorkflowDefinition:
        return WorkflowDefinition.model_validate(dict(row))


__all__ = ["DefinitionRepository"]
