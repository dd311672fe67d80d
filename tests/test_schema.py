# ============================================================================
# SCHEMA GENERATION TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Tests - DDL generated from the Pydantic models
# PURPOSE: Verify tables, enum types, indexes and the updated_at trigger
# CREATED: 14 SEP 2026
# ============================================================================
"""
Schema Generation Tests

sql.Composed objects carry their parts as Identifier/SQL/Literal objects, so
assertions search the repr of each statement.

Run with:
    pytest tests/test_schema.py -v
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.contracts import InstanceStatus
from core.models import WorkflowDefinition, WorkflowInstance
from core.schema.sql_generator import PydanticToSQL


def _text(statements):
    return " ".join(repr(stmt) for stmt in statements)


class TestGenerateAll:
    def test_includes_every_table(self):
        ddl = _text(PydanticToSQL(schema_name="workflow").generate_all())

        assert "workflow_definitions" in ddl
        assert "workflow_instances" in ddl
        assert "workflow_execution_logs" in ddl
        assert "communication_logs" in ddl

    def test_enum_types_created_before_tables(self):
        statements = PydanticToSQL(schema_name="workflow").generate_all()
        reprs = [repr(s) for s in statements]

        enum_idx = next(i for i, r in enumerate(reprs) if "CREATE TYPE" in r and "instance_status" in r)
        table_idx = next(i for i, r in enumerate(reprs) if "workflow_instances" in r and "CREATE TABLE" in r)
        assert enum_idx < table_idx

    def test_schema_first(self):
        statements = PydanticToSQL(schema_name="workflow").generate_all()
        assert "CREATE SCHEMA IF NOT EXISTS" in repr(statements[0])

    def test_updated_at_trigger(self):
        ddl = _text(PydanticToSQL().generate_all())
        assert "update_updated_at_column" in ddl
        assert "trg_workflow_instances_updated_at" in ddl

    def test_enum_registry(self):
        generator = PydanticToSQL()
        generator.generate_all()
        assert generator.enums["instance_status"] is InstanceStatus
        assert "log_status" in generator.enums
        assert "communication_status" in generator.enums


class TestTable:
    def test_primary_key_and_not_null(self):
        ddl = repr(PydanticToSQL().generate_table(WorkflowInstance))
        assert "PRIMARY KEY" in ddl
        assert "'instance_id'" in ddl
        assert "NOT NULL" in ddl

    def test_json_columns(self):
        ddl = repr(PydanticToSQL().generate_table(WorkflowInstance))
        assert "JSONB" in ddl
        assert "VARCHAR(64)" in ddl
        assert "TIMESTAMPTZ" in ddl

    def test_model_without_table_rejected(self):
        from core.models import TriggerContext

        with pytest.raises(ValueError):
            PydanticToSQL().generate_table(TriggerContext)


class TestIndexes:
    def test_partial_index_for_due_sweep(self):
        indexes = PydanticToSQL().generate_indexes(WorkflowInstance)
        due = next(repr(i) for i in indexes if "idx_wf_inst_due" in repr(i))
        assert "WHERE" in due
        assert "status = 'waiting'" in due

    def test_definition_match_index(self):
        indexes = PydanticToSQL().generate_indexes(WorkflowDefinition)
        assert len(indexes) == 1
        assert "idx_wf_defs_match" in repr(indexes[0])


class TestEnumDDL:
    def test_non_destructive_uses_guard(self):
        statements = PydanticToSQL().generate_enum("instance_status", InstanceStatus)
        assert len(statements) == 1
        assert "IF NOT EXISTS" in repr(statements[0])
        assert "waiting_for_input" in repr(statements[0])

    def test_destructive_drops_first(self):
        statements = PydanticToSQL(destructive=True).generate_enum("instance_status", InstanceStatus)
        assert len(statements) == 2
        assert "DROP TYPE IF EXISTS" in repr(statements[0])

    def test_type_name(self):
        assert PydanticToSQL.enum_type_name(InstanceStatus) == "instance_status"


class TestExecute:
    def test_executes_every_statement(self):
        cursor = MagicMock()
        cursor.execute = AsyncMock()
        cursor.__aenter__ = AsyncMock(return_value=cursor)
        cursor.__aexit__ = AsyncMock(return_value=None)
        conn = MagicMock()
        conn.cursor.return_value = cursor

        generator = PydanticToSQL()
        count = asyncio.run(generator.execute(conn))

        assert count == len(PydanticToSQL().generate_all())
        assert cursor.execute.await_count == count

    def test_drop_first_prepends_drop_schema(self):
        cursor = MagicMock()
        cursor.execute = AsyncMock()
        cursor.__aenter__ = AsyncMock(return_value=cursor)
        cursor.__aexit__ = AsyncMock(return_value=None)
        conn = MagicMock()
        conn.cursor.return_value = cursor

        asyncio.run(PydanticToSQL().execute(conn, drop_first=True))

        first = cursor.execute.await_args_list[0].args[0]
        assert "DROP SCHEMA IF EXISTS" in repr(first)
