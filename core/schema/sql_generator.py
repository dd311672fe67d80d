# ============================================================================
# PYDANTIC TO SQL GENERATOR
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - DDL generation from Pydantic models
# PURPOSE: Generate PostgreSQL CREATE statements from Pydantic models
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: PydanticToSQL
# DEPENDENCIES: pydantic, psycopg
# ============================================================================
"""
Pydantic to PostgreSQL Schema Generator.

Pydantic models are the single source of truth for the workflow schema.

Model Metadata Convention:
    Models define SQL metadata via ClassVar attributes:
    - __sql_table__: Table name
    - __sql_schema__: Schema name
    - __sql_primary_key__: Primary key column(s) - string or list
    - __sql_foreign_keys__: Dict of {column: "schema.table(column)"}
    - __sql_indexes__: List of (name, columns) or (name, columns, partial_where)

Usage:
    generator = PydanticToSQL(schema_name="workflow")
    for stmt in generator.generate_all():
        await cur.execute(stmt)
"""

import re
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Type, Union, get_args, get_origin

from annotated_types import MaxLen
from psycopg import sql
from pydantic import BaseModel
from pydantic.fields import FieldInfo

logger = logging.getLogger(__name__)


class PydanticToSQL:
    """
    Convert Pydantic models to PostgreSQL DDL statements.
    """

    TYPE_MAP = {
        str: "VARCHAR",
        int: "INTEGER",
        float: "DOUBLE PRECISION",
        bool: "BOOLEAN",
        datetime: "TIMESTAMPTZ",
        dict: "JSONB",
        list: "JSONB",
    }

    def __init__(self, schema_name: str = "workflow", destructive: bool = False):
        """
        Args:
            schema_name: PostgreSQL schema name
            destructive: If True, DROP+CREATE enum types (data loss risk).
                         If False (default), create only when missing.
        """
        self.schema_name = schema_name
        self.destructive = destructive
        self.enums: Dict[str, Type[Enum]] = {}

    # =========================================================================
    # METADATA EXTRACTION
    # =========================================================================

    @staticmethod
    def get_model_metadata(model: Type[BaseModel]) -> Dict[str, Any]:
        """Extract the __sql_* metadata declared on a model."""
        primary_key = getattr(model, "__sql_primary_key__", [])
        if isinstance(primary_key, str):
            primary_key = [primary_key]
        return {
            "table": getattr(model, "__sql_table__", None),
            "schema": getattr(model, "__sql_schema__", "workflow"),
            "primary_key": list(primary_key),
            "foreign_keys": getattr(model, "__sql_foreign_keys__", {}),
            "indexes": getattr(model, "__sql_indexes__", []),
        }

    # =========================================================================
    # TYPE CONVERSION
    # =========================================================================

    @staticmethod
    def enum_type_name(enum_class: Type[Enum]) -> str:
        return re.sub(r'(?<!^)(?=[A-Z])', '_', enum_class.__name__).lower()

    def python_type_to_sql(self, field_type: Any, field_info: FieldInfo) -> str:
        """Convert a field annotation to a PostgreSQL type name."""
        actual_type = field_type
        origin = get_origin(field_type)

        if origin is Union:
            args = [a for a in get_args(field_type) if a is not type(None)]
            actual_type = args[0] if len(args) == 1 else dict
            origin = get_origin(actual_type)

        if origin in (dict, Dict, list, List):
            return "JSONB"

        if actual_type is str:
            for constraint in getattr(field_info, "metadata", None) or []:
                if isinstance(constraint, MaxLen):
                    return f"VARCHAR({constraint.max_length})"
            return "VARCHAR"

        if isinstance(actual_type, type) and issubclass(actual_type, Enum):
            enum_name = self.enum_type_name(actual_type)
            self.enums[enum_name] = actual_type
            return enum_name

        return self.TYPE_MAP.get(actual_type, "JSONB")

    @staticmethod
    def _is_optional(field_type: Any) -> bool:
        return get_origin(field_type) is Union and type(None) in get_args(field_type)

    # =========================================================================
    # ENUM GENERATION
    # =========================================================================

    def generate_enum(self, enum_name: str, enum_class: Type[Enum]) -> List[sql.Composable]:
        """
        Generate PostgreSQL ENUM type DDL.

        Non-destructive mode wraps CREATE TYPE in a DO block that skips
        existing types so dependent columns survive redeploys.
        """
        values = [member.value for member in enum_class]

        if self.destructive:
            return [
                sql.SQL("DROP TYPE IF EXISTS {}.{} CASCADE").format(
                    sql.Identifier(self.schema_name), sql.Identifier(enum_name)
                ),
                sql.SQL("CREATE TYPE {}.{} AS ENUM ({})").format(
                    sql.Identifier(self.schema_name),
                    sql.Identifier(enum_name),
                    sql.SQL(", ").join(sql.Literal(v) for v in values),
                ),
            ]

        values_str = ", ".join(f"'{v}'" for v in values)
        return [sql.SQL(f"""
DO $$
BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = '{enum_name}' AND typnamespace = (SELECT oid FROM pg_namespace WHERE nspname = '{self.schema_name}')) THEN
        CREATE TYPE "{self.schema_name}"."{enum_name}" AS ENUM ({values_str});
    END IF;
END$$
""")]

    # =========================================================================
    # TABLE GENERATION
    # =========================================================================

    def _column_default(self, field_name: str, field_info: FieldInfo, sql_type: str) -> List[sql.Composable]:
        default = field_info.default
        if field_info.default_factory is not None:
            if field_name in ("created_at", "updated_at"):
                return [sql.SQL(" DEFAULT NOW()")]
            if sql_type == "JSONB":
                is_list = get_origin(field_info.annotation) in (list, List)
                return [sql.SQL(" DEFAULT '[]'" if is_list else " DEFAULT '{}'")]
            return []
        if default is None or default is ...:
            return []
        if isinstance(default, Enum):
            return [
                sql.SQL(" DEFAULT "), sql.Literal(default.value), sql.SQL("::"),
                sql.Identifier(self.schema_name), sql.SQL("."), sql.Identifier(sql_type),
            ]
        if isinstance(default, bool):
            return [sql.SQL(" DEFAULT true" if default else " DEFAULT false")]
        if isinstance(default, (str, int, float)):
            return [sql.SQL(" DEFAULT "), sql.Literal(default)]
        return []

    def generate_table(self, model: Type[BaseModel]) -> sql.Composed:
        """Generate CREATE TABLE DDL from a Pydantic model."""
        meta = self.get_model_metadata(model)
        table_name = meta["table"]
        primary_key = meta["primary_key"]

        if not table_name:
            raise ValueError(f"Model {model.__name__} missing __sql_table__ attribute")

        logger.debug(f"Generating table {self.schema_name}.{table_name} from {model.__name__}")

        columns = []
        for field_name, field_info in model.model_fields.items():
            sql_type = self.python_type_to_sql(field_info.annotation, field_info)

            parts: List[sql.Composable] = [sql.Identifier(field_name), sql.SQL(" ")]
            if sql_type in self.enums:
                parts.extend([
                    sql.Identifier(self.schema_name), sql.SQL("."), sql.Identifier(sql_type)
                ])
            else:
                parts.append(sql.SQL(sql_type))

            if not self._is_optional(field_info.annotation) and field_name not in primary_key:
                parts.append(sql.SQL(" NOT NULL"))

            parts.extend(self._column_default(field_name, field_info, sql_type))
            columns.append(sql.Composed(parts))

        constraints = [
            sql.SQL("PRIMARY KEY ({})").format(
                sql.SQL(", ").join(sql.Identifier(c) for c in primary_key)
            )
        ] if primary_key else []

        for fk_column, fk_reference in meta["foreign_keys"].items():
            match = re.match(r"(\w+)\.(\w+)\((\w+)\)", fk_reference)
            if match:
                ref_schema, ref_table, ref_column = match.groups()
                constraints.append(
                    sql.SQL("FOREIGN KEY ({}) REFERENCES {}.{} ({})").format(
                        sql.Identifier(fk_column),
                        sql.Identifier(ref_schema),
                        sql.Identifier(ref_table),
                        sql.Identifier(ref_column),
                    )
                )

        return sql.SQL("CREATE TABLE IF NOT EXISTS {}.{} ({})").format(
            sql.Identifier(self.schema_name),
            sql.Identifier(table_name),
            sql.SQL(", ").join(columns + constraints),
        )

    # =========================================================================
    # INDEX GENERATION
    # =========================================================================

    def generate_indexes(self, model: Type[BaseModel]) -> List[sql.Composed]:
        """Generate CREATE INDEX statements from __sql_indexes__."""
        meta = self.get_model_metadata(model)
        result = []

        for idx_def in meta["indexes"]:
            name, columns = idx_def[0], idx_def[1]
            partial_where = idx_def[2] if len(idx_def) > 2 else None
            if isinstance(columns, str):
                columns = [columns]

            stmt = sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {}.{} ({})").format(
                sql.Identifier(name),
                sql.Identifier(self.schema_name),
                sql.Identifier(meta["table"]),
                sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            )
            if partial_where:
                stmt = sql.SQL("{} WHERE {}").format(stmt, sql.SQL(partial_where))
            result.append(stmt)

        return result

    def generate_updated_at_trigger(self, table: str) -> List[sql.Composed]:
        """Trigger keeping updated_at current on every UPDATE (DROP + CREATE)."""
        trigger_name = f"trg_{table}_updated_at"
        return [
            sql.SQL("DROP TRIGGER IF EXISTS {} ON {}.{}").format(
                sql.Identifier(trigger_name),
                sql.Identifier(self.schema_name),
                sql.Identifier(table),
            ),
            sql.SQL(
                "CREATE TRIGGER {} BEFORE UPDATE ON {}.{} "
                "FOR EACH ROW EXECUTE FUNCTION {}.update_updated_at_column()"
            ).format(
                sql.Identifier(trigger_name),
                sql.Identifier(self.schema_name),
                sql.Identifier(table),
                sql.Identifier(self.schema_name),
            ),
        ]

    # =========================================================================
    # COMPLETE SCHEMA GENERATION
    # =========================================================================

    def generate_drop_schema(self) -> sql.Composed:
        """DROP SCHEMA CASCADE. Destroys all workflow data."""
        return sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(
            sql.Identifier(self.schema_name)
        )

    def generate_all(self) -> List[sql.Composable]:
        """
        Generate complete DDL for the workflow schema.

        Returns:
            List of statements ready for execution, in dependency order
        """
        from core.models import (
            WorkflowDefinition,
            WorkflowInstance,
            ExecutionLogEntry,
            CommunicationRecord,
        )

        models = [WorkflowDefinition, WorkflowInstance, ExecutionLogEntry, CommunicationRecord]

        # Tables first so every enum column registers its type
        tables = [self.generate_table(model) for model in models]

        statements: List[sql.Composable] = [
            sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema_name))
        ]
        for enum_name, enum_class in self.enums.items():
            statements.extend(self.generate_enum(enum_name, enum_class))
        statements.extend(tables)
        for model in models:
            statements.extend(self.generate_indexes(model))

        statements.append(sql.SQL("""
CREATE OR REPLACE FUNCTION {}.update_updated_at_column()
RETURNS TRIGGER LANGUAGE plpgsql AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$
""").format(sql.Identifier(self.schema_name)))
        statements.extend(self.generate_updated_at_trigger(WorkflowInstance.__sql_table__))

        logger.info(f"Generated {len(statements)} DDL statements for schema {self.schema_name}")
        return statements

    async def execute(self, conn, dry_run: bool = False, drop_first: bool = False) -> int:
        """
        Execute all DDL statements on an async psycopg connection.

        Returns:
            Number of statements executed
        """
        statements = self.generate_all()
        if drop_first:
            statements.insert(0, self.generate_drop_schema())

        if dry_run:
            for stmt in statements:
                logger.info(f"[DRY RUN] {stmt.as_string(conn)}")
            return len(statements)

        async with conn.cursor() as cur:
            for stmt in statements:
                await cur.execute(stmt)

        logger.info(f"Executed {len(statements)} DDL statements")
        return len(statements)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ['PydanticToSQL']
