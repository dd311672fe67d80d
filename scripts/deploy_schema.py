#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# PURPOSE: Deploy the workflow schema to PostgreSQL using PydanticToSQL
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
#   python scripts/deploy_schema.py --status     # Check current status
# ============================================================================

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import psycopg

from core.schema import PydanticToSQL
from repositories.database import SCHEMA, get_connection_string, redact_conninfo


async def show_status(conninfo: str) -> int:
    async with await psycopg.AsyncConnection.connect(conninfo) as conn:
        result = await conn.execute(
            """
            SELECT table_name,
                   (SELECT count(*) FROM information_schema.columns c
                    WHERE c.table_schema = t.table_schema AND c.table_name = t.table_name)
            FROM information_schema.tables t
            WHERE table_schema = %s
            ORDER BY table_name
            """,
            (SCHEMA,),
        )
        tables = await result.fetchall()

    if not tables:
        print(f"Schema '{SCHEMA}' has no tables")
        return 1

    print(f"\nTables ({len(tables)}):")
    for name, columns in tables:
        print(f"  - {SCHEMA}.{name} ({columns} columns)")
    return 0


async def deploy(conninfo: str, dry_run: bool, drop_first: bool) -> int:
    generator = PydanticToSQL(schema_name=SCHEMA, destructive=drop_first)
    if dry_run:
        return await generator.execute(None, dry_run=True, drop_first=drop_first)

    async with await psycopg.AsyncConnection.connect(conninfo) as conn:
        count = await generator.execute(conn, drop_first=drop_first)
        await conn.commit()
    return count


def main():
    parser = argparse.ArgumentParser(
        description="Deploy the workflow schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/deploy_schema.py --dry-run     # Preview DDL without executing
  python scripts/deploy_schema.py               # Deploy schema
  python scripts/deploy_schema.py --drop        # Drop and recreate (destroys data)
  python scripts/deploy_schema.py --status      # Check current installation

Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  POSTGRES_PORT         Database port (default: 5432)
  POSTGRES_SSLMODE      SSL mode (default: prefer)
  WORKFLOW_DB_SCHEMA    Target schema (default: workflow)
        """
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print DDL without executing"
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop the schema before creating it"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Check current installation status"
    )
    parser.add_argument(
        "--connection",
        type=str,
        help="PostgreSQL connection string (overrides environment)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    conninfo = args.connection or get_connection_string()

    print("=" * 70)
    print("CAREFLOW ENGINE - Schema Deployment")
    print("=" * 70)
    print(f"Connection: {redact_conninfo(conninfo)}")
    print(f"Schema: {SCHEMA}")
    print("=" * 70)

    if args.status:
        print("\n[STATUS CHECK]")
        sys.exit(asyncio.run(show_status(conninfo)))

    print(f"\nMode: {'DRY RUN' if args.dry_run else 'EXECUTE'}{' (DROP FIRST)' if args.drop else ''}\n")

    try:
        count = asyncio.run(deploy(conninfo, args.dry_run, args.drop))
    except psycopg.Error as e:
        print(f"\nDeployment failed: {e}")
        sys.exit(1)

    print("\n" + "=" * 70)
    print(f"Deployment completed: {count} statements {'previewed' if args.dry_run else 'executed'}")
    print("=" * 70)


if __name__ == "__main__":
    main()
