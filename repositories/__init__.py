# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Database access layer
# PURPOSE: Persistence for definitions, instances and execution history
# CREATED: 14 SEP 2026
# ============================================================================
"""
Repositories Module

PostgreSQL repositories (psycopg3 async with connection pooling) and their
in-memory counterparts, all implementing the interfaces in repositories.base.

Usage:
    from repositories import get_pool, InstanceRepository

    pool = await get_pool()
    instances = InstanceRepository(pool)
    instance = await instances.get(instance_id)
"""

from .database import get_pool, init_pool, close_pool
from .base import DefinitionStore, InstanceStore, ExecutionLogStore, CommunicationStore
from .definition_repo import DefinitionRepository
from .instance_repo import InstanceRepository
from .history_repo import ExecutionLogRepository, CommunicationRepository
from .memory import (
    InMemoryDefinitionStore,
    InMemoryInstanceStore,
    InMemoryExecutionLogStore,
    InMemoryCommunicationStore,
)

__all__ = [
    "get_pool",
    "init_pool",
    "close_pool",
    "DefinitionStore",
    "InstanceStore",
    "ExecutionLogStore",
    "CommunicationStore",
    "DefinitionRepository",
    "InstanceRepository",
    "ExecutionLogRepository",
    "CommunicationRepository",
    "InMemoryDefinitionStore",
    "InMemoryInstanceStore",
    "InMemoryExecutionLogStore",
    "InMemoryCommunicationStore",
]
