# ============================================================================
# DEFINITION LOADER
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Service - Seed definitions from YAML
# PURPOSE: Load workflow definitions from files for local and dev environments
# CREATED: 14 SEP 2026
# ============================================================================
"""
Definition Loader

Loads workflow definitions from YAML (or JSON, which YAML accepts) files in a
directory. Files may use the engine's snake_case shape or the graph editor's
export shape (camelCase keys, nodes as {id, type, data}).

Production definitions are authored in the clinic's editor and live in the
database; this loader seeds a DefinitionStore for local runs and demos.

Workflow files are stored in the workflows/ directory unless
WORKFLOWS_DIR says otherwise.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from core.models import WorkflowDefinition
from repositories.base import DefinitionStore

logger = logging.getLogger(__name__)


class DefinitionLoader:
    """Loads and caches workflow definitions from a directory."""

    PATTERNS = ("*.yaml", "*.yml", "*.json")

    def __init__(self, workflows_dir: Optional[str] = None):
        """
        Args:
            workflows_dir: Directory containing workflow files.
                          Defaults to $WORKFLOWS_DIR or ./workflows/
        """
        workflows_dir = workflows_dir or os.getenv("WORKFLOWS_DIR")
        if workflows_dir:
            self.workflows_dir = Path(workflows_dir)
        else:
            self.workflows_dir = Path(__file__).parent.parent / "workflows"

        self._cache: Dict[str, WorkflowDefinition] = {}

    def load_all(self) -> int:
        """
        Load every definition file in the directory.

        Invalid files are logged and skipped.

        Returns:
            Number of definitions loaded
        """
        if not self.workflows_dir.exists():
            logger.warning(f"Workflows directory not found: {self.workflows_dir}")
            return 0

        count = 0
        for pattern in self.PATTERNS:
            for path in sorted(self.workflows_dir.glob(pattern)):
                try:
                    definition = self.load_file(path)
                except Exception as e:
                    logger.error(f"Failed to load {path}: {e}")
                    continue
                self._cache[definition.workflow_id] = definition
                count += 1
                logger.info(f"Loaded workflow: {definition.workflow_id} ({definition.trigger_type})")

        logger.info(f"Loaded {count} workflows from {self.workflows_dir}")
        return count

    def load_file(self, path: Path) -> WorkflowDefinition:
        """
        Parse and validate one definition file.

        Raises:
            ValueError: File is empty or the graph is structurally invalid
        """
        with open(path) as f:
            data = yaml.safe_load(f)
        if not data:
            raise ValueError(f"Empty workflow file: {path}")

        definition = WorkflowDefinition.model_validate(data)
        errors = definition.validate_structure()
        if errors:
            raise ValueError(f"Invalid workflow in {path}: {errors}")
        return definition

    def list_all(self) -> List[WorkflowDefinition]:
        return list(self._cache.values())

    async def seed(self, store: DefinitionStore) -> int:
        """
        Load the directory (if not already loaded) and save every definition.

        Returns:
            Number of definitions saved
        """
        if not self._cache:
            self.load_all()
        for definition in self._cache.values():
            await store.save(definition)
        return len(self._cache)


__all__ = ["DefinitionLoader"]
