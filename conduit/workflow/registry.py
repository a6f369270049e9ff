"""
Conduit Workflow Registry

Storage and retrieval of workflow definitions and executions.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from conduit.exceptions import WorkflowValidationError
from conduit.workflow.types import (
    ExecutionStatus,
    WorkflowDefinition,
    WorkflowExecution,
)

logger = structlog.get_logger(__name__)


class WorkflowRegistry:
    """
    Registry for workflow definitions and executions.

    Features:
    - Definitions are stored as deep copies, so later edits by the caller
      never reach a registered workflow
    - Tag index
    - Optional JSON persistence of definitions
    """

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        strict: bool = False,
    ):
        self.persistence_path = Path(persistence_path) if persistence_path else None
        self.strict = strict

        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._by_tag: Dict[str, List[str]] = {}

        self._initialized = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the registry."""
        if self._initialized:
            return

        if self.persistence_path and self.persistence_path.exists():
            await self._load_from_disk()

        self._initialized = True
        logger.info("workflow_registry_initialized", workflow_count=len(self._workflows))

    async def shutdown(self) -> None:
        if self.persistence_path:
            await self._save_to_disk()
        self._initialized = False

    # === Workflow Operations ===

    async def save(self, definition: WorkflowDefinition) -> str:
        """
        Validate and store a definition, replacing any with the same id.

        Raises:
            WorkflowValidationError: the definition is structurally invalid
        """
        errors = definition.validate(strict=self.strict)
        if errors:
            logger.warning("workflow_rejected", workflow_id=definition.id, errors=errors)
            raise WorkflowValidationError(definition.id, errors)

        async with self._lock:
            stored = definition.copy()
            old = self._workflows.get(stored.id)
            self._workflows[stored.id] = stored

            if old:
                self._remove_from_indices(old)
            self._add_to_indices(stored)

            if self.persistence_path:
                await self._save_to_disk()

            logger.info(
                "workflow_saved",
                workflow_id=stored.id,
                name=stored.name,
                is_new=old is None,
            )

            return stored.id

    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """Get a workflow by ID."""
        return self._workflows.get(workflow_id)

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        async with self._lock:
            definition = self._workflows.pop(workflow_id, None)
            if not definition:
                return False

            self._remove_from_indices(definition)

            if self.persistence_path:
                await self._save_to_disk()

            logger.info("workflow_deleted", workflow_id=workflow_id)
            return True

    async def list_all(self, tag: Optional[str] = None) -> List[WorkflowDefinition]:
        """List workflows in registration order, optionally by tag."""
        if tag:
            return [self._workflows[wid] for wid in self._by_tag.get(tag, [])]
        return list(self._workflows.values())

    async def count(self) -> int:
        return len(self._workflows)

    # === Execution Operations ===

    async def save_execution(self, execution: WorkflowExecution) -> str:
        """Save an execution."""
        async with self._lock:
            self._executions[execution.id] = execution
            return execution.id

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Get an execution by ID."""
        return self._executions.get(execution_id)

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        """List executions, newest first."""
        executions = list(self._executions.values())

        if workflow_id:
            executions = [e for e in executions if e.workflow_id == workflow_id]

        if status:
            executions = [e for e in executions if e.status == status]

        executions.sort(key=lambda e: e.started_at, reverse=True)
        return executions[:limit]

    async def cleanup_executions(self, older_than_hours: float = 24.0) -> int:
        """Drop terminal executions that finished before the cutoff."""
        return len(await self.prune_executions(older_than_hours))

    async def prune_executions(self, older_than_hours: float = 24.0) -> List[str]:
        """Like cleanup_executions, returning the dropped execution ids."""
        cutoff = datetime.now() - timedelta(hours=older_than_hours)

        async with self._lock:
            stale = [
                e.id for e in self._executions.values()
                if e.is_terminal() and e.completed_at and e.completed_at < cutoff
            ]
            for execution_id in stale:
                del self._executions[execution_id]

        logger.info("executions_cleaned", deleted=len(stale))
        return stale

    def execution_counts(self) -> Dict[str, int]:
        """Stored executions per status."""
        counts = {status.value: 0 for status in ExecutionStatus}
        for execution in self._executions.values():
            counts[execution.status.value] += 1
        return counts

    # === Indexing ===

    def _add_to_indices(self, definition: WorkflowDefinition) -> None:
        for tag in definition.tags:
            self._by_tag.setdefault(tag, []).append(definition.id)

    def _remove_from_indices(self, definition: WorkflowDefinition) -> None:
        for tag in definition.tags:
            if definition.id in self._by_tag.get(tag, []):
                self._by_tag[tag].remove(definition.id)

    # === Persistence ===

    async def _load_from_disk(self) -> None:
        """Load workflows from disk."""
        try:
            with open(self.persistence_path, "r") as f:
                data = json.load(f)

            for item in data.get("workflows", []):
                definition = WorkflowDefinition.from_dict(item)
                self._workflows[definition.id] = definition
                self._add_to_indices(definition)

            logger.info("workflows_loaded", count=len(self._workflows))
        except (OSError, ValueError, KeyError) as e:
            logger.error("workflows_load_failed", error=str(e))

    async def _save_to_disk(self) -> None:
        """Save workflows to disk."""
        try:
            self.persistence_path.parent.mkdir(parents=True, exist_ok=True)
            data = {"workflows": [w.to_dict() for w in self._workflows.values()]}
            with open(self.persistence_path, "w") as f:
                json.dump(data, f, indent=2, default=str)
        except OSError as e:
            logger.error("workflows_save_failed", error=str(e))
