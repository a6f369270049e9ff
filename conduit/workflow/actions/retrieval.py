"""
Conduit Retrieval Step Handler

Query the search backend from workflows.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import structlog

from conduit.workflow.actions.collaborators import SearchBackend
from conduit.workflow.actions.executor import BaseStepHandler
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class RetrievalStepHandler(BaseStepHandler):
    """Handler for retrieval-query steps."""

    step_type = StepType.RETRIEVAL_QUERY
    required_keys = ("query",)

    DEFAULT_LIMIT = 5
    DEFAULT_THRESHOLD = 0.3

    def __init__(self, backend: SearchBackend):
        self.backend = backend

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute a retrieval query."""
        query = self.require(config, "query")
        limit = int(config.get("limit") or self.DEFAULT_LIMIT)
        threshold = float(config.get("threshold") or self.DEFAULT_THRESHOLD)

        logger.info("retrieval_query", limit=limit, threshold=threshold)

        return await self.call(
            self.backend.query,
            query=str(query),
            limit=limit,
            threshold=threshold,
        )
