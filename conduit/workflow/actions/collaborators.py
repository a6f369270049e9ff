"""
Conduit Collaborator Interfaces

Call/response contracts of the external backends reached by step handlers.
Implementations may be sync or async.
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol, runtime_checkable


@runtime_checkable
class SearchBackend(Protocol):
    """Retrieval backend: query -> ranked result list."""

    def query(self, query: str, limit: int, threshold: float) -> Any:
        ...


@runtime_checkable
class DelegationBackend(Protocol):
    """Agent delegation backend: task + capability tags -> assigned result."""

    def delegate_task(self, task: str, capabilities: List[str]) -> Any:
        ...


@runtime_checkable
class ToolBackend(Protocol):
    """Tool invocation backend."""

    def call_tool(self, tool_name: str, parameters: Dict[str, Any]) -> Any:
        ...


@runtime_checkable
class ReasoningBackend(Protocol):
    """Reasoning/LLM backend: prompt -> free-text answer."""

    def reason(
        self,
        prompt: str,
        rag_enabled: bool = False,
        delegation_enabled: bool = False,
    ) -> Any:
        ...
