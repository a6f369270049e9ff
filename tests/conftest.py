"""
Shared fixtures for Conduit tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from conduit.core.config import ConduitConfig
from conduit.workflow.engine import WorkflowEngine
from conduit.workflow.events import EventFeed
from conduit.workflow.monitoring import MetricsAggregator
from conduit.workflow.types import (
    ResourceUsage,
    StepType,
    WorkflowDefinition,
    WorkflowStep,
)


class FakeClock:
    """Manually advanced clock for throttle and expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedBackend:
    """
    Collaborator double that raises the queued failures first, then
    returns its result. Every call is recorded.
    """

    def __init__(self, result: Any = None, failures: Optional[List[BaseException]] = None):
        self.result = result
        self.failures = list(failures or [])
        self.calls: List[Dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def _respond(self, **call: Any) -> Any:
        self.calls.append(call)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class FakeSearchBackend(ScriptedBackend):
    async def query(self, query: str, limit: int, threshold: float) -> Any:
        return await self._respond(query=query, limit=limit, threshold=threshold)


class FakeToolBackend(ScriptedBackend):
    async def call_tool(self, tool_name: str, parameters: Dict[str, Any]) -> Any:
        return await self._respond(tool_name=tool_name, parameters=parameters)


class FakeDelegationBackend:
    """Synchronous delegation backend."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    def delegate_task(self, task: str, capabilities: List[str]) -> Any:
        self.calls.append({"task": task, "capabilities": capabilities})
        return {"agent": "agent-1", "task": task}


class FakeReasoningBackend:
    def __init__(self, answer: str = "42"):
        self.answer = answer
        self.calls: List[Dict[str, Any]] = []

    async def reason(self, prompt: str, rag_enabled: bool = False, delegation_enabled: bool = False) -> str:
        self.calls.append({
            "prompt": prompt,
            "rag_enabled": rag_enabled,
            "delegation_enabled": delegation_enabled,
        })
        return self.answer


def low_usage() -> ResourceUsage:
    return ResourceUsage(cpu=0.1, memory=0.2, network=0.0)


def make_workflow(*steps: WorkflowStep, workflow_id: str = "wf-test", name: str = "Test Workflow") -> WorkflowDefinition:
    return WorkflowDefinition(id=workflow_id, name=name, steps=list(steps))


def notify_step(step_id: str, message: str = "hello", **kwargs: Any) -> WorkflowStep:
    return WorkflowStep(
        id=step_id,
        name=f"Notify {step_id}",
        type=StepType.NOTIFICATION,
        config={"message": message},
        **kwargs,
    )


def tool_step(step_id: str, tool_name: str = "echo", **kwargs: Any) -> WorkflowStep:
    config = kwargs.pop("config", None) or {"tool_name": tool_name, "parameters": {}}
    return WorkflowStep(
        id=step_id,
        name=f"Tool {step_id}",
        type=StepType.TOOL_INVOKE,
        config=config,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return ConduitConfig()


@pytest.fixture
def search_backend():
    return FakeSearchBackend(result=[{"id": "doc-1", "score": 0.9}])


@pytest.fixture
def tool_backend():
    return FakeToolBackend(result={"ok": True})


@pytest.fixture
def delegation_backend():
    return FakeDelegationBackend()


@pytest.fixture
def reasoning_backend():
    return FakeReasoningBackend()


@pytest.fixture
def engine(config, search_backend, tool_backend, delegation_backend, reasoning_backend):
    feed = EventFeed()
    return WorkflowEngine(
        config=config,
        feed=feed,
        monitor=MetricsAggregator(feed=feed, sampler=low_usage),
        search_backend=search_backend,
        tool_backend=tool_backend,
        delegation_backend=delegation_backend,
        reasoning_backend=reasoning_backend,
    )
