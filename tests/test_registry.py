"""
Tests for the workflow registry.
"""

from datetime import datetime, timedelta

import pytest

from conduit.exceptions import WorkflowValidationError
from conduit.workflow.registry import WorkflowRegistry
from conduit.workflow.types import ExecutionStatus, WorkflowExecution

from conftest import make_workflow, notify_step


class TestDefinitions:
    """Tests for definition storage."""

    @pytest.mark.asyncio
    async def test_save_and_get(self):
        registry = WorkflowRegistry()
        workflow_id = await registry.save(make_workflow(notify_step("a")))

        assert workflow_id == "wf-test"
        assert (await registry.get("wf-test")).name == "Test Workflow"
        assert await registry.count() == 1

    @pytest.mark.asyncio
    async def test_invalid_definition_rejected(self):
        registry = WorkflowRegistry()
        with pytest.raises(WorkflowValidationError) as exc:
            await registry.save(make_workflow(notify_step("a", dependencies=["ghost"])))
        assert exc.value.errors == ["Step a depends on unknown step: ghost"]
        assert await registry.count() == 0

    @pytest.mark.asyncio
    async def test_tag_index_follows_replacement(self):
        registry = WorkflowRegistry()
        workflow = make_workflow(notify_step("a"))
        workflow.tags = ["nightly"]
        await registry.save(workflow)

        assert [w.id for w in await registry.list_all(tag="nightly")] == ["wf-test"]

        workflow.tags = ["weekly"]
        await registry.save(workflow)

        assert await registry.list_all(tag="nightly") == []
        assert [w.id for w in await registry.list_all(tag="weekly")] == ["wf-test"]

    @pytest.mark.asyncio
    async def test_delete(self):
        registry = WorkflowRegistry()
        workflow = make_workflow(notify_step("a"))
        workflow.tags = ["nightly"]
        await registry.save(workflow)

        assert await registry.delete("wf-test")
        assert not await registry.delete("wf-test")
        assert await registry.list_all(tag="nightly") == []

    @pytest.mark.asyncio
    async def test_persistence_round_trip(self, tmp_path):
        path = tmp_path / "workflows.json"
        registry = WorkflowRegistry(persistence_path=path)
        await registry.initialize()
        workflow = make_workflow(notify_step("a"), notify_step("b", dependencies=["a"]))
        workflow.tags = ["nightly"]
        await registry.save(workflow)
        await registry.shutdown()

        reloaded = WorkflowRegistry(persistence_path=path)
        await reloaded.initialize()

        stored = await reloaded.get("wf-test")
        assert [s.id for s in stored.steps] == ["a", "b"]
        assert stored.steps[1].dependencies == ["a"]
        assert [w.id for w in await reloaded.list_all(tag="nightly")] == ["wf-test"]

    @pytest.mark.asyncio
    async def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "workflows.json"
        path.write_text("{not json")

        registry = WorkflowRegistry(persistence_path=path)
        await registry.initialize()

        assert await registry.count() == 0


class TestExecutions:
    """Tests for execution storage."""

    @pytest.mark.asyncio
    async def test_list_newest_first_with_filters(self):
        registry = WorkflowRegistry()
        now = datetime.now()
        old = WorkflowExecution(workflow_id="wf-1", started_at=now - timedelta(minutes=5))
        new = WorkflowExecution(workflow_id="wf-1", started_at=now)
        other = WorkflowExecution(workflow_id="wf-2", started_at=now - timedelta(minutes=1))
        other.complete()
        for execution in (old, new, other):
            await registry.save_execution(execution)

        assert [e.id for e in await registry.list_executions()] == [new.id, other.id, old.id]
        assert [e.id for e in await registry.list_executions(workflow_id="wf-1")] == [new.id, old.id]
        assert [e.id for e in await registry.list_executions(status=ExecutionStatus.COMPLETED)] == [other.id]
        assert len(await registry.list_executions(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_cleanup_drops_only_old_terminal_runs(self):
        registry = WorkflowRegistry()
        stale = WorkflowExecution(workflow_id="wf-1")
        stale.complete()
        stale.completed_at = datetime.now() - timedelta(hours=48)
        recent = WorkflowExecution(workflow_id="wf-1")
        recent.complete()
        running = WorkflowExecution(workflow_id="wf-1", started_at=datetime.now() - timedelta(hours=48))
        for execution in (stale, recent, running):
            await registry.save_execution(execution)

        assert await registry.cleanup_executions(older_than_hours=24) == 1
        assert await registry.get_execution(stale.id) is None
        assert await registry.get_execution(running.id) is running

    @pytest.mark.asyncio
    async def test_prune_returns_dropped_ids(self):
        registry = WorkflowRegistry()
        done = WorkflowExecution(workflow_id="wf-1")
        done.complete()
        running = WorkflowExecution(workflow_id="wf-1")
        await registry.save_execution(done)
        await registry.save_execution(running)

        assert registry.execution_counts()["completed"] == 1
        assert await registry.prune_executions(older_than_hours=-1) == [done.id]
        assert registry.execution_counts()["completed"] == 0
        assert registry.execution_counts()["running"] == 1

