import pytest

from stepwise import (
    ActionResult,
    BaseAction,
    StepwiseConfig,
    WorkflowEngine,
    default_registry,
)
from stepwise.persistence import SQLiteWorkflowRepository
from stepwise.state import WorkflowState

DEFINITION = {
    "name": "durable",
    "steps": [
        {"id": "reserve", "action": "mark", "parameters": {"output": {"reserved": True}}},
        {"id": "approve", "action": "pause_once"},
        {"id": "ship", "action": "mark", "parameters": {"output": {"shipped": "{{ order }}"}}},
    ],
    "transitions": [
        {"from": "reserve", "to": "approve"},
        {"from": "approve", "to": "ship"},
    ],
}


class MarkAction(BaseAction):
    async def handle(self, context):
        return ActionResult.success(self.get_config("output", {}))


class PauseOnce(BaseAction):
    def __init__(self, config, engine_ref, seen):
        super().__init__(config)
        self.engine_ref = engine_ref
        self.seen = seen

    async def handle(self, context):
        self.seen.append(context.workflow_id)
        if len(self.seen) == 1:
            await self.engine_ref[0].pause(context.workflow_id)
        return ActionResult.success({"approved": True})


def _engine(db_path, seen):
    engine_ref = []
    registry = default_registry()
    registry.register("mark", MarkAction)
    registry.register("pause_once", lambda config: PauseOnce(config, engine_ref, seen))
    engine = WorkflowEngine(
        repository=SQLiteWorkflowRepository(db_path),
        registry=registry,
        config=StepwiseConfig(),
    )
    engine_ref.append(engine)
    return engine


@pytest.mark.asyncio
async def test_workflow_survives_restart_and_resumes(tmp_path):
    db_path = tmp_path / "wf.db"
    seen = []

    first = _engine(db_path, seen)
    workflow_id = await first.start("order-1", DEFINITION, {"order": "A-1"})
    paused = await first.get_instance(workflow_id)
    assert paused.state is WorkflowState.PAUSED
    assert paused.current_step_id == "approve"
    assert paused.completed_steps == ["reserve"]
    assert paused.data == {"order": "A-1", "reserved": True}

    # a fresh engine and connection only see what was persisted
    second = _engine(db_path, seen)
    resumed = await second.resume(workflow_id)
    assert resumed.state is WorkflowState.COMPLETED
    assert resumed.completed_steps == ["reserve", "approve", "ship"]
    assert resumed.data["shipped"] == "A-1"
    assert seen == [workflow_id, workflow_id]

    stored = await SQLiteWorkflowRepository(db_path).load(workflow_id)
    assert stored.state is WorkflowState.COMPLETED
    assert stored.progress == 100.0


@pytest.mark.asyncio
async def test_failed_workflow_is_persisted(tmp_path):
    db_path = tmp_path / "wf.db"
    engine = _engine(db_path, [])
    workflow_id = await engine.start(
        "broken",
        {"name": "broken", "steps": [{"id": "call", "action": "http", "parameters": {}}]},
    )
    stored = await SQLiteWorkflowRepository(db_path).load(workflow_id)
    assert stored.state is WorkflowState.FAILED
    assert "URL is required" in stored.error_message
    assert stored.failed_steps[0].step_id == "call"
