import uuid
from datetime import datetime, timedelta, timezone

import pytest

from stepwise.exceptions import WorkflowInstanceNotFoundError
from stepwise.parser import DefinitionParser
from stepwise.persistence import (
    InMemoryWorkflowRepository,
    InstanceFilter,
    SQLiteWorkflowRepository,
    WorkflowInstance,
    get_repository,
)
from stepwise.state import WorkflowState

DEFINITION = DefinitionParser().parse(
    {
        "name": "persisted",
        "steps": [{"id": "a", "action": "log"}, {"id": "b"}],
        "transitions": [{"from": "a", "to": "b"}],
    }
)
OTHER = DefinitionParser().parse({"name": "other", "steps": [{"id": "x"}]})


def _instance(definition=DEFINITION, **fields) -> WorkflowInstance:
    return WorkflowInstance(id=str(uuid.uuid4()), definition=definition, **fields)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryWorkflowRepository()
    return SQLiteWorkflowRepository(tmp_path / "wf.db")


@pytest.mark.asyncio
async def test_repository_crud(repo):
    instance = _instance(data={"foo": "bar"})
    await repo.save(instance)
    assert await repo.exists(instance.id)

    instance.transition_to(WorkflowState.RUNNING)
    instance.set_current_step("a")
    instance.merge_data({"foo": "baz", "n": 1})
    instance.mark_step_completed("a")
    instance.mark_step_failed("b", "bad")
    instance.mark_step_skipped("b")
    await repo.save(instance)

    loaded = await repo.load(instance.id)
    assert loaded.id == instance.id
    assert loaded.definition == DEFINITION
    assert loaded.state is WorkflowState.RUNNING
    assert loaded.data == {"foo": "baz", "n": 1}
    assert loaded.current_step_id == "a"
    assert loaded.completed_steps == ["a"]
    assert loaded.failed_steps[0].step_id == "b"
    assert loaded.failed_steps[0].error == "bad"
    assert loaded.skipped_steps == ["b"]
    assert loaded.created_at == instance.created_at

    assert await repo.delete(instance.id) is True
    assert await repo.delete(instance.id) is False
    assert not await repo.exists(instance.id)
    with pytest.raises(WorkflowInstanceNotFoundError):
        await repo.load(instance.id)


@pytest.mark.asyncio
async def test_repository_returns_snapshots(repo):
    instance = _instance(data={"items": [1]})
    await repo.save(instance)

    instance.data["items"].append(2)
    loaded = await repo.load(instance.id)
    assert loaded.data == {"items": [1]}

    loaded.data["items"].append(3)
    assert (await repo.load(instance.id)).data == {"items": [1]}


@pytest.mark.asyncio
async def test_find_instances_filters_and_pages(repo):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    created = []
    for i in range(5):
        instance = _instance(created_at=base + timedelta(days=i))
        if i % 2:
            instance.transition_to(WorkflowState.RUNNING)
        await repo.save(instance)
        created.append(instance)
    await repo.save(_instance(OTHER, created_at=base + timedelta(days=10)))

    everything = await repo.find_instances()
    assert len(everything) == 6
    assert [i.id for i in everything[:5]] == [i.id for i in created]

    running = await repo.find_instances(InstanceFilter(state=WorkflowState.RUNNING))
    assert [i.id for i in running] == [created[1].id, created[3].id]

    other = await repo.find_instances(InstanceFilter(definition_name="other"))
    assert len(other) == 1

    window = await repo.find_instances(
        InstanceFilter(
            definition_name="persisted",
            created_after=base,
            created_before=base + timedelta(days=4),
        )
    )
    assert [i.id for i in window] == [c.id for c in created[1:4]]

    page = await repo.find_instances(InstanceFilter(limit=2, offset=1))
    assert [i.id for i in page] == [c.id for c in created[1:3]]


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("STEPWISE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("STEPWISE_CONFIG", str(tmp_path / "absent.yaml"))

    first = get_repository()
    assert isinstance(first, InMemoryWorkflowRepository)
    assert get_repository() is not first

    sqlite_repo = get_repository(f"sqlite://{tmp_path / 'x.db'}")
    assert isinstance(sqlite_repo, SQLiteWorkflowRepository)

    monkeypatch.setenv("STEPWISE_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")
    assert isinstance(get_repository(), SQLiteWorkflowRepository)

    with pytest.raises(ValueError):
        get_repository("mysql://nope")
