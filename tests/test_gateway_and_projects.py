"""Tests for remote task mutations and the project delete guard."""

from __future__ import annotations

import pytest

from gtd_engage.errors import ProjectHasTasksError, RemoteStoreError
from gtd_engage.tasks.gateway import TaskGateway
from gtd_engage.tasks.projects import ProjectService
from gtd_engage.tasks.store import LocalTaskStore

pytestmark = pytest.mark.anyio


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def test_fetch_all_loads_only_user_tasks(remote) -> None:
    remote.seed("tasks", {"id": "t1", "title": "Mine", "user_id": "user-1",
                          "created_at": "2025-01-01T00:00:00Z"})
    remote.seed("tasks", {"id": "t2", "title": "Newer", "user_id": "user-1",
                          "created_at": "2025-01-02T00:00:00Z"})
    remote.seed("tasks", {"id": "t3", "title": "Theirs", "user_id": "user-2"})
    store = LocalTaskStore()
    gateway = TaskGateway(remote, store, user_id="user-1")

    tasks = await gateway.fetch_all()

    assert [t.id for t in tasks] == ["t2", "t1"]


async def test_create_confirms_placeholder(remote) -> None:
    store = LocalTaskStore()
    gateway = TaskGateway(remote, store, user_id="user-1")
    placeholder_id = store.add({"title": "Call dentist"})

    record = await gateway.create({"title": "Call dentist"}, placeholder_id=placeholder_id)

    assert record.user_id == "user-1"
    assert [t.id for t in store.tasks] == [record.id]


async def test_failures_are_recorded_and_reraised(remote) -> None:
    store = LocalTaskStore()
    gateway = TaskGateway(remote, store, user_id="user-1")
    remote.failures.append(RemoteStoreError("row level security"))

    with pytest.raises(RemoteStoreError):
        await gateway.create({"title": "x"})
    assert gateway.last_error == "row level security"

    await gateway.create({"title": "y"})
    assert gateway.last_error is None


async def test_update_of_locally_deleted_task_does_not_resurrect(remote) -> None:
    remote.seed("tasks", {"id": "t1", "title": "x", "user_id": "user-1"})
    store = LocalTaskStore()
    gateway = TaskGateway(remote, store, user_id="user-1")

    await gateway.update("t1", {"priority": 1})

    assert "t1" not in store


async def test_delete_project_with_tasks_is_refused(remote) -> None:
    remote.seed("projects", {"id": "p1", "name": "House", "user_id": "user-1"})
    remote.seed("tasks", {"id": "t1", "title": "Paint", "project_id": "p1"})
    remote.seed("tasks", {"id": "t2", "title": "Sand", "project_id": "p1"})
    service = ProjectService(remote, user_id="user-1")

    with pytest.raises(ProjectHasTasksError) as excinfo:
        await service.delete_project("p1")

    assert excinfo.value.task_count == 2
    assert str(excinfo.value) == (
        "Cannot delete project with 2 associated tasks. "
        "Please remove or reassign tasks first."
    )
    assert ("delete", "projects") not in remote.calls


async def test_project_lifecycle(remote) -> None:
    service = ProjectService(remote, user_id="user-1")

    project = await service.create_project({"name": "Garden"})
    assert [p.id for p in await service.list_projects()] == [project.id]

    renamed = await service.update_project(project.id, {"name": "Back garden"})
    assert service.get(project.id).name == renamed.name == "Back garden"

    await service.delete_project(project.id)
    assert service.projects == []
    assert await service.list_projects() == []
