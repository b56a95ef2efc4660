"""
Tests for the task repository
"""

import asyncio
import pytest
from conftest import local_dt, make_task, remote_record
from tasksync.models.operation import OperationStatus, OperationType
from tasksync.models.response import BatchFailure, BatchResult, ErrorType, TaskResponse
from tasksync.models.task import Priority, Status, Subtask, SyncStatus
from tasksync.services.task_query import SortKey, TaskFilter
from tasksync.services.task_repository import TaskRepository
from tasksync.utils.events import EventChannel, SyncEventType


@pytest.fixture
def repository(motion_client, events):
    """Repository backed by the fake Motion API"""
    return TaskRepository(motion_client, events=events)


@pytest.fixture
def mocked_repository(mock_motion_client, events):
    """Repository backed by a mock client"""
    return TaskRepository(mock_motion_client, events=events)


def _statuses(recorded_events, task_id):
    return [
        event.payload["status"] for event in recorded_events
        if event.type == SyncEventType.SYNC_STATUS_CHANGED and event.task_id == task_id
    ]


@pytest.mark.asyncio
async def test_add_confirms_optimistic_task(repository, fake_motion, recorded_events, operation_log):
    fake_motion.on("POST", "/tasks", 201, remote_record(
        "motion_1", "Draft report", priority="HIGH", dueDate="2024-03-01T09:00:00Z", duration=60,
    ))
    
    response = await repository.add({
        "title": "Draft report",
        "priority": "high",
        "dueDate": "2024-03-01T09:00:00Z",
        "estimatedTime": 60,
    })
    
    assert response.success
    assert len(repository) == 1
    task = repository.get("motion_1")
    assert task.sync_status == SyncStatus.SYNCED
    assert task.priority == Priority.HIGH
    
    added = [e for e in recorded_events if e.type == SyncEventType.TASK_ADDED]
    placeholder_id = added[0].task_id
    assert placeholder_id.startswith("local-")
    assert _statuses(recorded_events, placeholder_id) == ["syncing"]
    assert _statuses(recorded_events, "motion_1") == ["synced"]
    
    op = operation_log.latest()
    assert op.type == OperationType.CREATE
    assert op.status == OperationStatus.COMPLETED


@pytest.mark.asyncio
async def test_add_rolls_back_on_failure(repository, fake_motion, recorded_events, operation_log):
    fake_motion.on("POST", "/tasks", 500, {"message": "boom"})
    
    response = await repository.add({"title": "Draft report"})
    
    assert not response.success
    assert len(repository) == 0
    removed = [e for e in recorded_events if e.type == SyncEventType.TASK_REMOVED]
    assert removed[0].payload["rolled_back"] is True
    assert any(e.type == SyncEventType.OPERATION_FAILED for e in recorded_events)
    assert operation_log.latest().status == OperationStatus.ERROR
    assert len(fake_motion.calls("POST", "/tasks")) == 1


@pytest.mark.asyncio
async def test_add_rejects_blank_title(mocked_repository, mock_motion_client):
    response = await mocked_repository.add({"title": "   "})
    
    assert not response.success
    assert response.error_type == ErrorType.VALIDATION
    mock_motion_client.create_task.assert_not_called()
    assert len(mocked_repository) == 0


@pytest.mark.asyncio
async def test_add_keeps_local_only_fields(mocked_repository, mock_motion_client):
    subtask = Subtask(title="Outline")
    
    response = await mocked_repository.add({
        "title": "Test Task",
        "category": "Personal",
        "subtasks": [subtask],
        "notes": "remember the charts",
    })
    
    assert response.task.category == "Personal"
    assert response.task.subtasks[0].title == "Outline"
    assert response.task.notes == "remember the charts"
    sent = mock_motion_client.create_task.call_args[0][0]
    assert "subtasks" not in sent
    assert "category" not in sent


@pytest.mark.asyncio
async def test_remove_failure_keeps_task(repository, fake_motion, operation_log):
    repository.load([make_task(id="motion_1", title="Keep me", sync_status="synced")])
    fake_motion.on("DELETE", "/tasks/motion_1", 500, {"message": "Server exploded"})
    
    response = await repository.remove("motion_1")
    
    assert not response.success
    assert "motion_1" in repository
    assert repository.get("motion_1").sync_status == SyncStatus.ERROR
    op = operation_log.latest()
    assert op.type == OperationType.DELETE
    assert op.status == OperationStatus.ERROR
    assert "Server exploded" in op.error


@pytest.mark.asyncio
async def test_remove_success(repository, fake_motion, recorded_events):
    repository.load([make_task(id="motion_1")])
    fake_motion.on("DELETE", "/tasks/motion_1", 204)
    
    response = await repository.remove("motion_1")
    
    assert response.success
    assert "motion_1" not in repository
    assert recorded_events[-1].type == SyncEventType.TASK_REMOVED


@pytest.mark.asyncio
async def test_remove_unknown_task(mocked_repository, mock_motion_client):
    response = await mocked_repository.remove("missing")
    
    assert not response.success
    assert response.error_type == ErrorType.VALIDATION
    mock_motion_client.delete_task.assert_not_called()


@pytest.mark.asyncio
async def test_bulk_complete_applies_confirmed_subset(repository, fake_motion):
    repository.load([make_task(id="a", title="A"), make_task(id="b", title="B")])
    fake_motion.on("PATCH", "/tasks/a", 200, remote_record("a", "A", status="Completed"))
    fake_motion.on("PATCH", "/tasks/b", 500, {"message": "boom"})
    
    result = await repository.bulk_complete(["a", "b"])
    
    assert result.success_count == 1
    assert [failure.id for failure in result.failed] == ["b"]
    assert repository.get("a").completed is True
    assert repository.get("b").completed is False
    assert repository.get("b").sync_status == SyncStatus.ERROR


@pytest.mark.asyncio
async def test_bulk_delete_reports_unknown_ids(mocked_repository, mock_motion_client, recorded_events):
    mocked_repository.load([make_task(id="a"), make_task(id="b")])
    mock_motion_client.bulk_delete.return_value = BatchResult(
        requested=["a", "b"],
        succeeded=["a"],
        failed=[BatchFailure(id="b", reason="Motion API error: 500")],
    )
    
    result = await mocked_repository.bulk_delete(["a", "b", "ghost"])
    
    mock_motion_client.bulk_delete.assert_called_once_with(["a", "b"])
    assert result.requested == ["a", "b", "ghost"]
    assert {failure.id for failure in result.failed} == {"b", "ghost"}
    assert [task.id for task in mocked_repository.tasks] == ["b"]
    failure = [e for e in recorded_events if e.type == SyncEventType.OPERATION_FAILED][-1]
    assert failure.payload["error_type"] == "partial"


@pytest.mark.asyncio
async def test_replace_sends_only_remote_changes(mocked_repository, mock_motion_client):
    mocked_repository.load([make_task(id="motion_1", title="Old", version=3)])
    
    response = await mocked_repository.replace("motion_1", {"title": "New", "subtasks": []})
    
    mock_motion_client.update_task.assert_called_once_with("motion_1", {"title": "New"})
    assert response.success
    assert response.task.title == "New"
    assert response.task.version == 4
    assert response.task.sync_status == SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_replace_local_only_changes_skip_network(mocked_repository, mock_motion_client):
    mocked_repository.load([make_task(id="motion_1")])
    
    response = await mocked_repository.replace("motion_1", {"actualTime": 25, "category": "Home"})
    
    mock_motion_client.update_task.assert_not_called()
    assert response.task.actual_time == 25
    assert response.task.category == "Home"


@pytest.mark.asyncio
async def test_replace_rejects_stale_version(mocked_repository, mock_motion_client):
    mocked_repository.load([make_task(id="motion_1", title="Current", version=2)])
    
    response = await mocked_repository.replace("motion_1", {"title": "Stale"}, expected_version=1)
    
    assert not response.success
    assert response.error_type == ErrorType.CONFLICT
    assert response.error == "Task motion_1 changed since version 1 (now 2)"
    assert mocked_repository.get("motion_1").title == "Current"
    mock_motion_client.update_task.assert_not_called()


@pytest.mark.asyncio
async def test_replace_failure_keeps_previous_values(mocked_repository, mock_motion_client):
    mocked_repository.load([make_task(id="motion_1", title="Before")])
    mock_motion_client.update_task.return_value = TaskResponse(
        success=False, error="Motion API error: 500", error_type=ErrorType.NETWORK,
    )
    
    response = await mocked_repository.replace("motion_1", {"title": "After"})
    
    assert not response.success
    assert mocked_repository.get("motion_1").title == "Before"
    assert mocked_repository.get("motion_1").sync_status == SyncStatus.ERROR


@pytest.mark.asyncio
async def test_concurrent_replaces_are_serialized(mocked_repository, mock_motion_client):
    mocked_repository.load([make_task(id="motion_1", title="v0")])
    in_flight = []
    
    async def slow_update(task_id, changes):
        in_flight.append(task_id)
        assert len(in_flight) == 1
        await asyncio.sleep(0.01)
        in_flight.pop()
        return TaskResponse(success=True, task=make_task(id=task_id, **changes))
    
    mock_motion_client.update_task.side_effect = slow_update
    
    first, second = await asyncio.gather(
        mocked_repository.replace("motion_1", {"title": "v1"}, expected_version=0),
        mocked_repository.replace("motion_1", {"title": "v2"}, expected_version=0),
    )
    
    assert first.success
    assert not second.success
    assert second.error_type == ErrorType.CONFLICT
    assert mocked_repository.get("motion_1").title == "v1"


@pytest.mark.asyncio
async def test_complete(mocked_repository, mock_motion_client):
    mocked_repository.load([make_task(id="motion_1")])
    
    response = await mocked_repository.complete("motion_1")
    
    assert response.success
    task = mocked_repository.get("motion_1")
    assert task.status == Status.COMPLETED
    assert task.completed_at is not None


@pytest.mark.asyncio
async def test_complete_rejects_unconfirmed_task(mocked_repository, mock_motion_client):
    mocked_repository.load([make_task(id="local-123", title="Unconfirmed")])
    
    response = await mocked_repository.complete("local-123")
    
    assert not response.success
    assert response.error_type == ErrorType.CONFLICT
    assert "local-123" in response.error
    mock_motion_client.complete_task.assert_not_called()
    assert mocked_repository.get("local-123").status != Status.COMPLETED


@pytest.mark.asyncio
async def test_complete_unknown_task(mocked_repository, mock_motion_client):
    response = await mocked_repository.complete("missing")
    
    assert not response.success
    assert response.error_type == ErrorType.VALIDATION
    mock_motion_client.complete_task.assert_not_called()


@pytest.mark.asyncio
async def test_refresh_preserves_local_only_data(repository, fake_motion, recorded_events):
    repository.load([
        make_task(id="a", title="Old title", subtasks=[Subtask(title="Step")], actual_time=15),
        make_task(id="local-123", title="Unconfirmed"),
    ])
    fake_motion.on("GET", "/tasks", 200, {"tasks": [remote_record("a", "New title")]})
    
    response = await repository.refresh()
    
    assert response.success
    task = repository.get("a")
    assert task.title == "New title"
    assert task.subtasks[0].title == "Step"
    assert task.actual_time == 15
    assert "local-123" in repository
    assert recorded_events[-1].type == SyncEventType.TASKS_REFRESHED


@pytest.mark.asyncio
async def test_refresh_keeps_local_category(repository, fake_motion):
    repository.load([make_task(id="a", title="Groceries", category="Personal")])
    await repository.replace("a", {"category": "Errands"})
    fake_motion.on("GET", "/tasks", 200, {"tasks": [remote_record("a", "Groceries")]})
    
    response = await repository.refresh()
    
    assert response.success
    assert repository.get("a").category == "Errands"
    assert fake_motion.calls("PATCH", "/tasks/a") == []


@pytest.mark.asyncio
async def test_refresh_failure_keeps_collection(repository, fake_motion):
    repository.load([make_task(id="a")])
    fake_motion.on("GET", "/tasks", 503, {"message": "maintenance"})
    
    response = await repository.refresh()
    
    assert not response.success
    assert "a" in repository


def test_load_keeps_last_duplicate(mocked_repository):
    mocked_repository.load([make_task(id="a", title="first"), make_task(id="a", title="second")])
    
    assert len(mocked_repository) == 1
    assert mocked_repository.get("a").title == "second"


def test_filter_sort_and_stats(mocked_repository, sample_tasks):
    mocked_repository.load(sample_tasks)
    
    work = mocked_repository.filter(category="Work", tag="writing")
    by_priority = mocked_repository.sort(SortKey.PRIORITY)
    stats = mocked_repository.stats(now=local_dt(2024, 3, 1, 8))
    
    assert [task.id for task in work] == ["t1", "t3"]
    assert [task.id for task in mocked_repository.filter(TaskFilter(search="LOGIN"))] == ["t3"]
    assert [task.id for task in by_priority] == ["t3", "t1", "t4", "t2"]
    assert stats.total == 4
    assert stats.completed == 1
    assert stats.due_today == 1


def test_sync_summary_reads_operation_log(mocked_repository, operation_log):
    assert mocked_repository.sync_summary().pending == 0


@pytest.mark.asyncio
async def test_empty_event_channel_is_kept(mock_motion_client):
    channel = EventChannel()
    received = []
    repository = TaskRepository(mock_motion_client, events=channel)
    
    assert repository.events is channel
    
    channel.subscribe(received.append)
    await repository.add({"title": "Draft report"})
    
    assert received
