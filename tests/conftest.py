"""
Pytest configuration and fixtures
"""

import pytest
import httpx
from datetime import datetime
from typing import Any, Callable, Dict, List, Tuple, Union
from unittest.mock import AsyncMock, MagicMock
from tasksync.api.motion_client import MotionClient
from tasksync.models.response import BatchResult, DeleteResponse, TaskListResponse, TaskResponse
from tasksync.models.task import Principal, Priority, Task
from tasksync.services.operation_log import SyncOperationLog
from tasksync.utils.date_utils import USER_TIMEZONE
from tasksync.utils.events import EventChannel, SyncEvent

MOTION_BASE_URL = "https://motion.test"

Reply = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


def local_dt(*args) -> datetime:
    """Datetime in the user's timezone"""
    return datetime(*args, tzinfo=USER_TIMEZONE)


def make_task(**fields) -> Task:
    """Task with sensible defaults for tests"""
    fields.setdefault("title", "Test Task")
    return Task(**fields)


def remote_record(task_id: str, name: str, **extra) -> Dict[str, Any]:
    """Motion task record owned by the test user"""
    record = {
        "id": task_id,
        "name": name,
        "priority": "MEDIUM",
        "status": {"name": "Not Started", "isResolvedStatus": False},
        "creator": {"id": "user-1"},
        "assignees": [{"id": "user-1"}],
    }
    record.update(extra)
    return record


class FakeMotion:
    """Programmable stand-in for the Motion HTTP API"""
    
    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
    
    def on(self, method: str, path: str, status: int = 200, json: Any = None):
        """Queue a reply; the last queued reply repeats"""
        self.routes.setdefault((method, path), []).append((status, json))
    
    def on_call(self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]):
        self.routes.setdefault((method, path), []).append(handler)
    
    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]
    
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": "Not found"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        status, body = reply
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


@pytest.fixture
def fake_motion():
    """Fake Motion API"""
    return FakeMotion()


@pytest.fixture
def operation_log():
    """Empty operation log"""
    return SyncOperationLog()


@pytest.fixture
def principal():
    return Principal(id="user-1", email="me@example.com", name="Me")


@pytest.fixture
def motion_client(fake_motion, operation_log, principal):
    """Motion client wired to the fake API, without retry delays"""
    return MotionClient(
        api_key="test_key",
        base_url=MOTION_BASE_URL,
        principal=principal,
        operation_log=operation_log,
        transport=httpx.MockTransport(fake_motion.handler),
        retry_delay=0,
    )


@pytest.fixture
def mock_motion_client(operation_log):
    """Mock Motion client"""
    client = MagicMock(spec=MotionClient)
    client.operation_log = operation_log
    client.create_task = AsyncMock(return_value=TaskResponse(
        success=True,
        task=make_task(id="motion_1", title="Test Task"),
    ))
    client.update_task = AsyncMock(return_value=TaskResponse(
        success=True,
        task=make_task(id="motion_1", title="Updated Task"),
    ))
    client.delete_task = AsyncMock(return_value=DeleteResponse(success=True, task_id="motion_1"))
    client.complete_task = AsyncMock(return_value=TaskResponse(
        success=True,
        task=make_task(id="motion_1", status="completed"),
    ))
    client.fetch_tasks = AsyncMock(return_value=TaskListResponse(success=True, tasks=[]))
    client.bulk_complete = AsyncMock(return_value=BatchResult())
    client.bulk_delete = AsyncMock(return_value=BatchResult())
    client.optimize_time_blocks = AsyncMock()
    return client


@pytest.fixture
def events():
    return EventChannel()


@pytest.fixture
def recorded_events(events) -> List[SyncEvent]:
    """Every event published on the `events` channel"""
    received: List[SyncEvent] = []
    events.subscribe(received.append)
    return received


@pytest.fixture
def sample_tasks():
    """A small mixed collection"""
    return [
        make_task(id="t1", title="Write report", priority=Priority.HIGH, category="Work",
                  tags=["writing"], due_date=local_dt(2024, 3, 1, 9), duration=60),
        make_task(id="t2", title="Buy groceries", priority=Priority.LOW, category="Personal",
                  tags=["errands"], due_date=local_dt(2024, 3, 2, 17), duration=30),
        make_task(id="t3", title="Fix login bug", priority=Priority.URGENT, category="Work",
                  tags=["bug", "writing"], description="Users cannot log in", duration=90),
        make_task(id="t4", title="Plan sprint", priority=Priority.HIGH, category="Work",
                  status="completed", due_date=local_dt(2024, 2, 28, 10),
                  created_at=local_dt(2024, 2, 27, 10), completed_at=local_dt(2024, 2, 28, 10)),
    ]
