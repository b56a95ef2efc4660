"""
Task repository: the authoritative local task collection
"""

import asyncio
import uuid
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from tasksync.api.motion_client import MotionClient
from tasksync.config.constants import LOCAL_ID_PREFIX
from tasksync.models.mapping import REMOTE_FIELDS, normalize_fields
from tasksync.models.operation import SyncSummary
from tasksync.models.response import (
    BatchFailure,
    BatchResult,
    DeleteResponse,
    ErrorType,
    TaskListResponse,
    TaskResponse,
)
from tasksync.models.task import Status, SyncStatus, Task
from tasksync.services.task_query import SortKey, TaskFilter, filter_tasks, sort_tasks
from tasksync.services.task_stats import TaskStats, calculate_stats
from tasksync.utils.date_utils import get_current_datetime
from tasksync.utils.error_handler import (
    StaleTaskError,
    TaskSyncError,
    ValidationError,
    classify_error,
    describe_error,
)
from tasksync.utils.events import EventChannel, SyncEventType
from tasksync.utils.logger import logger

# Fields kept only on this side; the remote service has no place for them
LOCAL_FIELDS = frozenset({"subtasks", "category", "notes", "actual_time", "completed_at"})


def is_local_id(task_id: str) -> bool:
    """True for optimistic placeholders not yet confirmed remotely"""
    return task_id.startswith(LOCAL_ID_PREFIX)


class TaskRepository:
    """
    In-memory task collection kept in sync with Motion
    
    Every mutation goes through the client first and is applied locally only
    on success, except creation, which inserts an optimistic placeholder right
    away. Mutations of the same task id are serialized.
    """
    
    def __init__(self, client: MotionClient, events: Optional[EventChannel] = None):
        """
        Initialize task repository
        
        Args:
            client: Motion API client
            events: Channel receiving change events (a new one when omitted)
        """
        self.client = client
        self.operation_log = client.operation_log
        self.events = events if events is not None else EventChannel()
        self.logger = logger
        self._tasks: Dict[str, Task] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
    
    def __len__(self) -> int:
        return len(self._tasks)
    
    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks
    
    @property
    def tasks(self) -> List[Task]:
        """All tasks in insertion order"""
        return list(self._tasks.values())
    
    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)
    
    def _lock_for(self, task_id: str) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            lock = self._locks[task_id] = asyncio.Lock()
        return lock
    
    def _insert(self, task: Task):
        if task.id in self._tasks:
            raise ValueError(f"Task {task.id} already exists")
        self._tasks[task.id] = task
    
    def _swap(self, old_id: str, task: Task):
        """Replace a task keeping its position, also when the id changes"""
        if old_id not in self._tasks:
            self._tasks.pop(task.id, None)
            self._tasks[task.id] = task
            return
        if task.id != old_id:
            self._tasks.pop(task.id, None)
        self._tasks = {
            (task.id if key == old_id else key): (task if key == old_id else value)
            for key, value in self._tasks.items()
        }
    
    def _set_sync_status(self, task_id: str, status: SyncStatus):
        task = self._tasks.get(task_id)
        if task is None or task.sync_status == status:
            return
        self._tasks[task_id] = task.model_copy(update={"sync_status": status})
        self.events.emit(SyncEventType.SYNC_STATUS_CHANGED, task_id=task_id, status=status.value)
    
    def _rejected(self, error: TaskSyncError, response_cls=TaskResponse, **fields):
        """Failed result for a call refused before reaching the remote service"""
        message = describe_error(error)
        self.logger.warning(f"[TaskRepository] {message}")
        return response_cls(
            success=False,
            error=message,
            message=message,
            error_type=classify_error(error),
            **fields,
        )
    
    def _require_confirmed(self, task_id: str):
        if is_local_id(task_id):
            raise StaleTaskError(f"Task {task_id} is not confirmed by Motion yet")
    
    def _report_failure(self, task_id: Optional[str], error: Optional[str]):
        self.events.emit(SyncEventType.OPERATION_FAILED, task_id=task_id, message=error)
    
    def _confirmed(self, task: Task, changes: Dict[str, Any]) -> Task:
        """Apply confirmed changes and bump the version token"""
        return task.with_changes({
            **changes,
            "sync_status": SyncStatus.SYNCED,
            "last_sync_at": get_current_datetime(),
            "version": task.version + 1,
        })
    
    def load(self, tasks: List[Task]):
        """
        Replace the collection without contacting the remote service
        
        Args:
            tasks: Tasks to hold; a repeated id keeps the last occurrence
        """
        collection: Dict[str, Task] = {}
        for task in tasks:
            if task.id in collection:
                self.logger.warning(f"[TaskRepository] Duplicate task id {task.id}, keeping the last one")
            collection[task.id] = task
        self._tasks = collection
        self.events.emit(SyncEventType.TASKS_REFRESHED, count=len(collection))
    
    async def refresh(self, workspace_id: Optional[str] = None) -> TaskListResponse:
        """
        Reconcile the collection with the remote service
        
        Remote records replace local ones; local-only data (subtasks, category,
        notes, tracked time) and unconfirmed placeholders survive.
        
        Args:
            workspace_id: Restrict to one workspace
            
        Returns:
            TaskListResponse from the client
        """
        self.operation_log.prune()
        response = await self.client.fetch_tasks(workspace_id)
        if not response.success:
            self._report_failure(None, response.error)
            return response
        
        collection: Dict[str, Task] = {}
        for remote in response.tasks:
            local = self._tasks.get(remote.id)
            if local is not None:
                remote = remote.with_changes({
                    "subtasks": local.subtasks,
                    "actual_time": local.actual_time,
                    "category": local.category,
                    "notes": remote.notes or local.notes,
                    "version": local.version + 1,
                })
            collection[remote.id] = remote
        
        for task_id, task in self._tasks.items():
            if is_local_id(task_id):
                collection[task_id] = task
        
        self._tasks = collection
        self.logger.info(f"[TaskRepository] Refreshed {len(response.tasks)} tasks from Motion")
        self.events.emit(SyncEventType.TASKS_REFRESHED, count=len(collection))
        return response
    
    async def add(self, fields: Dict[str, Any]) -> TaskResponse:
        """
        Create a task optimistically
        
        A placeholder with a local id is inserted at once (sync status pending,
        then syncing). On success it is swapped for the confirmed record; on
        failure it is rolled back.
        
        Args:
            fields: Task fields; title is required
            
        Returns:
            TaskResponse with the confirmed task
        """
        fields = normalize_fields(fields)
        title = fields.get("title")
        if not isinstance(title, str) or not title.strip():
            return self._rejected(ValidationError("Task title cannot be empty"))
        fields["title"] = title.strip()
        
        known = {key: value for key, value in fields.items() if key in Task.model_fields}
        known.pop("id", None)
        placeholder = Task.model_validate({
            **known,
            "id": f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}",
            "sync_status": SyncStatus.PENDING,
        })
        self._insert(placeholder)
        self.events.emit(SyncEventType.TASK_ADDED, task_id=placeholder.id, optimistic=True)
        self._set_sync_status(placeholder.id, SyncStatus.SYNCING)
        
        remote_fields = {key: value for key, value in known.items() if key in REMOTE_FIELDS}
        response = await self.client.create_task(remote_fields)
        
        if not response.success or response.task is None:
            self._tasks.pop(placeholder.id, None)
            self.events.emit(SyncEventType.TASK_REMOVED, task_id=placeholder.id, rolled_back=True)
            self._report_failure(placeholder.id, response.error)
            return response
        
        local_changes = {key: value for key, value in known.items() if key in LOCAL_FIELDS}
        current = self._tasks.get(placeholder.id, placeholder)
        local_changes["subtasks"] = current.subtasks
        confirmed = self._confirmed(response.task, local_changes)
        
        self._swap(placeholder.id, confirmed)
        self.events.emit(SyncEventType.SYNC_STATUS_CHANGED, task_id=confirmed.id, status=SyncStatus.SYNCED.value)
        self.events.emit(SyncEventType.TASK_UPDATED, task_id=confirmed.id, previous_id=placeholder.id)
        self.logger.info(f"[TaskRepository] Created task '{confirmed.title}' ({confirmed.id})")
        return TaskResponse(success=True, task=confirmed, message=response.message)
    
    async def replace(
        self,
        task_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> TaskResponse:
        """
        Update a task
        
        Args:
            task_id: Task ID
            changes: Changed fields
            expected_version: Version the changes were based on; a mismatch
                rejects the update instead of overwriting newer state
                
        Returns:
            TaskResponse with the updated task
        """
        async with self._lock_for(task_id):
            current = self._tasks.get(task_id)
            if current is None:
                return self._rejected(ValidationError(f"Task {task_id} not found"))
            if expected_version is not None and expected_version != current.version:
                return self._rejected(StaleTaskError(
                    f"Task {task_id} changed since version {expected_version} (now {current.version})"
                ))
            
            changes = normalize_fields(changes)
            changes.pop("id", None)
            if "title" in changes:
                title = changes["title"]
                if not isinstance(title, str) or not title.strip():
                    return self._rejected(ValidationError("Task title cannot be empty"))
                changes["title"] = title.strip()
            if "completed" in changes and "status" not in changes:
                changes["status"] = Status.COMPLETED if changes["completed"] else Status.PENDING
            changes.pop("completed", None)
            
            remote_changes = {key: value for key, value in changes.items() if key in REMOTE_FIELDS}
            local_changes = {key: value for key, value in changes.items() if key in LOCAL_FIELDS}
            
            if remote_changes:
                try:
                    self._require_confirmed(task_id)
                except StaleTaskError as e:
                    return self._rejected(e)
                self._set_sync_status(task_id, SyncStatus.SYNCING)
                response = await self.client.update_task(task_id, remote_changes)
                if not response.success:
                    self._set_sync_status(task_id, SyncStatus.ERROR)
                    self._report_failure(task_id, response.error)
                    return response
                updated = self._confirmed(self._tasks.get(task_id, current), {**remote_changes, **local_changes})
            else:
                updated = current.with_changes({**local_changes, "version": current.version + 1})
            
            self._tasks[task_id] = updated
            self.events.emit(SyncEventType.TASK_UPDATED, task_id=task_id)
            return TaskResponse(success=True, task=updated, message="Task updated")
    
    async def remove(self, task_id: str) -> DeleteResponse:
        """
        Delete a task; it leaves the collection only after remote success
        
        Args:
            task_id: Task ID
            
        Returns:
            DeleteResponse
        """
        async with self._lock_for(task_id):
            try:
                if task_id not in self._tasks:
                    raise ValidationError(f"Task {task_id} not found")
                self._require_confirmed(task_id)
            except TaskSyncError as e:
                return self._rejected(e, DeleteResponse, task_id=task_id)
            
            self._set_sync_status(task_id, SyncStatus.SYNCING)
            response = await self.client.delete_task(task_id)
            if not response.success:
                self._set_sync_status(task_id, SyncStatus.ERROR)
                self._report_failure(task_id, response.error)
                return response
            
            self._tasks.pop(task_id, None)
            self.events.emit(SyncEventType.TASK_REMOVED, task_id=task_id)
        
        self._locks.pop(task_id, None)
        return response
    
    def _apply_completion(self, task_id: str, remote: Optional[Task]):
        current = self._tasks.get(task_id)
        if current is None:
            return
        completed_at = (remote.completed_at if remote else None) or get_current_datetime()
        self._tasks[task_id] = self._confirmed(current, {"status": Status.COMPLETED, "completed_at": completed_at})
        self.events.emit(SyncEventType.TASK_UPDATED, task_id=task_id, completed=True)
    
    async def complete(self, task_id: str) -> TaskResponse:
        """
        Mark a task completed
        
        Args:
            task_id: Task ID
            
        Returns:
            TaskResponse with the completed task
        """
        async with self._lock_for(task_id):
            try:
                if task_id not in self._tasks:
                    raise ValidationError(f"Task {task_id} not found")
                self._require_confirmed(task_id)
            except TaskSyncError as e:
                return self._rejected(e)
            
            self._set_sync_status(task_id, SyncStatus.SYNCING)
            response = await self.client.complete_task(task_id)
            if not response.success:
                self._set_sync_status(task_id, SyncStatus.ERROR)
                self._report_failure(task_id, response.error)
                return response
            
            self._apply_completion(task_id, response.task)
            return TaskResponse(success=True, task=self._tasks[task_id], message=response.message)
    
    async def _bulk(self, task_ids: List[str], action: str) -> BatchResult:
        unique_ids = list(dict.fromkeys(task_ids))
        known = [task_id for task_id in unique_ids if task_id in self._tasks and not is_local_id(task_id)]
        missing = [task_id for task_id in unique_ids if task_id not in known]
        
        async with AsyncExitStack() as stack:
            # Sorted acquisition keeps concurrent bulk calls from deadlocking
            for task_id in sorted(known):
                await stack.enter_async_context(self._lock_for(task_id))
            
            for task_id in known:
                self._set_sync_status(task_id, SyncStatus.SYNCING)
            
            if action == "complete":
                result = await self.client.bulk_complete(known)
            else:
                result = await self.client.bulk_delete(known)
            
            for task_id in result.succeeded:
                if action == "complete":
                    self._apply_completion(task_id, result.tasks.get(task_id))
                elif self._tasks.pop(task_id, None) is not None:
                    self.events.emit(SyncEventType.TASK_REMOVED, task_id=task_id)
            
            for failure in result.failed:
                self._set_sync_status(failure.id, SyncStatus.ERROR)
        
        result.requested = unique_ids
        result.failed.extend(
            BatchFailure(id=task_id, reason="Task not found or not confirmed by Motion")
            for task_id in missing
        )
        
        if result.failed:
            self.events.emit(
                SyncEventType.OPERATION_FAILED,
                message=f"Bulk {action}: {result.success_count} of {len(unique_ids)} succeeded",
                error_type=ErrorType.PARTIAL.value,
                failed=[failure.id for failure in result.failed],
            )
        return result
    
    async def bulk_complete(self, task_ids: List[str]) -> BatchResult:
        """
        Complete several tasks
        
        Only the confirmed subset changes locally; the result tells the caller
        how many succeeded and why the others failed.
        
        Args:
            task_ids: Tasks to complete
            
        Returns:
            BatchResult
        """
        return await self._bulk(task_ids, "complete")
    
    async def bulk_delete(self, task_ids: List[str]) -> BatchResult:
        """Delete several tasks; only confirmed deletions leave the collection"""
        return await self._bulk(task_ids, "delete")
    
    def filter(self, criteria: Optional[TaskFilter] = None, **kwargs) -> List[Task]:
        """
        Filter tasks; all given criteria must match
        
        Args:
            criteria: TaskFilter, or its fields as keyword arguments
            
        Returns:
            Matching tasks
        """
        if criteria is None:
            criteria = TaskFilter(**kwargs)
        return filter_tasks(self._tasks.values(), criteria)
    
    def sort(self, by: Union[SortKey, str], tasks: Optional[List[Task]] = None) -> List[Task]:
        """Sort the collection (or the given tasks)"""
        return sort_tasks(self.tasks if tasks is None else tasks, by)
    
    def stats(self, now: Optional[datetime] = None) -> TaskStats:
        """Aggregate statistics over the collection"""
        return calculate_stats(self._tasks.values(), now)
    
    def sync_summary(self, window_minutes: Optional[int] = None) -> SyncSummary:
        """Operation counts for sync-status display"""
        if window_minutes is None:
            return self.operation_log.summarize()
        return self.operation_log.summarize(window_minutes)
