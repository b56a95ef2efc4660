"""
Motion API client (remote task adapter)
"""

import asyncio
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional
import httpx
from tasksync.api.base_client import BaseAPIClient, JSONResponse
from tasksync.config.settings import settings
from tasksync.config.constants import (
    MOTION_API_KEY_HEADER,
    MOTION_OPTIMIZE_ENDPOINT,
    MOTION_TASKS_ENDPOINT,
    MOTION_USER_ENDPOINT,
    MOTION_WORKSPACES_ENDPOINT,
)
from tasksync.models.mapping import (
    build_remote_payload,
    normalize_fields,
    status_to_remote,
    task_from_remote,
    task_to_remote,
)
from tasksync.models.operation import OperationStatus, OperationType, TaskOperation
from tasksync.models.response import (
    ApiResponse,
    BatchFailure,
    BatchResult,
    BlocksResponse,
    DeleteResponse,
    TaskListResponse,
    TaskResponse,
)
from tasksync.models.task import Principal, Status, Task
from tasksync.models.time_block import TimeBlock
from tasksync.services.operation_log import SyncOperationLog
from tasksync.utils.date_utils import get_current_datetime, parse_datetime
from tasksync.utils.error_handler import (
    APIError,
    AuthenticationError,
    ValidationError,
    classify_error,
    describe_error,
)


def _ids(values: Any) -> List[str]:
    ids = []
    for value in values or []:
        if isinstance(value, dict):
            value = value.get("id")
        if value:
            ids.append(str(value))
    return ids


def is_owned_by(record: Dict[str, Any], principal: Principal) -> bool:
    """
    Check that a remote task belongs to the principal
    
    Shared/team tasks are never owned. A task with assignees is owned only if
    the principal is one of them; otherwise its creator decides.
    """
    if record.get("isShared") or record.get("shared") or record.get("isTeamTask"):
        return False
    
    assignees = _ids(record.get("assignees"))
    if record.get("assigneeId"):
        assignees.append(str(record["assigneeId"]))
    if assignees:
        return principal.id in assignees
    
    creator = record.get("creator")
    creator_id = creator.get("id") if isinstance(creator, dict) else record.get("creatorId")
    if creator_id:
        return str(creator_id) == principal.id
    return True


class MotionClient(BaseAPIClient):
    """Client for the Motion REST API"""
    
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        principal: Optional[Principal] = None,
        operation_log: Optional[SyncOperationLog] = None,
        **kwargs,
    ):
        """
        Initialize Motion client
        
        Args:
            api_key: Motion API key (defaults to MOTION_API_KEY)
            base_url: API base URL (defaults to MOTION_API_BASE_URL)
            principal: Authenticated user, if the session provider already knows it
            operation_log: Log receiving one operation per mutation
            **kwargs: Passed to BaseAPIClient (transport, timeout, retries)
        """
        super().__init__(base_url or settings.MOTION_API_BASE_URL, **kwargs)
        self.api_key = api_key if api_key is not None else settings.MOTION_API_KEY
        self.principal = principal
        self.operation_log = operation_log if operation_log is not None else SyncOperationLog()
    
    def set_api_key(self, api_key: Optional[str]):
        """Replace the API key; the cached principal belongs to the old key"""
        self.api_key = api_key
        self.principal = None
    
    def set_principal(self, principal: Optional[Principal]):
        """Set the current user supplied by the session provider"""
        self.principal = principal
    
    def has_api_key(self) -> bool:
        return bool(self.api_key)
    
    def _require_session(self):
        if not self.api_key:
            raise AuthenticationError(
                "Motion API key not configured. Please connect your Motion account in Settings."
            )
    
    def _get_headers(self) -> Dict[str, str]:
        """Get request headers with authentication"""
        return {
            MOTION_API_KEY_HEADER: self.api_key or "",
            "Content-Type": "application/json",
        }
    
    async def _execute(
        self,
        operation: TaskOperation,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Run one remote call under an operation record
        
        The operation moves pending -> syncing -> completed, or to error when
        anything raises. The exception is re-raised for the caller to convert.
        """
        self.operation_log.record(operation)
        try:
            self._require_session()
        except AuthenticationError as e:
            self.operation_log.advance(operation, OperationStatus.ERROR, str(e))
            raise
        
        self.operation_log.advance(operation, OperationStatus.SYNCING)
        try:
            result = await call()
        except Exception as e:
            self.operation_log.advance(operation, OperationStatus.ERROR, describe_error(e))
            raise
        self.operation_log.advance(operation, OperationStatus.COMPLETED)
        return result
    
    def _failure(self, response_cls, error: Exception, message: str, **fields) -> ApiResponse:
        """Convert an exception into a failed result of the given type"""
        error_text = describe_error(error)
        self.logger.error(f"[MotionClient] {message}: {error_text}")
        return response_cls(
            success=False,
            error=error_text,
            error_type=classify_error(error),
            message=message,
            **fields,
        )
    
    async def authenticate(self) -> Principal:
        """
        Resolve the current user from the API key
        
        Returns:
            Principal for the key
            
        Raises:
            AuthenticationError: If there is no key or the key is rejected
        """
        self._require_session()
        try:
            response = await self.get(MOTION_USER_ENDPOINT, headers=self._get_headers())
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                raise AuthenticationError(f"Motion rejected the API key: {describe_error(e)}") from e
            raise
        
        if not isinstance(response, dict) or not response.get("id"):
            raise AuthenticationError("Motion did not return the current user")
        
        self.principal = Principal(
            id=str(response["id"]),
            email=response.get("email"),
            name=response.get("name"),
        )
        self.logger.info(f"[MotionClient] Authenticated as {self.principal.email or self.principal.id}")
        return self.principal
    
    async def get_current_user(self) -> ApiResponse:
        """Fetch the current user as a result"""
        try:
            principal = await self.authenticate()
        except Exception as e:
            return self._failure(ApiResponse, e, "Failed to retrieve current user information")
        return ApiResponse(success=True, message=f"Connected as {principal.email or principal.id}")
    
    async def get_workspaces(self) -> List[Dict[str, Any]]:
        """
        Get workspaces visible to the current user
        
        Returns:
            List of workspace records
        """
        self._require_session()
        response = await self.get(MOTION_WORKSPACES_ENDPOINT, headers=self._get_headers())
        if isinstance(response, list):
            return response
        return response.get("workspaces", [])
    
    async def fetch_tasks(self, workspace_id: Optional[str] = None) -> TaskListResponse:
        """
        Fetch the current user's own tasks
        
        The request asks only for tasks assigned to or created by the user and
        excludes shared and teammate tasks. Records that still belong to other
        people are dropped here as well.
        
        Args:
            workspace_id: Restrict to one workspace
            
        Returns:
            TaskListResponse with converted tasks
        """
        operation = TaskOperation(type=OperationType.BULK, data={"workspaceId": workspace_id})
        
        async def call():
            if self.principal is None:
                await self.authenticate()
            params = {
                "userId": self.principal.id,
                "includeAssigned": "true",
                "includeCreated": "true",
                "includeShared": "false",
                "excludeTeammate": "true",
            }
            if workspace_id:
                params["workspaceId"] = workspace_id
            return await self.get(MOTION_TASKS_ENDPOINT, headers=self._get_headers(), params=params)
        
        try:
            response = await self._execute(operation, call)
        except Exception as e:
            return self._failure(TaskListResponse, e, "Failed to fetch tasks from Motion")
        
        records: List[Any] = response if isinstance(response, list) else response.get("tasks") or []
        remote_meta = response.get("meta") if isinstance(response, dict) else None
        
        owned = [
            record for record in records
            if isinstance(record, dict) and is_owned_by(record, self.principal)
        ]
        excluded = len(records) - len(owned)
        if excluded:
            self.logger.info(f"[MotionClient] Excluded {excluded} tasks that belong to other users")
        
        tasks = [task_from_remote(record) for record in owned]
        meta = dict(remote_meta or {})
        meta.update({"total": len(tasks), "excluded": excluded})
        
        return TaskListResponse(
            success=True,
            tasks=tasks,
            meta=meta,
            message=f"Successfully fetched {len(tasks)} tasks assigned to you from Motion",
        )
    
    async def create_task(self, fields: Dict[str, Any]) -> TaskResponse:
        """
        Create a new task
        
        Args:
            fields: Local task fields; absent fields are not sent
            
        Returns:
            TaskResponse with the confirmed task (remote id, synced)
        """
        fields = normalize_fields(fields)
        payload = build_remote_payload(fields, for_create=True)
        operation = TaskOperation(type=OperationType.CREATE, data=payload)
        
        async def call():
            response = await self.post(MOTION_TASKS_ENDPOINT, headers=self._get_headers(), json_data=payload)
            created = task_from_remote(response)
            # Known before the record turns completed
            operation.task_id = created.id
            return created
        
        try:
            task = await self._execute(operation, call)
        except Exception as e:
            return self._failure(TaskResponse, e, "Failed to create task in Motion")
        
        return TaskResponse(success=True, task=task, message="Task created successfully in Motion")
    
    async def update_task(self, task_id: str, changes: Dict[str, Any]) -> TaskResponse:
        """
        Update existing task
        
        Only the given fields are sent, so stale local values never overwrite
        remote state.
        
        Args:
            task_id: Task ID
            changes: Changed local fields
            
        Returns:
            TaskResponse with the updated task
        """
        changes = normalize_fields(changes)
        payload = build_remote_payload(changes)
        operation = TaskOperation(type=OperationType.UPDATE, task_id=task_id, data=payload)
        
        async def call():
            if not payload:
                raise ValidationError("No fields to update")
            return await self.patch(
                f"{MOTION_TASKS_ENDPOINT}/{task_id}",
                headers=self._get_headers(),
                json_data=payload,
            )
        
        try:
            response = await self._execute(operation, call)
            task = task_from_remote(response)
        except Exception as e:
            return self._failure(TaskResponse, e, "Failed to update task in Motion")
        
        # The remote only knows one duration; mirror it into whichever side was not given
        if "duration" in changes and "estimated_time" not in changes:
            task = task.with_changes({"estimated_time": task.duration})
        elif "estimated_time" in changes and "duration" not in changes:
            task = task.with_changes({"duration": task.estimated_time})
        
        return TaskResponse(success=True, task=task, message="Task updated successfully in Motion")
    
    async def delete_task(self, task_id: str) -> DeleteResponse:
        """
        Delete task
        
        Args:
            task_id: Task ID
            
        Returns:
            DeleteResponse
        """
        operation = TaskOperation(type=OperationType.DELETE, task_id=task_id)
        
        try:
            await self._execute(
                operation,
                lambda: self.delete(f"{MOTION_TASKS_ENDPOINT}/{task_id}", headers=self._get_headers()),
            )
        except Exception as e:
            return self._failure(DeleteResponse, e, "Failed to delete task from Motion", task_id=task_id)
        
        return DeleteResponse(success=True, task_id=task_id, message="Task deleted successfully from Motion")
    
    async def complete_task(self, task_id: str) -> TaskResponse:
        """
        Mark task as completed
        
        Args:
            task_id: Task ID to complete
            
        Returns:
            TaskResponse with the completed task
        """
        payload = {"status": status_to_remote(Status.COMPLETED)}
        operation = TaskOperation(type=OperationType.COMPLETE, task_id=task_id, data=payload)
        
        try:
            response = await self._execute(
                operation,
                lambda: self.patch(
                    f"{MOTION_TASKS_ENDPOINT}/{task_id}",
                    headers=self._get_headers(),
                    json_data=payload,
                ),
            )
            task = task_from_remote(response if response else {"id": task_id})
        except Exception as e:
            return self._failure(TaskResponse, e, "Failed to complete task in Motion")
        
        if task.status != Status.COMPLETED:
            task = task.with_changes({"status": Status.COMPLETED})
        if task.completed_at is None:
            task = task.with_changes({"completed_at": get_current_datetime()})
        
        return TaskResponse(success=True, task=task, message="Task marked as completed in Motion")
    
    async def _bulk(
        self,
        task_ids: List[str],
        action: str,
        call: Callable[[str], Awaitable[ApiResponse]],
    ) -> BatchResult:
        """Run one request per id concurrently under a single bulk operation"""
        unique_ids = list(dict.fromkeys(task_ids))
        operation = self.operation_log.record(
            TaskOperation(type=OperationType.BULK, task_ids=unique_ids, data={"action": action})
        )
        result = BatchResult(requested=unique_ids)
        
        try:
            self._require_session()
        except AuthenticationError as e:
            self.operation_log.advance(operation, OperationStatus.ERROR, str(e))
            result.failed = [BatchFailure(id=task_id, reason=str(e)) for task_id in unique_ids]
            return result
        
        self.operation_log.advance(operation, OperationStatus.SYNCING)
        responses = await asyncio.gather(*(call(task_id) for task_id in unique_ids))
        
        for task_id, response in zip(unique_ids, responses):
            if response.success:
                result.succeeded.append(task_id)
                task = getattr(response, "task", None)
                if task is not None:
                    result.tasks[task_id] = task
            else:
                result.failed.append(BatchFailure(id=task_id, reason=response.error or "Unknown error"))
        
        if result.failed:
            self.operation_log.advance(
                operation,
                OperationStatus.ERROR,
                f"{len(result.failed)} of {len(unique_ids)} tasks failed to {action}",
            )
        else:
            self.operation_log.advance(operation, OperationStatus.COMPLETED)
        
        self.logger.info(
            f"[MotionClient] Bulk {action}: {result.success_count} succeeded, {len(result.failed)} failed"
        )
        return result
    
    async def bulk_complete(self, task_ids: List[str]) -> BatchResult:
        """
        Complete several tasks with concurrent requests
        
        Args:
            task_ids: Tasks to complete
            
        Returns:
            BatchResult split into succeeded and failed ids
        """
        return await self._bulk(task_ids, "complete", self.complete_task)
    
    async def bulk_delete(self, task_ids: List[str]) -> BatchResult:
        """Delete several tasks with concurrent requests"""
        return await self._bulk(task_ids, "delete", self.delete_task)
    
    def _parse_block(self, raw: Any, titles: Dict[str, str]) -> Optional[TimeBlock]:
        if not isinstance(raw, dict) or not raw.get("taskId"):
            return None
        task_id = str(raw["taskId"])
        start = parse_datetime(raw.get("startTime"))
        end = parse_datetime(raw.get("endTime"))
        if start is None or end is None or end <= start:
            self.logger.warning(f"[MotionClient] Dropping invalid optimized block for task {task_id}: {raw}")
            return None
        return TimeBlock(
            id=str(raw.get("id") or f"block-{task_id}"),
            task_id=task_id,
            title=raw.get("title") or titles.get(task_id) or task_id,
            start_time=start,
            end_time=end,
            color=raw.get("color"),
        )
    
    async def optimize_time_blocks(self, tasks: List[Task], day: Optional[date] = None) -> BlocksResponse:
        """
        Ask the optimizer for a full replacement set of time blocks
        
        Args:
            tasks: Current task set
            day: Day being scheduled
            
        Returns:
            BlocksResponse with the optimized blocks
        """
        body: Dict[str, Any] = {"tasks": [task_to_remote(task) for task in tasks]}
        if day is not None:
            body["date"] = day.isoformat()
        operation = TaskOperation(
            type=OperationType.BULK,
            task_ids=[task.id for task in tasks],
            data={"action": "optimize"},
        )
        
        async def call():
            response = await self.post(MOTION_OPTIMIZE_ENDPOINT, headers=self._get_headers(), json_data=body)
            if not isinstance(response, dict) or not isinstance(response.get("optimizedBlocks"), list):
                raise APIError("Optimizer response has no optimizedBlocks")
            return response
        
        try:
            response: JSONResponse = await self._execute(operation, call)
        except Exception as e:
            return self._failure(BlocksResponse, e, "Failed to optimize schedule")
        
        titles = {task.id: task.title for task in tasks}
        blocks = [
            block for block in (self._parse_block(raw, titles) for raw in response["optimizedBlocks"])
            if block is not None
        ]
        return BlocksResponse(success=True, blocks=blocks, message="Schedule optimized")
