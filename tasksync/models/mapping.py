"""
Translation between local tasks and Motion task records

Every mapping is total: unknown remote values fall back to a safe default
instead of failing, so a new enum value on the remote side never drops a task.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from tasksync.config.constants import TASK_DEFAULT_CATEGORY, TASK_DEFAULT_DURATION, TASK_UNTITLED
from tasksync.models.task import Priority, Recurrence, Status, SyncStatus, Task
from tasksync.utils.date_utils import format_iso, get_current_datetime, parse_datetime

REMOTE_PRIORITY_TO_LOCAL = {
    "asap": Priority.URGENT,
    "urgent": Priority.URGENT,
    "high": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "low": Priority.LOW,
}

LOCAL_PRIORITY_TO_REMOTE = {
    Priority.URGENT: "ASAP",
    Priority.HIGH: "HIGH",
    Priority.MEDIUM: "MEDIUM",
    Priority.LOW: "LOW",
}

REMOTE_STATUS_TO_LOCAL = {
    "completed": Status.COMPLETED,
    "done": Status.COMPLETED,
    "in progress": Status.IN_PROGRESS,
    "in-progress": Status.IN_PROGRESS,
    "not started": Status.PENDING,
    "todo": Status.PENDING,
}

LOCAL_STATUS_TO_REMOTE = {
    Status.PENDING: "Not Started",
    Status.IN_PROGRESS: "In Progress",
    Status.COMPLETED: "Completed",
}

# Local field name -> accepted spellings
FIELD_ALIASES = {
    "dueDate": "due_date",
    "estimatedTime": "estimated_time",
    "actualTime": "actual_time",
    "createdAt": "created_at",
    "completedAt": "completed_at",
    "syncStatus": "sync_status",
    "lastSyncAt": "last_sync_at",
}

# Fields the remote service knows about; everything else stays local
REMOTE_FIELDS = frozenset({
    "title",
    "description",
    "due_date",
    "priority",
    "status",
    "workspace",
    "duration",
    "estimated_time",
    "tags",
    "recurrence",
    "reminder",
})


def priority_from_remote(value: Any) -> Priority:
    """Map a Motion priority (e.g. "ASAP") to a local priority"""
    if isinstance(value, Priority):
        return value
    if value is None:
        return Priority.MEDIUM
    return REMOTE_PRIORITY_TO_LOCAL.get(str(value).strip().lower(), Priority.MEDIUM)


def priority_to_remote(priority: Any) -> str:
    """Map a local priority to the Motion value (urgent -> "ASAP")"""
    return LOCAL_PRIORITY_TO_REMOTE[priority_from_remote(priority)]


def status_from_remote(value: Any) -> Status:
    """
    Map a Motion status to a local status
    
    Motion sends the status as an object ({"name": ..., "isResolvedStatus": ...})
    but a bare string is accepted too.
    """
    if isinstance(value, Status):
        return value
    if isinstance(value, dict):
        if value.get("isResolvedStatus") is True:
            return Status.COMPLETED
        value = value.get("name")
    if not value:
        return Status.PENDING
    return REMOTE_STATUS_TO_LOCAL.get(str(value).strip().lower(), Status.PENDING)


def status_to_remote(status: Any) -> str:
    """Map a local status to the Motion status name"""
    if not isinstance(status, Status):
        try:
            status = Status(str(status).strip().lower())
        except ValueError:
            status = Status.PENDING
    return LOCAL_STATUS_TO_REMOTE[status]


def recurrence_from_remote(value: Any) -> Recurrence:
    """Map a Motion recurringType to a local recurrence"""
    if isinstance(value, Recurrence):
        return value
    if not value:
        return Recurrence.NONE
    try:
        return Recurrence(str(value).strip().lower())
    except ValueError:
        return Recurrence.NONE


def recurrence_to_remote(value: Any) -> Optional[str]:
    """Map a local recurrence to Motion (none has no remote value)"""
    recurrence = recurrence_from_remote(value)
    if recurrence == Recurrence.NONE:
        return None
    return recurrence.value


def _minutes(value: Any) -> Optional[int]:
    # Motion also uses "NONE" / "REMINDER" for durations
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _label_names(labels: Any) -> List[str]:
    names = []
    for label in labels or []:
        if isinstance(label, dict):
            label = label.get("name")
        if label:
            names.append(str(label))
    return names


def _workspace_id(record: Dict[str, Any]) -> Optional[str]:
    workspace = record.get("workspace")
    if isinstance(workspace, dict) and workspace.get("id"):
        return str(workspace["id"])
    if record.get("workspaceId"):
        return str(record["workspaceId"])
    return None


def task_from_remote(record: Dict[str, Any]) -> Task:
    """
    Convert a Motion task record to a local Task
    
    Absent fields are treated as unset.
    
    Args:
        record: Remote task record
        
    Returns:
        Task marked as synced
    """
    labels = _label_names(record.get("labels"))
    now = get_current_datetime()
    
    return Task(
        id=str(record.get("id") or f"motion_{uuid.uuid4().hex}"),
        title=record.get("name") or TASK_UNTITLED,
        description=record.get("description") or None,
        notes=record.get("notes") or None,
        status=status_from_remote(record.get("status")),
        created_at=parse_datetime(record.get("createdTime") or record.get("createdAt")) or now,
        completed_at=parse_datetime(record.get("completedTime")),
        due_date=parse_datetime(record.get("dueDate")),
        priority=priority_from_remote(record.get("priority")),
        category=labels[0] if labels else TASK_DEFAULT_CATEGORY,
        workspace=_workspace_id(record),
        duration=_minutes(record.get("duration")),
        estimated_time=_minutes(record.get("estimatedTime")),
        tags=labels,
        recurrence=recurrence_from_remote(record.get("recurringType")),
        reminder=parse_datetime(record.get("reminder")),
        sync_status=SyncStatus.SYNCED,
        last_sync_at=now,
    )


def normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Accept camelCase spellings for task fields"""
    return {FIELD_ALIASES.get(key, key): value for key, value in fields.items()}


def _format_timestamp(value: Any) -> Optional[str]:
    parsed = value if isinstance(value, datetime) else parse_datetime(value)
    return format_iso(parsed) if parsed else None


def build_remote_payload(fields: Dict[str, Any], for_create: bool = False) -> Dict[str, Any]:
    """
    Build a Motion request body from local task fields
    
    Only fields present in ``fields`` are emitted. On create, None values are
    dropped; on update a present None clears the remote value. Local-only
    fields (subtasks, category, notes, actual time) are never sent.
    
    Args:
        fields: Local field values keyed by field name
        for_create: Fill the fields Motion requires on create
        
    Returns:
        Remote payload
    """
    fields = normalize_fields(fields)
    payload: Dict[str, Any] = {}
    
    if "title" in fields:
        payload["name"] = fields["title"]
    
    if "description" in fields:
        payload["description"] = fields["description"]
    
    if "due_date" in fields:
        payload["dueDate"] = _format_timestamp(fields["due_date"])
    
    if "priority" in fields:
        payload["priority"] = priority_to_remote(fields["priority"])
    
    # duration and estimated_time are the same remote field
    if fields.get("duration") is not None:
        payload["duration"] = fields["duration"]
    elif fields.get("estimated_time") is not None:
        payload["duration"] = fields["estimated_time"]
    elif "duration" in fields or "estimated_time" in fields:
        payload["duration"] = None
    
    if "workspace" in fields:
        payload["workspaceId"] = fields["workspace"]
    
    if "tags" in fields:
        payload["labels"] = list(fields["tags"] or [])
    
    if "recurrence" in fields:
        payload["recurringType"] = recurrence_to_remote(fields["recurrence"])
    
    if "reminder" in fields:
        payload["reminder"] = _format_timestamp(fields["reminder"])
    
    if "status" in fields and not for_create:
        payload["status"] = status_to_remote(fields["status"])
    
    if for_create:
        payload = {key: value for key, value in payload.items() if value is not None}
        payload.setdefault("name", TASK_UNTITLED)
        payload.setdefault("priority", LOCAL_PRIORITY_TO_REMOTE[Priority.MEDIUM])
        payload.setdefault("duration", TASK_DEFAULT_DURATION)
        if not payload.get("labels"):
            payload.pop("labels", None)
    
    return payload


def task_to_remote(task: Task) -> Dict[str, Any]:
    """Full remote representation of a task, used for optimization requests"""
    payload = build_remote_payload(
        task.model_dump(include=set(REMOTE_FIELDS)),
        for_create=True,
    )
    payload["id"] = task.id
    payload["status"] = status_to_remote(task.status)
    return payload
