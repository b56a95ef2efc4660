"""
Task model
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from tasksync.config.constants import TASK_DEFAULT_CATEGORY
from tasksync.utils.date_utils import get_current_datetime, parse_datetime


class Priority(str, Enum):
    """Task priority, most important first"""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    
    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class Status(str, Enum):
    """Task workflow status"""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Recurrence(str, Enum):
    """Task recurrence"""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SyncStatus(str, Enum):
    """Confirmation state of a task with the remote service"""
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


def _coerce_enum(enum_cls, value, default):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default


class Subtask(BaseModel):
    """Checklist item kept locally (the remote service has no subtasks)"""
    
    model_config = ConfigDict(populate_by_name=True)
    
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    completed: bool = False
    created_at: datetime = Field(default_factory=get_current_datetime, alias="createdAt")


class Task(BaseModel):
    """Task model"""
    
    model_config = ConfigDict(populate_by_name=True)
    
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    description: Optional[str] = None
    notes: Optional[str] = None
    completed: bool = False
    created_at: datetime = Field(default_factory=get_current_datetime, alias="createdAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    priority: Priority = Priority.MEDIUM
    status: Status = Status.PENDING
    category: str = TASK_DEFAULT_CATEGORY
    workspace: Optional[str] = None
    duration: Optional[int] = None  # minutes
    estimated_time: Optional[int] = Field(None, alias="estimatedTime")  # minutes
    actual_time: Optional[int] = Field(None, alias="actualTime")  # minutes
    subtasks: List[Subtask] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    recurrence: Recurrence = Recurrence.NONE
    reminder: Optional[datetime] = None
    sync_status: SyncStatus = Field(SyncStatus.PENDING, alias="syncStatus")
    last_sync_at: Optional[datetime] = Field(None, alias="lastSyncAt")
    version: int = 0
    
    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> Priority:
        return _coerce_enum(Priority, value, Priority.MEDIUM)
    
    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Status:
        return _coerce_enum(Status, value, Status.PENDING)
    
    @field_validator("recurrence", mode="before")
    @classmethod
    def _recurrence(cls, value: Any) -> Recurrence:
        return _coerce_enum(Recurrence, value, Recurrence.NONE)
    
    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return TASK_DEFAULT_CATEGORY
    
    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at(cls, value: Any) -> datetime:
        return parse_datetime(value) or get_current_datetime()
    
    @field_validator("due_date", "completed_at", "reminder", "last_sync_at", mode="before")
    @classmethod
    def _optional_datetime(cls, value: Any) -> Optional[datetime]:
        return parse_datetime(value)
    
    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> List[str]:
        if not value:
            return []
        seen = []
        for tag in value:
            tag = str(tag).strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen
    
    @model_validator(mode="after")
    def _sync_derived_fields(self) -> "Task":
        # An explicit completed flag without an explicit status drives the status
        if "completed" in self.model_fields_set and "status" not in self.model_fields_set:
            if self.completed:
                self.status = Status.COMPLETED
            elif self.status == Status.COMPLETED:
                self.status = Status.PENDING
        self.completed = self.status == Status.COMPLETED
        
        if self.duration is None and self.estimated_time is not None:
            self.duration = self.estimated_time
        elif self.estimated_time is None and self.duration is not None:
            self.estimated_time = self.duration
        return self
    
    @property
    def effective_duration(self) -> int:
        """Minutes to schedule: duration, else the estimate, else 0"""
        return self.duration or self.estimated_time or 0
    
    def with_changes(self, changes: Dict[str, Any]) -> "Task":
        """
        Return a validated copy with changes applied
        
        A changed duration or estimate propagates to the other one unless both
        are given, and a changed completed flag moves the status with it.
        
        Args:
            changes: Field values keyed by field name
            
        Returns:
            New Task instance
        """
        data = self.model_dump()
        data.update(changes)
        
        if "duration" in changes and "estimated_time" not in changes:
            data["estimated_time"] = changes["duration"]
        elif "estimated_time" in changes and "duration" not in changes:
            data["duration"] = changes["estimated_time"]
        
        if "completed" in changes and "status" not in changes:
            if changes["completed"]:
                data["status"] = Status.COMPLETED
            elif self.status == Status.COMPLETED:
                data["status"] = Status.PENDING
        
        return Task.model_validate(data)


class Principal(BaseModel):
    """Authenticated user of the remote service"""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
