"""
Sync operation model
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict
from tasksync.utils.date_utils import get_current_datetime


class OperationType(str, Enum):
    """Kind of mutation attempt"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    COMPLETE = "complete"
    BULK = "bulk"


class OperationStatus(str, Enum):
    """Lifecycle status of an operation"""
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"
    
    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED, OperationStatus.ERROR)


class TaskOperation(BaseModel):
    """Audit record of one mutation attempt"""
    
    model_config = ConfigDict(populate_by_name=True)
    
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: OperationType
    task_id: Optional[str] = Field(None, alias="taskId")
    task_ids: Optional[List[str]] = Field(None, alias="taskIds")
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=get_current_datetime)
    status: OperationStatus = OperationStatus.PENDING
    error: Optional[str] = None


class SyncSummary(BaseModel):
    """Operation counts within a time window"""
    pending: int = 0
    syncing: int = 0
    completed: int = 0
    errors: int = 0
    recent_operations: List[TaskOperation] = Field(default_factory=list)
    
    @property
    def healthy(self) -> bool:
        return self.errors == 0
