"""
Result models returned by the adapter and the repository
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from tasksync.models.task import Task
from tasksync.models.time_block import TimeBlock


class ErrorType(str, Enum):
    """Category of an expected failure"""
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    VALIDATION = "validation"
    PARTIAL = "partial"
    CONFLICT = "conflict"


class ApiResponse(BaseModel):
    """Outcome of one adapter or repository call"""
    success: bool = True
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None


class TaskResponse(ApiResponse):
    """Single task outcome"""
    task: Optional[Task] = None


class TaskListResponse(ApiResponse):
    """Task list outcome"""
    tasks: List[Task] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)


class DeleteResponse(ApiResponse):
    """Delete outcome"""
    task_id: Optional[str] = None


class BlocksResponse(ApiResponse):
    """Time block outcome"""
    blocks: List[TimeBlock] = Field(default_factory=list)


class BatchFailure(BaseModel):
    """One failed id in a bulk operation"""
    id: str
    reason: str


class BatchResult(BaseModel):
    """Outcome of a bulk operation, split per id"""
    requested: List[str] = Field(default_factory=list)
    succeeded: List[str] = Field(default_factory=list)
    failed: List[BatchFailure] = Field(default_factory=list)
    tasks: Dict[str, Task] = Field(default_factory=dict)
    
    @property
    def success_count(self) -> int:
        return len(self.succeeded)
    
    @property
    def complete(self) -> bool:
        return not self.failed


class ErrorResponse(BaseModel):
    """Error response model"""
    message: str
    error_type: Optional[ErrorType] = None
    status_code: Optional[int] = None
    details: Optional[dict] = None
