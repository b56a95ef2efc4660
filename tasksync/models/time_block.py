"""
Time block model
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator


class TimeBlock(BaseModel):
    """Scheduled placement of a task on the calendar"""
    
    model_config = ConfigDict(populate_by_name=True)
    
    id: str
    task_id: str = Field(alias="taskId")
    title: str
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    color: Optional[str] = None
    
    @model_validator(mode="after")
    def _check_interval(self) -> "TimeBlock":
        if self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self
    
    @property
    def minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)
    
    def contains(self, instant: datetime) -> bool:
        return self.start_time <= instant < self.end_time
    
    def overlaps(self, other: "TimeBlock") -> bool:
        return self.start_time < other.end_time and other.start_time < self.end_time


class ScheduleConflict(BaseModel):
    """Task that could not be placed without overlapping another block"""
    
    model_config = ConfigDict(populate_by_name=True)
    
    task_id: str = Field(alias="taskId")
    title: str
    requested_start: datetime = Field(alias="requestedStart")
    reason: str
