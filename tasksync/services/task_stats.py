"""
Aggregate statistics over a task collection
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional
from pydantic import BaseModel, Field
from tasksync.models.task import Priority, Status, Task
from tasksync.utils.date_utils import ensure_aware, get_current_datetime, start_of_today


class TaskStats(BaseModel):
    """Derived counts for dashboards"""
    total: int = 0
    completed: int = 0
    overdue: int = 0
    due_today: int = 0
    due_this_week: int = 0
    due_next_week: int = 0
    no_due_date: int = 0
    by_priority: Dict[Priority, int] = Field(default_factory=lambda: {p: 0 for p in Priority})
    by_status: Dict[Status, int] = Field(default_factory=lambda: {s: 0 for s in Status})
    completion_rate: float = 0.0  # completed / total, 0 for an empty collection
    average_completion_hours: float = 0.0
    total_estimated_minutes: int = 0
    total_actual_minutes: int = 0


def calculate_stats(tasks: Iterable[Task], now: Optional[datetime] = None) -> TaskStats:
    """
    Calculate task statistics
    
    Overdue means due before now and not completed. Due today/this week/next
    week, backlog and per-priority counts only consider incomplete tasks.
    
    Args:
        tasks: Tasks to aggregate
        now: Reference time (defaults to now)
        
    Returns:
        TaskStats
    """
    tasks = list(tasks)
    now = ensure_aware(now) if now else get_current_datetime()
    today = start_of_today(now)
    tomorrow = today + timedelta(days=1)
    week_end = today + timedelta(days=7)
    next_week_end = today + timedelta(days=14)
    
    stats = TaskStats(total=len(tasks))
    completion_hours = []
    
    for task in tasks:
        stats.by_status[task.status] += 1
        stats.total_estimated_minutes += task.estimated_time or 0
        stats.total_actual_minutes += task.actual_time or 0
        
        if task.completed:
            stats.completed += 1
            if task.completed_at:
                elapsed = ensure_aware(task.completed_at) - ensure_aware(task.created_at)
                completion_hours.append(elapsed.total_seconds() / 3600)
            continue
        
        stats.by_priority[task.priority] += 1
        
        if task.due_date is None:
            stats.no_due_date += 1
            continue
        
        due = ensure_aware(task.due_date)
        if due < now:
            stats.overdue += 1
        if today <= due < tomorrow:
            stats.due_today += 1
        if today <= due < week_end:
            stats.due_this_week += 1
        elif week_end <= due < next_week_end:
            stats.due_next_week += 1
    
    if stats.total:
        stats.completion_rate = stats.completed / stats.total
    if completion_hours:
        stats.average_completion_hours = sum(completion_hours) / len(completion_hours)
    
    return stats
