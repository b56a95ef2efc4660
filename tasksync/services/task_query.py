"""
Task filtering and sorting
"""

import locale
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional
from pydantic import BaseModel
from tasksync.models.task import Priority, Status, Task
from tasksync.utils.date_utils import ensure_aware, get_current_datetime, start_of_today


class DateRange(str, Enum):
    """Due date presets"""
    TODAY = "today"
    UPCOMING = "upcoming"
    OVERDUE = "overdue"
    WEEK = "week"
    MONTH = "month"
    NO_DATE = "no-date"


class SortKey(str, Enum):
    """Supported sort orders"""
    PRIORITY = "priority"
    DUE_DATE = "dueDate"
    CREATED_AT = "createdAt"
    TITLE = "title"
    
    @classmethod
    def _missing_(cls, value):
        aliases = {"due_date": cls.DUE_DATE, "created_at": cls.CREATED_AT}
        return aliases.get(value)


class TaskFilter(BaseModel):
    """
    Filter criteria; every given criterion must match (logical AND)
    
    An absent criterion imposes no constraint.
    """
    category: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    tag: Optional[str] = None
    due_after: Optional[datetime] = None
    due_before: Optional[datetime] = None
    date_range: Optional[DateRange] = None
    search: Optional[str] = None
    
    def matches(self, task: Task, now: Optional[datetime] = None) -> bool:
        if self.category is not None and task.category != self.category:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.status is not None and task.status != self.status:
            return False
        if self.tag is not None and self.tag not in task.tags:
            return False
        
        due = ensure_aware(task.due_date) if task.due_date else None
        if self.due_after is not None or self.due_before is not None:
            if due is None:
                return False
            if self.due_after is not None and due < ensure_aware(self.due_after):
                return False
            if self.due_before is not None and due > ensure_aware(self.due_before):
                return False
        
        if self.date_range is not None and not _in_date_range(due, self.date_range, now):
            return False
        
        if self.search:
            needle = self.search.casefold()
            haystack = f"{task.title}\n{task.description or ''}".casefold()
            if needle not in haystack:
                return False
        
        return True


def _in_date_range(due: Optional[datetime], date_range: DateRange, now: Optional[datetime]) -> bool:
    if due is None:
        return date_range == DateRange.NO_DATE
    
    today = start_of_today(now)
    tomorrow = today + timedelta(days=1)
    
    if date_range == DateRange.TODAY:
        return today <= due < tomorrow
    if date_range == DateRange.OVERDUE:
        return due < today
    if date_range == DateRange.UPCOMING:
        return due >= tomorrow
    if date_range == DateRange.WEEK:
        return today <= due < today + timedelta(days=7)
    if date_range == DateRange.MONTH:
        return today <= due < today + timedelta(days=30)
    return False


def filter_tasks(tasks: Iterable[Task], criteria: TaskFilter, now: Optional[datetime] = None) -> List[Task]:
    """
    Filter tasks by criteria
    
    Args:
        tasks: Tasks to filter
        criteria: Filter criteria
        now: Reference time for date presets (defaults to now)
        
    Returns:
        Matching tasks in input order
    """
    now = now or get_current_datetime()
    return [task for task in tasks if criteria.matches(task, now)]


def _title_key(task: Task):
    return (locale.strxfrm(task.title.casefold()), task.title)


def sort_tasks(tasks: Iterable[Task], by: SortKey) -> List[Task]:
    """
    Sort tasks; ties keep their input order
    
    Args:
        tasks: Tasks to sort
        by: priority (urgent first), dueDate (undated last), createdAt
            (newest first) or title (locale-aware)
            
    Returns:
        New sorted list
    """
    by = SortKey(by)
    tasks = list(tasks)
    
    if by == SortKey.PRIORITY:
        return sorted(tasks, key=lambda task: task.priority.rank)
    if by == SortKey.DUE_DATE:
        return sorted(
            tasks,
            key=lambda task: (task.due_date is None, ensure_aware(task.due_date) if task.due_date else datetime.min),
        )
    if by == SortKey.CREATED_AT:
        # sorted() with reverse=True stays stable for equal keys
        return sorted(tasks, key=lambda task: ensure_aware(task.created_at), reverse=True)
    return sorted(tasks, key=_title_key)
