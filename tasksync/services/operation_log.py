"""
Sync operation log: append-only audit trail of mutation attempts
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional
from tasksync.config.constants import (
    OPERATION_LOG_MAX_ENTRIES,
    OPERATION_RETENTION_MINUTES,
    SYNC_SUMMARY_RECENT_LIMIT,
    SYNC_SUMMARY_WINDOW_MINUTES,
)
from tasksync.models.operation import OperationStatus, SyncSummary, TaskOperation
from tasksync.utils.date_utils import get_current_datetime
from tasksync.utils.error_handler import OperationStateError
from tasksync.utils.logger import logger

ALLOWED_TRANSITIONS: Dict[OperationStatus, FrozenSet[OperationStatus]] = {
    OperationStatus.PENDING: frozenset({OperationStatus.SYNCING, OperationStatus.ERROR}),
    OperationStatus.SYNCING: frozenset({OperationStatus.COMPLETED, OperationStatus.ERROR}),
    OperationStatus.COMPLETED: frozenset(),
    OperationStatus.ERROR: frozenset(),
}


class SyncOperationLog:
    """Bounded, time-ordered log of TaskOperation records"""
    
    def __init__(
        self,
        max_entries: int = OPERATION_LOG_MAX_ENTRIES,
        retention_minutes: int = OPERATION_RETENTION_MINUTES,
        clock: Callable[[], datetime] = get_current_datetime,
    ):
        """
        Initialize operation log
        
        Args:
            max_entries: Size above which old records are dropped
            retention_minutes: Age after which records are pruned
            clock: Source of the current time
        """
        self.max_entries = max_entries
        self.retention_minutes = retention_minutes
        self.clock = clock
        self.logger = logger
        self._operations: List[TaskOperation] = []
        self._lock = threading.RLock()
    
    def __len__(self) -> int:
        return len(self._operations)
    
    @property
    def operations(self) -> List[TaskOperation]:
        """Snapshot of all records, oldest first"""
        with self._lock:
            return list(self._operations)
    
    def record(self, operation: TaskOperation) -> TaskOperation:
        """
        Append an operation with status pending
        
        Args:
            operation: Operation to append
            
        Returns:
            The appended operation
        
        Raises:
            OperationStateError: If the operation is already logged or finished
        """
        with self._lock:
            if operation.status.is_terminal or any(op.id == operation.id for op in self._operations):
                raise OperationStateError(
                    f"Operation {operation.id} ({operation.status.value}) cannot be recorded again"
                )
            operation.status = OperationStatus.PENDING
            operation.error = None
            operation.timestamp = self.clock()
            self._operations.append(operation)
            if len(self._operations) > self.max_entries:
                self._shrink()
        self.logger.debug(f"[OperationLog] Recorded {operation.type.value} operation {operation.id}")
        return operation
    
    def advance(
        self,
        operation: TaskOperation,
        status: OperationStatus,
        error: Optional[str] = None,
    ) -> TaskOperation:
        """
        Move an operation to its next status
        
        Args:
            operation: Operation to update
            status: New status
            error: Failure message, only valid with status error
            
        Returns:
            The updated operation
            
        Raises:
            OperationStateError: If the transition is not allowed
        """
        with self._lock:
            current = operation.status
            if status not in ALLOWED_TRANSITIONS[current]:
                raise OperationStateError(
                    f"Operation {operation.id}: cannot move from {current.value} to {status.value}"
                )
            if error is not None and status != OperationStatus.ERROR:
                raise OperationStateError(
                    f"Operation {operation.id}: error message given for status {status.value}"
                )
            operation.status = status
            if status == OperationStatus.ERROR:
                operation.error = error or "Unknown error"
        
        if status == OperationStatus.ERROR:
            self.logger.warning(
                f"[OperationLog] {operation.type.value} operation {operation.id} failed: {operation.error}"
            )
        return operation
    
    def summarize(self, window_minutes: int = SYNC_SUMMARY_WINDOW_MINUTES) -> SyncSummary:
        """
        Count operations per status within a time window
        
        Args:
            window_minutes: Window size, counted back from now
            
        Returns:
            SyncSummary with counts and the most recent operations
        """
        since = self.clock() - timedelta(minutes=window_minutes)
        with self._lock:
            recent = [op for op in self._operations if op.timestamp > since]
        
        counts = {status: 0 for status in OperationStatus}
        for op in recent:
            counts[op.status] += 1
        
        return SyncSummary(
            pending=counts[OperationStatus.PENDING],
            syncing=counts[OperationStatus.SYNCING],
            completed=counts[OperationStatus.COMPLETED],
            errors=counts[OperationStatus.ERROR],
            recent_operations=recent[-SYNC_SUMMARY_RECENT_LIMIT:],
        )
    
    def prune(self, max_age_minutes: Optional[int] = None) -> int:
        """
        Drop records older than the retention window
        
        Args:
            max_age_minutes: Retention window (defaults to the log's setting)
            
        Returns:
            Number of removed records
        """
        if max_age_minutes is None:
            max_age_minutes = self.retention_minutes
        cutoff = self.clock() - timedelta(minutes=max_age_minutes)
        with self._lock:
            before = len(self._operations)
            self._operations = [op for op in self._operations if op.timestamp > cutoff]
            removed = before - len(self._operations)
        if removed:
            self.logger.debug(f"[OperationLog] Pruned {removed} operations older than {max_age_minutes} minutes")
        return removed
    
    def _shrink(self):
        """Bring the log back under max_entries, oldest terminal records first"""
        self.prune()
        excess = len(self._operations) - self.max_entries
        if excess <= 0:
            return
        kept = []
        for op in self._operations:
            if excess > 0 and op.status.is_terminal:
                excess -= 1
                continue
            kept.append(op)
        self._operations = kept
    
    def for_task(self, task_id: str) -> List[TaskOperation]:
        """All recorded operations touching a task"""
        with self._lock:
            return [
                op for op in self._operations
                if op.task_id == task_id or (op.task_ids and task_id in op.task_ids)
            ]
    
    def latest(self) -> Optional[TaskOperation]:
        with self._lock:
            return self._operations[-1] if self._operations else None
