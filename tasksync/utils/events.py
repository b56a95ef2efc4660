"""
Typed event channel the UI layer subscribes to
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field
from tasksync.utils.date_utils import get_current_datetime
from tasksync.utils.logger import logger


class SyncEventType(str, Enum):
    """Kinds of events published by the engine"""
    TASK_ADDED = "task_added"
    TASK_UPDATED = "task_updated"
    TASK_REMOVED = "task_removed"
    SYNC_STATUS_CHANGED = "sync_status_changed"
    OPERATION_FAILED = "operation_failed"
    TASKS_REFRESHED = "tasks_refreshed"
    BLOCKS_UPDATED = "blocks_updated"
    ACTIVE_BLOCK_CHANGED = "active_block_changed"


# Events after which derived views (time blocks) must be rebuilt
COLLECTION_EVENTS = frozenset({
    SyncEventType.TASK_ADDED,
    SyncEventType.TASK_UPDATED,
    SyncEventType.TASK_REMOVED,
    SyncEventType.TASKS_REFRESHED,
})


class SyncEvent(BaseModel):
    """One published event"""
    type: SyncEventType
    task_id: Optional[str] = None
    message: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=get_current_datetime)


Listener = Callable[[SyncEvent], None]


class EventChannel:
    """Synchronous publish/subscribe channel"""
    
    def __init__(self):
        self._listeners: List[Tuple[Optional[SyncEventType], Listener]] = []
        self.logger = logger
    
    def subscribe(self, callback: Listener, event_type: Optional[SyncEventType] = None) -> Callable[[], None]:
        """
        Register a listener
        
        Args:
            callback: Called with every matching event
            event_type: Only deliver this type (all types when omitted)
            
        Returns:
            Function that removes the listener
        """
        entry = (event_type, callback)
        self._listeners.append(entry)
        
        def unsubscribe():
            if entry in self._listeners:
                self._listeners.remove(entry)
        
        return unsubscribe
    
    def publish(self, event: SyncEvent):
        """Deliver an event to matching listeners"""
        for event_type, callback in list(self._listeners):
            if event_type is not None and event_type != event.type:
                continue
            try:
                callback(event)
            except Exception:
                self.logger.exception(f"[EventChannel] Listener failed on {event.type.value} event")
    
    def emit(self, event_type: SyncEventType, task_id: Optional[str] = None, message: Optional[str] = None, **payload):
        """Build and publish an event"""
        self.publish(SyncEvent(type=event_type, task_id=task_id, message=message, payload=payload))
    
    def __len__(self) -> int:
        return len(self._listeners)
