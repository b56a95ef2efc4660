"""
Tests for the event channel
"""

import logging
from tasksync.utils.events import EventChannel, SyncEvent, SyncEventType


def test_subscribers_receive_events():
    channel = EventChannel()
    received = []
    channel.subscribe(received.append)
    
    channel.emit(SyncEventType.TASK_ADDED, task_id="t1", optimistic=True)
    
    assert len(received) == 1
    assert received[0].task_id == "t1"
    assert received[0].payload == {"optimistic": True}


def test_typed_subscription_filters_events():
    channel = EventChannel()
    removed = []
    channel.subscribe(removed.append, SyncEventType.TASK_REMOVED)
    
    channel.emit(SyncEventType.TASK_ADDED, task_id="t1")
    channel.publish(SyncEvent(type=SyncEventType.TASK_REMOVED, task_id="t1"))
    
    assert [event.type for event in removed] == [SyncEventType.TASK_REMOVED]


def test_unsubscribe():
    channel = EventChannel()
    received = []
    unsubscribe = channel.subscribe(received.append)
    
    unsubscribe()
    unsubscribe()
    channel.emit(SyncEventType.TASKS_REFRESHED)
    
    assert received == []
    assert len(channel) == 0


def test_failing_listener_does_not_stop_others(caplog):
    channel = EventChannel()
    received = []
    
    def broken(event):
        raise RuntimeError("listener bug")
    
    channel.subscribe(broken)
    channel.subscribe(received.append)
    
    with caplog.at_level(logging.ERROR, logger="tasksync"):
        channel.emit(SyncEventType.TASK_UPDATED, task_id="t1")
    
    assert len(received) == 1
    assert "Listener failed" in caplog.text
