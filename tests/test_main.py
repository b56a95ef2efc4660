"""
Tests for the application wiring
"""

import locale
import logging
import pytest
from conftest import make_task, remote_record
from tasksync.config.settings import Settings
from tasksync.main import TaskSyncApp, configure_locale, main
from tasksync.utils.date_utils import get_current_datetime


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(Settings, "MOTION_API_KEY", "test_key")


@pytest.mark.asyncio
async def test_run_loads_tasks_and_schedules_today(configured, motion_client, fake_motion):
    due = get_current_datetime().replace(hour=9, minute=0, second=0, microsecond=0)
    fake_motion.on("GET", "/tasks", 200, {"tasks": [
        remote_record("a", "Draft report", dueDate=due.isoformat(), duration=60),
        remote_record("b", "Someone else's", assignees=[{"id": "user-2"}]),
    ]})
    app = TaskSyncApp(client=motion_client)
    
    await app.run()
    
    assert [task.id for task in app.repository.tasks] == ["a"]
    assert [block.task_id for block in app.scheduler.blocks] == ["a"]
    assert app.repository.sync_summary().completed == 1


@pytest.mark.asyncio
async def test_run_stops_when_refresh_fails(configured, motion_client, fake_motion):
    fake_motion.on("GET", "/tasks", 401, {"message": "Invalid API key"})
    app = TaskSyncApp(client=motion_client)
    
    await app.run()
    
    assert len(app.repository) == 0
    assert app.scheduler.blocks == []
    assert app.repository.sync_summary().errors == 1


@pytest.mark.asyncio
async def test_run_requires_api_key(monkeypatch, motion_client):
    monkeypatch.setattr(Settings, "MOTION_API_KEY", "")
    app = TaskSyncApp(client=motion_client)
    
    with pytest.raises(ValueError):
        await app.run()


def test_app_shares_one_event_channel(motion_client):
    app = TaskSyncApp(client=motion_client)
    
    assert app.repository.events is app.events
    assert app.scheduler.events is app.events
    assert app.operation_log is motion_client.operation_log


@pytest.mark.asyncio
async def test_repository_failures_reach_the_app_log(motion_client, fake_motion, caplog):
    fake_motion.on("DELETE", "/tasks/a", 500, {"message": "Internal error"})
    app = TaskSyncApp(client=motion_client)
    app.repository.load([make_task(id="a", title="Draft report")])
    
    with caplog.at_level(logging.WARNING, logger="tasksync"):
        await app.repository.remove("a")
    
    assert "Operation failed for a" in caplog.text


@pytest.mark.asyncio
async def test_main_reports_configuration_error(monkeypatch, caplog):
    monkeypatch.setattr(Settings, "MOTION_API_KEY", "")
    monkeypatch.setattr(locale, "setlocale", lambda category, value: None)
    
    with caplog.at_level(logging.ERROR, logger="tasksync"):
        with pytest.raises(ValueError):
            await main()
    
    assert "Fatal error: Configuration error: Missing required environment variables: MOTION_API_KEY" in caplog.text


def test_configure_locale_uses_system_collation(monkeypatch):
    calls = []
    monkeypatch.setattr(locale, "setlocale", lambda category, value: calls.append((category, value)))
    
    configure_locale()
    
    assert calls == [(locale.LC_COLLATE, "")]


def test_configure_locale_falls_back_to_code_points(monkeypatch, caplog):
    def unavailable(category, value):
        raise locale.Error("unsupported locale setting")
    
    monkeypatch.setattr(locale, "setlocale", unavailable)
    
    with caplog.at_level(logging.WARNING, logger="tasksync"):
        configure_locale()
    
    assert "code-point order" in caplog.text
