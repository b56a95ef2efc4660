"""
Main application entry point
"""

import asyncio
import locale
from typing import Optional
from tasksync.api.motion_client import MotionClient
from tasksync.config.settings import settings
from tasksync.services.scheduler import TimeBlockScheduler
from tasksync.services.task_repository import TaskRepository
from tasksync.utils.date_utils import get_current_datetime
from tasksync.utils.error_handler import format_error_message
from tasksync.utils.events import EventChannel, SyncEvent, SyncEventType
from tasksync.utils.logger import logger


class TaskSyncApp:
    """Wires the Motion client, task repository and scheduler together"""
    
    def __init__(self, client: Optional[MotionClient] = None):
        """Initialize application"""
        self.events = EventChannel()
        self.client = client if client is not None else MotionClient()
        self.operation_log = self.client.operation_log
        self.repository = TaskRepository(self.client, events=self.events)
        self.scheduler = TimeBlockScheduler(client=self.client, events=self.events)
        self.logger = logger
        self.events.subscribe(self._log_failure, SyncEventType.OPERATION_FAILED)
    
    def _log_failure(self, event: SyncEvent):
        self.logger.warning(f"[TaskSyncApp] Operation failed for {event.task_id or 'collection'}: {event.message}")
    
    async def run(self):
        """Refresh from Motion and report today's state"""
        settings.validate()
        
        self.logger.info("Loading tasks from Motion...")
        response = await self.repository.refresh()
        if not response.success:
            self.logger.error(f"Could not load tasks: {response.error}")
            return
        
        today = get_current_datetime().date()
        stats = self.repository.stats()
        self.logger.info(
            f"{stats.total} tasks: {stats.completed} completed, {stats.overdue} overdue, "
            f"{stats.due_today} due today ({stats.completion_rate:.0%} done)"
        )
        
        self.scheduler.follow(self.repository, today)
        for block in self.scheduler.blocks:
            self.logger.info(
                f"{block.start_time:%H:%M}-{block.end_time:%H:%M} {block.title}"
            )
        for conflict in self.scheduler.conflicts:
            self.logger.warning(f"Not scheduled: {conflict.title} ({conflict.reason})")
        
        summary = self.repository.sync_summary()
        self.logger.info(
            f"Sync: {summary.completed} completed, {summary.errors} errors, {summary.pending} pending"
        )
    
    async def stop(self):
        """Release resources"""
        await self.scheduler.stop_live()
        await self.client.close()
        self.logger.info("Stopped")


def configure_locale():
    """Use the user's collation order for locale-aware title sorting"""
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning(f"System locale unavailable, titles sort in code-point order: {e}")


async def main():
    """Main entry point"""
    configure_locale()
    app = TaskSyncApp()
    
    try:
        await app.run()
    except Exception as e:
        logger.error(f"Fatal error: {format_error_message(e)}")
        raise
    finally:
        await app.stop()


def run():
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
