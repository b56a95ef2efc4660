"""
Time-block scheduler: places due tasks on a day's calendar
"""

import asyncio
import bisect
from contextlib import suppress
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, List, Optional, Tuple
from tasksync.api.motion_client import MotionClient
from tasksync.config.constants import OVERLAP_POLICIES, PRIORITY_COLORS
from tasksync.config.settings import settings
from tasksync.models.response import BlocksResponse, ErrorType
from tasksync.models.task import Task
from tasksync.models.time_block import ScheduleConflict, TimeBlock
from tasksync.utils.date_utils import day_bounds, get_current_datetime, to_local
from tasksync.utils.events import COLLECTION_EVENTS, EventChannel, SyncEvent, SyncEventType
from tasksync.utils.logger import logger

Interval = Tuple[datetime, datetime]


def find_free_start(
    occupied: List[Interval],
    start: datetime,
    length: timedelta,
    limit: datetime,
) -> Optional[datetime]:
    """
    Earliest start at or after `start` where `length` fits between occupied intervals
    
    Args:
        occupied: Intervals sorted by start
        start: Requested start
        length: Block length
        limit: A moved block must end by this instant
        
    Returns:
        Free start, or None if a moved block would run past the limit
    """
    candidate = start
    for busy_start, busy_end in occupied:
        if busy_end <= candidate:
            continue
        if busy_start >= candidate + length:
            break
        candidate = busy_end
    if candidate != start and candidate + length > limit:
        return None
    return candidate


class TimeBlockScheduler:
    """Derives time blocks from tasks and tracks the currently active one"""
    
    def __init__(
        self,
        client: Optional[MotionClient] = None,
        events: Optional[EventChannel] = None,
        overlap_policy: Optional[str] = None,
        grid_start_hour: Optional[int] = None,
        grid_end_hour: Optional[int] = None,
        refresh_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = get_current_datetime,
    ):
        """
        Initialize scheduler
        
        Args:
            client: Motion client used for optimization (optional)
            events: Channel for block events
            overlap_policy: "displace", "reject" or "allow"
            grid_start_hour: First hour shown on the grid
            grid_end_hour: Hour the grid ends at
            refresh_seconds: Live-mode polling interval
            clock: Source of the current time
        """
        self.client = client
        self.events = events if events is not None else EventChannel()
        self.overlap_policy = (overlap_policy or settings.OVERLAP_POLICY).lower()
        if self.overlap_policy not in OVERLAP_POLICIES:
            raise ValueError(f"Unknown overlap policy: {self.overlap_policy}")
        self.grid_start_hour = settings.GRID_START_HOUR if grid_start_hour is None else grid_start_hour
        self.grid_end_hour = settings.GRID_END_HOUR if grid_end_hour is None else grid_end_hour
        if not 0 <= self.grid_start_hour < self.grid_end_hour <= 24:
            raise ValueError(f"Invalid time grid: {self.grid_start_hour}:00-{self.grid_end_hour}:00")
        self.refresh_seconds = refresh_seconds or settings.LIVE_REFRESH_SECONDS
        self.clock = clock
        self.logger = logger
        
        self.blocks: List[TimeBlock] = []
        self.conflicts: List[ScheduleConflict] = []
        self.day: Optional[date] = None
        self._active_block_id: Optional[str] = None
        self._live_task: Optional[asyncio.Task] = None
        self._unfollow: Optional[Callable[[], None]] = None
    
    def _anchor(self, task: Task, day: date) -> Optional[datetime]:
        """Start instant for a task on the given day, None if it is not a candidate"""
        if task.completed or task.due_date is None or task.effective_duration <= 0:
            return None
        due = to_local(task.due_date)
        if due.date() != day:
            return None
        if due.time() == time.min:
            return day_bounds(day)[0] + timedelta(hours=self.grid_start_hour)
        return due
    
    def generate_blocks(self, tasks: Iterable[Task], day: date) -> List[TimeBlock]:
        """
        Build the day's blocks from due tasks
        
        Args:
            tasks: Current task set
            day: Day to schedule (user's timezone)
            
        Returns:
            Blocks sorted by start time
        """
        candidates = []
        for index, task in enumerate(tasks):
            start = self._anchor(task, day)
            if start is not None:
                candidates.append((start, task.priority.rank, index, task))
        candidates.sort(key=lambda candidate: candidate[:3])
        
        day_end = day_bounds(day)[1]
        occupied: List[Interval] = []
        blocks: List[TimeBlock] = []
        conflicts: List[ScheduleConflict] = []
        
        for start, _, _, task in candidates:
            length = timedelta(minutes=task.effective_duration)
            placed = start
            if self.overlap_policy != "allow":
                placed = find_free_start(occupied, start, length, day_end)
                if placed is None:
                    conflicts.append(ScheduleConflict(
                        task_id=task.id, title=task.title, requested_start=start,
                        reason="No free slot left on this day",
                    ))
                    continue
                if placed != start and self.overlap_policy == "reject":
                    conflicts.append(ScheduleConflict(
                        task_id=task.id, title=task.title, requested_start=start,
                        reason="Overlaps another block",
                    ))
                    continue
            
            bisect.insort(occupied, (placed, placed + length))
            blocks.append(TimeBlock(
                id=f"block-{task.id}",
                task_id=task.id,
                title=task.title,
                start_time=placed,
                end_time=placed + length,
                color=PRIORITY_COLORS[task.priority.value],
            ))
        
        blocks.sort(key=lambda block: block.start_time)
        self.blocks = blocks
        self.conflicts = conflicts
        self.day = day
        
        if conflicts:
            self.logger.warning(f"[Scheduler] {len(conflicts)} task(s) could not be placed on {day.isoformat()}")
        self.events.emit(SyncEventType.BLOCKS_UPDATED, count=len(blocks), source="generated")
        return blocks
    
    async def optimize(self, tasks: Iterable[Task], day: Optional[date] = None) -> BlocksResponse:
        """
        Replace blocks with the remote optimizer's proposal
        
        On failure the current blocks stay as they are.
        
        Args:
            tasks: Current task set
            day: Day to optimize (defaults to the scheduled day)
            
        Returns:
            BlocksResponse from the optimizer
        """
        if self.client is None:
            message = "No optimizer configured"
            return BlocksResponse(success=False, error=message, message=message, error_type=ErrorType.VALIDATION)
        
        response = await self.client.optimize_time_blocks(list(tasks), day or self.day)
        if not response.success:
            self.logger.warning(f"[Scheduler] Optimization failed, keeping {len(self.blocks)} blocks: {response.error}")
            self.events.emit(SyncEventType.OPERATION_FAILED, message=response.error, action="optimize")
            return response
        
        self.blocks = sorted(response.blocks, key=lambda block: block.start_time)
        self.conflicts = []
        self.events.emit(SyncEventType.BLOCKS_UPDATED, count=len(self.blocks), source="optimizer")
        return response
    
    def blocks_for_day(self, day: date) -> List[TimeBlock]:
        """Blocks starting on the given day"""
        return [block for block in self.blocks if to_local(block.start_time).date() == day]
    
    def follow(self, repository, day: date) -> Callable[[], None]:
        """
        Keep blocks in step with a task repository
        
        Args:
            repository: TaskRepository whose events trigger regeneration
            day: Day to schedule
            
        Returns:
            Callable that stops following
        """
        if self._unfollow is not None:
            self._unfollow()
        
        def on_change(event: SyncEvent):
            if event.type in COLLECTION_EVENTS:
                self.generate_blocks(repository.tasks, self.day or day)
        
        self._unfollow = repository.events.subscribe(on_change)
        self.generate_blocks(repository.tasks, day)
        return self._unfollow
    
    def grid_hours(self) -> List[int]:
        return list(range(self.grid_start_hour, self.grid_end_hour))
    
    def clip_block(self, block: TimeBlock) -> Optional[Interval]:
        """
        Visible part of a block on the hour grid
        
        Returns:
            (start, end) clipped to the grid, or None if nothing is visible
        """
        start = to_local(block.start_time)
        day_start = day_bounds(start.date())[0]
        grid_start = day_start + timedelta(hours=self.grid_start_hour)
        grid_end = day_start + timedelta(hours=self.grid_end_hour)
        visible_start = max(start, grid_start)
        visible_end = min(to_local(block.end_time), grid_end)
        if visible_start >= visible_end:
            return None
        return visible_start, visible_end
    
    def active_block(self, now: Optional[datetime] = None) -> Optional[TimeBlock]:
        """Block containing the given instant (default: now)"""
        instant = to_local(now or self.clock())
        for block in self.blocks:
            if block.contains(instant):
                return block
        return None
    
    def refresh_active(self, now: Optional[datetime] = None) -> Optional[TimeBlock]:
        """Recompute the active block and announce a change"""
        block = self.active_block(now)
        block_id = block.id if block else None
        if block_id != self._active_block_id:
            self._active_block_id = block_id
            self.events.emit(
                SyncEventType.ACTIVE_BLOCK_CHANGED,
                task_id=block.task_id if block else None,
                block_id=block_id,
            )
        return block
    
    @property
    def live(self) -> bool:
        return self._live_task is not None and not self._live_task.done()
    
    async def _live_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            self.refresh_active()
    
    def start_live(self, interval: Optional[float] = None) -> asyncio.Task:
        """
        Start polling the active block on the running event loop
        
        Args:
            interval: Seconds between checks (default LIVE_REFRESH_SECONDS)
            
        Returns:
            The polling task
        """
        if self.live:
            return self._live_task
        self.refresh_active()
        self._live_task = asyncio.create_task(self._live_loop(interval or self.refresh_seconds))
        self.logger.info("[Scheduler] Live mode started")
        return self._live_task
    
    async def stop_live(self):
        """Stop live polling"""
        if self._live_task is None:
            return
        self._live_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._live_task
        self._live_task = None
        self.logger.info("[Scheduler] Live mode stopped")
