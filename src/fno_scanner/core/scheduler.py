"""
Wall-clock scan scheduler.

Polls once a minute, converts the host clock to a fixed local offset and fires a
category's scan when the local (hour, minute) on a weekday matches one of its
trigger times. A minute the process misses is skipped, there is no catch-up.
"""
import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

WEEKDAYS = (0, 1, 2, 3, 4)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanScheduler:
    """
    Fires scans at fixed local times of day.

    `runner` is any `async (category) -> result` callable, normally
    ScanService.trigger_scan. Each fired run is a supervised task: its
    outcome lands in `last_outcome` and a failure is logged without ever
    stopping the polling loop.
    """

    def __init__(
        self,
        runner: Callable[[object], Awaitable[object]],
        triggers: Dict[object, Iterable[time]],
        tz: timezone = timezone(timedelta(minutes=330)),
        tz_label: str = "IST",
        run_days: Iterable[int] = WEEKDAYS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.runner = runner
        self.triggers = {c: {(t.hour, t.minute) for t in times} for c, times in triggers.items()}
        self.tz = tz
        self.tz_label = tz_label
        self.run_days = set(run_days)
        self.clock = clock

        self.last_outcome: Dict[object, object] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._fired: Set[Tuple[object, str]] = set()
        self._running = False

    def due_categories(self, local_now: datetime) -> List[object]:
        """Categories whose trigger matches this local minute (pure, no side effects)."""
        if local_now.weekday() not in self.run_days:
            return []
        key = (local_now.hour, local_now.minute)
        return [c for c, times in self.triggers.items() if key in times]

    def tick(self, now: Optional[datetime] = None) -> List[asyncio.Task]:
        """Check the clock once and start any due scans. Returns the started tasks."""
        local_now = (now or self.clock()).astimezone(self.tz)
        minute_key = local_now.strftime("%Y-%m-%d %H:%M")
        started = []
        for category in self.due_categories(local_now):
            if (category, minute_key) in self._fired:
                continue
            self._fired.add((category, minute_key))
            name = getattr(category, "value", category)
            logger.info(f"{name} scan triggered at {local_now:%H:%M} {self.tz_label}")
            started.append(self._spawn(category))
        self._forget_old_fires(minute_key)
        return started

    def _forget_old_fires(self, minute_key: str) -> None:
        self._fired = {f for f in self._fired if f[1] == minute_key}

    def _spawn(self, category) -> asyncio.Task:
        task = asyncio.create_task(self.runner(category))
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(category, t))
        return task

    def _on_done(self, category, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        name = getattr(category, "value", category)
        if task.cancelled():
            logger.warning(f"{name} scheduled scan cancelled")
            self.last_outcome[category] = asyncio.CancelledError()
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{name} scheduled scan failed: {exc!r}")
            self.last_outcome[category] = exc
        else:
            self.last_outcome[category] = task.result()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run_forever(self) -> None:
        """Poll at every minute boundary until stop() is called."""
        self._running = True
        summary = ", ".join(
            f"{getattr(c, 'value', c)} at " + ", ".join(f"{h:02d}:{m:02d}" for h, m in sorted(times))
            for c, times in self.triggers.items()
        )
        logger.info(f"Scheduler active ({self.tz_label}, Mon-Fri): {summary}")
        while self._running:
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            await asyncio.sleep(self._seconds_to_next_minute())

    def _seconds_to_next_minute(self) -> float:
        now = self.clock()
        # land a little past the boundary so the tick reads the new minute
        return 60 - now.second - now.microsecond / 1_000_000 + 0.5

    def stop(self) -> None:
        self._running = False
        logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for in-flight scheduled runs to finish (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
