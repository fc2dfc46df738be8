"""Interval scheduling of provider refreshes on top of APScheduler."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import ScheduleConfig

LOGGER = logging.getLogger(__name__)

TaskFn = Callable[[], None]


class TaskRunner(Protocol):
    """Runs a task on a cadence, never overlapping executions of one task id."""

    def run(self, task_id: str, timeout: float, fn: TaskFn) -> None:
        """Register ``fn`` under ``task_id``."""


@dataclass(slots=True)
class _ScheduledTask:
    task_id: str
    fn: TaskFn
    frequency: float
    timeout: float
    initial_delay: float
    lock: threading.Lock = field(default_factory=threading.Lock)

    def execute(self) -> None:
        """Run ``fn`` while the caller holds ``lock``; release it when done."""

        overrun = threading.Timer(
            self.timeout,
            LOGGER.warning,
            args=(
                "Task %s exceeded its timeout of %ss; later runs are skipped until it finishes",
                self.task_id,
                self.timeout,
            ),
        )
        overrun.daemon = True
        overrun.start()
        try:
            self.fn()
        except Exception:  # noqa: BLE001 - a failing task must not kill the scheduler
            LOGGER.exception("Task %s raised an unhandled error", self.task_id)
        finally:
            overrun.cancel()
            self.lock.release()


class IntervalScheduler:
    """Run registered tasks every ``frequency`` seconds on a background scheduler.

    Jobs are added to APScheduler with ``max_instances=1`` and ``coalesce``
    so a tick that arrives while the previous run is still going is dropped.
    Manual triggers share the per-task lock with scheduled runs, so the two
    never overlap either. Tasks with different ids never wait on each other.
    """

    def __init__(self, scheduler: Optional[BaseScheduler] = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self._tasks: Dict[str, _ScheduledTask] = {}
        self._lock = threading.Lock()

    def create_task_runner(self, schedule: ScheduleConfig) -> "IntervalTaskRunner":
        return IntervalTaskRunner(self, schedule)

    def schedule(
        self,
        task_id: str,
        fn: TaskFn,
        *,
        frequency: float,
        timeout: float,
        initial_delay: float = 0.0,
    ) -> None:
        with self._lock:
            if task_id in self._tasks:
                raise ValueError(f"Task {task_id} is already scheduled")
            task = _ScheduledTask(
                task_id=task_id,
                fn=fn,
                frequency=frequency,
                timeout=timeout,
                initial_delay=initial_delay,
            )
            self._tasks[task_id] = task
            if self._scheduler.running:
                self._add_job(task)
        LOGGER.info(
            "Scheduled %s (frequency=%ss, timeout=%ss)", task_id, frequency, timeout
        )

    @property
    def task_ids(self) -> List[str]:
        with self._lock:
            return list(self._tasks)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Add a job per registered task and start the background scheduler.

        ``initial_delay`` counts from this call, not from registration.
        """

        with self._lock:
            if self._scheduler.running:
                return
            for task in self._tasks.values():
                self._add_job(task)
            self._scheduler.start()

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)

    def trigger(self, task_id: str, *, wait: bool = True) -> bool:
        """Run ``task_id`` now unless it is already running.

        With ``wait`` the task runs on the calling thread; otherwise on a new
        one. Returns ``False`` when the run was skipped because another
        execution of the same task id is in flight.
        """

        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(f"Unknown task: {task_id}")

        if not task.lock.acquire(blocking=False):
            LOGGER.debug("Skipping %s; previous run still in progress", task_id)
            return False

        if wait:
            task.execute()
        else:
            threading.Thread(target=task.execute, name=f"task:{task_id}", daemon=True).start()
        return True

    def run_all_once(self) -> int:
        """Trigger every task once, waiting for each, and return how many ran."""

        return sum(1 for task_id in self.task_ids if self.trigger(task_id))

    def _add_job(self, task: _ScheduledTask) -> None:
        self._scheduler.add_job(
            self.trigger,
            trigger=IntervalTrigger(seconds=task.frequency, timezone=timezone.utc),
            args=(task.task_id,),
            id=task.task_id,
            name=task.task_id,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            next_run_time=datetime.now(timezone.utc) + timedelta(seconds=task.initial_delay),
        )


class IntervalTaskRunner:
    """Bind a schedule to an :class:`IntervalScheduler`."""

    def __init__(self, scheduler: IntervalScheduler, schedule: ScheduleConfig):
        self._scheduler = scheduler
        self.schedule = schedule

    def run(self, task_id: str, timeout: float, fn: TaskFn) -> None:
        self._scheduler.schedule(
            task_id,
            fn,
            frequency=self.schedule.frequency,
            timeout=timeout,
            initial_delay=self.schedule.initial_delay,
        )


__all__ = ["IntervalScheduler", "IntervalTaskRunner", "TaskFn", "TaskRunner"]
