"""Task scheduler for collection and evaluation runs.

Collection runs every `COLLECT_INTERVAL_SECONDS`; evaluation runs at the
configured UTC hours. Each task holds a Redis lock while it runs so that
at most one instance executes across processes, and is retried with
exponential backoff before giving up until the next tick.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from redis.asyncio import Redis
from redis.exceptions import LockError

from crypto_mover_tracker.pipeline import (
    CollectionPipeline,
    CollectionResult,
    EvaluationPipeline,
    PipelineDependencies,
)
from crypto_mover_tracker.predictor.evaluator import EvaluationResult
from crypto_mover_tracker.retry import RetryError, retry_call

if TYPE_CHECKING:
    from crypto_mover_tracker.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCK_KEY_PREFIX = "crypto_mover_tracker:lock:"
COLLECT_TASK = "collect"
EVALUATE_TASK = "evaluate"


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    started_at: datetime | None = None
    collection_runs: int = 0
    collection_failures: int = 0
    evaluation_runs: int = 0
    evaluation_failures: int = 0
    skipped_locked: int = 0
    last_collection_at: datetime | None = None
    last_evaluation_at: datetime | None = None
    last_error: str | None = None


def next_evaluation_time(now: datetime, hours: Sequence[int]) -> datetime:
    """Next top-of-hour strictly after `now` whose UTC hour is in `hours`."""
    if not hours:
        raise ValueError("hours must not be empty")
    candidate = now.astimezone(UTC).replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    for _ in range(24):
        if candidate.hour in hours:
            return candidate
        candidate += timedelta(hours=1)
    raise ValueError(f"No valid evaluation hour in {list(hours)}")


class Scheduler:
    """Run the collection and evaluation tasks on their schedules.

    Example:
        ```python
        scheduler = Scheduler(deps, redis)
        await scheduler.run()  # until stop() or cancellation
        ```
    """

    def __init__(
        self,
        deps: PipelineDependencies,
        redis: Redis,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._deps = deps
        self._redis = redis
        self._settings = settings or deps.settings
        self._state = SchedulerState.STOPPED
        self._stats = SchedulerStats()

        self._stop_event: asyncio.Event | None = None
        self._collect_task: asyncio.Task[None] | None = None
        self._evaluate_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state."""
        return self._state

    @property
    def stats(self) -> SchedulerStats:
        """Current scheduler statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    async def _run_locked(
        self,
        task_name: str,
        func: Callable[[], Awaitable[T]],
        *,
        max_attempts: int,
    ) -> T | None:
        """Run `func` with retries while holding the task's Redis lock.

        Returns None when another instance holds the lock or every attempt
        failed.
        """
        lock = self._redis.lock(
            f"{LOCK_KEY_PREFIX}{task_name}",
            timeout=self._settings.scheduler.lock_ttl_seconds,
            blocking=False,
        )
        if not await lock.acquire():
            self._stats.skipped_locked += 1
            logger.info("Task %s already running elsewhere; skipping", task_name)
            return None

        try:
            return await retry_call(
                func,
                max_attempts=max_attempts,
                base_delay=self._settings.scheduler.retry_base_delay_seconds,
                name=task_name,
            )
        except RetryError as e:
            self._stats.last_error = str(e.last_exception)
            logger.error("Task %s failed after %d attempts: %s", task_name, max_attempts, e.last_exception)
            return None
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("Lock for task %s expired before release", task_name)

    async def run_collection(self) -> CollectionResult | None:
        """Run one collection task now."""
        result = await self._run_locked(
            COLLECT_TASK,
            CollectionPipeline(self._deps).run,
            max_attempts=self._settings.scheduler.collect_max_attempts,
        )
        self._stats.collection_runs += 1
        self._stats.last_collection_at = datetime.now(UTC)
        if result is None:
            self._stats.collection_failures += 1
        return result

    async def run_evaluation(self) -> EvaluationResult | None:
        """Run one evaluation task now."""
        result = await self._run_locked(
            EVALUATE_TASK,
            EvaluationPipeline(self._deps).run,
            max_attempts=self._settings.scheduler.evaluate_max_attempts,
        )
        self._stats.evaluation_runs += 1
        self._stats.last_evaluation_at = datetime.now(UTC)
        if result is None:
            self._stats.evaluation_failures += 1
        return result

    async def start(self) -> None:
        """Start the background loops.

        Raises:
            RuntimeError: If the scheduler is already running.
        """
        if self._state != SchedulerState.STOPPED:
            raise RuntimeError(f"Cannot start scheduler in state {self._state}")

        self._state = SchedulerState.STARTING
        self._stop_event = asyncio.Event()
        logger.info(
            "Starting scheduler (collect every %ds, evaluate at %s UTC)",
            self._settings.scheduler.collect_interval_seconds,
            self._settings.scheduler.evaluate_hours_utc,
        )
        self._collect_task = asyncio.create_task(self._collection_loop())
        self._evaluate_task = asyncio.create_task(self._evaluation_loop())
        self._stats.started_at = datetime.now(UTC)
        self._state = SchedulerState.RUNNING

    async def stop(self) -> None:
        """Stop the background loops gracefully."""
        if self._state == SchedulerState.STOPPED:
            return

        self._state = SchedulerState.STOPPING
        logger.info("Stopping scheduler...")
        if self._stop_event:
            self._stop_event.set()

        for task in (self._collect_task, self._evaluate_task):
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._collect_task = None
        self._evaluate_task = None

        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    async def _wait_or_stop(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; True if a stop was requested."""
        if not self._stop_event:
            return True
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(timeout, 0.0))
            return True
        except TimeoutError:
            return False

    async def _collection_loop(self) -> None:
        interval = self._settings.scheduler.collect_interval_seconds
        while self._stop_event and not self._stop_event.is_set():
            try:
                await self.run_collection()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.last_error = str(e)
                logger.exception("Collection loop error: %s", e)
            if await self._wait_or_stop(interval):
                break

    async def _evaluation_loop(self) -> None:
        hours = self._settings.scheduler.evaluate_hours
        while self._stop_event and not self._stop_event.is_set():
            now = datetime.now(UTC)
            next_run = next_evaluation_time(now, hours)
            logger.debug("Next evaluation at %s", next_run.isoformat())
            if await self._wait_or_stop((next_run - now).total_seconds()):
                break
            try:
                await self.run_evaluation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.last_error = str(e)
                logger.exception("Evaluation loop error: %s", e)

    async def run(self) -> None:
        """Start the scheduler and run until stopped or cancelled."""
        await self.start()
        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Scheduler:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
