"""
Background task service.

A thin wrapper around a ThreadPoolExecutor that gives generation stages the
"submit work, await all" contract they need. Priority and owner are opaque
hints: they are recorded and logged but do not reorder execution.
"""

import os
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, List, Optional, Sequence

import structlog

logger = structlog.get_logger()


class TaskPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2


@dataclass
class TaskHandle:
    """A submitted unit of work."""

    task_id: str
    priority: TaskPriority
    owner: str
    future: Future = field(repr=False)
    submitted_at: float = field(default_factory=time.perf_counter)

    def result(self, timeout: Optional[float] = None) -> Any:
        return self.future.result(timeout=timeout)

    def done(self) -> bool:
        return self.future.done()


def default_worker_count() -> int:
    return os.cpu_count() or 1


class TaskPool:
    """Bounded pool of worker threads."""

    def __init__(self, max_workers: Optional[int] = None, name: str = "py-planet"):
        self.max_workers = max_workers or default_worker_count()
        self.name = name
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=name
        )
        self._handles: List[TaskHandle] = []

    def submit(
        self,
        work: Callable[[], Any],
        task_id: str,
        priority: TaskPriority = TaskPriority.NORMAL,
        owner: str = "",
    ) -> TaskHandle:
        """
        Schedule ``work`` on a worker thread.

        Args:
            work: Zero-argument callable
            task_id: Identifier used in logs
            priority: Scheduling hint
            owner: Tag of the component submitting the work

        Returns:
            Handle wrapping the future
        """
        handle = TaskHandle(
            task_id=task_id,
            priority=priority,
            owner=owner,
            future=self._executor.submit(work),
        )
        self._handles.append(handle)
        logger.debug("Task submitted", task_id=task_id, priority=priority.name, owner=owner)
        return handle

    def run(
        self,
        work: Callable[[], Any],
        task_id: str,
        priority: TaskPriority = TaskPriority.NORMAL,
        owner: str = "",
    ) -> Any:
        """Submit a single task and block until it finishes."""
        return self.wait_all([self.submit(work, task_id, priority, owner)])[0]

    def wait_all(self, handles: Optional[Sequence[TaskHandle]] = None) -> List[Any]:
        """
        Block until every handle has finished.

        Args:
            handles: Handles to wait for (defaults to everything submitted so far)

        Returns:
            Results in submission order

        Raises:
            Exception: the first failure, after all tasks have settled
        """
        if handles is None:
            handles = list(self._handles)
        by_future = {h.future: h for h in handles}
        first_error: Optional[BaseException] = None
        for future in as_completed(by_future):
            handle = by_future[future]
            error = future.exception()
            elapsed = time.perf_counter() - handle.submitted_at
            if error is not None:
                logger.error(
                    "Task failed", task_id=handle.task_id, owner=handle.owner, error=str(error)
                )
                if first_error is None:
                    first_error = error
            else:
                logger.debug("Task finished", task_id=handle.task_id, seconds=round(elapsed, 4))

        done = {id(h) for h in handles}
        self._handles = [h for h in self._handles if id(h) not in done]
        if first_error is not None:
            raise first_error
        return [h.future.result() for h in handles]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "TaskPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)
