"""
Detached tasks.

Telemetry writes (trending increments, miss-ledger writes) and index
pushes stay off the response. Inside a request they are queued on the
request's FastAPI BackgroundTasks and run after the response is sent;
outside one (maintenance CLI, nested writes from a task that is already
running in the background) they run in the caller's thread.

Either way a failed task is logged and parked in a bounded dead-letter
buffer; it never reaches the caller and is never retried.
"""

import copy
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, List, Optional

from fastapi import BackgroundTasks

from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DeadLetter:
    """A detached task that raised."""
    task_name: str
    error: str
    error_type: str
    failed_at: float = field(default_factory=time.time)


class TaskRunner:
    """
    Failure-isolating task submission.

    Args:
        background_tasks: Queue for the current request. None runs each
            task immediately in the caller's thread.
        dead_letter_size: How many failures to retain for inspection.

    Runners returned by bind() share their parent's dead letters, so one
    process-wide buffer collects failures from every request.
    """

    def __init__(
        self,
        background_tasks: Optional[BackgroundTasks] = None,
        dead_letter_size: int = 200,
    ):
        self._background_tasks = background_tasks
        self._dead_letters: Deque[DeadLetter] = deque(maxlen=dead_letter_size)
        self._lock = threading.Lock()

    def bind(self, background_tasks: BackgroundTasks) -> "TaskRunner":
        """A runner that queues onto `background_tasks`."""
        bound = copy.copy(self)
        bound._background_tasks = background_tasks
        return bound

    def submit(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> None:
        """Queue `fn(*args, **kwargs)` after the response, or run it now when unbound."""
        if self._background_tasks is None:
            self._run(name, fn, args, kwargs)
            return
        self._background_tasks.add_task(self._run, name, fn, args, kwargs)

    def _run(self, name: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            self._record_failure(name, e)

    def _record_failure(self, name: str, error: Exception) -> None:
        logger.warning(
            "Detached task failed",
            task=name,
            error=str(error),
            error_type=type(error).__name__,
        )
        with self._lock:
            self._dead_letters.append(DeadLetter(
                task_name=name,
                error=str(error),
                error_type=type(error).__name__,
            ))

    def dead_letters(self) -> List[DeadLetter]:
        """Snapshot of recent failures, oldest first."""
        with self._lock:
            return list(self._dead_letters)


# =============================================================================
# Singleton
# =============================================================================

_runner: Optional[TaskRunner] = None
_runner_lock = threading.Lock()


def get_task_runner() -> TaskRunner:
    """Get or create the process-wide (unbound) TaskRunner singleton (thread-safe)."""
    global _runner
    if _runner is None:
        with _runner_lock:
            if _runner is None:
                from config.settings import get_settings
                _runner = TaskRunner(dead_letter_size=get_settings().task_dead_letter_size)
    return _runner
