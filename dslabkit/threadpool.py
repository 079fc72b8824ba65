"""A fixed-size pool of worker threads that run submitted callables."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

Task = Callable[[], object]

_log = logging.getLogger(__name__)


class ThreadPool:
    """Runs submitted tasks on a fixed set of worker threads.

    Shutting the pool down waits until every task submitted so far has run
    and then joins all workers.
    """

    def __init__(self, workers_count: int) -> None:
        if workers_count <= 0:
            raise ValueError("The number of workers must be greater than 0")
        self._tasks: deque[Task] = deque()
        self._cond = threading.Condition()
        self._closing = False
        self._workers = [
            threading.Thread(
                target=self._worker_loop,
                name=f"threadpool-worker-{number}",
                daemon=True,
            )
            for number in range(workers_count)
        ]
        for worker in self._workers:
            worker.start()

    def submit(self, task: Task) -> None:
        """Queue ``task`` to be run by one of the workers."""
        with self._cond:
            if self._closing:
                raise RuntimeError("cannot submit a task to a pool that is shut down")
            self._tasks.append(task)
            self._cond.notify()

    def shutdown(self) -> None:
        """Run every queued task, then stop and join all workers."""
        with self._cond:
            self._closing = True
            self._cond.notify_all()
        current = threading.current_thread()
        for worker in self._workers:
            if worker is not current:
                worker.join()

    def __enter__(self) -> ThreadPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                while not self._tasks and not self._closing:
                    self._cond.wait()
                if not self._tasks:
                    return
                task = self._tasks.popleft()
            try:
                task()
            except Exception:
                _log.exception("A task submitted to the pool raised an exception")