"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Connections are handed from the I/O threads to a fixed set of worker
threads. Each worker runs one connection at a time, start to finish, with
ordinary blocking reads and writes.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           ThreadPool                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   io thread ──submit()──►  ┌─────────────────────┐                  │
    │   io thread ──submit()──►  │  Task Queue (FIFO)  │                  │
    │                            └──────────┬──────────┘                  │
    │                       ┌───────────────┼───────────────┐             │
    │                       ▼               ▼               ▼             │
    │                  ┌─────────┐     ┌─────────┐     ┌─────────┐        │
    │                  │Worker 0 │     │Worker 1 │ ... │Worker N │        │
    │                  └─────────┘     └─────────┘     └─────────┘        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

All workers start with the pool. The queue is bounded: when it is full,
submit() returns False and the caller turns the connection away.

Shutdown uses "poison pills": one None per worker is queued, and a worker
that dequeues None exits.

=============================================================================
"""

import threading
import queue
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


@dataclass
class Task:
    """A deferred call: func(*args)."""
    func: Callable[..., Any]
    args: tuple = ()


class Worker(threading.Thread):
    """
    Worker thread pulling tasks off the shared queue.

    A failing task is logged; it never kills the worker.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int):
        super().__init__(name=f"httpbridge-worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            task = self.task_queue.get()
            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        start_time = time.time()
        try:
            task.func(*task.args)
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}")


class ThreadPool:
    """
    Fixed-size thread pool for connection processing.

    Usage:
        pool = ThreadPool(workers=8, queue_size=100)
        pool.start()
        pool.submit(process_connection, args=(conn,))
        pool.shutdown(wait=True, timeout=30.0)
    """

    def __init__(self, workers: int = 8, queue_size: int = 100):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.workers = workers

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)
        self._threads: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False

    @property
    def worker_count(self) -> int:
        return len(self._threads)

    def start(self):
        with self._lock:
            if self._started:
                return
            logger.info(f"Starting thread pool with {self.workers} workers")
            self._shutdown = False
            for worker_id in range(self.workers):
                worker = Worker(self._task_queue, worker_id)
                self._threads.append(worker)
                worker.start()
            self._started = True

    def submit(self, func: Callable[..., Any], args: tuple = ()) -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._shutdown:
            raise RuntimeError("Thread pool is not running")

        try:
            self._task_queue.put_nowait(Task(func=func, args=args))
        except queue.Full:
            return False
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks finish first.
            timeout: Upper bound on that wait, in seconds.
        """
        with self._lock:
            if not self._started:
                return
            logger.info("Shutting down thread pool...")
            self._shutdown = True
            threads = list(self._threads)
            self._threads.clear()

        if wait:
            deadline = time.time() + timeout if timeout else None
            while self._task_queue.unfinished_tasks:
                if deadline and time.time() > deadline:
                    logger.warning("Thread pool shutdown timeout, forcing stop")
                    break
                time.sleep(0.05)

        for _ in threads:
            try:
                self._task_queue.put(None, timeout=1.0)
            except queue.Full:
                break

        for worker in threads:
            worker.join(timeout=2.0)

        self._started = False
        logger.info("Thread pool shutdown complete")
