# webbench/pool.py
# Fixed-size worker pool: N long-lived threads draining one shared FIFO.
import logging
import queue
import threading
from collections import deque
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

A = TypeVar("A")
R = TypeVar("R")


class Job(Generic[A, R]):
    __slots__ = ("id", "fn", "arg", "pipe")

    def __init__(self):
        self.id = 0
        self.fn: Optional[Callable[[A], R]] = None
        self.arg: Optional[A] = None
        self.pipe: Optional[queue.Queue] = None

    def init(self, job_id: int, fn: Callable[[A], R], arg: A):
        self.id = job_id
        self.fn = fn
        self.arg = arg
        # capacity one: the worker's put never blocks, even if nobody reads it
        self.pipe = queue.Queue(maxsize=1)

    def reset(self):
        self.id = 0
        self.fn = None
        self.arg = None
        self.pipe = None


class WorkerPool:
    """
    Run submitted callables on `size` worker threads.

    submit() returns a single-shot result pipe (queue.Queue of size 1).
    The pipe receives fn's return value, or the exception it raised.
    """

    def __init__(self, size: int, name: str = "webbench-worker"):
        if size <= 0:
            raise ValueError(f"pool size must be positive, got {size}")
        self.size = size
        self.last_id = 0
        self._cond = threading.Condition(threading.Lock())
        self._queue: deque = deque()
        self._closed = False

        self._id_lock = threading.Lock()
        self._free_lock = threading.Lock()
        self._free: list = []

        self._threads = []
        # hold the lock so every worker parks on the empty queue before the first submit
        with self._cond:
            for i in range(size):
                t = threading.Thread(target=self._routine, name=f"{name}-{i}", daemon=True)
                t.start()
                self._threads.append(t)

    def _next_id(self) -> int:
        with self._id_lock:
            self.last_id += 1
            return self.last_id

    def _get_job(self) -> Job:
        with self._free_lock:
            if self._free:
                return self._free.pop()
        return Job()

    def _put_job(self, job: Job):
        job.reset()
        with self._free_lock:
            self._free.append(job)

    def submit(self, fn: Callable[[Any], Any], arg: Any = None) -> queue.Queue:
        with self._cond:
            if self._closed:
                raise RuntimeError("submit on a closed pool")
            job = self._get_job()
            job.init(self._next_id(), fn, arg)
            pipe = job.pipe
            self._queue.append(job)
            self._cond.notify()
        return pipe

    def _routine(self):
        while True:
            with self._cond:
                while not self._queue:
                    if self._closed:
                        return
                    self._cond.wait()
                job = self._queue.popleft()

            try:
                value = job.fn(job.arg)
            except BaseException as e:
                # exactly one value per pipe, SystemExit included
                logger.debug("job %d raised %r", job.id, e)
                value = e
            job.pipe.put_nowait(value)
            self._put_job(job)

    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def close(self, wait: bool = True, timeout: Optional[float] = None):
        # workers only exit once the queue is empty, queued jobs still run
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        if wait:
            self.join(timeout)

    def join(self, timeout: Optional[float] = None):
        for t in self._threads:
            t.join(timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close(wait=True)
        return False


class WaitGroup:
    """Completion barrier: add() per submission, done() on every exit path of the job."""

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    def add(self, n: int = 1):
        with self._cond:
            if self._count + n < 0:
                raise ValueError("negative WaitGroup counter")
            self._count += n
            if self._count == 0:
                self._cond.notify_all()

    def done(self):
        self.add(-1)

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)
