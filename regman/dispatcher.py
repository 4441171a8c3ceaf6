"""
Concurrent registry walk: catalog -> tag lists -> tag details

Pool threads do the network work and post typed messages to a queue. The
thread that calls Dispatcher.run() is the only consumer of that queue and the
only writer of the result set, so the result needs no lock. Completion is
tracked by a WorkGroup whose counter only grows on the owner thread, and
always before the unit that discovered the new work is retired.
"""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .base import Done, RepoList, ResultSet, TagDetailMessage, TagList
from .errors import RegistryError
from .fetcher import DEFAULT_WORKERS
from .registry import RegistryClient

log = logging.getLogger(__name__)

DEFAULT_DEADLINE = 300.0


class WorkGroup:
    """Pending-work counter for a fan-out whose size is discovered while it runs"""

    def __init__(self, initial: int = 0):
        if initial < 0:
            raise ValueError("initial count must not be negative")
        self._cond = threading.Condition()
        self._pending = initial
        self._cancelled = False

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    @property
    def cancelled(self) -> bool:
        with self._cond:
            return self._cancelled

    def add(self, count: int = 1):
        """Register new outstanding units. Ignored once cancelled."""
        if count < 0:
            raise ValueError("count must not be negative")
        with self._cond:
            if self._cancelled:
                return
            self._pending += count

    def done(self):
        """Retire one unit. Ignored once cancelled."""
        with self._cond:
            if self._cancelled:
                return
            if self._pending <= 0:
                raise RuntimeError("WorkGroup.done() called more times than add()")
            self._pending -= 1
            if self._pending == 0:
                self._cond.notify_all()

    def cancel(self) -> int:
        """
        Drop all outstanding units and wake every waiter

        Returns:
            Number of units abandoned
        """
        with self._cond:
            abandoned = self._pending
            self._pending = 0
            self._cancelled = True
            self._cond.notify_all()
            return abandoned

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no work is outstanding

        Returns:
            False if the timeout expired first
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout)


class Dispatcher:
    """Walks one registry and aggregates a ResultSet"""

    def __init__(
        self,
        client: RegistryClient,
        max_workers: int = DEFAULT_WORKERS,
        deadline: Optional[float] = DEFAULT_DEADLINE,
    ):
        """
        Initialize dispatcher

        Args:
            client: Registry client used by the pool tasks
            max_workers: Size of the worker pool, i.e. the in-flight request limit
            deadline: Seconds before outstanding work is abandoned (None for no limit)
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.client = client
        self.max_workers = max_workers
        self.deadline = deadline

        self.timed_out = False
        self.cancelled = False
        self.abandoned = 0
        self.failures = 0

        self._group: Optional[WorkGroup] = None
        self._messages: "queue.Queue" = queue.Queue()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._failure_lock = threading.Lock()
        self._started = False

    def run(self) -> ResultSet:
        """
        Walk the registry and return the raw (unsorted) result set

        Blocks until every spawned task has reported or the deadline passed.
        """
        if self._started:
            raise RuntimeError("Dispatcher.run() may only be called once")
        self._started = True

        result: ResultSet = {}
        self._group = WorkGroup(1)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix='regman-fetch',
        )
        start_time = time.monotonic()

        watcher = threading.Thread(target=self._watch, name='regman-watcher', daemon=True)

        try:
            self._spawn(self._fetch_repositories)
            watcher.start()

            while True:
                message = self._messages.get()
                if isinstance(message, Done):
                    if message.timed_out:
                        self.timed_out = True
                        self.abandoned = message.abandoned
                    break
                self._handle(message, result)
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)

        if self._group.cancelled and not self.timed_out:
            self.cancelled = True

        log.info(
            "Walk finished in %.1fs: %d repositories, %d tags, %d failed tasks",
            time.monotonic() - start_time,
            len(result),
            sum(len(details) for details in result.values()),
            self.failures,
        )
        return result

    def cancel(self):
        """Abandon outstanding work; run() returns what it has so far"""
        if self._group is None:
            raise RuntimeError("Dispatcher is not running")
        abandoned = self._group.cancel()
        self.abandoned = abandoned
        log.warning("Walk cancelled, abandoning %d outstanding tasks", abandoned)

    def _watch(self):
        finished = self._group.wait(self.deadline)
        if finished:
            self._messages.put(Done())
            return

        abandoned = self._group.cancel()
        log.warning(
            "Deadline of %ss exceeded, abandoning %d outstanding tasks",
            self.deadline,
            abandoned,
        )
        self._messages.put(Done(timed_out=True, abandoned=abandoned))

    def _handle(self, message, result: ResultSet):
        # Children are registered before the parent's unit is retired
        if isinstance(message, RepoList):
            log.info("Catalog lists %d repositories", len(set(message.repos)))
            for repo in dict.fromkeys(message.repos):
                self._group.add(1)
                self._spawn(self._fetch_tags, repo)

        elif isinstance(message, TagList):
            log.debug("%s has %d tags", message.repo, len(message.tags))
            result.setdefault(message.repo, [])
            for tag in dict.fromkeys(message.tags):
                self._group.add(1)
                self._spawn(self._fetch_tag_detail, message.repo, tag)

        elif isinstance(message, TagDetailMessage):
            result.setdefault(message.repo, []).append(message.to_detail())

        else:
            raise TypeError(f"Unexpected message: {message!r}")

        self._group.done()

    def _spawn(self, task: Callable, *args):
        if self._group.cancelled:
            return
        self._executor.submit(self._run_task, task, *args)

    def _run_task(self, task: Callable, *args):
        if self._group.cancelled:
            return
        try:
            message = task(*args)
        except RegistryError as e:
            log.warning("%s%r failed: %s", task.__name__.lstrip('_'), args, e)
            self._record_failure()
            return
        except Exception:  # pylint: disable=broad-except
            log.exception("%s%r crashed", task.__name__.lstrip('_'), args)
            self._record_failure()
            return
        self._messages.put(message)

    def _record_failure(self):
        with self._failure_lock:
            self.failures += 1
        self._group.done()

    def _fetch_repositories(self) -> RepoList:
        return RepoList(repos=tuple(self.client.list_repositories()))

    def _fetch_tags(self, repo: str) -> TagList:
        return TagList(repo=repo, tags=tuple(self.client.list_tags(repo)))

    def _fetch_tag_detail(self, repo: str, tag: str) -> TagDetailMessage:
        detail = self.client.get_tag_detail(repo, tag)
        return TagDetailMessage(repo=repo, tag=detail.tag, created=detail.created)
