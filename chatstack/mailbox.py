"""Per-session serial execution on top of a shared worker pool."""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Executor, Future
from typing import Any, Callable, Deque, Optional, Tuple

from .errors import MailboxClosed


logger = logging.getLogger(__name__)


_Job = Tuple[Future, Callable[..., Any], tuple]


class Mailbox:
    """FIFO of callables that runs at most one job at a time.

    Jobs from any thread are queued here and drained by a single worker
    borrowed from ``pool``; the worker returns to the pool once the queue is
    empty. Calling :meth:`call` from inside a running job executes inline.
    """

    def __init__(self, pool: Executor, name: str = "mailbox") -> None:
        self._pool = pool
        self.name = name
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending: Deque[_Job] = deque()
        self._running = False
        self._closed = False
        self._owner: Optional[int] = None

    @property
    def in_mailbox(self) -> bool:
        return self._owner == threading.get_ident()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise MailboxClosed(f"{self.name} is closed")
            self._pending.append((future, fn, args))
            if self._running:
                return future
            self._running = True
        try:
            self._pool.submit(self._drain)
        except RuntimeError as exc:
            # pool already shut down
            with self._lock:
                self._closed = True
                self._running = False
                orphaned = list(self._pending)
                self._pending.clear()
                self._idle.notify_all()
            for job_future, _, _ in orphaned:
                job_future.set_exception(MailboxClosed(f"{self.name}: {exc}"))
        return future

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run ``fn`` on the mailbox and wait for its result."""

        if self.in_mailbox:
            return fn(*args)
        return self.submit(fn, *args).result()

    def close(self) -> None:
        """Reject new work. Already queued jobs still run."""

        with self._lock:
            self._closed = True

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until the queue is empty and no job is running."""

        with self._idle:
            return self._idle.wait_for(lambda: not self._running, timeout)

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    self._running = False
                    self._owner = None
                    self._idle.notify_all()
                    return
                future, fn, args = self._pending.popleft()
                self._owner = threading.get_ident()
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args)
            except BaseException as exc:  # handed to whoever waits on the future
                future.set_exception(exc)
            else:
                future.set_result(result)
