"""Single-owner actor for workflow state.

Exactly one thread (the thread that constructs the loop) owns stage, entity
groups and live field storage. Worker threads never touch that state; they
submit callables through a queue and the owner drains it.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from typing import TypeVar

from .errors import ContractViolation

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OwnerLoop:
    def __init__(self, *, poll_interval: float = 0.05) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._poll_interval = poll_interval
        self._owner_ident = threading.get_ident()
        self._owner_name = threading.current_thread().name
        self._queue: queue.SimpleQueue[Callable[[], object]] = queue.SimpleQueue()

    @property
    def owner_name(self) -> str:
        return self._owner_name

    def is_owner_thread(self) -> bool:
        return threading.get_ident() == self._owner_ident

    def assert_owner(self, operation: str) -> None:
        if not self.is_owner_thread():
            raise ContractViolation(
                f"{operation} must run on the owner thread {self._owner_name!r}, "
                f"not {threading.current_thread().name!r}"
            )

    def post(self, fn: Callable[[], object]) -> None:
        """Queue ``fn`` for the owner thread without waiting for it."""

        self._queue.put(fn)

    def call(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` on the owner thread and return its result.

        From a worker thread this blocks until the owner has drained the call.
        From the owner thread itself the call runs inline.
        Exceptions raised by ``fn`` are re-raised in the caller.
        """

        if self.is_owner_thread():
            return fn()

        future: Future[T] = Future()

        def _run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn())
            except BaseException as exc:
                future.set_exception(exc)

        self._queue.put(_run)
        return future.result()

    def run_pending(self) -> int:
        """Run every queued callable; return how many ran."""

        self.assert_owner("OwnerLoop.run_pending")
        count = 0
        while True:
            try:
                task = self._queue.get_nowait()
            except queue.Empty:
                return count
            task()
            count += 1

    def run_until(self, predicate: Callable[[], bool], timeout: float | None = None) -> bool:
        """Drain the queue until ``predicate()`` holds.

        Returns False if ``timeout`` seconds elapse first.
        """

        self.assert_owner("OwnerLoop.run_until")
        deadline = None if timeout is None else time.monotonic() + timeout
        while not predicate():
            wait = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("Owner loop timed out", extra={"timeout_seconds": timeout})
                    return False
                wait = min(wait, remaining)
            try:
                task = self._queue.get(timeout=wait)
            except queue.Empty:
                continue
            task()
        return True
