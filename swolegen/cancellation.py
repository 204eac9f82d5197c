"""
Cancellation and deadline handling shared by fetches and provider calls.
"""

import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError

from swolegen.errors import CancelledError

POLL_INTERVAL = 0.05


class CallContext:
    """Carries a cancel flag and an optional deadline through one pipeline call.

    A context can be cancelled from another thread; every blocking step checks
    it before and after it runs and uses ``remaining()`` as its timeout.
    """

    def __init__(self, timeout=None):
        self._cancelled = threading.Event()
        self._reason = "context cancelled"
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason="context cancelled"):
        self._reason = reason
        self._cancelled.set()

    @property
    def cancelled(self):
        if self._cancelled.is_set():
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self._reason = "deadline exceeded"
            self._cancelled.set()
            return True
        return False

    def remaining(self, default=None):
        """Seconds left before the deadline, or ``default`` when there is none."""
        if self.deadline is None:
            return default
        left = max(0.0, self.deadline - time.monotonic())
        if default is not None:
            return min(left, default)
        return left

    def check(self):
        if self.cancelled:
            raise CancelledError(self._reason)

    def call(self, fn, *args, **kwargs):
        """
        Run a blocking ``fn`` on a worker thread and wait for it, raising
        CancelledError as soon as this context is cancelled or times out.

        An abandoned call keeps running on its daemon thread until its own
        timeout; its result is discarded.
        """
        self.check()
        future = Future()

        def worker():
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        threading.Thread(target=worker, daemon=True).start()
        while True:
            try:
                return future.result(timeout=POLL_INTERVAL)
            except FutureTimeoutError:
                self.check()


def background():
    """A context that is never cancelled and has no deadline."""
    return CallContext()
