"""
Per-attempt deadline enforcement.

The guarded operation runs on a worker thread while the caller waits on its
future with a timeout. Python cannot preempt a thread, so when the deadline
wins the worker is abandoned, not killed: it keeps running until the
underlying call returns and its late result is logged and discarded. Bound
the number of concurrent invocations above this layer to keep abandoned
workers from piling up.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
import logging
from typing import Callable, TypeVar

from .errors import CallTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_late_result(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.info("Abandoned upstream call finished late with error: %s", exc)
    else:
        logger.info("Abandoned upstream call finished late; result discarded")


class DeadlineGuard:
    def __init__(self, thread_name_prefix: str = "upstream-call"):
        self.thread_name_prefix = thread_name_prefix

    def guard(self, operation: Callable[[], T], timeout_ms: int) -> T:
        """
        Run `operation` and return its result if it finishes within `timeout_ms`.

        Raises:
            CallTimeoutError: when the deadline passes first.
            Exception: whatever `operation` raised, unchanged.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self.thread_name_prefix)
        future = executor.submit(operation)
        try:
            return future.result(timeout=timeout_ms / 1000)
        except FutureTimeoutError:
            if future.done():
                # Finished between the wait expiring and this check, or the
                # operation raised TimeoutError itself (an alias on 3.11+).
                return future.result()
            future.add_done_callback(_discard_late_result)
            raise CallTimeoutError(timeout_ms) from None
        finally:
            # Never join here: a timed-out worker is left to finish on its own.
            executor.shutdown(wait=False)
