# pyright: reportUnknownMemberType=false
"""
Run a callable once for every number in a range, spread over a fixed pool of
worker threads.

Workers pull the next number from a shared counter until the range is
exhausted. The first failure raises a shared flag; other workers finish the
unit they are on and then stop claiming new ones. Units in flight are never
interrupted.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from buildenv.util.command_runner import CommandRunner
from buildenv.util.cpu_count import available_parallelism
from buildenv.util.global_interrupt_handler import notify_main_thread


logger = logging.getLogger(__name__)

UnitFn = Callable[[CommandRunner, int], None]


class AtomicCounter:
    """Integer with an atomic fetch-and-add."""

    def __init__(self, start: int = 0) -> None:
        self._value = start
        self._lock = threading.Lock()

    def fetch_add(self, amount: int = 1) -> int:
        with self._lock:
            value = self._value
            self._value += amount
            return value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


def _worker(
    local_runner: CommandRunner,
    counter: AtomicCounter,
    end: int,
    failed: threading.Event,
    fn: UnitFn,
) -> None:
    # Each worker keeps asking for numbers until we're all done.
    while True:
        cur = counter.fetch_add(1)
        if cur >= end:
            # We hit the upper limit and are done.
            return
        try:
            fn(local_runner, cur)
        except KeyboardInterrupt:
            failed.set()
            notify_main_thread()
            raise
        except Exception:
            # If we failed, tell everyone about this.
            failed.set()
            logger.debug("Unit %d failed on %s", cur, threading.current_thread().name)
            raise
        # Check if some other unit failed (in which case we stop as well).
        if failed.is_set():
            return


def run_many(
    runner: CommandRunner,
    work: range,
    fn: UnitFn,
    workers: int | None = None,
) -> None:
    """
    Call `fn(session, n)` for every `n` in `work`, in parallel.

    Args:
        runner: Session each worker gets its own clone of.
        work: Half-open range of unit numbers; step must be 1.
        fn: Operation for one unit. Raising marks the run as failed.
        workers: Pool size, defaults to the host's available parallelism.

    Raises:
        The first exception raised by a worker, in worker order, after every
        worker has finished.
    """
    if work.step != 1:
        raise ValueError(f"work range must have step 1, got {work.step}")
    if len(work) == 0:
        return

    pool_size = workers if workers is not None else available_parallelism()
    if pool_size < 1:
        raise ValueError(f"need at least one worker, got {pool_size}")

    counter = AtomicCounter(work.start)
    failed = threading.Event()
    logger.debug("Running %s on %d workers", work, pool_size)

    with ThreadPoolExecutor(
        max_workers=pool_size, thread_name_prefix="run-many"
    ) as executor:
        futures: list[Future[None]] = [
            # Create a copy of the session for every worker.
            executor.submit(_worker, runner.clone(), counter, work.stop, failed, fn)
            for _ in range(pool_size)
        ]
        # Wait for all workers to be done before reporting anything.
        errors = [future.exception() for future in futures]

    for error in errors:
        if error is not None:
            raise error
    # If all workers succeeded, we can't have failed.
    assert not failed.is_set()
