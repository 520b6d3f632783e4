from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from ..progress import ProgressReporter
from .command import run_cmd

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.25


class Handle(Protocol):
    """The part of subprocess.Popen the waiter relies on."""

    def poll(self) -> Optional[int]:
        ...


class WaitTimeout(RuntimeError):
    def __init__(self, pattern: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:g}s waiting for processes matching {pattern!r}")
        self.pattern = pattern
        self.timeout = timeout


def process_running(pattern: str) -> bool:
    """Return True if any process command line matches pattern (pgrep -f)."""

    r = run_cmd(["pgrep", "-f", pattern], check=False, quiet=True)
    return r.returncode == 0


class ProcessWaiter:
    """Block until a background job has left the process table.

    Absence of the pattern is taken as completion. That says nothing about
    how the job ended; callers that launched the job themselves pass its
    handle so the exit status can be inspected afterwards.
    """

    def __init__(
        self,
        reporter: ProgressReporter,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
        probe: Callable[[str], bool] = process_running,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        dry_run: bool = False,
    ) -> None:
        self.reporter = reporter
        self.interval = interval
        self.timeout = timeout
        self._probe = probe
        self._sleep = sleep
        self._clock = clock
        self.dry_run = dry_run

    def is_running(self, pattern: str) -> bool:
        if self.dry_run:
            return False
        return self._probe(pattern)

    def _busy(self, pattern: str, handle: Optional[Handle]) -> bool:
        if handle is not None and handle.poll() is None:
            return True
        return self.is_running(pattern)

    def wait_for(
        self,
        pattern: str,
        *,
        handle: Optional[Handle] = None,
        timeout: Optional[float] = None,
    ) -> None:
        limit = timeout if timeout is not None else self.timeout
        deadline = None if limit is None else self._clock() + limit

        polls = 0
        while self._busy(pattern, handle):
            if deadline is not None and self._clock() >= deadline:
                raise WaitTimeout(pattern, limit)
            self.reporter.spin()
            self._sleep(self.interval)
            polls += 1

        if polls:
            logger.info("Processes matching %r finished after %d polls", pattern, polls)
