from __future__ import annotations

import enum
import logging
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence, Tuple, Union

from .lib.command import CmdResult, fmt_argv, run_cmd, spawn_cmd
from .lib.procwait import ProcessWaiter, WaitTimeout
from .progress import ProgressReporter, TaskStatus

logger = logging.getLogger(__name__)

Argv = Sequence[str]
Operation = Union[Argv, Sequence[Argv], Callable[[], None]]

# Exceptions a Python-level operation may raise to signal a failed step.
OPERATION_ERRORS = (OSError, RuntimeError, ValueError, subprocess.SubprocessError)


class Policy(str, enum.Enum):
    FATAL = "fatal"
    TOLERATED = "tolerated"


@dataclass(frozen=True)
class Outcome:
    ok: bool
    detail: str = ""

    @classmethod
    def success(cls) -> "Outcome":
        return cls(ok=True)

    @classmethod
    def failure(cls, detail: str) -> "Outcome":
        return cls(ok=False, detail=detail)


class FatalFailure(Exception):
    """A step failed with no safe continuation; the run must stop."""

    def __init__(self, message: str, *, step: Optional[str] = None, detail: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.detail = detail


def _as_commands(operation: Sequence) -> List[List[str]]:
    if all(isinstance(a, str) for a in operation):
        return [list(operation)]
    return [list(argv) for argv in operation]


def _describe_exit(r: CmdResult) -> str:
    tail = (r.stderr or "").strip().splitlines()
    msg = f"exit status {r.returncode} from {fmt_argv(r.argv)}"
    if tail:
        msg += f": {tail[-1]}"
    return msg


class StepExecutor:
    """Run one provisioning operation and apply its failure policy.

    Only exit status is observed; command output goes to the log file.
    """

    def __init__(
        self,
        reporter: ProgressReporter,
        waiter: ProcessWaiter,
        *,
        runner: Callable[..., CmdResult] = run_cmd,
        spawner: Callable[..., subprocess.Popen] = spawn_cmd,
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False,
        strict_background: bool = True,
    ) -> None:
        self.reporter = reporter
        self.waiter = waiter
        self._runner = runner
        self._spawner = spawner
        self._sleep = sleep
        self.dry_run = dry_run
        self.strict_background = strict_background
        self.history: List[Tuple[str, Outcome]] = []

    def run(
        self,
        description: str,
        operation: Operation,
        *,
        policy: Policy = Policy.FATAL,
        error: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> Outcome:
        self.reporter.begin(description)
        logger.info("Step: %s (%s)", description, policy.value)

        if callable(operation):
            outcome = self._call(description, operation)
        else:
            outcome = self._commands(_as_commands(operation), env)

        return self._settle(description, outcome, policy, error)

    def run_background(
        self,
        description: str,
        argv: Argv,
        *,
        wait_pattern: str,
        policy: Policy = Policy.FATAL,
        error: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        grace: float = 0.0,
    ) -> Outcome:
        self.reporter.begin(description)
        logger.info("Background step: %s (%s, waits on %r)", description, policy.value, wait_pattern)

        if self.dry_run:
            logger.info("Would spawn %s", fmt_argv(argv))
            return self._settle(description, Outcome.success(), policy, error)

        try:
            handle = self._spawner(argv, env=env)
        except OSError as e:
            return self._settle(description, Outcome.failure(str(e)), policy, error)

        if grace:
            self._sleep(grace)
        try:
            self.waiter.wait_for(wait_pattern, handle=handle)
        except WaitTimeout as e:
            return self._settle(description, Outcome.failure(str(e)), policy, error)

        returncode = handle.poll()
        if returncode and self.strict_background:
            outcome = Outcome.failure(f"exit status {returncode} from {fmt_argv(argv)}")
        else:
            if returncode:
                logger.warning("Ignoring exit status %s from %s", returncode, fmt_argv(argv))
            outcome = Outcome.success()
        return self._settle(description, outcome, policy, error)

    def wait(self, description: str, pattern: str) -> Outcome:
        """Report a task that consists only of waiting for a foreign process."""

        self.reporter.begin(description)
        logger.info("Waiting for running processes matching %r", pattern)
        try:
            self.waiter.wait_for(pattern)
        except WaitTimeout as e:
            return self._settle(description, Outcome.failure(str(e)), Policy.TOLERATED, None)
        return self._settle(description, Outcome.success(), Policy.TOLERATED, None)

    def _call(self, description: str, fn: Callable[[], None]) -> Outcome:
        if self.dry_run:
            logger.info("Would run: %s", description)
            return Outcome.success()
        try:
            fn()
        except OPERATION_ERRORS as e:
            return Outcome.failure(str(e))
        return Outcome.success()

    def _commands(self, commands: List[List[str]], env: Optional[Mapping[str, str]]) -> Outcome:
        for argv in commands:
            r = self._runner(argv, check=False, env=env, dry_run=self.dry_run)
            if r.returncode != 0:
                return Outcome.failure(_describe_exit(r))
        return Outcome.success()

    def _settle(
        self,
        description: str,
        outcome: Outcome,
        policy: Policy,
        error: Optional[str],
    ) -> Outcome:
        self.history.append((description, outcome))

        if outcome.ok:
            self.reporter.end(TaskStatus.DONE)
            return outcome

        self.reporter.end(TaskStatus.FAILED)
        if policy is Policy.TOLERATED:
            logger.warning("Ignoring failure of %r: %s", description, outcome.detail)
            return outcome

        message = error or f"{description} failed: {outcome.detail}"
        logger.error("Fatal failure in %r: %s", description, outcome.detail)
        raise FatalFailure(message, step=description, detail=outcome.detail)
