from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Optional, Sequence, TextIO

from .config import ConfigError, load_config
from .executor import FatalFailure, StepExecutor
from .lib.env import PATHS
from .lib.privilege import check_privileges
from .lib.procwait import ProcessWaiter
from .logging_utils import configure_logging
from .pipeline import RunContext, Step, run_pipeline
from .progress import ProgressReporter
from .state_store import (
    ensure_defaults,
    has_run,
    load_state,
    mark_finished,
    mark_started,
    record_error,
    save_state,
)
from .steps import (
    ConfigureNetworkStep,
    FinalizeStep,
    RegenerateKeysStep,
    StorageStep,
    SystemUpdatesStep,
    UpdateApplicationStep,
    UpdateSettingsStep,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PRECONDITION = 2


@dataclass(frozen=True)
class RunResult:
    ok: bool
    exit_code: int
    failed_step: Optional[str] = None
    error: Optional[str] = None


def build_steps() -> list[Step]:
    return [
        ConfigureNetworkStep(),
        SystemUpdatesStep(),
        StorageStep(),
        UpdateApplicationStep(),
        RegenerateKeysStep(),
        UpdateSettingsStep(),
        FinalizeStep(),
    ]


def run(
    *,
    config_path: Optional[str] = PATHS.config_default,
    state_path: str = PATHS.state_default,
    log_path: str = PATHS.log_default,
    dry_run: bool = False,
    force: bool = False,
    verbose: bool = False,
    stream: Optional[TextIO] = None,
    steps: Optional[Sequence[Step]] = None,
) -> RunResult:
    """Provision the appliance once, stopping at the first fatal failure."""

    configure_logging(log_path=log_path, also_console=verbose)
    reporter = ProgressReporter(stream)

    try:
        config = load_config(config_path)
        # Validate up front so a bad value cannot stop the run halfway through.
        config.validate()
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        reporter.error(f"Invalid configuration: {e}")
        return RunResult(ok=False, exit_code=EXIT_PRECONDITION, error=str(e))

    state = ensure_defaults(load_state(state_path))
    if has_run(state) and not force:
        msg = (
            f"Provisioning already ran on this machine (see {state_path}). "
            "It is not safe to repeat; use --force to override."
        )
        logger.error(msg)
        reporter.error(msg)
        return RunResult(ok=False, exit_code=EXIT_PRECONDITION, error=msg)

    def persist() -> None:
        if not dry_run:
            save_state(state_path, state)

    waiter = ProcessWaiter(
        reporter,
        interval=config.poll_interval,
        timeout=config.wait_timeout,
        dry_run=dry_run,
    )
    executor = StepExecutor(
        reporter,
        waiter,
        dry_run=dry_run,
        strict_background=config.strict_background_exit,
    )
    ctx = RunContext(
        config=config,
        state=state,
        reporter=reporter,
        waiter=waiter,
        executor=executor,
        persist=persist,
    )

    mark_started(state)
    try:
        result = run_pipeline(ctx, steps if steps is not None else build_steps())
    except FatalFailure as e:
        step = (state.get("execution") or {}).get("current_step")
        record_error(state, step=step, error=e.message)
        logger.error("Provisioning stopped in step %s: %s", step, e.message)
        reporter.error(e.message)
        return RunResult(ok=False, exit_code=EXIT_FATAL, failed_step=step, error=e.message)
    except Exception as e:
        logger.exception("Provisioning crashed")
        record_error(state, step=(state.get("execution") or {}).get("current_step"), error=str(e))
        raise
    finally:
        persist()

    mark_finished(state)
    persist()
    logger.info("Ran steps: %s", result.ran_steps)
    return RunResult(ok=True, exit_code=EXIT_OK)


def main(argv: Optional[list[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    p = argparse.ArgumentParser(
        prog="expedition-setup",
        description="One-time provisioning of a freshly deployed Expedition VM.",
    )
    p.add_argument("--config", default=PATHS.config_default, help="Static network/settings file (shell, yaml or json)")
    p.add_argument("--state", default=PATHS.state_default, help="Path to run state (json|yaml)")
    p.add_argument("--log", default=PATHS.log_default, help="Path to provisioning log")
    p.add_argument("--dry-run", action="store_true", help="Log every command without running it")
    p.add_argument("--force", action="store_true", help="Run even if a previous run is recorded")
    p.add_argument("--verbose", action="store_true", help="Also log to the console")

    args = p.parse_args(argv)

    if not args.dry_run:
        precondition = check_privileges(argv)
        if precondition is not None:
            # Restart boundary: the elevated run starts over from scratch.
            return precondition.recover()

    result = run(
        config_path=args.config,
        state_path=args.state,
        log_path=args.log,
        dry_run=bool(args.dry_run),
        force=bool(args.force),
        verbose=bool(args.verbose),
    )
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
