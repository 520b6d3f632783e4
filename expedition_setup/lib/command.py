from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _merged_env(env: Mapping[str, str] | None) -> dict[str, str]:
    return dict(os.environ, **(env or {}))


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    dry_run: bool = False,
    quiet: bool = False,
) -> CmdResult:
    """Run a command to completion with consistent logging.

    - Logs the command (at DEBUG when quiet, e.g. for process-table polls).
    - Captures stdout/stderr into the log, never onto the console.
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    logger.log(logging.DEBUG if quiet else logging.INFO, "CMD %s", fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    try:
        p = subprocess.run(
            argv_list,
            text=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=_merged_env(env),
        )
    except FileNotFoundError as e:
        # Missing tool behaves like the shell would: exit status 127.
        if check:
            raise RuntimeError(f"Command not found: {argv_list[0]}") from e
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise RuntimeError(f"Command failed ({p.returncode}): {fmt_argv(argv_list)}\n{p.stderr}")

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


def spawn_cmd(
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
) -> subprocess.Popen:
    """Start a command in the background and return its handle.

    Output is discarded; completion is observed through the handle and the
    process table.
    """

    argv_list = list(argv)
    logger.info("SPAWN %s", fmt_argv(argv_list))
    return subprocess.Popen(
        argv_list,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        env=_merged_env(env),
        start_new_session=True,
    )
