from __future__ import annotations

import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreconditionFailure:
    """The run cannot start as is but has a defined way to recover.

    Recovery re-launches the whole command under sudo. Nothing survives the
    boundary: the elevated process starts from the top, re-reads its
    configuration and rebuilds every component.
    """

    reason: str
    recovery_argv: list[str]

    def recover(self, *, call: Callable[[Sequence[str]], int] = subprocess.call) -> int:
        logger.info("%s; re-running as %s", self.reason, " ".join(self.recovery_argv))
        return call(self.recovery_argv)


def elevated_argv(argv: Sequence[str]) -> list[str]:
    return ["sudo", sys.executable, "-m", "expedition_setup", *argv]


def check_privileges(argv: Sequence[str], *, euid: Optional[int] = None) -> Optional[PreconditionFailure]:
    uid = os.geteuid() if euid is None else euid
    if uid == 0:
        return None
    return PreconditionFailure(
        reason="Provisioning requires root privileges",
        recovery_argv=elevated_argv(argv),
    )
