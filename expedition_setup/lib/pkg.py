from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from ..executor import Policy, StepExecutor
from .procwait import ProcessWaiter

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
APT_PATTERN = "apt-get"
UNATTENDED_UPGRADE = "unattended-upgrade"
# pgrep -f regex for the upgrade job itself. Newer releases keep
# unattended-upgrade-shutdown --wait-for-signal running for the whole uptime;
# that daemon must not count as an upgrade in progress.
UNATTENDED_UPGRADE_PATTERN = "unattended-upgrade( |$)"

_UNTRUSTED_DEB = re.compile(r"^(\s*deb)\s+(https?://)", re.MULTILINE)


def apt_update_argv() -> list[str]:
    return ["apt-get", "update"]


def apt_install_argv(packages: Sequence[str]) -> list[str]:
    return ["apt-get", "-y", "install", *packages]


def apt_fix_broken_argv() -> list[str]:
    return ["apt-get", "-y", "-f", "install"]


def apt_autoremove_argv() -> list[str]:
    return ["apt-get", "-y", "autoremove"]


def systemctl_restart_argv(service: str) -> list[str]:
    return ["systemctl", "restart", service]


def trust_repository(sources_list: str) -> None:
    """Mark every plain `deb http...` line of an apt sources file as trusted.

    The appliance repository is unsigned; without this apt refuses to update
    from it.
    """

    p = Path(sources_list)
    text = p.read_text(encoding="utf-8")
    patched, count = _UNTRUSTED_DEB.subn(r"\1 [trusted=yes] \2", text)
    if count:
        p.write_text(patched, encoding="utf-8")
    logger.info("Marked %d repository line(s) as trusted in %s", count, sources_list)


class PackageUpdater:
    """Drive apt through launch-then-wait cycles.

    apt-get is started in the background and joined through the process
    table, because unattended-upgrade (or another apt run it spawned) may
    already hold the dpkg lock when provisioning starts.
    """

    def __init__(
        self,
        executor: StepExecutor,
        waiter: ProcessWaiter,
        *,
        grace_seconds: float = 5.0,
    ) -> None:
        self.executor = executor
        self.waiter = waiter
        self.grace_seconds = grace_seconds

    def run_unattended_upgrade(self) -> None:
        description = "Unattended Upgrades"
        if self.waiter.is_running(UNATTENDED_UPGRADE_PATTERN):
            logger.info("unattended-upgrade already running; waiting for it")
            self.executor.wait(description, UNATTENDED_UPGRADE_PATTERN)
            return

        # unattended-upgrade hands off to another script; give it time to appear.
        self.executor.run_background(
            description,
            [UNATTENDED_UPGRADE],
            wait_pattern=UNATTENDED_UPGRADE_PATTERN,
            policy=Policy.TOLERATED,
            grace=self.grace_seconds,
        )

    def refresh_index(self) -> None:
        self.executor.run_background(
            "Updating package database",
            apt_update_argv(),
            wait_pattern=APT_PATTERN,
            policy=Policy.FATAL,
            env=APT_ENV,
        )

    def install_packages(self, packages: Sequence[str]) -> None:
        for package in packages:
            self.executor.run_background(
                f"Installing package {package}",
                apt_install_argv([package]),
                wait_pattern=APT_PATTERN,
                policy=Policy.FATAL,
                env=APT_ENV,
            )

    def cleanup(self) -> None:
        for description, argv in (
            ("Fixing any incomplete packages", apt_fix_broken_argv()),
            ("Removing any unneeded packages", apt_autoremove_argv()),
        ):
            self.executor.run_background(
                description,
                argv,
                wait_pattern=APT_PATTERN,
                policy=Policy.TOLERATED,
                env=APT_ENV,
            )

    def restart_service(self, service: str) -> None:
        self.executor.run(
            f"Restarting {service}",
            systemctl_restart_argv(service),
            policy=Policy.FATAL,
        )

    def update_application(
        self,
        packages: Sequence[str],
        *,
        service: str,
        sources_list: str,
    ) -> None:
        self.executor.run(
            "Marking repository as trusted",
            lambda: trust_repository(sources_list),
            policy=Policy.FATAL,
        )
        self.refresh_index()
        self.install_packages(packages)
        self.cleanup()
        self.restart_service(service)
