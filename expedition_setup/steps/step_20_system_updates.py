from __future__ import annotations

from ..lib.pkg import PackageUpdater
from ..pipeline import RunContext


class SystemUpdatesStep:
    step_id = "20_system_updates"

    def run(self, ctx: RunContext) -> None:
        ctx.reporter.section("System Updates")
        updater = PackageUpdater(
            ctx.executor,
            ctx.waiter,
            grace_seconds=ctx.config.update_grace_seconds,
        )
        updater.run_unattended_upgrade()
