from __future__ import annotations

from ..lib.pkg import PackageUpdater
from ..pipeline import RunContext


class UpdateApplicationStep:
    step_id = "40_update_application"

    def run(self, ctx: RunContext) -> None:
        cfg = ctx.config
        ctx.reporter.section("Updating Expedition")

        updater = PackageUpdater(ctx.executor, ctx.waiter, grace_seconds=cfg.update_grace_seconds)
        updater.update_application(
            cfg.packages,
            service=cfg.service,
            sources_list=cfg.under_root(cfg.sources_list),
        )
