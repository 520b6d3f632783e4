from __future__ import annotations

import logging

from ..executor import Policy
from ..lib.appsettings import (
    ml_settings_sql,
    mysql_argv,
    parser_memory_definition,
    remove_file,
    replace_in_file,
)
from ..pipeline import RunContext

logger = logging.getLogger(__name__)


class UpdateSettingsStep:
    step_id = "60_update_settings"

    def run(self, ctx: RunContext) -> None:
        cfg = ctx.config
        ex = ctx.executor
        ctx.reporter.section("Updating settings")

        # Point the ML engine at the directories created on the new volume.
        # First directory holds the parquet logs, the last one scratch data.
        paths = cfg.storage_layout.directory_paths
        parquet_path, temp_path = paths[0], paths[-1]
        db = cfg.database
        ex.run(
            "Update ML Settings in Expedition database",
            mysql_argv(
                user=db["user"],
                database=db["name"],
                sql=ml_settings_sql(server="localhost", parquet_path=parquet_path, temp_path=temp_path),
            ),
            env={"MYSQL_PWD": db["password"]},
        )

        memory = cfg.parser_memory
        user_definitions = cfg.under_root(cfg.user_definitions)
        ex.run(
            f"Expanding parser memory allocation to {memory['to']}B",
            lambda: replace_in_file(
                user_definitions,
                parser_memory_definition(memory["from"]),
                parser_memory_definition(memory["to"]),
            ),
        )

        # Regenerated by the application from the current VM resources.
        cache = cfg.under_root(cfg.environment_cache)
        ex.run(
            "Clearing CPU and memory parameter cache",
            lambda: remove_file(cache),
            policy=Policy.TOLERATED,
        )
