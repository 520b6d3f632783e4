from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _sql_quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def ml_settings_sql(*, server: str, parquet_path: str, temp_path: str) -> str:
    return (
        "UPDATE ml_settings SET "
        f"server={_sql_quote(server)}, "
        f"parquetPath={_sql_quote(parquet_path)}, "
        f"tempDataPath={_sql_quote(temp_path)}"
    )


def mysql_argv(*, user: str, database: str, sql: str) -> list[str]:
    # The password travels in MYSQL_PWD so it stays out of the process table and log.
    return ["mysql", "-u", user, "-D", database, "-e", sql]


def parser_memory_definition(value: str) -> str:
    return f"('PARSER_max_execution_memory','{value}')"


def replace_in_file(path: str, old: str, new: str) -> None:
    """Swap one literal for another in a config file.

    A file that already holds the new value is left alone; one holding
    neither is an error.
    """

    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if old in text:
        p.write_text(text.replace(old, new), encoding="utf-8")
        logger.info("Replaced %s with %s in %s", old, new, path)
    elif new in text:
        logger.info("%s already contains %s", path, new)
    else:
        raise ValueError(f"{path} contains neither {old} nor {new}")


def remove_file(path: str) -> None:
    Path(path).unlink(missing_ok=True)
    logger.info("Removed %s", path)
