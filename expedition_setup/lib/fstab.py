from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str = "defaults"
    dump: int = 0
    passno: int = 2

    def render(self) -> str:
        return f"{self.spec} {self.mountpoint} {self.fstype} {self.options} {self.dump} {self.passno}"


def append_fstab_entry(path: str, entry: FstabEntry) -> None:
    """Append one entry to fstab; existing lines are never rewritten."""

    p = Path(path)
    existing = p.read_text(encoding="utf-8") if p.exists() else ""

    with p.open("a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(entry.render() + "\n")

    logger.info("Appended fstab entry to %s: %s", path, entry.render())
