from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    config_default: str = "ip-config.local"
    state_default: str = "/var/lib/expedition-setup/state.json"
    log_default: str = "/var/log/expedition-setup.log"


PATHS = Paths()
