from __future__ import annotations

import json
import logging
import os
import shlex
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from .lib.net import StaticNetwork
from .lib.storage import StorageLayout

logger = logging.getLogger(__name__)

# Shell-style keys accepted in ip-config.local.
_NETWORK_KEYS = {
    "IP": "address",
    "MASK": "netmask",
    "GW": "gateway",
    "DNS": "dns",
}


class ConfigError(ValueError):
    pass


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"config.{name} must be a mapping")
    return value


def _as_list(value: Any, key: str) -> List[Any]:
    # A lone YAML scalar means a one-item list, never a sequence of characters.
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    raise ConfigError(f"config.{key} must be a list")


def _number(section: Dict[str, Any], key: str, default: Any, cast: Callable[[Any], Any] = float) -> Any:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"config.{key} must be a number, got {value!r}")
    try:
        number = cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"config.{key} must be a number, got {value!r}") from e
    if number < 0:
        raise ConfigError(f"config.{key} must not be negative, got {value!r}")
    return number


@dataclass(frozen=True)
class ProvisionConfig:
    raw: Dict[str, Any]

    def under_root(self, path: str) -> str:
        """Resolve an absolute system path below system_root (tests, image mounts)."""
        return str(Path(self.system_root) / path.lstrip("/"))

    @property
    def system_root(self) -> str:
        return str(self.raw.get("system_root") or "/")

    # -- network

    @property
    def interface(self) -> str:
        return str(_section(self.raw, "network").get("interface") or "ens33")

    @property
    def interfaces_file(self) -> str:
        return str(_section(self.raw, "network").get("interfaces_file") or "/etc/network/interfaces")

    @property
    def static_network(self) -> Optional[StaticNetwork]:
        static = _section(self.raw, "network").get("static") or {}
        if not isinstance(static, dict):
            raise ConfigError("config.network.static must be a mapping")
        if not any(static.get(k) for k in ("address", "netmask", "gateway", "dns")):
            return None

        missing = [k for k in ("address", "netmask", "gateway", "dns") if not static.get(k)]
        if missing:
            raise ConfigError(f"Static network configuration is missing: {', '.join(missing)}")

        net = StaticNetwork(
            address=str(static["address"]),
            netmask=str(static["netmask"]),
            gateway=str(static["gateway"]),
            dns=str(static["dns"]),
        )
        try:
            net.validate()
        except ValueError as e:
            raise ConfigError(str(e)) from e
        return net

    # -- storage

    @property
    def storage_layout(self) -> StorageLayout:
        storage = _section(self.raw, "storage")
        known = {f.name for f in fields(StorageLayout)}
        unknown = set(storage) - known
        if unknown:
            raise ConfigError(f"Unknown storage settings: {', '.join(sorted(unknown))}")

        kwargs = dict(storage)
        for key in ("existing_partitions", "directories"):
            if key in kwargs:
                kwargs[key] = tuple(_as_list(kwargs[key], f"storage.{key}"))
        try:
            layout = StorageLayout(**kwargs)
            layout.validate()
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid storage settings: {e}") from e
        return layout

    @property
    def fstab_path(self) -> str:
        return self.under_root("/etc/fstab")

    # -- application

    @property
    def packages(self) -> List[str]:
        app = _section(self.raw, "application")
        value = app.get("packages")
        if value is None:
            return ["expedition-beta", "expeditionml-dependencies-beta"]
        packages = [str(p) for p in _as_list(value, "application.packages")]
        if not packages or not all(p.strip() for p in packages):
            raise ConfigError("config.application.packages must name at least one package")
        return packages

    @property
    def sources_list(self) -> str:
        app = _section(self.raw, "application")
        return str(app.get("sources_list") or "/etc/apt/sources.list.d/ex-repo.list")

    @property
    def service(self) -> str:
        return str(_section(self.raw, "application").get("service") or "apache2")

    # -- credentials

    @property
    def ssh_service(self) -> str:
        return str(_section(self.raw, "credentials").get("ssh_service") or "sshd")

    @property
    def certificate(self) -> Dict[str, Any]:
        creds = _section(self.raw, "credentials")
        return {
            "key": str(creds.get("key_path") or "/etc/ssl/certs/server.key"),
            "cert": str(creds.get("cert_path") or "/etc/ssl/certs/certificate.pem"),
            "common_name": str(creds.get("common_name") or "expedition"),
            "days": _number(creds, "days", 3650, int),
            "bits": _number(creds, "bits", 2048, int),
        }

    # -- settings

    @property
    def database(self) -> Dict[str, str]:
        db = _section(self.raw, "database")
        return {
            "user": str(db.get("user") or "root"),
            "password": str(db.get("password") or "paloalto"),
            "name": str(db.get("name") or "pandbRBAC"),
        }

    @property
    def user_definitions(self) -> str:
        return str(_section(self.raw, "settings").get("user_definitions") or "/var/www/html/libs/common/userDefinitions.php")

    @property
    def parser_memory(self) -> Dict[str, str]:
        settings = _section(self.raw, "settings")
        return {
            "from": str(settings.get("parser_memory_from") or "1G"),
            "to": str(settings.get("parser_memory_to") or "3G"),
        }

    @property
    def environment_cache(self) -> str:
        return str(_section(self.raw, "settings").get("environment_cache") or "/home/userSpace/environmentParameters.php")

    # -- execution

    @property
    def poll_interval(self) -> float:
        return _number(_section(self.raw, "execution"), "poll_interval", 0.25)

    @property
    def wait_timeout(self) -> Optional[float]:
        return _number(_section(self.raw, "execution"), "wait_timeout", None)

    @property
    def update_grace_seconds(self) -> float:
        return _number(_section(self.raw, "execution"), "update_grace_seconds", 5.0)

    @property
    def strict_background_exit(self) -> bool:
        value = _section(self.raw, "execution").get("strict_background_exit")
        if value is None:
            return True
        if not isinstance(value, bool):
            raise ConfigError(f"config.strict_background_exit must be true or false, got {value!r}")
        return value

    def validate(self) -> None:
        """Read every setting once so bad values fail before the first step."""

        for name in _SETTINGS:
            getattr(self, name)


_SETTINGS = (
    "system_root",
    "interface",
    "interfaces_file",
    "static_network",
    "storage_layout",
    "packages",
    "sources_list",
    "service",
    "ssh_service",
    "certificate",
    "database",
    "user_definitions",
    "parser_memory",
    "environment_cache",
    "poll_interval",
    "wait_timeout",
    "update_grace_seconds",
    "strict_background_exit",
)


def parse_env_file(text: str) -> Dict[str, str]:
    """Parse a sourced shell file of KEY=VALUE assignments.

    Only plain assignments are understood; anything else is ignored.
    """

    values: Dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        if not sep or not key.isidentifier():
            logger.warning("Ignoring line %d of shell config: %r", lineno, line)
            continue
        try:
            parts = shlex.split(value, comments=True)
        except ValueError as e:
            raise ConfigError(f"Line {lineno}: {e}") from e
        values[key] = parts[0] if parts else ""
    return values


def _raw_from_env_file(text: str) -> Dict[str, Any]:
    values = parse_env_file(text)
    static = {field: values[key] for key, field in _NETWORK_KEYS.items() if values.get(key)}
    raw: Dict[str, Any] = {}
    if static:
        raw["network"] = {"static": static}
    return raw


def load_config(path: Optional[str]) -> ProvisionConfig:
    """Load provisioning settings; a missing file means DHCP and defaults."""

    if not path or not os.path.exists(path):
        logger.info("No configuration at %s; using defaults (DHCP)", path)
        return ProvisionConfig(raw={})

    p = Path(path)
    text = p.read_text(encoding="utf-8")
    ext = p.suffix.lower()

    try:
        if ext in {".yaml", ".yml"}:
            raw = yaml.safe_load(text) or {}
        elif ext == ".json":
            raw = json.loads(text)
        else:
            raw = _raw_from_env_file(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration must be a mapping/object: {path}")

    logger.info("Loaded configuration from %s", path)
    return ProvisionConfig(raw=raw)
