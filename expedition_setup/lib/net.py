from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaticNetwork:
    address: str
    netmask: str
    gateway: str
    dns: str

    def validate(self) -> None:
        for field_name in ("address", "netmask", "gateway", "dns"):
            value = getattr(self, field_name)
            try:
                ipaddress.IPv4Address(value)
            except ValueError as e:
                raise ValueError(f"Invalid {field_name} {value!r}: {e}") from e

        try:
            iface = ipaddress.IPv4Interface(f"{self.address}/{self.netmask}")
        except ValueError as e:
            raise ValueError(f"Invalid netmask {self.netmask!r}: {e}") from e
        if ipaddress.IPv4Address(self.gateway) not in iface.network:
            logger.warning("Gateway %s is outside %s", self.gateway, iface.network)


def render_static_stanza(interface: str, net: StaticNetwork) -> str:
    return (
        f"iface {interface} inet static\n"
        f" address {net.address}\n"
        f" netmask {net.netmask}\n"
        f" gateway {net.gateway}\n"
        f" dns-nameservers {net.dns}\n"
    )


def apply_static_config(text: str, interface: str, net: StaticNetwork) -> str:
    """Replace the interface's DHCP stanza line with a static one."""

    pattern = re.compile(rf"^iface\s+{re.escape(interface)}\s+inet\s+dhcp[ \t]*\n?", re.MULTILINE)
    patched, count = pattern.subn(lambda _m: render_static_stanza(interface, net), text, count=1)
    if not count:
        raise ValueError(f"No 'iface {interface} inet dhcp' stanza to replace")
    return patched


def write_static_config(path: str, interface: str, net: StaticNetwork) -> None:
    p = Path(path)
    p.write_text(apply_static_config(p.read_text(encoding="utf-8"), interface, net), encoding="utf-8")
    logger.info("Configured %s for static address %s in %s", interface, net.address, path)


def flush_argv(interface: str) -> list[str]:
    return ["ip", "addr", "flush", interface]


def ifdown_argv(interface: str) -> list[str]:
    return ["ifdown", interface]


def ifup_argv(interface: str) -> list[str]:
    return ["ifup", interface]
