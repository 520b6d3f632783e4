from __future__ import annotations

import logging

from ..executor import Policy
from ..lib.net import flush_argv, ifdown_argv, ifup_argv, write_static_config
from ..pipeline import RunContext

logger = logging.getLogger(__name__)


class ConfigureNetworkStep:
    step_id = "10_network"

    def run(self, ctx: RunContext) -> None:
        cfg = ctx.config
        net = cfg.static_network

        if net is None:
            # DHCP is what the image ships with; leave the interface alone.
            ctx.reporter.section("Using DHCP")
            logger.info("No static configuration; keeping DHCP on %s", cfg.interface)
            return

        ctx.reporter.section("Using Static IP Configuration")
        iface = cfg.interface
        interfaces_file = cfg.under_root(cfg.interfaces_file)
        ex = ctx.executor

        ex.run(
            f"Updating {cfg.interfaces_file}",
            lambda: write_static_config(interfaces_file, iface, net),
        )
        ex.run("Clearing DHCP Config", flush_argv(iface), policy=Policy.TOLERATED)
        ex.run("Shutting down interface", ifdown_argv(iface), policy=Policy.TOLERATED)
        ex.run(
            "Activating interface",
            ifup_argv(iface),
            error=f"Could not bring up {iface} with address {net.address}. Check {cfg.interfaces_file}.",
        )
