from __future__ import annotations

from ..executor import Policy
from ..lib.credentials import erase_ssh_host_keys, regenerate_ssh_host_keys_argv, self_signed_cert_argv
from ..lib.pkg import APT_ENV, systemctl_restart_argv
from ..pipeline import RunContext


class RegenerateKeysStep:
    """Replace the SSH host keys and TLS certificate shipped in the image.

    Every appliance deployed from the same image would otherwise share them.
    """

    step_id = "50_regenerate_keys"

    def run(self, ctx: RunContext) -> None:
        cfg = ctx.config
        ex = ctx.executor
        ctx.reporter.section("Regenerating keys")

        ssh_dir = cfg.under_root("/etc/ssh")
        ex.run("Erasing old SSH keys", lambda: erase_ssh_host_keys(ssh_dir), policy=Policy.TOLERATED)
        ex.run("Generating new SSH keys", regenerate_ssh_host_keys_argv(), env=APT_ENV)
        ex.run(f"Restarting {cfg.ssh_service}", systemctl_restart_argv(cfg.ssh_service))

        cert = cfg.certificate
        ex.run(
            "Regenerating self-signed certificate",
            self_signed_cert_argv(
                key_path=cert["key"],
                cert_path=cert["cert"],
                common_name=cert["common_name"],
                days=cert["days"],
                bits=cert["bits"],
            ),
        )
