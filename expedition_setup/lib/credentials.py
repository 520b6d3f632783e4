from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def erase_ssh_host_keys(ssh_dir: str) -> int:
    """Delete the host keys baked into the image; returns how many went."""

    removed = 0
    for key in sorted(Path(ssh_dir).glob("ssh_host_*")):
        key.unlink()
        removed += 1
    logger.info("Removed %d SSH host key file(s) from %s", removed, ssh_dir)
    if not removed:
        raise FileNotFoundError(f"No ssh_host_* files under {ssh_dir}")
    return removed


def regenerate_ssh_host_keys_argv() -> list[str]:
    return ["dpkg-reconfigure", "openssh-server"]


def self_signed_cert_argv(
    *,
    key_path: str,
    cert_path: str,
    common_name: str,
    days: int = 3650,
    bits: int = 2048,
) -> list[str]:
    return [
        "openssl",
        "req",
        "-x509",
        "-nodes",
        "-days",
        str(days),
        "-newkey",
        f"rsa:{bits}",
        "-keyout",
        key_path,
        "-out",
        cert_path,
        "-subj",
        f"/CN={common_name}",
    ]
