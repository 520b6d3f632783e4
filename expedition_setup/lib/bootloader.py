from __future__ import annotations


def grub_install_bios_argv(disk: str) -> list[str]:
    """Reinstall GRUB for BIOS boot on a GPT disk.

    Needs a BIOS boot partition (type ef02) on the disk for core.img.
    """

    return ["grub-install", "--target=i386-pc", disk]
