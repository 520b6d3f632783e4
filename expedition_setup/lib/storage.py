from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..executor import Operation, Policy, StepExecutor
from .bootloader import grub_install_bios_argv
from .fstab import FstabEntry, append_fstab_entry
from .pkg import APT_ENV, apt_install_argv

logger = logging.getLogger(__name__)

PARTITION_TOOL = "gdisk"
PARTITION_TOOL_ERROR = (
    "Could not install gdisk. Verify that the Internet is accessible and try again."
)


class StorageState(enum.IntEnum):
    UNCONFIGURED = 0
    PARTITION_TOOL_INSTALLED = 1
    PARTITION_TABLE_CONVERTED = 2
    KERNEL_RELOADED = 3
    BOOTLOADER_REINSTALLED = 4
    VOLUME_GROUP_EXTENDED = 5
    LOGICAL_VOLUME_CREATED = 6
    FILESYSTEM_CREATED = 7
    MOUNTED = 8
    PERSISTED_IN_FSTAB = 9
    DIRECTORIES_PROVISIONED = 10


class StorageOrderError(RuntimeError):
    pass


def _part_suffix(disk: str, n: int) -> str:
    # nvme/mmcblk devices use p suffix
    if disk.endswith(tuple("0123456789")):
        return f"{disk}p{n}"
    return f"{disk}{n}"


def mapper_path(volume_group: str, logical_volume: str) -> str:
    """Device-mapper node for an LV; dashes inside names are doubled."""

    vg = volume_group.replace("-", "--")
    lv = logical_volume.replace("-", "--")
    return f"/dev/mapper/{vg}-{lv}"


@dataclass(frozen=True)
class StorageLayout:
    disk: str = "/dev/sda"
    existing_partitions: Tuple[int, ...] = (1, 5)
    boot_partition: int = 2
    boot_start_sector: int = 34
    boot_end_sector: int = 2047
    data_partition: int = 3
    volume_group: str = "Expedition-vg"
    logical_volume: str = "storage"
    extents: str = "80%FREE"
    fstype: str = "ext4"
    mount_point: str = "/storage"
    mount_options: str = "relatime,errors=remount-ro"
    directories: Tuple[str, ...] = ("paLogs", "mlTmp")
    owner: str = "www-data"
    group: str = "www-data"

    def validate(self) -> None:
        numbers = (
            self.boot_partition,
            self.data_partition,
            self.boot_start_sector,
            self.boot_end_sector,
            *self.existing_partitions,
        )
        if not all(isinstance(n, int) and not isinstance(n, bool) for n in numbers):
            raise ValueError("partition numbers and sectors must be integers")
        new = {self.boot_partition, self.data_partition}
        if len(new) != 2:
            raise ValueError("boot and data partitions must use different numbers")
        clash = new & set(self.existing_partitions)
        if clash:
            raise ValueError(f"partition numbers {sorted(clash)} already exist on {self.disk}")
        if not self.boot_start_sector < self.boot_end_sector:
            raise ValueError("boot partition must end after it starts")
        if not self.directories:
            raise ValueError("at least one storage directory is required")

    @property
    def data_device(self) -> str:
        return _part_suffix(self.disk, self.data_partition)

    @property
    def volume_device(self) -> str:
        return mapper_path(self.volume_group, self.logical_volume)

    @property
    def directory_paths(self) -> list[str]:
        return [f"{self.mount_point.rstrip('/')}/{d}" for d in self.directories]

    @property
    def fstab_entry(self) -> FstabEntry:
        return FstabEntry(
            spec=self.volume_device,
            mountpoint=self.mount_point,
            fstype=self.fstype,
            options=self.mount_options,
            dump=0,
            passno=1,
        )

    def sgdisk_argv(self) -> list[str]:
        """Relabel as GPT and add the BIOS boot and LVM partitions in one go."""

        boot, data = self.boot_partition, self.data_partition
        return [
            "sgdisk",
            "-g",
            "-n",
            f"{boot}:{self.boot_start_sector}:{self.boot_end_sector}",
            "-n",
            f"{data}:0:0",
            "-t",
            f"{boot}:ef02",
            "-t",
            f"{data}:8e00",
            self.disk,
        ]


class StorageProvisioner:
    """Extend the appliance disk into a new mounted storage volume.

    The transitions are strictly linear and each one relies on the previous
    one having succeeded (LVM cannot see the new partition before the kernel
    re-reads the table, and so on). There is no rollback: after a fatal
    failure the last reached state is what the operator has to resume from.
    """

    def __init__(
        self,
        executor: StepExecutor,
        layout: StorageLayout,
        *,
        fstab_path: str = "/etc/fstab",
        on_transition: Optional[Callable[[StorageState], None]] = None,
    ) -> None:
        layout.validate()
        self.executor = executor
        self.layout = layout
        self.fstab_path = fstab_path
        self.on_transition = on_transition
        self.state = StorageState.UNCONFIGURED

    def _advance(
        self,
        target: StorageState,
        description: str,
        operation: Operation,
        *,
        error: Optional[str] = None,
        env: Optional[dict] = None,
    ) -> None:
        if target != self.state + 1:
            raise StorageOrderError(
                f"Cannot move storage from {self.state.name} to {target.name}"
            )

        self.executor.run(description, operation, policy=Policy.FATAL, error=error, env=env)

        self.state = target
        logger.info("Storage state: %s", target.name)
        if self.on_transition is not None:
            self.on_transition(target)

    def install_partition_tool(self) -> None:
        self._advance(
            StorageState.PARTITION_TOOL_INSTALLED,
            f"Installing {PARTITION_TOOL}",
            apt_install_argv([PARTITION_TOOL]),
            error=PARTITION_TOOL_ERROR,
            env=APT_ENV,
        )

    def convert_partition_table(self) -> None:
        self._advance(
            StorageState.PARTITION_TABLE_CONVERTED,
            "Converting partition table and adding new partitions",
            self.layout.sgdisk_argv(),
        )

    def reload_partition_table(self) -> None:
        self._advance(
            StorageState.KERNEL_RELOADED,
            "Reloading partition table",
            ["partprobe", self.layout.disk],
        )

    def reinstall_bootloader(self) -> None:
        self._advance(
            StorageState.BOOTLOADER_REINSTALLED,
            "Installing GPT GRUB",
            grub_install_bios_argv(self.layout.disk),
        )

    def extend_volume_group(self) -> None:
        vg = self.layout.volume_group
        self._advance(
            StorageState.VOLUME_GROUP_EXTENDED,
            f"Adding new partition to LVM volume group {vg}",
            ["vgextend", vg, self.layout.data_device],
        )

    def create_logical_volume(self) -> None:
        layout = self.layout
        self._advance(
            StorageState.LOGICAL_VOLUME_CREATED,
            f"Create new storage volume in volume group {layout.volume_group}",
            ["lvcreate", "-l", layout.extents, "-n", layout.logical_volume, layout.volume_group],
        )

    def create_filesystem(self) -> None:
        self._advance(
            StorageState.FILESYSTEM_CREATED,
            f"Formatting volume with {self.layout.fstype}",
            ["mkfs", "-t", self.layout.fstype, self.layout.volume_device],
        )

    def mount(self) -> None:
        layout = self.layout
        self._advance(
            StorageState.MOUNTED,
            "Create mount point and mount storage volume",
            [
                ["mkdir", "-p", layout.mount_point],
                ["mount", layout.volume_device, layout.mount_point],
            ],
        )

    def persist_mount(self) -> None:
        entry = self.layout.fstab_entry
        self._advance(
            StorageState.PERSISTED_IN_FSTAB,
            "Adding storage volume to fstab",
            lambda: append_fstab_entry(self.fstab_path, entry),
        )

    def provision_directories(self) -> None:
        layout = self.layout
        paths = layout.directory_paths
        self._advance(
            StorageState.DIRECTORIES_PROVISIONED,
            f"Create {' and '.join(layout.directories)} directories and set permissions",
            [
                ["mkdir", "-p", *paths],
                ["chown", "-R", f"{layout.owner}:{layout.group}", *paths],
            ],
        )

    def provision(self) -> None:
        for transition in (
            self.install_partition_tool,
            self.convert_partition_table,
            self.reload_partition_table,
            self.reinstall_bootloader,
            self.extend_volume_group,
            self.create_logical_volume,
            self.create_filesystem,
            self.mount,
            self.persist_mount,
            self.provision_directories,
        ):
            transition()
