from __future__ import annotations

import logging

from ..lib.storage import StorageProvisioner, StorageState
from ..pipeline import RunContext
from ..state_store import record_storage_state

logger = logging.getLogger(__name__)


class StorageStep:
    """Repartition the disk and bring up the new storage volume.

    The existing disk was grown in the hypervisor; its MBR label is
    converted to GPT (drives >= 2TB) and the free space becomes a new PV in
    the appliance VG. Existing partitions are never touched.
    """

    step_id = "30_storage"

    def run(self, ctx: RunContext) -> None:
        cfg = ctx.config
        layout = cfg.storage_layout

        def on_transition(state: StorageState) -> None:
            record_storage_state(ctx.state, state.name)
            ctx.persist()

        storage = StorageProvisioner(
            ctx.executor,
            layout,
            fstab_path=cfg.fstab_path,
            on_transition=on_transition,
        )

        ctx.reporter.section("Partitioning Disk")
        storage.install_partition_tool()
        storage.convert_partition_table()
        storage.reload_partition_table()
        storage.reinstall_bootloader()

        ctx.reporter.section("Creating Storage Volume and Log Directory")
        storage.extend_volume_group()
        storage.create_logical_volume()
        storage.create_filesystem()
        storage.mount()
        storage.persist_mount()
        storage.provision_directories()

        logger.info("Storage ready at %s (%s)", layout.mount_point, layout.volume_device)
