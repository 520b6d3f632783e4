import pytest

from expedition_setup.config import ProvisionConfig
from expedition_setup.executor import FatalFailure
from expedition_setup.main import build_steps
from expedition_setup.pipeline import RunContext, run_pipeline
from expedition_setup.steps import RegenerateKeysStep, UpdateSettingsStep

from .fakes import FakeRunner, FakeSpawner

USER_DEFINITIONS = "<?php\n$defs = array(('PARSER_max_execution_memory','1G'), ('OTHER','1G'));\n"


@pytest.fixture
def system_root(tmp_path):
    root = tmp_path / "root"
    files = {
        "etc/fstab": "UUID=abcd / ext4 errors=remount-ro 0 1\n",
        "etc/apt/sources.list.d/ex-repo.list": "deb http://repo.example.com/ expedition main\n",
        "etc/ssh/ssh_host_rsa_key": "old",
        "etc/ssh/ssh_host_rsa_key.pub": "old",
        "etc/ssh/sshd_config": "PermitRootLogin no\n",
        "var/www/html/libs/common/userDefinitions.php": USER_DEFINITIONS,
        "home/userSpace/environmentParameters.php": "<?php\n",
    }
    for rel, text in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def ctx(system_root, make_executor, reporter, waiter):
    runner, spawner = FakeRunner(), FakeSpawner()
    state = {}
    return RunContext(
        config=ProvisionConfig(raw={"system_root": str(system_root)}),
        state=state,
        reporter=reporter,
        waiter=waiter,
        executor=make_executor(runner=runner, spawner=spawner),
    )


def test_full_run_in_order(ctx, system_root, stream) -> None:
    result = run_pipeline(ctx, build_steps())

    assert result.ran_steps == [s.step_id for s in build_steps()]
    descriptions = [d for d, _ in ctx.executor.history]
    assert descriptions == [
        "Unattended Upgrades",
        "Installing gdisk",
        "Converting partition table and adding new partitions",
        "Reloading partition table",
        "Installing GPT GRUB",
        "Adding new partition to LVM volume group Expedition-vg",
        "Create new storage volume in volume group Expedition-vg",
        "Formatting volume with ext4",
        "Create mount point and mount storage volume",
        "Adding storage volume to fstab",
        "Create paLogs and mlTmp directories and set permissions",
        "Marking repository as trusted",
        "Updating package database",
        "Installing package expedition-beta",
        "Installing package expeditionml-dependencies-beta",
        "Fixing any incomplete packages",
        "Removing any unneeded packages",
        "Restarting apache2",
        "Erasing old SSH keys",
        "Generating new SSH keys",
        "Restarting sshd",
        "Regenerating self-signed certificate",
        "Update ML Settings in Expedition database",
        "Expanding parser memory allocation to 3GB",
        "Clearing CPU and memory parameter cache",
    ]
    assert all(o.ok for _, o in ctx.executor.history)

    exe = ctx.state["execution"]
    assert exe["storage_state"] == "DIRECTORIES_PROVISIONED"
    assert [s["state"] for s in exe["storage_states"]][0] == "PARTITION_TOOL_INSTALLED"

    out = stream.getvalue()
    assert out.index("----------Partitioning Disk----------") < out.index(
        "----------Creating Storage Volume and Log Directory----------"
    )
    assert out.rstrip().endswith("* Please reboot to finish setting up Expedition *")


def test_regenerate_keys(ctx, system_root) -> None:
    RegenerateKeysStep().run(ctx)

    assert sorted(p.name for p in (system_root / "etc" / "ssh").iterdir()) == ["sshd_config"]
    runner_calls = ctx.executor._runner.calls
    assert runner_calls[0] == ["dpkg-reconfigure", "openssh-server"]
    assert runner_calls[1] == ["systemctl", "restart", "sshd"]
    openssl = runner_calls[2]
    assert openssl[:3] == ["openssl", "req", "-x509"]
    assert openssl[openssl.index("-subj") + 1] == "/CN=expedition"
    assert openssl[openssl.index("-days") + 1] == "3650"


def test_update_settings(ctx, system_root) -> None:
    UpdateSettingsStep().run(ctx)

    mysql = ctx.executor._runner.calls[0]
    assert mysql[:5] == ["mysql", "-u", "root", "-D", "pandbRBAC"]
    assert mysql[-1] == (
        "UPDATE ml_settings SET server='localhost', "
        "parquetPath='/storage/paLogs', tempDataPath='/storage/mlTmp'"
    )
    assert "paloalto" not in " ".join(mysql)
    assert ctx.executor._runner.envs[0] == {"MYSQL_PWD": "paloalto"}

    php = (system_root / "var/www/html/libs/common/userDefinitions.php").read_text(encoding="utf-8")
    assert "('PARSER_max_execution_memory','3G')" in php
    assert "('OTHER','1G')" in php
    assert not (system_root / "home/userSpace/environmentParameters.php").exists()


def test_update_settings_fails_on_unknown_definitions(ctx, system_root) -> None:
    (system_root / "var/www/html/libs/common/userDefinitions.php").write_text("<?php\n", encoding="utf-8")

    with pytest.raises(FatalFailure):
        UpdateSettingsStep().run(ctx)

    # Cache is only cleared after the memory setting was applied.
    assert (system_root / "home/userSpace/environmentParameters.php").exists()
