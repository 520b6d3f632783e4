import pytest

from expedition_setup.executor import FatalFailure, Outcome, Policy
from expedition_setup.lib.procwait import ProcessWaiter

from .fakes import FakeProcessTable, FakeRunner, FakeSpawner


def test_successful_command(make_executor, reporter, stream) -> None:
    runner = FakeRunner()
    executor = make_executor(runner=runner)

    outcome = executor.run("Reloading partition table", ["partprobe", "/dev/sda"])

    assert outcome == Outcome.success()
    assert runner.calls == [["partprobe", "/dev/sda"]]
    assert reporter.current is None
    assert stream.getvalue().endswith("Reloading partition table: [Done]   \n")
    assert executor.history == [("Reloading partition table", Outcome.success())]


def test_fatal_failure_raises_with_custom_message(make_executor, stream) -> None:
    executor = make_executor(runner=FakeRunner({"apt-get": 100}))

    with pytest.raises(FatalFailure) as exc:
        executor.run(
            "Installing gdisk",
            ["apt-get", "-y", "install", "gdisk"],
            error="Could not install gdisk. Verify that the Internet is accessible and try again.",
        )

    assert exc.value.message.startswith("Could not install gdisk.")
    assert exc.value.step == "Installing gdisk"
    assert "exit status 100" in exc.value.detail
    assert "Installing gdisk: [Failed]" in stream.getvalue()


def test_fatal_failure_generic_message(make_executor) -> None:
    executor = make_executor(runner=FakeRunner({"vgextend": 5}))

    with pytest.raises(FatalFailure) as exc:
        executor.run("Adding new partition", ["vgextend", "Expedition-vg", "/dev/sda3"])

    assert exc.value.message.startswith("Adding new partition failed: exit status 5")
    assert exc.value.message.endswith(": boom")


def test_tolerated_failure_continues(make_executor, reporter) -> None:
    executor = make_executor(runner=FakeRunner({"ip": 1}))

    outcome = executor.run("Clearing DHCP Config", ["ip", "addr", "flush", "ens33"], policy=Policy.TOLERATED)

    assert outcome.ok is False
    assert "exit status 1" in outcome.detail
    assert reporter.current is None


def test_command_sequence_stops_at_first_failure(make_executor) -> None:
    runner = FakeRunner({"mkdir": 1})
    executor = make_executor(runner=runner)

    outcome = executor.run(
        "Create mount point",
        [["mkdir", "-p", "/storage"], ["mount", "/dev/mapper/x", "/storage"]],
        policy=Policy.TOLERATED,
    )

    assert not outcome.ok
    assert runner.calls == [["mkdir", "-p", "/storage"]]


def test_env_is_passed_to_runner(make_executor) -> None:
    runner = FakeRunner()
    executor = make_executor(runner=runner)

    executor.run("Update settings", ["mysql", "-e", "select 1"], env={"MYSQL_PWD": "secret"})

    assert runner.envs == [{"MYSQL_PWD": "secret"}]


def test_callable_operation_failure(make_executor) -> None:
    executor = make_executor()

    def broken() -> None:
        raise FileNotFoundError("/etc/fstab")

    with pytest.raises(FatalFailure) as exc:
        executor.run("Adding storage volume to fstab", broken)
    assert "/etc/fstab" in exc.value.detail


def test_callable_skipped_in_dry_run(make_executor) -> None:
    executor = make_executor(dry_run=True)
    called = []

    outcome = executor.run("Write config", lambda: called.append(True))

    assert outcome.ok
    assert called == []


def test_background_step_waits_for_pattern(reporter, sleeps, make_executor) -> None:
    table = FakeProcessTable({"apt-get": 2})
    spawner = FakeSpawner()
    executor = make_executor(spawner=spawner)
    executor.waiter = ProcessWaiter(reporter, probe=table, sleep=sleeps.append)

    outcome = executor.run_background(
        "Updating package database",
        ["apt-get", "update"],
        wait_pattern="apt-get",
        grace=5.0,
    )

    assert outcome.ok
    assert spawner.calls == [["apt-get", "update"]]
    assert sleeps == [5.0, 0.25, 0.25]


def test_background_exit_status_is_checked(make_executor) -> None:
    spawner = FakeSpawner({"apt-get -y install expedition-beta": 100})
    executor = make_executor(spawner=spawner)

    with pytest.raises(FatalFailure) as exc:
        executor.run_background(
            "Installing package expedition-beta",
            ["apt-get", "-y", "install", "expedition-beta"],
            wait_pattern="apt-get",
        )
    assert "exit status 100" in exc.value.detail


def test_background_exit_status_ignored_when_not_strict(make_executor) -> None:
    spawner = FakeSpawner({"apt-get -y install expedition-beta": 100})
    executor = make_executor(spawner=spawner, strict_background=False)

    outcome = executor.run_background(
        "Installing package expedition-beta",
        ["apt-get", "-y", "install", "expedition-beta"],
        wait_pattern="apt-get",
    )
    assert outcome.ok


def test_background_launch_error_is_a_failure(make_executor) -> None:
    def spawner(argv, *, env=None):
        raise FileNotFoundError(argv[0])

    executor = make_executor(spawner=spawner)
    outcome = executor.run_background(
        "Unattended Upgrades", ["unattended-upgrade"], wait_pattern="unattended-upgrade", policy=Policy.TOLERATED
    )
    assert not outcome.ok


def test_background_dry_run_spawns_nothing(make_executor) -> None:
    spawner = FakeSpawner()
    executor = make_executor(spawner=spawner, dry_run=True)

    assert executor.run_background("Updating package database", ["apt-get", "update"], wait_pattern="apt-get").ok
    assert spawner.calls == []


def test_fatal_stops_following_steps(make_executor) -> None:
    runner = FakeRunner({"lvcreate": 3})
    executor = make_executor(runner=runner)
    plan = [
        ("Extend VG", ["vgextend", "vg", "/dev/sda3"]),
        ("Create LV", ["lvcreate", "-n", "storage", "vg"]),
        ("Format", ["mkfs", "-t", "ext4", "/dev/mapper/vg-storage"]),
    ]

    with pytest.raises(FatalFailure):
        for description, argv in plan:
            executor.run(description, argv)

    assert [c[0] for c in runner.calls] == ["vgextend", "lvcreate"]
    assert [d for d, _ in executor.history] == ["Extend VG", "Create LV"]


def test_wait_reports_foreign_process(reporter, sleeps, make_executor, stream) -> None:
    executor = make_executor()
    executor.waiter = ProcessWaiter(
        reporter, probe=FakeProcessTable({"unattended-upgrade": 1}), sleep=sleeps.append
    )

    outcome = executor.wait("Unattended Upgrades", "unattended-upgrade")

    assert outcome.ok
    assert reporter.current is None
    assert "Unattended Upgrades: [Done]" in stream.getvalue()
