import pytest

from expedition_setup.progress import ProgressReporter, Task, TaskStatus


def test_begin_prints_in_progress_marker(reporter, stream) -> None:
    task = reporter.begin("Installing gdisk")

    assert task.status is TaskStatus.RUNNING
    assert reporter.current is task
    assert stream.getvalue() == "\rInstalling gdisk: [...]"


def test_begin_finalizes_previous_task(reporter, stream) -> None:
    first = reporter.begin("Reloading partition table")
    second = reporter.begin("Installing GPT GRUB")

    assert first.status is TaskStatus.DONE
    assert second.status is TaskStatus.RUNNING
    assert "\rReloading partition table: [Done]   \n" in stream.getvalue()


def test_end_clears_current_task(reporter, stream) -> None:
    task = reporter.begin("Restarting apache2")
    finished = reporter.end()

    assert finished is task
    assert task.status is TaskStatus.DONE
    assert reporter.current is None
    assert stream.getvalue().endswith("\rRestarting apache2: [Done]   \n")


def test_end_without_task_is_noop(reporter, stream) -> None:
    assert reporter.end() is None
    assert stream.getvalue() == ""


def test_end_marks_failure(reporter, stream) -> None:
    task = reporter.begin("Formatting volume with ext4")
    reporter.end(TaskStatus.FAILED)

    assert task.status is TaskStatus.FAILED
    assert "[Failed]" in stream.getvalue()


def test_every_task_finishes_exactly_once(reporter) -> None:
    tasks = [reporter.begin(f"task {n}") for n in range(5)]
    reporter.end()
    reporter.end()

    assert [t.status for t in tasks] == [TaskStatus.DONE] * 5


def test_spin_rotates_glyphs(reporter, stream) -> None:
    reporter.begin("Unattended Upgrades")
    for _ in range(5):
        reporter.spin()

    out = stream.getvalue()
    assert [g for g in "-\\|/" if f"[ {g} ]" in out] == ["-", "\\", "|", "/"]
    assert out.count("[ - ]") == 2


def test_spin_without_task_writes_nothing(reporter, stream) -> None:
    reporter.spin()
    assert stream.getvalue() == ""


def test_section_closes_open_task(reporter, stream) -> None:
    task = reporter.begin("Activating interface")
    reporter.section("System Updates")

    assert task.status is TaskStatus.DONE
    assert stream.getvalue().endswith("----------System Updates----------\n")


def test_error_is_blank_line_separated(reporter, stream) -> None:
    reporter.error("Could not install gdisk.")
    assert stream.getvalue() == "\n\nERROR: Could not install gdisk.\n"


def test_task_rejects_illegal_transitions() -> None:
    task = Task("mount")
    with pytest.raises(ValueError):
        task.finish(TaskStatus.DONE)

    task.start()
    with pytest.raises(ValueError):
        task.start()
    with pytest.raises(ValueError):
        task.finish(TaskStatus.RUNNING)

    task.finish(TaskStatus.DONE)
    with pytest.raises(ValueError):
        task.finish(TaskStatus.FAILED)
    assert task.finished


def test_reporter_defaults_to_stdout(capsys) -> None:
    ProgressReporter().message("hello")
    assert capsys.readouterr().out == "hello\n"
