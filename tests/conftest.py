from __future__ import annotations

import io
from typing import Callable, List

import pytest

from expedition_setup.executor import StepExecutor
from expedition_setup.lib.procwait import ProcessWaiter
from expedition_setup.progress import ProgressReporter

from .fakes import FakeProcessTable, FakeRunner, FakeSpawner


@pytest.fixture
def stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def reporter(stream: io.StringIO) -> ProgressReporter:
    return ProgressReporter(stream)


@pytest.fixture
def process_table() -> FakeProcessTable:
    return FakeProcessTable()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def waiter(reporter: ProgressReporter, process_table: FakeProcessTable, sleeps: List[float]) -> ProcessWaiter:
    return ProcessWaiter(reporter, probe=process_table, sleep=sleeps.append)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def make_executor(
    reporter: ProgressReporter,
    waiter: ProcessWaiter,
    sleeps: List[float],
) -> Callable[..., StepExecutor]:
    def factory(runner=None, spawner=None, **kwargs) -> StepExecutor:
        return StepExecutor(
            reporter,
            waiter,
            runner=runner or FakeRunner(),
            spawner=spawner or FakeSpawner(),
            sleep=sleeps.append,
            **kwargs,
        )

    return factory
