"""Operator-facing progress lines.

Each task owns one console line that is rewritten in place:

    Installing gdisk: [...]
    Installing gdisk: [ / ]
    Installing gdisk: [Done]

Starting a new task finalizes the previous one, so callers that only know
where the next task begins never leave a line unterminated.
"""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass
from typing import Optional, TextIO

SPINNER_GLYPHS = ("-", "\\", "|", "/")


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Task:
    name: str
    status: TaskStatus = TaskStatus.PENDING

    @property
    def finished(self) -> bool:
        return self.status in (TaskStatus.DONE, TaskStatus.FAILED)

    def start(self) -> None:
        if self.status is not TaskStatus.PENDING:
            raise ValueError(f"Task {self.name!r} cannot start from {self.status.value}")
        self.status = TaskStatus.RUNNING

    def finish(self, status: TaskStatus) -> None:
        if status not in (TaskStatus.DONE, TaskStatus.FAILED):
            raise ValueError(f"Task {self.name!r} cannot finish as {status.value}")
        if self.status is not TaskStatus.RUNNING:
            raise ValueError(f"Task {self.name!r} cannot finish from {self.status.value}")
        self.status = status


class ProgressReporter:
    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._glyph = 0
        self.current: Optional[Task] = None

    def _write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()

    def begin(self, name: str) -> Task:
        self.end()
        task = Task(name)
        task.start()
        self.current = task
        self._glyph = 0
        self._write(f"\r{name}: [...]")
        return task

    def spin(self) -> None:
        if self.current is None:
            return
        glyph = SPINNER_GLYPHS[self._glyph % len(SPINNER_GLYPHS)]
        self._glyph += 1
        self._write(f"\r{self.current.name}: [ {glyph} ] ")

    def end(self, status: TaskStatus = TaskStatus.DONE) -> Optional[Task]:
        task = self.current
        if task is None:
            return None
        task.finish(status)
        self.current = None
        label = "Done" if status is TaskStatus.DONE else "Failed"
        self._write(f"\r{task.name}: [{label}]   \n")
        return task

    def section(self, title: str) -> None:
        self.end()
        self._write(f"----------{title}----------\n")

    def message(self, text: str) -> None:
        self.end()
        self._write(f"{text}\n")

    def error(self, text: str) -> None:
        # The failing task was already marked by the executor; anything still
        # open is left as is so the operator sees where the run stopped.
        self.current = None
        self._write(f"\n\nERROR: {text}\n")
