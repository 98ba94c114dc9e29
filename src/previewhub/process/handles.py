"""Process handles: the live record of one spawned child.

Two variants share a base record:

    OneShotProcess      stdin is /dev/null; output is accumulated so the
                        completion event can carry it in full
    InteractiveProcess  stdin is a pipe; a resize hint records geometry

A handle lives in `Session.processes` while RUNNING and is removed the
moment the child exits.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class ProcessMode(Enum):
    """How a process is attached to its workspace."""

    ONE_SHOT = "one_shot"
    INTERACTIVE = "interactive"


class ProcessStatus(Enum):
    RUNNING = "running"
    EXITED = "exited"


@dataclass(slots=True, eq=False)
class ProcessHandle(ABC):
    """Shared fields of every spawned process."""

    id: str
    command: str
    args: tuple[str, ...]
    working_directory: str
    process: asyncio.subprocess.Process = field(repr=False)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    status: ProcessStatus = ProcessStatus.RUNNING
    exit_code: int | None = None

    @property
    @abstractmethod
    def mode(self) -> ProcessMode: ...

    @property
    def pid(self) -> int:
        return self.process.pid

    def mark_exited(self, exit_code: int) -> None:
        """RUNNING -> EXITED; the transition happens once."""
        if self.status is ProcessStatus.EXITED:
            return
        self.status = ProcessStatus.EXITED
        self.exit_code = exit_code


@dataclass(slots=True, eq=False)
class OneShotProcess(ProcessHandle):
    """Non-interactive run; output is kept for the completion event."""

    stdout_chunks: list[str] = field(default_factory=list, repr=False)
    stderr_chunks: list[str] = field(default_factory=list, repr=False)

    @property
    def mode(self) -> ProcessMode:
        return ProcessMode.ONE_SHOT

    def record(self, stream: str, text: str) -> None:
        (self.stdout_chunks if stream == "stdout" else self.stderr_chunks).append(text)

    @property
    def stdout(self) -> str:
        return "".join(self.stdout_chunks)

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_chunks)


@dataclass(slots=True, eq=False)
class InteractiveProcess(ProcessHandle):
    """Shell-like run with a writable stdin and a terminal size hint."""

    columns: int | None = None
    lines: int | None = None

    @property
    def mode(self) -> ProcessMode:
        return ProcessMode.INTERACTIVE

    @property
    def stdin(self) -> asyncio.StreamWriter | None:
        return self.process.stdin

    def resize(self, columns: int, lines: int) -> None:
        self.columns = columns
        self.lines = lines

    def close_input(self) -> bool:
        """Close stdin so the program reads EOF. False if it was already closed."""
        stdin = self.process.stdin
        if stdin is None or stdin.is_closing():
            return False
        stdin.close()
        return True
