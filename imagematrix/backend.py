"""Execution backends for filesystem and container engine side effects.

Everything that touches the system goes through an ExecutionBackend so a dry
run can print the exact same sequence of actions without performing them.
"""

import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class Heading(str, Enum):
    SECTION = "section"
    PHASE = "phase"


class CommandError(RuntimeError):
    """Raised when an external command fails or cannot be started."""

    def __init__(self, command: list[str], returncode: int | None, message: str | None = None):
        self.command = list(command)
        self.returncode = returncode
        if message is None:
            message = f"Command failed with exit code {returncode}: {' '.join(self.command)}"
        super().__init__(message)


@dataclass(frozen=True)
class Action:
    """A single recorded backend request."""
    kind: str
    path: Path | None = None
    command: tuple[str, ...] = ()
    content: str | None = None
    working_dir: Path | None = None
    title: str | None = None


class ExecutionBackend:
    """Capability set used by targets, aliases and the pipeline."""

    def heading(self, level: Heading, title: str) -> None:
        raise NotImplementedError

    def create_directory(self, path: Path) -> None:
        raise NotImplementedError

    def write_file(self, path: Path, content: str) -> None:
        """Write the full content of a file, replacing any existing file."""
        raise NotImplementedError

    def run(self, command: list[str], working_dir: Path | None = None) -> None:
        """Run a command, raising CommandError on failure."""
        raise NotImplementedError

    def section(self, title: str) -> None:
        self.heading(Heading.SECTION, title)

    def phase(self, title: str) -> None:
        self.heading(Heading.PHASE, title)


class RealBackend(ExecutionBackend):
    """Performs every action for real."""

    def heading(self, level: Heading, title: str) -> None:
        pass

    def create_directory(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def write_file(self, path: Path, content: str) -> None:
        path = Path(path)
        path.unlink(missing_ok=True)
        path.write_text(content)

    def run(self, command: list[str], working_dir: Path | None = None) -> None:
        try:
            # Output is forwarded to our own stdout/stderr
            result = subprocess.run(command, cwd=working_dir)
        except FileNotFoundError:
            raise CommandError(command, None, f"Command not found: {command[0]}")

        if result.returncode != 0:
            raise CommandError(command, result.returncode)


class PrintBackend(ExecutionBackend):
    """Only prints and records the intended actions."""

    def __init__(self, stream=None):
        self.stream = stream
        self.actions: list[Action] = []

    def _print(self, text: str) -> None:
        print(text, file=self.stream or sys.stdout)

    def heading(self, level: Heading, title: str) -> None:
        self.actions.append(Action(kind=level.value, title=title))
        if level == Heading.SECTION:
            self._print(f" == Section: {title}")
        else:
            self._print(f" -- Phase: {title}")

    def create_directory(self, path: Path) -> None:
        self.actions.append(Action(kind="mkdir", path=Path(path)))
        self._print(f" > Creating directory at path: {path}")

    def write_file(self, path: Path, content: str) -> None:
        self.actions.append(Action(kind="write", path=Path(path), content=content))
        self._print(f" > Creating file at path: {path}")
        self._print("\n".join(f"    {line}" for line in content.splitlines()))

    def run(self, command: list[str], working_dir: Path | None = None) -> None:
        self.actions.append(Action(
            kind="run",
            command=tuple(command),
            working_dir=Path(working_dir) if working_dir is not None else None,
        ))
        self._print(f" > Executing command: {' '.join(command)}")
        if working_dir is not None:
            self._print(f"   Working Directory: {working_dir}")

    @property
    def commands(self) -> list[tuple[str, ...]]:
        """All recorded commands, in order."""
        return [a.command for a in self.actions if a.kind == "run"]


class CompositeBackend(ExecutionBackend):
    """Forwards each call to a list of backends, in order."""

    def __init__(self, backends: list[ExecutionBackend] | None = None):
        self.backends = list(backends or [])

    def heading(self, level: Heading, title: str) -> None:
        for backend in self.backends:
            backend.heading(level, title)

    def create_directory(self, path: Path) -> None:
        for backend in self.backends:
            backend.create_directory(path)

    def write_file(self, path: Path, content: str) -> None:
        for backend in self.backends:
            backend.write_file(path, content)

    def run(self, command: list[str], working_dir: Path | None = None) -> None:
        for backend in self.backends:
            backend.run(command, working_dir)
