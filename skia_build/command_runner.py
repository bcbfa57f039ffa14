"""Execution of gn, ninja and other external tools, or a dry-run record of them."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Sequence
import os
import shlex
import subprocess


OutputSink = Callable[[str], None]

DIAGNOSTIC_TAIL_LINES = 60
"""Number of trailing output lines kept from streamed commands."""


def quote_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in command)


def _child_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
    # extra variables are layered over the current environment
    if env is None:
        return None
    return {**os.environ, **env}


@dataclass
class CommandResult:
    """Exit status and output of one tool invocation.

    For streamed commands ``stdout`` holds only the last
    :data:`DIAGNOSTIC_TAIL_LINES` lines of the combined output.
    """

    command: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    streamed: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class CommandError(RuntimeError):
    """A checked command exited with a nonzero status."""

    def __init__(self, result: CommandResult):
        self.result = result
        tool = Path(str(result.command[0])).name if result.command else "<empty>"
        lines = [f"{tool} exited with status {result.returncode}: {quote_command(result.command)}"]
        if result.diagnostic:
            lines.append(result.diagnostic)
        super().__init__("\n".join(lines))


class CommandRunner:
    """Base class: subclasses implement :meth:`_execute`, checking is shared."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        result = self._execute(list(command), cwd=cwd, env=env, note=note, stream=stream)
        if check and not result.ok:
            raise CommandError(result)
        return result

    def _execute(
        self,
        command: List[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
        stream: bool,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return quote_command(command)


class SubprocessCommandRunner(CommandRunner):
    """Runs commands through :mod:`subprocess`.

    Streamed commands merge stderr into stdout and hand every line to
    ``sink`` as soon as the tool prints it, which keeps long ninja builds
    visible. Failing to start the executable raises :class:`OSError`.
    """

    def __init__(self, sink: OutputSink | None = None) -> None:
        self._sink = sink or self._print_line

    @staticmethod
    def _print_line(line: str) -> None:
        print(line.rstrip("\n"), flush=True)

    def _execute(
        self,
        command: List[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
        stream: bool,
    ) -> CommandResult:
        workdir = str(cwd) if cwd else None
        if stream:
            return self._stream(command, cwd=workdir, env=_child_environment(env))
        completed = subprocess.run(
            command,
            cwd=workdir,
            env=_child_environment(env),
            capture_output=True,
            text=True,
            check=False,
        )
        return CommandResult(command, completed.returncode, completed.stdout, completed.stderr)

    def _stream(self, command: List[str], *, cwd: str | None, env: Dict[str, str] | None) -> CommandResult:
        tail: deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)
        with subprocess.Popen(
            command,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            errors="replace",
        ) as process:
            for line in process.stdout or ():
                self._sink(line)
                tail.append(line.rstrip("\n"))
            returncode = process.wait()
        return CommandResult(command, returncode, stdout="\n".join(tail), streamed=True)


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str] = field(default_factory=dict)
    note: str | None = None
    stream: bool = False

    @property
    def program(self) -> str:
        return Path(self.command[0]).name if self.command else ""


class RecordingCommandRunner(CommandRunner):
    """Remembers commands instead of running them.

    ``returncodes`` and ``output`` are keyed by the file name of the
    executable, so ``{"gn": 1}`` makes every gn invocation fail.
    """

    def __init__(self, returncodes: Mapping[str, int] | None = None, *, output: Mapping[str, str] | None = None) -> None:
        self.commands: List[RecordedCommand] = []
        self._returncodes = dict(returncodes or {})
        self._output = dict(output or {})

    def _execute(
        self,
        command: List[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
        stream: bool,
    ) -> CommandResult:
        record = RecordedCommand(
            command=[str(part) for part in command],
            cwd=str(cwd) if cwd else None,
            env=dict(env or {}),
            note=note,
            stream=stream,
        )
        self.commands.append(record)
        return CommandResult(
            command,
            self._returncodes.get(record.program, 0),
            stdout=self._output.get(record.program, ""),
            streamed=stream,
        )

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterator[str]:
        """``[dry-run] <note> (cwd=<dir>) <command>`` per recorded command."""
        for record in self.commands:
            cwd = record.cwd or (str(workspace) if workspace else None)
            words = ["[dry-run]"]
            if record.note:
                words.append(record.note)
            if cwd:
                words.append(f"(cwd={cwd})")
            words.append(self.format_command(record.command))
            yield " ".join(words)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "DIAGNOSTIC_TAIL_LINES",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "quote_command",
]
