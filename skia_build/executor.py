"""Invocation of the generator and executor subprocesses."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Sequence, Union
import shutil

from .arguments import BuildArguments
from .command_runner import CommandRunner
from .console import Console
from .errors import ToolchainMissing
from .toolchain import ToolchainPaths


class ExecutionMode(str, Enum):
    AUTO = "auto"
    CONFIG_ONLY = "config-only"
    BUILD_ONLY = "build-only"
    RECONFIG = "reconfig"


@dataclass(frozen=True, slots=True)
class Success:
    output_dir: Path
    reused: bool = False


@dataclass(frozen=True, slots=True)
class GenerationFailed:
    diagnostic: str
    returncode: int | None = None


@dataclass(frozen=True, slots=True)
class CompileFailed:
    diagnostic: str
    returncode: int | None = None


@dataclass(frozen=True, slots=True)
class ToolMissing:
    tool: str


BuildOutcome = Union[Success, GenerationFailed, CompileFailed, ToolMissing]


@dataclass(slots=True)
class BuildStep:
    description: str
    command: Sequence[str]
    cwd: Path
    tool: str


class BuildExecutor:
    """Run ``gn gen`` and then ``ninja`` and classify the result.

    The output directory is never cleaned unless the mode is
    :attr:`ExecutionMode.RECONFIG`, so ninja's own incremental rebuild keeps
    working across invocations.
    """

    def __init__(self, command_runner: CommandRunner, *, console: Console | None = None) -> None:
        self._command_runner = command_runner
        self._console = console or Console("none")

    @staticmethod
    def _required_tools(mode: ExecutionMode) -> List[str]:
        if mode is ExecutionMode.CONFIG_ONLY:
            return ["gn"]
        if mode is ExecutionMode.BUILD_ONLY:
            return ["ninja"]
        return ["gn", "ninja"]

    @staticmethod
    def generator_command(args: BuildArguments, toolchain: ToolchainPaths) -> List[str]:
        if toolchain.generator is None:
            raise ToolchainMissing("gn", hint="Set SKIA_OFFLINE_GN_COMMAND or put gn on PATH")
        command = [str(toolchain.generator), "gen", str(args.output_dir), f"--args={args.flatten()}"]
        if toolchain.python is not None:
            command.append(f"--script-executable={toolchain.python}")
        return command

    @staticmethod
    def executor_command(args: BuildArguments, toolchain: ToolchainPaths) -> List[str]:
        if toolchain.executor is None:
            raise ToolchainMissing("ninja", hint="Set SKIA_OFFLINE_NINJA_COMMAND or put ninja on PATH")
        command = [str(toolchain.executor), "-C", str(args.output_dir)]
        if args.jobs is not None:
            command.extend(["-j", str(args.jobs)])
        command.extend(args.ninja_targets)
        return command

    def plan(self, args: BuildArguments, toolchain: ToolchainPaths, mode: ExecutionMode = ExecutionMode.AUTO) -> List[BuildStep]:
        steps: List[BuildStep] = []
        if mode is not ExecutionMode.BUILD_ONLY:
            steps.append(
                BuildStep(
                    description="Generate build graph",
                    command=self.generator_command(args, toolchain),
                    cwd=args.source_dir,
                    tool="gn",
                )
            )
        if mode is not ExecutionMode.CONFIG_ONLY:
            steps.append(
                BuildStep(
                    description="Build Skia",
                    command=self.executor_command(args, toolchain),
                    cwd=args.source_dir,
                    tool="ninja",
                )
            )
        return steps

    def _missing_tools(self, toolchain: ToolchainPaths, mode: ExecutionMode) -> List[str]:
        missing = set(toolchain.missing())
        return [tool for tool in self._required_tools(mode) if tool in missing]

    def _prepare_output_dir(self, output_dir: Path, mode: ExecutionMode) -> None:
        if self._console.dry_run:
            if mode is ExecutionMode.RECONFIG:
                self._console.dry(f"Would remove {output_dir}")
            return
        if mode is ExecutionMode.RECONFIG and output_dir.exists():
            self._console.info(f"Removing {output_dir} before reconfiguring")
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    def run(
        self,
        args: BuildArguments,
        toolchain: ToolchainPaths,
        mode: ExecutionMode = ExecutionMode.AUTO,
    ) -> BuildOutcome:
        missing = self._missing_tools(toolchain, mode)
        if missing:
            return ToolMissing(tool=", ".join(missing))

        if mode is ExecutionMode.BUILD_ONLY and not self._console.dry_run:
            if not (args.output_dir / "build.ninja").is_file():
                return GenerationFailed(
                    diagnostic=f"No build graph in {args.output_dir}; run without --build-only to generate it first",
                )

        self._prepare_output_dir(args.output_dir, mode)

        for step in self.plan(args, toolchain, mode):
            self._console.info(f"{step.description}: {self._command_runner.format_command(step.command)}")
            try:
                result = self._command_runner.run(
                    step.command,
                    cwd=step.cwd,
                    check=False,
                    note=step.description,
                    stream=True,
                )
            except OSError as exc:
                self._console.error(f"Could not start {step.tool}: {exc}")
                return ToolMissing(tool=step.tool)

            if result.returncode != 0:
                if step.tool == "gn":
                    return GenerationFailed(diagnostic=result.diagnostic, returncode=result.returncode)
                return CompileFailed(diagnostic=result.diagnostic, returncode=result.returncode)

        return Success(output_dir=args.output_dir)


__all__ = [
    "BuildExecutor",
    "BuildOutcome",
    "BuildStep",
    "CompileFailed",
    "ExecutionMode",
    "GenerationFailed",
    "Success",
    "ToolMissing",
]
