"""One forward pass from a resolved configuration to linkage metadata."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List
import json
import shutil
import tarfile
import tempfile

import zstandard as zstd

from .archive import ArchiveManager
from .arguments import ArgumentSynthesizer, BuildArguments, gn_args_mapping
from .binaries import KEY_FILE, BinariesConfiguration, binaries_key, raise_for_outcome, read_key
from .capabilities import CapabilityRegistry
from .command_runner import CommandRunner
from .config import BuildConfiguration
from .console import Console
from .errors import ConfigurationError
from .executor import BuildExecutor, BuildOutcome, ExecutionMode, Success
from .lock import OutputDirectoryLock
from .source import FinalBuildConfiguration, SourceResolver
from .toolchain import ExplicitToolPaths, ToolchainLocator, ToolchainPaths


@dataclass(slots=True)
class BuildPlan:
    final: FinalBuildConfiguration
    arguments: BuildArguments
    toolchain: ToolchainPaths


@dataclass(slots=True)
class PipelineResult:
    plan: BuildPlan
    outcome: BuildOutcome
    binaries: BinariesConfiguration | None = None

    @property
    def warnings(self) -> List[str]:
        final = self.plan.final
        return list(final.config.warnings) + list(final.quirks.notes)


class BuildPipeline:
    """Drive source resolution, argument synthesis, execution and collection.

    Every stage runs exactly once and in order. Failures surface as
    :class:`~skia_build.errors.BuildError` subclasses and are never retried.
    """

    def __init__(
        self,
        config: BuildConfiguration,
        *,
        command_runner: CommandRunner,
        console: Console | None = None,
        mode: ExecutionMode = ExecutionMode.AUTO,
        registry: CapabilityRegistry | None = None,
    ) -> None:
        self.config = config
        self.mode = mode
        self._console = console or Console("none")
        self._command_runner = command_runner
        self._source_resolver = SourceResolver(console=self._console)
        self._synthesizer = ArgumentSynthesizer(registry, console=self._console)
        self._locator = ToolchainLocator(config.inputs.search_path, host=config.host)
        self._executor = BuildExecutor(command_runner, console=self._console)

    @property
    def dry_run(self) -> bool:
        return self._console.dry_run

    def plan(self) -> BuildPlan:
        """Resolve everything that does not spawn a process."""

        final = self._source_resolver.resolve(self.config)
        arguments = self._synthesizer.synthesize(final)
        inputs = self.config.inputs
        toolchain = self._locator.locate(ExplicitToolPaths(generator=inputs.gn_command, executor=inputs.ninja_command))
        toolchain = self._locator.with_vendored_fallback(
            toolchain,
            source_dir=final.source_dir,
            workspace=inputs.workspace,
        )
        for tool in toolchain.missing():
            self._console.debug(f"{tool} not found on PATH or as a vendored copy")
        return BuildPlan(final=final, arguments=arguments, toolchain=toolchain)

    def _reuse_binaries(self, plan: BuildPlan, archive: Path) -> BuildOutcome:
        output_dir = plan.final.output_dir
        if not archive.is_file():
            raise ConfigurationError(
                [f"Binaries archive '{archive}' does not exist (set by SKIA_BINARIES_ARCHIVE)"],
                stage="binaries",
            )

        self._console.info(f"Reusing prebuilt binaries from {archive}")
        manager = ArchiveManager(self._console)
        if self.dry_run:
            manager.extract_archive(archive_path=archive, destination_dir=output_dir)
            return Success(output_dir=output_dir, reused=True)

        # a key.txt left in the output dir by an earlier build must not count
        output_dir.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=f".{output_dir.name}-", dir=output_dir.parent) as scratch:
            unpacked = Path(scratch)
            try:
                manager.extract_archive(archive_path=archive, destination_dir=unpacked)
            except (ValueError, tarfile.TarError, zstd.ZstdError) as exc:
                raise ConfigurationError(
                    [f"Binaries archive '{archive}' cannot be unpacked: {exc}"], stage="binaries"
                ) from exc

            expected = binaries_key(
                plan.final.source_revision, self.config.target, self.config.feature_ids, self.config.profile
            )
            found = read_key(unpacked)
            if found is None:
                raise ConfigurationError(
                    [f"Binaries archive '{archive}' carries no {KEY_FILE}; cannot confirm it was built as '{expected}'"],
                    stage="binaries",
                )
            if found != expected:
                raise ConfigurationError(
                    [f"Binaries archive '{archive}' was built as '{found}' but this build needs '{expected}'"],
                    stage="binaries",
                )
            shutil.copytree(unpacked, output_dir, dirs_exist_ok=True)
        return Success(output_dir=output_dir, reused=True)

    def execute(self, plan: BuildPlan) -> BuildOutcome:
        archive = self.config.inputs.binaries_archive
        if self.dry_run:
            if archive is not None:
                return self._reuse_binaries(plan, archive)
            return self._executor.run(plan.arguments, plan.toolchain, self.mode)

        with OutputDirectoryLock(plan.final.output_dir, console=self._console):
            if archive is not None:
                return self._reuse_binaries(plan, archive)
            return self._executor.run(plan.arguments, plan.toolchain, self.mode)

    def run(self) -> PipelineResult:
        plan = self.plan()
        outcome = self.execute(plan)
        result = PipelineResult(plan=plan, outcome=outcome)

        # nothing to collect without a build, or with only a generated graph
        if self.dry_run or self.mode is ExecutionMode.CONFIG_ONLY:
            raise_for_outcome(outcome)
            return result

        result.binaries = BinariesConfiguration.collect(
            outcome,
            self.config,
            include_dirs=plan.final.include_dirs,
            defines=plan.arguments.defines,
        )
        if result.binaries.reused:
            self._console.info(f"Skia binaries ready in {result.binaries.output_dir} (reused)")
        else:
            self._console.info(f"Skia binaries ready in {result.binaries.output_dir}")
        return result

    def serialize(self, plan: BuildPlan) -> str:
        final = plan.final
        config = final.config
        data = {
            "target": str(config.target),
            "profile": config.profile.value,
            "features": config.feature_ids,
            "mode": final.mode.value,
            "source_dir": str(final.source_dir),
            "source_revision": final.source_revision,
            "output_dir": str(final.output_dir),
            "gn_args": dict(gn_args_mapping(plan.arguments)),
            "defines": list(plan.arguments.defines),
            "ninja_targets": list(plan.arguments.ninja_targets),
            "toolchain": {
                "gn": str(plan.toolchain.generator) if plan.toolchain.generator else None,
                "ninja": str(plan.toolchain.executor) if plan.toolchain.executor else None,
                "python": str(plan.toolchain.python) if plan.toolchain.python else None,
            },
            "steps": [
                {
                    "description": step.description,
                    "command": list(step.command),
                    "cwd": str(step.cwd),
                }
                for step in self._executor.plan(plan.arguments, plan.toolchain, self.mode)
            ]
            if plan.toolchain.complete
            else [],
            "warnings": list(config.warnings) + list(final.quirks.notes),
        }
        return json.dumps(data, indent=2)


__all__ = ["BuildPipeline", "BuildPlan", "PipelineResult"]
