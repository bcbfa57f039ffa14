"""Error taxonomy for the Skia build pipeline."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence


CONFIGURATION = "configuration"
EXTERNAL_TOOL = "external tool"


class BuildError(RuntimeError):
    """Base class for every failure that terminates a build invocation.

    ``stage`` names the pipeline stage that raised the error and ``origin``
    tells whether the pipeline rejected its inputs (``"configuration"``) or an
    external tool failed (``"external tool"``).
    """

    stage = "pipeline"
    origin = CONFIGURATION

    def describe(self) -> str:
        return f"[{self.stage}] ({self.origin}) {self}"


class ConfigurationError(BuildError):
    """Raised when feature or environment inputs are contradictory or invalid."""

    stage = "configuration"

    def __init__(self, violations: Iterable[str], *, stage: str | None = None) -> None:
        self.violations: tuple[str, ...] = tuple(violations)
        if stage is not None:
            self.stage = stage
        if len(self.violations) == 1:
            message = f"Invalid build configuration: {self.violations[0]}"
        else:
            lines = "\n".join(f"  - {violation}" for violation in self.violations)
            message = f"Invalid build configuration ({len(self.violations)} problems):\n{lines}"
        super().__init__(message)


class ToolchainMissing(BuildError):
    """Raised when the generator or executor could not be located."""

    stage = "toolchain"
    origin = EXTERNAL_TOOL

    def __init__(self, tool: str, *, hint: str | None = None) -> None:
        self.tool = tool
        message = f"Required build tool '{tool}' was not found"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


class SourceMissing(BuildError):
    """Raised when the Skia source tree is absent or empty."""

    stage = "source"

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Skia source directory '{path}' {reason}")


class GenerationFailure(BuildError):
    """Raised when the generator subprocess exits with a nonzero status."""

    stage = "generate"
    origin = EXTERNAL_TOOL

    def __init__(self, diagnostic: str, *, returncode: int | None = None) -> None:
        self.diagnostic = diagnostic
        self.returncode = returncode
        header = "gn failed to generate the build graph"
        if returncode is not None:
            header = f"{header} (exit code {returncode})"
        super().__init__(f"{header}\n{diagnostic}" if diagnostic else header)


class CompileFailure(BuildError):
    """Raised when the executor subprocess exits with a nonzero status."""

    stage = "compile"
    origin = EXTERNAL_TOOL

    def __init__(self, diagnostic: str, *, returncode: int | None = None) -> None:
        self.diagnostic = diagnostic
        self.returncode = returncode
        header = "ninja failed to compile or link Skia"
        if returncode is not None:
            header = f"{header} (exit code {returncode})"
        super().__init__(f"{header}\n{diagnostic}" if diagnostic else header)


class ArtifactMissing(BuildError):
    """Raised when expected build artifacts are absent after a successful build."""

    stage = "collect"
    origin = EXTERNAL_TOOL

    def __init__(self, output_dir: Path, missing: Sequence[str]) -> None:
        self.output_dir = output_dir
        self.missing: tuple[str, ...] = tuple(missing)
        joined = ", ".join(self.missing)
        super().__init__(f"Missing build artifacts in '{output_dir}': {joined}")


class BuildLockError(BuildError):
    """Raised when another invocation already owns the output directory."""

    stage = "lock"

    def __init__(self, lock_path: Path, owner: str | None = None) -> None:
        self.lock_path = lock_path
        message = f"Output directory is locked by another build ({lock_path})"
        if owner:
            message = f"{message}, owner pid {owner}"
        super().__init__(message)


__all__ = [
    "ArtifactMissing",
    "BuildError",
    "BuildLockError",
    "CONFIGURATION",
    "CompileFailure",
    "ConfigurationError",
    "EXTERNAL_TOOL",
    "GenerationFailure",
    "SourceMissing",
    "ToolchainMissing",
]
