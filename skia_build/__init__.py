"""Build configuration and native build orchestration for the Skia library."""
from __future__ import annotations

from .arguments import ArgumentSynthesizer, BuildArguments
from .binaries import BinariesConfiguration
from .config import BuildConfiguration, BuildProfile, ConfigResolver
from .errors import (
    ArtifactMissing,
    BuildError,
    BuildLockError,
    CompileFailure,
    ConfigurationError,
    GenerationFailure,
    SourceMissing,
    ToolchainMissing,
)
from .executor import BuildExecutor, BuildOutcome, CompileFailed, ExecutionMode, GenerationFailed, Success, ToolMissing
from .pipeline import BuildPipeline
from .source import FinalBuildConfiguration, SourceResolver
from .target import Target
from .toolchain import ToolchainLocator, ToolchainPaths

__version__ = "0.1.0"

__all__ = [
    "ArgumentSynthesizer",
    "ArtifactMissing",
    "BinariesConfiguration",
    "BuildArguments",
    "BuildConfiguration",
    "BuildError",
    "BuildExecutor",
    "BuildLockError",
    "BuildOutcome",
    "BuildPipeline",
    "BuildProfile",
    "CompileFailed",
    "CompileFailure",
    "ConfigResolver",
    "ConfigurationError",
    "ExecutionMode",
    "FinalBuildConfiguration",
    "GenerationFailed",
    "GenerationFailure",
    "SourceMissing",
    "SourceResolver",
    "Success",
    "Target",
    "ToolMissing",
    "ToolchainLocator",
    "ToolchainMissing",
    "ToolchainPaths",
]
