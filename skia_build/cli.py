"""Command line interface for skia-build."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any, Dict, Iterable, List
import sys

from .archive import ArchiveArtifact, ArchiveManager
from .arguments import ArgumentSynthesizer
from .binaries import ARCHIVE_PREFIX
from .command_runner import RecordingCommandRunner, SubprocessCommandRunner
from .config import TRACKED_VARIABLES, BuildConfiguration, ConfigResolver
from .console import Console
from .errors import EXTERNAL_TOOL, BuildError
from .executor import ExecutionMode
from .pipeline import BuildPipeline, PipelineResult
from .source import MANAGED_CHECKOUT_DIR, FinalBuildConfiguration, SourceMode, SourceResolver


def _make_runner(dry_run: bool, console: Console) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner(sink=console.passthrough)


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def _add_configuration_arguments(parser: ArgumentParser) -> None:
    parser.add_argument("-C", "--workspace", type=Path, help="Directory holding the managed checkout and skia-build.toml")
    parser.add_argument("--config-file", type=Path, help="Settings file to use instead of skia-build.{toml,json,yaml}")
    parser.add_argument("-t", "--target", help="Target triple (defaults to TARGET or the host)")
    parser.add_argument(
        "-f",
        "--features",
        action="append",
        default=[],
        help="Capabilities to enable (comma-separated, repeatable)",
    )
    profile = parser.add_mutually_exclusive_group()
    profile.add_argument("--debug", dest="debug", action="store_true", default=None, help="Build the debug profile")
    profile.add_argument("--release", dest="debug", action="store_false", help="Build the release profile")
    parser.add_argument("--use-system-libraries", action="store_true", default=None, help="Link system zlib/png/expat/freetype")
    parser.add_argument("--offline-source-dir", help="Build from this Skia source tree instead of the managed checkout")
    parser.add_argument("--gn", help="Path of the gn executable")
    parser.add_argument("--ninja", help="Path of the ninja executable")
    parser.add_argument("-o", "--output-dir", help="Root output directory (Skia builds into <dir>/skia)")
    parser.add_argument("-j", "--jobs", type=int, help="Parallel ninja jobs")
    parser.add_argument("--binaries-archive", help="Reuse prebuilt binaries from this archive")
    parser.add_argument(
        "--gn-arg",
        dest="gn_args",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Extra gn argument applied last (repeatable)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print errors")


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="skia-build", description="Configure and build the Skia library for the Rust bindings")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Configure, build and report linkage metadata")
    _add_configuration_arguments(build_parser)
    build_parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")
    mode = build_parser.add_mutually_exclusive_group()
    mode.add_argument("--config-only", action="store_true", help="Run gn only")
    mode.add_argument("--build-only", action="store_true", help="Run ninja only on an existing build graph")
    mode.add_argument("--reconfig", action="store_true", help="Remove the output directory and reconfigure")
    build_parser.add_argument(
        "--emit",
        choices=["cargo", "json", "none"],
        default="cargo",
        help="Format of the linkage metadata printed on success",
    )
    build_parser.add_argument("--metadata-file", type=Path, help="Also write the linkage metadata as JSON to this file")

    args_parser = subparsers.add_parser("args", help="Print the synthesized gn arguments without building")
    _add_configuration_arguments(args_parser)
    args_parser.add_argument(
        "--format",
        choices=["gn", "flat", "json"],
        default="gn",
        help="args.gn text, the --args= value, or the whole plan as JSON",
    )

    validate_parser = subparsers.add_parser("validate", help="Check the capability and platform rules")
    _add_configuration_arguments(validate_parser)

    export_parser = subparsers.add_parser("export", help="Build and package the binaries for reuse")
    _add_configuration_arguments(export_parser)
    export_parser.add_argument("staging_dir", type=Path, help="Directory receiving the binaries and key/tag files")
    export_parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")
    export_parser.add_argument("--tag", help="Release tag written to tag.txt (default: short source revision)")
    export_parser.add_argument("--format", choices=["gz", "zst"], default="gz", help="Archive compression")
    export_parser.add_argument("--no-archive", action="store_true", help="Stage the files without creating an archive")

    return parser.parse_args(list(argv))


def _make_console(args: Namespace) -> Console:
    level = "debug" if args.verbose else "error" if args.quiet else "info"
    return Console(level, dry_run=getattr(args, "dry_run", False))


def _split_features(values: Iterable[str]) -> List[str]:
    features: List[str] = []
    for value in values:
        features.extend(part.strip() for part in value.split(",") if part.strip())
    return features


def _overrides(args: Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "target": args.target,
        "debug": args.debug,
        "use_system_libraries": args.use_system_libraries,
        "offline_source_dir": args.offline_source_dir,
        "gn": args.gn,
        "ninja": args.ninja,
        "output_dir": args.output_dir,
        "jobs": args.jobs,
        "binaries_archive": args.binaries_archive,
    }
    features = _split_features(args.features)
    if features:
        overrides["features"] = features
    if args.gn_args:
        overrides["gn_args"] = " ".join(args.gn_args)
    return overrides


def _resolve(args: Namespace, console: Console) -> BuildConfiguration:
    resolver = ConfigResolver(
        workspace=args.workspace,
        overrides=_overrides(args),
        config_file=args.config_file,
        console=console,
    )
    return resolver.resolve()


def _execution_mode(args: Namespace) -> ExecutionMode:
    if getattr(args, "config_only", False):
        return ExecutionMode.CONFIG_ONLY
    if getattr(args, "build_only", False):
        return ExecutionMode.BUILD_ONLY
    if getattr(args, "reconfig", False):
        return ExecutionMode.RECONFIG
    return ExecutionMode.AUTO


def _report_failure(exc: BuildError, console: Console) -> int:
    console.error(str(exc))
    return 1 if exc.origin == EXTERNAL_TOOL else 2


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    console = _make_console(args)

    handlers = {
        "build": _handle_build,
        "args": _handle_args,
        "validate": _handle_validate,
        "export": _handle_export,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise ValueError(f"Unknown command: {args.command}")
    try:
        return handler(args, console)
    except BuildError as exc:
        return _report_failure(exc, console)


def _emit_result(result: PipelineResult, *, emit: str) -> None:
    binaries = result.binaries
    if binaries is None:
        return
    if emit == "cargo":
        for variable in TRACKED_VARIABLES:
            print(f"cargo:rerun-if-env-changed={variable}")
        for line in binaries.emit_cargo(result.warnings):
            print(line)
    elif emit == "json":
        print(binaries.to_json())


def _handle_build(args: Namespace, console: Console) -> int:
    config = _resolve(args, console)
    runner = _make_runner(args.dry_run, console)
    pipeline = BuildPipeline(config, command_runner=runner, console=console, mode=_execution_mode(args))
    result = pipeline.run()

    if args.dry_run and isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner, workspace=config.inputs.workspace)
        return 0

    _emit_result(result, emit=args.emit)
    if args.metadata_file is not None and result.binaries is not None:
        path = result.binaries.write_metadata(args.metadata_file)
        console.info(f"Wrote linkage metadata to {path}")
    return 0


def _handle_args(args: Namespace, console: Console) -> int:
    config = _resolve(args, console)
    pipeline = BuildPipeline(config, command_runner=RecordingCommandRunner(), console=console)
    plan = pipeline.plan()
    if args.format == "json":
        print(pipeline.serialize(plan))
    elif args.format == "flat":
        print(plan.arguments.flatten())
    else:
        print(plan.arguments.render(), end="")
    return 0


def _handle_validate(args: Namespace, console: Console) -> int:
    config = _resolve(args, console)
    inputs = config.inputs
    # the rules do not depend on the source tree, so it need not exist yet
    final = FinalBuildConfiguration(
        config=config,
        source_dir=inputs.offline_source_dir or inputs.workspace / MANAGED_CHECKOUT_DIR,
        mode=SourceMode.OFFLINE if inputs.offline else SourceMode.FULL,
        quirks=SourceResolver(console=console).detect_quirks(config),
    )
    errors = ArgumentSynthesizer(console=console).validate(final)
    if errors:
        print("Validation failed:")
        for message in errors:
            print(f"  - {message}")
        return 2

    features = ", ".join(config.feature_ids) or "none"
    print(f"Validation successful: {config.target} ({config.profile.value}), capabilities: {features}")
    return 0


def _handle_export(args: Namespace, console: Console) -> int:
    config = _resolve(args, console)
    runner = _make_runner(args.dry_run, console)
    pipeline = BuildPipeline(config, command_runner=runner, console=console)
    result = pipeline.run()

    if args.dry_run:
        if isinstance(runner, RecordingCommandRunner):
            _emit_dry_run_output(runner, workspace=config.inputs.workspace)
        console.dry(f"Would export binaries to {args.staging_dir / ARCHIVE_PREFIX}")
        return 0

    binaries = result.binaries
    if binaries is None:
        console.error("No binaries were collected, nothing to export")
        return 1
    revision = result.plan.final.source_revision
    staging = binaries.export(args.staging_dir / ARCHIVE_PREFIX, revision=revision, tag=args.tag)
    console.info(f"Staged binaries '{binaries.key(revision)}' in {staging}")

    if not args.no_archive:
        suffix = ".tar.zst" if args.format == "zst" else ".tar.gz"
        archive = ArchiveManager(console).create_archive(
            artifact=ArchiveArtifact(source_dir=staging, label=binaries.key(revision)),
            target_path=args.staging_dir / binaries.archive_name(revision, suffix),
        )
        print(archive)
    return 0


__all__ = ["main"]
