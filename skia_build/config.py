"""Resolution of environment, settings file and CLI inputs into a BuildConfiguration."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping
import os

from .capabilities import CapabilityRegistry
from .config_loader import find_config_file, load_build_settings, merge_mappings, normalize_string_list
from .console import Console
from .errors import ConfigurationError
from .target import Target


SKIA_OUTPUT_DIR = "skia"
"""Subdirectory of the output directory that receives the ninja build."""

_FALSE_VALUES = {"", "0", "false", "no", "off"}


class GnLiteral(str):
    """A value that is already in gn syntax and is rendered verbatim."""


# variables whose change must trigger a new build when run from cargo
TRACKED_VARIABLES = (
    "SKIA_FEATURES",
    "SKIA_DEBUG",
    "SKIA_USE_SYSTEM_LIBRARIES",
    "SKIA_GN_ARGS",
    "SKIA_BUILD_JOBS",
    "SKIA_OFFLINE_SOURCE_DIR",
    "SKIA_OFFLINE_GN_COMMAND",
    "SKIA_OFFLINE_NINJA_COMMAND",
    "SKIA_BINARIES_ARCHIVE",
    "CC",
    "CXX",
    "ANDROID_NDK",
    "ANDROID_NDK_HOME",
    "VCINSTALLDIR",
    "LLVM_HOME",
    "SDKROOT",
)


class BuildProfile(str, Enum):
    DEBUG = "debug"
    RELEASE = "release"


@dataclass(frozen=True, slots=True)
class BuildInputs:
    """Every ambient value a later stage needs, captured once."""

    workspace: Path
    output_dir: Path
    search_path: str = ""
    offline_source_dir: Path | None = None
    gn_command: Path | None = None
    ninja_command: Path | None = None
    binaries_archive: Path | None = None
    android_ndk: Path | None = None
    vc_install_dir: Path | None = None
    llvm_home: Path | None = None
    sdk_root: Path | None = None

    @property
    def offline(self) -> bool:
        return self.offline_source_dir is not None


@dataclass(frozen=True, slots=True)
class BuildConfiguration:
    target: Target
    capabilities: frozenset[str]
    profile: BuildProfile
    inputs: BuildInputs
    host: Target | None = None
    use_system_libraries: bool = False
    crt_static: bool = False
    cc: str = "clang"
    cxx: str = "clang++"
    jobs: int | None = None
    extra_gn_args: tuple[tuple[str, Any], ...] = ()
    warnings: tuple[str, ...] = field(default=(), compare=False)

    @property
    def debug(self) -> bool:
        return self.profile is BuildProfile.DEBUG

    @property
    def feature_ids(self) -> List[str]:
        return sorted(self.capabilities)

    def has(self, capability: str) -> bool:
        return capability in self.capabilities


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() not in _FALSE_VALUES


def _optional_path(value: Any, *, base: Path) -> Path | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    path = Path(text).expanduser()
    return path if path.is_absolute() else (base / path)


def _gn_setting(value: Any) -> Any:
    # typed values from a settings table; lists become tuples to stay hashable
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    if isinstance(value, (bool, int, str)):
        return value
    raise ConfigurationError([f"gn argument value {value!r} must be a string, number, boolean or list"])


def _split_gn_tokens(text: str) -> List[str]:
    # whitespace separates tokens except inside quotes or brackets, values stay verbatim
    tokens: List[str] = []
    current: List[str] = []
    quoted = False
    depth = 0
    escaped = False
    for char in text:
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\" and quoted:
            current.append(char)
            escaped = True
            continue
        if char == '"':
            quoted = not quoted
        elif not quoted and char == "[":
            depth += 1
        elif not quoted and char == "]":
            depth = max(0, depth - 1)
        if char.isspace() and not quoted and depth == 0:
            if current:
                tokens.append("".join(current))
                current = []
            continue
        current.append(char)
    if quoted or depth:
        raise ConfigurationError([f"gn arguments '{text}' contain an unterminated string or list"])
    if current:
        tokens.append("".join(current))
    return tokens


def parse_gn_args(text: str) -> tuple[tuple[str, GnLiteral], ...]:
    """Split ``name=value`` pairs as given in ``SKIA_GN_ARGS``.

    Values are kept in gn syntax, so strings must carry their own quotes:
    ``cc="clang-17" extra_cflags=["-O3", "-g"]``.
    """

    pairs: List[tuple[str, GnLiteral]] = []
    errors: List[str] = []
    for token in _split_gn_tokens(text):
        name, separator, value = token.partition("=")
        name = name.strip()
        if not separator or not name:
            errors.append(f"gn argument '{token}' must have the form name=value")
            continue
        pairs.append((name, GnLiteral(value.strip())))
    if errors:
        raise ConfigurationError(errors)
    return tuple(pairs)


class ConfigResolver:
    """Builds the immutable :class:`BuildConfiguration` for one invocation.

    Precedence, highest first: ``overrides`` (command line), ``environ``,
    the ``[build]`` table of ``skia-build.toml`` (or ``.json``/``.yaml``) in the
    workspace, built-in defaults. Capability names from the file and the
    environment add up; a ``features`` override replaces all of them. After
    :meth:`resolve` no other stage reads the process environment.
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        *,
        workspace: Path | None = None,
        overrides: Mapping[str, Any] | None = None,
        config_file: Path | None = None,
        registry: CapabilityRegistry | None = None,
        console: Console | None = None,
    ) -> None:
        self._env = dict(environ) if environ is not None else dict(os.environ)
        self._workspace = (workspace or Path.cwd()).resolve()
        self._overrides = {key: value for key, value in (overrides or {}).items() if value is not None}
        self._config_file = config_file
        self._registry = registry or CapabilityRegistry.with_builtins()
        self._console = console

    def _env_value(self, name: str) -> str | None:
        value = self._env.get(name)
        if value is None or not value.strip():
            return None
        return value.strip()

    def _file_settings(self) -> Dict[str, Any]:
        try:
            path = self._config_file or find_config_file(self._workspace)
            if path is None:
                return {}
            return load_build_settings(path)
        except (ValueError, TypeError) as exc:
            raise ConfigurationError([str(exc)]) from exc

    def _env_settings(self) -> Dict[str, Any]:
        settings: Dict[str, Any] = {}
        direct = {
            "TARGET": "target",
            "CC": "cc",
            "CXX": "cxx",
            "SKIA_BUILD_JOBS": "jobs",
            "SKIA_OFFLINE_SOURCE_DIR": "offline_source_dir",
            "SKIA_OFFLINE_GN_COMMAND": "gn",
            "SKIA_OFFLINE_NINJA_COMMAND": "ninja",
            "SKIA_BINARIES_ARCHIVE": "binaries_archive",
            "OUT_DIR": "output_dir",
        }
        for variable, key in direct.items():
            value = self._env_value(variable)
            if value is not None:
                settings[key] = value

        if "SKIA_DEBUG" in self._env:
            settings["debug"] = _truthy(self._env["SKIA_DEBUG"])
        if "SKIA_USE_SYSTEM_LIBRARIES" in self._env:
            # presence enables it, only an explicit false value disables it
            value = self._env["SKIA_USE_SYSTEM_LIBRARIES"].strip().lower()
            settings["use_system_libraries"] = value == "" or _truthy(value)
        target_features = self._env_value("CARGO_CFG_TARGET_FEATURE")
        if target_features is not None:
            settings["crt_static"] = "crt-static" in target_features.split(",")
        gn_args = self._env_value("SKIA_GN_ARGS")
        if gn_args is not None:
            settings["gn_args"] = gn_args
        return settings

    def _requested_features(self, file_settings: Mapping[str, Any]) -> List[str]:
        # a command line list replaces the rest; file and environment names accumulate like cargo features
        if "features" in self._overrides:
            return normalize_string_list(self._overrides["features"], field_name="features")
        requested: List[str] = []
        requested.extend(normalize_string_list(file_settings.get("features"), field_name="features"))
        for key in sorted(self._env):
            if key.startswith("CARGO_FEATURE_"):
                requested.append(key[len("CARGO_FEATURE_"):].lower().replace("_", "-"))
        requested.extend(normalize_string_list(self._env_value("SKIA_FEATURES"), field_name="SKIA_FEATURES"))
        return requested

    def resolve(self) -> BuildConfiguration:
        file_settings = self._file_settings()
        settings = merge_mappings(merge_mappings(file_settings, self._env_settings()), self._overrides)
        errors: List[str] = []

        normalized = self._registry.normalize(self._requested_features(file_settings))
        if normalized.unknown:
            available = ", ".join(self._registry.available())
            errors.append(
                f"Unknown capabilities: {', '.join(normalized.unknown)}. Available capabilities: {available}"
            )

        host: Target | None = None
        target: Target | None = None
        try:
            host_triple = self._env_value("HOST")
            host = Target.parse(host_triple) if host_triple else Target.host()
            target_triple = settings.get("target")
            target = Target.parse(str(target_triple)) if target_triple else host
        except ValueError as exc:
            errors.append(str(exc))

        jobs: int | None = None
        if settings.get("jobs") is not None:
            try:
                jobs = int(settings["jobs"])
                if jobs < 1:
                    raise ValueError
            except (TypeError, ValueError):
                errors.append(f"jobs must be a positive integer, got '{settings['jobs']}'")
                jobs = None

        extra_gn_args: tuple[tuple[str, Any], ...] = ()
        raw_gn_args = settings.get("gn_args")
        try:
            if isinstance(raw_gn_args, Mapping):
                extra_gn_args = tuple((str(name), _gn_setting(value)) for name, value in raw_gn_args.items())
            elif raw_gn_args:
                extra_gn_args = parse_gn_args(str(raw_gn_args))
        except ConfigurationError as exc:
            errors.extend(exc.violations)

        if errors or target is None:
            raise ConfigurationError(errors)

        for message in normalized.warnings:
            if self._console is not None:
                self._console.warning(message)

        base = self._workspace
        output_root = _optional_path(settings.get("output_dir"), base=base) or (base / "target")
        inputs = BuildInputs(
            workspace=base,
            output_dir=output_root / SKIA_OUTPUT_DIR,
            search_path=self._env.get("PATH", ""),
            offline_source_dir=_optional_path(settings.get("offline_source_dir"), base=base),
            gn_command=_optional_path(settings.get("gn"), base=base),
            ninja_command=_optional_path(settings.get("ninja"), base=base),
            binaries_archive=_optional_path(settings.get("binaries_archive"), base=base),
            android_ndk=_optional_path(
                self._env_value("ANDROID_NDK") or self._env_value("ANDROID_NDK_HOME"), base=base
            ),
            vc_install_dir=_optional_path(self._env_value("VCINSTALLDIR"), base=base),
            llvm_home=_optional_path(self._env_value("LLVM_HOME"), base=base),
            sdk_root=_optional_path(self._env_value("SDKROOT"), base=base),
        )

        return BuildConfiguration(
            target=target,
            host=host,
            capabilities=normalized.capabilities,
            profile=BuildProfile.DEBUG if _truthy(settings.get("debug")) else BuildProfile.RELEASE,
            inputs=inputs,
            use_system_libraries=_truthy(settings.get("use_system_libraries")),
            crt_static=_truthy(settings.get("crt_static")),
            cc=str(settings.get("cc") or "clang"),
            cxx=str(settings.get("cxx") or "clang++"),
            jobs=jobs,
            extra_gn_args=extra_gn_args,
            warnings=normalized.warnings,
        )


__all__ = [
    "BuildConfiguration",
    "BuildInputs",
    "BuildProfile",
    "ConfigResolver",
    "SKIA_OUTPUT_DIR",
    "GnLiteral",
    "TRACKED_VARIABLES",
    "parse_gn_args",
]
