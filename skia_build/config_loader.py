"""Locating and loading the optional ``skia-build`` settings file."""
from __future__ import annotations

from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Mapping, Sequence
import io
import json
import tomllib

try:  # YAML settings are optional
    import yaml
except ModuleNotFoundError:  # pragma: no cover - exercised when PyYAML absent
    yaml = None


CONFIG_FILE_STEM = "skia-build"
BUILD_SECTION = "build"

BUILD_SECTION_KEYS = frozenset(
    {
        "features",
        "debug",
        "target",
        "use_system_libraries",
        "crt_static",
        "cc",
        "cxx",
        "jobs",
        "gn_args",
        "offline_source_dir",
        "gn",
        "ninja",
        "output_dir",
        "binaries_archive",
    }
)


def _load_yaml(stream: BinaryIO) -> Any:
    if yaml is None:
        raise RuntimeError("PyYAML is required to read YAML settings files. Install with `pip install PyYAML`.")
    try:
        return yaml.safe_load(stream)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML: {exc}") from exc


def _load_json(stream: BinaryIO) -> Any:
    return json.load(io.TextIOWrapper(stream, encoding="utf-8"))


ConfigLoader = Callable[[BinaryIO], Any]

# every loader reads a binary stream; tomllib insists on it
FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": tomllib.load,
    ".json": _load_json,
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
}


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Decode *path* by its suffix; an empty document yields an empty mapping."""

    loader = FILE_LOADERS.get(path.suffix.lower())
    if loader is None:
        raise ValueError(
            f"Settings file '{path.name}' has an unsupported extension; use one of {', '.join(FILE_LOADERS)}"
        )
    with path.open("rb") as stream:
        data = loader(stream)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def find_config_file(directory: Path) -> Path | None:
    """Return the single ``skia-build.*`` file in *directory*, if any."""

    found = [
        directory / f"{CONFIG_FILE_STEM}{suffix}"
        for suffix in FILE_LOADERS
        if (directory / f"{CONFIG_FILE_STEM}{suffix}").is_file()
    ]
    if len(found) > 1:
        names = ", ".join(path.name for path in found)
        raise ValueError(f"Multiple configuration files found in '{directory}': {names}. Keep only one of them.")
    return found[0] if found else None


def load_build_settings(path: Path) -> Dict[str, Any]:
    """Return the ``[build]`` table of a settings file, rejecting unknown keys."""

    values = load_config_file(path).get(BUILD_SECTION) or {}
    if not isinstance(values, Mapping):
        raise TypeError(f"Configuration file '{path}': [{BUILD_SECTION}] must be a table/mapping")
    unknown = sorted(str(key) for key in values if str(key) not in BUILD_SECTION_KEYS)
    if unknown:
        raise ValueError(
            f"Configuration file '{path}': [{BUILD_SECTION}] contains unknown keys: {', '.join(unknown)}"
        )
    return dict(values)


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay wins; nested mappings such as ``gn_args`` merge key by key."""

    merged: Dict[str, Any] = {**base}
    for key, value in overlay.items():
        current = merged.get(key)
        both_tables = isinstance(current, Mapping) and isinstance(value, Mapping)
        merged[key] = merge_mappings(current, value) if both_tables else value
    return merged


def normalize_string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Flatten a comma separated string or a list of them into trimmed names.

    ``"gl, vulkan"`` and ``["gl", "vulkan"]`` give the same result.
    """

    label = f"{field_name} " if field_name else ""
    if value is None:
        return []
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, Sequence):
        raise TypeError(f"{label}must be a string or sequence of strings")

    names: List[str] = []
    for item in value:
        if not isinstance(item, (str, bytes)):
            raise TypeError(f"{label}entries must be strings")
        names.extend(normalize_string_list(item, field_name=field_name))
    return names


__all__ = [
    "BUILD_SECTION",
    "BUILD_SECTION_KEYS",
    "CONFIG_FILE_STEM",
    "ConfigLoader",
    "FILE_LOADERS",
    "find_config_file",
    "load_build_settings",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
]
