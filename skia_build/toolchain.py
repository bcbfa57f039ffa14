"""Location of the external generator (gn) and executor (ninja) executables."""
from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping
import shutil

from .target import Target


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    name: str
    description: str
    executables: tuple[str, ...]
    required: bool = True
    vendored: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "ToolDefinition":
        allowed_keys = {"description", "executables", "required", "vendored"}
        unknown = {str(key) for key in data.keys() if str(key) not in allowed_keys}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"Tool '{name}' contains unknown keys: {joined}")
        executables = tuple(str(item) for item in data.get("executables", (name,)))
        if not executables:
            raise ValueError(f"Tool '{name}' must list at least one executable name")
        return cls(
            name=name,
            description=str(data.get("description", "")),
            executables=executables,
            required=bool(data.get("required", True)),
            vendored=tuple(str(item) for item in data.get("vendored", ())),
        )

    def candidates(self, host: Target) -> List[str]:
        names: List[str] = []
        for executable in self.executables:
            if host.is_windows and not executable.endswith(".exe"):
                names.append(f"{executable}.exe")
            names.append(executable)
        return names


def _build_builtin_tools() -> Dict[str, ToolDefinition]:
    raw: Dict[str, Mapping[str, Any]] = {
        "gn": {
            "description": "Meta-build generator that writes the ninja build graph",
            "executables": ["gn"],
            # relative to the Skia source tree; populated by skia/bin/fetch-gn
            "vendored": ["{source}/bin/gn"],
        },
        "ninja": {
            "description": "Parallel build executor",
            "executables": ["ninja"],
            "vendored": ["{workspace}/depot_tools/ninja"],
        },
        "python": {
            "description": "Interpreter passed to gn as --script-executable",
            "executables": ["python3", "python"],
            "required": False,
        },
    }
    return {name: ToolDefinition.from_mapping(name, data) for name, data in raw.items()}


BUILTIN_TOOLS = _build_builtin_tools()


@dataclass(frozen=True, slots=True)
class ToolchainPaths:
    generator: Path | None
    executor: Path | None
    python: Path | None = None

    def missing(self) -> List[str]:
        missing: List[str] = []
        if self.generator is None:
            missing.append("gn")
        if self.executor is None:
            missing.append("ninja")
        return missing

    @property
    def complete(self) -> bool:
        return not self.missing()


@dataclass(frozen=True, slots=True)
class ExplicitToolPaths:
    generator: Path | None = None
    executor: Path | None = None


class ToolchainLocator:
    """Resolve tool paths: explicit override, then the search path, else unresolved.

    Absence is not an error here. The stage that needs a tool reports it.
    """

    def __init__(
        self,
        search_path: str | None,
        *,
        host: Target | None = None,
        tools: Mapping[str, ToolDefinition] | None = None,
    ) -> None:
        self._search_path = search_path
        self._host = host or Target.host()
        self._tools = dict(tools or BUILTIN_TOOLS)

    def _which(self, tool: str) -> Path | None:
        definition = self._tools[tool]
        for candidate in definition.candidates(self._host):
            found = shutil.which(candidate, path=self._search_path)
            if found:
                return Path(found).resolve()
        return None

    @staticmethod
    def _explicit(path: Path | None) -> Path | None:
        if path is None:
            return None
        return path.resolve() if path.is_file() else None

    def _resolve(self, tool: str, explicit: Path | None) -> Path | None:
        if explicit is not None:
            # an explicit path that does not exist stays unresolved so the
            # failure names the override rather than some other binary
            return self._explicit(explicit)
        return self._which(tool)

    def locate(self, explicit: ExplicitToolPaths | None = None) -> ToolchainPaths:
        explicit = explicit or ExplicitToolPaths()
        return ToolchainPaths(
            generator=self._resolve("gn", explicit.generator),
            executor=self._resolve("ninja", explicit.executor),
            python=self._which("python"),
        )

    def with_vendored_fallback(self, paths: ToolchainPaths, *, source_dir: Path, workspace: Path) -> ToolchainPaths:
        """Fill unresolved slots from vendored copies next to the source tree."""

        def vendored(tool: str) -> Path | None:
            definition = self._tools[tool]
            for template in definition.vendored:
                base = Path(template.format(source=source_dir, workspace=workspace))
                for name in ToolDefinition(tool, "", (base.name,)).candidates(self._host):
                    candidate = base.with_name(name)
                    if candidate.is_file():
                        return candidate.resolve()
            return None

        updates: Dict[str, Path | None] = {}
        if paths.generator is None:
            updates["generator"] = vendored("gn")
        if paths.executor is None:
            updates["executor"] = vendored("ninja")
        updates = {key: value for key, value in updates.items() if value is not None}
        return replace(paths, **updates) if updates else paths


__all__ = [
    "BUILTIN_TOOLS",
    "ExplicitToolPaths",
    "ToolDefinition",
    "ToolchainLocator",
    "ToolchainPaths",
]
