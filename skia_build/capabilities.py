"""Capability definitions and the implication/exclusion/platform rule table."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping

from .target import Target


PLATFORMS = frozenset({"linux", "bsd", "android", "macos", "ios", "windows"})

DEPRECATED_CAPABILITIES: Dict[str, tuple[str, str]] = {
    "shaper": (
        "textlayout",
        "The feature 'shaper' has been removed. To use the SkShaper bindings, enable the feature 'textlayout'.",
    ),
}
"""Deprecated name -> (replacement, warning)."""

CAPABILITY_ALIASES: Dict[str, tuple[str, ...]] = {
    "webp": ("webp-encode", "webp-decode"),
}

IMPLIED_ONLY = frozenset({"gpu"})
"""Names that are derived from other capabilities and must not be requested."""

IGNORED_FEATURES = frozenset({"default", "nightly", "binary-cache"})
"""Cargo features of the bindings crate that carry no build meaning."""

FEATURE_IMPLICATIONS: Dict[str, tuple[str, ...]] = {
    "svg": ("textlayout",),
}
"""Requested name -> names it switches on as well, the way cargo features chain."""


@dataclass(frozen=True, slots=True)
class CapabilityDefinition:
    name: str
    description: str
    requires: frozenset[str] = frozenset()
    excludes: frozenset[str] = frozenset()
    platforms: frozenset[str] = frozenset()
    ninja_targets: tuple[str, ...] = ()
    defines: tuple[str, ...] = ()
    gpu_backend: bool = False

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "CapabilityDefinition":
        allowed_keys = {"description", "requires", "excludes", "platforms", "ninja_targets", "defines", "gpu_backend"}
        unknown = {str(key) for key in data.keys() if str(key) not in allowed_keys}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"Capability '{name}' contains unknown keys: {joined}")

        platforms = frozenset(str(item) for item in data.get("platforms", ()))
        unsupported = platforms - PLATFORMS
        if unsupported:
            joined = ", ".join(sorted(unsupported))
            raise ValueError(f"Capability '{name}' references unknown platforms: {joined}")

        return cls(
            name=name,
            description=str(data.get("description", "")),
            requires=frozenset(str(item) for item in data.get("requires", ())),
            excludes=frozenset(str(item) for item in data.get("excludes", ())),
            platforms=platforms,
            ninja_targets=tuple(str(item) for item in data.get("ninja_targets", ())),
            defines=tuple(str(item) for item in data.get("defines", ())),
            gpu_backend=bool(data.get("gpu_backend", False)),
        )

    def supports(self, target: Target) -> bool:
        return not self.platforms or target.os_name in self.platforms


def _build_builtin_capabilities() -> Dict[str, CapabilityDefinition]:
    raw: Dict[str, Mapping[str, Any]] = {
        "gl": {
            "description": "OpenGL rendering backend",
            "gpu_backend": True,
            "defines": ["SK_GL"],
        },
        "egl": {
            "description": "EGL backend for context management",
            "requires": ["gl"],
            "platforms": ["linux", "bsd", "android"],
        },
        "x11": {
            "description": "GLX backend for context management",
            "requires": ["gl"],
            "platforms": ["linux", "bsd"],
        },
        "wayland": {
            "description": "Support for EGL on Wayland",
            "requires": ["egl"],
            "platforms": ["linux", "bsd"],
        },
        "vulkan": {
            "description": "Vulkan rendering backend",
            "gpu_backend": True,
            "platforms": ["linux", "bsd", "android", "macos", "windows"],
            "defines": ["SK_VULKAN"],
        },
        "metal": {
            "description": "Metal rendering backend",
            "gpu_backend": True,
            "excludes": ["d3d"],
            "platforms": ["macos", "ios"],
            "defines": ["SK_METAL"],
        },
        "d3d": {
            "description": "Direct3D rendering backend",
            "gpu_backend": True,
            "excludes": ["metal"],
            "platforms": ["windows"],
            "defines": ["SK_DIRECT3D"],
        },
        "textlayout": {
            "description": "Text shaping and paragraph layout (SkShaper, SkParagraph)",
            "ninja_targets": ["modules/skshaper", "modules/skparagraph"],
            "defines": ["SK_SHAPER_HARFBUZZ_AVAILABLE"],
        },
        "lottie": {
            "description": "Vector animations in the Lottie format (Skottie)",
            "ninja_targets": ["modules/sksg", "modules/skottie"],
            "defines": ["SK_ENABLE_SKOTTIE"],
        },
        "svg": {
            "description": "SVG document rendering",
            "requires": ["textlayout"],
            "ninja_targets": ["modules/svg"],
            "defines": ["SK_XML"],
        },
        "pdf": {
            "description": "PDF rendering backend",
            "defines": ["SK_SUPPORT_PDF"],
        },
        "webp-encode": {
            "description": "Allow writing to WebP files",
        },
        "webp-decode": {
            "description": "Allow reading from WebP files",
        },
    }

    return {name: CapabilityDefinition.from_mapping(name, data) for name, data in raw.items()}


@dataclass(frozen=True, slots=True)
class NormalizedCapabilities:
    capabilities: frozenset[str]
    warnings: tuple[str, ...]
    unknown: tuple[str, ...]


class CapabilityRegistry:
    def __init__(self, definitions: Mapping[str, CapabilityDefinition] | None = None) -> None:
        self._definitions: Dict[str, CapabilityDefinition] = dict(definitions or {})

    @classmethod
    def with_builtins(cls) -> "CapabilityRegistry":
        return cls(_build_builtin_capabilities())

    def get(self, name: str) -> CapabilityDefinition | None:
        return self._definitions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def available(self) -> List[str]:
        return sorted(self._definitions)

    def normalize(self, names: Iterable[str]) -> NormalizedCapabilities:
        """Map deprecated names and aliases onto canonical capability names."""

        enabled: set[str] = set()
        warnings: List[str] = []
        unknown: List[str] = []
        for raw in names:
            name = raw.strip().lower().replace("_", "-")
            if not name or name in IGNORED_FEATURES:
                continue
            if name in DEPRECATED_CAPABILITIES:
                replacement, message = DEPRECATED_CAPABILITIES[name]
                if message not in warnings:
                    warnings.append(message)
                enabled.add(replacement)
            elif name in CAPABILITY_ALIASES:
                enabled.update(CAPABILITY_ALIASES[name])
            elif name in IMPLIED_ONLY:
                message = (
                    f"The feature '{name}' is implied by the GPU backends "
                    f"({', '.join(self.gpu_backends())}) and is ignored when requested directly."
                )
                if message not in warnings:
                    warnings.append(message)
            elif name in self._definitions:
                enabled.add(name)
            elif name not in unknown:
                unknown.append(name)

        for name, implied in FEATURE_IMPLICATIONS.items():
            if name not in enabled:
                continue
            added = [other for other in implied if other not in enabled and other in self._definitions]
            if added:
                enabled.update(added)
                joined = ", ".join(f"'{other}'" for other in added)
                warnings.append(f"The feature '{name}' also enables {joined}.")
        return NormalizedCapabilities(
            capabilities=frozenset(enabled),
            warnings=tuple(warnings),
            unknown=tuple(sorted(unknown)),
        )

    def gpu_backends(self) -> List[str]:
        return sorted(name for name, definition in self._definitions.items() if definition.gpu_backend)

    def uses_gpu(self, capabilities: Iterable[str]) -> bool:
        return any(
            definition.gpu_backend
            for definition in (self._definitions.get(name) for name in capabilities)
            if definition is not None
        )

    def validate(self, capabilities: Iterable[str], target: Target) -> list[str]:
        """Check every rule and return all violations, in a stable order."""

        enabled = sorted(set(capabilities))
        errors: list[str] = []
        reported_pairs: set[tuple[str, str]] = set()

        for name in enabled:
            definition = self._definitions.get(name)
            if definition is None:
                available = ", ".join(self.available())
                errors.append(f"Unknown capability '{name}'. Available capabilities: {available}")
                continue

            for required in sorted(definition.requires):
                if required not in enabled:
                    errors.append(f"Capability '{name}' requires capability '{required}' to be enabled")

            for excluded in sorted(definition.excludes):
                pair = tuple(sorted((name, excluded)))
                if excluded in enabled and pair not in reported_pairs:
                    reported_pairs.add(pair)  # type: ignore[arg-type]
                    errors.append(f"Capabilities '{pair[0]}' and '{pair[1]}' are mutually exclusive")

            if not definition.supports(target):
                supported = ", ".join(sorted(definition.platforms))
                errors.append(
                    f"Capability '{name}' is not supported on target '{target}' "
                    f"({target.os_name}); supported platforms: {supported}"
                )

        return errors

    def ninja_targets(self, capabilities: Iterable[str]) -> List[str]:
        targets: List[str] = []
        for name in sorted(set(capabilities)):
            definition = self._definitions.get(name)
            if definition is None:
                continue
            for target in definition.ninja_targets:
                if target not in targets:
                    targets.append(target)
        return targets

    def defines(self, capabilities: Iterable[str]) -> List[str]:
        defines: set[str] = set()
        for name in capabilities:
            definition = self._definitions.get(name)
            if definition is not None:
                defines.update(definition.defines)
        return sorted(defines)


BUILTIN_CAPABILITIES = _build_builtin_capabilities()

__all__ = [
    "BUILTIN_CAPABILITIES",
    "CAPABILITY_ALIASES",
    "CapabilityDefinition",
    "CapabilityRegistry",
    "DEPRECATED_CAPABILITIES",
    "FEATURE_IMPLICATIONS",
    "IGNORED_FEATURES",
    "IMPLIED_ONLY",
    "NormalizedCapabilities",
    "PLATFORMS",
]
