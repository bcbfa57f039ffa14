"""Collection of built artifacts and export of linkage metadata."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence
import json
import shutil

from .config import BuildConfiguration, BuildProfile
from .errors import ArtifactMissing, CompileFailure, GenerationFailure, ToolchainMissing
from .executor import BuildOutcome, CompileFailed, GenerationFailed, Success, ToolMissing
from .target import Target


# libraries built per capability, the baseline library is always present
CAPABILITY_LIBRARIES: Dict[str, tuple[str, ...]] = {
    "textlayout": ("skparagraph", "skshaper"),
    "lottie": ("skottie", "sksg"),
    "svg": ("svg",),
}
BASELINE_LIBRARY = "skia"

# dependents before their dependencies
LINK_ORDER: tuple[str, ...] = ("svg", "skottie", "sksg", "skparagraph", "skshaper", "skia")

ICU_DATA_FILE = "icudtl.dat"
KEY_FILE = "key.txt"
TAG_FILE = "tag.txt"
METADATA_FILE = "skia-build.json"
ARCHIVE_PREFIX = "skia-binaries"


def raise_for_outcome(outcome: BuildOutcome) -> Success:
    """Return *outcome* if it is a success, otherwise raise the matching error."""

    if isinstance(outcome, Success):
        return outcome
    if isinstance(outcome, ToolMissing):
        raise ToolchainMissing(
            outcome.tool,
            hint="Install it on PATH or set SKIA_OFFLINE_GN_COMMAND / SKIA_OFFLINE_NINJA_COMMAND",
        )
    if isinstance(outcome, GenerationFailed):
        raise GenerationFailure(outcome.diagnostic, returncode=outcome.returncode)
    if isinstance(outcome, CompileFailed):
        raise CompileFailure(outcome.diagnostic, returncode=outcome.returncode)
    raise TypeError(f"Unknown build outcome {outcome!r}")


def expected_libraries(capabilities: Iterable[str]) -> List[str]:
    """Skia libraries for *capabilities* in link order."""

    wanted = {BASELINE_LIBRARY}
    for capability in capabilities:
        wanted.update(CAPABILITY_LIBRARIES.get(capability, ()))
    return [name for name in LINK_ORDER if name in wanted]


def expected_additional_files(capabilities: Iterable[str], target: Target) -> List[str]:
    if "textlayout" in set(capabilities) and target.is_windows:
        return [ICU_DATA_FILE]
    return []


def system_libraries(capabilities: Iterable[str], target: Target) -> List[str]:
    """Platform libraries the embedding program must link, ``framework=`` prefixed on Apple."""

    caps = set(capabilities)
    libs: List[str] = []
    if target.is_android:
        libs.extend(["log", "android", "EGL", "GLESv2", "c++_static", "c++abi"])
    elif target.is_ios:
        libs.append("c++")
        libs.extend(
            f"framework={name}"
            for name in ("MobileCoreServices", "CoreFoundation", "CoreGraphics", "CoreText", "ImageIO", "UIKit")
        )
        if "metal" in caps:
            libs.extend(["framework=Metal", "framework=Foundation"])
    elif target.is_macos:
        libs.extend(["c++", "framework=ApplicationServices"])
        if "gl" in caps:
            libs.append("framework=OpenGL")
        if "metal" in caps:
            libs.extend(["framework=Metal", "framework=Foundation"])
    elif target.is_windows:
        libs.extend(["usp10", "ole32", "user32", "gdi32", "fontsub"])
        if "gl" in caps:
            libs.append("opengl32")
        if "d3d" in caps:
            libs.extend(["d3d12", "dxgi", "d3dcompiler"])
    else:
        libs.extend(["c++" if target.is_bsd else "stdc++", "fontconfig", "freetype"])
        if "egl" in caps:
            libs.append("EGL")
        if "x11" in caps:
            libs.append("GL")
        if "wayland" in caps:
            libs.extend(["wayland-egl", "GLESv2"])
    return libs


def binaries_key(revision: str | None, target: Target, feature_ids: Sequence[str], profile: BuildProfile) -> str:
    """``<short-rev>-<target>-<features>[-debug]``; ``local`` stands in for an unknown revision."""

    parts = [revision[:7] if revision else "local", str(target)]
    if feature_ids:
        parts.append("-".join(sorted(feature_ids)))
    if profile is BuildProfile.DEBUG:
        parts.append("debug")
    return "-".join(parts)


@dataclass(frozen=True, slots=True)
class BinariesConfiguration:
    output_dir: Path
    target: Target
    profile: BuildProfile
    feature_ids: tuple[str, ...]
    libraries: tuple[str, ...]
    artifacts: tuple[tuple[str, Path], ...]
    additional_files: tuple[Path, ...] = ()
    system_libraries: tuple[str, ...] = ()
    include_dirs: tuple[Path, ...] = ()
    defines: tuple[str, ...] = ()
    reused: bool = False

    @classmethod
    def collect(
        cls,
        outcome: BuildOutcome,
        config: BuildConfiguration,
        *,
        include_dirs: Sequence[Path] = (),
        defines: Sequence[str] = (),
    ) -> "BinariesConfiguration":
        """Check that a successful build produced everything and describe how to link it.

        Every expected file must exist and be non-empty. All missing files are
        reported together in one :class:`ArtifactMissing`.
        """

        success = raise_for_outcome(outcome)
        output_dir = success.output_dir
        target = config.target

        libraries = expected_libraries(config.capabilities)
        extra_names = expected_additional_files(config.capabilities, target)

        missing: List[str] = []
        artifacts: List[tuple[str, Path]] = []
        for name in libraries:
            file_name = target.static_library_name(name)
            path = output_dir / file_name
            if not path.is_file() or path.stat().st_size == 0:
                missing.append(file_name)
            artifacts.append((file_name, path.resolve()))

        additional: List[Path] = []
        for file_name in extra_names:
            path = output_dir / file_name
            if not path.is_file() or path.stat().st_size == 0:
                missing.append(file_name)
            additional.append(path.resolve())

        if missing:
            raise ArtifactMissing(output_dir, missing)

        return cls(
            output_dir=output_dir.resolve(),
            target=target,
            profile=config.profile,
            feature_ids=tuple(config.feature_ids),
            libraries=tuple(libraries),
            artifacts=tuple(artifacts),
            additional_files=tuple(additional),
            system_libraries=tuple(system_libraries(config.capabilities, target)),
            include_dirs=tuple(Path(path) for path in include_dirs),
            defines=tuple(defines),
            reused=success.reused,
        )

    @property
    def artifact_paths(self) -> Dict[str, Path]:
        return dict(self.artifacts)

    def emit_cargo(self, warnings: Iterable[str] = ()) -> List[str]:
        """Lines a cargo build script prints to hand the link setup to rustc."""

        lines = [f"cargo:rustc-link-search=native={self.output_dir}"]
        lines.extend(f"cargo:rustc-link-lib=static={name}" for name in self.libraries)
        lines.extend(f"cargo:rustc-link-lib={name}" for name in self.system_libraries)
        lines.extend(f"cargo:include={path}" for path in self.include_dirs)
        if self.defines:
            lines.append(f"cargo:defines={','.join(self.defines)}")
        lines.extend(f"cargo:warning={message}" for message in warnings)
        return lines

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "output_dir": str(self.output_dir),
            "target": str(self.target),
            "profile": self.profile.value,
            "features": list(self.feature_ids),
            "libraries": list(self.libraries),
            "artifacts": {name: str(path) for name, path in self.artifacts},
            "additional_files": [str(path) for path in self.additional_files],
            "system_libraries": list(self.system_libraries),
            "include_dirs": [str(path) for path in self.include_dirs],
            "defines": list(self.defines),
            "reused": self.reused,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_mapping(), indent=2, sort_keys=True)

    def write_metadata(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json() + "\n", encoding="utf-8")
        return path

    def key(self, revision: str | None) -> str:
        """Identity of this set of binaries, used to name a reusable archive."""
        return binaries_key(revision, self.target, self.feature_ids, self.profile)

    def archive_name(self, revision: str | None, suffix: str = ".tar.gz") -> str:
        return f"{ARCHIVE_PREFIX}-{self.key(revision)}{suffix}"

    def export(self, staging_dir: Path, *, revision: str | None, tag: str | None = None) -> Path:
        """Copy the artifacts into *staging_dir* together with ``key.txt`` and ``tag.txt``."""

        staging_dir.mkdir(parents=True, exist_ok=True)
        for name, path in self.artifacts:
            shutil.copy2(path, staging_dir / name)
        for path in self.additional_files:
            shutil.copy2(path, staging_dir / path.name)
        (staging_dir / KEY_FILE).write_text(self.key(revision) + "\n", encoding="utf-8")
        (staging_dir / TAG_FILE).write_text((tag or (revision[:7] if revision else "local")) + "\n", encoding="utf-8")
        self.write_metadata(staging_dir / METADATA_FILE)
        return staging_dir


def read_key(staging_dir: Path) -> str | None:
    path = staging_dir / KEY_FILE
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8").strip() or None


__all__ = [
    "ARCHIVE_PREFIX",
    "BASELINE_LIBRARY",
    "BinariesConfiguration",
    "CAPABILITY_LIBRARIES",
    "ICU_DATA_FILE",
    "KEY_FILE",
    "LINK_ORDER",
    "METADATA_FILE",
    "TAG_FILE",
    "expected_additional_files",
    "expected_libraries",
    "binaries_key",
    "raise_for_outcome",
    "read_key",
    "system_libraries",
]
