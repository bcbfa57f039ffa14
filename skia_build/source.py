"""Offline/full source resolution and platform quirk detection."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from .config import BuildConfiguration
from .console import Console
from .errors import SourceMissing
from .git_repository import GitRepository


MANAGED_CHECKOUT_DIR = "skia"
ANDROID_API_LEVEL = 26
IOS_MIN_VERSION = "10.0"

_VISUAL_STUDIO_ROOTS = (
    Path(r"C:\Program Files\Microsoft Visual Studio"),
    Path(r"C:\Program Files (x86)\Microsoft Visual Studio"),
)
_VISUAL_STUDIO_YEARS = ("2022", "2019", "2017")
_VISUAL_STUDIO_EDITIONS = ("Enterprise", "Professional", "Community", "BuildTools")
_DEFAULT_LLVM_DIR = Path(r"C:\Program Files\LLVM")


class SourceMode(str, Enum):
    OFFLINE = "offline"
    FULL = "full"


@dataclass(frozen=True, slots=True)
class PlatformQuirks:
    win_vc: Path | None = None
    clang_win: Path | None = None
    android_ndk: Path | None = None
    android_api_level: int | None = None
    apple_sdk: Path | None = None
    extra_cflags: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FinalBuildConfiguration:
    config: BuildConfiguration
    source_dir: Path
    mode: SourceMode
    quirks: PlatformQuirks = field(default_factory=PlatformQuirks)
    source_revision: str | None = None

    @property
    def offline(self) -> bool:
        return self.mode is SourceMode.OFFLINE

    @property
    def output_dir(self) -> Path:
        return self.config.inputs.output_dir

    @property
    def include_dirs(self) -> List[Path]:
        return [self.source_dir, self.source_dir / "include"]


def _first_existing(candidates: List[Path]) -> Path | None:
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    return None


class SourceResolver:
    """Choose offline or full mode and record the facts later stages need."""

    def __init__(self, *, console: Console | None = None) -> None:
        self._console = console or Console("none")

    def resolve(self, config: BuildConfiguration, offline_dir: Path | None = None) -> FinalBuildConfiguration:
        offline_dir = offline_dir or config.inputs.offline_source_dir
        if offline_dir is not None:
            mode = SourceMode.OFFLINE
            source_dir = self._check_offline(offline_dir)
            self._console.info(f"Offline build using Skia sources at {source_dir}")
        else:
            mode = SourceMode.FULL
            source_dir = self._check_managed(config.inputs.workspace / MANAGED_CHECKOUT_DIR)
            self._console.info(f"Full build using the managed checkout at {source_dir}")

        quirks = self.detect_quirks(config)
        for note in quirks.notes:
            self._console.warning(note)

        revision = GitRepository(source_dir).revision()
        source_revision: str | None = None
        if revision is not None:
            source_revision = revision.commit
            state = " (modified)" if revision.dirty else ""
            self._console.debug(f"Skia source revision {revision.short}{state}")

        return FinalBuildConfiguration(
            config=config,
            source_dir=source_dir,
            mode=mode,
            quirks=quirks,
            source_revision=source_revision,
        )

    @staticmethod
    def _check_offline(path: Path) -> Path:
        resolved = path.expanduser().resolve()
        if not resolved.exists():
            raise SourceMissing(resolved, "does not exist (set by SKIA_OFFLINE_SOURCE_DIR)")
        if not resolved.is_dir():
            raise SourceMissing(resolved, "is not a directory (set by SKIA_OFFLINE_SOURCE_DIR)")
        if not any(resolved.iterdir()):
            raise SourceMissing(resolved, "is empty (set by SKIA_OFFLINE_SOURCE_DIR)")
        return resolved

    @staticmethod
    def _check_managed(path: Path) -> Path:
        resolved = path.resolve()
        hint = (
            "the managed checkout must be prepared before building "
            "(clone Skia there and run tools/git-sync-deps), "
            "or set SKIA_OFFLINE_SOURCE_DIR for an offline build"
        )
        if not resolved.is_dir():
            raise SourceMissing(resolved, f"does not exist; {hint}")
        if not any(resolved.iterdir()):
            raise SourceMissing(resolved, f"is empty; {hint}")
        return resolved

    def detect_quirks(self, config: BuildConfiguration) -> PlatformQuirks:
        target = config.target
        inputs = config.inputs
        notes: List[str] = []

        if target.is_msvc:
            win_vc = inputs.vc_install_dir
            if win_vc is None or not win_vc.is_dir():
                win_vc = _first_existing(
                    [
                        root / year / edition / "VC"
                        for root in _VISUAL_STUDIO_ROOTS
                        for year in _VISUAL_STUDIO_YEARS
                        for edition in _VISUAL_STUDIO_EDITIONS
                    ]
                )
            if win_vc is None:
                notes.append("No Visual Studio installation found; gn will use its own default (set VCINSTALLDIR)")
            clang_win = inputs.llvm_home if inputs.llvm_home is not None and inputs.llvm_home.is_dir() else None
            if clang_win is None and _DEFAULT_LLVM_DIR.is_dir():
                clang_win = _DEFAULT_LLVM_DIR
            if clang_win is None:
                notes.append("No LLVM installation found; Skia will be compiled with MSVC (set LLVM_HOME)")
            # code must match the CRT the embedding program links
            crt_flag = "/MT" if config.crt_static else "/MD"
            return PlatformQuirks(
                win_vc=win_vc,
                clang_win=clang_win,
                extra_cflags=(crt_flag,),
                notes=tuple(notes),
            )

        if target.is_android:
            ndk = inputs.android_ndk if inputs.android_ndk is not None and inputs.android_ndk.is_dir() else None
            return PlatformQuirks(android_ndk=ndk, android_api_level=ANDROID_API_LEVEL)

        if target.is_ios:
            if target.is_ios_simulator:
                flag = f"-mios-simulator-version-min={IOS_MIN_VERSION}"
            else:
                flag = f"-miphoneos-version-min={IOS_MIN_VERSION}"
            sdk = inputs.sdk_root if inputs.sdk_root is not None and inputs.sdk_root.is_dir() else None
            cflags = [flag]
            if sdk is not None:
                cflags.extend(["-isysroot", str(sdk)])
            return PlatformQuirks(apple_sdk=sdk, extra_cflags=tuple(cflags))

        if target.is_macos and inputs.sdk_root is not None and inputs.sdk_root.is_dir():
            return PlatformQuirks(apple_sdk=inputs.sdk_root)

        return PlatformQuirks()


__all__ = [
    "ANDROID_API_LEVEL",
    "FinalBuildConfiguration",
    "MANAGED_CHECKOUT_DIR",
    "PlatformQuirks",
    "SourceMode",
    "SourceResolver",
]
