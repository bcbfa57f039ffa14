"""Synthesis of gn arguments, preprocessor defines and ninja targets."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Union

from .capabilities import CapabilityRegistry
from .config import GnLiteral
from .console import Console
from .errors import ConfigurationError
from .source import FinalBuildConfiguration


GnValue = Union[bool, int, str, Sequence[str], GnLiteral]

BASELINE_NINJA_TARGET = "skia"


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def render_gn_value(value: GnValue) -> str:
    if isinstance(value, GnLiteral):
        return str(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return _quote(value)
    return "[" + ",".join(_quote(str(item)) for item in value) + "]"


@dataclass(frozen=True, slots=True)
class BuildArguments:
    gn_args: tuple[tuple[str, GnValue], ...]
    defines: tuple[str, ...]
    ninja_targets: tuple[str, ...]
    source_dir: Path
    output_dir: Path
    jobs: int | None = None

    def as_dict(self) -> Dict[str, GnValue]:
        return dict(self.gn_args)

    def get(self, name: str, default: GnValue | None = None) -> GnValue | None:
        return self.as_dict().get(name, default)

    def rendered_pairs(self) -> List[str]:
        return [f"{name}={render_gn_value(value)}" for name, value in self.gn_args]

    def flatten(self) -> str:
        """Space separated ``name=value`` list passed as ``gn gen --args=``."""
        return " ".join(self.rendered_pairs())

    def render(self) -> str:
        """Contents equivalent to an ``args.gn`` file."""
        lines = [f"{name} = {render_gn_value(value)}" for name, value in self.gn_args]
        return "\n".join(lines) + "\n"


class ArgumentSynthesizer:
    def __init__(self, registry: CapabilityRegistry | None = None, *, console: Console | None = None) -> None:
        self._registry = registry or CapabilityRegistry.with_builtins()
        self._console = console or Console("none")

    def validate(self, fcfg: FinalBuildConfiguration) -> list[str]:
        """Return every violated rule; an empty list means the configuration is consistent."""

        config = fcfg.config
        errors = self._registry.validate(config.capabilities, config.target)
        if config.target.is_android and fcfg.quirks.android_ndk is None:
            errors.append(
                f"Target '{config.target}' requires the Android NDK; set ANDROID_NDK to its installation directory"
            )
        for name, _ in config.extra_gn_args:
            if not (name.isascii() and name.isidentifier()):
                errors.append(f"gn argument name '{name}' is not a valid identifier")
        return errors

    def synthesize(self, fcfg: FinalBuildConfiguration) -> BuildArguments:
        errors = self.validate(fcfg)
        if errors:
            raise ConfigurationError(errors, stage="arguments")

        config = fcfg.config
        caps = config.capabilities
        target = config.target
        quirks = fcfg.quirks
        system_libs = config.use_system_libraries

        args: Dict[str, GnValue] = {
            "is_official_build": not config.debug,
            "is_debug": config.debug,
            "skia_enable_gpu": self._registry.uses_gpu(caps),
            "skia_use_gl": "gl" in caps,
            "skia_use_egl": "egl" in caps,
            "skia_use_x11": "x11" in caps,
            "skia_use_vulkan": "vulkan" in caps,
            "skia_use_metal": "metal" in caps,
            "skia_use_direct3d": "d3d" in caps,
            "skia_enable_pdf": "pdf" in caps,
            "skia_use_xps": False,
            "skia_use_dng_sdk": False,
            "skia_use_system_libjpeg_turbo": system_libs,
            "skia_use_system_libpng": system_libs,
            "skia_use_system_zlib": system_libs,
            "skia_use_expat": True,
            "skia_use_system_expat": system_libs,
            "skia_use_libwebp_encode": "webp-encode" in caps,
            "skia_use_libwebp_decode": "webp-decode" in caps,
            "skia_enable_skottie": "lottie" in caps,
            "skia_enable_svg": "svg" in caps,
            "cc": config.cc,
            "cxx": config.cxx,
            "target_os": target.skia_target_os,
            "target_cpu": target.skia_target_cpu,
        }

        if "vulkan" in caps or config.debug:
            args["skia_enable_spirv_validation"] = False

        if "textlayout" in caps:
            args.update(
                {
                    "skia_enable_skshaper": True,
                    "skia_enable_skparagraph": True,
                    "skia_use_icu": True,
                    "skia_use_system_icu": False,
                    "skia_use_harfbuzz": True,
                    "skia_pdf_subset_harfbuzz": True,
                    "skia_use_system_harfbuzz": False,
                }
            )
        else:
            args.update(
                {
                    "skia_enable_skshaper": False,
                    "skia_enable_skparagraph": False,
                    "skia_use_icu": False,
                }
            )

        if "webp-encode" in caps or "webp-decode" in caps:
            args["skia_use_system_libwebp"] = system_libs

        if config.debug:
            # limit the components of debug builds
            args.update(
                {
                    "skia_enable_tools": False,
                    "skia_enable_vulkan_debug_layers": False,
                    "skia_use_libheif": False,
                    "skia_use_lua": False,
                }
            )

        if target.is_android and quirks.android_ndk is not None:
            args["ndk"] = str(quirks.android_ndk)
            args["ndk_api"] = quirks.android_api_level or 0
            args["skia_use_system_freetype2"] = system_libs
            args["skia_enable_fontmgr_android"] = True

        if target.is_msvc:
            if quirks.win_vc is not None:
                args["win_vc"] = str(quirks.win_vc)
            if quirks.clang_win is not None:
                args["clang_win"] = str(quirks.clang_win)

        if quirks.extra_cflags:
            args["extra_cflags"] = tuple(quirks.extra_cflags)

        for name, value in config.extra_gn_args:
            if name in args:
                self._console.debug(f"gn argument '{name}' overridden by user value {value}")
            args[name] = value

        return BuildArguments(
            gn_args=tuple(sorted(args.items())),
            defines=tuple(self._defines(fcfg)),
            ninja_targets=tuple(self._ninja_targets(fcfg)),
            source_dir=fcfg.source_dir,
            output_dir=fcfg.output_dir,
            jobs=config.jobs,
        )

    def _defines(self, fcfg: FinalBuildConfiguration) -> List[str]:
        config = fcfg.config
        target = config.target
        defines = set(self._registry.defines(config.capabilities))
        if target.is_windows:
            defines.add("SK_BUILD_FOR_WIN")
        elif target.is_android:
            defines.add("SK_BUILD_FOR_ANDROID")
        elif target.is_ios:
            defines.add("SK_BUILD_FOR_IOS")
        elif target.is_macos:
            defines.add("SK_BUILD_FOR_MAC")
        else:
            defines.add("SK_BUILD_FOR_UNIX")
        defines.add("SK_DEBUG" if config.debug else "SK_RELEASE")
        return sorted(defines)

    def _ninja_targets(self, fcfg: FinalBuildConfiguration) -> List[str]:
        targets = [BASELINE_NINJA_TARGET]
        targets.extend(self._registry.ninja_targets(fcfg.config.capabilities))
        return targets


def gn_args_mapping(arguments: BuildArguments) -> Mapping[str, str]:
    """Rendered gn values by name, for display and metadata."""
    return {name: render_gn_value(value) for name, value in arguments.gn_args}


__all__ = [
    "ArgumentSynthesizer",
    "BASELINE_NINJA_TARGET",
    "BuildArguments",
    "GnLiteral",
    "GnValue",
    "gn_args_mapping",
    "render_gn_value",
]
