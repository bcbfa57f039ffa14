from __future__ import annotations

from pathlib import Path
from typing import Iterable
import itertools
import unittest

from skia_build.arguments import ArgumentSynthesizer, GnLiteral, gn_args_mapping, render_gn_value
from skia_build.capabilities import CapabilityRegistry
from skia_build.config import BuildConfiguration, BuildInputs, BuildProfile
from skia_build.errors import ConfigurationError
from skia_build.source import FinalBuildConfiguration, PlatformQuirks, SourceMode
from skia_build.target import Target


WORKSPACE = Path("/work")


def make_final(
    capabilities: Iterable[str] = (),
    *,
    triple: str = "x86_64-unknown-linux-gnu",
    profile: BuildProfile = BuildProfile.RELEASE,
    quirks: PlatformQuirks | None = None,
    extra_gn_args: tuple = (),
    use_system_libraries: bool = False,
) -> FinalBuildConfiguration:
    config = BuildConfiguration(
        target=Target.parse(triple),
        capabilities=frozenset(capabilities),
        profile=profile,
        inputs=BuildInputs(workspace=WORKSPACE, output_dir=WORKSPACE / "target" / "skia"),
        use_system_libraries=use_system_libraries,
        extra_gn_args=extra_gn_args,
    )
    return FinalBuildConfiguration(
        config=config,
        source_dir=WORKSPACE / "skia",
        mode=SourceMode.FULL,
        quirks=quirks or PlatformQuirks(),
    )


class GnValueRenderingTests(unittest.TestCase):
    def test_render_values(self) -> None:
        self.assertEqual(render_gn_value(True), "true")
        self.assertEqual(render_gn_value(False), "false")
        self.assertEqual(render_gn_value(26), "26")
        self.assertEqual(render_gn_value("clang"), '"clang"')
        self.assertEqual(render_gn_value('C:\\LLVM "x" $y'), '"C:\\\\LLVM \\"x\\" \\$y"')
        self.assertEqual(render_gn_value(("/MT", "-O2")), '["/MT","-O2"]')
        self.assertEqual(render_gn_value(GnLiteral('["-g"]')), '["-g"]')


class ArgumentSynthesizerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.synthesizer = ArgumentSynthesizer()

    def test_baseline_arguments(self) -> None:
        arguments = self.synthesizer.synthesize(make_final())
        args = arguments.as_dict()
        self.assertIs(args["is_official_build"], True)
        self.assertIs(args["is_debug"], False)
        self.assertIs(args["skia_enable_gpu"], False)
        self.assertIs(args["skia_use_gl"], False)
        self.assertIs(args["skia_enable_skparagraph"], False)
        self.assertIs(args["skia_use_icu"], False)
        self.assertEqual(args["target_os"], "linux")
        self.assertEqual(args["target_cpu"], "x64")
        self.assertEqual(args["cc"], "clang")
        self.assertEqual(arguments.ninja_targets, ("skia",))
        self.assertEqual(arguments.defines, ("SK_BUILD_FOR_UNIX", "SK_RELEASE"))
        self.assertEqual(arguments.output_dir, WORKSPACE / "target" / "skia")

    def test_arguments_are_sorted_and_deterministic(self) -> None:
        registry = CapabilityRegistry.with_builtins()
        linux_capabilities = ["gl", "egl", "x11", "vulkan", "textlayout", "svg", "lottie", "pdf", "webp-encode"]
        for size in range(0, 4):
            for subset in itertools.combinations(linux_capabilities, size):
                final = make_final(subset)
                if registry.validate(subset, final.config.target):
                    continue
                with self.subTest(capabilities=subset):
                    first = self.synthesizer.synthesize(final)
                    second = self.synthesizer.synthesize(make_final(reversed(subset)))
                    names = [name for name, _ in first.gn_args]
                    self.assertEqual(names, sorted(names))
                    self.assertEqual(first.render(), second.render())
                    self.assertEqual(first.flatten(), second.flatten())
                    self.assertEqual(first, second)

    def test_capability_arguments_and_targets(self) -> None:
        arguments = self.synthesizer.synthesize(make_final(["gl", "textlayout", "svg", "lottie", "webp-decode"]))
        args = arguments.as_dict()
        self.assertIs(args["skia_enable_gpu"], True)
        self.assertIs(args["skia_use_gl"], True)
        self.assertIs(args["skia_use_harfbuzz"], True)
        self.assertIs(args["skia_enable_skottie"], True)
        self.assertIs(args["skia_enable_svg"], True)
        self.assertIs(args["skia_use_libwebp_decode"], True)
        self.assertIs(args["skia_use_libwebp_encode"], False)
        self.assertIs(args["skia_use_system_libwebp"], False)
        self.assertEqual(
            arguments.ninja_targets,
            ("skia", "modules/sksg", "modules/skottie", "modules/svg", "modules/skshaper", "modules/skparagraph"),
        )
        self.assertIn("SK_GL", arguments.defines)
        self.assertIn("SK_SHAPER_HARFBUZZ_AVAILABLE", arguments.defines)
        self.assertEqual(list(arguments.defines), sorted(arguments.defines))

    def test_debug_profile_limits_components(self) -> None:
        arguments = self.synthesizer.synthesize(make_final(profile=BuildProfile.DEBUG))
        args = arguments.as_dict()
        self.assertIs(args["is_debug"], True)
        self.assertIs(args["is_official_build"], False)
        self.assertIs(args["skia_enable_tools"], False)
        self.assertIs(args["skia_use_lua"], False)
        self.assertIs(args["skia_enable_spirv_validation"], False)
        self.assertIn("SK_DEBUG", arguments.defines)

    def test_every_violation_is_listed(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            self.synthesizer.synthesize(make_final(["metal", "d3d", "egl"]))
        violations = ctx.exception.violations
        self.assertEqual(len(violations), 4)
        self.assertIn("Capabilities 'd3d' and 'metal' are mutually exclusive", violations)
        self.assertIn("Capability 'egl' requires capability 'gl' to be enabled", violations)
        self.assertEqual(ctx.exception.stage, "arguments")

    def test_platform_mismatch_names_capability(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            self.synthesizer.synthesize(make_final(["metal"]))
        self.assertEqual(len(ctx.exception.violations), 1)
        self.assertIn("'metal' is not supported on target 'x86_64-unknown-linux-gnu'", ctx.exception.violations[0])

    def test_android_requires_ndk(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            self.synthesizer.synthesize(make_final(triple="aarch64-linux-android"))
        self.assertIn("Android NDK", str(ctx.exception))

        quirks = PlatformQuirks(android_ndk=Path("/ndk"), android_api_level=26)
        arguments = self.synthesizer.synthesize(make_final(triple="aarch64-linux-android", quirks=quirks))
        args = arguments.as_dict()
        self.assertEqual(args["ndk"], "/ndk")
        self.assertEqual(args["ndk_api"], 26)
        self.assertEqual(args["target_os"], "android")
        self.assertIn("SK_BUILD_FOR_ANDROID", arguments.defines)

    def test_msvc_quirks_become_arguments(self) -> None:
        quirks = PlatformQuirks(win_vc=Path("C:/VS/VC"), clang_win=Path("C:/LLVM"), extra_cflags=("/MT",))
        arguments = self.synthesizer.synthesize(make_final(["d3d"], triple="x86_64-pc-windows-msvc", quirks=quirks))
        mapping = gn_args_mapping(arguments)
        self.assertEqual(mapping["win_vc"], '"C:/VS/VC"')
        self.assertEqual(mapping["clang_win"], '"C:/LLVM"')
        self.assertEqual(mapping["extra_cflags"], '["/MT"]')
        self.assertEqual(mapping["skia_use_direct3d"], "true")
        self.assertIn("SK_BUILD_FOR_WIN", arguments.defines)

    def test_user_gn_args_are_applied_last(self) -> None:
        final = make_final(
            extra_gn_args=(("cc", GnLiteral('"gcc"')), ("skia_use_lua", True), ("extra_ldflags", ("-s",)))
        )
        arguments = self.synthesizer.synthesize(final)
        mapping = gn_args_mapping(arguments)
        self.assertEqual(mapping["cc"], '"gcc"')
        self.assertEqual(mapping["skia_use_lua"], "true")
        self.assertEqual(mapping["extra_ldflags"], '["-s"]')

    def test_invalid_gn_arg_name_is_a_violation(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            self.synthesizer.synthesize(make_final(extra_gn_args=(("bad-name", GnLiteral("1")),)))
        self.assertIn("bad-name", ctx.exception.violations[0])

        names = ("2d_backend", "skia_\u00e9", "skia use")
        with self.assertRaises(ConfigurationError) as ctx:
            self.synthesizer.synthesize(make_final(extra_gn_args=tuple((name, GnLiteral("1")) for name in names)))
        self.assertEqual(len(ctx.exception.violations), 3)
        self.assertIn("'2d_backend'", ctx.exception.violations[0])

    def test_render_and_flatten(self) -> None:
        arguments = self.synthesizer.synthesize(make_final(use_system_libraries=True))
        rendered = arguments.render()
        self.assertTrue(rendered.endswith("\n"))
        self.assertIn('cc = "clang"\n', rendered)
        self.assertIn("skia_use_system_zlib = true\n", rendered)
        flat = arguments.flatten()
        self.assertIn('cc="clang"', flat)
        self.assertNotIn("\n", flat)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
