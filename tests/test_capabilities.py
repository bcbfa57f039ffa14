from __future__ import annotations

import unittest

from skia_build.capabilities import CapabilityDefinition, CapabilityRegistry
from skia_build.target import Target


LINUX = Target.parse("x86_64-unknown-linux-gnu")
MACOS = Target.parse("aarch64-apple-darwin")
WINDOWS = Target.parse("x86_64-pc-windows-msvc")
IOS = Target.parse("aarch64-apple-ios")
ANDROID = Target.parse("aarch64-linux-android")


class CapabilityNormalizationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = CapabilityRegistry.with_builtins()

    def test_deprecated_shaper_maps_to_textlayout_with_warning(self) -> None:
        result = self.registry.normalize(["shaper"])
        self.assertEqual(result.capabilities, frozenset({"textlayout"}))
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("'shaper' has been removed", result.warnings[0])
        self.assertIn("'textlayout'", result.warnings[0])

    def test_webp_alias_expands(self) -> None:
        result = self.registry.normalize(["webp"])
        self.assertEqual(result.capabilities, frozenset({"webp-encode", "webp-decode"}))
        self.assertEqual(result.warnings, ())

    def test_implied_and_ignored_names(self) -> None:
        result = self.registry.normalize(["gpu", "default", "binary-cache", "gl"])
        self.assertEqual(result.capabilities, frozenset({"gl"}))
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("'gpu'", result.warnings[0])
        self.assertEqual(result.unknown, ())

    def test_svg_switches_on_textlayout(self) -> None:
        result = self.registry.normalize(["svg"])
        self.assertEqual(result.capabilities, frozenset({"svg", "textlayout"}))
        self.assertEqual(result.warnings, ("The feature 'svg' also enables 'textlayout'.",))
        self.assertEqual(self.registry.validate(result.capabilities, LINUX), [])

        explicit = self.registry.normalize(["textlayout", "svg"])
        self.assertEqual(explicit.capabilities, frozenset({"svg", "textlayout"}))
        self.assertEqual(explicit.warnings, ())

    def test_unknown_names_are_all_collected(self) -> None:
        result = self.registry.normalize(["vulkan", "frobnicate", "Zeta", "frobnicate"])
        self.assertEqual(result.capabilities, frozenset({"vulkan"}))
        self.assertEqual(result.unknown, ("frobnicate", "zeta"))

    def test_cargo_style_names_are_normalized(self) -> None:
        result = self.registry.normalize(["WEBP_ENCODE", " textlayout "])
        self.assertEqual(result.capabilities, frozenset({"webp-encode", "textlayout"}))


class CapabilityRuleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = CapabilityRegistry.with_builtins()

    def test_valid_sets_have_no_violations(self) -> None:
        cases = [
            (set(), LINUX),
            ({"gl", "egl", "x11", "wayland", "vulkan"}, LINUX),
            ({"metal", "textlayout", "svg"}, MACOS),
            ({"d3d", "gl", "lottie", "pdf"}, WINDOWS),
            ({"gl", "egl", "vulkan"}, ANDROID),
            ({"metal", "textlayout"}, IOS),
        ]
        for capabilities, target in cases:
            with self.subTest(capabilities=sorted(capabilities), target=str(target)):
                self.assertEqual(self.registry.validate(capabilities, target), [])

    def test_missing_requirement_is_reported(self) -> None:
        errors = self.registry.validate({"egl"}, LINUX)
        self.assertEqual(errors, ["Capability 'egl' requires capability 'gl' to be enabled"])

        errors = self.registry.validate({"svg"}, LINUX)
        self.assertEqual(errors, ["Capability 'svg' requires capability 'textlayout' to be enabled"])

    def test_every_violation_is_reported(self) -> None:
        errors = self.registry.validate({"metal", "d3d"}, LINUX)
        self.assertEqual(len(errors), 3)
        self.assertIn("Capabilities 'd3d' and 'metal' are mutually exclusive", errors)
        self.assertTrue(any(error.startswith("Capability 'metal' is not supported") for error in errors))
        self.assertTrue(any(error.startswith("Capability 'd3d' is not supported") for error in errors))

    def test_exclusion_is_reported_once_per_pair(self) -> None:
        errors = self.registry.validate({"metal", "d3d"}, MACOS)
        exclusive = [error for error in errors if "mutually exclusive" in error]
        self.assertEqual(len(exclusive), 1)
        # d3d is also not available on macOS
        self.assertEqual(len(errors), 2)

    def test_platform_restrictions(self) -> None:
        self.assertTrue(self.registry.validate({"vulkan"}, IOS))
        self.assertTrue(self.registry.validate({"gl", "x11"}, ANDROID))
        self.assertEqual(self.registry.validate({"gl", "egl"}, ANDROID), [])
        self.assertTrue(self.registry.validate({"gl", "egl"}, WINDOWS))

    def test_validation_order_is_stable(self) -> None:
        first = self.registry.validate(["wayland", "metal", "d3d", "svg"], WINDOWS)
        second = self.registry.validate(["svg", "d3d", "metal", "wayland"], WINDOWS)
        self.assertEqual(first, second)

    def test_targets_and_defines(self) -> None:
        capabilities = {"textlayout", "svg", "lottie", "gl"}
        self.assertEqual(
            self.registry.ninja_targets(capabilities),
            ["modules/sksg", "modules/skottie", "modules/svg", "modules/skshaper", "modules/skparagraph"],
        )
        self.assertEqual(
            self.registry.defines(capabilities),
            ["SK_ENABLE_SKOTTIE", "SK_GL", "SK_SHAPER_HARFBUZZ_AVAILABLE", "SK_XML"],
        )
        self.assertTrue(self.registry.uses_gpu({"gl"}))
        self.assertFalse(self.registry.uses_gpu({"textlayout", "pdf"}))


class CapabilityDefinitionTests(unittest.TestCase):
    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            CapabilityDefinition.from_mapping("demo", {"needs": ["gl"]})

    def test_unknown_platforms_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            CapabilityDefinition.from_mapping("demo", {"platforms": ["plan9"]})

    def test_custom_registry(self) -> None:
        registry = CapabilityRegistry(
            {
                "alpha": CapabilityDefinition.from_mapping("alpha", {"requires": ["beta"]}),
                "beta": CapabilityDefinition.from_mapping("beta", {"platforms": ["windows"]}),
            }
        )
        self.assertEqual(registry.available(), ["alpha", "beta"])
        errors = registry.validate({"alpha"}, LINUX)
        self.assertEqual(errors, ["Capability 'alpha' requires capability 'beta' to be enabled"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
