from __future__ import annotations

import unittest
from unittest.mock import patch

from skia_build.target import Target


class TargetTests(unittest.TestCase):
    def test_parse_linux_triple(self) -> None:
        target = Target.parse("x86_64-unknown-linux-gnu")
        self.assertEqual(target.arch, "x86_64")
        self.assertEqual(target.system, "linux")
        self.assertEqual(target.abi, "gnu")
        self.assertTrue(target.is_linux)
        self.assertFalse(target.is_android)
        self.assertEqual(target.os_name, "linux")
        self.assertEqual(target.skia_target_os, "linux")
        self.assertEqual(target.skia_target_cpu, "x64")
        self.assertEqual(str(target), "x86_64-unknown-linux-gnu")

    def test_parse_android_triple(self) -> None:
        target = Target.parse("aarch64-linux-android")
        self.assertTrue(target.is_android)
        self.assertFalse(target.is_linux)
        self.assertEqual(target.os_name, "android")
        self.assertEqual(target.skia_target_os, "android")
        self.assertEqual(target.skia_target_cpu, "arm64")

        arm = Target.parse("armv7-linux-androideabi")
        self.assertTrue(arm.is_android)
        self.assertEqual(arm.skia_target_cpu, "arm")

    def test_apple_targets(self) -> None:
        mac = Target.parse("aarch64-apple-darwin")
        self.assertTrue(mac.is_apple)
        self.assertTrue(mac.is_macos)
        self.assertEqual(mac.skia_target_os, "mac")

        simulator = Target.parse("aarch64-apple-ios-sim")
        self.assertTrue(simulator.is_ios)
        self.assertTrue(simulator.is_ios_simulator)
        self.assertEqual(simulator.os_name, "ios")

        device = Target.parse("aarch64-apple-ios")
        self.assertFalse(device.is_ios_simulator)
        self.assertTrue(Target.parse("x86_64-apple-ios").is_ios_simulator)

    def test_msvc_library_names(self) -> None:
        msvc = Target.parse("x86_64-pc-windows-msvc")
        self.assertTrue(msvc.is_windows)
        self.assertTrue(msvc.is_msvc)
        self.assertEqual(msvc.skia_target_os, "win")
        self.assertEqual(msvc.static_library_name("skia"), "skia.lib")
        self.assertEqual(msvc.executable_suffix, ".exe")

        linux = Target.parse("x86_64-unknown-linux-gnu")
        self.assertEqual(linux.static_library_name("skia"), "libskia.a")
        self.assertEqual(linux.executable_suffix, "")

    def test_vendorless_triple(self) -> None:
        target = Target.parse("wasm32-wasi")
        self.assertEqual(target.arch, "wasm32")
        self.assertIsNone(target.vendor)
        self.assertEqual(target.system, "wasi")
        self.assertIsNone(target.abi)
        self.assertEqual(target.skia_target_cpu, "wasm")
        self.assertEqual(str(target), "wasm32-wasi")

    def test_invalid_triple_raises(self) -> None:
        for triple in ("x86_64", "-wasi", "wasm32-", "x86_64--linux", ""):
            with self.subTest(triple=triple):
                with self.assertRaises(ValueError):
                    Target.parse(triple)

    def test_host_detection(self) -> None:
        with patch("skia_build.target.platform.machine", return_value="AMD64"), patch(
            "skia_build.target.platform.system", return_value="Windows"
        ):
            host = Target.host()
        self.assertEqual(str(host), "x86_64-pc-windows-msvc")

        with patch("skia_build.target.platform.machine", return_value="arm64"), patch(
            "skia_build.target.platform.system", return_value="Darwin"
        ):
            host = Target.host()
        self.assertEqual(str(host), "aarch64-apple-darwin")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
