from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from skia_build.config_loader import (
    find_config_file,
    load_build_settings,
    load_config_file,
    merge_mappings,
    normalize_string_list,
)

try:  # PyYAML is optional
    import yaml  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency absent
    yaml = None


class ConfigurationLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_loads_toml_build_table(self) -> None:
        path = self.root / "skia-build.toml"
        path.write_text(
            textwrap.dedent(
                """
                [build]
                features = ["gl", "textlayout"]
                jobs = 8

                [build.gn_args]
                skia_use_lua = false
                extra_cflags = ["-g1"]
                """
            )
        )
        self.assertEqual(find_config_file(self.root), path)
        settings = load_build_settings(path)
        self.assertEqual(settings["features"], ["gl", "textlayout"])
        self.assertEqual(settings["jobs"], 8)
        self.assertEqual(settings["gn_args"], {"skia_use_lua": False, "extra_cflags": ["-g1"]})

    def test_supports_json_configs(self) -> None:
        path = self.root / "skia-build.json"
        path.write_text('{"build": {"debug": true, "cc": "clang-18"}}')
        self.assertEqual(load_build_settings(path), {"debug": True, "cc": "clang-18"})

    @unittest.skipIf(yaml is None, "PyYAML not installed")
    def test_supports_yaml_configs(self) -> None:
        path = self.root / "skia-build.yaml"
        path.write_text(
            textwrap.dedent(
                """
                build:
                  features: gl, vulkan
                  use_system_libraries: true
                """
            ).strip()
        )
        settings = load_build_settings(path)
        self.assertEqual(normalize_string_list(settings["features"]), ["gl", "vulkan"])
        self.assertIs(settings["use_system_libraries"], True)

    def test_missing_build_table_is_empty(self) -> None:
        path = self.root / "skia-build.toml"
        path.write_text("[other]\nvalue = 1\n")
        self.assertEqual(load_build_settings(path), {})

    def test_no_config_file(self) -> None:
        self.assertIsNone(find_config_file(self.root))

    def test_duplicate_formats_rejected(self) -> None:
        (self.root / "skia-build.toml").write_text("[build]\n")
        (self.root / "skia-build.json").write_text("{}")
        with self.assertRaises(ValueError) as ctx:
            find_config_file(self.root)
        self.assertIn("Multiple configuration files", str(ctx.exception))

    def test_unknown_build_keys_rejected(self) -> None:
        path = self.root / "skia-build.toml"
        path.write_text("[build]\nfeaturs = ['gl']\nprofile = 'debug'\n")
        with self.assertRaises(ValueError) as ctx:
            load_build_settings(path)
        self.assertIn("featurs, profile", str(ctx.exception))

    def test_build_table_must_be_mapping(self) -> None:
        path = self.root / "skia-build.json"
        path.write_text('{"build": ["gl"]}')
        with self.assertRaises(TypeError):
            load_build_settings(path)

    def test_root_must_be_mapping(self) -> None:
        path = self.root / "skia-build.json"
        path.write_text("[1, 2]")
        with self.assertRaises(TypeError):
            load_config_file(path)

    def test_unsupported_extension(self) -> None:
        with self.assertRaises(ValueError):
            load_config_file(self.root / "skia-build.ini")

    def test_merge_mappings_is_deep(self) -> None:
        merged = merge_mappings(
            {"gn_args": {"cc": "clang", "is_debug": False}, "jobs": 2},
            {"gn_args": {"is_debug": True}, "jobs": 4},
        )
        self.assertEqual(merged, {"gn_args": {"cc": "clang", "is_debug": True}, "jobs": 4})

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list(None), [])
        self.assertEqual(normalize_string_list(" gl , egl,,"), ["gl", "egl"])
        self.assertEqual(normalize_string_list(["gl,egl", "pdf"]), ["gl", "egl", "pdf"])
        with self.assertRaises(TypeError):
            normalize_string_list([1, 2], field_name="features")
        with self.assertRaises(TypeError):
            normalize_string_list(3)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
