from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from gitlanes import config


class SettingsLoadingTests(unittest.TestCase):
    def test_missing_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            settings = config.load_settings(Path(tmp) / "absent.json")

        self.assertEqual(settings, config.Settings())
        self.assertEqual(settings.commit_cap, 500)
        self.assertEqual(settings.palette_size, len(config.PALETTE))

    def test_valid_overrides_are_applied(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"commit_cap": 50, "poll_interval": 1}), encoding="utf-8")

            settings = config.load_settings(path)

        self.assertEqual(settings.commit_cap, 50)
        self.assertEqual(settings.poll_interval, 1.0)
        self.assertEqual(settings.diff_file_cap, 50)

    def test_invalid_values_are_ignored(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(
                json.dumps(
                    {"commit_cap": -1, "page_size": 2.5, "scroll_margin": True, "unknown": 3}
                ),
                encoding="utf-8",
            )

            with self.assertLogs("gitlanes.config", level="WARNING"):
                settings = config.load_settings(path)

        self.assertEqual(settings, config.Settings())

    def test_palette_size_is_capped_at_palette_length(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"palette_size": 40}), encoding="utf-8")

            with self.assertLogs("gitlanes.config", level="WARNING"):
                settings = config.load_settings(path)

        self.assertEqual(settings.palette_size, len(config.PALETTE))

    def test_smaller_palette_size_is_kept(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"palette_size": 4}), encoding="utf-8")

            settings = config.load_settings(path)

        self.assertEqual(settings.palette_size, 4)

    def test_unreadable_json_falls_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text("{not json", encoding="utf-8")

            with self.assertLogs("gitlanes.config", level="WARNING"):
                settings = config.load_settings(path)

        self.assertEqual(settings, config.Settings())

    def test_default_path_is_used_when_none_given(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"page_size": 4}), encoding="utf-8")
            with mock.patch("gitlanes.config.CONFIG_PATH", path):
                settings = config.load_settings()

        self.assertEqual(settings.page_size, 4)


class PaletteTests(unittest.TestCase):
    def test_lane_color_wraps_around(self) -> None:
        self.assertEqual(config.lane_color(0), "cyan")
        self.assertEqual(config.lane_color(len(config.PALETTE)), "cyan")
        self.assertEqual(config.lane_color(1), "green")


if __name__ == "__main__":
    unittest.main()
