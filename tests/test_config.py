"""Tests for settings resolution from overrides and the environment."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from git_smart_status.config import (
    DEFAULT_DENYLIST,
    DEFAULT_WORKERS,
    EDITOR_ENV,
    EXCLUDE_ENV,
    ROOT_ENV,
    WORKERS_ENV,
    load_settings,
    resolve_editor,
    resolve_root,
)
from git_smart_status.exceptions import ConfigurationError


class ResolveRootTests(unittest.TestCase):
    def test_override_wins_over_environment(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, mock.patch.dict(os.environ, {ROOT_ENV: "/does/not/exist"}):
            self.assertEqual(resolve_root(Path(tmp)), Path(tmp).resolve())

    def test_environment_is_used_without_override(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, mock.patch.dict(os.environ, {ROOT_ENV: tmp}):
            self.assertEqual(resolve_root(None), Path(tmp).resolve())

    def test_missing_root_is_a_configuration_error(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigurationError):
                resolve_root(None)
        with self.assertRaises(ConfigurationError):
            resolve_root(Path("/does/not/exist"))


class LoadSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(Path(tmp), fetch_remote=False)

        self.assertEqual(settings.denylist, DEFAULT_DENYLIST)
        self.assertEqual(settings.max_workers, DEFAULT_WORKERS)
        self.assertFalse(settings.fetch_remote)
        self.assertEqual(settings.editor, "vi")

    def test_environment_overrides(self) -> None:
        env = {EXCLUDE_ENV: "Legacy, archive ,", WORKERS_ENV: "2", EDITOR_ENV: "code --wait", "EDITOR": "nano"}
        with tempfile.TemporaryDirectory() as tmp, mock.patch.dict(os.environ, env, clear=True):
            settings = load_settings(Path(tmp))

        self.assertEqual(settings.denylist[-2:], ("legacy", "archive"))
        self.assertEqual(settings.max_workers, 2)
        self.assertEqual(settings.editor, "code --wait")

    def test_bad_worker_count(self) -> None:
        for raw in ("many", "0"):
            with self.subTest(raw=raw):
                with tempfile.TemporaryDirectory() as tmp, mock.patch.dict(os.environ, {WORKERS_ENV: raw}, clear=True):
                    with self.assertRaises(ConfigurationError):
                        load_settings(Path(tmp))

    def test_editor_falls_back_through_visual_and_editor(self) -> None:
        with mock.patch.dict(os.environ, {"VISUAL": "vim", "EDITOR": "nano"}, clear=True):
            self.assertEqual(resolve_editor(), "vim")
        with mock.patch.dict(os.environ, {"EDITOR": "nano"}, clear=True):
            self.assertEqual(resolve_editor(), "nano")


if __name__ == "__main__":
    unittest.main()
