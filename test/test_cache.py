#!/usr/bin/env python3
"""Tests for the keyed config cache backends."""

import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

_project = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_project / "bin"))

from cache import FileCache, MemoryCache


class TestMemoryCache(unittest.TestCase):
    def test_get_missing_returns_none(self):
        self.assertIsNone(MemoryCache().get("practice-config"))

    def test_set_then_get(self):
        cache = MemoryCache()
        cache.set("practice-config", "{}")
        self.assertEqual(cache.get("practice-config"), "{}")

    def test_set_replaces_wholesale(self):
        cache = MemoryCache({"k": "old"})
        cache.set("k", "new")
        self.assertEqual(cache.get("k"), "new")

    def test_remove_is_idempotent(self):
        cache = MemoryCache({"k": "v"})
        cache.remove("k")
        cache.remove("k")
        self.assertIsNone(cache.get("k"))
        self.assertEqual(cache.keys(), [])


class TestFileCache(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.mkdtemp()
        self.cache = FileCache(Path(self._tmpdir) / "nested" / "cache")

    def tearDown(self):
        shutil.rmtree(self._tmpdir, ignore_errors=True)

    def test_missing_key(self):
        self.assertIsNone(self.cache.get("provider-config"))

    def test_round_trip_creates_directory(self):
        self.cache.set("provider-config", '{"version": "1.0.0"}')
        self.assertEqual(self.cache.get("provider-config"), '{"version": "1.0.0"}')
        self.assertTrue((Path(self._tmpdir) / "nested" / "cache" / "provider-config.json").exists())

    def test_overwrite_leaves_no_temp_files(self):
        self.cache.set("k", "one")
        self.cache.set("k", "two")
        self.assertEqual(self.cache.get("k"), "two")
        names = os.listdir(self.cache.directory)
        self.assertEqual(names, ["k.json"])

    def test_failed_replace_keeps_old_value(self):
        self.cache.set("k", "old")
        with patch("cache.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.cache.set("k", "new")
        self.assertEqual(self.cache.get("k"), "old")
        self.assertEqual(os.listdir(self.cache.directory), ["k.json"])

    def test_unsafe_key_characters_are_sanitized(self):
        self.cache.set("../escape", "x")
        self.assertEqual(self.cache.get("../escape"), "x")
        self.assertFalse((Path(self._tmpdir) / "nested" / "escape.json").exists())

    def test_remove(self):
        self.cache.set("k", "v")
        self.cache.remove("k")
        self.cache.remove("k")
        self.assertIsNone(self.cache.get("k"))


if __name__ == "__main__":
    unittest.main()
