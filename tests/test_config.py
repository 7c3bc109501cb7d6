"""Tests for scenario configuration resolution."""

import json
import tempfile
import unittest
from pathlib import Path

from blockprobe.config import DEFAULT_BASE_URL, load_client_payload, load_config


class ConfigTests(unittest.TestCase):
    """Environment wins over the trigger payload; invalid inputs are rejected."""

    def _event_file(self, tmpdir: str, payload: dict) -> Path:
        path = Path(tmpdir) / "event.json"
        path.write_text(json.dumps({"action": "block-test", "client_payload": payload}), encoding="utf-8")
        return path

    def test_environment_inputs(self) -> None:
        config = load_config({"SEARCH_TERM": "foo-block", "PLUGIN_SLUG": "foo"})
        self.assertEqual(config.search_term, "foo-block")
        self.assertEqual(config.plugin_slug, "foo")
        self.assertEqual(config.base_url, DEFAULT_BASE_URL)
        self.assertEqual(config.network_idle_mode, "network-idle-0")

    def test_payload_fallback(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            event_path = self._event_file(tmpdir, {"searchTerm": "bar-block", "slug": "bar"})
            config = load_config({"GITHUB_EVENT_PATH": str(event_path)})
        self.assertEqual(config.search_term, "bar-block")
        self.assertEqual(config.plugin_slug, "bar")

    def test_environment_overrides_payload(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            event_path = self._event_file(tmpdir, {"searchTerm": "bar-block", "slug": "bar"})
            config = load_config({"SEARCH_TERM": "foo-block"}, event_path=event_path)
        self.assertEqual(config.search_term, "foo-block")
        self.assertEqual(config.plugin_slug, "bar")

    def test_explicit_overrides_win(self) -> None:
        config = load_config(
            {"SEARCH_TERM": "foo-block", "PLUGIN_SLUG": "foo", "WP_BASE_URL": "http://wp.test/"},
            search_term="baz-block",
            cdp_port=None,
        )
        self.assertEqual(config.search_term, "baz-block")
        self.assertEqual(config.base_url, "http://wp.test")
        self.assertIsNone(config.cdp_port)

    def test_cdp_port_from_environment(self) -> None:
        config = load_config({"SEARCH_TERM": "a", "PLUGIN_SLUG": "b", "BLOCKPROBE_CDP_PORT": "9222"})
        self.assertEqual(config.cdp_port, 9222)

    def test_missing_inputs_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_config({})

    def test_idle_mode_spellings_are_canonicalized(self) -> None:
        config = load_config({"SEARCH_TERM": "a", "PLUGIN_SLUG": "b"}, network_idle_mode="networkidle2")
        self.assertEqual(config.network_idle_mode, "network-idle-2")

    def test_unknown_idle_mode_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_config({"SEARCH_TERM": "a", "PLUGIN_SLUG": "b"}, network_idle_mode="networkidle9")

    def test_unreadable_payload_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "event.json"
            path.write_text("{not json", encoding="utf-8")
            self.assertEqual(load_client_payload(path), {})
        self.assertEqual(load_client_payload(None), {})


if __name__ == "__main__":
    unittest.main()
