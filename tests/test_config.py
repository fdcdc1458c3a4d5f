import json
import os
import tempfile
import unittest

from pydantic import ValidationError

from helpers import make_settings
from komrpc.config import load_config

NESTED_YAML = """
komga:
  base_url: http://localhost:25600/
  api_key: abc
integration:
  discord_client_id: "1387202171270861033"
  imgur_client_id: imgur-client-123
exclude_libraries: [Private, "Adult Comics"]
general:
  poll_interval_seconds: 20
"""


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, name, text):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_nested_yaml(self):
        settings = load_config(self.write("config.yaml", NESTED_YAML))
        self.assertEqual(settings.server_url, "http://localhost:25600")
        self.assertEqual(settings.poll_interval, 20)
        self.assertEqual(settings.reconnect_cooldown, 5)
        self.assertEqual(settings.freshness_window, 300)
        self.assertTrue(settings.show_progress)
        self.assertTrue(settings.rehost_covers)

    def test_legacy_flat_json(self):
        legacy = {
            "discord_client_id": "1387202171270861033",
            "komga_url": "http://komga:25600",
            "komga_api_key": "abc",
            "show_progress": False,
            "use_imgur_cover": False,
            "imgur_client_id": "imgur-client-123",
            "exclude_libraries": None,
        }
        settings = load_config(self.write("config.json", json.dumps(legacy)))
        self.assertEqual(settings.komga.api_key, "abc")
        self.assertEqual(settings.integration.imgur_client_id, "imgur-client-123")
        self.assertFalse(settings.rehost_covers)
        self.assertFalse(settings.show_progress)
        self.assertEqual(settings.exclude_libraries, [])

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(os.path.join(self.tmp.name, "nope.yaml"))

    def test_invalid_url(self):
        with self.assertRaises(ValidationError):
            load_config(self.write("bad.yaml", "komga: {base_url: not-a-url, api_key: x}\n"
                                               "integration: {discord_client_id: '1'}\n"))

    def test_exclusion_is_case_insensitive(self):
        settings = make_settings(exclude=["Adult Comics"])
        self.assertTrue(settings.is_excluded("adult comics"))
        self.assertTrue(settings.is_excluded("ADULT COMICS "))
        self.assertFalse(settings.is_excluded("Manga"))
        self.assertFalse(settings.is_excluded(None))


if __name__ == '__main__':
    unittest.main()
