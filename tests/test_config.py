"""Unit tests for YAML configuration loading."""

import sys
import tempfile
import unittest
from pathlib import Path

# Ensure project src is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from rackpower_ups.config import ConfigurationError, config_to_dict, load_config, parse_config_dict, save_config


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        config = parse_config_dict({})
        self.assertEqual(config.serial.baudrate, 9600)
        self.assertEqual(config.serial.parity, "N")
        self.assertEqual(config.client.slave, 1)
        self.assertEqual(config.client.max_age, 1.0)
        self.assertTrue(config.client.reject_bad_crc)

    def test_write_timeout_follows_timeout(self):
        config = parse_config_dict({"serial": {"timeout": 0.5}})
        self.assertEqual(config.serial.write_timeout, 0.5)

    def test_values_are_coerced(self):
        config = parse_config_dict(
            {
                "serial": {"port": "socket://ups:4001", "baudrate": "19200", "parity": "e"},
                "client": {"slave": "2", "max_age": "0.3", "reject_bad_crc": False},
            }
        )
        self.assertEqual(config.serial.port, "socket://ups:4001")
        self.assertEqual(config.serial.baudrate, 19200)
        self.assertEqual(config.serial.parity, "E")
        self.assertEqual(config.client.slave, 2)
        self.assertAlmostEqual(config.client.max_age, 0.3)
        self.assertFalse(config.client.reject_bad_crc)

    def test_invalid_values(self):
        bad = [
            {"serial": "ttyUSB0"},
            {"serial": {"parity": "X"}},
            {"serial": {"stopbits": 3}},
            {"serial": {"baudrate": "fast"}},
            {"serial": {"port": ""}},
            {"client": {"slave": 0}},
            {"client": {"slave": 248}},
            {"client": {"max_age": -1}},
            {"client": {"poll_interval": 0}},
        ]
        for raw in bad:
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigurationError):
                    parse_config_dict(raw)

    def test_save_and_load_round_trip(self):
        raw = {"serial": {"port": "/dev/ttyS1", "baudrate": 2400}, "client": {"max_age": 0.5}}
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "ups.yaml"
            saved = save_config(path, raw)
            loaded = load_config(path)
        self.assertEqual(config_to_dict(saved), config_to_dict(loaded))
        self.assertEqual(loaded.serial.port, "/dev/ttyS1")
        self.assertEqual(loaded.client.max_age, 0.5)

    def test_missing_and_invalid_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigurationError):
                load_config(Path(tmp) / "missing.yaml")
            path = Path(tmp) / "broken.yaml"
            path.write_text("serial: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ConfigurationError):
                load_config(path)
            path.write_text("- just\n- a list\n", encoding="utf-8")
            with self.assertRaises(ConfigurationError):
                load_config(path)


if __name__ == "__main__":
    unittest.main()
