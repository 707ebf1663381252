import json
import os
import tempfile
import unittest

from xns.config import AppConfig, load_config, parse_listen_addr


class TestConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        config = load_config(None, environ={})
        self.assertEqual(config, AppConfig())
        self.assertEqual(config.poll_interval_seconds, 15)
        self.assertEqual(config.max_concurrent, 50)
        self.assertEqual(config.listen_host_port(), ("127.0.0.1", 3000))

    def test_file_then_env_override(self) -> None:
        cfg = {"db_path": "/tmp/a.sqlite3", "poll_interval_seconds": 30, "max_concurrent": 4}
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "config.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(cfg, f)

            config = load_config(path, environ={"XNS_MAX_CONCURRENT": "8", "XNS_REQUEST_TIMEOUT": "5.5"})

        self.assertEqual(config.db_path, "/tmp/a.sqlite3")
        self.assertEqual(config.poll_interval_seconds, 30)
        self.assertEqual(config.max_concurrent, 8)
        self.assertEqual(config.request_timeout_seconds, 5.5)

    def test_unparseable_values_fall_back(self) -> None:
        config = load_config(None, environ={"XNS_POLL_INTERVAL": "soon", "XNS_MAX_CONCURRENT": "0"})
        self.assertEqual(config.poll_interval_seconds, 15)
        self.assertEqual(config.max_concurrent, 1)

    def test_parse_listen_addr(self) -> None:
        self.assertEqual(parse_listen_addr("0.0.0.0:8080"), ("0.0.0.0", 8080))
        self.assertEqual(parse_listen_addr("[::1]:3000"), ("::1", 3000))
        with self.assertRaises(ValueError):
            parse_listen_addr("localhost")
        with self.assertRaises(ValueError):
            parse_listen_addr("localhost:http")
