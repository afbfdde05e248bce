import tempfile
import unittest
from pathlib import Path

from lightdesk_settings import ENV_BASE_URL, load_settings


def _write_json(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = load_settings(environ={})
        self.assertEqual(settings.base_url, "http://127.0.0.1:8080")
        self.assertEqual(settings.refresh_seconds, 1.0)
        self.assertEqual(settings.request_timeout_seconds, 5.0)
        self.assertEqual(settings.tempo_step, 5.0)

    def test_file_values_are_loaded(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            _write_json(path, '{"baseUrl":"desk.local:9000/","refreshSeconds":2.5,"tempoStep":1}')
            settings = load_settings(path, environ={})
        self.assertEqual(settings.base_url, "http://desk.local:9000")
        self.assertEqual(settings.refresh_seconds, 2.5)
        self.assertEqual(settings.tempo_step, 1.0)

    def test_rejects_unknown_key(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            _write_json(path, '{"baseUrl":"http://desk.local","pollMs":100}')
            with self.assertRaises(ValueError) as ctx:
                load_settings(path, environ={})
        self.assertIn("pollMs", str(ctx.exception))

    def test_allows_schema_metadata_keys(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            _write_json(path, '{"$schema":"./settings.schema.json","x-owner":"ops","tempoStep":2}')
            settings = load_settings(path, environ={})
        self.assertEqual(settings.tempo_step, 2.0)

    def test_rejects_non_positive_numbers(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            _write_json(path, '{"requestTimeoutSeconds":0}')
            with self.assertRaises(ValueError):
                load_settings(path, environ={})

    def test_precedence_cli_over_env_over_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            _write_json(path, '{"baseUrl":"http://from-file:1"}')
            from_env = load_settings(path, environ={ENV_BASE_URL: "http://from-env:2"})
            from_cli = load_settings(path, environ={ENV_BASE_URL: "http://from-env:2"}, base_url="http://from-cli:3")
        self.assertEqual(from_env.base_url, "http://from-env:2")
        self.assertEqual(from_cli.base_url, "http://from-cli:3")

    def test_floors_apply(self):
        settings = load_settings(environ={}, refresh_seconds=0.05, request_timeout_seconds=0.01)
        self.assertEqual(settings.refresh_seconds, 0.2)
        self.assertEqual(settings.request_timeout_seconds, 0.1)


if __name__ == "__main__":
    unittest.main()
