"""Tests for environment-driven settings."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from codecraft.config import (
    DEFAULT_SCAFFOLD_TRIGGERS,
    PRODUCTION_WORKSPACE_DIR,
    load_settings,
)


def _load(env: dict[str, str]):
    # An empty .env path keeps a developer's local .env out of the test.
    with tempfile.TemporaryDirectory() as tmpdir:
        env_file = Path(tmpdir) / ".env"
        env_file.write_text("", encoding="utf-8")
        with mock.patch.dict(os.environ, env, clear=True):
            return load_settings(env_file=env_file)


class LoadSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = _load({})
        self.assertEqual(settings.environment, "development")
        self.assertEqual(settings.port, 5000)
        self.assertEqual(settings.storage_backend, "local")
        self.assertEqual(settings.scaffold_triggers, DEFAULT_SCAFFOLD_TRIGGERS)
        self.assertEqual(settings.delete_grace_seconds, 1.0)
        self.assertEqual(settings.workspace_dir.name, "workspace")

    def test_production_uses_tmp_workspace(self) -> None:
        settings = _load({"NODE_ENV": "production"})
        self.assertTrue(settings.is_production)
        self.assertEqual(settings.workspace_dir, PRODUCTION_WORKSPACE_DIR.resolve())

    def test_explicit_values(self) -> None:
        settings = _load(
            {
                "CODECRAFT_WORKSPACE": "/srv/ws",
                "PORT": "8080",
                "CODECRAFT_STORAGE": "blob",
                "WORKSPACE_READ_WRITE_TOKEN": " tok ",
                "CODECRAFT_SCAFFOLD_TRIGGERS": "create-react-app, create vite ,,create-react-app",
                "CODECRAFT_DELETE_GRACE_SECONDS": "0.25",
                "GEMINI_API_KEY": "g",
            }
        )
        self.assertEqual(settings.port, 8080)
        self.assertEqual(settings.storage_backend, "blob")
        self.assertEqual(settings.blob_token, "tok")
        self.assertEqual(settings.scaffold_triggers, ("create-react-app", "create vite"))
        self.assertEqual(settings.delete_grace_seconds, 0.25)
        self.assertEqual(settings.gemini_api_key, "g")
        self.assertEqual(settings.workspace_dir, Path("/srv/ws").resolve())

    def test_dotenv_values_do_not_override_environment(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            env_file = Path(tmpdir) / ".env"
            env_file.write_text("PORT=7000\nGEMINI_API_KEY=from-file\n", encoding="utf-8")
            with mock.patch.dict(os.environ, {"PORT": "9000"}, clear=True):
                settings = load_settings(env_file=env_file)
        self.assertEqual(settings.port, 9000)
        self.assertEqual(settings.gemini_api_key, "from-file")

    def test_rejects_bad_values(self) -> None:
        for env in (
            {"CODECRAFT_STORAGE": "s3"},
            {"PORT": "eighty"},
            {"CODECRAFT_DELETE_GRACE_SECONDS": "-1"},
        ):
            with self.subTest(env=env):
                with self.assertRaises(ValueError):
                    _load(env)


if __name__ == "__main__":
    unittest.main()
