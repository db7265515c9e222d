from __future__ import annotations

import logging
import os
import tempfile
import unittest
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import patch

import pytest

from tests.helpers import ensure_src_path

ROOT = ensure_src_path()

from photolib.core.errors import ErrorCode, get_error_info
from photolib.core.logging import setup_logging
from photolib.core.settings import AppSettings, PipelineConfig, load_settings

pytestmark = pytest.mark.unit


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            s = load_settings()
        self.assertEqual(s.pipeline.batch_size, 5)
        self.assertEqual(s.pipeline.batch_pause_sec, 2.0)
        self.assertEqual(s.pipeline.embed_timeout_sec, 30.0)
        self.assertIsNone(s.admin_token)
        self.assertTrue(s.embed_missing_on_startup)
        self.assertFalse(s.debug)

    def test_env_overrides(self) -> None:
        env = {
            "PHOTOLIB_DATA_DIR": "/srv/photos",
            "PHOTOLIB_BATCH_SIZE": "3",
            "PHOTOLIB_BATCH_PAUSE_SEC": "0",
            "PHOTOLIB_EMBED_TIMEOUT_SEC": "12.5",
            "PHOTOLIB_EMBED_SERVICE_URL": "http://clip:9000",
            "PHOTOLIB_ADMIN_TOKEN": "s3cret",
            "PHOTOLIB_EMBED_MISSING_ON_STARTUP": "false",
            "PHOTOLIB_DEBUG": "1",
        }
        with patch.dict(os.environ, env, clear=True):
            s = load_settings()
        self.assertEqual(s.pipeline.batch_size, 3)
        self.assertEqual(s.pipeline.batch_pause_sec, 0.0)
        self.assertEqual(s.pipeline.embed_timeout_sec, 12.5)
        self.assertEqual(s.service_url, "http://clip:9000")
        self.assertEqual(s.admin_token, "s3cret")
        self.assertFalse(s.embed_missing_on_startup)
        self.assertTrue(s.debug)
        self.assertEqual(s.resolved_db_path, Path("/srv/photos/photolib.sqlite"))
        self.assertEqual(s.resolved_upload_dir, Path("/srv/photos/uploads"))

    def test_invalid_numbers_fall_back(self) -> None:
        defaults = PipelineConfig()
        cases = [
            ("PHOTOLIB_BATCH_SIZE", "five", "batch_size"),
            ("PHOTOLIB_BATCH_SIZE", "0", "batch_size"),
            ("PHOTOLIB_BATCH_PAUSE_SEC", "-1", "batch_pause_sec"),
            ("PHOTOLIB_BATCH_PAUSE_SEC", "inf", "batch_pause_sec"),
            ("PHOTOLIB_EMBED_TIMEOUT_SEC", "0", "embed_timeout_sec"),
            ("PHOTOLIB_HEALTH_TIMEOUT_SEC", "-1", "health_timeout_sec"),
            ("PHOTOLIB_SEARCH_TIMEOUT_SEC", "nan", "search_timeout_sec"),
            ("PHOTOLIB_SEARCH_TIMEOUT_SEC", "soon", "search_timeout_sec"),
        ]
        for name, raw, field in cases:
            with self.subTest(name=name, raw=raw):
                with patch.dict(os.environ, {name: raw}, clear=True):
                    with self.assertLogs("photolib.core.settings", level="WARNING"):
                        s = load_settings()
                self.assertEqual(getattr(s.pipeline, field), getattr(defaults, field))

    def test_invalid_port_falls_back(self) -> None:
        for raw in ("http", "0", "70000"):
            with self.subTest(raw=raw):
                with patch.dict(os.environ, {"PHOTOLIB_PORT": raw}, clear=True):
                    with self.assertLogs("photolib.core.settings", level="WARNING"):
                        s = load_settings()
                self.assertEqual(s.port, 3232)

    def test_explicit_paths_win(self) -> None:
        s = AppSettings(data_dir=Path("/a"), upload_dir=Path("/b"), db_path=Path("/c/db.sqlite"))
        self.assertEqual(s.resolved_upload_dir, Path("/b"))
        self.assertEqual(s.resolved_db_path, Path("/c/db.sqlite"))

    def test_error_info_table(self) -> None:
        self.assertTrue(get_error_info(ErrorCode.EMBED_UNAVAILABLE).retryable)
        self.assertFalse(get_error_info(ErrorCode.FILE_NOT_FOUND).retryable)
        for code in ErrorCode:
            with self.subTest(code=code):
                info = get_error_info(code)
                self.assertTrue(info.message)
                self.assertTrue(info.hint)


class TestLogging(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_level = self.root.level

    def tearDown(self) -> None:
        for handler in list(self.root.handlers):
            if handler not in self.saved_handlers:
                self.root.removeHandler(handler)
                handler.close()
        self.root.setLevel(self.saved_level)
        self.temp_dir.cleanup()

    def file_handlers(self, log_path: Path) -> list:
        return [
            h
            for h in self.root.handlers
            if isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(log_path)
        ]

    def test_setup_is_idempotent_per_file(self) -> None:
        log_dir = Path(self.temp_dir.name) / "logs"
        first = setup_logging(log_dir)
        second = setup_logging(log_dir)
        self.assertEqual(first, log_dir / "photolib.log")
        self.assertEqual(first, second)
        self.assertEqual(len(self.file_handlers(first)), 1)
        self.assertEqual(self.root.level, logging.INFO)
        self.assertEqual(logging.getLogger("urllib3").level, logging.WARNING)

    def test_debug_level(self) -> None:
        log_path = setup_logging(Path(self.temp_dir.name), debug=True)
        self.assertEqual(self.root.level, logging.DEBUG)
        logging.getLogger("photolib.test").debug("[EMBED_JOB] done image_id=1")
        for handler in self.file_handlers(log_path):
            handler.flush()
        self.assertIn("[EMBED_JOB] done image_id=1", log_path.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
