# tests/test_logging_config.py

"""Tests for per-run logging setup."""

import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from marketlens.config.logging_config import (
    prune_run_logs,
    resolve_level,
    setup_logging,
)


class TestResolveLevel(unittest.TestCase):
    def test_names_and_numbers(self) -> None:
        self.assertEqual(resolve_level("info"), logging.INFO)
        self.assertEqual(resolve_level(" DEBUG "), logging.DEBUG)
        self.assertEqual(resolve_level(logging.ERROR), logging.ERROR)

    def test_unknown_falls_back(self) -> None:
        self.assertEqual(resolve_level("chatty"), logging.WARNING)
        self.assertEqual(resolve_level(None, logging.INFO), logging.INFO)


class TestPruneRunLogs(unittest.TestCase):
    def test_keeps_newest(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logs = Path(tmp)
            for day in range(1, 5):
                (logs / f"run_2026010{day}_120000.log").write_text("x")
            (logs / "notes.txt").write_text("keep me")

            self.assertEqual(prune_run_logs(logs, 2), 2)
            self.assertEqual(
                sorted(p.name for p in logs.iterdir()),
                [
                    "notes.txt",
                    "run_20260103_120000.log",
                    "run_20260104_120000.log",
                ],
            )


class TestSetupLogging(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.logs_dir = Path(self._tmp.name) / "logs"
        self.logger = logging.getLogger("marketlens")
        self._saved = list(self.logger.handlers)
        self.logger.handlers.clear()

    def tearDown(self) -> None:
        for handler in self.logger.handlers:
            handler.close()
        self.logger.handlers[:] = self._saved
        self._tmp.cleanup()

    def _console(self) -> logging.Handler:
        return next(
            h for h in self.logger.handlers
            if not isinstance(h, logging.FileHandler)
        )

    def test_creates_run_log(self) -> None:
        log_file = setup_logging(self.logs_dir)

        self.assertEqual(log_file.parent, self.logs_dir)
        self.assertTrue(log_file.name.startswith("run_"))
        self.assertTrue(log_file.exists())
        self.assertEqual(len(self.logger.handlers), 2)
        self.assertEqual(self._console().level, logging.WARNING)

    def test_adapter_debug_reaches_file_only(self) -> None:
        log_file = setup_logging(self.logs_dir)
        logging.getLogger("marketlens.scraper.coupang").debug("lease granted")
        for handler in self.logger.handlers:
            handler.flush()
        self.assertIn("lease granted", log_file.read_text(encoding="utf-8"))

    def test_third_party_loggers_quietened(self) -> None:
        setup_logging(self.logs_dir)
        self.assertEqual(
            logging.getLogger("playwright").level, logging.WARNING,
        )
        self.assertEqual(logging.getLogger("asyncio").level, logging.WARNING)

    def test_second_call_only_adjusts_console(self) -> None:
        first = setup_logging(self.logs_dir)
        second = setup_logging(self.logs_dir, console_level=logging.DEBUG)

        self.assertEqual(first, second)
        self.assertEqual(len(self.logger.handlers), 2)
        self.assertEqual(self._console().level, logging.DEBUG)

    @patch("marketlens.config.logging_config.Settings.LOG_RETENTION", 2)
    def test_old_runs_pruned_on_start(self) -> None:
        self.logs_dir.mkdir(parents=True)
        for day in range(1, 4):
            (self.logs_dir / f"run_2000010{day}_000000.log").write_text("old")

        log_file = setup_logging(self.logs_dir)

        runs = sorted(p.name for p in self.logs_dir.glob("run_*.log"))
        self.assertEqual(runs, ["run_20000103_000000.log", log_file.name])
