"""
Tests for CLI entry points.

These tests focus on:
- Basic CLI argument validation (a sub-command is required)
- Commands that must fail cleanly without credentials
- Printing the remap table from a temporary file
  (to avoid touching real configuration during tests)
"""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from icsuntis.cli import main
from icsuntis.feed import FeedResult, FeedState


class TestCLI(unittest.TestCase):
    def test_cli_requires_command(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main([])
        self.assertNotEqual(ctx.exception.code, 0)

    def test_export_without_credentials_fails(self) -> None:
        with tempfile.TemporaryDirectory() as d, mock.patch.dict(os.environ, {}, clear=True):
            out = Path(d) / "out.ics"
            with self.assertRaises(SystemExit) as ctx:
                main(["export", str(out)])
            self.assertEqual(ctx.exception.code, 1)
            self.assertFalse(out.exists())

    def test_export_writes_calendar_file(self) -> None:
        env = {
            "WEBUNTIS_SERVER": "demo.webuntis.com",
            "WEBUNTIS_SCHOOL": "demo",
            "WEBUNTIS_USERNAME": "max",
            "WEBUNTIS_PASSWORD": "s3cret",
        }
        payload = b"BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n"
        result = FeedResult(FeedState.SERVE, 200, payload=payload, event_count=0)
        with tempfile.TemporaryDirectory() as d, mock.patch.dict(os.environ, env, clear=True):
            out = Path(d) / "out" / "timetable.ics"
            with mock.patch("icsuntis.cli.FeedAssembler") as assembler_cls:
                assembler_cls.return_value.get_calendar.return_value = result
                with self.assertRaises(SystemExit) as ctx:
                    main(["export", str(out)])
            self.assertEqual(ctx.exception.code, 0)
            self.assertEqual(out.read_bytes(), payload)

    def test_remap_command(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "remap.json"
            p.write_text(json.dumps({"subjects": {"mat_GK_11": "Mathematik GK"}}), encoding="utf-8")
            with mock.patch.dict(os.environ, {"REMAP_FILE": str(p)}):
                with self.assertRaises(SystemExit) as ctx:
                    main(["remap"])
            self.assertEqual(ctx.exception.code, 0)


if __name__ == "__main__":
    unittest.main()
