from __future__ import annotations

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from imgtrans.cli import (
    OCR_BACKEND_ALIASES,
    TRANSLATOR_ALIASES,
    _normalize_backend_alias,
    _normalize_output_path,
    _parse_backend_kwargs,
    main,
)
from imgtrans.config import PipelineConfig


class TestBackendOptions(unittest.TestCase):
    def test_kwargs_syntaxes(self) -> None:
        expected = {"psm": 6, "oem": 1}
        self.assertEqual(_parse_backend_kwargs('{"psm": 6, "oem": 1}'), expected)
        self.assertEqual(_parse_backend_kwargs("'{\"psm\": 6, \"oem\": 1}'"), expected)
        self.assertEqual(_parse_backend_kwargs("{'psm': 6, 'oem': 1}"), expected)
        self.assertEqual(_parse_backend_kwargs("psm=6;oem=1"), expected)
        self.assertEqual(_parse_backend_kwargs("vertical=true, tesseract-cmd=/opt/tess"),
                         {"vertical": True, "tesseract_cmd": "/opt/tess"})
        self.assertEqual(_parse_backend_kwargs("{}"), {})

    def test_unparseable_kwargs(self) -> None:
        with self.assertRaises(SystemExit):
            _parse_backend_kwargs("nonsense")

    def test_aliases(self) -> None:
        self.assertEqual(
            _normalize_backend_alias("Tesseract", OCR_BACKEND_ALIASES),
            "imgtrans.ocr_backends.tesseract_backend.TesseractOCREngine",
        )
        self.assertEqual(
            _normalize_backend_alias("identity", TRANSLATOR_ALIASES),
            "imgtrans.translator_backends.identity_backend.IdentityTranslator",
        )
        self.assertEqual(_normalize_backend_alias("my.module.Engine", OCR_BACKEND_ALIASES), "my.module.Engine")


class TestPaths(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.tmp, ignore_errors=True)

    def test_output_path(self) -> None:
        self.assertEqual(_normalize_output_path(self.tmp / "out", "page.html"), self.tmp / "out.html")
        inside = _normalize_output_path(self.tmp, "https://example.com/read/chapter-1")
        self.assertEqual(inside.parent, self.tmp)
        self.assertTrue(inside.name.startswith("chapter-1-translated"))
        self.assertEqual(inside.suffix, ".html")

    def test_settings_command(self) -> None:
        path = self.tmp / "settings.json"
        with self.assertRaises(SystemExit) as ctx:
            main(["settings", "example.com", "-s", "zh", "--auto", "--settings-path", str(path)])
        self.assertEqual(ctx.exception.code, 0)
        data = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(data["example.com"], {"source_lang": "zh", "target_lang": "en", "auto_run": True})

        with self.assertRaises(SystemExit):
            main(["settings", "example.com", "--no-auto", "--settings-path", str(path)])
        data = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(data["example.com"], {"source_lang": "zh", "target_lang": "en", "auto_run": False})


class TestConfig(unittest.TestCase):
    def test_from_dict(self) -> None:
        cfg = PipelineConfig.from_dict({
            "max_concurrent": None,
            "error_log_path": "logs/errors.jsonl",
            "log_performance": True,
        })
        self.assertEqual(cfg.max_concurrent, 1)
        self.assertEqual(cfg.error_log_path, Path("logs/errors.jsonl"))
        self.assertEqual(cfg.performance_log_path, Path("logs/imgtrans_performance_log.jsonl"))
        self.assertEqual(cfg.to_dict()["error_log_path"], "logs/errors.jsonl")

    def test_invalid_values(self) -> None:
        with self.assertRaises(ValueError):
            PipelineConfig.from_dict({"max_concurrent": 0})
        with self.assertRaises(ValueError):
            PipelineConfig.from_dict({"render_mode": "svg"})


if __name__ == "__main__":
    unittest.main()
