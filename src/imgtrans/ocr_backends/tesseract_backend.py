# imgtrans/ocr_backends/tesseract_backend.py
from __future__ import annotations

from typing import Dict, Any
import io
import os
import platform
import shutil
from pathlib import Path

from PIL import Image
import pytesseract as pt

from ..exceptions import RecognizerError
from ..models import RecognizerOutput, TabularFallback
from ..utils import as_int, map_language
from .base import BaseOCREngine


def resolve_tesseract_cmd() -> str | None:
    # 1) explicit env override
    cmd = os.getenv("TESSERACT_CMD")
    if cmd and Path(cmd).exists():
        return cmd

    # 2) look on PATH
    cmd = shutil.which("tesseract")
    if cmd:
        return cmd

    # 3) common fallbacks by OS
    system = platform.system()
    if system == "Windows":
        candidates = [
            r"C:\Program Files\Tesseract-OCR\tesseract.exe",
            r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
        ]
    elif system == "Darwin":  # macOS
        candidates = [
            "/opt/homebrew/bin/tesseract",   # Apple Silicon Homebrew
            "/usr/local/bin/tesseract",      # Intel Homebrew/MacPorts
        ]
    else:  # Linux and others
        candidates = [
            "/usr/bin/tesseract",            # apt/yum default
            "/usr/local/bin/tesseract",      # source install
            "/snap/bin/tesseract",           # snap
        ]

    for p in candidates:
        if Path(p).exists():
            return p
    return None


# Map user facing codes to Tesseract's traineddata names
TESS_LANG_MAP = {
    "en": "eng",
    "fr": "fra",
    "it": "ita",
    "es": "spa",
    "ja": "jpn",
    "de": "deu",
    "pt": "por",
    "ru": "rus",
    "zh": "chi_sim",
    "ko": "kor",
    "vi": "vie",
}

# Vertical traineddata for scripts commonly set top to bottom
TESS_VERTICAL_MAP = {
    "ja": "jpn_vert",
    "zh": "chi_sim_vert",
}


class TesseractOCREngine(BaseOCREngine):
    """
    Pytesseract-based backend. Produces the flat TSV table
    (``image_to_data``), which the normalizer groups into lines.

    Kwargs supported (all optional):
      - tesseract_cmd: full path to tesseract binary
      - tessdata_prefix: path to tessdata directory
      - oem: 0..3 (default 3 = LSTM)
      - psm: page segmentation mode (default 11 = sparse text, suits artwork)
      - vertical: bool, also load the vertical model for ja/zh (default False)
      - extra_config: str of extra flags (appended to config string)
    """

    def __init__(self, language: str = "en", **kwargs: Dict[str, Any]):
        super().__init__(language)
        k = dict(kwargs)  # don't mutate caller's dict

        tesseract_cmd = k.pop("tesseract_cmd", None) or k.pop("tesseract_path", None) or resolve_tesseract_cmd()
        if tesseract_cmd:
            pt.pytesseract.tesseract_cmd = str(tesseract_cmd)

        tessdata_prefix = k.pop("tessdata_prefix", None)
        if tessdata_prefix:
            os.environ["TESSDATA_PREFIX"] = str(tessdata_prefix)

        lang = map_language(language, TESS_LANG_MAP, "eng")
        if k.pop("vertical", False) and language in TESS_VERTICAL_MAP:
            lang = f"{lang}+{TESS_VERTICAL_MAP[language]}"
        self.lang = lang

        oem = as_int(k.pop("oem", 3), 3)
        psm = as_int(k.pop("psm", 11), 11)
        extra_cfg = str(k.pop("extra_config", "")).strip()

        cfg_parts = [f"--oem {oem}", f"--psm {psm}"]
        if extra_cfg:
            cfg_parts.append(extra_cfg)
        self._config = " ".join(cfg_parts)

        try:
            pt.get_tesseract_version()
        except (pt.TesseractNotFoundError, OSError) as e:
            raise RecognizerError(f"Tesseract is not available, {e}", step="Initializing OCR") from e

    def recognize(self, image: bytes) -> RecognizerOutput:
        with Image.open(io.BytesIO(image)) as im:
            pil_im = im.convert("RGB")
        try:
            data = pt.image_to_data(pil_im, lang=self.lang, config=self._config, output_type=pt.Output.DICT)
        except pt.TesseractError as e:
            raise RecognizerError(f"Tesseract failed, {e}") from e
        return TabularFallback(columns=data)
