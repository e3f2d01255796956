# imgtrans/ocr_backends/easyocr_backend.py
from __future__ import annotations

from typing import Dict, Any
import io
import logging
import warnings

import numpy as np
from PIL import Image

import easyocr

from ..exceptions import RecognizerError
from ..models import RecognizedRegion, RecognizerOutput, StructuredBlocks
from ..utils import map_language
from .base import BaseOCREngine

logger = logging.getLogger("imgtrans")


# -----------------------------
# Helpers
# -----------------------------

def _as_bool(x, default=True) -> bool:
    if isinstance(x, bool):
        return x
    if isinstance(x, str):
        s = x.strip().lower()
        if s in ("true", "1", "yes", "y", "on"):
            return True
        if s in ("false", "0", "no", "n", "off"):
            return False
    return default


# EasyOCR names differ from the two letter codes for Chinese
EASYOCR_LANG_MAP = {
    "zh": "ch_sim",
    "ja": "ja",
    "ko": "ko",
    "en": "en",
    "fr": "fr",
    "de": "de",
    "es": "es",
    "it": "it",
    "pt": "pt",
    "ru": "ru",
    "vi": "vi",
}


def _easyocr_langs(language: str) -> list:
    lang = map_language(language, EASYOCR_LANG_MAP, "en")
    # CJK models in EasyOCR must be paired with English
    return [lang] if lang == "en" else [lang, "en"]


def _torch_cuda_available() -> bool:
    try:
        import torch
        return bool(torch.cuda.is_available())
    except ImportError:
        return False


def _to_rgb_array(image: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(image)) as im:
        return np.array(im.convert("RGB"))


# -----------------------------
# Backend
# -----------------------------

class EasyOCREngine(BaseOCREngine):
    """
    EasyOCR adapter. Detections come back as quadrilaterals with a 0..1
    score, which is rescaled to the 0..100 range used everywhere else.

    Supported kwargs (all optional):
      - gpu / use_gpu: bool (defaults to True if CUDA is available, else False)
      - model_storage_directory: str
      - download_enabled: bool (default True)
      - decoder: "greedy" | "beamsearch", beam_width
    """

    def __init__(self, language: str = "en", **kwargs: Dict[str, Any]):
        super().__init__(language)
        k = dict(kwargs)

        want_gpu = _as_bool(k.pop("gpu", k.pop("use_gpu", True)), True)
        use_gpu = bool(want_gpu and _torch_cuda_available())

        decoder = str(k.pop("decoder", "greedy")).strip().lower()
        self._decoder = decoder if decoder in ("greedy", "beamsearch") else "greedy"
        try:
            beam_width = int(k.pop("beam_width", 10))
        except (TypeError, ValueError):
            beam_width = 10
        self._beam_width = max(1, min(beam_width, 20))

        try:
            self.reader = easyocr.Reader(
                _easyocr_langs(language),
                gpu=use_gpu,
                model_storage_directory=k.pop("model_storage_directory", None),
                download_enabled=_as_bool(k.pop("download_enabled", True), True),
                verbose=False,
            )
        except Exception as e:  # model download or load failure
            raise RecognizerError(f"EasyOCR could not load its models, {e}", step="Initializing OCR") from e

    def recognize(self, image: bytes) -> RecognizerOutput:
        rgb = _to_rgb_array(image)
        with np.errstate(over="ignore", invalid="ignore"):
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=RuntimeWarning)
                detections = self.reader.readtext(
                    rgb,
                    detail=1,
                    paragraph=False,
                    decoder=self._decoder,
                    beamWidth=self._beam_width,
                )

        regions = []
        for det in detections or []:
            try:
                box, text, score = det
            except ValueError:
                logger.debug("Skipping malformed EasyOCR detection, %r", det)
                continue
            regions.append(RecognizedRegion(
                text=str(text),
                polygon=[[float(p[0]), float(p[1])] for p in box],
                confidence=float(score) * 100.0,
            ))
        return StructuredBlocks(regions)
