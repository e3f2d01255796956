# imgtrans/ocr_backends/ocrspace_backend.py
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import httpx

from ..exceptions import RecognizerError
from ..models import RecognizedLine, RecognizedWord, RecognizerOutput, StructuredLines
from ..normalizer import choose_variant
from ..utils import as_float, map_language, to_data_uri
from .base import BaseOCREngine

logger = logging.getLogger("imgtrans")

OCR_SPACE_URL = "https://api.ocr.space/parse/image"

OCR_SPACE_LANG_MAP = {
    "en": "eng",
    "fr": "fre",
    "it": "ita",
    "es": "spa",
    "ja": "jpn",
    "de": "ger",
    "pt": "por",
    "ru": "rus",
    "zh": "chs",  # Simplified
}


def _media_type(image: bytes) -> str:
    if image[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


def parse_ocrspace_response(data: Dict[str, Any]) -> RecognizerOutput:
    """
    Turn an OCR.space JSON answer into structured lines. Overlays whose
    lines carry no ``LineText`` fall back to one record per word.
    """
    if data.get("IsErroredOnProcessing"):
        messages = data.get("ErrorMessage") or ["OCR API Error"]
        if isinstance(messages, str):
            messages = [messages]
        raise RecognizerError(messages[0])

    results = data.get("ParsedResults") or []
    overlay = (results[0] or {}).get("TextOverlay") if results else None
    if not overlay:
        return StructuredLines([])

    lines, all_words = [], []
    for line in overlay.get("Lines") or []:
        words = [
            RecognizedWord(
                text=str(w.get("WordText") or ""),
                left=as_float(w.get("Left"), 0.0),
                top=as_float(w.get("Top"), 0.0),
                width=as_float(w.get("Width"), 0.0),
                height=as_float(w.get("Height"), 0.0),
            )
            for w in line.get("Words") or []
        ]
        all_words.extend(words)
        if words:
            lines.append(RecognizedLine(text=str(line.get("LineText") or "").strip(), words=words))
    if not any(line.text for line in lines):
        lines = []
    return choose_variant(lines=lines, words=all_words)


class OCRSpaceEngine(BaseOCREngine):
    """
    OCR.space HTTP API (engine 2, overlay mode). The API key comes from
    ``api_key`` or the ``OCR_SPACE_KEY`` environment variable.
    """

    def __init__(self, language: str = "en", api_key: Optional[str] = None,
                 endpoint: str = OCR_SPACE_URL, timeout: float = 60.0,
                 client: Optional[httpx.Client] = None, **kwargs):
        super().__init__(language)
        self.api_key = api_key or os.getenv("OCR_SPACE_KEY")
        if not self.api_key:
            raise RecognizerError("OCR_SPACE_KEY is not set", step="Initializing OCR")
        self.endpoint = endpoint
        self.lang = map_language(language, OCR_SPACE_LANG_MAP, "eng")
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def recognize(self, image: bytes) -> RecognizerOutput:
        form = {
            "base64Image": to_data_uri(image, _media_type(image)),
            "language": self.lang,
            "isOverlayRequired": "true",
            "scale": "true",
            "OCREngine": "2",
            "detectOrientation": "true",
        }
        try:
            resp = self.client.post(self.endpoint, headers={"apikey": self.api_key}, data=form)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RecognizerError(f"OCR API request failed, {e}") from e

        output = parse_ocrspace_response(data)
        logger.debug("OCR.space returned, %s", type(output).__name__)
        return output

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
