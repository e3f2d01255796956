# imgtrans/translator_backends/deepl_backend.py
from __future__ import annotations

import logging
import os
from typing import Optional

import httpx

from ..exceptions import TranslationError
from .base import BaseTranslator

logger = logging.getLogger("imgtrans")

DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"


def _format_http_error(resp: httpx.Response) -> str:
    detail = ""
    try:
        data = resp.json()
        if isinstance(data, dict):
            detail = str(data.get("message") or data.get("detail") or "")
    except ValueError:
        detail = resp.text.strip()

    detail = detail.strip()
    if detail:
        return f"DeepL API Error: {resp.status_code}: {detail}"
    return f"DeepL API Error: {resp.status_code}"


class DeepLTranslator(BaseTranslator):
    """
    DeepL REST API. The key comes from ``api_key`` or ``DEEPL_AUTH_KEY``;
    keys ending in ``:fx`` belong to the free tier and use its endpoint.
    """

    lang_map = {
        "en": "EN",
        "fr": "FR",
        "it": "IT",
        "es": "ES",
        "ja": "JA",
        "de": "DE",
        "pt": "PT",
        "ru": "RU",
        "zh": "ZH",
    }

    def __init__(self, api_key: Optional[str] = None, endpoint: Optional[str] = None,
                 timeout: float = 30.0, client: Optional[httpx.Client] = None, **kwargs):
        self.api_key = api_key or os.getenv("DEEPL_AUTH_KEY")
        if not self.api_key:
            raise TranslationError("DEEPL_AUTH_KEY is not set", step="Loading Translator")
        if endpoint is None:
            endpoint = DEEPL_FREE_URL if self.api_key.endswith(":fx") else "https://api.deepl.com/v2/translate"
        self.endpoint = endpoint
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def translate(self, text: str, source_tag: Optional[str], target_tag: str) -> str:
        payload = {"text": [text], "target_lang": target_tag}
        if source_tag:
            payload["source_lang"] = source_tag
        headers = {
            "Authorization": f"DeepL-Auth-Key {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = self.client.post(self.endpoint, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TranslationError(f"DeepL request failed, {e}") from e

        if resp.status_code >= 400:
            raise TranslationError(_format_http_error(resp))

        try:
            translations = resp.json().get("translations") or []
        except ValueError as e:
            raise TranslationError("DeepL answered with invalid JSON") from e
        if len(translations) != 1:
            raise TranslationError("Translation count mismatch")
        return str(translations[0].get("text") or "")

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
