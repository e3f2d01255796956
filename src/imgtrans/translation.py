# src/imgtrans/translation.py
from __future__ import annotations

import logging
from typing import List, Optional

from .exceptions import PipelineError, TranslationError
from .models import LineBlock, TranslatedBlock
from .translator_backends.base import BaseTranslator
from .utils import DEFAULT_TRANSLATION_TAG, map_language

logger = logging.getLogger("imgtrans")


class TranslationInvoker:
    """Calls the translator once per block, in block order."""

    def __init__(self, translator: BaseTranslator):
        self.translator = translator

    def tags(self, source_lang: Optional[str], target_lang: Optional[str]):
        table = getattr(self.translator, "lang_map", {}) or {}
        source_tag = map_language(source_lang, table, None)
        target_tag = map_language(target_lang, table, DEFAULT_TRANSLATION_TAG)
        return source_tag, target_tag

    def translate(self, text: str, source_lang: Optional[str], target_lang: Optional[str]) -> str:
        source_tag, target_tag = self.tags(source_lang, target_lang)
        try:
            return self.translator.translate(text, source_tag, target_tag)
        except PipelineError:
            raise
        except Exception as e:
            raise TranslationError(str(e) or type(e).__name__) from e

    def translate_blocks(
        self, blocks: List[LineBlock], source_lang: Optional[str], target_lang: Optional[str]
    ) -> List[TranslatedBlock]:
        out: List[TranslatedBlock] = []
        for block in blocks:
            translated = self.translate(block.text, source_lang, target_lang)
            out.append(TranslatedBlock.from_block(block, translated))
        if out:
            logger.debug(
                "Translations (first 10), %s",
                [(b.text, b.translated_text) for b in out[:10]],
            )
        return out
