# imgtrans/translator_backends/identity_backend.py
from typing import Optional

from .base import BaseTranslator


class IdentityTranslator(BaseTranslator):
    """Echoes the source text. Useful offline and for layout checks."""

    def __init__(self, **kwargs):
        pass

    def translate(self, text: str, source_tag: Optional[str], target_tag: str) -> str:
        return text
