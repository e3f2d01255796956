# imgtrans/translator_backends/base.py
from abc import ABC, abstractmethod
from typing import Dict, Optional


class BaseTranslator(ABC):
    # user facing code -> engine tag; unknown codes fall back in the invoker
    lang_map: Dict[str, str] = {}

    @abstractmethod
    def translate(self, text: str, source_tag: Optional[str], target_tag: str) -> str:
        """Translate one string. ``source_tag`` is None when the engine should detect it."""
        pass

    def close(self) -> None:
        pass
