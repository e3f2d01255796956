# imgtrans/ocr_backends/base.py
from abc import ABC, abstractmethod

from ..models import RecognizerOutput


class BaseOCREngine(ABC):
    """
    One recognizer instance serves one recognition language. The resource
    manager builds a new instance when the language changes and calls
    ``close()`` on the old one first.
    """

    def __init__(self, language: str = "en", **kwargs):
        self.language = language

    @abstractmethod
    def recognize(self, image: bytes) -> RecognizerOutput:
        """Return recognized text with geometry for one encoded image."""
        pass

    def close(self) -> None:
        pass
