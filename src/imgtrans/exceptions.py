# imgtrans/exceptions.py
from __future__ import annotations


class ImgTransError(Exception):
    """Base exception for the imgtrans library."""
    pass


class PipelineError(ImgTransError):
    """
    A failure inside one pipeline step.

    The message is always rendered as ``[<step>] <detail>`` so a terminal
    failure can be traced to the step that produced it without a traceback.
    """
    default_step = "Processing"

    def __init__(self, detail: str, step: str | None = None):
        self.step = step or self.default_step
        self.detail = str(detail)
        super().__init__(f"[{self.step}] {self.detail}")

    def with_step(self, step: str) -> "PipelineError":
        """Return a copy of this error retagged with ``step``."""
        return type(self)(self.detail, step=step)


class FetchError(PipelineError):
    """Raised when every image acquisition tier failed."""
    default_step = "Fetching Image"


class RecognizerError(PipelineError):
    """Raised when the recognizer is unavailable or returned nothing usable."""
    default_step = "Running OCR"


class TranslationError(PipelineError):
    """Raised when a translation engine call failed."""
    default_step = "Translating"


class TransportError(PipelineError):
    """Raised when a cross-context message could not be delivered after all retries."""
    default_step = "Transport"


class DeliveryError(ImgTransError):
    """A single delivery attempt failed; the transport may retry it."""
    pass
