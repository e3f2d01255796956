# src/imgtrans/__init__.py
"""imgtrans, find the images of a page, read their text, translate it and draw it back."""
from . import logger as _logger  # registers the PROGRESS level and Logger.progress
from .config import PipelineConfig
from .document import HtmlDocument
from .exceptions import (
    DeliveryError,
    FetchError,
    ImgTransError,
    PipelineError,
    RecognizerError,
    TranslationError,
    TransportError,
)
from .models import DomainSettings, ImageTask, LineBlock, TaskStatus, TranslatedBlock
from .pipeline import ImagePipeline
from .scheduler import TaskScheduler

__version__ = "0.3.0"

__all__ = [
    "PipelineConfig",
    "HtmlDocument",
    "ImagePipeline",
    "TaskScheduler",
    "DomainSettings",
    "ImageTask",
    "LineBlock",
    "TranslatedBlock",
    "TaskStatus",
    "ImgTransError",
    "PipelineError",
    "FetchError",
    "RecognizerError",
    "TranslationError",
    "TransportError",
    "DeliveryError",
]
