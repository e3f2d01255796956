# imgtrans/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class TaskStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.FAILED)


class FetchTier(str, Enum):
    REFERRER_SPOOFED = "referrer-spoofed"
    DIRECT = "direct"
    RELAYED = "relayed"


@dataclass(frozen=True)
class BBox:
    """Axis aligned box in native image pixels."""
    x0: float
    y0: float
    x1: float
    y1: float

    @classmethod
    def from_ltwh(cls, left: float, top: float, width: float, height: float) -> "BBox":
        return cls(left, top, left + width, top + height)

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    @property
    def is_degenerate(self) -> bool:
        return not (self.x1 > self.x0 and self.y1 > self.y0)

    def union(self, other: "BBox") -> "BBox":
        return BBox(
            min(self.x0, other.x0),
            min(self.y0, other.y0),
            max(self.x1, other.x1),
            max(self.y1, other.y1),
        )

    def scaled(self, sx: float, sy: float) -> "BBox":
        return BBox(self.x0 * sx, self.y0 * sy, self.x1 * sx, self.y1 * sy)


@dataclass(frozen=True)
class LineBlock:
    """Normalized unit of recognized text, ready for translation."""
    text: str
    confidence: float
    bbox: Optional[BBox]
    is_vertical: bool = False


@dataclass(frozen=True)
class TranslatedBlock(LineBlock):
    translated_text: str = ""

    @classmethod
    def from_block(cls, block: LineBlock, translated_text: str) -> "TranslatedBlock":
        return cls(
            text=block.text,
            confidence=block.confidence,
            bbox=block.bbox,
            is_vertical=block.is_vertical,
            translated_text=translated_text,
        )


@dataclass(frozen=True)
class FetchResult:
    content: bytes
    tier: FetchTier
    url: str


# --- Recognizer output ---
# One cell of a tabular recognizer dump (Tesseract TSV style).
@dataclass
class RawRecognitionRow:
    page_num: int
    block_num: int
    par_num: int
    line_num: int
    word_num: int
    left: float
    top: float
    width: float
    height: float
    conf: float
    text: str
    level: int = 5

    @property
    def group_key(self) -> tuple:
        return (self.page_num, self.block_num, self.par_num, self.line_num)


@dataclass
class RecognizedWord:
    text: str
    left: float
    top: float
    width: float
    height: float
    confidence: Optional[float] = None


@dataclass
class RecognizedLine:
    text: str
    words: List[RecognizedWord] = field(default_factory=list)
    confidence: Optional[float] = None


@dataclass
class RecognizedRegion:
    """A coarse detection: text plus an arbitrary polygon."""
    text: str
    polygon: List[List[float]]
    confidence: Optional[float] = None


@dataclass
class StructuredLines:
    lines: List[RecognizedLine]


@dataclass
class StructuredWords:
    words: List[RecognizedWord]


@dataclass
class StructuredBlocks:
    blocks: List[RecognizedRegion]


@dataclass
class TabularFallback:
    """Column oriented table, e.g. ``pytesseract.image_to_data(output_type=Output.DICT)``."""
    columns: Dict[str, List[Any]]


RecognizerOutput = Union[StructuredLines, StructuredWords, StructuredBlocks, TabularFallback]


# --- Task and result types ---
@dataclass
class ImageTask:
    """One candidate image found in a document. Owned by the scheduler."""
    task_id: int
    element: Any
    src: str
    page_url: str
    source_lang: str
    target_lang: str
    status: TaskStatus = TaskStatus.PENDING
    wrapper: Any = None
    indicator: Any = None
    error: Optional[str] = None
    no_text: bool = False


@dataclass
class RenderedRegion:
    left: float
    top: float
    width: float
    height: float
    font_size: float
    text: str
    is_vertical: bool = False


@dataclass
class Overlay:
    """What the renderer attached to the host element."""
    mode: str
    regions: List[RenderedRegion]
    image_bytes: Optional[bytes] = None
    layer: Any = None


@dataclass
class ProcessResult:
    """Response of the execution stage for one PROCESS_IMAGE message."""
    success: bool
    blocks: List[TranslatedBlock] = field(default_factory=list)
    img_width: int = 0
    img_height: int = 0
    image_bytes: Optional[bytes] = None
    error: Optional[str] = None
    fetch_tier: Optional[FetchTier] = None
    dropped: Dict[str, int] = field(default_factory=dict)
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def no_text(self) -> bool:
        return self.success and not self.blocks


@dataclass
class DomainSettings:
    source_lang: str = "ja"
    target_lang: str = "en"
    auto_run: bool = False
