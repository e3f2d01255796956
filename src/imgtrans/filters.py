# src/imgtrans/filters.py
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .models import LineBlock

DEFAULT_MIN_CONFIDENCE = 30.0

# drop reasons
LOW_CONFIDENCE = "low_confidence"
EMPTY_TEXT = "empty_text"
BAD_GEOMETRY = "bad_geometry"


@dataclass
class FilterStats:
    """Counts of dropped blocks per reason, for diagnostics only."""
    kept: int = 0
    dropped: Dict[str, int] = field(default_factory=dict)

    @property
    def total_dropped(self) -> int:
        return sum(self.dropped.values())


def _drop_reason(block: LineBlock, min_confidence: float) -> str | None:
    if not (block.text or "").strip():
        return EMPTY_TEXT
    if block.bbox is None or block.bbox.is_degenerate:
        return BAD_GEOMETRY
    if block.confidence < min_confidence:
        return LOW_CONFIDENCE
    return None


def filter_blocks(
    blocks: List[LineBlock], min_confidence: float = DEFAULT_MIN_CONFIDENCE
) -> Tuple[List[LineBlock], FilterStats]:
    """
    Keep blocks with usable text, a non-degenerate box and a confidence at
    or above ``min_confidence``. Order is preserved. Zero survivors is a
    valid outcome, not an error.
    """
    kept: List[LineBlock] = []
    reasons: Counter = Counter()
    for block in blocks:
        reason = _drop_reason(block, min_confidence)
        if reason:
            reasons[reason] += 1
        else:
            kept.append(block)
    return kept, FilterStats(kept=len(kept), dropped=dict(reasons))
