# src/imgtrans/normalizer.py
"""
Turns recognizer output into an ordered list of ``LineBlock``.

Every recognizer backend returns one of four variants (see ``models``).
Each variant has its own conversion function; ``normalize`` only picks
the function for the variant it was handed and sorts the result into
reading order.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence

from .models import (
    BBox,
    LineBlock,
    RawRecognitionRow,
    RecognizedLine,
    RecognizedRegion,
    RecognizedWord,
    RecognizerOutput,
    StructuredBlocks,
    StructuredLines,
    StructuredWords,
    TabularFallback,
)
from .utils import as_float, as_int

logger = logging.getLogger("imgtrans")

REQUIRED_COLUMNS = (
    "page_num", "block_num", "par_num", "line_num", "word_num",
    "left", "top", "width", "height", "conf", "text",
)
# Tesseract levels: 1 page, 2 block, 3 paragraph, 4 line, 5 word
LEAF_LEVEL = 5

# Structured records without a score are trusted as is
MISSING_CONFIDENCE = 100.0


def _clamp_conf(value: Optional[float]) -> float:
    if value is None:
        return MISSING_CONFIDENCE
    return max(0.0, min(100.0, float(value)))


def _is_vertical(bbox: BBox) -> bool:
    return bbox.height > bbox.width * 2


def reading_order_key(block: LineBlock):
    if block.bbox is None:
        return (math.inf, math.inf)
    return (block.bbox.y0, block.bbox.x0)


def choose_variant(
    *,
    lines: Optional[List[RecognizedLine]] = None,
    words: Optional[List[RecognizedWord]] = None,
    blocks: Optional[List[RecognizedRegion]] = None,
    table: Optional[Dict[str, list]] = None,
) -> RecognizerOutput:
    """
    For engines that expose several granularities at once: the richest
    structured one wins (lines, then words, then coarse blocks), the flat
    table is used only when no structured records exist.
    """
    if lines:
        return StructuredLines(lines)
    if words:
        return StructuredWords(words)
    if blocks:
        return StructuredBlocks(blocks)
    if table is not None:
        return TabularFallback(table)
    return StructuredLines([])


# --- 1. Structured variants ---
def _from_lines(output: StructuredLines, joiner: str) -> List[LineBlock]:
    out: List[LineBlock] = []
    for line in output.lines:
        words = [w for w in line.words if w is not None]
        if not words:
            continue
        bbox = BBox.from_ltwh(words[0].left, words[0].top, words[0].width, words[0].height)
        for w in words[1:]:
            bbox = bbox.union(BBox.from_ltwh(w.left, w.top, w.width, w.height))

        text = (line.text or "").strip()
        if not text:
            text = joiner.join((w.text or "").strip() for w in words if (w.text or "").strip())

        conf = line.confidence
        if conf is None:
            scores = [w.confidence for w in words if w.confidence is not None]
            conf = sum(scores) / len(scores) if scores else None

        out.append(LineBlock(text=text, confidence=_clamp_conf(conf), bbox=bbox, is_vertical=_is_vertical(bbox)))
    return out


def _from_words(output: StructuredWords, joiner: str) -> List[LineBlock]:
    out: List[LineBlock] = []
    for w in output.words:
        bbox = BBox.from_ltwh(w.left, w.top, w.width, w.height)
        out.append(LineBlock(
            text=(w.text or "").strip(),
            confidence=_clamp_conf(w.confidence),
            bbox=bbox,
            is_vertical=_is_vertical(bbox),
        ))
    return out


def _from_blocks(output: StructuredBlocks, joiner: str) -> List[LineBlock]:
    out: List[LineBlock] = []
    for region in output.blocks:
        bbox = None
        if region.polygon:
            xs = [float(p[0]) for p in region.polygon]
            ys = [float(p[1]) for p in region.polygon]
            bbox = BBox(min(xs), min(ys), max(xs), max(ys))
        out.append(LineBlock(
            text=(region.text or "").strip(),
            confidence=_clamp_conf(region.confidence),
            bbox=bbox,
            is_vertical=_is_vertical(bbox) if bbox else False,
        ))
    return out


# --- 2. Tabular fallback ---
def rows_from_table(columns: Dict[str, Sequence]) -> List[RawRecognitionRow]:
    """
    Parse a column oriented table into rows. Returns an empty list when a
    required column is missing.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        logger.warning("Recognizer table is missing required columns, %s", ", ".join(missing))
        return []

    n = min(len(columns[c]) for c in REQUIRED_COLUMNS)
    levels = columns.get("level")
    rows: List[RawRecognitionRow] = []
    for i in range(n):
        text = columns["text"][i]
        rows.append(RawRecognitionRow(
            page_num=as_int(columns["page_num"][i], 0),
            block_num=as_int(columns["block_num"][i], 0),
            par_num=as_int(columns["par_num"][i], 0),
            line_num=as_int(columns["line_num"][i], 0),
            word_num=as_int(columns["word_num"][i], 0),
            left=as_float(columns["left"][i], 0.0),
            top=as_float(columns["top"][i], 0.0),
            width=as_float(columns["width"][i], 0.0),
            height=as_float(columns["height"][i], 0.0),
            conf=as_float(columns["conf"][i], -1.0),
            text="" if text is None else str(text),
            level=as_int(levels[i], LEAF_LEVEL) if levels is not None and i < len(levels) else LEAF_LEVEL,
        ))
    return rows


def _is_leaf(row: RawRecognitionRow) -> bool:
    return row.level == LEAF_LEVEL and row.word_num > 0


def group_rows(rows: List[RawRecognitionRow], joiner: str) -> List[LineBlock]:
    groups: Dict[tuple, List[RawRecognitionRow]] = {}
    for row in rows:
        if not _is_leaf(row):
            continue
        if row.conf <= 0 or not row.text.strip():
            continue
        groups.setdefault(row.group_key, []).append(row)

    out: List[LineBlock] = []
    for members in groups.values():
        bbox = BBox.from_ltwh(members[0].left, members[0].top, members[0].width, members[0].height)
        for r in members[1:]:
            bbox = bbox.union(BBox.from_ltwh(r.left, r.top, r.width, r.height))
        out.append(LineBlock(
            text=joiner.join(r.text.strip() for r in members),
            confidence=_clamp_conf(sum(r.conf for r in members) / len(members)),
            bbox=bbox,
            is_vertical=_is_vertical(bbox),
        ))
    return out


def _from_table(output: TabularFallback, joiner: str) -> List[LineBlock]:
    return group_rows(rows_from_table(output.columns), joiner)


_CONVERTERS = {
    StructuredLines: _from_lines,
    StructuredWords: _from_words,
    StructuredBlocks: _from_blocks,
    TabularFallback: _from_table,
}


# --- 3. Entry point ---
def normalize(output: RecognizerOutput, joiner: str = " ") -> List[LineBlock]:
    """
    Convert recognizer output to line blocks sorted by top, then left.
    """
    converter = _CONVERTERS.get(type(output))
    if converter is None:
        raise TypeError(f"Unsupported recognizer output, {type(output).__name__}")
    blocks = converter(output, joiner)
    blocks.sort(key=reading_order_key)
    return blocks
