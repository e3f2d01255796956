from __future__ import annotations

import unittest

from imgtrans.filters import BAD_GEOMETRY, EMPTY_TEXT, LOW_CONFIDENCE, filter_blocks
from imgtrans.models import BBox, LineBlock


def _block(conf: float, text: str = "text", bbox=BBox(0, 0, 10, 10)) -> LineBlock:
    return LineBlock(text=text, confidence=conf, bbox=bbox)


class TestConfidenceFilter(unittest.TestCase):
    def test_threshold_is_inclusive(self) -> None:
        kept, stats = filter_blocks([_block(30.0), _block(29.0)], 30.0)
        self.assertEqual([b.confidence for b in kept], [30.0])
        self.assertEqual(stats.dropped, {LOW_CONFIDENCE: 1})

    def test_drop_reasons_are_counted(self) -> None:
        blocks = [
            _block(90, text="  "),
            _block(90, bbox=None),
            _block(90, bbox=BBox(5, 5, 5, 20)),
            _block(10),
            _block(95, text="ok"),
        ]
        kept, stats = filter_blocks(blocks)

        self.assertEqual([b.text for b in kept], ["ok"])
        self.assertEqual(stats.kept, 1)
        self.assertEqual(stats.dropped, {EMPTY_TEXT: 1, BAD_GEOMETRY: 2, LOW_CONFIDENCE: 1})
        self.assertEqual(stats.total_dropped, 4)

    def test_order_preserved_and_input_untouched(self) -> None:
        blocks = [_block(50, "a"), _block(60, "b"), _block(70, "c")]
        kept, _ = filter_blocks(blocks, 55)
        self.assertEqual([b.text for b in kept], ["b", "c"])
        self.assertEqual(len(blocks), 3)

    def test_nothing_survives_is_not_an_error(self) -> None:
        kept, stats = filter_blocks([_block(1), _block(2)])
        self.assertEqual(kept, [])
        self.assertEqual(stats.total_dropped, 2)


if __name__ == "__main__":
    unittest.main()
