from __future__ import annotations

import io
import unittest

import numpy as np
from PIL import Image

from imgtrans.imaging import compress_image, image_size

from _fakes import png_bytes


def _noise_png(width: int, height: int) -> bytes:
    pixels = np.random.default_rng(0).integers(0, 256, (height, width, 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format="PNG")
    return buf.getvalue()


class TestCompression(unittest.TestCase):
    def test_small_payload_untouched(self) -> None:
        payload = png_bytes(50, 50)
        self.assertIs(compress_image(payload, 1024 * 1024), payload)

    def test_quality_steps_bring_payload_under_limit(self) -> None:
        payload = _noise_png(800, 800)
        limit = 1024 * 1024
        self.assertGreater(len(payload), limit)

        out = compress_image(payload, limit)

        self.assertLessEqual(len(out), limit)
        self.assertEqual(out[:2], b"\xff\xd8")
        self.assertEqual(image_size(out), (800, 800))

    def test_downscales_when_quality_is_not_enough(self) -> None:
        payload = _noise_png(600, 400)
        out = compress_image(payload, 5_000)

        width, height = image_size(out)
        self.assertLess(width, 600)
        self.assertLess(height, 400)
        self.assertAlmostEqual(width / height, 1.5, delta=0.05)


if __name__ == "__main__":
    unittest.main()
