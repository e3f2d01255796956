# src/imgtrans/imaging.py
from __future__ import annotations

import io
import logging
import math
from typing import Tuple

from PIL import Image

logger = logging.getLogger("imgtrans")

MAX_UPLOAD_BYTES = 1024 * 1024


def open_rgb(payload: bytes) -> Image.Image:
    with Image.open(io.BytesIO(payload)) as im:
        return im.convert("RGB")


def image_size(payload: bytes) -> Tuple[int, int]:
    """(width, height) of an encoded image without decoding the pixels."""
    with Image.open(io.BytesIO(payload)) as im:
        return im.size


def encode_jpeg(img: Image.Image, quality: float) -> bytes:
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=max(1, min(95, int(round(quality * 100)))))
    return buf.getvalue()


def compress_image(payload: bytes, max_bytes: int = MAX_UPLOAD_BYTES) -> bytes:
    """
    Shrink an encoded image below ``max_bytes`` so recognizers with an upload
    limit accept it. Quality is lowered first (0.9 down to 0.1), then the
    image is scaled down by sqrt(max_bytes / size) and saved at 0.7.
    Payloads already under the limit are returned untouched.
    """
    if len(payload) <= max_bytes:
        return payload

    logger.info("Compressing image (size, %d)", len(payload))
    img = open_rgb(payload)

    quality = 0.9
    compressed = encode_jpeg(img, quality)
    while len(compressed) > max_bytes and quality > 0.1 + 1e-9:
        quality -= 0.1
        compressed = encode_jpeg(img, quality)

    if len(compressed) > max_bytes:
        scale = math.sqrt(max_bytes / len(compressed))
        new_size = (max(1, int(img.width * scale)), max(1, int(img.height * scale)))
        compressed = encode_jpeg(img.resize(new_size, Image.Resampling.LANCZOS), 0.7)

    logger.info("Compressed size, %d", len(compressed))
    return compressed
