# src/imgtrans/renderer.py
"""
Draws translated blocks back over their image.

Block boxes are in the pixel space the recognizer saw; the page shows the
image at its own size. ``map_block`` converts between the two and is
shared by both strategies:

- ``RasterRenderer`` paints the translation into a copy of the image and
  swaps the element's ``src`` for the new raster (not reversible without
  the original bytes).
- ``LayerRenderer`` stacks positioned text boxes above the untouched
  image (reversible by removing the layer).
"""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

from bs4.element import Tag
from PIL import Image, ImageDraw, ImageFont

from .document import ROLE_ATTR, HtmlDocument
from .imaging import encode_jpeg, open_rgb
from .models import Overlay, RenderedRegion, TranslatedBlock
from .utils import format_style, to_data_uri

logger = logging.getLogger("imgtrans")

HORIZONTAL_FONT_RATIO = 0.8
VERTICAL_FONT_RATIO = 0.6
MIN_HORIZONTAL_FONT = 12
MIN_VERTICAL_FONT = 14

BOX_FILL = (255, 255, 255, 230)   # rgba(255,255,255,0.9)
TEXT_FILL = (0, 0, 0, 255)
SUCCESS_BORDER = "3px solid #4CAF50"


# --- 1. Coordinate mapping ---
def scale_factors(displayed: Tuple[float, float], native: Tuple[float, float]) -> Tuple[float, float]:
    dw, dh = displayed
    nw, nh = native
    sx = dw / nw if nw else 1.0
    sy = dh / nh if nh else 1.0
    return sx, sy


def font_size_for(width: float, height: float, is_vertical: bool) -> float:
    if is_vertical:
        # vertical columns now carry horizontal text, size from the column width
        return max(MIN_VERTICAL_FONT, width * VERTICAL_FONT_RATIO)
    return max(MIN_HORIZONTAL_FONT, height * HORIZONTAL_FONT_RATIO)


def map_block(block: TranslatedBlock, sx: float, sy: float) -> RenderedRegion:
    box = block.bbox.scaled(sx, sy)
    return RenderedRegion(
        left=box.x0,
        top=box.y0,
        width=box.width,
        height=box.height,
        font_size=font_size_for(box.width, box.height, block.is_vertical),
        text=block.translated_text,
        is_vertical=block.is_vertical,
    )


def map_blocks(blocks: List[TranslatedBlock], displayed, native) -> List[RenderedRegion]:
    sx, sy = scale_factors(displayed, native)
    return [map_block(b, sx, sy) for b in blocks if b.bbox is not None]


# --- 2. Fonts ---
def _font_candidates(bold: bool) -> List[str]:
    if bold:
        return [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
            "C:/Windows/Fonts/arialbd.ttf",
            "/Library/Fonts/Arial Bold.ttf",
        ]
    return [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
        "C:/Windows/Fonts/arial.ttf",
        "/Library/Fonts/Arial.ttf",
    ]


@lru_cache(maxsize=2)
def _selected_font_path(bold: bool) -> Optional[str]:
    for path in _font_candidates(bold):
        if Path(path).exists():
            return path
    return None


@lru_cache(maxsize=64)
def _cached_font(size: int, font_path: Optional[str]):
    if font_path:
        return ImageFont.truetype(font_path, size)
    try:
        return ImageFont.load_default(size=size)
    except TypeError:  # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


def load_font(size: float, bold: bool = False):
    safe_size = max(1, int(round(size)))
    try:
        return _cached_font(safe_size, _selected_font_path(bold))
    except OSError:
        return ImageFont.load_default()


# --- 3. Strategies ---
class BaseRenderer:
    mode = ""

    def __init__(self, document: HtmlDocument):
        self.document = document

    def render(self, img: Tag, blocks: List[TranslatedBlock], native_width: int, native_height: int,
               image_bytes: Optional[bytes] = None) -> Overlay:
        raise NotImplementedError

    @staticmethod
    def mark_success(img: Tag) -> None:
        HtmlDocument.add_style(img, border=SUCCESS_BORDER)


class RasterRenderer(BaseRenderer):
    mode = "raster"

    def draw(self, image_bytes: bytes, regions: List[RenderedRegion], size: Tuple[int, int]) -> bytes:
        base = open_rgb(image_bytes)
        if base.size != size:
            base = base.resize(size, Image.Resampling.LANCZOS)
        canvas = base.convert("RGBA")
        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)

        for r in regions:
            draw.rectangle([r.left, r.top, r.left + r.width, r.top + r.height], fill=BOX_FILL)
            font = load_font(r.font_size, bold=r.is_vertical)
            # centred on the box, no max width so long text overflows sideways
            l, t, rgt, btm = draw.textbbox((0, 0), r.text, font=font)
            x = r.left + r.width / 2 - (rgt - l) / 2 - l
            y = r.top + r.height / 2 - (btm - t) / 2 - t
            draw.text((x, y), r.text, font=font, fill=TEXT_FILL)

        return encode_jpeg(Image.alpha_composite(canvas, layer), 0.92)

    def render(self, img, blocks, native_width, native_height, image_bytes=None) -> Overlay:
        if image_bytes is None:
            raise ValueError("raster rendering needs the image bytes the recognizer saw")
        displayed = HtmlDocument.displayed_size(img, native_width, native_height)
        regions = map_blocks(blocks, displayed, (native_width, native_height))
        size = (max(1, int(round(displayed[0]))), max(1, int(round(displayed[1]))))
        raster = self.draw(image_bytes, regions, size)

        img["src"] = to_data_uri(raster, "image/jpeg")
        if "srcset" in img.attrs:
            del img["srcset"]
        self.mark_success(img)
        return Overlay(mode=self.mode, regions=regions, image_bytes=raster)


class LayerRenderer(BaseRenderer):
    mode = "layer"

    @staticmethod
    def _region_style(r: RenderedRegion) -> str:
        props = {
            "position": "absolute",
            "left": f"{r.left:.1f}px",
            "top": f"{r.top:.1f}px",
            "width": f"{r.width:.1f}px",
            "height": f"{r.height:.1f}px",
            "line-height": f"{r.height:.1f}px",
            "font-size": f"{r.font_size:.1f}px",
            "background": "rgba(255,255,255,0.9)",
            "color": "#000",
            "text-align": "center",
            "white-space": "nowrap",
            "overflow": "visible",
        }
        if r.is_vertical:
            props["font-weight"] = "bold"
        return format_style(props)

    def _host_wrapper(self, img: Tag) -> Tag:
        parent = img.parent
        if parent is not None and parent.get(ROLE_ATTR) == "wrapper":
            return parent
        wrapper, indicator = self.document.wrap_with_indicator(img)
        indicator.decompose()
        return wrapper

    def render(self, img, blocks, native_width, native_height, image_bytes=None) -> Overlay:
        displayed = HtmlDocument.displayed_size(img, native_width, native_height)
        regions = map_blocks(blocks, displayed, (native_width, native_height))

        wrapper = self._host_wrapper(img)
        for old in wrapper.find_all(attrs={ROLE_ATTR: "layer"}, recursive=False):
            old.decompose()

        soup = self.document.soup
        layer = soup.new_tag("div")
        layer[ROLE_ATTR] = "layer"
        layer["style"] = format_style({
            "position": "absolute",
            "left": "0",
            "top": "0",
            "width": f"{displayed[0]:.1f}px",
            "height": f"{displayed[1]:.1f}px",
            "pointer-events": "none",
        })
        for r in regions:
            box = soup.new_tag("div")
            box["style"] = self._region_style(r)
            box.string = r.text
            layer.append(box)
        wrapper.append(layer)

        self.mark_success(img)
        return Overlay(mode=self.mode, regions=regions, layer=layer)


def get_renderer(mode: str, document: HtmlDocument) -> BaseRenderer:
    name = (mode or "").lower()
    if name == "raster":
        return RasterRenderer(document)
    if name == "layer":
        return LayerRenderer(document)
    raise ValueError(f"Unknown render mode, '{mode}'. Supported modes, ['raster', 'layer']")
