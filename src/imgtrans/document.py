# src/imgtrans/document.py
"""
HTML host document: image lookup, status markers and the visual
scaffolding (wrapper + "Queued..." indicator) put around pending images.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from .utils import format_style, parse_css_px, parse_style

logger = logging.getLogger("imgtrans")

STATUS_ATTR = "data-status"
ROLE_ATTR = "data-imgtrans"

WRAPPER_STYLE = {"position": "relative", "display": "inline-block"}
INDICATOR_STYLE = {
    "position": "absolute",
    "top": "0",
    "left": "0",
    "background": "rgba(0,0,0,0.7)",
    "color": "#fff",
    "padding": "5px",
    "font-size": "12px",
    "border-radius": "0 0 5px 0",
    "z-index": "1000",
}


class HtmlDocument:
    def __init__(self, html: Union[str, bytes], page_url: str = ""):
        self.soup = BeautifulSoup(html, "html.parser")
        self.page_url = page_url

    @classmethod
    def from_file(cls, path: Path, page_url: str = "") -> "HtmlDocument":
        return cls(Path(path).read_bytes(), page_url=page_url or Path(path).resolve().as_uri())

    def to_html(self) -> str:
        return str(self.soup)

    # -----------------------------
    # Images
    # -----------------------------
    def images(self) -> Iterator[Tag]:
        yield from self.soup.find_all("img")

    def resolve_src(self, img: Tag) -> Optional[str]:
        src = (img.get("src") or "").strip()
        if not src:
            return None
        try:
            url = urljoin(self.page_url, src) if self.page_url else src
            scheme = urlsplit(url).scheme
        except ValueError as e:
            logger.debug("Unparseable image source, %s, %s", src, e)
            return None
        if scheme not in ("http", "https"):
            return None
        return url

    @staticmethod
    def status(img: Tag) -> str:
        return img.get(STATUS_ATTR) or ""

    @staticmethod
    def set_status(img: Tag, status: Optional[str]) -> None:
        if status:
            img[STATUS_ATTR] = status
        elif STATUS_ATTR in img.attrs:
            del img[STATUS_ATTR]

    @staticmethod
    def declared_size(img: Tag) -> Tuple[Optional[float], Optional[float]]:
        """Width and height the document asks for, from attributes or inline style."""
        style = parse_style(img.get("style"))
        width = parse_css_px(img.get("width")) or parse_css_px(style.get("width"))
        height = parse_css_px(img.get("height")) or parse_css_px(style.get("height"))
        return width, height

    @classmethod
    def displayed_size(cls, img: Tag, native_width: int, native_height: int) -> Tuple[float, float]:
        """
        Size the image is shown at. A single declared dimension keeps the
        native aspect ratio; no declared size means native size.
        """
        width, height = cls.declared_size(img)
        if width and height:
            return width, height
        if width and native_width:
            return width, native_height * (width / native_width)
        if height and native_height:
            return native_width * (height / native_height), height
        return float(native_width), float(native_height)

    # -----------------------------
    # Scaffolding
    # -----------------------------
    def wrap_with_indicator(self, img: Tag, label: str = "Queued...") -> Tuple[Tag, Tag]:
        wrapper = self.soup.new_tag("div")
        wrapper[ROLE_ATTR] = "wrapper"
        wrapper["style"] = format_style(WRAPPER_STYLE)
        img.wrap(wrapper)

        indicator = self.soup.new_tag("div")
        indicator[ROLE_ATTR] = "indicator"
        indicator["style"] = format_style(INDICATOR_STYLE)
        indicator.string = label
        wrapper.append(indicator)
        return wrapper, indicator

    @staticmethod
    def set_indicator_label(indicator: Optional[Tag], label: str) -> None:
        if indicator is not None and indicator.parent is not None:
            indicator.string = label

    @staticmethod
    def remove_indicator(indicator: Optional[Tag]) -> None:
        if indicator is not None and indicator.parent is not None:
            indicator.decompose()

    @staticmethod
    def unwrap(img: Tag, wrapper: Optional[Tag]) -> None:
        """Put ``img`` back where the wrapper was, dropping the wrapper."""
        if wrapper is None or img.parent is not wrapper:
            return
        for child in list(wrapper.children):
            if child is not img:
                child.extract()
        wrapper.unwrap()

    @staticmethod
    def add_style(tag: Tag, **props: str) -> None:
        style = parse_style(tag.get("style"))
        for key, value in props.items():
            style[key.replace("_", "-")] = value
        tag["style"] = format_style(style)
