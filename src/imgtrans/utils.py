# src/imgtrans/utils.py
from __future__ import annotations

import base64
import re
from typing import Dict, Optional
from urllib.parse import urlsplit

from slugify import slugify


# ----------------------------
# Language tables
# ----------------------------

# User facing codes are the two letter codes the settings store keeps.
# Recognizer and translator backends each carry their own mapping.

DEFAULT_TRANSLATION_TAG = "EN"

# Scripts written without spaces between words
NO_SPACE_LANGS = {"ja", "zh", "th", "lo", "km", "my"}


def map_language(code: Optional[str], table: Dict[str, str], default: Optional[str]) -> Optional[str]:
    """
    Look ``code`` up in a static table. ``auto``, empty and unknown codes
    collapse to ``default`` instead of raising.
    """
    if not code:
        return default
    key = str(code).strip().lower()
    if key == "auto":
        return default
    if key in table:
        return table[key]
    # accept region variants like "pt-BR" or "zh_CN"
    base = re.split(r"[-_]", key, maxsplit=1)[0]
    return table.get(base, default)


def joiner_for(lang: Optional[str]) -> str:
    """Word separator used when fragments of one line are glued back together."""
    if not lang:
        return " "
    base = re.split(r"[-_]", str(lang).strip().lower(), maxsplit=1)[0]
    return "" if base in NO_SPACE_LANGS else " "


# ----------------------------
# Small coercion helpers
# ----------------------------

def as_float(x, default: float) -> float:
    try:
        if isinstance(x, str):
            x = x.strip()
        return float(x)
    except (TypeError, ValueError):
        return default


def as_int(x, default: int) -> int:
    try:
        if isinstance(x, str):
            x = x.strip().rstrip(",}] ")
        return int(float(x))
    except (TypeError, ValueError):
        m = re.search(r"-?\d+", str(x))
        return int(m.group()) if m else default


_CSS_PX_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(px)?\s*$", re.IGNORECASE)


def parse_css_px(value) -> Optional[float]:
    """'120', '120px' -> 120.0; percentages and other units -> None."""
    if value is None:
        return None
    m = _CSS_PX_RE.match(str(value))
    return float(m.group(1)) if m else None


def parse_style(style: Optional[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for part in (style or "").split(";"):
        if ":" not in part:
            continue
        k, v = part.split(":", 1)
        k = k.strip().lower()
        if k:
            out[k] = v.strip()
    return out


def format_style(props: Dict[str, str]) -> str:
    return "; ".join(f"{k}: {v}" for k, v in props.items())


# ----------------------------
# URLs and payloads
# ----------------------------

def domain_of(url: Optional[str]) -> str:
    if not url:
        return ""
    return (urlsplit(url).hostname or "").lower()


def to_data_uri(payload: bytes, media_type: str = "image/jpeg") -> str:
    return f"data:{media_type};base64," + base64.b64encode(payload).decode("ascii")


def safe_fname(name: str, fallback: str = "file") -> str:
    """
    Create a filesystem safe name, preserve extension when present.
    """
    name = (name or "").strip() or fallback
    if "." in name:
        base, ext = name.rsplit(".", 1)
        return f"{slugify(base)[:100] or fallback}.{ext}"
    return slugify(name)[:100] or fallback
