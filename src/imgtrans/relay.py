# src/imgtrans/relay.py
"""
Page-context fetch relays.

When the execution stage cannot reach an image on its own, it asks a
collaborator that lives in the page's own context to fetch the bytes.
Requests and answers are plain messages so they can cross the transport:

    request  {"type": "FETCH_IMAGE", "url": ...}
    answer   {"ok": True, "buffer": b"..."} or {"ok": False, "error": "..."}
"""
from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx

from .exceptions import DeliveryError

logger = logging.getLogger("imgtrans")


class BasePageRelay(ABC):
    @abstractmethod
    def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Answer one FETCH_IMAGE message."""
        pass

    def close(self) -> None:
        pass


def _origin(url: str) -> Optional[str]:
    parts = urlsplit(url or "")
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


class SessionPageRelay(BasePageRelay):
    """
    Fetches with the HTTP session that loaded the page, so the page's
    cookies and origin travel with the request.
    """

    def __init__(self, client: httpx.Client, page_url: str):
        self.client = client
        self.page_url = page_url

    def _page_headers(self) -> Dict[str, str]:
        headers = {"Cache-Control": "no-cache"}
        if self.page_url:
            headers["Referer"] = self.page_url
            origin = _origin(self.page_url)
            if origin:
                headers["Origin"] = origin
        return headers

    def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        url = message.get("url")
        if not url:
            return {"ok": False, "error": "missing url"}
        try:
            resp = self.client.get(url, headers=self._page_headers())
        except httpx.HTTPError as e:
            logger.error("Page context fetch failed, %s, %s", url, e)
            return {"ok": False, "error": str(e) or type(e).__name__}
        if not resp.is_success:
            return {"ok": False, "error": f"HTTP {resp.status_code}"}
        return {"ok": True, "buffer": resp.content}


class HttpPageRelay(BasePageRelay):
    """
    Forwards FETCH_IMAGE messages to an external relay endpoint running in
    the page's context (for example a browser side helper). The endpoint
    answers JSON with a base64 ``buffer``.
    """

    def __init__(self, relay_url: str, timeout: float = 30.0, client: Optional[httpx.Client] = None):
        self.relay_url = relay_url
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self.client.post(self.relay_url, json=message)
        except httpx.TransportError as e:
            raise DeliveryError(f"relay unreachable, {e}") from e
        if resp.status_code >= 500:
            raise DeliveryError(f"relay answered HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError:
            return {"ok": False, "error": "relay answered with invalid JSON"}
        if not isinstance(data, dict):
            return {"ok": False, "error": "relay answered with an unexpected payload"}
        if not data.get("ok"):
            return {"ok": False, "error": data.get("error") or "Unknown content fetch error"}
        try:
            buffer = base64.b64decode(data.get("buffer") or "", validate=True)
        except (ValueError, TypeError):
            return {"ok": False, "error": "relay buffer is not valid base64"}
        return {"ok": True, "buffer": buffer}

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
