# src/imgtrans/fetch.py
"""
Image acquisition with a tiered fallback.

1. referrer-spoofed: the request carries the page URL as ``Referer`` and
   the response is stamped with a permissive CORS header. The header
   rewriting is registered only for the one request and always removed.
2. direct: a plain GET.
3. relayed: ask the page context, over the transport, for the bytes.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional
from urllib.parse import urlsplit

import httpx

from .exceptions import FetchError
from .models import FetchResult, FetchTier
from .relay import BasePageRelay
from .transport import FETCH_IMAGE, Transport

logger = logging.getLogger("imgtrans")


# --- 1. Scoped header interception ---
@dataclass(frozen=True)
class _Interceptor:
    url: str
    referrer: str

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    def matches(self, request_url: str) -> bool:
        if request_url == self.url:
            return True
        # tolerate encoding differences between the requested and the sent URL
        path = self.path
        return bool(path) and path != "/" and path in request_url


class InterceptorRegistry:
    """
    Request/response hooks for an ``httpx.Client``. Interceptors are only
    active inside ``intercept()``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active: List[_Interceptor] = []

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def _matching(self, request_url: str) -> List[_Interceptor]:
        with self._lock:
            return [ic for ic in self._active if ic.matches(request_url)]

    def on_request(self, request: httpx.Request) -> None:
        for ic in self._matching(str(request.url)):
            # httpx headers are case insensitive, this drops every Referer spelling
            if "referer" in request.headers:
                del request.headers["referer"]
            request.headers["Referer"] = ic.referrer

    def on_response(self, response: httpx.Response) -> None:
        if self._matching(str(response.request.url)):
            response.headers["Access-Control-Allow-Origin"] = "*"

    @contextmanager
    def intercept(self, url: str, referrer: str) -> Iterator[_Interceptor]:
        ic = _Interceptor(url=url, referrer=referrer)
        with self._lock:
            self._active.append(ic)
        try:
            yield ic
        finally:
            with self._lock:
                self._active.remove(ic)


# --- 2. Resolver ---
class FetchResolver:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        relay: Optional[BasePageRelay] = None,
        transport: Optional[Transport] = None,
        timeout: float = 30.0,
    ):
        self.interceptors = InterceptorRegistry()
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self.client.event_hooks["request"].append(self.interceptors.on_request)
        self.client.event_hooks["response"].append(self.interceptors.on_response)
        self.relay = relay
        self.transport = transport or Transport()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _get(self, url: str) -> bytes:
        resp = self.client.get(url, headers={"Cache-Control": "no-cache"})
        if not resp.is_success:
            raise FetchError(f"Failed to fetch, HTTP {resp.status_code}")
        return resp.content

    # Tier 1
    def fetch_with_referrer(self, url: str, page_url: Optional[str]) -> bytes:
        if not page_url:
            return self._get(url)
        with self.interceptors.intercept(url, page_url):
            return self._get(url)

    # Tier 2
    def fetch_direct(self, url: str) -> bytes:
        return self._get(url)

    # Tier 3
    def fetch_relayed(self, url: str) -> bytes:
        if self.relay is None:
            raise FetchError("no page context relay configured")
        logger.info("Falling back to page context fetch for, %s", url)
        response = self.transport.send(self.relay.handle, {"type": FETCH_IMAGE, "url": url})
        if not isinstance(response, dict):
            raise FetchError("relay answered with an unexpected payload")
        if not response.get("ok") or not response.get("buffer"):
            raise FetchError(response.get("error") or "Unknown content fetch error")
        return bytes(response["buffer"])

    def fetch(self, url: str, page_url: Optional[str] = None) -> FetchResult:
        """
        Try each tier once, in order. Raises ``FetchError`` listing every
        tier's failure when none of them produced the bytes.
        """
        failures: List[str] = []
        tiers = (
            (FetchTier.REFERRER_SPOOFED, lambda: self.fetch_with_referrer(url, page_url)),
            (FetchTier.DIRECT, lambda: self.fetch_direct(url)),
            (FetchTier.RELAYED, lambda: self.fetch_relayed(url)),
        )
        for tier, attempt in tiers:
            try:
                content = attempt()
            except Exception as e:
                detail = getattr(e, "detail", None) or str(e) or type(e).__name__
                logger.warning("Fetch tier %s failed for %s, %s", tier.value, url, detail)
                failures.append(f"{tier.value}: {detail}")
                continue
            logger.debug("Fetched %s via %s (%d bytes)", url, tier.value, len(content))
            return FetchResult(content=content, tier=tier, url=url)
        raise FetchError("; ".join(failures))
