from __future__ import annotations

import unittest

import httpx

from imgtrans.exceptions import FetchError
from imgtrans.fetch import FetchResolver
from imgtrans.models import FetchTier
from imgtrans.transport import FETCH_IMAGE, Transport

from _fakes import no_sleep

IMG_URL = "https://cdn.example.com/comics/ch1/page%201.png"
PAGE_URL = "https://example.com/read/ch1"


class FakeRelay:
    def __init__(self, answer):
        self.answer = answer
        self.messages = []

    def handle(self, message):
        self.messages.append(message)
        return self.answer

    def close(self):
        pass


class TestFetchResolver(unittest.TestCase):
    def setUp(self) -> None:
        self.requests = []
        self.status = 200

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, content=b"image-bytes")

    def _resolver(self, relay=None) -> FetchResolver:
        client = httpx.Client(transport=httpx.MockTransport(self._handler))
        return FetchResolver(client=client, relay=relay, transport=Transport(sleep=no_sleep))

    def test_first_tier_spoofs_referrer(self) -> None:
        resolver = self._resolver()
        result = resolver.fetch(IMG_URL, PAGE_URL)

        self.assertEqual(result.tier, FetchTier.REFERRER_SPOOFED)
        self.assertEqual(result.content, b"image-bytes")
        self.assertEqual(len(self.requests), 1)
        self.assertEqual(self.requests[0].headers["referer"], PAGE_URL)
        self.assertEqual(resolver.interceptors.active_count, 0)

    def test_interceptor_rewrites_and_is_released(self) -> None:
        resolver = self._resolver()
        with resolver.interceptors.intercept(IMG_URL, PAGE_URL):
            self.assertEqual(resolver.interceptors.active_count, 1)
            resp = resolver.client.get(IMG_URL, headers={"Referer": "https://elsewhere.test/"})
        self.assertEqual(resp.headers["access-control-allow-origin"], "*")
        self.assertEqual(self.requests[-1].headers.get_list("referer"), [PAGE_URL])
        self.assertEqual(resolver.interceptors.active_count, 0)

        # outside the scope nothing is rewritten
        resp = resolver.client.get(IMG_URL)
        self.assertNotIn("referer", self.requests[-1].headers)
        self.assertNotIn("access-control-allow-origin", resp.headers)

    def test_interceptor_released_when_request_raises(self) -> None:
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        resolver = FetchResolver(client=client, transport=Transport(sleep=no_sleep))
        with self.assertRaises(FetchError):
            resolver.fetch(IMG_URL, PAGE_URL)
        self.assertEqual(resolver.interceptors.active_count, 0)

    def test_interceptor_matches_path_containment(self) -> None:
        resolver = self._resolver()
        with resolver.interceptors.intercept("https://cdn.example.com/a/b.png", PAGE_URL):
            resolver.client.get("https://cdn.example.com/a/b.png?token=abc")
        self.assertEqual(self.requests[-1].headers["referer"], PAGE_URL)

    def test_without_page_url_first_tier_is_a_plain_get(self) -> None:
        resolver = self._resolver()
        result = resolver.fetch(IMG_URL, None)
        self.assertEqual(result.tier, FetchTier.REFERRER_SPOOFED)
        self.assertNotIn("referer", self.requests[0].headers)

    def test_relay_used_once_after_both_network_tiers_fail(self) -> None:
        self.status = 403
        relay = FakeRelay({"ok": True, "buffer": b"relayed-bytes"})
        resolver = self._resolver(relay)

        result = resolver.fetch(IMG_URL, PAGE_URL)

        self.assertEqual(result.tier, FetchTier.RELAYED)
        self.assertEqual(result.content, b"relayed-bytes")
        self.assertEqual(len(self.requests), 2)
        self.assertEqual(relay.messages, [{"type": FETCH_IMAGE, "url": IMG_URL}])

    def test_all_tiers_fail(self) -> None:
        self.status = 404
        relay = FakeRelay({"ok": False, "error": "HTTP 404"})
        resolver = self._resolver(relay)

        with self.assertRaises(FetchError) as ctx:
            resolver.fetch(IMG_URL, PAGE_URL)

        # no tier is retried
        self.assertEqual(len(self.requests), 2)
        self.assertEqual(len(relay.messages), 1)
        message = str(ctx.exception)
        self.assertTrue(message.startswith("[Fetching Image] "))
        self.assertIn("referrer-spoofed: Failed to fetch, HTTP 404", message)
        self.assertIn("relayed: HTTP 404", message)

    def test_unexpected_errors_fall_through_to_next_tier(self) -> None:
        def handler(request):
            raise RuntimeError("socket torn down")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        relay = FakeRelay({"ok": True, "buffer": b"relayed-bytes"})
        resolver = FetchResolver(client=client, relay=relay, transport=Transport(sleep=no_sleep))

        result = resolver.fetch(IMG_URL, PAGE_URL)

        self.assertEqual(result.tier, FetchTier.RELAYED)
        self.assertEqual(resolver.interceptors.active_count, 0)

    def test_non_mapping_relay_answer_is_a_fetch_error(self) -> None:
        self.status = 403
        resolver = self._resolver(FakeRelay(["not", "a", "mapping"]))
        with self.assertRaises(FetchError) as ctx:
            resolver.fetch(IMG_URL, PAGE_URL)
        self.assertIn("relayed: relay answered with an unexpected payload", str(ctx.exception))

    def test_no_relay_configured(self) -> None:
        self.status = 500
        resolver = self._resolver()
        with self.assertRaises(FetchError) as ctx:
            resolver.fetch(IMG_URL, PAGE_URL)
        self.assertIn("no page context relay configured", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
