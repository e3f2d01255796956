from __future__ import annotations

import unittest

from imgtrans.document import ROLE_ATTR, STATUS_ATTR, HtmlDocument


class TestHtmlDocument(unittest.TestCase):
    def test_resolve_src(self) -> None:
        doc = HtmlDocument(
            '<img id="a" src="/img/1.png"><img id="b" src="data:image/png;base64,AAAA"><img id="c">',
            page_url="https://example.com/read/ch1",
        )
        a, b, c = doc.soup.find_all("img")
        self.assertEqual(doc.resolve_src(a), "https://example.com/img/1.png")
        self.assertIsNone(doc.resolve_src(b))
        self.assertIsNone(doc.resolve_src(c))

    def test_unparseable_src_is_not_fetchable(self) -> None:
        doc = HtmlDocument('<img src="http://[broken/b.png">', page_url="https://example.com/read/ch1")
        self.assertIsNone(doc.resolve_src(doc.soup.img))

    def test_declared_and_displayed_size(self) -> None:
        doc = HtmlDocument(
            '<img id="a" width="300" height="120">'
            '<img id="b" style="width: 250px; border: 0">'
            '<img id="c">'
        )
        a, b, c = doc.soup.find_all("img")

        self.assertEqual(doc.declared_size(a), (300, 120))
        self.assertEqual(doc.displayed_size(a, 600, 240), (300, 120))
        # one declared side keeps the native aspect ratio
        self.assertEqual(doc.displayed_size(b, 1000, 400), (250, 100))
        self.assertEqual(doc.displayed_size(c, 640, 480), (640, 480))

    def test_status_marker(self) -> None:
        doc = HtmlDocument('<img src="x.png">')
        img = doc.soup.find("img")
        doc.set_status(img, "queued")
        self.assertEqual(doc.status(img), "queued")
        doc.set_status(img, None)
        self.assertEqual(doc.status(img), "")
        self.assertNotIn(STATUS_ATTR, img.attrs)

    def test_scaffold_round_trip(self) -> None:
        html = '<div id="page"><p>before</p><img src="https://x.test/a.png" width="100" height="100"><p>after</p></div>'
        doc = HtmlDocument(html)
        img = doc.soup.find("img")

        wrapper, indicator = doc.wrap_with_indicator(img)
        self.assertIs(img.parent, wrapper)
        self.assertEqual(wrapper[ROLE_ATTR], "wrapper")
        self.assertIn("position: relative", wrapper["style"])
        self.assertEqual(indicator.get_text(), "Queued...")

        doc.set_indicator_label(indicator, "Processing...")
        self.assertEqual(indicator.get_text(), "Processing...")

        doc.remove_indicator(indicator)
        doc.unwrap(img, wrapper)
        self.assertEqual(doc.to_html(), html)

    def test_add_style_keeps_existing(self) -> None:
        doc = HtmlDocument('<img style="width: 10px">')
        img = doc.soup.find("img")
        doc.add_style(img, border="3px solid #4CAF50")
        self.assertEqual(img["style"], "width: 10px; border: 3px solid #4CAF50")


if __name__ == "__main__":
    unittest.main()
