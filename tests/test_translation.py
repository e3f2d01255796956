from __future__ import annotations

import unittest

from imgtrans.exceptions import TranslationError
from imgtrans.models import BBox, LineBlock
from imgtrans.translation import TranslationInvoker
from imgtrans.translator_backends.deepl_backend import DeepLTranslator
from imgtrans.utils import DEFAULT_TRANSLATION_TAG, joiner_for, map_language

from _fakes import ExplodingTranslator, UpperTranslator


class TestLanguageMapping(unittest.TestCase):
    def test_static_lookup(self) -> None:
        table = DeepLTranslator.lang_map
        self.assertEqual(map_language("ja", table, None), "JA")
        self.assertEqual(map_language("ZH", table, None), "ZH")
        self.assertEqual(map_language("pt-BR", table, None), "PT")

    def test_auto_and_unknown_collapse_to_default(self) -> None:
        table = DeepLTranslator.lang_map
        self.assertIsNone(map_language("auto", table, None))
        self.assertIsNone(map_language("", table, None))
        self.assertEqual(map_language("xx", table, DEFAULT_TRANSLATION_TAG), "EN")

    def test_joiner_by_script(self) -> None:
        self.assertEqual(joiner_for("ja"), "")
        self.assertEqual(joiner_for("zh-TW"), "")
        self.assertEqual(joiner_for("en"), " ")
        self.assertEqual(joiner_for(None), " ")


class TestTranslationInvoker(unittest.TestCase):
    def test_tags(self) -> None:
        invoker = TranslationInvoker(UpperTranslator())
        self.assertEqual(invoker.tags("ja", "de"), ("JA", "DE"))
        self.assertEqual(invoker.tags("auto", "klingon"), (None, "EN"))

    def test_one_call_per_block_in_order(self) -> None:
        translator = UpperTranslator()
        blocks = [
            LineBlock("first", 90, BBox(0, 0, 10, 10)),
            LineBlock("second", 80, BBox(0, 20, 10, 30), is_vertical=True),
        ]
        out = TranslationInvoker(translator).translate_blocks(blocks, "ja", "en")

        self.assertEqual([b.translated_text for b in out], ["FIRST", "SECOND"])
        self.assertEqual([b.text for b in out], ["first", "second"])
        self.assertTrue(out[1].is_vertical)
        self.assertEqual(UpperTranslator.calls, [("first", "JA", "EN"), ("second", "JA", "EN")])

    def test_engine_failure_is_tagged(self) -> None:
        invoker = TranslationInvoker(ExplodingTranslator())
        with self.assertRaises(TranslationError) as ctx:
            invoker.translate("x", "ja", "en")
        self.assertEqual(str(ctx.exception), "[Translating] model crashed")


if __name__ == "__main__":
    unittest.main()
