from __future__ import annotations

import unittest

from imgtrans.exceptions import RecognizerError, TranslationError
from imgtrans.resources import LoadState, ResourceManager

import _fakes
from _fakes import FakeEngine


def _manager(ocr="_fakes.FakeEngine", translator="_fakes.UpperTranslator", **ocr_kwargs) -> ResourceManager:
    return ResourceManager(ocr, translator, ocr_backend_kwargs=ocr_kwargs)


class TestRecognizerLifecycle(unittest.TestCase):
    def setUp(self) -> None:
        FakeEngine.events = []

    def test_memoized_per_language(self) -> None:
        resources = _manager(psm=6)
        with resources.recognizer("ja") as first:
            pass
        with resources.recognizer("ja") as second:
            pass

        self.assertIs(first, second)
        self.assertEqual(first.kwargs, {"psm": 6})
        self.assertEqual(FakeEngine.events, ["init ja"])
        self.assertEqual(resources.current_language, "ja")

    def test_language_change_tears_down_first(self) -> None:
        resources = _manager()
        with resources.recognizer("ja") as ja_engine:
            pass
        with resources.recognizer("en") as en_engine:
            pass

        self.assertTrue(ja_engine.closed)
        self.assertFalse(en_engine.closed)
        self.assertEqual(FakeEngine.events, ["init ja", "close ja", "init en"])
        self.assertEqual(resources.current_language, "en")

    def test_init_failure(self) -> None:
        resources = _manager(ocr="_fakes.BrokenEngine")
        with self.assertRaises(RecognizerError) as ctx:
            with resources.recognizer("ja"):
                pass
        self.assertTrue(str(ctx.exception).startswith("[Initializing OCR] "))
        self.assertIn("traineddata not found", str(ctx.exception))
        self.assertIsNone(resources.current_language)

    def test_bad_backend_path(self) -> None:
        resources = _manager(ocr="_fakes.NoSuchEngine")
        with self.assertRaises(RecognizerError):
            with resources.recognizer("en"):
                pass

    def test_close(self) -> None:
        resources = _manager()
        with resources.recognizer("ja") as engine:
            pass
        resources.close()
        self.assertTrue(engine.closed)
        self.assertIsNone(resources.current_language)


class TestTranslatorLifecycle(unittest.TestCase):
    def test_load_states_are_published(self) -> None:
        resources = _manager()
        seen = []
        unsubscribe = resources.subscribe(seen.append)

        first = resources.translator()
        second = resources.translator()

        self.assertIs(first, second)
        self.assertIsInstance(first, _fakes.UpperTranslator)
        self.assertEqual(seen, [LoadState.NOT_LOADED, LoadState.LOADING, LoadState.READY])
        self.assertEqual(resources.translator_state, LoadState.READY)

        unsubscribe()
        resources.close()
        self.assertEqual(seen[-1], LoadState.READY)
        self.assertEqual(resources.translator_state, LoadState.NOT_LOADED)

    def test_failed_load_returns_to_not_loaded(self) -> None:
        resources = _manager(translator="_fakes.UnloadableTranslator")
        seen = []
        resources.subscribe(seen.append)

        with self.assertRaises(TranslationError) as ctx:
            resources.translator()

        self.assertEqual(ctx.exception.step, "Loading Translator")
        self.assertEqual(seen, [LoadState.NOT_LOADED, LoadState.LOADING, LoadState.NOT_LOADED])


if __name__ == "__main__":
    unittest.main()
