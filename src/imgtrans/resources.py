# src/imgtrans/resources.py
from __future__ import annotations

import importlib
import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from .exceptions import RecognizerError, TranslationError
from .ocr_backends.base import BaseOCREngine
from .translator_backends.base import BaseTranslator

logger = logging.getLogger("imgtrans")


class LoadState(str, Enum):
    NOT_LOADED = "not-loaded"
    LOADING = "loading"
    READY = "ready"


def import_obj(dotted: str):
    mod_path, _, attr = dotted.rpartition(".")
    if not mod_path or not attr:
        raise ImportError(f"Invalid backend path, {dotted}")
    mod = importlib.import_module(mod_path)
    try:
        return getattr(mod, attr)
    except AttributeError as e:
        raise ImportError(f"Backend class not found, {dotted}") from e


class ResourceManager:
    """
    Owns the process wide recognizer and translator handles.

    Both are built lazily on first use and then reused. There is exactly one
    recognizer at a time, keyed by its recognition language: asking for a
    different language closes the current engine before the next one is
    built. Recognition runs while holding the recognizer lock, so an engine
    is never torn down under a caller.
    """

    def __init__(
        self,
        ocr_backend: str,
        translator_backend: str,
        ocr_backend_kwargs: Optional[Dict[str, Any]] = None,
        translator_backend_kwargs: Optional[Dict[str, Any]] = None,
    ):
        self.ocr_backend = ocr_backend
        self.translator_backend = translator_backend
        self.ocr_backend_kwargs = dict(ocr_backend_kwargs or {})
        self.translator_backend_kwargs = dict(translator_backend_kwargs or {})

        self._ocr_lock = threading.RLock()
        self._ocr_engine: Optional[BaseOCREngine] = None
        self._ocr_language: Optional[str] = None

        self._tr_lock = threading.Lock()
        self._translator: Optional[BaseTranslator] = None
        self._translator_state = LoadState.NOT_LOADED
        self._subscribers: List[Callable[[LoadState], None]] = []

    # -----------------------------
    # Recognizer
    # -----------------------------
    @property
    def current_language(self) -> Optional[str]:
        return self._ocr_language

    def _teardown_recognizer(self) -> None:
        if self._ocr_engine is None:
            return
        logger.info("Tearing down recognizer for language, %s", self._ocr_language)
        try:
            self._ocr_engine.close()
        except Exception:
            logger.exception("Recognizer teardown failed")
        self._ocr_engine = None
        self._ocr_language = None

    def _build_recognizer(self, language: str) -> BaseOCREngine:
        logger.info("Initializing recognizer, backend, %s, language, %s", self.ocr_backend, language)
        try:
            EngineCls = import_obj(self.ocr_backend)
        except ImportError as e:
            raise RecognizerError(f"Cannot import backend {self.ocr_backend}, {e}", step="Initializing OCR") from e
        try:
            return EngineCls(language=language, **self.ocr_backend_kwargs)
        except RecognizerError:
            raise
        except Exception as e:
            raise RecognizerError(f"Backend initialization failed, {e}", step="Initializing OCR") from e

    @contextmanager
    def recognizer(self, language: str) -> Iterator[BaseOCREngine]:
        with self._ocr_lock:
            if self._ocr_engine is None or self._ocr_language != language:
                self._teardown_recognizer()
                self._ocr_engine = self._build_recognizer(language)
                self._ocr_language = language
            yield self._ocr_engine

    # -----------------------------
    # Translator
    # -----------------------------
    @property
    def translator_state(self) -> LoadState:
        return self._translator_state

    def subscribe(self, callback: Callable[[LoadState], None]) -> Callable[[], None]:
        """Register for translator load state changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)
        callback(self._translator_state)

        def _unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return _unsubscribe

    def _set_translator_state(self, state: LoadState) -> None:
        self._translator_state = state
        for cb in list(self._subscribers):
            try:
                cb(state)
            except Exception:
                logger.exception("Translator state subscriber failed")

    def translator(self) -> BaseTranslator:
        with self._tr_lock:
            if self._translator is not None:
                return self._translator
            self._set_translator_state(LoadState.LOADING)
            logger.info("Loading translator, %s", self.translator_backend)
            try:
                TranslatorCls = import_obj(self.translator_backend)
                self._translator = TranslatorCls(**self.translator_backend_kwargs)
            except TranslationError:
                self._set_translator_state(LoadState.NOT_LOADED)
                raise
            except Exception as e:
                self._set_translator_state(LoadState.NOT_LOADED)
                raise TranslationError(f"Translator initialization failed, {e}", step="Loading Translator") from e
            self._set_translator_state(LoadState.READY)
            return self._translator

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def close(self) -> None:
        with self._ocr_lock:
            self._teardown_recognizer()
        with self._tr_lock:
            if self._translator is not None:
                try:
                    self._translator.close()
                except Exception:
                    logger.exception("Translator teardown failed")
                self._translator = None
                self._set_translator_state(LoadState.NOT_LOADED)
