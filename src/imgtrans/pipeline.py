# src/imgtrans/pipeline.py
"""
The execution stage: one PROCESS_IMAGE message in, one result out.

fetch -> compress -> recognize -> normalize -> filter -> translate

Every failure leaves this module as a ``PipelineError`` tagged with the
step it happened in; ``handle`` turns it into an error answer so the
scheduler sees ``[<step>] <detail>``.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from .exceptions import DeliveryError, PipelineError
from .fetch import FetchResolver
from .filters import DEFAULT_MIN_CONFIDENCE, filter_blocks
from .imaging import MAX_UPLOAD_BYTES, compress_image, image_size
from .models import ProcessResult
from .normalizer import normalize
from .resources import ResourceManager
from .translation import TranslationInvoker
from .transport import PROCESS_IMAGE
from .utils import joiner_for

logger = logging.getLogger("imgtrans")

STEP_FETCH = "Fetching Image"
STEP_COMPRESS = "Compressing Image"
STEP_OCR = "Running OCR"
STEP_NORMALIZE = "Normalizing"
STEP_FILTER = "Filtering"
STEP_TRANSLATE = "Translating"


@contextmanager
def _step(name: str, timings: Dict[str, float]) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except PipelineError:
        raise
    except Exception as e:
        raise PipelineError(str(e) or type(e).__name__, step=name) from e
    finally:
        timings[name] = round(time.perf_counter() - start, 6)


class ImagePipeline:
    def __init__(
        self,
        resolver: FetchResolver,
        resources: ResourceManager,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ):
        self.resolver = resolver
        self.resources = resources
        self.min_confidence = min_confidence
        self.max_upload_bytes = max_upload_bytes
        self._accepting = threading.Event()
        self._accepting.set()

    def close(self) -> None:
        self._accepting.clear()

    # -----------------------------
    # Message endpoint
    # -----------------------------
    def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if not self._accepting.is_set():
            raise DeliveryError("execution stage is not accepting messages")
        if message.get("type") != PROCESS_IMAGE:
            return {"result": ProcessResult(success=False, error=f"unknown message type {message.get('type')!r}")}

        src = message.get("src")
        logger.info("Processing image request received for, %s", src)
        result = self.process(
            src,
            page_url=message.get("page_url"),
            source_lang=message.get("source_lang"),
            target_lang=message.get("target_lang"),
        )
        return {"result": result}

    # -----------------------------
    # Steps
    # -----------------------------
    def process(
        self,
        src: str,
        page_url: Optional[str] = None,
        source_lang: Optional[str] = None,
        target_lang: Optional[str] = None,
    ) -> ProcessResult:
        timings: Dict[str, float] = {}
        try:
            with _step(STEP_FETCH, timings):
                fetched = self.resolver.fetch(src, page_url)

            with _step(STEP_COMPRESS, timings):
                payload = compress_image(fetched.content, self.max_upload_bytes)
                img_width, img_height = image_size(payload)

            with _step(STEP_OCR, timings):
                with self.resources.recognizer(source_lang or "en") as engine:
                    raw = engine.recognize(payload)

            with _step(STEP_NORMALIZE, timings):
                blocks = normalize(raw, joiner_for(source_lang))

            with _step(STEP_FILTER, timings):
                kept, stats = filter_blocks(blocks, self.min_confidence)
            if stats.total_dropped:
                logger.debug("Dropped %d of %d blocks, %s", stats.total_dropped, len(blocks), stats.dropped)

            if not kept:
                logger.info("No text found in image, %s", src)
                return ProcessResult(
                    success=True, fetch_tier=fetched.tier, dropped=stats.dropped, timings=timings,
                )

            with _step(STEP_TRANSLATE, timings):
                invoker = TranslationInvoker(self.resources.translator())
                translated = invoker.translate_blocks(kept, source_lang, target_lang)

        except PipelineError as e:
            logger.error("Pipeline failed for %s, %s", src, e)
            return ProcessResult(success=False, error=str(e), timings=timings)

        logger.info("Image pipeline completed successfully for, %s", src)
        return ProcessResult(
            success=True,
            blocks=translated,
            img_width=img_width,
            img_height=img_height,
            image_bytes=payload,
            fetch_tier=fetched.tier,
            dropped=stats.dropped,
            timings=timings,
        )
