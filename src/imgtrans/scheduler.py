# src/imgtrans/scheduler.py
from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional

from .config import PipelineConfig
from .document import HtmlDocument
from .exceptions import PipelineError
from .models import DomainSettings, ImageTask, ProcessResult, TaskStatus
from .renderer import BaseRenderer, get_renderer
from .transport import PROCESS_IMAGE, Endpoint, Transport

logger = logging.getLogger("imgtrans")

STEP_RENDER = "Rendering"

# element markers, kept on the <img> between scans
MARK_QUEUED = "queued"
MARK_PROCESSING = "processing"
MARK_DONE = "done"
MARK_NO_TEXT = "no-text"


class TaskScheduler:
    """
    Discovers images in one document and runs them through the execution
    stage, at most ``max_concurrent`` at a time.

    Dispatch is FIFO. A finished task (done or failed) frees its slot in the
    completion callback, which then dispatches the next queued task; that
    callback is the only place the active count goes down. All document
    mutations happen under ``doc_lock``.
    """

    def __init__(
        self,
        document: HtmlDocument,
        endpoint: Endpoint,
        config: Optional[PipelineConfig] = None,
        transport: Optional[Transport] = None,
        renderer: Optional[BaseRenderer] = None,
        on_task_finished: Optional[Callable[[ImageTask], None]] = None,
    ):
        self.config = config or PipelineConfig()
        self.document = document
        self.endpoint = endpoint
        self.transport = transport or Transport(self.config.retries, self.config.retry_delay)
        self.renderer = renderer or get_renderer(self.config.render_mode, document)
        self.on_task_finished = on_task_finished

        self.max_concurrent = max(1, int(self.config.max_concurrent))
        self.doc_lock = threading.RLock()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._queue: Deque[ImageTask] = deque()
        self._active = 0
        self._next_id = 1
        self._started: Dict[int, float] = {}
        self.tasks: List[ImageTask] = []
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix="imgtrans-worker"
        )

    # -----------------------------
    # Logging helpers
    # -----------------------------
    def _log_error(self, task: ImageTask, reason: str):
        if not self.config.error_log_path:
            return
        try:
            self.config.error_log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config.error_log_path, "a", encoding="utf-8") as f:
                log_entry = {
                    "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
                    "src": task.src,
                    "page_url": task.page_url,
                    "error_reason": reason,
                }
                f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")
        except Exception:
            logger.exception("Failed to write error log")

    def _log_performance(self, metric: Dict[str, Any]):
        if not self.config.log_performance or not self.config.performance_log_path:
            return
        path = self.config.performance_log_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                log_entry = {"timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"), **metric}
                f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")
        except Exception:
            logger.exception("Failed to write performance log")

    # -----------------------------
    # Discovery
    # -----------------------------
    def _large_enough(self, img) -> bool:
        width, height = self.document.declared_size(img)
        limit = self.config.min_image_size
        # undeclared dimensions are admitted, the page gives no size to judge by
        if width is not None and width < limit:
            return False
        if height is not None and height < limit:
            return False
        return True

    def discover(self, settings: Optional[DomainSettings] = None) -> List[ImageTask]:
        """
        Find candidate images, mark them queued and put the "Queued..."
        indicator on each. Elements that already carry a status are skipped,
        so calling this again only picks up new images.
        """
        settings = settings or DomainSettings()
        source_lang = self.config.source_lang or settings.source_lang
        target_lang = self.config.target_lang or settings.target_lang

        found: List[ImageTask] = []
        with self.doc_lock:
            for img in list(self.document.images()):
                if self.document.status(img):
                    continue
                if not self._large_enough(img):
                    continue
                src = self.document.resolve_src(img)
                if not src:
                    logger.debug("Skipping image without a fetchable source, %s", img.get("src"))
                    continue

                self.document.set_status(img, MARK_QUEUED)
                wrapper, indicator = self.document.wrap_with_indicator(img)
                with self._lock:
                    task_id = self._next_id
                    self._next_id += 1
                task = ImageTask(
                    task_id=task_id,
                    element=img,
                    src=src,
                    page_url=self.document.page_url,
                    source_lang=source_lang,
                    target_lang=target_lang,
                    wrapper=wrapper,
                    indicator=indicator,
                )
                found.append(task)

        logger.info("Discovered %d new image(s) in, %s", len(found), self.document.page_url or "<document>")
        return found

    # -----------------------------
    # Queue
    # -----------------------------
    def enqueue(self, task: ImageTask) -> None:
        with self._lock:
            task.status = TaskStatus.QUEUED
            self.tasks.append(task)
            self._queue.append(task)
        logger.debug("Queued task %d, %s", task.task_id, task.src)
        self._pump()

    def _pump(self) -> None:
        """Dispatch queued tasks while there are free slots."""
        while True:
            with self._lock:
                if self._active >= self.max_concurrent or not self._queue:
                    return
                task = self._queue.popleft()
                self._active += 1
                task.status = TaskStatus.PROCESSING
                self._started[task.task_id] = time.perf_counter()

            with self.doc_lock:
                self.document.set_status(task.element, MARK_PROCESSING)
                self.document.set_indicator_label(task.indicator, "Processing...")
            logger.progress(
                "task dispatched",
                extra={"phase": "process", "task_id": task.task_id, "status": task.status.value},
            )

            future = self._executor.submit(self._execute, task)
            future.add_done_callback(partial(self._on_done, task))

    def _execute(self, task: ImageTask) -> ProcessResult:
        message = {
            "type": PROCESS_IMAGE,
            "src": task.src,
            "page_url": task.page_url,
            "source_lang": task.source_lang,
            "target_lang": task.target_lang,
        }
        response = self.transport.send(self.endpoint, message)
        result = (response or {}).get("result")
        if not isinstance(result, ProcessResult):
            return ProcessResult(success=False, error="Malformed response from execution stage")
        return result

    # -----------------------------
    # Completion
    # -----------------------------
    def _on_done(self, task: ImageTask, future: Future) -> None:
        try:
            try:
                result = future.result()
            except PipelineError as e:
                result = ProcessResult(success=False, error=str(e))
            except Exception as e:
                logger.exception("Unexpected failure dispatching task %d", task.task_id)
                result = ProcessResult(success=False, error=str(e) or type(e).__name__)

            with self.doc_lock:
                self._finish(task, result)
        finally:
            self._release(task)

    def _finish(self, task: ImageTask, result: ProcessResult) -> None:
        if not result.success:
            self._fail(task, result.error or "Unknown error")
        elif result.no_text:
            self._unwind(task)
            self.document.set_status(task.element, MARK_NO_TEXT)
            task.status = TaskStatus.DONE
            task.no_text = True
            logger.warning("No text found in image, %s", task.src)
        else:
            try:
                self.renderer.render(
                    task.element, result.blocks, result.img_width, result.img_height, result.image_bytes
                )
            except Exception as e:
                logger.exception("Rendering failed for %s", task.src)
                self._fail(task, str(PipelineError(str(e) or type(e).__name__, step=STEP_RENDER)))
                return
            self.document.remove_indicator(task.indicator)
            # the layer strategy draws inside the wrapper, so it stays
            if self.renderer.mode == "raster":
                self.document.unwrap(task.element, task.wrapper)
            self.document.set_status(task.element, MARK_DONE)
            task.status = TaskStatus.DONE
            logger.info("Translated %d block(s) in, %s", len(result.blocks), task.src)

        self._log_performance({
            "src": task.src,
            "task_id": task.task_id,
            "success": result.success,
            "blocks": len(result.blocks),
            "fetch_tier": result.fetch_tier.value if result.fetch_tier else None,
            "dropped": result.dropped,
            "steps": result.timings,
            "wall_clock_total_seconds": round(
                time.perf_counter() - self._started.get(task.task_id, time.perf_counter()), 4
            ),
        })

    def _unwind(self, task: ImageTask) -> None:
        self.document.remove_indicator(task.indicator)
        self.document.unwrap(task.element, task.wrapper)

    def _fail(self, task: ImageTask, reason: str) -> None:
        self._unwind(task)
        # cleared so a later scan may pick the element up again
        self.document.set_status(task.element, None)
        task.status = TaskStatus.FAILED
        task.error = reason
        logger.error("Failed to process image %s, %s", task.src, reason)
        self._log_error(task, reason)

    def _release(self, task: ImageTask) -> None:
        with self._lock:
            self._started.pop(task.task_id, None)
            finished = sum(1 for t in self.tasks if t.status.is_terminal)
            total = len(self.tasks)
        logger.progress(
            "task finished",
            extra={
                "phase": "process",
                "task_id": task.task_id,
                "status": task.status.value,
                "current": finished,
                "total": total,
            },
        )
        # run_loop must not see the slot free before the callback returned
        if self.on_task_finished is not None:
            try:
                self.on_task_finished(task)
            except Exception:
                logger.exception("Task finished callback failed")
        with self._lock:
            self._active -= 1
            self._idle.notify_all()
        self._pump()

    # -----------------------------
    # Loop control
    # -----------------------------
    @property
    def active_count(self) -> int:
        with self._lock:
            return self._active

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def run_loop(self, timeout: Optional[float] = None) -> bool:
        """
        Kick dispatching and block until the queue is drained and no task
        is active. Returns False if ``timeout`` expired first.
        """
        self._pump()
        with self._idle:
            return self._idle.wait_for(lambda: self._active == 0 and not self._queue, timeout=timeout)

    def scan(self, settings: Optional[DomainSettings] = None, timeout: Optional[float] = None) -> List[ImageTask]:
        """Discover, enqueue and run everything found. Returns the new tasks."""
        tasks = self.discover(settings)
        for task in tasks:
            self.enqueue(task)
        self.run_loop(timeout=timeout)
        return tasks

    def close(self) -> None:
        self._executor.shutdown(wait=True)
