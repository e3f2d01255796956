# src/imgtrans/logger.py

import logging
from pathlib import Path
from queue import Queue
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Union, Optional

# --- Custom Log Level for Progress ---
PROGRESS = 25
logging.addLevelName(PROGRESS, "PROGRESS")

def progress(self, msg, *args, **kwargs):
    if self.isEnabledFor(PROGRESS):
        self._log(PROGRESS, msg, args, **kwargs)

logging.Logger.progress = progress

# --- Custom Handlers (for the Listener) ---
class ProgressEventHandler(logging.Handler):
    """Emits structured task events to a queue for progress displays."""
    def __init__(self, q: Queue):
        super().__init__()
        self.q = q
    def emit(self, record: logging.LogRecord):
        try:
            evt = {
                "level": record.levelname,
                "msg": record.getMessage(),
                "phase": getattr(record, "phase", None),
                "task_id": getattr(record, "task_id", None),
                "status": getattr(record, "status", None),
                "current": getattr(record, "current", None),
                "total": getattr(record, "total", None),
            }
            self.q.put(evt)
        except Exception:
            self.handleError(record)

# --- Custom Filters ---
class OnlyLevelFilter(logging.Filter):
    def __init__(self, levelno: int):
        super().__init__()
        self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self.levelno

class ExcludeLevelFilter(logging.Filter):
    def __init__(self, levelno: int):
        super().__init__()
        self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno != self.levelno

# --- Main Configuration Function ---
def setup_logging(
    log_queue: Queue,
    *,
    event_queue: Optional[Queue] = None,
    level: int = logging.INFO,
    console: bool = True,
    file_path: Optional[Union[str, Path]] = None,
    file_level: Optional[int] = None,
) -> QueueListener:
    """
    Sets up the logging listener architecture.

    Args:
        log_queue: The queue that the library logger writes to.
        event_queue: Optional queue receiving structured PROGRESS events.
        level: The base logging level for console output.
        console: Whether to echo records to stderr.
        file_path: Path to the persistent log file.
        file_level: The logging level for the file.

    Returns:
        A QueueListener instance. You must call .start() on it.
    """
    handlers = []

    if file_path:
        fp = Path(file_path)
        fp.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(fp, maxBytes=5*1024*1024, backupCount=2, encoding="utf-8")
        fh.setLevel(file_level if file_level is not None else level)
        fh.setFormatter(logging.Formatter("%(asctime)s | %(threadName)-15s | %(levelname)-8s | %(message)s"))
        fh.addFilter(ExcludeLevelFilter(PROGRESS))
        handlers.append(fh)

    if console:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(logging.Formatter("%(levelname)-8s %(message)s"))
        ch.addFilter(ExcludeLevelFilter(PROGRESS))
        handlers.append(ch)

    if event_queue is not None:
        eh = ProgressEventHandler(event_queue)
        eh.setLevel(PROGRESS)
        eh.addFilter(OnlyLevelFilter(PROGRESS))
        handlers.append(eh)

    listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    return listener

def configure_thread_logging(log_queue: Queue):
    """
    Routes the library logger through a single QueueHandler.
    Worker threads share the logger, so this is called once per run.
    """
    logger = logging.getLogger("imgtrans")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False
    logger.addHandler(QueueHandler(log_queue))
