# src/imgtrans/cli.py
from __future__ import annotations

import argparse
import ast
import importlib
import json
import logging
import queue
import re
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import httpx
from tqdm import tqdm

from .config import PipelineConfig
from .document import HtmlDocument
from .fetch import FetchResolver
from .logger import configure_thread_logging, setup_logging
from .models import DomainSettings, ImageTask
from .pipeline import ImagePipeline
from .relay import BasePageRelay, HttpPageRelay, SessionPageRelay
from .resources import ResourceManager
from .scheduler import TaskScheduler
from .settings_store import SettingsStore
from .transport import Transport
from .utils import domain_of, safe_fname

__all__ = ["load_document", "run_scan", "main"]

logger = logging.getLogger("imgtrans")

USER_AGENT = "Mozilla/5.0 (compatible; imgtrans)"

# Helper

def _parse_backend_kwargs(val, flag: str = "--ocr-backend-kwargs") -> dict:
    """
    Accept several syntaxes for the backend kwargs flags:
      1) JSON (double quotes)                      {"psm":6,"oem":3}
      2) JSON wrapped in single quotes             '{"psm":6,"oem":3}'
      3) Python-literal dict with single quotes    {'psm': 6, 'oem': 3}
      4) key=value pairs separated by , or ;       psm=6;oem=3
    """
    if isinstance(val, dict):
        return dict(val)
    if not isinstance(val, str):
        return {}

    s = val.strip()
    if not s:
        return {}
    # Strip outer quotes like '"{...}"' or "'{...}'"
    if len(s) >= 2 and s[0] in ("'", '"') and s[-1] == s[0]:
        s = s[1:-1].strip()

    try:
        parsed = json.loads(s)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass

    try:
        lit = ast.literal_eval(s)
        if isinstance(lit, dict):
            return lit
    except (ValueError, SyntaxError):
        pass

    # Fallback: key=value pairs
    out: dict = {}
    for part in re.split(r"[;,]\s*", s):
        if not part:
            continue
        if "=" in part:
            k, v = part.split("=", 1)
        elif ":" in part:
            k, v = part.split(":", 1)
        else:
            continue

        k = k.strip().strip('"\'').lstrip("{[").rstrip("}]").strip().lower().replace("-", "_")
        v = v.strip().strip('"\'').lstrip("{[").rstrip("}]").rstrip(",").strip()

        low = v.lower()
        if low in ("true", "false"):
            v = (low == "true")
        elif re.fullmatch(r"-?\d+", v):
            v = int(v)
        elif re.fullmatch(r"-?\d+\.\d*", v):
            v = float(v)
        out[k] = v

    if out:
        return out

    raise SystemExit(f"Invalid {flag}. Could not parse: {val!r}")


OCR_BACKEND_ALIASES = {
    "tess": "imgtrans.ocr_backends.tesseract_backend.TesseractOCREngine",
    "tesseract": "imgtrans.ocr_backends.tesseract_backend.TesseractOCREngine",
    "pytesseract": "imgtrans.ocr_backends.tesseract_backend.TesseractOCREngine",
    "ocrspace": "imgtrans.ocr_backends.ocrspace_backend.OCRSpaceEngine",
    "ocr.space": "imgtrans.ocr_backends.ocrspace_backend.OCRSpaceEngine",
    "easy": "imgtrans.ocr_backends.easyocr_backend.EasyOCREngine",
    "easyocr": "imgtrans.ocr_backends.easyocr_backend.EasyOCREngine",
}

TRANSLATOR_ALIASES = {
    "deepl": "imgtrans.translator_backends.deepl_backend.DeepLTranslator",
    "identity": "imgtrans.translator_backends.identity_backend.IdentityTranslator",
    "none": "imgtrans.translator_backends.identity_backend.IdentityTranslator",
}


def _normalize_backend_alias(name: Optional[str], aliases: dict) -> Optional[str]:
    """
    Allow short aliases (case-insensitive). Returns a fully qualified
    dotted path 'module.Class', or the input untouched if it already is one.
    """
    if not name:
        return name
    original = name.strip().strip('"\'')
    return aliases.get(original.lower(), original)


def _preflight_backend_import(dotted: str, flag: str) -> None:
    """
    Import the backend class now so a typo fails fast with a clear message
    instead of failing every task later.
    """
    try:
        module_path, cls_name = dotted.rsplit(".", 1)
    except ValueError:
        raise SystemExit(f"{flag} must be an alias or 'module.Class', got: {dotted!r}")

    try:
        mod = importlib.import_module(module_path)
    except ImportError as e:
        raise SystemExit(f"Cannot import backend module: {module_path!r} ({e})")

    if not hasattr(mod, cls_name):
        raise SystemExit(f"Backend class not found: {dotted}")


def _normalize_output_path(arg: Path, source: str) -> Path:
    """
    Accept both files and directories for --output-path.
    - If arg is an existing directory: name the file after the input inside it.
    - If arg has no suffix: add .html
    Ensures the parent directory exists.
    """
    out = Path(arg)
    if out.exists() and out.is_dir():
        stem = Path(httpx.URL(source).path).stem if _is_url(source) else Path(source).stem
        out = out / safe_fname(f"{stem or 'page'}_translated_{datetime.now():%Y%m%d_%H%M%S}.html")
    elif out.suffix == "":
        out = out.with_suffix(".html")
    out.parent.mkdir(parents=True, exist_ok=True)
    return out


def _is_url(value: str) -> bool:
    return str(value).lower().startswith(("http://", "https://"))


# -------------------------------
# Library entry points
# -------------------------------

def load_document(source: str, client: httpx.Client, page_url: Optional[str] = None) -> HtmlDocument:
    """Read an HTML page from a URL (through ``client``) or from a local file."""
    if _is_url(source):
        logger.info("Loading page, %s", source)
        resp = client.get(source)
        resp.raise_for_status()
        return HtmlDocument(resp.content, page_url=page_url or str(resp.url))

    path = Path(source)
    if not path.is_file():
        raise FileNotFoundError(f"Input document does not exist, {path}")
    logger.info("Loading file, %s", path)
    return HtmlDocument.from_file(path, page_url=page_url or "")


def _build_relay(config: PipelineConfig, session: httpx.Client, page_url: str) -> Optional[BasePageRelay]:
    if config.relay_url:
        return HttpPageRelay(config.relay_url, timeout=config.fetch_timeout)
    if _is_url(page_url):
        return SessionPageRelay(session, page_url)
    return None


def run_scan(
    config: PipelineConfig,
    document: HtmlDocument,
    session: httpx.Client,
    settings: Optional[DomainSettings] = None,
    show_progress: bool = True,
) -> Tuple[List[ImageTask], TaskScheduler]:
    """
    Wire the execution stage and the scheduler for one document and run
    every discovered image to a terminal state.
    """
    transport = Transport(config.retries, config.retry_delay)
    relay = _build_relay(config, session, document.page_url)
    resolver = FetchResolver(relay=relay, transport=transport, timeout=config.fetch_timeout)
    resources = ResourceManager(
        config.ocr_backend,
        config.translator_backend,
        ocr_backend_kwargs=config.ocr_backend_kwargs,
        translator_backend_kwargs=config.translator_backend_kwargs,
    )
    resources.subscribe(lambda state: logger.info("Translator state, %s", state.value))
    pipeline = ImagePipeline(
        resolver,
        resources,
        min_confidence=config.min_confidence,
        max_upload_bytes=config.max_upload_bytes,
    )

    pbar = None
    scheduler = TaskScheduler(
        document,
        pipeline.handle,
        config=config,
        transport=transport,
        on_task_finished=lambda task: pbar.update(1) if pbar is not None else None,
    )
    try:
        tasks = scheduler.discover(settings)
        if not tasks:
            logger.info("No new images to translate")
            return tasks, scheduler

        logger.info("Starting translation of %d image(s)", len(tasks))
        pbar = tqdm(total=len(tasks), desc="Translating images", disable=not show_progress)
        for task in tasks:
            scheduler.enqueue(task)
        scheduler.run_loop()
        return tasks, scheduler
    finally:
        scheduler.close()
        if pbar is not None:
            pbar.close()
        pipeline.close()
        resources.close()
        resolver.close()
        if relay is not None:
            relay.close()


# -------------------------------
# CLI parsing
# -------------------------------

def _add_scan_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("-i", "--input", required=True, help="HTML file or http(s) URL of the page to translate")
    p.add_argument(
        "-o", "--output-path", type=Path, required=True,
        help="Output HTML path. Accepts a file OR a directory (a timestamped file will be created inside).",
    )
    p.add_argument("--page-url", help="URL the page was served from (for relative images and Referer)")
    p.add_argument("-s", "--source-lang", help="Source language code, defaults to the domain setting")
    p.add_argument("-t", "--target-lang", help="Target language code, defaults to the domain setting")
    p.add_argument("--settings-path", type=Path, help="Path of the per-domain settings JSON file")

    p.add_argument("--ocr-backend", default="tesseract", help="Alias (tesseract, ocrspace, easyocr) or dotted path")
    p.add_argument(
        "--ocr-backend-kwargs", default="{}",
        help='Backend init kwargs as JSON or key=value pairs, e.g. \'{"psm": 6}\'  or  psm=6;oem=1',
    )
    p.add_argument("--translator", default="deepl", help="Alias (deepl, identity) or dotted path")
    p.add_argument("--translator-kwargs", default="{}", help="Translator init kwargs, same syntax")

    p.add_argument("-c", "--max-concurrent", type=int, help="Images processed at the same time")
    p.add_argument("--min-confidence", type=float, help="Drop text blocks below this confidence (0-100)")
    p.add_argument("--min-image-size", type=int, help="Skip images declared smaller than this (px)")
    p.add_argument("--render-mode", choices=["raster", "layer"], help="Redraw the image or stack a text layer")
    p.add_argument("--relay-url", help="Endpoint of a page-context fetch relay")
    p.add_argument("--timeout", dest="fetch_timeout", type=float, help="Network timeout in seconds")
    p.add_argument("--retries", type=int, help="Message delivery attempts")
    p.add_argument("--error-log-path", type=Path, help="Path to save the error log JSONL file")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")

    perf_group = p.add_argument_group("Performance logging")
    perf_group.add_argument("--log-performance", action="store_true", help="Enable performance logging to a file")
    perf_group.add_argument("--performance-log-path", type=Path, help="Path for the performance log JSONL file")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="imgtrans, translate the text inside a page's images")
    subparsers = parser.add_subparsers(dest="command")

    run_p = subparsers.add_parser("run", help="Scan a page and translate its images")
    _add_scan_arguments(run_p)

    auto_p = subparsers.add_parser("auto", help="Like run, but only when auto-run is enabled for the domain")
    _add_scan_arguments(auto_p)

    set_p = subparsers.add_parser("settings", help="Show or change the settings of a domain")
    set_p.add_argument("domain", help="Host name, e.g. example.com")
    set_p.add_argument("-s", "--source-lang")
    set_p.add_argument("-t", "--target-lang")
    set_p.add_argument("--auto", dest="auto_run", action="store_true", default=None, help="Enable auto-run")
    set_p.add_argument("--no-auto", dest="auto_run", action="store_false", help="Disable auto-run")
    set_p.set_defaults(auto_run=None)
    set_p.add_argument("--settings-path", type=Path)

    return parser.parse_args(argv)


# -------------------------------
# Entry points
# -------------------------------

def _config_from_args(args: argparse.Namespace, log_queue) -> PipelineConfig:
    ocr_backend = _normalize_backend_alias(args.ocr_backend, OCR_BACKEND_ALIASES)
    _preflight_backend_import(ocr_backend, "--ocr-backend")
    translator = _normalize_backend_alias(args.translator, TRANSLATOR_ALIASES)
    _preflight_backend_import(translator, "--translator")

    cfg_dict = {
        "source_lang": args.source_lang,
        "target_lang": args.target_lang,
        "max_concurrent": args.max_concurrent,
        "min_confidence": args.min_confidence,
        "min_image_size": args.min_image_size,
        "ocr_backend": ocr_backend,
        "ocr_backend_kwargs": _parse_backend_kwargs(args.ocr_backend_kwargs),
        "translator_backend": translator,
        "translator_backend_kwargs": _parse_backend_kwargs(args.translator_kwargs, "--translator-kwargs"),
        "render_mode": args.render_mode,
        "relay_url": args.relay_url,
        "fetch_timeout": args.fetch_timeout,
        "retries": args.retries,
        "error_log_path": args.error_log_path,
        "log_performance": args.log_performance,
        "performance_log_path": args.performance_log_path,
        "settings_path": args.settings_path,
        "log_queue": log_queue,
    }
    cfg_dict = {k: v for k, v in cfg_dict.items() if v is not None}
    try:
        return PipelineConfig.from_dict(cfg_dict)
    except ValueError as e:
        raise SystemExit(str(e))


def _run_from_cli(args: argparse.Namespace, auto: bool = False) -> int:
    log_queue: queue.Queue = queue.Queue(-1)
    args.output_path = _normalize_output_path(args.output_path, args.input)
    log_file = args.output_path.with_suffix(".log")

    listener = setup_logging(
        log_queue,
        level=logging.DEBUG if args.verbose else logging.INFO,
        file_path=log_file,
        file_level=logging.DEBUG,
    )
    listener.start()
    configure_thread_logging(log_queue)

    try:
        config = _config_from_args(args, log_queue)
        logger.info("Starting imgtrans")
        logger.info("Input, %s", args.input)
        logger.info("Output file, %s", args.output_path)
        logger.info(
            "OCR backend, %s | Translator, %s | Max concurrent, %s | Render mode, %s",
            config.ocr_backend, config.translator_backend, config.max_concurrent, config.render_mode,
        )

        with httpx.Client(
            timeout=config.fetch_timeout, follow_redirects=True, headers={"User-Agent": USER_AGENT}
        ) as session:
            try:
                document = load_document(args.input, session, page_url=args.page_url)
            except (httpx.HTTPError, OSError) as e:
                logger.error("Could not load the input document, %s", e)
                return 1

            domain = domain_of(document.page_url)
            settings = SettingsStore(config.settings_path).get(domain)
            if auto and not settings.auto_run:
                logger.info("Auto-run is off for, %s. Nothing to do", domain or "<local file>")
                return 0

            tasks, _ = run_scan(config, document, session, settings)

        args.output_path.write_text(document.to_html(), encoding="utf-8")
        done = sum(1 for t in tasks if t.status.value == "done" and not t.no_text)
        no_text = sum(1 for t in tasks if t.no_text)
        failed = sum(1 for t in tasks if t.status.value == "failed")
        logger.info("Translated, %d | No text, %d | Failed, %d", done, no_text, failed)
        logger.info("Wrote, %s", args.output_path)
        return 1 if failed and not done else 0
    finally:
        listener.stop()


def _settings_from_cli(args: argparse.Namespace) -> int:
    path = args.settings_path or PipelineConfig().settings_path
    store = SettingsStore(path)
    current = store.get(args.domain)
    changed = args.source_lang is not None or args.target_lang is not None or args.auto_run is not None
    if changed:
        current = DomainSettings(
            source_lang=args.source_lang or current.source_lang,
            target_lang=args.target_lang or current.target_lang,
            auto_run=current.auto_run if args.auto_run is None else args.auto_run,
        )
        store.set(args.domain, current)
    print(json.dumps({args.domain: asdict(current)}, indent=2))
    return 0


def main(argv: Optional[List[str]] = None):
    args = _parse_args(argv)

    if args.command == "run":
        sys.exit(_run_from_cli(args))
    if args.command == "auto":
        sys.exit(_run_from_cli(args, auto=True))
    if args.command == "settings":
        sys.exit(_settings_from_cli(args))

    print(
        "Usage:\n"
        "  imgtrans run -i <page.html|URL> -o <out.html> [options]\n"
        "  imgtrans auto -i <page.html|URL> -o <out.html> [options]\n"
        "  imgtrans settings <domain> [-s ja] [-t en] [--auto|--no-auto]"
    )
    sys.exit(2)


if __name__ == "__main__":
    main()
