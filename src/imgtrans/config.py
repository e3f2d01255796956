# imgtrans/config.py
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, Optional


@dataclass
class PipelineConfig:
    """Configuration for an imgtrans scan."""
    source_lang: Optional[str] = None
    target_lang: Optional[str] = None

    max_concurrent: int = 1
    min_image_size: int = 64
    min_confidence: float = 30.0
    max_upload_bytes: int = 1024 * 1024

    ocr_backend: str = "imgtrans.ocr_backends.tesseract_backend.TesseractOCREngine"
    ocr_backend_kwargs: Dict[str, Any] = field(default_factory=dict)
    translator_backend: str = "imgtrans.translator_backends.deepl_backend.DeepLTranslator"
    translator_backend_kwargs: Dict[str, Any] = field(default_factory=dict)

    render_mode: str = "raster"   # "raster" or "layer"

    # message transport between the scheduler, the execution stage and the page relay
    retries: int = 5
    retry_delay: float = 1.0
    fetch_timeout: float = 30.0
    relay_url: Optional[str] = None

    error_log_path: Optional[Path] = Path("imgtrans_error_log.jsonl")
    log_performance: bool = False
    performance_log_path: Optional[Path] = None
    settings_path: Path = Path.home() / ".imgtrans" / "settings.json"

    log_queue: Optional[Any] = None

    def to_dict(self):
        """Converts config to a plain dictionary (paths become strings)."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Path):
                d[key] = str(value)
        return d

    @classmethod
    def from_dict(cls, config_dict: dict):
        d = dict(config_dict)

        # normalize path-like fields
        for key in ["error_log_path", "performance_log_path", "settings_path"]:
            if key in d and isinstance(d[key], str):
                d[key] = Path(d[key])

        # allow explicit None to mean use default
        for key in ["max_concurrent", "min_image_size", "min_confidence", "max_upload_bytes",
                    "retries", "retry_delay", "fetch_timeout", "render_mode", "settings_path"]:
            if d.get(key) is None:
                d.pop(key, None)

        cfg = cls(**d)

        if cfg.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {cfg.max_concurrent}")
        if cfg.render_mode not in ("raster", "layer"):
            raise ValueError(f"Unknown render mode, '{cfg.render_mode}'. Supported modes, ['raster', 'layer']")

        # if logging is on but no path was provided, pick one next to the error log
        if cfg.log_performance and not cfg.performance_log_path:
            base = cfg.error_log_path or Path("imgtrans_error_log.jsonl")
            cfg.performance_log_path = base.with_name("imgtrans_performance_log.jsonl")

        return cfg
