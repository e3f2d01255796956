# src/imgtrans/settings_store.py
from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Union

from .models import DomainSettings

logger = logging.getLogger("imgtrans")


class SettingsStore:
    """
    Per-domain language settings kept in one JSON file::

        {"example.com": {"source_lang": "ja", "target_lang": "en", "auto_run": false}}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Settings file unreadable, using defaults, %s, %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Settings file has unexpected shape, using defaults, %s", self.path)
            return {}
        return data

    def get(self, domain: str) -> DomainSettings:
        with self._lock:
            record = self._read().get((domain or "").lower())
        if not isinstance(record, dict):
            return DomainSettings()
        defaults = DomainSettings()
        return DomainSettings(
            source_lang=record.get("source_lang") or defaults.source_lang,
            target_lang=record.get("target_lang") or defaults.target_lang,
            auto_run=bool(record.get("auto_run", defaults.auto_run)),
        )

    def set(self, domain: str, settings: DomainSettings) -> None:
        with self._lock:
            data = self._read()
            data[(domain or "").lower()] = asdict(settings)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info("Saved settings for, %s", domain)
