"""JSON persistence for per-instance widget settings.

The store plays the host's settings role for the preview host and the
snapshot CLI. It is tolerant of invalid/missing files so a partial or corrupt
write degrades to "no stored value" instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import suppress
from pathlib import Path
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)

_INSTANCES_KEY = "instances"


def _coerce_settings(data: dict[str, Any]) -> dict[str, dict[str, str]]:
    """Keep only string values under string instance ids and keys."""
    instances = data.get(_INSTANCES_KEY)
    if not isinstance(instances, dict):
        return {}
    settings: dict[str, dict[str, str]] = {}
    for instance_id, values in instances.items():
        if not isinstance(instance_id, str) or not isinstance(values, dict):
            continue
        settings[instance_id] = {
            key: value
            for key, value in values.items()
            if isinstance(key, str) and isinstance(value, str)
        }
    return settings


def load_settings(path: Path) -> dict[str, dict[str, str]]:
    """Load all instance settings from disk, falling back to an empty mapping."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("Settings file missing at %s; using defaults.", path)
        return {}
    except OSError as exc:
        logger.warning(
            "Failed to read settings file %s: %s; using defaults.", path, exc
        )
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Settings file at %s is invalid JSON; using defaults.", path)
        return {}

    if not isinstance(data, dict):
        logger.warning(
            "Settings file at %s is not a JSON object; using defaults.", path
        )
        return {}

    return _coerce_settings(data)


def save_settings(path: Path, settings: dict[str, dict[str, str]]) -> None:
    """Persist settings atomically to disk via write-then-replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps({_INSTANCES_KEY: settings}, indent=2, sort_keys=True)
    delay_s = 0.02
    try:
        for attempt in range(4):
            tmp_path.write_text(payload, encoding="utf-8")
            try:
                tmp_path.replace(path)
                return
            except OSError as exc:
                if not _is_retryable_windows_replace_error(exc) or attempt >= 3:
                    raise
                time.sleep(delay_s)
                delay_s = min(0.25, delay_s * 2.0)
    finally:
        with suppress(OSError):
            tmp_path.unlink()


def _is_retryable_windows_replace_error(exc: OSError) -> bool:
    """Return whether an atomic replace failure is likely transient on Windows."""
    winerror = getattr(exc, "winerror", None)
    if winerror in {32, 5, 2}:
        return True
    errno = getattr(exc, "errno", None)
    if errno in {13, 16}:
        return True
    text = str(exc).lower()
    return "used by another process" in text or "permission denied" in text


class JsonSettingsStore:
    """Host settings capability backed by a single JSON file.

    Values are read once at construction and written through on every store.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._settings = load_settings(path)

    @property
    def path(self) -> Path:
        return self._path

    def load_setting(self, instance_id: str, key: str) -> str | None:
        return self._settings.get(instance_id, {}).get(key)

    def store_setting(self, instance_id: str, key: str, value: str) -> None:
        self._settings.setdefault(instance_id, {})[key] = value
        save_settings(self._path, self._settings)
        logger.debug("Stored setting %r for instance %s", key, instance_id)
