"""Application configuration management."""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

CONFIG_DIR = Path.home() / ".config" / "dub"
CONFIG_FILE = CONFIG_DIR / "config.json"
LOG_DIR = CONFIG_DIR / "logs"

DEFAULT_CONFIG = {
    "settings": {
        "model": "llama-3.3-70b-versatile",
        "auto_start": False,
        "transparency_level": 0.95,
        "auto_delete_transcripts": True,
    },
    "resume": None,
    "job_description": None,
    # provider -> encrypted secret dict, see dub.core.credentials
    "api_keys": {},
    "audio": {
        "rate": 16000,
        "channels": 1,
        "chunk": 1024,
        "input_device": None,
        "max_recording_seconds": 600,
    },
}

DEFAULT_UPDATE_CHECK_INTERVAL_MS = 60 * 60 * 1000

_LOG = logging.getLogger("dub.config")


def _merge(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def normalize_config(config):
    """Merge saved data over the defaults, keeping unknown keys."""
    if not isinstance(config, dict):
        config = {}
    normalized = _merge(DEFAULT_CONFIG, config)
    if not isinstance(normalized.get("api_keys"), dict):
        normalized["api_keys"] = {}
    return normalized


def load_config():
    """Load config from file or create default."""
    try:
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        if CONFIG_FILE.exists():
            with open(CONFIG_FILE, encoding="utf-8") as f:
                saved = json.load(f)
                return normalize_config(saved)
    except Exception as exc:
        _LOG.warning(f"Failed to load config from {CONFIG_FILE}: {exc}")
    return normalize_config({})


def save_config(config):
    """Save config to file. Returns True on success."""
    try:
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        normalized = normalize_config(config)
        tmp_path = CONFIG_FILE.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(normalized, f, indent=2)
        tmp_path.replace(CONFIG_FILE)
        return True
    except Exception as exc:
        _LOG.warning(f"Failed to save config to {CONFIG_FILE}: {exc}")
        return False


def get_path(config, path, default=None):
    """Read a dotted-path value such as ``settings.model``."""
    cursor = config
    for key in path.split("."):
        if not isinstance(cursor, dict) or key not in cursor:
            return default
        cursor = cursor[key]
    return cursor


def set_path(config, path, value):
    """Set a dotted-path value, creating intermediate mappings."""
    parts = path.split(".")
    cursor = config
    for key in parts[:-1]:
        node = cursor.get(key)
        if not isinstance(node, dict):
            node = {}
            cursor[key] = node
        cursor = node
    cursor[parts[-1]] = value


@dataclass
class RuntimeOptions:
    """Process-level options read from the environment."""

    log_level: str = "info"
    production: bool = False
    auto_update_enabled: bool = True
    update_check_interval_ms: int = DEFAULT_UPDATE_CHECK_INTERVAL_MS

    @property
    def update_checks_active(self) -> bool:
        return self.production and self.auto_update_enabled

    @classmethod
    def from_env(cls, environ=None) -> "RuntimeOptions":
        env = os.environ if environ is None else environ
        raw_interval = env.get("DUB_UPDATE_CHECK_INTERVAL", "")
        try:
            interval = int(raw_interval)
        except ValueError:
            interval = 0
        if interval <= 0:
            interval = DEFAULT_UPDATE_CHECK_INTERVAL_MS
        return cls(
            log_level=env.get("DUB_LOG_LEVEL", "info").strip().lower() or "info",
            production=env.get("DUB_ENV", "").strip().lower() == "production",
            auto_update_enabled=env.get("DUB_AUTO_UPDATE", "").strip().lower() != "false",
            update_check_interval_ms=interval,
        )
