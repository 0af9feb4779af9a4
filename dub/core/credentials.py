"""Encrypted API key persistence on top of the config store."""

from __future__ import annotations

import logging
import os
import string
from pathlib import Path

from dub.core import config as core_config
from dub.core.security import DecryptionError, EncryptionError

_LOG = logging.getLogger("dub.credentials")

ENV_FALLBACKS = {
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def _is_valid_key(text: str) -> bool:
    return len(text) == 64 and all(c in string.hexdigits for c in text)


def load_or_create_master_key(store, path=None) -> str:
    """Read the local master key, creating it (mode 0600) on first use."""
    key_path = Path(path) if path is not None else core_config.CONFIG_DIR / "master.key"
    if key_path.exists():
        key = key_path.read_text(encoding="utf-8").strip()
        if _is_valid_key(key):
            return key
        _LOG.warning(f"Master key at {key_path} is malformed, generating a new one")

    key = store.generate_key()
    key_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = key_path.with_suffix(".tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(key)
    tmp_path.replace(key_path)
    return key


def save_api_key(config, provider, api_key, store, master_key, log) -> dict:
    """Validate, encrypt and persist an API key under ``api_keys.<provider>``."""
    api_key = store.sanitize_input(api_key)
    check = store.validate_key_format(api_key, provider)
    if not check["valid"]:
        log.warn("Rejected API key", {"provider": provider, "error": check["error"]})
        return {"success": False, "error": check["error"]}

    try:
        secret = store.encrypt(api_key, master_key)
    except EncryptionError as exc:
        log.error("Failed to encrypt API key", {"provider": provider, "error": str(exc)})
        return {"success": False, "error": str(exc)}

    core_config.set_path(config, f"api_keys.{provider}", secret.to_dict())
    if not core_config.save_config(config):
        return {"success": False, "error": "Failed to save config"}

    log.info("API key saved", {"provider": provider, "key": store.mask_for_logging(api_key)})
    return {"success": True}


def load_api_key(config, provider, store, master_key, log):
    """Return the decrypted key, the environment fallback, or None."""
    entry = core_config.get_path(config, f"api_keys.{provider}")
    if not entry:
        env_name = ENV_FALLBACKS.get(provider)
        if env_name is None:
            return None
        return os.environ.get(env_name) or None

    try:
        return store.decrypt(entry, master_key)
    except DecryptionError:
        log.error("Failed to decrypt stored API key", {"provider": provider})
        return None


def delete_api_key(config, provider) -> bool:
    """Forget a stored key. Returns True if one was removed."""
    keys = config.get("api_keys") or {}
    if provider not in keys:
        return False
    del keys[provider]
    return core_config.save_config(config)
