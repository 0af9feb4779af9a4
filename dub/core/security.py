"""Credential protection: AES-256-GCM secrets, key format checks and log masking."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32  # AES-256
IV_SIZE = 16
TAG_SIZE = 16

API_KEY_PATTERNS = {
    "groq": re.compile(r"^gsk_[a-zA-Z0-9]{32,}$"),
    "openai": re.compile(r"^sk-[a-zA-Z0-9]{32,}$"),
    "anthropic": re.compile(r"^sk-ant-[a-zA-Z0-9-]{32,}$"),
}

# Keep the prefix and first 8 body characters for correlation. Alternation
# order matters: the longest provider prefix must be tried first.
_MASK_PATTERN = re.compile(r"(?<![A-Za-z0-9])((?:sk-ant-|sk-|gsk_)[A-Za-z0-9-]{8})[A-Za-z0-9-]*")
MASK = "****"


class EncryptionError(Exception):
    """Raised when a secret could not be encrypted."""


class DecryptionError(Exception):
    """Raised when a secret could not be decrypted or failed verification."""


@dataclass(frozen=True)
class EncryptedSecret:
    """Hex-encoded AES-GCM output."""

    ciphertext: str
    iv: str
    tag: str

    def to_dict(self) -> dict:
        return {"encrypted": self.ciphertext, "iv": self.iv, "auth_tag": self.tag}

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedSecret":
        return cls(ciphertext=data["encrypted"], iv=data["iv"], tag=data["auth_tag"])


def _key_bytes(key) -> bytes:
    raw = bytes.fromhex(key) if isinstance(key, str) else bytes(key)
    if len(raw) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(raw)}")
    return raw


class SecretStore:
    """Encrypts API credentials at rest and keeps them out of logs."""

    @staticmethod
    def generate_key() -> str:
        """Return a random 256-bit key as hex."""
        return AESGCM.generate_key(bit_length=KEY_SIZE * 8).hex()

    def encrypt(self, plaintext: str, key) -> EncryptedSecret:
        """Encrypt *plaintext* under *key* with a fresh random IV."""
        try:
            aesgcm = AESGCM(_key_bytes(key))
            iv = os.urandom(IV_SIZE)
            sealed = aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        except Exception as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return EncryptedSecret(
            ciphertext=sealed[:-TAG_SIZE].hex(),
            iv=iv.hex(),
            tag=sealed[-TAG_SIZE:].hex(),
        )

    def decrypt(self, secret, key) -> str:
        """Verify and decrypt *secret*.

        Every failure raises the same ``DecryptionError`` so callers cannot
        tell a bad tag from a malformed payload.
        """
        try:
            if isinstance(secret, dict):
                secret = EncryptedSecret.from_dict(secret)
            aesgcm = AESGCM(_key_bytes(key))
            tag = bytes.fromhex(secret.tag)
            if len(tag) != TAG_SIZE:
                raise ValueError("bad tag length")
            data = aesgcm.decrypt(
                bytes.fromhex(secret.iv),
                bytes.fromhex(secret.ciphertext) + tag,
                None,
            )
            return data.decode("utf-8")
        except Exception:
            raise DecryptionError("Decryption failed") from None

    @staticmethod
    def validate_key_format(key, provider) -> dict:
        """Check an API key against the provider's known format."""
        if not key or not isinstance(key, str):
            return {"valid": False, "error": "API key is required"}

        pattern = API_KEY_PATTERNS.get(provider)
        if pattern is None:
            # unknown providers are accepted
            return {"valid": True}

        if not pattern.fullmatch(key):
            return {"valid": False, "error": f"Invalid {provider} API key format"}
        return {"valid": True}

    @staticmethod
    def mask_for_logging(text):
        """Redact recognizable API keys, keeping a short prefix."""
        if not isinstance(text, str):
            return text
        return _MASK_PATTERN.sub(lambda m: m.group(1) + MASK, text)

    @staticmethod
    def sanitize_input(text):
        """Strip angle brackets and surrounding whitespace from user input."""
        if not isinstance(text, str):
            return text
        return re.sub(r"[<>]", "", text).strip()
