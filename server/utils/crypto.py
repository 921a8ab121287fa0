"""Encryption for per-prompt LLM API keys stored alongside evaluation prompts."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet

from server.config import settings

_fernet: Fernet | None = None


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        # Fernet needs 32 url-safe base64 bytes; derive them from the app secret
        key_bytes = hashlib.sha256(settings.app_secret_key.encode()).digest()
        _fernet = Fernet(base64.urlsafe_b64encode(key_bytes))
    return _fernet


def encrypt(plaintext: str) -> str:
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    """Raises ``cryptography.fernet.InvalidToken`` when the secret has changed."""
    return _get_fernet().decrypt(ciphertext.encode()).decode()


def mask_key(api_key: str | None) -> str | None:
    """Short, non-reversible display form of a key (``sk-abc...wxyz``)."""
    if not api_key:
        return None
    if len(api_key) <= 10:
        return api_key[:3] + "..."
    return f"{api_key[:6]}...{api_key[-4:]}"
