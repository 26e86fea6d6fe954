"""Shared helpers: environment parsing, sizes, log redaction."""

import logging
import os
import secrets
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

BYTES_PER_MB: int = 1024 * 1024


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[settings] Invalid %s=%s; using %s", name, raw, default)
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[settings] Invalid %s=%s; using %s", name, raw, default)
        return default


def env_choice(name: str, default: str, allowed: tuple[str, ...]) -> str:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    if raw not in allowed:
        logger.warning("[settings] Unknown %s=%s; using %s", name, raw, default)
        return default
    return raw


def env_str(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def size_mb(num_bytes: int) -> float:
    """Convert a byte count to megabytes."""
    return num_bytes / BYTES_PER_MB


def new_token(num_bytes: int = 8) -> str:
    """Return an unguessable hex token (2 characters per random byte)."""
    return secrets.token_hex(num_bytes)


def reduction_percent(original_size: int, new_size: int) -> float:
    if original_size <= 0:
        return 0.0
    return round(((original_size - new_size) / original_size) * 100, 1)


def redact_url_for_log(url: str, max_len: int = 200) -> str:
    """Return a URL safe for logs (no query/fragment/userinfo)."""
    if not url or not isinstance(url, str):
        return "EMPTY/NONE"

    trimmed = url.strip()
    try:
        parsed = urlparse(trimmed)
        if not parsed.scheme or not parsed.netloc:
            safe = trimmed
        else:
            host = parsed.hostname or ""
            netloc = f"{host}:{parsed.port}" if parsed.port else host
            safe = parsed._replace(netloc=netloc, query="", fragment="", params="").geturl()
    except ValueError:
        safe = trimmed

    if len(safe) > max_len:
        return safe[:max_len] + "..."
    return safe
