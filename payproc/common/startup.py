"""Startup-time helpers for safe config logging."""

import os
from urllib.parse import urlsplit, urlunsplit

from payproc.common.logging import logger


SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")
URL_KEYS = ("POSTGRES_DSN", "RABBITMQ_URL")


def _strip_credentials(url: str) -> str:
    """Drop the password part of a connection URL."""

    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = f"{parts.username}:<redacted>@{parts.hostname}"
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


def _safe_env(name: str) -> str:
    """Return env value with simple redaction for secret-like variable names."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(secret in name for secret in SECRET_MARKERS):
        return "<redacted>"
    if name in URL_KEYS:
        return _strip_credentials(value)
    return value


def log_startup_config(service_name: str, keys: list[str]) -> None:
    """Log selected startup config keys for quick troubleshooting."""

    config = {"service": service_name}
    for key in keys:
        config[key] = _safe_env(key)
    logger.info("startup_config=%s", config)
