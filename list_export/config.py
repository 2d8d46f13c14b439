from __future__ import annotations

import os
from dataclasses import dataclass

from .exceptions import ConfigurationError

MAX_PAGE_SIZE = 100


def env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None else default


def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError:
        return default


def clamp_page_size(n: int) -> int:
    return min(max(n, 1), MAX_PAGE_SIZE)


@dataclass(frozen=True)
class Settings:
    bearer_token: str
    api_host: str = "https://api.x.com"
    user_agent: str = "dump-x-list/2.0"
    out_dir: str = "."
    log_level: str = "INFO"

    page_size: int = MAX_PAGE_SIZE
    # Politeness pauses (seconds)
    page_delay_sec: float = 5.0
    metadata_delay_sec: float = 2.0

    connect_timeout: float = 10.0
    read_timeout: float = 30.0


def load_settings() -> Settings:
    token = (env("X_BEARER") or "").strip()
    if not token:
        raise ConfigurationError("X_BEARER is not set")

    return Settings(
        bearer_token=token,
        api_host=(env("LIST_EXPORT_API_HOST", "https://api.x.com") or "https://api.x.com").rstrip("/"),
        user_agent=env("LIST_EXPORT_USER_AGENT", "dump-x-list/2.0") or "dump-x-list/2.0",
        out_dir=env("LIST_EXPORT_OUT_DIR", ".") or ".",
        log_level=(env("LIST_EXPORT_LOG_LEVEL", "INFO") or "INFO").upper(),
        page_size=clamp_page_size(env_int("LIST_EXPORT_PAGE_SIZE", MAX_PAGE_SIZE)),
        page_delay_sec=env_float("LIST_EXPORT_PAGE_DELAY_SEC", 5.0),
        metadata_delay_sec=env_float("LIST_EXPORT_METADATA_DELAY_SEC", 2.0),
        connect_timeout=env_float("LIST_EXPORT_CONNECT_TIMEOUT", 10.0),
        read_timeout=env_float("LIST_EXPORT_READ_TIMEOUT", 30.0),
    )
