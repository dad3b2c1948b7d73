from __future__ import annotations

import logging
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_API_BASE_URL = "http://localhost:3001/api"
DEFAULT_ADDRESS_LOOKUP_URL = "https://zipcloud.ibsnet.co.jp/api/search"


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.api_base_url = os.getenv("TAMANOMI_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/")
        self.api_token = os.getenv("TAMANOMI_API_TOKEN") or None
        self.request_timeout = _float_env("REQUEST_TIMEOUT", 10.0)
        self.address_lookup_url = os.getenv("ADDRESS_LOOKUP_URL", DEFAULT_ADDRESS_LOOKUP_URL)
        self.draft_backend = os.getenv("DRAFT_BACKEND", "memory").lower()
        self.draft_path = Path(os.getenv("DRAFT_PATH", "./data/drafts.json"))
        self.draft_ttl_seconds = _int_env("DRAFT_TTL_SECONDS", 3600)
        self.draft_cookie = os.getenv("DRAFT_COOKIE", "tamanomi_draft")
        self.auth_mode = os.getenv("AUTH_MODE", "none").lower()
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = _int_env("PORT", 8000)


def ensure_dirs(settings: Settings) -> None:
    if settings.draft_backend == "json":
        settings.draft_path.parent.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
