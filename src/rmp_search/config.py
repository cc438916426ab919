from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from rmp_search.states import STATE_NAMES


BACKENDS = ("documents", "sqlite")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = str(raw).strip().lower()
    if v in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_states(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name) or ""
    codes = [c.strip().upper() for c in raw.split(",") if c.strip()]
    return tuple(codes) if codes else tuple(STATE_NAMES)


@dataclass(frozen=True)
class Settings:
    """Process-wide settings read from the environment.

    Defaults serve the bundled per-state JSON documents from ./data.
    """

    backend: str
    sqlite_path: str
    data_dir: str
    data_url: Optional[str]
    states: Tuple[str, ...]
    fetch_timeout: int
    default_per_page: int
    geo_cache_ttl: int
    geo_cache_max: int
    cache_enabled: bool

    @classmethod
    def from_env(cls) -> "Settings":
        backend = (_env_str("RMP_BACKEND", "documents") or "documents").lower()
        if backend not in BACKENDS:
            backend = "documents"
        return cls(
            backend=backend,
            sqlite_path=_env_str("RMP_SQLITE_PATH", "./db/RMPData.sqlite"),
            data_dir=_env_str("RMP_DATA_DIR", "./data/facilities/by-state"),
            data_url=_env_str("RMP_DATA_URL", None),
            states=_env_states("RMP_STATES"),
            fetch_timeout=max(1, _env_int("RMP_FETCH_TIMEOUT", 10)),
            default_per_page=max(1, _env_int("RMP_DEFAULT_PER_PAGE", 20)),
            geo_cache_ttl=max(0, _env_int("RMP_GEO_CACHE_TTL", 300)),
            geo_cache_max=max(1, _env_int("RMP_GEO_CACHE_MAX", 512)),
            cache_enabled=_env_bool("CACHE", True),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def reset_settings_cache() -> None:
    """Test helper to force env re-read."""

    get_settings.cache_clear()
