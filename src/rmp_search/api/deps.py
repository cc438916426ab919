"""FastAPI dependencies; tests swap these through `dependency_overrides`."""
from functools import lru_cache

from rmp_search.cache import TTLCache
from rmp_search.config import Settings, get_settings
from rmp_search.storage import FacilityStore, default_store


def get_store() -> FacilityStore:
    return default_store()


@lru_cache(maxsize=1)
def _default_geo_cache() -> TTLCache:
    settings = get_settings()
    return TTLCache(
        ttl=settings.geo_cache_ttl,
        max_entries=settings.geo_cache_max,
        enabled=settings.cache_enabled,
    )


def get_geo_cache() -> TTLCache:
    return _default_geo_cache()


def get_app_settings() -> Settings:
    return get_settings()
