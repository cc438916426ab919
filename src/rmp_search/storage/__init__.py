from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from rmp_search.config import Settings, get_settings
from rmp_search.storage.base import FacilityStore
from rmp_search.storage.documents import (
    DirectoryDocumentSource,
    DocumentFacilityStore,
    HttpDocumentSource,
)
from rmp_search.storage.sqlite import SQLiteFacilityStore


def get_store(settings: Optional[Settings] = None) -> FacilityStore:
    settings = settings or get_settings()
    if settings.backend == "sqlite":
        return SQLiteFacilityStore(settings.sqlite_path)
    if settings.data_url:
        source = HttpDocumentSource(
            settings.data_url, settings.states, timeout=settings.fetch_timeout
        )
    else:
        source = DirectoryDocumentSource(Path(settings.data_dir))
    return DocumentFacilityStore(source)


@lru_cache(maxsize=1)
def default_store() -> FacilityStore:
    """Process-lifetime store; the document set it loads is never refreshed."""

    return get_store()


__all__ = [
    "DirectoryDocumentSource",
    "DocumentFacilityStore",
    "FacilityStore",
    "HttpDocumentSource",
    "SQLiteFacilityStore",
    "default_store",
    "get_store",
]
