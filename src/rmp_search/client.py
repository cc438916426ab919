"""Thin stateful client over `/api/search`.

Keeps the last result page and filters so callers can page through results
without rebuilding the query.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import requests


logger = logging.getLogger("rmp.client")


def build_params(filters: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """Drop empty values; list values become repeated keys."""

    params: List[Tuple[str, str]] = []
    for key, value in filters.items():
        if value is None or value == "":
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            for item in value:
                params.append((key, str(item)))
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        params.append((key, str(value)))
    return params


class FacilitiesClient:
    def __init__(
        self,
        base_url: str,
        session: Optional[Any] = None,
        timeout: int = 10,
        per_page: int = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.results: List[Dict[str, Any]] = []
        self.total = 0
        self.page = 1
        self.per_page = per_page
        self.filters: Dict[str, Any] = {}
        self.loading = False

    def search(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        self.loading = True
        self.filters = dict(filters)
        try:
            response = self.session.get(
                f"{self.base_url}/api/search",
                params=build_params(self.filters),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            # Previous results stay in place.
            logger.error("search request failed: %s", e)
            return self.results
        finally:
            self.loading = False

        self.results = list(data.get("facilities") or [])
        self.total = int(data.get("total") or 0)
        self.page = int(data.get("page") or 1)
        self.per_page = int(data.get("perPage") or self.per_page)
        return self.results

    def go_to_page(self, page: int) -> List[Dict[str, Any]]:
        filters = dict(self.filters)
        filters["page"] = page
        return self.search(filters)
