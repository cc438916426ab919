import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response

from rmp_search.api.deps import get_geo_cache, get_store
from rmp_search.api.geojson import accident_featurecollection, parse_bbox, years_ago
from rmp_search.api.schemas import AccidentCounts, AccidentRow
from rmp_search.cache import TTLCache
from rmp_search.log import log_event
from rmp_search.models import to_int
from rmp_search.storage import FacilityStore


router = APIRouter(tags=["accidents"])
logger = logging.getLogger("rmp.api")

LATEST_YEARS = 5


def _iso_date(value: Optional[str]) -> Optional[str]:
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date().isoformat()
    except ValueError:
        return None


@router.get("/accidents/geo")
def accidents_geo(
    response: Response,
    range: str = "",
    submissionDate: Optional[str] = None,
    latestOnly: Optional[str] = None,
    minx: Optional[str] = None,
    miny: Optional[str] = None,
    maxx: Optional[str] = None,
    maxy: Optional[str] = None,
    store: FacilityStore = Depends(get_store),
    geo_cache: TTLCache = Depends(get_geo_cache),
) -> Dict[str, Any]:
    range_key = (range or "").strip().lower()
    snapshot = (submissionDate or "").strip() or None
    latest = range_key == "latest" or (
        not snapshot and (latestOnly or "").strip().lower() == "true"
    )
    cumulative = range_key == "all" or (snapshot or "").upper() == "ALL"
    bbox = parse_bbox(minx, miny, maxx, maxy)

    since: Optional[str] = None
    until: Optional[str] = None
    if latest:
        since = years_ago(LATEST_YEARS)
    elif snapshot and not cumulative:
        until = _iso_date(snapshot)

    response.headers["Cache-Control"] = "public, max-age=300"
    cache_key = ("accidents:geo", since is not None, until, bbox)
    cached = geo_cache.get(cache_key)
    if cached is not None:
        return cached

    payload = accident_featurecollection(store.iter_accidents(since, until), bbox=bbox)
    geo_cache.set(cache_key, payload)
    log_event(
        logger,
        "accidents.geo",
        latest=latest,
        until=until,
        bbox=bbox is not None,
        features=len(payload["features"]),
    )
    return payload


@router.get("/accidents/count", response_model=AccidentCounts)
def accidents_count(store: FacilityStore = Depends(get_store)) -> AccidentCounts:
    return AccidentCounts(**store.accident_counts(since=years_ago(LATEST_YEARS)))


@router.get("/accidents/list", response_model=List[AccidentRow])
def accidents_list(
    limit: Optional[str] = None, store: FacilityStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    n = to_int(limit)
    n = 40 if n is None else max(1, min(n, 1000))
    pairs = sorted(
        store.iter_accidents(),
        key=lambda pair: (pair[1].date or "", pair[1].accident_id),
        reverse=True,
    )
    out = []
    for facility, accident in pairs[:n]:
        row = accident.to_dict()
        row["EPAFacilityID"] = facility.epa_facility_id
        row["name"] = facility.name
        out.append(row)
    return out
