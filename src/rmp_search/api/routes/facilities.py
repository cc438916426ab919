import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, Response

from rmp_search.api.deps import get_geo_cache, get_store
from rmp_search.api.geojson import facility_featurecollection, parse_bbox, years_ago
from rmp_search.cache import TTLCache
from rmp_search.errors import BadInput
from rmp_search.log import log_event
from rmp_search.search.filters import parse_filters, query_from_multidict
from rmp_search.storage import FacilityStore
from rmp_search.storage.base import submission_rows


router = APIRouter(tags=["facilities"])
logger = logging.getLogger("rmp.api")

GEO_CACHE_CONTROL = "public, max-age=300"


def _require_id(value: str, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise BadInput(f"Missing {label} ID.")
    return value


@router.get("/facilities/geo")
def facilities_geo(
    request: Request,
    response: Response,
    minx: Optional[str] = None,
    miny: Optional[str] = None,
    maxx: Optional[str] = None,
    maxy: Optional[str] = None,
    range: str = "all",
    store: FacilityStore = Depends(get_store),
    geo_cache: TTLCache = Depends(get_geo_cache),
) -> Dict[str, Any]:
    filters = parse_filters(query_from_multidict(request.query_params))
    bbox = parse_bbox(minx, miny, maxx, maxy)
    latest = (range or "").strip().lower() == "latest"

    response.headers["Cache-Control"] = GEO_CACHE_CONTROL
    cache_key = ("facilities:geo", filters.cache_key(), bbox, latest)
    cached = geo_cache.get(cache_key)
    if cached is not None:
        return cached

    since = years_ago(5) if latest else None
    facilities = store.geo_facilities(filters, since=since)
    payload = facility_featurecollection(facilities, bbox=bbox)
    geo_cache.set(cache_key, payload)
    log_event(
        logger,
        "facilities.geo",
        filters=filters.active_names(),
        bbox=bbox is not None,
        latest=latest,
        features=len(payload["features"]),
    )
    return payload


@router.get("/facility/{facility_id}")
def facility_detail(facility_id: str, store: FacilityStore = Depends(get_store)) -> Dict[str, Any]:
    facility_id = _require_id(facility_id, "facility")
    return store.get_facility(facility_id).to_dict()


@router.get("/facilities/{facility_id}")
def facility_detail_alias(
    facility_id: str, store: FacilityStore = Depends(get_store)
) -> Dict[str, Any]:
    return facility_detail(facility_id, store)


@router.get("/submissions/list")
def submissions_list(
    request: Request, store: FacilityStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    filters = parse_filters(query_from_multidict(request.query_params))
    rows = submission_rows(store.search(filters))
    log_event(logger, "submissions.list", filters=filters.active_names(), total=len(rows))
    return rows


@router.get("/submissions/{submission_id}")
def submission_detail(
    submission_id: str, store: FacilityStore = Depends(get_store)
) -> Dict[str, Any]:
    submission_id = _require_id(submission_id, "submission")
    facility, submission = store.get_submission(submission_id)
    out = submission.to_dict(include_accidents=True)
    out["EPAFacilityID"] = facility.epa_facility_id
    out["facility_name"] = facility.name
    return out
