import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response

from rmp_search.api.deps import get_app_settings, get_store
from rmp_search.config import Settings
from rmp_search.exporters import facilities_to_csv
from rmp_search.log import log_event
from rmp_search.search.filters import first_value, parse_filters, query_from_multidict
from rmp_search.search.pager import parse_page_request
from rmp_search.storage import FacilityStore


router = APIRouter(tags=["search"])
logger = logging.getLogger("rmp.search")


@router.get("/search")
def search(
    request: Request,
    store: FacilityStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    query = query_from_multidict(request.query_params)
    filters = parse_filters(query)
    page_request = parse_page_request(
        first_value(query.get("page")) or None,
        first_value(query.get("perPage")) or None,
        default_per_page=settings.default_per_page,
    )
    page = store.search_page(filters, page_request)
    # Filter names only; values are user input.
    log_event(
        logger,
        "search",
        filters=filters.active_names(),
        total=page.total,
        page=page.page,
        per_page=page.per_page,
    )
    return page.to_dict()


@router.get("/export")
def export(request: Request, store: FacilityStore = Depends(get_store)) -> Response:
    filters = parse_filters(query_from_multidict(request.query_params))
    facilities = store.search(filters)
    log_event(logger, "export", filters=filters.active_names(), rows=len(facilities))
    return Response(
        content=facilities_to_csv(facilities),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="facilities.csv"'},
    )
