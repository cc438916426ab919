import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rmp_search.api import deps
from rmp_search.api.routes.accidents import router as accidents_router
from rmp_search.api.routes.facilities import router as facilities_router
from rmp_search.api.routes.search import router as search_router
from rmp_search.api.routes.states import router as states_router
from rmp_search.api.schemas import HealthResponse
from rmp_search.cache import TTLCache
from rmp_search.errors import BackendUnavailable, RMPSearchError
from rmp_search.log import log_event
from rmp_search.storage import FacilityStore


logger = logging.getLogger("rmp.api")


def health():
    return {"status": "ok"}


async def _handle_search_error(request: Request, exc: RMPSearchError) -> JSONResponse:
    if isinstance(exc, BackendUnavailable):
        log_event(
            logger,
            "backend.unavailable",
            level=logging.ERROR,
            path=request.url.path,
            reason=exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(
    store: Optional[FacilityStore] = None, geo_cache: Optional[TTLCache] = None
) -> FastAPI:
    """Build the HTTP app. `store` / `geo_cache` replace the process defaults."""

    app = FastAPI(title="RMP facility search")
    app.add_exception_handler(RMPSearchError, _handle_search_error)

    if store is not None:
        app.dependency_overrides[deps.get_store] = lambda: store
    if geo_cache is not None:
        app.dependency_overrides[deps.get_geo_cache] = lambda: geo_cache

    app.include_router(search_router, prefix="/api")
    app.include_router(facilities_router, prefix="/api")
    app.include_router(accidents_router, prefix="/api")
    app.include_router(states_router, prefix="/api")

    @app.get("/health", response_model=HealthResponse)
    def health_route():
        return health()

    return app


app = create_app()
