from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends

from rmp_search.api.deps import get_store
from rmp_search.api.schemas import StateSummary
from rmp_search.storage import FacilityStore


router = APIRouter(tags=["states"])


@router.get("/states", response_model=List[StateSummary])
def list_states(
    name: Optional[str] = None,
    abbr: Optional[str] = None,
    store: FacilityStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    rows = store.list_states()
    name_q = (name or "").strip().lower()
    abbr_q = (abbr or "").strip().lower()
    if name_q:
        rows = [r for r in rows if r["name"].lower() == name_q]
    if abbr_q:
        rows = [r for r in rows if r["abbr"].lower() == abbr_q]
    return rows


@router.get("/state/{abbr}")
def state_detail(abbr: str, store: FacilityStore = Depends(get_store)) -> Dict[str, Any]:
    return store.get_state(abbr)
