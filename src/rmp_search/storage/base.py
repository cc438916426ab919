from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from rmp_search.models import Accident, Facility, Submission
from rmp_search.search.filters import SearchFilters
from rmp_search.search.pager import Page, PageRequest
from rmp_search.states import state_name


AccidentPair = Tuple[Facility, Accident]


class FacilityStore(Protocol):
    """Read path shared by the relational and document strategies.

    Both must return the same facilities, in identifier order, for the same
    filters.
    """

    def search(self, filters: SearchFilters) -> List[Facility]: ...

    def search_page(self, filters: SearchFilters, request: PageRequest) -> Page[Facility]: ...

    def geo_facilities(
        self, filters: SearchFilters, since: Optional[str] = None
    ) -> List[Facility]: ...

    def get_facility(self, facility_id: str) -> Facility: ...

    def get_submission(self, submission_id: str) -> Tuple[Facility, Submission]: ...

    def iter_accidents(
        self, since: Optional[str] = None, until: Optional[str] = None
    ) -> Iterator[AccidentPair]: ...

    def accident_counts(self, since: str) -> Dict[str, int]: ...

    def list_states(self) -> List[dict]: ...

    def get_state(self, abbr: str) -> dict: ...


def accident_in_window(
    accident: Accident, since: Optional[str], until: Optional[str]
) -> bool:
    if since is None and until is None:
        return True
    if not accident.date:
        return False
    day = accident.date[:10]
    if since is not None and day < since:
        return False
    if until is not None and day > until:
        return False
    return True


def last_submitted_since(facility: Facility, since: Optional[str]) -> bool:
    if since is None:
        return True
    latest = facility.latest_submission
    return latest is not None and bool(latest.date_val) and latest.date_val[:10] >= since


def state_summaries(facilities: Iterable[Facility], names: Optional[Dict[str, str]] = None) -> List[dict]:
    names = dict(names or {})
    counts: Dict[str, int] = {}
    counties: Dict[str, set] = {}
    for f in facilities:
        abbr = f.state.abbr
        if not abbr:
            continue
        counts[abbr] = counts.get(abbr, 0) + 1
        counties.setdefault(abbr, set()).add(f.county_fips or "")
        names.setdefault(abbr, f.state.name)
    out = []
    for abbr in sorted(set(counts) | set(names)):
        out.append(
            {
                "abbr": abbr,
                "name": names.get(abbr) or state_name(abbr),
                "facility_count": counts.get(abbr, 0),
                "county_count": len(counties.get(abbr, ())),
            }
        )
    return out


def state_detail(abbr: str, name: str, facilities: Iterable[Facility]) -> dict:
    groups: Dict[str, dict] = {}
    for f in sorted(facilities, key=lambda x: x.epa_facility_id):
        key = f.county_fips or ""
        group = groups.get(key)
        if group is None:
            group = {"fips": f.county_fips, "name": f.county_name, "facilities": []}
            groups[key] = group
        if not group["name"] and f.county_name:
            group["name"] = f.county_name
        group["facilities"].append(f.summary_dict())
    return {
        "abbr": abbr,
        "name": name,
        "counties": [groups[k] for k in sorted(groups)],
    }


def submission_rows(facilities: Iterable[Facility]) -> List[dict]:
    """One flat row per submission, ordered by facility then submission."""

    rows = []
    for f in sorted(facilities, key=lambda x: x.epa_facility_id):
        for sub in f.submissions:
            levels = {p.program_level for p in sub.processes if p.program_level is not None}
            rows.append(
                {
                    "submission_id": sub.submission_id,
                    "EPAFacilityID": f.epa_facility_id,
                    "facility_name": f.name,
                    "address": f.address,
                    "city": f.city,
                    "state": f.state.abbr,
                    "zip": f.zip,
                    "lat_sub": sub.lat,
                    "lon_sub": sub.lon,
                    "parent_company": f.parent_company,
                    "duns": f.duns,
                    "operator": f.operator,
                    "date_val": sub.date_val,
                    "date_dereg": sub.date_dereg,
                    "program_levels": sorted(levels),
                    "num_accidents": sub.num_accidents,
                }
            )
    return rows
