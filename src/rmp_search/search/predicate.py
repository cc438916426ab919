from __future__ import annotations

from typing import Callable, List, Optional

from rmp_search.models import Facility, Process
from rmp_search.search.filters import SearchFilters


FacilityPredicate = Callable[[Facility], bool]
ProcessPredicate = Callable[[Process], bool]


def _text_match(needle: str, exact: bool) -> Callable[[Optional[str]], bool]:
    needle = needle.strip().lower()

    def check(value: Optional[str]) -> bool:
        hay = (value or "").strip().lower()
        if exact:
            return hay == needle
        return needle in hay

    return check


def _facility_checks(filters: SearchFilters) -> List[FacilityPredicate]:
    checks: List[FacilityPredicate] = []

    if filters.facility_name:
        m = _text_match(filters.facility_name, filters.exact_facility_name)
        checks.append(lambda f: m(f.name))
    if filters.facility_id:
        wanted_id = filters.facility_id.strip()
        checks.append(lambda f: f.epa_facility_id == wanted_id)
    if filters.parent_company:
        m_parent = _text_match(filters.parent_company, filters.exact_parent)
        checks.append(lambda f: m_parent(f.parent_company))
    if filters.facility_duns:
        duns = filters.facility_duns.strip()
        checks.append(lambda f: (f.duns or "").strip() == duns)
    if filters.address:
        m_addr = _text_match(filters.address, filters.exact_address)
        checks.append(lambda f: m_addr(f.address))
    if filters.city:
        m_city = _text_match(filters.city, True)
        checks.append(lambda f: m_city(f.city))
    if filters.state:
        state = filters.state.strip().upper()
        checks.append(lambda f: f.state.abbr.upper() == state)
    if filters.county:
        county = filters.county.strip()
        checks.append(lambda f: (f.county_fips or "").strip() == county)
    if filters.zip:
        zip_code = filters.zip.strip()
        checks.append(lambda f: (f.zip or "").strip() == zip_code)
    if filters.active_only:
        checks.append(lambda f: f.is_active)
    return checks


def build_process_predicate(filters: SearchFilters) -> Optional[ProcessPredicate]:
    """All supplied process-level filters must hold on the same process."""

    if not filters.has_process_filters:
        return None
    level = filters.program_level
    naics = filters.naics_codes
    chemicals = filters.chemicals

    def check(proc: Process) -> bool:
        if level is not None and proc.program_level != level:
            return False
        if naics and not naics.intersection(proc.naics_codes):
            return False
        if chemicals and not chemicals.intersection(proc.chemical_ids()):
            return False
        return True

    return check


def build_predicate(filters: SearchFilters) -> FacilityPredicate:
    checks = _facility_checks(filters)
    process_check = build_process_predicate(filters)

    def predicate(facility: Facility) -> bool:
        for check in checks:
            if not check(facility):
                return False
        if process_check is not None:
            return any(process_check(p) for _, p in facility.iter_processes())
        return True

    return predicate
