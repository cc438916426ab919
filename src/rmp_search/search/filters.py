from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from rmp_search.models import to_int


FilterType = Literal["str", "int", "bool", "set"]
Match = Literal["contains", "exact", "exact_ci", "flag", "any"]
Level = Literal["facility", "process"]

QueryValue = Union[str, Sequence[str], None]


@dataclass(frozen=True)
class FilterDefinition:
    param: str
    attr: str
    type: FilterType
    match: Match
    level: Level
    exact_flag: Optional[str] = None


# Recognized query parameters. Anything else is ignored.
FILTER_FIELDS: Dict[str, FilterDefinition] = {
    "facilityName": FilterDefinition(
        "facilityName", "facility_name", "str", "contains", "facility", "exactFacilityName"
    ),
    "facilityId": FilterDefinition("facilityId", "facility_id", "str", "exact", "facility"),
    "parentCompany": FilterDefinition(
        "parentCompany", "parent_company", "str", "contains", "facility", "exactParent"
    ),
    "facilityDUNS": FilterDefinition("facilityDUNS", "facility_duns", "str", "exact", "facility"),
    "address": FilterDefinition(
        "address", "address", "str", "contains", "facility", "exactAddress"
    ),
    "city": FilterDefinition("city", "city", "str", "exact_ci", "facility"),
    "state": FilterDefinition("state", "state", "str", "exact_ci", "facility"),
    "county": FilterDefinition("county", "county", "str", "exact", "facility"),
    "zip": FilterDefinition("zip", "zip", "str", "exact", "facility"),
    "activeOnly": FilterDefinition("activeOnly", "active_only", "bool", "flag", "facility"),
    "programLevel": FilterDefinition("programLevel", "program_level", "int", "exact", "process"),
    "naicsCodes": FilterDefinition("naicsCodes", "naics_codes", "set", "any", "process"),
    "chemicals": FilterDefinition("chemicals", "chemicals", "set", "any", "process"),
}

EXACT_FLAGS = {
    "exactFacilityName": "exact_facility_name",
    "exactParent": "exact_parent",
    "exactAddress": "exact_address",
}


@dataclass(frozen=True)
class SearchFilters:
    facility_name: Optional[str] = None
    exact_facility_name: bool = False
    facility_id: Optional[str] = None
    parent_company: Optional[str] = None
    exact_parent: bool = False
    facility_duns: Optional[str] = None
    address: Optional[str] = None
    exact_address: bool = False
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None
    zip: Optional[str] = None
    active_only: bool = False
    program_level: Optional[int] = None
    naics_codes: FrozenSet[str] = frozenset()
    chemicals: FrozenSet[str] = frozenset()

    @property
    def has_process_filters(self) -> bool:
        return (
            self.program_level is not None
            or bool(self.naics_codes)
            or bool(self.chemicals)
        )

    def active_names(self) -> List[str]:
        """Query parameter names that contribute a constraint."""

        out: List[str] = []
        for definition in FILTER_FIELDS.values():
            value = getattr(self, definition.attr)
            if value is None or value is False or value == frozenset():
                continue
            out.append(definition.param)
        return out

    def cache_key(self) -> Tuple[Tuple[str, Any], ...]:
        items = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, frozenset):
                value = tuple(sorted(value))
            items.append((f.name, value))
        return tuple(items)


def _values(raw: QueryValue) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    return [str(v) for v in raw if v is not None]


def first_value(raw: QueryValue) -> str:
    values = _values(raw)
    return values[0].strip() if values else ""


def parse_bool(raw: QueryValue) -> bool:
    return first_value(raw).lower() in ("1", "true", "yes", "y")


def _parse_set(raw: QueryValue) -> FrozenSet[str]:
    # Repeated keys and comma-separated values both count.
    out = set()
    for value in _values(raw):
        for part in value.split(","):
            part = part.strip()
            if part:
                out.add(part)
    return frozenset(out)


def parse_filters(query: Mapping[str, QueryValue]) -> SearchFilters:
    """Build typed filters from raw query parameters.

    Empty values contribute no constraint; unknown keys are ignored; a
    non-integer programLevel is dropped rather than rejected.
    """

    kwargs: Dict[str, Any] = {}
    for param, definition in FILTER_FIELDS.items():
        if param not in query:
            continue
        raw = query[param]
        if definition.type == "set":
            value = _parse_set(raw)
            if value:
                kwargs[definition.attr] = value
        elif definition.type == "bool":
            kwargs[definition.attr] = parse_bool(raw)
        elif definition.type == "int":
            value = to_int(first_value(raw))
            if value is not None:
                kwargs[definition.attr] = value
        else:
            value = first_value(raw)
            if not value:
                continue
            if param == "state":
                value = value.upper()
            kwargs[definition.attr] = value

    for param, attr in EXACT_FLAGS.items():
        if param in query:
            kwargs[attr] = parse_bool(query[param])

    return SearchFilters(**kwargs)


def query_from_multidict(params: Any) -> Dict[str, List[str]]:
    """Flatten a Starlette-style multi-dict into `{key: [values...]}`."""

    return {key: list(params.getlist(key)) for key in params.keys()}
