"""Facility data models.

All records are read-only views over data produced by the ingestion process.
Derived aggregates (accident totals, max program level, ...) are computed on
access and never stored.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple


def to_float(value: Any) -> Optional[float]:
    """Lenient float coercion for coordinates stored as trimmed text."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        out = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            out = float(text)
        except ValueError:
            return None
    if not math.isfinite(out):
        return None
    return out


def to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        as_float = float(text)
    except ValueError:
        return None
    if not math.isfinite(as_float) or as_float != int(as_float):
        return None
    return int(as_float)


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in {"1", "true", "t", "yes", "y"}


def blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class Chemical:
    chemical_id: str
    name: Optional[str] = None
    quantity: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Process:
    process_id: str
    program_level: Optional[int] = None
    naics_codes: List[str] = field(default_factory=list)
    chemicals: List[Chemical] = field(default_factory=list)
    toxic_release: bool = False

    def chemical_ids(self) -> set:
        return {c.chemical_id for c in self.chemicals}

    def to_dict(self) -> dict:
        return {
            "process_id": self.process_id,
            "program_level": self.program_level,
            "naics_codes": list(self.naics_codes),
            "chemicals": [c.to_dict() for c in self.chemicals],
            "toxic_release": self.toxic_release,
        }


@dataclass
class Accident:
    accident_id: str
    date: Optional[str] = None
    time: Optional[str] = None
    naics_code: Optional[str] = None
    # Open set of cause/consequence condition flags (fire, explosion, ...).
    flags: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "accident_id": self.accident_id,
            "date": self.date,
            "time": self.time,
            "naics_code": self.naics_code,
            "flags": dict(self.flags),
        }


@dataclass
class Submission:
    submission_id: str
    date_val: Optional[str] = None
    date_dereg: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    processes: List[Process] = field(default_factory=list)
    accidents: List[Accident] = field(default_factory=list)
    # Declared count from summary documents that carry no accident rows.
    declared_accidents: Optional[int] = None

    @property
    def num_accidents(self) -> int:
        if self.accidents:
            return len(self.accidents)
        return self.declared_accidents or 0

    @property
    def latest_accident(self) -> Optional[str]:
        dates = [a.date for a in self.accidents if a.date]
        return max(dates) if dates else None

    def to_dict(self, include_accidents: bool = False) -> dict:
        out = {
            "id": self.submission_id,
            "date_val": self.date_val,
            "date_dereg": self.date_dereg,
            "lat_sub": self.lat,
            "lon_sub": self.lon,
            "num_accidents": self.num_accidents,
            "latest_accident": self.latest_accident,
            "processes": [p.to_dict() for p in self.processes],
        }
        if include_accidents:
            out["accidents"] = [a.to_dict() for a in self.accidents]
        return out


def pick_latest(submissions: List[Submission]) -> Optional[Submission]:
    """Most recent non-null inspection date wins; nulls sort last.

    Ties resolve to the earliest submission in list order.
    """

    if not submissions:
        return None
    dated = [s for s in submissions if s.date_val]
    if dated:
        return max(dated, key=lambda s: s.date_val)
    return submissions[0]


@dataclass
class StateRef:
    abbr: str
    name: str

    def to_dict(self) -> dict:
        return {"abbr": self.abbr, "name": self.name}


@dataclass
class Facility:
    epa_facility_id: str
    name: str = ""
    state: StateRef = field(default_factory=lambda: StateRef("", ""))
    address: Optional[str] = None
    city: Optional[str] = None
    county_fips: Optional[str] = None
    county_name: Optional[str] = None
    zip: Optional[str] = None
    parent_company: Optional[str] = None
    duns: Optional[str] = None
    operator: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    valid_lat_long: Optional[bool] = None
    submissions: List[Submission] = field(default_factory=list)
    # Accidents embedded at facility level (document backend).
    accident_records: List[Accident] = field(default_factory=list)

    @property
    def latest_submission(self) -> Optional[Submission]:
        return pick_latest(self.submissions)

    @property
    def is_active(self) -> bool:
        latest = self.latest_submission
        if latest is None:
            return False
        return bool(latest.date_val) and not latest.date_dereg

    def iter_processes(self) -> Iterable[Tuple[Submission, Process]]:
        for sub in self.submissions:
            for proc in sub.processes:
                yield sub, proc

    @property
    def accidents(self) -> Optional[List[Accident]]:
        """Deduplicated accidents, or None when there are none on record."""

        seen = set()
        out: List[Accident] = []
        groups = [self.accident_records] + [s.accidents for s in self.submissions]
        for group in groups:
            for acc in group:
                if acc.accident_id in seen:
                    continue
                seen.add(acc.accident_id)
                out.append(acc)
        return out or None

    @property
    def num_accidents(self) -> int:
        accidents = self.accidents
        if accidents:
            return len(accidents)
        return sum(s.declared_accidents or 0 for s in self.submissions)

    @property
    def program_level(self) -> Optional[int]:
        levels = [
            p.program_level for _, p in self.iter_processes() if p.program_level is not None
        ]
        return max(levels) if levels else None

    @property
    def naics_code(self) -> Optional[str]:
        for _, proc in self.iter_processes():
            for code in proc.naics_codes:
                if code:
                    return code
        return None

    @property
    def chemicals(self) -> List[Chemical]:
        seen = set()
        out: List[Chemical] = []
        for _, proc in self.iter_processes():
            for chem in proc.chemicals:
                if chem.chemical_id in seen:
                    continue
                seen.add(chem.chemical_id)
                out.append(chem)
        return out

    @property
    def toxic_release(self) -> bool:
        return any(p.toxic_release for _, p in self.iter_processes())

    def coordinates(self) -> Optional[Tuple[float, float]]:
        """(lon, lat) when both are finite numbers, else None."""

        if self.valid_lat_long is False:
            return None
        lat, lon = to_float(self.lat), to_float(self.lon)
        if lat is None or lon is None:
            latest = self.latest_submission
            if latest is not None:
                lat, lon = to_float(latest.lat), to_float(latest.lon)
        if lat is None or lon is None:
            return None
        return (lon, lat)

    def sub_last(self) -> Optional[dict]:
        latest = self.latest_submission
        if latest is None:
            return None
        out = latest.to_dict()
        out.pop("processes", None)
        return out

    def summary_dict(self) -> dict:
        """Compact shape used by state listings and exports."""

        return {
            "EPAFacilityID": self.epa_facility_id,
            "name": self.name,
            "city": self.city,
            "state": self.state.to_dict(),
            "zip": self.zip,
            "address": self.address,
            "company_1": self.parent_company,
            "county_fips": self.county_fips,
            "sub_last": self.sub_last(),
        }

    def to_dict(self) -> dict:
        coords = self.coordinates()
        out = {
            "EPAFacilityID": self.epa_facility_id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "zip": self.zip,
            "county_fips": self.county_fips,
            "county_name": self.county_name,
            "state": self.state.to_dict(),
            "parent_company": self.parent_company,
            "duns": self.duns,
            "operator": self.operator,
            "lat": coords[1] if coords else None,
            "lon": coords[0] if coords else None,
            "sub_last": self.sub_last(),
            "submissions": [s.to_dict() for s in self.submissions],
            "num_accidents": self.num_accidents,
            "program_level": self.program_level,
            "naics_code": self.naics_code,
            "chemicals": [c.to_dict() for c in self.chemicals],
            "toxic_release": self.toxic_release,
        }
        accidents = self.accidents
        if accidents:
            out["accidents"] = [a.to_dict() for a in accidents]
        return out
