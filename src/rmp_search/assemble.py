"""Rebuild facilities from denormalized join rows.

A facility LEFT JOINed against processes, NAICS codes, chemicals and accident
history yields one row per Facility x Process x Chemical x Accident
combination. Parent data repeats on every row and child columns are NULL when
the outer join found nothing, so every level is deduplicated by its id.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

from rmp_search.models import (
    Accident,
    Chemical,
    Facility,
    Process,
    StateRef,
    Submission,
    blank_to_none,
    pick_latest,
    to_bool,
    to_float,
    to_int,
)
from rmp_search.states import state_name


def _get(row: Mapping[str, Any], key: str) -> Any:
    try:
        return row[key]
    except (KeyError, IndexError):
        return None


def _flags(raw: Any) -> Dict[str, bool]:
    if not raw:
        return {}
    if isinstance(raw, Mapping):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return {}
    if not isinstance(data, Mapping):
        return {}
    return {str(k): to_bool(v) for k, v in data.items()}


class _FacilityBuilder:
    def __init__(self, epa_id: str):
        self.epa_id = epa_id
        self.submissions: Dict[str, Submission] = {}
        self.attrs: Dict[str, Mapping[str, Any]] = {}
        self.processes: Dict[str, Dict[str, Process]] = {}
        self.accident_ids: Dict[str, set] = {}

    def add(self, row: Mapping[str, Any]) -> None:
        sub_id = str(_get(row, "submission_id"))
        sub = self.submissions.get(sub_id)
        if sub is None:
            sub = Submission(
                submission_id=sub_id,
                date_val=blank_to_none(_get(row, "safety_inspection_date")),
                date_dereg=blank_to_none(_get(row, "dereg_date")),
                lat=to_float(_get(row, "lat_dec_degs")),
                lon=to_float(_get(row, "long_dec_degs")),
            )
            self.submissions[sub_id] = sub
            self.attrs[sub_id] = row
            self.processes[sub_id] = {}
            self.accident_ids[sub_id] = set()

        proc_id = _get(row, "process_id")
        if proc_id is not None:
            procs = self.processes[sub_id]
            proc = procs.get(str(proc_id))
            if proc is None:
                proc = Process(
                    process_id=str(proc_id),
                    program_level=to_int(_get(row, "program_level")),
                    toxic_release=to_bool(_get(row, "toxic_release")),
                )
                procs[str(proc_id)] = proc
                sub.processes.append(proc)
            code = blank_to_none(_get(row, "naics_code"))
            if code and code not in proc.naics_codes:
                proc.naics_codes.append(code)
            chem_id = _get(row, "chemical_id")
            if chem_id is not None and str(chem_id) not in proc.chemical_ids():
                proc.chemicals.append(
                    Chemical(
                        chemical_id=str(chem_id),
                        name=blank_to_none(_get(row, "chemical_name")),
                        quantity=to_float(_get(row, "quantity")),
                    )
                )

        acc_id = _get(row, "accident_history_id")
        if acc_id is not None and str(acc_id) not in self.accident_ids[sub_id]:
            self.accident_ids[sub_id].add(str(acc_id))
            sub.accidents.append(
                Accident(
                    accident_id=str(acc_id),
                    date=blank_to_none(_get(row, "accident_date")),
                    time=blank_to_none(_get(row, "accident_time")),
                    naics_code=blank_to_none(_get(row, "accident_naics_code")),
                    flags=_flags(_get(row, "accident_flags")),
                )
            )

    def build(self) -> Facility:
        submissions = list(self.submissions.values())
        latest: Optional[Submission] = pick_latest(submissions)
        row = self.attrs[latest.submission_id] if latest is not None else {}
        abbr = str(_get(row, "state") or "").strip().upper()
        valid = _get(row, "valid_lat_long_flag")
        return Facility(
            epa_facility_id=self.epa_id,
            name=str(_get(row, "facility_name") or ""),
            state=StateRef(abbr=abbr, name=state_name(abbr)),
            address=blank_to_none(_get(row, "address")),
            city=blank_to_none(_get(row, "city")),
            county_fips=blank_to_none(_get(row, "county_fips")),
            county_name=blank_to_none(_get(row, "county_name")),
            zip=blank_to_none(_get(row, "zip")),
            parent_company=blank_to_none(_get(row, "parent_company_name")),
            duns=blank_to_none(_get(row, "facility_duns")),
            operator=blank_to_none(_get(row, "operator_name")),
            lat=to_float(_get(row, "lat_dec_degs")),
            lon=to_float(_get(row, "long_dec_degs")),
            valid_lat_long=None if valid is None else str(valid).strip().lower() == "yes",
            submissions=submissions,
        )


def assemble_facilities(rows: Iterable[Mapping[str, Any]]) -> List[Facility]:
    """Group join rows by EPA facility id, preserving first-seen order."""

    builders: Dict[str, _FacilityBuilder] = {}
    for row in rows:
        epa_id = str(_get(row, "epa_facility_id") or "").strip()
        if not epa_id:
            continue
        builder = builders.get(epa_id)
        if builder is None:
            builder = _FacilityBuilder(epa_id)
            builders[epa_id] = builder
        builder.add(row)
    return [b.build() for b in builders.values()]
