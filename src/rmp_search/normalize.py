"""Normalize per-state JSON documents into `Facility` records.

Two record shapes are accepted:

* compact by-state summaries (`date_val`, `lat_sub`, `company_1`, ...), where
  each facility record already groups its submissions, and
* raw filing rows from the master submission dump (`EPAFacilityID`,
  `SafetyInspectionDate`, `ProgramLevel`, ...), one row per submission, which
  `group_submission_rows` folds into one facility per identifier.
"""
from __future__ import annotations

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


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def chemical_from_document(raw: Any) -> Optional[Chemical]:
    if isinstance(raw, Mapping):
        chem_id = _first(raw, "id", "chemical_id", "ChemicalID")
        if chem_id is None:
            return None
        return Chemical(
            chemical_id=str(chem_id).strip(),
            name=blank_to_none(_first(raw, "name", "chemical_name", "ChemicalName")),
            quantity=to_float(_first(raw, "quantity", "Quantity")),
        )
    if raw is None or str(raw).strip() == "":
        return None
    return Chemical(chemical_id=str(raw).strip())


def _naics_codes(raw: Any) -> List[str]:
    out: List[str] = []
    for item in _as_list(raw):
        if isinstance(item, Mapping):
            code = _first(item, "code", "naics_code", "NAICSCode")
        else:
            code = item
        code = blank_to_none(code)
        if code and code not in out:
            out.append(code)
    return out


def process_from_document(raw: Mapping[str, Any], index: int = 0) -> Process:
    proc_id = _first(raw, "id", "process_id", "ProcessID")
    chemicals: List[Chemical] = []
    seen = set()
    for item in _as_list(_first(raw, "chemicals")):
        chem = chemical_from_document(item)
        if chem is None or chem.chemical_id in seen:
            continue
        seen.add(chem.chemical_id)
        chemicals.append(chem)
    naics = _first(raw, "naics", "naics_codes")
    if naics is None and "NAICSCode" in raw:
        naics = [raw["NAICSCode"]]
    return Process(
        process_id=str(proc_id) if proc_id is not None else str(index),
        program_level=to_int(_first(raw, "program_level", "ProgramLevel")),
        naics_codes=_naics_codes(naics),
        chemicals=chemicals,
        toxic_release=to_bool(_first(raw, "toxic_release", "MH_ToxicRelease")),
    )


_ACCIDENT_KEYS = {
    "id",
    "accident_id",
    "AccidentHistoryID",
    "date",
    "accident_date",
    "AccidentDate",
    "time",
    "accident_time",
    "AccidentTime",
    "naics_code",
    "NAICSCode",
    "flags",
}


def accident_from_document(raw: Mapping[str, Any], fallback_id: str) -> Accident:
    acc_id = _first(raw, "id", "accident_id", "AccidentHistoryID")
    flags: Dict[str, bool] = {}
    nested = raw.get("flags")
    if isinstance(nested, Mapping):
        flags.update({str(k): to_bool(v) for k, v in nested.items()})
    # Top-level boolean columns are condition flags too (CF_Fire, CS_Explosion, ...).
    for key, value in raw.items():
        if key in _ACCIDENT_KEYS:
            continue
        if isinstance(value, bool):
            flags[str(key)] = value
    return Accident(
        accident_id=str(acc_id) if acc_id is not None else fallback_id,
        date=blank_to_none(_first(raw, "date", "accident_date", "AccidentDate")),
        time=blank_to_none(_first(raw, "time", "accident_time", "AccidentTime")),
        naics_code=blank_to_none(_first(raw, "naics_code", "NAICSCode")),
        flags=flags,
    )


def submission_from_document(raw: Mapping[str, Any], index: int = 0) -> Submission:
    sub_id = _first(raw, "id", "submission_id", "submissionId")
    sub_key = str(sub_id) if sub_id is not None else str(index)
    accidents = [
        accident_from_document(a, f"{sub_key}-{i}")
        for i, a in enumerate(_as_list(raw.get("accidents")))
        if isinstance(a, Mapping)
    ]
    return Submission(
        submission_id=sub_key,
        date_val=blank_to_none(_first(raw, "date_val", "SafetyInspectionDate")),
        date_dereg=blank_to_none(_first(raw, "date_dereg", "DeRegistrationDate")),
        lat=to_float(_first(raw, "lat_sub", "FacilityLatDecDegs", "FRS_Lat")),
        lon=to_float(_first(raw, "lon_sub", "FacilityLongDecDegs", "FRS_Long")),
        processes=[
            process_from_document(p, i)
            for i, p in enumerate(_as_list(raw.get("processes")))
            if isinstance(p, Mapping)
        ],
        accidents=accidents,
        declared_accidents=to_int(raw.get("num_accidents")),
    )


def facility_from_document(
    record: Mapping[str, Any],
    state_abbr: Optional[str] = None,
    county_fips: Optional[str] = None,
    county_name: Optional[str] = None,
) -> Facility:
    submissions = [
        submission_from_document(s, i)
        for i, s in enumerate(_as_list(record.get("submissions")))
        if isinstance(s, Mapping)
    ]
    # By-state summaries only carry the latest submission.
    sub_last = record.get("sub_last")
    if not submissions and isinstance(sub_last, Mapping):
        submissions = [submission_from_document(sub_last)]

    state_raw = _first(record, "state", "FacilityState")
    if isinstance(state_raw, Mapping):
        abbr = str(state_raw.get("abbr") or state_abbr or "")
    else:
        abbr = str(state_raw or state_abbr or "")
    abbr = abbr.strip().upper()

    valid_flag = _first(record, "valid_lat_long", "ValidLatLongFlag")
    return Facility(
        epa_facility_id=str(_first(record, "EPAFacilityID", "epa_facility_id") or "").strip(),
        name=str(_first(record, "name", "FacilityName") or ""),
        state=StateRef(abbr=abbr, name=state_name(abbr)),
        address=blank_to_none(_first(record, "address", "FacilityAddress", "FacilityStr1")),
        city=blank_to_none(_first(record, "city", "FacilityCity")),
        county_fips=blank_to_none(
            _first(record, "county_fips", "FacilityCountyFIPS") or county_fips
        ),
        county_name=blank_to_none(record.get("county_name") or county_name),
        zip=blank_to_none(_first(record, "zip", "FacilityZipCode")),
        parent_company=blank_to_none(
            _first(record, "parent_company", "company_1", "ParentCompanyName")
        ),
        duns=blank_to_none(_first(record, "duns", "FacilityDUNS")),
        operator=blank_to_none(_first(record, "operator", "OperatorName")),
        lat=to_float(_first(record, "lat", "FRS_Lat", "FacilityLatDecDegs")),
        lon=to_float(_first(record, "lon", "FRS_Long", "FacilityLongDecDegs")),
        valid_lat_long=None if valid_flag is None else to_bool(valid_flag),
        submissions=submissions,
        accident_records=[
            accident_from_document(a, f"{i}")
            for i, a in enumerate(_as_list(record.get("accidents")))
            if isinstance(a, Mapping)
        ],
    )


def group_submission_rows(rows: Iterable[Mapping[str, Any]]) -> List[Facility]:
    """Fold raw per-filing rows into one facility per EPAFacilityID.

    Facility attributes come from the latest filing.
    """

    grouped: Dict[str, List[Mapping[str, Any]]] = {}
    for row in rows:
        key = str(row.get("EPAFacilityID") or "").strip()
        if not key:
            continue
        grouped.setdefault(key, []).append(row)

    out: List[Facility] = []
    for epa_id, group in grouped.items():
        submissions = [submission_from_document(r, i) for i, r in enumerate(group)]
        latest = pick_latest(submissions)
        exemplar = group[0]
        for i, sub in enumerate(submissions):
            if sub is latest:
                exemplar = group[i]
                break
        facility = facility_from_document(exemplar)
        facility.epa_facility_id = epa_id
        facility.submissions = submissions
        facility.accident_records = []
        out.append(facility)
    return out


def facilities_from_state_document(doc: Mapping[str, Any]) -> List[Facility]:
    """Flatten one `<ABBR>.json` state document into facilities."""

    abbr = str(doc.get("abbr") or "").strip().upper()
    out: List[Facility] = []
    for county in _as_list(doc.get("counties")):
        if not isinstance(county, Mapping):
            continue
        fips = blank_to_none(county.get("fips"))
        cname = blank_to_none(county.get("name"))
        records = [r for r in _as_list(county.get("facilities")) if isinstance(r, Mapping)]
        if records and any("SafetyInspectionDate" in r or "submissionId" in r for r in records):
            for facility in group_submission_rows(records):
                facility.county_fips = facility.county_fips or fips
                facility.county_name = facility.county_name or cname
                if not facility.state.abbr:
                    facility.state = StateRef(abbr=abbr, name=state_name(abbr))
                out.append(facility)
            continue
        for record in records:
            facility = facility_from_document(record, abbr, fips, cname)
            if facility.epa_facility_id:
                out.append(facility)
    return out
