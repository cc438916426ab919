import csv
import io
from typing import Iterable, List, TextIO

from rmp_search.models import Facility
from rmp_search.security import neutralize_csv_field


EXPORT_FIELDS: List[str] = ["epaId", "name", "state", "city", "parent"]


def export_row(facility: Facility) -> dict:
    return {
        "epaId": facility.epa_facility_id,
        "name": facility.name,
        "state": facility.state.abbr,
        "city": facility.city,
        "parent": facility.parent_company,
    }


def write_csv(facilities: Iterable[Facility], handle: TextIO) -> int:
    writer = csv.DictWriter(handle, fieldnames=EXPORT_FIELDS)
    writer.writeheader()
    count = 0
    for facility in facilities:
        row = export_row(facility)
        writer.writerow({k: neutralize_csv_field(row.get(k)) for k in EXPORT_FIELDS})
        count += 1
    return count


def facilities_to_csv(facilities: Iterable[Facility]) -> str:
    buf = io.StringIO()
    write_csv(facilities, buf)
    return buf.getvalue()
