from datetime import date
from typing import Any, Iterable, List, Optional, Tuple

from rmp_search.models import Accident, Facility, to_float


BBox = Tuple[float, float, float, float]


def parse_bbox(minx: Any, miny: Any, maxx: Any, maxy: Any) -> Optional[BBox]:
    """west, south, east, north; anything non-numeric disables the filter."""

    values = [to_float(v) for v in (minx, miny, maxx, maxy)]
    if any(v is None for v in values):
        return None
    west, south, east, north = values
    return (min(west, east), min(south, north), max(west, east), max(south, north))


def in_bbox(coords: Tuple[float, float], bbox: Optional[BBox]) -> bool:
    if bbox is None:
        return True
    lon, lat = coords
    return bbox[0] <= lon <= bbox[2] and bbox[1] <= lat <= bbox[3]


def years_ago(years: int, today: Optional[date] = None) -> str:
    today = today or date.today()
    try:
        return today.replace(year=today.year - years).isoformat()
    except ValueError:
        # Feb 29 -> Feb 28
        return today.replace(month=2, day=28, year=today.year - years).isoformat()


def _point(coords: Tuple[float, float]) -> dict:
    return {"type": "Point", "coordinates": [coords[0], coords[1]]}


def facility_feature(facility: Facility) -> Optional[dict]:
    coords = facility.coordinates()
    if coords is None:
        return None
    latest = facility.latest_submission
    return {
        "type": "Feature",
        "geometry": _point(coords),
        "properties": {
            "id": facility.epa_facility_id,
            "name": facility.name,
            "city": facility.city,
            "state": facility.state.abbr,
            "lastDate": latest.date_val if latest is not None else None,
            "accidents": facility.num_accidents,
            "programLevel": facility.program_level,
            "toxicRelease": facility.toxic_release,
        },
    }


def facility_featurecollection(
    facilities: Iterable[Facility], bbox: Optional[BBox] = None
) -> dict:
    output: List[dict] = []
    for facility in facilities or []:
        feature = facility_feature(facility)
        if feature is None:
            continue
        if not in_bbox(tuple(feature["geometry"]["coordinates"]), bbox):
            continue
        output.append(feature)
    return {"type": "FeatureCollection", "features": output}


def accident_featurecollection(
    pairs: Iterable[Tuple[Facility, Accident]], bbox: Optional[BBox] = None
) -> dict:
    output: List[dict] = []
    for facility, accident in pairs or []:
        coords = facility.coordinates()
        if coords is None or not in_bbox(coords, bbox):
            continue
        output.append(
            {
                "type": "Feature",
                "geometry": _point(coords),
                "properties": {
                    "id": accident.accident_id,
                    "EPAFacilityID": facility.epa_facility_id,
                    "name": facility.name,
                    "accidentDate": accident.date,
                    "accidentTime": accident.time,
                    "naicsCode": accident.naics_code,
                },
            }
        )
    return {"type": "FeatureCollection", "features": output}
