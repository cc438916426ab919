import pytest

from conftest import days_ago


pytest.importorskip("fastapi")


def _ids(fc):
    return sorted(f["properties"]["id"] for f in fc["features"])


def test_accident_count(store, make_client):
    client = make_client(store)
    assert client.get("/api/accidents/count").json() == {
        "totalAccidents": 3,
        "latestAccidents": 2,
    }


def test_accidents_geo_ranges(store, make_client):
    client = make_client(store)
    everything = client.get("/api/accidents/geo", params={"range": "all"})
    assert everything.headers["cache-control"] == "public, max-age=300"
    assert _ids(everything.json()) == ["9001", "9002", "9101"]
    latest = client.get("/api/accidents/geo", params={"range": "latest"}).json()
    assert _ids(latest) == ["9001", "9101"]
    legacy = client.get("/api/accidents/geo", params={"latestOnly": "true"}).json()
    assert _ids(legacy) == ["9001", "9101"]


def test_accidents_geo_snapshot_date(store, make_client):
    client = make_client(store)
    snapshot = client.get(
        "/api/accidents/geo", params={"submissionDate": days_ago(300)}
    ).json()
    assert _ids(snapshot) == ["9001", "9002"]
    cumulative = client.get("/api/accidents/geo", params={"submissionDate": "ALL"}).json()
    assert _ids(cumulative) == ["9001", "9002", "9101"]
    garbage = client.get("/api/accidents/geo", params={"submissionDate": "yesterday"}).json()
    assert _ids(garbage) == ["9001", "9002", "9101"]


def test_accidents_geo_feature_shape(store, make_client):
    client = make_client(store)
    fc = client.get("/api/accidents/geo", params={"minx": "-100", "miny": "25",
                                                   "maxx": "-90", "maxy": "35"}).json()
    (feature,) = fc["features"]
    assert feature["geometry"]["type"] == "Point"
    props = feature["properties"]
    assert props["id"] == "9101"
    assert props["EPAFacilityID"] == "100000000004"
    assert props["name"] == "Split Process Terminal"
    assert props["naicsCode"] == "493190"
    assert props["accidentTime"] == "2300"


def test_accidents_list(store, make_client):
    client = make_client(store)
    rows = client.get("/api/accidents/list", params={"limit": "2"}).json()
    assert len(rows) == 2
    dates = [r["date"] for r in rows]
    assert dates == sorted(dates, reverse=True)
    assert set(rows[0]) >= {"accident_id", "date", "EPAFacilityID", "name"}
    default = client.get("/api/accidents/list", params={"limit": "lots"}).json()
    assert 1 <= len(default) <= 40
