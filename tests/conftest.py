import json
import logging
import os
import socket
import sqlite3
import sys
import urllib.request
from datetime import date, timedelta
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"

# Prefer repo sources over any installed package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0]
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)
    monkeypatch.setattr(
        urllib.request,
        "urlopen",
        lambda *args, **kwargs: (_ for _ in ()).throw(
            RuntimeError("Network access blocked in tests")
        ),
    )


@pytest.fixture(autouse=True)
def reset_rmp_logging():
    yield
    logger = logging.getLogger("rmp")
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def days_ago(n: int) -> str:
    return (date.today() - timedelta(days=n)).isoformat()


STATE_DOC_NAMES = {"OH": "Ohio", "TX": "Texas"}

# One data set, written both as per-state JSON documents and as SQLite rows.
FACILITIES = [
    {
        "id": "100000000001",
        "name": "Acme Ammonia Plant",
        "state": "OH",
        "city": "Columbus",
        "address": "100 Industrial Pkwy",
        "zip": "43215",
        "county_fips": "39049",
        "county_name": "Franklin",
        "parent": "Acme Holdings",
        "duns": "001234567",
        "operator": "Acme Ops LLC",
        "lat": "39.9612",
        "lon": "-82.9988",
        "valid": "Yes",
        "submissions": [
            {
                "id": 1001,
                "date": days_ago(4000),
                "dereg": None,
                "processes": [
                    {
                        "id": 5001,
                        "level": 1,
                        "toxic": False,
                        "naics": ["325311"],
                        "chemicals": [(56, "Ammonia (anhydrous)", 5000.0)],
                    }
                ],
                "accidents": [
                    {
                        "id": 9002,
                        "date": days_ago(4100),
                        "time": "0930",
                        "naics": "325311",
                        "flags": {"CF_EquipmentFailure": True},
                    }
                ],
            },
            {
                "id": 1002,
                "date": days_ago(200),
                "dereg": None,
                "processes": [
                    {
                        "id": 5002,
                        "level": 2,
                        "toxic": True,
                        "naics": ["325311"],
                        "chemicals": [(56, "Ammonia (anhydrous)", 12000.0)],
                    },
                    {
                        "id": 5003,
                        "level": 3,
                        "toxic": False,
                        "naics": ["424690"],
                        "chemicals": [(1, "Chlorine", 900.0)],
                    },
                ],
                "accidents": [
                    {
                        "id": 9001,
                        "date": days_ago(400),
                        "time": "1415",
                        "naics": "325311",
                        "flags": {"CF_Fire": True, "CS_Explosion": False},
                    }
                ],
            },
        ],
    },
    {
        "id": "100000000002",
        "name": "Buckeye Chlorine Works",
        "state": "OH",
        "city": "Dayton",
        "address": "22 Canal St",
        "zip": "45402",
        "county_fips": "39113",
        "county_name": "Montgomery",
        "parent": "Acme Holdings Inc",
        "duns": "009876543",
        "operator": None,
        "lat": "39.7589",
        "lon": "-84.1916",
        "valid": "Yes",
        "submissions": [
            {
                "id": 2001,
                "date": days_ago(900),
                "dereg": days_ago(300),
                "processes": [
                    {
                        "id": 6001,
                        "level": 2,
                        "toxic": False,
                        "naics": ["325180"],
                        "chemicals": [(1, "Chlorine", 2500.0)],
                    }
                ],
                "accidents": [],
            }
        ],
    },
    {
        "id": "100000000003",
        "name": "Gulf Refining",
        "state": "TX",
        "city": "Houston",
        "address": "9 Ship Channel Rd",
        "zip": "77002",
        "county_fips": "48201",
        "county_name": "Harris",
        "parent": "Gulf Energy",
        "duns": None,
        "operator": None,
        "lat": "29.7604",
        "lon": "-95.3698",
        "valid": "Yes",
        "submissions": [
            {
                "id": 3001,
                "date": None,
                "dereg": None,
                "processes": [
                    {
                        "id": 7001,
                        "level": 3,
                        "toxic": True,
                        "naics": ["324110"],
                        "chemicals": [(98, "Propane", 80000.0)],
                    }
                ],
                "accidents": [],
            }
        ],
    },
    {
        "id": "100000000004",
        "name": "Split Process Terminal",
        "state": "TX",
        "city": "Pasadena",
        "address": "4 Terminal Way",
        "zip": "77506",
        "county_fips": "48201",
        "county_name": "Harris",
        "parent": None,
        "duns": None,
        "operator": None,
        "lat": "29.6911",
        "lon": "-95.2091",
        "valid": "Yes",
        "submissions": [
            {
                "id": 4001,
                "date": days_ago(100),
                "dereg": None,
                "processes": [
                    {
                        "id": 8001,
                        "level": 2,
                        "toxic": False,
                        "naics": ["493190"],
                        "chemicals": [(98, "Propane", 40000.0)],
                    },
                    {
                        "id": 8002,
                        "level": 3,
                        "toxic": False,
                        "naics": ["493190"],
                        "chemicals": [(56, "Ammonia (anhydrous)", 3000.0)],
                    },
                ],
                "accidents": [
                    {
                        "id": 9101,
                        "date": days_ago(150),
                        "time": "2300",
                        "naics": "493190",
                        "flags": {},
                    }
                ],
            }
        ],
    },
    {
        "id": "100000000005",
        "name": "Bad Coords Depot",
        "state": "OH",
        "city": "Toledo",
        "address": "5 Dock Rd",
        "zip": "43604",
        "county_fips": "39095",
        "county_name": "Lucas",
        "parent": None,
        "duns": None,
        "operator": None,
        "lat": "abc",
        "lon": "-83.5552",
        "valid": "Yes",
        "submissions": [
            {
                "id": 5501,
                "date": days_ago(4000),
                "dereg": None,
                "processes": [
                    {
                        "id": 8501,
                        "level": 1,
                        "toxic": False,
                        "naics": ["424710"],
                        "chemicals": [(98, "Propane", 20000.0)],
                    }
                ],
                "accidents": [
                    {
                        "id": 9201,
                        "date": days_ago(50),
                        "time": "0100",
                        "naics": "424710",
                        "flags": {"CF_HumanError": True},
                    }
                ],
            }
        ],
    },
]


def _document_record(fac: dict) -> dict:
    return {
        "EPAFacilityID": fac["id"],
        "name": fac["name"],
        "address": fac["address"],
        "city": fac["city"],
        "zip": fac["zip"],
        "county_fips": fac["county_fips"],
        "company_1": fac["parent"],
        "duns": fac["duns"],
        "operator": fac["operator"],
        "lat": fac["lat"],
        "lon": fac["lon"],
        "valid_lat_long": fac["valid"],
        "submissions": [
            {
                "id": str(sub["id"]),
                "date_val": sub["date"],
                "date_dereg": sub["dereg"],
                "lat_sub": fac["lat"],
                "lon_sub": fac["lon"],
                "processes": [
                    {
                        "id": str(proc["id"]),
                        "program_level": proc["level"],
                        "toxic_release": proc["toxic"],
                        "naics": list(proc["naics"]),
                        "chemicals": [
                            {"id": str(cid), "name": cname, "quantity": qty}
                            for cid, cname, qty in proc["chemicals"]
                        ],
                    }
                    for proc in sub["processes"]
                ],
                "accidents": [
                    {
                        "id": str(acc["id"]),
                        "date": acc["date"],
                        "time": acc["time"],
                        "naics_code": acc["naics"],
                        "flags": dict(acc["flags"]),
                    }
                    for acc in sub["accidents"]
                ],
            }
            for sub in fac["submissions"]
        ],
    }


def build_state_documents(facilities) -> dict:
    docs: dict = {}
    for fac in facilities:
        abbr = fac["state"]
        doc = docs.setdefault(
            abbr,
            {"abbr": abbr, "name": STATE_DOC_NAMES.get(abbr, abbr), "counties": []},
        )
        county = next(
            (c for c in doc["counties"] if c["fips"] == fac["county_fips"]), None
        )
        if county is None:
            county = {"fips": fac["county_fips"], "name": fac["county_name"], "facilities": []}
            doc["counties"].append(county)
        county["facilities"].append(_document_record(fac))
    return docs


def write_state_documents(root: Path, facilities) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for abbr, doc in build_state_documents(facilities).items():
        (root / f"{abbr}.json").write_text(json.dumps(doc), encoding="utf-8")
    return root


def write_sqlite(path: Path, facilities) -> Path:
    from rmp_search.storage.sqlite import init_schema

    conn = sqlite3.connect(str(path))
    try:
        init_schema(conn)
        for fac in facilities:
            for sub in fac["submissions"]:
                conn.execute(
                    """
                    INSERT INTO facilities (
                        submission_id, epa_facility_id, facility_name, address, city,
                        state, county_fips, county_name, zip, parent_company_name,
                        facility_duns, operator_name, lat_dec_degs, long_dec_degs,
                        valid_lat_long_flag, safety_inspection_date, dereg_date
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        sub["id"],
                        fac["id"],
                        fac["name"],
                        fac["address"],
                        fac["city"],
                        fac["state"],
                        fac["county_fips"],
                        fac["county_name"],
                        fac["zip"],
                        fac["parent"],
                        fac["duns"],
                        fac["operator"],
                        fac["lat"],
                        fac["lon"],
                        fac["valid"],
                        sub["date"],
                        sub["dereg"],
                    ),
                )
                for proc in sub["processes"]:
                    conn.execute(
                        "INSERT INTO processes (process_id, submission_id, program_level, toxic_release) "
                        "VALUES (?, ?, ?, ?)",
                        (proc["id"], sub["id"], proc["level"], 1 if proc["toxic"] else 0),
                    )
                    for code in proc["naics"]:
                        conn.execute(
                            "INSERT INTO process_naics (process_id, naics_code) VALUES (?, ?)",
                            (proc["id"], code),
                        )
                    for cid, cname, qty in proc["chemicals"]:
                        conn.execute(
                            "INSERT OR IGNORE INTO chemicals (chemical_id, chemical_name) VALUES (?, ?)",
                            (cid, cname),
                        )
                        conn.execute(
                            "INSERT INTO process_chemicals (process_id, chemical_id, quantity) "
                            "VALUES (?, ?, ?)",
                            (proc["id"], cid, qty),
                        )
                for acc in sub["accidents"]:
                    conn.execute(
                        "INSERT INTO accident_history (accident_history_id, submission_id, "
                        "accident_date, accident_time, naics_code, flags) VALUES (?, ?, ?, ?, ?, ?)",
                        (
                            acc["id"],
                            sub["id"],
                            acc["date"],
                            acc["time"],
                            acc["naics"],
                            json.dumps(acc["flags"]),
                        ),
                    )
        conn.commit()
    finally:
        conn.close()
    return path


def bulk_facilities(state: str, count: int, program_level: int, start: int = 1) -> list:
    """`count` minimal facilities in one county of `state`."""

    out = []
    for i in range(start, start + count):
        out.append(
            {
                "id": f"2{i:011d}",
                "name": f"{state} Facility {i:03d}",
                "state": state,
                "city": "Springfield",
                "address": f"{i} Main St",
                "zip": "45501",
                "county_fips": "39023",
                "county_name": "Clark",
                "parent": None,
                "duns": None,
                "operator": None,
                "lat": "39.92",
                "lon": "-83.80",
                "valid": "Yes",
                "submissions": [
                    {
                        "id": 100000 + i,
                        "date": days_ago(30),
                        "dereg": None,
                        "processes": [
                            {
                                "id": 200000 + i,
                                "level": program_level,
                                "toxic": False,
                                "naics": ["325199"],
                                "chemicals": [(56, "Ammonia (anhydrous)", 100.0)],
                            }
                        ],
                        "accidents": [],
                    }
                ],
            }
        )
    return out


@pytest.fixture
def document_store(tmp_path):
    from rmp_search.storage import DirectoryDocumentSource, DocumentFacilityStore

    root = write_state_documents(tmp_path / "by-state", FACILITIES)
    return DocumentFacilityStore(DirectoryDocumentSource(root))


@pytest.fixture
def sqlite_store(tmp_path):
    from rmp_search.storage import SQLiteFacilityStore

    path = write_sqlite(tmp_path / "rmp.sqlite", FACILITIES)
    return SQLiteFacilityStore(str(path))


@pytest.fixture(params=["document", "sqlite"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def make_client():
    pytest.importorskip("fastapi")
    pytest.importorskip("httpx")
    from fastapi.testclient import TestClient

    from rmp_search.api.app import create_app
    from rmp_search.cache import TTLCache

    def _make(store, geo_cache=None):
        app = create_app(store=store, geo_cache=TTLCache() if geo_cache is None else geo_cache)
        return TestClient(app)

    return _make
