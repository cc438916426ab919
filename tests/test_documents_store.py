import json

import pytest
import requests

from conftest import FACILITIES, build_state_documents
from rmp_search.errors import BackendUnavailable, NotFound
from rmp_search.search.filters import parse_filters
from rmp_search.storage import DirectoryDocumentSource, DocumentFacilityStore, HttpDocumentSource


class CountingSource:
    def __init__(self, docs):
        self.docs = docs
        self.calls = 0

    def load(self):
        self.calls += 1
        return self.docs


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._text is not None:
            return json.loads(self._text)
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        result = self.responses[url]
        if isinstance(result, Exception):
            raise result
        return result


def test_document_set_is_loaded_once():
    source = CountingSource(list(build_state_documents(FACILITIES).values()))
    store = DocumentFacilityStore(source)
    assert source.calls == 0
    store.search(parse_filters({}))
    store.search(parse_filters({"state": "TX"}))
    store.get_facility("100000000001")
    assert source.calls == 1
    assert store.cell.populated


def test_missing_directory_is_backend_unavailable(tmp_path):
    store = DocumentFacilityStore(DirectoryDocumentSource(tmp_path / "missing"))
    with pytest.raises(BackendUnavailable) as exc:
        store.search(parse_filters({}))
    assert exc.value.detail == "data backend unavailable"
    assert "missing" in exc.value.message


def test_malformed_document_is_backend_unavailable(tmp_path):
    (tmp_path / "OH.json").write_text("{not json", encoding="utf-8")
    store = DocumentFacilityStore(DirectoryDocumentSource(tmp_path))
    with pytest.raises(BackendUnavailable):
        store.list_states()


def test_http_source_skips_failed_states():
    docs = build_state_documents(FACILITIES)
    base = "https://data.example.test/by-state"
    session = FakeSession(
        {
            f"{base}/OH.json": FakeResponse(payload=docs["OH"]),
            f"{base}/TX.json": FakeResponse(status_code=503),
            f"{base}/CA.json": requests.ConnectionError("unreachable"),
            f"{base}/NY.json": FakeResponse(text="<html>oops</html>"),
        }
    )
    source = HttpDocumentSource(base + "/", ["OH", "TX", "CA", "NY"], session=session)
    store = DocumentFacilityStore(source)
    facilities = store.search(parse_filters({}))
    assert {f.state.abbr for f in facilities} == {"OH"}
    assert source.last_skipped == ["TX", "CA", "NY"]
    assert len(session.urls) == 4


def test_not_found_messages_name_the_identifier(document_store):
    with pytest.raises(NotFound, match="Facility not found: 999"):
        document_store.get_facility("999")
    with pytest.raises(NotFound, match="Submission not found: 42"):
        document_store.get_submission("42")
    with pytest.raises(NotFound, match="State not found: ZZ"):
        document_store.get_state("zz")


def test_raw_submission_rows_are_grouped(tmp_path):
    doc = {
        "abbr": "WV",
        "name": "West Virginia",
        "counties": [
            {
                "fips": "54039",
                "name": "Kanawha",
                "facilities": [
                    {
                        "EPAFacilityID": "100000000077",
                        "submissionId": "1",
                        "FacilityName": "Old Name Chemical",
                        "FacilityCity": "Charleston",
                        "SafetyInspectionDate": "2012-05-01",
                        "FacilityLatDecDegs": "38.35",
                        "FacilityLongDecDegs": "-81.63",
                        "ValidLatLongFlag": "Yes",
                    },
                    {
                        "EPAFacilityID": "100000000077",
                        "submissionId": "2",
                        "FacilityName": "New Name Chemical",
                        "FacilityCity": "Charleston",
                        "SafetyInspectionDate": "2021-05-01",
                        "DeRegistrationDate": None,
                        "FacilityLatDecDegs": "38.35",
                        "FacilityLongDecDegs": "-81.63",
                        "ValidLatLongFlag": "Yes",
                    },
                ],
            }
        ],
    }
    (tmp_path / "WV.json").write_text(json.dumps(doc), encoding="utf-8")
    store = DocumentFacilityStore(DirectoryDocumentSource(tmp_path))
    (facility,) = store.search(parse_filters({}))
    assert facility.name == "New Name Chemical"
    assert facility.state.abbr == "WV"
    assert facility.county_fips == "54039"
    assert [s.submission_id for s in facility.submissions] == ["1", "2"]
    assert facility.is_active


def test_summary_records_with_sub_last_only(tmp_path):
    doc = {
        "abbr": "KS",
        "name": "Kansas",
        "counties": [
            {
                "fips": "20173",
                "name": "Sedgwick",
                "facilities": [
                    {
                        "EPAFacilityID": "100000000088",
                        "name": "Prairie Fertilizer",
                        "city": "Wichita",
                        "company_1": "Prairie Ag",
                        "sub_last": {
                            "id": "55",
                            "date_val": "2022-08-01",
                            "lat_sub": 37.69,
                            "lon_sub": -97.34,
                            "num_accidents": 2,
                        },
                    }
                ],
            }
        ],
    }
    (tmp_path / "KS.json").write_text(json.dumps(doc), encoding="utf-8")
    store = DocumentFacilityStore(DirectoryDocumentSource(tmp_path))
    facility = store.get_facility("100000000088")
    assert facility.coordinates() == (-97.34, 37.69)
    assert facility.num_accidents == 2
    assert facility.parent_company == "Prairie Ag"
    assert "accidents" not in facility.to_dict()
