from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

import requests

from rmp_search.cache import OnceCell
from rmp_search.errors import BackendUnavailable, NotFound
from rmp_search.log import log_event
from rmp_search.models import Facility, Submission
from rmp_search.normalize import facilities_from_state_document
from rmp_search.search.filters import SearchFilters
from rmp_search.search.pager import Page, PageRequest, paginate
from rmp_search.search.predicate import build_predicate
from rmp_search.states import state_name
from rmp_search.storage.base import (
    AccidentPair,
    accident_in_window,
    last_submitted_since,
    state_detail,
    state_summaries,
)


logger = logging.getLogger("rmp.documents")


class DocumentSource(Protocol):
    def load(self) -> List[Mapping[str, Any]]: ...


@dataclass(frozen=True)
class DirectoryDocumentSource:
    """Per-state JSON files.

    Directory layout:
      <root>/<ABBR>.json  ->  {"abbr", "name", "counties": [{"fips", "name", "facilities": [...]}]}
    """

    root_dir: Path

    def load(self) -> List[Mapping[str, Any]]:
        root = Path(self.root_dir)
        if not root.is_dir():
            raise BackendUnavailable(f"data directory not found: {root}")
        docs: List[Mapping[str, Any]] = []
        for path in sorted(root.glob("*.json")):
            try:
                doc = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise BackendUnavailable(f"cannot read {path}: {e}") from e
            if not isinstance(doc, dict):
                raise BackendUnavailable(f"unexpected document shape in {path}")
            doc.setdefault("abbr", path.stem.upper())
            docs.append(doc)
        return docs


class HttpDocumentSource:
    """Fetch `<base_url>/<ABBR>.json` for each state.

    A state that fails to fetch or parse is skipped; the load still succeeds
    with the remaining states.
    """

    def __init__(
        self,
        base_url: str,
        states: Sequence[str],
        timeout: int = 10,
        session: Optional[Any] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.states = list(states)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.last_skipped: List[str] = []

    def _fetch(self, abbr: str) -> Optional[Mapping[str, Any]]:
        url = f"{self.base_url}/{abbr}.json"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            doc = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("state fetch failed for %s: %s", abbr, e)
            return None
        if not isinstance(doc, dict):
            logger.warning("state fetch for %s returned %s", abbr, type(doc).__name__)
            return None
        doc.setdefault("abbr", abbr)
        return doc

    def load(self) -> List[Mapping[str, Any]]:
        docs: List[Mapping[str, Any]] = []
        skipped: List[str] = []
        for abbr in self.states:
            doc = self._fetch(abbr)
            if doc is None:
                skipped.append(abbr)
                continue
            docs.append(doc)
        self.last_skipped = skipped
        log_event(logger, "documents.fetched", states=len(docs), skipped=len(skipped))
        return docs


@dataclass
class DocumentSet:
    facilities: List[Facility] = field(default_factory=list)
    by_id: Dict[str, Facility] = field(default_factory=dict)
    state_names: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_documents(cls, docs: Sequence[Mapping[str, Any]]) -> "DocumentSet":
        out = cls()
        for doc in docs:
            abbr = str(doc.get("abbr") or "").strip().upper()
            if abbr:
                out.state_names[abbr] = str(doc.get("name") or state_name(abbr))
            for facility in facilities_from_state_document(doc):
                if facility.epa_facility_id in out.by_id:
                    continue
                out.by_id[facility.epa_facility_id] = facility
        out.facilities = sorted(out.by_id.values(), key=lambda f: f.epa_facility_id)
        return out


class DocumentFacilityStore:
    """Evaluates every filter in-process over the loaded document set.

    The set is loaded lazily on first use and kept for the life of the
    process; a restart is the only refresh.
    """

    def __init__(self, source: DocumentSource, cell: Optional[OnceCell] = None):
        self.source = source
        self.cell = cell or OnceCell()

    def _load(self) -> DocumentSet:
        docs = self.source.load()
        data = DocumentSet.from_documents(docs)
        log_event(
            logger,
            "documents.loaded",
            states=len(data.state_names),
            facilities=len(data.facilities),
        )
        return data

    @property
    def data(self) -> DocumentSet:
        return self.cell.get_or_load(self._load)

    def search(self, filters: SearchFilters) -> List[Facility]:
        predicate = build_predicate(filters)
        return [f for f in self.data.facilities if predicate(f)]

    def search_page(self, filters: SearchFilters, request: PageRequest) -> Page[Facility]:
        return paginate(self.search(filters), request)

    def geo_facilities(self, filters: SearchFilters, since: Optional[str] = None) -> List[Facility]:
        return [f for f in self.search(filters) if last_submitted_since(f, since)]

    def get_facility(self, facility_id: str) -> Facility:
        facility = self.data.by_id.get(str(facility_id).strip())
        if facility is None:
            raise NotFound(f"Facility not found: {facility_id}")
        return facility

    def get_submission(self, submission_id: str) -> Tuple[Facility, Submission]:
        wanted = str(submission_id).strip()
        for facility in self.data.facilities:
            for sub in facility.submissions:
                if sub.submission_id == wanted:
                    return facility, sub
        raise NotFound(f"Submission not found: {submission_id}")

    def iter_accidents(
        self, since: Optional[str] = None, until: Optional[str] = None
    ) -> Iterator[AccidentPair]:
        for facility in self.data.facilities:
            for accident in facility.accidents or []:
                if accident_in_window(accident, since, until):
                    yield facility, accident

    def accident_counts(self, since: str) -> Dict[str, int]:
        total = 0
        latest = 0
        for facility, accident in self.iter_accidents():
            if facility.coordinates() is None:
                continue
            total += 1
            if accident_in_window(accident, since, None):
                latest += 1
        return {"totalAccidents": total, "latestAccidents": latest}

    def list_states(self) -> List[dict]:
        data = self.data
        return state_summaries(data.facilities, data.state_names)

    def get_state(self, abbr: str) -> dict:
        code = (abbr or "").strip().upper()
        data = self.data
        if code not in data.state_names:
            raise NotFound(f"State not found: {code}")
        facilities = [f for f in data.facilities if f.state.abbr == code]
        return state_detail(code, data.state_names[code], facilities)
