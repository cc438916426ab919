from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from rmp_search.assemble import assemble_facilities
from rmp_search.errors import BackendUnavailable, NotFound
from rmp_search.log import log_event
from rmp_search.models import Facility, Submission
from rmp_search.search.filters import SearchFilters
from rmp_search.search.pager import Page, PageRequest, make_page
from rmp_search.search.query import FOLD_FUNCTION, build_where, fold_text
from rmp_search.states import state_name
from rmp_search.storage.base import AccidentPair, accident_in_window, state_detail


logger = logging.getLogger("rmp.sqlite")

# SQLite bound-parameter ceiling is 999 on older builds.
_ID_CHUNK = 500


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS facilities (
        submission_id INTEGER PRIMARY KEY,
        epa_facility_id TEXT NOT NULL,
        facility_name TEXT,
        address TEXT,
        city TEXT,
        state TEXT,
        county_fips TEXT,
        county_name TEXT,
        zip TEXT,
        parent_company_name TEXT,
        facility_duns TEXT,
        operator_name TEXT,
        lat_dec_degs TEXT,
        long_dec_degs TEXT,
        valid_lat_long_flag TEXT,
        safety_inspection_date TEXT,
        dereg_date TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_facilities_epa_id ON facilities(epa_facility_id)",
    "CREATE INDEX IF NOT EXISTS idx_facilities_state ON facilities(state)",
    """
    CREATE TABLE IF NOT EXISTS processes (
        process_id INTEGER PRIMARY KEY,
        submission_id INTEGER NOT NULL,
        program_level INTEGER,
        toxic_release INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY(submission_id) REFERENCES facilities(submission_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_processes_submission ON processes(submission_id)",
    """
    CREATE TABLE IF NOT EXISTS process_naics (
        process_id INTEGER NOT NULL,
        naics_code TEXT NOT NULL,
        FOREIGN KEY(process_id) REFERENCES processes(process_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_process_naics_process ON process_naics(process_id, naics_code)",
    """
    CREATE TABLE IF NOT EXISTS chemicals (
        chemical_id INTEGER PRIMARY KEY,
        chemical_name TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS process_chemicals (
        process_chemical_id INTEGER PRIMARY KEY,
        process_id INTEGER NOT NULL,
        chemical_id INTEGER NOT NULL,
        quantity REAL,
        FOREIGN KEY(process_id) REFERENCES processes(process_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_process_chemicals_process ON process_chemicals(process_id, chemical_id)",
    """
    CREATE TABLE IF NOT EXISTS accident_history (
        accident_history_id INTEGER PRIMARY KEY,
        submission_id INTEGER NOT NULL,
        accident_date TEXT,
        accident_time TEXT,
        naics_code TEXT,
        flags TEXT,
        FOREIGN KEY(submission_id) REFERENCES facilities(submission_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_accident_history_submission ON accident_history(submission_id)",
)


def init_schema(conn: sqlite3.Connection) -> None:
    for statement in SCHEMA:
        conn.execute(statement)
    conn.commit()


# One row per facility: its latest submission (inspection date desc, nulls last).
_RANKED = """
    WITH ranked AS (
        SELECT
            f.*,
            ROW_NUMBER() OVER (
                PARTITION BY f.epa_facility_id
                ORDER BY
                    CASE WHEN NULLIF(TRIM(f.safety_inspection_date), '') IS NULL THEN 1 ELSE 0 END,
                    TRIM(f.safety_inspection_date) DESC,
                    f.submission_id ASC
            ) AS rn
        FROM facilities f
    )
"""

_DOMESTIC = (
    "r.valid_lat_long_flag = 'Yes' "
    "AND CAST(TRIM(r.lat_dec_degs) AS REAL) >= 0 "
    "AND CAST(TRIM(r.long_dec_degs) AS REAL) < 0"
)

_HYDRATE = """
    SELECT
        f.*,
        p.process_id AS process_id,
        p.program_level AS program_level,
        p.toxic_release AS toxic_release,
        n.naics_code AS naics_code,
        pc.chemical_id AS chemical_id,
        c.chemical_name AS chemical_name,
        pc.quantity AS quantity,
        a.accident_history_id AS accident_history_id,
        a.accident_date AS accident_date,
        a.accident_time AS accident_time,
        a.naics_code AS accident_naics_code,
        a.flags AS accident_flags
    FROM facilities f
    LEFT JOIN processes p ON p.submission_id = f.submission_id
    LEFT JOIN process_naics n ON n.process_id = p.process_id
    LEFT JOIN process_chemicals pc ON pc.process_id = p.process_id
    LEFT JOIN chemicals c ON c.chemical_id = pc.chemical_id
    LEFT JOIN accident_history a ON a.submission_id = f.submission_id
    WHERE f.epa_facility_id IN ({placeholders})
    ORDER BY
        f.epa_facility_id,
        f.submission_id,
        p.process_id,
        n.rowid,
        pc.process_chemical_id,
        a.accident_history_id
"""


def _is_domestic(facility: Facility) -> bool:
    coords = facility.coordinates()
    if coords is None or not facility.valid_lat_long:
        return False
    lon, lat = coords
    return lat >= 0 and lon < 0


class SQLiteFacilityStore:
    """Relational strategy: filters, ordering and paging run inside SQLite."""

    def __init__(self, path: str):
        self.path = Path(path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if not self.path.exists():
            raise BackendUnavailable(f"database not found: {self.path}")
        try:
            conn = sqlite3.connect(f"file:{self.path.resolve()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise BackendUnavailable(f"cannot open {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.create_function(FOLD_FUNCTION, 1, fold_text, deterministic=True)
        try:
            yield conn
        except sqlite3.Error as e:
            raise BackendUnavailable(f"query failed on {self.path}: {e}") from e
        finally:
            conn.close()

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._connect() as conn:
            return conn.execute(sql, tuple(params)).fetchall()

    def _matching_ids(
        self,
        filters: SearchFilters,
        extra_where: Sequence[str] = (),
        extra_params: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[str], int]:
        built = build_where(filters)
        where_parts = ["r.rn = 1"]
        if built.where_sql:
            where_parts.append(built.where_sql)
        where_parts.extend(extra_where)
        where_sql = " AND ".join(where_parts)
        params = list(built.params) + list(extra_params)

        with self._connect() as conn:
            total = conn.execute(
                f"{_RANKED} SELECT COUNT(*) FROM ranked r WHERE {where_sql}", tuple(params)
            ).fetchone()[0]
            sql = f"{_RANKED} SELECT r.epa_facility_id FROM ranked r WHERE {where_sql} ORDER BY r.epa_facility_id"
            page_params = list(params)
            if limit is not None:
                if offset >= (total or 0):
                    return [], int(total or 0)
                sql += " LIMIT ? OFFSET ?"
                page_params.extend([limit, offset])
            rows = conn.execute(sql, tuple(page_params)).fetchall()
        return [str(row[0]) for row in rows], int(total or 0)

    def _hydrate(self, ids: Sequence[str]) -> List[Facility]:
        if not ids:
            return []
        by_id: Dict[str, Facility] = {}
        with self._connect() as conn:
            for start in range(0, len(ids), _ID_CHUNK):
                chunk = list(ids[start : start + _ID_CHUNK])
                sql = _HYDRATE.format(placeholders=",".join(["?"] * len(chunk)))
                rows = conn.execute(sql, tuple(chunk)).fetchall()
                for facility in assemble_facilities(rows):
                    by_id[facility.epa_facility_id] = facility
        return [by_id[i] for i in ids if i in by_id]

    def search(self, filters: SearchFilters) -> List[Facility]:
        ids, _ = self._matching_ids(filters)
        return self._hydrate(ids)

    def search_page(self, filters: SearchFilters, request: PageRequest) -> Page[Facility]:
        if request.unlimited:
            ids, total = self._matching_ids(filters)
        else:
            ids, total = self._matching_ids(
                filters, limit=request.per_page, offset=request.offset
            )
        log_event(
            logger,
            "sqlite.search",
            level=logging.DEBUG,
            filters=filters.active_names(),
            total=total,
            returned=len(ids),
        )
        return make_page(total, request, self._hydrate(ids))

    def geo_facilities(self, filters: SearchFilters, since: Optional[str] = None) -> List[Facility]:
        extra_where = [_DOMESTIC]
        extra_params: List[Any] = []
        if since is not None:
            extra_where.append("substr(TRIM(r.safety_inspection_date), 1, 10) >= ?")
            extra_params.append(since)
        ids, _ = self._matching_ids(filters, extra_where, extra_params)
        return self._hydrate(ids)

    def get_facility(self, facility_id: str) -> Facility:
        found = self._hydrate([str(facility_id).strip()])
        if not found:
            raise NotFound(f"Facility not found: {facility_id}")
        return found[0]

    def get_submission(self, submission_id: str) -> Tuple[Facility, Submission]:
        wanted = str(submission_id).strip()
        rows = self._fetch(
            "SELECT epa_facility_id FROM facilities WHERE CAST(submission_id AS TEXT) = ?",
            (wanted,),
        )
        if not rows:
            raise NotFound(f"Submission not found: {submission_id}")
        facility = self.get_facility(str(rows[0]["epa_facility_id"]))
        for sub in facility.submissions:
            if sub.submission_id == wanted:
                return facility, sub
        raise NotFound(f"Submission not found: {submission_id}")

    def iter_accidents(
        self, since: Optional[str] = None, until: Optional[str] = None
    ) -> Iterator[AccidentPair]:
        where = ["1 = 1"]
        params: List[Any] = []
        if since is not None:
            where.append("substr(TRIM(a.accident_date), 1, 10) >= ?")
            params.append(since)
        if until is not None:
            where.append("substr(TRIM(a.accident_date), 1, 10) <= ?")
            params.append(until)
        rows = self._fetch(
            "SELECT DISTINCT f.epa_facility_id FROM accident_history a "
            "JOIN facilities f ON f.submission_id = a.submission_id "
            f"WHERE {' AND '.join(where)} ORDER BY f.epa_facility_id",
            params,
        )
        facilities = self._hydrate([str(r[0]) for r in rows])
        for facility in facilities:
            if not _is_domestic(facility):
                continue
            for accident in facility.accidents or []:
                if accident_in_window(accident, since, until):
                    yield facility, accident

    def accident_counts(self, since: str) -> Dict[str, int]:
        total = 0
        latest = 0
        for _, accident in self.iter_accidents():
            total += 1
            if accident_in_window(accident, since, None):
                latest += 1
        return {"totalAccidents": total, "latestAccidents": latest}

    def list_states(self) -> List[dict]:
        rows = self._fetch(
            f"""{_RANKED}
            SELECT
                UPPER(TRIM(r.state)) AS abbr,
                COUNT(*) AS facility_count,
                COUNT(DISTINCT COALESCE(r.county_fips, '')) AS county_count
            FROM ranked r
            WHERE r.rn = 1 AND NULLIF(TRIM(r.state), '') IS NOT NULL
            GROUP BY UPPER(TRIM(r.state))
            ORDER BY abbr
            """
        )
        return [
            {
                "abbr": row["abbr"],
                "name": state_name(row["abbr"]),
                "facility_count": int(row["facility_count"]),
                "county_count": int(row["county_count"]),
            }
            for row in rows
        ]

    def get_state(self, abbr: str) -> dict:
        code = (abbr or "").strip().upper()
        facilities = self.search(SearchFilters(state=code)) if code else []
        if not facilities:
            raise NotFound(f"State not found: {code}")
        return state_detail(code, state_name(code), facilities)
