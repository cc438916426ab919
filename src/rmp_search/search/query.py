from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Sequence

from rmp_search.search.filters import SearchFilters


@dataclass(frozen=True)
class BuiltQuery:
    where_sql: str
    params: List[Any]


# Alias of the latest-submission facility row in the outer search query.
FACILITY_ALIAS = "r"


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join(["?"] * len(values))


# SQL function registered on every store connection. Built-in LOWER() only
# folds ASCII, so case folding goes through Python's str.lower().
FOLD_FUNCTION = "rmp_fold"


def fold_text(value: Any) -> str:
    return ("" if value is None else str(value)).strip().lower()


def _text_clause(column: str, exact: bool) -> str:
    # instr() keeps '%' and '_' in user input literal.
    if exact:
        return f"{FOLD_FUNCTION}({column}) = {FOLD_FUNCTION}(?)"
    return f"instr({FOLD_FUNCTION}({column}), {FOLD_FUNCTION}(?)) > 0"


def build_process_exists(filters: SearchFilters, alias: str = FACILITY_ALIAS) -> BuiltQuery:
    """One correlated EXISTS over a single process row.

    Every process-level filter is tested against the same `p` row so that a
    facility cannot match through two unrelated processes.
    """

    if not filters.has_process_filters:
        return BuiltQuery(where_sql="", params=[])

    parts = [f"s.epa_facility_id = {alias}.epa_facility_id"]
    params: List[Any] = []

    if filters.program_level is not None:
        parts.append("p.program_level = ?")
        params.append(filters.program_level)

    if filters.naics_codes:
        codes = sorted(filters.naics_codes)
        parts.append(
            "EXISTS (SELECT 1 FROM process_naics n WHERE n.process_id = p.process_id "
            f"AND n.naics_code IN ({_placeholders(codes)}))"
        )
        params.extend(codes)

    if filters.chemicals:
        chems = sorted(filters.chemicals)
        parts.append(
            "EXISTS (SELECT 1 FROM process_chemicals c WHERE c.process_id = p.process_id "
            f"AND CAST(c.chemical_id AS TEXT) IN ({_placeholders(chems)}))"
        )
        params.extend(chems)

    sql = (
        "EXISTS (SELECT 1 FROM facilities s "
        "JOIN processes p ON p.submission_id = s.submission_id WHERE "
        + " AND ".join(parts)
        + ")"
    )
    return BuiltQuery(where_sql=sql, params=params)


def build_where(filters: SearchFilters, alias: str = FACILITY_ALIAS) -> BuiltQuery:
    """Translate filters into a parameterized WHERE body (without `WHERE`)."""

    parts: List[str] = []
    params: List[Any] = []

    def col(name: str) -> str:
        return f"{alias}.{name}"

    if filters.facility_name:
        parts.append(_text_clause(col("facility_name"), filters.exact_facility_name))
        params.append(filters.facility_name)
    if filters.facility_id:
        parts.append(f"{col('epa_facility_id')} = ?")
        params.append(filters.facility_id.strip())
    if filters.parent_company:
        parts.append(_text_clause(col("parent_company_name"), filters.exact_parent))
        params.append(filters.parent_company)
    if filters.facility_duns:
        parts.append(f"TRIM(COALESCE({col('facility_duns')}, '')) = ?")
        params.append(filters.facility_duns.strip())
    if filters.address:
        parts.append(_text_clause(col("address"), filters.exact_address))
        params.append(filters.address)
    if filters.city:
        parts.append(_text_clause(col("city"), True))
        params.append(filters.city)
    if filters.state:
        parts.append(f"UPPER(TRIM(COALESCE({col('state')}, ''))) = ?")
        params.append(filters.state.strip().upper())
    if filters.county:
        parts.append(f"TRIM(COALESCE({col('county_fips')}, '')) = ?")
        params.append(filters.county.strip())
    if filters.zip:
        parts.append(f"TRIM(COALESCE({col('zip')}, '')) = ?")
        params.append(filters.zip.strip())
    if filters.active_only:
        # The ranked row is the latest submission for the facility.
        parts.append(
            f"NULLIF(TRIM({col('safety_inspection_date')}), '') IS NOT NULL "
            f"AND NULLIF(TRIM({col('dereg_date')}), '') IS NULL"
        )

    exists = build_process_exists(filters, alias)
    if exists.where_sql:
        parts.append(exists.where_sql)
        params.extend(exists.params)

    return BuiltQuery(where_sql=" AND ".join(parts), params=params)
