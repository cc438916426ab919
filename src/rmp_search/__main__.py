import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from rmp_search.config import BACKENDS, get_settings
from rmp_search.errors import RMPSearchError
from rmp_search.exporters import write_csv
from rmp_search.log import configure_logging, log_event
from rmp_search.search.filters import parse_filters
from rmp_search.search.pager import parse_page_request
from rmp_search.security import sanitize_path
from rmp_search.storage import get_store


logger = logging.getLogger("rmp.cli")

# flag -> query parameter
TEXT_FLAGS = {
    "name": "facilityName",
    "facility_id": "facilityId",
    "parent": "parentCompany",
    "duns": "facilityDUNS",
    "address": "address",
    "city": "city",
    "state": "state",
    "county": "county",
    "zip": "zip",
    "program_level": "programLevel",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rmp_search",
        description="Search EPA RMP facilities from the command line",
    )
    parser.add_argument("--name", default=None, help="Facility name (substring)")
    parser.add_argument(
        "--exact-name", action="store_true", help="Match --name exactly"
    )
    parser.add_argument("--facility-id", default=None, help="EPA facility ID")
    parser.add_argument("--parent", default=None, help="Parent company (substring)")
    parser.add_argument(
        "--exact-parent", action="store_true", help="Match --parent exactly"
    )
    parser.add_argument("--duns", default=None, help="Facility DUNS number")
    parser.add_argument("--address", default=None, help="Street address (substring)")
    parser.add_argument(
        "--exact-address", action="store_true", help="Match --address exactly"
    )
    parser.add_argument("--city", default=None)
    parser.add_argument("--state", default=None, help="Two-letter state code")
    parser.add_argument("--county", default=None, help="County FIPS code")
    parser.add_argument("--zip", default=None)
    parser.add_argument(
        "--active-only",
        action="store_true",
        help="Only facilities whose latest submission is inspected and not deregistered",
    )
    parser.add_argument("--program-level", default=None, help="Program level 1-3")
    parser.add_argument(
        "--naics",
        action="append",
        default=[],
        help="NAICS code (repeat or comma-separate)",
    )
    parser.add_argument(
        "--chemical",
        action="append",
        default=[],
        help="Chemical ID (repeat or comma-separate)",
    )
    parser.add_argument("--page", default=None, help="1-based page number")
    parser.add_argument(
        "--per-page", default=None, help="Page size; 0 or 'all' returns everything"
    )
    parser.add_argument(
        "--backend", choices=list(BACKENDS), default=None, help="Facility store"
    )
    parser.add_argument("--db", default=None, help="SQLite database path")
    parser.add_argument("--data-dir", default=None, help="Per-state JSON directory")
    parser.add_argument(
        "--format", choices=["json", "csv"], default="json", help="Output format"
    )
    parser.add_argument("--output", default=None, help="Write output to a file (path)")
    parser.add_argument(
        "--log-level", default=None, help="Logging level (DEBUG, INFO, etc.)"
    )
    parser.add_argument(
        "--log-json", action="store_true", help="Emit logs as JSON lines"
    )
    return parser


def query_from_args(args: argparse.Namespace) -> Dict[str, List[str]]:
    query: Dict[str, List[str]] = {}
    for attr, param in TEXT_FLAGS.items():
        value = getattr(args, attr)
        if value:
            query[param] = [value]
    if args.naics:
        query["naicsCodes"] = list(args.naics)
    if args.chemical:
        query["chemicals"] = list(args.chemical)
    if args.active_only:
        query["activeOnly"] = ["true"]
    if args.exact_name:
        query["exactFacilityName"] = ["true"]
    if args.exact_parent:
        query["exactParent"] = ["true"]
    if args.exact_address:
        query["exactAddress"] = ["true"]
    return query


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_lines=args.log_json)

    settings = get_settings()
    overrides = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.db:
        overrides["sqlite_path"] = args.db
        overrides.setdefault("backend", "sqlite")
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
        overrides["data_url"] = None
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    output_path: Optional[Path] = None
    if args.output:
        try:
            output_path = sanitize_path(args.output, Path.cwd())
        except ValueError as exc:
            parser.error(f"--output: {exc}")

    filters = parse_filters(query_from_args(args))
    store = get_store(settings)
    try:
        if args.format == "csv":
            facilities = store.search(filters)
            text = None
        else:
            request = parse_page_request(
                args.page, args.per_page, default_per_page=settings.default_per_page
            )
            page = store.search_page(filters, request)
            text = json.dumps(page.to_dict(), indent=2)
    except RMPSearchError as exc:
        log_event(logger, "cli.failed", level=logging.ERROR, reason=exc.message)
        print(json.dumps({"error": exc.detail}), file=sys.stderr)
        return 1

    if output_path is not None:
        with output_path.open("w", newline="", encoding="utf-8") as handle:
            if text is None:
                rows = write_csv(facilities, handle)
            else:
                handle.write(text + "\n")
                rows = len(page.items)
        log_event(logger, "cli.output", format=args.format, rows=rows)
    elif text is None:
        write_csv(facilities, sys.stdout)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
