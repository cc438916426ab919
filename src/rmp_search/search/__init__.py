from .filters import FILTER_FIELDS, SearchFilters, parse_filters
from .pager import Page, PageRequest, paginate, parse_page_request
from .predicate import build_predicate
from .query import BuiltQuery, build_where

__all__ = [
    "FILTER_FIELDS",
    "BuiltQuery",
    "Page",
    "PageRequest",
    "SearchFilters",
    "build_predicate",
    "build_where",
    "paginate",
    "parse_filters",
    "parse_page_request",
]
