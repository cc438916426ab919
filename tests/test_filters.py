from rmp_search.search.filters import (
    SearchFilters,
    parse_bool,
    parse_filters,
    query_from_multidict,
)


def test_empty_and_unknown_params_contribute_nothing():
    filters = parse_filters(
        {"facilityName": "", "city": "   ", "bogus": "x", "naicsCodes": []}
    )
    assert filters == SearchFilters()
    assert filters.active_names() == []


def test_state_is_uppercased():
    assert parse_filters({"state": " oh "}).state == "OH"


def test_program_level_non_integer_is_dropped():
    assert parse_filters({"programLevel": "two"}).program_level is None
    assert parse_filters({"programLevel": "2"}).program_level == 2
    assert parse_filters({"programLevel": "2.0"}).program_level == 2


def test_sets_accept_repeated_and_comma_separated_values():
    filters = parse_filters({"naicsCodes": ["325311", "424690,325180"], "chemicals": "56"})
    assert filters.naics_codes == frozenset({"325311", "424690", "325180"})
    assert filters.chemicals == frozenset({"56"})
    assert filters.has_process_filters


def test_exact_flags_are_independent():
    filters = parse_filters(
        {"facilityName": "Acme", "exactFacilityName": "true", "parentCompany": "Acme"}
    )
    assert filters.exact_facility_name is True
    assert filters.exact_parent is False
    assert filters.exact_address is False


def test_active_only_parsing():
    assert parse_filters({"activeOnly": "true"}).active_only is True
    assert parse_filters({"activeOnly": "false"}).active_only is False
    assert parse_bool(["1"]) is True
    assert parse_bool(None) is False


def test_active_names_lists_query_params():
    filters = parse_filters({"state": "OH", "programLevel": "2", "chemicals": "56"})
    assert filters.active_names() == ["state", "programLevel", "chemicals"]


def test_cache_key_ignores_set_order():
    a = parse_filters({"naicsCodes": "1,2,3"})
    b = parse_filters({"naicsCodes": ["3", "2", "1"]})
    assert a.cache_key() == b.cache_key()
    hash(a.cache_key())


class _MultiDict:
    def __init__(self, pairs):
        self.pairs = pairs

    def keys(self):
        seen = []
        for k, _ in self.pairs:
            if k not in seen:
                seen.append(k)
        return seen

    def getlist(self, key):
        return [v for k, v in self.pairs if k == key]


def test_query_from_multidict_keeps_repeated_keys():
    query = query_from_multidict(
        _MultiDict([("chemicals", "56"), ("chemicals", "1"), ("state", "tx")])
    )
    assert query == {"chemicals": ["56", "1"], "state": ["tx"]}
    filters = parse_filters(query)
    assert filters.chemicals == frozenset({"56", "1"})
    assert filters.state == "TX"
