"""Tests for normalization.py module."""

import pytest

from config import ConfigError
from normalization import (
    NO_MATCH,
    InvalidFilterRuleError,
    NormalizationError,
    normalize,
    validate_filter,
)


KEEP_MINUTES = "[-T0-9]+:[0-9]+"


class TestNormalize:
    """Tests for normalize function."""

    def test_filter_keeps_and_trims_fields(self):
        """date trimmed to the minute, color kept, age dropped"""
        raw = {"date": "2024-01-01T10:15:30Z", "color": "blue", "age": 25}
        result = normalize(raw, {"date": KEEP_MINUTES, "color": True})
        assert result == {"date": "2024-01-01T10:15", "color": "blue"}

    def test_none_filter_is_identity(self):
        """No filter → state returned unchanged"""
        raw = {"date": "2024-01-01T10:15:30Z", "color": "blue", "age": 25}
        assert normalize(raw, None) is raw
        assert normalize("plain", None) == "plain"

    def test_unmatched_pattern_yields_no_match_marker(self):
        """Pattern that does not match → "no-match" """
        result = normalize({"date": "yesterday"}, {"date": KEEP_MINUTES})
        assert result == {"date": NO_MATCH}
        assert NO_MATCH == "no-match"

    def test_pattern_matches_anywhere_in_value(self):
        """First matching substring is kept, not only a prefix match"""
        result = normalize({"version": "release v1.2.3 build 7"}, {"version": r"v[0-9.]+"})
        assert result == {"version": "v1.2.3"}

    def test_missing_fields_are_omitted(self):
        """Fields named in the filter but absent from the state are skipped"""
        result = normalize({"color": "blue"}, {"color": True, "size": True, "date": KEEP_MINUTES})
        assert result == {"color": "blue"}

    def test_none_value_under_pattern_is_omitted(self):
        """A null value has nothing to match"""
        assert normalize({"date": None}, {"date": KEEP_MINUTES}) == {}

    def test_none_value_under_true_is_kept(self):
        """A null value is copied verbatim like any other value"""
        assert normalize({"date": None}, {"date": True}) == {"date": None}

    def test_non_string_value_is_matched_as_text(self):
        """Numbers are matched against their text form"""
        assert normalize({"code": 20451}, {"code": "^[0-9]{3}"}) == {"code": "204"}

    def test_nested_values_copied_verbatim(self):
        """True copies nested structures as is"""
        raw = {"meta": {"region": "eu", "zone": 2}, "noise": 1}
        assert normalize(raw, {"meta": True}) == {"meta": {"region": "eu", "zone": 2}}

    def test_does_not_mutate_input(self):
        raw = {"date": "2024-01-01T10:15:30Z", "color": "blue"}
        normalize(raw, {"date": KEEP_MINUTES})
        assert raw == {"date": "2024-01-01T10:15:30Z", "color": "blue"}

    def test_invalid_rule_fails_fast(self):
        """Rules other than true or a pattern are programmer errors"""
        with pytest.raises(InvalidFilterRuleError):
            normalize({"color": "blue"}, {"color": 1})
        with pytest.raises(InvalidFilterRuleError):
            normalize({"color": "blue"}, {"color": False})

    def test_non_mapping_state_with_filter_raises(self):
        """A filter needs fields to work on"""
        with pytest.raises(NormalizationError):
            normalize(["a", "b"], {"color": True})
        with pytest.raises(NormalizationError):
            normalize("blue", {"color": True})


class TestValidateFilter:
    """Tests for validate_filter function."""

    def test_none_is_valid(self):
        validate_filter(None)

    def test_valid_filter(self):
        validate_filter({"date": KEEP_MINUTES, "color": True})

    def test_empty_filter_raises(self):
        with pytest.raises(InvalidFilterRuleError):
            validate_filter({})

    def test_non_mapping_raises(self):
        with pytest.raises(InvalidFilterRuleError):
            validate_filter(["color"])

    @pytest.mark.parametrize("rule", [False, 1, 0.5, None, ["x"], {"exclude": ":.*"}])
    def test_invalid_rule_raises(self, rule):
        with pytest.raises(InvalidFilterRuleError):
            validate_filter({"field": rule})

    def test_invalid_pattern_raises(self):
        with pytest.raises(InvalidFilterRuleError):
            validate_filter({"date": "[unclosed"})

    def test_filter_errors_are_config_errors(self):
        with pytest.raises(ConfigError):
            validate_filter({"date": 7})
