import pytest

from merchant_rules import (
    MerchantRuleRecord,
    find_matching_rule,
    matches_pattern,
    normalize_vendor_display_name,
    rank_rules,
)
from models import MatchType


def _rule(rule_id: int, pattern: str, match_type=MatchType.contains, **kwargs):
    return MerchantRuleRecord(
        id=rule_id, merchant_pattern=pattern, match_type=match_type, **kwargs
    )


def test_higher_priority_rule_wins() -> None:
    rules = [
        _rule(1, "AMAZON", priority=1, category_name="Supplies"),
        _rule(2, "AMAZON PRIME", priority=10, category_name="Subscriptions"),
    ]
    match = find_matching_rule("AMAZON PRIME VIDEO", rules)
    assert match is not None
    assert match.id == 2
    assert match.category_name == "Subscriptions"

    assert find_matching_rule("AMAZON MARKETPLACE", rules).id == 1


def test_ties_break_on_match_count_then_input_order() -> None:
    rules = [
        _rule(1, "shell", priority=5, match_count=2),
        _rule(2, "shell", priority=5, match_count=9),
        _rule(3, "shell", priority=5, match_count=9),
    ]
    assert [r.id for r in rank_rules(rules)] == [2, 3, 1]
    assert find_matching_rule("Shell Oil 5521", rules).id == 2


@pytest.mark.parametrize(
    ("vendor", "pattern", "match_type", "expected"),
    [
        ("  Home Depot ", "home depot", MatchType.exact, True),
        ("Home Depot #4410", "home depot", MatchType.exact, False),
        ("HOME DEPOT #4410", "Home Depot", MatchType.starts_with, True),
        ("The Home Depot", "home depot", MatchType.starts_with, False),
        ("The Home Depot", "HOME DEPOT", MatchType.contains, True),
        ("Lowes", "home depot", MatchType.contains, False),
        ("The Home Depot", "home depot", "contains", True),
    ],
)
def test_match_types_are_case_insensitive(
    vendor: str, pattern: str, match_type, expected: bool
) -> None:
    assert matches_pattern(vendor, pattern, match_type) is expected


@pytest.mark.parametrize("vendor", [None, "", "   "])
def test_blank_vendor_never_matches(vendor) -> None:
    rules = [_rule(1, "", MatchType.contains), _rule(2, "a", MatchType.contains)]
    assert find_matching_rule(vendor, rules) is None


def test_no_rules_means_no_match() -> None:
    assert find_matching_rule("Chevron", []) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("SQ *BLUE BOTTLE COFFEE", "Blue Bottle Coffee"),
        ("TST* taqueria el sol #12", "Taqueria El Sol"),
        ("PAYPAL *ADOBE 402935", "Adobe"),
        ("  home   depot  ", "Home Depot"),
        ("", ""),
        (None, ""),
    ],
)
def test_vendor_display_name_normalization(raw, expected: str) -> None:
    assert normalize_vendor_display_name(raw) == expected


def test_exact_rule_with_higher_priority_beats_broad_contains() -> None:
    rules = [
        _rule(1, "AMAZON", MatchType.contains, priority=5),
        _rule(2, "AMAZON PRIME", MatchType.exact, priority=10),
    ]
    assert find_matching_rule("amazon prime", rules).id == 2
    assert find_matching_rule("AMAZON PRIME VIDEO", rules).id == 1
