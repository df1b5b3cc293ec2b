import re
from dataclasses import dataclass
from typing import Optional, Sequence

from models import MatchType


_PROCESSOR_PREFIX = re.compile(
    r"^(SQ\s*\*|TST\s*\*|PAYPAL\s*\*|AMZN\s*)", re.IGNORECASE
)
_STORE_NUMBER = re.compile(r"\s*#\d+$")
_TRAILING_DIGITS = re.compile(r"\s+\d{4,}$")


@dataclass(frozen=True)
class MerchantRuleRecord:
    id: int
    merchant_pattern: str
    match_type: MatchType
    priority: int = 0
    match_count: int = 0
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    category_icon: Optional[str] = None
    category_color: Optional[str] = None
    is_business: bool = True
    vendor_display_name: Optional[str] = None


def matches_pattern(vendor: str, pattern: str, match_type: MatchType | str) -> bool:
    vendor_clean = vendor.lower().strip()
    pattern_clean = pattern.lower().strip()
    if match_type == MatchType.exact:
        return vendor_clean == pattern_clean
    if match_type == MatchType.starts_with:
        return vendor_clean.startswith(pattern_clean)
    return pattern_clean in vendor_clean


def rank_rules(rules: Sequence[MerchantRuleRecord]) -> list[MerchantRuleRecord]:
    # sorted() is stable, so equal keys keep their input order
    return sorted(rules, key=lambda r: (-r.priority, -r.match_count))


def find_matching_rule(
    vendor: Optional[str], rules: Sequence[MerchantRuleRecord]
) -> Optional[MerchantRuleRecord]:
    if not vendor or not vendor.strip():
        return None
    for rule in rank_rules(rules):
        if matches_pattern(vendor, rule.merchant_pattern, rule.match_type):
            return rule
    return None


def normalize_vendor_display_name(vendor: Optional[str]) -> str:
    if not vendor:
        return ""
    cleaned = _PROCESSOR_PREFIX.sub("", vendor.strip())
    cleaned = _STORE_NUMBER.sub("", cleaned)
    cleaned = _TRAILING_DIGITS.sub("", cleaned).strip()
    return " ".join(word.capitalize() for word in cleaned.lower().split())
