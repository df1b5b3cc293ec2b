import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence


_NON_VENDOR_CHARS = re.compile(r"[^a-z0-9\s]")
_NON_WORD_CHARS = re.compile(r"[^\w\s]")

UNIT_ALIASES = {
    "ea": "each",
    "pc": "each",
    "pcs": "each",
    "lb": "lb",
    "lbs": "lb",
    "oz": "oz",
    "gal": "gal",
    "gallon": "gal",
    "gallons": "gal",
    "kg": "kg",
    "g": "g",
    "gram": "g",
    "grams": "g",
    "l": "L",
    "liter": "L",
    "liters": "L",
    "ml": "mL",
    "ct": "count",
    "count": "count",
    "pack": "pack",
    "pk": "pack",
    "box": "box",
    "case": "case",
    "dz": "dozen",
    "dozen": "dozen",
}


@dataclass(frozen=True)
class LineItem:
    item_name: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    unit_of_measure: str = "each"


def normalize_vendor(vendor: Optional[str]) -> str:
    """Canonical vendor key used to group price history.

    Only ``[a-z0-9 ]`` survives, with single spaces and no padding, so the
    result is stable under repeated normalization.
    """
    cleaned = _NON_VENDOR_CHARS.sub("", (vendor or "").lower())
    return " ".join(cleaned.split())


def normalize_item_name(name: Optional[str]) -> str:
    cleaned = _NON_WORD_CHARS.sub("", (name or "").lower())
    return " ".join(cleaned.split())


def parse_unit(unit: Optional[str]) -> str:
    clean = (unit or "").lower().strip()
    return UNIT_ALIASES.get(clean, clean or "each")


def calculate_line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_price)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def validate_line_items_total(
    items: Sequence[LineItem],
    expense_total: Decimal,
    tolerance: Decimal = Decimal("0.10"),
) -> dict[str, object]:
    items_total = sum((item.line_total for item in items), Decimal("0"))
    difference = abs(items_total - Decimal(expense_total))
    return {
        "valid": difference <= tolerance,
        "items_total": items_total,
        "difference": difference,
    }
