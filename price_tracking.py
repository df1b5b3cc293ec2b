from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence


ALERT_MIN_CHANGE_PCT = Decimal("5")


@dataclass(frozen=True)
class PriceEntry:
    id: int
    item_name_normalized: str
    vendor: Optional[str]
    vendor_normalized: Optional[str]
    unit_price: Decimal
    quantity: Decimal
    unit_of_measure: str
    purchase_date: date


@dataclass
class PriceTrend:
    item_name: str
    current_price: Decimal
    avg_price: Decimal
    min_price: Decimal
    max_price: Decimal
    price_change_30d: Decimal
    price_change_90d: Decimal
    purchase_count: int
    last_purchase: date
    vendors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PriceAlert:
    item_name: str
    vendor: Optional[str]
    current_price: Decimal
    previous_price: Decimal
    change_pct: Decimal
    purchase_date: date
    severity: str


def group_by_item(entries: Iterable[PriceEntry]) -> dict[str, list[PriceEntry]]:
    groups: dict[str, list[PriceEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.item_name_normalized, []).append(entry)
    return groups


def _change_pct(current: Decimal, previous: Decimal) -> Decimal:
    if previous <= 0:
        return Decimal("0")
    return (current - previous) / previous * 100


def _price_as_of(newest_first: Sequence[PriceEntry], cutoff: date) -> Optional[Decimal]:
    for entry in newest_first:
        if entry.purchase_date <= cutoff:
            return entry.unit_price
    return None


def calculate_price_trend(
    history: Sequence[PriceEntry], item_name: str, today: date
) -> Optional[PriceTrend]:
    if not history:
        return None

    newest_first = sorted(history, key=lambda e: e.purchase_date, reverse=True)
    prices = [e.unit_price for e in newest_first]
    current = prices[0]

    price_30d = _price_as_of(newest_first, today - timedelta(days=30)) or current
    price_90d = _price_as_of(newest_first, today - timedelta(days=90)) or current

    vendors: list[str] = []
    for entry in newest_first:
        if entry.vendor and entry.vendor not in vendors:
            vendors.append(entry.vendor)

    return PriceTrend(
        item_name=item_name,
        current_price=current,
        avg_price=sum(prices, Decimal("0")) / len(prices),
        min_price=min(prices),
        max_price=max(prices),
        price_change_30d=_change_pct(current, price_30d),
        price_change_90d=_change_pct(current, price_90d),
        purchase_count=len(newest_first),
        last_purchase=newest_first[0].purchase_date,
        vendors=vendors,
    )


def _change_for(trend: PriceTrend, period: str) -> Decimal:
    return trend.price_change_30d if period == "30d" else trend.price_change_90d


def find_biggest_increases(
    trends: Sequence[PriceTrend], period: str = "30d", limit: int = 10
) -> list[PriceTrend]:
    rising = [t for t in trends if _change_for(t, period) > 0]
    return sorted(rising, key=lambda t: _change_for(t, period), reverse=True)[:limit]


def find_biggest_decreases(
    trends: Sequence[PriceTrend], period: str = "30d", limit: int = 10
) -> list[PriceTrend]:
    falling = [t for t in trends if _change_for(t, period) < 0]
    return sorted(falling, key=lambda t: _change_for(t, period))[:limit]


def find_frequent_items(
    trends: Sequence[PriceTrend], min_purchases: int = 3, limit: int = 10
) -> list[PriceTrend]:
    frequent = [t for t in trends if t.purchase_count >= min_purchases]
    return sorted(frequent, key=lambda t: t.purchase_count, reverse=True)[:limit]


def _severity(change_pct: Decimal) -> str:
    magnitude = abs(change_pct)
    if magnitude >= 20:
        return "alert"
    if magnitude >= 10:
        return "warning"
    return "info"


def detect_price_alerts(
    recent: Sequence[PriceEntry], history: Sequence[PriceEntry]
) -> list[PriceAlert]:
    """Flag recent purchases whose price moved against the prior purchase."""
    grouped = group_by_item(history)
    alerts: list[PriceAlert] = []
    for entry in recent:
        earlier = [
            h
            for h in grouped.get(entry.item_name_normalized, [])
            if h.purchase_date < entry.purchase_date
        ]
        if not earlier:
            continue
        previous = max(earlier, key=lambda h: h.purchase_date)
        change = _change_pct(entry.unit_price, previous.unit_price)
        if abs(change) < ALERT_MIN_CHANGE_PCT:
            continue
        alerts.append(
            PriceAlert(
                item_name=entry.item_name_normalized,
                vendor=entry.vendor,
                current_price=entry.unit_price,
                previous_price=previous.unit_price,
                change_pct=change,
                purchase_date=entry.purchase_date,
                severity=_severity(change),
            )
        )
    return sorted(alerts, key=lambda a: abs(a.change_pct), reverse=True)


SAVINGS_MIN_OVERPAID = Decimal("0.50")


@dataclass
class VendorPrice:
    vendor: str
    vendor_normalized: str
    avg_price: Decimal
    min_price: Decimal
    max_price: Decimal
    purchase_count: int
    last_purchase: date
    total_spent: Decimal


@dataclass
class VendorComparison:
    item_name: str
    item_name_normalized: str
    vendors: list[VendorPrice]
    best_vendor: Optional[VendorPrice]
    worst_vendor: Optional[VendorPrice]
    price_spread: Decimal
    price_spread_pct: Decimal
    total_purchases: int


@dataclass(frozen=True)
class SavingsOpportunity:
    item_name: str
    item_name_normalized: str
    total_spent: Decimal
    optimal_spend: Decimal
    overpaid_amount: Decimal
    overpaid_pct: Decimal
    best_vendor: str
    best_price: Decimal
    worst_vendor: str
    worst_price: Decimal
    recommendation: str


@dataclass
class VendorRanking:
    vendor: str
    vendor_normalized: str
    items_with_best_price: int = 0
    items_with_worst_price: int = 0
    total_items_tracked: int = 0
    avg_price_rank: Decimal = Decimal("0")
    potential_savings_if_switched: Decimal = Decimal("0")
    total_purchases: int = 0


def _vendor_key(entry: PriceEntry) -> str:
    return entry.vendor_normalized or (entry.vendor or "").lower().strip()


def vendors_with_history(entries: Iterable[PriceEntry]) -> set[str]:
    return {key for key in map(_vendor_key, entries) if key}


def vendor_prices(history: Sequence[PriceEntry]) -> list[VendorPrice]:
    """Per-vendor price stats for one item, cheapest average first."""
    by_vendor: dict[str, list[PriceEntry]] = {}
    for entry in history:
        key = _vendor_key(entry)
        if key:
            by_vendor.setdefault(key, []).append(entry)

    result: list[VendorPrice] = []
    for key, entries in by_vendor.items():
        newest = max(entries, key=lambda e: e.purchase_date)
        prices = [e.unit_price for e in entries]
        result.append(
            VendorPrice(
                vendor=newest.vendor or key,
                vendor_normalized=key,
                avg_price=sum(prices, Decimal("0")) / len(prices),
                min_price=min(prices),
                max_price=max(prices),
                purchase_count=len(entries),
                last_purchase=newest.purchase_date,
                total_spent=sum(
                    (e.unit_price * e.quantity for e in entries), Decimal("0")
                ),
            )
        )
    return sorted(result, key=lambda v: v.avg_price)


def compare_vendors_for_item(
    history: Sequence[PriceEntry], item_name: str
) -> Optional[VendorComparison]:
    vendors = vendor_prices(history)
    if not vendors:
        return None

    best, worst = vendors[0], vendors[-1]
    spread = worst.avg_price - best.avg_price if len(vendors) > 1 else Decimal("0")
    spread_pct = (
        spread / best.avg_price * 100
        if len(vendors) > 1 and best.avg_price > 0
        else Decimal("0")
    )
    return VendorComparison(
        item_name=item_name,
        item_name_normalized=history[0].item_name_normalized,
        vendors=vendors,
        best_vendor=best,
        worst_vendor=worst if len(vendors) > 1 else None,
        price_spread=spread,
        price_spread_pct=spread_pct,
        total_purchases=len(history),
    )


def _recommendation(
    overpaid: Decimal, diff_pct: Decimal, best: VendorPrice, worst: VendorPrice
) -> str:
    if overpaid >= 10:
        return (
            f"You've overpaid ${overpaid:.2f} on this item. "
            f"{best.vendor} is {diff_pct:.0f}% cheaper!"
        )
    if diff_pct >= 15:
        return f"This item is {diff_pct:.0f}% cheaper at {best.vendor}"
    if diff_pct >= 10:
        return (
            f"Save {diff_pct:.0f}% by shopping at {best.vendor} "
            f"instead of {worst.vendor}"
        )
    difference = worst.avg_price - best.avg_price
    return f"{best.vendor} has slightly better prices (${difference:.2f} less)"


def calculate_savings_opportunity(
    history: Sequence[PriceEntry], item_name: str
) -> Optional[SavingsOpportunity]:
    """What buying every unit at the cheapest vendor's average would have saved."""
    if len(history) < 2:
        return None
    vendors = vendor_prices(history)
    if len(vendors) < 2:
        return None

    best, worst = vendors[0], vendors[-1]
    total_spent = sum((e.unit_price * e.quantity for e in history), Decimal("0"))
    total_quantity = sum((e.quantity for e in history), Decimal("0"))
    optimal = best.avg_price * total_quantity
    overpaid = total_spent - optimal
    if overpaid < SAVINGS_MIN_OVERPAID:
        return None

    overpaid_pct = overpaid / optimal * 100 if optimal > 0 else Decimal("0")
    diff_pct = (worst.avg_price - best.avg_price) / worst.avg_price * 100
    return SavingsOpportunity(
        item_name=item_name,
        item_name_normalized=history[0].item_name_normalized,
        total_spent=total_spent,
        optimal_spend=optimal,
        overpaid_amount=overpaid,
        overpaid_pct=overpaid_pct,
        best_vendor=best.vendor,
        best_price=best.avg_price,
        worst_vendor=worst.vendor,
        worst_price=worst.avg_price,
        recommendation=_recommendation(overpaid, diff_pct, best, worst),
    )


def calculate_vendor_rankings(
    comparisons: Sequence[VendorComparison],
) -> list[VendorRanking]:
    rankings: dict[str, VendorRanking] = {}
    ranks: dict[str, list[int]] = {}
    for comparison in comparisons:
        last = len(comparison.vendors) - 1
        for rank, vendor in enumerate(comparison.vendors, start=1):
            key = vendor.vendor_normalized
            stats = rankings.setdefault(key, VendorRanking(vendor.vendor, key))
            ranks.setdefault(key, []).append(rank)
            stats.total_items_tracked += 1
            stats.total_purchases += vendor.purchase_count
            if rank == 1:
                stats.items_with_best_price += 1
            if rank - 1 == last and last > 0:
                stats.items_with_worst_price += 1
                best_price = comparison.vendors[0].avg_price
                stats.potential_savings_if_switched += (
                    vendor.avg_price - best_price
                ) * vendor.purchase_count

    for key, stats in rankings.items():
        stats.avg_price_rank = Decimal(sum(ranks[key])) / len(ranks[key])
    return sorted(rankings.values(), key=lambda r: r.avg_price_rank)


def calculate_savings_summary(
    opportunities: Sequence[SavingsOpportunity], limit: int = 5
) -> dict[str, object]:
    total = sum((o.overpaid_amount for o in opportunities), Decimal("0"))
    top = sorted(opportunities, key=lambda o: o.overpaid_amount, reverse=True)
    return {
        "total_overpaid_ytd": total,
        "potential_annual_savings": total,
        "top_opportunities": top[:limit],
    }
