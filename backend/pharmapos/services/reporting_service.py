# Overview: Service-layer operations for reporting; read-only aggregation over the snapshot.

"""
Reporting works on snapshot records only (domain dicts) and never writes.

- Date filters are inclusive on the UTC calendar date of Sale.timestamp.
- Money sums are Decimal; a line item without a recorded cost counts as 0.
- Expiry alert: expiryDate strictly after today and at most `days` away.
- Low-stock alert: quantity <= minStock.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from ..domain import to_money
from ..time_utils import parse_iso_date, today as utc_today


DEFAULT_EXPIRY_DAYS = 30


def _sale_date(sale: dict) -> date | None:
    timestamp = sale.get("timestamp")
    if isinstance(timestamp, datetime):
        return timestamp.date()
    return parse_iso_date(timestamp)


def filter_sales(sales: Iterable[dict], start: date | None = None, end: date | None = None) -> list[dict]:
    """Sales whose date falls in [start, end]; a missing bound is open."""
    result = []
    for sale in sales:
        day = _sale_date(sale)
        if day is None:
            continue
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        result.append(sale)
    return result


def sale_cost(sale: dict) -> Decimal:
    """Cost of goods for one sale: sum of cost x saleQuantity over its items."""
    total = Decimal("0")
    for item in sale.get("items") or []:
        total += to_money(item.get("cost")) * int(item.get("saleQuantity") or 0)
    return to_money(total)


def total_income(sales: Iterable[dict]) -> Decimal:
    return to_money(sum((to_money(s.get("total")) for s in sales), Decimal("0")))


def estimated_profit(sales: Iterable[dict]) -> Decimal:
    return to_money(sum(
        (to_money(s.get("total")) - sale_cost(s) for s in sales),
        Decimal("0"),
    ))


def inventory_valuation(products: Iterable[dict]) -> Decimal:
    """Patrimony: on-hand units valued at acquisition cost."""
    return to_money(sum(
        (to_money(p.get("cost")) * int(p.get("quantity") or 0) for p in products),
        Decimal("0"),
    ))


def low_stock(products: Iterable[dict]) -> list[dict]:
    return [
        p for p in products
        if int(p.get("quantity") or 0) <= int(p.get("minStock") or 0)
    ]


def expiring_soon(products: Iterable[dict], today: date | None = None, days: int = DEFAULT_EXPIRY_DAYS) -> list[dict]:
    """Still-sellable products expiring within `days` (already expired ones are excluded)."""
    today = today or utc_today()
    result = []
    for product in products:
        expiry = parse_iso_date(product.get("expiryDate"))
        if expiry is None:
            continue
        remaining = (expiry - today).days
        if 0 < remaining <= days:
            result.append(product)
    return sorted(result, key=lambda p: parse_iso_date(p.get("expiryDate")))


def sales_by_day(sales: Iterable[dict]) -> list[dict]:
    totals: dict[date, Decimal] = defaultdict(lambda: Decimal("0"))
    counts: dict[date, int] = defaultdict(int)
    for sale in sales:
        day = _sale_date(sale)
        if day is None:
            continue
        totals[day] += to_money(sale.get("total"))
        counts[day] += 1
    return [
        {"date": day, "total": to_money(totals[day]), "count": counts[day]}
        for day in sorted(totals)
    ]


def summary(
    products: list[dict],
    sales: list[dict],
    *,
    start: date | None = None,
    end: date | None = None,
    today: date | None = None,
    expiry_days: int = DEFAULT_EXPIRY_DAYS,
) -> dict:
    """Everything the reports view shows, for the given date range."""
    filtered = filter_sales(sales, start, end)
    return {
        "start": start,
        "end": end,
        "salesCount": len(filtered),
        "totalIncome": total_income(filtered),
        "estimatedProfit": estimated_profit(filtered),
        "inventoryValuation": inventory_valuation(products),
        "productCount": len(products),
        "lowStock": low_stock(products),
        "expiringSoon": expiring_soon(products, today, expiry_days),
    }
