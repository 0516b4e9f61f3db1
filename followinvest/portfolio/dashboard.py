"""Dashboard aggregate views.

Builds the dashboard payload from a user's accounts: holdings grouped by
(category, account, name), invested totals by account, by country and by
category, plus per-account performance. Totals here are invested amounts
in each holding's own currency; no conversion is applied.

"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from followinvest.models import Account, Holding
from followinvest.portfolio.performance import PerformanceCalculator, sort_accounts

_ZERO = Decimal(0)
_PERCENT_QUANTUM = Decimal("0.01")


def group_holdings(holdings: Iterable[Holding]) -> list[dict[str, Any]]:
    """Group holdings sharing category, account name and holding name.

    Args:
        holdings: Positions to group.

    Returns:
        List of dicts with category, account, name, total_quantity,
        average_value, total, currency and country, in first-seen order.
        Currency and country come from the first holding in each group.

    """
    groups: dict[tuple[str, str, str], list[Holding]] = {}
    for holding in holdings:
        key = (holding.category.value, holding.account_name, holding.name)
        groups.setdefault(key, []).append(holding)

    grouped: list[dict[str, Any]] = []
    for (category, account, name), members in groups.items():
        first = members[0]
        grouped.append(
            {
                "category": category,
                "account": account,
                "name": name,
                "total_quantity": sum((h.quantity for h in members), _ZERO),
                "average_value": sum((h.purchase_value for h in members), _ZERO)
                / len(members),
                "total": sum((h.total for h in members), _ZERO),
                "currency": first.currency,
                "country": first.country,
            }
        )
    return grouped


def _totals_by(grouped: list[dict[str, Any]], field: str) -> list[dict[str, Any]]:
    totals: dict[str, Decimal] = {}
    for row in grouped:
        totals[row[field]] = totals.get(row[field], _ZERO) + row["total"]
    return [{field: key, "total": total} for key, total in totals.items()]


def assets_by_category(holdings: list[Holding]) -> list[dict[str, Any]]:
    """Invested totals per category with count and share of the grand total.

    Percentages are rounded half-up to 2 decimal places; all are zero when
    nothing is invested. Sorted by total descending.
    """
    grand_total = sum((h.total for h in holdings), _ZERO)
    by_category: dict[str, list[Holding]] = {}
    for holding in holdings:
        by_category.setdefault(holding.category.value, []).append(holding)

    rows: list[dict[str, Any]] = []
    for category, members in by_category.items():
        total = sum((h.total for h in members), _ZERO)
        if grand_total > 0:
            percentage = (total / grand_total * 100).quantize(
                _PERCENT_QUANTUM, rounding=ROUND_HALF_UP
            )
        else:
            percentage = _ZERO
        rows.append(
            {
                "category": category,
                "total": total,
                "count": len(members),
                "percentage": percentage,
            }
        )
    return sorted(rows, key=lambda r: r["total"], reverse=True)


def build_dashboard(
    accounts: Iterable[Account],
    calculator: PerformanceCalculator | None = None,
) -> dict[str, Any]:
    """Assemble the dashboard view for a set of accounts.

    Args:
        accounts: The user's accounts with their holdings.
        calculator: When given, per-account performance is included.

    Returns:
        Dict with holdings, grouped_holdings, assets_by_account,
        assets_by_country, assets_by_category and accounts_performance.

    """
    ordered = sort_accounts(accounts)
    holdings = [h for account in ordered for h in account.holdings]
    grouped = group_holdings(holdings)

    performance: list[dict[str, Any]] = []
    if calculator is not None:
        performance = [
            p.to_dict() for p in calculator.all_accounts_performance(ordered)
        ]

    return {
        "holdings": [
            {
                "id": h.id,
                "name": h.name,
                "quantity": h.quantity,
                "purchase_value": h.purchase_value,
                "total": h.total,
                "currency": h.currency,
                "category": h.category.value,
                "account_id": h.account_id,
                "account_name": h.account_name,
                "country": h.country,
                "purchase_date": h.purchase_date,
            }
            for h in holdings
        ],
        "grouped_holdings": grouped,
        "assets_by_account": _totals_by(grouped, "account"),
        "assets_by_country": _totals_by(grouped, "country"),
        "assets_by_category": assets_by_category(holdings),
        "accounts_performance": performance,
    }
