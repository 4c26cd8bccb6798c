"""Aggregations over transaction and budget rows.

Everything here is a pure function over lists of row dicts as returned by
SQLiteStore. Amounts are always positive; direction comes from ``type``.
"""
import math
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from finance_tracker.config import (
    UNCATEGORIZED_LABEL,
    DEFAULT_CATEGORY_COLOR,
    CHART_CATEGORY_LIMIT,
    CHART_MONTHS,
    TREND_MONTHS,
    WEEKLY_DAYS,
    ON_TRACK_PERCENT,
    TOP_ANALYTICS_CATEGORIES,
)

TRANSACTION_TYPES = ("income", "expense")
BUDGET_PERIODS = ("monthly", "yearly")


def parse_amount(value: Any) -> float:
    """Coerce a stored amount to float; anything unparseable counts as 0."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount):
        return 0.0
    return amount


def category_name(txn: Dict[str, Any], fallback: str = UNCATEGORIZED_LABEL) -> str:
    """Resolve the display name of a row's category."""
    return txn.get("category_name") or fallback


def month_key(day: date) -> str:
    """Date prefix for a calendar month (YYYY-MM)."""
    return day.strftime("%Y-%m")


def shift_month(day: date, months: int) -> date:
    """First day of the month ``months`` away from ``day``'s month."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def period_prefix(period: str, today: date) -> str:
    """Date prefix covering the current budget period."""
    if period == "yearly":
        return str(today.year)
    return month_key(today)


def period_window(period: str, today: date) -> Tuple[str, str]:
    """Start and end dates of the budget period containing ``today``."""
    if period == "yearly":
        return date(today.year, 1, 1).isoformat(), date(today.year, 12, 31).isoformat()
    start = today.replace(day=1)
    end = shift_month(today, 1) - timedelta(days=1)
    return start.isoformat(), end.isoformat()


def sum_by_type(
    transactions: Iterable[Dict[str, Any]],
    txn_type: str,
    date_prefix: Optional[str] = None
) -> float:
    """Sum amounts of one transaction type, optionally within a date prefix.

    Args:
        transactions: Transaction rows
        txn_type: 'income' or 'expense'
        date_prefix: e.g. '2024-05' for a month or '2024' for a year

    Returns:
        Total amount
    """
    total = 0.0
    for txn in transactions:
        if txn.get("type") != txn_type:
            continue
        if date_prefix and not (txn.get("transaction_date") or "").startswith(date_prefix):
            continue
        total += parse_amount(txn.get("amount"))
    return total


def group_by_category(
    transactions: Iterable[Dict[str, Any]],
    txn_type: str = "expense",
    fallback: str = UNCATEGORIZED_LABEL
) -> Dict[str, float]:
    """Sum amounts per category name, in first-seen order."""
    totals: Dict[str, float] = {}
    for txn in transactions:
        if txn_type and txn.get("type") != txn_type:
            continue
        name = category_name(txn, fallback)
        totals[name] = totals.get(name, 0.0) + parse_amount(txn.get("amount"))
    return totals


def top_categories(grouped: Dict[str, float], n: int) -> List[Tuple[str, float]]:
    """Largest categories first; ties keep insertion order."""
    return sorted(grouped.items(), key=lambda item: item[1], reverse=True)[:n]


def month_over_month_change(current: float, previous: float) -> float:
    """Percentage change from previous to current; 0 without a positive baseline."""
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def budget_usage(
    budget: Dict[str, Any],
    transactions: Iterable[Dict[str, Any]],
    today: Optional[date] = None
) -> Dict[str, Any]:
    """Compute how much of a budget has been used in its current period.

    Only expense transactions in the budget's category and in the current
    month (monthly) or year (yearly) count towards it.

    Returns:
        Dict with spent, percentage, remaining, is_over_budget, transaction_count
    """
    today = today or date.today()
    prefix = period_prefix(budget.get("period", "monthly"), today)
    limit = parse_amount(budget.get("amount"))

    matching = [
        t for t in transactions
        if t.get("type") == "expense"
        and t.get("category_id") == budget.get("category_id")
        and (t.get("transaction_date") or "").startswith(prefix)
    ]
    spent = sum(parse_amount(t.get("amount")) for t in matching)

    return {
        "spent": spent,
        "percentage": (spent / limit) * 100 if limit > 0 else 0.0,
        "remaining": limit - spent,
        "is_over_budget": spent > limit,
        "transaction_count": len(matching),
    }


def filter_transactions(
    transactions: Iterable[Dict[str, Any]],
    search: Optional[str] = None,
    txn_type: Optional[str] = None,
    category_id: Optional[int] = None
) -> List[Dict[str, Any]]:
    """In-memory search and filter over an already fetched list."""
    result = list(transactions)

    if search:
        needle = search.lower().strip()
        result = [
            t for t in result
            if needle in (t.get("description") or "").lower()
            or needle in (t.get("category_name") or "").lower()
        ]

    if txn_type and txn_type != "all":
        result = [t for t in result if t.get("type") == txn_type]

    if category_id is not None:
        result = [t for t in result if t.get("category_id") == category_id]

    return result


def summarize(
    transactions: List[Dict[str, Any]],
    date_prefix: Optional[str] = None
) -> Dict[str, Any]:
    """Income, expenses and net, optionally within a date prefix."""
    income = sum_by_type(transactions, "income", date_prefix)
    expenses = sum_by_type(transactions, "expense", date_prefix)
    if date_prefix:
        count = sum(1 for t in transactions if (t.get("transaction_date") or "").startswith(date_prefix))
    else:
        count = len(transactions)
    return {
        "total_income": income,
        "total_expenses": expenses,
        "net": income - expenses,
        "transaction_count": count,
    }


def monthly_expense_series(
    transactions: Iterable[Dict[str, Any]],
    months: int = CHART_MONTHS
) -> List[Dict[str, Any]]:
    """Expense totals for the most recent months that have data, oldest first."""
    by_month: Dict[str, float] = {}
    for txn in transactions:
        if txn.get("type") != "expense":
            continue
        key = (txn.get("transaction_date") or "")[:7]
        if not key:
            continue
        by_month[key] = by_month.get(key, 0.0) + parse_amount(txn.get("amount"))

    ordered = sorted(by_month.items())[-months:]
    return [{"month": month, "amount": amount} for month, amount in ordered]


def monthly_trend(
    transactions: List[Dict[str, Any]],
    today: date,
    months: int = TREND_MONTHS
) -> List[Dict[str, Any]]:
    """Expense totals for each of the last ``months`` calendar months."""
    trend = []
    for offset in range(months - 1, -1, -1):
        month_start = shift_month(today, -offset)
        trend.append({
            "month": month_key(month_start),
            "label": month_start.strftime("%b"),
            "amount": sum_by_type(transactions, "expense", month_key(month_start)),
        })
    return trend


def weekly_spending(
    transactions: List[Dict[str, Any]],
    today: date,
    days: int = WEEKLY_DAYS
) -> List[Dict[str, Any]]:
    """Daily expense totals for the last ``days`` days, ending today."""
    data = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        data.append({
            "date": day.isoformat(),
            "day": day.strftime("%a"),
            "amount": sum_by_type(transactions, "expense", day.isoformat()),
        })
    return data


def category_breakdown(
    transactions: Iterable[Dict[str, Any]],
    limit: int = CHART_CATEGORY_LIMIT
) -> List[Dict[str, Any]]:
    """Expense totals per category with chart colors, largest first."""
    totals: Dict[str, Dict[str, Any]] = {}
    for txn in transactions:
        if txn.get("type") != "expense":
            continue
        name = category_name(txn)
        entry = totals.setdefault(name, {
            "category": name,
            "amount": 0.0,
            "color": txn.get("category_color") or DEFAULT_CATEGORY_COLOR,
        })
        entry["amount"] += parse_amount(txn.get("amount"))

    return sorted(totals.values(), key=lambda e: e["amount"], reverse=True)[:limit]


def budget_overview(
    budgets: List[Dict[str, Any]],
    transactions: List[Dict[str, Any]],
    today: Optional[date] = None
) -> Dict[str, Any]:
    """Every budget merged with its usage, plus totals across budgets."""
    today = today or date.today()
    stats = [{**b, **budget_usage(b, transactions, today)} for b in budgets]

    total_budget = sum(parse_amount(b.get("amount")) for b in budgets)
    total_spent = sum(b["spent"] for b in stats)

    return {
        "budgets": stats,
        "total_budget": total_budget,
        "total_spent": total_spent,
        "spent_percentage": (total_spent / total_budget) * 100 if total_budget > 0 else 0.0,
        "over_budget_count": sum(1 for b in stats if b["is_over_budget"]),
        "on_track_count": sum(
            1 for b in stats
            if not b["is_over_budget"] and b["percentage"] > ON_TRACK_PERCENT
        ),
    }


def spending_analytics(
    transactions: List[Dict[str, Any]],
    budgets: List[Dict[str, Any]],
    today: Optional[date] = None
) -> Dict[str, Any]:
    """Month-over-month comparison, top categories and spending trends."""
    today = today or date.today()
    current = sum_by_type(transactions, "expense", month_key(today))
    previous = sum_by_type(transactions, "expense", month_key(shift_month(today, -1)))

    top = top_categories(group_by_category(transactions), TOP_ANALYTICS_CATEGORIES)

    return {
        "current_month_expenses": current,
        "last_month_expenses": previous,
        "monthly_change": month_over_month_change(current, previous),
        "top_categories": [{"category": name, "amount": amount} for name, amount in top],
        "weekly_data": weekly_spending(transactions, today),
        "monthly_trend": monthly_trend(transactions, today),
        "over_budget_count": sum(
            1 for b in budgets if budget_usage(b, transactions, today)["is_over_budget"]
        ),
    }
