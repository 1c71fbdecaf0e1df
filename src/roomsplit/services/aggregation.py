"""
Aggregates over a room's expenses.

Everything here is pure: callers pass in the latest snapshot and get fresh
numbers back, nothing is cached between calls.
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from roomsplit.domain.models import UNCATEGORIZED, Expense, UserProfile
from roomsplit.services.models import CategoryBudgetStatus, CategoryTotal, UserTotal

SORT_KEYS = ("date", "cost", "shop", "user")


def roster_names(roster: Iterable[UserProfile]) -> Dict[str, str]:
    """Map user_id -> display name."""
    return {profile.user_id: profile.name for profile in roster}


def placeholder_name(user_id: str) -> str:
    """Display name for someone who isn't in the roster (anymore)."""
    return f"User...{user_id[-4:]}"


def totals_by_user(
    expenses: Iterable[Expense],
    roster: Iterable[UserProfile],
) -> List[UserTotal]:
    """
    Sum costs per author, in the order authors first appear.

    Users whose total is zero are left out.
    """
    names = roster_names(roster)
    totals: Dict[str, UserTotal] = {}

    for expense in expenses:
        if expense.user_id not in totals:
            name = names.get(expense.user_id) or placeholder_name(expense.user_id)
            totals[expense.user_id] = UserTotal(expense.user_id, name, Decimal("0"))
        totals[expense.user_id].total += expense.cost

    return [entry for entry in totals.values() if entry.total > 0]


def totals_by_category(expenses: Iterable[Expense]) -> List[CategoryTotal]:
    """Sum costs per category, biggest first. Blank categories count as Uncategorized."""
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for expense in expenses:
        totals[expense.category or UNCATEGORIZED] += expense.cost

    return [
        CategoryTotal(category, total)
        for category, total in sorted(totals.items(), key=lambda x: x[1], reverse=True)
    ]


def first_day_of_month(reference_date: date) -> date:
    return reference_date.replace(day=1)


def first_day_of_next_month(reference_date: date) -> date:
    if reference_date.month == 12:
        return date(reference_date.year + 1, 1, 1)
    return date(reference_date.year, reference_date.month + 1, 1)


def in_month(expense: Expense, reference_date: date) -> bool:
    return first_day_of_month(reference_date) <= expense.date < first_day_of_next_month(reference_date)


def month_to_date_spend(expenses: Iterable[Expense], reference_date: date) -> Decimal:
    """
    Total spent in reference_date's calendar month.

    Expenses later in the same month still count; other months never do.
    Callers pass a single room's expenses.
    """
    return sum((e.cost for e in expenses if in_month(e, reference_date)), Decimal("0"))


def budget_progress(spend: Decimal, budget: Optional[Decimal]) -> float:
    """Percentage of budget used. 0 without a budget, not capped at 100."""
    if not budget or budget <= 0:
        return 0.0
    return float(spend) / float(budget) * 100


def category_budget_progress(
    expenses: Iterable[Expense],
    category_budgets: Mapping[str, Decimal],
    reference_date: date,
) -> List[CategoryBudgetStatus]:
    """Month-to-date spend for every category that has a limit."""
    spent: Dict[str, Decimal] = defaultdict(Decimal)
    for expense in expenses:
        if in_month(expense, reference_date):
            spent[expense.category or UNCATEGORIZED] += expense.cost

    return [
        CategoryBudgetStatus(
            category=category,
            spent=spent[category],
            limit=limit,
            progress=budget_progress(spent[category], limit),
        )
        for category, limit in category_budgets.items()
    ]


def filter_and_sort(
    expenses: Iterable[Expense],
    roster: Iterable[UserProfile],
    selected_users: Optional[Iterable[str]] = None,
    sort_key: str = "date",
    direction: str = "desc",
) -> List[Expense]:
    """
    The expense table view.

    Args:
        expenses: The room's expenses
        roster: Room members, for sorting by name
        selected_users: Only show these authors. None shows everyone.
        sort_key: One of date, cost, shop, user
        direction: "asc" or "desc"

    Raises:
        ValueError: On an unknown sort key or direction
    """
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key '{sort_key}'. Available: {', '.join(SORT_KEYS)}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unknown sort direction '{direction}'")

    names = roster_names(roster)
    selected = set(selected_users) if selected_users is not None else None

    rows = [e for e in expenses if selected is None or e.user_id in selected]

    key_funcs = {
        "date": lambda e: e.date,
        "cost": lambda e: e.cost,
        "shop": lambda e: e.shop.lower(),
        "user": lambda e: names.get(e.user_id, "").lower(),
    }

    return sorted(rows, key=key_funcs[sort_key], reverse=(direction == "desc"))


def table_total(expenses: Iterable[Expense]) -> Decimal:
    return sum((e.cost for e in expenses), Decimal("0"))
