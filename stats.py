from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Protocol

from models import RiskLevel

UNCATEGORIZED_LABEL = "Uncategorized"
UNSPECIFIED_SOURCE_LABEL = "Unspecified"

NEAR_BUDGET_PERCENT = 75.0
PROJECTION_HIGH_RISK_FACTOR = 1.1


class BudgetLike(Protocol):
    amount_cents: int
    period_start: date
    period_end: date


class ExpenseLike(Protocol):
    amount_cents: int
    date: date
    category: Optional[str]
    source: Optional[str]


@dataclass(frozen=True)
class BreakdownRow:
    label: str
    amount_cents: int
    percentage: float
    transaction_count: int


@dataclass(frozen=True)
class DailySpending:
    date: date
    amount_cents: int
    cumulative_cents: int


@dataclass(frozen=True)
class BudgetStats:
    total_budget_cents: int
    total_spent_cents: int
    remaining_cents: int
    percentage_used: float  # capped at 100
    percentage_used_raw: float
    projected_spending_cents: float
    total_days: int
    days_elapsed: int
    days_remaining: int
    average_daily_spending_cents: float
    suggested_daily_budget_cents: float
    is_over_budget: bool
    is_near_budget: bool
    risk_level: RiskLevel
    category_breakdown: tuple[BreakdownRow, ...]
    source_breakdown: tuple[BreakdownRow, ...]
    daily_spending: tuple[DailySpending, ...]

    def spent_on(self, target: date) -> int:
        for point in self.daily_spending:
            if point.date == target:
                return point.amount_cents
        return 0


@dataclass(frozen=True)
class CategoryChange:
    label: str
    change_cents: int
    percentage_change: float


@dataclass(frozen=True)
class BudgetComparison:
    current: BudgetStats
    previous: BudgetStats
    total_spent_change_cents: int
    percentage_change: float
    average_daily_change_cents: float
    category_changes: tuple[CategoryChange, ...]


def cents_to_euros(cents: float) -> float:
    return cents / 100


def format_amount(cents: float, symbol: str = "€") -> str:
    return f"{cents_to_euros(cents):.2f}{symbol}"


def _whole_days(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / 86400)


def _breakdown(
    expenses: list[ExpenseLike], total_spent: int, attr: str, fallback: str
) -> tuple[BreakdownRow, ...]:
    grouped: dict[str, list[int]] = {}
    for expense in expenses:
        label = (getattr(expense, attr) or "").strip() or fallback
        bucket = grouped.setdefault(label, [0, 0])
        bucket[0] += expense.amount_cents
        bucket[1] += 1
    rows = [
        BreakdownRow(
            label=label,
            amount_cents=amount,
            percentage=(amount / total_spent * 100) if total_spent > 0 else 0.0,
            transaction_count=count,
        )
        for label, (amount, count) in grouped.items()
    ]
    return tuple(sorted(rows, key=lambda row: row.amount_cents, reverse=True))


def _daily_series(
    expenses: list[ExpenseLike], start: date, end: date
) -> tuple[DailySpending, ...]:
    by_day: dict[date, int] = {}
    for expense in expenses:
        by_day[expense.date] = by_day.get(expense.date, 0) + expense.amount_cents

    series: list[DailySpending] = []
    cumulative = 0
    cursor = start
    while cursor <= end:
        amount = by_day.get(cursor, 0)
        cumulative += amount
        series.append(DailySpending(cursor, amount, cumulative))
        cursor += timedelta(days=1)
    return tuple(series)


def compute_budget_stats(
    budget: BudgetLike, expenses: Iterable[ExpenseLike], *, today: date
) -> BudgetStats:
    """Snapshot of a budget's consumption as of ``today``.

    Pure: the same budget, expenses and ``today`` always give an equal result.
    """
    items = list(expenses)
    amount = budget.amount_cents
    total_spent = sum(expense.amount_cents for expense in items)
    remaining = amount - total_spent
    percentage_raw = (total_spent / amount * 100) if amount > 0 else 0.0

    total_days = _whole_days(budget.period_end - budget.period_start)
    days_elapsed = max(0, _whole_days(today - budget.period_start))
    days_remaining = max(0, total_days - days_elapsed)

    average_daily = total_spent / days_elapsed if days_elapsed > 0 else 0.0
    if days_remaining > 0:
        projected = total_spent + average_daily * days_remaining
        suggested_daily = max(0.0, remaining / days_remaining)
    else:
        projected = float(total_spent)
        suggested_daily = 0.0

    is_over = total_spent > amount
    is_near = percentage_raw > NEAR_BUDGET_PERCENT
    if is_over or projected > amount * PROJECTION_HIGH_RISK_FACTOR:
        risk = RiskLevel.high
    elif is_near or projected > amount:
        risk = RiskLevel.medium
    else:
        risk = RiskLevel.low

    return BudgetStats(
        total_budget_cents=amount,
        total_spent_cents=total_spent,
        remaining_cents=remaining,
        percentage_used=min(percentage_raw, 100.0),
        percentage_used_raw=percentage_raw,
        projected_spending_cents=projected,
        total_days=total_days,
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        average_daily_spending_cents=average_daily,
        suggested_daily_budget_cents=suggested_daily,
        is_over_budget=is_over,
        is_near_budget=is_near,
        risk_level=risk,
        category_breakdown=_breakdown(
            items, total_spent, "category", UNCATEGORIZED_LABEL
        ),
        source_breakdown=_breakdown(
            items, total_spent, "source", UNSPECIFIED_SOURCE_LABEL
        ),
        daily_spending=_daily_series(items, budget.period_start, budget.period_end),
    )


def budget_status_level(percentage_used: float) -> str:
    if percentage_used < 75:
        return "success"
    if percentage_used < 90:
        return "warning"
    return "danger"


def budget_suggestions(stats: BudgetStats, symbol: str = "€") -> list[str]:
    suggestions: list[str] = []
    if stats.is_over_budget:
        suggestions.append(
            "Your budget is exceeded. Try cutting back on non-essential spending."
        )
    elif stats.risk_level == RiskLevel.high:
        suggestions.append(
            "You are on track to exceed your budget. Watch your next purchases."
        )
    elif stats.risk_level == RiskLevel.medium:
        suggestions.append("You are on track, but keep an eye on your spending.")

    if (
        stats.days_remaining > 0
        and stats.suggested_daily_budget_cents < stats.average_daily_spending_cents
    ):
        suggestions.append(
            "Try to limit your spending to "
            f"{format_amount(stats.suggested_daily_budget_cents, symbol)} per day."
        )

    if stats.category_breakdown:
        top = stats.category_breakdown[0]
        if top.percentage > 50:
            suggestions.append(
                f'"{top.label}" accounts for {top.percentage:.1f}% of your spending.'
            )
    return suggestions


def _percentage_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def compare_stats(current: BudgetStats, previous: BudgetStats) -> BudgetComparison:
    previous_by_label = {row.label: row.amount_cents for row in previous.category_breakdown}
    current_by_label = {row.label: row.amount_cents for row in current.category_breakdown}
    changes = []
    for label in sorted(set(previous_by_label) | set(current_by_label)):
        now = current_by_label.get(label, 0)
        before = previous_by_label.get(label, 0)
        changes.append(
            CategoryChange(
                label=label,
                change_cents=now - before,
                percentage_change=_percentage_change(now, before),
            )
        )
    changes.sort(key=lambda change: abs(change.change_cents), reverse=True)

    return BudgetComparison(
        current=current,
        previous=previous,
        total_spent_change_cents=current.total_spent_cents - previous.total_spent_cents,
        percentage_change=(
            (current.total_spent_cents - previous.total_spent_cents)
            / previous.total_spent_cents
            * 100
            if previous.total_spent_cents > 0
            else 0.0
        ),
        average_daily_change_cents=(
            current.average_daily_spending_cents
            - previous.average_daily_spending_cents
        ),
        category_changes=tuple(changes),
    )
