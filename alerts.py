from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from models import AlertKind, AlertSeverity
from stats import BudgetStats, budget_suggestions, format_amount

# Ordered ladder; DAILY_LIMIT sits outside it.
THRESHOLD_BY_KIND: dict[AlertKind, int] = {
    AlertKind.threshold_75: 75,
    AlertKind.threshold_90: 90,
    AlertKind.over_budget: 100,
}

SEVERITY_BY_KIND: dict[AlertKind, AlertSeverity] = {
    AlertKind.threshold_75: AlertSeverity.info,
    AlertKind.threshold_90: AlertSeverity.warning,
    AlertKind.daily_limit: AlertSeverity.warning,
    AlertKind.over_budget: AlertSeverity.critical,
}

TITLE_BY_KIND: dict[AlertKind, str] = {
    AlertKind.threshold_75: "Budget at 75%",
    AlertKind.threshold_90: "Budget almost used up",
    AlertKind.over_budget: "Budget exceeded",
    AlertKind.daily_limit: "Daily limit reached",
}


@dataclass(frozen=True)
class AlertDecision:
    fire: bool
    kind: Optional[AlertKind] = None

    @property
    def threshold(self) -> Optional[int]:
        if self.kind is None:
            return None
        return THRESHOLD_BY_KIND.get(self.kind)


@dataclass(frozen=True)
class AlertContent:
    kind: AlertKind
    title: str
    message: str
    severity: AlertSeverity
    threshold: Optional[int]
    suggestions: list[str] = field(default_factory=list)

    @property
    def action_required(self) -> bool:
        return self.kind == AlertKind.over_budget


def should_alert(stats: BudgetStats, last_threshold: int = 0) -> AlertDecision:
    """Decide which threshold alert, if any, ``stats`` warrants.

    ``last_threshold`` is the highest threshold already notified for the
    budget (0 when none). A lower threshold is never re-armed.
    """
    if stats.is_over_budget and last_threshold < 100:
        return AlertDecision(True, AlertKind.over_budget)
    if stats.percentage_used >= 90 and last_threshold < 90:
        return AlertDecision(True, AlertKind.threshold_90)
    if stats.percentage_used >= 75 and last_threshold < 75:
        return AlertDecision(True, AlertKind.threshold_75)
    return AlertDecision(False)


def daily_allowance_cents(stats: BudgetStats) -> float:
    if stats.total_days <= 0:
        return float(stats.total_budget_cents)
    return stats.total_budget_cents / stats.total_days


def should_alert_daily_limit(
    stats: BudgetStats, today: date, *, already_sent_today: bool
) -> bool:
    if already_sent_today or stats.is_over_budget:
        return False
    return stats.spent_on(today) > daily_allowance_cents(stats)


def _kind_suggestions(kind: AlertKind, stats: BudgetStats, symbol: str) -> list[str]:
    if kind == AlertKind.threshold_75:
        return ["Keep an eye on your next purchases", "Review your recent expenses"]
    if kind == AlertKind.threshold_90:
        return [
            "Limit non-essential purchases",
            "Suggested daily budget: "
            f"{format_amount(stats.suggested_daily_budget_cents, symbol)}",
        ]
    if kind == AlertKind.over_budget:
        return [
            "Review this period's expenses",
            "Consider raising your budget for the next period",
        ]
    return [
        "Suggested daily budget: "
        f"{format_amount(stats.suggested_daily_budget_cents, symbol)}"
    ]


def build_alert(
    kind: AlertKind, stats: BudgetStats, *, today: date, symbol: str = "€"
) -> AlertContent:
    spent = format_amount(stats.total_spent_cents, symbol)
    total = format_amount(stats.total_budget_cents, symbol)
    if kind == AlertKind.over_budget:
        overrun = format_amount(abs(stats.remaining_cents), symbol)
        message = f"Your budget is exceeded by {overrun} ({spent} of {total})."
    elif kind == AlertKind.daily_limit:
        today_spent = format_amount(stats.spent_on(today), symbol)
        allowance = format_amount(daily_allowance_cents(stats), symbol)
        message = (
            f"You spent {today_spent} today, above your daily allowance "
            f"of {allowance}."
        )
    else:
        message = (
            f"You have used {stats.percentage_used:.1f}% of your budget "
            f"({spent} of {total})."
        )

    advice = budget_suggestions(stats, symbol)
    if advice:
        message = f"{message} {advice[0]}"

    return AlertContent(
        kind=kind,
        title=TITLE_BY_KIND[kind],
        message=message,
        severity=SEVERITY_BY_KIND[kind],
        threshold=THRESHOLD_BY_KIND.get(kind),
        suggestions=_kind_suggestions(kind, stats, symbol),
    )
