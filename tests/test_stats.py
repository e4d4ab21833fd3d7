from datetime import date

from models import Budget, Expense, RiskLevel
from stats import (
    UNCATEGORIZED_LABEL,
    UNSPECIFIED_SOURCE_LABEL,
    budget_status_level,
    budget_suggestions,
    compare_stats,
    compute_budget_stats,
    format_amount,
)


def _january(amount_cents: int) -> Budget:
    return Budget(
        amount_cents=amount_cents,
        period_start=date(2024, 1, 1),
        period_end=date(2024, 1, 31),
        is_active=True,
    )


def _expense(amount_cents: int, day: date, category=None, source=None) -> Expense:
    return Expense(
        amount_cents=amount_cents, date=day, category=category, source=source
    )


def test_near_budget_below_limit() -> None:
    budget = _january(30_000)
    expenses = [
        _expense(15_000, date(2024, 1, 5)),
        _expense(8_000, date(2024, 1, 12)),
    ]

    stats = compute_budget_stats(budget, expenses, today=date(2024, 1, 20))

    assert stats.total_spent_cents == 23_000
    assert stats.remaining_cents == 7_000
    assert round(stats.percentage_used, 2) == 76.67
    assert stats.is_near_budget is True
    assert stats.is_over_budget is False


def test_over_budget_caps_percentage_and_is_high_risk() -> None:
    budget = _january(30_000)
    expenses = [
        _expense(23_000, date(2024, 1, 5)),
        _expense(8_000, date(2024, 1, 18)),
    ]

    stats = compute_budget_stats(budget, expenses, today=date(2024, 1, 20))

    assert stats.total_spent_cents == 31_000
    assert stats.remaining_cents == -1_000
    assert stats.is_over_budget is True
    assert stats.risk_level == RiskLevel.high
    assert stats.percentage_used == 100.0
    assert stats.percentage_used_raw > 100.0
    assert stats.suggested_daily_budget_cents == 0.0


def test_percentage_is_always_within_bounds() -> None:
    budget = _january(10_000)
    for spent in (0, 1, 4_999, 10_000, 10_001, 1_000_000):
        stats = compute_budget_stats(
            budget, [_expense(spent, date(2024, 1, 2))], today=date(2024, 1, 15)
        )
        assert 0.0 <= stats.percentage_used <= 100.0


def test_stats_are_deterministic_for_the_same_inputs() -> None:
    budget = _january(30_000)
    expenses = [
        _expense(1_250, date(2024, 1, 3), category="Courses"),
        _expense(4_000, date(2024, 1, 9), source="Carrefour"),
    ]
    today = date(2024, 1, 10)

    assert compute_budget_stats(budget, expenses, today=today) == compute_budget_stats(
        budget, expenses, today=today
    )


def test_day_arithmetic_and_projection() -> None:
    budget = _january(30_000)
    stats = compute_budget_stats(
        budget, [_expense(10_500, date(2024, 1, 4))], today=date(2024, 1, 11)
    )

    assert stats.total_days == 30
    assert stats.days_elapsed == 10
    assert stats.days_remaining == 20
    assert stats.average_daily_spending_cents == 1_050
    assert stats.projected_spending_cents == 10_500 + 1_050 * 20
    assert stats.suggested_daily_budget_cents == (30_000 - 10_500) / 20
    assert stats.risk_level == RiskLevel.medium


def test_risk_levels_follow_projection() -> None:
    budget = _january(30_000)
    today = date(2024, 1, 11)

    low = compute_budget_stats(budget, [_expense(5_000, date(2024, 1, 2))], today=today)
    high = compute_budget_stats(
        budget, [_expense(15_000, date(2024, 1, 2))], today=today
    )

    assert low.risk_level == RiskLevel.low
    assert high.is_over_budget is False
    assert high.risk_level == RiskLevel.high


def test_before_period_start_has_no_elapsed_days() -> None:
    stats = compute_budget_stats(_january(30_000), [], today=date(2023, 12, 20))

    assert stats.days_elapsed == 0
    assert stats.days_remaining == 30
    assert stats.average_daily_spending_cents == 0.0
    assert stats.projected_spending_cents == 0
    assert stats.suggested_daily_budget_cents == 1_000


def test_after_period_end_projection_equals_spent() -> None:
    stats = compute_budget_stats(
        _january(30_000), [_expense(12_000, date(2024, 1, 30))], today=date(2024, 3, 1)
    )

    assert stats.days_remaining == 0
    assert stats.projected_spending_cents == 12_000
    assert stats.suggested_daily_budget_cents == 0.0


def test_zero_amount_budget() -> None:
    budget = _january(0)
    today = date(2024, 1, 10)

    empty = compute_budget_stats(budget, [], today=today)
    assert empty.percentage_used == 0.0
    assert empty.is_over_budget is False

    spent = compute_budget_stats(budget, [_expense(100, date(2024, 1, 2))], today=today)
    assert spent.percentage_used == 0.0
    assert spent.is_over_budget is True
    assert spent.risk_level == RiskLevel.high


def test_breakdowns_are_sorted_with_fallback_labels() -> None:
    expenses = [
        _expense(1_000, date(2024, 1, 2), category="Boulangerie", source="Paul"),
        _expense(3_000, date(2024, 1, 3), category=None, source="Carrefour"),
        _expense(500, date(2024, 1, 4), category="Boulangerie", source=None),
        _expense(0, date(2024, 1, 5), category="  ", source="Carrefour"),
    ]

    stats = compute_budget_stats(_january(30_000), expenses, today=date(2024, 1, 10))

    categories = [(row.label, row.amount_cents, row.transaction_count) for row in stats.category_breakdown]
    assert categories == [(UNCATEGORIZED_LABEL, 3_000, 2), ("Boulangerie", 1_500, 2)]
    assert round(stats.category_breakdown[0].percentage, 2) == 66.67

    sources = [row.label for row in stats.source_breakdown]
    assert sources == ["Carrefour", "Paul", UNSPECIFIED_SOURCE_LABEL]


def test_daily_series_covers_every_day_of_the_period() -> None:
    expenses = [
        _expense(1_000, date(2024, 1, 2)),
        _expense(250, date(2024, 1, 2)),
        _expense(700, date(2024, 1, 31)),
    ]

    stats = compute_budget_stats(_january(30_000), expenses, today=date(2024, 1, 10))

    assert len(stats.daily_spending) == 31
    assert stats.daily_spending[0].date == date(2024, 1, 1)
    assert stats.daily_spending[0].amount_cents == 0
    assert stats.spent_on(date(2024, 1, 2)) == 1_250
    assert stats.spent_on(date(2024, 2, 1)) == 0
    assert stats.daily_spending[-1].cumulative_cents == stats.total_spent_cents


def test_status_level_and_suggestions() -> None:
    assert budget_status_level(50) == "success"
    assert budget_status_level(80) == "warning"
    assert budget_status_level(95) == "danger"

    stats = compute_budget_stats(
        _january(30_000),
        [_expense(31_000, date(2024, 1, 5), category="Courses")],
        today=date(2024, 1, 20),
    )
    suggestions = budget_suggestions(stats)
    assert suggestions[0].startswith("Your budget is exceeded")
    assert any('"Courses"' in s for s in suggestions)


def test_compare_stats_reports_category_changes() -> None:
    today = date(2024, 2, 15)
    previous = compute_budget_stats(
        _january(30_000),
        [_expense(10_000, date(2024, 1, 5), category="Courses")],
        today=today,
    )
    february = Budget(
        amount_cents=30_000,
        period_start=date(2024, 2, 1),
        period_end=date(2024, 2, 29),
        is_active=True,
    )
    current = compute_budget_stats(
        february,
        [
            _expense(15_000, date(2024, 2, 3), category="Courses"),
            _expense(2_000, date(2024, 2, 4), category="Transport"),
        ],
        today=today,
    )

    comparison = compare_stats(current, previous)

    assert comparison.total_spent_change_cents == 7_000
    assert comparison.percentage_change == 70.0
    changes = {c.label: c.change_cents for c in comparison.category_changes}
    assert changes == {"Courses": 5_000, "Transport": 2_000}
    assert comparison.category_changes[0].label == "Courses"


def test_format_amount() -> None:
    assert format_amount(1_250) == "12.50€"
    assert format_amount(-99, "$") == "-0.99$"
