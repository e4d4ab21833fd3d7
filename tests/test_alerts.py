from datetime import date

from alerts import build_alert, should_alert, should_alert_daily_limit
from models import AlertKind, AlertSeverity, Budget, Expense
from stats import compute_budget_stats

TODAY = date(2024, 1, 11)


def _stats(spent_cents: int, *, amount_cents: int = 10_000, on: date = date(2024, 1, 2)):
    budget = Budget(
        amount_cents=amount_cents,
        period_start=date(2024, 1, 1),
        period_end=date(2024, 1, 31),
        is_active=True,
    )
    return compute_budget_stats(
        budget, [Expense(amount_cents=spent_cents, date=on)], today=TODAY
    )


def test_threshold_ladder_fires_each_step_once() -> None:
    last_threshold = 0
    fired = []
    for spent in (5_000, 8_000, 8_500, 9_500, 10_500, 11_000):
        decision = should_alert(_stats(spent), last_threshold)
        if decision.fire:
            fired.append(decision.kind)
            last_threshold = decision.threshold

    assert fired == [
        AlertKind.threshold_75,
        AlertKind.threshold_90,
        AlertKind.over_budget,
    ]


def test_jumping_past_a_threshold_skips_lower_ones() -> None:
    decision = should_alert(_stats(9_500), 0)
    assert decision.kind == AlertKind.threshold_90
    assert decision.threshold == 90

    assert should_alert(_stats(9_600), 90).fire is False
    assert should_alert(_stats(10_001), 0).kind == AlertKind.over_budget


def test_lower_thresholds_are_not_rearmed() -> None:
    assert should_alert(_stats(8_000), 90).fire is False
    assert should_alert(_stats(12_000), 100).fire is False


def test_exactly_full_budget_is_not_over() -> None:
    decision = should_alert(_stats(10_000), 90)
    assert decision.fire is False


def test_daily_limit_only_when_today_exceeds_allowance() -> None:
    # 30_000 over 30 days gives a 1_000 daily allowance.
    busy = _stats(1_500, amount_cents=30_000, on=TODAY)
    quiet = _stats(900, amount_cents=30_000, on=TODAY)

    assert should_alert_daily_limit(busy, TODAY, already_sent_today=False) is True
    assert should_alert_daily_limit(busy, TODAY, already_sent_today=True) is False
    assert should_alert_daily_limit(quiet, TODAY, already_sent_today=False) is False


def test_daily_limit_is_silent_once_over_budget() -> None:
    over = _stats(40_000, amount_cents=30_000, on=TODAY)
    assert should_alert_daily_limit(over, TODAY, already_sent_today=False) is False


def test_build_alert_content() -> None:
    over = build_alert(AlertKind.over_budget, _stats(10_500), today=TODAY)
    assert over.severity == AlertSeverity.critical
    assert over.threshold == 100
    assert over.action_required is True
    assert "5.00€" in over.message

    warning = build_alert(AlertKind.threshold_90, _stats(9_200), today=TODAY)
    assert warning.severity == AlertSeverity.warning
    assert warning.threshold == 90
    assert warning.action_required is False
    assert "92.0%" in warning.message
    assert any(s.startswith("Suggested daily budget") for s in warning.suggestions)

    daily = build_alert(
        AlertKind.daily_limit, _stats(1_500, amount_cents=30_000, on=TODAY), today=TODAY
    )
    assert daily.threshold is None
    assert "15.00€" in daily.message
