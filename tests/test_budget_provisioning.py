from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import Budget, Expense, Notification
from schemas import BudgetUpdateIn, ExpenseIn
from services import (
    AlertService,
    BudgetFilters,
    BudgetNotFound,
    BudgetService,
    ExpenseService,
    InvalidAmount,
    InvalidPeriod,
    NoBudgetConfigured,
    OverlapConflict,
)


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _active_covering(session: Session, on_date: date) -> list[Budget]:
    stmt = select(Budget).where(
        Budget.is_active.is_(True),
        Budget.period_start <= on_date,
        Budget.period_end >= on_date,
    )
    return list(session.scalars(stmt).all())


def test_rejects_empty_or_inverted_period() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        with pytest.raises(InvalidPeriod):
            budgets.create_budget(30_000, date(2024, 1, 31), date(2024, 1, 1))
        with pytest.raises(InvalidPeriod):
            budgets.create_budget(30_000, date(2024, 1, 1), date(2024, 1, 1))
        with pytest.raises(InvalidAmount):
            budgets.create_budget(-1, date(2024, 1, 1), date(2024, 1, 31))
        assert budgets.has_any_budget() is False


def test_new_active_budget_deactivates_overlapping_one() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        first = budgets.create_budget(40_000, date(2024, 1, 15), date(2024, 2, 15))
        second = budgets.create_budget(30_000, date(2024, 2, 1), date(2024, 2, 29))

        session.refresh(first)
        assert first.is_active is False
        assert second.is_active is True
        assert budgets.resolve_budget_for_date(date(2024, 1, 20)) is None
        assert budgets.resolve_budget_for_date(date(2024, 2, 10)).id == second.id


def test_overlap_conflict_when_replacement_is_refused() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        first = budgets.create_budget(40_000, date(2024, 1, 15), date(2024, 2, 15))

        with pytest.raises(OverlapConflict) as excinfo:
            budgets.create_budget(
                30_000,
                date(2024, 2, 1),
                date(2024, 2, 29),
                replace_overlapping=False,
            )

        assert [b.id for b in excinfo.value.conflicts] == [first.id]
        session.refresh(first)
        assert first.is_active is True
        assert len(budgets.list_budgets()) == 1


def test_inactive_budget_leaves_others_untouched() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        active = budgets.create_budget(30_000, date(2024, 1, 1), date(2024, 1, 31))
        draft = budgets.create_budget(
            50_000, date(2024, 1, 1), date(2024, 1, 31), is_active=False
        )

        session.refresh(active)
        assert active.is_active is True
        assert draft.is_active is False
        assert budgets.resolve_budget_for_date(date(2024, 1, 10)).id == active.id


def test_first_time_user_gets_no_budget_configured() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        with pytest.raises(NoBudgetConfigured) as excinfo:
            budgets.ensure_budget_for_date(date(2024, 3, 5))
        assert excinfo.value.never_configured is True
        assert budgets.has_any_budget() is False


def test_fallback_amount_creates_calendar_month_budget() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        budget = budgets.ensure_budget_for_date(date(2024, 2, 10), 25_000)

        assert budget.amount_cents == 25_000
        assert budget.period_start == date(2024, 2, 1)
        assert budget.period_end == date(2024, 2, 29)
        assert budget.previous_budget_id is None


def test_rollover_copies_amount_and_links_previous_budget() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        january = budgets.create_monthly_budget(30_000, 2024, 1)

        february = budgets.ensure_budget_for_date(date(2024, 2, 5))

        assert february.id != january.id
        assert february.amount_cents == 30_000
        assert february.period_start == date(2024, 2, 1)
        assert february.period_end == date(2024, 2, 29)
        assert february.previous_budget_id == january.id
        assert february.previous_budget.id == january.id
        session.refresh(january)
        assert january.is_active is True


def test_ensure_returns_existing_budget_without_creating() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        january = budgets.create_monthly_budget(30_000, 2024, 1)

        resolved = budgets.ensure_budget_for_date(date(2024, 1, 31))

        assert resolved.id == january.id
        assert len(budgets.list_budgets()) == 1


def test_at_most_one_active_budget_covers_any_date() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        budgets.create_budget(30_000, date(2024, 1, 1), date(2024, 1, 31))
        budgets.create_budget(45_000, date(2024, 1, 15), date(2024, 2, 14))
        budgets.ensure_budget_for_date(date(2024, 3, 3))
        budgets.create_budget(20_000, date(2024, 3, 10), date(2024, 4, 10))
        budgets.ensure_budget_for_date(date(2024, 4, 20))
        budgets.create_budget(
            10_000, date(2024, 1, 1), date(2024, 4, 30), is_active=False
        )

        day = date(2023, 12, 25)
        while day <= date(2024, 5, 5):
            assert len(_active_covering(session, day)) <= 1
            day += timedelta(days=1)


def test_monthly_budget_rejects_invalid_month() -> None:
    with _session() as session:
        with pytest.raises(InvalidPeriod):
            BudgetService(session).create_monthly_budget(30_000, 2024, 13)


def test_current_budget_and_setup_status() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        today = date(2024, 2, 10)

        assert budgets.current_budget(today) is None
        status = budgets.setup_status(today)
        assert status.needs_setup is True
        assert status.has_previous_budget is False
        assert status.suggested_amount_cents is None

        budgets.create_monthly_budget(30_000, 2024, 1)
        assert budgets.current_budget(today, rollover=False) is None
        status = budgets.setup_status(today)
        assert status.needs_setup is True
        assert status.suggested_amount_cents == 30_000

        current = budgets.current_budget(today)
        assert current.period_start == date(2024, 2, 1)
        assert budgets.setup_status(today).has_current_budget is True


def test_reactivating_a_budget_deactivates_overlaps() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        first = budgets.create_budget(30_000, date(2024, 1, 1), date(2024, 1, 31))
        second = budgets.create_budget(35_000, date(2024, 1, 1), date(2024, 1, 31))

        budgets.update_budget(first.id, BudgetUpdateIn(is_active=True))

        session.refresh(second)
        assert second.is_active is False
        assert budgets.resolve_budget_for_date(date(2024, 1, 5)).id == first.id


def test_raising_amount_does_not_rearm_alerts() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        budget = budgets.create_monthly_budget(10_000, 2024, 1)
        ExpenseService(session).record_expense(
            ExpenseIn(budget_id=budget.id, amount_cents=8_000, date=date(2024, 1, 2)),
            today=date(2024, 1, 20),
        )
        alerts = AlertService(session)
        assert alerts.last_threshold(budget.id) == 75

        budgets.update_budget(
            budget.id, BudgetUpdateIn(amount_cents=20_000), today=date(2024, 1, 20)
        )
        budgets.update_budget(
            budget.id, BudgetUpdateIn(amount_cents=8_500), today=date(2024, 1, 20)
        )

        thresholds = [
            n.threshold_reached
            for n in alerts.list_alerts(budget.id)
            if n.threshold_reached is not None
        ]
        assert sorted(thresholds) == [75, 90]


def test_delete_budget_removes_expenses_and_notifications() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        budget = budgets.create_monthly_budget(10_000, 2024, 1)
        ExpenseService(session).record_expense(
            ExpenseIn(budget_id=budget.id, amount_cents=9_000, date=date(2024, 1, 3)),
            today=date(2024, 1, 20),
        )
        budget_id = budget.id

        budgets.delete_budget(budget_id)

        assert session.scalars(select(Expense)).all() == []
        assert session.scalars(select(Notification)).all() == []
        with pytest.raises(BudgetNotFound):
            budgets.get(budget_id)


def test_budgets_are_scoped_per_user() -> None:
    with _session() as session:
        other = BudgetService(session, user_id=2).create_monthly_budget(30_000, 2024, 1)

        mine = BudgetService(session)
        with pytest.raises(BudgetNotFound):
            mine.get(other.id)
        assert mine.resolve_budget_for_date(date(2024, 1, 10)) is None
        assert mine.has_any_budget() is False


def test_list_budgets_filters() -> None:
    with _session() as session:
        budgets = BudgetService(session)
        budgets.create_monthly_budget(30_000, 2024, 1)
        budgets.create_monthly_budget(50_000, 2024, 2)
        budgets.create_budget(
            10_000, date(2024, 2, 1), date(2024, 2, 29), is_active=False
        )

        active = budgets.list_budgets(BudgetFilters(is_active=True))
        assert {b.amount_cents for b in active} == {30_000, 50_000}
        large = budgets.list_budgets(BudgetFilters(min_amount_cents=40_000))
        assert [b.amount_cents for b in large] == [50_000]
        february = budgets.list_budgets(BudgetFilters(start=date(2024, 2, 1)))
        assert len(february) == 2
