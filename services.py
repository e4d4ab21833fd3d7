from __future__ import annotations

import json
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alerts import build_alert, should_alert, should_alert_daily_limit
from config import get_settings
from models import AlertKind, Budget, Expense, Notification, NotificationType
from periods import local_today, month_period_for, resolve_month
from schemas import (
    BudgetUpdateIn,
    ExpenseIn,
    ExpenseUpdateIn,
    ProductExpenseIn,
)
from stats import (
    BudgetComparison,
    BudgetStats,
    compare_stats,
    compute_budget_stats,
    format_amount,
)

logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


class BudgetEngineError(ValueError):
    pass


class InvalidPeriod(BudgetEngineError):
    pass


class OverlapConflict(BudgetEngineError):
    def __init__(self, conflicts: list[Budget]) -> None:
        self.conflicts = conflicts
        ids = ", ".join(str(b.id) for b in conflicts)
        super().__init__(f"An active budget already covers this period ({ids})")


class NotFound(BudgetEngineError):
    pass


class BudgetNotFound(NotFound):
    def __init__(self, budget_id: int) -> None:
        super().__init__(f"Budget {budget_id} not found")


class ExpenseNotFound(NotFound):
    def __init__(self, expense_id: int) -> None:
        super().__init__(f"Expense {expense_id} not found")


class NotificationNotFound(NotFound):
    def __init__(self, notification_id: int) -> None:
        super().__init__(f"Notification {notification_id} not found")


class NoBudgetConfigured(BudgetEngineError):
    def __init__(self, on_date: date, *, never_configured: bool) -> None:
        self.on_date = on_date
        self.never_configured = never_configured
        if never_configured:
            message = "You must set up a budget before recording expenses"
        else:
            message = f"No budget is defined for the period containing {on_date}"
        super().__init__(message)


class DateOutsidePeriod(BudgetEngineError):
    def __init__(self, expense_date: date, budget: Budget) -> None:
        super().__init__(
            f"Expense date {expense_date} is outside the budget period "
            f"({budget.period_start} to {budget.period_end})"
        )


class InvalidAmount(BudgetEngineError):
    pass


class ExpenseDateInFuture(BudgetEngineError):
    pass


@dataclass
class BudgetFilters:
    is_active: Optional[bool] = None
    start: Optional[date] = None
    end: Optional[date] = None
    min_amount_cents: Optional[int] = None
    max_amount_cents: Optional[int] = None


@dataclass
class ExpenseFilters:
    budget_id: Optional[int] = None
    start: Optional[date] = None
    end: Optional[date] = None
    min_amount_cents: Optional[int] = None
    max_amount_cents: Optional[int] = None
    source: Optional[str] = None
    category: Optional[str] = None
    query: Optional[str] = None
    has_receipt: Optional[bool] = None
    has_amount: Optional[bool] = None


@dataclass(frozen=True)
class BudgetSetupStatus:
    needs_setup: bool
    has_current_budget: bool
    has_previous_budget: bool
    suggested_amount_cents: Optional[int]


@dataclass(frozen=True)
class ProductExpenseResult:
    expense: Optional[Expense]
    budget_id: Optional[int]
    budget_updated: bool
    message: str


@dataclass(frozen=True)
class ExpenseSummary:
    count: int
    with_amount_count: int
    without_amount_count: int
    total_cents: int
    average_cents: float


@dataclass(frozen=True)
class ExpenseImpact:
    budget_id: int
    previous_spent_cents: int
    new_spent_cents: int
    remaining_cents: int
    percentage_used: float
    triggers_alert: bool
    alert_kind: Optional[AlertKind]


@dataclass(frozen=True)
class _PendingExpense:
    amount_cents: int
    date: date
    category: Optional[str] = None
    source: Optional[str] = None


PRODUCT_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Boulangerie", ("pain", "baguette", "croissant")),
    ("Produits laitiers", ("lait", "yaourt", "fromage")),
    ("Viande", ("viande", "bœuf", "porc", "agneau")),
    ("Poisson", ("poisson", "saumon", "thon")),
    ("Fruits", ("pomme", "banane", "orange")),
    ("Légumes", ("salade", "carotte", "tomate")),
)


def detect_category(product_name: str) -> Optional[str]:
    name = product_name.lower()
    for category, keywords in PRODUCT_CATEGORY_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return category
    return None


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise BudgetNotFound(budget_id)
        return budget

    def has_any_budget(self) -> bool:
        stmt = select(func.count(Budget.id)).where(Budget.user_id == self.user_id)
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def resolve_budget_for_date(self, on_date: date) -> Optional[Budget]:
        stmt = (
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.is_active.is_(True),
                Budget.period_start <= on_date,
                Budget.period_end >= on_date,
            )
            .order_by(Budget.created_at.desc(), Budget.id.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def last_budget(self) -> Optional[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.created_at.desc(), Budget.id.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def find_conflicts(
        self,
        period_start: date,
        period_end: date,
        *,
        exclude_id: Optional[int] = None,
        for_update: bool = False,
    ) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.is_active.is_(True),
                Budget.period_start <= period_end,
                Budget.period_end >= period_start,
            )
            .order_by(Budget.period_start.asc(), Budget.id.asc())
        )
        if exclude_id is not None:
            stmt = stmt.where(Budget.id != exclude_id)
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.session.scalars(stmt).all())

    def _deactivate(self, budgets: list[Budget]) -> None:
        if not budgets:
            return
        self.session.execute(
            update(Budget)
            .where(Budget.id.in_([b.id for b in budgets]))
            .values(is_active=False)
        )

    def create_budget(
        self,
        amount_cents: int,
        period_start: date,
        period_end: date,
        is_active: bool = True,
        *,
        replace_overlapping: bool = True,
        previous_budget_id: Optional[int] = None,
    ) -> Budget:
        if period_start >= period_end:
            raise InvalidPeriod("Period start must be before period end")
        if amount_cents < 0:
            raise InvalidAmount("Budget amount cannot be negative")

        try:
            conflicts: list[Budget] = []
            if is_active:
                conflicts = self.find_conflicts(
                    period_start, period_end, for_update=True
                )
                if conflicts and not replace_overlapping:
                    raise OverlapConflict(conflicts)
                self._deactivate(conflicts)

            budget = Budget(
                user_id=self.user_id,
                amount_cents=amount_cents,
                period_start=period_start,
                period_end=period_end,
                is_active=is_active,
                previous_budget_id=previous_budget_id,
            )
            self.session.add(budget)
            self.session.commit()
        except (SQLAlchemyError, OverlapConflict):
            self.session.rollback()
            raise
        self.session.refresh(budget)
        logger.info(
            f"budget_created: id={budget.id} user={self.user_id} "
            f"period={period_start}..{period_end} active={is_active} "
            f"deactivated={len(conflicts)}"
        )
        return budget

    def create_monthly_budget(
        self,
        amount_cents: int,
        year: Optional[int] = None,
        month: Optional[int] = None,
        *,
        today: Optional[date] = None,
        previous_budget_id: Optional[int] = None,
    ) -> Budget:
        try:
            period = resolve_month(year, month, today=today)
        except ValueError as exc:
            raise InvalidPeriod(str(exc)) from exc
        return self.create_budget(
            amount_cents,
            period.start,
            period.end,
            True,
            previous_budget_id=previous_budget_id,
        )

    def ensure_budget_for_date(
        self, on_date: date, fallback_amount_cents: Optional[int] = None
    ) -> Budget:
        existing = self.resolve_budget_for_date(on_date)
        if existing:
            return existing

        period = month_period_for(on_date)
        last = self.last_budget()
        if last:
            budget = self.create_budget(
                last.amount_cents,
                period.start,
                period.end,
                True,
                previous_budget_id=last.id,
            )
            logger.info(
                f"budget_rollover: user={self.user_id} from={last.id} to={budget.id}"
            )
            return budget
        if fallback_amount_cents is not None:
            return self.create_budget(
                fallback_amount_cents, period.start, period.end, True
            )
        raise NoBudgetConfigured(on_date, never_configured=True)

    def current_budget(
        self, today: Optional[date] = None, *, rollover: bool = True
    ) -> Optional[Budget]:
        today = today or local_today()
        budget = self.resolve_budget_for_date(today)
        if budget or not rollover or not self.has_any_budget():
            return budget
        return self.ensure_budget_for_date(today)

    def setup_status(self, today: Optional[date] = None) -> BudgetSetupStatus:
        today = today or local_today()
        current = self.resolve_budget_for_date(today)
        last = self.last_budget()
        return BudgetSetupStatus(
            needs_setup=current is None,
            has_current_budget=current is not None,
            has_previous_budget=last is not None,
            suggested_amount_cents=last.amount_cents if last else None,
        )

    def update_budget(
        self, budget_id: int, data: BudgetUpdateIn, *, today: Optional[date] = None
    ) -> Budget:
        budget = self.get(budget_id)
        changes = data.model_dump(exclude_unset=True)
        try:
            if changes.get("amount_cents") is not None:
                budget.amount_cents = changes["amount_cents"]
            if changes.get("is_active") is True and not budget.is_active:
                self._deactivate(
                    self.find_conflicts(
                        budget.period_start,
                        budget.period_end,
                        exclude_id=budget.id,
                        for_update=True,
                    )
                )
                budget.is_active = True
            elif changes.get("is_active") is False:
                budget.is_active = False
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self.session.refresh(budget)
        if "amount_cents" in changes:
            AlertService(self.session, self.user_id).check_budget_alerts_safely(
                budget.id, today=today
            )
        return budget

    def delete_budget(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.execute(
            delete(Notification).where(
                Notification.user_id == self.user_id,
                Notification.type == NotificationType.budget,
                Notification.reference_id == budget.id,
            )
        )
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: id={budget_id} user={self.user_id}")

    def list_budgets(
        self,
        filters: Optional[BudgetFilters] = None,
        *,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Budget]:
        filters = filters or BudgetFilters()
        stmt = select(Budget).where(Budget.user_id == self.user_id)
        if filters.is_active is not None:
            stmt = stmt.where(Budget.is_active.is_(filters.is_active))
        if filters.start:
            stmt = stmt.where(Budget.period_start >= filters.start)
        if filters.end:
            stmt = stmt.where(Budget.period_end <= filters.end)
        if filters.min_amount_cents is not None:
            stmt = stmt.where(Budget.amount_cents >= filters.min_amount_cents)
        if filters.max_amount_cents is not None:
            stmt = stmt.where(Budget.amount_cents <= filters.max_amount_cents)
        stmt = (
            stmt.order_by(Budget.created_at.desc(), Budget.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt).all())

    def expenses_for(self, budget: Budget) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.budget_id == budget.id)
            .order_by(Expense.date.asc(), Expense.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def stats(self, budget_id: int, *, today: Optional[date] = None) -> BudgetStats:
        budget = self.get(budget_id)
        return compute_budget_stats(
            budget, self.expenses_for(budget), today=today or local_today()
        )

    def compare_budgets(
        self, current_id: int, previous_id: int, *, today: Optional[date] = None
    ) -> BudgetComparison:
        today = today or local_today()
        return compare_stats(
            self.stats(current_id, today=today), self.stats(previous_id, today=today)
        )


class ExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.budgets = BudgetService(session, self.user_id)

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise ExpenseNotFound(expense_id)
        return expense

    @staticmethod
    def _check_amount(amount_cents: Optional[int]) -> None:
        if amount_cents is not None and amount_cents < 0:
            raise InvalidAmount("Expense amount cannot be negative")

    def record_expense(self, data: ExpenseIn, *, today: Optional[date] = None) -> Expense:
        today = today or local_today()
        self._check_amount(data.amount_cents)
        if data.date > today:
            raise ExpenseDateInFuture("Expense date cannot be in the future")

        if data.budget_id is not None:
            budget = self.budgets.get(data.budget_id)
        else:
            budget = self.budgets.ensure_budget_for_date(data.date)

        if not budget.period_start <= data.date <= budget.period_end:
            raise DateOutsidePeriod(data.date, budget)

        expense = Expense(
            user_id=self.user_id,
            budget_id=budget.id,
            amount_cents=data.amount_cents,
            date=data.date,
            source=data.source,
            category=data.category,
            notes=data.notes,
            receipt_id=data.receipt_id,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        logger.info(
            f"expense_recorded: id={expense.id} budget={budget.id} "
            f"amount_cents={expense.amount_cents}"
        )

        AlertService(self.session, self.user_id).check_budget_alerts_safely(
            budget.id, today=today
        )
        return expense

    def record_expense_from_product(
        self, data: ProductExpenseIn, *, today: Optional[date] = None
    ) -> ProductExpenseResult:
        today = today or local_today()
        self._check_amount(data.amount_cents)
        if data.purchase_date > today:
            raise ExpenseDateInFuture("Purchase date cannot be in the future")
        options = data.options
        name = data.product_name

        budget = self.budgets.resolve_budget_for_date(data.purchase_date)
        if budget is None and options.find_or_create_budget:
            try:
                budget = self.budgets.ensure_budget_for_date(
                    data.purchase_date, options.default_budget_cents
                )
            except NoBudgetConfigured:
                budget = None
        budget_id = budget.id if budget else None

        if not data.amount_cents:
            return ProductExpenseResult(
                expense=None,
                budget_id=budget_id,
                budget_updated=False,
                message=f'Product "{name}" added without budget impact (no price given)',
            )

        if budget is None:
            return ProductExpenseResult(
                expense=None,
                budget_id=None,
                budget_updated=False,
                message=f'Could not add the expense for "{name}" (no budget available)',
            )

        category = detect_category(name) if options.auto_detect_category else None
        notes = f"{name} - {data.notes}" if data.notes else name
        expense = self.record_expense(
            ExpenseIn(
                budget_id=budget.id,
                amount_cents=data.amount_cents,
                date=data.purchase_date,
                source=data.source,
                category=category,
                notes=notes[:500],
            ),
            today=today,
        )
        if data.inventory_item_id:
            logger.info(
                f"expense_from_product: expense={expense.id} "
                f"inventory_item={data.inventory_item_id}"
            )
        return ProductExpenseResult(
            expense=expense,
            budget_id=budget.id,
            budget_updated=True,
            message=(
                f"Expense of {format_amount(data.amount_cents, get_settings().currency_symbol)} "
                f'added to the budget for "{name}"'
            ),
        )

    def update_expense(
        self, expense_id: int, data: ExpenseUpdateIn, *, today: Optional[date] = None
    ) -> Expense:
        expense = self.get(expense_id)
        changes = data.model_dump(exclude_unset=True)
        if "amount_cents" in changes:
            if changes["amount_cents"] is None:
                raise InvalidAmount("Expense amount is required")
            self._check_amount(changes["amount_cents"])
        for field_name, value in changes.items():
            setattr(expense, field_name, value)
        self.session.commit()
        self.session.refresh(expense)
        AlertService(self.session, self.user_id).check_budget_alerts_safely(
            expense.budget_id, today=today
        )
        return expense

    def delete_expense(self, expense_id: int, *, today: Optional[date] = None) -> None:
        expense = self.get(expense_id)
        budget_id = expense.budget_id
        self.session.delete(expense)
        self.session.commit()
        AlertService(self.session, self.user_id).check_budget_alerts_safely(
            budget_id, today=today
        )

    def _filtered(self, stmt, filters: ExpenseFilters):
        stmt = stmt.where(Expense.user_id == self.user_id)
        if filters.budget_id is not None:
            stmt = stmt.where(Expense.budget_id == filters.budget_id)
        if filters.start:
            stmt = stmt.where(Expense.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Expense.date <= filters.end)
        if filters.min_amount_cents is not None:
            stmt = stmt.where(Expense.amount_cents >= filters.min_amount_cents)
        if filters.max_amount_cents is not None:
            stmt = stmt.where(Expense.amount_cents <= filters.max_amount_cents)
        if filters.has_amount is not None:
            stmt = stmt.where(
                Expense.amount_cents > 0
                if filters.has_amount
                else Expense.amount_cents == 0
            )
        if filters.has_receipt is not None:
            stmt = stmt.where(
                Expense.receipt_id.is_not(None)
                if filters.has_receipt
                else Expense.receipt_id.is_(None)
            )
        if filters.source:
            stmt = stmt.where(Expense.source.ilike(f"%{filters.source.strip()}%"))
        if filters.category:
            stmt = stmt.where(Expense.category.ilike(f"%{filters.category.strip()}%"))
        if filters.query:
            like = f"%{filters.query.strip()}%"
            stmt = stmt.where(
                or_(
                    Expense.notes.ilike(like),
                    Expense.source.ilike(like),
                    Expense.category.ilike(like),
                )
            )
        return stmt

    def list_expenses(
        self,
        filters: Optional[ExpenseFilters] = None,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Expense]:
        stmt = self._filtered(select(Expense), filters or ExpenseFilters())
        stmt = (
            stmt.order_by(Expense.date.desc(), Expense.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt).all())

    def count_expenses(self, filters: Optional[ExpenseFilters] = None) -> int:
        stmt = self._filtered(select(func.count(Expense.id)), filters or ExpenseFilters())
        return int(self.session.execute(stmt).scalar_one() or 0)

    def recent_expenses(self, limit: int = 10) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.created_at.desc(), Expense.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def expenses_without_amount(self, budget_id: Optional[int] = None) -> list[Expense]:
        return self.list_expenses(
            ExpenseFilters(budget_id=budget_id, has_amount=False), limit=1000
        )

    def expense_summary(self, budget_id: Optional[int] = None) -> ExpenseSummary:
        stmt = select(Expense.amount_cents).where(Expense.user_id == self.user_id)
        if budget_id is not None:
            stmt = stmt.where(Expense.budget_id == budget_id)
        amounts = [int(a) for a in self.session.scalars(stmt).all()]
        priced = [a for a in amounts if a > 0]
        total = sum(priced)
        return ExpenseSummary(
            count=len(amounts),
            with_amount_count=len(priced),
            without_amount_count=len(amounts) - len(priced),
            total_cents=total,
            average_cents=total / len(priced) if priced else 0.0,
        )

    def expense_impact(
        self, budget_id: int, amount_cents: int, *, today: Optional[date] = None
    ) -> ExpenseImpact:
        self._check_amount(amount_cents)
        today = today or local_today()
        budget = self.budgets.get(budget_id)
        expenses = self.budgets.expenses_for(budget)
        current = compute_budget_stats(budget, expenses, today=today)
        pending = _PendingExpense(amount_cents=amount_cents, date=today)
        projected = compute_budget_stats(budget, [*expenses, pending], today=today)
        decision = should_alert(
            projected, AlertService(self.session, self.user_id).last_threshold(budget.id)
        )
        return ExpenseImpact(
            budget_id=budget.id,
            previous_spent_cents=current.total_spent_cents,
            new_spent_cents=projected.total_spent_cents,
            remaining_cents=projected.remaining_cents,
            percentage_used=projected.percentage_used_raw,
            triggers_alert=decision.fire,
            alert_kind=decision.kind,
        )


_budget_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = (
    weakref.WeakValueDictionary()
)
_budget_locks_guard = threading.Lock()


def _lock_for_budget(budget_id: int) -> threading.Lock:
    with _budget_locks_guard:
        lock = _budget_locks.get(budget_id)
        if lock is None:
            lock = threading.Lock()
            _budget_locks[budget_id] = lock
        return lock


def notification_suggestions(notification: Notification) -> list[str]:
    if not notification.suggestions_json:
        return []
    return list(json.loads(notification.suggestions_json))


class AlertService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        daily_limit_alerts: Optional[bool] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        settings = get_settings()
        self.currency_symbol = settings.currency_symbol
        self.daily_limit_alerts = (
            settings.daily_limit_alerts
            if daily_limit_alerts is None
            else daily_limit_alerts
        )

    def _budget_notifications(self, budget_id: int):
        return select(Notification).where(
            Notification.user_id == self.user_id,
            Notification.type == NotificationType.budget,
            Notification.reference_id == budget_id,
        )

    def last_threshold(self, budget_id: int) -> int:
        stmt = (
            self._budget_notifications(budget_id)
            .where(Notification.threshold_reached.is_not(None))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(1)
        )
        last = self.session.scalar(stmt)
        return int(last.threshold_reached) if last else 0

    def _daily_limit_sent(self, budget_id: int, on_date: date) -> bool:
        stmt = self._budget_notifications(budget_id).where(
            Notification.alert_kind == AlertKind.daily_limit,
            Notification.alert_date == on_date,
        )
        return self.session.scalar(stmt.limit(1)) is not None

    @contextmanager
    def _serialized(self, budget_id: int) -> Iterator[None]:
        with _lock_for_budget(budget_id):
            if self.session.get_bind().dialect.name == "postgresql":
                self.session.execute(select(func.pg_advisory_xact_lock(budget_id)))
            yield

    def check_budget_alerts(
        self, budget_id: int, *, today: Optional[date] = None
    ) -> list[Notification]:
        today = today or local_today()
        budgets = BudgetService(self.session, self.user_id)
        budget = budgets.get(budget_id)

        fired: list[Notification] = []
        with self._serialized(budget.id):
            stats = compute_budget_stats(
                budget, budgets.expenses_for(budget), today=today
            )
            kinds: list[AlertKind] = []
            decision = should_alert(stats, self.last_threshold(budget.id))
            if decision.fire:
                kinds.append(decision.kind)
            if self.daily_limit_alerts and should_alert_daily_limit(
                stats,
                today,
                already_sent_today=self._daily_limit_sent(budget.id, today),
            ):
                kinds.append(AlertKind.daily_limit)

            for kind in kinds:
                content = build_alert(
                    kind, stats, today=today, symbol=self.currency_symbol
                )
                notification = Notification(
                    user_id=self.user_id,
                    type=NotificationType.budget,
                    title=content.title,
                    message=content.message,
                    reference_id=budget.id,
                    reference_type="budget",
                    alert_kind=content.kind,
                    threshold_reached=content.threshold,
                    alert_date=today,
                    severity=content.severity,
                    suggestions_json=json.dumps(content.suggestions),
                )
                self.session.add(notification)
                fired.append(notification)
            self.session.commit()

        for notification in fired:
            logger.info(
                f"budget_alert: budget={budget.id} kind={notification.alert_kind.value} "
                f"percentage={stats.percentage_used:.1f}"
            )
        return fired

    def check_budget_alerts_safely(
        self, budget_id: int, *, today: Optional[date] = None
    ) -> list[Notification]:
        try:
            return self.check_budget_alerts(budget_id, today=today)
        except Exception:
            self.session.rollback()
            logger.exception(f"budget_alert_failed: budget={budget_id}")
            return []

    def list_alerts(self, budget_id: int) -> list[Notification]:
        BudgetService(self.session, self.user_id).get(budget_id)
        stmt = self._budget_notifications(budget_id).order_by(
            Notification.created_at.desc(), Notification.id.desc()
        )
        return list(self.session.scalars(stmt).all())

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.user_id != self.user_id:
            raise NotificationNotFound(notification_id)
        notification.is_read = True
        self.session.commit()
        self.session.refresh(notification)
        return notification
