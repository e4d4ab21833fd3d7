import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from models import Budget, Expense, Notification
from schemas import (
    BudgetIn,
    BudgetUpdateIn,
    ExpenseIn,
    ExpenseUpdateIn,
    MonthlyBudgetIn,
    ProductExpenseIn,
)
from services import (
    AlertService,
    BudgetEngineError,
    BudgetFilters,
    BudgetService,
    DateOutsidePeriod,
    ExpenseDateInFuture,
    ExpenseFilters,
    ExpenseService,
    InvalidAmount,
    InvalidPeriod,
    NoBudgetConfigured,
    NotFound,
    OverlapConflict,
    notification_suggestions,
)
from stats import budget_status_level, budget_suggestions

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Tracker")

ERROR_CODES: list[tuple[type, str, int]] = [
    (InvalidPeriod, "invalid_period", 400),
    (OverlapConflict, "overlap_conflict", 409),
    (NotFound, "not_found", 404),
    (NoBudgetConfigured, "no_budget_configured", 409),
    (DateOutsidePeriod, "date_outside_period", 400),
    (InvalidAmount, "invalid_amount", 400),
    (ExpenseDateInFuture, "expense_date_in_future", 400),
]


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _http_error(exc: BudgetEngineError) -> HTTPException:
    for error_cls, code, status in ERROR_CODES:
        if isinstance(exc, error_cls):
            logger.info(f"request_rejected: code={code} reason={exc}")
            detail: dict[str, object] = {"code": code, "message": str(exc)}
            if isinstance(exc, NoBudgetConfigured):
                detail["never_configured"] = exc.never_configured
            if isinstance(exc, OverlapConflict):
                detail["conflicts"] = [b.id for b in exc.conflicts]
            return HTTPException(status_code=status, detail=detail)
    return HTTPException(status_code=400, detail={"code": "invalid", "message": str(exc)})


def budget_out(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "amount_cents": budget.amount_cents,
        "period_start": budget.period_start.isoformat(),
        "period_end": budget.period_end.isoformat(),
        "is_active": budget.is_active,
        "previous_budget_id": budget.previous_budget_id,
        "created_at": budget.created_at.isoformat(),
        "updated_at": budget.updated_at.isoformat(),
    }


def expense_out(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "budget_id": expense.budget_id,
        "amount_cents": expense.amount_cents,
        "date": expense.date.isoformat(),
        "source": expense.source,
        "category": expense.category,
        "notes": expense.notes,
        "receipt_id": expense.receipt_id,
        "has_receipt": expense.receipt_id is not None,
        "created_at": expense.created_at.isoformat(),
        "updated_at": expense.updated_at.isoformat(),
    }


def notification_out(notification: Notification) -> dict[str, object]:
    return {
        "id": notification.id,
        "type": notification.type.value,
        "kind": notification.alert_kind.value if notification.alert_kind else None,
        "title": notification.title,
        "message": notification.message,
        "severity": notification.severity.value,
        "threshold_reached": notification.threshold_reached,
        "suggestions": notification_suggestions(notification),
        "reference_id": notification.reference_id,
        "reference_type": notification.reference_type,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat(),
    }


def stats_out(stats) -> dict[str, object]:
    data = asdict(stats)
    data["risk_level"] = stats.risk_level.value
    data["status_level"] = budget_status_level(stats.percentage_used)
    data["suggestions"] = budget_suggestions(stats, get_settings().currency_symbol)
    return data


@app.get("/api/budgets/current")
def api_current_budget(rollover: bool = True, db: Session = Depends(get_db)):
    service = BudgetService(db)
    try:
        budget = service.current_budget(rollover=rollover)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    if budget is None:
        status = (
            "no_budget_for_period" if service.has_any_budget() else "none_configured"
        )
        return {"status": status, "budget": None, "stats": None}
    return {
        "status": "ok",
        "budget": budget_out(budget),
        "stats": stats_out(service.stats(budget.id)),
    }


@app.get("/api/budgets/setup-status")
def api_setup_status(db: Session = Depends(get_db)):
    return asdict(BudgetService(db).setup_status())


@app.get("/api/budgets/conflicts")
def api_budget_conflicts(start: date, end: date, db: Session = Depends(get_db)):
    if start >= end:
        raise _http_error(InvalidPeriod("Period start must be before period end"))
    conflicts = BudgetService(db).find_conflicts(start, end)
    return {"conflicts": [budget_out(b) for b in conflicts]}


@app.get("/api/budgets/compare")
def api_compare_budgets(
    current: int, previous: int, db: Session = Depends(get_db)
):
    try:
        comparison = BudgetService(db).compare_budgets(current, previous)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return {
        "current": stats_out(comparison.current),
        "previous": stats_out(comparison.previous),
        "total_spent_change_cents": comparison.total_spent_change_cents,
        "percentage_change": comparison.percentage_change,
        "average_daily_change_cents": comparison.average_daily_change_cents,
        "category_changes": [asdict(c) for c in comparison.category_changes],
    }


@app.get("/api/budgets")
def api_list_budgets(
    is_active: Optional[bool] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    min_amount_cents: Optional[int] = None,
    max_amount_cents: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    filters = BudgetFilters(
        is_active=is_active,
        start=start,
        end=end,
        min_amount_cents=min_amount_cents,
        max_amount_cents=max_amount_cents,
    )
    items = BudgetService(db).list_budgets(
        filters, limit=limit + 1, offset=(page - 1) * limit
    )
    has_more = len(items) > limit
    return {
        "items": [budget_out(b) for b in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.post("/api/budgets", status_code=201)
def api_create_budget(payload: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).create_budget(
            payload.amount_cents,
            payload.period_start,
            payload.period_end,
            payload.is_active,
            replace_overlapping=payload.replace_overlapping,
        )
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return budget_out(budget)


@app.post("/api/budgets/monthly", status_code=201)
def api_create_monthly_budget(payload: MonthlyBudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).create_monthly_budget(
            payload.amount_cents, payload.year, payload.month
        )
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return budget_out(budget)


@app.patch("/api/budgets/{budget_id}")
def api_update_budget(
    budget_id: int, payload: BudgetUpdateIn, db: Session = Depends(get_db)
):
    try:
        budget = BudgetService(db).update_budget(budget_id, payload)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return budget_out(budget)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def api_delete_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete_budget(budget_id)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc


@app.get("/api/budgets/{budget_id}/stats")
def api_budget_stats(budget_id: int, db: Session = Depends(get_db)):
    try:
        stats = BudgetService(db).stats(budget_id)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return stats_out(stats)


@app.get("/api/budgets/{budget_id}/alerts")
def api_budget_alerts(budget_id: int, db: Session = Depends(get_db)):
    try:
        fired = AlertService(db).check_budget_alerts(budget_id)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return {"alerts": [notification_out(n) for n in fired]}


@app.get("/api/budgets/{budget_id}/notifications")
def api_budget_notifications(budget_id: int, db: Session = Depends(get_db)):
    try:
        items = AlertService(db).list_alerts(budget_id)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return {"items": [notification_out(n) for n in items]}


@app.post("/api/notifications/{notification_id}/read")
def api_mark_notification_read(notification_id: int, db: Session = Depends(get_db)):
    try:
        notification = AlertService(db).mark_read(notification_id)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return notification_out(notification)


@app.post("/api/expenses", status_code=201)
def api_record_expense(payload: ExpenseIn, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).record_expense(payload)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return expense_out(expense)


@app.post("/api/expenses/from-product")
def api_record_product_expense(payload: ProductExpenseIn, db: Session = Depends(get_db)):
    try:
        result = ExpenseService(db).record_expense_from_product(payload)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return {
        "expense": expense_out(result.expense) if result.expense else None,
        "budget_id": result.budget_id,
        "budget_updated": result.budget_updated,
        "message": result.message,
    }


@app.get("/api/expenses/impact")
def api_expense_impact(
    budget_id: int, amount_cents: int, db: Session = Depends(get_db)
):
    try:
        impact = ExpenseService(db).expense_impact(budget_id, amount_cents)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    data = asdict(impact)
    data["alert_kind"] = impact.alert_kind.value if impact.alert_kind else None
    return data


@app.get("/api/expenses/recent")
def api_recent_expenses(
    limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)
):
    return {"items": [expense_out(e) for e in ExpenseService(db).recent_expenses(limit)]}


@app.get("/api/expenses/summary")
def api_expense_summary(budget_id: Optional[int] = None, db: Session = Depends(get_db)):
    return asdict(ExpenseService(db).expense_summary(budget_id))


@app.get("/api/expenses")
def api_list_expenses(
    budget_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    min_amount_cents: Optional[int] = None,
    max_amount_cents: Optional[int] = None,
    source: Optional[str] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    has_receipt: Optional[bool] = None,
    has_amount: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    filters = ExpenseFilters(
        budget_id=budget_id,
        start=start,
        end=end,
        min_amount_cents=min_amount_cents,
        max_amount_cents=max_amount_cents,
        source=source,
        category=category,
        query=q,
        has_receipt=has_receipt,
        has_amount=has_amount,
    )
    service = ExpenseService(db)
    items = service.list_expenses(filters, limit=limit + 1, offset=(page - 1) * limit)
    has_more = len(items) > limit
    return {
        "items": [expense_out(e) for e in items[:limit]],
        "total": service.count_expenses(filters),
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.get("/api/expenses/{expense_id}")
def api_get_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).get(expense_id)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return expense_out(expense)


@app.patch("/api/expenses/{expense_id}")
def api_update_expense(
    expense_id: int, payload: ExpenseUpdateIn, db: Session = Depends(get_db)
):
    try:
        expense = ExpenseService(db).update_expense(expense_id, payload)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return expense_out(expense)


@app.delete("/api/expenses/{expense_id}", status_code=204)
def api_delete_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        ExpenseService(db).delete_expense(expense_id)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
