import datetime as dt
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class NotificationType(str, Enum):
    budget = "BUDGET"


class AlertKind(str, Enum):
    threshold_75 = "THRESHOLD_75"
    threshold_90 = "THRESHOLD_90"
    over_budget = "OVER_BUDGET"
    daily_limit = "DAILY_LIMIT"


class AlertSeverity(str, Enum):
    info = "INFO"
    warning = "WARNING"
    critical = "CRITICAL"


class RiskLevel(str, Enum):
    low = "LOW"
    medium = "MEDIUM"
    high = "HIGH"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Rollover back-reference; the previous budget does not own this one.
    previous_budget_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budgets.id", ondelete="SET NULL")
    )

    previous_budget: Mapped[Optional["Budget"]] = relationship(
        "Budget", remote_side="Budget.id"
    )
    expenses: Mapped[list["Expense"]] = relationship(
        "Expense",
        back_populates="budget",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_budgets_amount_positive"),
        CheckConstraint("period_start < period_end", name="ck_budgets_period_order"),
        Index("ix_budgets_user_period", "user_id", "period_start", "period_end"),
        Index(
            "uq_budgets_user_active_start",
            "user_id",
            "period_start",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(100))
    category: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(String(500))
    receipt_id: Mapped[Optional[str]] = mapped_column(String(64))

    budget: Mapped["Budget"] = relationship("Budget", back_populates="expenses")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
        Index("ix_expenses_budget_date", "budget_id", "date"),
        Index("ix_expenses_user_date", "user_id", "date"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(
            NotificationType,
            name="notificationtype",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=NotificationType.budget,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    reference_id: Mapped[Optional[int]] = mapped_column(Integer)
    reference_type: Mapped[Optional[str]] = mapped_column(String(30))
    alert_kind: Mapped[Optional[AlertKind]] = mapped_column(
        SAEnum(AlertKind, name="alertkind", values_callable=_enum_values)
    )
    threshold_reached: Mapped[Optional[int]] = mapped_column(Integer)
    alert_date: Mapped[Optional[date]] = mapped_column(Date)
    severity: Mapped[AlertSeverity] = mapped_column(
        SAEnum(AlertSeverity, name="alertseverity", values_callable=_enum_values),
        nullable=False,
        default=AlertSeverity.info,
    )
    suggestions_json: Mapped[Optional[str]] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index(
            "ix_notifications_user_reference",
            "user_id",
            "type",
            "reference_id",
            "created_at",
        ),
    )
