import datetime as dt
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_text(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class BudgetIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    period_start: date
    period_end: date
    is_active: bool = True
    replace_overlapping: bool = True


class MonthlyBudgetIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    year: Optional[int] = Field(default=None, ge=1970, le=3000)
    month: Optional[int] = Field(default=None, ge=1, le=12)


class BudgetUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class ExpenseIn(BaseModel):
    budget_id: Optional[int] = None
    # Sign is checked by the reconciler so it can report InvalidAmount.
    amount_cents: int
    date: dt.date
    source: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=500)
    receipt_id: Optional[str] = Field(default=None, max_length=64)

    @field_validator("source", "category", "notes", mode="before")
    @classmethod
    def clean_text_fields(cls, value):
        return _clean_text(value)


class ExpenseUpdateIn(BaseModel):
    # No date field: an expense never moves between periods.
    model_config = ConfigDict(extra="forbid")

    amount_cents: Optional[int] = None
    source: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=500)
    receipt_id: Optional[str] = Field(default=None, max_length=64)

    @field_validator("source", "category", "notes", mode="before")
    @classmethod
    def clean_text_fields(cls, value):
        return _clean_text(value)


class ProductExpenseOptions(BaseModel):
    find_or_create_budget: bool = True
    default_budget_cents: Optional[int] = Field(default=None, ge=0)
    auto_detect_category: bool = False


class ProductExpenseIn(BaseModel):
    product_name: str = Field(..., min_length=1, max_length=200)
    amount_cents: Optional[int] = None
    purchase_date: date
    source: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    inventory_item_id: Optional[str] = Field(default=None, max_length=64)
    options: ProductExpenseOptions = Field(default_factory=ProductExpenseOptions)

    @field_validator("source", "notes", mode="before")
    @classmethod
    def clean_text_fields(cls, value):
        return _clean_text(value)

    @field_validator("product_name")
    @classmethod
    def strip_product_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Product name must not be blank")
        return value
