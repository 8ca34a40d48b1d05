from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from models import AccountType, BillingCycle, TransactionStatus


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    account_type: AccountType
    balance_cents: int = 0
    currency: str = Field(default="USD", min_length=3, max_length=3)
    is_active: bool = True


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    account_type: Optional[AccountType] = None
    balance_cents: Optional[int] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    is_active: Optional[bool] = None


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    is_income: bool = False
    parent_category_id: Optional[int] = None
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_income: Optional[bool] = None
    parent_category_id: Optional[int] = None
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)


class TransactionIn(BaseModel):
    account_id: int
    category_id: Optional[int] = None
    amount_cents: int
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: str = Field(default="", max_length=200)
    merchant: str = Field(default="", max_length=120)
    transaction_date: date
    status: TransactionStatus = TransactionStatus.cleared
    is_flagged: bool = False


class TransactionUpdate(BaseModel):
    """Partial update; only fields that were explicitly set are applied."""

    account_id: Optional[int] = None
    category_id: Optional[int] = None
    amount_cents: Optional[int] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: Optional[str] = Field(default=None, max_length=200)
    merchant: Optional[str] = Field(default=None, max_length=120)
    transaction_date: Optional[date] = None
    status: Optional[TransactionStatus] = None
    is_flagged: Optional[bool] = None


class TransactionFilter(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    min_amount_cents: Optional[int] = None
    max_amount_cents: Optional[int] = None
    search: Optional[str] = None
    status: Optional[TransactionStatus] = None
    is_flagged: Optional[bool] = None


class BatchIds(BaseModel):
    transaction_ids: list[int] = Field(..., min_length=1)


class BatchCategoryIn(BatchIds):
    category_id: Optional[int] = None


class FlagIn(BaseModel):
    is_flagged: bool


class BudgetIn(BaseModel):
    category_id: Optional[int] = None
    month: date
    amount_cents: int = Field(..., ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class BudgetUpdate(BaseModel):
    category_id: Optional[int] = None
    amount_cents: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class SavingsGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., gt=0)
    current_amount_cents: int = Field(default=0, ge=0)
    start_date: date
    target_date: date
    category_id: Optional[int] = None
    is_completed: bool = False

    @model_validator(mode="after")
    def _dates_ordered(self) -> "SavingsGoalIn":
        if self.target_date < self.start_date:
            raise ValueError("Target date must not be before start date")
        return self


class SavingsGoalUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount_cents: Optional[int] = Field(default=None, gt=0)
    current_amount_cents: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    target_date: Optional[date] = None
    category_id: Optional[int] = None
    is_completed: Optional[bool] = None


class ContributionIn(BaseModel):
    amount_cents: int


class SubscriptionIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    billing_cycle: BillingCycle = BillingCycle.monthly
    next_payment: date
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    is_active: bool = True


class SubscriptionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    billing_cycle: Optional[BillingCycle] = None
    next_payment: Optional[date] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    is_active: Optional[bool] = None


class PaymentIn(BaseModel):
    account_id: Optional[int] = None
    paid_on: Optional[date] = None


class ReconcileIn(BaseModel):
    actual_balance_cents: int


class TopCategory(BaseModel):
    name: str
    amount_cents: int
    percentage: float


class FinancialMetrics(BaseModel):
    """Precomputed figures the insight rules are evaluated against.

    Every field is optional; a rule only fires when the fields it reads are
    present.
    """

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    current_income: Optional[float] = None
    previous_income: Optional[float] = None
    current_expenses: Optional[float] = None
    previous_expenses: Optional[float] = None
    current_saving_rate: Optional[float] = None
    previous_saving_rate: Optional[float] = None
    top_category: Optional[TopCategory] = None
    category_count: Optional[int] = None
    transaction_count: Optional[int] = None
    total_categories: Optional[int] = None
    days_since_last_transaction: Optional[int] = None
    income_source_count: Optional[int] = None


class Insight(BaseModel):
    id: str
    type: Literal["positive", "negative", "warning", "neutral"]
    title: str
    description: str
