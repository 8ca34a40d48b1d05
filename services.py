from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Iterator, Literal, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from aggregation import (
    abs_amount,
    bucket_totals,
    is_income,
    percentage,
    split_income_expenses,
    totals,
)
from billing import monthly_equivalent_cents, next_payment_date
from export_utils import export_csv, export_json, transaction_record
from insights import generate_financial_insights
from models import (
    Account,
    Budget,
    Category,
    SavingsGoal,
    Subscription,
    Transaction,
    TransactionStatus,
)
from periods import (
    add_months,
    iter_days,
    iter_months,
    iter_weeks,
    local_today,
    month_end,
    month_start,
    week_start,
)
from schemas import (
    AccountIn,
    AccountUpdate,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    FinancialMetrics,
    Insight,
    SavingsGoalIn,
    SavingsGoalUpdate,
    SubscriptionIn,
    SubscriptionUpdate,
    TopCategory,
    TransactionFilter,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
UNCATEGORIZED_COLOR = "#9e9e9e"
SUBSCRIPTIONS_CATEGORY = "Subscriptions"

SORT_COLUMNS = {
    "date": Transaction.transaction_date,
    "transaction_date": Transaction.transaction_date,
    "amount": Transaction.amount_cents,
    "amount_cents": Transaction.amount_cents,
    "merchant": Transaction.merchant,
    "description": Transaction.description,
    "status": Transaction.status,
    "created_at": Transaction.created_at,
}


class NotAuthenticated(PermissionError):
    pass


def balance_adjustments(transactions: Iterable[Transaction]) -> dict[int, int]:
    """Per account change needed to undo ``transactions``: ``-sum(amount)``."""
    removed = bucket_totals(
        transactions, lambda t: t.account_id, lambda t: t.amount_cents
    )
    return {account_id: -amount for account_id, amount in removed.items()}


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class UserScopedService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id

    def _require_user(self, action: str) -> int:
        if not self.user_id:
            raise NotAuthenticated(f"User must be logged in to {action}")
        return self.user_id

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _owned_account(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        return account

    def _owned_category(self, category_id: Optional[int]) -> Optional[Category]:
        if category_id is None:
            return None
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def _transactions_between(
        self, start: Optional[date], end: Optional[date], *, expenses_only: bool = False
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.transaction_date.asc(), Transaction.id.asc())
        )
        if start is not None:
            stmt = stmt.where(Transaction.transaction_date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.transaction_date <= end)
        if expenses_only:
            stmt = stmt.where(Transaction.amount_cents < 0)
        return self.session.scalars(stmt).all()


class AccountService(UserScopedService):
    def list_all(self) -> list[Account]:
        user_id = self._require_user("fetch accounts")
        stmt = (
            select(Account)
            .where(Account.user_id == user_id)
            .order_by(Account.name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def get_by_id(self, account_id: int) -> Optional[Account]:
        user_id = self._require_user("fetch an account")
        return self.session.scalar(
            select(Account).where(Account.user_id == user_id, Account.id == account_id)
        )

    def create(self, data: AccountIn) -> Account:
        user_id = self._require_user("create an account")
        account = Account(
            user_id=user_id,
            name=data.name.strip(),
            account_type=data.account_type,
            balance_cents=data.balance_cents,
            currency=data.currency.upper(),
            is_active=data.is_active,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        self._require_user("update an account")
        account = self._owned_account(account_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            if field == "currency":
                value = value.upper()
            setattr(account, field, value)
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        self._require_user("delete an account")
        account = self._owned_account(account_id)
        in_use = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.user_id == self.user_id,
                    Transaction.account_id == account.id,
                )
            ).scalar_one()
            or 0
        )
        if in_use:
            raise ValueError(
                "Account has transactions; delete or move them before deleting the account"
            )
        with self._atomic():
            self.session.execute(
                update(Subscription)
                .where(
                    Subscription.user_id == self.user_id,
                    Subscription.account_id == account.id,
                )
                .values(account_id=None)
            )
            self.session.delete(account)

    def balances(self) -> dict[str, object]:
        accounts = self.list_all()
        rows = [
            {
                "account_id": a.id,
                "account_name": a.name,
                "balance_cents": a.balance_cents,
                "currency": a.currency,
            }
            for a in accounts
        ]
        return {
            "total_balance_cents": sum(a.balance_cents for a in accounts),
            "accounts": rows,
        }

    def reconcile(
        self, account_id: int, actual_balance_cents: int, today: Optional[date] = None
    ) -> Account:
        """Set the balance to the observed value and record the difference
        as a cleared adjustment transaction."""
        user_id = self._require_user("reconcile an account")
        account = self._owned_account(account_id)
        if account.balance_cents == actual_balance_cents:
            return account
        difference = actual_balance_cents - account.balance_cents
        with self._atomic():
            account.balance_cents = actual_balance_cents
            self.session.add(
                Transaction(
                    user_id=user_id,
                    account_id=account.id,
                    amount_cents=difference,
                    currency=account.currency,
                    description="Account reconciliation",
                    merchant="Balance adjustment",
                    transaction_date=today or local_today(),
                    status=TransactionStatus.cleared,
                )
            )
        logger.info(
            f"reconcile: user_id={user_id} account_id={account.id} difference_cents={difference}"
        )
        self.session.refresh(account)
        return account


class CategoryService(UserScopedService):
    def list_all(self, is_income: Optional[bool] = None) -> list[Category]:
        user_id = self._require_user("fetch categories")
        stmt = (
            select(Category)
            .where(Category.user_id == user_id)
            .order_by(Category.name, Category.id)
        )
        if is_income is not None:
            stmt = stmt.where(Category.is_income.is_(is_income))
        return self.session.scalars(stmt).all()

    def get_by_id(self, category_id: int) -> Optional[Category]:
        user_id = self._require_user("fetch a category")
        return self.session.scalar(
            select(Category).where(
                Category.user_id == user_id, Category.id == category_id
            )
        )

    def _check_parent(
        self, parent_id: Optional[int], category: Optional[Category] = None
    ) -> None:
        if parent_id is None:
            return
        parent = self._owned_category(parent_id)
        if category is not None:
            if parent.id == category.id:
                raise ValueError("A category cannot be its own parent")
            has_children = self.session.scalar(
                select(func.count(Category.id)).where(
                    Category.parent_category_id == category.id
                )
            )
            if has_children:
                raise ValueError("A category with subcategories cannot be nested")
        if parent.parent_category_id is not None:
            raise ValueError("Subcategories cannot have subcategories")

    def _check_unique(
        self, name: str, is_income: bool, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category).where(
            Category.user_id == self.user_id,
            Category.is_income.is_(is_income),
            func.lower(Category.name) == name.strip().lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        user_id = self._require_user("create a category")
        self._check_unique(data.name, data.is_income)
        self._check_parent(data.parent_category_id)
        category = Category(
            user_id=user_id,
            name=data.name.strip(),
            is_income=data.is_income,
            parent_category_id=data.parent_category_id,
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        self._require_user("update a category")
        category = self._owned_category(category_id)
        fields = data.model_dump(exclude_unset=True)
        name = fields.get("name") or category.name
        kind = fields.get("is_income")
        kind = category.is_income if kind is None else kind
        if "name" in fields or "is_income" in fields:
            self._check_unique(name, kind, exclude_id=category.id)
        if "parent_category_id" in fields:
            self._check_parent(fields["parent_category_id"], category)
        if kind and not category.is_income:
            budgeted = self.session.scalar(
                select(func.count(Budget.id)).where(
                    Budget.user_id == self.user_id, Budget.category_id == category.id
                )
            )
            if budgeted:
                raise ValueError("A category with budgets cannot become an income category")
        for field, value in fields.items():
            if value is None and field in ("name", "is_income"):
                continue
            if field == "name":
                value = value.strip()
            setattr(category, field, value)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        self._require_user("delete a category")
        category = self._owned_category(category_id)
        with self._atomic():
            # Budgets belong to their category; keeping them would add a second
            # uncategorized budget for the month.
            self.session.execute(
                delete(Budget).where(
                    Budget.user_id == self.user_id, Budget.category_id == category.id
                )
            )
            for model in (Transaction, SavingsGoal, Subscription):
                self.session.execute(
                    update(model)
                    .where(model.user_id == self.user_id, model.category_id == category.id)
                    .values(category_id=None)
                )
            self.session.execute(
                update(Category)
                .where(
                    Category.user_id == self.user_id,
                    Category.parent_category_id == category.id,
                )
                .values(parent_category_id=None)
            )
            self.session.delete(category)


@dataclass
class TransactionPage:
    items: list[Transaction]
    total_count: int
    total_pages: int
    page: int
    page_size: int


class TransactionService(UserScopedService):
    def _filter_conditions(self, filters: Optional[TransactionFilter]) -> list:
        conditions = [Transaction.user_id == self.user_id]
        if filters is None:
            return conditions
        if filters.start_date:
            conditions.append(Transaction.transaction_date >= filters.start_date)
        if filters.end_date:
            conditions.append(Transaction.transaction_date <= filters.end_date)
        if filters.account_id:
            conditions.append(Transaction.account_id == filters.account_id)
        if filters.category_id:
            conditions.append(Transaction.category_id == filters.category_id)
        if filters.min_amount_cents is not None:
            conditions.append(Transaction.amount_cents >= filters.min_amount_cents)
        if filters.max_amount_cents is not None:
            conditions.append(Transaction.amount_cents <= filters.max_amount_cents)
        if filters.search:
            like = f"%{filters.search.lower()}%"
            conditions.append(
                or_(
                    func.lower(Transaction.description).like(like),
                    func.lower(Transaction.merchant).like(like),
                )
            )
        if filters.status:
            conditions.append(Transaction.status == filters.status)
        if filters.is_flagged is not None:
            conditions.append(Transaction.is_flagged.is_(filters.is_flagged))
        return conditions

    def list_page(
        self,
        page: int = 1,
        page_size: int = 10,
        filters: Optional[TransactionFilter] = None,
        sort_by: str = "transaction_date",
        sort_order: Literal["asc", "desc"] = "desc",
    ) -> TransactionPage:
        self._require_user("fetch transactions")
        if page < 1 or page_size < 1:
            raise ValueError("Page and page size must be positive")
        column = SORT_COLUMNS.get(sort_by)
        if column is None:
            raise ValueError(f"Unsupported sort key: {sort_by}")
        conditions = self._filter_conditions(filters)

        total_count = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(*conditions)
            ).scalar_one()
            or 0
        )
        ordering = (
            (column.asc(), Transaction.id.asc())
            if sort_order == "asc"
            else (column.desc(), Transaction.id.desc())
        )
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.account))
            .where(*conditions)
            .order_by(*ordering)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = self.session.scalars(stmt).all()
        return TransactionPage(
            items=items,
            total_count=total_count,
            total_pages=math.ceil(total_count / page_size),
            page=page,
            page_size=page_size,
        )

    def all_matching(self, filters: Optional[TransactionFilter] = None) -> list[Transaction]:
        self._require_user("fetch transactions")
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.account))
            .where(*self._filter_conditions(filters))
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        user_id = self._require_user("fetch a transaction")
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.account))
            .where(Transaction.user_id == user_id, Transaction.id == transaction_id)
        )
        return self.session.scalar(stmt)

    def _get_owned(self, transaction_id: int) -> Transaction:
        txn = self.get_by_id(transaction_id)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        user_id = self._require_user("create a transaction")
        account = self._owned_account(data.account_id)
        self._owned_category(data.category_id)
        txn = Transaction(
            user_id=user_id,
            account_id=account.id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            currency=(data.currency or account.currency).upper(),
            description=data.description,
            merchant=data.merchant,
            transaction_date=data.transaction_date,
            status=data.status,
            is_flagged=data.is_flagged,
        )
        with self._atomic():
            self.session.add(txn)
            account.balance_cents += data.amount_cents
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        self._require_user("update a transaction")
        txn = self._get_owned(transaction_id)
        fields = data.model_dump(exclude_unset=True)

        old_account = txn.account
        old_amount = txn.amount_cents
        new_account = old_account
        if fields.get("account_id") is not None and fields["account_id"] != old_account.id:
            new_account = self._owned_account(fields["account_id"])
        new_amount = fields.get("amount_cents")
        if new_amount is None:
            new_amount = old_amount
        if "category_id" in fields:
            self._owned_category(fields["category_id"])

        with self._atomic():
            if new_account is not old_account:
                old_account.balance_cents -= old_amount
                new_account.balance_cents += new_amount
                txn.account = new_account
            elif new_amount != old_amount:
                old_account.balance_cents += new_amount - old_amount
            for field, value in fields.items():
                if field == "account_id":
                    continue
                if value is None and field != "category_id":
                    continue
                if field == "currency":
                    value = value.upper()
                setattr(txn, field, value)
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        self._require_user("delete a transaction")
        txn = self._get_owned(transaction_id)
        with self._atomic():
            txn.account.balance_cents -= txn.amount_cents
            self.session.delete(txn)

    def flag(self, transaction_id: int, is_flagged: bool) -> Transaction:
        self._require_user("flag a transaction")
        txn = self._get_owned(transaction_id)
        txn.is_flagged = is_flagged
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def batch_delete(self, transaction_ids: list[int]) -> dict[int, int]:
        """Delete the given rows and undo their effect on account balances.

        Both happen in one database transaction. Returns the balance change
        applied per account id.
        """
        user_id = self._require_user("delete transactions")
        ids = sorted(set(transaction_ids))
        rows = self.session.scalars(
            select(Transaction).where(
                Transaction.user_id == user_id, Transaction.id.in_(ids)
            )
        ).all()
        if len(rows) != len(ids):
            logger.warning(
                f"batch_delete: user_id={user_id} requested={len(ids)} found={len(rows)}"
            )
        if not rows:
            return {}

        adjustments = balance_adjustments(rows)
        with self._atomic():
            accounts = self.session.scalars(
                select(Account).where(
                    Account.user_id == user_id, Account.id.in_(list(adjustments))
                )
            ).all()
            for account in accounts:
                account.balance_cents += adjustments[account.id]
            self.session.execute(
                delete(Transaction).where(
                    Transaction.user_id == user_id,
                    Transaction.id.in_([row.id for row in rows]),
                )
            )
        logger.info(
            f"batch_delete: user_id={user_id} deleted={len(rows)} accounts_adjusted={len(adjustments)}"
        )
        return adjustments

    def batch_update_category(
        self, transaction_ids: list[int], category_id: Optional[int]
    ) -> int:
        user_id = self._require_user("update transactions")
        self._owned_category(category_id)
        result = self.session.execute(
            update(Transaction)
            .where(
                Transaction.user_id == user_id,
                Transaction.id.in_(list(set(transaction_ids))),
            )
            .values(category_id=category_id)
        )
        self.session.commit()
        return int(result.rowcount or 0)

    def stats(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        *,
        today: Optional[date] = None,
    ) -> dict[str, object]:
        self._require_user("fetch transaction statistics")
        today = today or local_today()
        start = start or month_start(today)
        end = end or month_end(today)
        rows = self._transactions_between(start, end)
        income = sum(t.amount_cents for t in rows if t.amount_cents > 0)
        expenses = sum(-t.amount_cents for t in rows if t.amount_cents < 0)
        count = len(rows)
        return {
            "total_transactions": count,
            "total_income_cents": income,
            "total_expenses_cents": expenses,
            "average_transaction_cents": (income + expenses) / count if count else 0,
        }

    def export(
        self, fmt: Literal["csv", "json"], filters: Optional[TransactionFilter] = None
    ) -> str:
        self._require_user("export transactions")
        if fmt not in ("csv", "json"):
            raise ValueError(f"Unsupported export format: {fmt}")
        records = [transaction_record(t) for t in self.all_matching(filters)]
        if fmt == "json":
            return export_json(records)
        return export_csv(records)

    @staticmethod
    def _event(txn: Transaction) -> dict[str, object]:
        income = bool(txn.category and txn.category.is_income) or txn.amount_cents > 0
        return {
            "id": txn.id,
            "title": txn.description,
            "date": txn.transaction_date,
            "amount_cents": abs(txn.amount_cents),
            "type": "income" if income else "expense",
            "category": txn.category_name or UNCATEGORIZED,
            "merchant": txn.merchant,
        }

    def events_for_month(self, month: date) -> list[dict[str, object]]:
        self._require_user("fetch transaction events")
        rows = self._transactions_between(month_start(month), month_end(month))
        return [self._event(t) for t in rows]

    def events_for_date(self, day: date) -> list[dict[str, object]]:
        self._require_user("fetch transaction events")
        return [self._event(t) for t in self._transactions_between(day, day)]


@dataclass(frozen=True)
class BudgetWithSpent:
    budget: Budget
    spent_cents: int

    @property
    def remaining_cents(self) -> int:
        return self.budget.amount_cents - self.spent_cents


class BudgetService(UserScopedService):
    def spent_by_category(self, month: date) -> dict[Optional[int], int]:
        """Absolute expense total per category id for the calendar month;
        ``None`` collects uncategorized spending."""
        rows = self._transactions_between(
            month_start(month), month_end(month), expenses_only=True
        )
        return bucket_totals(rows, lambda t: t.category_id, abs_amount)

    def _budgets_for_month(self, month: date) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id, Budget.month == month_start(month))
            .order_by(Budget.id)
        )
        return self.session.scalars(stmt).all()

    def list_for_month(self, month: date) -> list[BudgetWithSpent]:
        self._require_user("fetch budgets")
        budgets = self._budgets_for_month(month)
        spent = self.spent_by_category(month)
        return [BudgetWithSpent(b, spent.get(b.category_id, 0)) for b in budgets]

    def summary(self, month: date) -> dict[str, object]:
        rows = self.list_for_month(month)
        total_budget = sum(r.budget.amount_cents for r in rows)
        total_spent = sum(r.spent_cents for r in rows)
        return {
            "month": month_start(month),
            "total_budget_cents": total_budget,
            "total_spent_cents": total_spent,
            "remaining_budget_cents": total_budget - total_spent,
            "categories": [
                {
                    "name": r.budget.category_name,
                    "budget_cents": r.budget.amount_cents,
                    "spent_cents": r.spent_cents,
                    "remaining_cents": r.remaining_cents,
                }
                for r in rows
            ],
        }

    def _check_budget_category(self, category_id: Optional[int]) -> None:
        category = self._owned_category(category_id)
        if category is not None and category.is_income:
            raise ValueError("Budgets can only be set for expense categories")

    def _exists(
        self, category_id: Optional[int], month: date, exclude_id: Optional[int] = None
    ) -> bool:
        stmt = select(Budget.id).where(
            Budget.user_id == self.user_id,
            Budget.month == month_start(month),
            Budget.category_id.is_(None)
            if category_id is None
            else Budget.category_id == category_id,
        )
        if exclude_id is not None:
            stmt = stmt.where(Budget.id != exclude_id)
        return self.session.scalar(stmt.limit(1)) is not None

    def create(self, data: BudgetIn) -> Budget:
        user_id = self._require_user("create a budget")
        self._check_budget_category(data.category_id)
        if self._exists(data.category_id, data.month):
            raise ValueError("A budget for this category and month already exists")
        budget = Budget(
            user_id=user_id,
            category_id=data.category_id,
            month=month_start(data.month),
            amount_cents=data.amount_cents,
            notes=data.notes,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def _get_owned(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        self._require_user("update a budget")
        budget = self._get_owned(budget_id)
        fields = data.model_dump(exclude_unset=True)
        if "category_id" in fields:
            self._check_budget_category(fields["category_id"])
            if self._exists(fields["category_id"], budget.month, exclude_id=budget.id):
                raise ValueError("A budget for this category and month already exists")
            budget.category_id = fields["category_id"]
        if fields.get("amount_cents") is not None:
            budget.amount_cents = fields["amount_cents"]
        if "notes" in fields:
            budget.notes = fields["notes"]
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        self._require_user("delete a budget")
        budget = self._get_owned(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def copy_from_previous_month(self, month: date) -> list[Budget]:
        """Copy last month's budgets into ``month`` for categories that have
        no budget there yet."""
        user_id = self._require_user("create a budget")
        target = month_start(month)
        previous = self._budgets_for_month(add_months(target, -1))
        already = {b.category_id for b in self._budgets_for_month(target)}
        created = [
            Budget(
                user_id=user_id,
                category_id=b.category_id,
                month=target,
                amount_cents=b.amount_cents,
                notes=b.notes,
            )
            for b in previous
            if b.category_id not in already
        ]
        if created:
            with self._atomic():
                self.session.add_all(created)
        logger.info(
            f"budget_copy: user_id={user_id} month={target.isoformat()} created={len(created)}"
        )
        return created

    def create_from_average(self, month: date, months_back: int = 3) -> list[Budget]:
        """Budget each category at its average monthly spending over the
        ``months_back`` months before ``month``."""
        user_id = self._require_user("create a budget")
        target = month_start(month)
        window_start = add_months(target, -months_back)
        rows = self._transactions_between(
            window_start, target - date.resolution, expenses_only=True
        )
        spent = bucket_totals(
            (t for t in rows if t.category_id is not None),
            lambda t: t.category_id,
            abs_amount,
        )
        already = {b.category_id for b in self._budgets_for_month(target)}
        income_ids = set(
            self.session.scalars(
                select(Category.id).where(
                    Category.user_id == user_id, Category.is_income.is_(True)
                )
            ).all()
        )
        created = [
            Budget(
                user_id=user_id,
                category_id=category_id,
                month=target,
                amount_cents=_round_cents(Decimal(total) / months_back),
            )
            for category_id, total in spent.items()
            if category_id not in already and category_id not in income_ids
        ]
        if created:
            with self._atomic():
                self.session.add_all(created)
        logger.info(
            f"budget_average: user_id={user_id} month={target.isoformat()} created={len(created)}"
        )
        return created


class AnalyticsService(UserScopedService):
    GROUPINGS = ("day", "week", "month")

    @staticmethod
    def _bucket(d: date, group_by: str) -> date:
        if group_by == "day":
            return d
        if group_by == "week":
            return week_start(d)
        return month_start(d)

    @staticmethod
    def _label(bucket: date, group_by: str) -> str:
        if group_by == "day":
            return f"{bucket:%b} {bucket.day}"
        if group_by == "week":
            end = bucket + timedelta(days=6)
            return f"{bucket:%b} {bucket.day} - {end:%b} {end.day}"
        return f"{bucket:%b %Y}"

    def income_expenses(
        self, start: date, end: date, group_by: str = "month"
    ) -> list[dict[str, object]]:
        self._require_user("fetch analytics data")
        if group_by not in self.GROUPINGS:
            raise ValueError(f"Unsupported grouping: {group_by}")
        if start > end:
            raise ValueError("Start date must be before end date")
        if group_by == "day":
            seed = list(iter_days(start, end))
        elif group_by == "week":
            seed = list(iter_weeks(start, end))
        else:
            seed = list(iter_months(start, end))
        grouped = split_income_expenses(
            self._transactions_between(start, end),
            lambda t: self._bucket(t.transaction_date, group_by),
            seed=seed,
        )
        return [
            {
                "date": bucket.isoformat() if group_by != "month" else f"{bucket:%Y-%m}",
                "label": self._label(bucket, group_by),
                "income_cents": v.income_cents,
                "expense_cents": v.expense_cents,
                "net_cents": v.net_cents,
            }
            for bucket, v in grouped.items()
        ]

    def category_spending(self, start: date, end: date) -> list[dict[str, object]]:
        """Expense totals per category; only categories with spending appear."""
        self._require_user("fetch category spending data")
        rows = self._transactions_between(start, end, expenses_only=True)
        amounts = bucket_totals(rows, lambda t: t.category_id, abs_amount)
        meta: dict[Optional[int], Category] = {
            t.category_id: t.category for t in rows if t.category is not None
        }
        total = sum(amounts.values())
        out = []
        for category_id, amount in amounts.items():
            category = meta.get(category_id)
            out.append(
                {
                    "id": category_id,
                    "name": category.name if category else UNCATEGORIZED,
                    "color": category.color if category else UNCATEGORIZED_COLOR,
                    "amount_cents": amount,
                    "percentage": percentage(amount, total),
                }
            )
        out.sort(key=lambda r: r["amount_cents"], reverse=True)
        return out

    def top_merchants(
        self, start: date, end: date, limit: int = 5
    ) -> list[dict[str, object]]:
        self._require_user("fetch merchant data")
        rows = self._transactions_between(start, end, expenses_only=True)
        amounts = bucket_totals(rows, lambda t: t.merchant, abs_amount)
        ranked = sorted(amounts.items(), key=lambda kv: kv[1], reverse=True)
        return [{"merchant": m, "amount_cents": a} for m, a in ranked[:limit]]

    def monthly_saving_rates(
        self, months: int = 6, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        self._require_user("fetch saving rates")
        if months < 1:
            raise ValueError("Months must be positive")
        today = today or local_today()
        first = add_months(month_start(today), -(months - 1))
        seed = list(iter_months(first, today))
        grouped = split_income_expenses(
            self._transactions_between(first, month_end(today)),
            lambda t: month_start(t.transaction_date),
            seed=seed,
        )
        return [
            {
                "month": f"{m:%b}",
                "full_month": f"{m:%B %Y}",
                "saving_rate": max(v.saving_rate, -100.0),
            }
            for m, v in grouped.items()
        ]

    def year_over_year(self, today: Optional[date] = None) -> list[dict[str, object]]:
        """Monthly income of the current and the previous calendar year."""
        self._require_user("fetch year comparison data")
        today = today or local_today()
        current_year = today.year
        previous_year = current_year - 1
        income_rows = [
            t
            for t in self._transactions_between(date(previous_year, 1, 1), today)
            if is_income(t)
        ]
        by_year = {
            year: bucket_totals(
                (t for t in income_rows if t.transaction_date.year == year),
                lambda t: t.transaction_date.month,
                abs_amount,
                seed=range(1, 13),
            )
            for year in (current_year, previous_year)
        }
        return [
            {
                "month": f"{date(2000, m, 1):%b}",
                "current_year_cents": by_year[current_year][m],
                "previous_year_cents": by_year[previous_year][m],
            }
            for m in range(1, 13)
        ]

    def monthly_snapshot(self, today: Optional[date] = None) -> dict[str, object]:
        self._require_user("fetch financial snapshot")
        today = today or local_today()
        first = month_start(today)
        last = month_end(today)
        result = totals(self._transactions_between(first, last))
        days_elapsed = min(today.day, last.day)
        return {
            "total_income_cents": result.income_cents,
            "total_expenses_cents": result.expense_cents,
            "net_savings_cents": result.net_cents,
            "saving_rate": result.saving_rate,
            "avg_daily_spending_cents": (
                result.expense_cents / days_elapsed if days_elapsed else 0
            ),
            "month": f"{today:%B %Y}",
        }


class DashboardService(UserScopedService):
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        super().__init__(session, user_id)
        self.analytics = AnalyticsService(session, user_id)

    def financial_summary(self, start: date, end: date) -> dict[str, object]:
        self._require_user("fetch financial summary")
        result = totals(self._transactions_between(start, end))
        return {
            "income_cents": result.income_cents,
            "expenses_cents": result.expense_cents,
            "net_cents": result.net_cents,
            "savings_rate": result.saving_rate,
        }

    def spending_by_category(self, start: date, end: date) -> list[dict[str, object]]:
        rows = self.analytics.category_spending(start, end)
        named = [r for r in rows if r["id"] is not None]
        uncategorized = [r for r in rows if r["id"] is None]
        return [
            {"category": r["name"], "amount_cents": r["amount_cents"], "color": r["color"]}
            for r in named + uncategorized
        ]

    def monthly_comparison(
        self, months: int = 6, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        self._require_user("fetch monthly comparison data")
        today = today or local_today()
        first = add_months(month_start(today), -(months - 1))
        grouped = split_income_expenses(
            self._transactions_between(first, month_end(today)),
            lambda t: month_start(t.transaction_date),
            seed=iter_months(first, today),
        )
        return [
            {
                "month": f"{m:%b}",
                "income_cents": v.income_cents,
                "expenses_cents": v.expense_cents,
                "savings_cents": v.net_cents,
            }
            for m, v in grouped.items()
        ]

    def financial_metrics(self, today: Optional[date] = None) -> FinancialMetrics:
        user_id = self._require_user("fetch financial insights")
        today = today or local_today()
        current_start = month_start(today)
        previous_start = add_months(current_start, -1)
        current_rows = self._transactions_between(current_start, month_end(today))
        previous_rows = self._transactions_between(
            previous_start, current_start - date.resolution
        )
        current = totals(current_rows)
        previous = totals(previous_rows)

        top_category = None
        spending = self.analytics.category_spending(current_start, month_end(today))
        if spending:
            top = spending[0]
            top_category = TopCategory(
                name=top["name"],
                amount_cents=top["amount_cents"],
                percentage=top["percentage"],
            )

        income_sources = {
            t.category_id if t.category_id is not None else f"merchant:{t.merchant}"
            for t in current_rows
            if is_income(t)
        }
        last_date = self.session.scalar(
            select(func.max(Transaction.transaction_date)).where(
                Transaction.user_id == user_id,
                Transaction.transaction_date <= today,
            )
        )
        total_categories = int(
            self.session.execute(
                select(func.count(Category.id)).where(Category.user_id == user_id)
            ).scalar_one()
            or 0
        )
        has_activity = bool(current_rows)
        return FinancialMetrics(
            current_income=current.income_cents / 100,
            previous_income=previous.income_cents / 100,
            current_expenses=current.expense_cents / 100,
            previous_expenses=previous.expense_cents / 100,
            current_saving_rate=current.saving_rate if has_activity else None,
            previous_saving_rate=previous.saving_rate if previous_rows else None,
            top_category=top_category,
            category_count=sum(1 for t in current_rows if t.category_id is not None),
            transaction_count=len(current_rows),
            total_categories=total_categories,
            days_since_last_transaction=(today - last_date).days if last_date else None,
            income_source_count=len(income_sources),
        )

    def financial_insights(self, today: Optional[date] = None) -> list[Insight]:
        return generate_financial_insights(self.financial_metrics(today))


class SavingsGoalService(UserScopedService):
    def list_all(self) -> list[SavingsGoal]:
        user_id = self._require_user("fetch savings goals")
        stmt = (
            select(SavingsGoal)
            .options(joinedload(SavingsGoal.category))
            .where(SavingsGoal.user_id == user_id)
            .order_by(SavingsGoal.target_date.asc(), SavingsGoal.id.asc())
        )
        return self.session.scalars(stmt).all()

    def get_by_id(self, goal_id: int) -> Optional[SavingsGoal]:
        user_id = self._require_user("fetch a savings goal")
        return self.session.scalar(
            select(SavingsGoal)
            .options(joinedload(SavingsGoal.category))
            .where(SavingsGoal.user_id == user_id, SavingsGoal.id == goal_id)
        )

    def _get_owned(self, goal_id: int) -> SavingsGoal:
        goal = self.get_by_id(goal_id)
        if not goal:
            raise ValueError("Savings goal not found")
        return goal

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        user_id = self._require_user("create a savings goal")
        self._owned_category(data.category_id)
        goal = SavingsGoal(user_id=user_id, **data.model_dump())
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, data: SavingsGoalUpdate) -> SavingsGoal:
        self._require_user("update a savings goal")
        goal = self._get_owned(goal_id)
        fields = data.model_dump(exclude_unset=True)
        if "category_id" in fields:
            self._owned_category(fields["category_id"])
        start = fields.get("start_date") or goal.start_date
        target = fields.get("target_date") or goal.target_date
        if target < start:
            raise ValueError("Target date must not be before start date")
        for field, value in fields.items():
            if value is None and field != "category_id":
                continue
            setattr(goal, field, value)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def contribute(self, goal_id: int, amount_cents: int) -> SavingsGoal:
        self._require_user("update a savings goal")
        goal = self._get_owned(goal_id)
        new_amount = goal.current_amount_cents + amount_cents
        if new_amount < 0:
            raise ValueError("Contribution would make the saved amount negative")
        goal.current_amount_cents = new_amount
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        self._require_user("delete a savings goal")
        goal = self._get_owned(goal_id)
        self.session.delete(goal)
        self.session.commit()


class SubscriptionService(UserScopedService):
    def list_all(self) -> list[Subscription]:
        user_id = self._require_user("fetch subscriptions")
        stmt = (
            select(Subscription)
            .options(joinedload(Subscription.category))
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.next_payment.asc(), Subscription.id.asc())
        )
        return self.session.scalars(stmt).all()

    def upcoming(
        self, today: Optional[date] = None, limit: int = 5
    ) -> list[Subscription]:
        user_id = self._require_user("fetch subscriptions")
        today = today or local_today()
        stmt = (
            select(Subscription)
            .options(joinedload(Subscription.category))
            .where(
                Subscription.user_id == user_id,
                Subscription.is_active.is_(True),
                Subscription.next_payment >= today,
            )
            .order_by(Subscription.next_payment.asc(), Subscription.id.asc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def get_by_id(self, subscription_id: int) -> Optional[Subscription]:
        user_id = self._require_user("fetch a subscription")
        return self.session.scalar(
            select(Subscription).where(
                Subscription.user_id == user_id, Subscription.id == subscription_id
            )
        )

    def _get_owned(self, subscription_id: int) -> Subscription:
        sub = self.get_by_id(subscription_id)
        if not sub:
            raise ValueError("Subscription not found")
        return sub

    def create(self, data: SubscriptionIn) -> Subscription:
        user_id = self._require_user("create a subscription")
        self._owned_category(data.category_id)
        if data.account_id is not None:
            self._owned_account(data.account_id)
        sub = Subscription(user_id=user_id, **data.model_dump())
        self.session.add(sub)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    def update(self, subscription_id: int, data: SubscriptionUpdate) -> Subscription:
        self._require_user("update a subscription")
        sub = self._get_owned(subscription_id)
        fields = data.model_dump(exclude_unset=True)
        if "category_id" in fields:
            self._owned_category(fields["category_id"])
        if fields.get("account_id") is not None:
            self._owned_account(fields["account_id"])
        for field, value in fields.items():
            if value is None and field not in ("category_id", "account_id"):
                continue
            setattr(sub, field, value)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    def delete(self, subscription_id: int) -> None:
        self._require_user("delete a subscription")
        sub = self._get_owned(subscription_id)
        self.session.delete(sub)
        self.session.commit()

    def process_payment(
        self,
        subscription_id: int,
        account_id: Optional[int] = None,
        paid_on: Optional[date] = None,
    ) -> Transaction:
        """Record one payment: an expense transaction on the paying account
        and ``next_payment`` advanced by one billing cycle."""
        user_id = self._require_user("process a subscription payment")
        sub = self._get_owned(subscription_id)
        if not sub.is_active:
            raise ValueError("Subscription is not active")
        account_id = account_id or sub.account_id
        if account_id is None:
            raise ValueError("No account to charge for this subscription")
        account = self._owned_account(account_id)

        due = sub.next_payment
        txn = Transaction(
            user_id=user_id,
            account_id=account.id,
            category_id=sub.category_id,
            amount_cents=-sub.amount_cents,
            currency=account.currency,
            description=sub.name,
            merchant=sub.name,
            transaction_date=paid_on or due,
            status=TransactionStatus.cleared,
        )
        with self._atomic():
            self.session.add(txn)
            account.balance_cents -= sub.amount_cents
            sub.next_payment = next_payment_date(due, sub.billing_cycle)
        logger.info(
            f"subscription_payment: user_id={user_id} subscription_id={sub.id} "
            f"amount_cents={sub.amount_cents} next_payment={sub.next_payment.isoformat()}"
        )
        self.session.refresh(txn)
        return txn

    def create_from_transaction(self, transaction_id: int) -> Optional[Subscription]:
        """Start a monthly subscription from a transaction filed under the
        Subscriptions category; other transactions yield ``None``."""
        self._require_user("create a subscription")
        txn = TransactionService(self.session, self.user_id).get_by_id(transaction_id)
        if not txn:
            raise ValueError("Transaction not found")
        if txn.category_name != SUBSCRIPTIONS_CATEGORY:
            return None
        return self.create(
            SubscriptionIn(
                name=(txn.description or txn.merchant or SUBSCRIPTIONS_CATEGORY)[:120],
                amount_cents=abs(txn.amount_cents),
                next_payment=add_months(txn.transaction_date, 1),
                category_id=txn.category_id,
                account_id=txn.account_id,
            )
        )

    def monthly_cost(self) -> int:
        return sum(
            monthly_equivalent_cents(s.amount_cents, s.billing_cycle)
            for s in self.list_all()
            if s.is_active
        )
