"""Grouping and summing of transaction rows.

Analytics, dashboard and budget figures are all "bucket the rows by some key,
sum a value per bucket". ``bucket_totals`` is that operation; the other
helpers are the income/expense conventions shared by its callers.
"""

from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Optional, TypeVar

from models import Transaction

K = TypeVar("K", bound=Hashable)
Row = TypeVar("Row")


def abs_amount(txn: Transaction) -> int:
    return abs(txn.amount_cents)


def bucket_totals(
    rows: Iterable[Row],
    key: Callable[[Row], K],
    value: Callable[[Row], int],
    *,
    seed: Optional[Iterable[K]] = None,
) -> dict[K, int]:
    """Sum ``value(row)`` per ``key(row)``.

    With ``seed`` every seeded key is present in the result (zero when no
    row falls into it), result order follows the seed, and rows outside the
    seeded keys are dropped. Without ``seed`` only keys that occur appear,
    in first-seen order. ``None`` is an ordinary key.
    """
    totals: dict[K, int] = {}
    restrict = seed is not None
    if seed is not None:
        for k in seed:
            totals[k] = 0
    for row in rows:
        k = key(row)
        if k not in totals:
            if restrict:
                continue
            totals[k] = 0
        totals[k] += value(row)
    return totals


def is_income(txn: Transaction) -> bool:
    # The category decides; uncategorized rows fall back to the sign.
    if txn.category is not None:
        return bool(txn.category.is_income)
    return txn.amount_cents > 0


@dataclass(frozen=True)
class IncomeExpense:
    income_cents: int = 0
    expense_cents: int = 0

    @property
    def net_cents(self) -> int:
        return self.income_cents - self.expense_cents

    @property
    def saving_rate(self) -> float:
        return saving_rate(self.income_cents, self.expense_cents)


def split_income_expenses(
    rows: Iterable[Transaction],
    key: Callable[[Transaction], K],
    *,
    seed: Optional[Iterable[K]] = None,
) -> dict[K, IncomeExpense]:
    rows = list(rows)
    seed_keys = list(seed) if seed is not None else None
    income = bucket_totals(
        [r for r in rows if is_income(r)], key, abs_amount, seed=seed_keys
    )
    expenses = bucket_totals(
        [r for r in rows if not is_income(r)], key, abs_amount, seed=seed_keys
    )
    if seed_keys is not None:
        keys = seed_keys
    else:
        keys = list(dict.fromkeys(list(income) + list(expenses)))
    return {
        k: IncomeExpense(income.get(k, 0), expenses.get(k, 0)) for k in keys
    }


def totals(rows: Iterable[Transaction]) -> IncomeExpense:
    income = 0
    expenses = 0
    for txn in rows:
        if is_income(txn):
            income += abs(txn.amount_cents)
        else:
            expenses += abs(txn.amount_cents)
    return IncomeExpense(income, expenses)


def saving_rate(income_cents: int, expense_cents: int) -> float:
    if income_cents <= 0:
        return 0.0
    return (income_cents - expense_cents) / income_cents * 100


def percentage(part: int, whole: int) -> float:
    return (part / whole * 100) if whole else 0.0
