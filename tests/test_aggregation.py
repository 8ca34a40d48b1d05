from datetime import date

import pytest

from aggregation import (
    abs_amount,
    bucket_totals,
    percentage,
    saving_rate,
    split_income_expenses,
    totals,
)
from models import Category, Transaction


def txn(amount_cents: int, day: date, category: Category | None = None) -> Transaction:
    return Transaction(
        amount_cents=amount_cents,
        transaction_date=day,
        category=category,
        merchant="Shop",
    )


def test_bucket_totals_keeps_first_seen_order_and_none_key() -> None:
    rows = [
        {"k": "b", "v": 2},
        {"k": None, "v": 5},
        {"k": "a", "v": 1},
        {"k": "b", "v": 3},
    ]
    result = bucket_totals(rows, lambda r: r["k"], lambda r: r["v"])
    assert list(result) == ["b", None, "a"]
    assert result == {"b": 5, None: 5, "a": 1}


def test_bucket_totals_seed_zero_fills_and_drops_unseeded_rows() -> None:
    rows = [{"k": 1, "v": 10}, {"k": 3, "v": 7}, {"k": 9, "v": 100}]
    result = bucket_totals(rows, lambda r: r["k"], lambda r: r["v"], seed=[1, 2, 3])
    assert result == {1: 10, 2: 0, 3: 7}
    assert list(result) == [1, 2, 3]


def test_bucket_totals_empty_rows() -> None:
    assert bucket_totals([], lambda r: r, lambda r: 1) == {}
    assert bucket_totals([], lambda r: r, lambda r: 1, seed=["x"]) == {"x": 0}


def test_income_classification_prefers_category_over_sign() -> None:
    salary = Category(name="Salary", is_income=True)
    food = Category(name="Food", is_income=False)
    rows = [
        txn(300_000, date(2025, 1, 1), salary),
        # Correction booked against an income category stays income.
        txn(-5_000, date(2025, 1, 2), salary),
        # Refund in an expense category stays an expense.
        txn(1_000, date(2025, 1, 3), food),
        txn(-2_000, date(2025, 1, 4)),
        txn(700, date(2025, 1, 5)),
    ]
    result = totals(rows)
    assert result.income_cents == 300_000 + 5_000 + 700
    assert result.expense_cents == 1_000 + 2_000
    assert result.net_cents == result.income_cents - result.expense_cents


def test_split_income_expenses_by_month_with_seed() -> None:
    rows = [
        txn(10_000, date(2025, 1, 10)),
        txn(-4_000, date(2025, 1, 20)),
        txn(-1_000, date(2025, 3, 2)),
    ]
    months = [date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1)]
    grouped = split_income_expenses(
        rows, lambda t: t.transaction_date.replace(day=1), seed=months
    )
    assert list(grouped) == months
    assert grouped[date(2025, 1, 1)].income_cents == 10_000
    assert grouped[date(2025, 1, 1)].expense_cents == 4_000
    assert grouped[date(2025, 2, 1)].income_cents == 0
    assert grouped[date(2025, 2, 1)].expense_cents == 0
    assert grouped[date(2025, 3, 1)].net_cents == -1_000


def test_saving_rate_and_percentage() -> None:
    assert saving_rate(0, 500) == 0.0
    assert saving_rate(-10, 0) == 0.0
    assert saving_rate(1_000, 750) == pytest.approx(25.0)
    assert saving_rate(1_000, 1_500) == pytest.approx(-50.0)
    assert percentage(1, 4) == pytest.approx(25.0)
    assert percentage(5, 0) == 0.0


def test_abs_amount() -> None:
    assert abs_amount(txn(-250, date(2025, 1, 1))) == 250
