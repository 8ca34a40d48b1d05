from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import AccountType
from schemas import (
    AccountIn,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    TransactionIn,
)
from services import AccountService, BudgetService, CategoryService, TransactionService

USER = 1


def seed(session: Session) -> dict:
    account = AccountService(session, USER).create(
        AccountIn(name="Checking", account_type=AccountType.checking)
    )
    categories = CategoryService(session, USER)
    groceries = categories.create(CategoryIn(name="Groceries"))
    rent = categories.create(CategoryIn(name="Rent"))
    salary = categories.create(CategoryIn(name="Salary", is_income=True))

    txns = TransactionService(session, USER)
    for amount, category, day in [
        (-3_000, groceries, date(2025, 1, 3)),
        (-2_000, groceries, date(2025, 1, 28)),
        (-100_000, rent, date(2025, 1, 1)),
        (-500, None, date(2025, 1, 15)),
        (300_000, salary, date(2025, 1, 31)),
        (-999, groceries, date(2025, 2, 1)),
        (-4_000, groceries, date(2024, 12, 31)),
    ]:
        txns.create(
            TransactionIn(
                account_id=account.id,
                category_id=category.id if category else None,
                amount_cents=amount,
                transaction_date=day,
                merchant="Store",
            )
        )
    return {"account": account, "groceries": groceries, "rent": rent, "salary": salary}


def test_spent_is_absolute_expense_sum_per_category_and_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        data = seed(session)
        budgets = BudgetService(session, USER)
        month = date(2025, 1, 1)
        budgets.create(
            BudgetIn(category_id=data["groceries"].id, month=month, amount_cents=6_000)
        )
        budgets.create(
            BudgetIn(category_id=data["rent"].id, month=month, amount_cents=100_000)
        )
        budgets.create(BudgetIn(category_id=None, month=month, amount_cents=1_000))

        rows = budgets.list_for_month(date(2025, 1, 20))
        spent = {r.budget.category_name: r.spent_cents for r in rows}
        assert spent == {"Groceries": 5_000, "Rent": 100_000, "Uncategorized": 500}

        summary = budgets.summary(month)
        assert summary["total_budget_cents"] == 107_000
        assert summary["total_spent_cents"] == 105_500
        assert summary["remaining_budget_cents"] == 1_500
        groceries_row = next(
            c for c in summary["categories"] if c["name"] == "Groceries"
        )
        assert groceries_row["remaining_cents"] == 1_000


def test_budget_month_is_normalized_and_duplicates_refused() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        data = seed(session)
        budgets = BudgetService(session, USER)
        budget = budgets.create(
            BudgetIn(
                category_id=data["groceries"].id,
                month=date(2025, 3, 17),
                amount_cents=5_000,
            )
        )
        assert budget.month == date(2025, 3, 1)

        with pytest.raises(ValueError, match="already exists"):
            budgets.create(
                BudgetIn(
                    category_id=data["groceries"].id,
                    month=date(2025, 3, 2),
                    amount_cents=1,
                )
            )
        budgets.create(BudgetIn(month=date(2025, 3, 1), amount_cents=100))
        with pytest.raises(ValueError, match="already exists"):
            budgets.create(BudgetIn(month=date(2025, 3, 1), amount_cents=200))

        with pytest.raises(ValueError, match="expense categories"):
            budgets.create(
                BudgetIn(
                    category_id=data["salary"].id,
                    month=date(2025, 3, 1),
                    amount_cents=100,
                )
            )


def test_update_and_delete_budget() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        data = seed(session)
        budgets = BudgetService(session, USER)
        budget = budgets.create(
            BudgetIn(
                category_id=data["rent"].id, month=date(2025, 1, 1), amount_cents=10
            )
        )
        updated = budgets.update(
            budget.id, BudgetUpdate(amount_cents=90_000, notes="lease renewal")
        )
        assert updated.amount_cents == 90_000
        assert updated.notes == "lease renewal"
        assert updated.category_id == data["rent"].id

        budgets.delete(budget.id)
        assert budgets.list_for_month(date(2025, 1, 1)) == []
        with pytest.raises(ValueError, match="Budget not found"):
            budgets.delete(budget.id)


def test_copy_from_previous_month_is_a_set_difference() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        data = seed(session)
        budgets = BudgetService(session, USER)
        jan = date(2025, 1, 1)
        feb = date(2025, 2, 1)
        budgets.create(
            BudgetIn(category_id=data["groceries"].id, month=jan, amount_cents=6_000)
        )
        budgets.create(
            BudgetIn(category_id=data["rent"].id, month=jan, amount_cents=100_000)
        )
        budgets.create(
            BudgetIn(category_id=data["groceries"].id, month=feb, amount_cents=7_000)
        )

        created = budgets.copy_from_previous_month(feb)
        assert [(b.category_id, b.amount_cents) for b in created] == [
            (data["rent"].id, 100_000)
        ]

        feb_rows = {
            r.budget.category_id: r.budget.amount_cents
            for r in budgets.list_for_month(feb)
        }
        assert feb_rows == {data["groceries"].id: 7_000, data["rent"].id: 100_000}

        assert budgets.copy_from_previous_month(feb) == []


def test_create_from_average_uses_three_prior_months() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        data = seed(session)
        budgets = BudgetService(session, USER)

        created = budgets.create_from_average(date(2025, 4, 1))
        by_category = {b.category_id: b.amount_cents for b in created}
        # Groceries: (5000 + 999) / 3 = 1999.67; Rent: 100000 / 3 = 33333.33
        assert by_category == {data["groceries"].id: 2_000, data["rent"].id: 33_333}
        assert all(b.month == date(2025, 4, 1) for b in created)

        assert budgets.create_from_average(date(2025, 4, 1)) == []


def test_budgets_are_scoped_per_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        data = seed(session)
        BudgetService(session, USER).create(
            BudgetIn(
                category_id=data["rent"].id, month=date(2025, 1, 1), amount_cents=5
            )
        )
        assert BudgetService(session, 2).list_for_month(date(2025, 1, 1)) == []
        with pytest.raises(ValueError, match="Category not found"):
            BudgetService(session, 2).create(
                BudgetIn(
                    category_id=data["rent"].id,
                    month=date(2025, 1, 1),
                    amount_cents=5,
                )
            )


def test_deleting_category_removes_its_budgets() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        account = AccountService(session, USER).create(
            AccountIn(name="Checking", account_type=AccountType.checking)
        )
        categories = CategoryService(session, USER)
        dining = categories.create(CategoryIn(name="Dining"))
        TransactionService(session, USER).create(
            TransactionIn(
                account_id=account.id,
                amount_cents=-700,
                transaction_date=date(2025, 1, 10),
            )
        )
        budgets = BudgetService(session, USER)
        month = date(2025, 1, 1)
        budgets.create(BudgetIn(category_id=None, month=month, amount_cents=1_000))
        budgets.create(BudgetIn(category_id=dining.id, month=month, amount_cents=5_000))

        categories.delete(dining.id)
        session.expire_all()

        rows = budgets.list_for_month(month)
        assert [r.budget.category_id for r in rows] == [None]
        summary = budgets.summary(month)
        assert summary["total_budget_cents"] == 1_000
        assert summary["total_spent_cents"] == 700
        assert summary["remaining_budget_cents"] == 300


def test_budgeted_category_cannot_become_income() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        data = seed(session)
        categories = CategoryService(session, USER)
        budgets = BudgetService(session, USER)
        budget = budgets.create(
            BudgetIn(category_id=data["rent"].id, month=date(2025, 1, 1), amount_cents=1)
        )

        with pytest.raises(ValueError, match="budgets"):
            categories.update(data["rent"].id, CategoryUpdate(is_income=True))
        session.expire_all()
        assert categories.get_by_id(data["rent"].id).is_income is False

        budgets.delete(budget.id)
        updated = categories.update(data["rent"].id, CategoryUpdate(is_income=True))
        assert updated.is_income is True


def _summary_for_insert_order(order: list[int]) -> dict:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    entries = [
        (-1_250, "groceries", date(2025, 1, 2)),
        (-4_000, "rent", date(2025, 1, 1)),
        (-300, "groceries", date(2025, 1, 31)),
        (2_000, "groceries", date(2025, 1, 12)),
        (-800, None, date(2025, 1, 20)),
        (-9_999, "groceries", date(2025, 2, 1)),
        (-75, "groceries", date(2025, 1, 15)),
    ]

    with Session(engine) as session:
        account = AccountService(session, USER).create(
            AccountIn(name="Checking", account_type=AccountType.checking)
        )
        categories = CategoryService(session, USER)
        ids = {
            "groceries": categories.create(CategoryIn(name="Groceries")).id,
            "rent": categories.create(CategoryIn(name="Rent")).id,
            None: None,
        }
        budgets = BudgetService(session, USER)
        month = date(2025, 1, 1)
        budgets.create(BudgetIn(category_id=ids["groceries"], month=month, amount_cents=2_000))
        budgets.create(BudgetIn(category_id=ids["rent"], month=month, amount_cents=4_000))

        txns = TransactionService(session, USER)
        for index in order:
            amount, key, day = entries[index]
            txns.create(
                TransactionIn(
                    account_id=account.id,
                    category_id=ids[key],
                    amount_cents=amount,
                    transaction_date=day,
                )
            )
        return budgets.summary(month)


def test_summary_does_not_depend_on_insert_order() -> None:
    orders = [
        [0, 1, 2, 3, 4, 5, 6],
        [6, 5, 4, 3, 2, 1, 0],
        [3, 0, 5, 2, 6, 4, 1],
    ]
    summaries = [_summary_for_insert_order(order) for order in orders]

    # January expenses only: groceries 1250 + 300 + 75, rent 4000.
    for summary in summaries:
        assert summary["total_budget_cents"] == 6_000
        assert summary["total_spent_cents"] == 5_625
        assert summary["remaining_budget_cents"] == 375
    assert summaries[0]["categories"] == summaries[1]["categories"] == summaries[2]["categories"]
