from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import AccountType, Budget, Transaction, TransactionStatus
from schemas import (
    AccountIn,
    AccountUpdate,
    BudgetIn,
    CategoryIn,
    CategoryUpdate,
    TransactionIn,
)
from services import AccountService, BudgetService, CategoryService, TransactionService

USER = 1


def test_account_crud_and_balances() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        accounts = AccountService(session, USER)
        checking = accounts.create(
            AccountIn(
                name=" Checking ",
                account_type=AccountType.checking,
                balance_cents=12_000,
                currency="eur",
            )
        )
        accounts.create(
            AccountIn(name="Wallet", account_type=AccountType.cash, balance_cents=3_000)
        )
        assert checking.name == "Checking"
        assert checking.currency == "EUR"

        accounts.update(checking.id, AccountUpdate(name="Main", is_active=False))
        assert accounts.get_by_id(checking.id).name == "Main"
        assert [a.name for a in accounts.list_all()] == ["Main", "Wallet"]

        balances = accounts.balances()
        assert balances["total_balance_cents"] == 15_000
        assert [row["account_name"] for row in balances["accounts"]] == [
            "Main",
            "Wallet",
        ]

        accounts.delete(checking.id)
        assert accounts.get_by_id(checking.id) is None
        with pytest.raises(ValueError, match="Account not found"):
            accounts.delete(checking.id)


def test_account_with_transactions_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        accounts = AccountService(session, USER)
        account = accounts.create(
            AccountIn(name="Checking", account_type=AccountType.checking)
        )
        TransactionService(session, USER).create(
            TransactionIn(
                account_id=account.id,
                amount_cents=-10,
                transaction_date=date(2025, 1, 1),
            )
        )
        with pytest.raises(ValueError, match="has transactions"):
            accounts.delete(account.id)


def test_reconcile_records_adjustment_transaction() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        accounts = AccountService(session, USER)
        account = accounts.create(
            AccountIn(
                name="Checking",
                account_type=AccountType.checking,
                balance_cents=10_000,
            )
        )
        reconciled = accounts.reconcile(account.id, 9_250, today=date(2025, 3, 31))
        assert reconciled.balance_cents == 9_250

        adjustment = session.scalars(select(Transaction)).one()
        assert adjustment.amount_cents == -750
        assert adjustment.description == "Account reconciliation"
        assert adjustment.status == TransactionStatus.cleared
        assert adjustment.transaction_date == date(2025, 3, 31)

        accounts.reconcile(account.id, 9_250, today=date(2025, 4, 1))
        assert len(session.scalars(select(Transaction)).all()) == 1


def test_category_names_are_unique_per_kind() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, USER)
        categories.create(CategoryIn(name="Gifts"))
        categories.create(CategoryIn(name="Gifts", is_income=True))
        with pytest.raises(ValueError, match="already exists"):
            categories.create(CategoryIn(name="gifts"))
        # Another user may reuse the name.
        CategoryService(session, 2).create(CategoryIn(name="Gifts"))

        assert [c.is_income for c in categories.list_all()] == [False, True]
        assert [c.name for c in categories.list_all(is_income=True)] == ["Gifts"]


def test_category_nesting_is_one_level_deep() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, USER)
        home = categories.create(CategoryIn(name="Home"))
        repairs = categories.create(
            CategoryIn(name="Repairs", parent_category_id=home.id)
        )
        assert repairs.parent.name == "Home"

        with pytest.raises(ValueError, match="cannot have subcategories"):
            categories.create(CategoryIn(name="Plumbing", parent_category_id=repairs.id))
        with pytest.raises(ValueError, match="own parent"):
            categories.update(home.id, CategoryUpdate(parent_category_id=home.id))

        garden = categories.create(CategoryIn(name="Garden"))
        with pytest.raises(ValueError, match="with subcategories"):
            categories.update(home.id, CategoryUpdate(parent_category_id=garden.id))


def test_deleting_category_clears_references() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        account = AccountService(session, USER).create(
            AccountIn(name="Checking", account_type=AccountType.checking)
        )
        categories = CategoryService(session, USER)
        food = categories.create(CategoryIn(name="Food"))
        snacks = categories.create(CategoryIn(name="Snacks", parent_category_id=food.id))
        txn = TransactionService(session, USER).create(
            TransactionIn(
                account_id=account.id,
                category_id=food.id,
                amount_cents=-500,
                transaction_date=date(2025, 1, 1),
            )
        )
        budget = BudgetService(session, USER).create(
            BudgetIn(category_id=food.id, month=date(2025, 1, 1), amount_cents=1_000)
        )

        categories.delete(food.id)
        session.expire_all()

        assert categories.get_by_id(food.id) is None
        assert session.get(Transaction, txn.id).category_id is None
        assert session.get(Budget, budget.id) is None
        assert categories.get_by_id(snacks.id).parent_category_id is None
