from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AccountType, TransactionStatus
from schemas import (
    AccountIn,
    CategoryIn,
    TransactionFilter,
    TransactionIn,
    TransactionUpdate,
)
from services import (
    AccountService,
    CategoryService,
    NotAuthenticated,
    TransactionService,
)

USER = 1


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_account(session, name="Checking", balance_cents=0, currency="EUR"):
    return AccountService(session, USER).create(
        AccountIn(
            name=name,
            account_type=AccountType.checking,
            balance_cents=balance_cents,
            currency=currency,
        )
    )


def test_create_update_delete_keep_balance_in_sync() -> None:
    session = make_session()
    checking = make_account(session, balance_cents=10_000)
    savings = make_account(session, name="Savings", balance_cents=0)
    txns = TransactionService(session, USER)

    txn = txns.create(
        TransactionIn(
            account_id=checking.id,
            amount_cents=-2_500,
            description="Groceries",
            merchant="Market",
            transaction_date=date(2025, 1, 5),
        )
    )
    assert txn.currency == "EUR"
    assert txn.account_name == "Checking"
    assert session.get(type(checking), checking.id).balance_cents == 7_500

    txns.update(txn.id, TransactionUpdate(amount_cents=-3_000))
    assert checking.balance_cents == 7_000

    txns.update(txn.id, TransactionUpdate(account_id=savings.id, amount_cents=-1_000))
    assert checking.balance_cents == 10_000
    assert savings.balance_cents == -1_000
    assert txn.account_id == savings.id

    txns.delete(txn.id)
    assert savings.balance_cents == 0
    assert txns.get_by_id(txn.id) is None
    with pytest.raises(ValueError, match="Transaction not found"):
        txns.delete(txn.id)


def test_partial_update_only_touches_given_fields() -> None:
    session = make_session()
    account = make_account(session)
    food = CategoryService(session, USER).create(CategoryIn(name="Food"))
    txns = TransactionService(session, USER)
    txn = txns.create(
        TransactionIn(
            account_id=account.id,
            category_id=food.id,
            amount_cents=-800,
            description="Lunch",
            merchant="Diner",
            transaction_date=date(2025, 2, 2),
        )
    )
    txns.update(txn.id, TransactionUpdate(description="Team lunch"))
    assert txn.description == "Team lunch"
    assert txn.merchant == "Diner"
    assert txn.category_id == food.id

    txns.update(txn.id, TransactionUpdate(category_id=None))
    assert txn.category_id is None
    assert account.balance_cents == -800


def test_list_page_filters_sorts_and_paginates() -> None:
    session = make_session()
    account = make_account(session)
    other = make_account(session, name="Cash")
    txns = TransactionService(session, USER)
    rows = [
        (account.id, -1_200, "Coffee beans", "Roastery", date(2025, 3, 1)),
        (account.id, -300, "Espresso", "COFFEE bar", date(2025, 3, 2)),
        (account.id, -5_000, "Shoes", "Shoe shop", date(2025, 3, 3)),
        (other.id, -450, "Coffee to go", "Kiosk", date(2025, 3, 4)),
        (account.id, 90_000, "Salary", "Employer", date(2025, 3, 5)),
    ]
    for account_id, amount, description, merchant, day in rows:
        txns.create(
            TransactionIn(
                account_id=account_id,
                amount_cents=amount,
                description=description,
                merchant=merchant,
                transaction_date=day,
            )
        )

    page = txns.list_page(filters=TransactionFilter(search="coffee"))
    assert page.total_count == 3
    assert [t.transaction_date.day for t in page.items] == [4, 2, 1]

    page = txns.list_page(
        filters=TransactionFilter(search="coffee", account_id=account.id),
        sort_by="amount",
        sort_order="asc",
    )
    assert [t.amount_cents for t in page.items] == [-1_200, -300]

    page = txns.list_page(
        filters=TransactionFilter(min_amount_cents=-1_000, max_amount_cents=0)
    )
    assert sorted(t.amount_cents for t in page.items) == [-450, -300]

    first = txns.list_page(page=1, page_size=2, sort_by="date", sort_order="asc")
    last = txns.list_page(page=3, page_size=2, sort_by="date", sort_order="asc")
    assert first.total_count == 5
    assert first.total_pages == 3
    assert [t.description for t in first.items] == ["Coffee beans", "Espresso"]
    assert [t.description for t in last.items] == ["Salary"]

    with pytest.raises(ValueError, match="Unsupported sort key"):
        txns.list_page(sort_by="nonsense")


def test_status_and_flag_filters() -> None:
    session = make_session()
    account = make_account(session)
    txns = TransactionService(session, USER)
    pending = txns.create(
        TransactionIn(
            account_id=account.id,
            amount_cents=-100,
            transaction_date=date(2025, 1, 1),
            status=TransactionStatus.pending,
        )
    )
    cleared = txns.create(
        TransactionIn(
            account_id=account.id, amount_cents=-200, transaction_date=date(2025, 1, 2)
        )
    )
    txns.flag(cleared.id, True)

    pending_page = txns.list_page(
        filters=TransactionFilter(status=TransactionStatus.pending)
    )
    assert [t.id for t in pending_page.items] == [pending.id]
    flagged_page = txns.list_page(filters=TransactionFilter(is_flagged=True))
    assert [t.id for t in flagged_page.items] == [cleared.id]


def test_batch_update_category_reports_changed_rows() -> None:
    session = make_session()
    account = make_account(session)
    travel = CategoryService(session, USER).create(CategoryIn(name="Travel"))
    txns = TransactionService(session, USER)
    ids = [
        txns.create(
            TransactionIn(
                account_id=account.id,
                amount_cents=-100 * i,
                transaction_date=date(2025, 1, i),
            )
        ).id
        for i in range(1, 4)
    ]
    assert txns.batch_update_category(ids[:2] + [999], travel.id) == 2
    session.expire_all()
    assert [txns.get_by_id(i).category_id for i in ids] == [travel.id, travel.id, None]


def test_stats_default_to_current_month() -> None:
    session = make_session()
    account = make_account(session)
    txns = TransactionService(session, USER)
    for amount, day in [(5_000, 3), (-1_000, 4), (-2_000, 30)]:
        txns.create(
            TransactionIn(
                account_id=account.id,
                amount_cents=amount,
                transaction_date=date(2025, 4, day),
            )
        )
    txns.create(
        TransactionIn(
            account_id=account.id, amount_cents=-9_000, transaction_date=date(2025, 5, 1)
        )
    )
    stats = txns.stats(today=date(2025, 4, 15))
    assert stats == {
        "total_transactions": 3,
        "total_income_cents": 5_000,
        "total_expenses_cents": 3_000,
        "average_transaction_cents": pytest.approx(8_000 / 3),
    }


def test_calendar_events_classify_income_and_expense() -> None:
    session = make_session()
    account = make_account(session)
    salary = CategoryService(session, USER).create(
        CategoryIn(name="Salary", is_income=True)
    )
    txns = TransactionService(session, USER)
    txns.create(
        TransactionIn(
            account_id=account.id,
            category_id=salary.id,
            amount_cents=-1_000,
            description="Payroll correction",
            transaction_date=date(2025, 6, 1),
        )
    )
    txns.create(
        TransactionIn(
            account_id=account.id,
            amount_cents=-2_000,
            description="Dinner",
            transaction_date=date(2025, 6, 1),
        )
    )
    txns.create(
        TransactionIn(
            account_id=account.id,
            amount_cents=300,
            description="Cashback",
            transaction_date=date(2025, 6, 20),
        )
    )

    events = txns.events_for_month(date(2025, 6, 14))
    assert [(e["title"], e["type"], e["amount_cents"]) for e in events] == [
        ("Payroll correction", "income", 1_000),
        ("Dinner", "expense", 2_000),
        ("Cashback", "income", 300),
    ]
    assert events[1]["category"] == "Uncategorized"
    assert len(txns.events_for_date(date(2025, 6, 1))) == 2


def test_transactions_are_scoped_per_user() -> None:
    session = make_session()
    account = make_account(session)
    txn = TransactionService(session, USER).create(
        TransactionIn(
            account_id=account.id, amount_cents=-100, transaction_date=date(2025, 1, 1)
        )
    )
    intruder = TransactionService(session, 2)
    assert intruder.get_by_id(txn.id) is None
    assert intruder.list_page().total_count == 0
    with pytest.raises(ValueError, match="Account not found"):
        intruder.create(
            TransactionIn(
                account_id=account.id,
                amount_cents=-100,
                transaction_date=date(2025, 1, 1),
            )
        )


def test_anonymous_calls_are_refused_before_querying() -> None:
    session = make_session()
    txns = TransactionService(session, None)
    with pytest.raises(NotAuthenticated) as excinfo:
        txns.list_page()
    assert str(excinfo.value) == "User must be logged in to fetch transactions"
    with pytest.raises(NotAuthenticated):
        txns.batch_delete([1])
