import logging
from datetime import date, datetime
from typing import Iterator, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from auth import user_id_from_token
from config import get_settings
from database import session_scope
from models import Account, Budget, Category, SavingsGoal, Subscription, Transaction
from periods import Period, local_today, resolve_period
from schemas import (
    AccountIn,
    AccountUpdate,
    BatchCategoryIn,
    BatchIds,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    ContributionIn,
    FlagIn,
    PaymentIn,
    ReconcileIn,
    SavingsGoalIn,
    SavingsGoalUpdate,
    SubscriptionIn,
    SubscriptionUpdate,
    TransactionFilter,
    TransactionIn,
    TransactionUpdate,
)
from services import (
    AccountService,
    AnalyticsService,
    BudgetService,
    BudgetWithSpent,
    CategoryService,
    DashboardService,
    NotAuthenticated,
    SavingsGoalService,
    SubscriptionService,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def get_db() -> Iterator[Session]:
    with session_scope() as db:
        yield db


def current_user_id(request: Request) -> Optional[int]:
    token = None
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
    if not token:
        token = request.cookies.get("session")
    return user_id_from_token(token)


@app.exception_handler(NotAuthenticated)
def not_authenticated_handler(request: Request, exc: NotAuthenticated):
    logger.info(f"not_authenticated: path={request.url.path}")
    return JSONResponse(status_code=401, content={"detail": str(exc)})


def _http_error(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if message.lower().endswith("not found") else 400
    return HTTPException(status_code=status, detail=message)


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{what} not found")


def period_from_request(request: Request) -> Period:
    try:
        return resolve_period(
            request.query_params.get("period"),
            request.query_params.get("start"),
            request.query_params.get("end"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def filters_from_request(request: Request) -> TransactionFilter:
    params = {
        key: value
        for key, value in request.query_params.items()
        if key in TransactionFilter.model_fields and value != ""
    }
    try:
        return TransactionFilter.model_validate(params)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _month_param(value: Optional[str]) -> date:
    if not value:
        return local_today().replace(day=1)
    try:
        if len(value) == 7:
            return date.fromisoformat(f"{value}-01")
        return date.fromisoformat(value).replace(day=1)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid month") from exc


def account_out(account: Account) -> dict:
    return {
        "id": account.id,
        "name": account.name,
        "account_type": account.account_type.value,
        "balance_cents": account.balance_cents,
        "currency": account.currency,
        "is_active": account.is_active,
    }


def category_out(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "is_income": category.is_income,
        "parent_category_id": category.parent_category_id,
        "color": category.color,
        "icon": category.icon,
    }


def transaction_out(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "account_id": txn.account_id,
        "account_name": txn.account_name,
        "category_id": txn.category_id,
        "category_name": txn.category_name,
        "amount_cents": txn.amount_cents,
        "currency": txn.effective_currency,
        "description": txn.description,
        "merchant": txn.merchant,
        "transaction_date": txn.transaction_date.isoformat(),
        "status": txn.status.value,
        "is_flagged": txn.is_flagged,
    }


def budget_out(budget: Budget, spent_cents: Optional[int] = None) -> dict:
    data = {
        "id": budget.id,
        "category_id": budget.category_id,
        "category_name": budget.category_name,
        "month": budget.month.isoformat(),
        "amount_cents": budget.amount_cents,
        "notes": budget.notes,
    }
    if spent_cents is not None:
        data["spent_cents"] = spent_cents
        data["remaining_cents"] = budget.amount_cents - spent_cents
    return data


def _budget_row_out(row: BudgetWithSpent) -> dict:
    return budget_out(row.budget, row.spent_cents)


def goal_out(goal: SavingsGoal) -> dict:
    return {
        "id": goal.id,
        "name": goal.name,
        "target_amount_cents": goal.target_amount_cents,
        "current_amount_cents": goal.current_amount_cents,
        "start_date": goal.start_date.isoformat(),
        "target_date": goal.target_date.isoformat(),
        "category_id": goal.category_id,
        "category_name": goal.category_name,
        "is_completed": goal.is_completed,
        "progress_percentage": goal.progress_percentage,
    }


def subscription_out(sub: Subscription) -> dict:
    return {
        "id": sub.id,
        "name": sub.name,
        "amount_cents": sub.amount_cents,
        "billing_cycle": sub.billing_cycle.value,
        "next_payment": sub.next_payment.isoformat(),
        "category_id": sub.category_id,
        "category_name": sub.category_name,
        "account_id": sub.account_id,
        "is_active": sub.is_active,
    }


# Accounts


@app.get("/api/accounts")
def api_accounts(
    db: Session = Depends(get_db), user_id: Optional[int] = Depends(current_user_id)
):
    return [account_out(a) for a in AccountService(db, user_id).list_all()]


@app.get("/api/accounts/balances")
def api_account_balances(
    db: Session = Depends(get_db), user_id: Optional[int] = Depends(current_user_id)
):
    return AccountService(db, user_id).balances()


@app.get("/api/accounts/{account_id}")
def api_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    account = AccountService(db, user_id).get_by_id(account_id)
    if not account:
        raise _not_found("Account")
    return account_out(account)


@app.post("/api/accounts", status_code=201)
def api_create_account(
    payload: AccountIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    return account_out(AccountService(db, user_id).create(payload))


@app.patch("/api/accounts/{account_id}")
def api_update_account(
    account_id: int,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        account = AccountService(db, user_id).update(account_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


@app.delete("/api/accounts/{account_id}", status_code=204)
def api_delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        AccountService(db, user_id).delete(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.post("/api/accounts/{account_id}/reconcile")
def api_reconcile_account(
    account_id: int,
    payload: ReconcileIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        account = AccountService(db, user_id).reconcile(
            account_id, payload.actual_balance_cents
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


# Categories


@app.get("/api/categories")
def api_categories(
    is_income: Optional[bool] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    return [category_out(c) for c in CategoryService(db, user_id).list_all(is_income)]


@app.get("/api/categories/{category_id}")
def api_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    category = CategoryService(db, user_id).get_by_id(category_id)
    if not category:
        raise _not_found("Category")
    return category_out(category)


@app.post("/api/categories", status_code=201)
def api_create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_out(category)


@app.patch("/api/categories/{category_id}")
def api_update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).update(category_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_out(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Transactions


@app.get("/api/transactions")
def api_transactions(
    request: Request,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "transaction_date",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    filters = filters_from_request(request)
    page_size = min(max(page_size, 1), 100)
    try:
        result = TransactionService(db, user_id).list_page(
            page=max(page, 1),
            page_size=page_size,
            filters=filters,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "items": [transaction_out(t) for t in result.items],
        "total_count": result.total_count,
        "total_pages": result.total_pages,
        "page": result.page,
        "page_size": result.page_size,
    }


@app.get("/api/transactions/stats")
def api_transaction_stats(
    request: Request,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    period = period_from_request(request)
    return TransactionService(db, user_id).stats(period.start, period.end)


@app.get("/api/transactions/export")
def api_export_transactions(
    request: Request,
    format: Literal["csv", "json"] = "csv",
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    filters = filters_from_request(request)
    content = TransactionService(db, user_id).export(format, filters)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"transactions_{timestamp}.{format}"
    media_type = "text/csv" if format == "csv" else "application/json"
    logger.info(f"export: user_id={user_id} format={format} bytes={len(content)}")
    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/transactions/calendar")
def api_transaction_calendar(
    month: Optional[str] = None,
    day: Optional[date] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    service = TransactionService(db, user_id)
    if day is not None:
        events = service.events_for_date(day)
    else:
        events = service.events_for_month(_month_param(month))
    return [{**e, "date": e["date"].isoformat()} for e in events]


@app.get("/api/transactions/{transaction_id}")
def api_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).get_by_id(transaction_id)
    if not txn:
        raise _not_found("Transaction")
    return transaction_out(txn)


@app.post("/api/transactions", status_code=201)
def api_create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.patch("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.post("/api/transactions/{transaction_id}/flag")
def api_flag_transaction(
    transaction_id: int,
    payload: FlagIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).flag(transaction_id, payload.is_flagged)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.post("/api/transactions/batch-delete")
def api_batch_delete(
    payload: BatchIds,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    adjustments = TransactionService(db, user_id).batch_delete(payload.transaction_ids)
    return {
        "balance_adjustments": [
            {"account_id": account_id, "amount_cents": amount}
            for account_id, amount in adjustments.items()
        ]
    }


@app.post("/api/transactions/batch-category")
def api_batch_category(
    payload: BatchCategoryIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        updated = TransactionService(db, user_id).batch_update_category(
            payload.transaction_ids, payload.category_id
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"updated": updated}


# Budgets


@app.get("/api/budgets")
def api_budgets(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    rows = BudgetService(db, user_id).list_for_month(_month_param(month))
    return [_budget_row_out(r) for r in rows]


@app.get("/api/budgets/summary")
def api_budget_summary(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    summary = BudgetService(db, user_id).summary(_month_param(month))
    return {**summary, "month": summary["month"].isoformat()}


@app.post("/api/budgets", status_code=201)
def api_create_budget(
    payload: BudgetIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget_out(budget)


@app.patch("/api/budgets/{budget_id}")
def api_update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).update(budget_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget_out(budget)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def api_delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.post("/api/budgets/copy-previous")
def api_copy_budgets(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    created = BudgetService(db, user_id).copy_from_previous_month(_month_param(month))
    return [budget_out(b) for b in created]


@app.post("/api/budgets/from-average")
def api_budgets_from_average(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    created = BudgetService(db, user_id).create_from_average(_month_param(month))
    return [budget_out(b) for b in created]


# Analytics


@app.get("/api/analytics/income-expenses")
def api_income_expenses(
    request: Request,
    group_by: Literal["day", "week", "month"] = "month",
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    period = period_from_request(request)
    try:
        return AnalyticsService(db, user_id).income_expenses(
            period.start, period.end, group_by
        )
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/analytics/category-spending")
def api_category_spending(
    request: Request,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    period = period_from_request(request)
    return AnalyticsService(db, user_id).category_spending(period.start, period.end)


@app.get("/api/analytics/top-merchants")
def api_top_merchants(
    request: Request,
    limit: int = 5,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    period = period_from_request(request)
    return AnalyticsService(db, user_id).top_merchants(
        period.start, period.end, limit=min(max(limit, 1), 50)
    )


@app.get("/api/analytics/saving-rates")
def api_saving_rates(
    months: int = 6,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        return AnalyticsService(db, user_id).monthly_saving_rates(months)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/analytics/year-over-year")
def api_year_over_year(
    db: Session = Depends(get_db), user_id: Optional[int] = Depends(current_user_id)
):
    return AnalyticsService(db, user_id).year_over_year()


@app.get("/api/analytics/snapshot")
def api_snapshot(
    db: Session = Depends(get_db), user_id: Optional[int] = Depends(current_user_id)
):
    return AnalyticsService(db, user_id).monthly_snapshot()


# Dashboard


@app.get("/api/dashboard/summary")
def api_dashboard_summary(
    request: Request,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    period = period_from_request(request)
    return DashboardService(db, user_id).financial_summary(period.start, period.end)


@app.get("/api/dashboard/spending-by-category")
def api_dashboard_spending(
    request: Request,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    period = period_from_request(request)
    return DashboardService(db, user_id).spending_by_category(period.start, period.end)


@app.get("/api/dashboard/monthly-comparison")
def api_monthly_comparison(
    months: int = 6,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    return DashboardService(db, user_id).monthly_comparison(min(max(months, 1), 24))


@app.get("/api/dashboard/insights")
def api_insights(
    db: Session = Depends(get_db), user_id: Optional[int] = Depends(current_user_id)
):
    return [i.model_dump() for i in DashboardService(db, user_id).financial_insights()]


# Savings goals


@app.get("/api/savings-goals")
def api_goals(
    db: Session = Depends(get_db), user_id: Optional[int] = Depends(current_user_id)
):
    return [goal_out(g) for g in SavingsGoalService(db, user_id).list_all()]


@app.get("/api/savings-goals/{goal_id}")
def api_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    goal = SavingsGoalService(db, user_id).get_by_id(goal_id)
    if not goal:
        raise _not_found("Savings goal")
    return goal_out(goal)


@app.post("/api/savings-goals", status_code=201)
def api_create_goal(
    payload: SavingsGoalIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        goal = SavingsGoalService(db, user_id).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return goal_out(goal)


@app.patch("/api/savings-goals/{goal_id}")
def api_update_goal(
    goal_id: int,
    payload: SavingsGoalUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        goal = SavingsGoalService(db, user_id).update(goal_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return goal_out(goal)


@app.post("/api/savings-goals/{goal_id}/contribute")
def api_contribute_goal(
    goal_id: int,
    payload: ContributionIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        goal = SavingsGoalService(db, user_id).contribute(goal_id, payload.amount_cents)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return goal_out(goal)


@app.delete("/api/savings-goals/{goal_id}", status_code=204)
def api_delete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        SavingsGoalService(db, user_id).delete(goal_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Subscriptions


@app.get("/api/subscriptions")
def api_subscriptions(
    db: Session = Depends(get_db), user_id: Optional[int] = Depends(current_user_id)
):
    service = SubscriptionService(db, user_id)
    return {
        "items": [subscription_out(s) for s in service.list_all()],
        "monthly_cost_cents": service.monthly_cost(),
    }


@app.get("/api/subscriptions/upcoming")
def api_upcoming_subscriptions(
    limit: int = 5,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    subs = SubscriptionService(db, user_id).upcoming(limit=min(max(limit, 1), 50))
    return [subscription_out(s) for s in subs]


@app.get("/api/subscriptions/{subscription_id}")
def api_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    sub = SubscriptionService(db, user_id).get_by_id(subscription_id)
    if not sub:
        raise _not_found("Subscription")
    return subscription_out(sub)


@app.post("/api/subscriptions", status_code=201)
def api_create_subscription(
    payload: SubscriptionIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        sub = SubscriptionService(db, user_id).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return subscription_out(sub)


@app.post("/api/subscriptions/from-transaction/{transaction_id}")
def api_subscription_from_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        sub = SubscriptionService(db, user_id).create_from_transaction(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"subscription": subscription_out(sub) if sub else None}


@app.patch("/api/subscriptions/{subscription_id}")
def api_update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        sub = SubscriptionService(db, user_id).update(subscription_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return subscription_out(sub)


@app.post("/api/subscriptions/{subscription_id}/pay")
def api_pay_subscription(
    subscription_id: int,
    payload: PaymentIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        txn = SubscriptionService(db, user_id).process_payment(
            subscription_id, payload.account_id, payload.paid_on
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.delete("/api/subscriptions/{subscription_id}", status_code=204)
def api_delete_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
):
    try:
        SubscriptionService(db, user_id).delete(subscription_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)
