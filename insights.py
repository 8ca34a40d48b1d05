"""Rule based financial insights.

``generate_financial_insights`` is pure: it reads a ``FinancialMetrics`` bag
and returns at most ``MAX_INSIGHTS`` records. Rules are evaluated in a fixed
order and each one fires independently; the order of the returned list is
the rule order.
"""

from typing import Optional, Union

from schemas import FinancialMetrics, Insight

MAX_INSIGHTS = 3


def _change_percent(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def _income_rules(m: FinancialMetrics) -> list[Insight]:
    if m.current_income is None or m.previous_income is None:
        return []
    change = _change_percent(m.current_income, m.previous_income)
    if change > 10:
        return [
            Insight(
                id="income-increase",
                type="positive",
                title="Income Growth",
                description=f"Your income has increased by {change:.1f}% compared to last month.",
            )
        ]
    if change < -5:
        return [
            Insight(
                id="income-decrease",
                type="warning",
                title="Income Decrease",
                description=f"Your income has decreased by {abs(change):.1f}% compared to last month.",
            )
        ]
    return []


def _expense_rules(m: FinancialMetrics) -> list[Insight]:
    if m.current_expenses is None or m.previous_expenses is None:
        return []
    change = _change_percent(m.current_expenses, m.previous_expenses)
    if change > 15:
        return [
            Insight(
                id="expense-increase",
                type="warning",
                title="Spending Increase",
                description=f"Your expenses have increased by {change:.1f}% compared to last month.",
            )
        ]
    if change < -10:
        return [
            Insight(
                id="expense-decrease",
                type="positive",
                title="Spending Decrease",
                description=f"Your expenses have decreased by {abs(change):.1f}% compared to last month.",
            )
        ]
    return []


def _saving_rules(m: FinancialMetrics) -> list[Insight]:
    rate = m.current_saving_rate
    if rate is None:
        return []
    if rate < 0:
        return [
            Insight(
                id="negative-savings",
                type="negative",
                title="Negative Savings",
                description="You're spending more than you earn this month. Consider reducing unnecessary expenses.",
            )
        ]
    if rate > 20:
        return [
            Insight(
                id="high-savings",
                type="positive",
                title="Excellent Saving",
                description=f"Your savings rate is {rate:.1f}%, which is excellent. Keep it up!",
            )
        ]
    if rate < 10:
        return [
            Insight(
                id="low-savings",
                type="warning",
                title="Low Savings Rate",
                description=f"Your current savings rate is {rate:.1f}%. Consider increasing your savings to at least 15-20%.",
            )
        ]
    return []


def _category_rules(m: FinancialMetrics) -> list[Insight]:
    out: list[Insight] = []
    if m.top_category is not None and m.top_category.percentage > 40:
        out.append(
            Insight(
                id="high-category-spend",
                type="warning",
                title="High Category Spending",
                description=(
                    f"{m.top_category.percentage:.1f}% of your spending is on "
                    f"{m.top_category.name}. Consider diversifying your expenses."
                ),
            )
        )
    if m.category_count is not None and m.transaction_count is not None:
        uncategorized = (
            (m.transaction_count - m.category_count) / m.transaction_count * 100
            if m.transaction_count > 0
            else 0.0
        )
        if uncategorized > 30:
            out.append(
                Insight(
                    id="uncategorized",
                    type="neutral",
                    title="Categorize Transactions",
                    description=(
                        f"{uncategorized:.1f}% of your transactions are uncategorized. "
                        "Categorizing them will give you better insights."
                    ),
                )
            )
    return out


def _income_source_rules(m: FinancialMetrics) -> list[Insight]:
    count = m.income_source_count
    if count is None:
        return []
    if count == 1:
        return [
            Insight(
                id="single-income",
                type="warning",
                title="Single Income Source",
                description=(
                    "You have only one source of income. Consider diversifying "
                    "your income streams to reduce financial risk."
                ),
            )
        ]
    if count > 2:
        return [
            Insight(
                id="multiple-income",
                type="positive",
                title="Diverse Income",
                description=f"You have {count} income sources, which helps reduce financial risk.",
            )
        ]
    return []


def _activity_rules(m: FinancialMetrics) -> list[Insight]:
    days = m.days_since_last_transaction
    if days is None or days <= 7:
        return []
    return [
        Insight(
            id="update-transactions",
            type="neutral",
            title="Update Your Transactions",
            description=(
                f"It's been {days} days since your last recorded transaction. "
                "Keep your records up to date for better insights."
            ),
        )
    ]


RULES = (
    _income_rules,
    _expense_rules,
    _saving_rules,
    _category_rules,
    _income_source_rules,
    _activity_rules,
)

MORE_DATA = Insight(
    id="more-data",
    type="neutral",
    title="More Data Needed",
    description="Add more transactions over time to receive more personalized financial insights.",
)


def generate_financial_insights(
    metrics: Optional[Union[FinancialMetrics, dict]],
) -> list[Insight]:
    if metrics is None:
        return []
    if isinstance(metrics, dict):
        metrics = FinancialMetrics.model_validate(metrics)
    if not metrics.model_fields_set:
        return []

    insights: list[Insight] = []
    for rule in RULES:
        insights.extend(rule(metrics))

    if len(insights) < 2:
        insights.append(MORE_DATA)
    return insights[:MAX_INSIGHTS]
