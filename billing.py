from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

from models import BillingCycle
from periods import add_months

WEEKS_PER_MONTH = Decimal("4.33")

CYCLE_MONTHS = {
    BillingCycle.monthly: 1,
    BillingCycle.quarterly: 3,
    BillingCycle.yearly: 12,
}


def next_payment_date(current: date, cycle: BillingCycle) -> date:
    """Date of the payment after ``current``.

    Month based cycles snap to the last day of shorter months.
    """
    if cycle == BillingCycle.weekly:
        return current + timedelta(weeks=1)
    return add_months(current, CYCLE_MONTHS[cycle])


def monthly_equivalent_cents(amount_cents: int, cycle: BillingCycle) -> int:
    amount = Decimal(amount_cents)
    if cycle == BillingCycle.weekly:
        value = amount * WEEKS_PER_MONTH
    elif cycle == BillingCycle.quarterly:
        value = amount / 3
    elif cycle == BillingCycle.yearly:
        value = amount / 12
    else:
        value = amount
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
