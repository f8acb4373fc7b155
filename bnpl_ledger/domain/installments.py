"""Installment schedule generation for financed purchases"""

from datetime import date, timedelta
from typing import List
from bnpl_ledger.domain.models import Installment
from bnpl_ledger.utils.date_utils import today


def generate_installment_plan(
    amount_cents: int,
    num_installments: int,
    interval_days: int = 7,
    start_date: date | None = None,
) -> List[Installment]:
    """
    Split a financed balance into equal installments.

    Requirements:
    - Weekly cadence by default (the same cadence MONTHLY interest assumes)
    - Last installment absorbs rounding remainder (≤ num_installments-1 cents drift)

    Args:
        amount_cents: Financed amount (total minus down payment)
        num_installments: Number of payments
        interval_days: Days between payments (default 7)
        start_date: Purchase date; first due date is start_date + interval_days

    Returns:
        List of Installment objects with due dates and amounts

    Example:
        1100.03 over 4 → [275.00, 275.00, 275.00, 275.03]
    """
    if amount_cents <= 0 or num_installments <= 0:
        return []

    if start_date is None:
        start_date = today()

    base_amount = amount_cents // num_installments
    remainder = amount_cents % num_installments

    installments = []
    for i in range(num_installments):
        due_date = start_date + timedelta(days=(i + 1) * interval_days)

        # Last installment absorbs remainder to ensure exact total
        amount = base_amount + (remainder if i == num_installments - 1 else 0)

        installments.append(Installment(due_date=due_date, amount_cents=amount))

    return installments
