"""Receivables reporting - aging buckets and bad-debt risk scoring"""

from datetime import date
from typing import Dict, List, Optional

from bnpl_ledger.domain.models import AgingRow, BadDebtItem, BadDebtSummary, FinancingPolicy, OpenBalance
from bnpl_ledger.domain.pricing import calculate_late_fee
from bnpl_ledger.utils.date_utils import days_overdue

HIGH_RISK = 70
MEDIUM_RISK = 40


def build_aging_report(balances: List[OpenBalance], as_of: date) -> List[AgingRow]:
    """
    Group open balances by customer and age them by days past due.

    Buckets:
    - current: not yet due, undated, or up to 30 days overdue
    - 31-60, 61-90, over 90 days overdue

    Rows are sorted by total outstanding, largest first.
    """
    rows: Dict[str, AgingRow] = {}

    for balance in balances:
        if balance.outstanding_cents <= 0:
            continue

        row = rows.get(balance.customer_id)
        if row is None:
            row = AgingRow(customer_id=balance.customer_id, customer_name=balance.customer_name)
            rows[balance.customer_id] = row

        if balance.due_date is not None and (row.oldest_due_date is None or balance.due_date < row.oldest_due_date):
            row.oldest_due_date = balance.due_date

        overdue = days_overdue(balance.due_date, as_of)
        if overdue <= 30:
            row.current_cents += balance.outstanding_cents
        elif overdue <= 60:
            row.days_31_to_60_cents += balance.outstanding_cents
        elif overdue <= 90:
            row.days_61_to_90_cents += balance.outstanding_cents
        else:
            row.over_90_cents += balance.outstanding_cents

    return sorted(rows.values(), key=lambda r: r.total_outstanding_cents, reverse=True)


def calculate_risk_score(days_late: int, outstanding_cents: int, total_cents: int, payment_count: int) -> int:
    """
    Risk score from 0 (lowest risk) to 100 (highest risk).

    Scoring weights:
    - 50%: Days overdue, saturating at 180 days
    - 30%: Share of the purchase still unpaid
    - 20%: No confirmed payment ever received (binary)
    """
    lateness = min(days_late / 180, 1.0)
    unpaid_share = min(outstanding_cents / total_cents, 1.0) if total_cents > 0 else 1.0
    silence = 1.0 if payment_count == 0 else 0.0

    score = (0.5 * lateness) + (0.3 * unpaid_share) + (0.2 * silence)

    return int(round(score * 100))


def analyze_bad_debts(
    balances: List[OpenBalance],
    as_of: date,
    policy: Optional[FinancingPolicy] = None,
    shop_policies: Optional[Dict[str, Optional[FinancingPolicy]]] = None,
) -> BadDebtSummary:
    """
    Score every overdue balance and summarize the at-risk book.

    Late fees use the policy of the balance's shop when shop_policies has an
    entry for it, else `policy`.

    - write-off candidates: score >= 80 and more than 180 days overdue
    - escalation required: score >= 50 and more than 60 days overdue
    - payment-plan eligible: score < 70 and at least one payment received
    """
    items: List[BadDebtItem] = []

    for balance in balances:
        overdue = days_overdue(balance.due_date, as_of)
        if balance.outstanding_cents <= 0 or overdue == 0:
            continue

        fee_policy = policy
        if shop_policies and balance.shop_id in shop_policies:
            fee_policy = shop_policies[balance.shop_id]

        items.append(
            BadDebtItem(
                purchase_id=balance.purchase_id,
                purchase_number=balance.purchase_number,
                customer_id=balance.customer_id,
                customer_name=balance.customer_name,
                outstanding_cents=balance.outstanding_cents,
                days_overdue=overdue,
                payment_count=balance.confirmed_payment_count,
                risk_score=calculate_risk_score(
                    overdue,
                    balance.outstanding_cents,
                    balance.total_cents,
                    balance.confirmed_payment_count,
                ),
                late_fee_cents=calculate_late_fee(balance.outstanding_cents, balance.due_date, fee_policy, as_of),
            )
        )

    items.sort(key=lambda i: (i.risk_score, i.outstanding_cents), reverse=True)

    return BadDebtSummary(
        total_at_risk_cents=sum(i.outstanding_cents for i in items),
        high_risk_count=sum(1 for i in items if i.risk_score >= HIGH_RISK),
        medium_risk_count=sum(1 for i in items if MEDIUM_RISK <= i.risk_score < HIGH_RISK),
        low_risk_count=sum(1 for i in items if i.risk_score < MEDIUM_RISK),
        write_off_candidates=sum(1 for i in items if i.risk_score >= 80 and i.days_overdue > 180),
        escalation_required=sum(1 for i in items if i.risk_score >= 50 and i.days_overdue > 60),
        payment_plan_eligible=sum(1 for i in items if i.risk_score < HIGH_RISK and i.payment_count > 0),
        items=items,
    )
