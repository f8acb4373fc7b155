"""Receivables reporting endpoints"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bnpl_ledger.api.dependencies import get_shop_context
from bnpl_ledger.api.v1.schemas import (
    AgingReportResponse,
    AgingRowSchema,
    BadDebtItemSchema,
    BadDebtReportResponse,
)
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.identity import ShopContext
from bnpl_ledger.services.reports import aging_report, bad_debt_report
from bnpl_ledger.utils.date_utils import today

router = APIRouter()


@router.get("/shops/{shop_id}/reports/aging", response_model=AgingReportResponse)
def get_aging_report(
    as_of: Optional[date] = None,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Outstanding balances per customer in 30-day buckets"""
    report_date = as_of or today()
    rows = aging_report(db, ctx, report_date)
    return AgingReportResponse(
        as_of=report_date,
        total_outstanding_cents=sum(r.total_outstanding_cents for r in rows),
        customers=[
            AgingRowSchema(
                customer_id=r.customer_id,
                customer_name=r.customer_name,
                current_cents=r.current_cents,
                days_31_to_60_cents=r.days_31_to_60_cents,
                days_61_to_90_cents=r.days_61_to_90_cents,
                over_90_cents=r.over_90_cents,
                total_outstanding_cents=r.total_outstanding_cents,
                oldest_due_date=r.oldest_due_date,
            )
            for r in rows
        ],
    )


@router.get("/shops/{shop_id}/reports/bad-debts", response_model=BadDebtReportResponse)
def get_bad_debt_report(
    as_of: Optional[date] = None,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    report_date = as_of or today()
    summary = bad_debt_report(db, ctx, report_date)
    return BadDebtReportResponse(
        as_of=report_date,
        total_at_risk_cents=summary.total_at_risk_cents,
        high_risk_count=summary.high_risk_count,
        medium_risk_count=summary.medium_risk_count,
        low_risk_count=summary.low_risk_count,
        write_off_candidates=summary.write_off_candidates,
        escalation_required=summary.escalation_required,
        payment_plan_eligible=summary.payment_plan_eligible,
        items=[
            BadDebtItemSchema(
                purchase_id=i.purchase_id,
                purchase_number=i.purchase_number,
                customer_id=i.customer_id,
                customer_name=i.customer_name,
                outstanding_cents=i.outstanding_cents,
                days_overdue=i.days_overdue,
                payment_count=i.payment_count,
                risk_score=i.risk_score,
                late_fee_cents=i.late_fee_cents,
            )
            for i in summary.items
        ],
    )
