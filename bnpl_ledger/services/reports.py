"""Receivables reports over open purchases"""

import uuid
from datetime import date
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from bnpl_ledger.domain.models import AgingRow, BadDebtSummary, FinancingPolicy, OpenBalance
from bnpl_ledger.domain.reporting import analyze_bad_debts, build_aging_report
from bnpl_ledger.infrastructure.database.models import Shop
from bnpl_ledger.infrastructure.database.repositories import (
    PaymentRepository,
    PolicyRepository,
    PurchaseRepository,
    scoped_shop_ids,
)
from bnpl_ledger.services.identity import ShopContext
from bnpl_ledger.utils.date_utils import today


def _open_balances(db: Session, ctx: ShopContext) -> List[OpenBalance]:
    """Open purchases of the shop, or of the whole business for business-level staff"""
    shop_ids = scoped_shop_ids(db, ctx.business_id, None if ctx.is_business_wide else ctx.shop_id)
    purchases = PurchaseRepository(db).open_purchases(shop_ids)
    counts = PaymentRepository(db).confirmed_counts([p.id for p in purchases]) if purchases else {}

    return [
        OpenBalance(
            purchase_id=str(p.id),
            purchase_number=p.purchase_number,
            customer_id=str(p.customer_id),
            customer_name=p.customer.full_name,
            total_cents=p.total_cents,
            outstanding_cents=p.outstanding_cents,
            due_date=p.due_date,
            confirmed_payment_count=counts.get(p.id, 0),
            shop_id=str(p.shop_id),
        )
        for p in purchases
    ]


def _shop_policies(db: Session, balances: List[OpenBalance]) -> Dict[str, Optional[FinancingPolicy]]:
    """Effective policy of every shop that owns one of the balances"""
    shop_ids = {uuid.UUID(b.shop_id) for b in balances if b.shop_id}
    if not shop_ids:
        return {}
    policies = PolicyRepository(db)
    shops = db.query(Shop).filter(Shop.id.in_(shop_ids)).all()
    return {str(shop.id): policies.resolve_for_shop(shop) for shop in shops}


def aging_report(db: Session, ctx: ShopContext, as_of: date | None = None) -> List[AgingRow]:
    return build_aging_report(_open_balances(db, ctx), as_of or today())


def bad_debt_report(db: Session, ctx: ShopContext, as_of: date | None = None) -> BadDebtSummary:
    """Overdue balances scored for risk, each late fee under its own shop's effective policy"""
    balances = _open_balances(db, ctx)
    return analyze_bad_debts(
        balances,
        as_of or today(),
        PolicyRepository(db).resolve_for_shop(ctx.shop),
        shop_policies=_shop_policies(db, balances),
    )
