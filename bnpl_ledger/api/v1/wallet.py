"""Customer wallet endpoints - deposits, adjustments, refunds, ledger history"""

import uuid
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from bnpl_ledger.api.dependencies import get_notification_client, get_shop_context
from bnpl_ledger.api.v1.schemas import (
    AdjustmentRequest,
    DepositRequest,
    DepositResponse,
    RefundRequest,
    WalletEntrySchema,
    WalletHistoryResponse,
    WalletVerifyResponse,
)
from bnpl_ledger.infrastructure.clients.notifier import NotificationClient
from bnpl_ledger.infrastructure.database.models import WalletTransaction
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.accounts import (
    adjust_wallet,
    deposit_to_wallet,
    refund_to_wallet,
    verify_wallet,
    wallet_history,
)
from bnpl_ledger.services.identity import ShopContext
from bnpl_ledger.services.notifications import dispatch_notifications
from bnpl_ledger.services.wallet import get_customer

router = APIRouter()


def entry_schema(entry: WalletTransaction) -> WalletEntrySchema:
    return WalletEntrySchema(
        entry_id=entry.id,
        type=entry.type,
        amount_cents=entry.amount_cents,
        balance_before_cents=entry.balance_before_cents,
        balance_after_cents=entry.balance_after_cents,
        status=entry.status,
        purchase_id=str(entry.purchase_id) if entry.purchase_id else None,
        payment_method=entry.payment_method,
        reference=entry.reference,
        description=entry.description,
    )


@router.post(
    "/shops/{shop_id}/customers/{customer_id}/wallet/deposits",
    response_model=DepositResponse,
    status_code=201,
)
def post_deposit(
    customer_id: uuid.UUID,
    body: DepositRequest,
    background_tasks: BackgroundTasks,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
    notification_client: NotificationClient = Depends(get_notification_client),
):
    """Load funds; optionally pay down open purchases, oldest due first"""
    outcome = deposit_to_wallet(
        db,
        ctx,
        customer_id,
        body.amount_cents,
        payment_method=body.payment_method,
        reference=body.reference,
        description=body.description,
        apply_to_outstanding=body.apply_to_outstanding,
    )
    if outcome.notifications:
        background_tasks.add_task(dispatch_notifications, notification_client, outcome.notifications)

    return DepositResponse(
        customer_id=str(outcome.customer.id),
        wallet_balance_cents=outcome.customer.wallet_balance_cents,
        entry=entry_schema(outcome.entry),
        applied_payment_ids=[str(p.id) for p in outcome.applied_payments],
    )


@router.post("/shops/{shop_id}/customers/{customer_id}/wallet/adjustments", response_model=WalletEntrySchema, status_code=201)
def post_adjustment(
    customer_id: uuid.UUID,
    body: AdjustmentRequest,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    return entry_schema(adjust_wallet(db, ctx, customer_id, body.amount_cents, body.reason))


@router.post("/shops/{shop_id}/customers/{customer_id}/wallet/refunds", response_model=WalletEntrySchema, status_code=201)
def post_refund(
    customer_id: uuid.UUID,
    body: RefundRequest,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Credit money back to the wallet; supervisors only"""
    entry = refund_to_wallet(
        db,
        ctx,
        customer_id,
        body.amount_cents,
        body.reason,
        purchase_id=body.purchase_id,
        reference=body.reference,
    )
    return entry_schema(entry)


@router.get("/shops/{shop_id}/customers/{customer_id}/wallet/transactions", response_model=WalletHistoryResponse)
def get_wallet_transactions(
    customer_id: uuid.UUID,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    entries = wallet_history(db, ctx, customer_id, limit=limit)
    customer = get_customer(db, customer_id, ctx.shop_id)
    return WalletHistoryResponse(
        customer_id=str(customer.id),
        wallet_balance_cents=customer.wallet_balance_cents,
        transactions=[entry_schema(e) for e in entries],
    )


@router.get("/shops/{shop_id}/customers/{customer_id}/wallet/verify", response_model=WalletVerifyResponse)
def get_wallet_verification(
    customer_id: uuid.UUID,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Re-derive the balance from the ledger; drift surfaces as a 500"""
    balance = verify_wallet(db, ctx, customer_id)
    return WalletVerifyResponse(customer_id=str(customer_id), ledger_balance_cents=balance)
