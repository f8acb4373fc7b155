"""Purchase endpoints - create, re-price items, read, deliver"""

import uuid
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from bnpl_ledger.api.dependencies import get_notification_client, get_shop_context
from bnpl_ledger.api.v1.schemas import (
    DeliveryStatusRequest,
    InstallmentSchema,
    PurchaseItemSchema,
    PurchaseListResponse,
    PurchaseRequest,
    PurchaseResponse,
    ScheduleResponse,
    UpdateItemsRequest,
)
from bnpl_ledger.domain.models import CartLine, NewPurchase
from bnpl_ledger.infrastructure.clients.notifier import NotificationClient
from bnpl_ledger.infrastructure.database.models import Purchase
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.fulfillment import list_ready_for_delivery, update_delivery_status
from bnpl_ledger.services.identity import ShopContext
from bnpl_ledger.services.notifications import dispatch_notifications, waybill_notice
from bnpl_ledger.services.purchases import (
    PurchaseOutcome,
    create_purchase,
    get_purchase,
    list_purchases,
    purchase_schedule,
    reported_status,
    update_purchase_items,
)

router = APIRouter()


def purchase_response(purchase: Purchase) -> PurchaseResponse:
    return PurchaseResponse(
        purchase_id=str(purchase.id),
        purchase_number=purchase.purchase_number,
        customer_id=str(purchase.customer_id),
        purchase_type=purchase.purchase_type,
        status=reported_status(purchase).value,
        subtotal_cents=purchase.subtotal_cents,
        interest_cents=purchase.interest_cents,
        total_cents=purchase.total_cents,
        amount_paid_cents=purchase.amount_paid_cents,
        outstanding_cents=purchase.outstanding_cents,
        down_payment_cents=purchase.down_payment_cents,
        installments=purchase.installments,
        tenor_days=purchase.tenor_days,
        start_date=purchase.start_date,
        due_date=purchase.due_date,
        delivery_status=purchase.delivery_status,
        delivered_at=purchase.delivered_at,
        items=[
            PurchaseItemSchema(
                product_id=str(item.product_id) if item.product_id else None,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                line_total_cents=item.line_total_cents,
            )
            for item in purchase.items
        ],
        waybill_number=purchase.waybill.waybill_number if purchase.waybill else None,
    )


def _schedule_waybill_notice(
    outcome: PurchaseOutcome,
    background_tasks: BackgroundTasks,
    notification_client: NotificationClient,
) -> None:
    if outcome.waybill is not None:
        background_tasks.add_task(
            dispatch_notifications,
            notification_client,
            [waybill_notice(outcome.waybill, outcome.purchase)],
        )


@router.post("/shops/{shop_id}/purchases", response_model=PurchaseResponse, status_code=201)
def post_purchase(
    body: PurchaseRequest,
    background_tasks: BackgroundTasks,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
    notification_client: NotificationClient = Depends(get_notification_client),
):
    """
    Create a sale.

    Flow:
    1. Resolve customer and products within the shop's business
    2. Check shop-scoped stock
    3. Price with the effective financing policy
    4. Persist purchase, down payments and wallet debt atomically
    5. Fulfill immediately when nothing is left to pay
    """
    outcome = create_purchase(
        db,
        ctx,
        NewPurchase(
            customer_id=body.customer_id,
            purchase_type=body.purchase_type,
            lines=[CartLine(product_id=line.product_id, quantity=line.quantity) for line in body.items],
            down_payment_cents=body.down_payment_cents,
            wallet_amount_cents=body.wallet_amount_cents,
            installments=body.installments,
            tenor_days=body.tenor_days,
            notes=body.notes,
        ),
    )
    _schedule_waybill_notice(outcome, background_tasks, notification_client)
    return purchase_response(outcome.purchase)


@router.put("/shops/{shop_id}/purchases/{purchase_id}/items", response_model=PurchaseResponse)
def put_purchase_items(
    purchase_id: uuid.UUID,
    body: UpdateItemsRequest,
    background_tasks: BackgroundTasks,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
    notification_client: NotificationClient = Depends(get_notification_client),
):
    """Replace items of an open purchase and re-price with the current policy"""
    outcome = update_purchase_items(
        db,
        ctx,
        purchase_id,
        [CartLine(product_id=line.product_id, quantity=line.quantity) for line in body.items],
    )
    _schedule_waybill_notice(outcome, background_tasks, notification_client)
    return purchase_response(outcome.purchase)


@router.get("/shops/{shop_id}/purchases", response_model=PurchaseListResponse)
def get_purchases(
    customer_id: Optional[uuid.UUID] = None,
    limit: int = Query(100, ge=1, le=500),
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    purchases = list_purchases(db, ctx, customer_id=customer_id, limit=limit)
    return PurchaseListResponse(purchases=[purchase_response(p) for p in purchases])


@router.get("/shops/{shop_id}/purchases/{purchase_id}", response_model=PurchaseResponse)
def get_one_purchase(
    purchase_id: uuid.UUID,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    return purchase_response(get_purchase(db, ctx, purchase_id))


@router.get("/shops/{shop_id}/purchases/{purchase_id}/schedule", response_model=ScheduleResponse)
def get_purchase_schedule(
    purchase_id: uuid.UUID,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Remaining balance split into installments; empty once paid"""
    installments = purchase_schedule(db, ctx, purchase_id)
    purchase = get_purchase(db, ctx, purchase_id)
    return ScheduleResponse(
        purchase_id=str(purchase.id),
        outstanding_cents=purchase.outstanding_cents,
        installments=[
            InstallmentSchema(due_date=inst.due_date, amount_cents=inst.amount_cents) for inst in installments
        ],
    )


@router.put("/shops/{shop_id}/purchases/{purchase_id}/delivery-status", response_model=PurchaseResponse)
def put_delivery_status(
    purchase_id: uuid.UUID,
    body: DeliveryStatusRequest,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Advance delivery of a fully paid purchase; moves are forward-only"""
    return purchase_response(update_delivery_status(db, ctx, purchase_id, body.status))


@router.get("/shops/{shop_id}/deliveries/ready", response_model=PurchaseListResponse)
def get_ready_for_delivery(
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Completed purchases with a waybill that are still awaiting hand-over"""
    purchases = list_ready_for_delivery(db, ctx)
    return PurchaseListResponse(purchases=[purchase_response(p) for p in purchases])
