"""Payment endpoints - two-actor record / confirm / reject workflow"""

import uuid
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from bnpl_ledger.api.dependencies import get_notification_client, get_shop_context
from bnpl_ledger.api.v1.schemas import PaymentRequest, PaymentResponse, PendingPaymentsResponse, RejectRequest
from bnpl_ledger.infrastructure.clients.notifier import NotificationClient
from bnpl_ledger.infrastructure.database.models import Payment
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.identity import ShopContext
from bnpl_ledger.services.notifications import dispatch_notifications
from bnpl_ledger.services.payments import (
    PaymentOutcome,
    confirm_payment,
    list_pending_payments,
    record_payment,
    reject_payment,
    state_of,
)

router = APIRouter()


def payment_response(payment: Payment, waybill_number: str | None = None) -> PaymentResponse:
    purchase = payment.purchase
    return PaymentResponse(
        payment_id=str(payment.id),
        purchase_id=str(payment.purchase_id),
        amount_cents=payment.amount_cents,
        payment_method=payment.payment_method,
        state=state_of(payment).value,
        collector_id=payment.collector_id,
        reference=payment.reference,
        confirmed_by=payment.confirmed_by,
        rejection_reason=payment.rejection_reason,
        purchase_status=purchase.status,
        outstanding_cents=purchase.outstanding_cents,
        waybill_number=waybill_number,
    )


def _respond(
    outcome: PaymentOutcome,
    background_tasks: BackgroundTasks,
    notification_client: NotificationClient,
) -> PaymentResponse:
    # Sent after the response; delivery failures never reach the caller
    if outcome.notifications:
        background_tasks.add_task(dispatch_notifications, notification_client, outcome.notifications)
    return payment_response(outcome.payment, outcome.waybill.waybill_number if outcome.waybill else None)


@router.post("/shops/{shop_id}/purchases/{purchase_id}/payments", response_model=PaymentResponse, status_code=201)
def post_payment(
    purchase_id: uuid.UUID,
    body: PaymentRequest,
    background_tasks: BackgroundTasks,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
    notification_client: NotificationClient = Depends(get_notification_client),
):
    """
    Record a payment collected against a purchase.

    Stays RECORDED (customer notified it is pending) unless paid from the
    wallet or auto-confirmed by an actor allowed to confirm.
    """
    outcome = record_payment(
        db,
        ctx,
        purchase_id,
        amount_cents=body.amount_cents,
        payment_method=body.payment_method,
        collector_id=body.collector_id,
        reference=body.reference,
        notes=body.notes,
        paid_at=body.paid_at,
        auto_confirm=body.auto_confirm,
    )
    return _respond(outcome, background_tasks, notification_client)


@router.get("/shops/{shop_id}/payments/pending", response_model=PendingPaymentsResponse)
def get_pending_payments(ctx: ShopContext = Depends(get_shop_context), db: Session = Depends(get_db)):
    """Payments awaiting confirmation, oldest first"""
    return PendingPaymentsResponse(payments=[payment_response(p) for p in list_pending_payments(db, ctx)])


@router.post("/shops/{shop_id}/payments/{payment_id}/confirm", response_model=PaymentResponse)
def post_confirm(
    payment_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
    notification_client: NotificationClient = Depends(get_notification_client),
):
    outcome = confirm_payment(db, ctx, payment_id)
    return _respond(outcome, background_tasks, notification_client)


@router.post("/shops/{shop_id}/payments/{payment_id}/reject", response_model=PaymentResponse)
def post_reject(
    payment_id: uuid.UUID,
    body: RejectRequest,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    outcome = reject_payment(db, ctx, payment_id, body.reason)
    return payment_response(outcome.payment)
