"""Post-commit customer notifications - built from committed state, dispatched in the background"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Union

from bnpl_ledger.infrastructure.clients.notifier import NotificationClient
from bnpl_ledger.infrastructure.database.models import Payment, Purchase, Waybill
from bnpl_ledger.infrastructure.documents.renderer import (
    Document,
    PendingPaymentData,
    ReceiptData,
    WaybillData,
    render_pending_notice,
    render_receipt,
    render_waybill,
)
from bnpl_ledger.infrastructure.observability.metrics import notification_failure_counter
from bnpl_ledger.utils.date_utils import utcnow

DocumentData = Union[ReceiptData, PendingPaymentData, WaybillData]


@dataclass
class Notification:
    """Document addressed to one customer; holds plain data so it outlives the session"""

    customer_id: uuid.UUID
    data: DocumentData

    def render(self) -> Document:
        if isinstance(self.data, ReceiptData):
            return render_receipt(self.data)
        if isinstance(self.data, PendingPaymentData):
            return render_pending_notice(self.data)
        return render_waybill(self.data)


def receipt_number(payment: Payment) -> str:
    return f"RCT-{payment.id.hex[:10].upper()}"


def pending_notice(payment: Payment, purchase: Purchase, shop_name: str, collector_name: Optional[str]) -> Notification:
    return Notification(
        customer_id=purchase.customer_id,
        data=PendingPaymentData(
            purchase_number=purchase.purchase_number,
            customer_name=purchase.customer.full_name,
            shop_name=shop_name,
            payment_amount_cents=payment.amount_cents,
            payment_method=payment.payment_method,
            recorded_at=payment.paid_at or utcnow(),
            reference=payment.reference,
            collector_name=collector_name,
            notes=payment.notes,
        ),
    )


def payment_receipt(payment: Payment, purchase: Purchase, shop_name: str, collector_name: Optional[str]) -> Notification:
    """Receipt for a confirmed payment; the previous balance is reconstructed from the payment amount"""
    return Notification(
        customer_id=purchase.customer_id,
        data=ReceiptData(
            receipt_number=receipt_number(payment),
            purchase_number=purchase.purchase_number,
            customer_name=purchase.customer.full_name,
            customer_phone=purchase.customer.phone,
            shop_name=shop_name,
            payment_amount_cents=payment.amount_cents,
            payment_method=payment.payment_method,
            previous_balance_cents=purchase.outstanding_cents + payment.amount_cents,
            new_balance_cents=purchase.outstanding_cents,
            total_purchase_cents=purchase.total_cents,
            total_paid_cents=purchase.amount_paid_cents,
            payment_date=payment.confirmed_at or utcnow(),
            is_fully_paid=purchase.outstanding_cents == 0,
            reference=payment.reference,
            collector_name=collector_name,
            notes=payment.notes,
        ),
    )


def waybill_notice(waybill: Waybill, purchase: Purchase) -> Notification:
    return Notification(
        customer_id=purchase.customer_id,
        data=WaybillData(
            waybill_number=waybill.waybill_number,
            purchase_number=purchase.purchase_number,
            recipient_name=waybill.recipient_name,
            recipient_phone=waybill.recipient_phone,
            delivery_address=waybill.delivery_address,
            generated_at=waybill.created_at or utcnow(),
            items=[(item.product_name, item.quantity) for item in purchase.items],
            delivery_city=waybill.delivery_city,
            delivery_region=waybill.delivery_region,
            special_instructions=waybill.special_instructions,
        ),
    )


async def dispatch_notifications(client: NotificationClient, notifications: List[Notification]) -> int:
    """
    Render and send each notification, isolating failures.

    The financial write has already committed; a failed render or delivery
    is logged and counted, never raised.

    Returns:
        Number of notifications delivered
    """
    delivered = 0
    for notification in notifications:
        try:
            document = notification.render()
            await client.send(notification.customer_id, document)
            delivered += 1
        except Exception as e:
            notification_failure_counter.inc()
            logging.error(
                f"Notification delivery failed: {e}",
                extra={"step": "notification_failed", "customer_id": str(notification.customer_id)},
            )
    return delivered
