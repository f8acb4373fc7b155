"""Document generation for receipts, pending-payment notices and waybills.

Pure functions of their input structs; the output is a plain-text artifact the
notification service can attach or render further.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from bnpl_ledger.config import settings
from bnpl_ledger.utils.money import format_cents

RULE = "━" * 28


@dataclass
class Document:
    """Rendered artifact handed to the notification dispatcher"""

    kind: str
    filename: str
    content_type: str
    body: bytes


@dataclass
class ReceiptData:
    receipt_number: str
    purchase_number: str
    customer_name: str
    customer_phone: str
    shop_name: str
    payment_amount_cents: int
    payment_method: str
    previous_balance_cents: int
    new_balance_cents: int
    total_purchase_cents: int
    total_paid_cents: int
    payment_date: datetime
    is_fully_paid: bool
    reference: Optional[str] = None
    collector_name: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PendingPaymentData:
    purchase_number: str
    customer_name: str
    shop_name: str
    payment_amount_cents: int
    payment_method: str
    recorded_at: datetime
    reference: Optional[str] = None
    collector_name: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class WaybillData:
    waybill_number: str
    purchase_number: str
    recipient_name: str
    recipient_phone: str
    delivery_address: str
    generated_at: datetime
    items: List[Tuple[str, int]] = field(default_factory=list)
    delivery_city: Optional[str] = None
    delivery_region: Optional[str] = None
    special_instructions: Optional[str] = None


def _money(amount_cents: int) -> str:
    return format_cents(amount_cents, settings.currency)


def _document(kind: str, filename: str, lines: List[str]) -> Document:
    text = "\n".join(line for line in lines if line is not None).strip() + "\n"
    return Document(kind=kind, filename=filename, content_type="text/plain; charset=utf-8", body=text.encode("utf-8"))


def render_receipt(data: ReceiptData) -> Document:
    """Payment receipt issued once a payment is confirmed"""
    lines = [
        f"PAYMENT RECEIPT {data.receipt_number}",
        data.shop_name,
        RULE,
        f"Customer: {data.customer_name} ({data.customer_phone})",
        f"Purchase: {data.purchase_number}",
        f"Date: {data.payment_date:%d %b %Y %H:%M}",
        RULE,
        f"Amount paid: {_money(data.payment_amount_cents)}",
        f"Payment method: {data.payment_method}",
        f"Reference: {data.reference}" if data.reference else None,
        f"Collected by: {data.collector_name}" if data.collector_name else None,
        RULE,
        f"Purchase total: {_money(data.total_purchase_cents)}",
        f"Total paid: {_money(data.total_paid_cents)}",
        f"Previous balance: {_money(data.previous_balance_cents)}",
        f"New balance: {_money(data.new_balance_cents)}",
        "Status: FULLY PAID" if data.is_fully_paid else "Status: BALANCE OUTSTANDING",
        f"Notes: {data.notes}" if data.notes else None,
    ]
    return _document("payment_receipt", f"receipt-{data.receipt_number}.txt", lines)


def render_pending_notice(data: PendingPaymentData) -> Document:
    """Message telling the customer a collected payment awaits confirmation"""
    lines = [
        "Payment Pending Confirmation",
        "",
        "Your payment is being processed and awaiting confirmation.",
        RULE,
        f"Amount: {_money(data.payment_amount_cents)}",
        f"Payment method: {data.payment_method}",
        f"Reference: {data.reference}" if data.reference else None,
        f"Collected by: {data.collector_name}" if data.collector_name else None,
        f"Purchase: {data.purchase_number}",
        f"Date: {data.recorded_at:%d %b %Y} at {data.recorded_at:%H:%M}",
        f"Notes: {data.notes}" if data.notes else None,
        RULE,
        "Status: PENDING CONFIRMATION",
        "",
        "You will receive a receipt once your payment has been confirmed by the shop.",
        f"If you have any questions, please contact {data.shop_name}.",
    ]
    return _document("payment_pending", f"pending-{data.purchase_number}.txt", lines)


def render_waybill(data: WaybillData) -> Document:
    """Delivery authorization for a fully paid purchase"""
    destination = ", ".join(part for part in (data.delivery_address, data.delivery_city, data.delivery_region) if part)
    lines = [
        f"WAYBILL {data.waybill_number}",
        f"Purchase: {data.purchase_number}",
        f"Issued: {data.generated_at:%d %b %Y}",
        RULE,
        f"Recipient: {data.recipient_name} ({data.recipient_phone})",
        f"Deliver to: {destination}",
        RULE,
        *[f"{quantity} x {name}" for name, quantity in data.items],
        f"Instructions: {data.special_instructions}" if data.special_instructions else None,
    ]
    return _document("waybill", f"waybill-{data.waybill_number}.txt", lines)
