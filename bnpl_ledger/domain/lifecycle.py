"""Purchase and payment state rules"""

from datetime import date
from typing import Optional

from bnpl_ledger.domain.exceptions import ConflictError
from bnpl_ledger.domain.models import DeliveryStatus, PaymentState, PurchaseStatus

OPEN_STATUSES = (PurchaseStatus.PENDING, PurchaseStatus.ACTIVE)


def outstanding_after(total_cents: int, amount_paid_cents: int) -> int:
    return max(0, total_cents - amount_paid_cents)


def status_for_balance(current: PurchaseStatus, outstanding_cents: int, amount_paid_cents: int) -> PurchaseStatus:
    """
    Stored status implied by the balance.

    COMPLETED iff nothing is outstanding; otherwise a purchase that has
    received money is ACTIVE and one that has not stays PENDING.
    """
    if outstanding_cents == 0:
        return PurchaseStatus.COMPLETED
    if amount_paid_cents > 0 or current == PurchaseStatus.ACTIVE:
        return PurchaseStatus.ACTIVE
    return PurchaseStatus.PENDING


def effective_status(
    status: PurchaseStatus,
    outstanding_cents: int,
    due_date: Optional[date],
    as_of: date,
) -> PurchaseStatus:
    """Reported status: OVERDUE when an open purchase is past its due date"""
    if status in OPEN_STATUSES and outstanding_cents > 0 and due_date is not None and as_of > due_date:
        return PurchaseStatus.OVERDUE
    return status


def payment_state(is_confirmed: bool, rejected: bool) -> PaymentState:
    if is_confirmed:
        return PaymentState.CONFIRMED
    if rejected:
        return PaymentState.REJECTED
    return PaymentState.RECORDED


def ensure_recorded(is_confirmed: bool, rejected: bool) -> None:
    """A payment leaves RECORDED at most once"""
    if is_confirmed:
        raise ConflictError("Payment is already confirmed")
    if rejected:
        raise ConflictError("Payment has already been rejected")


def ensure_within_outstanding(amount_cents: int, outstanding_cents: int) -> None:
    """Overpayment guard, checked before any mutation"""
    if amount_cents > outstanding_cents:
        raise ConflictError(
            f"Amount {amount_cents} exceeds outstanding balance of {outstanding_cents}"
        )


DELIVERY_ORDER = (
    DeliveryStatus.PENDING,
    DeliveryStatus.SCHEDULED,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.DELIVERED,
)


def ensure_delivery_advance(current: DeliveryStatus, target: DeliveryStatus) -> None:
    """Delivery only moves forward; steps may be skipped"""
    if DELIVERY_ORDER.index(target) <= DELIVERY_ORDER.index(current):
        raise ConflictError(f"Delivery cannot move from {current.value} to {target.value}")
