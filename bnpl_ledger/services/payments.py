"""Payment confirmation workflow - record, confirm, reject"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from bnpl_ledger.domain.exceptions import ConflictError, NotFoundError, ValidationError
from bnpl_ledger.domain.lifecycle import (
    ensure_recorded,
    ensure_within_outstanding,
    outstanding_after,
    payment_state,
    status_for_balance,
)
from bnpl_ledger.domain.models import PaymentMethod, PaymentState, PurchaseStatus, PurchaseType
from bnpl_ledger.infrastructure.database.models import Payment, Purchase, Waybill
from bnpl_ledger.infrastructure.database.repositories import PaymentRepository, PurchaseRepository
from bnpl_ledger.infrastructure.database.session import transaction
from bnpl_ledger.infrastructure.observability.logging import log_payment_event
from bnpl_ledger.infrastructure.observability.metrics import record_payment_event
from bnpl_ledger.services.fulfillment import fulfill_completed_purchase
from bnpl_ledger.services.identity import ShopContext, require_payment_confirmer, staff_name
from bnpl_ledger.services.notifications import Notification, payment_receipt, pending_notice, waybill_notice
from bnpl_ledger.services.wallet import WalletLedger
from bnpl_ledger.utils.date_utils import utcnow


@dataclass
class PaymentOutcome:
    """Committed payment plus the notifications to send after commit"""

    payment: Payment
    purchase: Purchase
    waybill: Optional[Waybill] = None
    notifications: List[Notification] = field(default_factory=list)

    @property
    def state(self) -> PaymentState:
        return state_of(self.payment)


def state_of(payment: Payment) -> PaymentState:
    return payment_state(bool(payment.is_confirmed), payment.rejected_at is not None)


def apply_confirmation(db: Session, purchase: Purchase, payment: Payment, actor_id: str) -> Optional[Waybill]:
    """
    Apply a payment to its purchase; the caller holds the transaction and row locks.

    Order matters: every check runs before the first write, so a rejected
    confirmation leaves no trace.

    Returns:
        The waybill when this payment completed a non-CASH purchase
    """
    ensure_within_outstanding(payment.amount_cents, purchase.outstanding_cents)

    wallet = WalletLedger(db)
    if payment.payment_method == PaymentMethod.WALLET.value:
        wallet.draw_prepaid_credit(
            purchase.customer_id,
            purchase.shop_id,
            payment.amount_cents,
            purchase_id=purchase.id,
            payment_id=payment.id,
            actor_id=actor_id,
        )

    payment.is_confirmed = True
    payment.confirmed_at = utcnow()
    payment.confirmed_by = actor_id

    purchase.amount_paid_cents += payment.amount_cents
    purchase.outstanding_cents = outstanding_after(purchase.total_cents, purchase.amount_paid_cents)
    purchase.status = status_for_balance(
        PurchaseStatus(purchase.status), purchase.outstanding_cents, purchase.amount_paid_cents
    ).value
    db.flush()

    if purchase.purchase_type != PurchaseType.CASH.value:
        wallet.credit_for_payment(
            purchase.customer_id,
            purchase.shop_id,
            payment.amount_cents,
            purchase_id=purchase.id,
            payment_id=payment.id,
            payment_method=payment.payment_method,
            reference=payment.reference or purchase.purchase_number,
            actor_id=actor_id,
        )

    waybill = None
    if purchase.status == PurchaseStatus.COMPLETED.value:
        waybill = fulfill_completed_purchase(db, purchase, actor_id)

    return waybill


def record_payment(
    db: Session,
    ctx: ShopContext,
    purchase_id: uuid.UUID,
    amount_cents: int,
    payment_method: PaymentMethod,
    collector_id: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    paid_at: datetime | None = None,
    auto_confirm: bool = False,
) -> PaymentOutcome:
    """
    Record a payment against an open purchase.

    The payment stays RECORDED until a supervisor confirms it and the customer
    is told it is pending. WALLET payments, and payments recorded with
    auto_confirm by someone allowed to confirm, are confirmed inline.

    Raises:
        ValidationError: Non-positive amount
        NotFoundError: Purchase outside the caller's shop
        ConflictError: Purchase already paid, amount above outstanding, or
            insufficient wallet funds
        AuthorizationError: auto_confirm without confirm permission
    """
    method = PaymentMethod(payment_method)
    if amount_cents <= 0:
        raise ValidationError("Amount must be greater than zero")

    confirm_inline = method == PaymentMethod.WALLET or auto_confirm
    if auto_confirm and method != PaymentMethod.WALLET:
        require_payment_confirmer(ctx)

    with transaction(db):
        purchase = PurchaseRepository(db).get_in_shop(purchase_id, ctx.shop_id, for_update=True)
        if purchase is None:
            raise NotFoundError("Purchase not found")
        if purchase.status == PurchaseStatus.COMPLETED.value:
            raise ConflictError("Purchase is already fully paid")
        ensure_within_outstanding(amount_cents, purchase.outstanding_cents)

        payment = PaymentRepository(db).add(
            Payment(
                purchase_id=purchase.id,
                amount_cents=amount_cents,
                payment_method=method.value,
                collector_id=collector_id or ctx.actor_id,
                recorded_by=ctx.actor_id,
                reference=reference,
                notes=notes,
                paid_at=paid_at or utcnow(),
            )
        )

        waybill = None
        if confirm_inline:
            waybill = apply_confirmation(db, purchase, payment, ctx.actor_id)

    outcome = PaymentOutcome(payment=payment, purchase=purchase, waybill=waybill)
    record_payment_event("recorded", payment.payment_method)
    if confirm_inline:
        record_payment_event("confirmed", payment.payment_method)
    log_payment_event(
        "confirmed" if confirm_inline else "recorded",
        ctx.actor_id,
        str(payment.id),
        str(purchase.id),
        payment.amount_cents,
        purchase.outstanding_cents,
    )
    _collect_notifications(db, ctx, outcome)
    return outcome


def confirm_payment(db: Session, ctx: ShopContext, payment_id: uuid.UUID) -> PaymentOutcome:
    """
    Confirm a RECORDED payment.

    The payment row is locked first, so concurrent confirmations serialize and
    the loser sees the "already confirmed" guard.

    Raises:
        AuthorizationError: Actor may not confirm payments
        NotFoundError: Payment outside the caller's shop
        ConflictError: Already confirmed or rejected, or amount above outstanding
        IntegrityFault: Stock underflow during fulfillment
    """
    require_payment_confirmer(ctx)

    with transaction(db):
        payment = PaymentRepository(db).get_in_shop(payment_id, ctx.shop_id, for_update=True)
        if payment is None:
            raise NotFoundError("Payment not found")
        ensure_recorded(bool(payment.is_confirmed), payment.rejected_at is not None)

        purchase = PurchaseRepository(db).lock(payment.purchase_id)
        waybill = apply_confirmation(db, purchase, payment, ctx.actor_id)

    outcome = PaymentOutcome(payment=payment, purchase=purchase, waybill=waybill)
    record_payment_event("confirmed", payment.payment_method)
    log_payment_event(
        "confirmed",
        ctx.actor_id,
        str(payment.id),
        str(purchase.id),
        payment.amount_cents,
        purchase.outstanding_cents,
    )
    _collect_notifications(db, ctx, outcome)
    return outcome


def reject_payment(db: Session, ctx: ShopContext, payment_id: uuid.UUID, reason: str) -> PaymentOutcome:
    """
    Reject a RECORDED payment. No purchase or wallet state moves.

    Raises:
        ValidationError: Missing reason
        AuthorizationError: Actor may not confirm payments
        NotFoundError: Payment outside the caller's shop
        ConflictError: Already confirmed or rejected
    """
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required")
    require_payment_confirmer(ctx)

    with transaction(db):
        payment = PaymentRepository(db).get_in_shop(payment_id, ctx.shop_id, for_update=True)
        if payment is None:
            raise NotFoundError("Payment not found")
        ensure_recorded(bool(payment.is_confirmed), payment.rejected_at is not None)

        payment.rejected_at = utcnow()
        payment.rejected_by = ctx.actor_id
        payment.rejection_reason = reason.strip()
        db.flush()

    record_payment_event("rejected", payment.payment_method)
    log_payment_event(
        "rejected",
        ctx.actor_id,
        str(payment.id),
        str(payment.purchase_id),
        payment.amount_cents,
        payment.purchase.outstanding_cents,
    )
    return PaymentOutcome(payment=payment, purchase=payment.purchase)


def list_pending_payments(db: Session, ctx: ShopContext) -> List[Payment]:
    """RECORDED payments awaiting a decision, oldest first"""
    require_payment_confirmer(ctx)
    return PaymentRepository(db).list_pending(ctx.shop_id)


def _collect_notifications(db: Session, ctx: ShopContext, outcome: PaymentOutcome) -> None:
    """Build customer documents from committed state; failures never reach the caller"""
    payment, purchase = outcome.payment, outcome.purchase
    try:
        collector_name = staff_name(db, ctx.business_id, payment.collector_id)
        if payment.is_confirmed:
            outcome.notifications.append(payment_receipt(payment, purchase, ctx.shop.name, collector_name))
            if outcome.waybill is not None:
                outcome.notifications.append(waybill_notice(outcome.waybill, purchase))
        else:
            outcome.notifications.append(pending_notice(payment, purchase, ctx.shop.name, collector_name))
    except Exception as e:
        logging.error(
            f"Failed to build payment notifications: {e}",
            extra={"step": "notification_build_failed", "payment_id": str(payment.id)},
        )
