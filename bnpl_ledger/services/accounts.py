"""Customer wallet operations exposed to shop staff"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional
from sqlalchemy.orm import Session

from bnpl_ledger.domain.exceptions import NotFoundError, ValidationError
from bnpl_ledger.domain.models import PaymentMethod
from bnpl_ledger.infrastructure.database.models import Customer, Payment, Purchase, WalletTransaction, Waybill
from bnpl_ledger.infrastructure.database.repositories import PaymentRepository, PurchaseRepository
from bnpl_ledger.infrastructure.database.session import transaction
from bnpl_ledger.infrastructure.observability.metrics import record_payment_event
from bnpl_ledger.services.identity import ShopContext, require_supervisor, require_wallet_loader
from bnpl_ledger.services.notifications import Notification, payment_receipt, waybill_notice
from bnpl_ledger.services.payments import apply_confirmation
from bnpl_ledger.services.wallet import WalletLedger, get_customer
from bnpl_ledger.utils.date_utils import utcnow


@dataclass
class DepositOutcome:
    customer: Customer
    entry: WalletTransaction
    applied_payments: List[Payment] = field(default_factory=list)
    waybills: List[Waybill] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)


def deposit_to_wallet(
    db: Session,
    ctx: ShopContext,
    customer_id: uuid.UUID,
    amount_cents: int,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    reference: str | None = None,
    description: str | None = None,
    apply_to_outstanding: bool = False,
) -> DepositOutcome:
    """
    Load prepaid funds into a customer's wallet.

    With apply_to_outstanding the new funds immediately pay down open
    LAYAWAY/CREDIT purchases, oldest due date first, each as a confirmed
    WALLET payment. Purchases completed this way are fulfilled in the same
    transaction.

    Raises:
        AuthorizationError: Actor may not load wallets
        ValidationError: Non-positive amount
        NotFoundError: Customer outside the caller's shop
    """
    require_wallet_loader(ctx)

    with transaction(db):
        customer = get_customer(db, customer_id, ctx.shop_id)
        # Lock order is purchases, then the customer row, matching payment confirmation
        open_purchases = (
            PurchaseRepository(db).open_financed_for_customer(customer.id, for_update=True)
            if apply_to_outstanding
            else []
        )
        entry = WalletLedger(db).deposit(
            customer.id,
            ctx.shop_id,
            amount_cents,
            payment_method=PaymentMethod(payment_method).value,
            reference=reference,
            description=description,
            actor_id=ctx.actor_id,
        )
        outcome = DepositOutcome(customer=customer, entry=entry)

        if apply_to_outstanding:
            _apply_to_open_purchases(db, ctx, open_purchases, amount_cents, outcome)

    record_payment_event("deposit", PaymentMethod(payment_method).value)
    for _ in outcome.applied_payments:
        record_payment_event("confirmed", PaymentMethod.WALLET.value)
    logging.info(
        "Wallet deposit",
        extra={
            "actor_id": ctx.actor_id,
            "step": "wallet_deposit",
            "customer_id": str(customer.id),
            "amount_cents": amount_cents,
            "applied_count": len(outcome.applied_payments),
        },
    )
    _collect_receipts(ctx, outcome)
    return outcome


def _apply_to_open_purchases(
    db: Session,
    ctx: ShopContext,
    open_purchases: List[Purchase],
    amount_cents: int,
    outcome: DepositOutcome,
) -> None:
    """Pay down already-locked purchases in order until the deposit is used up"""
    remaining = amount_cents
    payments = PaymentRepository(db)

    for purchase in open_purchases:
        if remaining <= 0:
            break
        amount = min(remaining, purchase.outstanding_cents)
        if amount <= 0:
            continue

        payment = payments.add(
            Payment(
                purchase_id=purchase.id,
                amount_cents=amount,
                payment_method=PaymentMethod.WALLET.value,
                collector_id=ctx.actor_id,
                recorded_by=ctx.actor_id,
                reference=outcome.entry.reference,
                notes="Applied from wallet deposit",
                paid_at=utcnow(),
            )
        )
        waybill = apply_confirmation(db, purchase, payment, ctx.actor_id)
        outcome.applied_payments.append(payment)
        if waybill is not None:
            outcome.waybills.append(waybill)
        remaining -= amount


def _collect_receipts(ctx: ShopContext, outcome: DepositOutcome) -> None:
    try:
        for payment in outcome.applied_payments:
            outcome.notifications.append(payment_receipt(payment, payment.purchase, ctx.shop.name, ctx.actor_name))
        for waybill in outcome.waybills:
            outcome.notifications.append(waybill_notice(waybill, waybill.purchase))
    except Exception as e:
        logging.error(f"Failed to build deposit receipts: {e}", extra={"step": "notification_build_failed"})


def adjust_wallet(
    db: Session,
    ctx: ShopContext,
    customer_id: uuid.UUID,
    amount_cents: int,
    reason: str,
) -> WalletTransaction:
    """Signed manual correction, restricted to shop and business admins"""
    require_supervisor(ctx)

    with transaction(db):
        customer = get_customer(db, customer_id, ctx.shop_id)
        entry = WalletLedger(db).adjust(customer.id, ctx.shop_id, amount_cents, reason, actor_id=ctx.actor_id)

    logging.warning(
        "Wallet adjusted",
        extra={
            "actor_id": ctx.actor_id,
            "step": "wallet_adjustment",
            "customer_id": str(customer_id),
            "amount_cents": amount_cents,
        },
    )
    return entry


def refund_to_wallet(
    db: Session,
    ctx: ShopContext,
    customer_id: uuid.UUID,
    amount_cents: int,
    reason: str,
    purchase_id: uuid.UUID | None = None,
    reference: str | None = None,
) -> WalletTransaction:
    """
    Credit money back to a customer's wallet, e.g. for returned goods.

    Supervisors only. When a purchase is named it must belong to the same
    customer in this shop.
    """
    require_supervisor(ctx)
    if not reason or not reason.strip():
        raise ValidationError("Refund reason is required")

    with transaction(db):
        customer = get_customer(db, customer_id, ctx.shop_id)
        if purchase_id is not None:
            purchase = PurchaseRepository(db).get_in_shop(purchase_id, ctx.shop_id)
            if purchase is None or purchase.customer_id != customer.id:
                raise NotFoundError("Purchase not found")
        entry = WalletLedger(db).refund(
            customer.id,
            ctx.shop_id,
            amount_cents,
            purchase_id=purchase_id,
            reference=reference,
            description=reason.strip(),
            actor_id=ctx.actor_id,
        )

    record_payment_event("refund", PaymentMethod.WALLET.value)
    logging.warning(
        "Wallet refunded",
        extra={
            "actor_id": ctx.actor_id,
            "step": "wallet_refund",
            "customer_id": str(customer_id),
            "amount_cents": amount_cents,
        },
    )
    return entry


def wallet_history(
    db: Session,
    ctx: ShopContext,
    customer_id: uuid.UUID,
    limit: Optional[int] = None,
) -> List[WalletTransaction]:
    customer = get_customer(db, customer_id, ctx.shop_id)
    return WalletLedger(db).history(customer.id, limit=limit)


def verify_wallet(db: Session, ctx: ShopContext, customer_id: uuid.UUID) -> int:
    """Ledger-derived balance; raises IntegrityFault when the cache has drifted"""
    customer = get_customer(db, customer_id, ctx.shop_id)
    return WalletLedger(db).verify(customer)
